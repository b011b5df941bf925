"""Service layer orchestrations for TenderPilot."""

from .context import ContextAssembler, ContextConfig, KnowledgeContext
from .generation import (
    CompletionBackend,
    CompletionClient,
    CompletionConfig,
    GeminiBackend,
    build_prompt,
    parse_qa_pairs,
    truncate_tender_text,
)
from .workflow import DashboardStats, SelectedFile, TenderWorkflow, WorkflowState, create_workflow

__all__ = [
    "CompletionBackend",
    "CompletionClient",
    "CompletionConfig",
    "ContextAssembler",
    "ContextConfig",
    "DashboardStats",
    "GeminiBackend",
    "KnowledgeContext",
    "SelectedFile",
    "TenderWorkflow",
    "WorkflowState",
    "build_prompt",
    "create_workflow",
    "parse_qa_pairs",
    "truncate_tender_text",
]
