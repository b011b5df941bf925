"""Observability helpers for TenderPilot."""

from __future__ import annotations

import logging
from contextvars import ContextVar

import structlog
from prometheus_client import Counter, Gauge, Histogram

_logger_configured = False
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def configure_logging(level: int = logging.INFO) -> None:
    global _logger_configured  # noqa: PLW0603 - module-level guard
    if _logger_configured:
        return
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger_configured = True


def bind_correlation_id(correlation_id: str) -> None:
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.clear_contextvars()
    _correlation_id_var.set("-")


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_logger(name: str = "tenderpilot") -> structlog.BoundLogger:
    configure_logging()
    return structlog.get_logger(name)


class PipelineMetrics:
    """Prometheus metrics for pipeline stages."""

    extraction_latency = Histogram(
        "tenderpilot_extraction_duration_seconds",
        "Time spent converting uploaded documents to text.",
        ["kind"],
        buckets=(0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
    )
    extracted_characters = Histogram(
        "tenderpilot_extracted_characters",
        "Characters of text produced per extracted document.",
        buckets=(0, 1_000, 10_000, 50_000, 100_000, 400_000, 1_000_000),
    )
    completion_latency = Histogram(
        "tenderpilot_completion_duration_seconds",
        "Time spent waiting on the generation service.",
        buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
    )
    qa_pair_count = Histogram(
        "tenderpilot_qa_pair_count",
        "Question/answer pairs recovered per completion.",
        buckets=(0, 1, 5, 10, 20, 50, 100),
    )
    analysis_outcomes = Counter(
        "tenderpilot_analysis_total",
        "Tender analyses by outcome.",
        ["outcome"],
    )
    vault_document_count = Gauge(
        "tenderpilot_vault_documents",
        "Documents currently held in the knowledge vault.",
    )

    @classmethod
    def observe_extraction(cls, kind: str, duration_seconds: float, characters: int) -> None:
        cls.extraction_latency.labels(kind=kind).observe(duration_seconds)
        cls.extracted_characters.observe(characters)

    @classmethod
    def observe_completion(cls, duration_seconds: float, pair_count: int) -> None:
        cls.completion_latency.observe(duration_seconds)
        cls.qa_pair_count.observe(pair_count)

    @classmethod
    def record_analysis(cls, outcome: str) -> None:
        cls.analysis_outcomes.labels(outcome=outcome).inc()


__all__ = [
    "PipelineMetrics",
    "bind_correlation_id",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
]
