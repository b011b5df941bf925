"""Knowledge context assembly from the vault collection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from tenderpilot.metrics.observability import get_logger
from tenderpilot.models import Category, VaultDocument
from tenderpilot.storage.store import VaultCollection


@dataclass(frozen=True)
class ContextConfig:
    """Configuration for provenance tagging."""

    source_prefix: str = "[SOURCE: "
    source_suffix: str = "]"
    separator: str = "\n\n"


@dataclass(frozen=True)
class KnowledgeContext:
    """The two context blocks handed to the completion client."""

    policy: str
    past_bid: str
    document_count: int = 0


class ContextAssembler:
    """Builds provenance-tagged context blocks from the current vault contents.

    Every document is included in full; nothing is ranked, deduplicated or
    truncated here.
    """

    def __init__(self, vault: VaultCollection, config: ContextConfig | None = None) -> None:
        self._vault = vault
        self._config = config or ContextConfig()
        self._logger = get_logger("context")

    def assemble(self) -> KnowledgeContext:
        documents = self._vault.get_all()
        policy = self.build_block(doc for doc in documents if doc.category is Category.POLICY)
        past_bid = self.build_block(doc for doc in documents if doc.category is Category.PAST_BID)
        self._logger.info(
            "context.assembled",
            document_count=len(documents),
            policy_chars=len(policy),
            past_bid_chars=len(past_bid),
        )
        return KnowledgeContext(policy=policy, past_bid=past_bid, document_count=len(documents))

    def build_block(self, documents: Iterable[VaultDocument]) -> str:
        entries = [
            f"{self._config.source_prefix}{document.name}{self._config.source_suffix}\n{document.content}"
            for document in documents
        ]
        return self._config.separator.join(entries)
