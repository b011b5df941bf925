from __future__ import annotations

from tenderpilot.models import Category, FileKind, VaultDocument
from tenderpilot.services.context import ContextAssembler
from tenderpilot.storage import LocalStore


def _doc(doc_id: str, name: str, content: str, category: Category) -> VaultDocument:
    return VaultDocument(
        id=doc_id,
        name=name,
        content=content,
        category=category,
        size="0.01 MB",
        date="01/02/2025",
        kind=FileKind.TXT,
    )


def test_blocks_are_partitioned_and_tagged_in_vault_order():
    with LocalStore() as store:
        store.vault.put(_doc("1", "gdpr.txt", "We comply with GDPR.", Category.POLICY))
        store.vault.put(_doc("2", "bid-2023.txt", "Our 2023 answer.", Category.PAST_BID))
        store.vault.put(_doc("3", "iso.txt", "ISO 27001 certified.", Category.POLICY))

        context = ContextAssembler(store.vault).assemble()

    assert context.policy == "[SOURCE: gdpr.txt]\nWe comply with GDPR.\n\n[SOURCE: iso.txt]\nISO 27001 certified."
    assert context.past_bid == "[SOURCE: bid-2023.txt]\nOur 2023 answer."
    assert context.document_count == 3


def test_assembly_is_pure_without_intervening_writes():
    with LocalStore() as store:
        store.vault.put(_doc("1", "policy.txt", "Encrypt at rest.", Category.POLICY))
        assembler = ContextAssembler(store.vault)
        assert assembler.assemble() == assembler.assemble()


def test_empty_vault_yields_empty_blocks():
    with LocalStore() as store:
        context = ContextAssembler(store.vault).assemble()
    assert context.policy == ""
    assert context.past_bid == ""
