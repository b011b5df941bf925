"""Tests for the tender analysis workflow state machine."""

from __future__ import annotations

import asyncio
import itertools
from datetime import datetime

import pytest

from tenderpilot.errors import StoreIOError, UnsupportedFormat
from tenderpilot.ingestion import LangChainTextExtractor
from tenderpilot.models import ActivityRecord, ActivityStatus, Category, FileKind, QAPair
from tenderpilot.services.generation import CompletionClient
from tenderpilot.services.workflow import RESUME_REJECTED_NOTICE, TenderWorkflow, WorkflowState
from tenderpilot.storage import LocalStore, MemorySessionSlot

REPLY = '[{"question":"How is data protected?","answer":"Data is encrypted at rest. [Source: policy.txt]"}]'
TENDER = b"Q: How is data protected?"


class StubBackend:
    def __init__(self, reply: str | None = REPLY) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def generate(self, *, system_instruction: str, prompt: str) -> str | None:
        self.prompts.append(prompt)
        return self.reply


class BlockingBackend(StubBackend):
    """Holds every call open until ``release`` is set."""

    def __init__(self, reply: str | None = REPLY) -> None:
        super().__init__(reply)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate(self, *, system_instruction: str, prompt: str) -> str | None:
        self.prompts.append(prompt)
        self.started.set()
        await self.release.wait()
        return self.reply


def make_workflow(backend: StubBackend, store: LocalStore | None = None) -> TenderWorkflow:
    counter = itertools.count(1)
    workflow = TenderWorkflow(
        store or LocalStore().open(),
        LangChainTextExtractor(),
        CompletionClient(backend),
        session_slot=MemorySessionSlot(),
        clock=lambda: datetime(2025, 3, 4, 9, 30, 0),
        id_factory=lambda: f"id-{next(counter)}",
    )
    workflow.load()
    return workflow


def test_end_to_end_analysis_uses_vault_context():
    backend = StubBackend()
    workflow = make_workflow(backend)

    asyncio.run(workflow.upload_to_vault("policy.txt", b"All data must be encrypted at rest.", Category.POLICY))
    assert workflow.select_file("tender.txt", TENDER)
    record = asyncio.run(workflow.analyze())

    assert record is not None
    assert record.status is ActivityStatus.COMPLETED
    assert record.date == "04/03/2025, 09:30:00"
    assert list(record.results or ()) == [
        QAPair(question="How is data protected?", answer="Data is encrypted at rest. [Source: policy.txt]")
    ]
    assert workflow.state is WorkflowState.RESULTED
    assert len(workflow.vault_documents) == 1
    assert len(workflow.activity) == 1
    assert "[SOURCE: policy.txt]\nAll data must be encrypted at rest." in backend.prompts[0]
    assert "Q: How is data protected?" in backend.prompts[0]


def test_second_analyze_while_in_flight_is_ignored():
    async def scenario() -> tuple[TenderWorkflow, BlockingBackend, ActivityRecord | None]:
        backend = BlockingBackend()
        workflow = make_workflow(backend)
        workflow.select_file("tender.txt", TENDER)
        first = asyncio.create_task(workflow.analyze())
        await backend.started.wait()
        assert workflow.state is WorkflowState.ANALYZING
        assert await workflow.analyze() is None
        assert workflow.select_file("other.txt", TENDER) is False
        backend.release.set()
        return workflow, backend, await first

    workflow, backend, record = asyncio.run(scenario())

    assert record is not None
    assert len(backend.prompts) == 1
    assert [item.id for item in workflow.activity] == [record.id]
    assert workflow.selected_file is not None
    assert workflow.selected_file.descriptor.name == "tender.txt"


def test_invalid_selection_returns_to_idle():
    workflow = make_workflow(StubBackend())
    assert workflow.select_file("tender.txt", TENDER)
    assert workflow.select_file("tender.pptx", b"data") is False
    assert workflow.state is WorkflowState.IDLE
    assert workflow.selected_file is None
    assert workflow.error


def test_failed_analysis_keeps_file_and_persists_nothing():
    store = LocalStore().open()
    workflow = make_workflow(StubBackend("no json here"), store=store)
    workflow.select_file("tender.txt", TENDER)

    assert asyncio.run(workflow.analyze()) is None

    assert workflow.state is WorkflowState.FILE_SELECTED
    assert workflow.error == "Failed to parse AI response as JSON."
    assert store.activity.get_all() == []
    assert workflow.activity == []


def test_blank_tender_is_rejected_before_completion():
    backend = StubBackend()
    workflow = make_workflow(backend)
    workflow.select_file("tender.txt", b"   short  ")

    assert asyncio.run(workflow.analyze()) is None
    assert workflow.error == "Could not extract meaningful text from the document."
    assert backend.prompts == []


def test_empty_array_is_not_recorded_as_completed():
    workflow = make_workflow(StubBackend("[]"))
    workflow.select_file("tender.txt", TENDER)

    assert asyncio.run(workflow.analyze()) is None
    assert workflow.state is WorkflowState.FILE_SELECTED
    assert workflow.activity == []


def test_resume_rejects_records_without_results():
    workflow = make_workflow(StubBackend())
    pending = ActivityRecord(
        id="p1",
        name="draft.pdf",
        kind=FileKind.PDF,
        size="0.10 MB",
        date="01/01/2025, 10:00:00",
        status=ActivityStatus.PROCESSING,
    )
    empty = ActivityRecord(
        id="e1",
        name="empty.pdf",
        kind=FileKind.PDF,
        size="0.10 MB",
        date="01/01/2025, 10:00:00",
        status=ActivityStatus.COMPLETED,
        results=(),
    )

    for record in (pending, empty):
        assert workflow.resume(record) is False
        assert workflow.state is WorkflowState.IDLE
        assert workflow.notice == RESUME_REJECTED_NOTICE
    assert workflow.resume_by_id("missing") is False


def test_resume_and_restart_restore_results():
    store = LocalStore().open()
    slot = MemorySessionSlot()
    first = TenderWorkflow(store, LangChainTextExtractor(), CompletionClient(StubBackend()), session_slot=slot)
    first.select_file("tender.txt", TENDER)
    record = asyncio.run(first.analyze())
    assert record is not None
    first.reset()
    assert first.state is WorkflowState.IDLE
    assert slot.read() is None

    assert first.resume_by_id(record.id)
    assert first.state is WorkflowState.RESULTED

    restarted = TenderWorkflow(store, LangChainTextExtractor(), CompletionClient(StubBackend()), session_slot=slot)
    restarted.load()
    assert restarted.state is WorkflowState.RESULTED
    assert restarted.results == first.results
    assert [item.id for item in restarted.activity] == [record.id]


def test_vault_upload_rejects_unsupported_files():
    workflow = make_workflow(StubBackend())
    with pytest.raises(UnsupportedFormat):
        asyncio.run(workflow.upload_to_vault("deck.pptx", b"data", Category.PAST_BID))
    assert workflow.vault_documents == []
    assert workflow.notice and workflow.notice.startswith("Failed to upload")


def test_failed_delete_restores_display_list(monkeypatch: pytest.MonkeyPatch):
    store = LocalStore().open()
    workflow = make_workflow(StubBackend(), store=store)
    document = asyncio.run(workflow.upload_to_vault("policy.txt", b"Encrypt everything.", "POLICY"))

    def failing_delete(document_id: str) -> None:
        raise StoreIOError("disk full")

    monkeypatch.setattr(store.vault, "delete", failing_delete)
    with pytest.raises(StoreIOError):
        workflow.remove_document(document.id)

    assert [doc.id for doc in workflow.vault_documents] == [document.id]
    assert workflow.notice == "Failed to delete document."


def test_factory_reset_empties_everything():
    store = LocalStore().open()
    slot = MemorySessionSlot()
    workflow = TenderWorkflow(store, LangChainTextExtractor(), CompletionClient(StubBackend()), session_slot=slot)
    asyncio.run(workflow.upload_to_vault("policy.txt", b"All data must be encrypted at rest.", Category.POLICY))
    workflow.select_file("tender.txt", TENDER)
    asyncio.run(workflow.analyze())

    assert workflow.factory_reset()

    assert store.vault.get_all() == []
    assert store.activity.get_all() == []
    assert slot.read() is None
    assert workflow.state is WorkflowState.IDLE
    assert workflow.stats().documents_indexed == 0
    assert workflow.stats().recent_tenders == 0


def test_search_filters_by_category_and_name():
    workflow = make_workflow(StubBackend())
    asyncio.run(workflow.upload_to_vault("GDPR Policy.txt", b"GDPR text", Category.POLICY))
    asyncio.run(workflow.upload_to_vault("NHS Bid 2023.txt", b"Past bid text", Category.PAST_BID))

    assert [doc.name for doc in workflow.search_vault(category=Category.POLICY)] == ["GDPR Policy.txt"]
    assert [doc.name for doc in workflow.search_vault(query="nhs")] == ["NHS Bid 2023.txt"]
    assert [doc.name for doc in workflow.vault_documents] == ["NHS Bid 2023.txt", "GDPR Policy.txt"]
