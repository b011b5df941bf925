"""Tender analysis workflow: the state machine tying extraction, context, completion and storage together."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Sequence, TypeVar
from uuid import uuid4

from tenderpilot.config import Settings, get_settings
from tenderpilot.errors import EmptyDocument, EmptyResponse, StoreError, TenderPilotError, UnsupportedFormat
from tenderpilot.ingestion import LangChainTextExtractor, TextExtractor, ensure_supported
from tenderpilot.metrics.observability import PipelineMetrics, get_logger
from tenderpilot.models import (
    ACTIVITY_DATE_FORMAT,
    VAULT_DATE_FORMAT,
    ActivityRecord,
    ActivityStatus,
    Category,
    FileDescriptor,
    QAPair,
    SessionCache,
    VaultDocument,
    VaultStatus,
    format_size,
    infer_kind,
)
from tenderpilot.services.context import ContextAssembler
from tenderpilot.services.generation import CompletionBackend, CompletionClient, CompletionConfig, GeminiBackend
from tenderpilot.storage import FileSessionSlot, LocalStore, MemorySessionSlot, SessionSlot

MIN_TENDER_CHARS = 10

INVALID_FILE_MESSAGE = "Invalid file type. Please upload a PDF, DOCX, Excel or TXT file."
RESUME_REJECTED_NOTICE = "Cannot resume: No analysis data found for this document."
BUSY_NOTICE = "An analysis is already in progress. Please wait for it to finish."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."

T = TypeVar("T")


class WorkflowState(str, Enum):
    IDLE = "IDLE"
    FILE_SELECTED = "FILE_SELECTED"
    ANALYZING = "ANALYZING"
    RESULTED = "RESULTED"


@dataclass(frozen=True)
class SelectedFile:
    """The file open in the workspace. ``data`` is ``None`` for resumed or restored sessions."""

    descriptor: FileDescriptor
    data: bytes | None = None


@dataclass(frozen=True)
class DashboardStats:
    active_bids: int
    documents_indexed: int
    recent_tenders: int


class TenderWorkflow:
    """Single-flight, resumable tender analysis workflow.

    The store is the source of truth for vault documents and activity; the
    lists held here are display copies. ``analyze`` never raises for domain
    failures: it returns to ``FILE_SELECTED`` and exposes the message on
    ``error``. Vault and history operations raise so callers can report them.
    """

    def __init__(
        self,
        store: LocalStore,
        extractor: TextExtractor,
        completion: CompletionClient,
        *,
        assembler: ContextAssembler | None = None,
        session_slot: SessionSlot | None = None,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._completion = completion
        self._assembler = assembler or ContextAssembler(store.vault)
        self._session_slot = session_slot or MemorySessionSlot()
        self._clock = clock
        self._new_id = id_factory
        self._logger = get_logger("workflow")

        self._state = WorkflowState.IDLE
        self._selected: SelectedFile | None = None
        self._results: tuple[QAPair, ...] = ()
        self._error: str | None = None
        self._notice: str | None = None
        self._vault_documents: list[VaultDocument] = []
        self._activity: list[ActivityRecord] = []

    # -- read-only views -------------------------------------------------

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def selected_file(self) -> SelectedFile | None:
        return self._selected

    @property
    def results(self) -> tuple[QAPair, ...]:
        return self._results

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def notice(self) -> str | None:
        return self._notice

    @property
    def vault_documents(self) -> list[VaultDocument]:
        return list(self._vault_documents)

    @property
    def activity(self) -> list[ActivityRecord]:
        return list(self._activity)

    def dismiss_notice(self) -> None:
        self._notice = None

    # -- start-up --------------------------------------------------------

    def load(self, *, restore_session: bool = True) -> None:
        """Read both collections and optionally restore the cached session."""

        self._vault_documents = self._store.vault.get_all()
        self._activity = self._store.activity.get_all()
        PipelineMetrics.vault_document_count.set(len(self._vault_documents))
        self._logger.info(
            "workflow.loaded",
            vault_documents=len(self._vault_documents),
            activity_records=len(self._activity),
        )
        if not restore_session or self._state is not WorkflowState.IDLE:
            return
        session = self._session_slot.read()
        if session is None:
            return
        self._selected = SelectedFile(descriptor=session.file)
        self._results = tuple(session.results)
        self._state = WorkflowState.RESULTED
        self._logger.info("workflow.session_restored", file=session.file.name, pairs=len(self._results))

    # -- analyze state machine -------------------------------------------

    def select_file(self, name: str, data: bytes) -> bool:
        if self._state is WorkflowState.ANALYZING:
            self._notice = BUSY_NOTICE
            return False
        try:
            ensure_supported(name)
        except UnsupportedFormat:
            self._logger.info("workflow.file_rejected", name=name)
            self._selected = None
            self._results = ()
            self._error = INVALID_FILE_MESSAGE
            self._state = WorkflowState.IDLE
            return False
        descriptor = FileDescriptor(name=name, size=format_size(len(data)), kind=infer_kind(name))
        self._selected = SelectedFile(descriptor=descriptor, data=data)
        self._results = ()
        self._error = None
        self._state = WorkflowState.FILE_SELECTED
        self._logger.info("workflow.file_selected", name=name, size=descriptor.size)
        return True

    async def analyze(self) -> ActivityRecord | None:
        """Run extraction, context assembly and completion for the selected file.

        Returns the persisted record on success and ``None`` otherwise. A call
        made while another analysis is in flight is ignored.
        """

        if self._state is WorkflowState.ANALYZING:
            self._logger.info("analysis.ignored", reason="in_flight")
            return None
        selected = self._selected
        if self._state is not WorkflowState.FILE_SELECTED or selected is None or selected.data is None:
            self._logger.info("analysis.ignored", reason="no_file", state=self._state.value)
            return None

        # Set before the first await so a concurrent call sees ANALYZING.
        self._state = WorkflowState.ANALYZING
        self._error = None
        start = time.perf_counter()
        try:
            record = await self._run_analysis(selected.descriptor, selected.data)
        except TenderPilotError as exc:
            self._fail_analysis(selected.descriptor, str(exc))
            return None
        except Exception as exc:
            self._logger.error("analysis.crashed", name=selected.descriptor.name, detail=repr(exc), exc_info=True)
            self._fail_analysis(selected.descriptor, UNKNOWN_ERROR_MESSAGE)
            return None

        PipelineMetrics.record_analysis("completed")
        self._logger.info(
            "analysis.complete",
            name=selected.descriptor.name,
            record_id=record.id,
            pairs=len(self._results),
            duration_seconds=time.perf_counter() - start,
        )
        return record

    async def _run_analysis(self, descriptor: FileDescriptor, data: bytes) -> ActivityRecord:
        tender_text = await asyncio.to_thread(self._extractor.extract, descriptor.name, data)
        if len(tender_text.strip()) < MIN_TENDER_CHARS:
            raise EmptyDocument("Could not extract meaningful text from the document.")

        # Context is snapshotted once; vault edits during the completion call do not affect this run.
        context = self._assembler.assemble()
        pairs = await self._completion.complete(tender_text, context.policy, context.past_bid)
        if not pairs:
            raise EmptyResponse("The AI response did not contain any questions.")

        record = ActivityRecord(
            id=self._new_id(),
            name=descriptor.name,
            kind=descriptor.kind,
            size=descriptor.size,
            date=self._clock().strftime(ACTIVITY_DATE_FORMAT),
            status=ActivityStatus.COMPLETED,
            results=tuple(pairs),
        )
        self._store.activity.put(record)
        self._activity.insert(0, record)
        self._session_slot.write(SessionCache(file=descriptor, results=record.results or ()))
        self._results = tuple(pairs)
        self._state = WorkflowState.RESULTED
        self._notice = "Tender analysis complete!"
        return record

    def _fail_analysis(self, descriptor: FileDescriptor, message: str) -> None:
        PipelineMetrics.record_analysis("failed")
        self._logger.warning("analysis.failed", name=descriptor.name, detail=message)
        self._state = WorkflowState.FILE_SELECTED
        self._error = message

    def reset(self) -> bool:
        """Discard the open file, its results and the session cache."""

        if self._state is WorkflowState.ANALYZING:
            self._notice = BUSY_NOTICE
            return False
        self._clear_workspace()
        self._session_slot.clear()
        self._logger.info("workflow.reset")
        return True

    def resume(self, record: ActivityRecord) -> bool:
        """Open a past analysis directly in ``RESULTED`` without re-running it."""

        if self._state is WorkflowState.ANALYZING:
            self._notice = BUSY_NOTICE
            return False
        if not record.resumable:
            self._notice = RESUME_REJECTED_NOTICE
            self._logger.info("workflow.resume_rejected", record_id=record.id, status=record.status.value)
            return False
        descriptor = FileDescriptor(name=record.name, size=record.size, kind=record.kind)
        results = tuple(record.results or ())
        self._selected = SelectedFile(descriptor=descriptor)
        self._results = results
        self._error = None
        self._state = WorkflowState.RESULTED
        self._session_slot.write(SessionCache(file=descriptor, results=results))
        self._logger.info("workflow.resumed", record_id=record.id, pairs=len(results))
        return True

    def resume_by_id(self, record_id: str) -> bool:
        record = self._store.activity.get(record_id)
        if record is None:
            self._notice = RESUME_REJECTED_NOTICE
            self._logger.info("workflow.resume_rejected", record_id=record_id, status="missing")
            return False
        return self.resume(record)

    def _clear_workspace(self) -> None:
        self._selected = None
        self._results = ()
        self._error = None
        self._state = WorkflowState.IDLE

    # -- knowledge vault -------------------------------------------------

    async def upload_to_vault(self, name: str, data: bytes, category: Category | str) -> VaultDocument:
        category = Category(category)
        self._notice = "Reading document..."
        try:
            ensure_supported(name)
            text = await asyncio.to_thread(self._extractor.extract, name, data)
            if not text.strip():
                raise EmptyDocument("File appears to be empty or unreadable.")
            document = VaultDocument(
                id=self._new_id(),
                name=name,
                content=text,
                category=category,
                size=format_size(len(data)),
                date=self._clock().strftime(VAULT_DATE_FORMAT),
                kind=infer_kind(name),
                status=VaultStatus.INDEXED,
            )
            self._store.vault.put(document)
        except TenderPilotError as exc:
            self._notice = f"Failed to upload: {exc}"
            self._logger.warning("vault.upload_failed", name=name, category=category.value, detail=str(exc))
            raise

        self._vault_documents.insert(0, document)
        PipelineMetrics.vault_document_count.set(len(self._vault_documents))
        label = "Policies" if category is Category.POLICY else "Past Bids"
        self._notice = f"Document added to {label}"
        self._logger.info("vault.uploaded", document_id=document.id, name=name, category=category.value)
        return document

    def remove_document(self, document_id: str) -> None:
        self._apply_optimistic(
            "_vault_documents",
            [doc for doc in self._vault_documents if doc.id != document_id],
            lambda: self._store.vault.delete(document_id),
            success="Document removed from Vault.",
            failure="Failed to delete document.",
        )

    def clear_vault(self) -> None:
        self._apply_optimistic(
            "_vault_documents",
            [],
            self._store.vault.clear,
            success="All documents cleared from Vault.",
            failure="Failed to clear Vault.",
        )

    # -- activity history ------------------------------------------------

    def delete_activity(self, record_id: str) -> None:
        self._apply_optimistic(
            "_activity",
            [record for record in self._activity if record.id != record_id],
            lambda: self._store.activity.delete(record_id),
            success="Activity removed from history.",
            failure="Failed to remove activity.",
        )

    def clear_activity(self) -> None:
        self._apply_optimistic(
            "_activity",
            [],
            self._store.activity.clear,
            success="All activity history cleared.",
            failure="Failed to clear history.",
        )

    def factory_reset(self) -> bool:
        """Clear both collections and the session cache, then return to ``IDLE``.

        The two clears are independent commits; a failure between them leaves
        the vault empty and the history intact.
        """

        if self._state is WorkflowState.ANALYZING:
            self._notice = BUSY_NOTICE
            return False
        self.clear_vault()
        self.clear_activity()
        self._session_slot.clear()
        self._clear_workspace()
        self._notice = "Factory reset complete."
        self._logger.info("workflow.factory_reset")
        return True

    def _apply_optimistic(
        self,
        attribute: str,
        updated: list[T],
        operation: Callable[[], None],
        *,
        success: str,
        failure: str,
    ) -> None:
        # The display list changes first; a failed store call puts it back.
        previous = getattr(self, attribute)
        setattr(self, attribute, updated)
        try:
            operation()
        except StoreError as exc:
            setattr(self, attribute, previous)
            self._notice = failure
            self._logger.error("workflow.store_failed", detail=str(exc))
            raise
        finally:
            PipelineMetrics.vault_document_count.set(len(self._vault_documents))
        self._notice = success

    # -- dashboard -------------------------------------------------------

    def stats(self) -> DashboardStats:
        return DashboardStats(
            active_bids=sum(1 for record in self._activity if record.status is ActivityStatus.PROCESSING),
            documents_indexed=len(self._vault_documents),
            recent_tenders=len(self._activity),
        )

    def search_vault(self, *, category: Category | str | None = None, query: str = "") -> list[VaultDocument]:
        wanted = Category(category) if category is not None else None
        needle = query.lower()
        return [
            doc
            for doc in self._vault_documents
            if (wanted is None or doc.category is wanted) and needle in doc.name.lower()
        ]

    def search_activity(self, query: str = "") -> Sequence[ActivityRecord]:
        needle = query.lower()
        return [record for record in self._activity if needle in record.name.lower()]


def create_workflow(
    settings: Settings | None = None,
    *,
    store: LocalStore | None = None,
    backend: CompletionBackend | None = None,
    session_slot: SessionSlot | None = None,
) -> TenderWorkflow:
    """Wire a workflow from settings, opening the store once for the process."""

    settings = settings or get_settings()
    store = store or LocalStore(settings.database_path)
    store.open()
    completion_config = CompletionConfig(
        model=settings.gemini_model,
        temperature=settings.generation_temperature,
        max_tender_chars=settings.max_tender_chars,
        max_retries=settings.completion_max_retries,
        retry_base_seconds=settings.completion_retry_base_seconds,
    )
    backend = backend or GeminiBackend(settings.gemini_api_key, completion_config)
    return TenderWorkflow(
        store,
        LangChainTextExtractor(),
        CompletionClient(backend, completion_config),
        session_slot=session_slot or FileSessionSlot(settings.session_path),
    )
