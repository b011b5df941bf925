"""FastAPI application exposing the TenderPilot workflow.

Run with ``uvicorn tenderpilot.api.app:create_app --factory``.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tenderpilot.api.schemas import (
    ActivityListResponse,
    ActivityRecordModel,
    FileDescriptorModel,
    QAPairModel,
    SessionResponse,
    StatsResponse,
    VaultDocumentModel,
    VaultListResponse,
)
from tenderpilot.config import Settings, get_settings
from tenderpilot.errors import (
    EmptyDocument,
    EmptyResponse,
    ExtractionFailed,
    MalformedResponse,
    MissingCredential,
    StoreIOError,
    StoreUnavailable,
    TenderPilotError,
    UnsupportedFormat,
    UpstreamError,
)
from tenderpilot.export import DOCX_MEDIA_TYPE, build_answer_document, export_filename
from tenderpilot.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from tenderpilot.models import Category
from tenderpilot.services.workflow import TenderWorkflow, WorkflowState, create_workflow
from tenderpilot.storage import LocalStore

# Most specific first; the first isinstance match wins.
ERROR_STATUS: tuple[tuple[type[TenderPilotError], int], ...] = (
    (UnsupportedFormat, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
    (ExtractionFailed, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (EmptyDocument, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MissingCredential, status.HTTP_503_SERVICE_UNAVAILABLE),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (EmptyResponse, status.HTTP_502_BAD_GATEWAY),
    (MalformedResponse, status.HTTP_502_BAD_GATEWAY),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (StoreIOError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


@dataclass(frozen=True)
class AppDependencies:
    store: LocalStore
    workflow: TenderWorkflow


def _build_dependencies(settings: Settings) -> AppDependencies:
    store = LocalStore(settings.database_path)
    workflow = create_workflow(settings, store=store)
    workflow.load()
    return AppDependencies(store=store, workflow=workflow)


def status_for(exc: TenderPilotError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")
    from tenderpilot import __version__

    app = FastAPI(title="TenderPilot API", version=__version__)
    app.state.dependencies = deps

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @app.exception_handler(TenderPilotError)
    async def handle_domain_error(request: Request, exc: TenderPilotError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        code = status_for(exc)
        log = logger.error if code >= 500 else logger.warning
        log("request.failed", correlation_id=correlation_id, error=type(exc).__name__, detail=str(exc))
        return JSONResponse(
            status_code=code,
            content={"detail": str(exc), "error": type(exc).__name__, "correlation_id": correlation_id},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_workflow(dep: AppDependencies = Depends(get_dependencies)) -> TenderWorkflow:
        return dep.workflow

    def get_store(dep: AppDependencies = Depends(get_dependencies)) -> LocalStore:
        return dep.store

    async def read_upload(upload: UploadFile) -> tuple[str, bytes]:
        # Extensions are validated by the workflow.
        filename = upload.filename or f"upload-{uuid4().hex}"
        limit = settings.max_upload_size_mb * 1024 * 1024
        buffer = bytearray()
        while True:
            chunk = await upload.read(1024 * 1024)
            if not chunk:
                break
            buffer.extend(chunk)
            if len(buffer) > limit:
                await upload.close()
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File too large (>{settings.max_upload_size_mb}MB): {filename}",
                )
        await upload.close()
        return filename, bytes(buffer)

    def session_response(workflow: TenderWorkflow) -> SessionResponse:
        selected = workflow.selected_file
        return SessionResponse(
            state=workflow.state.value,
            file=FileDescriptorModel.from_domain(selected.descriptor) if selected else None,
            results=[QAPairModel.from_domain(pair) for pair in workflow.results],
            error=workflow.error,
            notice=workflow.notice,
        )

    def docx_response(content: bytes, source_name: str | None) -> Response:
        filename = export_filename(source_name)
        return Response(
            content=content,
            media_type=DOCX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    # -- health and metrics ----------------------------------------------

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    @app.get("/healthz/ready")
    async def readiness(store: LocalStore = Depends(get_store)) -> dict[str, str]:
        try:
            store.vault.count()
        except TenderPilotError as exc:
            return {"status": "error", "detail": str(exc)}
        return {"status": "ready", "schema_version": str(store.schema_version())}

    @app.get("/stats", response_model=StatsResponse)
    async def dashboard_stats(workflow: TenderWorkflow = Depends(get_workflow)) -> StatsResponse:
        stats = workflow.stats()
        return StatsResponse(
            active_bids=stats.active_bids,
            documents_indexed=stats.documents_indexed,
            recent_tenders=stats.recent_tenders,
        )

    # -- knowledge vault -------------------------------------------------

    @app.get("/vault", response_model=VaultListResponse)
    async def list_vault(
        category: Category | None = None,
        q: str = "",
        workflow: TenderWorkflow = Depends(get_workflow),
    ) -> VaultListResponse:
        documents = workflow.search_vault(category=category, query=q)
        return VaultListResponse(documents=[VaultDocumentModel.from_domain(doc) for doc in documents])

    @app.post("/vault", response_model=VaultDocumentModel, status_code=status.HTTP_201_CREATED)
    async def upload_vault_document(
        file: UploadFile = File(...),
        category: Category = Form(...),
        workflow: TenderWorkflow = Depends(get_workflow),
    ) -> VaultDocumentModel:
        filename, data = await read_upload(file)
        document = await workflow.upload_to_vault(filename, data, category)
        return VaultDocumentModel.from_domain(document)

    @app.delete("/vault/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def remove_vault_document(document_id: str, workflow: TenderWorkflow = Depends(get_workflow)) -> Response:
        workflow.remove_document(document_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/vault", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_vault(workflow: TenderWorkflow = Depends(get_workflow)) -> Response:
        workflow.clear_vault()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # -- activity history ------------------------------------------------

    @app.get("/activity", response_model=ActivityListResponse)
    async def list_activity(q: str = "", workflow: TenderWorkflow = Depends(get_workflow)) -> ActivityListResponse:
        records = workflow.search_activity(q)
        return ActivityListResponse(records=[ActivityRecordModel.from_domain(record) for record in records])

    @app.delete("/activity/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_activity(record_id: str, workflow: TenderWorkflow = Depends(get_workflow)) -> Response:
        workflow.delete_activity(record_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.delete("/activity", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_activity(workflow: TenderWorkflow = Depends(get_workflow)) -> Response:
        workflow.clear_activity()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/activity/{record_id}/export")
    async def export_activity(record_id: str, store: LocalStore = Depends(get_store)) -> Response:
        record = store.activity.get(record_id)
        if record is None or not record.resumable:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No analysis data found for this record")
        return docx_response(build_answer_document(record.results or (), record.name), record.name)

    # -- analysis session ------------------------------------------------

    @app.get("/session", response_model=SessionResponse)
    async def get_session(workflow: TenderWorkflow = Depends(get_workflow)) -> SessionResponse:
        return session_response(workflow)

    @app.post("/session/file", response_model=SessionResponse)
    async def select_tender_file(
        file: UploadFile = File(...),
        workflow: TenderWorkflow = Depends(get_workflow),
    ) -> SessionResponse:
        if workflow.state is WorkflowState.ANALYZING:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An analysis is already in progress")
        filename, data = await read_upload(file)
        if not workflow.select_file(filename, data):
            raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=workflow.error)
        return session_response(workflow)

    @app.post("/session/analyze", response_model=SessionResponse)
    async def analyze_tender(workflow: TenderWorkflow = Depends(get_workflow)) -> SessionResponse:
        if workflow.state is WorkflowState.ANALYZING:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An analysis is already in progress")
        if workflow.state is not WorkflowState.FILE_SELECTED:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No tender file selected")
        record = await workflow.analyze()
        if record is None:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=workflow.error)
        return session_response(workflow)

    @app.post("/session/resume/{record_id}", response_model=SessionResponse)
    async def resume_analysis(record_id: str, workflow: TenderWorkflow = Depends(get_workflow)) -> SessionResponse:
        if workflow.state is WorkflowState.ANALYZING:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An analysis is already in progress")
        if not workflow.resume_by_id(record_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=workflow.notice)
        return session_response(workflow)

    @app.delete("/session", response_model=SessionResponse)
    async def reset_session(workflow: TenderWorkflow = Depends(get_workflow)) -> SessionResponse:
        if not workflow.reset():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=workflow.notice)
        return session_response(workflow)

    @app.get("/session/export")
    async def export_session(workflow: TenderWorkflow = Depends(get_workflow)) -> Response:
        if workflow.state is not WorkflowState.RESULTED or not workflow.results:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No results to export")
        selected = workflow.selected_file
        source_name = selected.descriptor.name if selected else None
        return docx_response(build_answer_document(workflow.results, source_name), source_name)

    @app.post("/reset", response_model=SessionResponse)
    async def factory_reset(workflow: TenderWorkflow = Depends(get_workflow)) -> SessionResponse:
        if not workflow.factory_reset():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=workflow.notice)
        return session_response(workflow)

    return app
