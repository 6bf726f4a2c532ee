from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.gzip import GZipMiddleware

from .config import ServerSettings
from .errors import (
    BackendError,
    BackendRejected,
    BackendUnavailable,
    InvalidMetric,
    MetricNotFound,
)
from .metrics.base import Metric, ensure_kind, format_value, parse_metric
from .middleware import GzipRequestMiddleware, SignatureMiddleware
from .schemas import MetricPayload, MetricQuery
from .services.scheduler import PeriodicTask
from .storage import Backup, MemoryStore, Store, build_store

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

router = APIRouter()
ping_router = APIRouter()


def get_store(request: Request) -> Store:
    return request.app.state.store


async def _lookup(store: Store, kind: str, metric_id: str) -> Metric:
    ensure_kind(kind)
    metric = await store.get_metric(metric_id)
    if metric.kind != kind:
        raise MetricNotFound(f"{kind} {metric_id!r} not found")
    return metric


@router.get("/", include_in_schema=False, response_class=HTMLResponse)
async def list_metrics(request: Request, store: Store = Depends(get_store)):
    gauges = await store.get_all_gauges()
    counters = await store.get_all_counters()
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "gauges": sorted(gauges.items()),
            "counters": sorted(counters.items()),
        },
    )


@router.post("/update/{kind}/{name}/{value}")
async def update_from_path(
    kind: str, name: str, value: str, store: Store = Depends(get_store)
) -> Response:
    await store.update_metric(parse_metric(kind, name, value))
    return Response(status_code=200)


@router.post("/update/")
async def update_from_json(payload: MetricPayload, store: Store = Depends(get_store)):
    merged = await store.update_metric(payload.to_metric().validate())
    return merged.to_dict()


@router.post("/updates/")
async def update_batch(payloads: List[MetricPayload], store: Store = Depends(get_store)):
    if not payloads:
        return JSONResponse({"error": "empty batch"}, status_code=400)
    metrics = [payload.to_metric().validate() for payload in payloads]
    await store.update_batch(metrics)
    return {"status": "batch updated successfully"}


@router.get("/value/{kind}/{name}", response_class=PlainTextResponse)
async def read_value(kind: str, name: str, store: Store = Depends(get_store)) -> str:
    return format_value(await _lookup(store, kind, name))


@router.post("/value/")
async def read_value_json(query: MetricQuery, store: Store = Depends(get_store)):
    metric = await _lookup(store, query.type, query.id)
    return metric.to_dict()


@ping_router.get("/ping", response_class=PlainTextResponse)
async def ping(store: Store = Depends(get_store)):
    try:
        await store.ping()
    except BackendError:
        logger.exception("database ping failed")
        return PlainTextResponse("database connection failed", status_code=500)
    return "OK"


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse({"error": str(exc)}, status_code=status_code)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidMetric)
    async def invalid_metric(request: Request, exc: InvalidMetric):
        return _error(400, exc)

    @app.exception_handler(MetricNotFound)
    async def metric_not_found(request: Request, exc: MetricNotFound):
        return _error(404, exc)

    @app.exception_handler(BackendUnavailable)
    async def backend_unavailable(request: Request, exc: BackendUnavailable):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return _error(503, exc)

    @app.exception_handler(BackendRejected)
    async def backend_rejected(request: Request, exc: BackendRejected):
        logger.error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": "internal server error"}, status_code=500)

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": "invalid JSON format"}, status_code=400)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: ServerSettings = app.state.settings
    store: Store = app.state.store
    try:
        await store.open()
    except BackendError:
        logger.exception("cannot initialize database, falling back to in-memory storage")
        await store.close()
        store = app.state.store = MemoryStore()

    backup: Optional[Backup] = None
    backup_task: Optional[PeriodicTask] = None
    if isinstance(store, MemoryStore) and settings.file_storage_path:
        backup = Backup(store, settings.file_storage_path)
        if settings.restore:
            await backup.restore()
        backup_task = PeriodicTask("metric-backup", backup.save, settings.store_interval)
        backup_task.start()
    app.state.backup = backup

    try:
        yield
    finally:
        logger.info("shutting down server")
        app.state.stop_event.set()
        if backup_task is not None:
            await backup_task.stop()
        if backup is not None:
            await backup.save()
        await store.close()


def create_app(settings: Optional[ServerSettings] = None, store: Optional[Store] = None) -> FastAPI:
    settings = settings or ServerSettings()
    app = FastAPI(title="metrics-collector", lifespan=lifespan)
    app.state.settings = settings
    app.state.stop_event = asyncio.Event()
    app.state.store = store or build_store(settings, stop_event=app.state.stop_event)
    app.state.backup = None

    app.include_router(router)
    if settings.database_dsn:
        app.include_router(ping_router)
    _register_error_handlers(app)

    # Outermost last: gzip responses, inflate requests, then verify signatures.
    app.add_middleware(SignatureMiddleware, key=settings.key)
    app.add_middleware(GzipRequestMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=0)
    return app
