"""HTTP server exposing WEMS datasources via FastAPI.

Each configured datasource is addressed by its uid and offers the three host
operations: run queries, list a resource and check health. Authentication and
CORS are configurable via environment variables.
"""

from __future__ import annotations

import importlib
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil
from pydantic import BaseModel, Field, ValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .. import __version__
from ..adapters import (
    get_available_datasource_ids,
    get_datasource,
    get_datasources,
    log_datasource_status,
)
from ..adapters.wems import WemsDatasource
from ..config.models import EnvSettings
from ..observability import setup_logging
from ..schemas.wems_contract import HealthResult
from ..utils.correlation import get_request_id, set_request_id
from .app import DatasourceServer, load_datasources
from .models import (
    DatasourceInfo,
    DatasourceListResponse,
    QueryDataRequest,
    QueryDataResponse,
)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "x-correlation-id"


class RequestCorrelationMiddleware(
    BaseHTTPMiddleware
):  # pylint: disable=too-few-public-methods
    """Assign a correlation id to every request and log its outcome.

    The id comes from the ``x-correlation-id`` header or a fresh UUID, is
    stored for upstream call logs and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next):
        """Tag the request, run it and log status and timing."""
        start_time = time.time()
        req_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        set_request_id(req_id)
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "http.request.failed",
                extra={
                    "req_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "duration_ms": int((time.time() - start_time) * 1000),
                },
                exc_info=True,
            )
            raise
        response.headers[CORRELATION_HEADER] = req_id
        logger.debug(
            "http.request.completed",
            extra={
                "req_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
        return response


# Export helper functions so dead-code linters recognize runtime usage.
# FastAPI registers these via decorators; static analysis alone may not see
# direct references otherwise.
__all__ = [
    "create_app",
    "_load_fastapi",
    "_build_app",
    "_apply_cors_env",
    "_make_auth_dependency",
    "_register_health",
    "_register_datasources",
]


class HealthResponse(BaseModel):
    """Simple health/readiness response model."""

    status: str


class ErrorResponse(BaseModel):
    """Structured JSON error response for HTTP endpoints.

    Fields
    ------
    detail: str
        Human-readable explanation of the error.
    error_type: str
        Machine-readable error classification.
    available_options: list[str] | None
        Optional list of valid options when the error is about an invalid
        input value (e.g., unknown datasource uid).
    """

    detail: str = Field(..., description="Human-readable error detail")
    error_type: str = Field(..., description="Machine-readable error type")
    available_options: List[str] | None = Field(
        default=None, description="Optional list of valid alternative options"
    )


def _load_fastapi():
    """Dynamically import FastAPI pieces used by the app factory."""
    fastapi_mod = importlib.import_module("fastapi")
    cors_mod = importlib.import_module("fastapi.middleware.cors")
    exc_mod = importlib.import_module("fastapi.exceptions")
    resp_mod = importlib.import_module("fastapi.responses")
    st_exc_mod = importlib.import_module("starlette.exceptions")
    return {
        "fastapi_cls": getattr(fastapi_mod, "FastAPI"),
        "depends": getattr(fastapi_mod, "Depends"),
        "header": getattr(fastapi_mod, "Header"),
        "http_exc": getattr(fastapi_mod, "HTTPException"),
        "status": getattr(fastapi_mod, "status"),
        "cors_mw": getattr(cors_mod, "CORSMiddleware"),
        "validation_exc": getattr(exc_mod, "RequestValidationError"),
        "json_response": getattr(resp_mod, "JSONResponse"),
        "response": getattr(resp_mod, "Response"),
        "starlette_http_exc": getattr(st_exc_mod, "HTTPException"),
    }


def _build_app(fastapi_cls: Any, lifespan: Any | None = None):
    """Create base FastAPI app (optionally with lifespan)."""
    if lifespan is not None:
        return fastapi_cls(
            title="WEMS Datasource", version=__version__, lifespan=lifespan
        )
    return fastapi_cls(title="WEMS Datasource", version=__version__)


def _cors_origins() -> List[str]:
    origins = os.environ.get("WEMS_DS_CORS_ORIGINS", "")
    return [o.strip() for o in origins.split(",") if o.strip()]


def _apply_cors_env(app: Any, cors_middleware_cls: Any) -> None:
    """Enable CORS if WEMS_DS_CORS_ORIGINS is set."""
    allow_origins = _cors_origins()
    if allow_origins:
        app.add_middleware(
            cors_middleware_cls,
            allow_origins=allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )


def _make_auth_dependency(header: Any, http_exc: Any, status_mod: Any):
    """Return a dependency function that enforces optional bearer token."""

    def _auth_dependency(authorization: str | None = header(default=None)) -> None:
        expected = _get_expected_token()
        if expected is None:
            return
        if not authorization or not authorization.startswith("Bearer "):
            raise http_exc(status_code=status_mod.HTTP_401_UNAUTHORIZED)
        token = authorization.split(" ", 1)[1]
        if token != expected:
            raise http_exc(status_code=status_mod.HTTP_403_FORBIDDEN)

    return _auth_dependency


def _register_health(app: Any) -> None:
    """Register health and readiness endpoints."""

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Liveness probe",
    )
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get(
        "/ready",
        response_model=HealthResponse,
        summary="Readiness probe",
    )
    async def ready() -> HealthResponse:
        return HealthResponse(status="ready")


def _lookup(uid: str, http_exc: Any) -> WemsDatasource:
    """Return the datasource for ``uid`` or raise a structured 404."""
    try:
        return get_datasource(uid)
    except KeyError as exc:
        available = get_available_datasource_ids()
        if not available:
            detail = (
                "No WEMS datasource configured. Set WEMS_DS_CONFIG or "
                "WEMS_DS_CLIENT_ID/WEMS_DS_CLIENT_SECRET."
            )
        else:
            detail = f"Datasource '{uid}' not found. Check your WEMS_DS_CONFIG."
        err = ErrorResponse(
            detail=detail,
            error_type="unknown_datasource",
            available_options=available or None,
        )
        raise http_exc(status_code=404, detail=err.model_dump()) from exc


def _register_datasources(
    app: Any,
    depends: Any,
    http_exc: Any,
    auth_dep: Any,
    response_cls: Any,
) -> None:
    """Register the per-datasource endpoints (query, resources, health)."""
    error_responses: Dict[int | str, Dict[str, Any]] = {
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"model": ErrorResponse},
    }

    @app.get(
        "/datasources",
        response_model=DatasourceListResponse,
        dependencies=[depends(auth_dep)],
        summary="List configured datasources",
    )
    async def list_datasources() -> DatasourceListResponse:
        return DatasourceListResponse(
            datasources=[
                DatasourceInfo(uid=uid, base_url=ds.base_url)
                for uid, ds in get_datasources().items()
            ]
        )

    @app.post(
        "/datasources/{uid}/query",
        response_model=QueryDataResponse,
        dependencies=[depends(auth_dep)],
        summary="Run dashboard queries",
        description=(
            "Runs every query against the WEMS series endpoint and returns one "
            "result per refId. A failing query carries its own error and status "
            "and does not fail the others."
        ),
        responses=error_responses,
    )
    async def query_data(uid: str, req: QueryDataRequest) -> QueryDataResponse:
        datasource = _lookup(uid, http_exc)
        logger.debug(
            "http.query",
            extra={
                "req_id": get_request_id(),
                "uid": uid,
                "queries": len(req.queries),
            },
        )
        results = await datasource.query_data(req.queries)
        return QueryDataResponse(results=results)

    @app.get(
        "/datasources/{uid}/resources/{path}",
        response_model=None,
        dependencies=[depends(auth_dep)],
        summary="List a resource (endpoints, appliances, services, data points)",
        responses=error_responses,
    )
    async def call_resource(uid: str, path: str, request: Request) -> Any:
        datasource = _lookup(uid, http_exc)
        params = dict(request.query_params)
        logger.debug(
            "http.resource",
            extra={"req_id": get_request_id(), "uid": uid, "path": path},
        )
        result = await datasource.call_resource(path, params)
        return response_cls(
            content=result.body,
            status_code=result.status,
            media_type=result.content_type,
        )

    @app.get(
        "/datasources/{uid}/health",
        response_model=HealthResult,
        dependencies=[depends(auth_dep)],
        summary="Check datasource health (token acquisition)",
        responses=error_responses,
    )
    async def check_health(uid: str) -> HealthResult:
        datasource = _lookup(uid, http_exc)
        return await datasource.check_health()

    # Mark handlers as intentionally used (registered via decorators)
    _ = (list_datasources, query_data, call_resource, check_health)


def _log_memory() -> None:
    """Log process memory and container memory limit at startup."""
    try:
        process = psutil.Process()
        mem_info = process.memory_info()
        logger.info(
            "http.startup.memory",
            extra={
                "rss_mb": round(mem_info.rss / 1024 / 1024, 1),
                "vms_mb": round(mem_info.vms / 1024 / 1024, 1),
            },
        )
    except (psutil.Error, RuntimeError):  # pragma: no cover
        return
    # cgroups v1, then v2
    for limit_file in (
        "/sys/fs/cgroup/memory/memory.limit_in_bytes",
        "/sys/fs/cgroup/memory.max",
    ):
        try:
            with open(limit_file) as f:
                raw = f.read().strip()
        except (FileNotFoundError, PermissionError):
            continue
        if raw == "max":
            return
        try:
            cgroup_limit = int(raw)
        except ValueError:
            continue
        if cgroup_limit < (1 << 60):  # Filter out "unlimited" values
            logger.info(
                "http.startup.container_memory_limit",
                extra={"limit_mb": round(cgroup_limit / 1024 / 1024, 1)},
            )
        return


def create_app():
    """Create and configure the FastAPI application.

    Datasources are registered from ``WEMS_DS_CONFIG`` and/or the
    single-datasource environment variables when the app is created; their
    first token is fetched when the app starts.
    """
    settings = EnvSettings()
    # Respect prior logging configuration from CLI; otherwise use env setting
    if not logging.getLogger().hasHandlers():
        setup_logging(settings.log_level)
    parts = _load_fastapi()
    server = DatasourceServer()

    @asynccontextmanager
    async def lifespan(_app: Any):
        logger.info("http.startup")
        _log_memory()
        connections = await server.start()
        try:
            if connections:
                logger.info(
                    "http.startup.connections", extra={"connections": connections}
                )
            yield
        finally:
            logger.info("http.shutdown")
            await server.stop()

    app = _build_app(parts["fastapi_cls"], lifespan=lifespan)
    request_validation_error_cls = parts["validation_exc"]
    jr = parts["json_response"]
    starlette_http_exception_cls = parts["starlette_http_exc"]

    @app.exception_handler(request_validation_error_cls)
    async def validation_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        err = ErrorResponse(
            detail=str(exc), error_type="validation_error", available_options=None
        )
        return jr(status_code=400, content={"detail": err.model_dump()})

    @app.exception_handler(starlette_http_exception_cls)
    async def http_exception_handler(_request: Any, exc: Any):  # noqa: D401
        # Pass through existing HTTP errors but ensure structured payload
        detail = getattr(exc, "detail", "")
        if isinstance(detail, dict) and {"detail", "error_type"} <= detail.keys():
            payload = {"detail": detail}
        else:
            payload = {
                "detail": ErrorResponse(
                    detail=str(detail) or "HTTP error",
                    error_type="http_error",
                    available_options=None,
                ).model_dump()
            }
        return jr(status_code=exc.status_code, content=payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        # Avoid leaking internals; log server-side, return generic error
        logger.error("http.unhandled_exception", exc_info=exc)
        err = ErrorResponse(
            detail="Internal error. See server logs for request id.",
            error_type="internal_server_error",
            available_options=None,
        )
        return jr(status_code=500, content={"detail": err.model_dump()})

    # Mark handlers as intentionally used (registered via decorators)
    _ = (
        validation_exception_handler,
        http_exception_handler,
        unhandled_exception_handler,
    )

    app.add_middleware(RequestCorrelationMiddleware)
    _apply_cors_env(app, parts["cors_mw"])
    auth_dep = _make_auth_dependency(
        parts["header"], parts["http_exc"], parts["status"]
    )
    _register_health(app)
    _register_datasources(
        app, parts["depends"], parts["http_exc"], auth_dep, parts["response"]
    )

    # Configuration discovery and datasource initialization
    cfg_env = settings.config
    cfg_path: Optional[Path] = Path(cfg_env) if cfg_env else None
    cfg_found = cfg_path is not None and cfg_path.exists()
    config_error: str | None = None
    datasources_initialized: List[str] = []
    try:
        datasources_initialized = load_datasources(
            cfg_path if cfg_found else None, settings
        )
    except (OSError, ValueError, ValidationError) as exc:  # config parse/load error
        config_error = str(exc)

    logger.info(
        "http.startup.settings",
        extra={
            "log_level": settings.log_level,
            "cors_origins": _cors_origins(),
            "http_auth": "enabled" if _get_expected_token() else "disabled",
            "config_path": str(cfg_path) if cfg_path else None,
            "config_found": cfg_found,
            "config_error": config_error,
            "datasources_initialized": datasources_initialized,
        },
    )
    if cfg_path is not None and not cfg_found:
        logger.warning(
            "http.startup.config_not_found",
            extra={
                "config_path": str(cfg_path),
                "example_config_env": "export WEMS_DS_CONFIG=/etc/wems/config.json",
            },
        )
    if config_error:
        logger.warning(
            "http.startup.config_error",
            extra={
                "config_path": str(cfg_path) if cfg_path else None,
                "error": config_error,
                "suggestion": (
                    'Validate JSON format: {"datasources": {"<uid>": '
                    '{"jsonData": {...}, "secureJsonData": {...}}}}'
                ),
            },
        )
    log_datasource_status()
    return app


def _get_expected_token() -> str | None:
    """Return expected bearer token from environment, or ``None`` if disabled.

    Environment variable: ``WEMS_DS_HTTP_TOKEN``.
    """
    token = os.environ.get("WEMS_DS_HTTP_TOKEN")
    return token if token else None
