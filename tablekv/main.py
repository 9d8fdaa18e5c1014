"""
FastAPI application exposing dynamic key-value tables.

Every route forwards to the TableStore through the StoreGate and wraps the
result in the {status, message, data} envelope. Backend error text is
logged but never returned to the client.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from tablekv import __version__
from tablekv.config import Settings, get_settings
from tablekv.db.errors import StoreError
from tablekv.db.store import TableStore
from tablekv.deps import Gate, StoreGate
from tablekv.logging_setup import setup_logging
from tablekv.schemas import (
    ApiResponse,
    HealthStatus,
    TableKeyRequest,
    TableKeyValueRequest,
    TableRequest,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "tablekv"

router = APIRouter()


def envelope(status_code: int, body: ApiResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump())


def failure(message: str, error: Exception) -> JSONResponse:
    """Log a store failure and return the opaque 500 envelope."""
    logger.error("%s: %s", message, error)
    return envelope(500, ApiResponse.error(message))


# === Health Check ===

@router.get("/health", response_model=HealthStatus)
async def health_check(gate: Gate):
    """Backend connectivity check (does not take the store lock)."""
    db_health = await run_in_threadpool(gate.store.health)
    return HealthStatus(
        status="ok" if db_health.get("status") == "healthy" else "unhealthy",
        service=SERVICE_NAME,
        timestamp=datetime.now(timezone.utc),
        database=db_health,
    )


# === Data Endpoints ===

@router.post("/set_data", response_model=ApiResponse)
async def set_data(item: TableKeyValueRequest, gate: Gate):
    """Insert or replace a value."""
    try:
        await gate.run(gate.store.set_data, item.table, item.key, item.value)
    except StoreError as e:
        return failure("Failed to set data", e)
    return ApiResponse.success("Data set successfully")


@router.get("/get_data", response_model=ApiResponse)
async def get_data(item: TableKeyRequest, gate: Gate):
    """Read a value; 404 when the key is absent."""
    try:
        value = await gate.run(gate.store.get_data, item.table, item.key)
    except StoreError as e:
        return failure("Failed to retrieve data", e)

    if value is None:
        return envelope(404, ApiResponse.error("Data not found"))
    return ApiResponse.success("Data retrieved successfully", value)


@router.put("/update_data", response_model=ApiResponse)
async def update_data(item: TableKeyValueRequest, gate: Gate):
    """Update an existing value; succeeds without effect if the key is absent."""
    try:
        await gate.run(gate.store.update_data, item.table, item.key, item.value)
    except StoreError as e:
        return failure("Failed to update data", e)
    return ApiResponse.success("Data updated successfully")


@router.delete("/delete_data", response_model=ApiResponse)
async def delete_data(item: TableKeyRequest, gate: Gate):
    """Delete a key; succeeds whether or not it exists."""
    try:
        await gate.run(gate.store.delete_data, item.table, item.key)
    except StoreError as e:
        return failure("Failed to delete data", e)
    return ApiResponse.success("Data deleted successfully")


@router.delete("/delete_table", response_model=ApiResponse)
async def delete_table(item: TableRequest, gate: Gate):
    """Drop a table; succeeds whether or not it exists."""
    try:
        await gate.run(gate.store.delete_table, item.table)
    except StoreError as e:
        return failure("Failed to delete table", e)
    return ApiResponse.success("Table deleted successfully")


# === Application Factory ===

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[TableStore] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration (defaults to environment settings)
        store: Pre-built store; when omitted one is created from settings
            at startup and disposed at shutdown
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        setup_logging(settings.LOG_LEVEL)
        logger.info("Starting %s...", SERVICE_NAME)

        owned = store is None
        active = TableStore.from_settings(settings) if owned else store
        app.state.gate = StoreGate(active, serialize=settings.SERIALIZE_REQUESTS)
        logger.info(
            "Store ready (backend=%s, serialized=%s)",
            active.dialect,
            settings.SERIALIZE_REQUESTS,
        )

        yield

        logger.info("Shutting down...")
        if owned:
            active.close()

    app = FastAPI(
        title="tablekv",
        version=__version__,
        description="Schema-less key-value tables over HTTP",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # === Middleware ===

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client
        peer = f"{client.host}:{client.port}" if client else "unknown"
        user_agent = request.headers.get("user-agent", "Unknown")
        logger.info(
            "Request to %s from %s with User-Agent: %s",
            request.url.path,
            peer,
            user_agent,
        )
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.ALLOWED_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type"],
    )

    # === Exception Handlers ===

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("Rejected request to %s: %s", request.url.path, exc.errors())
        return envelope(400, ApiResponse.error("Invalid request body"))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unhandled errors."""
        logger.exception("Unhandled error on %s", request.url.path)
        return envelope(500, ApiResponse.error("Internal server error"))

    app.include_router(router)
    return app


app = create_app()
