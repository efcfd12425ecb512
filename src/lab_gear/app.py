import json
import os
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from lab_gear import __version__
from lab_gear.auth import BearerAuth
from lab_gear.config import LabGearConfig, load_config
from lab_gear.errors import (
    AuthenticationError,
    DuplicateMachineError,
    MachineNotFoundError,
    PayloadTooLargeError,
    StoreError,
    ValidationFailedError,
)
from lab_gear.logging import EventType, configure_logging, get_logger
from lab_gear.middleware import add_logging_middleware
from lab_gear.models import MachineRecord, parse_kind, validate_machine_input
from lab_gear.models.inventory import build_record, utc_now
from lab_gear.persistence import DatabaseManager, database_url_for
from lab_gear.store import MachineStore

logger = get_logger("lab_gear.app")


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _record_response(record: MachineRecord, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=record.model_dump(mode="json"))


def get_store(request: Request) -> MachineStore:
    """FastAPI dependency returning the store owned by this app instance."""
    return request.app.state.store


def authenticate(request: Request) -> None:
    """Router dependency delegating to the app's BearerAuth gate."""
    request.app.state.auth(request)


async def _read_json_body(request: Request) -> Any:
    """Read at most max_body_bytes of the body and decode it as JSON."""
    max_bytes = request.app.state.config.max_body_bytes

    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > max_bytes:
        raise PayloadTooLargeError("request body too large")

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_bytes:
            raise PayloadTooLargeError("request body too large")

    try:
        return json.loads(bytes(body), parse_constant=_reject_json_constant)
    except ValueError:
        raise ValidationFailedError("invalid JSON")


def _reject_json_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be rendered back out
    raise ValueError(f"non-standard JSON constant {name}")


health_router = APIRouter()
machines_router = APIRouter(prefix="/api/v1/machines", dependencies=[Depends(authenticate)])


@health_router.get("/healthz")
async def healthz():
    """Liveness endpoint. Not behind the bearer gate."""
    return {"status": "ok", "version": __version__}


@machines_router.post("", status_code=201)
async def create_machine(request: Request, store: MachineStore = Depends(get_store)):
    machine_input = validate_machine_input(await _read_json_body(request))

    record = build_record(machine_input, str(uuid.uuid4()), utc_now())
    stored = await run_in_threadpool(store.create, record)

    logger.log_machine_event(
        EventType.MACHINE_CREATED, stored.id, metadata={"name": stored.name, "kind": stored.kind.value}
    )
    return _record_response(stored, status_code=201)


@machines_router.get("")
async def list_machines(kind: Optional[str] = None, store: MachineStore = Depends(get_store)):
    kind_filter = parse_kind(kind) if kind else None
    machines = await run_in_threadpool(store.list, kind_filter)
    return JSONResponse(content=[m.model_dump(mode="json") for m in machines])


@machines_router.get("/{machine_id}")
async def get_machine(machine_id: str, store: MachineStore = Depends(get_store)):
    record = await run_in_threadpool(store.get_by_id, machine_id)
    return _record_response(record)


@machines_router.put("/{machine_id}")
async def update_machine(
    machine_id: str, request: Request, store: MachineStore = Depends(get_store)
):
    # A missing target is reported before the body is looked at
    existing = await run_in_threadpool(store.get_by_id, machine_id)

    machine_input = validate_machine_input(await _read_json_body(request))

    record = build_record(machine_input, existing.id, existing.created_at, utc_now())
    stored = await run_in_threadpool(store.update, record)

    logger.log_machine_event(
        EventType.MACHINE_UPDATED, stored.id, metadata={"name": stored.name, "kind": stored.kind.value}
    )
    return _record_response(stored)


@machines_router.delete("/{machine_id}", status_code=204)
async def delete_machine(machine_id: str, store: MachineStore = Depends(get_store)):
    await run_in_threadpool(store.delete, machine_id)
    logger.log_machine_event(EventType.MACHINE_DELETED, machine_id)
    return Response(status_code=204)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthenticationError)
    async def handle_auth_error(request: Request, exc: AuthenticationError):
        return _error(401, "unauthorized", headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(ValidationFailedError)
    async def handle_validation_error(request: Request, exc: ValidationFailedError):
        return _error(400, str(exc))

    @app.exception_handler(PayloadTooLargeError)
    async def handle_payload_too_large(request: Request, exc: PayloadTooLargeError):
        return _error(413, str(exc))

    @app.exception_handler(MachineNotFoundError)
    async def handle_not_found(request: Request, exc: MachineNotFoundError):
        return _error(404, "machine not found")

    @app.exception_handler(DuplicateMachineError)
    async def handle_duplicate(request: Request, exc: DuplicateMachineError):
        logger.error(
            "Identifier collision on create",
            event_type=EventType.STORE_ERROR,
            machine_id=exc.machine_id,
        )
        return _error(409, "machine already exists")

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError):
        # The store already logged the underlying cause
        return _error(500, str(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "invalid request") if errors else "invalid request"
        return _error(400, message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error(
            f"Unhandled error: {request.method} {request.url.path}",
            event_type=EventType.SERVER_ERROR,
            method=request.method,
            path=request.url.path,
            metadata={"error": str(exc), "error_type": type(exc).__name__},
        )
        return _error(500, "internal server error")


def create_app(config: LabGearConfig, db: Optional[DatabaseManager] = None) -> FastAPI:
    """Build an inventory API instance that owns its database and auth gate."""
    configure_logging(config.log_level)

    if db is None:
        db = DatabaseManager(database_url_for(config.db_path))
    db.initialize_database()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        db.close()

    app = FastAPI(title="lab_gear API", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.db = db
    app.state.store = MachineStore(db)
    app.state.auth = BearerAuth(config.api_token)

    add_logging_middleware(app, exclude_paths=["/healthz"])
    _register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(machines_router)

    logger.log_event(
        EventType.SERVER_START,
        "lab_gear API initialized",
        metadata={"db": db.database_url, "journal_mode": db.journal_mode()},
    )
    return app


def run() -> None:
    import uvicorn

    config = load_config(os.getenv("LAB_GEAR_CONFIG", "lab_gear.yml"))
    uvicorn.run(create_app(config), host=config.host, port=config.port)
