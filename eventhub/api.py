"""FastAPI application for eventhub."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
import tomllib

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .crud import ensure_event_role
from .database import SessionLocal
from .errors import LifecycleError, ValidationError
from .models import EventMember
from .records import EventRecord
from .scheduler import start_scheduler, stop_scheduler
from .service import EDIT_ROLES, IMAGE_ROLES, EventLifecycleService
from .storage import init_db

# Use uvicorn's error logger so messages get the level prefix in the default log
# format (needed for downstream filtering like Loki).
logger = logging.getLogger("uvicorn.error")


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("eventhub")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    if settings.enable_scheduler:
        start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="eventhub", version=APP_VERSION, lifespan=lifespan)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_service(db: Session = Depends(get_db)) -> EventLifecycleService:
    return EventLifecycleService(db)


def current_user_id(x_user_id: str | None = Header(None)) -> str | None:
    """Caller identity as asserted by the upstream auth layer."""
    return (x_user_id or "").strip() or None


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise ValidationError("X-User-Id", "header is required")
    return user_id


def _caller_role(db: Session, user_id: str | None, event_id: str, roles) -> str | None:
    membership = ensure_event_role(db, user_id, event_id, roles)
    return membership.role if membership else None


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    if exc.status_code >= 500:
        logger.error(
            "%s while handling %s %s: %s",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
        )
    return JSONResponse(exc.as_dict(), status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    return JSONResponse({"detail": detail}, status_code=status)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"detail": exc.errors()}, status_code=422)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


class EventCreatePayload(BaseModel):
    name: str
    organizer_name: str
    description: str | None = None
    start_at: str | None = Field(None, description="ISO datetime string")
    end_at: str | None = Field(
        None, description="ISO datetime string, not before start_at"
    )
    location: str | None = None
    kind: str = "private"
    images: list[str] = Field(default_factory=list)


class EventUpdatePayload(BaseModel):
    name: str | None = None
    organizer_name: str | None = None
    description: str | None = None
    start_at: str | None = Field(None, description="ISO datetime string")
    end_at: str | None = Field(None, description="ISO datetime string")
    location: str | None = None
    kind: str | None = None
    phase: str | None = Field(
        None, description="Only 'cancelled' is honored; other phases are derived"
    )
    images: list[str] | None = None


class JoinPayload(BaseModel):
    code: str


class ImagesPayload(BaseModel):
    images: list[str]


class ImageIndexesPayload(BaseModel):
    indexes: list[int]


def _serialize_member(member: EventMember) -> dict:
    return {
        "id": member.id,
        "user_id": member.user_id,
        "role": member.role,
        "status": member.status,
        "joined_at": member.created_at.isoformat() if member.created_at else None,
    }


def _serialize_event(record: EventRecord, *, include_join_code: bool = False) -> dict:
    return record.as_dict(include_join_code=include_join_code)


# -------- JSON API (v1) --------


@app.get("/api/v1/events")
def api_list_public_events(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.events_per_page, ge=1, le=100),
    search: str | None = Query(None),
    phase: str | None = Query(None),
    service: EventLifecycleService = Depends(get_service),
):
    records, pagination = service.list_public(
        page=page, limit=limit, search=search, phase=phase
    )
    return {
        "data": [_serialize_event(record) for record in records],
        "pagination": pagination,
    }


@app.post("/api/v1/events", status_code=201)
def api_create_event(
    payload: EventCreatePayload,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
):
    record = service.create(_require_user(user_id), payload.model_dump())
    return {
        "message": "Event created",
        "data": {"id": record.id, "join_code": record.join_code},
    }


@app.post("/api/v1/events/join")
def api_join_event(
    payload: JoinPayload,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
):
    data = service.join(payload.code, _require_user(user_id))
    return {"message": "Joined event", "data": data}


@app.get("/api/v1/me/events")
def api_list_my_events(
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
):
    rows = service.list_for_user(_require_user(user_id))
    data = []
    for record, membership in rows:
        item = _serialize_event(record, include_join_code=True)
        item["membership"] = {"id": membership.id, "role": membership.role}
        data.append(item)
    return {"data": data}


@app.get("/api/v1/events/{event_id}")
def api_get_public_event(
    event_id: str, service: EventLifecycleService = Depends(get_service)
):
    return {"data": _serialize_event(service.get_public(event_id))}


@app.get("/api/v1/events/{event_id}/private")
def api_get_private_event(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
):
    record = service.get_for_member(event_id, user_id)
    return {"data": _serialize_event(record, include_join_code=True)}


@app.get("/api/v1/events/{event_id}/detail")
def api_get_event_detail(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
):
    return {"data": _serialize_event(service.get_visible(event_id, user_id))}


@app.get("/api/v1/events/{event_id}/summary")
def api_get_event_summary(
    event_id: str, service: EventLifecycleService = Depends(get_service)
):
    record, members = service.summary(event_id)
    return {
        "data": {
            "event": _serialize_event(record),
            "members": [_serialize_member(member) for member in members],
        }
    }


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
    db: Session = Depends(get_db),
):
    role = _caller_role(db, user_id, event_id, EDIT_ROLES)
    record = service.update(
        event_id, payload.model_dump(exclude_unset=True), caller_role=role
    )
    return {"message": "Event updated", "data": _serialize_event(record)}


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(
    event_id: str,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
    db: Session = Depends(get_db),
):
    role = _caller_role(db, user_id, event_id, EDIT_ROLES)
    service.delete(event_id, caller_role=role)
    return Response(status_code=204)


@app.put("/api/v1/events/{event_id}/images")
def api_replace_event_images(
    event_id: str,
    payload: ImagesPayload,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
    db: Session = Depends(get_db),
):
    role = _caller_role(db, user_id, event_id, IMAGE_ROLES)
    images = service.replace_images(event_id, payload.images, caller_role=role)
    return {"message": "Images updated", "data": {"images": images}}


@app.post("/api/v1/events/{event_id}/images")
def api_add_event_images(
    event_id: str,
    payload: ImagesPayload,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
    db: Session = Depends(get_db),
):
    role = _caller_role(db, user_id, event_id, IMAGE_ROLES)
    images = service.add_images(event_id, payload.images, caller_role=role)
    return {"message": "Images added", "data": {"images": images}}


@app.delete("/api/v1/events/{event_id}/images")
def api_remove_event_images(
    event_id: str,
    payload: ImageIndexesPayload,
    user_id: str | None = Depends(current_user_id),
    service: EventLifecycleService = Depends(get_service),
    db: Session = Depends(get_db),
):
    role = _caller_role(db, user_id, event_id, IMAGE_ROLES)
    images = service.remove_images(event_id, payload.indexes, caller_role=role)
    return {"message": "Images removed", "data": {"images": images}}
