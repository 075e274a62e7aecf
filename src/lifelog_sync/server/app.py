"""LifeLog entries API as a FastAPI application.

Run locally:
    lifelog-sync serve --port 8000
"""

import logging
import secrets
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from lifelog_sync import __version__
from lifelog_sync.api.models import LogEntry
from lifelog_sync.server.repository import EntryRepository
from lifelog_sync.server.settings import ServerSettings
from lifelog_sync.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "timestamp", "recorded_at", "source", "device_id", "data")


class APIError(Exception):
    """Error rendered as ``{"error": message}`` with the given status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


def get_repository(request: Request) -> EntryRepository:
    return request.app.state.repository


def require_api_key(request: Request) -> None:
    """Validate the bearer token against the configured API key."""
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer "):
        raise APIError(401, "Unauthorized - missing or invalid Authorization header")

    api_key = get_settings(request).api_key
    if not api_key:
        logger.error("LIFELOG_API_KEY is not set")
        raise APIError(500, "Server configuration error")

    if not secrets.compare_digest(auth[len("Bearer ") :], api_key):
        raise APIError(401, "Unauthorized - invalid API key")


def parse_entries(payload: Any) -> list[LogEntry]:
    """Validate a POST body holding one entry or a list of entries.

    Raises:
        APIError: 400 naming the first missing field or invalid value.
    """
    items = payload if isinstance(payload, list) else [payload]
    entries: list[LogEntry] = []
    for item in items:
        if not isinstance(item, dict):
            raise APIError(400, "Invalid entry: expected a JSON object")
        for field in REQUIRED_FIELDS:
            if item.get(field) in (None, ""):
                raise APIError(400, f"Invalid entry: missing required field '{field}'")
        try:
            entries.append(LogEntry.from_api_dict(item))
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise APIError(400, f"Invalid entry: {location}: {first['msg']}") from e
    return entries


router = APIRouter(prefix="/api/entries", dependencies=[Depends(require_api_key)])


@router.post("")
def create_entries(
    payload: Any = Body(...),
    repo: EntryRepository = Depends(get_repository),
) -> dict[str, int]:
    entries = parse_entries(payload)
    try:
        created = repo.upsert_entries(entries)
    except Exception as e:
        logger.exception("Error creating entries")
        raise APIError(500, f"Failed to create entries: {e}") from e
    logger.info(f"Upserted {created} entries")
    return {"created": created}


@router.get("")
def list_entries(
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    category: str | None = Query(default=None),
    source: str | None = Query(default=None),
    limit: int | None = Query(default=None),
    offset: int = Query(default=0),
    settings: ServerSettings = Depends(get_settings),
    repo: EntryRepository = Depends(get_repository),
) -> list[dict[str, Any]]:
    if not limit or limit < 1:
        limit = settings.default_limit
    limit = min(limit, settings.max_limit)
    try:
        return repo.list_entries(
            since=since,
            until=until,
            category=category,
            source=source,
            limit=limit,
            offset=max(offset, 0),
        )
    except Exception as e:
        logger.exception("Error fetching entries")
        raise APIError(500, f"Failed to fetch entries: {e}") from e


@router.get("/{entry_id}")
def get_entry(entry_id: UUID, repo: EntryRepository = Depends(get_repository)) -> dict[str, Any]:
    entry = repo.get_entry(str(entry_id))
    if entry is None:
        raise APIError(404, "Entry not found")
    return entry


def create_app(
    settings: ServerSettings | None = None,
    repository: EntryRepository | None = None,
) -> FastAPI:
    """Build the API application.

    Args:
        settings: Server settings; read from the environment when omitted.
        repository: Entry repository; opened at ``settings.db_path`` when omitted.
    """
    settings = settings or ServerSettings()
    repository = repository or EntryRepository(settings.db_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Starting LifeLog API v{__version__} (db: {settings.db_path})")
        if not settings.api_key:
            logger.warning("LIFELOG_API_KEY is not set; authenticated calls will fail")
        yield
        repository.close()

    app = FastAPI(title="LifeLog API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.repository = repository

    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {"loc": (), "msg": "invalid request"}
        location = ".".join(str(part) for part in first["loc"])
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {location}: {first['msg']}"})

    @app.get("/health")
    def health() -> dict[str, str]:
        repository.ping()
        return {"status": "ok", "timestamp": utcnow().isoformat()}

    @app.get("/")
    def root() -> dict[str, Any]:
        return {
            "name": "LifeLog API",
            "version": __version__,
            "endpoints": [
                "POST /api/entries - Create entries",
                "GET /api/entries - List entries",
                "GET /api/entries/:id - Get single entry",
                "GET /health - Health check",
            ],
        }

    app.include_router(router)
    return app
