"""Shared FastAPI dependencies (store, ingestion wiring, delete authorization)."""

import hmac
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Request, status

from config import Settings, get_settings
from services.database import Database
from services.errors import AuthorizationError
from services.ingestion import IngestionCoordinator
from utils.git_history import HistoryExtractor


@lru_cache(maxsize=1)
def get_database() -> Database:
    """Return the process-wide database (one connection pool per process)."""
    settings = get_settings()
    return Database(settings.database_url, pool_size=settings.database_pool_size)


def get_history_extractor(settings: Settings = Depends(get_settings)) -> HistoryExtractor:
    return HistoryExtractor(
        workspace_root=settings.workspace_root,
        remote_base_url=settings.remote_base_url,
        clone_timeout=settings.clone_timeout,
    )


def get_coordinator(
    database: Database = Depends(get_database),
    extractor: HistoryExtractor = Depends(get_history_extractor),
) -> IngestionCoordinator:
    return IngestionCoordinator(database, extractor)


def require_secret_key(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Guard destructive endpoints with the shared ``SECRET_KEY``.

    A request without an ``Authorization`` header is malformed (400). A
    header that does not match the configured secret is rejected (401); an
    unset secret rejects every request.
    """
    if authorization is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Authorization header is required",
        )
    expected = settings.secret_key
    if not expected or not hmac.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8")):
        raise AuthorizationError("You must provide a valid Authorization")


def uploader_address(request: Request) -> str | None:
    """Network address of the client, or None when the server cannot tell."""
    if request.client is None or not request.client.host:
        return None
    return request.client.host
