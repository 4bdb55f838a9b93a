"""API route definitions for the commit catalog."""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from api.dependencies import get_coordinator, get_database, require_secret_key, uploader_address
from config import Settings, get_settings
from models.catalog import Branch, Commit, Email, Repository, RepositoryCreate
from services.database import Database
from services.errors import ExternalSourceError, NotFoundError, StorageError
from services.gateway import BranchGateway, CommitGateway, EmailGateway, RepositoryGateway
from services.ingestion import IngestionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()

# Thread pool for clone + history walk (blocking network and disk I/O)
executor = ThreadPoolExecutor(max_workers=4)


def _parse_uuid(raw: str, entity: str) -> UUID:
    # Malformed ids are reported as not found.
    try:
        return UUID(raw)
    except ValueError:
        raise NotFoundError(f"{entity} not found") from None


def _read_all(entity: str, reader):
    try:
        return reader()
    except StorageError as exc:
        logger.warning("Listing %s failed: %s", entity, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Error trying to read all {entity} from database",
        )


@router.get("/health")
async def health_check() -> dict:
    """
    Lightweight endpoint for uptime checks.

    Returns:
        dict: Health status payload.
    """
    return {"status": "healthy"}


# ============================================================================
# REPOSITORY ENDPOINTS
# ============================================================================


@router.get("/repo/", response_model=list[Repository])
def list_repositories(database: Database = Depends(get_database)) -> list[Repository]:
    """
    Retrieve all repositories, most recently updated first.

    Raises:
        HTTPException: 400 if the store cannot be read.
    """
    return _read_all("repositories", RepositoryGateway(database).find_all)


@router.post("/repo/", response_model=Repository, status_code=status.HTTP_201_CREATED)
async def create_repository(
    payload: RepositoryCreate,
    request: Request,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
    settings: Settings = Depends(get_settings),
) -> Repository:
    """
    Onboard a hosted repository: clone it, import the history of one branch.

    Request body:
        {
            "url": "https://github.com/acme/widgets",
            "branch": "main"
        }

    The clone and history walk run in a worker thread bounded by
    ``INGEST_TIMEOUT``. On timeout or client disconnect the worker is
    signalled to stop and rolls the repository back.

    Returns:
        Repository: The onboarded repository.

    Raises:
        AppError: NotFound (404), AlreadyExists (403), AuthorizationError
            (401), GitError (400) or DbError (500).
    """
    uploader = uploader_address(request)
    cancel_event = threading.Event()
    loop = asyncio.get_running_loop()
    try:
        repo = await asyncio.wait_for(
            loop.run_in_executor(
                executor,
                lambda: coordinator.ingest(payload.url, payload.branch, uploader, cancel_event=cancel_event),
            ),
            timeout=settings.ingest_timeout,
        )
    except asyncio.TimeoutError:
        cancel_event.set()
        logger.warning("POST /repo/ %s timed out after %ss", payload.url, settings.ingest_timeout)
        raise ExternalSourceError(
            "Repository couldn't be created now: ingestion timed out",
            cause=f"Ingestion of {payload.url} exceeded {settings.ingest_timeout:g} seconds",
        )
    except asyncio.CancelledError:
        cancel_event.set()
        raise

    logger.info("POST /repo/ %s -> %s", payload.url, repo.id)
    return repo


@router.get("/repo/{repo_id}/", response_model=Repository)
def get_repository(repo_id: str, database: Database = Depends(get_database)) -> Repository:
    """
    Retrieve a single repository by its id.

    Raises:
        NotFoundError: 404 if the id is malformed or unknown.
    """
    repo = RepositoryGateway(database).find_by_id(_parse_uuid(repo_id, "Repository"))
    if repo is None:
        raise NotFoundError("Repository not found")
    return repo


@router.get("/repo/{repo_id}/commits/", response_model=list[Commit])
def list_repository_commits(repo_id: str, database: Database = Depends(get_database)) -> list[Commit]:
    repo = RepositoryGateway(database).find_by_id(_parse_uuid(repo_id, "Repository"))
    if repo is None:
        raise NotFoundError("Repository not found")
    return CommitGateway(database).find_by_repository(repo.url)


@router.delete(
    "/repo/{repo_id}/",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_secret_key)],
)
def delete_repository(repo_id: str, database: Database = Depends(get_database)) -> Response:
    """
    Delete a repository together with its commits and branches.

    Requires the ``Authorization`` header to equal ``SECRET_KEY``.
    """
    RepositoryGateway(database).delete(_parse_uuid(repo_id, "Repository"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# BRANCH ENDPOINTS
# ============================================================================


@router.get("/branch/", response_model=list[Branch])
def list_branches(database: Database = Depends(get_database)) -> list[Branch]:
    return _read_all("branches", BranchGateway(database).find_all)


@router.get("/branch/repo/{repo_id}/", response_model=list[Branch])
def list_repository_branches(repo_id: str, database: Database = Depends(get_database)) -> list[Branch]:
    """
    Retrieve the branches of one repository.

    An unknown or malformed repository id yields an empty list.
    """
    try:
        repo_uuid = UUID(repo_id)
    except ValueError:
        return []
    return BranchGateway(database).find_by_repository(repo_uuid)


@router.get("/branch/{branch_id}/", response_model=Branch)
def get_branch(branch_id: str, database: Database = Depends(get_database)) -> Branch:
    branch = BranchGateway(database).find_by_id(_parse_uuid(branch_id, "Branch"))
    if branch is None:
        raise NotFoundError("Branch not found")
    return branch


@router.delete(
    "/branch/{branch_id}/",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_secret_key)],
)
def delete_branch(branch_id: str, database: Database = Depends(get_database)) -> Response:
    BranchGateway(database).delete(_parse_uuid(branch_id, "Branch"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# COMMIT & EMAIL ENDPOINTS
# ============================================================================


@router.get("/commit/", response_model=list[Commit])
def list_commits(database: Database = Depends(get_database)) -> list[Commit]:
    return _read_all("commits", CommitGateway(database).find_all)


@router.get("/commit/{commit_hash}/", response_model=Commit)
def get_commit(commit_hash: str, database: Database = Depends(get_database)) -> Commit:
    commit = CommitGateway(database).find_by_hash(commit_hash)
    if commit is None:
        raise NotFoundError("Commit not found")
    return commit


@router.get("/email/", response_model=list[Email])
def list_emails(database: Database = Depends(get_database)) -> list[Email]:
    return _read_all("emails", EmailGateway(database).find_all)
