"""Repository ingestion coordinator.

Onboarding a repository is a saga: the store offers no transaction spanning
the repository row, the contributor identities, the commits and the branch
pointer, so every fatal failure after the repository row exists is followed
by a compensating delete. Compensation covers every step after row creation:

    Start -> Resolved -> Created -> Extracted -> IdentitiesRegistered
          -> CommitsPersisted -> BranchPersisted -> Done

``Rejected`` is reachable before the row exists (no cleanup needed);
``RolledBack`` is reachable from every state between ``Created`` and
``BranchPersisted``. Contributor identities are shared across repositories and
are never rolled back.
"""

import logging
import threading
from collections.abc import Iterable
from dataclasses import asdict
from enum import Enum

from models.catalog import BranchCreate, Commit, Repository
from services.database import Database
from services.errors import (
    AppError,
    AuthorizationError,
    ConflictError,
    DuplicateRecordError,
    ExternalSourceError,
    StorageError,
)
from services.gateway import BranchGateway, CommitGateway, EmailGateway, RepositoryGateway
from utils.git_history import CommitRecord, HistoryExtractor, raise_if_cancelled
from utils.remote_resolver import resolve

logger = logging.getLogger(__name__)


class IngestionStage(str, Enum):
    START = "Start"
    RESOLVED = "Resolved"
    CREATED = "Created"
    EXTRACTED = "Extracted"
    IDENTITIES_REGISTERED = "IdentitiesRegistered"
    COMMITS_PERSISTED = "CommitsPersisted"
    BRANCH_PERSISTED = "BranchPersisted"
    DONE = "Done"
    REJECTED = "Rejected"
    ROLLED_BACK = "RolledBack"


def distinct_emails(records: Iterable[CommitRecord]) -> list[str]:
    """Return each author/committer address once, in first-seen order."""
    seen: dict[str, None] = {}
    for record in records:
        seen.setdefault(record.author_email, None)
        seen.setdefault(record.committer_email, None)
    return list(seen)


class IngestionCoordinator:
    """Orchestrates one end-to-end onboarding per ``ingest`` call."""

    def __init__(self, database: Database, extractor: HistoryExtractor):
        self.repositories = RepositoryGateway(database)
        self.commits = CommitGateway(database)
        self.emails = EmailGateway(database)
        self.branches = BranchGateway(database)
        self.extractor = extractor

    def ingest(
        self,
        url: str,
        branch: str,
        uploader_addr: str | None,
        cancel_event: threading.Event | None = None,
    ) -> Repository:
        """Onboard the repository at ``url`` using the history of ``branch``.

        Args:
            url: Repository URL as supplied by the user.
            branch: Branch whose history is imported.
            uploader_addr: Network address of the uploader.
            cancel_event: Optional event; setting it aborts the extraction.

        Returns:
            Repository: The persisted repository.

        Raises:
            ValidationError: If ``url`` is not a hosted repository.
            ConflictError: If the repository is already in the catalog.
            AuthorizationError: If ``uploader_addr`` is missing.
            ExternalSourceError: If the history cannot be extracted.
            StorageError: If persisting identities, commits or the branch fails.
        """
        self._log_stage(IngestionStage.START, url, branch=branch)
        canonical_id = resolve(url)
        self._log_stage(IngestionStage.RESOLVED, canonical_id)

        if self.repositories.find_by_url(canonical_id) is not None:
            self._log_stage(IngestionStage.REJECTED, canonical_id)
            raise ConflictError("Repository already exists")

        if not uploader_addr:
            self._log_stage(IngestionStage.REJECTED, canonical_id)
            raise AuthorizationError("Failed to fetch uploader ip")

        try:
            repo = self.repositories.insert(canonical_id, uploader_addr)
        except DuplicateRecordError as exc:
            # Lost the race against a concurrent ingestion of the same URL.
            self._log_stage(IngestionStage.REJECTED, canonical_id)
            raise ConflictError("Repository already exists", cause=exc.cause) from exc
        self._log_stage(IngestionStage.CREATED, canonical_id)

        try:
            self._populate(repo, branch, cancel_event)
        except BaseException as exc:
            self._compensate(repo, exc)
            raise

        self._log_stage(IngestionStage.DONE, canonical_id)
        return repo

    def _populate(self, repo: Repository, branch: str, cancel_event: threading.Event | None) -> None:
        try:
            records = self.extractor.extract(repo.url, branch, cancel_event=cancel_event)
        except ExternalSourceError as exc:
            logger.warning("Extraction of %s@%s failed: %s", repo.url, branch, exc)
            raise
        self._log_stage(IngestionStage.EXTRACTED, repo.url, commits=len(records))

        registered = self.register_emails(distinct_emails(records))
        self._log_stage(IngestionStage.IDENTITIES_REGISTERED, repo.url, emails=registered)
        raise_if_cancelled(cancel_event, repo.url)

        commits = [Commit(repository_url=repo.url, **asdict(record)) for record in records]
        try:
            persisted = self.commits.bulk_insert(commits)
        except DuplicateRecordError as exc:
            # Hashes already stored by another repository (a fork or mirror).
            raise StorageError("Error creating the commits of the repository", cause=exc.cause) from exc
        if not persisted:
            raise StorageError(
                "Error creating the commits of the repository",
                cause=f"No commits persisted for {repo.url}@{branch}",
            )
        self._log_stage(IngestionStage.COMMITS_PERSISTED, repo.url, commits=len(persisted))
        raise_if_cancelled(cancel_event, repo.url)

        self.branches.insert(BranchCreate(name=branch, repository_id=repo.id, head=persisted[0].hash))
        self._log_stage(IngestionStage.BRANCH_PERSISTED, repo.url, head=persisted[0].hash)
        raise_if_cancelled(cancel_event, repo.url)

    def register_emails(self, emails: Iterable[str]) -> int:
        """Register contributor identities, treating duplicates as success.

        Args:
            emails: Distinct email addresses.

        Returns:
            int: Number of newly created identities.

        Raises:
            StorageError: On any failure other than "already exists".
        """
        created = 0
        for email in emails:
            try:
                self.emails.insert(email)
            except DuplicateRecordError:
                continue
            created += 1
        return created

    def _compensate(self, repo: Repository, error: BaseException) -> None:
        logger.warning("Rolling back ingestion of %s after failure: %s", repo.url, error)
        try:
            removed = self.commits.delete_by_repository(repo.url)
            self.repositories.delete(repo.id)
        except AppError as exc:
            logger.error(
                "Consistency warning: compensation for %s (id=%s) failed: %s",
                repo.url,
                repo.id,
                exc,
            )
            return
        self._log_stage(IngestionStage.ROLLED_BACK, repo.url, commits_removed=removed)

    @staticmethod
    def _log_stage(stage: IngestionStage, canonical_id: str, **details) -> None:
        if details:
            extra = " ".join(f"{key}={value}" for key, value in details.items())
            logger.info("Ingestion %s: %s %s", canonical_id, stage.value, extra)
        else:
            logger.info("Ingestion %s: %s", canonical_id, stage.value)
