"""Persistence gateway: per-entity parameterized queries.

Each gateway executes SQLAlchemy Core statements over the shared engine and
converts rows into catalog models. Gateways hold no business logic; they
translate driver failures into the catalog error taxonomy:

- any ``SQLAlchemyError`` becomes ``StorageError``
- a unique or primary key ``IntegrityError`` becomes ``DuplicateRecordError``;
  a foreign key violation stays a plain ``StorageError``
- deleting a missing row raises ``NotFoundError``
"""

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.catalog import Branch, BranchCreate, Commit, Email, Repository
from services.database import Database, branch_table, commit_table, email_table, repository_table
from services.errors import DuplicateRecordError, NotFoundError, StorageError
from utils.identity_hash import hash_email

logger = logging.getLogger(__name__)

FOREIGN_KEY_VIOLATION = "23503"
SQLITE_CONSTRAINT_FOREIGNKEY = 787


def is_foreign_key_violation(error: BaseException) -> bool:
    """Tell a foreign key violation from a unique or primary key one.

    Uses the SQLSTATE where the driver exposes it (psycopg, asyncpg), then the
    SQLite extended result code, and the message text only as a last resort.
    """
    sqlstate = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
    if sqlstate:
        return sqlstate == FOREIGN_KEY_VIOLATION
    errorcode = getattr(error, "sqlite_errorcode", None)
    if errorcode is not None:
        return errorcode == SQLITE_CONSTRAINT_FOREIGNKEY
    return "foreign key" in str(error).lower()


class _Gateway:
    """Shared connection and error handling for entity gateways."""

    entity = "record"

    def __init__(self, database: Database | Engine):
        self.engine = database.engine if isinstance(database, Database) else database

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StorageError(f"Error reading {self.entity} from database", cause=str(exc)) from exc

    @contextmanager
    def _transaction(self, action: str) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            if is_foreign_key_violation(exc.orig):
                raise StorageError(f"Error trying to {action} {self.entity}", cause=str(exc.orig)) from exc
            raise DuplicateRecordError(f"{self.entity.capitalize()} already exists", cause=str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            raise StorageError(f"Error trying to {action} {self.entity}", cause=str(exc)) from exc


class RepositoryGateway(_Gateway):
    entity = "repository"

    def find_all(self) -> list[Repository]:
        """Return all repositories, most recently updated first."""
        stmt = select(repository_table).order_by(repository_table.c.updated_at.desc())
        with self._connect() as conn:
            return [Repository.model_validate(row) for row in conn.execute(stmt)]

    def find_by_id(self, repo_id: UUID) -> Repository | None:
        stmt = select(repository_table).where(repository_table.c.id == repo_id)
        with self._connect() as conn:
            row = conn.execute(stmt).first()
        return Repository.model_validate(row) if row is not None else None

    def find_by_url(self, url: str) -> Repository | None:
        """Look up a repository by its canonical ``owner/name`` id."""
        stmt = select(repository_table).where(repository_table.c.url == url)
        with self._connect() as conn:
            row = conn.execute(stmt).first()
        return Repository.model_validate(row) if row is not None else None

    def insert(self, url: str, uploader_ip: str) -> Repository:
        """Create a repository row with a fresh UUID4.

        Args:
            url: Canonical ``owner/name`` id.
            uploader_ip: Network address of the uploader.

        Returns:
            Repository: The persisted row.

        Raises:
            DuplicateRecordError: If the URL is already registered.
            StorageError: On any other store failure.
        """
        now = datetime.now(timezone.utc)
        stmt = (
            insert(repository_table)
            .values(id=uuid.uuid4(), url=url, created_at=now, updated_at=now, uploader_ip=uploader_ip)
            .returning(*repository_table.c)
        )
        with self._transaction("create") as conn:
            row = conn.execute(stmt).one()
        return Repository.model_validate(row)

    def delete(self, repo_id: UUID) -> Repository:
        """Delete a repository; commits and branches cascade."""
        with self._transaction("delete") as conn:
            self._delete_owned(conn, repo_id)
            row = conn.execute(
                delete(repository_table).where(repository_table.c.id == repo_id).returning(*repository_table.c)
            ).first()
        if row is None:
            raise NotFoundError("Repository not found")
        return Repository.model_validate(row)

    @staticmethod
    def _delete_owned(conn: Connection, repo_id: UUID) -> None:
        # Explicit so the cascade holds on stores without enforced foreign keys.
        url = conn.execute(select(repository_table.c.url).where(repository_table.c.id == repo_id)).scalar()
        conn.execute(delete(branch_table).where(branch_table.c.repository_id == repo_id))
        if url is not None:
            conn.execute(delete(commit_table).where(commit_table.c.repository_url == url))


class CommitGateway(_Gateway):
    entity = "commit"

    def find_all(self) -> list[Commit]:
        """Return all commits, newest first."""
        stmt = select(commit_table).order_by(commit_table.c.date.desc())
        with self._connect() as conn:
            return [Commit.model_validate(row) for row in conn.execute(stmt)]

    def find_by_hash(self, commit_hash: str) -> Commit | None:
        stmt = select(commit_table).where(commit_table.c.hash == commit_hash)
        with self._connect() as conn:
            row = conn.execute(stmt).first()
        return Commit.model_validate(row) if row is not None else None

    def find_by_repository(self, repository_url: str) -> list[Commit]:
        stmt = (
            select(commit_table)
            .where(commit_table.c.repository_url == repository_url)
            .order_by(commit_table.c.date.desc())
        )
        with self._connect() as conn:
            return [Commit.model_validate(row) for row in conn.execute(stmt)]

    def bulk_insert(self, commits: Sequence[Commit]) -> list[Commit]:
        """Insert a batch of commits atomically.

        All rows go through one parameterized ``executemany`` inside a single
        transaction: afterwards either every commit is visible or none is.

        Args:
            commits: Commits to persist.

        Returns:
            list[Commit]: The persisted commits, in input order.

        Raises:
            DuplicateRecordError: If any hash already exists.
            StorageError: On any other store failure.
        """
        if not commits:
            return []
        rows = [commit.model_dump() for commit in commits]
        with self._transaction("create") as conn:
            conn.execute(insert(commit_table), rows)
        logger.debug("Inserted %d commits", len(rows))
        return list(commits)

    def delete_by_repository(self, repository_url: str) -> int:
        """Delete every commit of a repository and return how many went."""
        with self._transaction("delete") as conn:
            commit_hashes = select(commit_table.c.hash).where(commit_table.c.repository_url == repository_url)
            conn.execute(delete(branch_table).where(branch_table.c.head.in_(commit_hashes)))
            result = conn.execute(delete(commit_table).where(commit_table.c.repository_url == repository_url))
            removed = result.rowcount
        return removed


class EmailGateway(_Gateway):
    entity = "email"

    def find_all(self) -> list[Email]:
        with self._connect() as conn:
            return [Email.model_validate(row) for row in conn.execute(select(email_table))]

    def find_by_email(self, email: str) -> Email | None:
        stmt = select(email_table).where(email_table.c.email == email)
        with self._connect() as conn:
            row = conn.execute(stmt).first()
        return Email.model_validate(row) if row is not None else None

    def insert(self, email: str) -> Email:
        """Register a contributor identity.

        Raises:
            DuplicateRecordError: If the address is already registered.
            StorageError: On any other store failure.
        """
        if self.find_by_email(email) is not None:
            raise DuplicateRecordError("Email already exists")
        record = Email(email=email, hash_md5=hash_email(email))
        with self._transaction("create") as conn:
            conn.execute(insert(email_table).values(**record.model_dump()))
        return record


class BranchGateway(_Gateway):
    entity = "branch"

    def find_all(self) -> list[Branch]:
        with self._connect() as conn:
            return [Branch.model_validate(row) for row in conn.execute(select(branch_table))]

    def find_by_id(self, branch_id: UUID) -> Branch | None:
        stmt = select(branch_table).where(branch_table.c.id == branch_id)
        with self._connect() as conn:
            row = conn.execute(stmt).first()
        return Branch.model_validate(row) if row is not None else None

    def find_by_repository(self, repo_id: UUID) -> list[Branch]:
        stmt = select(branch_table).where(branch_table.c.repository_id == repo_id)
        with self._connect() as conn:
            return [Branch.model_validate(row) for row in conn.execute(stmt)]

    def insert(self, data: BranchCreate) -> Branch:
        stmt = (
            insert(branch_table)
            .values(id=uuid.uuid4(), **data.model_dump())
            .returning(*branch_table.c)
        )
        with self._transaction("create") as conn:
            row = conn.execute(stmt).one()
        return Branch.model_validate(row)

    def delete(self, branch_id: UUID) -> Branch:
        stmt = delete(branch_table).where(branch_table.c.id == branch_id).returning(*branch_table.c)
        with self._transaction("delete") as conn:
            row = conn.execute(stmt).first()
        if row is None:
            raise NotFoundError("Branch not found")
        return Branch.model_validate(row)
