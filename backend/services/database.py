"""Relational store bootstrap: schema definition and pooled engine.

The schema mirrors the catalog's four tables. Commits and branches cascade
with their repository so removing a repository removes everything it owns.
"""

import logging

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    MetaData,
    String,
    Table,
    Text,
    Uuid,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

metadata = MetaData()

repository_table = Table(
    "repository",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("url", String(255), nullable=False, unique=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("uploader_ip", String(64), nullable=False),
)

email_table = Table(
    "email",
    metadata,
    Column("email", String(320), primary_key=True),
    Column("hash_md5", String(32), nullable=False),
)

commit_table = Table(
    "commit",
    metadata,
    Column("hash", String(64), primary_key=True),
    Column("tree", String(64), nullable=True),
    Column("text", Text, nullable=False),
    Column("date", DateTime(timezone=True), nullable=False),
    Column("author_email", String(320), ForeignKey("email.email"), nullable=False),
    Column("author_name", String(255), nullable=False),
    Column("committer_email", String(320), ForeignKey("email.email"), nullable=False),
    Column("committer_name", String(255), nullable=False),
    Column(
        "repository_url",
        String(255),
        ForeignKey("repository.url", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
)

branch_table = Table(
    "branch",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("name", String(255), nullable=False),
    Column(
        "repository_id",
        Uuid,
        ForeignKey("repository.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("head", String(64), ForeignKey("commit.hash", ondelete="CASCADE"), nullable=False),
)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database_engine(url: str, pool_size: int = 5) -> Engine:
    """Create a pooled SQLAlchemy engine for ``url``.

    Args:
        url: SQLAlchemy database URL.
        pool_size: Connection pool size (ignored for SQLite).

    Returns:
        Engine: Engine with pre-ping enabled.
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(url, pool_size=pool_size, pool_pre_ping=True)


class Database:
    """Owner of the engine (connection pool) shared by all gateways."""

    def __init__(self, url: str, pool_size: int = 5, engine: Engine | None = None):
        self.url = url
        self.engine = engine or create_database_engine(url, pool_size=pool_size)

    def create_schema(self) -> None:
        """Create any missing catalog tables."""
        metadata.create_all(self.engine)
        logger.info("Catalog schema ready on %s", self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()
