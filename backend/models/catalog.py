"""Data models for the repository catalog.

Repository, Commit, Email and Branch mirror the rows of the relational store
one-to-one and double as API response bodies.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Repository(BaseModel):
    """A hosted repository onboarded into the catalog."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    url: str  # canonical "owner/name"
    created_at: datetime
    updated_at: datetime
    uploader_ip: str


class RepositoryCreate(BaseModel):
    """Request body for onboarding a repository."""

    url: str = Field(min_length=1)
    branch: str = Field(min_length=1)


class Commit(BaseModel):
    """A commit of an onboarded repository. Immutable once stored."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    hash: str
    tree: str | None = None  # first-parent hash, None for root commits
    text: str
    date: datetime
    author_email: str
    author_name: str
    committer_email: str
    committer_name: str
    repository_url: str


class Email(BaseModel):
    """A contributor identity and its MD5 hash."""

    model_config = ConfigDict(from_attributes=True)

    email: str
    hash_md5: str


class Branch(BaseModel):
    """A branch pointer of an onboarded repository."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    repository_id: UUID
    head: str


class BranchCreate(BaseModel):
    """Fields needed to persist a new branch pointer."""

    name: str
    repository_id: UUID
    head: str


class ErrorResponse(BaseModel):
    """Uniform error body returned by every endpoint."""

    detail: str
