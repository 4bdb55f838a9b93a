"""Error taxonomy for the commit catalog.

Every failure raised by the ingestion pipeline or the persistence gateway is
an ``AppError``. Each error carries a discriminant (``kind``) that the HTTP
layer maps to a status code, plus a human-readable message rendered as the
``{"detail": ...}`` body.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Discriminant shared by every catalog error."""

    NOT_FOUND = "NotFound"
    ALREADY_EXISTS = "AlreadyExists"
    AUTHORIZATION = "AuthorizationError"
    GIT = "GitError"
    DB = "DbError"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_EXISTS: 403,
    ErrorKind.AUTHORIZATION: 401,
    ErrorKind.GIT: 400,
    ErrorKind.DB: 500,
}

_DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NOT_FOUND: "The requested item was not found",
}


class AppError(Exception):
    """Base exception for all catalog errors."""

    kind: ErrorKind = ErrorKind.DB

    def __init__(self, message: str | None = None, cause: str | None = None):
        self.message = message or _DEFAULT_MESSAGES.get(
            self.kind, "An unexpected error has occurred"
        )
        self.cause = cause
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def __str__(self):
        if self.cause:
            return f"[{self.kind.value}] {self.message} ({self.cause})"
        return f"[{self.kind.value}] {self.message}"


class ValidationError(AppError):
    """Raised when a URL does not refer to a hosted repository."""

    kind = ErrorKind.NOT_FOUND


class NotFoundError(AppError):
    """Raised when a lookup by id or hash finds nothing."""

    kind = ErrorKind.NOT_FOUND


class ConflictError(AppError):
    """Raised when a repository with the same canonical URL already exists."""

    kind = ErrorKind.ALREADY_EXISTS


class AuthorizationError(AppError):
    """Raised when an upload cannot be attributed or a credential is wrong."""

    kind = ErrorKind.AUTHORIZATION


class ExternalSourceError(AppError):
    """Raised when the remote version-control host cannot provide a history."""

    kind = ErrorKind.GIT


class CloneFailedError(ExternalSourceError):
    """The clone step failed (network, auth, repository not found)."""


class CloneTimeoutError(ExternalSourceError):
    """The clone step exceeded its time budget and was killed."""


class BranchNotFoundError(ExternalSourceError):
    """The requested branch does not exist in the cloned repository."""


class MalformedCommitError(ExternalSourceError):
    """A commit in the history carries unusable metadata."""


class ExtractionCancelledError(ExternalSourceError):
    """The caller cancelled the extraction before it completed."""


class StorageError(AppError):
    """Raised when a persistence operation fails."""

    kind = ErrorKind.DB


class DuplicateRecordError(StorageError):
    """A unique or primary key constraint rejected an insert."""

    kind = ErrorKind.ALREADY_EXISTS
