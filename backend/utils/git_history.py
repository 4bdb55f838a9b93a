"""Git history extraction for repository ingestion.

This module clones a hosted repository into a transient workspace, walks the
commit graph reachable from one branch and returns a normalized commit record
for every revision. The workspace lives only for the duration of one
extraction and is removed on every exit path.
"""

import logging
import re
import shutil
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from git import GitCommandError, Repo
from git.cmd import Git

from services.errors import (
    BranchNotFoundError,
    CloneFailedError,
    CloneTimeoutError,
    ExtractionCancelledError,
    MalformedCommitError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_CANONICAL_ID_RE = re.compile(r"^[a-zA-Z0-9-]+/[a-zA-Z0-9-]+$")
_CLONE_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class CommitRecord:
    """Normalized commit as extracted from the version-control history."""

    hash: str
    tree: str | None  # first parent, None for a root commit
    text: str
    date: datetime
    author_email: str
    author_name: str
    committer_email: str
    committer_name: str


def workspace_path(workspace_root: Path, canonical_id: str) -> Path:
    """Return the transient workspace path for a canonical ``owner/name`` id.

    Raises:
        ValidationError: If ``canonical_id`` is not a single owner/name pair.
    """
    if not _CANONICAL_ID_RE.match(canonical_id or ""):
        raise ValidationError("Repository not found", cause=f"Invalid canonical id: {canonical_id!r}")
    owner, name = canonical_id.split("/")
    return Path(workspace_root) / owner / name


def _remove_tree(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)
    if path.exists():
        logger.warning("Workspace could not be fully removed: %s", path)


@contextmanager
def transient_workspace(workspace_root: Path, canonical_id: str) -> Iterator[Path]:
    """Reserve the workspace for ``canonical_id`` and delete it afterwards.

    Any leftover directory from a crashed attempt is removed before the
    workspace is handed out. The directory itself is not created; the clone
    step creates it.
    """
    path = workspace_path(workspace_root, canonical_id)
    if path.exists():
        logger.warning("Removing stale workspace: %s", path)
        _remove_tree(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        _remove_tree(path)
        logger.debug("Workspace released: %s", path)


def raise_if_cancelled(cancel_event: threading.Event | None, canonical_id: str) -> None:
    """Raise ExtractionCancelledError once ``cancel_event`` is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise ExtractionCancelledError(
            "Repository couldn't be created now: ingestion cancelled",
            cause=f"Ingestion of {canonical_id} was cancelled",
        )


def _normalize_message(message: str | bytes) -> str:
    """Normalize line endings and drop the single trailing newline."""
    if isinstance(message, bytes):
        message = message.decode("utf-8", errors="replace")
    lines = message.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return "\n".join(line.removesuffix("\r") for line in lines)


def _identity(actor, role: str, commit_hash: str) -> tuple[str, str]:
    email = getattr(actor, "email", None)
    name = getattr(actor, "name", None)
    if not isinstance(email, str) or not email.strip():
        raise MalformedCommitError(
            "Repository couldn't be created now: malformed commit metadata",
            cause=f"Commit {commit_hash} has no {role} email",
        )
    if not isinstance(name, str):
        raise MalformedCommitError(
            "Repository couldn't be created now: malformed commit metadata",
            cause=f"Commit {commit_hash} has no {role} name",
        )
    return email, name


def commit_to_record(commit) -> CommitRecord:
    """Convert a GitPython commit into a CommitRecord.

    Args:
        commit: ``git.Commit`` object.

    Returns:
        CommitRecord: Normalized record.

    Raises:
        MalformedCommitError: If the commit metadata cannot be decoded.
    """
    commit_hash = commit.hexsha
    try:
        parents = commit.parents
        author_email, author_name = _identity(commit.author, "author", commit_hash)
        committer_email, committer_name = _identity(commit.committer, "committer", commit_hash)
        text = _normalize_message(commit.message)
        date = commit.committed_datetime
    except (ValueError, TypeError, AttributeError) as exc:
        raise MalformedCommitError(
            "Repository couldn't be created now: malformed commit metadata",
            cause=f"Commit {commit_hash}: {exc}",
        ) from exc

    return CommitRecord(
        hash=commit_hash,
        tree=parents[0].hexsha if parents else None,
        text=text,
        date=date,
        author_email=author_email,
        author_name=author_name,
        committer_email=committer_email,
        committer_name=committer_name,
    )


class HistoryExtractor:
    """Clone a hosted repository and extract the history of one branch."""

    def __init__(
        self,
        workspace_root: Path,
        remote_base_url: str = "https://github.com",
        clone_timeout: float | None = 300.0,
    ):
        self.workspace_root = Path(workspace_root)
        self.remote_base_url = remote_base_url.rstrip("/")
        self.clone_timeout = clone_timeout

    def clone_url(self, canonical_id: str) -> str:
        return f"{self.remote_base_url}/{canonical_id}"

    def extract(
        self,
        canonical_id: str,
        branch_name: str,
        cancel_event: threading.Event | None = None,
    ) -> list[CommitRecord]:
        """Extract every commit reachable from ``branch_name``.

        Commits come back in the walker's native order (newest first), each
        exactly once. The first record is always the branch tip.

        Args:
            canonical_id: Canonical ``owner/name`` id.
            branch_name: Branch to walk.
            cancel_event: Optional event; when set the extraction aborts.

        Returns:
            list[CommitRecord]: The full history of the branch.

        Raises:
            CloneFailedError: If the repository cannot be cloned.
            CloneTimeoutError: If the clone exceeds ``clone_timeout``.
            BranchNotFoundError: If the branch does not exist.
            MalformedCommitError: If any commit cannot be decoded.
            ExtractionCancelledError: If ``cancel_event`` gets set.
        """
        with transient_workspace(self.workspace_root, canonical_id) as path:
            raise_if_cancelled(cancel_event, canonical_id)
            self._clone(canonical_id, path, cancel_event)
            raise_if_cancelled(cancel_event, canonical_id)

            with Repo(str(path)) as repo:
                head = self._checkout_branch(repo, branch_name, canonical_id)
                records: list[CommitRecord] = []
                for commit in repo.iter_commits(head):
                    raise_if_cancelled(cancel_event, canonical_id)
                    records.append(commit_to_record(commit))

        logger.info("Extracted %d commits from %s@%s", len(records), canonical_id, branch_name)
        return records

    def _clone(self, canonical_id: str, path: Path, cancel_event: threading.Event | None = None) -> None:
        """Run ``git clone --bare`` and watch it until it exits.

        The child process is killed as soon as ``cancel_event`` is set or
        ``clone_timeout`` elapses; a partial clone is left for the workspace
        cleanup to remove.
        """
        url = self.clone_url(canonical_id)
        logger.info("Cloning %s into %s", url, path)
        deadline = time.monotonic() + self.clone_timeout if self.clone_timeout is not None else None
        process = Git(str(path.parent)).clone("--bare", "--", url, str(path), as_process=True)

        while process.poll() is None:
            if cancel_event is not None and cancel_event.is_set():
                self._kill(process)
                logger.info("Clone of %s cancelled", canonical_id)
                raise_if_cancelled(cancel_event, canonical_id)
            if deadline is not None and time.monotonic() >= deadline:
                self._kill(process)
                raise CloneTimeoutError(
                    "Repository couldn't be created now: clone timed out",
                    cause=f"Clone of {canonical_id} did not finish in {self.clone_timeout:g} seconds",
                )
            time.sleep(_CLONE_POLL_INTERVAL)

        try:
            process.wait()
        except GitCommandError as exc:
            raise CloneFailedError(
                "Repository couldn't be created now: clone failed",
                cause=f"Failed to clone repository {canonical_id}: {exc}",
            ) from exc

    @staticmethod
    def _kill(process) -> None:
        process.proc.kill()
        process.proc.wait()

    @staticmethod
    def _checkout_branch(repo: Repo, branch_name: str, canonical_id: str):
        # A bare clone maps every remote branch to a local head.
        head = next((h for h in repo.heads if h.name == branch_name), None)
        if head is None:
            raise BranchNotFoundError(
                f"Repository couldn't be created now: branch '{branch_name}' not found",
                cause=f"{canonical_id} has no branch named {branch_name!r}",
            )
        repo.head.reference = head
        return head
