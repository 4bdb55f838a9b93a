"""Shared fixtures: local "remote" git repositories and a throwaway store."""

from pathlib import Path

import pytest
from git import Actor, Repo

from services.database import Database
from utils.git_history import HistoryExtractor


@pytest.fixture
def remote_root(tmp_path: Path) -> Path:
    """Directory standing in for the remote host: <root>/<owner>/<repo>."""
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    return tmp_path / "workspace"


@pytest.fixture
def make_remote_repo(remote_root: Path):
    """Create a repository under the fake remote host.

    ``history`` is a list of ``(message, author_name, author_email)`` tuples
    committed in order. Returns the Repo and the commit hashes in creation
    order (the last one is the branch tip).
    """

    def _make(canonical_id: str, history: list[tuple[str, str, str]], branch: str = "main"):
        path = remote_root / canonical_id
        path.mkdir(parents=True)
        repo = Repo.init(path)
        repo.config_writer().set_value("user", "name", "Tester").release()
        repo.config_writer().set_value("user", "email", "tester@example.com").release()

        hashes = []
        for i, (message, name, email) in enumerate(history):
            (path / "file.txt").write_text(f"revision {i}\n", encoding="utf-8")
            repo.index.add(["file.txt"])
            actor = Actor(name, email)
            commit = repo.index.commit(message, author=actor, committer=actor)
            hashes.append(commit.hexsha)
        repo.git.branch("-M", branch)
        return repo, hashes

    return _make


@pytest.fixture
def widgets_history() -> list[tuple[str, str, str]]:
    return [
        ("Initial commit\n", "Alice", "alice@example.com"),
        ("Add widget factory\n", "Bob", "bob@example.com"),
        ("Fix widget size\n", "Alice", "alice@example.com"),
    ]


@pytest.fixture
def extractor(workspace_root: Path, remote_root: Path) -> HistoryExtractor:
    return HistoryExtractor(
        workspace_root=workspace_root,
        remote_base_url=str(remote_root),
        clone_timeout=60.0,
    )


@pytest.fixture
def database(tmp_path: Path) -> Database:
    db = Database(f"sqlite:///{tmp_path / 'catalog.db'}")
    db.create_schema()
    yield db
    db.dispose()
