"""Tests for the HTTP API.

These tests drive the FastAPI app through TestClient with the store and the
history extractor pointed at a temporary SQLite file and a local fake remote.
"""

import threading
import uuid
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_coordinator, get_database, get_history_extractor
from config import Settings, get_settings
from main import app
from services.errors import StorageError
from services.gateway import RepositoryGateway

SECRET = "s3cret"


@pytest.fixture
def client(database, extractor, tmp_path):
    settings = Settings(secret_key=SECRET, workspace_root=tmp_path / "workspace", ingest_timeout=30.0)
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_history_extractor] = lambda: extractor
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def onboarded(client, make_remote_repo, widgets_history):
    """POST a three-commit repository and return (response json, hashes)."""
    _, hashes = make_remote_repo("acme/widgets", widgets_history)
    response = client.post("/repo/", json={"url": "https://github.com/acme/widgets", "branch": "main"})
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.text}"
    return response.json(), hashes


def test_root_and_health(client):
    """Test that the heartbeat endpoints respond."""
    assert client.get("/").json() == {"status": "ok", "app": "Commit Catalog Backend"}
    assert client.get("/health").json() == {"status": "healthy"}


def test_post_repo_onboards_repository(client, onboarded):
    """Test that POST /repo/ stores the repository, its commits and branch."""
    repo, hashes = onboarded

    assert repo["url"] == "acme/widgets"
    assert repo["uploader_ip"] == "testclient"
    uuid.UUID(repo["id"])

    listed = client.get("/repo/").json()
    assert [r["id"] for r in listed] == [repo["id"]]
    assert client.get(f"/repo/{repo['id']}/").json()["url"] == "acme/widgets"

    commits = client.get(f"/repo/{repo['id']}/commits/").json()
    assert {c["hash"] for c in commits} == set(hashes)
    assert len(client.get("/commit/").json()) == 3

    emails = client.get("/email/").json()
    assert sorted(e["email"] for e in emails) == ["alice@example.com", "bob@example.com"]

    branches = client.get(f"/branch/repo/{repo['id']}/").json()
    assert len(branches) == 1
    assert branches[0]["name"] == "main"
    assert branches[0]["head"] == hashes[-1]
    assert client.get("/branch/").json() == branches
    assert client.get(f"/branch/{branches[0]['id']}/").json() == branches[0]


def test_get_commit_by_hash(client, onboarded):
    """Test that a commit is reachable by hash and unknown hashes are 404."""
    _, hashes = onboarded

    response = client.get(f"/commit/{hashes[0]}/")
    assert response.status_code == 200
    assert response.json()["tree"] is None
    assert response.json()["repository_url"] == "acme/widgets"

    response = client.get(f"/commit/{'0' * 40}/")
    assert response.status_code == 404
    assert response.json() == {"detail": "Commit not found"}


def test_post_repo_rejects_unhosted_url(client):
    """Test that a URL outside the hosting service is reported as not found."""
    response = client.post("/repo/", json={"url": "not-a-url", "branch": "main"})

    assert response.status_code == 404, f"Expected 404, got {response.status_code}: {response.text}"
    assert response.json() == {"detail": "Repository not found"}


def test_post_repo_requires_body_fields(client):
    """Test that an empty branch name fails request validation."""
    response = client.post("/repo/", json={"url": "https://github.com/acme/widgets", "branch": ""})

    assert response.status_code == 422


def test_post_repo_duplicate_is_forbidden(client, onboarded):
    """Test that onboarding the same repository twice returns 403."""
    response = client.post("/repo/", json={"url": "github.com/acme/widgets", "branch": "main"})

    assert response.status_code == 403, f"Expected 403, got {response.status_code}: {response.text}"
    assert response.json() == {"detail": "Repository already exists"}
    assert len(client.get("/repo/").json()) == 1


def test_post_repo_missing_branch_leaves_no_row(client, make_remote_repo, widgets_history):
    """Test that a missing branch is a git error and nothing is persisted."""
    make_remote_repo("acme/widgets", widgets_history)

    response = client.post(
        "/repo/",
        json={"url": "https://github.com/acme/widgets", "branch": "nonexistent-branch"},
    )

    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.text}"
    assert "nonexistent-branch" in response.json()["detail"]
    assert client.get("/repo/").json() == []
    assert client.get("/commit/").json() == []


def test_post_repo_timeout_cancels_ingestion(client):
    """Test that an ingestion exceeding INGEST_TIMEOUT is cancelled and reported."""
    cancelled = threading.Event()

    class SlowCoordinator:
        def ingest(self, url, branch, uploader_addr, cancel_event=None):
            if cancel_event.wait(5):
                cancelled.set()
            raise AssertionError("ingestion should have been cancelled")

    app.dependency_overrides[get_coordinator] = lambda: SlowCoordinator()
    app.dependency_overrides[get_settings] = lambda: Settings(secret_key=SECRET, ingest_timeout=0.05)

    response = client.post("/repo/", json={"url": "https://github.com/acme/widgets", "branch": "main"})

    assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.text}"
    assert "timed out" in response.json()["detail"]
    assert cancelled.wait(5)


@pytest.mark.parametrize("path", ["/repo/not-a-uuid/", "/repo/not-a-uuid/commits/", f"/repo/{uuid.uuid4()}/"])
def test_get_unknown_repository(client, path):
    """Test that malformed and unknown repository ids return 404."""
    response = client.get(path)

    assert response.status_code == 404
    assert response.json() == {"detail": "Repository not found"}


def test_branch_lookup_edge_cases(client):
    """Test that unknown branches are 404 and unknown repositories list nothing."""
    assert client.get("/branch/repo/not-a-uuid/").json() == []
    assert client.get(f"/branch/repo/{uuid.uuid4()}/").json() == []
    assert client.get("/branch/not-a-uuid/").status_code == 404
    assert client.get(f"/branch/{uuid.uuid4()}/").json() == {"detail": "Branch not found"}


def test_delete_repository_requires_authorization(client, onboarded):
    """Test the Authorization guard on DELETE /repo/{id}/."""
    repo, _ = onboarded

    missing = client.delete(f"/repo/{repo['id']}/")
    assert missing.status_code == 400
    assert missing.json() == {"detail": "Authorization header is required"}

    wrong = client.delete(f"/repo/{repo['id']}/", headers={"Authorization": "guess"})
    assert wrong.status_code == 401
    assert wrong.json() == {"detail": "You must provide a valid Authorization"}

    assert len(client.get("/repo/").json()) == 1


def test_delete_repository_cascades(client, onboarded):
    """Test that deleting a repository removes its commits and branches."""
    repo, _ = onboarded

    response = client.delete(f"/repo/{repo['id']}/", headers={"Authorization": SECRET})

    assert response.status_code == 204
    assert client.get("/repo/").json() == []
    assert client.get("/commit/").json() == []
    assert client.get("/branch/").json() == []
    assert len(client.get("/email/").json()) == 2

    again = client.delete(f"/repo/{repo['id']}/", headers={"Authorization": SECRET})
    assert again.status_code == 404


def test_delete_rejected_when_secret_unset(client, onboarded):
    """Test that an unset SECRET_KEY rejects every delete."""
    repo, _ = onboarded
    app.dependency_overrides[get_settings] = lambda: Settings(secret_key="")

    response = client.delete(f"/repo/{repo['id']}/", headers={"Authorization": ""})

    assert response.status_code == 401


def test_delete_branch(client, onboarded):
    """Test that a branch can be deleted on its own."""
    repo, _ = onboarded
    branch_id = client.get(f"/branch/repo/{repo['id']}/").json()[0]["id"]

    response = client.delete(f"/branch/{branch_id}/", headers={"Authorization": SECRET})

    assert response.status_code == 204
    assert client.get("/branch/").json() == []
    assert len(client.get("/commit/").json()) == 3
    assert client.delete(f"/branch/{branch_id}/", headers={"Authorization": SECRET}).status_code == 404


def test_list_failure_is_bad_request(client):
    """Test that a store failure while listing returns 400 with a detail."""
    with patch.object(RepositoryGateway, "find_all", side_effect=StorageError("boom")):
        response = client.get("/repo/")

    assert response.status_code == 400
    assert response.json() == {"detail": "Error trying to read all repositories from database"}


def test_lookup_failure_is_server_error(client):
    """Test that a store failure on a single lookup returns 500."""
    with patch.object(RepositoryGateway, "find_by_id", side_effect=StorageError("Error reading repository from database")):
        response = client.get(f"/repo/{uuid.uuid4()}/")

    assert response.status_code == 500
    assert response.json() == {"detail": "Error reading repository from database"}


def test_cors_preflight_allowed(client):
    """Test that browsers may call the API from another origin."""
    response = client.options(
        "/repo/",
        headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
