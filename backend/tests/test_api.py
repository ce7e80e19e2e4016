"""API tests with TestClient: health, connect/disconnect, users, files, content."""

import asyncio
import base64

import pytest
from fastapi.testclient import TestClient

from conftest import png_bytes
from filebox.main import create_app
from filebox.pipeline.worker import JobStatus, run_worker


@pytest.fixture
def client(settings, fake_redis):
    """TestClient for a fresh app. Use as context manager so lifespan runs."""
    app = create_app(settings, redis=fake_redis)
    with TestClient(app) as c:
        yield c


def register(client: TestClient, email: str = "ann@x.com", password: str = "pw") -> dict:
    r = client.post("/api/users", json={"email": email, "password": password})
    assert r.status_code == 201
    return r.json()


def login(client: TestClient, email: str = "ann@x.com", password: str = "pw") -> str:
    r = client.get("/api/connect", auth=(email, password))
    assert r.status_code == 200
    return r.json()["token"]


def user_headers(client: TestClient, email: str = "ann@x.com") -> dict:
    register(client, email)
    return {"X-Token": login(client, email)}


def upload(client: TestClient, headers: dict, **body) -> dict:
    r = client.post("/api/files", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def test_health(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_status_and_stats(client: TestClient) -> None:
    """Status reports both backends; stats counts users and entries."""
    assert client.get("/api/status").json() == {"redis": True, "db": True}
    headers = user_headers(client)
    upload(client, headers, name="docs", type="folder")
    assert client.get("/api/stats").json() == {"users": 1, "files": 1}


def test_register_returns_user(client: TestClient) -> None:
    data = register(client, "bob@x.com")
    assert data["email"] == "bob@x.com"
    assert isinstance(data["id"], int)
    assert "password" not in data and "password_hash" not in data


def test_register_duplicate(client: TestClient) -> None:
    register(client)
    r = client.post("/api/users", json={"email": "ann@x.com", "password": "other"})
    assert r.status_code == 400
    assert r.json() == {"error": "DuplicateEmail", "detail": "Already exist"}


@pytest.mark.parametrize(
    "body,kind",
    [({"password": "pw"}, "MissingEmail"), ({"email": "a@x.com"}, "MissingPassword"), ({}, "MissingEmail")],
)
def test_register_missing_fields(client: TestClient, body: dict, kind: str) -> None:
    r = client.post("/api/users", json=body)
    assert r.status_code == 400
    assert r.json()["error"] == kind


def test_connect_and_me(client: TestClient) -> None:
    """Basic-auth login returns a token that identifies the user."""
    created = register(client)
    token = login(client)
    r = client.get("/api/users/me", headers={"X-Token": token})
    assert r.status_code == 200
    assert r.json() == {"id": created["id"], "email": "ann@x.com"}


def test_connect_token_stored_with_ttl(client: TestClient, fake_redis) -> None:
    register(client)
    token = login(client)
    assert 0 < asyncio.run(fake_redis.ttl(f"session:{token}")) <= 86400


def test_connect_rejects_bad_credentials(client: TestClient) -> None:
    """Wrong password, unknown email and no credentials are all 401."""
    register(client)
    wrong = client.get("/api/connect", auth=("ann@x.com", "nope"))
    unknown = client.get("/api/connect", auth=("ghost@x.com", "pw"))
    missing = client.get("/api/connect")
    assert wrong.status_code == unknown.status_code == missing.status_code == 401
    assert wrong.json() == unknown.json() == {"error": "Unauthorized", "detail": "Unauthorized"}


def test_me_requires_token(client: TestClient) -> None:
    assert client.get("/api/users/me").status_code == 401
    assert client.get("/api/users/me", headers={"X-Token": "bogus"}).status_code == 401


def test_disconnect_revokes_token(client: TestClient) -> None:
    """After disconnect the token no longer resolves."""
    headers = user_headers(client)
    assert client.get("/api/disconnect", headers=headers).status_code == 204
    assert client.get("/api/users/me", headers=headers).status_code == 401
    assert client.get("/api/disconnect", headers=headers).status_code == 401


def test_disconnect_one_session_keeps_others(client: TestClient) -> None:
    register(client)
    first = {"X-Token": login(client)}
    second = {"X-Token": login(client)}
    assert first != second
    client.get("/api/disconnect", headers=first)
    assert client.get("/api/users/me", headers=second).status_code == 200


def test_files_require_token(client: TestClient) -> None:
    assert client.post("/api/files", json={"name": "x", "type": "folder"}).status_code == 401
    assert client.get("/api/files").status_code == 401
    assert client.get("/api/files/1").status_code == 401
    assert client.put("/api/files/1/publish").status_code == 401


def test_upload_folder_and_file(client: TestClient) -> None:
    """A file uploaded into a folder is listed under that folder only."""
    headers = user_headers(client)
    folder = upload(client, headers, name="docs", type="folder")
    assert folder["parent_id"] == 0
    assert folder["is_public"] is False
    entry = upload(client, headers, name="a.txt", type="file", parent_id=folder["id"], data=b64(b"hi"))
    assert entry["parent_id"] == folder["id"]

    inside = client.get("/api/files", params={"parent_id": folder["id"]}, headers=headers)
    assert [e["id"] for e in inside.json()] == [entry["id"]]
    root = client.get("/api/files", headers=headers)
    assert [e["id"] for e in root.json()] == [folder["id"]]
    assert client.get("/api/files", params={"parent_id": 0}, headers=headers).json() == root.json()


@pytest.mark.parametrize(
    "body,kind",
    [
        ({"type": "file", "data": "aGk="}, "MissingName"),
        ({"name": "x", "data": "aGk="}, "MissingType"),
        ({"name": "x", "type": "file"}, "MissingData"),
        ({"name": "x", "type": "file", "data": "!!"}, "InvalidData"),
        ({"name": "x", "type": "file", "data": "aGk=", "parent_id": 77}, "ParentNotFound"),
    ],
)
def test_upload_validation(client: TestClient, body: dict, kind: str) -> None:
    headers = user_headers(client)
    r = client.post("/api/files", json=body, headers=headers)
    assert r.status_code == 400
    assert r.json()["error"] == kind


def test_upload_parent_must_be_folder(client: TestClient) -> None:
    headers = user_headers(client)
    entry = upload(client, headers, name="a.txt", type="file", data=b64(b"hi"))
    r = client.post("/api/files", json={"name": "b", "type": "folder", "parent_id": entry["id"]}, headers=headers)
    assert r.json()["error"] == "ParentNotFolder"


def test_list_pagination(client: TestClient) -> None:
    headers = user_headers(client)
    for i in range(21):
        upload(client, headers, name=f"d{i}", type="folder")
    first = client.get("/api/files", headers=headers).json()
    second = client.get("/api/files", params={"page": 1}, headers=headers).json()
    assert len(first) == 20
    assert [e["name"] for e in second] == ["d20"]


def test_list_unknown_parent_is_empty(client: TestClient) -> None:
    headers = user_headers(client)
    assert client.get("/api/files", params={"parent_id": 999}, headers=headers).json() == []


@pytest.mark.parametrize("parent_id", ["abc", "-4", "1.5"])
def test_list_malformed_parent_is_empty(client: TestClient, parent_id: str) -> None:
    headers = user_headers(client)
    upload(client, headers, name="docs", type="folder")
    r = client.get("/api/files", params={"parent_id": parent_id}, headers=headers)
    assert r.status_code == 200
    assert r.json() == []


def test_data_size_must_be_configured_width(client: TestClient) -> None:
    """size=0 and negative sizes do not fall back to the original content."""
    headers = user_headers(client)
    entry = upload(client, headers, name="a.txt", type="file", data=b64(b"hi"))
    url = f"/api/files/{entry['id']}/data"
    assert client.get(url, headers=headers).content == b"hi"
    for size in (0, -1, 33):
        r = client.get(url, params={"size": size}, headers=headers)
        assert r.status_code == 404
        assert r.json()["error"] == "NotFound"


def test_show_scoped_to_owner(client: TestClient) -> None:
    owner = user_headers(client, "ann@x.com")
    other = user_headers(client, "bob@x.com")
    entry = upload(client, owner, name="a.txt", type="file", data=b64(b"hi"), is_public=True)
    assert client.get(f"/api/files/{entry['id']}", headers=owner).json() == entry
    assert client.get(f"/api/files/{entry['id']}", headers=other).status_code == 404
    assert client.get("/api/files/not-an-id", headers=owner).status_code == 404


def test_publish_unpublish(client: TestClient) -> None:
    """Publishing is idempotent; another user's entry is 404."""
    owner = user_headers(client, "ann@x.com")
    other = user_headers(client, "bob@x.com")
    entry = upload(client, owner, name="a.txt", type="file", data=b64(b"hi"))
    first = client.put(f"/api/files/{entry['id']}/publish", headers=owner).json()
    second = client.put(f"/api/files/{entry['id']}/publish", headers=owner).json()
    assert first == second == {**entry, "is_public": True}
    assert client.put(f"/api/files/{entry['id']}/unpublish", headers=owner).json()["is_public"] is False
    assert client.put(f"/api/files/{entry['id']}/publish", headers=other).status_code == 404


def test_data_privacy(client: TestClient) -> None:
    """Private content only for the owner; public content for everyone."""
    owner = user_headers(client, "ann@x.com")
    other = user_headers(client, "bob@x.com")
    entry = upload(client, owner, name="notes.txt", type="file", data=b64(b"secret"))
    url = f"/api/files/{entry['id']}/data"

    assert client.get(url).status_code == 404
    assert client.get(url, headers=other).status_code == 404
    r = client.get(url, headers=owner)
    assert r.status_code == 200
    assert r.content == b"secret"
    assert r.headers["content-type"].startswith("text/plain")

    client.put(f"/api/files/{entry['id']}/publish", headers=owner)
    assert client.get(url).content == b"secret"
    assert client.get(url, headers=other).content == b"secret"


def test_data_folder_has_no_content(client: TestClient) -> None:
    headers = user_headers(client)
    folder = upload(client, headers, name="docs", type="folder")
    r = client.get(f"/api/files/{folder['id']}/data", headers=headers)
    assert r.status_code == 400
    assert r.json()["error"] == "FolderHasNoContent"


def test_image_thumbnails_end_to_end(client: TestClient, settings, fake_redis) -> None:
    """After the worker runs, each size returns its own resized image."""
    headers = user_headers(client)
    original = png_bytes()
    entry = upload(client, headers, name="pic.png", type="image", data=b64(original), is_public=True)
    url = f"/api/files/{entry['id']}/data"
    assert client.get(url, params={"size": 100}).status_code == 404

    results = asyncio.run(run_worker(settings, once=True, redis=fake_redis))
    assert all(r.status is JobStatus.COMPLETED for r in results)

    bodies = {size: client.get(url, params={"size": size}).content for size in (100, 250, 500)}
    assert len(set(bodies.values())) == 3
    assert client.get(url).content == original
    assert original not in bodies.values()
    assert client.get(url, params={"size": 42}).status_code == 404
