"""Upload, download and listing of shared files over HTTP."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio

PAYLOAD = b"0123456789"


async def _login(client: AsyncClient, make_user, email: str = "owner@example.com") -> dict[str, str]:
    await make_user(email, "pw1")
    response = await client.post("/user/login", json={"email": email, "password": "pw1"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def _upload(
    client: AsyncClient,
    headers: dict[str, str],
    *,
    content: bytes = PAYLOAD,
    name: str = "hello.txt",
    password: str | None = "pw",
    max_downloads: int = 1,
    expires_at: datetime | None = None,
):
    data = {
        "file_name": name,
        "max_downloads": str(max_downloads),
        "expires_at": (expires_at or datetime.now(UTC) + timedelta(hours=1)).isoformat(),
    }
    if password is not None:
        data["password"] = password
    return await client.post(
        "/file/upload",
        headers=headers,
        data=data,
        files={"file": (name, content, "text/plain")},
    )


async def test_upload_then_download_with_quota_of_one(
    app_context: dict[str, Any], make_user
) -> None:
    client: AsyncClient = app_context["client"]
    headers = await _login(client, make_user)

    uploaded = await _upload(client, headers)
    assert uploaded.status_code == 201, uploaded.text
    file_id = uploaded.json()["id"]

    first = await client.post("/file/download", json={"file_id": file_id, "password": "pw"})
    assert first.status_code == 200
    assert first.content == PAYLOAD
    assert first.headers["content-type"].startswith("text/plain")
    assert 'filename="hello.txt"' in first.headers["content-disposition"]

    second = await client.post("/file/download", json={"file_id": file_id, "password": "pw"})
    assert second.status_code == 400
    assert second.json()["message"] == "Download limit reached for this file"


async def test_blob_at_rest_is_encrypted(app_context: dict[str, Any], make_user) -> None:
    client: AsyncClient = app_context["client"]
    headers = await _login(client, make_user)
    await _upload(client, headers, content=b"plain text secret")

    stored = [path for path in app_context["store"]._root.rglob("*") if path.is_file()]
    assert len(stored) == 1
    assert b"plain text secret" not in stored[0].read_bytes()


async def test_wrong_password_does_not_consume_download(
    app_context: dict[str, Any], make_user
) -> None:
    client: AsyncClient = app_context["client"]
    headers = await _login(client, make_user)
    file_id = (await _upload(client, headers)).json()["id"]

    wrong = await client.post("/file/download", json={"file_id": file_id, "password": "nope"})
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Incorrect password for this file"

    right = await client.post("/file/download", json={"file_id": file_id, "password": "pw"})
    assert right.status_code == 200
    assert right.content == PAYLOAD


async def test_upload_without_password_uses_default(
    app_context: dict[str, Any], make_user
) -> None:
    client: AsyncClient = app_context["client"]
    headers = await _login(client, make_user)
    file_id = (await _upload(client, headers, password=None)).json()["id"]

    response = await client.post("/file/download", json={"file_id": file_id})
    assert response.status_code == 200
    assert response.content == PAYLOAD

    listed = await client.get("/file/user-files", headers=headers)
    assert listed.json()["files"][0]["is_password_protected"] is False


async def test_upload_requires_authentication(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    response = await _upload(client, {})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"

    forged = await _upload(client, {"Authorization": "Bearer not-a-jwt"})
    assert forged.status_code == 401


async def test_unverified_user_cannot_upload(app_context: dict[str, Any], make_user) -> None:
    from app.core.security import create_access_token

    client: AsyncClient = app_context["client"]
    user = await make_user("new@example.com", is_verified=False)
    headers = {"Authorization": f"Bearer {create_access_token(user.id)}"}
    response = await _upload(client, headers)
    assert response.status_code == 401


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_downloads": 0},
        {"max_downloads": 11},
        {"expires_at": datetime.now(UTC) - timedelta(minutes=1)},
        {"name": "   "},
        {"content": b""},
    ],
)
async def test_invalid_upload_is_rejected(
    app_context: dict[str, Any], make_user, overrides: dict[str, Any]
) -> None:
    client: AsyncClient = app_context["client"]
    headers = await _login(client, make_user)

    response = await _upload(client, headers, **overrides)
    assert response.status_code == 400
    assert response.json()["kind"] == "Validation"
    stored = [path for path in app_context["store"]._root.rglob("*") if path.is_file()]
    assert stored == []


async def test_download_of_unknown_file(app_context: dict[str, Any]) -> None:
    client: AsyncClient = app_context["client"]
    for file_id in ("not-a-uuid", "1b4e28ba-2fa1-11d2-883f-0016d3cca427"):
        response = await client.post("/file/download", json={"file_id": file_id})
        assert response.status_code == 400
        assert response.json()["message"] == "File not found"


async def test_user_files_lists_history(app_context: dict[str, Any], make_user) -> None:
    client: AsyncClient = app_context["client"]
    headers = await _login(client, make_user)
    other = await _login(client, make_user, "someone@example.com")
    file_id = (await _upload(client, headers, max_downloads=3)).json()["id"]
    await _upload(client, other)

    await client.post(
        "/file/download",
        json={"file_id": file_id, "password": "pw"},
        headers={"User-Agent": "pytest-agent"},
    )

    response = await client.get("/file/user-files", headers=headers)
    assert response.status_code == 200
    files = response.json()["files"]
    assert len(files) == 1
    entry = files[0]
    assert entry["id"] == file_id
    assert entry["name"] == "hello.txt"
    assert entry["size_bytes"] == len(PAYLOAD)
    assert entry["max_downloads"] == 3
    assert entry["download_count"] == 1
    assert entry["download_history"][0]["user_agent"] == "pytest-agent"


async def test_non_ascii_name_uses_extended_disposition(
    app_context: dict[str, Any], make_user
) -> None:
    client: AsyncClient = app_context["client"]
    headers = await _login(client, make_user)
    file_id = (await _upload(client, headers, name="résumé.txt")).json()["id"]

    response = await client.post("/file/download", json={"file_id": file_id, "password": "pw"})
    assert response.status_code == 200
    assert "filename*=UTF-8''r%C3%A9sum%C3%A9.txt" in response.headers["content-disposition"]
