from __future__ import annotations

import json
from typing import Any

import pytest
from fastapi.testclient import TestClient

from conftest import JSON_API, JSON_API_HEADERS


POSTS_URI = "/api/v1/posts"


def _document(attributes: dict[str, Any], **extra: Any) -> bytes:
    return json.dumps({"data": {"type": "posts", "attributes": attributes, **extra}}).encode()


def _create(client: TestClient, *, title: str, content: str | None = None) -> dict[str, Any]:
    r = client.post(
        POSTS_URI,
        content=_document({"title": title, "content": content}),
        headers=JSON_API_HEADERS,
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]


def test_create_and_read_post(client: TestClient) -> None:
    created = _create(client, title="Hello", content="First post")
    assert created["type"] == "posts"
    assert created["attributes"]["title"] == "Hello"
    assert created["attributes"]["createdAt"].endswith("Z")
    assert created["links"]["self"] == f"{POSTS_URI}/{created['id']}"

    r = client.get(f"{POSTS_URI}/{created['id']}", headers={"Accept": JSON_API})
    assert r.status_code == 200, r.text
    assert r.headers["content-type"] == JSON_API
    assert r.json()["data"] == created


def test_create_returns_location_header(client: TestClient) -> None:
    r = client.post(POSTS_URI, content=_document({"title": "Hi"}), headers=JSON_API_HEADERS)
    assert r.status_code == 201
    assert r.headers["location"] == r.json()["data"]["links"]["self"]


def test_list_posts(client: TestClient) -> None:
    a = _create(client, title="A")
    b = _create(client, title="B")

    r = client.get(POSTS_URI, headers={"Accept": JSON_API})
    assert r.status_code == 200
    assert [p["id"] for p in r.json()["data"]] == [a["id"], b["id"]]


@pytest.mark.parametrize(
    "post_id",
    [
        "abc",
        # Unicode superscript two: a digit, but not an integer literal.
        "%C2%B2",
        # Beyond the signed 64-bit key range.
        "99999999999999999999999",
        str(2**63),
    ],
)
def test_impossible_id_is_not_found(client: TestClient, post_id: str) -> None:
    r = client.get(f"{POSTS_URI}/{post_id}", headers={"Accept": JSON_API})
    assert r.status_code == 404
    assert r.json() == {"errors": [{"title": "Not Found", "status": "404"}]}


def test_create_requires_title(client: TestClient) -> None:
    r = client.post(POSTS_URI, content=_document({"content": "x"}), headers=JSON_API_HEADERS)
    assert r.status_code == 422
    error = r.json()["errors"][0]
    assert error["title"] == "Unprocessable Entity"
    assert error["status"] == "422"
    assert "title" in error["detail"]


def test_create_rejects_wrong_attribute_type(client: TestClient) -> None:
    r = client.post(POSTS_URI, content=_document({"title": ["x"]}), headers=JSON_API_HEADERS)
    assert r.status_code == 422
    assert r.json()["errors"][0]["detail"].startswith("The title member is invalid")


def test_create_rejects_other_resource_type(client: TestClient) -> None:
    body = json.dumps({"data": {"type": "comments", "attributes": {"title": "x"}}}).encode()
    r = client.post(POSTS_URI, content=body, headers=JSON_API_HEADERS)
    assert r.status_code == 409
    assert r.json()["errors"][0]["title"] == "Conflict"


def test_create_without_resource_object(client: TestClient) -> None:
    r = client.post(POSTS_URI, content=b'{"meta": {}}', headers=JSON_API_HEADERS)
    assert r.status_code == 400
    assert r.json()["errors"][0]["title"] == "Bad Request"


def test_create_requires_json_api_content_type(client: TestClient) -> None:
    r = client.post(
        POSTS_URI,
        content=_document({"title": "x"}),
        headers={"Accept": JSON_API, "Content-Type": "application/json"},
    )
    assert r.status_code == 415
    error = r.json()["errors"][0]
    assert error["title"] == "Unsupported Media Type"
    assert error["status"] == "415"


def test_update_post(client: TestClient) -> None:
    created = _create(client, title="Old", content="keep me")

    r = client.patch(
        f"{POSTS_URI}/{created['id']}",
        content=_document({"title": "New"}, id=created["id"]),
        headers=JSON_API_HEADERS,
    )
    assert r.status_code == 200, r.text
    attributes = r.json()["data"]["attributes"]
    assert attributes["title"] == "New"
    assert attributes["content"] == "keep me"


def test_update_rejects_mismatched_id(client: TestClient) -> None:
    created = _create(client, title="Old")

    r = client.patch(
        f"{POSTS_URI}/{created['id']}",
        content=_document({"title": "New"}, id="12345"),
        headers=JSON_API_HEADERS,
    )
    assert r.status_code == 409


def test_update_missing_post(client: TestClient) -> None:
    r = client.patch(
        f"{POSTS_URI}/999",
        content=_document({"title": "New"}, id="999"),
        headers=JSON_API_HEADERS,
    )
    assert r.status_code == 404


def test_delete_post(client: TestClient) -> None:
    created = _create(client, title="Bye")

    r = client.delete(f"{POSTS_URI}/{created['id']}", headers={"Accept": JSON_API})
    assert r.status_code == 204

    r = client.get(f"{POSTS_URI}/{created['id']}", headers={"Accept": JSON_API})
    assert r.status_code == 404


def test_csrf_cookie_requires_matching_header(client: TestClient) -> None:
    client.cookies.set("quillpost_csrf", "expected-token")

    r = client.post(
        POSTS_URI,
        content=_document({"title": "x"}),
        headers={**JSON_API_HEADERS, "X-CSRF-Token": "wrong"},
    )
    assert r.status_code == 419
    assert r.json() == {
        "errors": [
            {"title": "Invalid Token", "status": "419", "detail": "CSRF token mismatch."}
        ]
    }

    r = client.post(
        POSTS_URI,
        content=_document({"title": "x"}),
        headers={**JSON_API_HEADERS, "X-CSRF-Token": "expected-token"},
    )
    assert r.status_code == 201, r.text


def test_reads_skip_csrf_check(client: TestClient) -> None:
    client.cookies.set("quillpost_csrf", "expected-token")

    r = client.get(POSTS_URI, headers={"Accept": JSON_API})
    assert r.status_code == 200


def test_maintenance_mode_setting(client: TestClient) -> None:
    settings = client.app.state.settings
    client.app.state.settings = settings.model_copy(
        update={
            "maintenance_mode": True,
            "maintenance_message": "We'll be back soon.",
            "maintenance_retry_after": 120,
        }
    )

    r = client.get(POSTS_URI, headers={"Accept": JSON_API})
    assert r.status_code == 503
    assert r.headers["content-type"] == JSON_API
    assert r.headers["retry-after"] == "120"
    assert r.json() == {
        "errors": [
            {"title": "Service Unavailable", "status": "503", "detail": "We'll be back soon."}
        ]
    }

    # Health checks stay outside maintenance mode.
    assert client.get("/healthz").status_code == 200


def test_maintenance_mode_covers_unknown_api_routes(client: TestClient) -> None:
    settings = client.app.state.settings
    client.app.state.settings = settings.model_copy(
        update={"maintenance_mode": True, "maintenance_message": "Down for upgrades."}
    )

    r = client.get("/api/v1/unknown", headers={"Accept": JSON_API})
    assert r.status_code == 503
    assert r.headers["content-type"] == JSON_API
    assert r.headers.get("X-Trace-Id")
    assert "retry-after" not in r.headers
    assert r.json() == {
        "errors": [
            {"title": "Service Unavailable", "status": "503", "detail": "Down for upgrades."}
        ]
    }


def test_create_rejects_non_standard_json_constants(client: TestClient) -> None:
    r = client.post(POSTS_URI, content=b'{"data": NaN}', headers=JSON_API_HEADERS)
    assert r.status_code == 400
    assert r.json() == {
        "errors": [
            {"title": "Invalid JSON", "status": "400", "detail": "Syntax error", "code": 4}
        ]
    }
