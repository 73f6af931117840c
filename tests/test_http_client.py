"""Tests for the HTTP client (SCIMClient) against the mock SCIM server.

Covers CRUD operations, auth modes (basic, bearer), Content-Type headers,
429 retry behavior, error details, and secret redaction.
"""

import base64

import pytest
from dirbatch.http_client import SCIMClient, SCIMResponse, redact_auth
from tests.mock_scim_server import MockSCIMServer

USER_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:User"


@pytest.fixture
def server():
    with MockSCIMServer() as s:
        yield s


@pytest.fixture
def client(server):
    c = SCIMClient(server.base_url)
    yield c
    c.close()


def test_get_service_provider_config(client):
    resp = client.get("/ServiceProviderConfig")
    assert resp.status_code == 200
    data = resp.json()
    assert "patch" in data


def test_post_and_get_user(client):
    payload = {"schemas": [USER_SCHEMA], "userName": "ada.lovelace"}
    resp = client.post("/Users", payload)
    assert resp.status_code == 201
    created = resp.json()
    assert "id" in created
    assert "meta" in created

    # GET it back
    resp2 = client.get(f"/Users/{created['id']}")
    assert resp2.status_code == 200
    assert resp2.json()["userName"] == "ada.lovelace"


def test_get_with_params(client):
    client.post("/Users", {"schemas": [USER_SCHEMA], "userName": "ada.lovelace"})
    client.post("/Users", {"schemas": [USER_SCHEMA], "userName": "grace.hopper"})
    resp = client.get("/Users", params={"filter": 'userName eq "grace.hopper"'})
    resources = resp.json()["Resources"]
    assert [r["userName"] for r in resources] == ["grace.hopper"]


def test_patch_group(client):
    resp = client.post("/Groups", {"schemas": ["urn:ietf:params:scim:schemas:core:2.0:Group"],
                                   "displayName": "Staff"})
    gid = resp.json()["id"]

    patch = {
        "schemas": ["urn:ietf:params:scim:api:messages:2.0:PatchOp"],
        "Operations": [{"op": "add", "path": "members", "value": [{"value": "abc"}]}],
    }
    resp2 = client.patch(f"/Groups/{gid}", patch)
    assert resp2.status_code == 200
    assert resp2.json()["members"] == [{"value": "abc"}]


def test_delete_user(client):
    resp = client.post("/Users", {"schemas": [USER_SCHEMA], "userName": "delete.me"})
    uid = resp.json()["id"]

    resp2 = client.delete(f"/Users/{uid}")
    assert resp2.status_code == 204

    resp3 = client.get(f"/Users/{uid}")
    assert resp3.status_code == 404


def test_get_nonexistent_returns_404(client):
    resp = client.get("/Users/nonexistent")
    assert resp.status_code == 404
    assert not resp.ok


def test_content_type_header(client, server):
    resp = client.get("/ServiceProviderConfig")
    ct = resp.header("Content-Type")
    assert ct is not None
    assert "scim+json" in ct

    client.post("/Users", {"schemas": [USER_SCHEMA], "userName": "ct"})
    _, _, headers, _ = server.requests[-1]
    assert headers["Content-Type"] == "application/scim+json"


def test_basic_auth(server):
    client = SCIMClient(server.base_url, username="admin", password="secret")
    resp = client.get("/ServiceProviderConfig")
    assert resp.status_code == 200
    _, _, headers, _ = server.requests[-1]
    expected = base64.b64encode(b"admin:secret").decode()
    assert headers["Authorization"] == f"Basic {expected}"


def test_bearer_auth(server):
    client = SCIMClient(server.base_url, token="test-token")
    resp = client.get("/ServiceProviderConfig")
    assert resp.status_code == 200
    _, _, headers, _ = server.requests[-1]
    assert headers["Authorization"] == "Bearer test-token"


def test_429_retry():
    """Client should automatically retry on 429 with Retry-After."""
    with MockSCIMServer(throttle_count=2) as server:
        client = SCIMClient(server.base_url)
        resp = client.get("/ServiceProviderConfig")
        # After 2 retries it should succeed
        assert resp.status_code == 200
        assert len(server.requests) == 3


def test_429_retries_exhausted():
    with MockSCIMServer(throttle_count=10) as server:
        client = SCIMClient(server.base_url)
        resp = client.get("/ServiceProviderConfig")
        assert resp.status_code == 429
        assert len(server.requests) == 4


def test_error_detail(server):
    server.failures["POST /Users"] = 403
    client = SCIMClient(server.base_url)
    resp = client.post("/Users", {"schemas": [USER_SCHEMA], "userName": "x"})
    assert resp.error_detail() == "HTTP 403: POST refused by test server"


def test_error_detail_without_body():
    assert SCIMResponse(502, {}, "").error_detail() == "HTTP 502"
    assert SCIMResponse(500, {}, "<html>oops</html>").error_detail() == "HTTP 500"


def test_redact_auth():
    headers = {
        "Authorization": "Bearer secret-token-123",
        "Content-Type": "application/scim+json",
    }
    redacted = redact_auth(headers)
    assert redacted["Authorization"] == "***REDACTED***"
    assert redacted["Content-Type"] == "application/scim+json"
    # Original should not be mutated
    assert headers["Authorization"] == "Bearer secret-token-123"
