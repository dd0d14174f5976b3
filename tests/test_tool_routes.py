import pytest
from fastapi.testclient import TestClient

from zipshare.controllers.tool_controller import ToolDispatcher
from zipshare.server import create_app
from zipshare.utils.exceptions import BackendError, ToolError


@pytest.fixture
def http(fake_client):
    app = create_app(dispatcher=ToolDispatcher(fake_client))
    with TestClient(app) as client:
        yield client


def test_home_and_health(http):
    assert http.get("/").status_code == 200
    health = http.get("/health").json()
    assert health["message"] == "tool server running"


def test_list_tools_uses_camel_case_schema(http):
    response = http.get("/api/tools")

    assert response.status_code == 200
    tools = response.json()["tools"]
    assert len(tools) == 6
    assert all("inputSchema" in tool for tool in tools)
    assert tools[0]["inputSchema"]["properties"]["file_path"]["type"] == "string"


def test_call_tool_returns_text_content(http):
    response = http.post("/api/tools/call", json={"name": "delete_transfer", "arguments": {"transfer_id": "tr_3"}})

    assert response.status_code == 200
    assert response.json() == {
        "content": [{"type": "text", "text": "✅ Transfer tr_3 has been deleted and its share link revoked."}]
    }


def test_unknown_tool_is_404(http):
    response = http.post("/api/tools/call", json={"name": "nope"})

    assert response.status_code == 404
    assert response.json() == {"error": {"code": ToolError.METHOD_NOT_FOUND, "message": "Unknown tool: nope"}}


def test_backend_failure_is_500(http, fake_client):
    fake_client.fail_with = BackendError("Invalid password", status=403)

    response = http.post("/api/tools/call", json={"name": "get_download_link", "arguments": {"share_token": "abc"}})

    assert response.status_code == 500
    assert response.json() == {"error": {"code": ToolError.INTERNAL_ERROR, "message": "Invalid password"}}


def test_malformed_call_is_rejected(http):
    assert http.post("/api/tools/call", json={"arguments": {}}).status_code == 422


def test_oversized_body_is_rejected(http, fake_client):
    response = http.post(
        "/api/tools/call",
        json={"name": "send_file", "arguments": {"file_path": "/tmp/x", "message": "x" * (2 * 1024 * 1024)}},
    )

    assert response.status_code == 413
    assert response.json() == {"detail": "Request payload too large"}
    assert fake_client.calls == []
