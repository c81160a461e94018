"""Tests for the HTTP API and the WebSocket endpoint."""

import sys

import pytest
from fastapi.testclient import TestClient

from claude_relay.backend.app import create_app

from .support import ScriptedRunner, assistant_record, write_jsonl

RECORDS = [
    {"type": "system", "subtype": "init", "session_id": "cli-42"},
    assistant_record("msg-1", text="Hi there", session_id="cli-42",
                     usage={"input_tokens": 12, "output_tokens": 4}),
]


@pytest.fixture
def home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def app(tmp_path, projects_dir, home):
    config = {
        "server": {"host": "127.0.0.1", "port": 3000},
        "claude": {"binary": "/nonexistent/claude"},
        "history": {"projects_dir": str(projects_dir), "poll_interval": 0.2},
        "mcp": {"custom_timeout": 10},
    }
    return create_app(tmp_path / "instance", config, process_runner=ScriptedRunner(RECORDS))


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def repo(tmp_path, client):
    repo = tmp_path / "repo"
    repo.mkdir()
    response = client.post("/api/set-working-directory", json={"path": str(repo)})
    assert response.json()["success"]
    return repo


def _error_code(response):
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    return body["error"]["code"]


class TestWorkspaceApi:
    def test_set_and_get_directory(self, client, repo):
        body = client.get("/api/current-directory").json()
        assert body["success"]
        assert body["data"]["path"] == str(repo.resolve())

    def test_set_missing_directory(self, client, tmp_path):
        response = client.post("/api/set-working-directory", json={"path": str(tmp_path / "nope")})
        assert _error_code(response) == "NOT_FOUND"

    def test_request_validation(self, client):
        response = client.post("/api/set-working-directory", json={})
        assert _error_code(response) == "VALIDATION_ERROR"

    def test_list_files(self, client, repo):
        (repo / "src").mkdir()
        (repo / "README.md").write_text("hi")

        data = client.post("/api/list-files", json={"path": str(repo)}).json()["data"]

        assert data["count"] == 2
        assert [f["name"] for f in data["files"]] == ["src", "README.md"]


class TestHistoryApi:
    @pytest.fixture
    def session_file(self, projects_dir):
        return write_jsonl(projects_dir / "-work-demo" / "abc-123.jsonl", [
            {"type": "user", "cwd": "/work/demo", "timestamp": "2024-05-01T09:00:00Z",
             "message": {"role": "user", "content": "Write a parser"}},
            assistant_record("msg-9", timestamp="2024-05-01T09:00:02Z",
                             usage={"input_tokens": 30, "output_tokens": 70}),
        ])

    def test_history_and_session(self, client, session_file):
        history = client.get("/api/chat-history").json()["data"]
        assert [item["id"] for item in history] == ["abc-123"]
        assert history[0]["title"] == "Write a parser"

        projects = client.get("/api/chat-projects").json()["data"]
        assert projects[0]["real_path"] == "/work/demo"
        assert projects[0]["session_count"] == 1

        detail = client.get("/api/chat-session/abc-123").json()["data"]
        assert detail["session"]["message_count"] == 2
        assert detail["project"]["id"] == "-work-demo"

        messages = client.get("/api/chat-session/abc-123/messages").json()["data"]
        assert messages["total_messages"] == 2

    def test_unknown_session(self, client):
        assert _error_code(client.get("/api/chat-session/missing")) == "NOT_FOUND"

    def test_delete_chat(self, client, session_file):
        body = client.post("/api/delete-chat", json={"chatId": "abc-123"}).json()
        assert body["data"] == {"chat_id": "abc-123", "deleted": True}
        assert not session_file.exists()

        body = client.post("/api/delete-chat", json={"chatId": "abc-123"}).json()
        assert body["success"]
        assert body["data"]["deleted"] is False

    def test_token_endpoints(self, client, session_file, tmp_path):
        scan = client.get("/api/scan-tokens").json()["data"]
        assert scan["files"] == [str(session_file)]
        assert sum(day["total"] for day in scan["daily_usage"].values()) == 100

        batch = client.post("/api/process-token-files", json={"filePaths": [str(session_file)], "batchSize": 5}).json()
        assert batch["data"]["total_files"] == 1
        assert batch["data"]["results"][0]["total_tokens"] == 100
        assert batch["data"]["global_stats"]["deduplication_strategy"] == "global_cross_file"

        single = client.post("/api/process-token-file", json={"filePath": str(session_file)}).json()
        assert single["data"]["input_tokens"] == 30

        missing = client.post("/api/process-token-file", json={"filePath": str(tmp_path / "x.jsonl")})
        assert _error_code(missing) == "NOT_FOUND"

    def test_empty_batch_is_rejected(self, client):
        response = client.post("/api/process-token-files", json={"filePaths": []})
        assert _error_code(response) == "VALIDATION_ERROR"


class TestRulesApi:
    def test_user_rules(self, client, home):
        data = client.post("/api/rules/user", json={"rule": "Be concise"}).json()["data"]
        assert data["rules"] == ["Be concise"]
        assert data["path"] == str(home / ".claude" / "CLAUDE.md")

        data = client.post("/api/rules/user/delete", json={"index": 0}).json()["data"]
        assert data["rules"] == []

    def test_project_rules(self, client, repo):
        client.post("/api/rules/project", json={"rule": "Use tabs"})

        data = client.get("/api/rules/project").json()["data"]
        assert data["rules"] == ["Use tabs"]
        assert (repo / "CLAUDE.md").exists()

    def test_empty_rule(self, client):
        assert _error_code(client.post("/api/rules/user", json={"rule": "  "})) == "VALIDATION_ERROR"


class TestMcpApi:
    def test_custom_command(self, client, repo):
        command = f'{sys.executable} -c "import os; print(os.getcwd())"'
        body = client.post("/api/mcp/custom", json={"command": command}).json()

        assert body["success"]
        assert body["data"]["exit_code"] == 0
        assert body["data"]["output"].strip() == str(repo.resolve())

    def test_failed_custom_command_carries_output(self, client, repo):
        command = f'{sys.executable} -c "import sys; print(\'nope\'); sys.exit(4)"'
        body = client.post("/api/mcp/custom", json={"command": command}).json()

        assert body["error"]["code"] == "COMMAND_FAILED"
        assert body["error"]["details"]["exit_code"] == 4
        assert body["error"]["details"]["output"].strip() == "nope"

    def test_claude_missing(self, client, repo):
        assert _error_code(client.get("/api/mcp/status")) == "CLAUDE_NOT_FOUND"
        assert _error_code(client.post("/api/mcp/install", json={"mcpType": "notion"})) == "CLAUDE_NOT_FOUND"

    def test_unknown_mcp_type(self, client):
        assert _error_code(client.post("/api/mcp/install", json={"mcpType": "evil"})) == "VALIDATION_ERROR"


class TestWebSocket:
    def test_conversation_turn(self, client, repo):
        with client.websocket_connect("/ws") as ws:
            status = ws.receive_json()
            assert status["type"] == "status"
            assert status["state"] == "idle"

            ws.send_json({"type": "input", "data": "hello"})
            messages = [ws.receive_json() for _ in range(5)]

        assert [m["type"] for m in messages] == [
            "session-created",
            "claude-response",
            "usage-update",
            "claude-response",
            "claude-complete",
        ]
        assert messages[0]["sessionId"] == "cli-42"
        assert messages[2]["usage"]["totalTokens"] == 16
        assert messages[4]["exitCode"] == 0

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            assert ws.receive_json() == {"type": "claude-error", "error": "Invalid JSON message"}

    def test_stop_and_sessions(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "stop_generation"})
            assert ws.receive_json()["type"] == "generation_stopped"

            ws.send_json({"type": "resume_session", "sessionId": "old-cli-id"})
            assert ws.receive_json() == {"type": "session-resumed", "sessionId": "old-cli-id"}

            ws.send_json({"type": "list_sessions"})
            listing = ws.receive_json()
            assert "old-cli-id" in listing["sessions"]
            assert listing["currentSession"] == "old-cli-id"

    def test_file_watch_broadcast(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            body = client.post("/api/test-file-watch").json()
            assert body["data"]["notified_clients"] == 1

            event = ws.receive_json()
            assert event["type"] == "chat-history-changed"
            assert event["filePath"] == "/test/manual-trigger.jsonl"
