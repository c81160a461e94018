"""Tests for the chat history scanner."""

import os
from datetime import datetime, timedelta, timezone

import pytest

from claude_relay.backend.exception import NotFoundError, ValidationError
from claude_relay.backend.history.scanner import (
    ChatHistoryScanner,
    decode_project_path,
    extract_message_text,
    format_time_ago,
    generate_title,
    is_valid_user_message,
)

from .support import write_jsonl


def _user(text, timestamp, cwd="/home/dev/app"):
    return {"type": "user", "cwd": cwd, "timestamp": timestamp, "message": {"role": "user", "content": text}}


def _assistant(text, timestamp):
    return {
        "type": "assistant",
        "timestamp": timestamp,
        "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
    }


@pytest.fixture
def scanner(projects_dir):
    app = projects_dir / "-home-dev-app"
    write_jsonl(app / "sess-old.jsonl", [
        _user("Caveat: The messages below were generated by the user while running local commands", "2024-01-01T10:00:00Z"),
        _user("Fix the login bug", "2024-01-01T10:00:01Z"),
        _assistant("Done", "2024-01-01T10:00:05Z"),
    ])
    write_jsonl(app / "sess-new.jsonl", [
        {"type": "summary", "summary": "x"},
        _user("Add tests", "2024-02-01T10:00:00Z"),
        _assistant("Sure", "2024-02-01T10:00:03Z"),
        "not json",
    ])
    write_jsonl(projects_dir / "-tmp-other" / "sess-other.jsonl", [
        _user("Hello", "2024-01-15T10:00:00Z", cwd="/tmp/other"),
    ])
    (projects_dir / "-tmp-empty").mkdir()

    # mtimes older than every timestamp so the log contents decide the order
    for path in projects_dir.rglob("*.jsonl"):
        os.utime(path, (0, 0))
    return ChatHistoryScanner(projects_dir)


class TestScanProjects:
    def test_projects_ordered_by_activity(self, scanner):
        projects = scanner.scan_projects()

        assert [p.project_id for p in projects] == ["-home-dev-app", "-tmp-other"]
        app = projects[0]
        assert app.real_path == "/home/dev/app"
        assert app.session_count == 2
        assert app.latest_session.session_id == "sess-new"
        assert app.title == "Add tests"

    def test_session_details(self, scanner):
        _, session = scanner.find_session("sess-old")

        assert session.first_message == "Fix the login bug"
        assert session.first_message_time == "2024-01-01T10:00:01Z"
        assert session.message_count == 3
        assert session.last_message_time == datetime(2024, 1, 1, 10, 0, 5, tzinfo=timezone.utc)

    def test_missing_root(self, tmp_path):
        assert ChatHistoryScanner(tmp_path / "nope").scan_projects() == []


class TestChatHistory:
    def test_flat_list_most_recent_first(self, scanner):
        history = scanner.get_chat_history()

        assert [item["id"] for item in history] == ["sess-new", "sess-other", "sess-old"]
        assert history[0]["project_path"] == "/home/dev/app"
        assert history[0]["message_count"] == 3
        assert history[0]["last_message"].endswith("ago")

    def test_read_messages(self, scanner):
        messages = scanner.read_messages("sess-new")
        assert [m["type"] for m in messages] == ["user", "assistant"]

    def test_find_session_errors(self, scanner):
        with pytest.raises(ValidationError):
            scanner.find_session("../../etc/passwd")
        with pytest.raises(NotFoundError):
            scanner.find_session("no-such-session")

    def test_delete_session(self, scanner, projects_dir):
        assert scanner.delete_session("sess-other")
        assert not (projects_dir / "-tmp-other" / "sess-other.jsonl").exists()
        assert not scanner.delete_session("sess-other")


class TestHelpers:
    def test_extract_message_text(self):
        assert extract_message_text("plain") == "plain"
        assert extract_message_text({"role": "user", "content": [{"type": "image"}, {"type": "text", "text": "hi"}]}) == "hi"
        assert extract_message_text({"role": "assistant", "content": "no"}) is None

    def test_is_valid_user_message(self):
        assert is_valid_user_message("Fix it")
        assert not is_valid_user_message("<command-name>/clear</command-name>")
        assert not is_valid_user_message("")

    def test_generate_title(self):
        assert generate_title(None) == "Untitled"
        assert generate_title("  two\n words ") == "two words"
        title = generate_title("x" * 80)
        assert len(title) == 50
        assert title.endswith("...")

    def test_format_time_ago(self):
        now = datetime(2024, 1, 10, tzinfo=timezone.utc)
        assert format_time_ago(now - timedelta(minutes=5), now) == "5 minutes ago"
        assert format_time_ago(now - timedelta(hours=3), now) == "3 hours ago"
        assert format_time_ago(now - timedelta(days=1, hours=2), now) == "1 day ago"
        assert format_time_ago(now - timedelta(days=4), now) == "4 days ago"

    def test_decode_project_path(self):
        assert decode_project_path("-home-dev-app") == "/home/dev/app"
