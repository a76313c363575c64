"""Tests for grouptab audit module - write logging."""

from pathlib import Path

import pytest

from grouptab.audit import get_log_path, log_event, read_log


class TestLogEvent:
    """Tests for log_event function."""

    def test_log_ok_status(self, tmp_path: Path) -> None:
        log_path = tmp_path / "test.jsonl"

        log_event("expense_created", "g1", "ana", details={"amount": "10.00"}, log_path=log_path)

        entries = read_log(log_path)
        assert len(entries) == 1
        assert entries[0]["action"] == "expense_created"
        assert entries[0]["group_id"] == "g1"
        assert entries[0]["actor_id"] == "ana"
        assert entries[0]["status"] == "ok"
        assert entries[0]["details"] == {"amount": "10.00"}
        assert "error_msg" not in entries[0]
        assert "ts" in entries[0]

    def test_log_error_status(self, tmp_path: Path) -> None:
        log_path = tmp_path / "test.jsonl"

        log_event(
            "expense_created",
            "g1",
            "ana",
            status="error",
            error_msg="Percentages must sum to 100",
            log_path=log_path,
        )

        entry = read_log(log_path)[0]
        assert entry["status"] == "error"
        assert entry["error_msg"] == "Percentages must sum to 100"
        assert "details" not in entry

    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        log_path = tmp_path / "nested" / "dir" / "audit.jsonl"
        log_event("group_created", None, "ana", log_path=log_path)
        assert log_path.exists()

    def test_appends(self, tmp_path: Path) -> None:
        log_path = tmp_path / "test.jsonl"
        for i in range(3):
            log_event("expense_deleted", "g1", f"user{i}", log_path=log_path)

        entries = read_log(log_path)
        assert [e["actor_id"] for e in entries] == ["user0", "user1", "user2"]

    def test_unicode(self, tmp_path: Path) -> None:
        log_path = tmp_path / "test.jsonl"
        log_event("participant_added", "g1", "ana", details={"name": "Zoë"}, log_path=log_path)
        assert read_log(log_path)[0]["details"]["name"] == "Zoë"


class TestReadLog:
    """Tests for read_log function."""

    def test_missing_file(self, tmp_path: Path) -> None:
        assert read_log(tmp_path / "none.jsonl") == []

    def test_limit(self, tmp_path: Path) -> None:
        log_path = tmp_path / "test.jsonl"
        for i in range(5):
            log_event("expense_created", "g1", f"user{i}", log_path=log_path)

        entries = read_log(log_path, limit=2)
        assert [e["actor_id"] for e in entries] == ["user3", "user4"]


class TestGetLogPath:
    """Tests for log path resolution."""

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("GROUPTAB_LOG_PATH", str(tmp_path / "custom.jsonl"))
        assert get_log_path() == tmp_path / "custom.jsonl"

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GROUPTAB_LOG_PATH", raising=False)
        assert get_log_path() == Path.home() / ".grouptab" / "audit.jsonl"
