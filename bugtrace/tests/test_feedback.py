"""Tests for the feedback log and keyed stores."""

import json
import stat
from unittest.mock import Mock

import pytest


class TestFeedbackLog:
    def test_record(self):
        from bugtrace.collector import FeedbackLog
        log = FeedbackLog()
        entry = log.record("so-1", helpful=True)
        assert entry.suggestion_id == "so-1"
        assert entry.helpful is True
        assert log.entries() == [entry]

    def test_bounded_fifo(self):
        from bugtrace.collector import FeedbackLog
        log = FeedbackLog(capacity=1000)
        for i in range(1005):
            log.record(f"s-{i}", helpful=i % 2 == 0)
        assert len(log) == 1000
        assert log.entries()[0].suggestion_id == "s-5"
        assert log.entries()[-1].suggestion_id == "s-1004"

    def test_tally(self):
        from bugtrace.collector import FeedbackLog
        log = FeedbackLog()
        log.record("gh-1", True)
        log.record("gh-1", False)
        log.record("gh-1", True)
        log.record("gh-2", False)
        assert log.tally("gh-1") == {"helpful": 2, "not_helpful": 1}

    def test_empty_id_rejected(self):
        from bugtrace.collector import FeedbackLog
        with pytest.raises(ValueError):
            FeedbackLog().record("", True)

    def test_persists_and_evicts_in_store(self):
        from bugtrace.collector import FeedbackLog
        from bugtrace.common.collaborators import MemoryStore
        store = MemoryStore()
        log = FeedbackLog(capacity=2, store=store)
        for sid in ("a", "b", "c"):
            log.record(sid, True)

        stored = sorted(v["suggestion_id"] for v in store.get_all().values())
        assert stored == ["b", "c"]

    def test_reload_from_store(self, tmp_path):
        from bugtrace.collector import FeedbackLog
        from bugtrace.common.collaborators import JsonFileStore
        path = tmp_path / "feedback.json"
        first = FeedbackLog(store=JsonFileStore(path))
        first.record("mdn-TypeError", True)
        first.record("so-9", False)

        second = FeedbackLog(store=JsonFileStore(path))
        assert [e.suggestion_id for e in second.entries()] == ["mdn-TypeError", "so-9"]

    def test_store_failure_is_logged_not_raised(self, caplog):
        import logging
        from bugtrace.collector import FeedbackLog
        store = Mock()
        store.get_all.return_value = {}
        store.put.side_effect = IOError("disk full")
        log = FeedbackLog(store=store)

        with caplog.at_level(logging.WARNING, logger="bugtrace.collector.feedback"):
            log.record("so-1", True)

        assert len(log) == 1
        assert "disk full" in caplog.text

    def test_malformed_stored_entry_skipped(self):
        from bugtrace.collector import FeedbackLog
        from bugtrace.common.collaborators import MemoryStore
        store = MemoryStore()
        store.put("bad", {"helpful": "maybe"})
        store.put("good", {"suggestion_id": "so-1", "helpful": True, "timestamp": "2024-01-01T00:00:00Z"})
        assert [e.suggestion_id for e in FeedbackLog(store=store).entries()] == ["so-1"]


class TestJsonFileStore:
    def test_round_trip_and_permissions(self, tmp_path):
        from bugtrace.common.collaborators import JsonFileStore
        path = tmp_path / "nested" / "store.json"
        store = JsonFileStore(path)
        store.put("fix-1", {"title": "Use optional chaining"})

        assert json.loads(path.read_text()) == {"fix-1": {"title": "Use optional chaining"}}
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert JsonFileStore(path).get_all() == {"fix-1": {"title": "Use optional chaining"}}

    def test_delete(self, tmp_path):
        from bugtrace.common.collaborators import JsonFileStore
        store = JsonFileStore(tmp_path / "store.json")
        store.put("a", 1)
        store.delete("a")
        store.delete("missing")
        assert store.get_all() == {}

    def test_corrupt_file_starts_empty(self, tmp_path):
        from bugtrace.common.collaborators import JsonFileStore
        path = tmp_path / "store.json"
        path.write_text("[broken")
        assert JsonFileStore(path).get_all() == {}

    def test_protocol(self, tmp_path):
        from bugtrace.common.collaborators import JsonFileStore, KeyValueStore, MemoryStore
        assert isinstance(MemoryStore(), KeyValueStore)
        assert isinstance(JsonFileStore(tmp_path / "s.json"), KeyValueStore)


class TestIssuePublisher:
    @pytest.mark.asyncio
    async def test_protocol_conformance(self):
        from bugtrace.common.collaborators import IssueHandle, IssuePublisher
        from bugtrace.common.schemas import Signal

        class Recorder:
            def __init__(self):
                self.filed = []

            async def create_issue(self, repository_id, signal):
                self.filed.append((repository_id, signal.id))
                return IssueHandle(id=1, number=7, title=signal.message, url="https://github.com/o/r/issues/7")

        publisher = Recorder()
        assert isinstance(publisher, IssuePublisher)
        signal = Signal(kind="runtime", severity="error", message="boom", tab_scope="t")
        handle = await publisher.create_issue("o/r", signal)
        assert handle.state == "open"
        assert publisher.filed == [("o/r", signal.id)]
