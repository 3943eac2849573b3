"""Tests for the append-only audit store and recorder."""

import csv
import io
import json
import tempfile
from pathlib import Path

import pytest

from syncrules.governance.audit import AuditRecorder, AuditStore, diff_fields
from syncrules.governance.errors import AuditWriteError
from syncrules.governance.models import AuditLog, SessionContext

CTX = SessionContext(actor_id="alice", account_id="acct-1")


def _entry(eid, ts, action="folder.detached", resource_id="f1", **kwargs):
    return AuditLog(
        id=eid,
        timestamp=ts,
        actor_id=kwargs.pop("actor_id", "alice"),
        action=action,
        resource_type=kwargs.pop("resource_type", "folder"),
        resource_id=resource_id,
        account_id=kwargs.pop("account_id", "acct-1"),
        **kwargs,
    )


# --- Store ---


def test_append_and_read_back():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        store.append(_entry("e1", "2025-03-01T10:00:00+00:00", changes={"syncStatus": {"from": "synced", "to": "detached"}}))

        events = store.get_events()
        assert len(events) == 1
        assert events[0].changes["syncStatus"]["to"] == "detached"
        assert (Path(tmpdir) / "2025-03-01.jsonl").exists()


def test_events_are_newest_first_across_days():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        store.append(_entry("e1", "2025-03-01T10:00:00+00:00"))
        store.append(_entry("e2", "2025-03-02T09:00:00+00:00"))
        store.append(_entry("e3", "2025-03-01T11:00:00+00:00"))

        assert [e.id for e in store.get_events()] == ["e2", "e3", "e1"]
        assert [e.id for e in store.get_history("folder", "f1")] == ["e1", "e3", "e2"]


def test_same_timestamp_keeps_append_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        for eid in ("a", "b", "c"):
            store.append(_entry(eid, "2025-03-01T10:00:00+00:00"))

        assert [e.id for e in store.get_history("folder", "f1")] == ["a", "b", "c"]
        assert [e.id for e in store.get_events()] == ["c", "b", "a"]


def test_filters_and_pagination():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        store.append(_entry("e1", "2025-03-01T10:00:00+00:00", project_id="web"))
        store.append(_entry("e2", "2025-03-02T10:00:00+00:00", action="folder.synced", project_id="web"))
        store.append(_entry("e3", "2025-03-03T10:00:00+00:00", project_id="api", actor_id="bob"))
        store.append(_entry("e4", "2025-03-04T10:00:00+00:00", account_id="acct-2"))

        assert [e.id for e in store.get_events(project_id="web")] == ["e2", "e1"]
        assert [e.id for e in store.get_events(action="folder.synced")] == ["e2"]
        assert [e.id for e in store.get_events(actor_id="bob")] == ["e3"]
        assert [e.id for e in store.get_events(account_id="acct-1")] == ["e3", "e2", "e1"]
        assert [e.id for e in store.get_events(start_date="2025-03-02", end_date="2025-03-03T23")] == ["e3", "e2"]
        assert [e.id for e in store.get_events(limit=2, offset=1)] == ["e3", "e2"]
        assert store.count(account_id="acct-1") == 3


def test_malformed_lines_are_skipped():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        store.append(_entry("e1", "2025-03-01T10:00:00+00:00"))
        with (Path(tmpdir) / "2025-03-01.jsonl").open("a") as fh:
            fh.write("{not json\n")
            fh.write(json.dumps({"id": "x"}) + "\n")

        assert [e.id for e in store.get_events()] == ["e1"]


def test_export_json_and_csv():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        store.append(_entry("e1", "2025-03-01T10:00:00+00:00", metadata={"warning": "changes discarded"}))

        exported = json.loads(store.export_events("json"))
        assert exported[0]["id"] == "e1"

        rows = list(csv.reader(io.StringIO(store.export_events("csv"))))
        assert rows[0][:4] == ["id", "timestamp", "actor_id", "action"]
        assert rows[1][0] == "e1"
        assert rows[1][-1] == "changes discarded"



def test_invalid_timestamp_is_rejected_before_writing():
    with tempfile.TemporaryDirectory() as tmpdir:
        base = Path(tmpdir) / "audit"
        store = AuditStore(base)
        with pytest.raises(AuditWriteError):
            store.append(_entry("e1", "../../escape"))
        with pytest.raises(AuditWriteError):
            store.append(_entry("e2", None))

        assert list(Path(tmpdir).rglob("*.jsonl")) == []


def test_commit_assigns_id_and_time():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        first = store.commit(_entry("forged", "../../2020-01-01"))
        second = store.commit(_entry("forged", "2099-01-01T00:00:00+00:00"))

        assert first.id != "forged" and second.id != first.id
        assert first.timestamp <= second.timestamp < "2099"
        assert [e.id for e in store.get_events()] == [second.id, first.id]
        assert [p.parent for p in Path(tmpdir).rglob("*.jsonl")] == [Path(tmpdir)]


def test_page_total_matches_count():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        for i in range(5):
            store.append(_entry(f"e{i}", f"2025-03-0{i + 1}T10:00:00+00:00", project_id="web" if i % 2 else "api"))

        entries, total = store.page(limit=1, project_id="api")
        assert [e.id for e in entries] == ["e4"]
        assert total == store.count(project_id="api") == 3

# --- Recorder ---


def test_record_drops_unchanged_fields():
    with tempfile.TemporaryDirectory() as tmpdir:
        recorder = AuditRecorder(AuditStore(Path(tmpdir)), CTX)
        entry = recorder.record(
            "project.updated",
            "project",
            "web",
            {"name": {"from": "Web", "to": "Website"}, "description": {"from": "", "to": ""}},
        )
        assert entry.changes == {"name": {"from": "Web", "to": "Website"}}
        assert entry.actor_id == "alice"
        assert entry.account_id == "acct-1"


def test_record_with_no_effective_change_writes_nothing():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = AuditStore(Path(tmpdir))
        recorder = AuditRecorder(store, CTX)
        assert recorder.record("project.updated", "project", "web", {"name": {"from": "Web", "to": "Web"}}) is None
        assert store.get_events() == []


def test_record_rejects_unknown_action():
    with tempfile.TemporaryDirectory() as tmpdir:
        recorder = AuditRecorder(AuditStore(Path(tmpdir)), CTX)
        with pytest.raises(ValueError):
            recorder.record("folder.renamed", "folder", "f1", {"name": {"from": "a", "to": "b"}})
        with pytest.raises(ValueError):
            recorder.record("folder.detached", "workspace", "f1", {"name": {"from": "a", "to": "b"}})


def test_recorder_timestamps_never_go_backwards():
    with tempfile.TemporaryDirectory() as tmpdir:
        recorder = AuditRecorder(AuditStore(Path(tmpdir)), CTX)
        stamps = [
            recorder.record("rule.updated", "rule", "r1", {"content": {"from": str(i), "to": str(i + 1)}}).timestamp
            for i in range(20)
        ]
        assert stamps == sorted(stamps)


def test_diff_fields():
    assert diff_fields({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4}) == {
        "b": {"from": 2, "to": 3},
        "c": {"from": None, "to": 4},
    }
