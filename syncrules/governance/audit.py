"""Audit recording for governance transitions.

Provides append-only JSONL storage with filtering and export, plus the
recorder the transition engine calls after every committed change. Entries
are stored under ``~/.syncrules/audit_logs/`` by default.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import threading
import uuid
from dataclasses import asdict, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from syncrules.governance.errors import AuditWriteError, PartialFailure
from syncrules.governance.models import AuditAction, AuditLog, ResourceType, SessionContext

logger = logging.getLogger(__name__)


class CommitClock:
    """UTC ISO-8601 timestamps that never move backwards."""

    def __init__(self) -> None:
        self._last = ""
        self._lock = threading.Lock()

    def now(self) -> str:
        with self._lock:
            stamp = datetime.now(timezone.utc).isoformat(timespec="microseconds")
            if stamp < self._last:
                stamp = self._last
            self._last = stamp
            return stamp


class AuditStore:
    """File-based append-only audit log.

    Entries are persisted as newline-delimited JSON in daily log files.
    Nothing in this class rewrites or removes an existing line.
    """

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path.home() / ".syncrules" / "audit_logs"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._clock = CommitClock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for_date(self, dt: datetime) -> Path:
        """Return the log file path for a given date."""
        return self._base_dir / f"{dt.strftime('%Y-%m-%d')}.jsonl"

    def _read_all_entries(self) -> list[AuditLog]:
        """Read every entry from all log files, in append order."""
        entries: list[AuditLog] = []
        for path in sorted(self._base_dir.glob("*.jsonl")):
            for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), 1):
                if not line.strip():
                    continue
                try:
                    entries.append(AuditLog(**json.loads(line)))
                except (json.JSONDecodeError, TypeError) as exc:
                    logger.warning("Skipping malformed audit line %s:%d: %s", path.name, lineno, exc)
        return entries

    @staticmethod
    def _ordered(entries: list[AuditLog], newest_first: bool) -> list[AuditLog]:
        indexed = sorted(enumerate(entries), key=lambda p: (p[1].timestamp, p[0]), reverse=newest_first)
        return [e for _, e in indexed]

    def _filtered(
        self,
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        project_id: Optional[str] = None,
        account_id: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[AuditLog]:
        entries = self._read_all_entries()

        if actor_id:
            entries = [e for e in entries if e.actor_id == actor_id]
        if action:
            entries = [e for e in entries if e.action == action]
        if resource_type:
            entries = [e for e in entries if e.resource_type == resource_type]
        if resource_id:
            entries = [e for e in entries if e.resource_id == resource_id]
        if project_id:
            entries = [e for e in entries if e.project_id == project_id]
        if account_id:
            entries = [e for e in entries if e.account_id == account_id]
        if start_date:
            entries = [e for e in entries if e.timestamp >= start_date]
        if end_date:
            entries = [e for e in entries if e.timestamp <= end_date]
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, entry: AuditLog) -> AuditLog:
        """Persist one entry. Raises :class:`AuditWriteError` on I/O failure
        or when the entry's timestamp is not an ISO-8601 datetime."""
        try:
            written_at = datetime.fromisoformat(entry.timestamp)
        except (TypeError, ValueError) as exc:
            raise AuditWriteError(f"Audit entry {entry.id} has an invalid timestamp: {exc}") from exc
        with self._lock:
            try:
                with self._log_file_for_date(written_at).open("a", encoding="utf-8") as fh:
                    fh.write(json.dumps(asdict(entry), default=str) + "\n")
            except OSError as exc:
                raise AuditWriteError(f"Could not write audit entry {entry.id}: {exc}") from exc
        return entry

    def commit(self, entry: AuditLog) -> AuditLog:
        """Persist an entry received from elsewhere under a fresh id and
        this store's commit time; the incoming id and timestamp are ignored."""
        return self.append(replace(entry, id=uuid.uuid4().hex[:16], timestamp=self._clock.now()))

    def get_events(self, *, limit: int = 200, offset: int = 0, **filters: Any) -> list[AuditLog]:
        """Return filtered audit events, newest first."""
        return self.page(limit=limit, offset=offset, **filters)[0]

    def page(self, *, limit: int = 200, offset: int = 0, **filters: Any) -> tuple[list[AuditLog], int]:
        """Return one page of filtered events, newest first, with the total match count."""
        entries = self._ordered(self._filtered(**filters), newest_first=True)
        return entries[offset:offset + limit], len(entries)

    def count(self, **filters: Any) -> int:
        return len(self._filtered(**filters))

    def get_history(self, resource_type: str, resource_id: str) -> list[AuditLog]:
        """Return all events for one resource, oldest first."""
        entries = [
            e
            for e in self._read_all_entries()
            if e.resource_type == resource_type and e.resource_id == resource_id
        ]
        return self._ordered(entries, newest_first=False)

    def export_events(self, fmt: str = "json", **filters: Any) -> str:
        """Export audit events in the requested format (``json`` or ``csv``)."""
        filters.setdefault("limit", 10000)
        return render_events(self.get_events(**filters), fmt)


def render_events(entries: list[AuditLog], fmt: str = "json") -> str:
    """Serialize entries as a JSON array or as CSV with a header row."""
    if fmt == "csv":
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(
            ["id", "timestamp", "actor_id", "action", "resource_type",
             "resource_id", "project_id", "changes", "warning"]
        )
        for e in entries:
            writer.writerow([
                e.id, e.timestamp, e.actor_id, e.action, e.resource_type,
                e.resource_id, e.project_id or "", json.dumps(e.changes, default=str),
                e.warning or "",
            ])
        return buf.getvalue()

    return json.dumps([asdict(e) for e in entries], indent=2, default=str)


def diff_fields(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return ``{field: {"from": old, "to": new}}`` for every differing field."""
    changes: dict[str, dict[str, Any]] = {}
    for key in sorted(set(before) | set(after)):
        old, new = before.get(key), after.get(key)
        if old != new:
            changes[key] = {"from": old, "to": new}
    return changes


class AuditRecorder:
    """Turns committed transitions into audit entries.

    Timestamps are assigned when the entry is written and never move
    backwards for a given recorder, so per-resource history stays ordered.
    """

    def __init__(self, store: AuditStore, context: SessionContext) -> None:
        self.store = store
        self.context = context
        self._clock = CommitClock()

    def record(
        self,
        action: AuditAction | str,
        resource_type: ResourceType | str,
        resource_id: str,
        changes: dict[str, dict[str, Any]],
        metadata: Optional[dict[str, Any]] = None,
        project_id: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """Write one audit entry, or nothing if no field actually changed.

        Raises ``ValueError`` for actions outside the closed set and
        :class:`AuditWriteError` when persistence fails.
        """
        action = AuditAction(action)
        resource_type = ResourceType(resource_type)
        effective = {
            name: {"from": delta.get("from"), "to": delta.get("to")}
            for name, delta in changes.items()
            if delta.get("from") != delta.get("to")
        }
        if not effective:
            logger.debug("No field delta for %s on %s; nothing recorded", action.value, resource_id)
            return None

        entry = AuditLog(
            id=uuid.uuid4().hex[:16],
            timestamp=self._clock.now(),
            actor_id=self.context.actor_id,
            account_id=self.context.account_id,
            action=action.value,
            resource_type=resource_type.value,
            resource_id=resource_id,
            project_id=project_id,
            changes=effective,
            metadata=dict(metadata or {}),
        )
        return self.store.append(entry)

    def record_committed(self, result: Any, *args: Any, **kwargs: Any) -> Optional[AuditLog]:
        """Record an entry for a change that is already committed.

        A storage failure does not undo ``result``; it is raised as
        :class:`PartialFailure` carrying ``result`` so the caller can still
        show the new state while flagging the incomplete audit trail.
        """
        try:
            return self.record(*args, **kwargs)
        except AuditWriteError as exc:
            logger.error("Audit write failed after commit: %s", exc)
            raise PartialFailure(result, exc) from exc
