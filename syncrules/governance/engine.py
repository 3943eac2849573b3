"""Sync transition engine — the only writer of folder inheritance state.

Three transitions are legal:

1. ``detach``: a synced project folder becomes an independent editable copy.
2. ``resync``: a detached folder is overwritten by its account source again.
3. ``set_inheritance_mode``: bulk re-sync (``full``) or bulk severing of
   account lineage (``none``) across a project.

The engine never prompts. Destructive operations take ``confirmed=True``
as proof that the presentation layer already obtained the user's decision.
Each successful transition is committed by the backend first and audited
second; a failed transition writes no audit entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from syncrules.governance.audit import AuditRecorder
from syncrules.governance.backend import GovernanceBackend
from syncrules.governance.errors import (
    ConfirmationRequiredError,
    GovernanceError,
    InvalidModeError,
    InvalidStateError,
    NotFoundError,
    PartialFailure,
)
from syncrules.governance.models import (
    AuditAction,
    AuditLog,
    Folder,
    InheritanceMode,
    Project,
    ResourceType,
    SyncStatus,
)
from syncrules.governance.resolver import InheritanceResolution, resolve_mode

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """Outcome of a single-folder transition."""

    folder: Folder
    previous: Folder
    audit_entry: Optional[AuditLog] = None
    warning: str = ""


@dataclass
class ItemFailure:
    """Why one item of a bulk operation did not go through."""

    item_id: str
    error: str
    error_type: str = ""

    @classmethod
    def from_exception(cls, item_id: str, exc: Exception) -> ItemFailure:
        return cls(item_id=item_id, error=str(exc), error_type=type(exc).__name__)


@dataclass
class BulkResult:
    """Aggregate outcome of a project-level inheritance change.

    Bulk operations are best-effort: ``failed`` lists per-folder errors,
    ``skipped`` lists folders the requested mode cannot apply to.
    """

    project_id: str
    requested_mode: InheritanceMode
    previous: InheritanceResolution
    resolution: InheritanceResolution
    succeeded: list[Folder] = field(default_factory=list)
    failed: list[ItemFailure] = field(default_factory=list)
    skipped: list[ItemFailure] = field(default_factory=list)
    audit_entry: Optional[AuditLog] = None

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return (
            f"{self.requested_mode.value}: {len(self.succeeded)} changed, "
            f"{len(self.failed)} failed, {len(self.skipped)} skipped "
            f"(now {self.resolution.mode.value})"
        )


@dataclass
class ShareResult:
    """Outcome of sharing one account folder into several projects."""

    source: Folder
    succeeded: list[Folder] = field(default_factory=list)
    failed: list[ItemFailure] = field(default_factory=list)
    audit_entries: list[AuditLog] = field(default_factory=list)


def coerce_mode(mode: Any) -> InheritanceMode:
    """Parse a requested inheritance mode, rejecting unknown values."""
    if isinstance(mode, InheritanceMode):
        return mode
    try:
        return InheritanceMode(str(mode).strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in InheritanceMode)
        raise InvalidModeError(f"Unknown inheritance mode '{mode}' (expected one of: {valid})") from None


def _status_changes(before: Folder, after: Folder) -> dict[str, dict[str, Any]]:
    return {
        "syncStatus": {"from": before.sync_status.value, "to": after.sync_status.value},
        "sourceOfTruth": {"from": before.source_of_truth.value, "to": after.source_of_truth.value},
        "folderStatus": {"from": before.folder_status.value, "to": after.folder_status.value},
        "inheritedFrom": {"from": before.inherited_from, "to": after.inherited_from},
        "name": {"from": before.name, "to": after.name},
        "path": {"from": before.path, "to": after.path},
    }


class SyncEngine:
    """Executes folder inheritance transitions against a backend."""

    def __init__(self, backend: GovernanceBackend, recorder: AuditRecorder) -> None:
        self.backend = backend
        self.recorder = recorder

    @property
    def account_id(self) -> str:
        return self.recorder.context.account_id

    # ------------------------------------------------------------------
    # Lookups scoped to the session's account
    # ------------------------------------------------------------------

    def _folder(self, folder_id: str) -> Folder:
        folder = self.backend.get_folder(folder_id)
        if folder.account_id != self.account_id:
            raise NotFoundError("folder", folder_id)
        return folder

    def _project(self, project_id: str) -> Project:
        project = self.backend.get_project(project_id)
        if project.account_id != self.account_id:
            raise NotFoundError("project", project_id)
        return project

    def _has_source(self, folder: Folder) -> bool:
        if not folder.inherited_from:
            return False
        try:
            source = self.backend.get_folder(folder.inherited_from)
        except NotFoundError:
            return False
        return source.is_account_level

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def inheritance(self, project_id: str) -> InheritanceResolution:
        """Recompute a project's inheritance mode from its current folders."""
        self._project(project_id)
        return resolve_mode(self.backend.list_folders(self.account_id, project_id=project_id))

    @staticmethod
    def folder_view(folder: Folder) -> dict[str, Any]:
        return {
            "sync_status": folder.sync_status.value,
            "folder_status": folder.folder_status.value,
            "inherited_from": folder.inherited_from,
            "source_of_truth": folder.source_of_truth.value,
        }

    # ------------------------------------------------------------------
    # Per-folder transitions
    # ------------------------------------------------------------------

    def detach(self, folder_id: str, *, confirmed: bool = False) -> TransitionResult:
        """Turn a synced folder into an independent, editable copy.

        The folder keeps its id and its ``inherited_from`` reference; the
        account-level original is not touched. Irreversible except by an
        explicit :meth:`resync`, which discards the copy's edits.
        """
        if not confirmed:
            raise ConfirmationRequiredError("Detaching a folder must be confirmed")
        before = self._folder(folder_id)
        if before.sync_status != SyncStatus.synced:
            raise InvalidStateError(
                f"Cannot detach folder '{before.name}': it is {before.sync_status.value}, not synced",
                current=before.sync_status.value,
            )

        after = self.backend.detach_folder(folder_id)
        logger.info("Detached folder %s (source %s)", after.id, after.inherited_from)

        result = TransitionResult(folder=after, previous=before)
        result.audit_entry = self.recorder.record_committed(
            result,
            AuditAction.folder_detached,
            ResourceType.folder,
            after.id,
            _status_changes(before, after),
            metadata={"inherited_from": after.inherited_from},
            project_id=after.project_id,
        )
        return result

    def resync(self, folder_id: str, *, confirmed: bool = False) -> TransitionResult:
        """Overwrite a detached folder with its account source.

        Every local change made since the folder was detached is lost; the
        returned result carries a warning describing what was discarded.
        """
        if not confirmed:
            raise ConfirmationRequiredError("Re-syncing a folder discards local changes and must be confirmed")
        before = self._folder(folder_id)
        if before.sync_status != SyncStatus.detached:
            raise InvalidStateError(
                f"Cannot re-sync folder '{before.name}': it is {before.sync_status.value}, not detached",
                current=before.sync_status.value,
            )
        discarded = len(self.backend.list_rules(folder_id))

        after = self.backend.resync_folder(folder_id)
        warning = (
            f"Local changes to '{before.name}' made since it was detached were discarded "
            f"({discarded} local rule(s) replaced by the account version)."
        )
        logger.info("Re-synced folder %s from %s; %d local rules discarded", after.id, after.inherited_from, discarded)

        result = TransitionResult(folder=after, previous=before, warning=warning)
        result.audit_entry = self.recorder.record_committed(
            result,
            AuditAction.folder_synced,
            ResourceType.folder,
            after.id,
            _status_changes(before, after),
            metadata={
                "warning": warning,
                "inherited_from": after.inherited_from,
                "discarded_rule_count": discarded,
            },
            project_id=after.project_id,
        )
        return result

    # ------------------------------------------------------------------
    # Project-level transitions
    # ------------------------------------------------------------------

    def set_inheritance_mode(
        self,
        project_id: str,
        mode: InheritanceMode | str,
        *,
        confirmed: bool = False,
    ) -> BulkResult:
        """Apply a project-wide inheritance mode.

        ``full`` re-syncs every detached folder that still has an account
        source; ``none`` converts every synced or detached folder to local.
        ``partial`` only describes mixed state and cannot be requested.
        """
        requested = coerce_mode(mode)
        if requested == InheritanceMode.partial:
            raise InvalidModeError(
                "'partial' is an observed state, not a mode that can be set; "
                "detach or re-sync individual folders instead"
            )
        self._project(project_id)
        folders = self.backend.list_folders(self.account_id, project_id=project_id)
        previous = resolve_mode(folders)

        skipped: list[ItemFailure] = []
        if requested == InheritanceMode.full:
            targets = []
            for folder in folders:
                if folder.sync_status == SyncStatus.synced:
                    continue
                if folder.sync_status == SyncStatus.local or not self._has_source(folder):
                    skipped.append(ItemFailure(folder.id, "No account-level source to sync from", "NoSource"))
                    continue
                targets.append(folder)
            if targets and not confirmed:
                raise ConfirmationRequiredError(
                    f"Re-syncing {len(targets)} detached folder(s) discards their local changes and must be confirmed"
                )
            apply = self.backend.resync_folder
        else:
            if not confirmed:
                raise ConfirmationRequiredError("Removing inheritance is destructive and must be confirmed")
            targets = [f for f in folders if f.sync_status in (SyncStatus.synced, SyncStatus.detached)]
            apply = self.backend.localize_folder

        succeeded: list[Folder] = []
        failed: list[ItemFailure] = []
        changes: dict[str, dict[str, Any]] = {}
        for folder in targets:
            try:
                after = apply(folder.id)
            except GovernanceError as exc:
                logger.warning("Inheritance change failed for folder %s: %s", folder.id, exc)
                failed.append(ItemFailure.from_exception(folder.id, exc))
                continue
            succeeded.append(after)
            changes[f"syncStatus:{folder.id}"] = {
                "from": folder.sync_status.value,
                "to": after.sync_status.value,
            }

        resolution = resolve_mode(self.backend.list_folders(self.account_id, project_id=project_id))
        result = BulkResult(
            project_id=project_id,
            requested_mode=requested,
            previous=previous,
            resolution=resolution,
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
        )
        logger.info("Set inheritance of project %s: %s", project_id, result.summary())
        if not succeeded:
            return result

        changes["inheritanceMode"] = {"from": previous.mode.value, "to": resolution.mode.value}
        metadata: dict[str, Any] = {
            "requested_mode": requested.value,
            "failed": [f.item_id for f in failed],
            "skipped": [s.item_id for s in skipped],
        }
        if requested == InheritanceMode.none:
            metadata["warning"] = (
                f"{len(succeeded)} folder(s) were cut off from the account and will no longer receive its updates."
            )
        else:
            metadata["warning"] = (
                f"Local changes in {len(succeeded)} detached folder(s) were discarded by re-sync."
            )
        result.audit_entry = self.recorder.record_committed(
            result,
            AuditAction.inheritance_changed,
            ResourceType.project,
            project_id,
            changes,
            metadata=metadata,
            project_id=project_id,
        )
        return result

    def share_folder(self, account_folder_id: str, project_ids: list[str]) -> ShareResult:
        """Clone an account-level folder into projects as synced mirrors.

        Each project is handled independently; one failure does not stop
        the others. Audit failures are collected and raised together as a
        :class:`PartialFailure` once every project has been processed.
        """
        source = self._folder(account_folder_id)
        if not source.is_account_level:
            raise InvalidStateError(f"Folder '{source.name}' is not an account-level folder")

        result = ShareResult(source=source)
        audit_errors: list[Exception] = []
        for project_id in project_ids:
            try:
                self._project(project_id)
                before = resolve_mode(self.backend.list_folders(self.account_id, project_id=project_id))
                clone = self.backend.share_folder(source.id, project_id)
            except GovernanceError as exc:
                logger.warning("Sharing folder %s with project %s failed: %s", source.id, project_id, exc)
                result.failed.append(ItemFailure.from_exception(project_id, exc))
                continue
            result.succeeded.append(clone)
            after = resolve_mode(self.backend.list_folders(self.account_id, project_id=project_id))
            try:
                entry = self.recorder.record_committed(
                    result,
                    AuditAction.inheritance_changed,
                    ResourceType.project,
                    project_id,
                    {
                        "inheritanceMode": {"from": before.mode.value, "to": after.mode.value},
                        f"syncStatus:{clone.id}": {"from": None, "to": clone.sync_status.value},
                    },
                    metadata={"shared_from": source.id},
                    project_id=project_id,
                )
            except PartialFailure as exc:
                audit_errors.append(exc.cause)
                continue
            if entry is not None:
                result.audit_entries.append(entry)

        if audit_errors:
            raise PartialFailure(result, audit_errors[0])
        return result
