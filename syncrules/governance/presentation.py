"""Presentation adapters — badges, indicators, and confirmation prompts.

Pure, deterministic mappings from governance enums to display metadata.
Every table is keyed by the full enum so a new member without a mapping is
caught by the exhaustiveness tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from syncrules.governance.models import (
    AuditAction,
    FolderStatus,
    InheritanceMode,
    PermissionTargetType,
    PermissionType,
    SourceOfTruth,
    SyncStatus,
)


class IconKind(str, Enum):
    lock = "lock"
    unlock = "unlock"
    arrow_down = "arrow-down"
    git_branch = "git-branch"
    folder = "folder"
    folder_kanban = "folder-kanban"
    building = "building"
    x = "x"
    plus = "plus"
    edit = "edit"
    trash = "trash"
    alert = "alert-triangle"
    shield = "shield"
    user = "user"
    users = "users"


class Tone(str, Enum):
    """Colour family a badge is rendered in."""

    green = "green"
    yellow = "yellow"
    red = "red"
    blue = "blue"
    purple = "purple"
    gray = "gray"


class Transition(str, Enum):
    """User-invoked transitions that need a confirmation prompt."""

    detach = "detach"
    resync = "resync"
    remove_inheritance = "remove_inheritance"
    restore_inheritance = "restore_inheritance"
    revoke_permission = "revoke_permission"
    enable_permission_inheritance = "enable_permission_inheritance"
    disable_permission_inheritance = "disable_permission_inheritance"


@dataclass(frozen=True)
class Badge:
    label: str
    icon: IconKind
    tooltip: str
    tone: Tone = Tone.gray


@dataclass(frozen=True)
class ConfirmationPrompt:
    title: str
    description: str
    variant: str = "warning"
    confirm_text: str = "Confirm"


# ---------------------------------------------------------------------------
# Mapping tables
# ---------------------------------------------------------------------------

FOLDER_STATUS_BADGES: dict[FolderStatus, Badge] = {
    FolderStatus.read_only: Badge("Read-only", IconKind.lock, "Status: Read-only", Tone.red),
    FolderStatus.editable: Badge("Editable", IconKind.unlock, "Status: Editable", Tone.green),
}

SOURCE_OF_TRUTH_BADGES: dict[SourceOfTruth, Badge] = {
    SourceOfTruth.account: Badge(
        "Account",
        IconKind.building,
        "Source of truth: Account level. Changes here affect all synced projects.",
        Tone.purple,
    ),
    SourceOfTruth.project: Badge(
        "Project",
        IconKind.folder_kanban,
        "Source of truth: Project level. Changes are local to this project.",
        Tone.blue,
    ),
}

SYNC_STATUS_BADGES: dict[SyncStatus, tuple[str, IconKind, Tone]] = {
    SyncStatus.synced: ("Synced", IconKind.arrow_down, Tone.green),
    SyncStatus.detached: ("Detached", IconKind.git_branch, Tone.yellow),
    SyncStatus.local: ("Local", IconKind.folder, Tone.gray),
}

INHERITANCE_BADGES: dict[InheritanceMode, tuple[str, IconKind, Tone]] = {
    InheritanceMode.full: ("Full Inheritance", IconKind.arrow_down, Tone.green),
    InheritanceMode.partial: ("Partial Inheritance", IconKind.git_branch, Tone.yellow),
    InheritanceMode.none: ("No Inheritance", IconKind.x, Tone.gray),
}

PERMISSION_BADGES: dict[PermissionType, Badge] = {
    PermissionType.admin: Badge(
        "Admin", IconKind.shield, "Full access: read, write, and manage permissions", Tone.purple
    ),
    PermissionType.write: Badge("Write", IconKind.edit, "Can read and modify content", Tone.blue),
    PermissionType.read: Badge("Read", IconKind.lock, "Read-only access", Tone.green),
    PermissionType.none: Badge("No Access", IconKind.x, "No access to this resource", Tone.red),
}

PERMISSION_TARGET_ICONS: dict[PermissionTargetType, IconKind] = {
    PermissionTargetType.user: IconKind.user,
    PermissionTargetType.group: IconKind.users,
}

AUDIT_ACTION_BADGES: dict[AuditAction, Badge] = {
    AuditAction.project_created: Badge("Project Created", IconKind.plus, "A project was created", Tone.green),
    AuditAction.project_updated: Badge("Project Updated", IconKind.edit, "Project settings changed", Tone.blue),
    AuditAction.project_deleted: Badge("Project Deleted", IconKind.trash, "A project was deleted", Tone.red),
    AuditAction.folder_synced: Badge(
        "Folder Synced", IconKind.git_branch, "Folder re-synced from its account source", Tone.yellow
    ),
    AuditAction.folder_detached: Badge(
        "Folder Detached", IconKind.git_branch, "Folder detached from its account source", Tone.yellow
    ),
    AuditAction.rule_created: Badge("Rule Created", IconKind.plus, "A rule was created", Tone.green),
    AuditAction.rule_updated: Badge("Rule Updated", IconKind.edit, "A rule was edited", Tone.blue),
    AuditAction.rule_deleted: Badge("Rule Deleted", IconKind.trash, "A rule was deleted", Tone.red),
    AuditAction.inheritance_changed: Badge(
        "Inheritance Changed", IconKind.folder_kanban, "Project inheritance changed", Tone.gray
    ),
    AuditAction.permission_granted: Badge(
        "Permission Granted", IconKind.shield, "Access to a project or folder was granted", Tone.green
    ),
    AuditAction.permission_revoked: Badge(
        "Permission Revoked", IconKind.x, "Access to a project or folder was revoked", Tone.red
    ),
}


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


def folder_status_badge(folder_status: FolderStatus | str) -> Badge:
    return FOLDER_STATUS_BADGES[FolderStatus(folder_status)]


def source_of_truth_badge(source: SourceOfTruth | str) -> Badge:
    return SOURCE_OF_TRUTH_BADGES[SourceOfTruth(source)]


def folder_badge(
    sync_status: SyncStatus | str,
    folder_status: FolderStatus | str,
    inherited_from: Optional[str],
    source_of_truth: SourceOfTruth | str,
) -> Badge:
    """Describe a folder's governance state in one badge."""
    status = SyncStatus(sync_status)
    label, icon, tone = SYNC_STATUS_BADGES[status]
    origin = f"account folder '{inherited_from}'" if inherited_from else "its account folder"

    if status == SyncStatus.synced:
        lead = f"Mirrors {origin}. Changes propagate from the account automatically."
    elif status == SyncStatus.detached:
        lead = f"Independent copy of {origin}. Account changes no longer apply here."
    else:
        lead = "Created in this scope with no account inheritance."

    parts = [
        lead,
        folder_status_badge(folder_status).tooltip + ".",
        source_of_truth_badge(source_of_truth).tooltip,
    ]
    return Badge(label, icon, " ".join(parts), tone)


def inheritance_badge(
    mode: InheritanceMode | str,
    synced_count: int = 0,
    detached_count: int = 0,
) -> Badge:
    """Describe a project's aggregate inheritance mode."""
    mode = InheritanceMode(mode)
    label, icon, tone = INHERITANCE_BADGES[mode]
    if mode == InheritanceMode.full:
        tooltip = "All folders are synced from Account. Changes propagate automatically."
    elif mode == InheritanceMode.partial:
        tooltip = f"Some folders are synced ({synced_count}), some are detached ({detached_count})."
    else:
        tooltip = "No inheritance from Account. All folders are local to this project."
    return Badge(label, icon, tooltip, tone)


def audit_action_badge(action: AuditAction | str) -> Badge:
    return AUDIT_ACTION_BADGES[AuditAction(action)]


def permission_badge(
    permission_type: PermissionType | str,
    target_type: Optional[PermissionTargetType | str] = None,
) -> Badge:
    """Describe a grant's access level, naming the kind of target when given."""
    badge = PERMISSION_BADGES[PermissionType(permission_type)]
    if target_type is None:
        return badge
    target_type = PermissionTargetType(target_type)
    return Badge(
        badge.label,
        badge.icon,
        f"{badge.tooltip}. Target: {target_type.value.capitalize()}",
        badge.tone,
    )


def permission_target_icon(target_type: PermissionTargetType | str) -> IconKind:
    return PERMISSION_TARGET_ICONS[PermissionTargetType(target_type)]


def confirmation_for(transition: Transition | str, subject: str = "") -> ConfirmationPrompt:
    """Return the prompt the UI must show before invoking a destructive transition."""
    transition = Transition(transition)
    name = f"'{subject}'" if subject else "this folder"
    if transition == Transition.detach:
        return ConfirmationPrompt(
            title="Detach folder?",
            description=(
                f"{name} will become an editable copy. It will stop receiving updates from "
                "the account, and re-syncing later will discard any edits made to the copy."
            ),
            confirm_text="Detach",
        )
    if transition == Transition.resync:
        return ConfirmationPrompt(
            title="Re-sync folder?",
            description=(
                f"{name} will be overwritten by the current account version. "
                "All local changes made since it was detached will be permanently lost."
            ),
            variant="destructive",
            confirm_text="Re-sync and discard changes",
        )
    if transition == Transition.remove_inheritance:
        project = f"'{subject}'" if subject else "this project"
        return ConfirmationPrompt(
            title="Remove inheritance?",
            description=(
                f"Every synced or detached folder in {project} will become local. "
                "They will no longer be linked to the account and cannot be re-synced."
            ),
            variant="destructive",
            confirm_text="Remove inheritance",
        )
    if transition == Transition.revoke_permission:
        target = f"'{subject}'" if subject else "this user or group"
        return ConfirmationPrompt(
            title=f"Remove permission for {subject or 'this target'}?",
            description=(
                f"This will revoke access for {target} to this resource. "
                "This action cannot be undone."
            ),
            variant="destructive",
            confirm_text="Remove",
        )
    project = f"'{subject}'" if subject else "this project"
    if transition == Transition.enable_permission_inheritance:
        return ConfirmationPrompt(
            title="Enable permission inheritance?",
            description=(
                f"Permissions granted on {project} will be inherited by its folders. "
                "Local folder permissions will be merged with inherited ones."
            ),
            variant="default",
            confirm_text="Enable",
        )
    if transition == Transition.disable_permission_inheritance:
        return ConfirmationPrompt(
            title="Disable permission inheritance?",
            description=(
                f"Folders in {project} will keep only their local permissions. "
                "Inherited permissions will be removed. This action cannot be undone."
            ),
            variant="destructive",
            confirm_text="Disable",
        )
    return ConfirmationPrompt(
        title="Restore full inheritance?",
        description=(
            f"Every detached folder in {project} will be re-synced from the account. "
            "Local changes in those folders will be permanently lost."
        ),
        variant="destructive",
        confirm_text="Re-sync all",
    )
