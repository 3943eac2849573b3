"""Governance domain models for accounts, projects, folders, and rules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class SourceOfTruth(str, Enum):
    """Scope where a folder's canonical content is edited."""

    account = "account"
    project = "project"


class SyncStatus(str, Enum):
    """Relationship of a folder to its account-level original."""

    synced = "synced"
    detached = "detached"
    local = "local"


class FolderStatus(str, Enum):
    """Derived editability of a folder."""

    read_only = "read-only"
    editable = "editable"


class InheritanceMode(str, Enum):
    """Aggregate classification of a project's folder sync states."""

    full = "full"
    partial = "partial"
    none = "none"


class PermissionType(str, Enum):
    """Access level a grant gives its target."""

    read = "read"
    write = "write"
    admin = "admin"
    none = "none"


class PermissionTargetType(str, Enum):
    user = "user"
    group = "group"


class ResourceType(str, Enum):
    project = "project"
    folder = "folder"
    rule = "rule"
    permission = "permission"


class AuditAction(str, Enum):
    """Closed set of auditable actions."""

    project_created = "project.created"
    project_updated = "project.updated"
    project_deleted = "project.deleted"
    folder_synced = "folder.synced"
    folder_detached = "folder.detached"
    rule_created = "rule.created"
    rule_updated = "rule.updated"
    rule_deleted = "rule.deleted"
    inheritance_changed = "inheritance.changed"
    permission_granted = "permission.granted"
    permission_revoked = "permission.revoked"


# Statuses that carry an account lineage.
INHERITED_STATUSES = frozenset({SyncStatus.synced, SyncStatus.detached})

# Resources that can carry permission grants.
PERMISSION_RESOURCES = frozenset({ResourceType.project, ResourceType.folder})


@dataclass
class Account:
    """Top-level tenant owning projects and canonical folders."""

    id: str
    name: str
    slug: str
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()


@dataclass
class Project:
    """A workspace inside an account that may inherit account folders.

    The inheritance mode is never stored on the project; use
    :func:`syncrules.governance.resolver.resolve_mode` over its folders.
    ``inherit_permissions`` controls whether the project's grants also apply
    to its folders.
    """

    id: str
    account_id: str
    name: str
    slug: str
    description: str = ""
    created_at: str = ""
    updated_at: str = ""
    inherit_permissions: bool = True

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()
        if not self.updated_at:
            self.updated_at = self.created_at


@dataclass
class Folder:
    """A collection of rules, either account-level or owned by a project."""

    id: str
    account_id: str
    name: str
    path: str = ""
    project_id: Optional[str] = None
    source_of_truth: SourceOfTruth = SourceOfTruth.project
    sync_status: SyncStatus = SyncStatus.local
    inherited_from: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.source_of_truth, str):
            self.source_of_truth = SourceOfTruth(self.source_of_truth)
        if isinstance(self.sync_status, str):
            self.sync_status = SyncStatus(self.sync_status)
        if self.sync_status == SyncStatus.local and self.inherited_from:
            raise ValueError(
                f"Folder '{self.id}' is local and cannot be inherited from '{self.inherited_from}'"
            )
        if self.sync_status in INHERITED_STATUSES and not self.inherited_from:
            raise ValueError(
                f"Folder '{self.id}' is {self.sync_status.value} but has no inherited_from"
            )
        if not self.created_at:
            self.created_at = utcnow()
        if not self.updated_at:
            self.updated_at = self.created_at

    @property
    def folder_status(self) -> FolderStatus:
        if self.sync_status == SyncStatus.synced:
            return FolderStatus.read_only
        return FolderStatus.editable

    @property
    def is_account_level(self) -> bool:
        return self.project_id is None

    @property
    def is_inherited(self) -> bool:
        return self.inherited_from is not None


@dataclass
class Rule:
    """A markdown rule document stored inside a folder."""

    id: str
    folder_id: str
    account_id: str
    name: str
    content: str = ""
    path: str = ""
    project_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()
        if not self.updated_at:
            self.updated_at = self.created_at


@dataclass
class Permission:
    """An access grant on a project or folder for one user or group.

    ``inherited_from`` is only set on computed effective grants, naming the
    project the grant flows down from; stored grants never carry it.
    """

    id: str
    account_id: str
    resource_type: ResourceType
    resource_id: str
    target_type: PermissionTargetType
    target_id: str
    permission_type: PermissionType
    target_name: str = ""
    granted_by: str = ""
    granted_at: str = ""
    inherited_from: Optional[str] = None

    def __post_init__(self) -> None:
        self.resource_type = ResourceType(self.resource_type)
        self.target_type = PermissionTargetType(self.target_type)
        self.permission_type = PermissionType(self.permission_type)
        if self.resource_type not in PERMISSION_RESOURCES:
            raise ValueError(f"Permissions cannot be granted on a {self.resource_type.value}")
        if not self.target_id:
            raise ValueError("A permission needs a user or group to grant to")
        if not self.granted_at:
            self.granted_at = utcnow()


@dataclass
class AuditLog:
    """An immutable record of one governance transition."""

    id: str
    timestamp: str
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    account_id: str = ""
    project_id: Optional[str] = None
    changes: dict[str, dict[str, Any]] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def warning(self) -> Optional[str]:
        return self.metadata.get("warning")


@dataclass(frozen=True)
class SessionContext:
    """Identity and tenant selection for one application session.

    Supplied by the external auth layer and passed explicitly to the
    engine and services, never kept as global state.
    """

    actor_id: str
    account_id: str
