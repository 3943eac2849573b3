"""Pydantic models for API request/response serialization.

These models mirror the syncrules dataclasses and provide proper JSON
serialization for the FastAPI endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from syncrules.governance.models import (
    InheritanceMode,
    PermissionTargetType,
    PermissionType,
    SourceOfTruth,
    SyncStatus,
)


# ---------------------------------------------------------------------------
# Accounts & projects
# ---------------------------------------------------------------------------


class AccountRequest(BaseModel):
    id: str
    name: str
    slug: str
    created_at: str = ""


class AccountResponse(BaseModel):
    """Mirrors syncrules.governance.models.Account."""

    id: str
    name: str
    slug: str
    created_at: str = ""


class ProjectRequest(BaseModel):
    """A fully formed project, as created by the client-side service."""

    id: str
    account_id: str
    name: str
    slug: str
    description: str = ""
    created_at: str = ""
    updated_at: str = ""
    inherit_permissions: bool = True


class UpdateProjectRequest(BaseModel):
    """Project settings, or a project-wide inheritance change.

    ``inheritance_mode`` runs the bulk transition server-side; destructive
    modes require ``confirmed``.
    """

    name: Optional[str] = None
    description: Optional[str] = None
    inheritance_mode: Optional[str] = None
    confirmed: bool = False


class ProjectResponse(BaseModel):
    """Mirrors syncrules.governance.models.Project."""

    id: str
    account_id: str
    name: str
    slug: str
    description: str = ""
    created_at: str = ""
    updated_at: str = ""
    inherit_permissions: bool = True
    warnings: list[str] = Field(default_factory=list)


class InheritanceResponse(BaseModel):
    """Aggregate inheritance read model for one project."""

    mode: InheritanceMode
    synced_count: int = 0
    detached_count: int = 0
    label: str = ""
    icon: str = ""
    tooltip: str = ""


# ---------------------------------------------------------------------------
# Folders & rules
# ---------------------------------------------------------------------------


class FolderRequest(BaseModel):
    """A new local folder.

    Inheritance state is never client-supplied: synced folders are only
    created by sharing, and only the transition endpoints change them.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    account_id: str
    name: str
    path: str = ""
    project_id: Optional[str] = None


class FolderResponse(BaseModel):
    """Mirrors syncrules.governance.models.Folder, including derived status."""

    id: str
    account_id: str
    name: str
    path: str = ""
    project_id: Optional[str] = None
    source_of_truth: SourceOfTruth
    sync_status: SyncStatus
    folder_status: str
    inherited_from: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class ShareFolderRequest(BaseModel):
    project_id: str


class RuleRequest(BaseModel):
    id: str
    folder_id: str
    account_id: str
    name: str
    content: str = ""
    path: str = ""
    project_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


class UpdateRuleRequest(BaseModel):
    name: Optional[str] = None
    content: Optional[str] = None
    path: Optional[str] = None


class RuleResponse(BaseModel):
    """Mirrors syncrules.governance.models.Rule."""

    id: str
    folder_id: str
    account_id: str
    name: str
    content: str = ""
    path: str = ""
    project_id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionRequest(BaseModel):
    """A grant on the folder named in the path."""

    id: str = ""
    target_type: PermissionTargetType
    target_id: str
    target_name: str = ""
    permission_type: PermissionType


class ProjectPermissionRequest(PermissionRequest):
    project_id: str


class UpdatePermissionRequest(BaseModel):
    permission_type: PermissionType


class ToggleInheritRequest(BaseModel):
    project_id: str
    enabled: bool


class PermissionResponse(BaseModel):
    """Mirrors syncrules.governance.models.Permission."""

    id: str
    account_id: str
    resource_type: str
    resource_id: str
    target_type: PermissionTargetType
    target_id: str
    target_name: str = ""
    permission_type: PermissionType
    granted_by: str = ""
    granted_at: str = ""
    inherited_from: Optional[str] = None


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


class AuditEntryModel(BaseModel):
    """A single committed audit log entry."""

    id: str
    timestamp: str
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    account_id: str = ""
    project_id: Optional[str] = None
    changes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AuditEntryRequest(BaseModel):
    """An entry submitted by a client-side recorder.

    ``id`` and ``timestamp`` are accepted for compatibility but replaced by
    the server when the entry is committed.
    """

    id: str = ""
    timestamp: str = ""
    actor_id: str
    action: str
    resource_type: str
    resource_id: str
    account_id: str = ""
    project_id: Optional[str] = None
    changes: dict[str, dict[str, Any]] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Pagination(BaseModel):
    total: int = 0
    limit: int = 0
    offset: int = 0


class AuditFeedResponse(BaseModel):
    """A page of the time-ordered audit feed, newest first."""

    data: list[AuditEntryModel] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class AuditExportResponse(BaseModel):
    """Exported audit log content."""

    format: str
    content: str
    record_count: int = 0
