"""Permissions router -- grants on projects and folders.

Grants are stored as given; the client-side service audits them and
computes a folder's effective grants from its project.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status

from syncrules.governance.errors import NotFoundError
from syncrules.governance.models import Permission, ResourceType, SessionContext
from syncrules.governance.store import GovernanceStore
from web.backend.app.middleware.auth import get_session_context, get_store
from web.backend.app.models.api import (
    PermissionRequest,
    PermissionResponse,
    ProjectPermissionRequest,
    ProjectResponse,
    ToggleInheritRequest,
    UpdatePermissionRequest,
)
from web.backend.app.routers.folders import _get_folder_or_404
from web.backend.app.routers.projects import _get_project_or_404, _project_response

router = APIRouter(prefix="/api", tags=["permissions"])


def _permission_response(p: Permission) -> PermissionResponse:
    return PermissionResponse(
        id=p.id,
        account_id=p.account_id,
        resource_type=p.resource_type.value,
        resource_id=p.resource_id,
        target_type=p.target_type,
        target_id=p.target_id,
        target_name=p.target_name,
        permission_type=p.permission_type,
        granted_by=p.granted_by,
        granted_at=p.granted_at,
        inherited_from=p.inherited_from,
    )


def _get_permission_or_404(permission_id: str, ctx: SessionContext, store: GovernanceStore) -> Permission:
    permission = store.get_permission(permission_id)
    if permission.account_id != ctx.account_id:
        raise NotFoundError("permission", permission_id)
    return permission


def _grant(
    body: PermissionRequest,
    resource_type: ResourceType,
    resource_id: str,
    ctx: SessionContext,
    store: GovernanceStore,
) -> PermissionResponse:
    permission = Permission(
        id=body.id or str(uuid.uuid4()),
        account_id=ctx.account_id,
        resource_type=resource_type,
        resource_id=resource_id,
        target_type=body.target_type,
        target_id=body.target_id,
        target_name=body.target_name,
        permission_type=body.permission_type,
        granted_by=ctx.actor_id,
    )
    return _permission_response(store.create_permission(permission))


# ---------------------------------------------------------------------------
# Folder permissions
# ---------------------------------------------------------------------------


@router.get("/folders/{folder_id}/permissions", response_model=list[PermissionResponse])
async def list_folder_permissions(
    folder_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """List the grants stored on a folder itself."""
    _get_folder_or_404(folder_id, ctx, store)
    return [_permission_response(p) for p in store.list_permissions(ResourceType.folder.value, folder_id)]


@router.post(
    "/folders/{folder_id}/permissions",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_folder_permission(
    folder_id: str,
    body: PermissionRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_folder_or_404(folder_id, ctx, store)
    return _grant(body, ResourceType.folder, folder_id, ctx, store)


# ---------------------------------------------------------------------------
# Project permissions
# ---------------------------------------------------------------------------


@router.get("/project-permissions", response_model=list[PermissionResponse])
async def list_project_permissions(
    project_id: str = Query(...),
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_project_or_404(project_id, ctx, store)
    return [_permission_response(p) for p in store.list_permissions(ResourceType.project.value, project_id)]


@router.post("/project-permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_project_permission(
    body: ProjectPermissionRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_project_or_404(body.project_id, ctx, store)
    return _grant(body, ResourceType.project, body.project_id, ctx, store)


@router.post("/project-permissions/toggle-inherit", response_model=ProjectResponse)
async def toggle_inherit_permissions(
    body: ToggleInheritRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Turn the flow of project grants into the project's folders on or off."""
    _get_project_or_404(body.project_id, ctx, store)
    return _project_response(store.set_inherit_permissions(body.project_id, body.enabled))


# ---------------------------------------------------------------------------
# Single grants
# ---------------------------------------------------------------------------


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    return _permission_response(_get_permission_or_404(permission_id, ctx, store))


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    body: UpdatePermissionRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_permission_or_404(permission_id, ctx, store)
    return _permission_response(store.update_permission(permission_id, body.permission_type.value))


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_permission_or_404(permission_id, ctx, store)
    store.delete_permission(permission_id)
