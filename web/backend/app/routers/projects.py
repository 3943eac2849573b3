"""Accounts & projects router -- project storage and inheritance read model."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from syncrules.governance.audit import AuditRecorder, AuditStore
from syncrules.governance.engine import SyncEngine
from syncrules.governance.errors import NotFoundError, PartialFailure
from syncrules.governance.models import Account, Project, SessionContext
from syncrules.governance.presentation import inheritance_badge
from syncrules.governance.resolver import resolve_mode
from syncrules.governance.store import GovernanceStore
from web.backend.app.middleware.auth import get_audit_store, get_session_context, get_store
from web.backend.app.models.api import (
    AccountRequest,
    AccountResponse,
    InheritanceResponse,
    ProjectRequest,
    ProjectResponse,
    UpdateProjectRequest,
)

router = APIRouter(prefix="/api", tags=["projects"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _project_response(p: Project) -> ProjectResponse:
    return ProjectResponse(
        id=p.id,
        account_id=p.account_id,
        name=p.name,
        slug=p.slug,
        description=p.description,
        created_at=p.created_at,
        updated_at=p.updated_at,
        inherit_permissions=p.inherit_permissions,
    )


def _get_project_or_404(project_id: str, ctx: SessionContext, store: GovernanceStore) -> Project:
    project = store.get_project(project_id)
    if project.account_id != ctx.account_id:
        raise NotFoundError("project", project_id)
    return project


def _require_same_account(account_id: Optional[str], ctx: SessionContext) -> None:
    if account_id and account_id != ctx.account_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Requests are scoped to the account in X-Account-Id",
        )


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    body: AccountRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Create an account. Callers may only create the account they are scoped to."""
    _require_same_account(body.id, ctx)
    account = store.create_account(Account(**body.model_dump()))
    return AccountResponse(**account.__dict__)


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    if account_id != ctx.account_id:
        raise NotFoundError("account", account_id)
    return AccountResponse(**store.get_account(account_id).__dict__)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.get("/projects", response_model=list[ProjectResponse])
async def list_projects(
    account_id: Optional[str] = Query(None),
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """List the projects of the caller's account."""
    _require_same_account(account_id, ctx)
    return [_project_response(p) for p in store.list_projects(ctx.account_id)]


@router.post("/projects", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _require_same_account(body.account_id, ctx)
    return _project_response(store.create_project(Project(**body.model_dump())))


@router.get("/projects/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    return _project_response(_get_project_or_404(project_id, ctx, store))


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: str,
    body: UpdateProjectRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
    audit_store: AuditStore = Depends(get_audit_store),
):
    """Update a project's name or description, or change its inheritance.

    Slugs are immutable. An ``inheritance_mode`` is applied through the sync
    engine and audited here; per-folder failures come back as ``warnings``.
    """
    project = _get_project_or_404(project_id, ctx, store)
    fields = body.model_dump(exclude_none=True, exclude={"inheritance_mode", "confirmed"})
    if fields:
        project = store.update_project(project_id, **fields)

    warnings: list[str] = []
    if body.inheritance_mode is not None:
        engine = SyncEngine(store, AuditRecorder(audit_store, ctx))
        try:
            result = engine.set_inheritance_mode(project_id, body.inheritance_mode, confirmed=body.confirmed)
        except PartialFailure as exc:
            result = exc.result
            warnings.append(str(exc))
        warnings.extend(f"{f.item_id}: {f.error}" for f in result.failed)
        if result.audit_entry is not None and result.audit_entry.warning:
            warnings.append(result.audit_entry.warning)

    response = _project_response(project)
    response.warnings = warnings
    return response


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_project_or_404(project_id, ctx, store)
    store.delete_project(project_id)


@router.get("/projects/{project_id}/inheritance", response_model=InheritanceResponse)
async def get_inheritance(
    project_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Return the project's inheritance mode, computed from its folders on every call."""
    _get_project_or_404(project_id, ctx, store)
    resolution = resolve_mode(store.list_folders(ctx.account_id, project_id=project_id))
    badge = inheritance_badge(resolution.mode, resolution.synced_count, resolution.detached_count)
    return InheritanceResponse(
        mode=resolution.mode,
        synced_count=resolution.synced_count,
        detached_count=resolution.detached_count,
        label=badge.label,
        icon=badge.icon.value,
        tooltip=badge.tooltip,
    )
