"""Audit router -- append-only audit log storage, feed, history and export."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from syncrules.governance.audit import AuditStore, render_events
from syncrules.governance.models import AuditAction, AuditLog, ResourceType, SessionContext
from web.backend.app.middleware.auth import get_audit_store, get_session_context
from web.backend.app.models.api import (
    AuditEntryModel,
    AuditEntryRequest,
    AuditExportResponse,
    AuditFeedResponse,
    Pagination,
)

router = APIRouter(prefix="/api/audit-logs", tags=["audit"])


def _entry_model(e: AuditLog) -> AuditEntryModel:
    return AuditEntryModel(**e.__dict__)


@router.post("", response_model=AuditEntryModel, status_code=status.HTTP_201_CREATED)
async def append_audit_entry(
    body: AuditEntryRequest,
    ctx: SessionContext = Depends(get_session_context),
    audit_store: AuditStore = Depends(get_audit_store),
):
    """Append one entry written by a client-side recorder.

    Entries are attributed to the calling session; the body cannot claim
    another actor or account. The id and commit timestamp are assigned
    here, so ordering never depends on the writer's clock.
    """
    try:
        AuditAction(body.action)
        ResourceType(body.resource_type)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if body.actor_id != ctx.actor_id or (body.account_id and body.account_id != ctx.account_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Audit entries must be attributed to the calling session",
        )
    data = body.model_dump()
    data.update(id="", timestamp="", account_id=ctx.account_id)
    return _entry_model(audit_store.commit(AuditLog(**data)))


@router.get("", response_model=AuditFeedResponse)
async def list_audit_entries(
    actor_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    ctx: SessionContext = Depends(get_session_context),
    audit_store: AuditStore = Depends(get_audit_store),
):
    """Query the caller's account feed, newest first."""
    filters = dict(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        project_id=project_id,
        account_id=ctx.account_id,
        start_date=start_date,
        end_date=end_date,
    )
    entries, total = audit_store.page(limit=limit, offset=offset, **filters)
    return AuditFeedResponse(
        data=[_entry_model(e) for e in entries],
        pagination=Pagination(total=total, limit=limit, offset=offset),
    )


@router.get("/export", response_model=AuditExportResponse)
async def export_audit_entries(
    format: str = Query("json", pattern="^(json|csv)$"),
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    ctx: SessionContext = Depends(get_session_context),
    audit_store: AuditStore = Depends(get_audit_store),
):
    """Export the caller's account feed as JSON or CSV."""
    filters = dict(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        project_id=project_id,
        account_id=ctx.account_id,
        start_date=start_date,
        end_date=end_date,
    )
    entries = audit_store.get_events(limit=10000, **filters)
    return AuditExportResponse(format=format, content=render_events(entries, format), record_count=len(entries))


@router.get("/history/{resource_type}/{resource_id}", response_model=list[AuditEntryModel])
async def resource_history(
    resource_type: str,
    resource_id: str,
    ctx: SessionContext = Depends(get_session_context),
    audit_store: AuditStore = Depends(get_audit_store),
):
    """Return every entry for one resource, oldest first."""
    return [
        _entry_model(e)
        for e in audit_store.get_history(resource_type, resource_id)
        if e.account_id == ctx.account_id
    ]
