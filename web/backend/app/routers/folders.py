"""Folders & rules router -- folder storage and sync state transitions.

The transition endpoints apply the state change only; the client-side
engine confirms with the user and records the audit entry afterwards.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from syncrules.governance.errors import NotFoundError
from syncrules.governance.models import Folder, Rule, SessionContext, SourceOfTruth, SyncStatus
from syncrules.governance.store import GovernanceStore
from web.backend.app.middleware.auth import get_session_context, get_store
from web.backend.app.models.api import (
    FolderRequest,
    FolderResponse,
    RuleRequest,
    RuleResponse,
    ShareFolderRequest,
    UpdateRuleRequest,
)

router = APIRouter(prefix="/api", tags=["folders"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _folder_response(f: Folder) -> FolderResponse:
    return FolderResponse(
        id=f.id,
        account_id=f.account_id,
        name=f.name,
        path=f.path,
        project_id=f.project_id,
        source_of_truth=f.source_of_truth,
        sync_status=f.sync_status,
        folder_status=f.folder_status.value,
        inherited_from=f.inherited_from,
        created_at=f.created_at,
        updated_at=f.updated_at,
    )


def _rule_response(r: Rule) -> RuleResponse:
    return RuleResponse(**r.__dict__)


def _get_folder_or_404(folder_id: str, ctx: SessionContext, store: GovernanceStore) -> Folder:
    folder = store.get_folder(folder_id)
    if folder.account_id != ctx.account_id:
        raise NotFoundError("folder", folder_id)
    return folder


def _get_rule_or_404(rule_id: str, ctx: SessionContext, store: GovernanceStore) -> Rule:
    rule = store.get_rule(rule_id)
    if rule.account_id != ctx.account_id:
        raise NotFoundError("rule", rule_id)
    return rule


# ---------------------------------------------------------------------------
# Folder CRUD
# ---------------------------------------------------------------------------


@router.get("/folders", response_model=list[FolderResponse])
async def list_folders(
    project_id: Optional[str] = Query(None),
    account_only: bool = Query(False),
    account_id: Optional[str] = Query(None),
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """List folders of the caller's account, optionally for one project."""
    if account_id and account_id != ctx.account_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Requests are scoped to the account in X-Account-Id",
        )
    folders = store.list_folders(ctx.account_id, project_id=project_id, account_only=account_only)
    return [_folder_response(f) for f in folders]


@router.post("/folders", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    body: FolderRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Create a local folder. Inherited folders come from sharing only."""
    if body.account_id != ctx.account_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Folders can only be created in the caller's account",
        )
    folder = Folder(
        **body.model_dump(),
        source_of_truth=SourceOfTruth.account if body.project_id is None else SourceOfTruth.project,
        sync_status=SyncStatus.local,
    )
    return _folder_response(store.create_folder(folder))


@router.get("/folders/{folder_id}", response_model=FolderResponse)
async def get_folder(
    folder_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    return _folder_response(_get_folder_or_404(folder_id, ctx, store))


@router.delete("/folders/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_folder(
    folder_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_folder_or_404(folder_id, ctx, store)
    store.delete_folder(folder_id)


# ---------------------------------------------------------------------------
# Sync transitions
# ---------------------------------------------------------------------------


@router.patch("/folders/{folder_id}/detach", response_model=FolderResponse)
async def detach_folder(
    folder_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Flip a synced folder to detached in place (the folder id is kept)."""
    _get_folder_or_404(folder_id, ctx, store)
    return _folder_response(store.detach_folder(folder_id))


@router.patch("/folders/{folder_id}/resync", response_model=FolderResponse)
async def resync_folder(
    folder_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Overwrite a detached folder with its account source."""
    _get_folder_or_404(folder_id, ctx, store)
    return _folder_response(store.resync_folder(folder_id))


@router.patch("/folders/{folder_id}/localize", response_model=FolderResponse)
async def localize_folder(
    folder_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Sever a project folder from its account source."""
    _get_folder_or_404(folder_id, ctx, store)
    return _folder_response(store.localize_folder(folder_id))


@router.post("/folders/{folder_id}/share", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def share_folder(
    folder_id: str,
    body: ShareFolderRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """Clone an account-level folder into a project as a synced mirror."""
    _get_folder_or_404(folder_id, ctx, store)
    return _folder_response(store.share_folder(folder_id, body.project_id))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@router.get("/folders/{folder_id}/rules", response_model=list[RuleResponse])
async def list_rules(
    folder_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    """List a folder's rules; synced folders return their account source's rules."""
    _get_folder_or_404(folder_id, ctx, store)
    return [_rule_response(r) for r in store.list_rules(folder_id)]


@router.post("/rules", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
async def create_rule(
    body: RuleRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_folder_or_404(body.folder_id, ctx, store)
    if body.account_id != ctx.account_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Rules can only be created in the caller's account",
        )
    return _rule_response(store.create_rule(Rule(**body.model_dump())))


@router.get("/rules/{rule_id}", response_model=RuleResponse)
async def get_rule(
    rule_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    return _rule_response(_get_rule_or_404(rule_id, ctx, store))


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: str,
    body: UpdateRuleRequest,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_rule_or_404(rule_id, ctx, store)
    return _rule_response(store.update_rule(rule_id, **body.model_dump(exclude_none=True)))


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    ctx: SessionContext = Depends(get_session_context),
    store: GovernanceStore = Depends(get_store),
):
    _get_rule_or_404(rule_id, ctx, store)
    store.delete_rule(rule_id)
