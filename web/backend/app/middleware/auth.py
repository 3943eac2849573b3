"""Identity middleware -- FastAPI dependencies for the caller's session.

Authentication itself is handled upstream. The gateway forwards:
1. ``X-Actor-Id: <user id>`` -- who is acting (used for audit attribution)
2. ``X-Account-Id: <account id>`` -- the tenant the request is scoped to
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status

from syncrules.config import load_settings
from syncrules.governance.audit import AuditStore
from syncrules.governance.models import SessionContext
from syncrules.governance.store import GovernanceStore

# Shared store instances
_store: Optional[GovernanceStore] = None
_audit_store: Optional[AuditStore] = None


def get_store() -> GovernanceStore:
    """Return the singleton GovernanceStore instance."""
    global _store
    if _store is None:
        _store = GovernanceStore(str(load_settings().data_dir))
    return _store


def get_audit_store() -> AuditStore:
    """Return the singleton AuditStore instance."""
    global _audit_store
    if _audit_store is None:
        _audit_store = AuditStore(load_settings().audit_dir)
    return _audit_store


async def get_session_context(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_account_id: Optional[str] = Header(None, alias="X-Account-Id"),
) -> SessionContext:
    """FastAPI dependency returning the caller's identity and tenant.

    Raises ``401 Unauthorized`` if either header is missing.
    """
    if not x_actor_id or not x_account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id or X-Account-Id header",
        )
    return SessionContext(actor_id=x_actor_id, account_id=x_account_id)
