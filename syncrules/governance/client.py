"""HTTP backend -- the governance REST API as a :class:`GovernanceBackend`.

Lets the engine and services run against a remote server. Transport
failures become :class:`NetworkError`; error responses are mapped back onto
the governance error taxonomy using the ``error`` field the server sends.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Optional

import httpx

from syncrules.governance.errors import (
    AuditWriteError,
    BackendError,
    ConflictError,
    ConfirmationRequiredError,
    GovernanceError,
    InvalidModeError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
)
from syncrules.governance.models import (
    Account,
    AuditLog,
    Folder,
    Permission,
    PermissionType,
    Project,
    ResourceType,
    Rule,
    SessionContext,
    SyncStatus,
)

logger = logging.getLogger(__name__)

_ERRORS_BY_NAME: dict[str, type[GovernanceError]] = {
    "ConflictError": ConflictError,
    "InvalidStateError": InvalidStateError,
    "InvalidModeError": InvalidModeError,
    "ConfirmationRequiredError": ConfirmationRequiredError,
}


def _folder(d: dict) -> Folder:
    return Folder(
        id=d["id"],
        account_id=d["account_id"],
        name=d["name"],
        path=d.get("path", ""),
        project_id=d.get("project_id"),
        source_of_truth=d.get("source_of_truth", "project"),
        sync_status=d.get("sync_status", "local"),
        inherited_from=d.get("inherited_from"),
        created_at=d.get("created_at", ""),
        updated_at=d.get("updated_at", ""),
    )


def _project(d: dict) -> Project:
    return Project(
        id=d["id"],
        account_id=d["account_id"],
        name=d["name"],
        slug=d["slug"],
        description=d.get("description", ""),
        created_at=d.get("created_at", ""),
        updated_at=d.get("updated_at", ""),
        inherit_permissions=d.get("inherit_permissions", True),
    )


def _rule(d: dict) -> Rule:
    return Rule(
        id=d["id"],
        folder_id=d["folder_id"],
        account_id=d["account_id"],
        name=d["name"],
        content=d.get("content", ""),
        path=d.get("path", ""),
        project_id=d.get("project_id"),
        created_at=d.get("created_at", ""),
        updated_at=d.get("updated_at", ""),
    )


def _permission(d: dict) -> Permission:
    return Permission(
        id=d["id"],
        account_id=d["account_id"],
        resource_type=d["resource_type"],
        resource_id=d["resource_id"],
        target_type=d["target_type"],
        target_id=d["target_id"],
        permission_type=d["permission_type"],
        target_name=d.get("target_name", ""),
        granted_by=d.get("granted_by", ""),
        granted_at=d.get("granted_at", ""),
    )


def _audit(d: dict) -> AuditLog:
    return AuditLog(
        id=d["id"],
        timestamp=d["timestamp"],
        actor_id=d["actor_id"],
        action=d["action"],
        resource_type=d["resource_type"],
        resource_id=d["resource_id"],
        account_id=d.get("account_id", ""),
        project_id=d.get("project_id"),
        changes=d.get("changes") or {},
        metadata=d.get("metadata") or {},
    )


class _ApiSession:
    """Shared httpx plumbing for the backend and audit clients."""

    def __init__(
        self,
        base_url: str,
        context: SessionContext,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"X-Actor-Id": context.actor_id, "X-Account-Id": context.account_id},
        )

    def close(self) -> None:
        self._client.close()

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.RequestError as exc:
            raise NetworkError(f"Could not reach governance API ({method} {url}): {exc}") from exc

        if response.is_success:
            return response.json() if response.content else None

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("detail") or f"HTTP {response.status_code}"
        if not isinstance(message, str):
            message = str(message)
        error_name = body.get("error", "")
        logger.debug("%s %s -> %d %s", method, url, response.status_code, message)

        if response.status_code == 404:
            raise NotFoundError(body.get("resource_type", "resource"), body.get("resource_id", url))
        if error_name in _ERRORS_BY_NAME:
            raise _ERRORS_BY_NAME[error_name](message)
        raise BackendError(message, status_code=response.status_code)


class HttpBackend:
    """Governance backend served by the REST API."""

    def __init__(
        self,
        base_url: str,
        context: SessionContext,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.context = context
        self._api = _ApiSession(base_url, context, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._api.close()

    # -- accounts & projects ---------------------------------------------

    def create_account(self, account: Account) -> Account:
        return Account(**self._api.request("POST", "/api/accounts", json=asdict(account)))

    def get_account(self, account_id: str) -> Account:
        return Account(**self._api.request("GET", f"/api/accounts/{account_id}"))

    def get_project(self, project_id: str) -> Project:
        return _project(self._api.request("GET", f"/api/projects/{project_id}"))

    def list_projects(self, account_id: str) -> list[Project]:
        return [_project(d) for d in self._api.request("GET", "/api/projects", params={"account_id": account_id})]

    def create_project(self, project: Project) -> Project:
        return _project(self._api.request("POST", "/api/projects", json=asdict(project)))

    def update_project(self, project_id: str, **fields: str) -> Project:
        body = {k: v for k, v in fields.items() if v is not None}
        return _project(self._api.request("PATCH", f"/api/projects/{project_id}", json=body))

    def delete_project(self, project_id: str) -> None:
        self._api.request("DELETE", f"/api/projects/{project_id}")

    def set_project_inheritance(
        self, project_id: str, mode: str, confirmed: bool = False
    ) -> tuple[Project, list[str]]:
        """Run a project-wide inheritance change on the server.

        The server applies and audits the change itself. Returns the project
        and any per-folder warnings.
        """
        body = self._api.request(
            "PATCH",
            f"/api/projects/{project_id}",
            json={"inheritance_mode": mode, "confirmed": confirmed},
        )
        return _project(body), list(body.get("warnings") or [])

    def set_inherit_permissions(self, project_id: str, enabled: bool) -> Project:
        return _project(
            self._api.request(
                "POST",
                "/api/project-permissions/toggle-inherit",
                json={"project_id": project_id, "enabled": enabled},
            )
        )

    # -- folders ---------------------------------------------------------

    def get_folder(self, folder_id: str) -> Folder:
        return _folder(self._api.request("GET", f"/api/folders/{folder_id}"))

    def list_folders(
        self,
        account_id: str,
        project_id: Optional[str] = None,
        account_only: bool = False,
    ) -> list[Folder]:
        params: dict[str, Any] = {"account_id": account_id}
        if project_id is not None:
            params["project_id"] = project_id
        if account_only:
            params["account_only"] = "true"
        return [_folder(d) for d in self._api.request("GET", "/api/folders", params=params)]

    def create_folder(self, folder: Folder) -> Folder:
        """Create a local folder; the API derives its source of truth."""
        if folder.sync_status != SyncStatus.local:
            raise InvalidStateError(
                "Only local folders can be created; share an account folder to inherit it",
                current=folder.sync_status.value,
            )
        body = {
            "id": folder.id,
            "account_id": folder.account_id,
            "project_id": folder.project_id,
            "name": folder.name,
            "path": folder.path,
        }
        return _folder(self._api.request("POST", "/api/folders", json=body))

    def delete_folder(self, folder_id: str) -> None:
        self._api.request("DELETE", f"/api/folders/{folder_id}")

    def detach_folder(self, folder_id: str) -> Folder:
        return _folder(self._api.request("PATCH", f"/api/folders/{folder_id}/detach"))

    def resync_folder(self, folder_id: str) -> Folder:
        return _folder(self._api.request("PATCH", f"/api/folders/{folder_id}/resync"))

    def localize_folder(self, folder_id: str) -> Folder:
        return _folder(self._api.request("PATCH", f"/api/folders/{folder_id}/localize"))

    def share_folder(self, account_folder_id: str, project_id: str) -> Folder:
        return _folder(
            self._api.request("POST", f"/api/folders/{account_folder_id}/share", json={"project_id": project_id})
        )

    # -- rules -----------------------------------------------------------

    def list_rules(self, folder_id: str) -> list[Rule]:
        return [_rule(d) for d in self._api.request("GET", f"/api/folders/{folder_id}/rules")]

    def get_rule(self, rule_id: str) -> Rule:
        return _rule(self._api.request("GET", f"/api/rules/{rule_id}"))

    def create_rule(self, rule: Rule) -> Rule:
        return _rule(self._api.request("POST", "/api/rules", json=asdict(rule)))

    def update_rule(self, rule_id: str, **fields: str) -> Rule:
        body = {k: v for k, v in fields.items() if v is not None}
        return _rule(self._api.request("PATCH", f"/api/rules/{rule_id}", json=body))

    def delete_rule(self, rule_id: str) -> None:
        self._api.request("DELETE", f"/api/rules/{rule_id}")

    # -- permissions -----------------------------------------------------

    def list_permissions(self, resource_type: str, resource_id: str) -> list[Permission]:
        if ResourceType(resource_type) == ResourceType.folder:
            body = self._api.request("GET", f"/api/folders/{resource_id}/permissions")
        else:
            body = self._api.request("GET", "/api/project-permissions", params={"project_id": resource_id})
        return [_permission(d) for d in body]

    def get_permission(self, permission_id: str) -> Permission:
        return _permission(self._api.request("GET", f"/api/permissions/{permission_id}"))

    def create_permission(self, permission: Permission) -> Permission:
        body = {
            "id": permission.id,
            "target_type": permission.target_type.value,
            "target_id": permission.target_id,
            "target_name": permission.target_name,
            "permission_type": permission.permission_type.value,
        }
        if permission.resource_type == ResourceType.folder:
            url = f"/api/folders/{permission.resource_id}/permissions"
        else:
            url = "/api/project-permissions"
            body["project_id"] = permission.resource_id
        return _permission(self._api.request("POST", url, json=body))

    def update_permission(self, permission_id: str, permission_type: str) -> Permission:
        body = {"permission_type": PermissionType(permission_type).value}
        return _permission(self._api.request("PUT", f"/api/permissions/{permission_id}", json=body))

    def delete_permission(self, permission_id: str) -> None:
        self._api.request("DELETE", f"/api/permissions/{permission_id}")


class HttpAuditStore:
    """Audit storage served by the REST API (``POST /api/audit-logs``)."""

    def __init__(
        self,
        base_url: str,
        context: SessionContext,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api = _ApiSession(base_url, context, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._api.close()

    def append(self, entry: AuditLog) -> AuditLog:
        try:
            return _audit(self._api.request("POST", "/api/audit-logs", json=asdict(entry)))
        except GovernanceError as exc:
            raise AuditWriteError(f"Could not write audit entry {entry.id}: {exc}") from exc

    def get_events(self, **filters: Any) -> list[AuditLog]:
        params = {k: v for k, v in filters.items() if v is not None}
        body = self._api.request("GET", "/api/audit-logs", params=params)
        return [_audit(d) for d in body["data"]]

    def get_history(self, resource_type: str, resource_id: str) -> list[AuditLog]:
        body = self._api.request("GET", f"/api/audit-logs/history/{resource_type}/{resource_id}")
        return [_audit(d) for d in body]

    def export_events(self, fmt: str = "json", **filters: Any) -> str:
        params = {k: v for k, v in filters.items() if v is not None}
        params["format"] = fmt
        return self._api.request("GET", "/api/audit-logs/export", params=params)["content"]
