"""Audited CRUD for projects, folders, rules, and permissions.

Inheritance state is not touched here; see
:mod:`syncrules.governance.engine` for sync transitions.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from typing import Optional

from syncrules.governance.audit import AuditRecorder
from syncrules.governance.backend import GovernanceBackend
from syncrules.governance.errors import ConfirmationRequiredError, InvalidStateError, NotFoundError
from syncrules.governance.models import (
    AuditAction,
    Folder,
    Permission,
    PermissionTargetType,
    PermissionType,
    Project,
    ResourceType,
    Rule,
    SourceOfTruth,
    SyncStatus,
)

logger = logging.getLogger(__name__)


def slugify(name: str) -> str:
    """Create a URL-friendly slug from a project name."""
    slug = name.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


class GovernanceService:
    """Project, folder, rule, and permission management scoped to one account."""

    def __init__(self, backend: GovernanceBackend, recorder: AuditRecorder) -> None:
        self.backend = backend
        self.recorder = recorder

    @property
    def account_id(self) -> str:
        return self.recorder.context.account_id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _owned(self, entity, resource_type: str, resource_id: str):
        if entity.account_id != self.account_id:
            raise NotFoundError(resource_type, resource_id)
        return entity

    def _writable_folder(self, folder_id: str) -> Folder:
        folder = self.get_folder(folder_id)
        if folder.sync_status == SyncStatus.synced:
            raise InvalidStateError(
                f"Folder '{folder.name}' is synced from the account and is read-only; "
                "edit the account folder or detach this one first",
                current=folder.sync_status.value,
            )
        return folder

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self) -> list[Project]:
        return self.backend.list_projects(self.account_id)

    def get_project(self, project_id: str) -> Project:
        return self._owned(self.backend.get_project(project_id), "project", project_id)

    def create_project(self, name: str, description: str = "") -> Project:
        """Create a project. Its slug is derived from the name and never changes."""
        name = name.strip()
        slug = slugify(name)
        if not slug:
            raise ValueError("Project name must produce a valid slug")
        project = Project(
            id=str(uuid.uuid4()),
            account_id=self.account_id,
            name=name,
            slug=slug,
            description=description,
        )
        self.backend.create_project(project)
        logger.info("Created project %s (%s)", project.id, project.slug)
        self.recorder.record_committed(
            project,
            AuditAction.project_created,
            ResourceType.project,
            project.id,
            {"name": {"from": None, "to": project.name}, "slug": {"from": None, "to": project.slug}},
            project_id=project.id,
        )
        return project

    def update_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        slug: Optional[str] = None,
    ) -> Project:
        before = self.get_project(project_id)
        if slug is not None and slug != before.slug:
            raise ValueError("A project's slug cannot be changed after creation")
        if name is not None and not name.strip():
            raise ValueError("Project name cannot be empty")

        after = self.backend.update_project(
            project_id,
            name=name.strip() if name is not None else None,
            description=description,
        )
        self.recorder.record_committed(
            after,
            AuditAction.project_updated,
            ResourceType.project,
            project_id,
            {
                "name": {"from": before.name, "to": after.name},
                "description": {"from": before.description, "to": after.description},
            },
            project_id=project_id,
        )
        return after

    def delete_project(self, project_id: str) -> None:
        """Delete a project with its folders; account-level originals survive."""
        project = self.get_project(project_id)
        folder_count = len(self.backend.list_folders(self.account_id, project_id=project_id))
        self.backend.delete_project(project_id)
        logger.info("Deleted project %s with %d folders", project_id, folder_count)
        self.recorder.record_committed(
            None,
            AuditAction.project_deleted,
            ResourceType.project,
            project_id,
            {"name": {"from": project.name, "to": None}},
            metadata={"deleted_folder_count": folder_count},
            project_id=project_id,
        )

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def get_folder(self, folder_id: str) -> Folder:
        return self._owned(self.backend.get_folder(folder_id), "folder", folder_id)

    def list_folders(self, project_id: Optional[str] = None, account_only: bool = False) -> list[Folder]:
        return self.backend.list_folders(self.account_id, project_id=project_id, account_only=account_only)

    def create_folder(self, name: str, path: str = "", project_id: Optional[str] = None) -> Folder:
        """Create a local folder at account level or inside a project."""
        if not name.strip():
            raise ValueError("Folder name is required")
        if project_id is not None:
            self.get_project(project_id)
        folder = Folder(
            id=str(uuid.uuid4()),
            account_id=self.account_id,
            project_id=project_id,
            name=name.strip(),
            path=path or f"/{slugify(name)}",
            source_of_truth=SourceOfTruth.project if project_id else SourceOfTruth.account,
            sync_status=SyncStatus.local,
        )
        return self.backend.create_folder(folder)

    def delete_folder(self, folder_id: str) -> None:
        """Remove a folder. Synced folders, and account folders they still mirror, cannot be removed."""
        folder = self._writable_folder(folder_id)
        self.backend.delete_folder(folder.id)
        logger.info("Deleted folder %s", folder.id)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def list_rules(self, folder_id: str) -> list[Rule]:
        self.get_folder(folder_id)
        return self.backend.list_rules(folder_id)

    def create_rule(self, folder_id: str, name: str, content: str = "", path: str = "") -> Rule:
        folder = self._writable_folder(folder_id)
        if not name.strip():
            raise ValueError("Rule name is required")
        rule = Rule(
            id=str(uuid.uuid4()),
            folder_id=folder.id,
            account_id=self.account_id,
            project_id=folder.project_id,
            name=name.strip(),
            content=content,
            path=path or f"{folder.path.rstrip('/')}/{slugify(name)}.md",
        )
        self.backend.create_rule(rule)
        self.recorder.record_committed(
            rule,
            AuditAction.rule_created,
            ResourceType.rule,
            rule.id,
            {"name": {"from": None, "to": rule.name}},
            metadata={"folder_id": folder.id},
            project_id=folder.project_id,
        )
        return rule

    def update_rule(
        self,
        rule_id: str,
        name: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Rule:
        before = self._owned(self.backend.get_rule(rule_id), "rule", rule_id)
        folder = self._writable_folder(before.folder_id)
        after = self.backend.update_rule(rule_id, name=name, content=content)
        self.recorder.record_committed(
            after,
            AuditAction.rule_updated,
            ResourceType.rule,
            rule_id,
            {
                "name": {"from": before.name, "to": after.name},
                "content": {"from": before.content, "to": after.content},
            },
            metadata={"folder_id": folder.id},
            project_id=folder.project_id,
        )
        return after

    def delete_rule(self, rule_id: str) -> None:
        rule = self._owned(self.backend.get_rule(rule_id), "rule", rule_id)
        folder = self._writable_folder(rule.folder_id)
        self.backend.delete_rule(rule_id)
        self.recorder.record_committed(
            None,
            AuditAction.rule_deleted,
            ResourceType.rule,
            rule_id,
            {"name": {"from": rule.name, "to": None}},
            metadata={"folder_id": folder.id},
            project_id=folder.project_id,
        )

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def _permission_scope(self, resource_type: ResourceType | str, resource_id: str) -> Optional[str]:
        """Check the resource is ours and return the project id its audit entries belong to."""
        resource_type = ResourceType(resource_type)
        if resource_type == ResourceType.project:
            return self.get_project(resource_id).id
        if resource_type == ResourceType.folder:
            return self.get_folder(resource_id).project_id
        raise ValueError(f"Permissions cannot be granted on a {resource_type.value}")

    def get_permission(self, permission_id: str) -> Permission:
        return self._owned(self.backend.get_permission(permission_id), "permission", permission_id)

    def list_permissions(self, resource_type: ResourceType | str, resource_id: str) -> list[Permission]:
        self._permission_scope(resource_type, resource_id)
        return self.backend.list_permissions(ResourceType(resource_type).value, resource_id)

    def effective_permissions(self, folder_id: str) -> list[Permission]:
        """A folder's own grants plus those flowing down from its project.

        Project grants apply only while the project inherits permissions, and
        a grant on the folder itself overrides the project's for that target.
        """
        folder = self.get_folder(folder_id)
        own = self.backend.list_permissions(ResourceType.folder.value, folder.id)
        if folder.project_id is None:
            return own
        project = self.get_project(folder.project_id)
        if not project.inherit_permissions:
            return own
        overridden = {(p.target_type, p.target_id) for p in own}
        inherited = [
            replace(p, inherited_from=project.id)
            for p in self.backend.list_permissions(ResourceType.project.value, project.id)
            if (p.target_type, p.target_id) not in overridden
        ]
        return own + inherited

    def grant_permission(
        self,
        resource_type: ResourceType | str,
        resource_id: str,
        target_type: PermissionTargetType | str,
        target_id: str,
        permission_type: PermissionType | str,
        target_name: str = "",
    ) -> Permission:
        """Grant a user or group access to a project or folder."""
        project_id = self._permission_scope(resource_type, resource_id)
        permission = Permission(
            id=str(uuid.uuid4()),
            account_id=self.account_id,
            resource_type=resource_type,
            resource_id=resource_id,
            target_type=target_type,
            target_id=target_id.strip(),
            target_name=target_name or target_id.strip(),
            permission_type=permission_type,
            granted_by=self.recorder.context.actor_id,
        )
        self.backend.create_permission(permission)
        logger.info(
            "Granted %s on %s %s to %s %s",
            permission.permission_type.value,
            permission.resource_type.value,
            resource_id,
            permission.target_type.value,
            permission.target_id,
        )
        self.recorder.record_committed(
            permission,
            AuditAction.permission_granted,
            ResourceType.permission,
            permission.id,
            {"permissionType": {"from": None, "to": permission.permission_type.value}},
            metadata=self._permission_metadata(permission),
            project_id=project_id,
        )
        return permission

    def update_permission(self, permission_id: str, permission_type: PermissionType | str) -> Permission:
        """Change a grant's level; recorded as a re-grant at the new level."""
        before = self.get_permission(permission_id)
        project_id = self._permission_scope(before.resource_type, before.resource_id)
        after = self.backend.update_permission(permission_id, PermissionType(permission_type).value)
        self.recorder.record_committed(
            after,
            AuditAction.permission_granted,
            ResourceType.permission,
            permission_id,
            {"permissionType": {"from": before.permission_type.value, "to": after.permission_type.value}},
            metadata=self._permission_metadata(after),
            project_id=project_id,
        )
        return after

    def revoke_permission(self, permission_id: str, confirmed: bool = False) -> None:
        """Remove a grant. Revoking access cannot be undone, so it needs confirmation."""
        permission = self.get_permission(permission_id)
        if not confirmed:
            raise ConfirmationRequiredError(
                f"Revoking {permission.target_type.value} '{permission.target_id}' must be confirmed"
            )
        project_id = self._permission_scope(permission.resource_type, permission.resource_id)
        self.backend.delete_permission(permission_id)
        self.recorder.record_committed(
            None,
            AuditAction.permission_revoked,
            ResourceType.permission,
            permission_id,
            {"permissionType": {"from": permission.permission_type.value, "to": None}},
            metadata=self._permission_metadata(permission),
            project_id=project_id,
        )

    def set_inherit_permissions(self, project_id: str, enabled: bool, confirmed: bool = False) -> Project:
        """Turn the flow of project grants into its folders on or off.

        Disabling drops every inherited grant from the folders' effective
        permissions and needs confirmation. A toggle to the current value
        writes nothing.
        """
        before = self.get_project(project_id)
        if before.inherit_permissions == enabled:
            return before
        if not enabled and not confirmed:
            raise ConfirmationRequiredError(
                f"Disabling permission inheritance for '{before.name}' must be confirmed"
            )
        after = self.backend.set_inherit_permissions(project_id, enabled)
        self.recorder.record_committed(
            after,
            AuditAction.project_updated,
            ResourceType.project,
            project_id,
            {"inheritPermissions": {"from": before.inherit_permissions, "to": after.inherit_permissions}},
            project_id=project_id,
        )
        return after

    @staticmethod
    def _permission_metadata(permission: Permission) -> dict:
        return {
            "resource_type": permission.resource_type.value,
            "resource_id": permission.resource_id,
            "target_type": permission.target_type.value,
            "target_id": permission.target_id,
        }
