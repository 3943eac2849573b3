"""Backend contract for governance persistence.

The transition engine and services only talk to storage through this
interface. :class:`~syncrules.governance.store.GovernanceStore` implements it
on local JSON files and :class:`~syncrules.governance.client.HttpBackend`
over the REST API.
"""

from __future__ import annotations

from typing import Optional, Protocol

from syncrules.governance.models import Account, Folder, Permission, Project, Rule


class GovernanceBackend(Protocol):
    """Operations the governance core requires from persistence.

    Every method either returns the committed entity or raises a
    :class:`~syncrules.governance.errors.GovernanceError` subclass; nothing
    is partially applied on failure.
    """

    # Accounts and projects
    def get_account(self, account_id: str) -> Account: ...

    def get_project(self, project_id: str) -> Project: ...

    def list_projects(self, account_id: str) -> list[Project]: ...

    def create_project(self, project: Project) -> Project: ...

    def update_project(self, project_id: str, **fields: str) -> Project: ...

    def delete_project(self, project_id: str) -> None: ...

    def set_inherit_permissions(self, project_id: str, enabled: bool) -> Project: ...

    # Folders
    def get_folder(self, folder_id: str) -> Folder: ...

    def list_folders(
        self,
        account_id: str,
        project_id: Optional[str] = None,
        account_only: bool = False,
    ) -> list[Folder]: ...

    def create_folder(self, folder: Folder) -> Folder: ...

    def delete_folder(self, folder_id: str) -> None: ...

    def detach_folder(self, folder_id: str) -> Folder: ...

    def resync_folder(self, folder_id: str) -> Folder: ...

    def localize_folder(self, folder_id: str) -> Folder: ...

    def share_folder(self, account_folder_id: str, project_id: str) -> Folder: ...

    # Rules
    def list_rules(self, folder_id: str) -> list[Rule]: ...

    def get_rule(self, rule_id: str) -> Rule: ...

    def create_rule(self, rule: Rule) -> Rule: ...

    def update_rule(self, rule_id: str, **fields: str) -> Rule: ...

    def delete_rule(self, rule_id: str) -> None: ...

    # Permissions
    def list_permissions(self, resource_type: str, resource_id: str) -> list[Permission]: ...

    def get_permission(self, permission_id: str) -> Permission: ...

    def create_permission(self, permission: Permission) -> Permission: ...

    def update_permission(self, permission_id: str, permission_type: str) -> Permission: ...

    def delete_permission(self, permission_id: str) -> None: ...
