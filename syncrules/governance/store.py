"""File-based JSON storage for governance data.

Provides the :class:`~syncrules.governance.backend.GovernanceBackend`
operations backed by simple JSON files under ~/.syncrules/data/.

Synced folders hold no rules of their own: reading their rules reads through
to the account-level source, so account edits propagate automatically.
Detaching copies the source rules into the folder; re-syncing drops the
copies again.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Optional

from syncrules.governance.errors import BackendError, ConflictError, InvalidStateError, NotFoundError
from syncrules.governance.models import (
    Account,
    Folder,
    Permission,
    PermissionType,
    Project,
    ResourceType,
    Rule,
    SourceOfTruth,
    SyncStatus,
    utcnow,
)


class GovernanceStore:
    """File-based storage for accounts, projects, folders, rules and grants.

    Storage path: ``~/.syncrules/data/`` with:
    - ``accounts.json`` -- list of account dicts
    - ``projects.json`` -- list of project dicts
    - ``folders.json`` -- list of folder dicts
    - ``rules.json`` -- list of rule dicts
    - ``permissions.json`` -- list of project and folder grants
    """

    def __init__(self, base_dir: Optional[str] = None) -> None:
        if base_dir is None:
            self._base = Path.home() / ".syncrules" / "data"
        else:
            self._base = Path(base_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._accounts_path = self._base / "accounts.json"
        self._projects_path = self._base / "projects.json"
        self._folders_path = self._base / "folders.json"
        self._rules_path = self._base / "rules.json"
        self._permissions_path = self._base / "permissions.json"
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path) -> list[dict]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            raise BackendError(f"Could not read {path.name}: {exc}") from exc
        return data if isinstance(data, list) else []

    def _write_json(self, path: Path, data: list[dict]) -> None:
        try:
            path.write_text(json.dumps(data, indent=2, default=str))
        except OSError as exc:
            raise BackendError(f"Could not write {path.name}: {exc}") from exc

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _project_to_dict(p: Project) -> dict:
        return {
            "id": p.id,
            "account_id": p.account_id,
            "name": p.name,
            "slug": p.slug,
            "description": p.description,
            "created_at": p.created_at,
            "updated_at": p.updated_at,
            "inherit_permissions": p.inherit_permissions,
        }

    @staticmethod
    def _folder_from_dict(d: dict) -> Folder:
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

    @staticmethod
    def _folder_to_dict(f: Folder) -> dict:
        return {
            "id": f.id,
            "account_id": f.account_id,
            "name": f.name,
            "path": f.path,
            "project_id": f.project_id,
            "source_of_truth": f.source_of_truth.value,
            "sync_status": f.sync_status.value,
            "inherited_from": f.inherited_from,
            "created_at": f.created_at,
            "updated_at": f.updated_at,
        }

    @staticmethod
    def _rule_to_dict(r: Rule) -> dict:
        return {
            "id": r.id,
            "folder_id": r.folder_id,
            "account_id": r.account_id,
            "project_id": r.project_id,
            "name": r.name,
            "content": r.content,
            "path": r.path,
            "created_at": r.created_at,
            "updated_at": r.updated_at,
        }

    def _replace_folder(self, folder: Folder) -> Folder:
        folders = self._read_json(self._folders_path)
        for i, d in enumerate(folders):
            if d["id"] == folder.id:
                folders[i] = self._folder_to_dict(folder)
                self._write_json(self._folders_path, folders)
                return folder
        raise NotFoundError("folder", folder.id)

    def _own_rules(self, folder_id: str) -> list[Rule]:
        return [Rule(**d) for d in self._read_json(self._rules_path) if d["folder_id"] == folder_id]

    @staticmethod
    def _permission_to_dict(p: Permission) -> dict:
        return {
            "id": p.id,
            "account_id": p.account_id,
            "resource_type": p.resource_type.value,
            "resource_id": p.resource_id,
            "target_type": p.target_type.value,
            "target_id": p.target_id,
            "target_name": p.target_name,
            "permission_type": p.permission_type.value,
            "granted_by": p.granted_by,
            "granted_at": p.granted_at,
        }

    def _copy_rules(self, source_id: str, target: Folder) -> None:
        """Replace ``target``'s own rules with independent copies of the source's."""
        rules = [d for d in self._read_json(self._rules_path) if d["folder_id"] != target.id]
        now = utcnow()
        copies = [
            self._rule_to_dict(
                Rule(
                    id=self._new_id(),
                    folder_id=target.id,
                    account_id=target.account_id,
                    project_id=target.project_id,
                    name=d["name"],
                    content=d.get("content", ""),
                    path=d.get("path", ""),
                    created_at=now,
                )
            )
            for d in rules
            if d["folder_id"] == source_id
        ]
        self._write_json(self._rules_path, rules + copies)

    def _drop_rules(self, folder_ids: set[str]) -> None:
        rules = self._read_json(self._rules_path)
        self._write_json(self._rules_path, [d for d in rules if d["folder_id"] not in folder_ids])

    def _drop_permissions(self, resource_type: ResourceType, resource_ids: set[str]) -> None:
        perms = self._read_json(self._permissions_path)
        kept = [
            d for d in perms
            if not (d["resource_type"] == resource_type.value and d["resource_id"] in resource_ids)
        ]
        if len(kept) != len(perms):
            self._write_json(self._permissions_path, kept)

    def _source_of(self, folder: Folder) -> Folder:
        """Return the account-level folder a project folder inherits from."""
        try:
            source = self.get_folder(folder.inherited_from or "")
        except NotFoundError:
            raise InvalidStateError(
                f"Folder '{folder.id}' has no account-level source '{folder.inherited_from}'",
                current=folder.sync_status.value,
            ) from None
        if source.account_id != folder.account_id:
            raise InvalidStateError(
                f"Folder '{folder.id}' inherits from folder '{source.id}' of another account",
                current=folder.sync_status.value,
            )
        if not source.is_account_level:
            raise InvalidStateError(
                f"Folder '{folder.id}' inherits from non-account folder '{source.id}'",
                current=folder.sync_status.value,
            )
        return source

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> Account:
        with self._lock:
            accounts = self._read_json(self._accounts_path)
            if any(d["id"] == account.id or d["slug"] == account.slug for d in accounts):
                raise ConflictError(f"Account '{account.slug}' already exists")
            accounts.append(
                {"id": account.id, "name": account.name, "slug": account.slug, "created_at": account.created_at}
            )
            self._write_json(self._accounts_path, accounts)
        return account

    def get_account(self, account_id: str) -> Account:
        for d in self._read_json(self._accounts_path):
            if d["id"] == account_id:
                return Account(**d)
        raise NotFoundError("account", account_id)

    def list_accounts(self) -> list[Account]:
        return [Account(**d) for d in self._read_json(self._accounts_path)]

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def get_project(self, project_id: str) -> Project:
        for d in self._read_json(self._projects_path):
            if d["id"] == project_id:
                return Project(**d)
        raise NotFoundError("project", project_id)

    def list_projects(self, account_id: str) -> list[Project]:
        return [Project(**d) for d in self._read_json(self._projects_path) if d["account_id"] == account_id]

    def create_project(self, project: Project) -> Project:
        with self._lock:
            self.get_account(project.account_id)
            projects = self._read_json(self._projects_path)
            for d in projects:
                if d["account_id"] == project.account_id and d["slug"] == project.slug:
                    raise ConflictError(f"Project with slug '{project.slug}' already exists")
            projects.append(self._project_to_dict(project))
            self._write_json(self._projects_path, projects)
        return project

    def update_project(self, project_id: str, **fields: str) -> Project:
        """Update a project's name and/or description. The slug is immutable."""
        unknown = set(fields) - {"name", "description"}
        if unknown:
            raise ValueError(f"Cannot update project fields: {', '.join(sorted(unknown))}")
        with self._lock:
            projects = self._read_json(self._projects_path)
            for d in projects:
                if d["id"] == project_id:
                    d.update({k: v for k, v in fields.items() if v is not None})
                    d["updated_at"] = utcnow()
                    self._write_json(self._projects_path, projects)
                    return Project(**d)
        raise NotFoundError("project", project_id)

    def set_inherit_permissions(self, project_id: str, enabled: bool) -> Project:
        with self._lock:
            projects = self._read_json(self._projects_path)
            for d in projects:
                if d["id"] == project_id:
                    d["inherit_permissions"] = bool(enabled)
                    d["updated_at"] = utcnow()
                    self._write_json(self._projects_path, projects)
                    return Project(**d)
        raise NotFoundError("project", project_id)

    def delete_project(self, project_id: str) -> None:
        """Delete a project with its folders, their rules, and all grants on them."""
        with self._lock:
            projects = self._read_json(self._projects_path)
            remaining = [d for d in projects if d["id"] != project_id]
            if len(remaining) == len(projects):
                raise NotFoundError("project", project_id)
            self._write_json(self._projects_path, remaining)
            folders = self._read_json(self._folders_path)
            owned = {d["id"] for d in folders if d.get("project_id") == project_id}
            self._write_json(self._folders_path, [d for d in folders if d["id"] not in owned])
            self._drop_rules(owned)
            self._drop_permissions(ResourceType.folder, owned)
            self._drop_permissions(ResourceType.project, {project_id})

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def get_folder(self, folder_id: str) -> Folder:
        for d in self._read_json(self._folders_path):
            if d["id"] == folder_id:
                return self._folder_from_dict(d)
        raise NotFoundError("folder", folder_id)

    def list_folders(
        self,
        account_id: str,
        project_id: Optional[str] = None,
        account_only: bool = False,
    ) -> list[Folder]:
        """List an account's folders, optionally narrowed to one project or to account level."""
        result = []
        for d in self._read_json(self._folders_path):
            if d["account_id"] != account_id:
                continue
            if project_id is not None and d.get("project_id") != project_id:
                continue
            if account_only and d.get("project_id") is not None:
                continue
            result.append(self._folder_from_dict(d))
        return result

    def create_folder(self, folder: Folder) -> Folder:
        """Persist a folder, validating its project and any account lineage."""
        with self._lock:
            if folder.project_id is not None:
                project = self.get_project(folder.project_id)
                if project.account_id != folder.account_id:
                    raise ConflictError(f"Project '{project.id}' belongs to another account")
            if folder.inherited_from is not None:
                if folder.is_account_level:
                    raise InvalidStateError(
                        f"Account-level folder '{folder.id}' cannot inherit from another folder",
                        current=folder.sync_status.value,
                    )
                source = self.get_folder(folder.inherited_from)
                if source.account_id != folder.account_id:
                    raise ConflictError(f"Folder '{source.id}' belongs to another account")
                if not source.is_account_level:
                    raise InvalidStateError(
                        f"Folder '{source.id}' is not an account-level folder",
                        current=folder.sync_status.value,
                    )
            folders = self._read_json(self._folders_path)
            if any(d["id"] == folder.id for d in folders):
                raise ConflictError(f"Folder '{folder.id}' already exists")
            folders.append(self._folder_to_dict(folder))
            self._write_json(self._folders_path, folders)
        return folder

    def delete_folder(self, folder_id: str) -> None:
        """Delete a folder with the rules and grants it owns.

        An account folder still mirrored by synced project folders cannot be
        deleted. Detached copies keep their ``inherited_from`` reference and
        can no longer be re-synced.
        """
        with self._lock:
            folders = self._read_json(self._folders_path)
            remaining = [d for d in folders if d["id"] != folder_id]
            if len(remaining) == len(folders):
                raise NotFoundError("folder", folder_id)
            mirrors = [
                d["id"] for d in remaining
                if d.get("inherited_from") == folder_id and d.get("sync_status") == SyncStatus.synced.value
            ]
            if mirrors:
                raise ConflictError(
                    f"Folder '{folder_id}' is synced into {len(mirrors)} project folder(s); "
                    "detach or un-share them first"
                )
            self._write_json(self._folders_path, remaining)
            self._drop_rules({folder_id})
            self._drop_permissions(ResourceType.folder, {folder_id})

    def detach_folder(self, folder_id: str) -> Folder:
        """Flip a synced folder to detached in place, copying the source rules.

        The folder record is written first; if copying the rules then fails
        the record is restored, so the folder stays synced.
        """
        with self._lock:
            folder = self.get_folder(folder_id)
            if folder.sync_status != SyncStatus.synced:
                raise InvalidStateError(
                    f"Only synced folders can be detached; '{folder.id}' is {folder.sync_status.value}",
                    current=folder.sync_status.value,
                )
            source = self._source_of(folder)
            before = replace(folder)
            folder.sync_status = SyncStatus.detached
            folder.source_of_truth = SourceOfTruth.project
            folder.updated_at = utcnow()
            self._replace_folder(folder)
            try:
                self._copy_rules(source.id, folder)
            except BackendError:
                self._replace_folder(before)
                raise
            return folder

    def resync_folder(self, folder_id: str) -> Folder:
        """Overwrite a detached folder with its account source and mark it synced."""
        with self._lock:
            folder = self.get_folder(folder_id)
            if folder.sync_status != SyncStatus.detached:
                raise InvalidStateError(
                    f"Only detached folders can be re-synced; '{folder.id}' is {folder.sync_status.value}",
                    current=folder.sync_status.value,
                )
            source = self._source_of(folder)
            folder.name = source.name
            folder.path = source.path
            folder.sync_status = SyncStatus.synced
            folder.source_of_truth = SourceOfTruth.account
            folder.updated_at = utcnow()
            self._replace_folder(folder)
            # Synced folders read through to the source; leftovers are never served.
            self._drop_rules({folder.id})
            return folder

    def localize_folder(self, folder_id: str) -> Folder:
        """Sever a project folder from its account source, making it local."""
        with self._lock:
            folder = self.get_folder(folder_id)
            if folder.is_account_level or folder.sync_status == SyncStatus.local:
                raise InvalidStateError(
                    f"Folder '{folder.id}' has no inheritance to sever",
                    current=folder.sync_status.value,
                )
            before = replace(folder)
            folder.sync_status = SyncStatus.local
            folder.inherited_from = None
            folder.source_of_truth = SourceOfTruth.project
            folder.updated_at = utcnow()
            self._replace_folder(folder)
            if before.sync_status == SyncStatus.synced:
                # Materialize the mirrored rules now the source link is gone.
                try:
                    self._copy_rules(before.inherited_from or "", folder)
                except BackendError:
                    self._replace_folder(before)
                    raise
            return folder

    def share_folder(self, account_folder_id: str, project_id: str) -> Folder:
        """Clone an account-level folder into a project as a synced mirror."""
        with self._lock:
            source = self.get_folder(account_folder_id)
            if not source.is_account_level:
                raise InvalidStateError(f"Folder '{source.id}' is not an account-level folder")
            project = self.get_project(project_id)
            if project.account_id != source.account_id:
                raise ConflictError(f"Project '{project.id}' belongs to another account")
            for existing in self.list_folders(source.account_id, project_id=project_id):
                if existing.inherited_from == source.id:
                    raise ConflictError(
                        f"Project '{project.id}' already inherits folder '{source.id}'"
                    )
            clone = Folder(
                id=self._new_id(),
                account_id=source.account_id,
                project_id=project.id,
                name=source.name,
                path=source.path,
                source_of_truth=SourceOfTruth.account,
                sync_status=SyncStatus.synced,
                inherited_from=source.id,
            )
            folders = self._read_json(self._folders_path)
            folders.append(self._folder_to_dict(clone))
            self._write_json(self._folders_path, folders)
        return clone

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def list_rules(self, folder_id: str) -> list[Rule]:
        """List a folder's rules; synced folders read through to their source."""
        folder = self.get_folder(folder_id)
        if folder.sync_status == SyncStatus.synced:
            return self._own_rules(self._source_of(folder).id)
        return self._own_rules(folder.id)

    def get_rule(self, rule_id: str) -> Rule:
        for d in self._read_json(self._rules_path):
            if d["id"] == rule_id:
                return Rule(**d)
        raise NotFoundError("rule", rule_id)

    def create_rule(self, rule: Rule) -> Rule:
        with self._lock:
            folder = self.get_folder(rule.folder_id)
            if folder.sync_status == SyncStatus.synced:
                raise InvalidStateError(
                    f"Folder '{folder.id}' is read-only while synced", current=folder.sync_status.value
                )
            rules = self._read_json(self._rules_path)
            rules.append(self._rule_to_dict(rule))
            self._write_json(self._rules_path, rules)
        return rule

    def update_rule(self, rule_id: str, **fields: str) -> Rule:
        unknown = set(fields) - {"name", "content", "path"}
        if unknown:
            raise ValueError(f"Cannot update rule fields: {', '.join(sorted(unknown))}")
        with self._lock:
            rules = self._read_json(self._rules_path)
            for d in rules:
                if d["id"] == rule_id:
                    d.update({k: v for k, v in fields.items() if v is not None})
                    d["updated_at"] = utcnow()
                    self._write_json(self._rules_path, rules)
                    return Rule(**d)
        raise NotFoundError("rule", rule_id)

    def delete_rule(self, rule_id: str) -> None:
        with self._lock:
            rules = self._read_json(self._rules_path)
            remaining = [d for d in rules if d["id"] != rule_id]
            if len(remaining) == len(rules):
                raise NotFoundError("rule", rule_id)
            self._write_json(self._rules_path, remaining)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def _permission_resource_account(self, resource_type: ResourceType, resource_id: str) -> str:
        if resource_type == ResourceType.project:
            return self.get_project(resource_id).account_id
        return self.get_folder(resource_id).account_id

    def list_permissions(self, resource_type: str, resource_id: str) -> list[Permission]:
        """List the grants stored directly on one project or folder."""
        resource_type = ResourceType(resource_type)
        return [
            Permission(**d)
            for d in self._read_json(self._permissions_path)
            if d["resource_type"] == resource_type.value and d["resource_id"] == resource_id
        ]

    def get_permission(self, permission_id: str) -> Permission:
        for d in self._read_json(self._permissions_path):
            if d["id"] == permission_id:
                return Permission(**d)
        raise NotFoundError("permission", permission_id)

    def create_permission(self, permission: Permission) -> Permission:
        """Store a grant. One grant per target on each resource."""
        with self._lock:
            owner = self._permission_resource_account(permission.resource_type, permission.resource_id)
            if owner != permission.account_id:
                raise ConflictError(
                    f"{permission.resource_type.value.capitalize()} '{permission.resource_id}' "
                    "belongs to another account"
                )
            perms = self._read_json(self._permissions_path)
            for d in perms:
                if (
                    d["resource_type"] == permission.resource_type.value
                    and d["resource_id"] == permission.resource_id
                    and d["target_type"] == permission.target_type.value
                    and d["target_id"] == permission.target_id
                ):
                    raise ConflictError(
                        f"{permission.target_type.value.capitalize()} '{permission.target_id}' already has "
                        f"a permission on {permission.resource_type.value} '{permission.resource_id}'"
                    )
            perms.append(self._permission_to_dict(permission))
            self._write_json(self._permissions_path, perms)
        return permission

    def update_permission(self, permission_id: str, permission_type: str) -> Permission:
        permission_type = PermissionType(permission_type)
        with self._lock:
            perms = self._read_json(self._permissions_path)
            for d in perms:
                if d["id"] == permission_id:
                    d["permission_type"] = permission_type.value
                    self._write_json(self._permissions_path, perms)
                    return Permission(**d)
        raise NotFoundError("permission", permission_id)

    def delete_permission(self, permission_id: str) -> None:
        with self._lock:
            perms = self._read_json(self._permissions_path)
            remaining = [d for d in perms if d["id"] != permission_id]
            if len(remaining) == len(perms):
                raise NotFoundError("permission", permission_id)
            self._write_json(self._permissions_path, remaining)
