"""Tests for audited project, folder, rule, and permission management."""

import pytest

from syncrules.governance.audit import AuditRecorder
from syncrules.governance.errors import ConfirmationRequiredError, ConflictError, InvalidStateError, NotFoundError
from syncrules.governance.models import Account, PermissionType, SessionContext, SourceOfTruth, SyncStatus
from syncrules.governance.service import GovernanceService, slugify


def test_slugify():
    assert slugify("  My Web App!  ") == "my-web-app"
    assert slugify("snake_case name") == "snake-case-name"
    assert slugify("a -- b") == "a-b"


def test_create_project_is_audited(ws):
    project = ws.service.create_project("Mobile App", description="iOS and Android")

    assert project.slug == "mobile-app"
    assert project.account_id == ws.context.account_id
    entries = ws.audit_store.get_events(resource_id=project.id)
    assert [e.action for e in entries] == ["project.created"]
    assert entries[0].changes["slug"] == {"from": None, "to": "mobile-app"}


def test_create_project_with_duplicate_slug(ws):
    with pytest.raises(ConflictError):
        ws.service.create_project("Web")
    assert ws.audit_store.get_events() == []


def test_create_project_needs_a_slug(ws):
    with pytest.raises(ValueError):
        ws.service.create_project("!!!")


def test_update_project_records_only_changed_fields(ws):
    updated = ws.service.update_project("web", name="Website")

    assert updated.name == "Website"
    entry = ws.audit_store.get_events()[0]
    assert entry.action == "project.updated"
    assert entry.changes == {"name": {"from": "Web", "to": "Website"}}


def test_slug_is_immutable(ws):
    with pytest.raises(ValueError):
        ws.service.update_project("web", slug="website")
    assert ws.service.update_project("web", slug="web").slug == "web"


def test_delete_project_keeps_account_folders(ws):
    ws.service.delete_project("web")

    with pytest.raises(NotFoundError):
        ws.service.get_project("web")
    assert {f.id for f in ws.service.list_folders(account_only=True)} == {"security", "style"}
    entry = ws.audit_store.get_events()[0]
    assert entry.action == "project.deleted"
    assert entry.metadata["deleted_folder_count"] == 3


def test_create_folders(ws):
    account_folder = ws.service.create_folder("Testing")
    assert account_folder.is_account_level
    assert account_folder.source_of_truth == SourceOfTruth.account
    assert account_folder.path == "/testing"

    project_folder = ws.service.create_folder("Scratch", project_id="web")
    assert project_folder.sync_status == SyncStatus.local
    assert project_folder.source_of_truth == SourceOfTruth.project

    with pytest.raises(NotFoundError):
        ws.service.create_folder("Orphan", project_id="missing")


def test_synced_folder_cannot_be_deleted(ws):
    with pytest.raises(InvalidStateError):
        ws.service.delete_folder(ws.f1)
    ws.engine.detach(ws.f1, confirmed=True)
    ws.service.delete_folder(ws.f1)
    with pytest.raises(NotFoundError):
        ws.service.get_folder(ws.f1)


def test_account_folder_with_synced_mirrors_cannot_be_deleted(ws):
    with pytest.raises(ConflictError):
        ws.service.delete_folder("security")
    assert ws.service.get_folder("security").is_account_level
    assert [r.id for r in ws.service.list_rules(ws.f1)] == ["r1", "r2"]

    ws.engine.detach(ws.f1, confirmed=True)
    ws.service.delete_folder("security")
    assert ws.service.get_folder(ws.f1).inherited_from == "security"


def test_rule_lifecycle_is_audited(ws):
    rule = ws.service.create_rule(ws.notes, "Use type hints", content="Always.")
    assert rule.path == "/use-type-hints.md"

    ws.service.update_rule(rule.id, content="Mostly.")
    ws.service.delete_rule(rule.id)

    history = ws.audit_store.get_history("rule", rule.id)
    assert [e.action for e in history] == ["rule.created", "rule.updated", "rule.deleted"]
    assert history[1].changes == {"content": {"from": "Always.", "to": "Mostly."}}


def test_synced_folder_rules_are_read_only(ws):
    with pytest.raises(InvalidStateError):
        ws.service.create_rule(ws.f1, "Sneaky")
    with pytest.raises(InvalidStateError):
        ws.service.create_rule(ws.f2, "Also sneaky")
    assert [r.id for r in ws.service.list_rules(ws.f1)] == ["r1", "r2"]


def test_account_rule_edit_propagates_to_synced_folders(ws):
    ws.service.update_rule("r1", content="new policy")

    assert ws.service.list_rules(ws.f1)[0].content == "new policy"


def test_grant_is_audited(ws):
    grant = ws.service.grant_permission("project", "web", "group", "devs", "write", target_name="Developers")

    assert grant.granted_by == ws.context.actor_id
    entries = ws.audit_store.get_events(action="permission.granted")
    assert len(entries) == 1
    assert entries[0].resource_type == "permission"
    assert entries[0].project_id == "web"
    assert entries[0].changes == {"permissionType": {"from": None, "to": "write"}}
    assert entries[0].metadata["target_id"] == "devs"


def test_permissions_only_on_projects_and_folders(ws):
    with pytest.raises(ValueError):
        ws.service.grant_permission("rule", "r1", "user", "bob", "read")
    with pytest.raises(ValueError):
        ws.service.grant_permission("folder", ws.notes, "user", "  ", "read")
    assert ws.audit_store.get_events() == []


def test_effective_permissions_merge_project_grants(ws):
    ws.service.grant_permission("project", "web", "group", "devs", "write")
    ws.service.grant_permission("project", "web", "user", "bob", "admin")
    ws.service.grant_permission("folder", ws.notes, "user", "bob", "read")

    effective = {p.target_id: p for p in ws.service.effective_permissions(ws.notes)}
    assert effective["bob"].permission_type == PermissionType.read
    assert effective["bob"].inherited_from is None
    assert effective["devs"].inherited_from == "web"

    ws.service.set_inherit_permissions("web", False, confirmed=True)
    assert [p.target_id for p in ws.service.effective_permissions(ws.notes)] == ["bob"]


def test_account_folder_has_only_its_own_grants(ws):
    ws.service.grant_permission("project", "web", "group", "devs", "write")
    assert ws.service.effective_permissions("security") == []


def test_update_permission_is_audited_as_regrant(ws):
    grant = ws.service.grant_permission("folder", ws.notes, "user", "bob", "read")
    updated = ws.service.update_permission(grant.id, "admin")

    assert updated.permission_type == PermissionType.admin
    entry = ws.audit_store.get_history("permission", grant.id)[-1]
    assert entry.action == "permission.granted"
    assert entry.changes == {"permissionType": {"from": "read", "to": "admin"}}


def test_revoke_needs_confirmation(ws):
    grant = ws.service.grant_permission("folder", ws.notes, "user", "bob", "read")
    with pytest.raises(ConfirmationRequiredError):
        ws.service.revoke_permission(grant.id)
    assert ws.service.list_permissions("folder", ws.notes) == [grant]

    ws.service.revoke_permission(grant.id, confirmed=True)
    assert ws.service.list_permissions("folder", ws.notes) == []
    entry = ws.audit_store.get_events(action="permission.revoked")[0]
    assert entry.changes == {"permissionType": {"from": "read", "to": None}}
    assert entry.project_id == "web"


def test_disabling_permission_inheritance_needs_confirmation(ws):
    with pytest.raises(ConfirmationRequiredError):
        ws.service.set_inherit_permissions("web", False)
    assert ws.service.get_project("web").inherit_permissions is True

    ws.service.set_inherit_permissions("web", False, confirmed=True)
    ws.service.set_inherit_permissions("web", False, confirmed=True)
    ws.service.set_inherit_permissions("web", True)

    entries = ws.audit_store.get_history("project", "web")
    assert [e.changes["inheritPermissions"] for e in entries] == [
        {"from": True, "to": False},
        {"from": False, "to": True},
    ]


def test_permissions_of_another_account_are_hidden(ws):
    grant = ws.service.grant_permission("folder", ws.notes, "user", "bob", "read")
    ws.store.create_account(Account(id="acct-2", name="Other", slug="other"))
    other = GovernanceService(ws.store, AuditRecorder(ws.audit_store, SessionContext("mallory", "acct-2")))

    with pytest.raises(NotFoundError):
        other.get_permission(grant.id)
    with pytest.raises(NotFoundError):
        other.grant_permission("folder", ws.notes, "user", "mallory", "admin")
