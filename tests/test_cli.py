"""Tests for the syncrules CLI."""

import tempfile
from pathlib import Path

from click.testing import CliRunner

from syncrules.cli import main
from syncrules.governance.audit import AuditStore
from syncrules.governance.models import SyncStatus
from syncrules.governance.store import GovernanceStore

SEED = """
account:
  id: acme
  name: Acme
folders:
  - name: Security
    rules:
      - name: No secrets
        content: Never commit credentials.
  - name: Style
projects:
  - name: Web App
    share: [Security, Style, Missing]
    folders:
      - name: Notes
"""


def _env(tmpdir):
    return {
        "SYNCRULES_DATA_DIR": str(Path(tmpdir) / "data"),
        "SYNCRULES_AUDIT_DIR": str(Path(tmpdir) / "audit"),
        "SYNCRULES_ACCOUNT_ID": "acme",
        "SYNCRULES_ACTOR_ID": "alice",
        "SYNCRULES_LOG_LEVEL": "WARNING",
    }


def _seeded(tmpdir, runner):
    seed_path = Path(tmpdir) / "seed.yaml"
    seed_path.write_text(SEED)
    result = runner.invoke(main, ["seed", str(seed_path)], env=_env(tmpdir))
    assert result.exit_code == 0, result.output
    store = GovernanceStore(str(Path(tmpdir) / "data"))
    project = store.list_projects("acme")[0]
    synced = {f.name: f for f in store.list_folders("acme", project_id=project.id) if f.is_inherited}
    return store, project, synced


def test_seed_builds_account_and_project():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        store, project, synced = _seeded(tmpdir, runner)

        assert project.slug == "web-app"
        assert set(synced) == {"Security", "Style"}
        assert all(f.sync_status == SyncStatus.synced for f in synced.values())
        assert [r.name for r in store.list_rules(synced["Security"].id)] == ["No secrets"]


def test_status_shows_inheritance():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        _, project, _ = _seeded(tmpdir, runner)

        result = runner.invoke(main, ["status", project.id], env=_env(tmpdir))
        assert result.exit_code == 0
        assert "Full Inheritance" in result.output
        assert "Notes" in result.output


def test_detach_asks_for_confirmation():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        store, _, synced = _seeded(tmpdir, runner)
        folder_id = synced["Security"].id

        result = runner.invoke(main, ["detach", folder_id], input="n\n", env=_env(tmpdir))
        assert "Cancelled" in result.output
        assert store.get_folder(folder_id).sync_status == SyncStatus.synced

        result = runner.invoke(main, ["detach", folder_id], input="y\n", env=_env(tmpdir))
        assert result.exit_code == 0
        assert store.get_folder(folder_id).sync_status == SyncStatus.detached


def test_resync_and_audit_trail():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        store, _, synced = _seeded(tmpdir, runner)
        folder_id = synced["Style"].id

        runner.invoke(main, ["detach", folder_id, "--yes"], env=_env(tmpdir))
        result = runner.invoke(main, ["resync", folder_id, "--yes"], env=_env(tmpdir))
        assert result.exit_code == 0
        assert "discarded" in result.output

        history = AuditStore(Path(tmpdir) / "audit").get_history("folder", folder_id)
        assert [e.action for e in history] == ["folder.detached", "folder.synced"]

        result = runner.invoke(main, ["audit", "--resource", f"folder:{folder_id}"], env=_env(tmpdir))
        assert result.exit_code == 0
        assert "Audit (2)" in result.output


def test_set_mode_none_and_partial():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        store, project, synced = _seeded(tmpdir, runner)

        result = runner.invoke(main, ["set-mode", project.id, "partial"], env=_env(tmpdir))
        assert result.exit_code == 1
        assert "InvalidModeError" in result.output

        result = runner.invoke(main, ["set-mode", project.id, "none", "--yes"], env=_env(tmpdir))
        assert result.exit_code == 0
        assert "none: 2 changed" in result.output
        assert all(store.get_folder(f.id).sync_status == SyncStatus.local for f in synced.values())


def test_errors_are_reported_on_one_line():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        _seeded(tmpdir, runner)
        result = runner.invoke(main, ["detach", "missing", "--yes"], env=_env(tmpdir))
        assert result.exit_code == 1
        assert "NotFoundError: Folder 'missing' not found" in result.output


def test_account_is_required():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        env = _env(tmpdir)
        env["SYNCRULES_ACCOUNT_ID"] = ""
        result = runner.invoke(main, ["projects"], env=env)
        assert result.exit_code == 2
        assert "No account selected" in result.output


def test_grant_list_and_revoke_permissions():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        store, project, synced = _seeded(tmpdir, runner)
        folder_id = synced["Security"].id

        result = runner.invoke(
            main, ["grant", f"project:{project.id}", "devs", "write", "--group", "--name", "Developers"], env=_env(tmpdir)
        )
        assert result.exit_code == 0, result.output
        result = runner.invoke(main, ["grant", f"folder:{folder_id}", "bob", "admin"], env=_env(tmpdir))
        assert result.exit_code == 0, result.output

        result = runner.invoke(main, ["permissions", f"folder:{folder_id}"], env=_env(tmpdir))
        assert "Developers" in result.output
        assert "Admin" in result.output

        grant_id = store.list_permissions("folder", folder_id)[0].id
        result = runner.invoke(main, ["revoke", grant_id], input="n\n", env=_env(tmpdir))
        assert "Remove permission for bob?" in result.output
        assert "Cancelled" in result.output
        result = runner.invoke(main, ["revoke", grant_id, "--yes"], env=_env(tmpdir))
        assert result.exit_code == 0
        assert store.list_permissions("folder", folder_id) == []

        entries = AuditStore(Path(tmpdir) / "audit").get_events(resource_type="permission")
        assert [e.action for e in entries] == ["permission.revoked", "permission.granted", "permission.granted"]


def test_inherit_permissions_toggle():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        store, project, _ = _seeded(tmpdir, runner)

        result = runner.invoke(main, ["inherit-permissions", project.id, "off"], input="y\n", env=_env(tmpdir))
        assert result.exit_code == 0, result.output
        assert "Disable permission inheritance?" in result.output
        assert store.get_project(project.id).inherit_permissions is False

        result = runner.invoke(main, ["inherit-permissions", project.id, "off"], env=_env(tmpdir))
        assert "already off" in result.output


def test_permissions_needs_a_typed_resource():
    runner = CliRunner()
    with tempfile.TemporaryDirectory() as tmpdir:
        result = runner.invoke(main, ["permissions", "rule:r1"], env=_env(tmpdir))
        assert result.exit_code == 2
