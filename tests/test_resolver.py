"""Tests for inheritance resolution and folder model invariants."""

import pytest

from syncrules.governance.models import Folder, FolderStatus, InheritanceMode, SourceOfTruth, SyncStatus
from syncrules.governance.resolver import resolve_mode


def _folder(fid, status="local", inherited_from=None, project_id="p1"):
    return Folder(
        id=fid,
        account_id="acct",
        name=fid,
        project_id=project_id,
        sync_status=status,
        inherited_from=inherited_from,
        source_of_truth="account" if status == "synced" else "project",
    )


# --- Resolver ---


def test_empty_project_has_no_inheritance():
    resolution = resolve_mode([])
    assert resolution.mode == InheritanceMode.none
    assert resolution.inherited_count == 0


def test_all_synced_is_full():
    resolution = resolve_mode([_folder("a", "synced", "src-a"), _folder("b", "synced", "src-b")])
    assert resolution.mode == InheritanceMode.full
    assert resolution.synced_count == 2
    assert resolution.detached_count == 0


def test_synced_and_detached_is_partial():
    resolution = resolve_mode([
        _folder("a", "synced", "src-a"),
        _folder("b", "detached", "src-b"),
        _folder("c", "detached", "src-c"),
    ])
    assert resolution.mode == InheritanceMode.partial
    assert resolution.synced_count == 1
    assert resolution.detached_count == 2


def test_only_detached_is_partial():
    resolution = resolve_mode([_folder("a", "detached", "src-a")])
    assert resolution.mode == InheritanceMode.partial


def test_local_folders_do_not_count():
    resolution = resolve_mode([_folder("a", "synced", "src-a"), _folder("b"), _folder("c")])
    assert resolution.mode == InheritanceMode.full
    assert resolution.inherited_count == 1


def test_only_local_folders_is_none():
    assert resolve_mode([_folder("a"), _folder("b")]).mode == InheritanceMode.none


def test_account_level_folders_are_ignored():
    account_folder = Folder(id="src", account_id="acct", name="src", source_of_truth="account")
    resolution = resolve_mode([account_folder, _folder("a", "detached", "src")])
    assert resolution.mode == InheritanceMode.partial
    assert resolution.synced_count == 0


def test_resolution_to_dict():
    data = resolve_mode([_folder("a", "synced", "src-a")]).to_dict()
    assert data == {"mode": "full", "synced_count": 1, "detached_count": 0}


# --- Folder invariants ---


def test_folder_status_is_read_only_only_when_synced():
    assert _folder("a", "synced", "src").folder_status == FolderStatus.read_only
    assert _folder("b", "detached", "src").folder_status == FolderStatus.editable
    assert _folder("c").folder_status == FolderStatus.editable


def test_folder_coerces_string_enums():
    folder = _folder("a", "detached", "src")
    assert folder.sync_status is SyncStatus.detached
    assert folder.source_of_truth is SourceOfTruth.project


def test_local_folder_cannot_have_lineage():
    with pytest.raises(ValueError):
        _folder("a", "local", "src")


def test_inherited_folder_requires_lineage():
    with pytest.raises(ValueError):
        _folder("a", "synced", None)
    with pytest.raises(ValueError):
        _folder("b", "detached", None)


def test_unknown_sync_status_rejected():
    with pytest.raises(ValueError):
        _folder("a", "mirrored", "src")
