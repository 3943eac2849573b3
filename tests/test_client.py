"""Tests for the HTTP backend, run against the API app in-process."""

import tempfile

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import ACCOUNT_ID, ACTOR_ID, build_workspace
from syncrules.governance.audit import AuditRecorder
from syncrules.governance.client import HttpAuditStore, HttpBackend
from syncrules.governance.engine import SyncEngine
from syncrules.governance.errors import (
    BackendError,
    ConfirmationRequiredError,
    ConflictError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    PartialFailure,
)
from syncrules.governance.models import Folder, InheritanceMode, PermissionType, SessionContext, SyncStatus
from syncrules.governance.service import GovernanceService
from web.backend.app.main import app
from web.backend.app.middleware.auth import get_audit_store, get_store

CTX = SessionContext(actor_id=ACTOR_ID, account_id=ACCOUNT_ID)


def _forwarding_transport(client: TestClient) -> httpx.MockTransport:
    """Route httpx requests into the FastAPI app."""

    def handler(request: httpx.Request) -> httpx.Response:
        headers = {k: v for k, v in request.headers.items() if k.lower() in ("x-actor-id", "x-account-id", "content-type")}
        resp = client.request(
            request.method,
            request.url.path,
            params=request.url.params,
            content=request.content,
            headers=headers,
        )
        return httpx.Response(resp.status_code, content=resp.content, headers={"content-type": resp.headers.get("content-type", "")})

    return httpx.MockTransport(handler)


@pytest.fixture(name="remote")
def remote_fixture():
    with tempfile.TemporaryDirectory() as tmpdir:
        ws = build_workspace(tmpdir)
        app.dependency_overrides[get_store] = lambda: ws.store
        app.dependency_overrides[get_audit_store] = lambda: ws.audit_store
        with TestClient(app) as client:
            transport = _forwarding_transport(client)
            backend = HttpBackend("http://testserver", CTX, transport=transport)
            audit_store = HttpAuditStore("http://testserver", CTX, transport=transport)
            recorder = AuditRecorder(audit_store, CTX)
            yield ws, backend, audit_store, SyncEngine(backend, recorder), GovernanceService(backend, recorder)
            backend.close()
            audit_store.close()
        app.dependency_overrides.clear()


def test_engine_detach_over_http(remote):
    ws, backend, audit_store, engine, _ = remote

    result = engine.detach(ws.f1, confirmed=True)

    assert result.folder.sync_status == SyncStatus.detached
    assert ws.store.get_folder(ws.f1).sync_status == SyncStatus.detached
    # The entry written through the API lands in the server's audit log.
    entries = ws.audit_store.get_events()
    assert [e.id for e in entries] == [result.audit_entry.id]
    assert audit_store.get_events(resource_id=ws.f1)[0].action == "folder.detached"
    assert engine.inheritance("web").mode == InheritanceMode.partial


def test_bulk_mode_over_http(remote):
    ws, _, audit_store, engine, _ = remote
    engine.detach(ws.f1, confirmed=True)

    result = engine.set_inheritance_mode("web", "full", confirmed=True)

    assert result.resolution.mode == InheritanceMode.full
    history = audit_store.get_history("project", "web")
    assert [e.action for e in history] == ["inheritance.changed"]


def test_server_side_inheritance_change(remote):
    ws, backend, _, engine, _ = remote
    engine.detach(ws.f1, confirmed=True)

    project, warnings = backend.set_project_inheritance("web", "full", confirmed=True)

    assert project.id == "web"
    assert any("discarded" in w for w in warnings)
    assert ws.store.get_folder(ws.f1).sync_status == SyncStatus.synced


def test_service_over_http(remote):
    ws, backend, _, _, service = remote

    project = service.create_project("Mobile")
    assert backend.get_project(project.id).slug == "mobile"
    with pytest.raises(ConflictError):
        service.create_project("Mobile")

    folder = service.create_folder("Scratch", project_id=project.id)
    rule = service.create_rule(folder.id, "Hello", content="world")
    assert [r.id for r in backend.list_rules(folder.id)] == [rule.id]
    assert ws.audit_store.count(resource_id=rule.id) == 1


def test_errors_map_back_to_governance_errors(remote):
    ws, backend, _, engine, _ = remote

    with pytest.raises(NotFoundError) as excinfo:
        backend.get_folder("nope")
    assert excinfo.value.resource_type == "folder"

    with pytest.raises(InvalidStateError):
        backend.resync_folder(ws.f1)


def test_audit_export_over_http(remote):
    ws, _, audit_store, engine, _ = remote
    engine.detach(ws.f1, confirmed=True)

    assert audit_store.export_events("csv").startswith("id,timestamp")


def test_unreachable_server_is_network_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = HttpBackend("http://testserver", CTX, transport=httpx.MockTransport(refuse))
    with pytest.raises(NetworkError):
        backend.get_folder("f1")


def test_server_error_is_backend_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"detail": "boom"}))
    backend = HttpBackend("http://testserver", CTX, transport=transport)
    with pytest.raises(BackendError) as excinfo:
        backend.list_projects(ACCOUNT_ID)
    assert excinfo.value.status_code == 500


def test_rejected_audit_write_is_partial_failure(remote):
    ws, backend, _, _, _ = remote

    def reject(request):
        return httpx.Response(503, json={"detail": "audit log offline"})

    broken_audit = HttpAuditStore("http://testserver", CTX, transport=httpx.MockTransport(reject))
    engine = SyncEngine(backend, AuditRecorder(broken_audit, CTX))

    with pytest.raises(PartialFailure) as excinfo:
        engine.detach(ws.f1, confirmed=True)
    assert excinfo.value.result.folder.sync_status == SyncStatus.detached
    assert ws.store.get_folder(ws.f1).sync_status == SyncStatus.detached


def test_only_local_folders_are_created_over_http(remote):
    _, backend, _, _, _ = remote
    forged = Folder(
        id="mirror",
        account_id=ACCOUNT_ID,
        name="Mirror",
        project_id="web",
        sync_status="synced",
        inherited_from="security",
    )
    with pytest.raises(InvalidStateError):
        backend.create_folder(forged)


def test_permissions_over_http(remote):
    ws, backend, audit_store, _, service = remote

    project_grant = service.grant_permission("project", "web", "group", "devs", "write")
    folder_grant = service.grant_permission("folder", ws.notes, "user", "bob", "read")
    assert [p.id for p in backend.list_permissions("project", "web")] == [project_grant.id]
    assert ws.store.get_permission(folder_grant.id).granted_by == ACTOR_ID

    effective = {p.target_id: p.inherited_from for p in service.effective_permissions(ws.notes)}
    assert effective == {"bob": None, "devs": "web"}

    assert service.update_permission(folder_grant.id, "admin").permission_type == PermissionType.admin
    with pytest.raises(ConfirmationRequiredError):
        service.set_inherit_permissions("web", False)
    assert service.set_inherit_permissions("web", False, confirmed=True).inherit_permissions is False
    service.revoke_permission(project_grant.id, confirmed=True)

    with pytest.raises(NotFoundError):
        backend.get_permission(project_grant.id)
    actions = [e.action for e in audit_store.get_events(limit=10)]
    assert actions == [
        "permission.revoked",
        "project.updated",
        "permission.granted",
        "permission.granted",
        "permission.granted",
    ]
