"""Shared test fixtures."""

import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest

from syncrules.governance.audit import AuditRecorder, AuditStore
from syncrules.governance.engine import SyncEngine
from syncrules.governance.models import Account, Folder, Project, Rule, SessionContext
from syncrules.governance.service import GovernanceService
from syncrules.governance.store import GovernanceStore

ACCOUNT_ID = "acct-1"
ACTOR_ID = "alice"


def build_workspace(tmpdir: str, audit_store=None) -> SimpleNamespace:
    """An account with two shared folders and one project inheriting both.

    Layout:
    - ``security`` (account level, 2 rules) shared into ``web`` as ``f1``
    - ``style`` (account level, 1 rule) shared into ``web`` as ``f2``
    - ``notes`` local to ``web``
    """
    store = GovernanceStore(str(Path(tmpdir) / "data"))
    audit_store = audit_store or AuditStore(Path(tmpdir) / "audit")
    context = SessionContext(actor_id=ACTOR_ID, account_id=ACCOUNT_ID)
    recorder = AuditRecorder(audit_store, context)

    store.create_account(Account(id=ACCOUNT_ID, name="Acme", slug="acme"))
    store.create_project(Project(id="web", account_id=ACCOUNT_ID, name="Web", slug="web"))
    for fid, name in (("security", "Security"), ("style", "Style")):
        store.create_folder(
            Folder(id=fid, account_id=ACCOUNT_ID, name=name, path=f"/{fid}", source_of_truth="account")
        )
    store.create_rule(Rule(id="r1", folder_id="security", account_id=ACCOUNT_ID, name="No secrets", content="a"))
    store.create_rule(Rule(id="r2", folder_id="security", account_id=ACCOUNT_ID, name="Pin deps", content="b"))
    store.create_rule(Rule(id="r3", folder_id="style", account_id=ACCOUNT_ID, name="Black", content="c"))

    f1 = store.share_folder("security", "web")
    f2 = store.share_folder("style", "web")
    notes = store.create_folder(Folder(id="notes", account_id=ACCOUNT_ID, name="Notes", project_id="web"))

    return SimpleNamespace(
        store=store,
        audit_store=audit_store,
        context=context,
        recorder=recorder,
        engine=SyncEngine(store, recorder),
        service=GovernanceService(store, recorder),
        f1=f1.id,
        f2=f2.id,
        notes=notes.id,
    )


@pytest.fixture(name="ws")
def workspace_fixture():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield build_workspace(tmpdir)


class FailingAuditStore(AuditStore):
    """An audit store whose writes always fail."""

    def append(self, entry):
        from syncrules.governance.errors import AuditWriteError

        raise AuditWriteError(f"disk full writing {entry.id}")
