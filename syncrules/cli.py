"""syncrules CLI — inspect and change folder inheritance from the terminal."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from syncrules import __version__
from syncrules.config import Settings, configure_logging, load_settings
from syncrules.governance.audit import AuditRecorder, AuditStore
from syncrules.governance.client import HttpAuditStore, HttpBackend
from syncrules.governance.engine import BulkResult, SyncEngine, TransitionResult
from syncrules.governance.errors import ConflictError, GovernanceError, PartialFailure
from syncrules.governance.models import (
    Account,
    InheritanceMode,
    PermissionTargetType,
    PermissionType,
    ResourceType,
    SessionContext,
)
from syncrules.governance.presentation import (
    Transition,
    audit_action_badge,
    confirmation_for,
    folder_badge,
    inheritance_badge,
    permission_badge,
)
from syncrules.governance.service import GovernanceService
from syncrules.governance.store import GovernanceStore

console = Console()


class Session:
    """Backend, audit recorder, engine and service for one CLI invocation."""

    def __init__(self, settings: Settings, remote: bool) -> None:
        if not settings.account_id:
            raise click.UsageError("No account selected; set SYNCRULES_ACCOUNT_ID or pass --account")
        if not settings.actor_id:
            raise click.UsageError("No actor; set SYNCRULES_ACTOR_ID or pass --actor")
        self.settings = settings
        self.context = SessionContext(actor_id=settings.actor_id, account_id=settings.account_id)
        if remote:
            self.backend = HttpBackend(settings.api_url, self.context, timeout=settings.http_timeout)
            self.audit_store = HttpAuditStore(settings.api_url, self.context, timeout=settings.http_timeout)
        else:
            self.backend = GovernanceStore(str(settings.data_dir))
            self.audit_store = AuditStore(settings.audit_dir)
        self.recorder = AuditRecorder(self.audit_store, self.context)
        self.engine = SyncEngine(self.backend, self.recorder)
        self.service = GovernanceService(self.backend, self.recorder)


def _confirm(transition: Transition, subject: str, yes: bool) -> bool:
    if yes:
        return True
    prompt = confirmation_for(transition, subject)
    console.print(Panel(prompt.description, title=prompt.title, border_style="yellow"))
    return click.confirm(prompt.confirm_text, default=False)


def _report_partial(exc: PartialFailure) -> None:
    console.print(f"[yellow]![/] {exc}")


@click.group()
@click.version_option(version=__version__)
@click.option("--remote", is_flag=True, help="Use the REST API instead of the local store")
@click.option("--account", default=None, help="Account id (overrides SYNCRULES_ACCOUNT_ID)")
@click.option("--actor", default=None, help="Actor id (overrides SYNCRULES_ACTOR_ID)")
@click.pass_context
def main(ctx: click.Context, remote: bool, account: Optional[str], actor: Optional[str]):
    """syncrules — folder governance for rule projects.

    Shows which project folders mirror the account, detaches and re-syncs
    them, and browses the audit trail of every change.
    """
    settings = load_settings()
    configure_logging(settings.log_level)
    if account:
        settings = replace(settings, account_id=account)
    if actor:
        settings = replace(settings, actor_id=actor)
    ctx.obj = {"settings": settings, "remote": remote}


def _open(ctx: click.Context) -> Session:
    obj = ctx.find_root().obj
    if "session" not in obj:
        obj["session"] = Session(obj["settings"], obj["remote"])
    return obj["session"]


def _fail(exc: GovernanceError) -> None:
    console.print(f"[red]x[/] {type(exc).__name__}: {exc}")
    raise SystemExit(1)


# ── Projects ─────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def projects(ctx: click.Context):
    """List the account's projects with their inheritance mode."""
    session = _open(ctx)
    try:
        items = session.service.list_projects()
        table = Table(title=f"Projects ({len(items)})")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Slug")
        table.add_column("Inheritance")
        for project in items:
            resolution = session.engine.inheritance(project.id)
            badge = inheritance_badge(resolution.mode, resolution.synced_count, resolution.detached_count)
            table.add_row(project.id, project.name, project.slug, f"[{badge.tone.value}]{badge.label}[/]")
    except GovernanceError as exc:
        _fail(exc)
    console.print(table)


@main.command()
@click.argument("project_id")
@click.pass_context
def status(ctx: click.Context, project_id: str):
    """Show a project's inheritance mode and the state of each folder."""
    session = _open(ctx)
    try:
        project = session.service.get_project(project_id)
        resolution = session.engine.inheritance(project_id)
        folders = session.service.list_folders(project_id=project_id)
    except GovernanceError as exc:
        _fail(exc)

    badge = inheritance_badge(resolution.mode, resolution.synced_count, resolution.detached_count)
    console.print(
        Panel(
            f"[bold {badge.tone.value}]{badge.label}[/]\n{badge.tooltip}",
            title=f"{project.name} ({project.slug})",
        )
    )
    _print_folders(folders)


@main.command()
@click.option("--project", "-p", "project_id", default=None, help="Only folders of this project")
@click.option("--account-only", is_flag=True, help="Only account-level folders")
@click.pass_context
def folders(ctx: click.Context, project_id: Optional[str], account_only: bool):
    """List folders with their sync status and editability."""
    session = _open(ctx)
    try:
        items = session.service.list_folders(project_id=project_id, account_only=account_only)
    except GovernanceError as exc:
        _fail(exc)
    _print_folders(items)


def _print_folders(items) -> None:
    if not items:
        console.print("[yellow]No folders.[/]")
        return
    table = Table(title=f"Folders ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Project")
    table.add_column("Status")
    table.add_column("Access")
    table.add_column("Inherited from", style="dim")
    for f in items:
        badge = folder_badge(f.sync_status, f.folder_status, f.inherited_from, f.source_of_truth)
        table.add_row(
            f.id,
            f.name,
            f.project_id or "(account)",
            f"[{badge.tone.value}]{badge.label}[/]",
            f.folder_status.value,
            f.inherited_from or "",
        )
    console.print(table)


# ── Transitions ──────────────────────────────────────────────────────


def _print_transition(verb: str, result: TransitionResult) -> None:
    console.print(f"[green]v[/] {verb} '{result.folder.name}' ({result.folder.sync_status.value})")
    if result.warning:
        console.print(f"  [yellow]![/] {result.warning}")


@main.command()
@click.argument("folder_id")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def detach(ctx: click.Context, folder_id: str, yes: bool):
    """Turn a synced folder into an editable copy."""
    session = _open(ctx)
    try:
        folder = session.service.get_folder(folder_id)
        if not _confirm(Transition.detach, folder.name, yes):
            console.print("Cancelled.")
            return
        _print_transition("Detached", session.engine.detach(folder_id, confirmed=True))
    except PartialFailure as exc:
        _print_transition("Detached", exc.result)
        _report_partial(exc)
    except GovernanceError as exc:
        _fail(exc)


@main.command()
@click.argument("folder_id")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def resync(ctx: click.Context, folder_id: str, yes: bool):
    """Overwrite a detached folder with the account version."""
    session = _open(ctx)
    try:
        folder = session.service.get_folder(folder_id)
        if not _confirm(Transition.resync, folder.name, yes):
            console.print("Cancelled.")
            return
        _print_transition("Re-synced", session.engine.resync(folder_id, confirmed=True))
    except PartialFailure as exc:
        _print_transition("Re-synced", exc.result)
        _report_partial(exc)
    except GovernanceError as exc:
        _fail(exc)


def _print_bulk(result: BulkResult) -> None:
    colour = "green" if result.ok else "yellow"
    console.print(f"[{colour}]{result.summary()}[/]")
    for failure in result.failed:
        console.print(f"  [red]x[/] {failure.item_id}: {failure.error}")
    for skipped in result.skipped:
        console.print(f"  [dim]-[/] {skipped.item_id}: {skipped.error}")


@main.command(name="set-mode")
@click.argument("project_id")
@click.argument("mode", type=click.Choice([m.value for m in InheritanceMode]))
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def set_mode(ctx: click.Context, project_id: str, mode: str, yes: bool):
    """Re-sync every detached folder (full) or sever all inheritance (none)."""
    session = _open(ctx)
    transition = Transition.remove_inheritance if mode == InheritanceMode.none.value else Transition.restore_inheritance
    try:
        if mode != InheritanceMode.partial.value:
            project = session.service.get_project(project_id)
            if not _confirm(transition, project.name, yes):
                console.print("Cancelled.")
                return
        _print_bulk(session.engine.set_inheritance_mode(project_id, mode, confirmed=True))
    except PartialFailure as exc:
        _print_bulk(exc.result)
        _report_partial(exc)
    except GovernanceError as exc:
        _fail(exc)


@main.command()
@click.argument("folder_id")
@click.argument("project_ids", nargs=-1, required=True)
@click.pass_context
def share(ctx: click.Context, folder_id: str, project_ids: tuple):
    """Share an account-level folder into one or more projects."""
    session = _open(ctx)
    try:
        result = session.engine.share_folder(folder_id, list(project_ids))
    except PartialFailure as exc:
        result = exc.result
        _report_partial(exc)
    except GovernanceError as exc:
        _fail(exc)
    for clone in result.succeeded:
        console.print(f"[green]v[/] Shared '{result.source.name}' into {clone.project_id} as {clone.id}")
    for failure in result.failed:
        console.print(f"[red]x[/] {failure.item_id}: {failure.error}")


# ── Permissions ──────────────────────────────────────────────────────


def _parse_resource(resource: str) -> tuple[str, str]:
    resource_type, _, resource_id = resource.partition(":")
    if resource_type not in (ResourceType.project.value, ResourceType.folder.value) or not resource_id:
        raise click.BadParameter("expected project:ID or folder:ID", param_hint="RESOURCE")
    return resource_type, resource_id


def _print_permissions(title: str, items) -> None:
    if not items:
        console.print("[yellow]No permissions.[/]")
        return
    table = Table(title=f"{title} ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Target", style="cyan")
    table.add_column("Type")
    table.add_column("Access")
    table.add_column("Inherited from", style="dim")
    for p in items:
        badge = permission_badge(p.permission_type, p.target_type)
        table.add_row(
            p.id,
            p.target_name or p.target_id,
            p.target_type.value,
            f"[{badge.tone.value}]{badge.label}[/]",
            p.inherited_from or "",
        )
    console.print(table)


@main.command()
@click.argument("resource")
@click.pass_context
def permissions(ctx: click.Context, resource: str):
    """List grants on a project, or a folder's effective grants.

    RESOURCE is project:ID or folder:ID.
    """
    resource_type, resource_id = _parse_resource(resource)
    session = _open(ctx)
    try:
        if resource_type == ResourceType.folder.value:
            items = session.service.effective_permissions(resource_id)
        else:
            project = session.service.get_project(resource_id)
            items = session.service.list_permissions(resource_type, resource_id)
            state = "on" if project.inherit_permissions else "off"
            console.print(f"Folders inherit these permissions: [bold]{state}[/]")
    except GovernanceError as exc:
        _fail(exc)
    _print_permissions(f"Permissions on {resource}", items)


@main.command()
@click.argument("resource")
@click.argument("target_id")
@click.argument("level", type=click.Choice([t.value for t in PermissionType]))
@click.option("--group", is_flag=True, help="TARGET_ID names a group rather than a user")
@click.option("--name", "target_name", default="", help="Display name of the target")
@click.pass_context
def grant(ctx: click.Context, resource: str, target_id: str, level: str, group: bool, target_name: str):
    """Grant a user or group access to RESOURCE (project:ID or folder:ID)."""
    resource_type, resource_id = _parse_resource(resource)
    target_type = PermissionTargetType.group if group else PermissionTargetType.user
    session = _open(ctx)
    try:
        permission = session.service.grant_permission(
            resource_type, resource_id, target_type, target_id, level, target_name=target_name
        )
    except PartialFailure as exc:
        permission = exc.result
        _report_partial(exc)
    except GovernanceError as exc:
        _fail(exc)
    console.print(
        f"[green]v[/] Granted {permission.permission_type.value} on {resource} "
        f"to {target_type.value} '{permission.target_name}' ({permission.id})"
    )


@main.command()
@click.argument("permission_id")
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def revoke(ctx: click.Context, permission_id: str, yes: bool):
    """Remove a permission grant."""
    session = _open(ctx)
    try:
        permission = session.service.get_permission(permission_id)
        if not _confirm(Transition.revoke_permission, permission.target_name or permission.target_id, yes):
            console.print("Cancelled.")
            return
        session.service.revoke_permission(permission_id, confirmed=True)
    except PartialFailure as exc:
        _report_partial(exc)
    except GovernanceError as exc:
        _fail(exc)
    console.print(f"[green]v[/] Revoked {permission_id}")


@main.command(name="inherit-permissions")
@click.argument("project_id")
@click.argument("state", type=click.Choice(["on", "off"]))
@click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def inherit_permissions(ctx: click.Context, project_id: str, state: str, yes: bool):
    """Let a project's folders inherit its permissions, or stop them."""
    enabled = state == "on"
    transition = (
        Transition.enable_permission_inheritance if enabled else Transition.disable_permission_inheritance
    )
    session = _open(ctx)
    try:
        project = session.service.get_project(project_id)
        if project.inherit_permissions == enabled:
            console.print(f"[dim]-[/] Permission inheritance already {state} for '{project.name}'")
            return
        if not _confirm(transition, project.name, yes):
            console.print("Cancelled.")
            return
        project = session.service.set_inherit_permissions(project_id, enabled, confirmed=True)
    except PartialFailure as exc:
        project = exc.result
        _report_partial(exc)
    except GovernanceError as exc:
        _fail(exc)
    console.print(f"[green]v[/] Permission inheritance {state} for '{project.name}'")


# ── Audit ────────────────────────────────────────────────────────────


@main.command()
@click.option("--project", "-p", "project_id", default=None, help="Filter by project")
@click.option("--action", "-a", default=None, help="Filter by action, e.g. folder.detached")
@click.option("--resource", "-r", default=None, help="History of one resource, as TYPE:ID")
@click.option("--limit", "-n", default=50, show_default=True)
@click.option("--export", "export_format", type=click.Choice(["json", "csv"]), default=None)
@click.pass_context
def audit(
    ctx: click.Context,
    project_id: Optional[str],
    action: Optional[str],
    resource: Optional[str],
    limit: int,
    export_format: Optional[str],
):
    """Browse or export the audit trail."""
    session = _open(ctx)
    store = session.audit_store
    account_id = session.context.account_id
    try:
        if export_format:
            click.echo(store.export_events(export_format, project_id=project_id, action=action, account_id=account_id))
            return
        if resource:
            resource_type, _, resource_id = resource.partition(":")
            if not resource_id:
                raise click.BadParameter("expected TYPE:ID", param_hint="--resource")
            entries = [e for e in store.get_history(resource_type, resource_id) if e.account_id == account_id]
        else:
            entries = store.get_events(project_id=project_id, action=action, account_id=account_id, limit=limit)
    except GovernanceError as exc:
        _fail(exc)

    if not entries:
        console.print("[yellow]No audit entries.[/]")
        return
    table = Table(title=f"Audit ({len(entries)})")
    table.add_column("Time", style="dim")
    table.add_column("Actor")
    table.add_column("Action")
    table.add_column("Resource")
    table.add_column("Changes")
    for e in entries:
        badge = audit_action_badge(e.action)
        changes = ", ".join(f"{k}: {v.get('from')} -> {v.get('to')}" for k, v in e.changes.items())
        if e.warning:
            changes += f"\n[yellow]{e.warning}[/]"
        table.add_row(
            e.timestamp[:19],
            e.actor_id,
            f"[{badge.tone.value}]{badge.label}[/]",
            f"{e.resource_type}:{e.resource_id}",
            changes,
        )
    console.print(table)


# ── Seed ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("seed_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def seed(ctx: click.Context, seed_path: str):
    """Load an account, its folders and projects from a YAML file.

    The file has an ``account`` mapping, account-level ``folders`` with
    optional ``rules``, and ``projects`` that list the folder names they
    ``share`` plus their own local ``folders``.
    """
    import yaml

    with open(seed_path) as f:
        data = yaml.safe_load(f) or {}
    account_data = data.get("account") or {}
    if not account_data.get("id"):
        raise click.UsageError("Seed file needs an account with an id")

    obj = ctx.find_root().obj
    obj["settings"] = replace(obj["settings"], account_id=account_data["id"])
    session = _open(ctx)

    account = Account(
        id=account_data["id"],
        name=account_data.get("name", account_data["id"]),
        slug=account_data.get("slug", account_data["id"]),
    )
    try:
        try:
            session.backend.create_account(account)
            console.print(f"[green]v[/] Account {account.id}")
        except ConflictError:
            console.print(f"[dim]-[/] Account {account.id} already exists")

        shared = {}
        for folder_data in data.get("folders") or []:
            folder = session.service.create_folder(folder_data["name"], folder_data.get("path", ""))
            for rule_data in folder_data.get("rules") or []:
                session.service.create_rule(folder.id, rule_data["name"], rule_data.get("content", ""))
            shared[folder.name] = folder
            console.print(f"[green]v[/] Account folder '{folder.name}' ({folder.id})")

        for project_data in data.get("projects") or []:
            project = session.service.create_project(project_data["name"], project_data.get("description", ""))
            console.print(f"[green]v[/] Project '{project.name}' ({project.id})")
            for name in project_data.get("share") or []:
                if name not in shared:
                    console.print(f"  [yellow]![/] Unknown account folder '{name}'")
                    continue
                session.engine.share_folder(shared[name].id, [project.id])
                console.print(f"  [green]v[/] shares '{name}'")
            for folder_data in project_data.get("folders") or []:
                session.service.create_folder(folder_data["name"], folder_data.get("path", ""), project_id=project.id)
    except GovernanceError as exc:
        _fail(exc)


if __name__ == "__main__":
    main()
