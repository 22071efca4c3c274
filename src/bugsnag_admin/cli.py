"""bugsnag-admin CLI - manage Bugsnag <-> Mattermost routing from a terminal.

Usage:
    bugsnag-admin test [--token T] [--org O]     # check Bugsnag credentials
    bugsnag-admin projects                       # project -> channel table
    bugsnag-admin rules show                     # every rule with its filters
    bugsnag-admin rules set PROJECT CHANNEL      # one channel per project
    bugsnag-admin rules filter PROJECT [...]     # edit a rule's filters
    bugsnag-admin users list|add|remove          # user mappings
    bugsnag-admin serve [--host H] [--port P]    # run the plugin API server
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import NoReturn

import click

from bugsnag_admin import conventions
from bugsnag_admin.client import (
    HttpPlatformClient,
    HttpPluginClient,
    PlatformClient,
    PluginClient,
)
from bugsnag_admin.config import AdminConfig
from bugsnag_admin.logging_setup import log_file_path, setup_logging
from bugsnag_admin.views import (
    ConnectionView,
    NotificationRulesView,
    ProjectsView,
    UserMappingsView,
)

logger = logging.getLogger(__name__)


def _build_clients(
    config: AdminConfig,
) -> tuple[PluginClient, PlatformClient | None]:
    """Create the HTTP clients for the configured Mattermost server."""
    if not config.plugin_url:
        click.echo(
            "Error: Mattermost URL is not configured "
            "(set MATTERMOST_URL or BUGSNAG_ADMIN_PLUGIN_URL).",
            err=True,
        )
        sys.exit(1)
    plugin = HttpPluginClient(
        config.plugin_url, token=config.mattermost_token, timeout=config.timeout
    )
    platform = None
    if config.has_platform_access:
        platform = HttpPlatformClient(
            config.mattermost_url,
            token=config.mattermost_token,
            timeout=config.timeout,
        )
    return plugin, platform


def _clients(ctx: click.Context) -> tuple[PluginClient, PlatformClient | None]:
    return _build_clients(ctx.obj["config"])


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _mount(view: ProjectsView | NotificationRulesView | UserMappingsView) -> None:
    asyncio.run(view.mount())
    for kind, error in view.catalogs.errors.items():
        click.echo(f"Warning: {kind} unavailable: {error}", err=True)
    if view.error:
        _fail(view.error)


def _save(view: ProjectsView | NotificationRulesView | UserMappingsView) -> None:
    outcome = asyncio.run(view.save())
    if not outcome.ok:
        _fail(outcome.error or conventions.SAVE_FAILURE_MESSAGE)
    click.echo(view.success)


@click.group("bugsnag-admin")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.version_option(package_name="bugsnag-admin")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Bugsnag <-> Mattermost integration settings."""
    setup_logging(level=logging.DEBUG if verbose else logging.WARNING)
    ctx.ensure_object(dict)
    if "config" not in ctx.obj:
        ctx.obj["config"] = AdminConfig.from_env()


# ── Connection ───────────────────────────────────────────────────


@main.command("test", help="Check Bugsnag credentials through the plugin.")
@click.option("--token", default="", help="API token (default: the configured one).")
@click.option("--org", "organization_id", default="", help="Organization ID.")
@click.pass_context
def test_cmd(ctx: click.Context, token: str, organization_id: str) -> None:
    plugin, _ = _clients(ctx)
    view = ConnectionView(plugin)
    view.api_token = token
    view.organization_id = organization_id
    result = asyncio.run(view.test())
    if not result.ok:
        _fail(result.message)
    click.echo(result.message)


# ── Projects ─────────────────────────────────────────────────────


@main.command(help="List Bugsnag projects and the channel each one posts to.")
@click.pass_context
def projects(ctx: click.Context) -> None:
    view = ProjectsView(*_clients(ctx))
    _mount(view)

    if view.empty_text:
        click.echo(view.empty_text)
    for row in view.rows():
        channel = row.channel_label or "-"
        click.echo(f"  {row.project_name:<30} {row.project_id:<26} {channel}")
    for pid in view.orphan_project_ids():
        click.echo(f"  (unknown project {pid} has stored rules)")


# ── Channel rules ────────────────────────────────────────────────


@main.group(help="Project -> channel rules and their filters.")
def rules() -> None:
    pass


@rules.command("show")
@click.pass_context
def rules_show(ctx: click.Context) -> None:
    """Show every rule with its filters."""
    view = NotificationRulesView(*_clients(ctx))
    _mount(view)

    if view.empty_text:
        click.echo(view.empty_text)
        return
    for panel in view.panels():
        severities = [s for s, on in panel.severities.items() if on] or ["all"]
        events = [e for e, on in panel.events.items() if on] or ["all"]
        click.echo(
            f"{panel.project_name} [{panel.rule_index}] -> {panel.channel_label}"
        )
        click.echo(f"  environments: {panel.environments_text or 'all'}")
        click.echo(f"  severities:   {', '.join(severities)}")
        click.echo(f"  events:       {', '.join(events)}")


@rules.command("set")
@click.argument("project_id")
@click.argument("channel_id")
@click.pass_context
def rules_set(ctx: click.Context, project_id: str, channel_id: str) -> None:
    """Route PROJECT_ID to CHANNEL_ID only (replaces its rules)."""
    view = ProjectsView(*_clients(ctx))
    _mount(view)
    view.set_channel(project_id, channel_id)
    _save(view)


@rules.command("filter")
@click.argument("project_id")
@click.option("--index", "rule_index", default=0, type=int, help="Rule position.")
@click.option("--environments", default=None, help="Comma-separated list.")
@click.option(
    "--severity",
    "severities",
    multiple=True,
    type=click.Choice(conventions.SEVERITIES),
    help="Allowed severity (repeatable).",
)
@click.option(
    "--event",
    "events",
    multiple=True,
    type=click.Choice(conventions.EVENTS),
    help="Allowed event (repeatable).",
)
@click.option("--clear", is_flag=True, help="Remove every filter first.")
@click.pass_context
def rules_filter(
    ctx: click.Context,
    project_id: str,
    rule_index: int,
    environments: str | None,
    severities: tuple[str, ...],
    events: tuple[str, ...],
    clear: bool,
) -> None:
    """Edit the filters of one rule of PROJECT_ID."""
    view = NotificationRulesView(*_clients(ctx))
    _mount(view)

    indices = [p.rule_index for p in view.panels() if p.project_id == project_id]
    if rule_index not in indices:
        _fail(f"no rule {rule_index} for project {project_id}")

    if clear:
        for field in ("environments", "severities", "events"):
            view.editor.update_rule_field(project_id, rule_index, field, [])
    if environments is not None:
        view.set_environments(project_id, rule_index, environments)
    if severities:
        view.editor.update_rule_field(project_id, rule_index, "severities", severities)
    if events:
        view.editor.update_rule_field(project_id, rule_index, "events", events)
    _save(view)


# ── User mappings ────────────────────────────────────────────────


@main.group(help="Mattermost user <-> Bugsnag user mappings.")
def users() -> None:
    pass


@users.command("list")
@click.pass_context
def users_list(ctx: click.Context) -> None:
    """List user mappings."""
    view = UserMappingsView(*_clients(ctx))
    _mount(view)

    if view.empty_text:
        click.echo(view.empty_text)
    for row in view.rows():
        bugsnag = row.bugsnag_user_id or "-"
        click.echo(f"  {row.mm_user_label:<40} {bugsnag:<26} {row.bugsnag_email}")


@users.command("add")
@click.argument("mm_user_id")
@click.option("--bugsnag-id", default="", help="Bugsnag user ID.")
@click.option("--email", default="", help="Bugsnag e-mail.")
@click.pass_context
def users_add(ctx: click.Context, mm_user_id: str, bugsnag_id: str, email: str) -> None:
    """Map MM_USER_ID to a Bugsnag user."""
    if not (bugsnag_id or email):
        _fail("give --bugsnag-id or --email")
    view = UserMappingsView(*_clients(ctx))
    _mount(view)

    if any(row.mm_user_id == mm_user_id for row in view.rows()):
        _fail(f"{mm_user_id} is already mapped")
    key = view.add()
    view.change(key, "mm_user_id", mm_user_id)
    view.change(key, "bugsnag_user_id", bugsnag_id)
    view.change(key, "bugsnag_email", email)
    _save(view)


@users.command("remove")
@click.argument("mm_user_id")
@click.pass_context
def users_remove(ctx: click.Context, mm_user_id: str) -> None:
    """Remove every mapping of MM_USER_ID."""
    view = UserMappingsView(*_clients(ctx))
    _mount(view)

    keys = [row.key for row in view.rows() if row.mm_user_id == mm_user_id]
    if not keys:
        _fail(f"{mm_user_id} is not mapped")
    for key in keys:
        view.remove(key)
    _save(view)


# ── Server ───────────────────────────────────────────────────────


@main.command(help="Run the plugin API server.")
@click.option("--host", default=conventions.SERVER_DEFAULT_HOST, help="Bind host")
@click.option(
    "--port", default=conventions.SERVER_DEFAULT_PORT, type=int, help="Bind port"
)
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, reload: bool) -> None:
    import uvicorn

    from bugsnag_admin.server.app import create_app

    config: AdminConfig = ctx.obj["config"]
    level = logging.getLogger().level
    setup_logging(log_file=log_file_path(), level=min(level, logging.INFO))

    click.echo(f"Plugin API on http://{host}:{port}{conventions.PLUGIN_API_PREFIX}")
    if not config.has_bugsnag_token:
        click.echo("  Warning: no Bugsnag API token configured", err=True)
    if reload:
        uvicorn.run(
            "bugsnag_admin.server.app:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
        )
    else:
        uvicorn.run(create_app(config), host=host, port=port)


if __name__ == "__main__":
    main()
