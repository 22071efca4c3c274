"""Presentation adapter: the four admin settings screens as plain objects.

Each view binds the entity catalogs and one MappingStore to an editing
surface and exposes the state a renderer needs (rows, checkbox states,
inline error, transient success text). Views never raise from I/O; every
failure lands in ``error``.

    view = ProjectsView(plugin, platform)
    await view.mount()          # catalogs + store fetched in parallel
    view.set_channel("p1", "c1")
    await view.save()
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from bugsnag_admin.catalogs import CatalogAdapter, CatalogKind, CatalogSet
from bugsnag_admin.client import PlatformClient, PluginClient
from bugsnag_admin.conventions import EVENTS, SEVERITIES
from bugsnag_admin.editor import RuleEditor
from bugsnag_admin.errors import AdminApiError
from bugsnag_admin.models import (
    ChannelEntity,
    ChannelId,
    Collaborator,
    ProjectEntity,
    ProjectId,
    UserEntity,
)
from bugsnag_admin.store import MappingStore
from bugsnag_admin.sync import (
    ConnectionResult,
    Credentials,
    SaveOutcome,
    SyncSession,
    test_connection,
)

logger = logging.getLogger(__name__)

NO_PROJECTS_TEXT = "No projects found. Please configure your Bugsnag API token first."
NO_RULES_TEXT = "No project mappings configured. Add project -> channel mappings first."
NO_USER_MAPPINGS_TEXT = "No user mappings configured."


class ConnectionView:
    """Credentials form with a "Test Connection" button."""

    def __init__(self, plugin: PluginClient) -> None:
        self._plugin = plugin
        self.api_token = ""
        self.organization_id = ""
        self.testing = False
        self.result: ConnectionResult | None = None

    async def test(self) -> ConnectionResult:
        self.testing = True
        self.result = None
        try:
            self.result = await test_connection(
                self._plugin, Credentials(self.api_token, self.organization_id)
            )
        finally:
            self.testing = False
        return self.result


class _MappingView(ABC):
    """Shared mount/save plumbing for the store-backed screens."""

    success_text = ""
    catalog_kinds: tuple[CatalogKind, ...] = ()

    def __init__(
        self, plugin: PluginClient, platform: PlatformClient | None = None
    ) -> None:
        self.store = MappingStore(plugin)
        self.session = SyncSession(plugin, self.store)
        self._catalogs = CatalogAdapter(plugin, platform)
        self.catalogs = CatalogSet()
        self.loading = False
        self.load_error: str | None = None

    @property
    def editor(self) -> RuleEditor:
        return self.session.editor

    @property
    def saving(self) -> bool:
        return self.session.saving

    @property
    def error(self) -> str | None:
        return self.session.error or self.load_error

    @property
    def success(self) -> str | None:
        return self.success_text if self.session.success else None

    @abstractmethod
    def _load_store(self) -> Awaitable[object]:
        """Start loading the persisted state this screen edits."""

    async def _hydrate(self) -> None:
        try:
            await self._load_store()
        except AdminApiError as exc:
            self.load_error = exc.message

    async def mount(self) -> None:
        """Fetch catalogs and persisted state in parallel; render when both settle."""
        self.loading = True
        self.load_error = None
        try:
            self.catalogs, _ = await asyncio.gather(
                self._catalogs.fetch_catalogs(*self.catalog_kinds),
                self._hydrate(),
            )
        finally:
            self.loading = False
        if self.catalogs.errors:
            logger.debug(
                "%s mounted with degraded catalogs: %s",
                type(self).__name__,
                self.catalogs.errors,
            )

    async def _run_save(
        self, save: Callable[[], Awaitable[SaveOutcome]]
    ) -> SaveOutcome:
        outcome = await save()
        if outcome.ok:
            self.load_error = None
        return outcome


# --- Projects ---


@dataclass(frozen=True)
class ProjectRow:
    project_id: ProjectId
    project_name: str
    channel_id: str
    channel_label: str


class ProjectsView(_MappingView):
    """One row per Bugsnag project with a single channel dropdown."""

    success_text = "Settings saved successfully"
    catalog_kinds = (CatalogKind.PROJECTS, CatalogKind.CHANNELS)

    def _load_store(self) -> Awaitable[object]:
        return self.store.load_channel_rules()

    @property
    def projects(self) -> list[ProjectEntity]:
        return self.catalogs.get(CatalogKind.PROJECTS)

    @property
    def channels(self) -> list[ChannelEntity]:
        return self.catalogs.get(CatalogKind.CHANNELS)

    @property
    def empty_text(self) -> str | None:
        return NO_PROJECTS_TEXT if not self.projects else None

    def _channel_labels(self) -> dict[str, str]:
        return {c.id: c.label for c in self.channels}

    def rows(self) -> list[ProjectRow]:
        rules = self.store.current_state().channel_rules
        labels = self._channel_labels()
        rows = []
        for project in self.projects:
            project_rules = rules.get(ProjectId(project.id), ())
            channel_id = project_rules[0].channel_id if project_rules else ""
            rows.append(
                ProjectRow(
                    project_id=ProjectId(project.id),
                    project_name=project.name or project.id,
                    channel_id=channel_id,
                    channel_label=labels.get(channel_id, channel_id),
                )
            )
        return rows

    def orphan_project_ids(self) -> list[ProjectId]:
        """Projects with stored rules that the catalog no longer lists."""
        known = {p.id for p in self.projects}
        return [
            pid for pid in self.store.current_state().channel_rules if pid not in known
        ]

    def set_channel(self, project_id: str, channel_id: str) -> None:
        self.editor.set_channel_for_project(ProjectId(project_id), channel_id)

    async def save(self) -> SaveOutcome:
        return await self._run_save(self.session.save_channel_rules)


# --- Notification rules ---


@dataclass(frozen=True)
class RulePanel:
    project_id: ProjectId
    project_name: str
    rule_index: int
    channel_id: ChannelId
    channel_label: str
    environments_text: str
    severities: dict[str, bool]
    events: dict[str, bool]


class NotificationRulesView(_MappingView):
    """Per-rule filter editing. Unchecked boxes everywhere mean "all"."""

    success_text = "Notification rules saved successfully"
    catalog_kinds = (CatalogKind.PROJECTS, CatalogKind.CHANNELS)

    def _load_store(self) -> Awaitable[object]:
        return self.store.load_channel_rules()

    @property
    def empty_text(self) -> str | None:
        if self.store.current_state().channel_rules:
            return None
        return NO_RULES_TEXT

    def panels(self) -> list[RulePanel]:
        names = {p.id: p.name for p in self.catalogs.get(CatalogKind.PROJECTS)}
        labels = {c.id: c.label for c in self.catalogs.get(CatalogKind.CHANNELS)}
        panels = []
        for pid, rules in self.store.current_state().channel_rules.items():
            for index, rule in enumerate(rules):
                panels.append(
                    RulePanel(
                        project_id=pid,
                        project_name=names.get(pid) or pid,
                        rule_index=index,
                        channel_id=rule.channel_id,
                        channel_label=labels.get(rule.channel_id, rule.channel_id),
                        environments_text=", ".join(rule.environments.values),
                        severities={
                            s: s in rule.severities.values for s in SEVERITIES
                        },
                        events={e: e in rule.events.values for e in EVENTS},
                    )
                )
        return panels

    def set_environments(self, project_id: str, rule_index: int, text: str) -> None:
        self.editor.set_environments(ProjectId(project_id), rule_index, text)

    def toggle_severity(
        self, project_id: str, rule_index: int, severity: str, checked: bool
    ) -> None:
        self.editor.toggle_severity(
            ProjectId(project_id), rule_index, severity, checked
        )

    def toggle_event(
        self, project_id: str, rule_index: int, event: str, checked: bool
    ) -> None:
        self.editor.toggle_event(ProjectId(project_id), rule_index, event, checked)

    async def save(self) -> SaveOutcome:
        return await self._run_save(self.session.save_channel_rules)


# --- User mappings ---


@dataclass(frozen=True)
class UserMappingRowView:
    key: str
    mm_user_id: str
    mm_user_label: str
    bugsnag_user_id: str
    bugsnag_email: str


class UserMappingsView(_MappingView):
    """Editable table of Mattermost user <-> Bugsnag user rows."""

    success_text = "User mappings saved successfully"
    catalog_kinds = (CatalogKind.USERS, CatalogKind.COLLABORATORS)

    def _load_store(self) -> Awaitable[object]:
        return self.store.load_user_mappings()

    @property
    def users(self) -> list[UserEntity]:
        return self.catalogs.get(CatalogKind.USERS)

    @property
    def collaborators(self) -> list[Collaborator]:
        return self.catalogs.get(CatalogKind.COLLABORATORS)

    @property
    def empty_text(self) -> str | None:
        if self.store.current_state().user_rows:
            return None
        return NO_USER_MAPPINGS_TEXT

    def rows(self) -> list[UserMappingRowView]:
        labels = {u.id: u.display_name for u in self.users}
        return [
            UserMappingRowView(
                key=row.key,
                mm_user_id=row.mapping.mm_user_id,
                mm_user_label=labels.get(
                    row.mapping.mm_user_id, row.mapping.mm_user_id
                ),
                bugsnag_user_id=row.mapping.bugsnag_user_id,
                bugsnag_email=row.mapping.bugsnag_email,
            )
            for row in self.store.current_state().user_rows
        ]

    def add(self) -> str:
        return self.editor.add_user_mapping()

    def remove(self, key: str) -> None:
        self.editor.remove_user_mapping_by_key(key)

    def change(self, key: str, field: str, value: str) -> None:
        self.editor.update_user_mapping_field_by_key(key, field, value)

    def pick_collaborator(self, key: str, collaborator_id: str) -> None:
        """Fill both Bugsnag fields from a collaborator in the catalog."""
        for collaborator in self.collaborators:
            if collaborator.id == collaborator_id:
                self.change(key, "bugsnag_user_id", collaborator.id)
                self.change(key, "bugsnag_email", collaborator.email)
                return
        logger.debug("Unknown collaborator %s", collaborator_id)

    async def save(self) -> SaveOutcome:
        return await self._run_save(self.session.save_user_mappings)
