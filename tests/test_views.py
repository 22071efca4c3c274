"""Presentation adapter tests: the four settings screens over memory clients."""

from __future__ import annotations

import httpx
import pytest

from bugsnag_admin.catalogs import CatalogKind
from bugsnag_admin.client import (
    HttpPluginClient,
    MemoryPlatformClient,
    MemoryPluginClient,
)
from bugsnag_admin.conventions import CONNECTION_SUCCESS_MESSAGE
from bugsnag_admin.errors import ServerError, TransportError
from bugsnag_admin.models import (
    ChannelId,
    ChannelRule,
    PlatformUserId,
    ProjectId,
    ProviderUserId,
    UserMapping,
    make_filter,
    mappings_to_wire,
)
from bugsnag_admin.views import (
    NO_PROJECTS_TEXT,
    NO_RULES_TEXT,
    ConnectionView,
    NotificationRulesView,
    ProjectsView,
    UserMappingsView,
    _MappingView,
)

P1 = ProjectId("p1")


@pytest.fixture
async def rules_view(plugin, platform) -> NotificationRulesView:
    plugin.channel_rules = {
        P1: (
            ChannelRule(
                ChannelId("c1"),
                environments=make_filter(["production"]),
                severities=make_filter(["error"]),
            ),
        )
    }
    view = NotificationRulesView(plugin, platform)
    await view.mount()
    return view


@pytest.fixture
async def users_view(plugin, platform) -> UserMappingsView:
    plugin.user_mappings = [UserMapping(PlatformUserId("mm1"), ProviderUserId("u1"))]
    view = UserMappingsView(plugin, platform)
    await view.mount()
    return view


class TestConnectionView:
    async def test_success(self, plugin: MemoryPluginClient):
        view = ConnectionView(plugin)
        view.api_token = "tok"
        result = await view.test()
        assert result.ok
        assert result.message == CONNECTION_SUCCESS_MESSAGE
        assert not view.testing
        assert plugin.connection_tests[-1]["api_token"] == "tok"

    async def test_failure_never_raises(self, plugin: MemoryPluginClient):
        plugin.failures["test_connection"] = TransportError("Failed to fetch")
        view = ConnectionView(plugin)
        result = await view.test()
        assert view.result is result
        assert result.message == "Failed to fetch"


class TestMappingViewBase:
    def test_base_view_needs_a_store_loader(self, plugin):
        with pytest.raises(TypeError):
            _MappingView(plugin)


class TestProjectsView:
    """One channel per project."""

    async def test_mount_and_rows(self, plugin, platform):
        plugin.channel_rules = {P1: (ChannelRule(ChannelId("c1")),)}
        view = ProjectsView(plugin, platform)

        await view.mount()

        assert not view.loading
        assert view.error is None
        [row] = view.rows()
        assert row.project_name == "Checkout"
        assert row.channel_id == "c1"
        assert row.channel_label == "Alerts"

    async def test_save_scenario_payload(self, plugin, platform):
        view = ProjectsView(plugin, platform)
        await view.mount()

        view.set_channel("p1", "c1")
        outcome = await view.save()

        assert outcome.ok
        assert view.success == "Settings saved successfully"
        assert mappings_to_wire(plugin.saved_channel_rules[-1]) == {
            "p1": [{"channel_id": "c1"}]
        }

    async def test_clearing_channel_prunes_project(self, plugin, platform):
        plugin.channel_rules = {P1: (ChannelRule(ChannelId("c1")),)}
        view = ProjectsView(plugin, platform)
        await view.mount()

        view.set_channel("p1", "")
        await view.save()

        assert plugin.saved_channel_rules[-1] == {}

    async def test_failed_channel_catalog_keeps_projects(self, plugin, platform):
        platform.failures["list_channels"] = ServerError("forbidden", 403)
        view = ProjectsView(plugin, platform)
        await view.mount()

        assert view.channels == []
        assert view.catalogs.errors == {CatalogKind.CHANNELS: "forbidden"}
        assert [r.project_name for r in view.rows()] == ["Checkout"]
        assert view.error is None

    async def test_malformed_projects_body_leaves_empty_catalog(self, platform):
        def handle(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/projects"):
                return httpx.Response(200, json={"projects": ["p1"]})
            return httpx.Response(200, json={"mappings": {}})

        plugin = HttpPluginClient(
            "http://mm.test/api/v1", transport=httpx.MockTransport(handle)
        )
        view = ProjectsView(plugin, platform)
        await view.mount()

        assert view.projects == []
        assert view.catalogs.get(CatalogKind.PROJECTS) == []
        assert [c.id for c in view.channels] == ["c1"]
        assert view.error is None
        assert view.empty_text == NO_PROJECTS_TEXT

    async def test_no_projects(self, platform):
        view = ProjectsView(MemoryPluginClient(), platform)
        await view.mount()
        assert view.empty_text == NO_PROJECTS_TEXT

    async def test_load_failure_becomes_error(self, plugin, platform):
        plugin.failures["get_channel_rules"] = TransportError("offline")
        view = ProjectsView(plugin, platform)
        await view.mount()
        assert view.error == "offline"
        assert view.rows()[0].channel_id == ""

    async def test_orphan_projects(self, plugin, platform):
        plugin.channel_rules = {ProjectId("gone"): (ChannelRule(ChannelId("c1")),)}
        view = ProjectsView(plugin, platform)
        await view.mount()
        assert view.orphan_project_ids() == ["gone"]

    async def test_save_failure_shows_server_error(self, plugin, platform):
        view = ProjectsView(plugin, platform)
        await view.mount()
        view.set_channel("p1", "c1")
        plugin.failures["save_channel_rules"] = ServerError(
            "db down", 500, {"error": "db down"}
        )

        outcome = await view.save()

        assert not outcome.ok
        assert view.error == "db down"
        assert view.success is None
        assert view.rows()[0].channel_id == "c1"


class TestNotificationRulesView:
    """Filter editing per rule."""

    async def test_panels(self, rules_view):
        [panel] = rules_view.panels()
        assert panel.project_name == "Checkout"
        assert panel.channel_label == "Alerts"
        assert panel.environments_text == "production"
        assert panel.severities == {"error": True, "warning": False, "info": False}
        assert not any(panel.events.values())

    async def test_edit_and_save(self, plugin, rules_view):
        rules_view.set_environments("p1", 0, "production, staging")
        rules_view.toggle_severity("p1", 0, "warning", True)
        rules_view.toggle_event("p1", 0, "reopened", True)

        await rules_view.save()

        assert rules_view.success == "Notification rules saved successfully"
        assert mappings_to_wire(plugin.saved_channel_rules[-1]) == {
            "p1": [
                {
                    "channel_id": "c1",
                    "environments": ["production", "staging"],
                    "severities": ["error", "warning"],
                    "events": ["reopened"],
                }
            ]
        }

    async def test_edit_clears_success(self, rules_view):
        await rules_view.save()
        rules_view.toggle_event("p1", 0, "spikeStart", True)
        assert rules_view.success is None

    async def test_no_rules(self, plugin, platform):
        view = NotificationRulesView(plugin, platform)
        await view.mount()
        assert view.empty_text == NO_RULES_TEXT
        assert view.panels() == []


class TestUserMappingsView:
    """User mapping rows addressed by stable key."""

    async def test_rows_use_user_labels(self, users_view):
        [row] = users_view.rows()
        assert row.mm_user_label == "ada (ada@example.com)"
        assert row.bugsnag_user_id == "u1"

    async def test_add_edit_save(self, plugin, users_view):
        users_view.add()
        key = users_view.add()
        users_view.change(key, "mm_user_id", "mm2")
        users_view.pick_collaborator(key, "u1")

        await users_view.save()

        assert users_view.success == "User mappings saved successfully"
        assert plugin.saved_user_mappings[-1] == [
            UserMapping(PlatformUserId("mm1"), bugsnag_user_id="u1"),
            UserMapping(PlatformUserId("mm2"), "u1", "ada@example.com"),
        ]
        assert len(users_view.rows()) == 2

    async def test_remove_by_key(self, plugin, users_view):
        key = users_view.rows()[0].key
        users_view.remove(key)
        await users_view.save()
        assert plugin.saved_user_mappings[-1] == []

    async def test_failed_users_catalog_falls_back_to_ids(self, plugin):
        platform = MemoryPlatformClient()
        platform.failures["list_users"] = TransportError("offline")
        plugin.user_mappings = [UserMapping(PlatformUserId("mm1"))]
        view = UserMappingsView(plugin, platform)
        await view.mount()
        assert view.rows()[0].mm_user_label == "mm1"
        assert CatalogKind.USERS in view.catalogs.errors

    async def test_without_platform_client(self, plugin):
        view = UserMappingsView(plugin)
        await view.mount()
        assert view.users == []
        assert [c.id for c in view.collaborators] == ["u1"]
