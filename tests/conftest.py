"""Shared test fixtures for bugsnag-admin tests."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from starlette.testclient import TestClient

from bugsnag_admin.bugsnag import BugsnagClient
from bugsnag_admin.client import MemoryPlatformClient, MemoryPluginClient
from bugsnag_admin.config import AdminConfig
from bugsnag_admin.models import (
    ChannelEntity,
    ChannelId,
    Collaborator,
    PlatformUserId,
    ProjectEntity,
    ProjectId,
    ProviderUserId,
    UserEntity,
)
from bugsnag_admin.server.app import create_app
from bugsnag_admin.server.kv import MemoryKVStore

# Canned Bugsnag API payloads served by ``bugsnag_handler``.
BUGSNAG_ORGS = [{"id": "org1", "name": "Acme", "slug": "acme"}]
BUGSNAG_PROJECTS = [
    {"id": "p1", "name": "Checkout"},
    {"id": "p2", "name": "Search"},
]
BUGSNAG_COLLABORATORS = [
    {"id": "u1", "name": "Ada", "email": "ada@example.com"},
]


def bugsnag_handler(request: httpx.Request) -> httpx.Response:
    """A fake Bugsnag API that accepts the token ``good-token`` only."""
    if request.headers.get("Authorization") != "token good-token":
        return httpx.Response(401, text="unauthorized")
    path = request.url.path
    if path == "/user/organizations":
        return httpx.Response(200, json=BUGSNAG_ORGS)
    if path == "/organizations/org1/projects":
        return httpx.Response(200, json=BUGSNAG_PROJECTS)
    if path == "/organizations/org1/collaborators":
        return httpx.Response(200, json=BUGSNAG_COLLABORATORS)
    return httpx.Response(404, text="no such organization")


@pytest.fixture
def admin_config(tmp_path: Path) -> AdminConfig:
    return AdminConfig(
        bugsnag_api_token="good-token",
        bugsnag_api_url="https://bugsnag.test",
        store_path=str(tmp_path / "store.json"),
    )


@pytest.fixture
def bugsnag_transport() -> httpx.MockTransport:
    return httpx.MockTransport(bugsnag_handler)


@pytest.fixture
def kv() -> MemoryKVStore:
    return MemoryKVStore()


@pytest.fixture
def api_app(
    admin_config: AdminConfig,
    kv: MemoryKVStore,
    bugsnag_transport: httpx.MockTransport,
):
    """Plugin API app wired to the fake Bugsnag API and an in-memory store."""

    def factory(token: str, config: AdminConfig) -> BugsnagClient:
        return BugsnagClient(
            token,
            base_url=config.bugsnag_api_url,
            transport=bugsnag_transport,
        )

    return create_app(config=admin_config, kv=kv, provider_factory=factory)


@pytest.fixture
def api_client(api_app) -> TestClient:
    return TestClient(api_app)


@pytest.fixture
def plugin() -> MemoryPluginClient:
    return MemoryPluginClient(
        projects=[ProjectEntity(ProjectId("p1"), "Checkout")],
        collaborators=[
            Collaborator(ProviderUserId("u1"), "Ada", "ada@example.com"),
        ],
    )


@pytest.fixture
def platform() -> MemoryPlatformClient:
    return MemoryPlatformClient(
        channels=[ChannelEntity(ChannelId("c1"), "Alerts", "alerts")],
        users=[UserEntity(PlatformUserId("mm1"), "ada", "ada@example.com")],
    )
