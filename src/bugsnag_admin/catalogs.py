"""Entity catalogs: read-only snapshots of the two foreign entity spaces.

Bugsnag side: projects, collaborators (via the plugin API).
Mattermost side: channels, users (via the platform API).

Catalogs are fetched on demand and replaced wholesale, never patched.
``fetch_catalogs`` runs the requested fetches in parallel and isolates
failures: a catalog that fails to load becomes an empty list with its
error recorded, and the others are unaffected. Nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from bugsnag_admin.client import PlatformClient, PluginClient
from bugsnag_admin.errors import AdminApiError

logger = logging.getLogger(__name__)


class CatalogKind(StrEnum):
    """Which entity list to fetch."""

    PROJECTS = "projects"  # Bugsnag
    COLLABORATORS = "collaborators"  # Bugsnag
    CHANNELS = "channels"  # Mattermost
    USERS = "users"  # Mattermost


@dataclass
class CatalogSet:
    """Result of a parallel catalog fetch."""

    entities: dict[CatalogKind, list[Any]] = field(default_factory=dict)
    errors: dict[CatalogKind, str] = field(default_factory=dict)

    def get(self, kind: CatalogKind) -> list[Any]:
        return self.entities.get(kind, [])

    @property
    def ok(self) -> bool:
        return not self.errors


class CatalogAdapter:
    """Fetches catalogs from the plugin and platform clients."""

    def __init__(
        self, plugin: PluginClient, platform: PlatformClient | None = None
    ) -> None:
        self._plugin = plugin
        self._platform = platform

    def _require_platform(self) -> PlatformClient:
        if self._platform is None:
            raise AdminApiError("Mattermost access is not configured")
        return self._platform

    async def fetch_catalog(self, kind: CatalogKind) -> list[Any]:
        """Fetch one catalog. Raises AdminApiError on failure."""
        if kind is CatalogKind.PROJECTS:
            return await self._plugin.list_projects()
        if kind is CatalogKind.COLLABORATORS:
            return await self._plugin.list_collaborators()
        if kind is CatalogKind.CHANNELS:
            return await self._require_platform().list_channels()
        if kind is CatalogKind.USERS:
            return await self._require_platform().list_users()
        raise ValueError(f"Unknown catalog: {kind}")

    async def _fetch_isolated(
        self, kind: CatalogKind
    ) -> tuple[CatalogKind, list[Any], str | None]:
        try:
            return kind, await self.fetch_catalog(kind), None
        except AdminApiError as exc:
            logger.warning("Catalog %s unavailable: %s", kind, exc.message)
            return kind, [], exc.message

    async def fetch_catalogs(self, *kinds: CatalogKind) -> CatalogSet:
        """Fetch several catalogs in parallel, degrading failures to []."""
        results = await asyncio.gather(*(self._fetch_isolated(k) for k in kinds))
        catalogs = CatalogSet()
        for kind, entities, error in results:
            catalogs.entities[kind] = entities
            if error is not None:
                catalogs.errors[kind] = error
        return catalogs
