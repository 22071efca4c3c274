"""Admin API client abstraction.

Provides Protocols for the two remote sides the admin layer talks to and
two implementations of each:

- PluginClient: the plugin's own /api/v1 endpoints (credentials test,
  Bugsnag catalogs, persisted channel rules and user mappings)
- PlatformClient: the Mattermost /api/v4 channel and user listings

- Memory*Client: in-memory, no network calls (testing/offline)
- Http*Client: real HTTP calls through httpx

Every HTTP failure is raised as TransportError (request never completed)
or ServerError (non-2xx response).
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from bugsnag_admin.conventions import (
    BUGSNAG_TIMEOUT_SECONDS,
    PLATFORM_API_PREFIX,
    PLATFORM_PAGE_SIZE,
)
from bugsnag_admin.errors import AdminApiError, ServerError, TransportError
from bugsnag_admin.models import (
    ChannelEntity,
    ChannelId,
    Collaborator,
    FlatChannelRule,
    PlatformUserId,
    ProjectChannelMappings,
    ProjectEntity,
    ProjectId,
    ProviderUserId,
    UserEntity,
    UserMapping,
    from_flat_rules,
    mappings_from_wire,
    mappings_to_wire,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class PluginClient(Protocol):
    """Protocol for the plugin API."""

    async def test_connection(
        self, api_token: str | None = None, organization_id: str | None = None
    ) -> dict[str, Any]:
        """Validate credentials. Returns the server's JSON body."""
        ...

    async def list_projects(self) -> list[ProjectEntity]:
        """Bugsnag projects of the configured organization."""
        ...

    async def list_collaborators(self) -> list[Collaborator]:
        """Bugsnag collaborators of the configured organization."""
        ...

    async def get_channel_rules(self) -> ProjectChannelMappings:
        """The persisted project -> channel rules."""
        ...

    async def save_channel_rules(self, mappings: ProjectChannelMappings) -> None:
        """Replace the persisted rules with *mappings*."""
        ...

    async def get_user_mappings(self) -> list[UserMapping]:
        """The persisted user mappings."""
        ...

    async def save_user_mappings(self, mappings: list[UserMapping]) -> None:
        """Replace the persisted user mappings with *mappings*."""
        ...


@runtime_checkable
class PlatformClient(Protocol):
    """Protocol for the Mattermost catalogs."""

    async def list_channels(self) -> list[ChannelEntity]:
        ...

    async def list_users(self) -> list[UserEntity]:
        ...


# --- In-memory implementations ---


class MemoryPluginClient:
    """In-memory plugin API for testing.

    Records every submission for inspection. Set ``failures[<method name>]``
    to an exception to make that call raise it.
    """

    def __init__(
        self,
        projects: list[ProjectEntity] | None = None,
        collaborators: list[Collaborator] | None = None,
        channel_rules: ProjectChannelMappings | None = None,
        user_mappings: list[UserMapping] | None = None,
    ) -> None:
        self.projects = list(projects or [])
        self.collaborators = list(collaborators or [])
        self.channel_rules: ProjectChannelMappings = dict(channel_rules or {})
        self.user_mappings = list(user_mappings or [])
        self.saved_channel_rules: list[ProjectChannelMappings] = []
        self.saved_user_mappings: list[list[UserMapping]] = []
        self.connection_tests: list[dict[str, str | None]] = []
        self.connection_response: dict[str, Any] = {"status": "ok", "message": ""}
        self.failures: dict[str, AdminApiError] = {}

    def _maybe_fail(self, operation: str) -> None:
        exc = self.failures.get(operation)
        if exc is not None:
            raise exc

    async def test_connection(
        self, api_token: str | None = None, organization_id: str | None = None
    ) -> dict[str, Any]:
        self.connection_tests.append(
            {"api_token": api_token, "organization_id": organization_id}
        )
        self._maybe_fail("test_connection")
        return dict(self.connection_response)

    async def list_projects(self) -> list[ProjectEntity]:
        self._maybe_fail("list_projects")
        return list(self.projects)

    async def list_collaborators(self) -> list[Collaborator]:
        self._maybe_fail("list_collaborators")
        return list(self.collaborators)

    async def get_channel_rules(self) -> ProjectChannelMappings:
        self._maybe_fail("get_channel_rules")
        return dict(self.channel_rules)

    async def save_channel_rules(self, mappings: ProjectChannelMappings) -> None:
        self.saved_channel_rules.append(dict(mappings))
        self._maybe_fail("save_channel_rules")
        self.channel_rules = dict(mappings)

    async def get_user_mappings(self) -> list[UserMapping]:
        self._maybe_fail("get_user_mappings")
        return list(self.user_mappings)

    async def save_user_mappings(self, mappings: list[UserMapping]) -> None:
        self.saved_user_mappings.append(list(mappings))
        self._maybe_fail("save_user_mappings")
        self.user_mappings = list(mappings)


class MemoryPlatformClient:
    """In-memory Mattermost catalogs for testing."""

    def __init__(
        self,
        channels: list[ChannelEntity] | None = None,
        users: list[UserEntity] | None = None,
    ) -> None:
        self.channels = list(channels or [])
        self.users = list(users or [])
        self.failures: dict[str, AdminApiError] = {}

    async def list_channels(self) -> list[ChannelEntity]:
        if "list_channels" in self.failures:
            raise self.failures["list_channels"]
        return list(self.channels)

    async def list_users(self) -> list[UserEntity]:
        if "list_users" in self.failures:
            raise self.failures["list_users"]
        return list(self.users)


# --- HTTP implementations ---


def _decode(resp: httpx.Response) -> Any:
    """Parse a JSON body, or {} when it is missing or malformed."""
    try:
        return resp.json()
    except ValueError:
        return {}


def _objects(value: Any) -> list[dict[str, Any]]:
    """Object entries of a JSON list; anything else yields []."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class _HttpBase:
    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = BUGSNAG_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base URL is required")
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "X-Requested-With": "XMLHttpRequest"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                resp = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    json=json,
                    params=params,
                    headers=self._headers(),
                )
            except httpx.HTTPError as exc:
                logger.warning("%s %s failed: %s", method, path, exc)
                raise TransportError(str(exc) or type(exc).__name__) from exc

        payload = _decode(resp)
        if not resp.is_success:
            body = payload if isinstance(payload, dict) else {}
            message = body.get("error") or body.get("message") or ""
            logger.warning(
                "%s %s returned %d: %s", method, path, resp.status_code, message
            )
            raise ServerError(
                str(message) or f"HTTP {resp.status_code}", resp.status_code, body
            )
        return payload


class HttpPluginClient(_HttpBase):
    """Plugin API client.

    ``base_url`` is the API root, e.g.
    ``https://chat.example.com/plugins/com.mattermost.bugsnag/api/v1``.
    """

    async def _get_object(self, path: str) -> dict[str, Any]:
        data = await self._request("GET", path)
        return data if isinstance(data, dict) else {}

    async def test_connection(
        self, api_token: str | None = None, organization_id: str | None = None
    ) -> dict[str, Any]:
        body: dict[str, str] = {}
        if api_token and api_token.strip():
            body["api_token"] = api_token.strip()
        if organization_id and organization_id.strip():
            body["organization_id"] = organization_id.strip()
        data = await self._request("POST", "/test", json=body)
        return data if isinstance(data, dict) else {}

    async def list_projects(self) -> list[ProjectEntity]:
        data = await self._get_object("/projects")
        return [
            ProjectEntity(id=ProjectId(str(p.get("id", ""))), name=p.get("name", ""))
            for p in _objects(data.get("projects"))
        ]

    async def list_collaborators(self) -> list[Collaborator]:
        data = await self._get_object("/collaborators")
        return [
            Collaborator(
                id=ProviderUserId(str(c.get("id", ""))),
                name=c.get("name", ""),
                email=c.get("email", ""),
            )
            for c in _objects(data.get("collaborators"))
        ]

    async def get_channel_rules(self) -> ProjectChannelMappings:
        """Read the rules in either wire shape; always returns the canonical one."""
        data = await self._get_object("/channel-rules")
        if isinstance(data.get("mappings"), dict):
            return mappings_from_wire(data["mappings"])
        if isinstance(data.get("rules"), list):
            return from_flat_rules(
                FlatChannelRule.from_dict(r) for r in _objects(data["rules"])
            )
        return {}

    async def save_channel_rules(self, mappings: ProjectChannelMappings) -> None:
        await self._request(
            "POST", "/channel-rules", json={"mappings": mappings_to_wire(mappings)}
        )

    async def get_user_mappings(self) -> list[UserMapping]:
        data = await self._get_object("/user-mappings")
        return [UserMapping.from_dict(m) for m in _objects(data.get("mappings"))]

    async def save_user_mappings(self, mappings: list[UserMapping]) -> None:
        await self._request(
            "POST", "/user-mappings", json={"mappings": [m.to_dict() for m in mappings]}
        )


class HttpPlatformClient(_HttpBase):
    """Mattermost REST client for the channel and user catalogs.

    ``base_url`` is the server root, e.g. ``https://chat.example.com``.
    Listings are paginated; pages are followed until a short one.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = BUGSNAG_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        page_size: int = PLATFORM_PAGE_SIZE,
    ) -> None:
        super().__init__(base_url, token, timeout, transport)
        self._page_size = page_size

    async def _paginate(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 0
        while True:
            data = await self._request(
                "GET",
                f"{PLATFORM_API_PREFIX}{path}",
                params={"page": page, "per_page": self._page_size},
            )
            batch = _objects(data)
            items.extend(batch)
            if len(batch) < self._page_size:
                return items
            page += 1

    async def list_channels(self) -> list[ChannelEntity]:
        return [
            ChannelEntity(
                id=ChannelId(str(c.get("id", ""))),
                display_name=c.get("display_name", ""),
                name=c.get("name", ""),
            )
            for c in await self._paginate("/channels")
        ]

    async def list_users(self) -> list[UserEntity]:
        return [
            UserEntity(
                id=PlatformUserId(str(u.get("id", ""))),
                username=u.get("username", ""),
                email=u.get("email", ""),
            )
            for u in await self._paginate("/users")
        ]
