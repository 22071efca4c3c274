"""Bugsnag REST API client.

Authenticated access to the handful of Bugsnag endpoints the admin layer
needs to populate its catalogs:

- ``GET /user/organizations``
- ``GET /organizations/{id}/projects``
- ``GET /organizations/{id}/collaborators``

Every failure (transport error, status >= 400, undecodable body) is raised
as :class:`~bugsnag_admin.errors.ProviderError`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from bugsnag_admin.conventions import BUGSNAG_API_URL, BUGSNAG_TIMEOUT_SECONDS
from bugsnag_admin.errors import ProviderError
from bugsnag_admin.models import (
    Collaborator,
    Organization,
    ProjectEntity,
    ProjectId,
    ProviderUserId,
)

logger = logging.getLogger(__name__)


class BugsnagClient:
    """Minimal async client for the Bugsnag data-access API."""

    def __init__(
        self,
        token: str,
        base_url: str = BUGSNAG_API_URL,
        timeout: float = BUGSNAG_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base URL is required")
        if not token:
            raise ValueError("token is required")
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _get(self, endpoint: str) -> Any:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            try:
                resp = await client.get(
                    f"{self._base_url}{endpoint}",
                    headers={
                        "Authorization": f"token {self._token}",
                        "Accept": "application/json",
                    },
                )
            except httpx.HTTPError as exc:
                raise ProviderError(f"execute request: {exc}") from exc

        if resp.status_code >= 400:
            raise ProviderError(
                f"bugsnag API returned status {resp.status_code}: {resp.text}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderError(f"decode response: {exc}") from exc

    async def _get_list(self, endpoint: str) -> list[dict[str, Any]]:
        """GET a JSON array, keeping only its object entries."""
        data = await self._get(endpoint)
        if not isinstance(data, list):
            raise ProviderError(
                f"decode response: expected a list, got {type(data).__name__}"
            )
        return [item for item in data if isinstance(item, dict)]

    async def get_organizations(self) -> list[Organization]:
        data = await self._get_list("/user/organizations")
        return [
            Organization(
                id=str(o.get("id", "")),
                name=o.get("name", ""),
                slug=o.get("slug", ""),
            )
            for o in data
        ]

    async def get_projects(self, org_id: str) -> list[ProjectEntity]:
        data = await self._get_list(
            f"/organizations/{quote(org_id, safe='')}/projects"
        )
        return [
            ProjectEntity(id=ProjectId(str(p.get("id", ""))), name=p.get("name", ""))
            for p in data
        ]

    async def get_collaborators(self, org_id: str) -> list[Collaborator]:
        data = await self._get_list(
            f"/organizations/{quote(org_id, safe='')}/collaborators"
        )
        return [
            Collaborator(
                id=ProviderUserId(str(c.get("id", ""))),
                name=c.get("name", ""),
                email=c.get("email", ""),
            )
            for c in data
        ]

    async def resolve_organization(self, org_id: str = "") -> Organization | None:
        """Return *org_id* as given, else the first organization visible."""
        if org_id.strip():
            return Organization(id=org_id.strip())
        orgs = await self.get_organizations()
        if not orgs:
            logger.info("Bugsnag token sees no organizations")
            return None
        return orgs[0]
