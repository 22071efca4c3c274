"""Mapping store: the client-held copy of the persisted routing configuration.

Holds the project -> channel rules and the user mapping rows for one
editing session. It is hydrated from the plugin API by ``load()``,
mutated locally by the RuleEditor, and replaced wholesale after a
successful save.

A failed load never touches the held state: the previous value (empty on
first load) is kept and the error is recorded and re-raised.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from bugsnag_admin.client import PluginClient
from bugsnag_admin.errors import AdminApiError
from bugsnag_admin.models import (
    ChannelRule,
    ProjectChannelMappings,
    ProjectId,
    UserMapping,
)

logger = logging.getLogger(__name__)


def new_row_key() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class UserMappingRow:
    """A user mapping plus a stable key that survives reordering."""

    mapping: UserMapping
    key: str = field(default_factory=new_row_key)


@dataclass(frozen=True)
class MappingSnapshot:
    """Read-only view of the store at one point in time."""

    channel_rules: Mapping[ProjectId, tuple[ChannelRule, ...]]
    user_rows: tuple[UserMappingRow, ...]
    revision: int = 0

    @property
    def user_mappings(self) -> tuple[UserMapping, ...]:
        return tuple(row.mapping for row in self.user_rows)

    @property
    def user_keys(self) -> tuple[str, ...]:
        return tuple(row.key for row in self.user_rows)


class MappingStore:
    """Client-side authoritative copy of rules and user mappings.

    Single owner: one editing surface per store, mutations happen on the
    event loop thread only.
    """

    def __init__(self, client: PluginClient) -> None:
        self._client = client
        self._channel_rules: ProjectChannelMappings = {}
        self._user_rows: tuple[UserMappingRow, ...] = ()
        self._revision = 0
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current_state(self) -> MappingSnapshot:
        return MappingSnapshot(
            channel_rules=MappingProxyType(dict(self._channel_rules)),
            user_rows=self._user_rows,
            revision=self._revision,
        )

    @property
    def revision(self) -> int:
        return self._revision

    # ------------------------------------------------------------------
    # Hydration
    # ------------------------------------------------------------------

    async def load(self) -> MappingSnapshot:
        """Fetch rules and user mappings in parallel; apply both or neither."""
        rules, users = await asyncio.gather(
            self._client.get_channel_rules(),
            self._client.get_user_mappings(),
            return_exceptions=True,
        )
        for result in (rules, users):
            if isinstance(result, AdminApiError):
                self._record_failure("mappings", result)
                raise result
            if isinstance(result, BaseException):
                raise result

        self.replace_channel_rules(rules)
        self.replace_user_mappings(users)
        self.last_error = None
        return self.current_state()

    async def load_channel_rules(self) -> MappingSnapshot:
        try:
            rules = await self._client.get_channel_rules()
        except AdminApiError as exc:
            self._record_failure("channel rules", exc)
            raise
        self.replace_channel_rules(rules)
        self.last_error = None
        return self.current_state()

    async def load_user_mappings(self) -> MappingSnapshot:
        try:
            users = await self._client.get_user_mappings()
        except AdminApiError as exc:
            self._record_failure("user mappings", exc)
            raise
        self.replace_user_mappings(users)
        self.last_error = None
        return self.current_state()

    def _record_failure(self, what: str, exc: AdminApiError) -> None:
        self.last_error = exc.message
        logger.warning("Failed to load %s: %s", what, exc.message)

    # ------------------------------------------------------------------
    # Writes (RuleEditor and SyncSession only)
    # ------------------------------------------------------------------

    def replace_channel_rules(
        self, mappings: Mapping[ProjectId, Iterable[ChannelRule]]
    ) -> None:
        self._channel_rules = {pid: tuple(rules) for pid, rules in mappings.items()}
        self._revision += 1

    def replace_user_rows(self, rows: Iterable[UserMappingRow]) -> None:
        self._user_rows = tuple(rows)
        self._revision += 1

    def replace_user_mappings(self, mappings: Iterable[UserMapping]) -> None:
        self.replace_user_rows(UserMappingRow(m) for m in mappings)
