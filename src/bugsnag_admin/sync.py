"""Sync protocol: connection test and the save cycle.

``test_connection`` is a stateless round trip. It never raises; the
outcome is a ConnectionResult whose message is, in order of preference,
the server's message, the transport failure's text, or a generic default.

``SyncSession`` owns the save cycle for one editing surface:

    IDLE --save()--> SAVING --2xx--> IDLE (success flag set)
                            --else-> IDLE (error set)

A save submits the whole filtered collection as one unit. On success the
store is set to exactly what was submitted (no re-fetch); on failure the
store is left untouched. Only one save may be in flight per session.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

from bugsnag_admin.client import PluginClient
from bugsnag_admin.conventions import (
    CONNECTION_FAILURE_MESSAGE,
    CONNECTION_SUCCESS_MESSAGE,
    SAVE_FAILURE_MESSAGE,
)
from bugsnag_admin.editor import RuleEditor
from bugsnag_admin.errors import AdminApiError, ServerError
from bugsnag_admin.store import MappingStore

logger = logging.getLogger(__name__)

SAVE_IN_PROGRESS_MESSAGE = "A save is already in progress"


class SyncState(StrEnum):
    IDLE = "idle"
    SAVING = "saving"


class ConnectionStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Credentials:
    """Values typed into the connection form. Blank means "use configured"."""

    api_token: str = ""
    organization_id: str = ""


@dataclass(frozen=True)
class ConnectionResult:
    status: ConnectionStatus
    message: str

    @property
    def ok(self) -> bool:
        return self.status is ConnectionStatus.SUCCESS


@dataclass(frozen=True)
class SaveOutcome:
    ok: bool
    error: str | None = None


async def test_connection(
    client: PluginClient, credentials: Credentials | None = None
) -> ConnectionResult:
    """Check the credentials against Bugsnag through the plugin API."""
    credentials = credentials or Credentials()
    try:
        payload = await client.test_connection(
            api_token=credentials.api_token.strip() or None,
            organization_id=credentials.organization_id.strip() or None,
        )
    except ServerError as exc:
        message = exc.body.get("message") or CONNECTION_FAILURE_MESSAGE
        return ConnectionResult(ConnectionStatus.ERROR, str(message))
    except AdminApiError as exc:
        return ConnectionResult(ConnectionStatus.ERROR, exc.message)

    message = payload.get("message") or CONNECTION_SUCCESS_MESSAGE
    return ConnectionResult(ConnectionStatus.SUCCESS, str(message))


class SyncSession:
    """Save cycle for one editing surface.

    ``success`` is transient: the editor clears it on the next edit.
    """

    def __init__(self, client: PluginClient, store: MappingStore) -> None:
        self._client = client
        self._store = store
        self.editor = RuleEditor(store, on_edit=self.clear_success)
        self.state = SyncState.IDLE
        self.error: str | None = None
        self.success = False

    @property
    def saving(self) -> bool:
        return self.state is SyncState.SAVING

    def clear_success(self) -> None:
        self.success = False

    async def _save(
        self, label: str, submit: Callable[[], Awaitable[None]]
    ) -> SaveOutcome:
        if self.saving:
            logger.info("Ignoring %s save: another save is in flight", label)
            return SaveOutcome(ok=False, error=SAVE_IN_PROGRESS_MESSAGE)

        self.state = SyncState.SAVING
        self.error = None
        self.success = False
        try:
            await submit()
        except ServerError as exc:
            self.error = str(exc.body.get("error") or SAVE_FAILURE_MESSAGE)
            logger.warning(
                "Saving %s failed (%d): %s", label, exc.status_code, self.error
            )
        except AdminApiError as exc:
            self.error = exc.message
            logger.warning("Saving %s failed: %s", label, self.error)
        else:
            self.success = True
            logger.info("Saved %s", label)
        finally:
            self.state = SyncState.IDLE

        return SaveOutcome(ok=self.success, error=self.error)

    async def save_channel_rules(self) -> SaveOutcome:
        payload = self.editor.submission_channel_rules()

        async def submit() -> None:
            await self._client.save_channel_rules(payload)
            self._store.replace_channel_rules(payload)

        return await self._save("channel rules", submit)

    async def save_user_mappings(self) -> SaveOutcome:
        rows = self.editor.submission_user_rows()

        async def submit() -> None:
            await self._client.save_user_mappings([row.mapping for row in rows])
            self._store.replace_user_rows(rows)

        return await self._save("user mappings", submit)
