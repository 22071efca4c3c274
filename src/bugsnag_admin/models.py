"""Data models for the Bugsnag admin layer.

Defines the core data structures used throughout the admin layer:
- Identifier types for the two key spaces (Bugsnag vs Mattermost)
- Catalog entities (projects, collaborators, channels, users)
- Channel rules with explicit filter variants
- User mappings and the flat ``{rules: [...]}`` wire adapter
- Routing predicates a delivery pipeline evaluates against a webhook
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, NewType

# Bugsnag-side and Mattermost-side ids are both plain strings on the wire.
ProjectId = NewType("ProjectId", str)
ChannelId = NewType("ChannelId", str)
PlatformUserId = NewType("PlatformUserId", str)
ProviderUserId = NewType("ProviderUserId", str)


# --- Catalog entities ---


@dataclass(frozen=True)
class Organization:
    """A Bugsnag organization."""

    id: str
    name: str = ""
    slug: str = ""


@dataclass(frozen=True)
class ProjectEntity:
    """A Bugsnag project."""

    id: ProjectId
    name: str = ""


@dataclass(frozen=True)
class Collaborator:
    """A Bugsnag user with access to an organization."""

    id: ProviderUserId
    name: str = ""
    email: str = ""


@dataclass(frozen=True)
class ChannelEntity:
    """A Mattermost channel."""

    id: ChannelId
    display_name: str = ""
    name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.name or self.id


@dataclass(frozen=True)
class UserEntity:
    """A Mattermost user."""

    id: PlatformUserId
    username: str = ""
    email: str = ""

    @property
    def display_name(self) -> str:
        if self.username and self.email:
            return f"{self.username} ({self.email})"
        return self.username or self.id


# --- Filters ---


def _normalize(value: str) -> str:
    return value.strip().lower()


@dataclass(frozen=True)
class Unfiltered:
    """Matches every value. Serialised by omission."""

    @property
    def values(self) -> tuple[str, ...]:
        return ()

    def allows(self, value: str) -> bool:
        return True


@dataclass(frozen=True)
class AllowList:
    """Matches only the listed values (trimmed, case-insensitive)."""

    values: tuple[str, ...]

    def allows(self, value: str) -> bool:
        candidate = _normalize(value)
        return any(_normalize(v) == candidate for v in self.values)


Filter = Unfiltered | AllowList

UNFILTERED = Unfiltered()


def make_filter(values: str | Iterable[str] | None) -> Filter:
    """Build a filter from a value list; empty or None means unfiltered.

    A bare string is one value. Duplicates and non-string entries are
    dropped, first occurrence wins.
    """
    if not values:
        return UNFILTERED
    if isinstance(values, str):
        values = [values]
    unique = tuple(dict.fromkeys(v for v in values if isinstance(v, str) and v))
    if not unique:
        return UNFILTERED
    return AllowList(unique)


# --- Channel rules ---


RULE_FILTER_FIELDS = ("environments", "severities", "events")
RULE_FIELDS = ("channel_id", *RULE_FILTER_FIELDS)


@dataclass(frozen=True)
class ChannelRule:
    """Where to post a Bugsnag event for a project, and which events qualify."""

    channel_id: ChannelId
    environments: Filter = UNFILTERED
    severities: Filter = UNFILTERED
    events: Filter = UNFILTERED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"channel_id": self.channel_id}
        for name in RULE_FILTER_FIELDS:
            values = getattr(self, name).values
            if values:
                data[name] = list(values)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChannelRule:
        return cls(
            channel_id=ChannelId(str(data.get("channel_id") or "")),
            environments=make_filter(data.get("environments")),
            severities=make_filter(data.get("severities")),
            events=make_filter(data.get("events")),
        )

    @property
    def is_unfiltered(self) -> bool:
        return all(
            isinstance(getattr(self, name), Unfiltered) for name in RULE_FILTER_FIELDS
        )

    def matches(self, environment: str, severity: str, event: str) -> bool:
        """Whether a webhook with these attributes passes every filter."""
        return (
            self.environments.allows(environment)
            and self.severities.allows(severity)
            and self.events.allows(event)
        )


ProjectChannelMappings = dict[ProjectId, tuple[ChannelRule, ...]]


def mappings_to_wire(mappings: Mapping[ProjectId, Iterable[ChannelRule]]) -> dict:
    """Serialise project mappings to ``{project_id: [rule, ...]}``."""
    return {pid: [rule.to_dict() for rule in rules] for pid, rules in mappings.items()}


def mappings_from_wire(data: Mapping[str, Any] | None) -> ProjectChannelMappings:
    """Parse ``{project_id: [rule, ...]}``, skipping malformed entries."""
    mappings: ProjectChannelMappings = {}
    for pid, rules in (data or {}).items():
        if not isinstance(rules, list):
            continue
        mappings[ProjectId(pid)] = tuple(
            ChannelRule.from_dict(r) for r in rules if isinstance(r, Mapping)
        )
    return mappings


def rules_for_event(
    mappings: Mapping[ProjectId, Iterable[ChannelRule]],
    project_id: ProjectId,
    environment: str,
    severity: str,
    event: str,
) -> list[ChannelRule]:
    """Rules of *project_id* whose filters accept the event."""
    return [
        rule
        for rule in mappings.get(project_id, ())
        if rule.channel_id and rule.matches(environment, severity, event)
    ]


# --- User mappings ---


USER_MAPPING_FIELDS = ("mm_user_id", "bugsnag_user_id", "bugsnag_email")


@dataclass(frozen=True)
class UserMapping:
    """Connects a Mattermost user to a Bugsnag user (by id or by email)."""

    mm_user_id: PlatformUserId = PlatformUserId("")
    bugsnag_user_id: ProviderUserId = ProviderUserId("")
    bugsnag_email: str = ""

    def to_dict(self) -> dict[str, str]:
        data = {"mm_user_id": self.mm_user_id}
        if self.bugsnag_user_id:
            data["bugsnag_user_id"] = self.bugsnag_user_id
        if self.bugsnag_email:
            data["bugsnag_email"] = self.bugsnag_email
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserMapping:
        return cls(
            mm_user_id=PlatformUserId(str(data.get("mm_user_id") or "")),
            bugsnag_user_id=ProviderUserId(str(data.get("bugsnag_user_id") or "")),
            bugsnag_email=str(data.get("bugsnag_email") or ""),
        )

    @property
    def best_assignee(self) -> str:
        """Bugsnag identity to assign with: explicit user id, else email."""
        return self.bugsnag_user_id.strip() or self.bugsnag_email.strip()


def resolve_user_mapping(
    mappings: Iterable[UserMapping],
    user_id: PlatformUserId,
    email: str = "",
) -> UserMapping | None:
    """Find the mapping for a Mattermost user.

    Matches on mm_user_id first, then falls back to a case-insensitive
    match between the user's email and bugsnag_email.
    """
    candidates = list(mappings)
    for m in candidates:
        if m.mm_user_id.strip() and m.mm_user_id == user_id:
            return m

    wanted = _normalize(email)
    if not wanted:
        return None
    for m in candidates:
        if _normalize(m.bugsnag_email) == wanted:
            return m
    return None


# --- Flat rule adapter ---


@dataclass(frozen=True)
class FlatChannelRule:
    """One row of the ``{rules: [...]}`` wire shape (no filters)."""

    id: str
    project_id: ProjectId
    channel_id: ChannelId
    project_name: str = ""
    channel_name: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "channel_id": self.channel_id,
            "channel_name": self.channel_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FlatChannelRule:
        return cls(
            id=str(data.get("id") or ""),
            project_id=ProjectId(str(data.get("project_id") or "")),
            channel_id=ChannelId(str(data.get("channel_id") or "")),
            project_name=str(data.get("project_name") or ""),
            channel_name=str(data.get("channel_name") or ""),
        )


def to_flat_rules(
    mappings: Mapping[ProjectId, Iterable[ChannelRule]],
    project_names: Mapping[ProjectId, str] | None = None,
    channel_names: Mapping[ChannelId, str] | None = None,
) -> list[FlatChannelRule]:
    """Denormalise project mappings into flat rows for display or export.

    Filters are dropped; names fall back to the raw ids.
    """
    project_names = project_names or {}
    channel_names = channel_names or {}
    rows: list[FlatChannelRule] = []
    for pid, rules in mappings.items():
        for index, rule in enumerate(rules):
            rows.append(
                FlatChannelRule(
                    id=f"{pid}:{index}",
                    project_id=pid,
                    channel_id=rule.channel_id,
                    project_name=project_names.get(pid, pid),
                    channel_name=channel_names.get(rule.channel_id, rule.channel_id),
                )
            )
    return rows


def from_flat_rules(rows: Iterable[FlatChannelRule]) -> ProjectChannelMappings:
    """Fold flat rows back into the canonical per-project shape."""
    grouped: dict[ProjectId, list[ChannelRule]] = {}
    for row in rows:
        if not row.project_id:
            continue
        grouped.setdefault(row.project_id, []).append(ChannelRule(row.channel_id))
    return {pid: tuple(rules) for pid, rules in grouped.items()}
