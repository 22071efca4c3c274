"""Rule editor: local mutations over the mapping store.

Every operation is a synchronous, I/O-free transform of the store's
state. Transient invalid states (a rule with no channel yet, a user row
with no Mattermost id yet) are allowed while editing; they are dropped by
the ``submission_*`` methods right before a save.

Index-addressed operations are no-ops when the index is out of bounds;
callers only use indices they enumerated themselves. User rows can also
be addressed by their stable key.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace

from bugsnag_admin.conventions import EVENTS, SEVERITIES
from bugsnag_admin.models import (
    RULE_FIELDS,
    USER_MAPPING_FIELDS,
    ChannelId,
    ChannelRule,
    ProjectChannelMappings,
    ProjectId,
    UserMapping,
    make_filter,
)
from bugsnag_admin.store import MappingStore, UserMappingRow

logger = logging.getLogger(__name__)

# Checkbox filters are kept in enumeration order.
FIELD_ORDER: dict[str, Sequence[str]] = {"severities": SEVERITIES, "events": EVENTS}


def in_order(values: Iterable[str], order: Sequence[str]) -> tuple[str, ...]:
    """Sort *values* by *order*; unknown values trail in their given order."""
    rank = {v: i for i, v in enumerate(order)}
    return tuple(sorted(dict.fromkeys(values), key=lambda v: rank.get(v, len(order))))


def toggle_set_member(
    current: Iterable[str],
    member: str,
    included: bool,
    order: Sequence[str] | None = None,
) -> tuple[str, ...]:
    """Add *member* to (or remove it from) *current* without duplicates.

    Without *order*, insertion order is kept (free-text environments).
    With *order*, the result is rebuilt in that enumeration's order and
    unknown values trail in their existing order (checkbox filters).
    """
    values = list(dict.fromkeys(current))
    if included:
        if member not in values:
            values.append(member)
    else:
        values = [v for v in values if v != member]

    if order is not None:
        return in_order(values, order)
    return tuple(values)


def parse_environments(text: str) -> tuple[str, ...]:
    """Split a comma-separated environment list; blanks and repeats dropped."""
    return tuple(dict.fromkeys(p.strip() for p in text.split(",") if p.strip()))


class RuleEditor:
    """Mutations over one MappingStore.

    ``on_edit`` is called after every change (the sync session uses it to
    clear its transient success flag).
    """

    def __init__(
        self, store: MappingStore, on_edit: Callable[[], None] | None = None
    ) -> None:
        self._store = store
        self._on_edit = on_edit

    def _rules(self) -> ProjectChannelMappings:
        return dict(self._store.current_state().channel_rules)

    def _commit_rules(self, mappings: ProjectChannelMappings) -> None:
        self._store.replace_channel_rules(mappings)
        if self._on_edit:
            self._on_edit()

    def _rows(self) -> list[UserMappingRow]:
        return list(self._store.current_state().user_rows)

    def _commit_rows(self, rows: list[UserMappingRow]) -> None:
        self._store.replace_user_rows(rows)
        if self._on_edit:
            self._on_edit()

    # ------------------------------------------------------------------
    # Channel rules
    # ------------------------------------------------------------------

    def set_channel_for_project(self, project_id: ProjectId, channel_id: str) -> None:
        """Replace every rule of the project with one unfiltered rule."""
        mappings = self._rules()
        mappings[project_id] = (ChannelRule(ChannelId(channel_id)),)
        self._commit_rules(mappings)

    def add_rule(self, project_id: ProjectId, channel_id: str) -> None:
        """Append an unfiltered rule (fan-out to one more channel)."""
        mappings = self._rules()
        rules = mappings.get(project_id, ())
        mappings[project_id] = (*rules, ChannelRule(ChannelId(channel_id)))
        self._commit_rules(mappings)

    def remove_rule(self, project_id: ProjectId, rule_index: int) -> None:
        mappings = self._rules()
        rules = list(mappings.get(project_id, ()))
        if not 0 <= rule_index < len(rules):
            logger.debug("remove_rule: %s[%d] out of range", project_id, rule_index)
            return
        del rules[rule_index]
        mappings[project_id] = tuple(rules)
        self._commit_rules(mappings)

    def remove_project(self, project_id: ProjectId) -> None:
        mappings = self._rules()
        if mappings.pop(project_id, None) is None:
            return
        self._commit_rules(mappings)

    def update_rule_field(
        self,
        project_id: ProjectId,
        rule_index: int,
        field: str,
        value: str | Iterable[str],
    ) -> None:
        """Replace one field of one rule. No-op for an unknown rule.

        Severities and events are stored in enumeration order.
        """
        if field not in RULE_FIELDS:
            raise ValueError(f"Unknown rule field: {field}")

        mappings = self._rules()
        rules = list(mappings.get(project_id, ()))
        if not 0 <= rule_index < len(rules):
            logger.debug(
                "update_rule_field: %s[%d] out of range", project_id, rule_index
            )
            return

        if field == "channel_id":
            if not isinstance(value, str):
                raise TypeError("channel_id must be a string")
            updated = replace(rules[rule_index], channel_id=ChannelId(value))
        else:
            if isinstance(value, str):
                raise TypeError(f"{field} must be a list of strings")
            values = list(value)
            if field in FIELD_ORDER:
                values = list(in_order(values, FIELD_ORDER[field]))
            updated = replace(rules[rule_index], **{field: make_filter(values)})

        rules[rule_index] = updated
        mappings[project_id] = tuple(rules)
        self._commit_rules(mappings)

    def _rule(self, project_id: ProjectId, rule_index: int) -> ChannelRule | None:
        rules = self._store.current_state().channel_rules.get(project_id, ())
        if 0 <= rule_index < len(rules):
            return rules[rule_index]
        return None

    def set_environments(
        self, project_id: ProjectId, rule_index: int, text: str
    ) -> None:
        """Set the environment allow-list from comma-separated text."""
        self.update_rule_field(
            project_id, rule_index, "environments", parse_environments(text)
        )

    def toggle_severity(
        self, project_id: ProjectId, rule_index: int, severity: str, included: bool
    ) -> None:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {severity}")
        rule = self._rule(project_id, rule_index)
        if rule is None:
            return
        values = toggle_set_member(
            rule.severities.values, severity, included, SEVERITIES
        )
        self.update_rule_field(project_id, rule_index, "severities", values)

    def toggle_event(
        self, project_id: ProjectId, rule_index: int, event: str, included: bool
    ) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown event: {event}")
        rule = self._rule(project_id, rule_index)
        if rule is None:
            return
        values = toggle_set_member(rule.events.values, event, included, EVENTS)
        self.update_rule_field(project_id, rule_index, "events", values)

    # ------------------------------------------------------------------
    # User mappings
    # ------------------------------------------------------------------

    def add_user_mapping(self) -> str:
        """Append an empty placeholder row. Returns its key."""
        row = UserMappingRow(UserMapping())
        self._commit_rows([*self._rows(), row])
        return row.key

    def remove_user_mapping(self, index: int) -> None:
        rows = self._rows()
        if not 0 <= index < len(rows):
            logger.debug("remove_user_mapping: %d out of range", index)
            return
        del rows[index]
        self._commit_rows(rows)

    def update_user_mapping_field(self, index: int, field: str, value: str) -> None:
        if field not in USER_MAPPING_FIELDS:
            raise ValueError(f"Unknown user mapping field: {field}")
        rows = self._rows()
        if not 0 <= index < len(rows):
            logger.debug("update_user_mapping_field: %d out of range", index)
            return
        row = rows[index]
        rows[index] = replace(row, mapping=replace(row.mapping, **{field: value}))
        self._commit_rows(rows)

    def index_of(self, key: str) -> int:
        """Position of the row with *key*, or -1."""
        for i, row in enumerate(self._store.current_state().user_rows):
            if row.key == key:
                return i
        return -1

    def remove_user_mapping_by_key(self, key: str) -> None:
        self.remove_user_mapping(self.index_of(key))

    def update_user_mapping_field_by_key(
        self, key: str, field: str, value: str
    ) -> None:
        self.update_user_mapping_field(self.index_of(key), field, value)

    # ------------------------------------------------------------------
    # Pre-submission filtering
    # ------------------------------------------------------------------

    def submission_channel_rules(self) -> ProjectChannelMappings:
        """Rules to persist: no empty channel ids, no empty projects."""
        result: ProjectChannelMappings = {}
        dropped = 0
        for pid, rules in self._store.current_state().channel_rules.items():
            kept = tuple(r for r in rules if r.channel_id.strip())
            dropped += len(rules) - len(kept)
            if kept:
                result[pid] = kept
        if dropped:
            logger.warning("Dropping %d rule(s) without a channel before save", dropped)
        return result

    def submission_user_rows(self) -> list[UserMappingRow]:
        """Rows to persist: those with a Mattermost user id."""
        rows = self._store.current_state().user_rows
        kept = [row for row in rows if row.mapping.mm_user_id.strip()]
        if len(kept) != len(rows):
            logger.warning(
                "Dropping %d user mapping(s) without a Mattermost user before save",
                len(rows) - len(kept),
            )
        return kept

    def submission_user_mappings(self) -> list[UserMapping]:
        return [row.mapping for row in self.submission_user_rows()]
