"""Rule editor tests.

Every editor operation is a synchronous transform of the MappingStore;
these tests never touch the network.
"""

from __future__ import annotations

import pytest

from bugsnag_admin.client import MemoryPluginClient
from bugsnag_admin.editor import RuleEditor, parse_environments, toggle_set_member
from bugsnag_admin.models import (
    ChannelId,
    ChannelRule,
    PlatformUserId,
    ProjectId,
    Unfiltered,
    UserMapping,
    make_filter,
)
from bugsnag_admin.store import MappingStore

P1 = ProjectId("p1")


@pytest.fixture
def store() -> MappingStore:
    return MappingStore(MemoryPluginClient())


@pytest.fixture
def editor(store: MappingStore) -> RuleEditor:
    return RuleEditor(store)


def _rules(store: MappingStore, pid: ProjectId = P1) -> tuple[ChannelRule, ...]:
    return store.current_state().channel_rules.get(pid, ())


class TestToggleSetMember:
    """Verify set toggling without duplicates."""

    def test_add_and_remove(self):
        assert toggle_set_member(("a",), "b", True) == ("a", "b")
        assert toggle_set_member(("a", "b"), "a", False) == ("b",)

    def test_no_duplicate_insertion(self):
        assert toggle_set_member(("a",), "a", True) == ("a",)

    def test_on_then_off_restores(self):
        start = ("production", "staging")
        on = toggle_set_member(start, "qa", True)
        assert toggle_set_member(on, "qa", False) == start

    def test_enumeration_order_not_click_order(self):
        order = ("error", "warning", "info")
        values = toggle_set_member((), "info", True, order)
        values = toggle_set_member(values, "error", True, order)
        assert values == ("error", "info")

    def test_insertion_order_without_enumeration(self):
        assert toggle_set_member(("z",), "a", True) == ("z", "a")


class TestParseEnvironments:
    def test_splits_and_trims(self):
        assert parse_environments(" production, staging ,,") == (
            "production",
            "staging",
        )

    def test_blank(self):
        assert parse_environments("  ") == ()


class TestChannelRuleEdits:
    """Verify the channel rule operations."""

    def test_set_channel_replaces_with_single_unfiltered_rule(self, editor, store):
        editor.add_rule(P1, "old1")
        editor.add_rule(P1, "old2")
        editor.update_rule_field(P1, 0, "severities", ["error"])

        editor.set_channel_for_project(P1, "c1")

        assert _rules(store) == (ChannelRule(ChannelId("c1")),)
        assert _rules(store)[0].is_unfiltered

    def test_add_rule_appends(self, editor, store):
        editor.add_rule(P1, "c1")
        editor.add_rule(P1, "c1")
        assert [r.channel_id for r in _rules(store)] == ["c1", "c1"]

    def test_remove_rule(self, editor, store):
        editor.add_rule(P1, "c1")
        editor.add_rule(P1, "c2")
        editor.remove_rule(P1, 0)
        assert [r.channel_id for r in _rules(store)] == ["c2"]

    def test_remove_project(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        editor.remove_project(P1)
        assert P1 not in store.current_state().channel_rules

    def test_update_field_out_of_range_is_noop(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        before = store.current_state()
        editor.update_rule_field(P1, 5, "channel_id", "c9")
        editor.update_rule_field(ProjectId("nope"), 0, "channel_id", "c9")
        assert store.current_state().channel_rules == before.channel_rules
        assert store.revision == before.revision

    def test_update_channel_id(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        editor.update_rule_field(P1, 0, "channel_id", "c2")
        assert _rules(store)[0].channel_id == "c2"

    def test_update_filter_to_empty_is_unfiltered(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        editor.update_rule_field(P1, 0, "events", ["reopened"])
        editor.update_rule_field(P1, 0, "events", [])
        assert isinstance(_rules(store)[0].events, Unfiltered)

    def test_checkbox_fields_stored_in_enumeration_order(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        editor.update_rule_field(P1, 0, "severities", ("info", "error"))
        editor.update_rule_field(P1, 0, "events", ["spikeEnd", "exception"])
        editor.update_rule_field(P1, 0, "environments", ["staging", "production"])

        rule = _rules(store)[0]
        assert rule.severities.values == ("error", "info")
        assert rule.events.values == ("exception", "spikeEnd")
        assert rule.environments.values == ("staging", "production")

    def test_unknown_field_rejected(self, editor):
        editor.set_channel_for_project(P1, "c1")
        with pytest.raises(ValueError, match="Unknown rule field"):
            editor.update_rule_field(P1, 0, "colour", "red")

    def test_wrong_value_types_rejected(self, editor):
        editor.set_channel_for_project(P1, "c1")
        with pytest.raises(TypeError):
            editor.update_rule_field(P1, 0, "channel_id", ["c2"])
        with pytest.raises(TypeError):
            editor.update_rule_field(P1, 0, "severities", "error")

    def test_set_environments_from_text(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        editor.set_environments(P1, 0, "production, staging")
        assert _rules(store)[0].environments.values == ("production", "staging")

    def test_toggle_severity(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        editor.toggle_severity(P1, 0, "info", True)
        editor.toggle_severity(P1, 0, "error", True)
        assert _rules(store)[0].severities.values == ("error", "info")
        editor.toggle_severity(P1, 0, "info", False)
        editor.toggle_severity(P1, 0, "error", False)
        assert _rules(store)[0].is_unfiltered

    def test_toggle_event(self, editor, store):
        editor.set_channel_for_project(P1, "c1")
        editor.toggle_event(P1, 0, "spikeEnd", True)
        editor.toggle_event(P1, 0, "exception", True)
        assert _rules(store)[0].events.values == ("exception", "spikeEnd")

    def test_toggle_unknown_values_rejected(self, editor):
        editor.set_channel_for_project(P1, "c1")
        with pytest.raises(ValueError):
            editor.toggle_severity(P1, 0, "fatal", True)
        with pytest.raises(ValueError):
            editor.toggle_event(P1, 0, "deploy", True)

    def test_on_edit_callback(self, store):
        calls = []
        editor = RuleEditor(store, on_edit=lambda: calls.append(1))
        editor.set_channel_for_project(P1, "c1")
        editor.add_user_mapping()
        assert len(calls) == 2


class TestUserMappingEdits:
    """Verify the user mapping row operations."""

    def test_add_appends_placeholder(self, editor, store):
        editor.add_user_mapping()
        assert store.current_state().user_mappings == (UserMapping(),)

    def test_add_twice_remove_first_keeps_second(self, editor, store):
        editor.add_user_mapping()
        second = editor.add_user_mapping()
        editor.remove_user_mapping(0)

        state = store.current_state()
        assert len(state.user_rows) == 1
        assert state.user_keys == (second,)

    def test_remove_by_index_removes_exactly_that_row(self, editor, store):
        for mm in ("a", "b", "c"):
            key = editor.add_user_mapping()
            editor.update_user_mapping_field_by_key(key, "mm_user_id", mm)
        editor.remove_user_mapping(1)
        ids = [m.mm_user_id for m in store.current_state().user_mappings]
        assert ids == ["a", "c"]

    def test_remove_out_of_range_is_noop(self, editor, store):
        editor.add_user_mapping()
        editor.remove_user_mapping(3)
        editor.remove_user_mapping(-1)
        assert len(store.current_state().user_rows) == 1

    def test_update_field_by_index(self, editor, store):
        editor.add_user_mapping()
        editor.update_user_mapping_field(0, "bugsnag_email", "ada@example.com")
        assert store.current_state().user_mappings[0].bugsnag_email == (
            "ada@example.com"
        )

    def test_update_unknown_field_rejected(self, editor):
        editor.add_user_mapping()
        with pytest.raises(ValueError, match="Unknown user mapping field"):
            editor.update_user_mapping_field(0, "nickname", "x")

    def test_keys_survive_reordering(self, editor, store):
        first = editor.add_user_mapping()
        second = editor.add_user_mapping()
        editor.remove_user_mapping_by_key(first)
        editor.update_user_mapping_field_by_key(second, "mm_user_id", "mm2")
        assert editor.index_of(second) == 0
        assert editor.index_of(first) == -1
        assert store.current_state().user_mappings[0].mm_user_id == "mm2"


class TestSubmissionFiltering:
    """Verify invalid transient rows never reach a save payload."""

    def test_empty_mm_user_id_dropped(self, editor):
        editor.add_user_mapping()
        key = editor.add_user_mapping()
        editor.update_user_mapping_field_by_key(key, "mm_user_id", "mm1")
        editor.add_user_mapping()
        editor.update_user_mapping_field(2, "mm_user_id", "   ")

        submitted = editor.submission_user_mappings()
        assert submitted == [UserMapping(PlatformUserId("mm1"))]

    def test_empty_channel_rules_and_projects_dropped(self, editor):
        editor.set_channel_for_project(P1, "")
        editor.add_rule(ProjectId("p2"), "c2")
        editor.add_rule(ProjectId("p2"), "")

        submitted = editor.submission_channel_rules()
        assert submitted == {ProjectId("p2"): (ChannelRule(ChannelId("c2")),)}

    def test_submission_does_not_modify_store(self, editor, store):
        editor.add_user_mapping()
        editor.submission_user_rows()
        assert len(store.current_state().user_rows) == 1

    def test_filtered_rule_kept(self, editor):
        editor.set_channel_for_project(P1, "c1")
        editor.update_rule_field(P1, 0, "severities", ["error"])
        submitted = editor.submission_channel_rules()
        assert submitted[P1][0].severities == make_filter(["error"])
