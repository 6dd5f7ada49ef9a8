# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false

"""
Tests for the pure rotation logic: assignment resolution, sprint windows,
weekday policy and snapshot hashing. No database, no HTTP.
"""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from oncall_rotation.models.domain import Override, RotationList, RotationMember, Sprint
from oncall_rotation.services.rotation import (
    assignees,
    diff_roles,
    find_approved_override,
    find_cross_role_members,
    find_duplicate_assignees,
    resolve_assignments,
)
from oncall_rotation.services.snapshots import compute_snapshot_hash
from oncall_rotation.services.sprint_windows import (
    find_next_sprint,
    is_last_day,
    resolve_current_sprint,
    to_calendar_date,
)
from oncall_rotation.services.weekday_policy import is_business_day, next_business_day, should_defer

PT = ZoneInfo("America/Los_Angeles")


def rotation(role, *users, inactive=()):
    return RotationList(
        role=role,
        members=[RotationMember(user_id=u, active=u not in inactive) for u in users],
    )


def approved(sprint_index, role, user, override_id=1, ts="2026-01-01T00:00:00+00:00"):
    return Override(
        id=override_id,
        sprint_index=sprint_index,
        role=role,
        replacement_user_id=user,
        requested_by="UREQ",
        approved=True,
        approved_by="UADMIN",
        approval_timestamp=ts,
    )


# ============================================
# Rotation resolution
# ============================================
class TestResolveAssignments:
    def test_modulo_assignment(self):
        lists = {"po": rotation("po", "A", "B", "C")}
        assert resolve_assignments(7, lists)["po"] == "B"

    @pytest.mark.parametrize("index", range(0, 12))
    def test_index_maps_to_list_position(self, index):
        users = ["A", "B", "C", "D"]
        lists = {"beEng": rotation("beEng", *users)}
        assert resolve_assignments(index, lists)["beEng"] == users[index % len(users)]

    def test_approved_override_takes_precedence(self):
        lists = {"po": rotation("po", "A", "B", "C")}
        result = resolve_assignments(7, lists, [approved(7, "po", "D")])
        assert result["po"] == "D"

    def test_override_for_other_sprint_ignored(self):
        lists = {"po": rotation("po", "A", "B", "C")}
        result = resolve_assignments(7, lists, [approved(8, "po", "D")])
        assert result["po"] == "B"

    def test_pending_override_ignored(self):
        lists = {"po": rotation("po", "A", "B", "C")}
        pending = approved(7, "po", "D").model_copy(update={"approved": False})
        assert resolve_assignments(7, lists, [pending])["po"] == "B"

    def test_override_applies_to_empty_rotation(self):
        result = resolve_assignments(3, {"po": rotation("po")}, [approved(3, "po", "D")])
        assert result["po"] == "D"

    def test_empty_rotation_without_fallback_is_none(self):
        assert resolve_assignments(3, {"po": rotation("po")})["po"] is None

    def test_empty_rotation_uses_fallback_user(self):
        result = resolve_assignments(3, {"po": rotation("po")}, fallback_users={"po": "UFALL"})
        assert result["po"] == "UFALL"

    def test_fallback_role_without_list_included(self):
        result = resolve_assignments(3, {}, fallback_users={"account": "UACC"})
        assert result == {"account": "UACC"}

    def test_inactive_members_skipped(self):
        lists = {"po": rotation("po", "A", "B", "C", inactive=("B",))}
        # active list is [A, C]; 7 mod 2 == 1
        assert resolve_assignments(7, lists)["po"] == "C"

    def test_configured_roles_always_present(self):
        result = resolve_assignments(0, {"po": rotation("po", "A")}, roles=["po", "uiEng"])
        assert result == {"po": "A", "uiEng": None}

    def test_negative_index_rejected(self):
        with pytest.raises(ValueError):
            resolve_assignments(-1, {"po": rotation("po", "A")})

    def test_deterministic(self):
        lists = {"po": rotation("po", "A", "B", "C"), "beEng": rotation("beEng", "X", "Y")}
        overrides = [approved(5, "beEng", "Z")]
        assert resolve_assignments(5, lists, overrides) == resolve_assignments(5, lists, overrides)

    def test_duplicate_assignee_is_not_rejected(self):
        lists = {"po": rotation("po", "A"), "beEng": rotation("beEng", "A")}
        result = resolve_assignments(0, lists)
        assert result == {"po": "A", "beEng": "A"}
        assert find_duplicate_assignees(result) == {"A": ["po", "beEng"]}


class TestOverrideLookup:
    def test_latest_approval_wins_on_malformed_data(self):
        older = approved(4, "po", "D", override_id=1, ts="2026-01-01T00:00:00+00:00")
        newer = approved(4, "po", "E", override_id=2, ts="2026-01-02T00:00:00+00:00")
        assert find_approved_override(4, "po", [newer, older]).replacement_user_id == "E"

    def test_no_match(self):
        assert find_approved_override(4, "po", [approved(4, "beEng", "D")]) is None


class TestRosterHelpers:
    def test_cross_role_members(self):
        lists = {"po": rotation("po", "A", "B"), "beEng": rotation("beEng", "B", "C")}
        assert find_cross_role_members(lists) == {"B": ["po", "beEng"]}

    def test_diff_roles(self):
        changes = diff_roles({"po": "A", "beEng": "X"}, {"po": "B", "beEng": "X", "uiEng": "U"})
        assert changes == [
            {"role": "po", "old_user": "A", "new_user": "B"},
            {"role": "uiEng", "old_user": None, "new_user": "U"},
        ]

    def test_assignees_distinct_and_non_empty(self):
        assert assignees({"po": "A", "beEng": None, "uiEng": "A", "account": "B"}) == ["A", "B"]


# ============================================
# Sprint windows
# ============================================
SPRINTS_AS_STRINGS = [
    Sprint(index=10, name="S10", start_date="2026-01-01", end_date="2026-01-14"),
    Sprint(index=11, name="S11", start_date="2026-01-14", end_date="2026-01-28"),
]
SPRINTS_AS_DATETIMES = [
    Sprint(index=10, name="S10", start_date=datetime(2026, 1, 1), end_date=datetime(2026, 1, 14)),
    Sprint(index=11, name="S11", start_date=datetime(2026, 1, 14), end_date=datetime(2026, 1, 28)),
]
SPRINTS_AS_UTC_DATETIMES = [
    Sprint(index=10, name="S10", start_date=datetime(2026, 1, 1, tzinfo=timezone.utc),
           end_date=datetime(2026, 1, 14, tzinfo=timezone.utc)),
    Sprint(index=11, name="S11", start_date=datetime(2026, 1, 14, tzinfo=timezone.utc),
           end_date=datetime(2026, 1, 28, tzinfo=timezone.utc)),
]


class TestCurrentSprint:
    @pytest.mark.parametrize("sprints", [SPRINTS_AS_STRINGS, SPRINTS_AS_DATETIMES, SPRINTS_AS_UTC_DATETIMES])
    def test_before_cutover_on_boundary_is_earlier_sprint(self, sprints):
        now = datetime(2026, 1, 14, 7, 59, tzinfo=PT)
        assert resolve_current_sprint(sprints, now, PT).index == 10

    @pytest.mark.parametrize("sprints", [SPRINTS_AS_STRINGS, SPRINTS_AS_DATETIMES, SPRINTS_AS_UTC_DATETIMES])
    def test_at_cutover_on_boundary_is_later_sprint(self, sprints):
        now = datetime(2026, 1, 14, 8, 0, tzinfo=PT)
        assert resolve_current_sprint(sprints, now, PT).index == 11

    def test_input_order_does_not_matter(self):
        now = datetime(2026, 1, 14, 9, 0, tzinfo=PT)
        assert resolve_current_sprint(list(reversed(SPRINTS_AS_STRINGS)), now, PT).index == 11
        early = datetime(2026, 1, 14, 6, 0, tzinfo=PT)
        assert resolve_current_sprint(list(reversed(SPRINTS_AS_STRINGS)), early, PT).index == 10

    def test_utc_instant_converted_to_canonical_zone(self):
        # 15:59 UTC == 07:59 PST
        now = datetime(2026, 1, 14, 15, 59, tzinfo=timezone.utc)
        assert resolve_current_sprint(SPRINTS_AS_STRINGS, now, PT).index == 10

    def test_naive_now_taken_as_utc(self):
        assert resolve_current_sprint(SPRINTS_AS_STRINGS, datetime(2026, 1, 14, 16, 0), PT).index == 11

    def test_mid_sprint(self):
        now = datetime(2026, 1, 20, 3, 0, tzinfo=PT)
        assert resolve_current_sprint(SPRINTS_AS_STRINGS, now, PT).index == 11

    def test_outside_schedule_is_none(self):
        assert resolve_current_sprint(SPRINTS_AS_STRINGS, datetime(2026, 3, 1, 12, tzinfo=PT), PT) is None

    def test_empty_schedule_is_none(self):
        assert resolve_current_sprint([], datetime(2026, 1, 14, 12, tzinfo=PT), PT) is None

    def test_custom_cutover(self):
        now = datetime(2026, 1, 14, 8, 30, tzinfo=PT)
        assert resolve_current_sprint(SPRINTS_AS_STRINGS, now, PT, cutover=time(9, 0)).index == 10

    def test_last_day_of_schedule_before_cutover(self):
        now = datetime(2026, 1, 28, 7, 0, tzinfo=PT)
        assert resolve_current_sprint(SPRINTS_AS_STRINGS, now, PT).index == 11


class TestSprintHelpers:
    def test_to_calendar_date_variants(self):
        assert to_calendar_date("2026-01-14") == date(2026, 1, 14)
        assert to_calendar_date("2026-01-14T00:00:00Z") == date(2026, 1, 14)
        assert to_calendar_date(datetime(2026, 1, 14)) == date(2026, 1, 14)
        assert to_calendar_date(date(2026, 1, 14)) == date(2026, 1, 14)

    def test_find_next_sprint(self):
        assert find_next_sprint(SPRINTS_AS_STRINGS, 10).index == 11
        assert find_next_sprint(SPRINTS_AS_STRINGS, 11) is None

    def test_is_last_day(self):
        sprint = SPRINTS_AS_STRINGS[0]
        assert is_last_day(sprint, datetime(2026, 1, 14, 17, tzinfo=PT), PT)
        assert not is_last_day(sprint, datetime(2026, 1, 13, 17, tzinfo=PT), PT)


# ============================================
# Weekday policy
# ============================================
class TestWeekdayPolicy:
    def test_saturday_defers_to_monday(self):
        saturday = datetime(2026, 1, 17, 10, tzinfo=PT)
        assert should_defer(saturday, PT)
        assert next_business_day(saturday, PT, 8) == datetime(2026, 1, 19, 8, tzinfo=PT)

    def test_sunday_defers_to_monday(self):
        sunday = datetime(2026, 1, 18, 10, tzinfo=PT)
        assert next_business_day(sunday, PT, 8).date() == date(2026, 1, 19)

    def test_friday_is_business_day(self):
        friday = datetime(2026, 1, 16, 10, tzinfo=PT)
        assert is_business_day(friday, PT)
        assert next_business_day(friday, PT, 8).date() == date(2026, 1, 19)

    def test_weekday_judged_in_canonical_zone(self):
        # Saturday 03:00 UTC is still Friday evening in Pacific time
        assert is_business_day(datetime(2026, 1, 17, 3, tzinfo=timezone.utc), PT)


# ============================================
# Snapshot hash
# ============================================
class TestSnapshotHash:
    def test_key_order_irrelevant(self):
        assert compute_snapshot_hash({"po": "A", "beEng": "X"}) == compute_snapshot_hash({"beEng": "X", "po": "A"})

    def test_value_change_changes_hash(self):
        assert compute_snapshot_hash({"po": "A"}) != compute_snapshot_hash({"po": "B"})

    def test_hex_sha256(self):
        digest = compute_snapshot_hash({"po": None})
        assert len(digest) == 64
        int(digest, 16)
