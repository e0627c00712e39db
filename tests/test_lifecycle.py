"""
Tests for the member lifecycle state machine.
"""

import pytest

from quorate.engine import Member, MemberRole, MemberState, ValidationError, can_transition


def _member(state: MemberState = MemberState.UP) -> Member:
    return Member("node-1", 1, "192.168.1.101:7001", state=state)


# ===========================================================================
# Transition Table
# ===========================================================================


class TestTransitions:

    @pytest.mark.parametrize(
        "current,target",
        [
            (MemberState.STARTING, MemberState.UP),
            (MemberState.UP, MemberState.DOWN),
            (MemberState.UP, MemberState.STOPPING),
            (MemberState.DOWN, MemberState.UP),
            (MemberState.STOPPING, MemberState.REMOVED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (MemberState.STARTING, MemberState.DOWN),
            (MemberState.UP, MemberState.REMOVED),
            (MemberState.DOWN, MemberState.STOPPING),
            (MemberState.DOWN, MemberState.REMOVED),
            (MemberState.STOPPING, MemberState.UP),
            (MemberState.REMOVED, MemberState.UP),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    @pytest.mark.parametrize("state", list(MemberState))
    def test_same_state_is_allowed(self, state):
        assert can_transition(state, state)


# ===========================================================================
# Member Transitions
# ===========================================================================


class TestMemberTransitions:

    def test_new_member_starts_up(self):
        assert _member().state == MemberState.UP

    def test_transition_reports_change(self):
        member = _member()
        assert member.transition_to(MemberState.DOWN) is True
        assert member.state == MemberState.DOWN
        assert member.transition_to(MemberState.DOWN) is False

    def test_invalid_transition_raises(self):
        member = _member(MemberState.DOWN)
        with pytest.raises(ValidationError, match="cannot go from down to stopping"):
            member.transition_to(MemberState.STOPPING)
        assert member.state == MemberState.DOWN

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            _member(MemberState.STOPPING).transition_to(MemberState.UP)

    def test_removal_path(self):
        member = _member()
        member.transition_to(MemberState.STOPPING)
        member.transition_to(MemberState.REMOVED)
        assert member.state == MemberState.REMOVED

    def test_record_round_trip(self):
        member = Member(
            "node-4",
            4,
            "192.168.1.104:7004",
            role=MemberRole.WITNESS,
            state=MemberState.DOWN,
            load_percent=12.5,
            replica_synced=False,
        )
        assert Member.from_dict(member.to_dict()) == member
