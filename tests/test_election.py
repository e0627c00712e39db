"""
Tests for deterministic leader election.
"""

from quorate.engine import Member, MemberRole, MemberState, elect_leader


def _member(slot: int, state: MemberState = MemberState.UP, role: MemberRole = MemberRole.DATA_NODE) -> Member:
    return Member(f"node-{slot}", slot, f"10.0.0.{slot}:7000", role=role, state=state)


class TestElectLeader:
    """The leader is the smallest electable member ID."""

    def test_smallest_up_id_leads(self):
        members = [_member(3), _member(1), _member(2)]
        assert elect_leader(members) == "node-1"

    def test_deterministic_and_idempotent(self):
        members = [_member(slot) for slot in range(1, 6)]
        first = elect_leader(members)
        assert all(elect_leader(members) == first for _ in range(10))
        assert elect_leader(list(reversed(members))) == first

    def test_leader_down_passes_to_next_lowest(self):
        members = [_member(1, MemberState.DOWN), _member(2), _member(3)]
        assert elect_leader(members) == "node-2"

    def test_no_up_members_means_no_leader(self):
        members = [_member(1, MemberState.DOWN), _member(2, MemberState.STOPPING)]
        assert elect_leader(members) is None
        assert elect_leader([]) is None

    def test_order_is_lexicographic(self):
        # "node-10" sorts before "node-2".
        members = [_member(2), _member(10)]
        assert elect_leader(members) == "node-10"

    def test_witness_not_electable_by_default(self):
        members = [
            _member(1, MemberState.DOWN),
            _member(2, MemberState.DOWN),
            _member(3, role=MemberRole.WITNESS),
        ]
        assert elect_leader(members) is None
        assert elect_leader(members, witness_electable=True) == "node-3"

    def test_only_reachable_members_are_electable(self):
        members = [_member(slot) for slot in range(1, 6)]
        assert elect_leader(members, {"node-3", "node-4", "node-5"}) == "node-3"
        assert elect_leader(members, frozenset()) is None
