"""
Tests for quorum math and the witness policy.
"""

import pytest

from quorate.engine import MemberRole, WitnessPolicy, has_quorum, quorum


# ===========================================================================
# Quorum
# ===========================================================================


class TestQuorum:
    """Quorum is a strict majority of the full membership."""

    @pytest.mark.parametrize("total", range(1, 40))
    def test_threshold_is_strict_majority(self, total):
        assert quorum(total) == total // 2 + 1
        assert quorum(total) > total / 2

    def test_empty_cluster_never_has_quorum(self):
        assert quorum(0) == 1
        assert not has_quorum(0, 0)

    @pytest.mark.parametrize("total", [2, 4, 6, 8, 10])
    def test_even_split_is_not_quorum(self, total):
        assert not has_quorum(total // 2, total)
        assert has_quorum(total // 2 + 1, total)

    def test_known_values(self):
        assert quorum(1) == 1
        assert quorum(3) == 2
        assert quorum(4) == 3
        assert quorum(5) == 3
        assert has_quorum(3, 5)
        assert not has_quorum(2, 5)


# ===========================================================================
# Witness Policy
# ===========================================================================


class TestWitnessPolicy:
    """A witness is added only for even counts when quorum is forced."""

    def test_even_count_with_force_gets_one_witness(self):
        roles = WitnessPolicy(force_quorum=True).member_roles(2)
        assert roles == [MemberRole.DATA_NODE, MemberRole.DATA_NODE, MemberRole.WITNESS]

    def test_even_count_without_force_gets_no_witness(self):
        roles = WitnessPolicy(force_quorum=False).member_roles(2)
        assert roles == [MemberRole.DATA_NODE, MemberRole.DATA_NODE]

    def test_odd_count_never_gets_witness(self):
        policy = WitnessPolicy(force_quorum=True)
        assert not policy.requires_witness(3)
        assert policy.member_roles(3).count(MemberRole.WITNESS) == 0

    @pytest.mark.parametrize("count", range(1, 12))
    def test_forced_total_is_always_odd(self, count):
        roles = WitnessPolicy(force_quorum=True).member_roles(count)
        assert len(roles) % 2 == 1
        assert roles.count(MemberRole.WITNESS) <= 1
        # Witness, when present, is the last slot.
        if MemberRole.WITNESS in roles:
            assert roles[-1] == MemberRole.WITNESS
