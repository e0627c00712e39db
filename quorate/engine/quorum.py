"""
Quorum math and witness policy.

Quorum is a strict majority of the full configured membership, witnesses
included. The witness policy decides, once at cluster creation, whether to
add a vote-only member so that an even data-member count becomes odd.
"""

from dataclasses import dataclass

from .member import MemberRole


def quorum(total: int) -> int:
    """Minimum number of up members needed for quorum.

    An empty cluster needs one member and therefore never has quorum.

    Args:
        total: Total configured members (non-negative).

    Returns:
        ``total // 2 + 1``.
    """
    return total // 2 + 1


def has_quorum(up_count: int, total: int) -> bool:
    """Check whether ``up_count`` members form a quorum of ``total``."""
    return up_count >= quorum(total)


@dataclass(frozen=True)
class WitnessPolicy:
    """Decides whether a cluster gets a witness member at creation time.

    With ``force_quorum`` set, an even number of data members gets exactly
    one witness so that no up/down split can be a 50/50 tie. Odd counts
    already rule out ties and never get one.

    The policy is applied once. Members added or removed later do not cause
    it to be re-evaluated.

    Attributes:
        force_quorum: Whether the caller asked for a guaranteed odd total.
    """

    force_quorum: bool = False

    def requires_witness(self, data_member_count: int) -> bool:
        return self.force_quorum and data_member_count % 2 == 0

    def member_roles(self, data_member_count: int) -> list[MemberRole]:
        """Roles for each membership slot, in slot order.

        The witness, when present, takes the slot right after the data
        members.
        """
        roles = [MemberRole.DATA_NODE] * data_member_count
        if self.requires_witness(data_member_count):
            roles.append(MemberRole.WITNESS)
        return roles
