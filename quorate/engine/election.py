"""
Deterministic leader election.

The leader is the lexicographically smallest identifier among the electable
up members. The same up-set always produces the same leader, so election
can be re-run after any change without terms or ballots.
"""

from collections.abc import Collection, Iterable

from .member import Member


def election_candidates(
    members: Iterable[Member],
    reachable_ids: Collection[str] | None = None,
    witness_electable: bool = False,
) -> list[Member]:
    """Get members that could become leader.

    A member is a candidate if it:
    - Is up
    - Is reachable (when a partition restricts reachability)
    - Is a data node, unless witnesses are allowed to lead

    Args:
        members: All cluster members.
        reachable_ids: Members on the majority side of an active partition.
            None means every member is reachable.
        witness_electable: Whether witness members may lead.

    Returns:
        Candidate members, in input order.
    """
    return [
        m
        for m in members
        if m.is_up
        and (reachable_ids is None or m.member_id in reachable_ids)
        and (witness_electable or not m.is_witness)
    ]


def elect_leader(
    members: Iterable[Member],
    reachable_ids: Collection[str] | None = None,
    witness_electable: bool = False,
) -> str | None:
    """Choose the leader, or None if no member is electable."""
    candidates = election_candidates(members, reachable_ids, witness_electable)
    if not candidates:
        return None
    return min(m.member_id for m in candidates)
