"""
Network partition model for the coordination engine.

A partition splits the membership into disjoint groups that cannot reach
each other. Each group is classified against the full configured cluster
size: the group holding a quorum is the majority (reads and writes), every
other group is a minority (reads only). Because quorum is a strict majority,
at most one group can ever be the majority.

Actually cutting network traffic is not done here. The coordinator hands
each partition to a ``PartitionEnforcer``; the only enforcer shipped with
the engine logs what it would do.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from .errors import ValidationError
from .member import Member
from .quorum import has_quorum

logger = logging.getLogger(__name__)


class PartitionRole(Enum):
    """Classification of one side of a partition."""

    MAJORITY = "majority"  # Holds quorum, accepts reads and writes
    MINORITY = "minority"  # Read-only


@dataclass(frozen=True)
class PartitionEvent:
    """An ordered set of disjoint member groups.

    Members named in no group are unreachable from all of them.

    Attributes:
        groups: Member-ID groups, in the order the caller supplied them.
    """

    groups: tuple[frozenset[str], ...]

    def member_ids(self) -> frozenset[str]:
        """All members named in some group."""
        return frozenset().union(*self.groups)

    def group_index(self, member_id: str) -> int | None:
        """Index of the group containing a member, or None."""
        for index, group in enumerate(self.groups):
            if member_id in group:
                return index
        return None

    def without(self, member_id: str) -> "PartitionEvent | None":
        """Drop a member from the partition.

        Returns:
            The reduced partition, or None if fewer than two non-empty groups
            remain (the split no longer exists).
        """
        groups = tuple(g - {member_id} for g in self.groups)
        groups = tuple(g for g in groups if g)
        if len(groups) < 2:
            return None
        return PartitionEvent(groups)

    def to_list(self) -> list[list[str]]:
        return [sorted(g) for g in self.groups]

    @classmethod
    def from_list(cls, groups: Sequence[Iterable[str]]) -> "PartitionEvent":
        return cls(tuple(frozenset(g) for g in groups))

    def __repr__(self) -> str:
        sides = " | ".join(",".join(sorted(g)) for g in self.groups)
        return f"PartitionEvent({sides})"


@dataclass(frozen=True)
class PartitionGroup:
    """One classified side of a partition.

    Attributes:
        index: Position of the group in the partition.
        member_ids: Members on this side.
        up_count: Members on this side that are up and therefore vote.
        role: Majority or minority.
    """

    index: int
    member_ids: frozenset[str]
    up_count: int
    role: PartitionRole

    @property
    def accepts_writes(self) -> bool:
        return self.role == PartitionRole.MAJORITY


def make_partition(groups: Sequence[Iterable[str]], known_ids: Collection[str]) -> PartitionEvent:
    """Validate caller-supplied groups and build a partition.

    Args:
        groups: At least two non-empty, disjoint groups of member IDs.
        known_ids: Every member ID in the cluster.

    Returns:
        The partition, groups kept in caller order.

    Raises:
        ValidationError: On fewer than two groups, an empty group, a member
            appearing in more than one group, or an unknown member ID.
    """
    frozen = [frozenset(g) for g in groups]
    if len(frozen) < 2:
        raise ValidationError(f"A partition needs at least two groups, got {len(frozen)}")

    seen: set[str] = set()
    for index, group in enumerate(frozen):
        if not group:
            raise ValidationError(f"Partition group {index} is empty")
        unknown = group - set(known_ids)
        if unknown:
            raise ValidationError(f"Unknown members in partition group {index}: {sorted(unknown)}")
        overlap = group & seen
        if overlap:
            raise ValidationError(f"Members appear in more than one group: {sorted(overlap)}")
        seen |= group

    return PartitionEvent(tuple(frozen))


def isolation_partition(target_id: str, members: Iterable[Member]) -> PartitionEvent:
    """Build the two-group partition that cuts one member off from the rest.

    The second group holds every other up member.

    Raises:
        ValidationError: If the target is not up, or is the only up member.
    """
    up_ids = {m.member_id for m in members if m.is_up}
    if target_id not in up_ids:
        raise ValidationError(f"Member {target_id} is not up and cannot be isolated")
    rest = up_ids - {target_id}
    if not rest:
        raise ValidationError(f"Member {target_id} is the only up member; nothing to isolate it from")
    return PartitionEvent((frozenset({target_id}), frozenset(rest)))


def classify_partition(event: PartitionEvent, members: Collection[Member]) -> list[PartitionGroup]:
    """Classify every group of a partition as majority or minority.

    A group's vote count is its number of up members; it is compared with
    the full configured membership, not with the members currently up.

    Args:
        event: The partition.
        members: All cluster members, witnesses and down members included.

    Returns:
        One classified group per partition group, same order.
    """
    total = len(members)
    up_ids = {m.member_id for m in members if m.is_up}
    classified = []
    for index, group in enumerate(event.groups):
        up_count = len(group & up_ids)
        role = PartitionRole.MAJORITY if has_quorum(up_count, total) else PartitionRole.MINORITY
        classified.append(PartitionGroup(index, group, up_count, role))
    return classified


def majority_group(groups: Iterable[PartitionGroup]) -> PartitionGroup | None:
    """Return the majority group, or None if every group is a minority."""
    for group in groups:
        if group.role == PartitionRole.MAJORITY:
            return group
    return None


def reachable_member_ids(
    event: PartitionEvent | None,
    members: Collection[Member],
) -> frozenset[str] | None:
    """Members that the writable side of the cluster can reach.

    Returns:
        None when there is no partition (everyone is reachable); otherwise
        the majority group's members, or an empty set when no group holds
        quorum.
    """
    if event is None:
        return None
    majority = majority_group(classify_partition(event, members))
    if majority is None:
        return frozenset()
    return majority.member_ids


class PartitionEnforcer(ABC):
    """Applies a partition to the real network.

    The coordinator calls it under the cluster's lock, only after the
    partition (or its removal) has been saved, so the network never holds
    rules the stored record does not. When removing a member shrinks a
    partition, the old rules are healed and the reduced ones applied.
    Implementations own all side effects.
    """

    @abstractmethod
    def apply(self, cluster_id: str, event: PartitionEvent, addresses: Mapping[str, str]) -> None:
        """Cut traffic between the groups of ``event``.

        Args:
            cluster_id: Cluster being partitioned.
            event: The partition to enforce.
            addresses: ``member_id -> host:port`` for every member.
        """

    @abstractmethod
    def heal(self, cluster_id: str, event: PartitionEvent, addresses: Mapping[str, str]) -> None:
        """Restore traffic cut by a previous ``apply``."""


def _block_rules(event: PartitionEvent, addresses: Mapping[str, str]) -> list[tuple[str, str]]:
    """(host, peer_host) pairs whose traffic a partition cuts."""
    hosts = {mid: addr.rsplit(":", 1)[0] for mid, addr in addresses.items()}
    rules = []
    for index, group in enumerate(event.groups):
        peers = sorted(
            hosts[mid]
            for other_index, other in enumerate(event.groups)
            if other_index != index
            for mid in other
            if mid in hosts
        )
        for mid in sorted(group):
            if mid in hosts:
                rules.extend((hosts[mid], peer) for peer in peers)
    return rules


class DryRunEnforcer(PartitionEnforcer):
    """Logs the firewall commands a real enforcer would run.

    Nothing is executed. The generated commands are kept on ``commands``.
    """

    def __init__(self) -> None:
        self.commands: list[str] = []

    def apply(self, cluster_id: str, event: PartitionEvent, addresses: Mapping[str, str]) -> None:
        self._record(cluster_id, "-A", event, addresses)

    def heal(self, cluster_id: str, event: PartitionEvent, addresses: Mapping[str, str]) -> None:
        self._record(cluster_id, "-D", event, addresses)

    def _record(
        self,
        cluster_id: str,
        action: str,
        event: PartitionEvent,
        addresses: Mapping[str, str],
    ) -> None:
        rules = _block_rules(event, addresses)
        for host, peer in rules:
            command = f"ssh {host} sudo iptables {action} INPUT -s {peer} -j DROP"
            self.commands.append(command)
            logger.debug("[dry-run] %s", command)
        verb = "apply" if action == "-A" else "remove"
        logger.info("[dry-run] Would %s %d firewall rules for cluster %s", verb, len(rules), cluster_id)
