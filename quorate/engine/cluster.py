"""
Cluster record for the coordination engine.

Holds the membership of one cluster together with the stored leader and
partition records, and answers quorum and health queries over them. Health
is always derived from the members, never stored.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .errors import NotFoundError, ValidationError
from .health import ClusterHealth, ReplicationStatus, cluster_health, count_up, replication_status
from .member import Member, MemberRole
from .partition import PartitionEvent, reachable_member_ids
from .quorum import has_quorum, quorum


@dataclass
class Cluster:
    """Complete stored state of one cluster.

    Attributes:
        cluster_id: Unique, immutable identifier.
        name: Display name.
        cluster_type: Opaque tag such as ``"cassandra"``.
        replication_factor: Expected number of data copies.
        created_at: Creation time (UTC).
        witness: Whether a witness member was added at creation.
        members: Members keyed by ID, in slot order.
        leader_id: Current leader, maintained by the coordinator.
        partition: Active partition, or None when the network is whole.
        version: Optimistic-concurrency token, bumped by the store on save.
    """

    cluster_id: str
    name: str
    cluster_type: str
    replication_factor: int
    created_at: datetime
    witness: bool = False
    members: dict[str, Member] = field(default_factory=dict)
    leader_id: str | None = None
    partition: PartitionEvent | None = None
    version: int = 0

    def get_member(self, member_id: str) -> Member:
        """Get a member by ID.

        Raises:
            NotFoundError: If the member is not in this cluster.
        """
        member = self.members.get(member_id)
        if member is None:
            raise NotFoundError(f"Member not found in cluster {self.cluster_id}: {member_id}")
        return member

    def add_member(self, member: Member) -> None:
        if member.member_id in self.members:
            raise ValidationError(f"Member {member.member_id} already exists in cluster {self.cluster_id}")
        self.members[member.member_id] = member

    def remove_member(self, member_id: str) -> Member:
        """Delete a member record, dropping it from any active partition."""
        member = self.get_member(member_id)
        del self.members[member_id]
        if self.partition is not None:
            self.partition = self.partition.without(member_id)
        return member

    def next_slot(self) -> int:
        """Slot for the next member: one past the highest slot ever in use."""
        return max((m.slot for m in self.members.values()), default=0) + 1

    def data_members(self) -> list[Member]:
        return [m for m in self.members.values() if m.role == MemberRole.DATA_NODE]

    def witness_members(self) -> list[Member]:
        return [m for m in self.members.values() if m.role == MemberRole.WITNESS]

    def total_count(self) -> int:
        return len(self.members)

    def reachable_ids(self) -> frozenset[str] | None:
        """Members reachable from the writable side; None if not partitioned."""
        return reachable_member_ids(self.partition, list(self.members.values()))

    def up_count(self) -> int:
        """Up members that count toward quorum right now."""
        return count_up(self.members.values(), self.reachable_ids())

    def quorum_threshold(self) -> int:
        return quorum(self.total_count())

    def has_quorum(self) -> bool:
        return has_quorum(self.up_count(), self.total_count())

    @property
    def health(self) -> ClusterHealth:
        """Health verdict, recomputed on every access."""
        return cluster_health(list(self.members.values()), self.reachable_ids())

    def replication_status(self) -> ReplicationStatus:
        return replication_status(self.members.values(), self.replication_factor)

    def is_partitioned(self) -> bool:
        return self.partition is not None

    def violations(self) -> list[str]:
        """Invariant violations, reported rather than raised.

        Returns:
            Human-readable descriptions; empty when all invariants hold.
        """
        problems = []
        data_count = len(self.data_members())
        if self.replication_factor > data_count:
            problems.append(
                f"replication factor {self.replication_factor} exceeds "
                f"{data_count} data members"
            )
        for m in self.witness_members():
            if m.data_size_mb > 0:
                problems.append(f"witness {m.member_id} reports {m.data_size_mb} MB of data")
        # The witness policy only runs at creation time.
        if self.witness and self.total_count() % 2 == 0:
            problems.append(
                f"membership is even ({self.total_count()}) despite a witness; "
                "a 50/50 split can lose quorum"
            )
        return problems

    def to_dict(self) -> dict[str, Any]:
        """Serialize every stored field.

        ``health`` is written for readers of the raw record but is ignored
        by ``from_dict``; it is always recomputed.
        """
        return {
            "cluster_id": self.cluster_id,
            "name": self.name,
            "cluster_type": self.cluster_type,
            "replication_factor": self.replication_factor,
            "created_at": self.created_at.isoformat(),
            "witness": self.witness,
            "health": self.health.value,
            "members": [m.to_dict() for m in self.members.values()],
            "leader_id": self.leader_id,
            "partition": self.partition.to_list() if self.partition is not None else None,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cluster":
        members = [Member.from_dict(m) for m in data["members"]]
        partition = data.get("partition")
        return cls(
            cluster_id=data["cluster_id"],
            name=data["name"],
            cluster_type=data["cluster_type"],
            replication_factor=int(data["replication_factor"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            witness=bool(data["witness"]),
            members={m.member_id: m for m in members},
            leader_id=data.get("leader_id"),
            partition=PartitionEvent.from_list(partition) if partition is not None else None,
            version=int(data["version"]),
        )

    def __repr__(self) -> str:
        partition_info = f", {self.partition!r}" if self.partition is not None else ""
        return (
            f"Cluster({self.cluster_id}, {self.name!r}, "
            f"{self.up_count()}/{self.total_count()} up, {self.health.value}, "
            f"leader={self.leader_id}{partition_info})"
        )
