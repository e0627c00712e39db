"""
Read-only views of a cluster.

``ClusterSnapshot`` is what the coordinator hands to the outside world:
CLI commands, report writers and dashboards render it and never touch the
stored record directly.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .cluster import Cluster
from .health import CapacitySummary, ClusterHealth, ReplicationStatus, capacity_summary
from .member import Member, MemberRole, MemberState
from .partition import PartitionGroup, classify_partition


class AccessMode(Enum):
    """What a member may serve right now."""

    READ_WRITE = "read-write"
    READ_ONLY = "read-only"  # Minority side, or the cluster lacks quorum
    UNAVAILABLE = "unavailable"  # Not up


@dataclass(frozen=True)
class MemberView:
    """Derived view of one member."""

    member_id: str
    slot: int
    role: MemberRole
    state: MemberState
    address: str
    load_percent: float
    data_size_mb: float
    capacity_mb: float
    replica_synced: bool
    is_leader: bool
    access: AccessMode

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "slot": self.slot,
            "role": self.role.value,
            "state": self.state.value,
            "address": self.address,
            "load_percent": self.load_percent,
            "data_size_mb": self.data_size_mb,
            "capacity_mb": self.capacity_mb,
            "replica_synced": self.replica_synced,
            "is_leader": self.is_leader,
            "access": self.access.value,
        }


@dataclass(frozen=True)
class ClusterSnapshot:
    """Point-in-time derived view of a cluster.

    Attributes:
        cluster_id: Cluster identifier.
        name: Display name.
        cluster_type: Opaque type tag.
        replication_factor: Expected number of data copies.
        created_at: Creation time.
        witness: Whether a witness was added at creation.
        health: Health verdict.
        leader_id: Current leader, or None.
        has_quorum: Whether reachable up members form a quorum.
        quorum_threshold: Members needed for quorum.
        up_count: Reachable up members.
        total_count: All configured members.
        replication_status: In-sync replicas against the replication factor.
        capacity: Storage and load rollup of data members.
        members: Per-member views, in slot order.
        partition: Classified partition groups, or None.
        violations: Invariant violations currently reported.
        version: Stored record version this view was built from.
    """

    cluster_id: str
    name: str
    cluster_type: str
    replication_factor: int
    created_at: datetime
    witness: bool
    health: ClusterHealth
    leader_id: str | None
    has_quorum: bool
    quorum_threshold: int
    up_count: int
    total_count: int
    replication_status: ReplicationStatus
    capacity: CapacitySummary
    members: tuple[MemberView, ...]
    partition: tuple[PartitionGroup, ...] | None
    violations: tuple[str, ...]
    version: int

    def member(self, member_id: str) -> MemberView | None:
        for view in self.members:
            if view.member_id == member_id:
                return view
        return None

    def witness_ids(self) -> list[str]:
        return [v.member_id for v in self.members if v.role == MemberRole.WITNESS]

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready mapping for external renderers."""
        partition = None
        if self.partition is not None:
            partition = [
                {
                    "members": sorted(g.member_ids),
                    "up_count": g.up_count,
                    "role": g.role.value,
                }
                for g in self.partition
            ]
        return {
            "cluster_id": self.cluster_id,
            "name": self.name,
            "cluster_type": self.cluster_type,
            "replication_factor": self.replication_factor,
            "created_at": self.created_at.isoformat(),
            "witness": self.witness,
            "health": self.health.value,
            "leader_id": self.leader_id,
            "has_quorum": self.has_quorum,
            "quorum_threshold": self.quorum_threshold,
            "up_count": self.up_count,
            "total_count": self.total_count,
            "replication_status": self.replication_status.value,
            "capacity": self.capacity.to_dict(),
            "members": [v.to_dict() for v in self.members],
            "partition": partition,
            "violations": list(self.violations),
            "version": self.version,
        }


def _access_mode(member: Member, reachable: frozenset[str] | None, cluster_has_quorum: bool) -> AccessMode:
    if not member.is_up:
        return AccessMode.UNAVAILABLE
    if reachable is not None and member.member_id not in reachable:
        return AccessMode.READ_ONLY
    return AccessMode.READ_WRITE if cluster_has_quorum else AccessMode.READ_ONLY


def build_snapshot(cluster: Cluster) -> ClusterSnapshot:
    """Derive the snapshot of a cluster record."""
    members = list(cluster.members.values())
    reachable = cluster.reachable_ids()
    quorate = cluster.has_quorum()

    views = tuple(
        MemberView(
            member_id=m.member_id,
            slot=m.slot,
            role=m.role,
            state=m.state,
            address=m.address,
            load_percent=m.load_percent,
            data_size_mb=m.data_size_mb,
            capacity_mb=m.capacity_mb,
            replica_synced=m.replica_synced,
            is_leader=m.member_id == cluster.leader_id,
            access=_access_mode(m, reachable, quorate),
        )
        for m in members
    )
    partition = None
    if cluster.partition is not None:
        partition = tuple(classify_partition(cluster.partition, members))

    return ClusterSnapshot(
        cluster_id=cluster.cluster_id,
        name=cluster.name,
        cluster_type=cluster.cluster_type,
        replication_factor=cluster.replication_factor,
        created_at=cluster.created_at,
        witness=cluster.witness,
        health=cluster.health,
        leader_id=cluster.leader_id,
        has_quorum=quorate,
        quorum_threshold=cluster.quorum_threshold(),
        up_count=cluster.up_count(),
        total_count=cluster.total_count(),
        replication_status=cluster.replication_status(),
        capacity=capacity_summary(members),
        members=views,
        partition=partition,
        violations=tuple(cluster.violations()),
        version=cluster.version,
    )
