"""
Health aggregation for the coordination engine.

Turns per-member lifecycle states into a cluster verdict, and rolls the
externally reported facts up into replication and capacity summaries.
Nothing here is stored: every verdict is recomputed from members on read.
"""

from collections.abc import Collection, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np

from .member import Member
from .quorum import has_quorum


class ClusterHealth(Enum):
    """Cluster health verdict."""

    HEALTHY = "healthy"  # Every member up
    DEGRADED = "degraded"  # Quorum holds but redundancy is lost
    UNHEALTHY = "unhealthy"  # No quorum; writes must be refused


class ReplicationStatus(Enum):
    """Whether enough in-sync data replicas are up for the replication factor."""

    SYNCHRONIZED = "synchronized"
    UNDER_REPLICATED = "under-replicated"


def health_from_counts(up_count: int, total: int) -> ClusterHealth:
    """Classify health from raw counts.

    Args:
        up_count: Members counted as up.
        total: All configured members, witnesses included.

    Returns:
        HEALTHY when everything is up, DEGRADED when a quorum is still up,
        otherwise UNHEALTHY. An empty cluster is UNHEALTHY.
    """
    if total > 0 and up_count == total:
        return ClusterHealth.HEALTHY
    if has_quorum(up_count, total):
        return ClusterHealth.DEGRADED
    return ClusterHealth.UNHEALTHY


def count_up(members: Iterable[Member], reachable_ids: Collection[str] | None = None) -> int:
    """Count up members, optionally restricted to those reachable.

    Args:
        members: Members to inspect.
        reachable_ids: When given, up members outside this set are not counted
            (used while a partition is active).
    """
    return sum(
        1
        for m in members
        if m.is_up and (reachable_ids is None or m.member_id in reachable_ids)
    )


def cluster_health(
    members: Collection[Member],
    reachable_ids: Collection[str] | None = None,
) -> ClusterHealth:
    """Compute the health verdict for a membership set.

    Witness members count toward both the up count and the total.
    """
    return health_from_counts(count_up(members, reachable_ids), len(members))


def replication_status(members: Iterable[Member], replication_factor: int) -> ReplicationStatus:
    """Compare in-sync, up data replicas against the replication factor."""
    in_sync = sum(1 for m in members if not m.is_witness and m.is_up and m.replica_synced)
    if in_sync >= replication_factor:
        return ReplicationStatus.SYNCHRONIZED
    return ReplicationStatus.UNDER_REPLICATED


@dataclass(frozen=True)
class CapacitySummary:
    """Storage and load rollup across data members.

    Witnesses are excluded: they hold no data and report no load.

    Attributes:
        total_capacity_mb: Sum of reported capacity.
        total_used_mb: Sum of reported data size.
        utilization: ``total_used_mb / total_capacity_mb``, 0 with no capacity.
        mean_load_percent: Mean load over up data members.
        max_load_percent: Highest load over up data members.
        busiest_member_id: Up data member with the highest load, if any.
    """

    total_capacity_mb: float = 0.0
    total_used_mb: float = 0.0
    utilization: float = 0.0
    mean_load_percent: float = 0.0
    max_load_percent: float = 0.0
    busiest_member_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_capacity_mb": self.total_capacity_mb,
            "total_used_mb": self.total_used_mb,
            "utilization": self.utilization,
            "mean_load_percent": self.mean_load_percent,
            "max_load_percent": self.max_load_percent,
            "busiest_member_id": self.busiest_member_id,
        }


def capacity_summary(members: Iterable[Member]) -> CapacitySummary:
    """Roll up capacity and load facts of the data members."""
    data_members = [m for m in members if not m.is_witness]
    if not data_members:
        return CapacitySummary()

    capacity = np.array([m.capacity_mb for m in data_members], dtype=float)
    used = np.array([m.data_size_mb for m in data_members], dtype=float)
    total_capacity = float(capacity.sum())
    total_used = float(used.sum())
    utilization = total_used / total_capacity if total_capacity > 0 else 0.0

    up_members = [m for m in data_members if m.is_up]
    if not up_members:
        return CapacitySummary(total_capacity, total_used, utilization)

    loads = np.array([m.load_percent for m in up_members], dtype=float)
    busiest = int(np.argmax(loads))
    return CapacitySummary(
        total_capacity_mb=total_capacity,
        total_used_mb=total_used,
        utilization=utilization,
        mean_load_percent=float(loads.mean()),
        max_load_percent=float(loads[busiest]),
        busiest_member_id=up_members[busiest].member_id,
    )
