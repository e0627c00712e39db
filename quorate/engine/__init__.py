"""
Cluster coordination engine.

This package tracks cluster membership, computes quorum, elects a leader,
classifies health and models network partitions with majority/minority
semantics. It is a pure decision component: persistence and reporting are
collaborators passed to ``ClusterCoordinator``.
"""

from .errors import (
    CoordinationError,
    ValidationError,
    NotFoundError,
    ConcurrentModificationError,
)
from .config import EngineConfig, load_config
from .member import Member, MemberRole, MemberState, can_transition
from .quorum import quorum, has_quorum, WitnessPolicy
from .health import (
    ClusterHealth,
    ReplicationStatus,
    CapacitySummary,
    cluster_health,
    replication_status,
    capacity_summary,
)
from .election import elect_leader
from .partition import (
    PartitionEvent,
    PartitionGroup,
    PartitionRole,
    PartitionEnforcer,
    DryRunEnforcer,
    make_partition,
    isolation_partition,
    classify_partition,
)
from .cluster import Cluster
from .events import EventType, Event, EventSink, LoggingEventSink, RecordingEventSink
from .snapshot import AccessMode, MemberView, ClusterSnapshot, build_snapshot
from .store import ClusterStore, InMemoryClusterStore, JsonFileClusterStore
from .coordinator import ClusterCoordinator

__all__ = [
    # Errors
    "CoordinationError",
    "ValidationError",
    "NotFoundError",
    "ConcurrentModificationError",
    # Config
    "EngineConfig",
    "load_config",
    # Member
    "Member",
    "MemberRole",
    "MemberState",
    "can_transition",
    # Quorum
    "quorum",
    "has_quorum",
    "WitnessPolicy",
    # Health
    "ClusterHealth",
    "ReplicationStatus",
    "CapacitySummary",
    "cluster_health",
    "replication_status",
    "capacity_summary",
    # Election
    "elect_leader",
    # Partition
    "PartitionEvent",
    "PartitionGroup",
    "PartitionRole",
    "PartitionEnforcer",
    "DryRunEnforcer",
    "make_partition",
    "isolation_partition",
    "classify_partition",
    # Cluster
    "Cluster",
    # Events
    "EventType",
    "Event",
    "EventSink",
    "LoggingEventSink",
    "RecordingEventSink",
    # Snapshot
    "AccessMode",
    "MemberView",
    "ClusterSnapshot",
    "build_snapshot",
    # Store
    "ClusterStore",
    "InMemoryClusterStore",
    "JsonFileClusterStore",
    # Coordinator
    "ClusterCoordinator",
]
