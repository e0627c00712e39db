"""
Cluster coordinator: the single entry point external tooling calls.

Every operation is a read-modify-write transaction against the store:
load the record under the cluster's lock, apply the change, re-run
election and health, save with the version that was loaded, then report
events. Operations on different clusters only contend on the store.
"""

import logging
import math
import re
import secrets
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .config import EngineConfig
from .cluster import Cluster
from .election import elect_leader
from .errors import ValidationError
from .events import Event, EventSink, EventType, LoggingEventSink
from .member import Member, MemberState, member_id_for_slot
from .partition import (
    DryRunEnforcer,
    PartitionEnforcer,
    PartitionEvent,
    classify_partition,
    isolation_partition,
    make_partition,
)
from .quorum import WitnessPolicy
from .snapshot import ClusterSnapshot, build_snapshot
from .store import ClusterStore

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class _Transaction:
    """Working state of one read-modify-write on a cluster."""

    cluster: Cluster
    expected_version: int
    previous_leader: str | None
    had_quorum: bool
    events: list[Event] = field(default_factory=list)
    enforcement: list[Callable[[], None]] = field(default_factory=list)
    changed: bool = False


class ClusterCoordinator:
    """Coordinates membership, quorum, leadership and partitions of clusters.

    Args:
        store: Persistence collaborator holding cluster records.
        config: Engine settings. Defaults to ``EngineConfig()``.
        sink: Reporting collaborator for events. Defaults to logging them.
        enforcer: Applies partitions to the network. Defaults to a dry run.
        clock: Returns the current UTC time.
        id_factory: Returns a new cluster ID. Defaults to
            ``<prefix>-<unix seconds>-<6 hex chars>``.
    """

    def __init__(
        self,
        store: ClusterStore,
        config: EngineConfig | None = None,
        sink: EventSink | None = None,
        enforcer: PartitionEnforcer | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.store = store
        self.config = config or EngineConfig()
        self.sink = sink or LoggingEventSink()
        self.enforcer = enforcer or DryRunEnforcer()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory or self._new_cluster_id

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Cluster operations
    # ------------------------------------------------------------------

    def create_cluster(
        self,
        name: str,
        data_member_count: int,
        replication_factor: int | None = None,
        force_quorum: bool = False,
        cluster_type: str | None = None,
    ) -> ClusterSnapshot:
        """Provision a new cluster with every member up.

        Args:
            name: Display name; letters, digits, ``-`` and ``_`` only.
            data_member_count: Number of data members (at least 1).
            replication_factor: Expected data copies. None uses the
                configured default, capped at ``data_member_count``.
            force_quorum: Add a witness when ``data_member_count`` is even.
            cluster_type: Opaque type tag. None uses the configured default.

        Returns:
            Snapshot of the new cluster.

        Raises:
            ValidationError: On a bad name, count or replication factor, or
                when the membership would exceed the configured maximum.
        """
        if not isinstance(name, str) or not _NAME_RE.match(name):
            raise ValidationError(f"Invalid cluster name: {name!r}")
        if not _is_int(data_member_count) or data_member_count < 1:
            raise ValidationError(f"A cluster needs at least one data member, got {data_member_count!r}")
        if replication_factor is None:
            replication_factor = min(self.config.default_replication_factor, data_member_count)
        if not _is_int(replication_factor) or not 1 <= replication_factor <= data_member_count:
            raise ValidationError(
                f"Replication factor must be between 1 and {data_member_count}, got {replication_factor}"
            )

        policy = WitnessPolicy(force_quorum=force_quorum)
        roles = policy.member_roles(data_member_count)
        if len(roles) > self.config.max_members_per_cluster:
            raise ValidationError(
                f"Cluster would have {len(roles)} members; "
                f"the maximum is {self.config.max_members_per_cluster}"
            )

        cluster_id = self._id_factory()
        cluster = Cluster(
            cluster_id=cluster_id,
            name=name,
            cluster_type=cluster_type or self.config.default_cluster_type,
            replication_factor=replication_factor,
            created_at=self._clock(),
            witness=policy.requires_witness(data_member_count),
        )
        for slot, role in enumerate(roles, start=1):
            cluster.add_member(Member(member_id_for_slot(slot), slot, self._address(slot), role=role))

        with self._register_lock(cluster_id):
            events = [
                self._event(
                    EventType.CLUSTER_CREATED,
                    cluster,
                    cluster_id,
                    name=name,
                    members=cluster.total_count(),
                    witness=cluster.witness,
                    replication_factor=replication_factor,
                )
            ]
            events.extend(self._reconcile(cluster, previous_leader=None, had_quorum=True))
            self.store.save(cluster, expected_version=0)

        logger.info(
            "Created cluster %s (%s): %d data members%s, leader %s",
            cluster_id,
            name,
            data_member_count,
            " + witness" if cluster.witness else "",
            cluster.leader_id,
        )
        self._emit(events)
        return build_snapshot(cluster)

    def status(self, cluster_id: str) -> ClusterSnapshot:
        """Derived view of a cluster. Never modifies it."""
        return build_snapshot(self.store.load(cluster_id))

    def list_clusters(self) -> list[ClusterSnapshot]:
        return [self.status(cluster_id) for cluster_id in self.store.list_ids()]

    # ------------------------------------------------------------------
    # Member operations
    # ------------------------------------------------------------------

    def add_member(self, cluster_id: str) -> Member:
        """Add one up data member at the next free slot.

        Raises:
            NotFoundError: If the cluster does not exist.
            ValidationError: If the cluster is already at the configured maximum.
        """
        with self._transaction(cluster_id) as tx:
            cluster = tx.cluster
            if cluster.total_count() >= self.config.max_members_per_cluster:
                raise ValidationError(
                    f"Cluster {cluster_id} already has the maximum of "
                    f"{self.config.max_members_per_cluster} members"
                )
            slot = cluster.next_slot()
            member = Member(member_id_for_slot(slot), slot, self._address(slot))
            cluster.add_member(member)
            tx.changed = True
            tx.events.append(
                self._event(EventType.MEMBER_ADDED, cluster, member.member_id, slot=slot, address=member.address)
            )
        return member

    def mark_member_down(self, cluster_id: str, member_id: str) -> ClusterSnapshot:
        """Record that a member failed or was stopped."""
        return self._set_state(cluster_id, member_id, MemberState.DOWN, EventType.MEMBER_DOWN)

    def mark_member_up(self, cluster_id: str, member_id: str) -> ClusterSnapshot:
        """Record that a member recovered."""
        return self._set_state(cluster_id, member_id, MemberState.UP, EventType.MEMBER_UP)

    def remove_member(self, cluster_id: str, member_id: str) -> ClusterSnapshot:
        """Take an up member through stopping to removed and delete it.

        Raises:
            NotFoundError: If the cluster or member does not exist.
            ValidationError: If the member is not up.
        """
        with self._transaction(cluster_id) as tx:
            cluster = tx.cluster
            member = cluster.get_member(member_id)
            if not member.is_up:
                raise ValidationError(f"Member {member_id} is {member.state.value}; only up members can be removed")
            member.transition_to(MemberState.STOPPING)
            member.transition_to(MemberState.REMOVED)

            before, addresses = cluster.partition, self._addresses(cluster)
            cluster.remove_member(member_id)
            tx.changed = True
            tx.events.append(
                self._event(EventType.MEMBER_REMOVED, cluster, member_id, role=member.role.value)
            )

            # The stored partition shrank or dissolved; swap the enforced rules to match.
            if before is not None and cluster.partition != before:
                self._defer(tx, self.enforcer.heal, before, addresses)
                if cluster.partition is None:
                    tx.events.append(
                        self._event(EventType.PARTITION_HEALED, cluster, cluster_id, groups=before.to_list())
                    )
                    logger.info("Partition of cluster %s dissolved by removing %s", cluster_id, member_id)
                else:
                    self._defer(tx, self.enforcer.apply, cluster.partition, self._addresses(cluster))
        return build_snapshot(tx.cluster)

    def update_member_facts(
        self,
        cluster_id: str,
        member_id: str,
        *,
        load_percent: float | None = None,
        data_size_mb: float | None = None,
        capacity_mb: float | None = None,
        replica_synced: bool | None = None,
    ) -> ClusterSnapshot:
        """Store externally observed facts about a member.

        Only the facts passed are changed.

        Raises:
            NotFoundError: If the cluster or member does not exist.
            ValidationError: On negative or non-finite figures, a load above
                100 percent, or data figures reported for a witness.
        """
        numeric = {
            "load_percent": load_percent,
            "data_size_mb": data_size_mb,
            "capacity_mb": capacity_mb,
        }
        facts: dict[str, Any] = {k: float(v) for k, v in numeric.items() if v is not None}
        for key, value in facts.items():
            if not math.isfinite(value):
                raise ValidationError(f"{key} must be a finite number, got {value}")
            if value < 0:
                raise ValidationError(f"{key} must not be negative, got {value}")
        if facts.get("load_percent", 0.0) > 100:
            raise ValidationError(f"load_percent must be at most 100, got {facts['load_percent']}")
        if replica_synced is not None:
            facts["replica_synced"] = bool(replica_synced)

        with self._transaction(cluster_id) as tx:
            member = tx.cluster.get_member(member_id)
            if member.is_witness:
                data_facts = [k for k in ("data_size_mb", "capacity_mb") if facts.get(k, 0.0) > 0]
                if data_facts:
                    raise ValidationError(f"Witness {member_id} holds no data; cannot set {', '.join(data_facts)}")
            changes = {k: v for k, v in facts.items() if getattr(member, k) != v}
            for key, value in changes.items():
                setattr(member, key, value)
            if changes:
                tx.changed = True
                tx.events.append(self._event(EventType.MEMBER_FACTS_UPDATED, tx.cluster, member_id, **changes))
        return build_snapshot(tx.cluster)

    # ------------------------------------------------------------------
    # Partition operations
    # ------------------------------------------------------------------

    def partition(self, cluster_id: str, groups: Sequence[Iterable[str]]) -> ClusterSnapshot:
        """Split a cluster into disjoint groups that cannot reach each other.

        Members left out of every group are unreachable until the heal.

        Raises:
            NotFoundError: If the cluster does not exist.
            ValidationError: On fewer than two groups, an empty or
                overlapping group, an unknown member, or when the cluster is
                already partitioned.
        """
        with self._transaction(cluster_id) as tx:
            self._check_not_partitioned(tx.cluster)
            self._start_partition(tx, make_partition(groups, tx.cluster.members.keys()))
        return build_snapshot(tx.cluster)

    def isolate_member(self, cluster_id: str, member_id: str) -> ClusterSnapshot:
        """Cut one up member off from every other up member.

        Raises:
            NotFoundError: If the cluster or member does not exist.
            ValidationError: If the member is not up, is the only up member,
                or the cluster is already partitioned.
        """
        with self._transaction(cluster_id) as tx:
            tx.cluster.get_member(member_id)
            self._check_not_partitioned(tx.cluster)
            self._start_partition(tx, isolation_partition(member_id, tx.cluster.members.values()))
        return build_snapshot(tx.cluster)

    def heal(self, cluster_id: str) -> ClusterSnapshot:
        """Dissolve the active partition. A no-op when there is none."""
        with self._transaction(cluster_id) as tx:
            cluster = tx.cluster
            event = cluster.partition
            if event is not None:
                self._defer(tx, self.enforcer.heal, event, self._addresses(cluster))
                cluster.partition = None
                tx.changed = True
                tx.events.append(
                    self._event(EventType.PARTITION_HEALED, cluster, cluster_id, groups=event.to_list())
                )
                logger.info("Healed partition of cluster %s", cluster_id)
        return build_snapshot(tx.cluster)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_state(
        self,
        cluster_id: str,
        member_id: str,
        target: MemberState,
        event_type: EventType,
    ) -> ClusterSnapshot:
        with self._transaction(cluster_id) as tx:
            member = tx.cluster.get_member(member_id)
            if member.transition_to(target):
                tx.changed = True
                tx.events.append(self._event(event_type, tx.cluster, member_id))
        return build_snapshot(tx.cluster)

    def _check_not_partitioned(self, cluster: Cluster) -> None:
        if cluster.partition is not None:
            raise ValidationError(f"Cluster {cluster.cluster_id} is already partitioned; heal it first")

    def _start_partition(self, tx: _Transaction, event: PartitionEvent) -> None:
        cluster = tx.cluster
        cluster.partition = event
        self._defer(tx, self.enforcer.apply, event, self._addresses(cluster))
        groups = classify_partition(event, list(cluster.members.values()))
        tx.changed = True
        tx.events.append(
            self._event(
                EventType.PARTITION_STARTED,
                cluster,
                cluster.cluster_id,
                groups=event.to_list(),
                roles=[g.role.value for g in groups],
            )
        )
        logger.info("Partitioned cluster %s: %r", cluster.cluster_id, event)

    @contextmanager
    def _transaction(self, cluster_id: str) -> Iterator[_Transaction]:
        """Load, mutate and save a cluster under its lock.

        Nothing is saved, enforced or emitted if the body or the save raises.
        Partition enforcement runs under the lock once the save succeeded;
        events are emitted after the lock is released.
        """
        with self._cluster_lock(cluster_id):
            cluster = self.store.load(cluster_id)
            tx = _Transaction(
                cluster=cluster,
                expected_version=cluster.version,
                previous_leader=cluster.leader_id,
                had_quorum=cluster.has_quorum(),
            )
            yield tx
            tx.events.extend(self._reconcile(cluster, tx.previous_leader, tx.had_quorum))
            if tx.changed or tx.events:
                self.store.save(cluster, tx.expected_version)
            for action in tx.enforcement:
                action()
        self._emit(tx.events)

    def _defer(
        self,
        tx: _Transaction,
        action: Callable[[str, PartitionEvent, dict[str, str]], None],
        event: PartitionEvent,
        addresses: dict[str, str],
    ) -> None:
        tx.enforcement.append(lambda: action(tx.cluster.cluster_id, event, addresses))

    def _reconcile(self, cluster: Cluster, previous_leader: str | None, had_quorum: bool) -> list[Event]:
        """Re-run election and report leadership and quorum transitions."""
        events = []
        cluster.leader_id = elect_leader(
            cluster.members.values(),
            cluster.reachable_ids(),
            witness_electable=self.config.witness_electable,
        )
        if cluster.leader_id != previous_leader:
            events.append(
                self._event(
                    EventType.LEADER_CHANGED,
                    cluster,
                    cluster.leader_id or cluster.cluster_id,
                    previous=previous_leader,
                    leader=cluster.leader_id,
                )
            )

        quorate = cluster.has_quorum()
        if had_quorum != quorate:
            event_type = EventType.QUORUM_RESTORED if quorate else EventType.QUORUM_LOST
            events.append(
                self._event(
                    event_type,
                    cluster,
                    cluster.cluster_id,
                    up=cluster.up_count(),
                    total=cluster.total_count(),
                    threshold=cluster.quorum_threshold(),
                )
            )
        return events

    def _cluster_lock(self, cluster_id: str) -> threading.Lock:
        """Lock of an existing cluster.

        Raises:
            NotFoundError: If the store has no such cluster; no lock is kept.
        """
        with self._locks_guard:
            lock = self._locks.get(cluster_id)
        if lock is None:
            self.store.load(cluster_id)
            lock = self._register_lock(cluster_id)
        return lock

    def _register_lock(self, cluster_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(cluster_id, threading.Lock())

    def _event(self, event_type: EventType, cluster: Cluster, target_id: str, **metadata: Any) -> Event:
        return Event(self._clock(), event_type, cluster.cluster_id, target_id, metadata)

    def _emit(self, events: list[Event]) -> None:
        for event in events:
            self.sink.emit(event)

    def _address(self, slot: int) -> str:
        host = f"{self.config.address_prefix}{self.config.host_base + slot}"
        return f"{host}:{self.config.base_port + slot}"

    def _addresses(self, cluster: Cluster) -> dict[str, str]:
        return {m.member_id: m.address for m in cluster.members.values()}

    def _new_cluster_id(self) -> str:
        timestamp = int(self._clock().timestamp())
        return f"{self.config.cluster_id_prefix}-{timestamp}-{secrets.token_hex(3)}"
