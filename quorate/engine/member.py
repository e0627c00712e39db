"""
Member model for the coordination engine.

Defines the member record (data node or witness), the facts supplied about
it from outside, and the lifecycle state machine that external events drive.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ValidationError


class MemberRole(Enum):
    """Role a member plays in the cluster."""

    DATA_NODE = "data-node"  # Stores data, counts toward replication
    WITNESS = "witness"  # Votes toward quorum only, never holds data


class MemberState(Enum):
    """Lifecycle states of a member.

    REMOVED is terminal and never stored: reaching it deletes the member
    record from its cluster.
    """

    STARTING = "starting"
    UP = "up"
    DOWN = "down"
    STOPPING = "stopping"
    REMOVED = "removed"


# Externally triggered transitions. Anything else is rejected.
ALLOWED_TRANSITIONS: dict[MemberState, frozenset[MemberState]] = {
    MemberState.STARTING: frozenset({MemberState.UP}),
    MemberState.UP: frozenset({MemberState.DOWN, MemberState.STOPPING}),
    MemberState.DOWN: frozenset({MemberState.UP}),
    MemberState.STOPPING: frozenset({MemberState.REMOVED}),
    MemberState.REMOVED: frozenset(),
}


def can_transition(current: MemberState, target: MemberState) -> bool:
    """Check whether a lifecycle transition is permitted.

    Staying in the same state always counts as permitted (a no-op).
    """
    return current == target or target in ALLOWED_TRANSITIONS[current]


def member_id_for_slot(slot: int) -> str:
    """Member identifier for a sequential membership slot."""
    return f"node-{slot}"


@dataclass
class Member:
    """A single cluster member.

    Load and capacity figures are facts reported by whoever observes the
    real node; the engine stores them but never measures or invents them.

    Attributes:
        member_id: Identifier, unique within the cluster.
        slot: Sequential membership slot the identifier was derived from.
        address: Opaque ``host:port`` string.
        role: Data node or witness.
        state: Current lifecycle state.
        load_percent: Reported load, 0-100.
        data_size_mb: Reported data held by this member.
        capacity_mb: Reported storage capacity of this member.
        replica_synced: Whether the member's replica is reported in sync.
    """

    member_id: str
    slot: int
    address: str
    role: MemberRole = MemberRole.DATA_NODE
    state: MemberState = MemberState.UP
    load_percent: float = 0.0
    data_size_mb: float = 0.0
    capacity_mb: float = 0.0
    replica_synced: bool = True

    @property
    def is_witness(self) -> bool:
        return self.role == MemberRole.WITNESS

    @property
    def is_up(self) -> bool:
        return self.state == MemberState.UP

    def transition_to(self, target: MemberState) -> bool:
        """Apply a lifecycle transition.

        Args:
            target: State to move to.

        Returns:
            True if the state changed, False if the member was already there.

        Raises:
            ValidationError: If the transition is not part of the lifecycle.
        """
        if not can_transition(self.state, target):
            raise ValidationError(
                f"Member {self.member_id} cannot go from {self.state.value} to {target.value}"
            )
        if self.state == target:
            return False
        self.state = target
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "slot": self.slot,
            "address": self.address,
            "role": self.role.value,
            "state": self.state.value,
            "load_percent": self.load_percent,
            "data_size_mb": self.data_size_mb,
            "capacity_mb": self.capacity_mb,
            "replica_synced": self.replica_synced,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Member":
        return cls(
            member_id=data["member_id"],
            slot=int(data["slot"]),
            address=data["address"],
            role=MemberRole(data["role"]),
            state=MemberState(data["state"]),
            load_percent=float(data["load_percent"]),
            data_size_mb=float(data["data_size_mb"]),
            capacity_mb=float(data["capacity_mb"]),
            replica_synced=bool(data["replica_synced"]),
        )

    def __repr__(self) -> str:
        role = ", witness" if self.is_witness else ""
        return f"Member({self.member_id}, {self.state.value}{role}, {self.address})"
