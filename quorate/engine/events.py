"""
Event reporting for the coordination engine.

The coordinator emits one event per observable change to an ``EventSink``.
Sinks are the reporting collaborator: they render, forward or record events
but never feed anything back into the engine.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of events the coordinator reports."""

    # Cluster events
    CLUSTER_CREATED = "cluster_created"

    # Member events
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    MEMBER_DOWN = "member_down"  # Failure injected or observed
    MEMBER_UP = "member_up"  # Recovery
    MEMBER_FACTS_UPDATED = "member_facts_updated"

    # Coordination events
    LEADER_CHANGED = "leader_changed"
    QUORUM_LOST = "quorum_lost"
    QUORUM_RESTORED = "quorum_restored"

    # Network events
    PARTITION_STARTED = "partition_started"
    PARTITION_HEALED = "partition_healed"


@dataclass
class Event:
    """Something that happened to a cluster.

    Attributes:
        time: When the coordinator recorded the event.
        event_type: Type of event.
        cluster_id: Cluster the event belongs to.
        target_id: Member the event concerns, or the cluster ID for
            cluster-wide events.
        metadata: Additional event-specific data.

    Metadata conventions:
        - LEADER_CHANGED: {"previous": str | None, "leader": str | None}
        - QUORUM_LOST / QUORUM_RESTORED: {"up": int, "total": int, "threshold": int}
        - PARTITION_STARTED: {"groups": list[list[str]], "roles": list[str]}
        - MEMBER_FACTS_UPDATED: the changed facts
    """

    time: datetime
    event_type: EventType
    cluster_id: str
    target_id: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "event_type": self.event_type.value,
            "cluster_id": self.cluster_id,
            "target_id": self.target_id,
            "metadata": dict(self.metadata),
        }

    def __repr__(self) -> str:
        return f"Event({self.event_type.value}, {self.cluster_id}, {self.target_id})"


class EventSink(ABC):
    """Receives events emitted by the coordinator."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        """Handle one event. Must not call back into the coordinator."""


class LoggingEventSink(EventSink):
    """Writes every event to the ``quorate.engine.events`` logger.

    Quorum loss is logged as a warning; everything else at INFO.
    """

    def emit(self, event: Event) -> None:
        level = logging.WARNING if event.event_type == EventType.QUORUM_LOST else logging.INFO
        details = ", ".join(f"{k}={v}" for k, v in event.metadata.items())
        logger.log(
            level,
            "[%s] %s %s%s",
            event.cluster_id,
            event.event_type.value,
            event.target_id,
            f" ({details})" if details else "",
        )


class RecordingEventSink(EventSink):
    """Keeps events in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()
