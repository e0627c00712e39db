"""
Error taxonomy for the coordination engine.

Losing quorum is not an error: it shows up as an unhealthy verdict in the
cluster snapshot and as a ``QUORUM_LOST`` event.
"""


class CoordinationError(Exception):
    """Base class for all errors raised by the engine."""


class ValidationError(CoordinationError, ValueError):
    """Caller supplied input of the wrong shape or range. Never retried."""


class NotFoundError(CoordinationError, KeyError):
    """Unknown cluster or member identifier."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class ConcurrentModificationError(CoordinationError):
    """The stored record changed between read and write.

    Safe to retry the whole operation immediately.

    Attributes:
        cluster_id: Cluster whose write was rejected.
        expected_version: Version the writer read.
        actual_version: Version currently in the store.
    """

    def __init__(self, cluster_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Cluster {cluster_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.cluster_id = cluster_id
        self.expected_version = expected_version
        self.actual_version = actual_version
