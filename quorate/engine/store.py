"""
Persistence collaborators for cluster records.

A store is the source of truth for cluster state between calls. It hands
out fresh copies on ``load`` and accepts a ``save`` only when the caller
read the version currently stored, so a lost update surfaces as
``ConcurrentModificationError`` instead of a corrupted membership set.
"""

import copy
import json
import logging
import os
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from .cluster import Cluster
from .errors import ConcurrentModificationError, NotFoundError

logger = logging.getLogger(__name__)

_CLUSTER_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class ClusterStore(ABC):
    """Narrow load/save interface the coordinator depends on."""

    @abstractmethod
    def load(self, cluster_id: str) -> Cluster:
        """Load a fresh, independent copy of a cluster record.

        Raises:
            NotFoundError: If no such cluster is stored.
        """

    @abstractmethod
    def save(self, cluster: Cluster, expected_version: int) -> int:
        """Write a cluster record if the stored version still matches.

        Args:
            cluster: Record to write. Its ``version`` is updated in place.
            expected_version: Version the caller loaded; 0 for a new cluster.

        Returns:
            The new stored version.

        Raises:
            ConcurrentModificationError: If the stored version differs.
        """

    @abstractmethod
    def list_ids(self) -> list[str]:
        """IDs of every stored cluster, sorted."""


class InMemoryClusterStore(ClusterStore):
    """Keeps serialized records in a dict.

    Records go through ``to_dict``/``from_dict`` on every save and load, so
    callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, cluster_id: str) -> Cluster:
        with self._lock:
            record = self._records.get(cluster_id)
            if record is None:
                raise NotFoundError(f"Cluster not found: {cluster_id}")
            return Cluster.from_dict(copy.deepcopy(record))

    def save(self, cluster: Cluster, expected_version: int) -> int:
        with self._lock:
            current = self._records.get(cluster.cluster_id)
            actual_version = current["version"] if current is not None else 0
            if actual_version != expected_version:
                raise ConcurrentModificationError(cluster.cluster_id, expected_version, actual_version)
            record = cluster.to_dict()
            record["version"] = expected_version + 1
            self._records[cluster.cluster_id] = record
            cluster.version = record["version"]
            return cluster.version

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._records)


class JsonFileClusterStore(ClusterStore):
    """One ``<cluster_id>.json`` file per cluster under a directory.

    Writes go to a temporary file that then replaces the record, so readers
    never see a half-written file. The version check is serialized within
    this process only; separate processes sharing a directory should each
    be prepared to see ``ConcurrentModificationError`` on save.

    Args:
        directory: Where cluster files live. Created if missing.
    """

    def __init__(self, directory: str | os.PathLike[str]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, cluster_id: str) -> Path:
        if not _CLUSTER_ID_RE.match(cluster_id):
            raise NotFoundError(f"Cluster not found: {cluster_id}")
        return self.directory / f"{cluster_id}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def load(self, cluster_id: str) -> Cluster:
        path = self._path(cluster_id)
        with self._lock:
            record = self._read(path)
        if record is None:
            raise NotFoundError(f"Cluster not found: {cluster_id}")
        return Cluster.from_dict(record)

    def save(self, cluster: Cluster, expected_version: int) -> int:
        path = self._path(cluster.cluster_id)
        with self._lock:
            current = self._read(path)
            actual_version = current["version"] if current is not None else 0
            if actual_version != expected_version:
                raise ConcurrentModificationError(cluster.cluster_id, expected_version, actual_version)

            record = cluster.to_dict()
            record["version"] = expected_version + 1
            tmp_path = path.with_suffix(".json.tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(record, handle, indent=2)
            os.replace(tmp_path, path)
            cluster.version = record["version"]
            logger.debug("Saved cluster %s at version %d to %s", cluster.cluster_id, cluster.version, path)
            return cluster.version

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(p.stem for p in self.directory.glob("*.json"))
