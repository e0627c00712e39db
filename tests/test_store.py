"""
Tests for the cluster stores: lossless round trips and version checks.
"""

import json
from datetime import datetime, timezone

import pytest

from quorate.engine import (
    Cluster,
    ConcurrentModificationError,
    InMemoryClusterStore,
    JsonFileClusterStore,
    Member,
    MemberRole,
    MemberState,
    NotFoundError,
    PartitionEvent,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _cluster(cluster_id: str = "cls-1704067200-abc123") -> Cluster:
    """Cluster exercising every stored field."""
    cluster = Cluster(
        cluster_id=cluster_id,
        name="production-cluster",
        cluster_type="cassandra",
        replication_factor=2,
        created_at=datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc),
        witness=True,
        leader_id="node-2",
        partition=PartitionEvent.from_list([["node-1"], ["node-2", "node-3"]]),
    )
    cluster.add_member(
        Member(
            "node-1",
            1,
            "192.168.1.101:7001",
            state=MemberState.DOWN,
            load_percent=35.5,
            data_size_mb=120.0,
            capacity_mb=1024.0,
            replica_synced=False,
        )
    )
    cluster.add_member(Member("node-2", 2, "192.168.1.102:7002", load_percent=60.0, capacity_mb=1024.0))
    cluster.add_member(Member("node-3", 3, "192.168.1.103:7003", role=MemberRole.WITNESS))
    return cluster


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryClusterStore()
    return JsonFileClusterStore(tmp_path / "clusters")


# ===========================================================================
# Shared Behaviour
# ===========================================================================


class TestClusterStore:
    """Behaviour every store must share."""

    def test_round_trip_is_lossless(self, store):
        cluster = _cluster()
        assert store.save(cluster, expected_version=0) == 1

        loaded = store.load(cluster.cluster_id)

        assert loaded == cluster
        assert loaded.version == 1
        assert loaded.partition == cluster.partition
        assert list(loaded.members) == ["node-1", "node-2", "node-3"]

    def test_load_returns_independent_copy(self, store):
        cluster = _cluster()
        store.save(cluster, expected_version=0)

        loaded = store.load(cluster.cluster_id)
        loaded.members["node-2"].state = MemberState.DOWN

        assert store.load(cluster.cluster_id).members["node-2"].state == MemberState.UP

    def test_versions_increase(self, store):
        cluster = _cluster()
        store.save(cluster, expected_version=0)
        cluster.name = "renamed"
        assert store.save(cluster, expected_version=1) == 2
        assert store.load(cluster.cluster_id).name == "renamed"

    def test_stale_save_is_rejected(self, store):
        cluster = _cluster()
        store.save(cluster, expected_version=0)
        first = store.load(cluster.cluster_id)
        second = store.load(cluster.cluster_id)

        store.save(first, first.version)
        with pytest.raises(ConcurrentModificationError) as excinfo:
            store.save(second, second.version)

        assert excinfo.value.expected_version == 1
        assert excinfo.value.actual_version == 2
        assert second.version == 1

    def test_creating_an_existing_cluster_is_rejected(self, store):
        store.save(_cluster(), expected_version=0)
        with pytest.raises(ConcurrentModificationError):
            store.save(_cluster(), expected_version=0)

    def test_missing_cluster(self, store):
        with pytest.raises(NotFoundError, match="Cluster not found: cls-none"):
            store.load("cls-none")

    def test_list_ids_sorted(self, store):
        store.save(_cluster("cls-b"), expected_version=0)
        store.save(_cluster("cls-a"), expected_version=0)
        assert store.list_ids() == ["cls-a", "cls-b"]


# ===========================================================================
# JSON File Store
# ===========================================================================


class TestJsonFileClusterStore:

    def test_one_file_per_cluster(self, tmp_path):
        store = JsonFileClusterStore(tmp_path)
        store.save(_cluster("cls-a"), expected_version=0)

        path = tmp_path / "cls-a.json"
        assert path.exists()
        assert not (tmp_path / "cls-a.json.tmp").exists()

        record = json.loads(path.read_text(encoding="utf-8"))
        assert record["version"] == 1
        assert record["partition"] == [["node-1"], ["node-2", "node-3"]]
        assert record["members"][2]["role"] == "witness"

    def test_health_in_record_is_ignored_on_load(self, tmp_path):
        store = JsonFileClusterStore(tmp_path)
        store.save(_cluster("cls-a"), expected_version=0)
        path = tmp_path / "cls-a.json"
        record = json.loads(path.read_text(encoding="utf-8"))
        record["health"] = "healthy"
        path.write_text(json.dumps(record), encoding="utf-8")

        # One of three members is down: recomputed, not read back.
        assert store.load("cls-a").health.value == "degraded"

    @pytest.mark.parametrize("cluster_id", ["../escape", "a/b", "with space"])
    def test_unsafe_ids_are_not_found(self, tmp_path, cluster_id):
        store = JsonFileClusterStore(tmp_path)
        with pytest.raises(NotFoundError):
            store.load(cluster_id)

    def test_creates_directory(self, tmp_path):
        directory = tmp_path / "nested" / "clusters"
        JsonFileClusterStore(directory)
        assert directory.is_dir()
