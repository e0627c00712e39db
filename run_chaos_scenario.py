"""
Walk a cluster through a scripted failure scenario and print its status
after every step: create, kill a node, isolate the leader, heal, recover,
scale up.

Partitions are only logged (dry run); nothing touches the real network.
"""

import argparse
import json

from quorate.engine import (
    ClusterCoordinator,
    ClusterSnapshot,
    InMemoryClusterStore,
    JsonFileClusterStore,
    RecordingEventSink,
    load_config,
)
from quorate.logging_utils import setup_logging


def print_status(title: str, snapshot: ClusterSnapshot, as_json: bool = False) -> None:
    print(f"\n=== {title} ===")
    if as_json:
        print(json.dumps(snapshot.to_dict(), indent=2))
        return

    print(
        f"{snapshot.name} ({snapshot.cluster_id}): {snapshot.health.value}, "
        f"{snapshot.up_count}/{snapshot.total_count} up, "
        f"quorum {snapshot.quorum_threshold}, leader {snapshot.leader_id}"
    )
    for view in snapshot.members:
        marker = "*" if view.is_leader else " "
        print(
            f" {marker} {view.member_id:<8} {view.role.value:<10} {view.state.value:<9} "
            f"{view.access.value:<12} {view.address}"
        )
    if snapshot.partition is not None:
        for group in snapshot.partition:
            print(f"   partition group {group.index}: {sorted(group.member_ids)} -> {group.role.value}")
    for problem in snapshot.violations:
        print(f"   ! {problem}")


def run_scenario(coordinator: ClusterCoordinator, nodes: int, force_quorum: bool, as_json: bool) -> None:
    snapshot = coordinator.create_cluster("chaos-demo", nodes, force_quorum=force_quorum)
    cluster_id = snapshot.cluster_id
    print_status("Created", snapshot, as_json)

    victim = "node-2" if snapshot.member("node-2") is not None else snapshot.members[-1].member_id
    print_status(f"Killed {victim}", coordinator.mark_member_down(cluster_id, victim), as_json)

    leader = coordinator.status(cluster_id).leader_id
    if leader is not None and coordinator.status(cluster_id).up_count > 1:
        print_status(f"Isolated leader {leader}", coordinator.isolate_member(cluster_id, leader), as_json)
        print_status("Healed", coordinator.heal(cluster_id), as_json)

    print_status(f"Recovered {victim}", coordinator.mark_member_up(cluster_id, victim), as_json)

    member = coordinator.add_member(cluster_id)
    print_status(f"Added {member.member_id}", coordinator.status(cluster_id), as_json)


def main():
    parser = argparse.ArgumentParser(description="Run a scripted chaos scenario against one cluster.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--nodes", type=int, default=4, help="Number of data members. Default: 4")
    parser.add_argument("--force-quorum", action="store_true",
                        help="Add a witness when the node count is even")
    parser.add_argument("--store", choices=["memory", "json"], default="memory",
                        help="Keep cluster records in memory or as JSON files under store_dir")
    parser.add_argument("--json", action="store_true", help="Print snapshots as JSON")
    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config.log_level, config.log_file, config.json_logs)

    store = JsonFileClusterStore(config.store_dir) if args.store == "json" else InMemoryClusterStore()
    sink = RecordingEventSink()
    coordinator = ClusterCoordinator(store, config=config, sink=sink)

    run_scenario(coordinator, args.nodes, args.force_quorum, args.json)

    print(f"\n{len(sink.events)} events:")
    for event in sink.events:
        print(f"  {event.time:%H:%M:%S} {event.event_type.value:<20} {event.target_id} {event.metadata}")


if __name__ == "__main__":
    main()
