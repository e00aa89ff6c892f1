"""Placement of partitions on cluster members and their re-arrangement on failures."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import NamedTuple

from rovercraft.cluster_messages import AnnounceAliveNotServingRequest, AnnounceAliveServingRequest
from rovercraft.hashing import hash_key
from rovercraft.leader_node import LeaderNode
from rovercraft.node import Node, NodeCallError
from rovercraft.node_manager import NodeManager
from rovercraft.node_ref import NodeRef
from rovercraft.probe import Probe
from rovercraft.probe_messages import ProbeProto

log = logging.getLogger(__name__)


class PartitionLayout(NamedTuple):
    """Initial leaders, followers and default leader of every partition."""

    leader_nodes: list[LeaderNode]
    follower_nodes: list[Node]
    default_leader_arrangement: list[NodeRef]
    partition_size: int


def initialise_partitions(nodes: Sequence[NodeRef]) -> PartitionLayout:
    """Spread partitions evenly over ``nodes`` with a replication factor of n-1.

    Every node leads n-1 consecutive partitions; their followers are the other
    nodes, one per partition, in order.
    """
    nodes = list(nodes)
    if not nodes:
        raise ValueError("a cluster needs at least one node")
    replica = len(nodes) - 1
    leaders: list[LeaderNode] = []
    followers: list[Node] = []
    defaults: list[NodeRef] = []
    for node in nodes:
        others = [other for other in nodes if other.host_name != node.host_name]
        if len(others) < replica:
            raise ValueError(f"host {node.host_name!r} appears more than once")
        log.info("leader node: %s, temp nodes: %s", node, others)
        defaults.extend(node for _ in range(replica))
        leaders.extend(LeaderNode(Node(node)) for _ in range(replica))
        followers.extend(Node(other) for other in others[:replica])
    return PartitionLayout(leaders, followers, defaults, len(nodes) * replica)


class PartitionService:
    """Leader and follower of every partition, kept consistent with member liveness."""

    def __init__(self, nodes: NodeManager) -> None:
        layout = initialise_partitions(nodes.nodes)
        self._leaders = layout.leader_nodes
        self._followers = layout.follower_nodes
        self.default_leader_arrangement = layout.default_leader_arrangement
        self.partition_size = layout.partition_size
        self.nodes = nodes
        self._normal_state = True
        self._lock = threading.RLock()
        log.info("leaders: %s \n followers: %s", self._leaders, self._followers)

    def __repr__(self) -> str:
        return f"PartitionService(partitions={self.partition_size}, nodes={self.nodes!r})"

    @property
    def is_normal_state(self) -> bool:
        """False while partitions are re-arranged around a failed member."""
        with self._lock:
            return self._normal_state

    def _leader(self, partition_id: int) -> LeaderNode:
        if not 0 <= partition_id < len(self._leaders):
            raise IndexError(f"No leader for partition {partition_id}")
        return self._leaders[partition_id]

    def _check_follower(self, partition_id: int) -> None:
        if not 0 <= partition_id < len(self._followers):
            raise IndexError(f"No follower for partition {partition_id}")

    def _node_ref(self, host_name: str) -> NodeRef:
        node = self.nodes.get_node(host_name)
        if node is None:
            raise KeyError(host_name)
        return node

    def _log_layout(self, text: str) -> None:
        with self._lock:
            leaders = [(str(leader), leader.delta_data) for leader in self._leaders]
            followers = [str(follower) for follower in self._followers]
        log.info("%s leaders: %s", text, leaders)
        log.info("%s followers: %s", text, followers)

    def get_leader_node(self, partition_id: int) -> Node:
        with self._lock:
            return self._leader(partition_id).node

    def get_leader_and_write_delta(self, partition_id: int, probe: Probe) -> Node:
        """Record ``probe`` in the partition's delta store, if any, and return its leader."""
        with self._lock:
            leader = self._leader(partition_id)
            leader.write_to_delta_if_exists(probe)
            return leader.node

    def get_leader_partition_ids(self, hostname: str) -> list[int]:
        with self._lock:
            return [
                index
                for index, leader in enumerate(self._leaders)
                if leader.node.node_ref.host_name == hostname
            ]

    def get_follower_partition_ids(self, hostname: str) -> list[int]:
        with self._lock:
            return [
                index
                for index, follower in enumerate(self._followers)
                if follower.node_ref.host_name == hostname
            ]

    def get_follower_node(self, partition_id: int) -> Node:
        with self._lock:
            self._check_follower(partition_id)
            return self._followers[partition_id]

    def get_leader_delta_data(self, partition_id: int) -> list[ProbeProto]:
        """Return the delta data held by the partition's leader, or an empty list."""
        with self._lock:
            store = self._leader(partition_id).delta_data
        if store is None:
            log.error("No delta data to return")
            return []
        return store.serialise()

    def get_partition_nodes(self, probe_id: str) -> tuple[LeaderNode, Node, int]:
        """Return the leader, the follower and the id of the partition holding ``probe_id``."""
        if not self.partition_size:
            raise ValueError("the cluster has no partitions")
        partition_id = hash_key(probe_id) % self.partition_size
        log.info("leader partition id: %s", partition_id)
        with self._lock:
            leader = self._leader(partition_id)
            snapshot = LeaderNode(leader.node, leader.delta_data)
            follower = self._followers[partition_id]
        log.info("leader node: %s", snapshot)
        log.info("follower node: %s", follower)
        return snapshot, follower, partition_id

    def balance_partitions_and_write_delta_data(self) -> None:
        """Move leadership away from dead members and open delta stores for their partitions."""
        self._log_layout("Before rebalance:")
        with self._lock:
            for leader, follower in zip(self._leaders, self._followers):
                old_leader_node = leader.node
                log.info("leader %s", old_leader_node.node_ref.host_name)
                log.info("follower %s", follower.node_ref.host_name)
                if old_leader_node.is_node_down():
                    log.info("down leader %s", old_leader_node.node_ref.host_name)
                    leader.node = follower
                    leader.delta_data = MemoryStoreFactory.create() if follower.is_current_node() else None
                if follower.is_node_down():
                    log.info("down follower %s", follower.node_ref.host_name)
                    if old_leader_node.is_current_node():
                        leader.delta_data = MemoryStoreFactory.create()
            self._normal_state = False
        log.info("Updated the arrangement state to %s", False)
        self._log_layout("After rebalance:")

    def make_node_alive_and_not_serving(self, request: AnnounceAliveNotServingRequest) -> bool:
        """Give a returning member back its leader partitions; False if it was already serving."""
        self._log_layout("Before alive and not serving,")
        host_name = request.host_name
        if not self.nodes.make_node_alive_and_not_serving(host_name):
            log.info("Haven't rebalanced since the node was already in the serving state, must be a false alarm")
            return False
        node_ref = self._node_ref(host_name)
        with self._lock:
            for partition_id in request.leader_partitions:
                leader = self._leader(partition_id)
                self._followers[partition_id] = leader.node
                leader.node = Node(node_ref)
        self._log_layout("After alive and not serving,")
        return True

    def make_node_alive_serving(self, request: AnnounceAliveServingRequest) -> bool:
        """Drop the delta stores kept for a member that caught up; False if it was serving."""
        self._log_layout("Before alive and serving,")
        if not self.nodes.make_node_alive_and_serving(request.host_name):
            log.info("Haven't removed the delta data since the node was already in the same state, must be a false alarm")
            return False
        with self._lock:
            for partition_id in [*request.leader_partitions, *request.follower_partitions]:
                self._leader(partition_id).remove_delta_data()
            self._normal_state = True
        log.info("Updated the arrangement state to %s", True)
        self._log_layout("After alive and serving,")
        return True

    def get_peers(self) -> list[NodeRef]:
        return self.nodes.get_peers()

    def make_node_dead(self, node_host: str) -> None:
        """Mark a member dead, first restoring the default leaders if partitions were moved."""
        if not self.is_normal_state:
            log.info("Unfortunately the partitions are already rebalanced.., so fixing it back")
            self._log_layout("Before fix")
            with self._lock:
                for partition_id, default in enumerate(self.default_leader_arrangement):
                    leader = self._leaders[partition_id]
                    if leader.node.node_ref.host_name != default.host_name:
                        self._followers[partition_id] = leader.node
                        leader.node = Node(self._node_ref(default.host_name))
                        leader.remove_delta_data()
            self._log_layout("After fix")
        self.nodes.make_node_dead(node_host)

    def current_node(self) -> NodeRef:
        node = self.nodes.get_current_node()
        if node is None:
            raise LookupError("the current host is not a member of the cluster")
        return node

    def is_current_node_dead(self) -> bool:
        return self.current_node().is_dead()

    def is_current_node_not_serving(self) -> bool:
        return self.current_node().is_not_serving()

    def is_current_node_down(self) -> bool:
        return self.nodes.is_current_node_down()

    async def announce_alive_and_serving(self) -> None:
        """Tell every peer that this node serves its partitions again."""
        current = self.current_node()
        leader_ids = self.get_leader_partition_ids(current.host_name)
        follower_ids = self.get_follower_partition_ids(current.host_name)
        for peer in self.get_peers():
            await peer.announce_me_alive_and_serving(current.host_name, leader_ids, follower_ids)

    async def handle_recovery(self) -> None:
        """Bring this node back: reclaim leadership, catch up on delta data, then serve."""
        current = self.current_node()
        log.info("making current node alive")
        self.nodes.make_node_alive_and_not_serving(current.host_name)

        for peer in self.get_peers():
            peer.make_node_alive_and_serving()
            alive_peer = self._node_ref(peer.host_name)
            leader_ids = self.get_leader_partition_ids(current.host_name)
            log.info("Announce alive and not serving, for partitions: %s", leader_ids)
            await alive_peer.announce_me_alive_not_serving(current.host_name, leader_ids)

        log.info("Handling recovery")
        await self.recover_current_node()
        log.info("Announce alive and serving")
        await self.announce_alive_and_serving()
        self.nodes.make_node_alive_and_serving(current.host_name)

    async def recover_current_node(self) -> None:
        """Fetch the delta data of this node's partitions from their replicas and merge it."""
        current = self.current_node()
        leader_ids = self.get_leader_partition_ids(current.host_name)
        follower_ids = self.get_follower_partition_ids(current.host_name)

        log.info("Catching up the leader partitions")
        for partition_id in leader_ids:
            source = self.get_follower_node(partition_id)
            log.info("leader partition_id: %s, follower partition host: %s", partition_id, source.node_ref.host_name)
            try:
                delta = await source.get_delta_data_from_peer(partition_id)
            except NodeCallError as err:
                log.error("Err Delta data leader: %s : %s", source.node_ref.host_name, err)
                continue
            self.get_leader_node(partition_id).update_with_delta_data(delta)
            log.info("updated the partition")

        log.info("Catching up the follower partitions")
        for partition_id in follower_ids:
            source = self.get_leader_node(partition_id)
            log.info("partition_id: %s, partition: %s", partition_id, source.node_ref.host_name)
            try:
                delta = await source.get_delta_data_from_peer(partition_id)
            except NodeCallError as err:
                log.error("Err Delta data follower: %s", err)
                continue
            self.get_follower_node(partition_id).update_with_delta_data(delta)
            log.info("updated the partition")


class MemoryStoreFactory:
    """Creates the delta stores opened while a replica is away."""

    @staticmethod
    def create():
        from rovercraft.store import MemoryStore

        return MemoryStore()