"""Cluster members, their liveness status and the calls made to them."""

from __future__ import annotations

import enum
import logging
import socket
import threading
import time
from collections.abc import Iterable

import grpc

from rovercraft.cluster_messages import (
    AnnounceAliveNotServingRequest,
    AnnounceAliveServingRequest,
    HealthCheckRequest,
)
from rovercraft.cluster_rpc import HealthCheckClient, PartitionProtoClient
from rovercraft.probe_sync_rpc import open_channel

log = logging.getLogger(__name__)

ANNOUNCEMENT_TIMEOUT_MS = 150
HEALTH_CHECK_TIMEOUT_MS = 100


class NodeStatus(enum.Enum):
    """Liveness of a cluster member."""

    ALIVE_SERVING = "AliveServing"
    ALIVE_NOT_SERVING = "AliveNotServing"
    DEAD = "Dead"


def current_hostname() -> str:
    """Return the host name of the machine running this process."""
    return socket.gethostname()


def is_current_host(host_name: str) -> bool:
    """Tell whether a node address refers to this machine."""
    current = current_hostname()
    result = current in host_name
    log.debug("current %s node %s result %s", current, host_name, result)
    return result


class NodeRef:
    """A cluster member: its address, status and the clients used to reach it."""

    def __init__(self, host_name: str) -> None:
        self.host_name = host_name
        self._status = NodeStatus.ALIVE_SERVING
        self._lock = threading.Lock()
        self.health_check_client = HealthCheckClient(open_channel(host_name, HEALTH_CHECK_TIMEOUT_MS))
        self.proto_partition_client = PartitionProtoClient(open_channel(host_name, ANNOUNCEMENT_TIMEOUT_MS))

    def __str__(self) -> str:
        return f"{self.host_name} -> {self.node_status.value}"

    def __repr__(self) -> str:
        return f"NodeRef({self.host_name!r}, {self.node_status.value})"

    @property
    def node_status(self) -> NodeStatus:
        with self._lock:
            return self._status

    @node_status.setter
    def node_status(self, status: NodeStatus) -> None:
        with self._lock:
            self._status = status

    def is_dead(self) -> bool:
        return self.node_status is NodeStatus.DEAD

    def is_not_serving(self) -> bool:
        return self.node_status is not NodeStatus.ALIVE_SERVING

    def make_node_dead(self) -> None:
        self.node_status = NodeStatus.DEAD

    def make_node_alive_and_serving(self) -> None:
        self.node_status = NodeStatus.ALIVE_SERVING

    def is_current_node(self) -> bool:
        return is_current_host(self.host_name)

    async def do_health_check(self) -> None:
        """Ping the node; raise ``grpc.aio.AioRpcError`` if it does not answer."""
        start = time.monotonic()
        log.debug("Before calling grpc health check %s", self.host_name)
        try:
            await self.health_check_client.health_check(HealthCheckRequest(ping=True))
        finally:
            log.debug("Latency %.3fs", time.monotonic() - start)

    async def announce_me_alive_not_serving(self, hostname: str, leader_partitions: Iterable[int]) -> None:
        """Tell this node that ``hostname`` is back and takes over its leader partitions."""
        log.info("Making node alive and not serving... %s", self.host_name)
        request = AnnounceAliveNotServingRequest(host_name=hostname, leader_partitions=list(leader_partitions))
        try:
            await self.proto_partition_client.make_node_alive_not_serving(request)
        except grpc.RpcError as err:
            log.error("error while announcing alive and not serving: %s", err)
        else:
            log.info("Made node alive and not serving in: %s", self.host_name)

    async def announce_me_alive_and_serving(
        self, hostname: str, leader_partitions: Iterable[int], follower_partitions: Iterable[int]
    ) -> None:
        """Tell this node that ``hostname`` has caught up and serves again."""
        log.info("Making node alive and serving... %s", self.host_name)
        request = AnnounceAliveServingRequest(
            host_name=hostname,
            leader_partitions=list(leader_partitions),
            follower_partitions=list(follower_partitions),
        )
        try:
            await self.proto_partition_client.make_node_alive_serving(request)
        except grpc.RpcError as err:
            log.error("Error while announcing alive and serving: %s", err)
        else:
            log.info("Made node alive and serving in: %s", self.host_name)

    async def close(self) -> None:
        """Close the channels opened to the node."""
        await self.health_check_client.close()
        await self.proto_partition_client.close()