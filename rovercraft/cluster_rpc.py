"""gRPC clients and server bindings of the cluster services."""

from __future__ import annotations

from typing import Any

import grpc

from rovercraft.cluster_messages import (
    AnnounceAliveNotServingRequest,
    AnnounceAliveServingRequest,
    Empty,
    HealthCheckRequest,
    HealthCheckResponse,
)
from rovercraft.probe_sync_rpc import _call, _Channel, _generic_handler

_HEALTH_CHECK = "cluster.HealthCheck"
_PARTITION_PROTO = "cluster.PartitionProto"


class HealthCheckClient:
    """Client of a peer's health-check service."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    def __repr__(self) -> str:
        return f"HealthCheckClient({self._channel.address!r})"

    async def health_check(self, request: HealthCheckRequest) -> HealthCheckResponse:
        """Ping the peer; failures raise ``grpc.aio.AioRpcError``."""
        return await _call(self._channel, _HEALTH_CHECK, "HealthCheck", request, HealthCheckResponse)

    async def close(self) -> None:
        await self._channel.close()


class PartitionProtoClient:
    """Client of a peer's partition announcement service."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    def __repr__(self) -> str:
        return f"PartitionProtoClient({self._channel.address!r})"

    async def make_node_alive_not_serving(self, request: AnnounceAliveNotServingRequest) -> Empty:
        """Tell the peer that a node is alive but still catching up."""
        return await _call(self._channel, _PARTITION_PROTO, "MakeNodeAliveNotServing", request, Empty)

    async def make_node_alive_serving(self, request: AnnounceAliveServingRequest) -> Empty:
        """Tell the peer that a node serves its partitions again."""
        return await _call(self._channel, _PARTITION_PROTO, "MakeNodeAliveServing", request, Empty)

    async def close(self) -> None:
        await self._channel.close()


def health_check_handler(servicer: Any) -> grpc.GenericRpcHandler:
    """Bind a servicer with a health_check method to the health-check service."""
    return _generic_handler(
        _HEALTH_CHECK,
        {"HealthCheck": (servicer.health_check, HealthCheckRequest)},
    )


def partition_proto_handler(servicer: Any) -> grpc.GenericRpcHandler:
    """Bind a servicer with the two announcement methods to the partition service."""
    return _generic_handler(
        _PARTITION_PROTO,
        {
            "MakeNodeAliveNotServing": (servicer.make_node_alive_not_serving, AnnounceAliveNotServingRequest),
            "MakeNodeAliveServing": (servicer.make_node_alive_serving, AnnounceAliveServingRequest),
        },
    )