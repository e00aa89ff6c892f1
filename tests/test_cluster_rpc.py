import socket
from contextlib import asynccontextmanager

import grpc
import pytest

from rovercraft.cluster_messages import (
    AnnounceAliveNotServingRequest,
    AnnounceAliveServingRequest,
    Empty,
    HealthCheckRequest,
    HealthCheckResponse,
)
from rovercraft.cluster_rpc import (
    HealthCheckClient,
    PartitionProtoClient,
    health_check_handler,
    partition_proto_handler,
)
from rovercraft.probe_sync_rpc import open_channel


class _HealthServicer:
    def __init__(self):
        self.pings = []

    async def health_check(self, request, context):
        self.pings.append(request)
        return HealthCheckResponse(pong=True)


class _PartitionServicer:
    def __init__(self):
        self.received = []

    async def make_node_alive_not_serving(self, request, context):
        self.received.append(request)
        return Empty()

    async def make_node_alive_serving(self, request, context):
        self.received.append(request)
        return Empty()


@asynccontextmanager
async def _serving(*handlers):
    server = grpc.aio.server()
    server.add_generic_rpc_handlers(handlers)
    port = server.add_insecure_port("127.0.0.1:0")
    await server.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await server.stop(None)


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_health_check_round_trip():
    servicer = _HealthServicer()
    async with _serving(health_check_handler(servicer)) as address:
        client = HealthCheckClient(open_channel(address, 5000))
        try:
            response = await client.health_check(HealthCheckRequest(ping=True))
        finally:
            await client.close()
    assert response == HealthCheckResponse(pong=True)
    assert servicer.pings == [HealthCheckRequest(ping=True)]


@pytest.mark.asyncio
async def test_announcements_reach_servicer():
    servicer = _PartitionServicer()
    not_serving = AnnounceAliveNotServingRequest(host_name="http://n1:9001", leader_partitions=[0, 1])
    serving = AnnounceAliveServingRequest(
        host_name="http://n1:9001", leader_partitions=[0, 1], follower_partitions=[2, 4]
    )
    async with _serving(partition_proto_handler(servicer)) as address:
        client = PartitionProtoClient(open_channel(address, 5000))
        try:
            first = await client.make_node_alive_not_serving(not_serving)
            second = await client.make_node_alive_serving(serving)
        finally:
            await client.close()
    assert first == Empty()
    assert second == Empty()
    assert servicer.received == [not_serving, serving]


@pytest.mark.asyncio
async def test_services_share_one_server():
    health = _HealthServicer()
    partitions = _PartitionServicer()
    async with _serving(health_check_handler(health), partition_proto_handler(partitions)) as address:
        health_client = HealthCheckClient(open_channel(address, 5000))
        partition_client = PartitionProtoClient(open_channel(address, 5000))
        try:
            await health_client.health_check(HealthCheckRequest(ping=True))
            await partition_client.make_node_alive_not_serving(AnnounceAliveNotServingRequest(host_name="n2"))
        finally:
            await health_client.close()
            await partition_client.close()
    assert len(health.pings) == 1
    assert partitions.received == [AnnounceAliveNotServingRequest(host_name="n2")]


@pytest.mark.asyncio
async def test_missing_service_is_unimplemented():
    async with _serving(health_check_handler(_HealthServicer())) as address:
        client = PartitionProtoClient(open_channel(address, 5000))
        try:
            with pytest.raises(grpc.aio.AioRpcError) as excinfo:
                await client.make_node_alive_serving(AnnounceAliveServingRequest(host_name="n1"))
        finally:
            await client.close()
    assert excinfo.value.code() == grpc.StatusCode.UNIMPLEMENTED


@pytest.mark.asyncio
async def test_unreachable_health_check_raises():
    client = HealthCheckClient(open_channel(f"http://127.0.0.1:{_free_port()}", 500))
    try:
        with pytest.raises(grpc.aio.AioRpcError) as excinfo:
            await client.health_check(HealthCheckRequest(ping=True))
    finally:
        await client.close()
    assert excinfo.value.code() in {grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED}