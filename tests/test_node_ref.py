import logging
import socket
from contextlib import asynccontextmanager
from unittest.mock import patch

import grpc
import pytest

from rovercraft.cluster_messages import (
    AnnounceAliveNotServingRequest,
    AnnounceAliveServingRequest,
    Empty,
    HealthCheckRequest,
    HealthCheckResponse,
)
from rovercraft.cluster_rpc import health_check_handler, partition_proto_handler
from rovercraft.node_ref import NodeRef, NodeStatus, current_hostname, is_current_host


class _Servicer:
    def __init__(self):
        self.pings = []
        self.received = []

    async def health_check(self, request, context):
        self.pings.append(request)
        return HealthCheckResponse(pong=True)

    async def make_node_alive_not_serving(self, request, context):
        self.received.append(request)
        return Empty()

    async def make_node_alive_serving(self, request, context):
        self.received.append(request)
        return Empty()


@asynccontextmanager
async def _serving(servicer):
    server = grpc.aio.server()
    server.add_generic_rpc_handlers((health_check_handler(servicer), partition_proto_handler(servicer)))
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


def test_new_node_is_alive_and_serving():
    node = NodeRef("http://n1:9001")
    assert node.node_status is NodeStatus.ALIVE_SERVING
    assert not node.is_dead()
    assert not node.is_not_serving()


def test_dead_then_alive_again():
    node = NodeRef("http://n1:9001")
    node.make_node_dead()
    assert node.is_dead()
    assert node.is_not_serving()
    node.make_node_alive_and_serving()
    assert node.node_status is NodeStatus.ALIVE_SERVING
    assert not node.is_dead()


def test_alive_not_serving_is_not_dead():
    node = NodeRef("http://n1:9001")
    node.node_status = NodeStatus.ALIVE_NOT_SERVING
    assert node.is_not_serving()
    assert not node.is_dead()


def test_display_shows_host_and_status():
    node = NodeRef("http://n1:9001")
    assert str(node) == "http://n1:9001 -> AliveServing"
    node.make_node_dead()
    assert str(node) == "http://n1:9001 -> Dead"


def test_bad_address_is_rejected():
    with pytest.raises(ValueError):
        NodeRef("http://")


@patch("socket.gethostname", return_value="n1")
def test_current_hostname(_gethostname):
    assert current_hostname() == "n1"


@patch("socket.gethostname", return_value="n1")
def test_is_current_host_matches_substring(_gethostname):
    assert is_current_host("http://n1:9001")
    assert not is_current_host("http://n2:9001")


@patch("socket.gethostname", return_value="n2")
def test_node_is_current_node(_gethostname):
    assert NodeRef("http://n2:9001").is_current_node()
    assert not NodeRef("http://n3:9001").is_current_node()


@pytest.mark.asyncio
async def test_health_check_pings_node():
    servicer = _Servicer()
    async with _serving(servicer) as address:
        node = NodeRef(address)
        node.health_check_client._channel.timeout = 5
        try:
            await node.do_health_check()
        finally:
            await node.close()
    assert servicer.pings == [HealthCheckRequest(ping=True)]


@pytest.mark.asyncio
async def test_health_check_of_unreachable_node_raises():
    node = NodeRef(f"http://127.0.0.1:{_free_port()}")
    try:
        with pytest.raises(grpc.aio.AioRpcError) as excinfo:
            await node.do_health_check()
    finally:
        await node.close()
    assert excinfo.value.code() in {grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED}


@pytest.mark.asyncio
async def test_announcements_are_delivered():
    servicer = _Servicer()
    async with _serving(servicer) as address:
        node = NodeRef(address)
        node.proto_partition_client._channel.timeout = 5
        try:
            await node.announce_me_alive_not_serving("http://n2:9001", [0, 1])
            await node.announce_me_alive_and_serving("http://n2:9001", [0, 1], [2, 4])
        finally:
            await node.close()
    assert servicer.received == [
        AnnounceAliveNotServingRequest(host_name="http://n2:9001", leader_partitions=[0, 1]),
        AnnounceAliveServingRequest(
            host_name="http://n2:9001", leader_partitions=[0, 1], follower_partitions=[2, 4]
        ),
    ]


@pytest.mark.asyncio
async def test_failed_announcement_is_logged(caplog):
    node = NodeRef(f"http://127.0.0.1:{_free_port()}")
    try:
        with caplog.at_level(logging.ERROR, logger="rovercraft.node_ref"):
            await node.announce_me_alive_not_serving("http://n2:9001", [0])
            await node.announce_me_alive_and_serving("http://n2:9001", [0], [1])
    finally:
        await node.close()
    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("error while announcing alive and not serving") for m in messages)
    assert any(m.startswith("Error while announcing alive and serving") for m in messages)