import asyncio
import contextlib
import socket
from http import HTTPStatus

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer

from rovercraft.http_api import create_app, serve_http
from rovercraft.node_manager import NodeManager
from rovercraft.node_ref import NodeStatus
from rovercraft.partition_manager import PartitionManager
from rovercraft.partition_service import PartitionService

SELF = "rovertest-self"
LOCAL_A = f"http://{SELF}-a:9001"
LOCAL_B = f"http://{SELF}-b:9001"


@pytest.fixture(autouse=True)
def fixed_hostname(monkeypatch):
    monkeypatch.setattr(socket, "gethostname", lambda: SELF)


@pytest.fixture
def manager():
    return PartitionManager(PartitionService(NodeManager.from_hosts([LOCAL_A, LOCAL_B])))


@pytest.mark.asyncio
async def test_put_then_get_probe(manager):
    app = create_app(manager, asyncio.Queue(maxsize=1))
    async with TestClient(TestServer(app)) as client:
        put = await client.put("/probe/p1", json={"eventId": "e1", "data": "payload"})
        assert put.status == HTTPStatus.OK
        written = await put.json()
        assert written["probeId"] == "p1"
        assert written["eventId"] == "e1"
        assert written["data"] == "payload"
        got = await client.get("/probe/p1")
        assert got.status == HTTPStatus.OK
        assert await got.json() == written


@pytest.mark.asyncio
async def test_get_missing_probe_is_not_found(manager):
    app = create_app(manager, asyncio.Queue(maxsize=1))
    async with TestClient(TestServer(app)) as client:
        response = await client.get("/probe/absent")
        assert response.status == HTTPStatus.NOT_FOUND
        assert await response.json() == ""


@pytest.mark.asyncio
async def test_not_serving_node_answers_internal_error(manager):
    manager.partition_service.current_node().node_status = NodeStatus.ALIVE_NOT_SERVING
    app = create_app(manager, asyncio.Queue(maxsize=1))
    async with TestClient(TestServer(app)) as client:
        got = await client.get("/probe/p1")
        assert got.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert await got.json() == ""
        put = await client.put("/probe/p1", json={"eventId": "e1", "data": "payload"})
        assert put.status == HTTPStatus.INTERNAL_SERVER_ERROR


@pytest.mark.asyncio
async def test_malformed_body_is_rejected(manager):
    app = create_app(manager, asyncio.Queue(maxsize=1))
    async with TestClient(TestServer(app)) as client:
        not_json = await client.put("/probe/p1", data=b"{not json")
        assert not_json.status == HTTPStatus.BAD_REQUEST
        missing = await client.put("/probe/p1", json={"data": "payload"})
        assert missing.status == HTTPStatus.BAD_REQUEST


@pytest.mark.asyncio
async def test_oversized_body_is_rejected(manager):
    app = create_app(manager, asyncio.Queue(maxsize=1))
    async with TestClient(TestServer(app)) as client:
        body = b'{"eventId": "e1", "data": "' + b"x" * (1024 * 16) + b'"}'
        response = await client.put("/probe/p1", data=body)
        assert response.status == HTTPStatus.REQUEST_ENTITY_TOO_LARGE


@pytest.mark.asyncio
async def test_other_methods_are_not_allowed(manager):
    app = create_app(manager, asyncio.Queue(maxsize=1))
    async with TestClient(TestServer(app)) as client:
        response = await client.post("/probe/p1", json={"eventId": "e1", "data": "payload"})
        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_serve_http_listens_on_port(manager):
    port = _free_port()
    task = asyncio.create_task(serve_http(port, manager, asyncio.Queue(maxsize=1)))
    try:
        status = None
        async with aiohttp.ClientSession() as session:
            for _ in range(100):
                try:
                    async with session.get(f"http://127.0.0.1:{port}/probe/absent") as response:
                        status = response.status
                        break
                except aiohttp.ClientConnectionError:
                    await asyncio.sleep(0.05)
        assert status == HTTPStatus.NOT_FOUND
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task