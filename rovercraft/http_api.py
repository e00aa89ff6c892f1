"""HTTP interface for reading and updating probes."""

from __future__ import annotations

import asyncio
import logging

from aiohttp import web

from rovercraft.partition_manager import PartitionManager
from rovercraft.probe import ProbeRequest, create_probe

log = logging.getLogger(__name__)

_BODY_LIMIT = 1024 * 16


def create_app(manager: PartitionManager, tx: asyncio.Queue) -> web.Application:
    """Build the application serving ``PUT`` and ``GET`` on ``/probe/{probe_id}``."""

    async def update_probe(request: web.Request) -> web.Response:
        probe_id = request.match_info["probe_id"]
        body = await request.read()
        try:
            probe_request = ProbeRequest.from_json(body)
        except ValueError as err:
            raise web.HTTPBadRequest(text=f"Request body deserialize error: {err}") from err
        log.info("Write request: %s, event: %s", probe_id, probe_request.event_id)
        if manager.is_current_node_not_serving():
            log.info("Returned 500, since the current node is dead")
            return web.json_response("", status=500)
        stored = await manager.upsert_value(create_probe(probe_id, probe_request), tx)
        if stored is None:
            return web.json_response("", status=500)
        return web.json_response(stored.to_json())

    async def get_probe(request: web.Request) -> web.Response:
        probe_id = request.match_info["probe_id"]
        log.info("Read request: %s", probe_id)
        if manager.is_current_node_not_serving():
            log.info("Returned 500, since the current node is dead")
            return web.json_response("", status=500)
        found = await manager.read_probe(probe_id, tx)
        if found is None:
            return web.json_response("", status=404)
        return web.json_response(found.to_json())

    app = web.Application(client_max_size=_BODY_LIMIT)
    app.add_routes(
        [
            web.put("/probe/{probe_id}", update_probe),
            web.get("/probe/{probe_id}", get_probe, allow_head=False),
        ]
    )
    return app


async def serve_http(port: int, manager: PartitionManager, tx: asyncio.Queue) -> None:
    """Serve the HTTP interface on all addresses until cancelled."""
    runner = web.AppRunner(create_app(manager, tx))
    await runner.setup()
    try:
        site = web.TCPSite(runner, "0.0.0.0", port)
        await site.start()
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()