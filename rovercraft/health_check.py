"""Peer health checking and the reaction to members that stop answering."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Optional

import grpc

from rovercraft.cluster_messages import HealthCheckRequest, HealthCheckResponse
from rovercraft.partition_manager import ThreadMessage

log = logging.getLogger(__name__)

HEALTH_CHECK_INTERVAL = 0.5
DOWN_INTERVAL = 0.01
INITIAL_DELAY = 5.0


class HealthCheckService:
    """Answers the pings of peers."""

    async def health_check(self, request: HealthCheckRequest, context: Any) -> HealthCheckResponse:
        return HealthCheckResponse(pong=True)


def _mark_node_down(peer_node: Any) -> bool:
    """Mark a peer dead; True if it was not dead before."""
    if peer_node.is_dead():
        return False
    peer_node.make_node_dead()
    log.warning("Made node dead %s", peer_node.host_name)
    return True


async def run_health_check(
    partition_service: Any, peer_nodes: Sequence[Any], re_balance: bool = False
) -> Optional[float]:
    """Ping every peer and react to the outcome.

    Peers that fail are marked dead. If any member went down, either this node
    takes itself down (when no peer answers) or the partitions are re-arranged.
    If this node was dead and a peer answers, it recovers. Returns the new
    check interval in seconds when it changes, otherwise None.
    """
    new_interval: Optional[float] = None
    handle_recovery = False
    for peer_node in peer_nodes:
        log.debug("Making health check for %s", peer_node.host_name)
        try:
            await peer_node.do_health_check()
        except grpc.RpcError:
            if _mark_node_down(peer_node):
                re_balance = True
        else:
            log.debug("Received response")
            if partition_service.is_current_node_dead():
                new_interval = HEALTH_CHECK_INTERVAL
                log.info("Coming back alive")
                handle_recovery = True

    if re_balance:
        log.info("Seems like node is down")
        if partition_service.is_current_node_down():
            log.info("Marking current node down")
            new_interval = DOWN_INTERVAL
            partition_service.make_node_dead(partition_service.current_node().host_name)
        else:
            log.info("Re-balancing partitions")
            partition_service.balance_partitions_and_write_delta_data()

    if handle_recovery:
        await partition_service.handle_recovery()
    return new_interval


async def _handle_report(partition_service: Any, message: ThreadMessage) -> Optional[float]:
    hostname = message.hostname
    try:
        peers = partition_service.get_peers()
        alive = [peer for peer in peers if peer.host_name != hostname]
        dead = next((peer for peer in peers if peer.host_name == hostname), None)
        log.info("dead node: %s, peer node: %s", hostname, alive)
        re_balance = False
        if dead is None:
            log.error("Reported node %s is not a peer", hostname)
        else:
            re_balance = _mark_node_down(dead)
        log.info("external triggered it")
        return await run_health_check(partition_service, alive, re_balance)
    finally:
        sender = message.response_sender
        if sender is not None and not sender.done():
            log.info("Sending the response")
            sender.set_result(None)


async def start_health_check(
    partition_service: Any, receiver: asyncio.Queue, initial_delay: float = INITIAL_DELAY
) -> None:
    """Check peers periodically and on every report received, until cancelled."""
    await asyncio.sleep(initial_delay)
    loop = asyncio.get_running_loop()
    interval = HEALTH_CHECK_INTERVAL
    peer_nodes = list(partition_service.get_peers())
    next_tick = loop.time()

    while True:
        message: Optional[ThreadMessage] = None
        if not receiver.empty():
            message = receiver.get_nowait()
        else:
            timeout = max(0.0, next_tick - loop.time())
            try:
                message = await asyncio.wait_for(receiver.get(), timeout)
            except asyncio.TimeoutError:
                message = None

        if message is None:
            next_tick = max(next_tick + interval, loop.time())
            log.debug("starting scheduled health check")
            new_interval = await run_health_check(partition_service, peer_nodes, False)
        else:
            new_interval = await _handle_report(partition_service, message)

        if new_interval is not None:
            interval = new_interval
            next_tick = loop.time()