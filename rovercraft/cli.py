"""Command line entry point: starts the HTTP, gRPC and health-check services."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Optional, Union

import grpc

from rovercraft.cluster_rpc import health_check_handler, partition_proto_handler
from rovercraft.health_check import HealthCheckService, start_health_check
from rovercraft.http_api import serve_http
from rovercraft.node_manager import NodeManager
from rovercraft.partition_manager import PartitionManager
from rovercraft.partition_service import PartitionService
from rovercraft.probe_sync_rpc import probe_sync_handler
from rovercraft.services import ProbeSyncService, ProtoPartitionService

log = logging.getLogger(__name__)

LISTEN_PEER_URLS = "listen-peer-urls"
LISTEN_CLIENT_URLS = "listen-client-urls"
INITIAL_CLUSTER = "initial-cluster"

DEFAULT_CLIENT_URL = "http://localhost:9000"
DEFAULT_PEER_URL = "http://localhost:9001"
DEFAULT_CLUSTER = "n1,n2,n3"
PID_FILE = "./rovercraft.pid"

_BANNER = r"""
   / __ \____ _   _____  ___________________ _/ __/ /_
  / /_/ / __ \ | / / _ \/ ___/ ___/ ___/ __ `/ /_/ __/
 / _, _/ /_/ / |/ /  __/ /  / /__/ /  / /_/ / __/ /_
/_/ |_|\____/|___/\___/_/   \___/_/   \__,_/_/  \__/
"""

_PORT = re.compile(r"[0-9]+")


def parse_args(argv: Sequence[str]) -> dict[str, str]:
    """Read ``--name value`` pairs into a mapping from name to value."""
    argv = list(argv)
    if len(argv) % 2:
        raise ValueError(f"Missing value for argument {argv[-1]!r}")
    return {name.replace("--", ""): value for name, value in zip(argv[::2], argv[1::2])}


def find_port(url: str) -> int:
    """Return the port at the end of a URL such as ``http://localhost:9000``."""
    _, sep, port = url.rpartition(":")
    if not sep:
        raise ValueError("Incorrect url configured")
    if not _PORT.fullmatch(port) or int(port) > 0xFFFF:
        raise ValueError(f"Invalid port {port!r} in {url!r}")
    return int(port)


def get_peer_hostnames(arguments: Mapping[str, str], peer_port: int) -> list[str]:
    """Build the peer URL of every host listed in the initial cluster."""
    cluster = arguments.get(INITIAL_CLUSTER, DEFAULT_CLUSTER)
    return [f"http://{host}:{peer_port}" for host in cluster.split(",")]


def write_pid(path: Union[str, os.PathLike] = PID_FILE) -> int:
    """Write the id of this process to ``path`` and return it."""
    pid = os.getpid()
    log.info("Current process Id is %s", pid)
    Path(path).write_text(str(pid))
    return pid


def _print_info(listen_port: int, peer_port: int) -> None:
    log.info(_BANNER)
    log.info("Started listener on %s", listen_port)
    log.info("Started peer listener on %s", peer_port)


async def run(arguments: Mapping[str, str]) -> None:
    """Start every service of a node and run until one of them stops."""
    listen_port = find_port(arguments.get(LISTEN_CLIENT_URLS, DEFAULT_CLIENT_URL))
    peer_port = find_port(arguments.get(LISTEN_PEER_URLS, DEFAULT_PEER_URL))
    address = f"0.0.0.0:{peer_port}"
    log.info("gRPC local address: %s", address)
    peer_host_names = get_peer_hostnames(arguments, peer_port)
    log.info("%s", peer_host_names[0])

    requests: asyncio.Queue = asyncio.Queue(maxsize=1)
    partition_service = PartitionService(NodeManager.from_hosts(peer_host_names))
    manager = PartitionManager(partition_service)

    server = grpc.aio.server()
    server.add_generic_rpc_handlers(
        (
            probe_sync_handler(ProbeSyncService(manager)),
            health_check_handler(HealthCheckService()),
            partition_proto_handler(ProtoPartitionService(partition_service)),
        )
    )
    server.add_insecure_port(address)
    await server.start()
    _print_info(listen_port, peer_port)
    try:
        await asyncio.gather(
            server.wait_for_termination(),
            serve_http(listen_port, manager, requests),
            start_health_check(partition_service, requests),
        )
    finally:
        await server.stop(None)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start a node from command line arguments."""
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s.%(msecs)03d %(levelname)s %(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    write_pid()
    arguments = parse_args(sys.argv[1:] if argv is None else argv)
    log.info("Args : %s", arguments)
    try:
        asyncio.run(run(arguments))
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())