"""A partition replica held on some node, either locally or on a peer."""

from __future__ import annotations

import logging
import time
from typing import Optional

import grpc

from rovercraft.node_ref import NodeRef, NodeStatus, is_current_host
from rovercraft.probe import Probe
from rovercraft.probe_messages import (
    PartitionRequest,
    ProbePartition,
    ReadProbeRequest,
    WriteProbeRequest,
)
from rovercraft.probe_sync_rpc import PROBE_SYNC_TIMEOUT_MS, ProbeSyncClient, open_channel
from rovercraft.store import MemoryStore

log = logging.getLogger(__name__)


class NodeCallError(Exception):
    """A read, write or delta request to a node failed."""

    def __init__(self, code: grpc.StatusCode, details: str) -> None:
        super().__init__(f"{code.name}: {details}")
        self.code = code
        self.details = details


def _wrap(err: grpc.aio.AioRpcError) -> NodeCallError:
    return NodeCallError(err.code(), err.details() or "")


class Node:
    """A replica on a cluster member: a local store on this machine, a client otherwise."""

    def __init__(
        self,
        node_ref: NodeRef,
        *,
        local: Optional[bool] = None,
        timeout_ms: int = PROBE_SYNC_TIMEOUT_MS,
    ) -> None:
        self.node_ref = node_ref
        if local is None:
            local = is_current_host(node_ref.host_name)
        self.local_store: Optional[MemoryStore] = MemoryStore() if local else None
        self._client: Optional[ProbeSyncClient] = (
            None if local else ProbeSyncClient(open_channel(node_ref.host_name, timeout_ms))
        )

    def __str__(self) -> str:
        return str(self.node_ref)

    def __repr__(self) -> str:
        kind = "local" if self.local_store is not None else "remote"
        return f"Node({self.node_ref!r}, {kind})"

    @property
    def node_status(self) -> NodeStatus:
        return self.node_ref.node_status

    def is_node_down(self) -> bool:
        return self.node_status is NodeStatus.DEAD

    def is_node_not_down(self) -> bool:
        return self.node_status is not NodeStatus.DEAD

    def is_current_node(self) -> bool:
        return is_current_host(self.node_ref.host_name)

    def update_with_delta_data(self, partition: ProbePartition) -> None:
        """Merge a peer's delta data into the local store."""
        if self.local_store is None:
            log.error("The data is not present in the current node")
            return
        self.local_store.deserialise_and_update(partition.probe_array)

    async def get_delta_data_from_peer(self, partition_id: int) -> ProbePartition:
        """Fetch the delta data the peer holds for ``partition_id``."""
        if self._client is None:
            raise NodeCallError(grpc.StatusCode.INTERNAL, "The data is already present in the current node")
        try:
            return await self._client.get_partition_data(PartitionRequest(partition_id=partition_id))
        except grpc.aio.AioRpcError as err:
            raise _wrap(err) from err

    async def read_probe_from_store(self, partition_id: int, is_leader: bool, probe_id: str) -> Optional[Probe]:
        """Read a probe; None if the node does not hold it, NodeCallError if it cannot be reached."""
        if self._client is None:
            return self.local_store.get_probe(probe_id)
        log.info("Starting Remote read call: %s", probe_id)
        request = ReadProbeRequest(probe_id=probe_id, partition_id=partition_id, is_leader=is_leader)
        start = time.monotonic()
        try:
            proto = await self._client.read_probe(request)
        except grpc.aio.AioRpcError as err:
            if err.code() == grpc.StatusCode.NOT_FOUND:
                return None
            log.error("Err from remote read for: %s", err)
            raise _wrap(err) from err
        finally:
            log.info("Latency %s %.3fs", probe_id, time.monotonic() - start)
        return Probe.from_proto(proto)

    async def write_probe_to_store(self, partition_id: int, is_leader: bool, probe: Probe) -> None:
        """Write a probe; raise NodeCallError if the node cannot be reached."""
        if self._client is None:
            log.info("Writing to local: %s", probe.event_id)
            self.local_store.save_probe(probe)
            return
        log.info("Starting Remote write call %s", probe.event_id)
        request = WriteProbeRequest(probe=probe.to_proto(), partition_id=partition_id, is_leader=is_leader)
        start = time.monotonic()
        try:
            await self._client.write_probe(request)
        except grpc.aio.AioRpcError as err:
            log.error("Error: %s %s", probe.event_id, err)
            raise _wrap(err) from err
        finally:
            log.info("Latency %s %.3fs", probe.event_id, time.monotonic() - start)

    async def close(self) -> None:
        """Close the channel to a remote node."""
        if self._client is not None:
            await self._client.close()