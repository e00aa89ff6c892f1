"""Server side of the probe synchronisation and partition announcement services."""

from __future__ import annotations

import logging
from typing import Any

import grpc

from rovercraft.cluster_messages import AnnounceAliveNotServingRequest, AnnounceAliveServingRequest, Empty
from rovercraft.partition_manager import PartitionManager
from rovercraft.partition_service import PartitionService
from rovercraft.probe import Probe
from rovercraft.probe_messages import (
    PartitionRequest,
    ProbePartition,
    ProbeProto,
    ReadProbeRequest,
    WriteProbeRequest,
    WriteProbeResponse,
)

log = logging.getLogger(__name__)


class ProbeSyncService:
    """Serves reads, writes and delta data of this node's partitions to peers."""

    def __init__(self, partition_manager: PartitionManager) -> None:
        self.partition_manager = partition_manager

    async def read_probe(self, request: ReadProbeRequest, context: Any) -> ProbeProto:
        probe = await self.partition_manager.read_probe_from_partition(
            request.partition_id, request.is_leader, request.probe_id
        )
        if probe is None:
            await context.abort(grpc.StatusCode.NOT_FOUND, "No probe found")
        return probe.to_proto()

    async def write_probe(self, request: WriteProbeRequest, context: Any) -> WriteProbeResponse:
        if request.probe is None:
            await context.abort(grpc.StatusCode.INVALID_ARGUMENT, "Missing probe")
        await self.partition_manager.write_probe_to_partition(
            request.partition_id, request.is_leader, Probe.from_proto(request.probe)
        )
        return WriteProbeResponse(confirmation=True)

    async def get_partition_data(self, request: PartitionRequest, context: Any) -> ProbePartition:
        delta = self.partition_manager.get_delta_data(request.partition_id)
        log.info("Delta data: %s", delta)
        return ProbePartition(probe_array=delta)


class ProtoPartitionService:
    """Applies the announcements of members that come back after a failure."""

    def __init__(self, partition_service: PartitionService) -> None:
        self.partition_service = partition_service

    async def make_node_alive_not_serving(self, request: AnnounceAliveNotServingRequest, context: Any) -> Empty:
        log.info(
            "Req Make alive and not serving host: %s : partitions %s",
            request.host_name,
            request.leader_partitions,
        )
        self.partition_service.make_node_alive_and_not_serving(request)
        return Empty()

    async def make_node_alive_serving(self, request: AnnounceAliveServingRequest, context: Any) -> Empty:
        log.info(
            "Req Make alive and serving host: %s : leader partitions %s follower partitions: %s",
            request.host_name,
            request.leader_partitions,
            request.follower_partitions,
        )
        self.partition_service.make_node_alive_serving(request)
        return Empty()