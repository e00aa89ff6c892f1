"""Routing of probe reads and writes to the leader and follower of a partition."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from rovercraft.leader_node import LeaderNode
from rovercraft.node import Node, NodeCallError
from rovercraft.partition_service import PartitionService
from rovercraft.probe import Probe
from rovercraft.probe_messages import ProbeProto

log = logging.getLogger(__name__)


@dataclass
class ThreadMessage:
    """Report of an unreachable member, sent to the health-check loop.

    When ``response_sender`` is set, the health-check loop resolves it once the
    partitions have been re-arranged.
    """

    hostname: str
    response_sender: Optional[asyncio.Future] = None


class PartitionManager:
    """Reads and writes probes on the replicas of the partition that owns them."""

    def __init__(self, partition_service: PartitionService) -> None:
        self.partition_service = partition_service

    def __repr__(self) -> str:
        return f"PartitionManager({self.partition_service!r})"

    def _partition(self, partition_id: int, is_leader: bool) -> Node:
        if is_leader:
            return self.partition_service.get_leader_node(partition_id)
        return self.partition_service.get_follower_node(partition_id)

    async def read_probe_from_partition(self, partition_id: int, is_leader: bool, probe_id: str) -> Optional[Probe]:
        """Read a probe from this node's replica of a partition."""
        node = self._partition(partition_id, is_leader)
        return await node.read_probe_from_store(partition_id, True, probe_id)

    async def write_probe_to_partition(self, partition_id: int, is_leader: bool, probe: Probe) -> None:
        """Write a probe into this node's replica of a partition."""
        node = self.get_partition_and_write_delta(partition_id, is_leader, probe)
        await node.write_probe_to_store(partition_id, True, probe)

    def get_partition_and_write_delta(self, partition_id: int, is_leader: bool, probe: Probe) -> Node:
        """Return the replica to write to, recording the probe as delta data on a leader."""
        if is_leader:
            return self.partition_service.get_leader_and_write_delta(partition_id, probe)
        return self.partition_service.get_follower_node(partition_id)

    def is_current_node_down(self) -> bool:
        return self.partition_service.is_current_node_dead()

    def is_current_node_not_serving(self) -> bool:
        return self.partition_service.is_current_node_not_serving()

    async def read_probe(self, probe_id: str, tx: asyncio.Queue) -> Optional[Probe]:
        """Read from leader and follower at once and return the newer probe."""
        leader, follower, partition_id = self.partition_service.get_partition_nodes(probe_id)
        log.info("read request %s, %s", probe_id, partition_id)
        leader_probe, follower_probe = await asyncio.gather(
            self._read_from_leader(probe_id, leader, partition_id, tx),
            self._read_from_follower(probe_id, follower, partition_id, tx),
        )
        if leader_probe is not None and follower_probe is not None:
            if leader_probe.event_received_time >= follower_probe.event_received_time:
                log.info("returning from leader %s", probe_id)
                return leader_probe
            log.info("returning from follower %s", probe_id)
            return follower_probe
        return leader_probe if leader_probe is not None else follower_probe

    @staticmethod
    async def _read_from_leader(
        probe_id: str, leader: LeaderNode, partition_id: int, tx: asyncio.Queue
    ) -> Optional[Probe]:
        try:
            probe = await leader.node.read_probe_from_store(partition_id, True, probe_id)
        except NodeCallError as err:
            log.warning("Leader went down while reading %s %s", probe_id, err)
            await tx.put(ThreadMessage(leader.node.node_ref.host_name))
            return None
        log.info("Read data from leader: %s", probe)
        return probe

    @staticmethod
    async def _read_from_follower(
        probe_id: str, follower: Node, partition_id: int, tx: asyncio.Queue
    ) -> Optional[Probe]:
        try:
            probe = await follower.read_probe_from_store(partition_id, False, probe_id)
        except NodeCallError as err:
            log.warning("Follower went down while reading %s %s", probe_id, err)
            await tx.put(ThreadMessage(follower.node_ref.host_name))
            return None
        if probe is not None:
            log.info("Read data from follower: %s", probe)
        return probe

    async def upsert_value(self, probe: Probe, tx: asyncio.Queue) -> Optional[Probe]:
        """Write a probe to leader and follower; return it only if both writes succeeded."""
        leader, follower, partition_id = self.partition_service.get_partition_nodes(probe.probe_id)
        log.info("write request %s -> %s", partition_id, probe.event_id)
        leader_result, follower_result = await asyncio.gather(
            self._write_to_leader(probe, tx, leader, partition_id),
            self._write_to_follower(probe, tx, follower, partition_id),
        )
        if leader_result is not None and follower_result is not None:
            return leader_result
        return None

    async def _write_to_follower(
        self, probe: Probe, tx: asyncio.Queue, follower: Node, partition_id: int
    ) -> Optional[Probe]:
        if follower.is_node_down():
            return probe
        try:
            await follower.write_probe_to_store(partition_id, False, probe)
        except NodeCallError:
            log.warning("Err: follower down while writing %s", probe.event_id)
            await self._initiate_manual_re_balancing(tx, follower.node_ref.host_name)
            log.warning("writing to delta in a leader partition")
            leader, _, partition_id = self.partition_service.get_partition_nodes(probe.probe_id)
            try:
                await leader.write_probe_to_store_and_delta(partition_id, probe)
            except NodeCallError:
                log.error("Err: Should not reach here after follower re-balance")
                return None
            log.info("successfully written delta to leader after re-balance")
            return probe
        log.info("successfully written to follower %s", probe.event_id)
        return probe

    async def _write_to_leader(
        self, probe: Probe, tx: asyncio.Queue, leader: LeaderNode, partition_id: int
    ) -> Optional[Probe]:
        try:
            await leader.write_probe_to_store_and_delta(partition_id, probe)
        except NodeCallError:
            log.warning("Err: leader down while writing %s", probe.event_id)
            await self._initiate_manual_re_balancing(tx, leader.node.node_ref.host_name)
            leader, _, partition_id = self.partition_service.get_partition_nodes(probe.probe_id)
            try:
                await leader.write_probe_to_store_and_delta(partition_id, probe)
            except NodeCallError:
                log.error("Err: Should not reach here after re-balance %s", probe.event_id)
                return None
            log.info("successfully written to leader after re-balance, %s", probe.event_id)
            return probe
        log.info("successfully written to leader %s", probe.event_id)
        return probe

    @staticmethod
    async def _initiate_manual_re_balancing(tx: asyncio.Queue, hostname: str) -> None:
        """Report a failed member and wait until the partitions have been re-arranged."""
        done = asyncio.get_running_loop().create_future()
        log.info("handler hostname: %s", hostname)
        await tx.put(ThreadMessage(hostname, done))
        log.warning("Err: Node down while writing")
        await done

    def get_delta_data(self, partition_id: int) -> list[ProbeProto]:
        return self.partition_service.get_leader_delta_data(partition_id)