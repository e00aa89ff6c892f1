"""The leader replica of a partition and its optional delta store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from rovercraft.node import Node
from rovercraft.probe import Probe
from rovercraft.store import MemoryStore

log = logging.getLogger(__name__)


@dataclass
class LeaderNode:
    """A partition leader; while a replica is away, writes are also kept as delta data."""

    node: Node
    delta_data: Optional[MemoryStore] = None

    def __str__(self) -> str:
        return str(self.node)

    async def write_probe_to_store_and_delta(self, partition_id: int, probe: Probe) -> None:
        """Record the probe in the delta store if present, then write it to the leader."""
        self.write_to_delta_if_exists(probe)
        await self.node.write_probe_to_store(partition_id, True, probe)

    def write_to_delta(self, probe: Probe) -> None:
        if self.delta_data is None:
            log.error("Not writing as delta data wasn't present, %s", probe.event_id)
            return
        self.delta_data.save_probe(probe)

    def write_to_delta_if_exists(self, probe: Probe) -> None:
        if self.delta_data is not None:
            log.info("Written to delta %s", probe.event_id)
            self.write_to_delta(probe)

    def remove_delta_data(self) -> None:
        self.delta_data = None