"""Thread-safe in-memory probe store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Optional

from rovercraft.probe import Probe
from rovercraft.probe_messages import ProbeProto

log = logging.getLogger(__name__)


class MemoryStore:
    """Holds the latest probe for each probe id."""

    def __init__(self) -> None:
        self._probes: dict[str, Probe] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._probes)

    def __contains__(self, probe_id: object) -> bool:
        with self._lock:
            return probe_id in self._probes

    def __repr__(self) -> str:
        with self._lock:
            return f"MemoryStore({list(self._probes.values())!r})"

    def save_probe(self, probe: Probe) -> None:
        """Store ``probe`` unless a probe with a later or equal time is held."""
        with self._lock:
            current = self._probes.get(probe.probe_id)
            if current is None or probe.event_received_time > current.event_received_time:
                self._probes[probe.probe_id] = probe

    def get_probe(self, probe_id: str) -> Optional[Probe]:
        """Return the stored probe, or None if there is none."""
        with self._lock:
            return self._probes.get(probe_id)

    def serialise(self) -> list[ProbeProto]:
        """Return every stored probe in wire form."""
        with self._lock:
            probes = list(self._probes.values())
        return [probe.to_proto() for probe in probes]

    def deserialise_and_update(self, protos: Iterable[ProbeProto]) -> None:
        """Merge probes in wire form, keeping the newer of each pair."""
        log.info("de_serialising data")
        for proto in protos:
            self.save_probe(Probe.from_proto(proto))