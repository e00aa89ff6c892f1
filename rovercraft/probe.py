"""Probe records and the HTTP request that creates them."""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from rovercraft.probe_messages import ProbeProto


@dataclass(frozen=True)
class Probe:
    """One probe event; newer events replace older ones with the same id."""

    probe_id: str
    event_id: str
    event_received_time: int
    data: str

    def __hash__(self) -> int:
        return hash(self.probe_id)

    def __str__(self) -> str:
        return f"{self.probe_id},{self.event_id},{self.event_received_time}"

    @classmethod
    def from_proto(cls, proto: ProbeProto) -> Probe:
        """Build a probe from its wire form."""
        return cls(
            probe_id=proto.probe_id,
            event_id=proto.event_id,
            event_received_time=proto.event_date_time,
            data=proto.data,
        )

    def to_proto(self) -> ProbeProto:
        """Return the wire form of the probe."""
        return ProbeProto(
            probe_id=self.probe_id,
            event_id=self.event_id,
            event_date_time=self.event_received_time,
            data=self.data,
        )

    def to_json(self) -> dict[str, Any]:
        """Return the camelCase mapping used in HTTP responses."""
        return {
            "probeId": self.probe_id,
            "eventId": self.event_id,
            "eventReceivedTime": self.event_received_time,
            "data": self.data,
        }


@dataclass(frozen=True)
class ProbeRequest:
    """Body of a probe update request."""

    event_id: str
    data: str

    @classmethod
    def from_json(cls, payload: Union[str, bytes, bytearray, Mapping[str, Any]]) -> ProbeRequest:
        """Parse a JSON body (text or already decoded); raise ValueError if malformed."""
        if isinstance(payload, (str, bytes, bytearray)):
            payload = json.loads(payload)
        if not isinstance(payload, Mapping):
            raise ValueError("probe request must be a JSON object")
        values = {}
        for key, attribute in (("eventId", "event_id"), ("data", "data")):
            if key not in payload:
                raise ValueError(f"missing field {key!r}")
            value = payload[key]
            if not isinstance(value, str):
                raise ValueError(f"field {key!r} must be a string")
            values[attribute] = value
        return cls(**values)


def create_probe(probe_id: str, request: ProbeRequest) -> Probe:
    """Create a probe stamped with the current time in epoch milliseconds."""
    return Probe(
        probe_id=probe_id,
        event_id=request.event_id,
        event_received_time=time.time_ns() // 1_000_000,
        data=request.data,
    )