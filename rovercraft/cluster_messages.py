"""Wire messages of the cluster health-check and partition services."""

from __future__ import annotations

from dataclasses import dataclass

from rovercraft.probe_messages import Message, _proto_field


@dataclass
class HealthCheckRequest(Message):
    """Ping sent to a peer."""

    ping: bool = _proto_field(1, "bool")


@dataclass
class HealthCheckResponse(Message):
    """Reply to a ping."""

    pong: bool = _proto_field(1, "bool")


@dataclass
class AnnounceAliveServingRequest(Message):
    """Announces that a node is alive and serving its partitions again."""

    host_name: str = _proto_field(1, "string")
    leader_partitions: list[int] = _proto_field(2, "uint32", repeated=True)
    follower_partitions: list[int] = _proto_field(3, "uint32", repeated=True)


@dataclass
class AnnounceAliveNotServingRequest(Message):
    """Announces that a node is alive but still catching up."""

    host_name: str = _proto_field(1, "string")
    leader_partitions: list[int] = _proto_field(2, "uint32", repeated=True)


@dataclass
class Empty(Message):
    """Message without fields."""