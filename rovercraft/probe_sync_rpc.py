"""gRPC client and server binding of the probe synchronisation service."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional
from urllib.parse import urlsplit

import grpc

from rovercraft.probe_messages import (
    Message,
    PartitionRequest,
    ProbePartition,
    ProbeProto,
    ReadProbeRequest,
    WriteProbeRequest,
    WriteProbeResponse,
)

log = logging.getLogger(__name__)

PROBE_SYNC_TIMEOUT_MS = 150
_CONNECT_TIMEOUT_MS = 50
_SERVICE = "probe_sync.ProbeSync"


def grpc_target(address: str) -> str:
    """Turn a peer URL such as ``http://n1:9001`` into a gRPC target ``n1:9001``."""
    if "://" in address:
        parts = urlsplit(address)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"Unable to parse URI {address!r}")
        return parts.netloc
    if not address.strip():
        raise ValueError(f"Unable to parse URI {address!r}")
    return address


class _Channel:
    """A channel that connects on first use and applies a per-call timeout."""

    def __init__(self, address: str, timeout_ms: int) -> None:
        self.address = address
        self.target = grpc_target(address)
        self.timeout = timeout_ms / 1000
        self._channel: Optional[grpc.aio.Channel] = None

    def __repr__(self) -> str:
        return f"_Channel({self.address!r})"

    @property
    def channel(self) -> grpc.aio.Channel:
        if self._channel is None:
            self._channel = grpc.aio.insecure_channel(
                self.target,
                options=[("grpc.min_reconnect_backoff_ms", _CONNECT_TIMEOUT_MS)],
            )
        return self._channel

    async def close(self) -> None:
        if self._channel is not None:
            channel, self._channel = self._channel, None
            await channel.close()


def open_channel(address: str, timeout_ms: int) -> _Channel:
    """Prepare a lazily connected channel to ``address`` with a call timeout in milliseconds."""
    log.info("Channel to connect: %s", address)
    return _Channel(address, timeout_ms)


def _serialise(message: Message) -> bytes:
    return message.to_bytes()


async def _call(channel: _Channel, service: str, method: str, request: Message, response_type: type) -> Any:
    """Make a unary call; failures raise ``grpc.aio.AioRpcError``."""
    invoke = channel.channel.unary_unary(
        f"/{service}/{method}",
        request_serializer=_serialise,
        response_deserializer=response_type.from_bytes,
    )
    return await invoke(request, timeout=channel.timeout)


def _generic_handler(
    service: str, methods: Mapping[str, tuple[Callable[..., Any], type]]
) -> grpc.GenericRpcHandler:
    handlers = {
        name: grpc.unary_unary_rpc_method_handler(
            behaviour,
            request_deserializer=request_type.from_bytes,
            response_serializer=_serialise,
        )
        for name, (behaviour, request_type) in methods.items()
    }
    return grpc.method_handlers_generic_handler(service, handlers)


class ProbeSyncClient:
    """Client of the probe synchronisation service of one peer."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    def __repr__(self) -> str:
        return f"ProbeSyncClient({self._channel.address!r})"

    async def read_probe(self, request: ReadProbeRequest) -> ProbeProto:
        """Read one probe; a missing probe raises with status NOT_FOUND."""
        return await _call(self._channel, _SERVICE, "ReadProbe", request, ProbeProto)

    async def write_probe(self, request: WriteProbeRequest) -> WriteProbeResponse:
        """Write one probe into a partition of the peer."""
        return await _call(self._channel, _SERVICE, "WriteProbe", request, WriteProbeResponse)

    async def get_partition_data(self, request: PartitionRequest) -> ProbePartition:
        """Fetch the delta data the peer holds for a partition."""
        return await _call(self._channel, _SERVICE, "GetPartitionData", request, ProbePartition)

    async def close(self) -> None:
        await self._channel.close()


def probe_sync_handler(servicer: Any) -> grpc.GenericRpcHandler:
    """Bind a servicer with read_probe, write_probe and get_partition_data to the service."""
    return _generic_handler(
        _SERVICE,
        {
            "ReadProbe": (servicer.read_probe, ReadProbeRequest),
            "WriteProbe": (servicer.write_probe, WriteProbeRequest),
            "GetPartitionData": (servicer.get_partition_data, PartitionRequest),
        },
    )