# rovercraft

rovercraft is a small clustered key-value store for *probes*. A probe is a record with a probe id, an event id, a receive timestamp and a data payload. Each node keeps its share of the data in memory. Clients read and write over HTTP, and the nodes keep each other in sync over gRPC.

## How it works

- **Partitioning.** A cluster of `n` nodes has `n * (n - 1)` partitions, and each node leads `n - 1` of them. `rovercraft.hashing.hash_key` hashes a probe id, and the result modulo the number of partitions picks the partition. `hash_key` runs SipHash-1-3 with a zero key, then FNV-1a.
- **Replication.** Each partition has a leader and a follower on a different node. A write goes to both of them. A read asks both and returns the record with the later `event_received_time`.
- **Conflict resolution.** A stored probe is replaced only by one whose `event_received_time` is strictly later (`MemoryStore.save_probe`).
- **Failure handling.** Each node pings its peers every 0.5 s, starting 5 s after startup (`rovercraft.health_check.start_health_check`). A failed read or write also reports the peer. A peer that stops answering is marked dead and the partitions are rebalanced:
  - a follower takes over a dead leader's partition;
  - while a replica is away, the writes it misses are kept as *delta data*.

  A node that can reach none of its peers marks itself dead.
- **Recovery.** When a dead node can reach a peer again, it takes these steps:
  1. It announces itself as alive but not serving and takes back its leader partitions.
  2. It fetches the delta data for its partitions from their other replicas and merges it.
  3. It announces itself as alive and serving.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Running a node

```
rovercraft --listen-client-urls http://localhost:9000 \
           --listen-peer-urls http://localhost:9001 \
           --initial-cluster n1,n2,n3
```

| Option | Default | Meaning |
| --- | --- | --- |
| `--listen-client-urls` | `http://localhost:9000` | Only the port of this URL is used; the HTTP API listens there on all addresses |
| `--listen-peer-urls` | `http://localhost:9001` | Only the port of this URL is used; the gRPC services listen there on all addresses |
| `--initial-cluster` | `n1,n2,n3` | Comma-separated host names of all cluster members |

Each member is reached at `http://<host>:<peer port>`. A node counts a member as itself when the machine's host name appears in that member's address.

At startup the node writes its process id to `./rovercraft.pid`.

## HTTP API

Write or update a probe:

```
PUT /probe/<probe_id>
Content-Type: application/json

{"eventId": "event-1", "data": "some data"}
```

The node stamps the probe with the current time in epoch milliseconds. The response is the stored probe as JSON, with the fields `probeId`, `eventId`, `eventReceivedTime` and `data`. If the leader write or the follower write fails, the response is status 500. A malformed body gets status 400. Bodies are limited to 16 KiB.

Read a probe:

```
GET /probe/<probe_id>
```

The response is the probe as JSON, or status 404 if neither replica holds it. Both endpoints answer 500 while the node itself is not serving.

## gRPC services

Peers talk over three services. The messages use the proto3 wire format and are defined as dataclasses in `rovercraft.probe_messages` and `rovercraft.cluster_messages`.

- `probe_sync.ProbeSync`: `ReadProbe`, `WriteProbe` and `GetPartitionData`. Served by `rovercraft.services.ProbeSyncService`; the client is `rovercraft.probe_sync_rpc.ProbeSyncClient`.
- `cluster.HealthCheck`: `HealthCheck`. Served by `rovercraft.health_check.HealthCheckService`; the client is `rovercraft.cluster_rpc.HealthCheckClient`.
- `cluster.PartitionProto`: `MakeNodeAliveNotServing` and `MakeNodeAliveServing`. Served by `rovercraft.services.ProtoPartitionService`; the client is `rovercraft.cluster_rpc.PartitionProtoClient`.

## Using the pieces as a library

```python
from rovercraft.probe import Probe
from rovercraft.store import MemoryStore

store = MemoryStore()
store.save_probe(Probe("probe-1", "event-1", 1000, "first"))
store.save_probe(Probe("probe-1", "event-2", 900, "older, ignored"))
assert store.get_probe("probe-1").event_id == "event-1"
```

Messages encode and decode with `to_bytes` and `from_bytes`:

```python
from rovercraft.probe_messages import ProbeProto

proto = ProbeProto(probe_id="probe-1", event_id="event-1", event_date_time=1000, data="x")
assert ProbeProto.from_bytes(proto.to_bytes()) == proto
```

## Limitations

- Data is held in memory only. Nothing is written to disk, so a node that restarts starts empty.
- The cluster membership is fixed by `--initial-cluster`. Members cannot be added or removed while the cluster runs.
- Connections between nodes are unencrypted and unauthenticated.