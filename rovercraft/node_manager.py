"""The set of cluster members and their status changes."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from operator import attrgetter
from typing import Optional

from rovercraft.node_ref import NodeRef, NodeStatus

log = logging.getLogger(__name__)


class NodeManager:
    """Cluster members, kept sorted by host name."""

    def __init__(self, nodes: Iterable[NodeRef] = ()) -> None:
        self.nodes: list[NodeRef] = sorted(nodes, key=attrgetter("host_name"))
        self._lock = threading.Lock()

    @classmethod
    def from_hosts(cls, node_hosts: Iterable[str]) -> NodeManager:
        """Create a member for every host address."""
        return cls(NodeRef(host) for host in node_hosts)

    def __repr__(self) -> str:
        return f"NodeManager({self.nodes!r})"

    def _single_node(self, node_host: str) -> NodeRef:
        node = self.get_node(node_host)
        if node is None:
            raise KeyError(node_host)
        return node

    def _change_state(self, node: NodeRef, status: NodeStatus) -> bool:
        node.node_status = status
        log.info("After state change host: %s, status: %s", node.host_name, node.node_status.value)
        return True

    def make_node_alive_and_serving(self, node_host: str) -> bool:
        """Mark a member serving; False if it already was."""
        with self._lock:
            node = self._single_node(node_host)
            if node.node_status is NodeStatus.ALIVE_SERVING:
                return False
            return self._change_state(node, NodeStatus.ALIVE_SERVING)

    def make_node_alive_and_not_serving(self, node_host: str) -> bool:
        """Mark a member alive but catching up; False if it is serving already."""
        with self._lock:
            node = self._single_node(node_host)
            if node.node_status is NodeStatus.ALIVE_SERVING:
                return False
            return self._change_state(node, NodeStatus.ALIVE_NOT_SERVING)

    def make_node_dead(self, node_host: str) -> None:
        with self._lock:
            self._change_state(self._single_node(node_host), NodeStatus.DEAD)

    def is_current_node_down(self) -> bool:
        """This node counts as down when every peer looks dead from here."""
        return all(node.node_status is NodeStatus.DEAD for node in self.get_peers())

    def get_node(self, node_host: str) -> Optional[NodeRef]:
        node = next((node for node in self.nodes if node.host_name == node_host), None)
        if node is None:
            log.error("Unable to get existing node %s", node_host)
        return node

    def get_current_node(self) -> Optional[NodeRef]:
        return next((node for node in self.nodes if node.is_current_node()), None)

    def get_peers(self) -> list[NodeRef]:
        return [node for node in self.nodes if not node.is_current_node()]