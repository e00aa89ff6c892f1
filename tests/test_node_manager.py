import pytest

from rovercraft.node_manager import NodeManager
from rovercraft.node_ref import NodeStatus, current_hostname, is_current_host

CURRENT = f"http://{current_hostname()}:9001"


def _peers():
    candidates = ("http://n1:9001", "http://n2:9001", "http://n3:9001", "http://peer-a:9001", "http://peer-b:9001")
    return [c for c in candidates if not is_current_host(c)][:2]


def _manager():
    peers = _peers()
    return NodeManager.from_hosts([peers[1], CURRENT, peers[0]]), peers


def test_nodes_are_sorted_by_host_name():
    manager, _ = _manager()
    names = [node.host_name for node in manager.nodes]
    assert names == sorted(names)
    assert len(names) == 3


def test_current_node_and_peers():
    manager, peers = _manager()
    assert manager.get_current_node().host_name == CURRENT
    assert [node.host_name for node in manager.get_peers()] == sorted(peers)


def test_no_current_node_among_peers_only():
    manager = NodeManager.from_hosts(_peers())
    assert manager.get_current_node() is None
    assert len(manager.get_peers()) == 2


def test_current_node_down_when_all_peers_dead():
    manager, peers = _manager()
    assert not manager.is_current_node_down()
    manager.make_node_dead(peers[0])
    assert not manager.is_current_node_down()
    manager.make_node_dead(peers[1])
    assert manager.is_current_node_down()
    assert manager.get_node(peers[0]).is_dead()


def test_alive_and_serving_transitions():
    manager, peers = _manager()
    assert manager.make_node_alive_and_serving(peers[0]) is False
    manager.make_node_dead(peers[0])
    assert manager.make_node_alive_and_serving(peers[0]) is True
    assert manager.get_node(peers[0]).node_status is NodeStatus.ALIVE_SERVING


def test_alive_not_serving_transitions():
    manager, peers = _manager()
    assert manager.make_node_alive_and_not_serving(peers[1]) is False
    manager.make_node_dead(peers[1])
    assert manager.make_node_alive_and_not_serving(peers[1]) is True
    assert manager.get_node(peers[1]).node_status is NodeStatus.ALIVE_NOT_SERVING
    assert manager.make_node_alive_and_not_serving(peers[1]) is True
    assert manager.get_node(peers[1]).is_not_serving()


def test_unknown_host():
    manager, _ = _manager()
    assert manager.get_node("http://unknown-host:9001") is None
    with pytest.raises(KeyError):
        manager.make_node_dead("http://unknown-host:9001")
    with pytest.raises(KeyError):
        manager.make_node_alive_and_serving("http://unknown-host:9001")