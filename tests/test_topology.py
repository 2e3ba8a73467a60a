"""Tests for the desired topology model."""

import pytest

from redisreconciler.exceptions import ConfigurationError
from redisreconciler.topology import DesiredPair, DesiredTopology, NodeAddress


class TestNodeAddress:
    def test_parse(self) -> None:
        address = NodeAddress.parse("10.0.0.1:7001")
        assert address == NodeAddress("10.0.0.1", 7001)
        assert str(address) == "10.0.0.1:7001"

    def test_parse_hostname(self) -> None:
        assert NodeAddress.parse(" redis-b1:7004 ") == NodeAddress("redis-b1", 7004)

    @pytest.mark.parametrize("value", ["10.0.0.1", ":7001", "10.0.0.1:port", "10.0.0.1:0"])
    def test_parse_invalid(self, value: str) -> None:
        with pytest.raises(ConfigurationError):
            NodeAddress.parse(value)

    def test_hashable(self) -> None:
        assert {NodeAddress("a", 1): 1}[NodeAddress("a", 1)] == 1


class TestDesiredTopology:
    def test_empty_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="at least one pair"):
            DesiredTopology([])

    def test_duplicate_address_rejected(self) -> None:
        a, b, c = NodeAddress("h", 1), NodeAddress("h", 2), NodeAddress("h", 3)
        with pytest.raises(ConfigurationError, match="more than one pair"):
            DesiredTopology([DesiredPair(a, b), DesiredPair(c, a)])

    def test_same_address_in_pair_rejected(self) -> None:
        a = NodeAddress("h", 1)
        with pytest.raises(ConfigurationError, match="same address"):
            DesiredTopology([DesiredPair(a, a)])

    def test_from_addresses(self) -> None:
        topology = DesiredTopology.from_addresses(["h:1", "h:2"], ["h:3", "h:4"])
        assert topology.masters == [NodeAddress("h", 1), NodeAddress("h", 2)]
        assert topology.replicas == [NodeAddress("h", 3), NodeAddress("h", 4)]

    def test_from_addresses_length_mismatch(self) -> None:
        with pytest.raises(ConfigurationError, match="1:1"):
            DesiredTopology.from_addresses(["h:1", "h:2"], ["h:3"])

    def test_from_string(self) -> None:
        topology = DesiredTopology.from_string("a:7001=b:7004, b:7002=a:7005,")
        assert len(topology) == 2
        assert topology.pairs[1] == DesiredPair(NodeAddress("b", 7002), NodeAddress("a", 7005))

    def test_from_string_invalid(self) -> None:
        with pytest.raises(ConfigurationError, match="master=replica"):
            DesiredTopology.from_string("a:7001")

    def test_from_hosts_spreads_replicas(self) -> None:
        topology = DesiredTopology.from_hosts(["b1", "b2", "b3"])
        assert [str(p) for p in topology] == [
            "b1:7001 -> b2:7005",
            "b2:7002 -> b3:7006",
            "b3:7003 -> b1:7004",
        ]
        for pair in topology:
            assert pair.master.host != pair.replica.host

    def test_from_hosts_empty(self) -> None:
        with pytest.raises(ConfigurationError, match="No hosts"):
            DesiredTopology.from_hosts([" ", ""])

    def test_addresses_in_declared_order(self, topology: DesiredTopology) -> None:
        addresses = topology.addresses
        assert addresses[0] == topology.pairs[0].master
        assert addresses[1] == topology.pairs[0].replica
        assert len(addresses) == 6

    def test_contains(self, topology: DesiredTopology) -> None:
        assert topology.pairs[2].replica in topology
        assert NodeAddress("10.9.9.9", 7001) not in topology
