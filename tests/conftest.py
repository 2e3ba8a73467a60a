"""Pytest configuration for redis-cluster-reconciler tests."""

import os

import pytest
from fakes import HOSTS, FakeCluster, make_healthy

from redisreconciler.topology import DesiredTopology


@pytest.fixture
def topology() -> DesiredTopology:
    """Three pairs, one master and one replica per host."""
    return DesiredTopology.from_hosts(HOSTS)


@pytest.fixture
def fake(topology: DesiredTopology) -> FakeCluster:
    """All six nodes started and reachable, none joined."""
    cluster = FakeCluster()
    for address in topology.addresses:
        cluster.add_node(address)
    return cluster


@pytest.fixture
def healthy(fake: FakeCluster, topology: DesiredTopology) -> FakeCluster:
    """A cluster that matches the desired topology exactly."""
    make_healthy(fake, topology)
    return fake


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop reconciler settings inherited from the calling shell."""
    for key in list(os.environ):
        if key.startswith("RECONCILER_") or key == "REDIS_PASSWORD":
            monkeypatch.delenv(key)
