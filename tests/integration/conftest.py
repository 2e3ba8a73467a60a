"""Integration test fixtures for redis-cluster-reconciler.

These tests require six running cluster-enabled Redis nodes. By default they
are expected on 127.0.0.1 ports 7001-7006, for example:
    for port in 7001 7002 7003 7004 7005 7006; do
        redis-server --port $port --cluster-enabled yes \
            --cluster-config-file nodes-$port.conf --requirepass secret \
            --masterauth secret --daemonize yes
    done
"""

import os
from collections.abc import AsyncIterator

import pytest

from redisreconciler.admin import RedisClusterAdmin
from redisreconciler.topology import DesiredTopology

TEST_PAIRS = os.environ.get(
    "REDIS_RECONCILER_TEST_PAIRS",
    "127.0.0.1:7001=127.0.0.1:7004,127.0.0.1:7002=127.0.0.1:7005,127.0.0.1:7003=127.0.0.1:7006",
)
TEST_PASSWORD = os.environ.get("REDIS_RECONCILER_TEST_PASSWORD", "secret")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: marks tests as requiring a live Redis Cluster")


@pytest.fixture
def live_topology() -> DesiredTopology:
    """Get the desired topology of the test nodes."""
    return DesiredTopology.from_string(TEST_PAIRS)


@pytest.fixture
async def admin() -> AsyncIterator[RedisClusterAdmin]:
    """Admin client for the test nodes."""
    async with RedisClusterAdmin(password=TEST_PASSWORD, timeout=2.0) as client:
        yield client
