"""Administrative command surface of the clustered store."""

import asyncio
import ipaddress
import socket
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import structlog

from redisreconciler.connection import NodeConnection, TLSOptions
from redisreconciler.exceptions import ClusterError, NodeUnreachableError
from redisreconciler.retry import retry_with_backoff
from redisreconciler.topology import NodeAddress

logger = structlog.get_logger(__name__)


class FailoverMode(Enum):
    """Failover flavours understood by CLUSTER FAILOVER."""

    GRACEFUL = "graceful"
    FORCE = "force"
    TAKEOVER = "takeover"


class ClusterAdmin(ABC):
    """Abstract interface for the administrative commands the reconciler needs.

    Every method targets one node. Implementations raise
    ``NodeUnreachableError`` when the node cannot be reached and
    ``CommandError`` when it rejects a command.
    """

    @abstractmethod
    async def ping(self, address: NodeAddress) -> bool:
        """Check that the node answers."""
        ...

    @abstractmethod
    async def role(self, address: NodeAddress) -> str:
        """Role name the node reports for itself ("master", "slave", ...)."""
        ...

    @abstractmethod
    async def cluster_myid(self, address: NodeAddress) -> str:
        """Node id the node assigned to itself."""
        ...

    @abstractmethod
    async def cluster_nodes(self, address: NodeAddress) -> str:
        """Raw CLUSTER NODES dump as seen by the node."""
        ...

    @abstractmethod
    async def cluster_info(self, address: NodeAddress) -> str:
        """Raw CLUSTER INFO summary as seen by the node."""
        ...

    @abstractmethod
    async def cluster_add_node(
        self,
        new_address: NodeAddress,
        reference: NodeAddress,
        as_replica_of: str | None = None,
    ) -> None:
        """Admit a node through a joined reference node, optionally as a replica."""
        ...

    @abstractmethod
    async def cluster_replicate(self, address: NodeAddress, master_id: str) -> None:
        """Make the node replicate the given master."""
        ...

    @abstractmethod
    async def cluster_failover(
        self, address: NodeAddress, mode: FailoverMode = FailoverMode.GRACEFUL
    ) -> None:
        """Ask a replica to take over from its master."""
        ...

    @abstractmethod
    async def cluster_add_slots_range(self, address: NodeAddress, start: int, end: int) -> None:
        """Assign a contiguous slot range to a node (bootstrap only)."""
        ...

    async def close(self) -> None:
        """Release any held connections."""
        return None

    async def __aenter__(self) -> "ClusterAdmin":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


class RedisClusterAdmin(ClusterAdmin):
    """ClusterAdmin over redis-py, one cached connection per node."""

    def __init__(
        self,
        *,
        password: str | None = None,
        timeout: float = 5.0,
        tls: TLSOptions | None = None,
        join_attempts: int = 10,
    ) -> None:
        """Initialize the admin client.

        Args:
            password: Shared cluster password
            timeout: Connect and per-command timeout in seconds
            tls: TLS options, or None for plaintext
            join_attempts: Attempts to wait for a new node to learn its master
        """
        self._password = password
        self._timeout = timeout
        self._tls = tls
        self._join_attempts = join_attempts
        self._connections: dict[NodeAddress, NodeConnection] = {}

    async def _connection(self, address: NodeAddress) -> NodeConnection:
        conn = self._connections.get(address)
        if conn is None:
            conn = NodeConnection(
                address, password=self._password, timeout=self._timeout, tls=self._tls
            )
            await conn.connect()
            self._connections[address] = conn
        return conn

    async def _call(self, address: NodeAddress, method: str, *args: Any) -> Any:
        conn = await self._connection(address)
        try:
            return await getattr(conn, method)(*args)
        except NodeUnreachableError:
            # Drop the broken connection so the next call reconnects.
            self._connections.pop(address, None)
            await conn.close()
            raise

    async def ping(self, address: NodeAddress) -> bool:
        return await self._call(address, "ping")

    async def role(self, address: NodeAddress) -> str:
        return await self._call(address, "role")

    async def cluster_myid(self, address: NodeAddress) -> str:
        return await self._call(address, "cluster_myid")

    async def cluster_nodes(self, address: NodeAddress) -> str:
        return await self._call(address, "cluster_nodes")

    async def cluster_info(self, address: NodeAddress) -> str:
        return await self._call(address, "cluster_info")

    async def cluster_add_node(
        self,
        new_address: NodeAddress,
        reference: NodeAddress,
        as_replica_of: str | None = None,
    ) -> None:
        """Join ``new_address`` to the cluster ``reference`` belongs to.

        CLUSTER MEET is issued on the new node. For replicas, the new node
        must learn about its master over the cluster bus before CLUSTER
        REPLICATE is accepted, so that step is retried with backoff.
        """
        host = await _resolve_ip(reference.host)
        await self._call(new_address, "cluster_meet", host, reference.port)
        logger.info(
            "Node introduced to cluster", address=str(new_address), reference=str(reference)
        )

        if as_replica_of is None:
            return

        async def master_known() -> None:
            dump = await self._call(new_address, "cluster_nodes")
            if not any(line.split()[:1] == [as_replica_of] for line in dump.splitlines()):
                raise ClusterError(f"{new_address} does not know master {as_replica_of} yet")

        await retry_with_backoff(master_known, max_attempts=self._join_attempts, base_delay=0.2)
        await self._call(new_address, "cluster_replicate", as_replica_of)

    async def cluster_replicate(self, address: NodeAddress, master_id: str) -> None:
        await self._call(address, "cluster_replicate", master_id)

    async def cluster_failover(
        self, address: NodeAddress, mode: FailoverMode = FailoverMode.GRACEFUL
    ) -> None:
        arg = None if mode is FailoverMode.GRACEFUL else mode.value.upper()
        await self._call(address, "cluster_failover", arg)

    async def cluster_add_slots_range(self, address: NodeAddress, start: int, end: int) -> None:
        await self._call(address, "cluster_add_slots_range", start, end)

    async def close(self) -> None:
        """Close all cached connections."""
        connections = list(self._connections.values())
        self._connections.clear()
        for conn in connections:
            await conn.close()


async def _resolve_ip(host: str) -> str:
    """CLUSTER MEET takes an IP address; resolve hostnames first."""
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass

    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    except OSError as e:
        raise NodeUnreachableError(f"Cannot resolve {host}: {e}") from e
    if not infos:
        raise NodeUnreachableError(f"Cannot resolve {host}")
    return infos[0][4][0]
