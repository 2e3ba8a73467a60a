"""Administrative connection to a single Redis Cluster node."""

from dataclasses import dataclass
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import AuthenticationError, RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from redisreconciler.exceptions import CommandError, NodeUnreachableError, ProtocolError
from redisreconciler.topology import NodeAddress


@dataclass(frozen=True)
class TLSOptions:
    """Client-side TLS material for nodes started with tls-port."""

    ca_cert: str | None = None
    cert: str | None = None
    key: str | None = None


class NodeConnection:
    """Async connection used to issue administrative commands to one node."""

    def __init__(
        self,
        address: NodeAddress,
        *,
        password: str | None = None,
        timeout: float = 5.0,
        tls: TLSOptions | None = None,
    ) -> None:
        """Initialize connection (does not connect yet).

        Args:
            address: Node address
            password: Shared cluster password (requirepass / masterauth)
            timeout: Connect and per-command timeout in seconds
            tls: TLS options, or None for plaintext
        """
        self._address = address
        self._password = password
        self._timeout = timeout
        self._tls = tls
        self._client: aioredis.Redis | None = None

    @property
    def address(self) -> NodeAddress:
        """Get the node address."""
        return self._address

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._client is not None

    async def connect(self) -> None:
        """Open the connection and authenticate with a PING."""
        if self._client is not None:
            return

        kwargs: dict[str, Any] = {}
        if self._tls is not None:
            kwargs.update(
                ssl=True,
                ssl_ca_certs=self._tls.ca_cert,
                ssl_certfile=self._tls.cert,
                ssl_keyfile=self._tls.key,
            )

        client = aioredis.Redis(
            host=self._address.host,
            port=self._address.port,
            password=self._password,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
            decode_responses=True,
            **kwargs,
        )

        try:
            await client.ping()
        except AuthenticationError as e:
            await client.aclose()
            raise CommandError(f"Authentication to {self._address} failed: {e}") from e
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            await client.aclose()
            raise NodeUnreachableError(f"Failed to connect to {self._address}: {e}") from e
        except RedisError as e:
            await client.aclose()
            raise CommandError(f"{self._address} rejected PING: {e}") from e

        self._client = client

    async def close(self) -> None:
        """Close the connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NodeConnection":
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _ensure_connected(self) -> aioredis.Redis:
        if self._client is None:
            raise NodeUnreachableError(f"Not connected to {self._address}")
        return self._client

    async def execute(self, *args: Any) -> Any:
        """Execute a raw command, mapping redis errors to reconciler errors."""
        client = self._ensure_connected()
        try:
            return await client.execute_command(*args)
        except ResponseError as e:
            raise CommandError(f"{self._address} rejected {' '.join(map(str, args))}: {e}") from e
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            raise NodeUnreachableError(f"Lost connection to {self._address}: {e}") from e
        except RedisError as e:
            raise ProtocolError(f"{self._address}: {e}") from e

    async def _execute_text(self, *args: Any) -> str:
        # Subcommands go as separate args so redis-py returns the raw reply text.
        result = await self.execute(*args)
        if isinstance(result, bytes):
            result = result.decode()
        if not isinstance(result, str):
            raise ProtocolError(
                f"Expected text reply to {' '.join(args)}, got {type(result).__name__}"
            )
        return result

    async def ping(self) -> bool:
        return bool(await self.execute("PING"))

    async def role(self) -> str:
        """Return the role name the node reports for itself."""
        result = await self.execute("ROLE")
        if not isinstance(result, list | tuple) or not result:
            raise ProtocolError(f"Unexpected ROLE reply from {self._address}: {result!r}")
        role = result[0]
        return role.decode() if isinstance(role, bytes) else str(role)

    async def cluster_myid(self) -> str:
        return (await self._execute_text("CLUSTER", "MYID")).strip()

    async def cluster_nodes(self) -> str:
        return await self._execute_text("CLUSTER", "NODES")

    async def cluster_info(self) -> str:
        return await self._execute_text("CLUSTER", "INFO")

    async def cluster_meet(self, host: str, port: int) -> None:
        await self.execute("CLUSTER", "MEET", host, port)

    async def cluster_replicate(self, node_id: str) -> None:
        await self.execute("CLUSTER", "REPLICATE", node_id)

    async def cluster_failover(self, mode: str | None = None) -> None:
        """Trigger a failover; mode is None (graceful), FORCE or TAKEOVER."""
        if mode:
            await self.execute("CLUSTER", "FAILOVER", mode)
        else:
            await self.execute("CLUSTER", "FAILOVER")

    async def cluster_add_slots_range(self, start: int, end: int) -> None:
        await self.execute("CLUSTER", "ADDSLOTSRANGE", start, end)
