"""Per-node reachability and self-reported state."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from redisreconciler.admin import ClusterAdmin
from redisreconciler.exceptions import ReconcilerError
from redisreconciler.topology import NodeAddress

logger = structlog.get_logger(__name__)


class NodeRole(Enum):
    """Role a node reports, not the role it is supposed to have."""

    MASTER = "master"
    REPLICA = "replica"
    UNSET = "unset"

    @classmethod
    def from_reply(cls, value: str | None) -> "NodeRole":
        """Map a ROLE reply or a CLUSTER NODES flag to a role."""
        if value is None:
            return cls.UNSET
        value = value.lower()
        if value == "master":
            return cls.MASTER
        if value in ("slave", "replica"):
            return cls.REPLICA
        return cls.UNSET


class Reachability(Enum):
    """Outcome of a direct liveness probe."""

    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class ProbeResult:
    """What a single node told us about itself."""

    address: NodeAddress
    reachability: Reachability
    role: NodeRole = NodeRole.UNSET
    node_id: str | None = None
    cluster_info: str | None = None

    @property
    def is_up(self) -> bool:
        return self.reachability is Reachability.UP


class NodeProbe:
    """Queries nodes directly; never raises on node or command failure."""

    def __init__(self, admin: ClusterAdmin) -> None:
        self._admin = admin

    async def probe(self, address: NodeAddress) -> ProbeResult:
        """Probe one node.

        An unreachable node yields ``Reachability.DOWN`` and no data. If the
        node answers PING but a later query fails, that field stays empty.
        """
        try:
            alive = await self._admin.ping(address)
        except ReconcilerError as e:
            logger.debug("Node did not answer ping", address=str(address), error=str(e))
            return ProbeResult(address, Reachability.DOWN)

        if not alive:
            return ProbeResult(address, Reachability.DOWN)

        role = await self._query(address, self._admin.role)
        node_id = await self._query(address, self._admin.cluster_myid)
        cluster_info = await self._query(address, self._admin.cluster_info)

        return ProbeResult(
            address,
            Reachability.UP,
            role=NodeRole.from_reply(role),
            node_id=node_id or None,
            cluster_info=cluster_info,
        )

    async def probe_all(self, addresses: Sequence[NodeAddress]) -> list[ProbeResult]:
        """Probe many nodes concurrently; results keep the input order."""
        return list(await asyncio.gather(*(self.probe(a) for a in addresses)))

    async def _query(
        self, address: NodeAddress, query: Callable[[NodeAddress], Awaitable[str]]
    ) -> str | None:
        try:
            return await query(address)
        except ReconcilerError as e:
            logger.debug(
                "Node query failed", address=str(address), query=query.__name__, error=str(e)
            )
            return None
