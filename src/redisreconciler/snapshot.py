"""Normalized view of live cluster membership.

All parsing of raw CLUSTER NODES / CLUSTER INFO text happens here; the
planner only ever sees typed records.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType

import structlog

from redisreconciler.admin import ClusterAdmin
from redisreconciler.exceptions import ReconcilerError
from redisreconciler.probe import NodeProbe, NodeRole, ProbeResult, Reachability
from redisreconciler.topology import DesiredTopology, NodeAddress

logger = structlog.get_logger(__name__)

CLUSTER_SLOTS = 16384
SELF_FLAG = "myself"
FAIL_FLAG = "fail"


class HealthState(Enum):
    """Cluster-wide health as reported by cluster_state."""

    OK = "ok"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"


class Availability(Enum):
    """How many expected nodes answer at all."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ClusterMember:
    """One line of a CLUSTER NODES dump."""

    node_id: str
    address: NodeAddress
    role: NodeRole
    flags: frozenset[str]
    master_id: str | None = None
    link_state: str = "connected"
    slots: tuple[str, ...] = ()
    reachability: Reachability = Reachability.UP

    @property
    def failed(self) -> bool:
        """Terminal fail flag; "fail?" (suspected) does not count."""
        return FAIL_FLAG in self.flags

    @property
    def is_self(self) -> bool:
        return SELF_FLAG in self.flags


def parse_member_line(line: str) -> ClusterMember | None:
    """Map one CLUSTER NODES line to a member by column position.

    Returns None for lines that cannot describe an addressable member.
    """
    fields = line.split()
    if len(fields) < 8:
        return None

    node_id, raw_address, raw_flags, master = fields[0], fields[1], fields[2], fields[3]

    # ip:port@cport[,hostname]
    host_port = raw_address.split("@", 1)[0]
    host, sep, port_str = host_port.rpartition(":")
    if not sep or not host or not port_str.isdigit() or int(port_str) == 0:
        return None

    flags = frozenset(f for f in raw_flags.split(",") if f)
    # A handshake entry carries a temporary id until the node has really joined.
    if "noaddr" in flags or "handshake" in flags:
        return None

    if "master" in flags:
        role = NodeRole.MASTER
    elif "slave" in flags or "replica" in flags:
        role = NodeRole.REPLICA
    else:
        role = NodeRole.UNSET

    return ClusterMember(
        node_id=node_id,
        address=NodeAddress(host, int(port_str)),
        role=role,
        flags=flags,
        master_id=None if master == "-" else master,
        link_state=fields[7],
        slots=tuple(fields[8:]),
    )


def parse_cluster_nodes(dump: str) -> list[ClusterMember] | None:
    """Parse a CLUSTER NODES dump.

    The dump is only valid if some non-empty line carries the "myself" flag;
    otherwise None is returned.
    """
    members: list[ClusterMember] = []
    has_self = False
    for line in dump.splitlines():
        line = line.strip()
        if not line:
            continue
        member = parse_member_line(line)
        if member is None:
            continue
        has_self = has_self or member.is_self
        members.append(member)

    return members if has_self else None


def parse_cluster_info(text: str | None) -> dict[str, str]:
    """Parse "key:value" lines of CLUSTER INFO."""
    info: dict[str, str] = {}
    if not text:
        return info
    for line in text.splitlines():
        key, sep, value = line.strip().partition(":")
        if sep and key:
            info[key] = value.strip()
    return info


def health_from_info(info: Mapping[str, str]) -> HealthState:
    state = info.get("cluster_state")
    if state == "ok":
        return HealthState.OK
    if state == "fail":
        return HealthState.DEGRADED
    return HealthState.UNKNOWN


def is_cluster_joined(info: Mapping[str, str]) -> bool:
    """A node is joined once it knows peers or serves slots."""
    try:
        known = int(info.get("cluster_known_nodes", "0"))
        assigned = int(info.get("cluster_slots_assigned", "0"))
    except ValueError:
        return False
    return known > 1 or assigned > 0


@dataclass(frozen=True)
class Snapshot:
    """Write-once view of the cluster built on every run."""

    topology: DesiredTopology
    timestamp: datetime
    cluster_exists: bool
    health: HealthState
    members: Mapping[NodeAddress, ClusterMember]
    reachability: Mapping[NodeAddress, Reachability]
    probes: Mapping[NodeAddress, ProbeResult] = field(default_factory=dict)
    source: NodeAddress | None = None
    slots_assigned: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "members", MappingProxyType(dict(self.members)))
        object.__setattr__(self, "reachability", MappingProxyType(dict(self.reachability)))
        object.__setattr__(self, "probes", MappingProxyType(dict(self.probes)))

    def is_up(self, address: NodeAddress) -> bool:
        return self.reachability.get(address) is Reachability.UP

    def member(self, address: NodeAddress) -> ClusterMember | None:
        return self.members.get(address)

    def role_of(self, address: NodeAddress) -> NodeRole:
        """Role the node reports directly; membership flags if it is down."""
        probe = self.probes.get(address)
        if probe is not None and probe.is_up and probe.role is not NodeRole.UNSET:
            return probe.role
        member = self.members.get(address)
        if member is not None:
            return member.role
        return NodeRole.UNSET

    def node_id_of(self, address: NodeAddress) -> str | None:
        member = self.members.get(address)
        if member is not None:
            return member.node_id
        probe = self.probes.get(address)
        if probe is not None and probe.is_up:
            return probe.node_id
        return None

    @property
    def reference(self) -> NodeAddress | None:
        """First reachable member in desired order, used to admit new nodes."""
        if not self.cluster_exists:
            return None
        if self.source is not None:
            return self.source
        for address in self.topology.addresses:
            if self.is_up(address) and address in self.members:
                return address
        return None

    @property
    def strangers(self) -> list[ClusterMember]:
        """Members the desired topology does not declare."""
        return [m for a, m in self.members.items() if a not in self.topology]

    def availability(self) -> Availability:
        expected = self.topology.addresses
        up = sum(1 for a in expected if self.is_up(a))
        if up == len(expected):
            return Availability.HEALTHY
        if up >= len(self.topology):
            return Availability.DEGRADED
        return Availability.CRITICAL


class SnapshotBuilder:
    """Builds a Snapshot from live probes of every expected node."""

    def __init__(self, admin: ClusterAdmin, topology: DesiredTopology) -> None:
        self._admin = admin
        self._topology = topology
        self._probe = NodeProbe(admin)

    async def build(self) -> Snapshot:
        """Probe every node, then read membership from the first joined responder."""
        addresses = self._topology.addresses
        probes = await self._probe.probe_all(addresses)
        by_address = {p.address: p for p in probes}
        reachability = {p.address: p.reachability for p in probes}

        for probe in probes:
            if not probe.is_up:
                continue
            info = parse_cluster_info(probe.cluster_info)
            if not info or not is_cluster_joined(info):
                continue

            members = await self._read_members(probe.address)
            if members is None:
                continue

            logger.info(
                "Cluster membership read",
                source=str(probe.address),
                members=len(members),
                cluster_state=info.get("cluster_state"),
            )
            return Snapshot(
                topology=self._topology,
                timestamp=datetime.now(UTC),
                cluster_exists=True,
                health=health_from_info(info),
                members=self._with_reachability(members, reachability),
                reachability=reachability,
                probes=by_address,
                source=probe.address,
                slots_assigned=int(info.get("cluster_slots_assigned", "0") or 0),
            )

        logger.info(
            "No joined node found, cluster does not exist yet",
            reachable=sum(1 for p in probes if p.is_up),
            expected=len(addresses),
        )
        return Snapshot(
            topology=self._topology,
            timestamp=datetime.now(UTC),
            cluster_exists=False,
            health=HealthState.UNKNOWN,
            members={},
            reachability=reachability,
            probes=by_address,
        )

    async def _read_members(self, address: NodeAddress) -> list[ClusterMember] | None:
        try:
            dump = await self._admin.cluster_nodes(address)
        except ReconcilerError as e:
            logger.debug("Could not read cluster nodes", address=str(address), error=str(e))
            return None
        members = parse_cluster_nodes(dump)
        if members is None:
            logger.debug("Ignoring membership dump without self entry", address=str(address))
        return members

    @staticmethod
    def _with_reachability(
        members: list[ClusterMember], reachability: Mapping[NodeAddress, Reachability]
    ) -> dict[NodeAddress, ClusterMember]:
        result: dict[NodeAddress, ClusterMember] = {}
        for member in members:
            # Nodes we did not probe keep the gossip view.
            state = reachability.get(member.address)
            if state is None:
                state = Reachability.DOWN if member.failed else Reachability.UP
            result[member.address] = replace(member, reachability=state)
        return result
