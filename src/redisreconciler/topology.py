"""Desired topology: fixed master/replica pairs pinned to hosts."""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from redisreconciler.exceptions import ConfigurationError


@dataclass(frozen=True, order=True)
class NodeAddress:
    """Host and port of a cluster node."""

    host: str
    port: int

    @classmethod
    def parse(cls, value: str) -> "NodeAddress":
        """Parse a "host:port" string."""
        host, sep, port_str = value.strip().rpartition(":")
        if not sep or not host:
            raise ConfigurationError(f"Invalid node address {value!r}, expected host:port")
        try:
            port = int(port_str)
        except ValueError as e:
            raise ConfigurationError(f"Invalid port in node address {value!r}") from e
        if not 0 < port < 65536:
            raise ConfigurationError(f"Port out of range in node address {value!r}")
        return cls(host, port)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class DesiredPair:
    """A master and the replica that must replicate it."""

    master: NodeAddress
    replica: NodeAddress

    def __str__(self) -> str:
        return f"{self.master} -> {self.replica}"


class DesiredTopology:
    """Ordered, validated set of desired pairs.

    Every address appears in exactly one pair in exactly one role. The
    declaration order is significant: probing, reference node selection and
    slot assignment on bootstrap all follow it.
    """

    def __init__(self, pairs: Sequence[DesiredPair]) -> None:
        if not pairs:
            raise ConfigurationError("Desired topology must declare at least one pair")

        seen: set[NodeAddress] = set()
        for pair in pairs:
            if pair.master == pair.replica:
                raise ConfigurationError(f"Pair {pair} uses the same address twice")
            for address in (pair.master, pair.replica):
                if address in seen:
                    raise ConfigurationError(f"Address {address} appears in more than one pair")
                seen.add(address)

        self._pairs = tuple(pairs)

    @classmethod
    def from_addresses(cls, masters: Sequence[str], replicas: Sequence[str]) -> "DesiredTopology":
        """Create a topology from parallel lists of master and replica addresses."""
        if len(masters) != len(replicas):
            raise ConfigurationError(
                f"Got {len(masters)} masters but {len(replicas)} replicas; pairs must be 1:1"
            )
        return cls(
            [
                DesiredPair(NodeAddress.parse(m), NodeAddress.parse(r))
                for m, r in zip(masters, replicas, strict=True)
            ]
        )

    @classmethod
    def from_string(cls, value: str) -> "DesiredTopology":
        """Parse "master=replica,master=replica" into a topology."""
        pairs: list[DesiredPair] = []
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            master, sep, replica = item.partition("=")
            if not sep:
                raise ConfigurationError(f"Invalid pair {item!r}, expected master=replica")
            pairs.append(DesiredPair(NodeAddress.parse(master), NodeAddress.parse(replica)))
        return cls(pairs)

    @classmethod
    def from_hosts(
        cls,
        hosts: Sequence[str],
        *,
        master_port_start: int = 7001,
        replica_port_start: int = 7004,
    ) -> "DesiredTopology":
        """Lay out one master and one replica per host.

        Host ``i`` runs the master on ``master_port_start + i`` and a replica on
        ``replica_port_start + i``. The replica on host ``i`` replicates the
        master on host ``i - 1``, so no pair lives on a single host.
        """
        hosts = [h.strip() for h in hosts if h.strip()]
        if not hosts:
            raise ConfigurationError("No hosts configured")

        n = len(hosts)
        pairs = []
        for i, host in enumerate(hosts):
            j = (i + 1) % n
            master = NodeAddress(host, master_port_start + i)
            replica = NodeAddress(hosts[j], replica_port_start + j)
            pairs.append(DesiredPair(master, replica))
        return cls(pairs)

    @property
    def pairs(self) -> tuple[DesiredPair, ...]:
        return self._pairs

    @property
    def masters(self) -> list[NodeAddress]:
        return [p.master for p in self._pairs]

    @property
    def replicas(self) -> list[NodeAddress]:
        return [p.replica for p in self._pairs]

    @property
    def addresses(self) -> list[NodeAddress]:
        """All expected addresses in declaration order, pair by pair."""
        result: list[NodeAddress] = []
        for pair in self._pairs:
            result.append(pair.master)
            result.append(pair.replica)
        return result

    def __iter__(self) -> Iterator[DesiredPair]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __contains__(self, address: object) -> bool:
        return any(address in (p.master, p.replica) for p in self._pairs)

    def __repr__(self) -> str:
        return f"DesiredTopology({[str(p) for p in self._pairs]})"
