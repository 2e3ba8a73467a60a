"""Planned corrective actions.

Every action is additive or role-restorative. There is no type for
removing, resetting or flushing a node.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar

from redisreconciler.topology import DesiredPair, NodeAddress


class Category(Enum):
    """Classification of a pair's discrepancy."""

    FAILOVER_RECOVERY = "failover_recovery"
    DOWN_MASTER = "down_master"
    MISSING_MASTER = "missing_master"
    MISSING_REPLICA = "missing_replica"
    DOWN_REPLICA = "down_replica"
    HEALTHY = "healthy"
    AMBIGUOUS = "ambiguous"
    BOOTSTRAP = "bootstrap"


@dataclass(frozen=True, order=True)
class SlotRange:
    """Inclusive range of hash slots."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


class Action:
    """Base class for planned work.

    ``phase`` fixes execution order: recoveries run before additions so that
    additions target a stable topology.
    """

    phase: ClassVar[int]
    category: Category

    def describe(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class RestoreMasterViaFailover(Action):
    """Promote the declared master back over its temporarily promoted replica."""

    master: NodeAddress
    category: Category = Category.FAILOVER_RECOVERY

    phase: ClassVar[int] = 0

    def describe(self) -> str:
        return f"failover {self.master} back to master"


@dataclass(frozen=True)
class RebindReplica(Action):
    """Point a replica at its declared master."""

    replica: NodeAddress
    master: NodeAddress
    category: Category = Category.FAILOVER_RECOVERY

    phase: ClassVar[int] = 0

    def describe(self) -> str:
        return f"rebind replica {self.replica} to {self.master}"


@dataclass(frozen=True)
class AddMaster(Action):
    """Admit a node as a master; slots are only assigned on bootstrap."""

    address: NodeAddress
    slots: SlotRange | None = None
    category: Category = Category.MISSING_MASTER

    phase: ClassVar[int] = 1

    def describe(self) -> str:
        if self.slots is not None:
            return f"add master {self.address} with slots {self.slots}"
        return f"add master {self.address}"


@dataclass(frozen=True)
class AddReplica(Action):
    """Admit a node as a replica of the given master.

    ``master_id`` is the id membership already knows for the master; the
    master itself is only asked when it is None.
    """

    address: NodeAddress
    master: NodeAddress
    master_id: str | None = field(default=None, compare=False)
    category: Category = Category.MISSING_REPLICA

    phase: ClassVar[int] = 2

    def describe(self) -> str:
        return f"add replica {self.address} of {self.master}"


@dataclass(frozen=True)
class NoOp(Action):
    """Nothing to do for a pair, possibly with a warning attached.

    ``blocking`` marks states that need an operator before the pair can
    converge.
    """

    reason: str
    pair: DesiredPair | None = None
    category: Category = Category.HEALTHY
    blocking: bool = False

    phase: ClassVar[int] = 3

    def describe(self) -> str:
        if self.pair is not None:
            return f"{self.pair}: {self.reason}"
        return self.reason

    @property
    def is_warning(self) -> bool:
        return self.category is not Category.HEALTHY


ADDITIVE_ACTIONS = (RestoreMasterViaFailover, RebindReplica, AddMaster, AddReplica, NoOp)
