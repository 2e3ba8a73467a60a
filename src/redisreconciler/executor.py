"""Applies planned actions against the store, one at a time."""

from dataclasses import dataclass, field
from enum import Enum

import structlog

from redisreconciler.actions import (
    Action,
    AddMaster,
    AddReplica,
    NoOp,
    RebindReplica,
    RestoreMasterViaFailover,
)
from redisreconciler.admin import ClusterAdmin, FailoverMode
from redisreconciler.exceptions import ClusterError, ReconcilerError
from redisreconciler.planner import Plan
from redisreconciler.probe import NodeRole
from redisreconciler.retry import poll_until
from redisreconciler.snapshot import Snapshot
from redisreconciler.topology import NodeAddress

logger = structlog.get_logger(__name__)


class OutcomeStatus(Enum):
    APPLIED = "applied"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOOP = "noop"


class FailoverResult(Enum):
    """Terminal state of a restore-by-failover."""

    PROMOTED = "promoted"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ActionOutcome:
    action: Action
    status: OutcomeStatus
    detail: str = ""


@dataclass
class ExecutionReport:
    """What happened to every action of a plan."""

    outcomes: list[ActionOutcome] = field(default_factory=list)

    def _with(self, status: OutcomeStatus) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def applied(self) -> list[ActionOutcome]:
        return self._with(OutcomeStatus.APPLIED)

    @property
    def failed(self) -> list[ActionOutcome]:
        return self._with(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> list[ActionOutcome]:
        return self._with(OutcomeStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped


class Executor:
    """Sequential, failure-tolerant action runner."""

    def __init__(
        self,
        admin: ClusterAdmin,
        *,
        failover_attempts: int = 10,
        failover_interval: float = 1.0,
    ) -> None:
        """Initialize executor.

        Args:
            admin: Administrative interface to the store
            failover_attempts: Role checks after triggering a failover
            failover_interval: Seconds between role checks
        """
        self._admin = admin
        self._failover_attempts = failover_attempts
        self._failover_interval = failover_interval

    async def apply(self, plan: Plan, snapshot: Snapshot) -> ExecutionReport:
        """Apply every action in plan order.

        A failing action is logged and recorded; the remaining actions still
        run. A rebind is only attempted when the failover restoring its master
        in this run promoted it.
        """
        report = ExecutionReport()
        reference = snapshot.reference
        not_promoted: set[NodeAddress] = set()

        for action in plan.actions:
            if isinstance(action, NoOp):
                report.outcomes.append(ActionOutcome(action, OutcomeStatus.NOOP, action.reason))
                continue

            if isinstance(action, RebindReplica) and action.master in not_promoted:
                logger.warning(
                    "Skipping rebind, master was not restored",
                    replica=str(action.replica),
                    master=str(action.master),
                )
                report.outcomes.append(
                    ActionOutcome(action, OutcomeStatus.SKIPPED, f"{action.master} not promoted")
                )
                continue

            log = logger.bind(action=action.describe(), category=action.category.value)
            try:
                match action:
                    case RestoreMasterViaFailover():
                        result = await self.restore_master(action.master)
                        if result is not FailoverResult.PROMOTED:
                            not_promoted.add(action.master)
                            log.error("Failover did not promote master", result=result.value)
                            report.outcomes.append(
                                ActionOutcome(action, OutcomeStatus.FAILED, result.value)
                            )
                            continue
                    case AddMaster():
                        reference = await self._add_master(action, reference)
                    case AddReplica():
                        await self._add_replica(action, reference)
                    case RebindReplica():
                        await self._rebind(action)
                    case _:
                        raise ClusterError(f"Unsupported action {type(action).__name__}")
            except ReconcilerError as e:
                log.error("Action failed", error=str(e))
                if isinstance(action, RestoreMasterViaFailover):
                    not_promoted.add(action.master)
                report.outcomes.append(ActionOutcome(action, OutcomeStatus.FAILED, str(e)))
                continue

            log.info("Action applied")
            report.outcomes.append(ActionOutcome(action, OutcomeStatus.APPLIED))

        logger.info(
            "Plan executed",
            applied=len(report.applied),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )
        return report

    async def restore_master(self, master: NodeAddress) -> FailoverResult:
        """Fail over to ``master`` and wait for it to report the master role."""

        async def is_master() -> bool:
            return NodeRole.from_reply(await self._admin.role(master)) is NodeRole.MASTER

        if await is_master():
            return FailoverResult.PROMOTED

        await self._admin.cluster_failover(master, FailoverMode.GRACEFUL)

        promoted = await poll_until(
            is_master, attempts=self._failover_attempts, interval=self._failover_interval
        )
        return FailoverResult.PROMOTED if promoted else FailoverResult.TIMED_OUT

    async def _add_master(
        self, action: AddMaster, reference: NodeAddress | None
    ) -> NodeAddress | None:
        if action.slots is not None:
            await self._admin.cluster_add_slots_range(
                action.address, action.slots.start, action.slots.end
            )
            if reference is None:
                # First bootstrapped master seeds the cluster.
                return action.address
        elif reference is None:
            raise ClusterError(f"No reachable cluster member to admit {action.address} through")

        await self._admin.cluster_add_node(action.address, reference)
        return reference

    async def _add_replica(self, action: AddReplica, reference: NodeAddress | None) -> None:
        if reference is None:
            raise ClusterError(f"No reachable cluster member to admit {action.address} through")
        # Membership may know the master while the master itself is down.
        master_id = action.master_id or await self._admin.cluster_myid(action.master)
        await self._admin.cluster_add_node(action.address, reference, as_replica_of=master_id)

    async def _rebind(self, action: RebindReplica) -> None:
        master_id = await self._admin.cluster_myid(action.master)
        await self._admin.cluster_replicate(action.replica, master_id)
