"""Two-phase reconciliation: plan without side effects, then apply."""

import asyncio
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import structlog

from redisreconciler import planner
from redisreconciler.actions import AddMaster
from redisreconciler.admin import ClusterAdmin, RedisClusterAdmin
from redisreconciler.config import ReconcilerSettings
from redisreconciler.exceptions import BootstrapError
from redisreconciler.executor import ExecutionReport, Executor, OutcomeStatus
from redisreconciler.gate import ConfirmationGate
from redisreconciler.planner import Plan
from redisreconciler.retry import poll_until
from redisreconciler.snapshot import Snapshot, SnapshotBuilder
from redisreconciler.topology import DesiredTopology

logger = structlog.get_logger(__name__)


class ExitCode(IntEnum):
    OK = 0
    DECLINED = 1
    INCOMPLETE = 2
    FATAL = 3


@dataclass
class RunResult:
    """Everything a run observed and did."""

    exit_code: ExitCode
    snapshot: Snapshot
    plan: Plan
    report: ExecutionReport | None = None
    verification: Plan | None = None


class Reconciler:
    """Converges a live cluster toward a desired topology."""

    def __init__(
        self,
        admin: ClusterAdmin,
        topology: DesiredTopology,
        *,
        failover_attempts: int = 10,
        failover_interval: float = 1.0,
        verify_attempts: int = 5,
        verify_interval: float = 1.0,
    ) -> None:
        """Initialize reconciler.

        Args:
            admin: Administrative interface to the store
            topology: Desired master/replica pairs
            failover_attempts: Role checks after triggering a failover
            failover_interval: Seconds between role checks
            verify_attempts: Re-plans after applying before giving up on convergence
            verify_interval: Seconds between re-plans
        """
        self._admin = admin
        self._topology = topology
        self._builder = SnapshotBuilder(admin, topology)
        self._executor = Executor(
            admin,
            failover_attempts=failover_attempts,
            failover_interval=failover_interval,
        )
        self._verify_attempts = verify_attempts
        self._verify_interval = verify_interval

    @classmethod
    def from_settings(cls, settings: ReconcilerSettings) -> "Reconciler":
        """Create a reconciler talking to real nodes.

        The topology is validated before any connection is opened.
        """
        topology = settings.desired_topology()
        admin = RedisClusterAdmin(
            password=settings.password.get_secret_value(),
            timeout=settings.timeout,
            tls=settings.tls_options(),
            join_attempts=settings.join_attempts,
        )
        return cls(
            admin,
            topology,
            failover_attempts=settings.failover_attempts,
            failover_interval=settings.failover_interval,
            verify_attempts=settings.verify_attempts,
            verify_interval=settings.verify_interval,
        )

    @property
    def topology(self) -> DesiredTopology:
        return self._topology

    async def snapshot(self) -> Snapshot:
        """Discover the live cluster state."""
        return await self._builder.build()

    async def plan(self) -> tuple[Snapshot, Plan]:
        """Discover state and derive a plan. Never mutates the cluster."""
        snapshot = await self.snapshot()
        result = planner.plan(snapshot, self._topology)
        for action in result.blocking:
            logger.warning(
                "Manual review needed", category=action.category.value, detail=action.reason
            )
        logger.info(
            "Plan ready",
            actions=len(result.work),
            warnings=sum(1 for a in result.noops if a.is_warning),
            bootstrap=result.bootstrap,
        )
        return snapshot, result

    async def apply(self, plan: Plan, snapshot: Snapshot) -> ExecutionReport:
        """Apply a plan produced by :meth:`plan`.

        Raises:
            BootstrapError: the plan is a blocked bootstrap, or a master
                could not be created while bootstrapping
        """
        if plan.blocked:
            raise BootstrapError(plan.blocked_reason or "bootstrap blocked")

        report = await self._executor.apply(plan, snapshot)

        if plan.bootstrap:
            failed_masters = [
                o.action
                for o in report.outcomes
                if isinstance(o.action, AddMaster) and o.status is OutcomeStatus.FAILED
            ]
            if failed_masters:
                raise BootstrapError(
                    "bootstrap failed for masters: "
                    + ", ".join(str(a.address) for a in failed_masters)
                )
        return report

    async def verify(self) -> Plan:
        """Re-probe and re-plan until nothing is left to do.

        Gossip needs a moment to spread a freshly admitted node, so the cluster
        is sampled up to ``verify_attempts`` times. Returns the last plan.
        """
        latest: Plan | None = None

        async def settled() -> bool:
            nonlocal latest
            _, latest = await self.plan()
            return not latest.has_work and not latest.blocking

        if not await poll_until(
            settled, attempts=self._verify_attempts, interval=self._verify_interval
        ):
            logger.warning("Cluster has not settled", attempts=self._verify_attempts)
        if latest is None:
            # Every sample raised; let the error surface.
            _, latest = await self.plan()
        return latest

    async def run(self, gate: ConfirmationGate, *, verify: bool = True) -> RunResult:
        """Plan, ask the gate, apply and optionally verify.

        Raises:
            BootstrapError: bootstrap is required but blocked or failed
        """
        snapshot, current = await self.plan()

        if current.blocked:
            raise BootstrapError(current.blocked_reason or "bootstrap blocked")

        if not current.has_work:
            code = ExitCode.INCOMPLETE if current.blocking else ExitCode.OK
            return RunResult(code, snapshot, current)

        # The gate may block on the terminal; keep the event loop free.
        if not await asyncio.to_thread(gate.present, snapshot, current):
            logger.info("Plan declined, cluster left untouched")
            return RunResult(ExitCode.DECLINED, snapshot, current)

        report = await self.apply(current, snapshot)

        verification = await self.verify() if verify else None

        code = ExitCode.OK
        if not report.ok or current.blocking:
            code = ExitCode.INCOMPLETE
        elif verification is not None and (verification.has_work or verification.blocking):
            code = ExitCode.INCOMPLETE
        return RunResult(code, snapshot, current, report, verification)

    async def close(self) -> None:
        await self._admin.close()

    async def __aenter__(self) -> "Reconciler":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
