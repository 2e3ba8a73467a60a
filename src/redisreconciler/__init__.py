"""Topology reconciliation for Redis Cluster master/replica pairs."""

from redisreconciler.actions import (
    Action,
    AddMaster,
    AddReplica,
    Category,
    NoOp,
    RebindReplica,
    RestoreMasterViaFailover,
    SlotRange,
)
from redisreconciler.admin import ClusterAdmin, FailoverMode, RedisClusterAdmin
from redisreconciler.config import ReconcilerSettings, load_settings
from redisreconciler.exceptions import (
    BootstrapError,
    ClusterError,
    CommandError,
    ConfigurationError,
    NodeUnreachableError,
    ProtocolError,
    ReconcilerError,
)
from redisreconciler.executor import ExecutionReport, Executor, FailoverResult, OutcomeStatus
from redisreconciler.gate import AutoApproveGate, ConfirmationGate, ConsoleGate
from redisreconciler.planner import Plan, plan
from redisreconciler.reconciler import ExitCode, Reconciler, RunResult
from redisreconciler.snapshot import ClusterMember, HealthState, Snapshot, SnapshotBuilder
from redisreconciler.topology import DesiredPair, DesiredTopology, NodeAddress

__all__ = [
    "discover",
    "reconcile",
    "Action",
    "AddMaster",
    "AddReplica",
    "RestoreMasterViaFailover",
    "RebindReplica",
    "NoOp",
    "Category",
    "SlotRange",
    "ClusterAdmin",
    "RedisClusterAdmin",
    "FailoverMode",
    "ReconcilerSettings",
    "load_settings",
    "Executor",
    "ExecutionReport",
    "OutcomeStatus",
    "FailoverResult",
    "ConfirmationGate",
    "ConsoleGate",
    "AutoApproveGate",
    "Plan",
    "plan",
    "Reconciler",
    "RunResult",
    "ExitCode",
    "Snapshot",
    "SnapshotBuilder",
    "ClusterMember",
    "HealthState",
    "NodeAddress",
    "DesiredPair",
    "DesiredTopology",
    "ReconcilerError",
    "ConfigurationError",
    "NodeUnreachableError",
    "CommandError",
    "ProtocolError",
    "ClusterError",
    "BootstrapError",
]

__version__ = "0.1.0"


async def discover(settings: ReconcilerSettings) -> tuple[Snapshot, Plan]:
    """Probe the cluster and plan corrective actions without applying them.

    Args:
        settings: Loaded settings with topology and credentials

    Returns:
        The snapshot and the plan derived from it
    """
    async with Reconciler.from_settings(settings) as reconciler:
        return await reconciler.plan()


async def reconcile(
    settings: ReconcilerSettings,
    *,
    gate: ConfirmationGate | None = None,
    verify: bool = True,
) -> RunResult:
    """Plan, confirm and apply in one call.

    Args:
        settings: Loaded settings with topology and credentials
        gate: Approval gate; defaults to an interactive console prompt
        verify: Re-probe after applying

    Returns:
        The run result with exit code, plan and execution report
    """
    async with Reconciler.from_settings(settings) as reconciler:
        return await reconciler.run(gate or ConsoleGate(), verify=verify)
