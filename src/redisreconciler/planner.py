"""Reconciliation planner: (snapshot, desired topology) -> ordered actions.

The planner is a pure function. It never talks to the store and keeps no
state, so the same snapshot always produces the same plan.
"""

from dataclasses import dataclass

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
from redisreconciler.exceptions import ConfigurationError
from redisreconciler.probe import NodeRole
from redisreconciler.snapshot import CLUSTER_SLOTS, HealthState, Snapshot
from redisreconciler.topology import DesiredPair, DesiredTopology


@dataclass(frozen=True)
class PairAssessment:
    """Findings for one desired pair."""

    pair: DesiredPair
    actions: tuple[Action, ...]

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(dict.fromkeys(a.category for a in self.actions))


@dataclass(frozen=True)
class Plan:
    """Ordered actions plus the per-pair assessments they came from."""

    actions: tuple[Action, ...]
    assessments: tuple[PairAssessment, ...]
    bootstrap: bool = False
    blocked_reason: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def work(self) -> list[Action]:
        """Actions that change the cluster."""
        return [a for a in self.actions if not isinstance(a, NoOp)]

    @property
    def noops(self) -> list[NoOp]:
        return [a for a in self.actions if isinstance(a, NoOp)]

    @property
    def blocking(self) -> list[NoOp]:
        """Warnings an operator has to resolve."""
        return [a for a in self.noops if a.blocking]

    @property
    def has_work(self) -> bool:
        return bool(self.work)

    @property
    def blocked(self) -> bool:
        return self.blocked_reason is not None

    @property
    def converged(self) -> bool:
        """True when every pair is healthy and nothing is left to do."""
        return (
            not self.blocked
            and bool(self.actions)
            and all(isinstance(a, NoOp) and a.category is Category.HEALTHY for a in self.actions)
        )


def allocate_slots(count: int) -> list[SlotRange]:
    """Split all hash slots into ``count`` contiguous ranges.

    Uses the same rounding as ``redis-cli --cluster create`` so a cluster
    bootstrapped here looks like one created by hand.
    """
    if not 0 < count <= CLUSTER_SLOTS:
        raise ConfigurationError(f"Cannot split {CLUSTER_SLOTS} slots across {count} masters")

    per_node = CLUSTER_SLOTS / count
    ranges: list[SlotRange] = []
    first = 0
    cursor = 0.0
    for i in range(count):
        last = round(cursor + per_node - 1)
        if last > CLUSTER_SLOTS - 1 or i == count - 1:
            last = CLUSTER_SLOTS - 1
        last = max(last, first)
        ranges.append(SlotRange(first, last))
        first = last + 1
        cursor += per_node
    return ranges


def plan(snapshot: Snapshot, topology: DesiredTopology) -> Plan:
    """Derive the corrective actions that move the cluster toward ``topology``."""
    if not snapshot.cluster_exists:
        return _plan_bootstrap(snapshot, topology)

    assessments = tuple(
        PairAssessment(pair, tuple(_assess_pair(snapshot, pair))) for pair in topology
    )
    return Plan(
        actions=_ordered(assessments),
        assessments=assessments,
        warnings=tuple(_cluster_warnings(snapshot)),
    )


def _ordered(assessments: tuple[PairAssessment, ...]) -> tuple[Action, ...]:
    # Stable: within a phase, pair order and per-pair order are preserved.
    actions = [a for assessment in assessments for a in assessment.actions]
    return tuple(sorted(actions, key=lambda a: a.phase))


def _warn(pair: DesiredPair, category: Category, reason: str, blocking: bool = True) -> NoOp:
    return NoOp(reason, pair=pair, category=category, blocking=blocking)


def _assess_pair(snapshot: Snapshot, pair: DesiredPair) -> list[Action]:
    m, r = pair.master, pair.replica
    m_up, r_up = snapshot.is_up(m), snapshot.is_up(r)
    m_member, r_member = snapshot.member(m), snapshot.member(r)
    m_role, r_role = snapshot.role_of(m), snapshot.role_of(r)

    # Only a member's role counts: a node outside the cluster always says master.
    if r_member is not None and r_role is NodeRole.MASTER:
        if not m_up:
            return [
                _warn(
                    pair,
                    Category.DOWN_MASTER,
                    f"replica {r} was promoted and master {m} is down; wait for {m} to return",
                )
            ]
        if m_member is None:
            return [
                _warn(
                    pair,
                    Category.AMBIGUOUS,
                    f"replica {r} holds the master role and {m} is up but not a cluster member",
                )
            ]
        if m_member.failed:
            return [
                _warn(
                    pair,
                    Category.AMBIGUOUS,
                    f"replica {r} holds the master role and {m} is up but still flagged fail",
                )
            ]
        if m_role is NodeRole.MASTER:
            if not r_up:
                return [
                    _warn(
                        pair,
                        Category.DOWN_REPLICA,
                        f"replica {r} is down (last seen as master); no action",
                        blocking=False,
                    )
                ]
            return [_warn(pair, Category.AMBIGUOUS, f"both {m} and {r} report the master role")]
        return [RestoreMasterViaFailover(m), RebindReplica(r, m)]

    actions: list[Action] = []

    if m_member is None:
        if m_up:
            actions.append(AddMaster(m))
        else:
            actions.append(
                _warn(pair, Category.AMBIGUOUS, f"master {m} is down and not a cluster member")
            )
    elif not m_up:
        actions.append(
            _warn(
                pair,
                Category.AMBIGUOUS,
                f"master {m} is unreachable and replica {r} has not been promoted",
            )
        )
    elif m_member.failed:
        actions.append(
            _warn(pair, Category.AMBIGUOUS, f"master {m} answers but is still flagged fail")
        )
    elif m_role is not NodeRole.MASTER:
        actions.append(
            _warn(pair, Category.AMBIGUOUS, f"master {m} reports role {m_role.value}")
        )

    if r_member is None:
        master_id = snapshot.node_id_of(m) if m_member is not None or m_up else None
        if not r_up:
            actions.append(
                _warn(pair, Category.DOWN_REPLICA, f"replica {r} is down; no action", False)
            )
        elif master_id:
            actions.append(AddReplica(r, m, master_id))
        else:
            actions.append(
                _warn(
                    pair,
                    Category.AMBIGUOUS,
                    f"replica {r} is not a member and the node id of {m} cannot be resolved",
                )
            )
    elif not r_up:
        actions.append(_warn(pair, Category.DOWN_REPLICA, f"replica {r} is down; no action", False))
    elif r_member.failed:
        actions.append(
            _warn(pair, Category.AMBIGUOUS, f"replica {r} answers but is still flagged fail")
        )
    elif m_member is None or r_member.master_id != m_member.node_id:
        actions.append(
            _warn(
                pair,
                Category.AMBIGUOUS,
                f"replica {r} replicates {r_member.master_id or 'nothing'} instead of {m}",
            )
        )

    if not actions:
        actions.append(NoOp("healthy", pair=pair))
    return actions


def _plan_bootstrap(snapshot: Snapshot, topology: DesiredTopology) -> Plan:
    down = [m for m in topology.masters if not snapshot.is_up(m)]
    if down:
        reason = "cannot bootstrap, masters unreachable: " + ", ".join(str(m) for m in down)
        assessments = tuple(
            PairAssessment(
                pair,
                (_warn(pair, Category.BOOTSTRAP, f"master {pair.master} is down"),)
                if pair.master in down
                else (),
            )
            for pair in topology
        )
        return Plan(
            actions=_ordered(assessments),
            assessments=assessments,
            bootstrap=True,
            blocked_reason=reason,
        )

    assessments = []
    for pair, slots in zip(topology, allocate_slots(len(topology)), strict=True):
        pair_actions: list[Action] = [AddMaster(pair.master, slots, category=Category.BOOTSTRAP)]
        if snapshot.is_up(pair.replica):
            pair_actions.append(AddReplica(pair.replica, pair.master, category=Category.BOOTSTRAP))
        else:
            pair_actions.append(
                _warn(
                    pair,
                    Category.DOWN_REPLICA,
                    f"replica {pair.replica} is down; bootstrapping without it",
                    False,
                )
            )
        assessments.append(PairAssessment(pair, tuple(pair_actions)))

    frozen = tuple(assessments)
    return Plan(actions=_ordered(frozen), assessments=frozen, bootstrap=True)


def _cluster_warnings(snapshot: Snapshot) -> list[str]:
    warnings = []
    for member in snapshot.strangers:
        warnings.append(
            f"member {member.address} ({member.node_id[:8]}) is not in the desired topology"
        )
    if snapshot.slots_assigned < CLUSTER_SLOTS:
        warnings.append(
            f"only {snapshot.slots_assigned}/{CLUSTER_SLOTS} slots are assigned; "
            "slot rebalancing is left to the operator"
        )
    if snapshot.health is HealthState.DEGRADED:
        warnings.append("cluster_state reports fail")
    return warnings
