"""Tests for plan execution."""

from fakes import FakeCluster, make_healthy, snapshot_of

from redisreconciler.actions import AddMaster, AddReplica, RebindReplica, RestoreMasterViaFailover
from redisreconciler.executor import (
    ExecutionReport,
    Executor,
    FailoverResult,
    OutcomeStatus,
)
from redisreconciler.planner import Plan, plan
from redisreconciler.topology import DesiredTopology


def fast_executor(fake: FakeCluster, attempts: int = 3) -> Executor:
    return Executor(fake, failover_attempts=attempts, failover_interval=0)


async def execute(fake: FakeCluster, topology: DesiredTopology) -> tuple[Plan, ExecutionReport]:
    snapshot = await snapshot_of(fake, topology)
    result = plan(snapshot, topology)
    return result, await fast_executor(fake).apply(result, snapshot)


class TestBootstrapExecution:
    async def test_creates_cluster(self, fake: FakeCluster, topology: DesiredTopology) -> None:
        _, report = await execute(fake, topology)

        assert report.ok
        assert len(report.applied) == 6
        assert fake.members == set(topology.addresses)
        for pair in topology:
            assert fake.nodes[pair.replica].master_id == fake.nodes[pair.master].node_id
        assert sum(n.slot_count for n in fake.nodes.values()) == 16384

    async def test_first_master_seeds_cluster(
        self, fake: FakeCluster, topology: DesiredTopology
    ) -> None:
        await execute(fake, topology)

        first, second = topology.pairs[0].master, topology.pairs[1].master
        assert fake.mutating_calls[:3] == [
            ("cluster_add_slots_range", first),
            ("cluster_add_slots_range", second),
            ("cluster_add_node", second),
        ]


class TestRecoveryExecution:
    async def test_restores_promoted_replica(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        pair = topology.pairs[0]
        healthy.promote(pair.replica)

        _, report = await execute(healthy, topology)

        assert report.ok
        assert [o.action for o in report.applied] == [
            RestoreMasterViaFailover(pair.master),
            RebindReplica(pair.replica, pair.master),
        ]
        assert healthy.nodes[pair.master].master_id is None
        assert healthy.nodes[pair.replica].master_id == healthy.nodes[pair.master].node_id

    async def test_timed_out_failover_skips_rebind(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        pair = topology.pairs[0]
        healthy.promote(pair.replica)
        healthy.stalled_failovers.add(pair.master)

        _, report = await execute(healthy, topology)

        assert not report.ok
        [failed] = report.failed
        assert failed.action == RestoreMasterViaFailover(pair.master)
        assert failed.detail == FailoverResult.TIMED_OUT.value
        [skipped] = report.skipped
        assert skipped.action == RebindReplica(pair.replica, pair.master)
        assert ("cluster_replicate", pair.replica) not in healthy.calls
        # Probe and pre-failover check, then every poll attempt.
        assert healthy.calls.count(("role", pair.master)) == 1 + 1 + 3

    async def test_rejected_failover_skips_rebind(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        pair = topology.pairs[0]
        healthy.promote(pair.replica)
        healthy.failing["cluster_failover"] = {pair.master}

        _, report = await execute(healthy, topology)

        assert len(report.failed) == 1
        assert len(report.skipped) == 1
        assert "rejected" in report.failed[0].detail

    async def test_restore_on_master_is_immediate(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        result = await fast_executor(healthy).restore_master(topology.pairs[0].master)

        assert result is FailoverResult.PROMOTED
        assert healthy.mutating_calls == []


class TestAddReplicaExecution:
    async def test_replica_of_down_master_uses_known_id(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        pair = topology.pairs[1]
        healthy.members.discard(pair.replica)
        healthy.nodes[pair.replica].master_id = None
        healthy.nodes[pair.master].up = False

        result, report = await execute(healthy, topology)

        assert [o.action for o in report.applied] == [AddReplica(pair.replica, pair.master)]
        assert report.ok
        assert ("cluster_myid", pair.master) not in healthy.calls
        assert healthy.nodes[pair.replica].master_id == healthy.nodes[pair.master].node_id
        assert result.blocking

    async def test_master_asked_when_id_unknown(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        pair = topology.pairs[1]
        healthy.members.discard(pair.replica)
        healthy.nodes[pair.replica].master_id = None
        snapshot = await snapshot_of(healthy, topology)
        bare = Plan(actions=(AddReplica(pair.replica, pair.master),), assessments=())

        report = await fast_executor(healthy).apply(bare, snapshot)

        assert report.ok
        assert ("cluster_myid", pair.master) in healthy.calls


class TestExecutionFailures:
    async def test_failure_does_not_stop_other_actions(
        self, fake: FakeCluster, topology: DesiredTopology
    ) -> None:
        make_healthy(fake, topology, pairs=1)
        second, third = topology.pairs[1], topology.pairs[2]
        fake.failing["cluster_add_node"] = {second.master}

        _, report = await execute(fake, topology)

        statuses = {
            o.action: o.status for o in report.outcomes if o.status is not OutcomeStatus.NOOP
        }
        assert statuses == {
            AddMaster(second.master): OutcomeStatus.FAILED,
            AddMaster(third.master): OutcomeStatus.APPLIED,
            AddReplica(second.replica, second.master): OutcomeStatus.FAILED,
            AddReplica(third.replica, third.master): OutcomeStatus.APPLIED,
        }
        assert third.master in fake.members

    async def test_no_reference_node(self, fake: FakeCluster, topology: DesiredTopology) -> None:
        snapshot = await snapshot_of(fake, topology)
        action = AddMaster(topology.pairs[0].master)
        orphan = Plan(actions=(action,), assessments=())

        report = await fast_executor(fake).apply(orphan, snapshot)

        [failed] = report.failed
        assert "No reachable cluster member" in failed.detail
        assert fake.mutating_calls == []

    async def test_unreachable_node_recorded(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        pair = topology.pairs[0]
        healthy.promote(pair.replica)
        snapshot = await snapshot_of(healthy, topology)
        healthy.nodes[pair.master].up = False

        report = await fast_executor(healthy).apply(plan(snapshot, topology), snapshot)

        assert report.failed[0].action == RestoreMasterViaFailover(pair.master)
        assert report.skipped[0].action == RebindReplica(pair.replica, pair.master)


class TestNoOps:
    async def test_healthy_plan_only_records_noops(
        self, healthy: FakeCluster, topology: DesiredTopology
    ) -> None:
        _, report = await execute(healthy, topology)

        assert report.ok
        assert {o.status for o in report.outcomes} == {OutcomeStatus.NOOP}
        assert report.outcomes[0].detail == "healthy"
        assert healthy.mutating_calls == []
