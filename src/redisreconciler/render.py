"""Human-readable rendering of snapshots, plans and reports."""

from rich.console import Console
from rich.table import Table

from redisreconciler.actions import Category, NoOp
from redisreconciler.executor import ExecutionReport, OutcomeStatus
from redisreconciler.planner import Plan
from redisreconciler.snapshot import Availability, Snapshot

_CATEGORY_STYLE = {
    Category.HEALTHY: "green",
    Category.DOWN_REPLICA: "yellow",
    Category.DOWN_MASTER: "red",
    Category.AMBIGUOUS: "red",
}

_OUTCOME_STYLE = {
    OutcomeStatus.APPLIED: "green",
    OutcomeStatus.FAILED: "red",
    OutcomeStatus.SKIPPED: "yellow",
    OutcomeStatus.NOOP: "dim",
}

_AVAILABILITY_STYLE = {
    Availability.HEALTHY: "green",
    Availability.DEGRADED: "yellow",
    Availability.CRITICAL: "red",
}


def snapshot_table(snapshot: Snapshot) -> Table:
    """One row per expected node: reachability, role, membership and flags."""
    title = "Discovered cluster"
    if not snapshot.cluster_exists:
        title += " (no cluster yet)"
    elif snapshot.source is not None:
        title += f" (via {snapshot.source}, state {snapshot.health.value})"

    table = Table(title=title)
    table.add_column("Pair")
    table.add_column("Declared")
    table.add_column("Address")
    table.add_column("Reachable")
    table.add_column("Role")
    table.add_column("Node id")
    table.add_column("Flags")

    for index, pair in enumerate(snapshot.topology, start=1):
        for declared, address in (("master", pair.master), ("replica", pair.replica)):
            up = snapshot.is_up(address)
            member = snapshot.member(address)
            node_id = snapshot.node_id_of(address)
            table.add_row(
                str(index),
                declared,
                str(address),
                "[green]up[/green]" if up else "[red]down[/red]",
                snapshot.role_of(address).value,
                node_id[:8] if node_id else "-",
                ",".join(sorted(member.flags)) if member is not None else "not joined",
            )
    return table


def plan_table(plan: Plan) -> Table:
    title = "Bootstrap plan" if plan.bootstrap else "Reconciliation plan"
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Category")
    table.add_column("Action")

    for index, action in enumerate(plan.actions, start=1):
        style = _CATEGORY_STYLE.get(action.category, "cyan")
        description = action.describe()
        if isinstance(action, NoOp) and action.blocking:
            description += " [bold](manual review)[/bold]"
        table.add_row(str(index), f"[{style}]{action.category.value}[/{style}]", description)
    return table


def report_table(report: ExecutionReport) -> Table:
    table = Table(title="Execution report")
    table.add_column("Action")
    table.add_column("Outcome")
    table.add_column("Detail")

    for outcome in report.outcomes:
        if outcome.status is OutcomeStatus.NOOP:
            continue
        style = _OUTCOME_STYLE[outcome.status]
        table.add_row(
            outcome.action.describe(),
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.detail,
        )
    return table


def print_snapshot(console: Console, snapshot: Snapshot) -> None:
    console.print(snapshot_table(snapshot))
    availability = snapshot.availability()
    up = sum(1 for a in snapshot.topology.addresses if snapshot.is_up(a))
    style = _AVAILABILITY_STYLE[availability]
    console.print(
        f"Available nodes: {up}/{len(snapshot.topology.addresses)} "
        f"- status [{style}]{availability.value}[/{style}]"
    )


def print_plan(console: Console, plan: Plan) -> None:
    console.print(plan_table(plan))
    if plan.blocked_reason:
        console.print(f"[red]Blocked:[/red] {plan.blocked_reason}")
    for warning in plan.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    if plan.converged:
        console.print("[green]Cluster matches the desired topology.[/green]")


def print_report(console: Console, report: ExecutionReport) -> None:
    if any(o.status is not OutcomeStatus.NOOP for o in report.outcomes):
        console.print(report_table(report))
    console.print(
        f"Applied {len(report.applied)}, failed {len(report.failed)}, "
        f"skipped {len(report.skipped)}"
    )
