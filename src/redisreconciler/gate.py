"""Operator approval between planning and applying."""

from abc import ABC, abstractmethod
from typing import TextIO

from rich.console import Console
from rich.prompt import Confirm

from redisreconciler.planner import Plan
from redisreconciler.render import print_plan, print_snapshot
from redisreconciler.snapshot import Snapshot


class ConfirmationGate(ABC):
    """Decides whether a plan may be applied."""

    @abstractmethod
    def present(self, snapshot: Snapshot, plan: Plan) -> bool:
        """Show the plan; return True to apply it."""
        ...


class AutoApproveGate(ConfirmationGate):
    """Approves every plan (--yes)."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console

    def present(self, snapshot: Snapshot, plan: Plan) -> bool:
        if self._console is not None:
            print_snapshot(self._console, snapshot)
            print_plan(self._console, plan)
        return True


class ConsoleGate(ConfirmationGate):
    """Renders the plan with rich and asks for an explicit yes."""

    def __init__(self, console: Console | None = None, stream: TextIO | None = None) -> None:
        self._console = console or Console()
        self._stream = stream

    def present(self, snapshot: Snapshot, plan: Plan) -> bool:
        print_snapshot(self._console, snapshot)
        print_plan(self._console, plan)
        try:
            return Confirm.ask(
                f"Apply {len(plan.work)} action(s)?",
                console=self._console,
                default=False,
                stream=self._stream,
            )
        except (EOFError, KeyboardInterrupt):
            return False
