"""
Progress reporting for longer CLI operations (import, export).

A single global reporter wraps a Rich status spinner and prints a checkmark
line for every finished step.
"""

from typing import List, Optional

from rich.console import Console
from rich.status import Status


class ProgressReporter:
    """
    Global progress reporter with step completion tracking.
    """

    def __init__(self):
        self._status: Optional[Status] = None
        self._console: Optional[Console] = None
        self._completed_steps: List[str] = []
        self._current_step: Optional[str] = None

    @property
    def completed_steps(self) -> List[str]:
        return list(self._completed_steps)

    def initialize(self, console: Console, initial_message: str = "Starting...") -> Status:
        """
        Attach a console and create the status object.

        Returns:
            Status object to be used as a context manager
        """
        self._console = console
        self._status = console.status(f"[dim]{initial_message}[/dim]")
        self._completed_steps = []
        self._current_step = initial_message
        return self._status

    def step(self, message: str) -> None:
        """Mark the current step as completed and start a new one."""
        if self._status is None:
            return
        if self._current_step is not None:
            self._finish(self._current_step)
        self._current_step = message
        self._status.update(f"[dim]{message}[/dim]")

    def complete_step(self, message: Optional[str] = None) -> None:
        """Mark the current step as completed without starting a new one."""
        if self._current_step is not None:
            self._finish(message or self._current_step)
            self._current_step = None

    def complete_count(self, verb: str, done: int, total: int, noun: str = "rows") -> None:
        """Complete the current step with a count, e.g. "Merged 3 of 5 rows"."""
        self.complete_step(f"{verb} {done} of {total} {noun}")

    def _finish(self, message: str) -> None:
        self._completed_steps.append(message)
        if self._console is not None:
            self._console.print(f"[green]✓[/green] [dim]{message}[/dim]")


# Global reporter instance
reporter = ProgressReporter()
