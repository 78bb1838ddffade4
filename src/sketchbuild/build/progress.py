"""Nested step-based progress accounting.

A sequence registers how many steps it is about to run with
add_sub_steps(n); each completed step advances the overall percentage by
that sequence's share of its parent's step. remove_sub_steps() restores
the parent frame with its progress at the value it had before the nested
sequence started, so a parent that then completes its own step lands on
exactly the right percentage whether or not the nested one finished.

Example:
    progress = Progress(callback=lambda pct: print(f"{pct:.0f}%"))
    progress.add_sub_steps(4)       # each step = 25%
    progress.complete_step()        # 25%
    progress.add_sub_steps(2)       # nested step = 12.5%
    progress.complete_step()        # 37.5%
    progress.remove_sub_steps()     # back to 25%
    progress.complete_step()        # 50%
"""

from dataclasses import dataclass
from typing import Callable, List, Optional


@dataclass
class _Frame:
    progress: float
    step_amount: float


class Progress:
    """Progress tracker with a stack of nested step counts."""

    def __init__(self, callback: Optional[Callable[[float], None]] = None):
        self.progress = 0.0
        self.step_amount = 0.0
        self._parents: List[_Frame] = []
        self._callback = callback

    @property
    def depth(self) -> int:
        """Number of active add_sub_steps registrations."""
        return len(self._parents)

    def add_sub_steps(self, steps: int) -> None:
        """Split the current step into ``steps`` sub-steps."""
        if steps <= 0:
            raise ValueError(f"steps must be positive, got {steps}")
        self._parents.append(_Frame(self.progress, self.step_amount))
        if self.step_amount == 0.0:
            self.step_amount = 100.0
        self.step_amount /= steps

    def remove_sub_steps(self) -> None:
        """Release the innermost registration."""
        if not self._parents:
            raise RuntimeError("remove_sub_steps called without matching add_sub_steps")
        parent = self._parents.pop()
        self.progress = parent.progress
        self.step_amount = parent.step_amount

    def complete_step(self) -> None:
        self.progress = min(100.0, self.progress + self.step_amount)

    def push_progress(self) -> None:
        """Report the current percentage to the callback, if any."""
        if self._callback is not None:
            self._callback(self.progress)
