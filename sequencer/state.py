"""
Sequencer status and state record.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SequencerStatus(Enum):
    """Lifecycle of a scripted agent run."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass
class SequencerState:
    """
    Progress of the current run.

    current_step counts the steps entered so far: it is set to i + 1 right
    before step i's effect runs and equals total_steps once completed.
    """
    status: SequencerStatus = SequencerStatus.IDLE
    current_step: int = 0
    total_steps: int = 0

    @property
    def is_active(self) -> bool:
        """Running or paused."""
        return self.status in (SequencerStatus.RUNNING, SequencerStatus.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.status == SequencerStatus.PAUSED

    @property
    def progress(self) -> float:
        """Fraction of steps entered, 0.0 when no run is loaded."""
        if self.total_steps <= 0:
            return 0.0
        return self.current_step / self.total_steps

    def __str__(self) -> str:
        return f"{self.status.value} ({self.current_step}/{self.total_steps})"
