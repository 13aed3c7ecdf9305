"""
Decision log: ordered record of what the agent did and why.

Written by the engine (one entry per executed step), read by display
surfaces.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, List


@dataclass(frozen=True)
class DecisionEntry:
    """A single agent decision."""
    id: int
    timestamp: str
    action: str
    reasoning: str
    confidence: float
    step: int
    failed: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")
        if self.step < 0:
            raise ValueError("Step index cannot be negative")

    @property
    def confidence_band(self) -> str:
        if self.confidence >= 0.8:
            return "high"
        if self.confidence >= 0.6:
            return "medium"
        return "low"

    def __str__(self) -> str:
        marker = " FAILED" if self.failed else ""
        return (
            f"[{self.timestamp}] Step {self.step + 1}{marker} "
            f"({round(self.confidence * 100)}%): {self.action} - {self.reasoning}"
        )


class DecisionLog:
    """Append-only list of DecisionEntry objects with change notification."""

    def __init__(self) -> None:
        self._entries: List[DecisionEntry] = []
        self._ids = itertools.count(1)
        self._listeners: List[Callable[[], None]] = []

    def append(
        self,
        action: str,
        reasoning: str,
        confidence: float,
        step: int,
        failed: bool = False,
    ) -> DecisionEntry:
        entry = DecisionEntry(
            id=next(self._ids),
            timestamp=datetime.now().strftime("%H:%M:%S"),
            action=action,
            reasoning=reasoning,
            confidence=float(confidence),
            step=step,
            failed=failed,
        )
        self._entries.append(entry)
        self._notify()
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self._notify()

    def entries(self) -> List[DecisionEntry]:
        """Returns a copy of all entries in order."""
        return self._entries.copy()

    def last(self) -> DecisionEntry:
        return self._entries[-1]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DecisionEntry]:
        return iter(self._entries.copy())

    def subscribe(self, callback: Callable[[], None]) -> None:
        """Register a callback invoked after every append or clear."""
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def export_to_file(self, filepath: str) -> bool:
        """
        Write the log as text.

        Returns:
            bool: True if export was successful
        """
        try:
            with open(filepath, "w", encoding="utf-8") as f:
                f.write("Billing Agent - Decision Log Export\n")
                f.write(f"Generated: {datetime.now()}\n")
                f.write("=" * 50 + "\n\n")
                for entry in self._entries:
                    f.write(f"{entry}\n")
            return True
        except OSError as e:
            print(f"Failed to export decision log: {e}")
            return False

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                # Display refresh problems never interrupt a run.
                pass
