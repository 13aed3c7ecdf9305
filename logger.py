"""
Status Logger - keeps the status history of the agent demo.

SRP: This class has one responsibility - status messages and their history.
The agent's decisions live in sequencer.decision_log; this is the
operator-facing log (run lifecycle, findings, warnings, errors).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

LEVELS = ("INFO", "WARNING", "ERROR")


@dataclass
class StatusEntry:
    """A single status message."""
    timestamp: datetime
    message: str
    level: str = "INFO"

    def __str__(self) -> str:
        time_str = self.timestamp.strftime("%H:%M:%S")
        return f"[{time_str}] {self.level}: {self.message}"


class StatusLogger:
    """
    Bounded in-memory status log.

    Args:
        max_entries: Maximum number of entries kept in memory
    """

    def __init__(self, max_entries: int = 200):
        self._entries: List[StatusEntry] = []
        self._max_entries = max_entries
        self._listener: Optional[Callable[[StatusEntry], None]] = None

    def on_entry(self, callback: Callable[[StatusEntry], None]) -> None:
        """Register a callback receiving every new entry (e.g. a text widget)."""
        self._listener = callback

    def log(self, message: str, level: str = "INFO") -> StatusEntry:
        """
        Log a message at ``level``; unknown levels are recorded as INFO.

        Matches the sequencer's status callback signature.
        """
        level = level.upper() if level.upper() in LEVELS else "INFO"
        entry = StatusEntry(timestamp=datetime.now(), message=message, level=level)
        self._entries.append(entry)
        if len(self._entries) > self._max_entries:
            self._entries = self._entries[-self._max_entries:]
        if self._listener:
            self._listener(entry)
        return entry

    def get_all_logs(self) -> List[StatusEntry]:
        return self._entries.copy()

    def clear_logs(self) -> None:
        self._entries.clear()

    def export_logs_to_file(self, filepath: str) -> bool:
        """
        Export all entries to a text file.

        Returns:
            bool: True if export was successful
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                f.write("Billing Agent Demo - Status Log Export\n")
                f.write(f"Generated: {datetime.now()}\n")
                f.write("=" * 50 + "\n\n")

                for entry in self._entries:
                    time_str = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
                    f.write(f"[{time_str}] {entry.level}: {entry.message}\n")

            return True
        except OSError as e:
            print(f"Failed to export logs: {e}")
            return False
