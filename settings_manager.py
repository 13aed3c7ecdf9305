"""Persistence of the demo's ApplicationSettings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from models import ApplicationSettings


class SettingsManager:
    """Loads and saves application settings as JSON."""

    FILE_NAME = "agent_settings.json"

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        package_root = Path(__file__).resolve().parent
        self._storage_path = Path(storage_path) if storage_path else package_root / self.FILE_NAME

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def load(self) -> ApplicationSettings:
        """Return stored settings; defaults when the file is missing or unreadable."""
        path = self.storage_path
        if not path.exists():
            return ApplicationSettings()

        try:
            raw_data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            self._move_aside(path)
            return ApplicationSettings()
        if not isinstance(raw_data, dict):
            self._move_aside(path)
            return ApplicationSettings()
        return ApplicationSettings.from_dict(raw_data)

    def save(self, settings: ApplicationSettings) -> None:
        """Write atomically through a temporary file."""
        path = self.storage_path
        path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = path.with_suffix(".tmp")
        payload = json.dumps(settings.to_dict(), indent=2, ensure_ascii=False)
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(path)

    @staticmethod
    def _move_aside(path: Path) -> None:
        # Keep the corrupt file for inspection as .bak
        try:
            path.replace(path.with_suffix(".bak"))
        except OSError:
            pass
