"""Global start / pause / stop hotkeys for the agent, built on pynput."""

from __future__ import annotations

from typing import Callable, Dict, Optional

try:
    from pynput import keyboard  # type: ignore
except Exception as _e:  # pragma: no cover - environment dependent
    keyboard = None  # type: ignore

ACTIONS = ("start", "pause", "stop")


class HotkeyManager:
    """
    Maps agent control actions to global hotkeys.

    Callbacks are invoked on the pynput listener thread; callers marshal them
    onto their scheduler thread (``root.after(0, ...)`` or ``call_soon``).
    """

    _SPECIAL_KEY_ALIASES: Dict[str, str] = {
        "ctrl": "ctrl",
        "control": "ctrl",
        "alt": "alt",
        "shift": "shift",
        "win": "cmd",
        "cmd": "cmd",
        "command": "cmd",
        "option": "alt",
        "super": "cmd",
        "space": "space",
        "esc": "esc",
        "escape": "esc",
    }

    def __init__(
        self,
        start_hotkey: str = "F6",
        pause_hotkey: str = "F8",
        stop_hotkey: str = "F7",
    ) -> None:
        self._hotkeys: Dict[str, str] = {
            "start": start_hotkey,
            "pause": pause_hotkey,
            "stop": stop_hotkey,
        }
        self._callbacks: Dict[str, Callable[[], None]] = {}
        self._listener: Optional[object] = None
        self._is_registered = False

    def register_callback(self, action: str, callback: Callable[[], None]) -> None:
        if action not in ACTIONS:
            raise ValueError(f"Unknown hotkey action: {action}")
        self._callbacks[action] = callback

    def get_hotkey(self, action: str) -> str:
        return self._hotkeys[action]

    def is_enabled(self) -> bool:
        return self._is_registered

    def build_hotkey_map(self) -> Dict[str, Callable[[], None]]:
        """pynput hotkey string -> callback, for every action with a callback."""
        hotkey_map: Dict[str, Callable[[], None]] = {}
        for action, callback in self._callbacks.items():
            combo = self.to_pynput_hotkey(self._hotkeys[action])
            if combo in hotkey_map:
                raise ValueError(f"Hotkey {self._hotkeys[action]} is assigned twice")
            hotkey_map[combo] = callback
        return hotkey_map

    def enable_hotkeys(self) -> bool:
        if self._is_registered:
            return True

        try:
            hotkey_map = self.build_hotkey_map()
        except ValueError as exc:
            print(f"Invalid hotkey definition: {exc}")
            return False

        if not hotkey_map:
            return False

        if keyboard is None:
            print("pynput/keyboard backend not available; global hotkeys disabled")
            return False
        try:
            self._listener = keyboard.GlobalHotKeys(hotkey_map)
            self._listener.start()
            self._is_registered = True
            return True
        except Exception as exc:  # pragma: no cover - system specific
            print(f"Failed to register hotkeys: {exc}")
            self._listener = None
            self._is_registered = False
            return False

    def disable_hotkeys(self) -> None:
        if not self._is_registered:
            return

        if self._listener is not None:
            try:
                self._listener.stop()  # type: ignore[attr-defined]
            except Exception:
                pass
            self._listener = None

        self._is_registered = False

    def update_hotkeys(self, start_hotkey: str, pause_hotkey: str, stop_hotkey: str) -> bool:
        """Swap the key bindings, re-registering the listener if it was active."""
        new_keys = {"start": start_hotkey, "pause": pause_hotkey, "stop": stop_hotkey}
        try:
            for combo in new_keys.values():
                self.to_pynput_hotkey(combo)
        except ValueError as exc:
            print(f"Invalid hotkey definition: {exc}")
            return False

        was_registered = self._is_registered
        if was_registered:
            self.disable_hotkeys()

        self._hotkeys = new_keys

        if was_registered:
            return self.enable_hotkeys()
        return True

    @classmethod
    def to_pynput_hotkey(cls, hotkey: str) -> str:
        """Convert ``Ctrl+Shift+F6`` style strings to ``<ctrl>+<shift>+<f6>``."""
        if not hotkey:
            raise ValueError("Empty hotkey string")

        tokens = [token.strip() for token in hotkey.replace("+", " ").split() if token.strip()]
        if not tokens:
            raise ValueError("Hotkey contains no tokens")

        parsed: list[str] = []
        for token in tokens:
            lower_token = token.lower()

            if lower_token in cls._SPECIAL_KEY_ALIASES:
                parsed.append(f"<{cls._SPECIAL_KEY_ALIASES[lower_token]}>")
            elif lower_token.startswith("f") and lower_token[1:].isdigit():
                parsed.append(f"<{lower_token}>")
            elif len(lower_token) == 1:
                parsed.append(lower_token)
            else:
                raise ValueError(f"Unsupported key: {token}")

        return "+".join(parsed)
