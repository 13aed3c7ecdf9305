"""Agent cursor overlay: shows where the simulated agent is looking."""

from __future__ import annotations

import tkinter as tk
from typing import Callable, Dict, Optional, Tuple

from sequencer.choreography import TimedChoreographer
from sequencer.scheduling import Scheduler

HIGHLIGHT_COLOR = "#7c3aed"
CLICK_FLASH_COLOR = "#ede9fe"
CLICK_FLASH_MS = 200


class OverlayChoreographer(TimedChoreographer):
    """
    Renders focus as a small topmost marker over the target widget and a
    coloured highlight ring around it.

    Widgets are looked up by element id through ``resolve``. When
    ``move_system_pointer`` is set the real mouse pointer follows the marker.
    """

    def __init__(
        self,
        root: tk.Tk,
        scheduler: Scheduler,
        resolve: Callable[[str], Optional[tk.Widget]],
        arrival_delay: float = TimedChoreographer.ARRIVAL_DELAY,
        click_delay: float = TimedChoreographer.CLICK_DELAY,
        move_system_pointer: bool = False,
    ) -> None:
        super().__init__(scheduler, arrival_delay=arrival_delay, click_delay=click_delay)
        self._root = root
        self._resolve = resolve
        self.move_system_pointer = move_system_pointer
        self._marker: Optional[tk.Toplevel] = None
        self._highlighted: Optional[tk.Widget] = None
        self._saved_options: Dict[str, str] = {}

    def _show(self, element_id: str) -> None:
        self._clear_marker()
        self._restore_highlight()
        widget = self._resolve(element_id)
        if widget is None:
            return

        widget.update_idletasks()
        x, y = self._widget_center(widget)
        self._highlight(widget)

        marker = tk.Toplevel(self._root)
        marker.overrideredirect(True)
        marker.attributes("-topmost", True)
        marker.attributes("-alpha", 0.8)
        marker.configure(bg=HIGHLIGHT_COLOR)
        tk.Label(
            marker,
            text="◉ Agent",
            font=("Segoe UI", 9, "bold"),
            fg="white",
            bg=HIGHLIGHT_COLOR,
        ).pack(ipadx=4, ipady=1)
        marker.geometry(f"+{x - 10}+{y - 10}")
        marker.update_idletasks()
        self._marker = marker

        if self.move_system_pointer:
            self._move_pointer(x, y)

        try:
            widget.focus_set()
        except tk.TclError:
            pass

    def _click(self, element_id: str) -> None:
        widget = self._highlighted
        if widget is None:
            return
        option = self._background_option(widget)
        if option is None:
            return
        try:
            original = widget.cget(option)
            widget.configure(**{option: CLICK_FLASH_COLOR})
        except tk.TclError:
            return

        def restore() -> None:
            try:
                widget.configure(**{option: original})
            except tk.TclError:
                pass

        self._root.after(CLICK_FLASH_MS, restore)

    def _hide(self) -> None:
        self._clear_marker()
        self._restore_highlight()

    # Internal helpers -------------------------------------------------

    @staticmethod
    def _widget_center(widget: tk.Widget) -> Tuple[int, int]:
        x = widget.winfo_rootx() + widget.winfo_width() // 2
        y = widget.winfo_rooty() + widget.winfo_height() // 2
        return x, y

    @staticmethod
    def _supports(option: str, widget: tk.Widget) -> bool:
        try:
            return option in widget.keys()
        except tk.TclError:
            return False

    @classmethod
    def _background_option(cls, widget: tk.Widget) -> Optional[str]:
        """Option that paints the widget's face in its current state."""
        if cls._supports("readonlybackground", widget):
            try:
                if str(widget.cget("state")) == "readonly":
                    return "readonlybackground"
            except tk.TclError:
                return None
        if cls._supports("background", widget):
            return "background"
        return None

    def _highlight(self, widget: tk.Widget) -> None:
        options = ("highlightthickness", "highlightbackground", "highlightcolor")
        if not all(self._supports(o, widget) for o in options):
            return
        self._saved_options = {o: str(widget.cget(o)) for o in options}
        widget.configure(
            highlightthickness=3,
            highlightbackground=HIGHLIGHT_COLOR,
            highlightcolor=HIGHLIGHT_COLOR,
        )
        self._highlighted = widget

    def _restore_highlight(self) -> None:
        widget = self._highlighted
        self._highlighted = None
        if widget is None or not self._saved_options:
            return
        try:
            widget.configure(**self._saved_options)
        except tk.TclError:
            pass
        self._saved_options = {}

    def _clear_marker(self) -> None:
        marker = self._marker
        self._marker = None
        if marker is not None:
            try:
                marker.destroy()
            except tk.TclError:
                pass

    @staticmethod
    def _move_pointer(x: int, y: int) -> None:
        try:
            import pyautogui  # type: ignore
            pyautogui.PAUSE = 0.0  # effects must not block the Tk loop
            pyautogui.moveTo(x, y)
        except Exception as exc:  # pragma: no cover - display dependent
            print(f"Pointer move failed: {exc}")
