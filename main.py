"""
Billing Agent demo: desktop entry point.

Usage:
    python main.py [--cases DIR]

Opens the claim review window with the agent panel. ``--cases`` points the
test case picker (and the agent scripts) at another directory for this
session; without it the saved preference or the bundled ``test_cases/`` is
used. The headless counterpart is ``run_script.py``.
"""

import sys
import tkinter as tk
from pathlib import Path
from typing import List, Optional

from gui import AgentDemoGUI

USAGE = "Usage: main.py [--cases DIR]  (opens the Billing Agent demo window)"


def _enable_high_dpi_awareness() -> None:
    """Ask Windows for per-monitor DPI scaling so the form is not blurred."""
    if not sys.platform.startswith("win"):
        return
    try:
        import ctypes
    except ImportError:
        return
    for enable in (
        lambda: ctypes.windll.shcore.SetProcessDpiAwareness(2),
        lambda: ctypes.windll.user32.SetProcessDPIAware(),
    ):
        try:
            enable()
            return
        except (AttributeError, OSError):
            continue


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if "-h" in args or "--help" in args:
        print(USAGE)
        return 0

    cases_dir: Optional[Path] = None
    if args[:1] == ["--cases"] and len(args) == 2:
        cases_dir = Path(args[1])
    elif args:
        print(USAGE)
        return 2

    _enable_high_dpi_awareness()
    try:
        root = tk.Tk()
    except tk.TclError as exc:
        print(f"Cannot open the agent demo window: {exc}")
        return 1
    AgentDemoGUI(root, cases_dir=cases_dir)
    root.mainloop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
