"""
Run an agent script in the terminal without the GUI.

Usage:
    python run_script.py telehealth-visit
    python run_script.py obesity --cases ./test_cases

The argument is a test case id (its fixture is loaded into the form first)
or a script key (runs against the default form). The pause and stop hotkeys
work while the script runs; Ctrl+C stops it.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

from billing_scripts import build_default_registry
from case_catalog import CaseCatalog, CatalogError
from hotkey_manager import HotkeyManager
from models import BillingForm
from sequencer import (
    DecisionLog,
    LoopScheduler,
    SequencerEngine,
    SequencerStatus,
    TimedChoreographer,
    UnknownScriptError,
)
from settings_manager import SettingsManager

USAGE = "Usage: run_script.py <test-case-id | script-key> [--cases DIR]"


class _DecisionPrinter:
    """Prints decision entries as they are appended."""

    def __init__(self, log: DecisionLog) -> None:
        self._log = log
        self._printed = 0

    def __call__(self) -> None:
        entries = self._log.entries()
        if len(entries) < self._printed:
            self._printed = 0
        for entry in entries[self._printed:]:
            print(entry)
        self._printed = len(entries)


def _print_form(form: BillingForm) -> None:
    print("-" * 50)
    print(f"Diagnoses:    {', '.join(form.diagnosis_codes()) or '-'}")
    print(f"E&M code:     {form.em_code.code} {form.em_code.description}")
    print(f"E&M modifier: {form.em_code.modifiers or '-'}")


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    cases_dir: Optional[Path] = None
    if "--cases" in args:
        index = args.index("--cases")
        if index + 1 >= len(args):
            print(USAGE)
            return 2
        cases_dir = Path(args[index + 1])
        del args[index:index + 2]
    if len(args) != 1:
        print(USAGE)
        return 2
    target = args[0]

    settings = SettingsManager().load()
    catalog = CaseCatalog(cases_dir or (Path(settings.test_cases_dir) if settings.test_cases_dir else None))
    try:
        registry = build_default_registry(catalog)
    except CatalogError as exc:
        print(f"Cannot load agent scripts: {exc}")
        return 1

    form = BillingForm.default()
    script_key = target
    if target not in registry:
        try:
            case = catalog.apply(target, form)
        except CatalogError as exc:
            print(f"Unknown script or test case '{target}': {exc}")
            return 1
        script_key = case.script
        print(f"Loaded test case {case.id}: {case.description}")

    scheduler = LoopScheduler()
    engine = SequencerEngine(
        registry,
        scheduler,
        app_state=form,
        choreographer=TimedChoreographer(
            scheduler,
            arrival_delay=settings.arrival_delay_ms / 1000.0,
            click_delay=settings.click_effect_delay_ms / 1000.0,
        ),
        pause_poll_seconds=settings.pause_poll_ms / 1000.0,
    )
    engine.register_status_callback(lambda msg, level: print(f"{level}: {msg}"))
    engine.decision_log.subscribe(_DecisionPrinter(engine.decision_log))

    hotkeys = HotkeyManager(
        start_hotkey=settings.start_hotkey,
        pause_hotkey=settings.pause_hotkey,
        stop_hotkey=settings.stop_hotkey,
    )
    # Listener thread -> scheduler thread
    hotkeys.register_callback("pause", lambda: scheduler.call_soon(engine.toggle_pause))
    hotkeys.register_callback("stop", lambda: scheduler.call_soon(engine.stop))

    try:
        engine.start(script_key)
    except UnknownScriptError as exc:
        print(exc)
        return 1

    if hotkeys.enable_hotkeys():
        print(f"Hotkeys: pause/resume={settings.pause_hotkey}, stop={settings.stop_hotkey}")
    try:
        scheduler.run()
    except KeyboardInterrupt:
        engine.stop()
    finally:
        hotkeys.disable_hotkeys()

    _print_form(form)
    completed = engine.status == SequencerStatus.COMPLETED
    print(f"DONE: {completed} - {engine.state}")
    return 0 if completed else 1


if __name__ == "__main__":
    raise SystemExit(main())
