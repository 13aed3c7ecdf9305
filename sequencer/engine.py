"""
Sequencer engine: plays a Script step by step on a Scheduler.

Every continuation carries the run generation it was scheduled under and
re-reads the engine's state record when it fires. ``stop`` and ``start`` bump
the generation, so a timer that slips through cancellation finds a newer
generation and does nothing.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Optional

from .choreography import Choreographer, TimedChoreographer
from .decision_log import DecisionLog
from .effects import StepContext
from .scheduling import Scheduler
from .script_model import Script, ScriptRegistry
from .state import SequencerState, SequencerStatus

StatusCallback = Callable[[str, str], None]


class SequencerEngine:
    """
    Runs one agent script at a time.

    At most one continuation is pending at any moment; it is held in
    ``_pending`` and cancelled whenever the run is paused, resumed or stopped.
    """

    PAUSE_POLL_SECONDS = 0.1

    def __init__(
        self,
        registry: ScriptRegistry,
        scheduler: Scheduler,
        app_state: Any = None,
        choreographer: Optional[Choreographer] = None,
        decision_log: Optional[DecisionLog] = None,
        pause_poll_seconds: float = PAUSE_POLL_SECONDS,
    ) -> None:
        if pause_poll_seconds <= 0:
            raise ValueError("Pause poll interval must be positive")
        self._registry = registry
        self._scheduler = scheduler
        self._app_state = app_state
        self._choreographer = choreographer or TimedChoreographer(scheduler)
        self._log = decision_log or DecisionLog()
        self._pause_poll = pause_poll_seconds

        self._state = SequencerState()
        self._script: Optional[Script] = None
        self._generation = 0
        self._pending: Any = None
        self._next_index = 0
        self._status_callback: Optional[StatusCallback] = None

    # Observation -----------------------------------------------------

    @property
    def state(self) -> SequencerState:
        """A copy of the current state; mutate the engine through its methods only."""
        return replace(self._state)

    @property
    def status(self) -> SequencerStatus:
        return self._state.status

    @property
    def decision_log(self) -> DecisionLog:
        return self._log

    @property
    def active_script(self) -> Optional[Script]:
        return self._script

    @property
    def choreographer(self) -> Choreographer:
        return self._choreographer

    def is_running(self) -> bool:
        return self._state.is_active

    def register_status_callback(self, callback: StatusCallback) -> None:
        """Receive (message, level) notifications about the run."""
        self._status_callback = callback

    # Control ---------------------------------------------------------

    def start(self, script_key: str) -> bool:
        """
        Start the script registered under ``script_key``.

        Returns False (and changes nothing) when a run is already active.
        Raises UnknownScriptError for unregistered keys.
        """
        if self._state.is_active:
            self._notify_status("Agent already running")
            return False

        script = self._registry.get(script_key)

        self._cancel_pending()
        self._generation += 1
        self._script = script
        self._state = SequencerState(
            status=SequencerStatus.RUNNING,
            current_step=0,
            total_steps=len(script),
        )
        self._log.clear()
        self._schedule(0, 0.0)
        self._notify_status(f"Agent started: {script.title or script.key} ({len(script)} steps)")
        return True

    def toggle_pause(self) -> bool:
        """Flip between running and paused. No-op unless a run is active."""
        if self._state.status == SequencerStatus.RUNNING:
            self._state.status = SequencerStatus.PAUSED
            message = f"Agent paused before step {self._next_index + 1}"
        elif self._state.status == SequencerStatus.PAUSED:
            self._state.status = SequencerStatus.RUNNING
            message = "Agent resumed"
        else:
            return False

        # Drop the dwell timer; the poll cycle picks up the same step
        self._cancel_pending()
        self._schedule(self._next_index, self._pause_poll)
        self._notify_status(message)
        return True

    def pause(self) -> bool:
        if self._state.status != SequencerStatus.RUNNING:
            return False
        return self.toggle_pause()

    def resume(self) -> bool:
        if self._state.status != SequencerStatus.PAUSED:
            return False
        return self.toggle_pause()

    def stop(self) -> bool:
        """Abort the active run. Returns False when nothing was running."""
        self._cancel_pending()
        if not self._state.is_active:
            return False

        self._generation += 1
        self._state = SequencerState()
        self._script = None
        self._next_index = 0
        self._choreographer.release()
        self._notify_status("Agent stopped")
        return True

    def clear_log(self) -> None:
        self._log.clear()

    # Execution -------------------------------------------------------

    def _schedule(self, index: int, delay: float) -> None:
        generation = self._generation
        self._next_index = index
        self._pending = self._scheduler.call_later(
            delay, lambda: self._continue(generation, index)
        )

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._scheduler.cancel(self._pending)
            self._pending = None

    def _continue(self, generation: int, index: int) -> None:
        if generation != self._generation or not self._state.is_active:
            return
        self._pending = None

        if self._state.status == SequencerStatus.PAUSED:
            self._schedule(index, self._pause_poll)
            return

        script = self._script
        if script is None or index >= self._state.total_steps:
            self._complete()
            return

        step = script[index]
        self._state.current_step = index + 1
        self._next_index = index + 1

        try:
            step.run(self._context_for(generation, index))
        except Exception as exc:
            self._fail(generation, index, exc)
            return

        self._notify_status(f"Step {index + 1}/{self._state.total_steps}: {step.describe()}")
        # The effect or a status listener may have paused or stopped the run
        if generation != self._generation or self._pending is not None:
            return
        self._schedule(index + 1, step.dwell_seconds)

    def _complete(self) -> None:
        total = self._state.total_steps
        self._state = SequencerState(
            status=SequencerStatus.COMPLETED,
            current_step=total,
            total_steps=total,
        )
        self._choreographer.release()
        self._notify_status(f"Agent finished ({total} steps)")

    def _fail(self, generation: int, index: int, exc: Exception) -> None:
        if generation == self._generation:
            self.stop()
        self._log.append(
            action=f"Step {index + 1} failed",
            reasoning=f"{exc.__class__.__name__}: {exc}",
            confidence=0.0,
            step=index,
            failed=True,
        )
        self._notify_status(f"Step {index + 1} failed: {exc}", level="ERROR")

    def _context_for(self, generation: int, index: int) -> StepContext:
        def current() -> bool:
            return generation == self._generation

        def log(action: str, reasoning: str, confidence: float) -> None:
            if current():
                self._log.append(action, reasoning, confidence, index)

        def focus(element_id: str, on_arrived: Optional[Callable[[], None]]) -> None:
            if not current():
                return
            guarded = None
            if on_arrived is not None:
                def guarded() -> None:
                    if current():
                        on_arrived()
            self._choreographer.focus(element_id, guarded)

        def release() -> None:
            if current():
                self._choreographer.release()

        def status(message: str, level: str) -> None:
            if current():
                self._notify_status(message, level)

        return StepContext(
            state=self._app_state,
            step_index=index,
            log=log,
            focus=focus,
            release=release,
            status=status,
        )

    def _notify_status(self, message: str, level: str = "INFO") -> None:
        if self._status_callback:
            try:
                self._status_callback(message, level)
            except Exception:
                pass
