"""
Choreography: directing the user's attention to on-screen elements.

The engine only relies on the Choreographer contract. TimedChoreographer
provides the timing (click effect, then arrival) on a Scheduler and exposes
hooks that visual implementations override.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from .scheduling import Scheduler


class Choreographer(ABC):
    """Contract between the sequencer and whatever renders the agent cursor."""

    @abstractmethod
    def focus(self, element_id: str, on_arrived: Optional[Callable[[], None]] = None) -> None:
        """Move attention to ``element_id`` and call ``on_arrived`` once there."""

    @abstractmethod
    def release(self) -> None:
        """Drop any focus now. Pending ``on_arrived`` callbacks must not fire afterwards."""

    @property
    @abstractmethod
    def focused_element(self) -> Optional[str]:
        ...


class TimedChoreographer(Choreographer):
    """
    Headless choreographer with the demo's timing.

    ``focus`` shows the element immediately, "clicks" it after
    ``click_delay`` and reports arrival after ``arrival_delay``, which is
    capped at ``MAX_ARRIVAL_DELAY``.
    """

    ARRIVAL_DELAY = 1.5
    CLICK_DELAY = 1.0
    # Arrival has to land inside the shortest inspect dwell (2 s) of the demo scripts
    MAX_ARRIVAL_DELAY = 1.5

    def __init__(
        self,
        scheduler: Scheduler,
        arrival_delay: float = ARRIVAL_DELAY,
        click_delay: float = CLICK_DELAY,
    ) -> None:
        if arrival_delay < 0 or click_delay < 0:
            raise ValueError("Choreography delays cannot be negative")
        self._scheduler = scheduler
        self.arrival_delay = min(arrival_delay, self.MAX_ARRIVAL_DELAY)
        self.click_delay = click_delay
        self._focused: Optional[str] = None
        self._timers: Dict[int, Any] = {}
        self._tokens = itertools.count()

    @property
    def focused_element(self) -> Optional[str]:
        return self._focused

    def pending_timers(self) -> int:
        return len(self._timers)

    def focus(self, element_id: str, on_arrived: Optional[Callable[[], None]] = None) -> None:
        # Timers of the previous focus never outlive it
        self._cancel_timers()
        self._focused = element_id
        self._show(element_id)
        self._later(self.click_delay, lambda: self._click_if_focused(element_id))
        if on_arrived is not None:
            self._later(self.arrival_delay, on_arrived)

    def release(self) -> None:
        self._cancel_timers()
        had_focus = self._focused is not None
        self._focused = None
        if had_focus:
            self._hide()

    def _cancel_timers(self) -> None:
        for handle in self._timers.values():
            self._scheduler.cancel(handle)
        self._timers.clear()

    def _click_if_focused(self, element_id: str) -> None:
        if element_id == self._focused:
            self._click(element_id)

    def _later(self, delay: float, callback: Callable[[], None]) -> None:
        token = next(self._tokens)

        def fire() -> None:
            if self._timers.pop(token, None) is None:
                return
            callback()

        self._timers[token] = self._scheduler.call_later(delay, fire)

    # Rendering hooks -------------------------------------------------

    def _show(self, element_id: str) -> None:
        pass

    def _click(self, element_id: str) -> None:
        pass

    def _hide(self) -> None:
        pass
