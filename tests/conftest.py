from pathlib import Path

import pytest

from billing_scripts import build_default_registry
from case_catalog import CaseCatalog
from models import BillingForm
from sequencer import LoopScheduler, SequencerEngine, TimedChoreographer

REPO_ROOT = Path(__file__).resolve().parent.parent


class ManualClock:
    """Virtual time for LoopScheduler: sleeping advances the clock instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.now += seconds


class Recorder:
    """Collects (message, level) status notifications."""

    def __init__(self) -> None:
        self.messages = []

    def __call__(self, message: str, level: str) -> None:
        self.messages.append((message, level))

    def texts(self):
        return [m for m, _ in self.messages]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return LoopScheduler(timefunc=clock.time, delayfunc=clock.sleep, max_sleep=None)


@pytest.fixture
def catalog():
    return CaseCatalog(REPO_ROOT / "test_cases")


@pytest.fixture
def form():
    return BillingForm.default()


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def choreographer(scheduler):
    return TimedChoreographer(scheduler)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def engine(registry, scheduler, form, choreographer, recorder):
    eng = SequencerEngine(registry, scheduler, app_state=form, choreographer=choreographer)
    eng.register_status_callback(recorder)
    return eng
