import pytest

from billing_scripts import ReorderDiagnosesEffect
from models import BillingForm
from sequencer import (
    LoopScheduler,
    Script,
    ScriptRegistry,
    ScriptStep,
    SequencerEngine,
    SequencerState,
    SequencerStatus,
    TimedChoreographer,
    UnknownScriptError,
)
from sequencer.effects import NoteEffect, SetFieldEffect


class LeakyScheduler(LoopScheduler):
    """A scheduler whose cancel never works, so every timer eventually fires."""

    def cancel(self, handle) -> None:
        pass


def recording_script(calls, key="rec", steps=5, dwell=1.0, fail_at=None, before=None):
    def make(index):
        def effect(ctx):
            if before is not None:
                before(ctx)
            if index == fail_at:
                raise RuntimeError("boom")
            calls.append(index)
            ctx.log(f"step {index}", "recorded", 1.0)
        return effect

    return Script(
        key=key,
        title="Recording",
        steps=tuple(ScriptStep(make(i), dwell_seconds=dwell) for i in range(steps)),
    )


def make_engine(script, scheduler, app_state=None, **kwargs):
    registry = ScriptRegistry()
    registry.register(script)
    return SequencerEngine(registry, scheduler, app_state=app_state, **kwargs)


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------

def test_telehealth_run_completes(engine, scheduler, form):
    assert engine.start("telehealth") is True
    scheduler.run()

    state = engine.state
    assert state.status == SequencerStatus.COMPLETED
    assert state.current_step == state.total_steps == 4
    entries = engine.decision_log.entries()
    assert len(entries) == 4
    assert [e.step for e in entries] == [0, 1, 2, 3]
    assert entries[-1].step == 3
    assert entries[-1].action == "Telehealth billing correction complete"
    assert form.em_code.modifiers == "95"
    assert engine.choreographer.focused_element is None
    assert scheduler.empty()


def test_telehealth_run_takes_the_authored_dwell(engine, scheduler, clock):
    engine.start("telehealth")
    scheduler.run()
    assert clock.now == pytest.approx(6.5)


def test_obesity_run_moves_diabetes_to_primary(registry, scheduler, catalog):
    form = catalog.load_form("obesity-primary")
    assert form.diagnosis_codes()[0] == "E66.9"
    engine = SequencerEngine(registry, scheduler, app_state=form)

    engine.start("obesity")
    scheduler.run()

    assert form.diagnosis_codes() == ["E11.9", "E66.9", "I10"]
    actions = [e.action for e in engine.decision_log]
    assert actions.count("Reordering diagnosis codes") == 1
    assert engine.state.current_step == engine.state.total_steps == 3


def test_every_effect_runs_once_in_order(scheduler):
    calls = []
    engine = make_engine(recording_script(calls, steps=6, dwell=0.5), scheduler)
    engine.start("rec")
    scheduler.run()
    assert calls == [0, 1, 2, 3, 4, 5]


def test_cursor_is_advanced_before_the_effect_runs(scheduler):
    seen = []
    holder = {}
    script = recording_script([], steps=3, before=lambda ctx: seen.append(holder["engine"].state.current_step))
    holder["engine"] = make_engine(script, scheduler)

    holder["engine"].start("rec")
    scheduler.run()
    assert seen == [1, 2, 3]


def test_start_never_runs_a_step_synchronously(engine):
    engine.start("telehealth")
    assert engine.state.current_step == 0
    assert len(engine.decision_log) == 0


def test_empty_script_completes_immediately(scheduler):
    engine = make_engine(Script(key="empty"), scheduler)
    engine.start("empty")
    scheduler.run()
    assert engine.state == SequencerState(SequencerStatus.COMPLETED, 0, 0)


def test_arrival_findings_go_to_status_channel(engine, scheduler, recorder):
    engine.start("telehealth")
    scheduler.run()
    texts = recorder.texts()
    assert "Found telehealth indicators in diagnosis text" in texts
    assert "Found missing modifier 95 in E/M modifiers" in texts
    assert texts[-1] == "Agent finished (4 steps)"


class ClickLog(TimedChoreographer):
    """Records each click together with the element focused at that moment."""

    def __init__(self, scheduler, **kwargs):
        super().__init__(scheduler, **kwargs)
        self.clicks = []

    def _click(self, element_id):
        self.clicks.append((element_id, self.focused_element))


def test_quick_pause_resume_drops_the_previous_focus_timers(registry, scheduler, recorder):
    chor = ClickLog(scheduler)
    engine = SequencerEngine(registry, scheduler, app_state=BillingForm.default(), choreographer=chor)
    engine.register_status_callback(recorder)
    engine.start("telehealth")
    scheduler.advance(0)
    engine.pause()
    engine.resume()
    scheduler.advance(1.65)

    assert chor.clicks == [("em-modifiers-input", "em-modifiers-input")]
    assert "Found missing modifier 95 in E/M modifiers" in recorder.texts()
    assert "Found telehealth indicators in diagnosis text" not in recorder.texts()

    scheduler.run()
    assert all(clicked == focused for clicked, focused in chor.clicks)


def test_long_arrival_delay_still_reports_every_finding(registry, scheduler, recorder):
    chor = TimedChoreographer(scheduler, arrival_delay=2.5)
    engine = SequencerEngine(registry, scheduler, app_state=BillingForm.default(), choreographer=chor)
    engine.register_status_callback(recorder)
    engine.start("telehealth")
    scheduler.run()

    texts = recorder.texts()
    assert "Found telehealth indicators in diagnosis text" in texts
    assert "Found missing modifier 95 in E/M modifiers" in texts


# ---------------------------------------------------------------------------
# Start preconditions
# ---------------------------------------------------------------------------

def test_start_while_running_is_ignored(engine, scheduler, recorder):
    assert engine.start("telehealth") is True
    scheduler.advance(0)
    assert engine.start("obesity") is False
    assert engine.active_script.key == "telehealth"
    assert ("Agent already running", "INFO") in recorder.messages


def test_start_while_paused_is_ignored(engine, scheduler):
    engine.start("telehealth")
    scheduler.advance(0)
    engine.pause()
    assert engine.start("telehealth") is False
    assert engine.state.status == SequencerStatus.PAUSED
    assert len(engine.decision_log) == 1


def test_unknown_script_is_rejected_without_state_change(engine):
    engine.decision_log.append("previous", "kept", 1.0, 0)
    with pytest.raises(UnknownScriptError, match="No such script"):
        engine.start("does-not-exist")
    assert engine.state == SequencerState()
    assert len(engine.decision_log) == 1


def test_start_after_completion_begins_a_new_run(engine, scheduler):
    engine.start("telehealth")
    scheduler.run()
    assert engine.start("obesity") is True
    assert engine.state == SequencerState(SequencerStatus.RUNNING, 0, 3)
    assert len(engine.decision_log) == 0


# ---------------------------------------------------------------------------
# Pause / resume
# ---------------------------------------------------------------------------

def test_pause_after_first_step_holds_position(engine, scheduler):
    engine.start("telehealth")
    scheduler.advance(0)
    assert len(engine.decision_log) == 1

    assert engine.pause() is True
    scheduler.advance(5.0)  # well beyond one dwell interval
    assert len(engine.decision_log) == 1
    assert engine.state == SequencerState(SequencerStatus.PAUSED, 1, 4)

    assert engine.resume() is True
    scheduler.advance(0.1)
    assert len(engine.decision_log) == 2
    assert engine.decision_log.last().step == 1

    scheduler.run()
    assert engine.state.status == SequencerStatus.COMPLETED
    assert [e.step for e in engine.decision_log] == [0, 1, 2, 3]


def test_resume_latency_is_bounded_by_poll_interval(scheduler, clock):
    calls = []
    engine = make_engine(recording_script(calls, steps=2, dwell=3.0), scheduler, pause_poll_seconds=0.25)
    engine.start("rec")
    scheduler.advance(0)
    engine.pause()
    scheduler.advance(1.0)
    engine.resume()
    resumed_at = clock.now
    scheduler.advance(0.25)
    assert calls == [0, 1]
    assert clock.now - resumed_at <= 0.25 + 1e-9


def test_no_effect_runs_while_paused(scheduler):
    calls = []
    statuses = []
    holder = {}
    script = recording_script(
        calls, steps=5, dwell=1.0, before=lambda ctx: statuses.append(holder["engine"].status)
    )
    engine = holder["engine"] = make_engine(script, scheduler)
    engine.start("rec")

    for delay in (0.0, 0.35, 0.9, 0.05, 1.7, 0.2, 0.6, 2.5, 0.15):
        scheduler.advance(delay)
        before = list(calls)
        engine.toggle_pause()
        if engine.status == SequencerStatus.PAUSED:
            scheduler.advance(1.5)
            assert calls == before
            engine.toggle_pause()

    scheduler.run()
    assert calls == [0, 1, 2, 3, 4]
    assert all(s == SequencerStatus.RUNNING for s in statuses)


def test_toggle_pause_flips_status(engine, scheduler):
    engine.start("telehealth")
    assert engine.toggle_pause() is True
    assert engine.status == SequencerStatus.PAUSED
    assert engine.state.is_paused
    assert engine.toggle_pause() is True
    assert engine.status == SequencerStatus.RUNNING
    assert not engine.state.is_paused


def test_pause_cancels_the_pending_dwell_timer(engine, scheduler):
    engine.start("telehealth")
    scheduler.advance(0)
    engine.choreographer.release()
    assert scheduler.pending() == 1
    engine.pause()
    # only the poll continuation remains
    assert scheduler.pending() == 1


def test_pause_from_inside_an_effect(scheduler):
    calls = []
    holder = {}

    def before(ctx):
        if ctx.step_index == 1:
            holder["engine"].pause()

    engine = holder["engine"] = make_engine(recording_script(calls, steps=4, before=before), scheduler)
    engine.start("rec")
    scheduler.advance(5.0)
    assert calls == [0, 1]
    assert engine.status == SequencerStatus.PAUSED
    assert scheduler.pending() == 1

    engine.resume()
    scheduler.run()
    assert calls == [0, 1, 2, 3]


# ---------------------------------------------------------------------------
# Stop
# ---------------------------------------------------------------------------

def test_stop_before_first_step(engine, scheduler):
    engine.start("telehealth")
    assert engine.stop() is True
    scheduler.run()
    assert len(engine.decision_log) == 0
    assert engine.state == SequencerState()


def test_stop_mid_run_resets_and_halts(engine, scheduler, form):
    engine.start("telehealth")
    scheduler.advance(2.5)
    assert len(engine.decision_log) == 2

    engine.stop()
    assert engine.state == SequencerState(SequencerStatus.IDLE, 0, 0)
    assert engine.choreographer.focused_element is None
    assert scheduler.empty()

    scheduler.run()
    assert len(engine.decision_log) == 2
    assert form.em_code.modifiers == ""


def test_stop_while_paused(engine, scheduler):
    engine.start("telehealth")
    scheduler.advance(0)
    engine.pause()
    engine.stop()
    scheduler.advance(10)
    assert engine.state == SequencerState()
    assert len(engine.decision_log) == 1


def test_stop_is_idempotent(engine, scheduler):
    engine.start("telehealth")
    scheduler.advance(0)
    engine.stop()
    first = engine.state
    assert engine.stop() is False
    assert engine.state == first


def test_stale_timers_after_stop_do_nothing(registry, clock):
    scheduler = LeakyScheduler(timefunc=clock.time, delayfunc=clock.sleep, max_sleep=None)
    form = BillingForm.default()
    engine = SequencerEngine(registry, scheduler, app_state=form)
    statuses = []
    engine.register_status_callback(lambda m, lvl: statuses.append(m))

    engine.start("telehealth")
    scheduler.advance(0)
    engine.stop()
    scheduler.run()

    assert len(engine.decision_log) == 1
    assert engine.state == SequencerState()
    assert form.em_code.modifiers == ""
    assert "Found telehealth indicators in diagnosis text" not in statuses


def test_stale_timers_do_not_leak_into_a_new_run(registry, clock):
    scheduler = LeakyScheduler(timefunc=clock.time, delayfunc=clock.sleep, max_sleep=None)
    engine = SequencerEngine(registry, scheduler, app_state=BillingForm.default())

    engine.start("telehealth")
    scheduler.advance(0)
    engine.stop()
    engine.start("telehealth")
    scheduler.run()

    assert [e.step for e in engine.decision_log] == [0, 1, 2, 3]
    assert engine.state.status == SequencerStatus.COMPLETED


def test_late_arrival_callback_is_dropped_after_stop(registry, clock):
    scheduler = LeakyScheduler(timefunc=clock.time, delayfunc=clock.sleep, max_sleep=None)
    arrived = []

    class KeepsCallbacks(TimedChoreographer):
        def focus(self, element_id, on_arrived=None):
            arrived.append(on_arrived)

    engine = SequencerEngine(
        registry, scheduler, app_state=BillingForm.default(), choreographer=KeepsCallbacks(scheduler)
    )
    statuses = []
    engine.register_status_callback(lambda m, lvl: statuses.append(m))
    engine.start("telehealth")
    scheduler.advance(0)
    engine.stop()

    arrived[0]()
    assert "Found telehealth indicators in diagnosis text" not in statuses


def test_stop_from_inside_an_effect(scheduler):
    calls = []
    holder = {}

    def before(ctx):
        if ctx.step_index == 2:
            holder["engine"].stop()

    engine = holder["engine"] = make_engine(recording_script(calls, steps=5, before=before), scheduler)
    engine.start("rec")
    scheduler.run()
    # the effect body still completes, nothing after it runs
    assert calls == [0, 1, 2]
    assert engine.state == SequencerState()


# ---------------------------------------------------------------------------
# No-op controls
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("control", ["pause", "resume", "toggle_pause", "stop"])
def test_controls_are_noops_when_idle(engine, control):
    assert getattr(engine, control)() is False
    assert engine.state == SequencerState()


@pytest.mark.parametrize("control", ["pause", "resume", "toggle_pause", "stop"])
def test_controls_are_noops_when_completed(engine, scheduler, control):
    engine.start("telehealth")
    scheduler.run()
    before = engine.state
    assert getattr(engine, control)() is False
    assert engine.state == before == SequencerState(SequencerStatus.COMPLETED, 4, 4)


def test_resume_is_noop_while_running(engine):
    engine.start("telehealth")
    assert engine.resume() is False
    assert engine.status == SequencerStatus.RUNNING


def test_clear_log_works_in_any_state(engine, scheduler):
    engine.start("telehealth")
    scheduler.advance(2.5)
    engine.clear_log()
    assert len(engine.decision_log) == 0
    scheduler.run()
    assert [e.step for e in engine.decision_log] == [2, 3]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_failing_effect_stops_the_run(scheduler, recorder):
    calls = []
    engine = make_engine(recording_script(calls, steps=4, fail_at=1), scheduler)
    engine.register_status_callback(recorder)

    engine.start("rec")
    scheduler.run()

    assert calls == [0]
    assert engine.state == SequencerState()
    entries = engine.decision_log.entries()
    assert len(entries) == 2
    failure = entries[-1]
    assert failure.failed is True
    assert failure.step == 1
    assert failure.confidence == 0.0
    assert "boom" in failure.reasoning
    assert any(level == "ERROR" for _, level in recorder.messages)


def test_failure_in_set_field_path(scheduler):
    script = Script(
        key="bad",
        steps=(
            ScriptStep(NoteEffect("ok", "first"), dwell_seconds=1.0),
            ScriptStep(
                lambda ctx: ctx.state.set_field("em_code.nonexistent", "x"),
                dwell_seconds=1.0,
            ),
            ScriptStep(NoteEffect("never", "third"), dwell_seconds=1.0),
        ),
    )
    engine = make_engine(script, scheduler, app_state=BillingForm.default())
    engine.start("bad")
    scheduler.run()
    actions = [e.action for e in engine.decision_log]
    assert actions == ["ok", "Step 2 failed"]
    assert engine.status == SequencerStatus.IDLE


@pytest.mark.parametrize(
    "effect",
    [
        SetFieldEffect("em_code.nonexistent", "95", "Adding modifier 95 to E/M modifiers", "Required"),
        ReorderDiagnosesEffect(("E11.9",), "Reordering diagnosis codes", "Moving obesity"),
    ],
)
def test_failed_change_logs_only_the_failure(scheduler, effect):
    script = Script(key="bad", steps=(ScriptStep(effect, dwell_seconds=1.0),))
    engine = make_engine(script, scheduler, app_state=object())
    engine.start("bad")
    scheduler.run()

    entries = engine.decision_log.entries()
    assert [e.action for e in entries] == ["Step 1 failed"]
    assert entries[0].failed is True


def test_status_callback_errors_do_not_break_the_run(engine, scheduler):
    def broken(message, level):
        raise RuntimeError("display gone")

    engine.register_status_callback(broken)
    engine.start("telehealth")
    scheduler.run()
    assert engine.status == SequencerStatus.COMPLETED


def test_state_property_returns_a_copy(engine):
    engine.start("telehealth")
    snapshot = engine.state
    snapshot.current_step = 99
    assert engine.state.current_step == 0


def test_invalid_poll_interval_is_rejected(registry, scheduler):
    with pytest.raises(ValueError):
        SequencerEngine(registry, scheduler, pause_poll_seconds=0)
