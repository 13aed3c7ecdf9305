import pytest

from sequencer import TimedChoreographer


class RecordingChoreographer(TimedChoreographer):
    def __init__(self, scheduler, **kwargs):
        super().__init__(scheduler, **kwargs)
        self.events = []

    def _show(self, element_id):
        self.events.append(("show", element_id))

    def _click(self, element_id):
        self.events.append(("click", element_id))

    def _hide(self):
        self.events.append(("hide",))


def test_focus_clicks_then_arrives(scheduler, clock):
    chor = RecordingChoreographer(scheduler)
    arrived = []
    chor.focus("em-modifiers-input", lambda: arrived.append(clock.now))

    assert chor.focused_element == "em-modifiers-input"
    assert chor.events == [("show", "em-modifiers-input")]

    scheduler.run()
    assert chor.events[-1] == ("click", "em-modifiers-input")
    assert arrived == [1.5]
    assert chor.pending_timers() == 0


def test_release_cancels_pending_arrival(scheduler):
    chor = RecordingChoreographer(scheduler)
    arrived = []
    chor.focus("diagnosis-textarea", lambda: arrived.append(True))
    scheduler.advance(0.5)
    chor.release()
    scheduler.run()

    assert arrived == []
    assert chor.focused_element is None
    assert ("click", "diagnosis-textarea") not in chor.events
    assert chor.events[-1] == ("hide",)


def test_release_without_focus_does_not_hide(scheduler):
    chor = RecordingChoreographer(scheduler)
    chor.release()
    assert chor.events == []


def test_custom_delays(scheduler, clock):
    chor = TimedChoreographer(scheduler, arrival_delay=0.2, click_delay=0.1)
    arrived = []
    chor.focus("icd-codes-section", lambda: arrived.append(clock.now))
    scheduler.run()
    assert arrived == [0.2]


def test_negative_delays_are_rejected(scheduler):
    with pytest.raises(ValueError):
        TimedChoreographer(scheduler, arrival_delay=-1)
    with pytest.raises(ValueError):
        TimedChoreographer(scheduler, click_delay=-0.5)


def test_refocus_drops_the_previous_click_and_arrival(scheduler):
    chor = RecordingChoreographer(scheduler)
    arrived = []
    chor.focus("diagnosis-textarea", lambda: arrived.append("diagnosis"))
    scheduler.advance(0.5)
    chor.focus("em-modifiers-input", lambda: arrived.append("modifiers"))
    scheduler.run()

    assert arrived == ["modifiers"]
    clicks = [e for e in chor.events if e[0] == "click"]
    assert clicks == [("click", "em-modifiers-input")]
    assert ("hide",) not in chor.events
    assert chor.pending_timers() == 0


def test_click_is_skipped_when_focus_moved_away(scheduler):
    chor = RecordingChoreographer(scheduler)
    chor.focus("icd-codes-section")
    chor._focused = "diagnosis-textarea"
    scheduler.run()
    assert ("click", "icd-codes-section") not in chor.events


def test_arrival_delay_is_capped(scheduler, clock):
    chor = TimedChoreographer(scheduler, arrival_delay=2.5)
    assert chor.arrival_delay == TimedChoreographer.MAX_ARRIVAL_DELAY
    arrived = []
    chor.focus("em-modifiers-input", lambda: arrived.append(clock.now))
    scheduler.run()
    assert arrived == [1.5]
