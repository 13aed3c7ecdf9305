from sequencer import TkScheduler


def test_callbacks_run_in_time_order(scheduler, clock):
    fired = []
    scheduler.call_later(2.0, lambda: fired.append(("b", clock.now)))
    scheduler.call_later(0.5, lambda: fired.append(("a", clock.now)))
    scheduler.call_soon(lambda: fired.append(("now", clock.now)))
    scheduler.run()
    assert fired == [("now", 0.0), ("a", 0.5), ("b", 2.0)]


def test_cancelled_callback_never_runs(scheduler):
    fired = []
    handle = scheduler.call_later(1.0, lambda: fired.append(1))
    scheduler.cancel(handle)
    scheduler.run()
    assert fired == []


def test_cancel_tolerates_fired_and_missing_handles(scheduler):
    handle = scheduler.call_soon(lambda: None)
    scheduler.run()
    scheduler.cancel(handle)
    scheduler.cancel(None)


def test_advance_only_runs_due_callbacks(scheduler, clock):
    fired = []
    scheduler.call_later(1.0, lambda: fired.append(1))
    scheduler.call_later(3.0, lambda: fired.append(3))
    scheduler.advance(2.0)
    assert fired == [1]
    assert clock.now == 2.0
    assert scheduler.pending() == 1


def test_callbacks_may_schedule_more_work(scheduler, clock):
    fired = []

    def tick(n):
        fired.append(n)
        if n < 3:
            scheduler.call_later(1.0, lambda: tick(n + 1))

    scheduler.call_soon(lambda: tick(0))
    scheduler.run()
    assert fired == [0, 1, 2, 3]
    assert clock.now == 3.0
    assert scheduler.empty()


def test_negative_delay_runs_immediately(scheduler, clock):
    fired = []
    scheduler.call_later(-5, lambda: fired.append(clock.now))
    scheduler.run()
    assert fired == [0.0]


class FakeRoot:
    def __init__(self):
        self.after_calls = []
        self.cancelled = []

    def after(self, ms, callback):
        self.after_calls.append((ms, callback))
        return f"after#{len(self.after_calls)}"

    def after_cancel(self, handle):
        self.cancelled.append(handle)


def test_tk_scheduler_converts_to_milliseconds():
    root = FakeRoot()
    scheduler = TkScheduler(root)
    handle = scheduler.call_later(1.5, print)
    scheduler.call_soon(print)
    assert [ms for ms, _ in root.after_calls] == [1500, 0]
    scheduler.cancel(handle)
    scheduler.cancel(None)
    assert root.cancelled == ["after#1"]
