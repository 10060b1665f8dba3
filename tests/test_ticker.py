import threading
import time

from pulselink.ticker import TickTimer


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_ticks_until_stopped():
    calls = []
    timer = TickTimer(lambda: calls.append(time.monotonic()), lambda: 0.05)
    timer.start()
    assert wait_for(lambda: len(calls) >= 3)

    assert timer.stop() is True
    assert not timer.is_running
    count = len(calls)
    time.sleep(0.15)
    assert len(calls) == count
    assert timer.tick_count == count


def test_start_twice_runs_one_thread():
    timer = TickTimer(lambda: None, lambda: 0.05)
    timer.start()
    first = timer._thread
    timer.start()
    assert timer._thread is first
    timer.stop()


def test_interval_is_reread_every_tick():
    interval = [10.0]
    ticked = threading.Event()
    timer = TickTimer(ticked.set, lambda: interval[0])
    interval[0] = 0.05
    timer.start()
    assert ticked.wait(2.0)
    timer.stop()


def test_callback_errors_do_not_stop_timer():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise ValueError("first tick fails")

    timer = TickTimer(flaky, lambda: 0.05)
    timer.start()
    assert wait_for(lambda: len(calls) >= 3)
    timer.stop()
    assert timer.tick_count == len(calls) - 1


def test_stop_from_callback_does_not_deadlock():
    holder = {}

    def stop_self():
        holder["result"] = holder["timer"].stop()

    timer = TickTimer(stop_self, lambda: 0.05)
    holder["timer"] = timer
    timer.start()
    assert wait_for(lambda: "result" in holder)
    assert holder["result"] is True
    assert wait_for(lambda: not timer.is_running)


def test_stop_before_start():
    assert TickTimer(lambda: None, lambda: 1.0).stop() is True
