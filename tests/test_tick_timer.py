"""RepeatingTimer 单元测试"""

import threading

import pytest

from sessions.tick_timer import RepeatingTimer


class TestRepeatingTimer:
    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            RepeatingTimer(0, lambda: None)

    def test_fires_repeatedly(self):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) >= 3:
                fired.set()

        timer = RepeatingTimer(0.01, callback, name="test-timer")
        timer.start()
        try:
            assert fired.wait(2.0)
            assert timer.running
        finally:
            timer.cancel()
        assert not timer.running

    def test_no_callbacks_after_cancel(self):
        calls = []
        timer = RepeatingTimer(0.01, lambda: calls.append(1))
        timer.start()
        timer.cancel()
        count = len(calls)
        threading.Event().wait(0.05)
        assert len(calls) == count

    def test_callback_exception_does_not_stop_timer(self, caplog):
        fired = threading.Event()
        calls = []

        def callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("tick failed")
            fired.set()

        timer = RepeatingTimer(0.01, callback, name="flaky")
        timer.start()
        try:
            assert fired.wait(2.0)
        finally:
            timer.cancel()
        assert "定时器 flaky 回调异常" in caplog.text

    def test_cancel_from_own_callback(self):
        done = threading.Event()
        holder = {}

        def callback():
            holder["timer"].cancel()
            done.set()

        timer = RepeatingTimer(0.01, callback)
        holder["timer"] = timer
        timer.start()
        assert done.wait(2.0)
        timer.cancel()
        assert not timer.running
