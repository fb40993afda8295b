"""DetectionSession 单元测试：检测 tick 由测试直接驱动，不启动真实定时器"""

import threading
from datetime import datetime
from unittest.mock import MagicMock

import numpy as np
import pytest

from alerts.alert_policy import AlertPolicy
from alerts.audio_player import AudioPlayer
from classifiers.indicator_classifier import classify
from classifiers.indicator_source import IndicatorSource
from models.data_models import (
    AlertnessState,
    ClassificationResult,
    FeatureSet,
    Thresholds,
)
from sessions.detection_session import DetectionSession
from sinks.detection_recorder import DetectionRecorder, MemoryDetectionRecorder

OPEN = FeatureSet(ear=0.30, mar=0.30, head_angle_deg=0.0)
CLOSED = FeatureSet(ear=0.15, mar=0.30, head_angle_deg=0.0)
YAWN = FeatureSet(ear=0.30, mar=0.80, head_angle_deg=0.0)

FIXED_TIME = datetime(2024, 5, 1, 8, 30, 0)


class _ScriptedSource(IndicatorSource):
    """按顺序返回预设特征的分类结果"""

    def __init__(self, features, on_read=None):
        self.features = list(features)
        self.on_read = on_read
        self.calls = 0

    def read(self, image, thresholds=None):
        self.calls += 1
        if self.on_read is not None:
            self.on_read()
        item = self.features.pop(0)
        if isinstance(item, ClassificationResult):
            return item
        if isinstance(item, Exception):
            raise item
        return ClassificationResult.ok(classify(item, thresholds), item)


class _FakeTimer:
    def __init__(self, interval, callback, name=""):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


class _FakePlayer(AudioPlayer):
    def __init__(self):
        self.plays = 0

    def play(self):
        self.plays += 1


def _frame():
    return np.zeros((4, 4, 3), dtype=np.uint8)


def _session(features, **kwargs):
    kwargs.setdefault("timer_factory", None)
    kwargs.setdefault("clock", lambda: FIXED_TIME)
    source = kwargs.pop("source", None) or _ScriptedSource(features)
    return DetectionSession(source=source, frame_provider=kwargs.pop("frame_provider", _frame), **kwargs)


class TestLifecycle:
    def test_initially_inactive(self):
        session = _session([])
        assert session.state is AlertnessState.INACTIVE
        assert not session.active
        assert session.run_detection_tick() is None

    def test_start_enters_awake(self):
        notifier = MagicMock()
        session = _session([], notifier=notifier)
        assert session.start() is True
        assert session.state is AlertnessState.AWAKE
        notifier.assert_called_with("info", "疲劳检测已启动")

    def test_input_not_ready(self):
        notifier = MagicMock()
        session = _session([], notifier=notifier, input_ready=lambda: False)

        assert session.start() is False
        assert session.state is AlertnessState.INACTIVE
        assert notifier.call_args[0][0] == "danger"

    def test_default_input_ready_checks_frame(self):
        session = _session([], frame_provider=lambda: None)
        assert session.start() is False

    def test_stop_before_any_tick(self):
        session = _session([])
        session.start()
        session.stop()
        stats = session.stats
        assert session.state is AlertnessState.INACTIVE
        assert (stats.elapsed_seconds, stats.drowsy_event_count, stats.sleep_event_count) == (0, 0, 0)

    def test_timers_started_and_cancelled(self):
        timers = []

        def factory(interval, callback, name=""):
            timer = _FakeTimer(interval, callback, name)
            timers.append(timer)
            return timer

        session = _session([], timer_factory=factory, detection_interval=3.0, elapsed_interval=1.0)
        session.start()

        assert sorted(t.interval for t in timers) == [1.0, 3.0]
        assert all(t.started for t in timers)
        callbacks = {t.interval: t.callback for t in timers}
        assert callbacks[3.0] == session.run_detection_tick
        assert callbacks[1.0] == session.on_second_elapsed

        session.stop()
        assert all(t.cancelled for t in timers)

    def test_restart_resets_stats(self):
        session = _session([CLOSED])
        session.start()
        session.run_detection_tick()
        session.on_second_elapsed()
        session.stop()

        # 停止后统计保留，直到下一次开始
        assert session.stats.sleep_event_count == 1

        session.start()
        assert session.stats.sleep_event_count == 0
        assert session.stats.elapsed_seconds == 0
        assert session.state is AlertnessState.AWAKE


class TestDetectionTicks:
    def test_ear_sequence(self):
        session = _session([OPEN, CLOSED, CLOSED, OPEN, CLOSED])
        session.start()

        states = [session.run_detection_tick().current for _ in range(5)]

        assert states == [
            AlertnessState.AWAKE,
            AlertnessState.SLEEPING,
            AlertnessState.SLEEPING,
            AlertnessState.AWAKE,
            AlertnessState.SLEEPING,
        ]
        assert session.stats.sleep_event_count == 2
        assert session.stats.drowsy_event_count == 0

    def test_yawn_is_drowsy(self):
        session = _session([YAWN, YAWN, OPEN])
        session.start()
        states = [session.run_detection_tick().current for _ in range(3)]
        assert states == [AlertnessState.DROWSY, AlertnessState.DROWSY, AlertnessState.AWAKE]
        assert session.stats.drowsy_event_count == 1

    def test_failed_tick_keeps_state(self):
        session = _session([CLOSED, ClassificationResult.error("未检测到人脸")])
        session.start()
        session.run_detection_tick()

        assert session.run_detection_tick() is None
        assert session.state is AlertnessState.SLEEPING
        assert session.failed_ticks == 1

    def test_source_exception_is_failed_tick(self):
        session = _session([RuntimeError("boom")])
        session.start()
        assert session.run_detection_tick() is None
        assert session.state is AlertnessState.AWAKE
        assert session.failed_ticks == 1

    def test_missing_frame_is_failed_tick(self):
        frames = iter([_frame(), None])
        session = _session([OPEN], frame_provider=lambda: next(frames))
        session.start()
        assert session.run_detection_tick() is None
        assert session.failed_ticks == 1

    def test_threshold_update_applies_to_next_tick(self):
        borderline = FeatureSet(ear=0.25, mar=0.3, head_angle_deg=0.0)
        session = _session([borderline, borderline])
        session.start()

        assert session.run_detection_tick().current is AlertnessState.AWAKE
        session.update_thresholds(Thresholds(ear_threshold=0.27))
        assert session.run_detection_tick().current is AlertnessState.SLEEPING

    def test_smoothing(self):
        session = _session([CLOSED, CLOSED], smoothing_ticks=2)
        session.start()
        assert session.run_detection_tick().current is AlertnessState.AWAKE
        assert session.run_detection_tick().current is AlertnessState.SLEEPING

    def test_snapshot(self):
        session = _session([YAWN])
        session.start()
        session.run_detection_tick()
        session.on_second_elapsed()

        snap = session.snapshot()
        assert snap["active"] is True
        assert snap["status"] == "drowsy"
        assert snap["elapsed"] == "00:00:01"
        assert snap["ear"] == pytest.approx(0.3)
        assert snap["mar"] == pytest.approx(0.8)
        assert snap["head_angle"] == 0.0
        assert snap["mouth_status"] == "Yawning"
        assert snap["drowsy_event_count"] == 1


class TestConcurrency:
    def test_late_result_after_stop_is_discarded(self):
        holder = {}
        source = _ScriptedSource([CLOSED], on_read=lambda: holder["session"].stop())
        session = _session([], source=source)
        holder["session"] = session
        session.start()

        assert session.run_detection_tick() is None
        assert session.state is AlertnessState.INACTIVE
        assert session.stats.sleep_event_count == 0

    def test_overlapping_tick_is_dropped(self):
        holder = {}
        inner = []
        source = _ScriptedSource(
            [CLOSED],
            on_read=lambda: inner.append(holder["session"].run_detection_tick()),
        )
        session = _session([], source=source)
        holder["session"] = session
        session.start()

        transition = session.run_detection_tick()

        assert inner == [None]
        assert source.calls == 1
        assert session.dropped_ticks == 1
        assert transition.current is AlertnessState.SLEEPING

    def test_concurrent_start_creates_one_timer_pair(self):
        """两个线程同时 start，只创建一组定时器，stop 后全部取消"""
        timers = []
        barrier = threading.Barrier(2, timeout=2.0)

        def factory(interval, callback, name=""):
            timer = _FakeTimer(interval, callback, name)
            timers.append(timer)
            return timer

        def input_ready():
            # 两个 start 调用都通过就绪检查后再继续
            barrier.wait()
            return True

        session = _session([], timer_factory=factory, input_ready=input_ready)
        results = []
        threads = [threading.Thread(target=lambda: results.append(session.start())) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert results == [True, True]
        assert sorted(t.name for t in timers) == ["detection-tick", "elapsed-tick"]

        session.stop()
        assert all(t.cancelled for t in timers)
        assert session.state is AlertnessState.INACTIVE

    def test_start_while_active_keeps_timers(self):
        timers = []

        def factory(interval, callback, name=""):
            timer = _FakeTimer(interval, callback, name)
            timers.append(timer)
            return timer

        session = _session([], timer_factory=factory)
        session.start()
        session.start()
        assert len(timers) == 2

    def test_elapsed_ignored_when_inactive(self):
        session = _session([])
        session.on_second_elapsed()
        assert session.stats.elapsed_seconds == 0


class TestSideEffects:
    def test_alert_on_sleep_entry(self):
        player = _FakePlayer()
        notifier = MagicMock()
        policy = AlertPolicy(audio_player=player, notifier=notifier)
        session = _session([CLOSED, CLOSED, OPEN, CLOSED], alert_policy=policy)
        session.start()
        for _ in range(4):
            session.run_detection_tick()
        assert player.plays == 2

    def test_records_every_tick(self):
        recorder = MemoryDetectionRecorder()
        session = _session([OPEN, CLOSED], recorder=recorder)
        session.start()
        session.run_detection_tick()
        session.run_detection_tick()

        records = recorder.records()
        assert [r.status for r in records] == [AlertnessState.AWAKE, AlertnessState.SLEEPING]
        assert records[0].to_payload() == {"status": "awake", "timestamp": "2024-05-01T08:30:00"}

    def test_unauthenticated_recorder_skipped(self):
        recorder = MagicMock(spec=DetectionRecorder)
        recorder.is_authenticated.return_value = False
        session = _session([OPEN], recorder=recorder)
        session.start()
        session.run_detection_tick()
        recorder.save_detection.assert_not_called()

    def test_recorder_failure_does_not_break_tick(self, caplog):
        recorder = MagicMock(spec=DetectionRecorder)
        recorder.is_authenticated.return_value = True
        recorder.save_detection.side_effect = RuntimeError("db down")
        session = _session([CLOSED], recorder=recorder)
        session.start()

        assert session.run_detection_tick().current is AlertnessState.SLEEPING
        assert "检测记录保存失败" in caplog.text
