"""检测会话：持有状态机、会话统计和阈值，驱动检测 tick 与计时 tick"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

import numpy as np

from alerts.alert_policy import AlertPolicy, Notifier
from classifiers.indicator_classifier import DEFAULT_THRESHOLDS
from classifiers.indicator_source import IndicatorSource
from evaluators.alertness_state_machine import AlertnessStateMachine
from evaluators.session_aggregator import SessionAggregator, format_elapsed
from models.data_models import (
    AlertAction,
    AlertnessState,
    ClassificationResult,
    DetectionRecord,
    FeatureSet,
    Indicators,
    SessionStats,
    Thresholds,
    Transition,
)
from sessions.tick_timer import RepeatingTimer
from sinks.detection_recorder import DetectionRecorder

logger = logging.getLogger(__name__)

FrameProvider = Callable[[], Optional[np.ndarray]]


class DetectionSession:
    """
    一次监测会话的全部可变状态。

    AlertnessState 与 SessionStats 的读改写都在 self._lock 内完成。指标来源
    的调用（可能是远程请求）在锁外执行，不阻塞计时 tick。每次 start/stop
    都会递增 generation，旧 generation 的分类结果到达后直接丢弃。
    """

    def __init__(
        self,
        source: IndicatorSource,
        frame_provider: FrameProvider,
        thresholds: Thresholds = DEFAULT_THRESHOLDS,
        alert_policy: Optional[AlertPolicy] = None,
        recorder: Optional[DetectionRecorder] = None,
        notifier: Optional[Notifier] = None,
        smoothing_ticks: int = 1,
        detection_interval: float = 3.0,
        elapsed_interval: float = 1.0,
        input_ready: Optional[Callable[[], bool]] = None,
        timer_factory: Optional[Callable[..., object]] = RepeatingTimer,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.source = source
        self.frame_provider = frame_provider
        self.alert_policy = alert_policy or AlertPolicy(notifier=notifier)
        self.recorder = recorder
        self.notifier = notifier
        self.detection_interval = detection_interval
        self.elapsed_interval = elapsed_interval
        self._input_ready = input_ready or (lambda: self.frame_provider() is not None)
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.Lock()
        self._thresholds = thresholds
        self._state_machine = AlertnessStateMachine(smoothing_ticks)
        self._aggregator = SessionAggregator()
        self._generation = 0
        self._tick_in_progress = False
        self._timers = []
        self._last_features: Optional[FeatureSet] = None
        self._last_indicators: Optional[Indicators] = None
        self.dropped_ticks = 0
        self.failed_ticks = 0

    # ---- 状态读取 ----

    @property
    def state(self) -> AlertnessState:
        with self._lock:
            return self._state_machine.state

    @property
    def active(self) -> bool:
        with self._lock:
            return self._state_machine.active

    @property
    def stats(self) -> SessionStats:
        with self._lock:
            return self._aggregator.stats

    @property
    def thresholds(self) -> Thresholds:
        with self._lock:
            return self._thresholds

    def update_thresholds(self, thresholds: Thresholds):
        """更新阈值，从下一个检测 tick 开始生效"""
        with self._lock:
            self._thresholds = thresholds

    def snapshot(self) -> dict:
        """供 UI 展示的当前状态"""
        with self._lock:
            stats = self._aggregator.stats
            features = self._last_features
            indicators = self._last_indicators
            return {
                "active": self._state_machine.active,
                "status": self._state_machine.state.value,
                "elapsed_seconds": stats.elapsed_seconds,
                "elapsed": format_elapsed(stats.elapsed_seconds),
                "drowsy_event_count": stats.drowsy_event_count,
                "sleep_event_count": stats.sleep_event_count,
                "ear": None if features is None else round(features.ear, 4),
                "mar": None if features is None else round(features.mar, 4),
                "head_angle": (
                    None if features is None or features.head_angle_deg is None
                    else round(features.head_angle_deg, 2)
                ),
                "eye_status": None if indicators is None else indicators.eye_status.value,
                "mouth_status": None if indicators is None else indicators.mouth_status.value,
                "sleep_status": None if indicators is None else indicators.sleep_status.value,
            }

    # ---- 会话生命周期 ----

    def start(self) -> bool:
        """开始会话；输入源未就绪时返回 False，状态保持 inactive"""
        if self.active:
            return True

        if not self._input_ready():
            self._notify("danger", "输入源未就绪，请检查摄像头连接和权限")
            return False

        with self._lock:
            # 并发 start 时只有第一个进入临界区的调用生效，定时器也只创建一组
            if self._state_machine.active:
                return True
            self._generation += 1
            self._tick_in_progress = False
            self._last_features = None
            self._last_indicators = None
            self._aggregator.reset()
            self._state_machine.start()
            self.dropped_ticks = 0
            self.failed_ticks = 0

            if self._timer_factory is not None:
                self._timers = [
                    self._timer_factory(self.detection_interval, self.run_detection_tick, name="detection-tick"),
                    self._timer_factory(self.elapsed_interval, self.on_second_elapsed, name="elapsed-tick"),
                ]
                for timer in self._timers:
                    timer.start()

        logger.info("检测会话已启动")
        self._notify("info", "疲劳检测已启动")
        return True

    def stop(self):
        """结束会话：取消定时器，状态置为 inactive，在途的分类结果作废"""
        with self._lock:
            was_active = self._state_machine.active
            self._generation += 1
            self._tick_in_progress = False
            self._state_machine.stop()
            timers, self._timers = self._timers, []

        # 在锁外取消，避免与正在等待锁的定时器回调互相等待
        for timer in timers:
            timer.cancel()

        if was_active:
            stats = self.stats
            logger.info(
                "检测会话已停止: 时长 %s, 疲劳 %d 次, 睡着 %d 次",
                format_elapsed(stats.elapsed_seconds),
                stats.drowsy_event_count,
                stats.sleep_event_count,
            )
            self._notify("info", "疲劳检测已停止")

    # ---- tick 处理 ----

    def on_second_elapsed(self):
        with self._lock:
            if self._state_machine.active:
                self._aggregator.on_second_elapsed()

    def run_detection_tick(self) -> Optional[Transition]:
        """
        执行一次检测 tick。

        Returns:
            本次 tick 的状态转换；tick 被丢弃、跳过或结果作废时返回 None
        """
        with self._lock:
            if not self._state_machine.active:
                return None
            if self._tick_in_progress:
                self.dropped_ticks += 1
                logger.debug("上一个检测 tick 尚未完成，丢弃本次 tick")
                return None
            self._tick_in_progress = True
            generation = self._generation
            thresholds = self._thresholds

        try:
            result = self._classify(thresholds)
            return self._apply(result, generation)
        finally:
            with self._lock:
                if generation == self._generation:
                    self._tick_in_progress = False

    def _classify(self, thresholds: Thresholds) -> ClassificationResult:
        image = self.frame_provider()
        if image is None:
            return ClassificationResult.error("当前没有可用的视频帧")
        try:
            return self.source.read(image, thresholds)
        except Exception as e:
            logger.warning("指标来源异常: %s", e, exc_info=True)
            return ClassificationResult.error(f"指标来源异常: {e}")

    def _apply(self, result: ClassificationResult, generation: int) -> Optional[Transition]:
        if not result.is_ok:
            with self._lock:
                self.failed_ticks += 1
            logger.warning("检测 tick 跳过，状态保持不变: %s", result.reason)
            return None

        with self._lock:
            if generation != self._generation or not self._state_machine.active:
                logger.info("会话已结束，丢弃迟到的分类结果")
                return None
            transition = self._state_machine.step(result.indicators)
            self._aggregator.on_tick(transition.previous, transition.current)
            self._last_features = result.features
            self._last_indicators = result.indicators
            record = DetectionRecord(status=transition.current, timestamp=self._clock())

        if transition.changed:
            logger.info("状态切换: %s -> %s", transition.previous.value, transition.current.value)
            action = self.alert_policy.on_state_change(transition.previous, transition.current)
            if action is not AlertAction.NONE:
                logger.info("触发报警: %s", action.value)

        self._persist(record)
        return transition

    def _persist(self, record: DetectionRecord):
        if self.recorder is None:
            return
        try:
            if self.recorder.is_authenticated():
                self.recorder.save_detection(record)
        except Exception as e:
            logger.warning("检测记录保存失败: %s", e)

    def _notify(self, level: str, message: str):
        if self.notifier is not None:
            self.notifier(level, message)
