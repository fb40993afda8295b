"""清醒状态机：将逐帧指标转换为稳定的 awake / drowsy / sleeping 状态"""

from typing import Optional

from models.data_models import (
    AlertnessState,
    EyeStatus,
    Indicators,
    MouthStatus,
    SleepStatus,
    Transition,
)
from models.errors import SessionNotActiveError


def target_state(indicators: Indicators) -> AlertnessState:
    """
    单帧指标对应的目标状态。

    闭眼视为比哈欠更强的信号，直接进入 sleeping；仅有哈欠时进入 drowsy。
    """
    if indicators.sleep_status is SleepStatus.SLEPT or indicators.eye_status is EyeStatus.CLOSED:
        return AlertnessState.SLEEPING
    if indicators.mouth_status is MouthStatus.YAWNING:
        return AlertnessState.DROWSY
    return AlertnessState.AWAKE


class AlertnessStateMachine:
    """
    持有跨 tick 的清醒状态。

    smoothing_ticks=1 时逐 tick 即时切换；大于 1 时，新状态需在连续
    smoothing_ticks 个 tick 中被观测到才会生效。
    """

    def __init__(self, smoothing_ticks: int = 1):
        if smoothing_ticks < 1:
            raise ValueError("smoothing_ticks 必须 >= 1")
        self.smoothing_ticks = smoothing_ticks
        self._state = AlertnessState.INACTIVE
        self._candidate: Optional[AlertnessState] = None
        self._streak = 0

    @property
    def state(self) -> AlertnessState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is not AlertnessState.INACTIVE

    def start(self) -> Transition:
        """会话开始，强制进入 awake"""
        return self._force(AlertnessState.AWAKE)

    def stop(self) -> Transition:
        """会话结束，强制进入 inactive"""
        return self._force(AlertnessState.INACTIVE)

    def step(self, indicators: Indicators) -> Transition:
        """
        处理一个检测 tick。

        Raises:
            SessionNotActiveError: 会话未启动
        """
        if not self.active:
            raise SessionNotActiveError("状态机处于 inactive，无法处理检测 tick")

        previous = self._state
        observed = target_state(indicators)

        if observed is previous:
            self._reset_streak()
            return Transition(previous, previous)

        if observed is self._candidate:
            self._streak += 1
        else:
            self._candidate = observed
            self._streak = 1

        if self._streak >= self.smoothing_ticks:
            self._state = observed
            self._reset_streak()

        return Transition(previous, self._state)

    def _force(self, state: AlertnessState) -> Transition:
        previous = self._state
        self._state = state
        self._reset_streak()
        return Transition(previous, state)

    def _reset_streak(self):
        self._candidate = None
        self._streak = 0
