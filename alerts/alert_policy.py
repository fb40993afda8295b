"""报警策略：根据状态切换决定是否播放报警音、是否提示用户"""

import logging
from typing import Callable, Optional

from alerts.audio_player import AudioPlayer
from models.data_models import AlertAction, AlertnessState

logger = logging.getLogger(__name__)

# notifier(level, message)，level 取 info / warning / danger
Notifier = Callable[[str, str], None]

SLEEPING_MESSAGE = "检测到您可能已经睡着！请立即休息。"
DROWSY_MESSAGE = "检测到疲劳迹象，请注意休息。"


class AlertPolicy:
    """只决定是否报警；是否持久化检测记录由调用方决定"""

    def __init__(
        self,
        audio_player: Optional[AudioPlayer] = None,
        notifier: Optional[Notifier] = None,
        sound_enabled: bool = True,
    ):
        self.audio_player = audio_player
        self.notifier = notifier
        self.sound_enabled = sound_enabled

    def decide(self, prev_state: AlertnessState, new_state: AlertnessState) -> AlertAction:
        """纯判定，不产生副作用"""
        if new_state is prev_state:
            return AlertAction.NONE
        if new_state is AlertnessState.SLEEPING:
            return AlertAction.PLAY_SOUND if self.sound_enabled else AlertAction.SHOW_TOAST
        if new_state is AlertnessState.DROWSY and prev_state is AlertnessState.AWAKE:
            return AlertAction.SHOW_TOAST
        return AlertAction.NONE

    def on_state_change(self, prev_state: AlertnessState, new_state: AlertnessState) -> AlertAction:
        """判定并执行报警动作"""
        action = self.decide(prev_state, new_state)

        if action is AlertAction.PLAY_SOUND:
            self._play_sound()
            self._notify("danger", SLEEPING_MESSAGE)
        elif action is AlertAction.SHOW_TOAST:
            if new_state is AlertnessState.SLEEPING:
                self._notify("danger", SLEEPING_MESSAGE)
            else:
                self._notify("warning", DROWSY_MESSAGE)

        return action

    def _play_sound(self):
        if self.audio_player is None:
            return
        try:
            self.audio_player.play()
        except Exception as e:
            # 音频设备问题不能中断检测流程
            logger.warning("报警音播放失败: %s", e)

    def _notify(self, level: str, message: str):
        if self.notifier is not None:
            self.notifier(level, message)
