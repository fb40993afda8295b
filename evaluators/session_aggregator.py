"""会话统计：计时与 drowsy / sleeping 进入次数"""

from dataclasses import replace

from models.data_models import AlertnessState, SessionStats


def format_elapsed(seconds: int) -> str:
    """秒数格式化为 HH:MM:SS"""
    hours, rest = divmod(max(int(seconds), 0), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class SessionAggregator:
    """只统计“进入”某状态的次数，停留在该状态的 tick 不重复计数"""

    def __init__(self):
        self._stats = SessionStats()

    @property
    def stats(self) -> SessionStats:
        """返回统计快照"""
        return replace(self._stats)

    def reset(self):
        self._stats = SessionStats()

    def on_tick(self, prev_state: AlertnessState, new_state: AlertnessState):
        if new_state is prev_state:
            return
        if new_state is AlertnessState.DROWSY:
            self._stats.drowsy_event_count += 1
        elif new_state is AlertnessState.SLEEPING:
            self._stats.sleep_event_count += 1

    def on_second_elapsed(self):
        self._stats.elapsed_seconds += 1

    def format_elapsed(self) -> str:
        return format_elapsed(self._stats.elapsed_seconds)
