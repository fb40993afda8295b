"""固定间隔的后台定时器"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class RepeatingTimer:
    """
    在守护线程中每隔 interval 秒调用一次 callback。

    callback 在定时器线程内同步执行完才会开始下一次等待，因此同一个定时器
    不会并发触发；callback 抛出的异常只记录日志，不会终止定时器。
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "tick-timer"):
        if interval <= 0:
            raise ValueError("interval 必须为正数")
        self.interval = interval
        self.callback = callback
        self.name = name
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self, timeout: float = 1.0):
        """停止定时器；在定时器线程内部调用时不等待线程退出"""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("定时器 %s 回调异常", self.name)
