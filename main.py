"""疲劳检测系统桌面版入口文件"""

import argparse
import logging
import sys
import threading

import cv2

from alerts.alert_policy import AlertPolicy
from alerts.audio_player import create_audio_player
from classifiers.indicator_source import create_source
from config.loader import build_thresholds, load_config
from display.renderer import DisplayRenderer
from sessions.detection_session import DetectionSession
from sinks.detection_recorder import create_recorder
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


class DetectionSystem:
    """桌面版检测系统：管理摄像头主循环，检测 tick 由 DetectionSession 的定时器驱动。"""

    def __init__(self, source=None, config_path=None, sensitivity=None):
        self.config = load_config(config_path)
        if source is not None:
            self.config["indicator_source"] = source
        if sensitivity is not None:
            self.config["sensitivity"] = sensitivity

        self.thresholds = build_thresholds(self.config)
        self.renderer = DisplayRenderer()
        self.session = None
        self._cap = None
        self._latest_frame = None
        self._frame_lock = threading.Lock()

    def latest_frame(self):
        """供检测 tick 读取的最新帧"""
        with self._frame_lock:
            return None if self._latest_frame is None else self._latest_frame.copy()

    def _build_session(self):
        audio_player = create_audio_player(self.config["alert_sound_path"])
        policy = AlertPolicy(
            audio_player=audio_player,
            notifier=self._notify,
            sound_enabled=self.config["sound_alerts"],
        )
        return DetectionSession(
            source=create_source(self.config),
            frame_provider=self.latest_frame,
            thresholds=self.thresholds,
            alert_policy=policy,
            recorder=create_recorder(self.config),
            notifier=self._notify,
            smoothing_ticks=self.config["smoothing_ticks"],
            detection_interval=self.config["detection_interval"],
            elapsed_interval=self.config["elapsed_interval"],
            input_ready=lambda: self._cap is not None and self._cap.isOpened(),
        )

    @staticmethod
    def _notify(level, message):
        log = {"info": logger.info, "warning": logger.warning}.get(level, logger.error)
        log(message)

    def run(self):
        """启动主循环。"""
        self._cap = cv2.VideoCapture(self.config["camera_index"])

        if not self._cap.isOpened():
            print("无法打开摄像头")
            sys.exit(1)

        self.session = self._build_session()
        try:
            self._main_loop()
        finally:
            self.stop()

    def _main_loop(self):
        """视频流处理主循环：按 s 开始/停止检测，按 q 退出。"""
        self.session.start()
        while True:
            ret, frame = self._cap.read()
            if not ret:
                continue

            with self._frame_lock:
                self._latest_frame = frame

            rendered = self.renderer.render(frame, self.session.snapshot())
            cv2.imshow("Alertness Monitor", rendered)

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            if key == ord("s"):
                if self.session.active:
                    self.session.stop()
                else:
                    self.session.start()

    def stop(self):
        """结束会话、释放摄像头资源、关闭所有窗口。"""
        if self.session is not None:
            self.session.stop()
            self.session.source.close()
            if self.session.alert_policy.audio_player is not None:
                self.session.alert_policy.audio_player.close()
            if self.session.recorder is not None:
                self.session.recorder.close()
            self.session = None
        if self._cap is not None and self._cap.isOpened():
            self._cap.release()
        cv2.destroyAllWindows()


def main(argv=None):
    parser = argparse.ArgumentParser(description="疲劳检测系统")
    parser.add_argument(
        "--source",
        choices=["local", "remote"],
        default=None,
        help="指标来源: local(本地几何计算), remote(远程分类服务)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON 配置文件路径",
    )
    parser.add_argument(
        "--sensitivity",
        type=float,
        default=None,
        help="检测灵敏度 1-100，设置后覆盖 EAR/MAR 阈值",
    )
    args = parser.parse_args(argv)

    system = DetectionSystem(source=args.source, config_path=args.config, sensitivity=args.sensitivity)
    setup_logging(system.config["log_level"])
    system.run()


if __name__ == "__main__":
    main()
