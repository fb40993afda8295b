"""Flask Web 服务 - 疲劳检测系统"""

import datetime
import logging
import threading
import time

import cv2
from flask import Flask, Response, jsonify, request

from alerts.alert_policy import AlertPolicy
from alerts.audio_player import create_audio_player
from classifiers.indicator_classifier import (
    SENSITIVITY_MAX,
    SENSITIVITY_MIN,
    thresholds_from_sensitivity,
)
from classifiers.indicator_source import LocalGeometricSource, create_source
from classifiers.remote_classifier import build_classification_response, decode_image
from config.loader import build_thresholds, load_config
from display.renderer import DisplayRenderer
from models.data_models import Thresholds
from sessions.detection_session import DetectionSession
from sinks.detection_recorder import create_recorder

logger = logging.getLogger(__name__)

app = Flask(__name__)


class WebDetectionSystem:
    """Web 版检测系统，支持 MJPEG 视频流推送、实时数据 API 和远程分类接口。"""

    MAX_LOG_ENTRIES = 200

    def __init__(self, config=None):
        self.config = dict(config) if config is not None else load_config()
        self.thresholds = build_thresholds(self.config)
        self.renderer = DisplayRenderer()
        self.session = None
        self.classify_source = None
        self._cap = None
        self._running = False
        self._thread = None
        self._lock = threading.Lock()
        # start / stop 可能来自并发的 HTTP 请求；start 失败时会在锁内调用 stop
        self._lifecycle_lock = threading.RLock()
        self._classify_lock = threading.Lock()
        self._latest_frame = None
        self._latest_jpeg = None
        self._logs = []
        self._log_lock = threading.Lock()

    # ---- 会话 ----

    def _latest(self):
        with self._lock:
            return None if self._latest_frame is None else self._latest_frame.copy()

    def _camera_ready(self):
        return self._cap is not None and self._cap.isOpened()

    def _ensure_session(self):
        if self.session is not None:
            return self.session
        policy = AlertPolicy(
            audio_player=create_audio_player(self.config["alert_sound_path"]),
            notifier=self._add_log,
            sound_enabled=self.config["sound_alerts"],
        )
        self.session = DetectionSession(
            source=create_source(self.config),
            frame_provider=self._latest,
            thresholds=self.thresholds,
            alert_policy=policy,
            recorder=create_recorder(self.config),
            notifier=self._add_log,
            smoothing_ticks=self.config["smoothing_ticks"],
            detection_interval=self.config["detection_interval"],
            elapsed_interval=self.config["elapsed_interval"],
            input_ready=self._camera_ready,
        )
        return self.session

    def start(self):
        """启动摄像头、采集线程和检测会话。"""
        with self._lifecycle_lock:
            if self._running:
                return True
            self._cap = cv2.VideoCapture(self.config["camera_index"])
            if not self._cap.isOpened():
                self._add_log("danger", "无法打开摄像头")
                self._cap = None
                return False
            self._running = True
            self._thread = threading.Thread(target=self._capture_loop, daemon=True)
            self._thread.start()

            if not self._ensure_session().start():
                self.stop()
                return False
            return True

    def stop(self):
        """停止检测并释放摄像头。"""
        with self._lifecycle_lock:
            if self.session is not None:
                self.session.stop()
            self._running = False
            if self._thread is not None:
                self._thread.join(timeout=1.0)
                self._thread = None
            if self._cap is not None and self._cap.isOpened():
                self._cap.release()
            self._cap = None

    def _capture_loop(self):
        """后台采集循环：保存最新帧并渲染 MJPEG 画面。"""
        while self._running:
            if not self._camera_ready():
                break
            ret, frame = self._cap.read()
            if not ret:
                time.sleep(0.01)
                continue

            with self._lock:
                self._latest_frame = frame

            rendered = self.renderer.render(frame, self.get_data())
            _, jpeg = cv2.imencode(".jpg", rendered, [cv2.IMWRITE_JPEG_QUALITY, 80])
            with self._lock:
                self._latest_jpeg = jpeg.tobytes()

    # ---- 日志 ----

    def _add_log(self, level, message):
        """添加一条系统日志。level: info / warning / danger"""
        entry = {
            "time": datetime.datetime.now().strftime("%H:%M:%S"),
            "level": level,
            "message": message,
        }
        with self._log_lock:
            self._logs.append(entry)
            if len(self._logs) > self.MAX_LOG_ENTRIES:
                self._logs = self._logs[-self.MAX_LOG_ENTRIES:]

    def get_logs(self, since=0):
        """获取日志，since 为起始索引。"""
        with self._log_lock:
            return self._logs[since:], len(self._logs)

    # ---- 数据 ----

    def get_frame(self):
        with self._lock:
            return self._latest_jpeg

    def get_data(self):
        if self.session is None:
            return {
                "active": False, "status": "inactive",
                "elapsed_seconds": 0, "elapsed": "00:00:00",
                "drowsy_event_count": 0, "sleep_event_count": 0,
                "ear": None, "mar": None, "head_angle": None,
                "eye_status": None, "mouth_status": None, "sleep_status": None,
            }
        return self.session.snapshot()

    def update_config(self, data):
        """
        动态更新阈值配置。

        data 中有 sensitivity 时按灵敏度推导 EAR/MAR 阈值，否则读取显式阈值；
        sound_alerts 控制是否播放报警音。
        """
        sound_alerts = data.get("sound_alerts", self.config["sound_alerts"])
        if not isinstance(sound_alerts, bool):
            raise ValueError("sound_alerts 必须是布尔值")

        head_tilt = float(data.get("head_tilt_threshold", self.thresholds.head_tilt_threshold))
        if data.get("sensitivity") is not None:
            sensitivity = float(data["sensitivity"])
            if not SENSITIVITY_MIN <= sensitivity <= SENSITIVITY_MAX:
                raise ValueError(f"sensitivity 取值范围为 {SENSITIVITY_MIN}-{SENSITIVITY_MAX}")
            thresholds = thresholds_from_sensitivity(sensitivity, head_tilt_threshold=head_tilt)
        else:
            thresholds = Thresholds(
                ear_threshold=float(data.get("ear_threshold", self.thresholds.ear_threshold)),
                mar_threshold=float(data.get("mar_threshold", self.thresholds.mar_threshold)),
                head_tilt_threshold=head_tilt,
            )

        self.thresholds = thresholds
        self.config["sound_alerts"] = sound_alerts
        if self.session is not None:
            self.session.update_thresholds(thresholds)
            self.session.alert_policy.sound_enabled = self.config["sound_alerts"]
        return thresholds

    # ---- 远程分类 ----

    def classify_image(self, image):
        """对单张图像执行本地几何分类，供 /api/classify 使用。"""
        with self._classify_lock:
            if self.classify_source is None:
                from detectors.face_detector import FaceDetector
                self.classify_source = LocalGeometricSource(FaceDetector(static_image_mode=True))
            return self.classify_source.read(image, self.thresholds)


# 全局检测系统实例
system = WebDetectionSystem()


# ---- Flask 路由 ----

@app.route("/api/start", methods=["POST"])
def api_start():
    ok = system.start()
    return jsonify({"success": ok, "message": "检测已启动" if ok else "摄像头未就绪"})


@app.route("/api/stop", methods=["POST"])
def api_stop():
    system.stop()
    return jsonify({"success": True, "message": "检测已停止"})


@app.route("/api/data")
def api_data():
    return jsonify(system.get_data())


@app.route("/api/config", methods=["POST"])
def api_config():
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "message": "请求体必须是 JSON 对象"}), 400
    try:
        thresholds = system.update_config(data)
    except (TypeError, ValueError) as e:
        return jsonify({"success": False, "message": str(e)}), 400
    system._add_log("info", "阈值配置已更新")
    return jsonify({
        "success": True,
        "message": "配置已更新",
        "thresholds": {
            "ear_threshold": thresholds.ear_threshold,
            "mar_threshold": thresholds.mar_threshold,
            "head_tilt_threshold": thresholds.head_tilt_threshold,
        },
    })


@app.route("/api/logs")
def api_logs():
    since = request.args.get("since", 0, type=int)
    logs, total = system.get_logs(since)
    return jsonify({"logs": logs, "total": total})


@app.route("/api/classify", methods=["POST"])
def api_classify():
    """远程分类协议：{"image": base64} → 指标 JSON。"""
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict) or not isinstance(data.get("image"), str):
        return jsonify({"error": "请求体需要包含 base64 字段 image"}), 400
    try:
        image = decode_image(data["image"])
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    result = system.classify_image(image)
    if not result.is_ok:
        return jsonify({"error": result.reason}), 422
    return jsonify(build_classification_response(result.features, result.indicators))


@app.route("/video_feed")
def video_feed():
    def generate():
        while True:
            frame = system.get_frame()
            if frame is not None:
                yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
            time.sleep(0.03)
    return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
