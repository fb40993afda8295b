"""FaceDetector 单元测试"""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from detectors.face_detector import FaceDetector
from models.data_models import LandmarkFrame

# 整体替换模块内的 mp，测试不依赖 mediapipe 的具体版本
PATCH_TARGET = "detectors.face_detector.mp"


def _make_fake_landmark(x: float, y: float):
    """创建一个模拟的 MediaPipe landmark 对象"""
    lm = MagicMock()
    lm.x = x
    lm.y = y
    return lm


def _build_fake_results(num_landmarks: int = 468):
    """构建模拟的 MediaPipe FaceMesh 处理结果（归一化坐标）"""
    landmarks = [
        _make_fake_landmark((i % 100) / 100.0, (i // 100) / 100.0)
        for i in range(num_landmarks)
    ]
    face = MagicMock()
    face.landmark = landmarks

    results = MagicMock()
    results.multi_face_landmarks = [face]
    return results, landmarks


def _detector_with(mock_mp, results=None):
    mock_mesh = MagicMock()
    mock_mp.solutions.face_mesh.FaceMesh.return_value = mock_mesh
    if results is not None:
        mock_mesh.process.return_value = results
    return FaceDetector(), mock_mesh


class TestFaceDetectorDetect:
    """测试 detect() 方法"""

    @patch(PATCH_TARGET)
    def test_returns_none_when_no_face(self, mock_mp):
        """未检测到人脸时返回 None"""
        no_face = MagicMock()
        no_face.multi_face_landmarks = None
        detector, _ = _detector_with(mock_mp, no_face)

        assert detector.detect(np.zeros((480, 640, 3), dtype=np.uint8)) is None

    @patch(PATCH_TARGET)
    def test_returns_landmark_frame(self, mock_mp):
        """检测到人脸时返回 LandmarkFrame，并携带帧宽高"""
        results, _ = _build_fake_results()
        detector, _ = _detector_with(mock_mp, results)

        frame = detector.detect(np.zeros((480, 640, 3), dtype=np.uint8))

        assert isinstance(frame, LandmarkFrame)
        assert len(frame) == 468
        assert (frame.width, frame.height) == (640, 480)

    @patch(PATCH_TARGET)
    def test_points_stay_normalized(self, mock_mp):
        """关键点保持归一化坐标，像素换算交给 LandmarkFrame.to_pixels"""
        results, raw = _build_fake_results()
        detector, _ = _detector_with(mock_mp, results)

        frame = detector.detect(np.zeros((480, 640, 3), dtype=np.uint8))

        assert frame.points[133] == pytest.approx((raw[133].x, raw[133].y))
        assert frame.to_pixels()[133] == pytest.approx((raw[133].x * 640, raw[133].y * 480))

    @patch(PATCH_TARGET)
    def test_static_image_mode_forwarded(self, mock_mp):
        """static_image_mode 参数传递给 FaceMesh"""
        FaceDetector(static_image_mode=True)
        kwargs = mock_mp.solutions.face_mesh.FaceMesh.call_args.kwargs
        assert kwargs["static_image_mode"] is True
        assert kwargs["max_num_faces"] == 1


class TestFaceDetectorClose:
    """测试 close() 方法"""

    @patch(PATCH_TARGET)
    def test_close_releases_resources(self, mock_mp):
        """close() 应调用 FaceMesh.close()"""
        detector, mock_mesh = _detector_with(mock_mp)
        detector.close()
        mock_mesh.close.assert_called_once()
