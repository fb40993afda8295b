"""指标来源：本地几何计算或远程分类服务，二者输出统一的 ClassificationResult"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from classifiers.indicator_classifier import DEFAULT_THRESHOLDS, classify
from detectors.feature_extractor import FeatureExtractor
from detectors.head_pose_analyzer import HeadPoseAnalyzer
from models.data_models import ClassificationResult, Thresholds

logger = logging.getLogger(__name__)


class IndicatorSource(ABC):
    """每个检测 tick 调用一次 read()，不得在内部保存跨 tick 的状态"""

    @abstractmethod
    def read(self, image: np.ndarray, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> ClassificationResult:
        """对单帧图像进行分类"""

    def close(self) -> None:
        """释放资源"""


class LocalGeometricSource(IndicatorSource):
    """人脸关键点 → 几何特征 → 阈值判定，全部在本地完成"""

    def __init__(self, face_detector=None, extractor: Optional[FeatureExtractor] = None):
        if face_detector is None:
            from detectors.face_detector import FaceDetector
            face_detector = FaceDetector()
        self.face_detector = face_detector
        self.extractor = extractor or FeatureExtractor(pose_analyzer=HeadPoseAnalyzer())

    def read(self, image: np.ndarray, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> ClassificationResult:
        landmarks = self.face_detector.detect(image)
        if landmarks is None:
            return ClassificationResult.error("未检测到人脸")

        try:
            features = self.extractor.extract(landmarks)
        except ValueError as e:
            return ClassificationResult.error(str(e))

        return ClassificationResult.ok(classify(features, thresholds), features)

    def close(self) -> None:
        self.face_detector.close()


def create_source(config: dict) -> IndicatorSource:
    """按配置选择指标来源"""
    kind = config.get("indicator_source", "local")
    if kind == "local":
        return LocalGeometricSource()
    if kind == "remote":
        from classifiers.remote_classifier import RemoteClassifierSource
        if not config.get("remote_url"):
            raise ValueError("indicator_source=remote 需要配置 remote_url")
        return RemoteClassifierSource(
            config["remote_url"],
            timeout=config.get("remote_timeout", 5.0),
            trust_remote_labels=config.get("trust_remote_labels", True),
        )
    raise ValueError(f"未知的指标来源: {kind}")
