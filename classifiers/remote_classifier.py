"""远程分类服务客户端及其 JSON 协议"""

import base64
import logging
from typing import Optional, Tuple

import cv2
import httpx
import numpy as np

from classifiers.indicator_classifier import DEFAULT_THRESHOLDS, classify
from classifiers.indicator_source import IndicatorSource
from models.data_models import (
    ClassificationResult,
    EyeStatus,
    FeatureSet,
    Indicators,
    MouthStatus,
    SleepStatus,
    Thresholds,
)
from models.errors import RemoteClassificationError

logger = logging.getLogger(__name__)

_NUMBER_FIELDS = ("ear_value", "mar_value")


def encode_image(image: np.ndarray, quality: int = 80) -> str:
    """BGR 图像 → JPEG → base64 字符串"""
    ok, jpeg = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("图像 JPEG 编码失败")
    return base64.b64encode(jpeg.tobytes()).decode("ascii")


def decode_image(data: str) -> np.ndarray:
    """base64 字符串 → BGR 图像，无法解码时抛出 ValueError"""
    # 兼容浏览器截图产生的 data URL 前缀
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        raw = base64.b64decode(data, validate=True)
    except (ValueError, TypeError) as e:
        raise ValueError(f"base64 解码失败: {e}") from e

    image = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError("无法解码图像数据")
    return image


def build_classification_response(features: FeatureSet, indicators: Indicators) -> dict:
    """按远程分类协议构造响应体"""
    return {
        "eye_status": indicators.eye_status.value,
        "mouth_status": indicators.mouth_status.value,
        "sleep_status": indicators.sleep_status.value,
        "ear_value": features.ear,
        "mar_value": features.mar,
        "head_angle": features.head_angle_deg,
        "drowsy": indicators.drowsy,
    }


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_classification_response(payload) -> Tuple[FeatureSet, Indicators]:
    """
    严格解析远程分类响应，只信任协议中约定的字段。

    Raises:
        RemoteClassificationError: 字段缺失、类型或取值不符合协议
    """
    if not isinstance(payload, dict):
        raise RemoteClassificationError("响应体不是 JSON 对象")

    try:
        eye_status = EyeStatus(payload["eye_status"])
        mouth_status = MouthStatus(payload["mouth_status"])
        sleep_status = SleepStatus(payload["sleep_status"])
    except KeyError as e:
        raise RemoteClassificationError(f"缺少字段: {e.args[0]}") from None
    except ValueError as e:
        raise RemoteClassificationError(f"非法状态值: {e}") from None

    for name in _NUMBER_FIELDS:
        if not _is_number(payload.get(name)):
            raise RemoteClassificationError(f"字段 {name} 缺失或不是数值")

    head_angle = payload.get("head_angle")
    if head_angle is not None and not _is_number(head_angle):
        raise RemoteClassificationError("字段 head_angle 不是数值")

    features = FeatureSet(
        ear=max(float(payload["ear_value"]), 0.0),
        mar=max(float(payload["mar_value"]), 0.0),
        head_angle_deg=None if head_angle is None else float(head_angle),
    )
    indicators = Indicators(eye_status=eye_status, mouth_status=mouth_status, sleep_status=sleep_status)
    return features, indicators


class RemoteClassifierSource(IndicatorSource):
    """将 base64 图像 POST 到远程分类服务"""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.Client] = None,
        timeout: float = 5.0,
        trust_remote_labels: bool = True,
    ):
        """
        Args:
            url: 分类服务地址
            client: 可注入的 httpx.Client，默认自行创建
            timeout: 请求超时（秒）
            trust_remote_labels: False 时用本地阈值对远程返回的 EAR/MAR 重新判定
        """
        self.url = url
        self.trust_remote_labels = trust_remote_labels
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def read(self, image: np.ndarray, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> ClassificationResult:
        try:
            payload = {"image": encode_image(image)}
        except ValueError as e:
            return ClassificationResult.error(str(e))

        try:
            resp = self._client.post(self.url, json=payload)
            resp.raise_for_status()
            features, indicators = parse_classification_response(resp.json())
        except httpx.HTTPError as e:
            logger.warning("远程分类请求失败: %s", e)
            return ClassificationResult.error(f"远程分类请求失败: {e}")
        except ValueError as e:
            # resp.json() 解析失败
            return ClassificationResult.error(f"响应不是合法 JSON: {e}")
        except RemoteClassificationError as e:
            return ClassificationResult.error(str(e))

        if not self.trust_remote_labels:
            indicators = classify(features, thresholds)

        return ClassificationResult.ok(indicators, features)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
