"""指标判定模块：将几何特征按阈值转换为眼睛 / 嘴巴 / 睡眠指标"""

from models.data_models import (
    EyeStatus,
    FeatureSet,
    Indicators,
    MouthStatus,
    SleepStatus,
    Thresholds,
)

DEFAULT_THRESHOLDS = Thresholds()

SENSITIVITY_MIN = 1
SENSITIVITY_MAX = 100
SENSITIVITY_DEFAULT = 50

# 灵敏度每偏离默认值 50 个单位对应的阈值偏移量
_EAR_SPAN = 0.06
_MAR_SPAN = 0.2


def classify(features: FeatureSet, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> Indicators:
    """
    根据阈值判定指标，纯函数。

    Args:
        features: 单帧几何特征
        thresholds: 判定阈值

    Returns:
        Indicators(eye_status, mouth_status, sleep_status)
    """
    eye_closed = features.ear < thresholds.ear_threshold
    yawning = features.mar > thresholds.mar_threshold

    # 头部角度不可用时不判定为睡着
    head_tilted = (
        features.head_angle_deg is not None
        and abs(features.head_angle_deg) > thresholds.head_tilt_threshold
    )

    return Indicators(
        eye_status=EyeStatus.CLOSED if eye_closed else EyeStatus.OPEN,
        mouth_status=MouthStatus.YAWNING if yawning else MouthStatus.NOT_YAWNING,
        sleep_status=SleepStatus.SLEPT if eye_closed and head_tilted else SleepStatus.NOT_SLEPT,
    )


def thresholds_from_sensitivity(
    sensitivity: float,
    head_tilt_threshold: float = DEFAULT_THRESHOLDS.head_tilt_threshold,
) -> Thresholds:
    """
    将 [1, 100] 的灵敏度线性映射为阈值。

    灵敏度越高，EAR 阈值越高、MAR 阈值越低，越容易触发疲劳 / 睡眠判定。
    灵敏度 50 对应默认阈值 (0.22, 0.6)；超出范围的值会被截断。
    """
    s = min(max(float(sensitivity), SENSITIVITY_MIN), SENSITIVITY_MAX)
    offset = (s - SENSITIVITY_DEFAULT) / SENSITIVITY_DEFAULT

    return Thresholds(
        ear_threshold=DEFAULT_THRESHOLDS.ear_threshold + offset * _EAR_SPAN,
        mar_threshold=DEFAULT_THRESHOLDS.mar_threshold - offset * _MAR_SPAN,
        head_tilt_threshold=head_tilt_threshold,
    )
