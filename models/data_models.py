"""核心数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class LandmarkFrame:
    """单帧人脸关键点（归一化坐标 + 帧尺寸）"""
    points: Tuple[Tuple[float, float], ...]
    width: int
    height: int

    def __post_init__(self):
        # 冻结为元组，保证采集后不可变
        object.__setattr__(self, "points", tuple((float(x), float(y)) for x, y in self.points))

    @classmethod
    def from_dicts(cls, points: List[dict], width: int, height: int) -> "LandmarkFrame":
        """从 [{x, y}, ...] 形式的外部输入构建"""
        return cls(points=tuple((p["x"], p["y"]) for p in points), width=width, height=height)

    def to_pixels(self) -> List[Tuple[float, float]]:
        """将归一化坐标转换为像素坐标"""
        return [(x * self.width, y * self.height) for x, y in self.points]

    def __len__(self):
        return len(self.points)


@dataclass(frozen=True)
class LandmarkLayout:
    """关键点提供方的索引约定"""
    name: str
    left_eye: Tuple[int, ...]
    right_eye: Tuple[int, ...]
    mouth: Tuple[int, int, int, int]  # upper, lower, left, right
    head_pose: Tuple[int, ...] = ()   # nose, chin, l_eye, r_eye, l_mouth, r_mouth

    @property
    def max_index(self) -> int:
        return max(self.left_eye + self.right_eye + self.mouth + self.head_pose)


@dataclass(frozen=True)
class HeadPose:
    """头部欧拉角（度）"""
    pitch: float
    yaw: float
    roll: float


@dataclass(frozen=True)
class FeatureSet:
    """单帧几何特征；head_angle_deg 为 None 表示头部角度不可用"""
    ear: float
    mar: float
    head_angle_deg: Optional[float] = None

    @property
    def head_angle_estimated(self) -> bool:
        return self.head_angle_deg is not None


class EyeStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"


class MouthStatus(str, Enum):
    YAWNING = "Yawning"
    NOT_YAWNING = "Not Yawning"


class SleepStatus(str, Enum):
    SLEPT = "Slept"
    NOT_SLEPT = "Not Slept"


@dataclass(frozen=True)
class Indicators:
    """阈值判定后的离散指标"""
    eye_status: EyeStatus
    mouth_status: MouthStatus
    sleep_status: SleepStatus

    @property
    def drowsy(self) -> bool:
        return self.eye_status is EyeStatus.CLOSED or self.mouth_status is MouthStatus.YAWNING


@dataclass(frozen=True)
class Thresholds:
    """EAR / MAR / 头部倾斜阈值"""
    ear_threshold: float = 0.22
    mar_threshold: float = 0.6
    head_tilt_threshold: float = 25.0


class AlertnessState(str, Enum):
    INACTIVE = "inactive"
    AWAKE = "awake"
    DROWSY = "drowsy"
    SLEEPING = "sleeping"


@dataclass(frozen=True)
class Transition:
    """状态机单步结果"""
    previous: AlertnessState
    current: AlertnessState

    @property
    def changed(self) -> bool:
        return self.previous is not self.current


@dataclass
class SessionStats:
    """会话统计"""
    elapsed_seconds: int = 0
    drowsy_event_count: int = 0
    sleep_event_count: int = 0


class AlertAction(str, Enum):
    PLAY_SOUND = "play_sound"
    SHOW_TOAST = "show_toast"
    NONE = "none"


@dataclass(frozen=True)
class ClassificationResult:
    """指标来源的返回结果：ok 时携带 indicators，否则携带 reason"""
    indicators: Optional[Indicators] = None
    features: Optional[FeatureSet] = None
    reason: str = ""

    @classmethod
    def ok(cls, indicators: Indicators, features: Optional[FeatureSet] = None) -> "ClassificationResult":
        return cls(indicators=indicators, features=features)

    @classmethod
    def error(cls, reason: str) -> "ClassificationResult":
        return cls(reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.indicators is not None


@dataclass(frozen=True)
class DetectionRecord:
    """交给外部持久化的检测记录"""
    status: AlertnessState
    timestamp: datetime = field(default_factory=datetime.now)

    def to_payload(self) -> dict:
        return {"status": self.status.value, "timestamp": self.timestamp.isoformat()}


@dataclass
class CalibrationResult:
    """阈值校准结果"""
    optimal_ear_threshold: float
    optimal_mar_threshold: float
    ear_accuracy: float
    ear_recall: float
    mar_accuracy: float
    mar_recall: float
    ear_distribution: dict
    mar_distribution: dict
