"""几何特征提取：由单帧关键点计算 EAR、MAR 和头部角度"""

from typing import Optional

from detectors.eye_analyzer import average_ear
from detectors.head_pose_analyzer import HeadPoseAnalyzer
from detectors.landmark_layout import MEDIAPIPE_LAYOUT
from detectors.mouth_analyzer import calculate_mar
from models.data_models import FeatureSet, LandmarkFrame, LandmarkLayout


class FeatureExtractor:
    """按给定关键点布局提取 FeatureSet，无副作用"""

    def __init__(
        self,
        layout: LandmarkLayout = MEDIAPIPE_LAYOUT,
        pose_analyzer: Optional[HeadPoseAnalyzer] = None,
    ):
        self.layout = layout
        self.pose_analyzer = pose_analyzer

    def extract(self, frame: LandmarkFrame) -> FeatureSet:
        """
        计算单帧特征。

        Args:
            frame: 归一化关键点帧

        Returns:
            FeatureSet(ear, mar, head_angle_deg)；未配置姿态估计或求解失败时
            head_angle_deg 为 None

        Raises:
            ValueError: 关键点数量不足以覆盖布局索引
        """
        if len(frame) <= self.layout.max_index:
            raise ValueError(
                f"关键点数量不足: 布局 {self.layout.name} 需要 {self.layout.max_index + 1} 个，实际 {len(frame)} 个"
            )

        pixels = frame.to_pixels()
        left_eye = [pixels[i] for i in self.layout.left_eye]
        right_eye = [pixels[i] for i in self.layout.right_eye]
        mouth = [pixels[i] for i in self.layout.mouth]

        return FeatureSet(
            ear=average_ear(left_eye, right_eye),
            mar=calculate_mar(mouth),
            head_angle_deg=self._head_angle(pixels, frame),
        )

    def _head_angle(self, pixels, frame: LandmarkFrame) -> Optional[float]:
        if self.pose_analyzer is None or not self.layout.head_pose:
            return None
        points = [pixels[i] for i in self.layout.head_pose]
        pose = self.pose_analyzer.estimate_pose(points, (frame.width, frame.height))
        return None if pose is None else pose.pitch


def extract_features(
    frame: LandmarkFrame,
    layout: LandmarkLayout = MEDIAPIPE_LAYOUT,
    pose_analyzer: Optional[HeadPoseAnalyzer] = None,
) -> FeatureSet:
    """FeatureExtractor 的函数式入口"""
    return FeatureExtractor(layout, pose_analyzer).extract(frame)
