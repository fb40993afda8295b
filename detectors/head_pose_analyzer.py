"""头部姿态分析模块，使用 solvePnP 计算头部欧拉角"""

import logging
import math
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from models.data_models import HeadPose

logger = logging.getLogger(__name__)

# 标准 3D 人脸模型点
_MODEL_POINTS = np.array([
    (0.0, 0.0, 0.0),          # 鼻尖
    (0.0, -330.0, -65.0),     # 下巴
    (-225.0, 170.0, -135.0),  # 左眼角
    (225.0, 170.0, -135.0),   # 右眼角
    (-150.0, -150.0, -125.0), # 左嘴角
    (150.0, -150.0, -125.0),  # 右嘴角
], dtype=np.float64)


class HeadPoseAnalyzer:
    """由 6 个 2D 关键点估计头部姿态，无法求解时返回 None"""

    def estimate_pose(self, face_points_2d: Sequence[Tuple[float, float]], frame_size: Tuple[int, int]) -> Optional[HeadPose]:
        """
        估计头部姿态。

        Args:
            face_points_2d: 6 个像素坐标关键点，顺序与 _MODEL_POINTS 一致
            frame_size: 图像尺寸 (w, h)

        Returns:
            HeadPose(pitch, yaw, roll)；求解失败或结果非有限值时返回 None
        """
        if len(face_points_2d) != len(_MODEL_POINTS):
            return None

        w, h = frame_size

        # 构建相机内参矩阵
        focal_length = max(h, w)
        center = (w / 2.0, h / 2.0)
        camera_matrix = np.array([
            [focal_length, 0, center[0]],
            [0, focal_length, center[1]],
            [0, 0, 1],
        ], dtype=np.float64)

        dist_coeffs = np.zeros((4, 1), dtype=np.float64)
        image_points = np.array(face_points_2d, dtype=np.float64)

        try:
            success, rotation_vector, _ = cv2.solvePnP(
                _MODEL_POINTS, image_points, camera_matrix, dist_coeffs,
                flags=cv2.SOLVEPNP_ITERATIVE,
            )
        except cv2.error as e:
            logger.debug("solvePnP 求解异常: %s", e)
            return None

        if not success:
            return None

        # 旋转向量 → 旋转矩阵 → 欧拉角
        rotation_matrix, _ = cv2.Rodrigues(rotation_vector)
        pitch, yaw, roll = self._rotation_matrix_to_euler(rotation_matrix)

        if not all(math.isfinite(v) for v in (pitch, yaw, roll)):
            return None

        return HeadPose(pitch=pitch, yaw=yaw, roll=roll)

    @staticmethod
    def _rotation_matrix_to_euler(rotation_matrix: np.ndarray) -> Tuple[float, float, float]:
        """
        从旋转矩阵提取欧拉角 (pitch, yaw, roll)，单位为度。

        使用 ZYX 顺序分解。
        """
        sy = math.sqrt(rotation_matrix[0, 0] ** 2 + rotation_matrix[1, 0] ** 2)

        if sy > 1e-6:
            pitch = math.atan2(-rotation_matrix[2, 0], sy)
            yaw = math.atan2(rotation_matrix[1, 0], rotation_matrix[0, 0])
            roll = math.atan2(rotation_matrix[2, 1], rotation_matrix[2, 2])
        else:
            pitch = math.atan2(-rotation_matrix[2, 0], sy)
            yaw = math.atan2(-rotation_matrix[1, 2], rotation_matrix[1, 1])
            roll = 0.0

        return math.degrees(pitch), math.degrees(yaw), math.degrees(roll)
