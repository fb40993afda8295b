"""眼睛状态分析模块，负责计算 EAR 值"""

import math
from typing import Sequence, Tuple

Point = Tuple[float, float]

_MIN_SPAN = 1e-6


def calculate_ear(eye_points: Sequence[Point]) -> float:
    """
    计算单只眼睛的 EAR 值。

    公式: EAR = (|p2-p6| + |p3-p5|) / (2 * |p1-p4|)

    Args:
        eye_points: 6 个眼睛轮廓关键点 [(x,y), ...]

    Returns:
        EAR 值，分母为零时返回 0.0
    """
    p1, p2, p3, p4, p5, p6 = eye_points

    vertical_1 = math.dist(p2, p6)
    vertical_2 = math.dist(p3, p5)
    horizontal = math.dist(p1, p4)

    # 像素坐标下小于 1e-6 视为两点重合
    if horizontal < _MIN_SPAN:
        return 0.0

    return (vertical_1 + vertical_2) / (2.0 * horizontal)


def average_ear(left_eye: Sequence[Point], right_eye: Sequence[Point]) -> float:
    """双眼 EAR 平均值"""
    return (calculate_ear(left_eye) + calculate_ear(right_eye)) / 2.0
