"""嘴巴状态分析模块，负责计算 MAR 值"""

import math
from typing import Sequence, Tuple

Point = Tuple[float, float]

_MIN_SPAN = 1e-6


def calculate_mar(mouth_points: Sequence[Point]) -> float:
    """
    计算 MAR 值。

    公式: MAR = |upper-lower| / |left-right|

    Args:
        mouth_points: 4 个嘴巴关键点，顺序为 upper, lower, left, right

    Returns:
        MAR 值，分母为零时返回 0.0
    """
    upper, lower, left, right = mouth_points

    horizontal = math.dist(left, right)
    if horizontal < _MIN_SPAN:
        return 0.0

    return math.dist(upper, lower) / horizontal
