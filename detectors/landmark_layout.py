"""关键点索引约定，更换关键点提供方时替换布局即可"""

from models.data_models import LandmarkLayout

# MediaPipe FaceMesh 468 点约定
MEDIAPIPE_LAYOUT = LandmarkLayout(
    name="mediapipe_face_mesh",
    left_eye=(33, 160, 158, 133, 153, 144),
    right_eye=(263, 387, 385, 362, 380, 373),
    mouth=(13, 14, 78, 308),
    head_pose=(1, 152, 33, 263, 61, 291),
)

_LAYOUTS = {
    MEDIAPIPE_LAYOUT.name: MEDIAPIPE_LAYOUT,
}


def get_layout(name: str) -> LandmarkLayout:
    """按名称查找关键点布局"""
    try:
        return _LAYOUTS[name]
    except KeyError:
        raise ValueError(f"未知的关键点布局: {name}") from None


def register_layout(layout: LandmarkLayout) -> None:
    """注册新的关键点布局"""
    _LAYOUTS[layout.name] = layout
