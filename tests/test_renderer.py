"""DisplayRenderer 单元测试"""

import numpy as np

from display.renderer import DisplayRenderer, format_value


# --------------- helpers ---------------

def _make_frame(w=640, h=480):
    """创建黑色测试帧。"""
    return np.zeros((h, w, 3), dtype=np.uint8)


def _snapshot(status="awake", **overrides):
    snapshot = {
        "active": status != "inactive",
        "status": status,
        "elapsed_seconds": 75,
        "elapsed": "00:01:15",
        "drowsy_event_count": 1,
        "sleep_event_count": 0,
        "ear": 0.28,
        "mar": 0.31,
        "head_angle": -4.5,
        "eye_status": "Open",
        "mouth_status": "Not Yawning",
        "sleep_status": "Not Slept",
    }
    snapshot.update(overrides)
    return snapshot


# --------------- format_value tests ---------------

class TestFormatValue:
    def test_two_decimal_places(self):
        assert format_value(0.123456) == "0.12"

    def test_zero(self):
        assert format_value(0.0) == "0.00"

    def test_integer_value(self):
        assert format_value(1.0) == "1.00"

    def test_negative(self):
        assert format_value(-0.5) == "-0.50"

    def test_none(self):
        """缺失的数值显示为 --。"""
        assert format_value(None) == "--"


# --------------- DisplayRenderer init tests ---------------

class TestDisplayRendererInit:
    def test_init_fallback_no_font(self):
        """字体不存在时应回退到 OpenCV 模式（不抛异常）。"""
        renderer = DisplayRenderer(font_path="nonexistent_font_xyz")
        assert renderer is not None


# --------------- render tests ---------------

class TestRender:
    def setup_method(self):
        # 强制使用 OpenCV 回退模式以保证跨平台测试一致性
        self.renderer = DisplayRenderer(font_path="nonexistent_font_xyz")
        self.renderer._use_pil = False

    def test_render_returns_ndarray(self):
        frame = _make_frame()
        result = self.renderer.render(frame, _snapshot())
        assert isinstance(result, np.ndarray)
        assert result.shape == frame.shape

    def test_render_does_not_modify_original(self):
        frame = _make_frame()
        original = frame.copy()
        self.renderer.render(frame, _snapshot("sleeping"))
        np.testing.assert_array_equal(frame, original)

    def test_render_draws_text(self):
        result = self.renderer.render(_make_frame(), _snapshot())
        assert result.sum() > 0

    def test_render_sleep_warning_red_pixels(self):
        """sleeping 时画面中央出现红色警告 (BGR: 0,0,255)。"""
        result = self.renderer.render(_make_frame(), _snapshot("sleeping"))
        h, w = result.shape[:2]
        center = result[h // 3: 2 * h // 3, w // 8: 7 * w // 8, 2]
        assert center.max() == 255

    def test_render_awake_no_red_warning(self):
        """清醒状态中央区域不应有红色警告。"""
        result = self.renderer.render(_make_frame(), _snapshot("awake"))
        h, w = result.shape[:2]
        center = result[h // 3: 2 * h // 3, w // 4: 3 * w // 4, 2]
        assert center.max() < 200

    def test_render_inactive_snapshot_without_values(self):
        """未启动会话时数值为 None 也能正常渲染。"""
        snapshot = _snapshot("inactive", ear=None, mar=None, head_angle=None)
        result = self.renderer.render(_make_frame(), snapshot)
        assert result.shape == (480, 640, 3)

    def test_render_empty_snapshot(self):
        result = self.renderer.render(_make_frame(), {})
        assert isinstance(result, np.ndarray)
