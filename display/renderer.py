"""界面渲染模块 - 在视频帧上绘制特征数值、清醒状态、会话统计和睡着警告。"""

from typing import Optional

import cv2
import numpy as np


def format_value(v: Optional[float]) -> str:
    """格式化浮点数为两位小数字符串，None 显示为 --。"""
    if v is None:
        return "--"
    return f"{v:.2f}"


class DisplayRenderer:
    """在视频帧上绘制会话快照（DetectionSession.snapshot() 的返回值）。"""

    # 状态文字映射
    _STATUS_TEXT = {
        "inactive": "未启动",
        "awake": "清醒",
        "drowsy": "疲劳",
        "sleeping": "睡着",
    }

    _STATUS_TEXT_EN = {
        "inactive": "Inactive",
        "awake": "Awake",
        "drowsy": "Drowsy",
        "sleeping": "Sleeping",
    }

    # BGR
    _STATUS_COLOR = {
        "inactive": (160, 160, 160),
        "awake": (0, 255, 0),
        "drowsy": (0, 255, 255),
        "sleeping": (0, 0, 255),
    }

    def __init__(self, font_path: str = "SimHei"):
        """初始化中文字体，字体不存在时回退到 OpenCV 默认英文字体。"""
        self._pil_font = None
        self._pil_font_large = None
        self._use_pil = False

        try:
            from PIL import ImageFont

            font = self._try_load_font(font_path)
            if font is not None:
                self._pil_font = font
                self._pil_font_large = ImageFont.truetype(font.path, 48)
                self._use_pil = True
        except (ImportError, OSError):
            self._use_pil = False

    @staticmethod
    def _try_load_font(font_path: str):
        """尝试加载字体文件，返回 PIL ImageFont 或 None。"""
        from PIL import ImageFont

        try:
            return ImageFont.truetype(font_path, 20)
        except (OSError, IOError):
            pass

        # 常见系统路径
        common_paths = [
            "/usr/share/fonts/truetype/simhei/SimHei.ttf",
            "/usr/share/fonts/SimHei.ttf",
            "C:\\Windows\\Fonts\\simhei.ttf",
            "/System/Library/Fonts/STHeiti Medium.ttc",
        ]
        for path in common_paths:
            try:
                return ImageFont.truetype(path, 20)
            except (OSError, IOError):
                continue

        return None

    def render(self, frame: np.ndarray, snapshot: dict) -> np.ndarray:
        """渲染检测结果到视频帧，返回渲染后的帧图像，不修改原帧。"""
        output = frame.copy()

        status = snapshot.get("status", "inactive")
        self._draw_info(output, snapshot, status)
        self._draw_session(output, snapshot)

        if status == "sleeping":
            self._draw_sleep_warning(output)

        return output

    def _draw_info(self, frame: np.ndarray, snapshot: dict, status: str) -> None:
        """在左上角绘制 EAR、MAR、头部角度和状态文字。"""
        lines = [
            f"EAR: {format_value(snapshot.get('ear'))}",
            f"MAR: {format_value(snapshot.get('mar'))}",
        ]
        color = self._STATUS_COLOR.get(status, (0, 255, 0))

        if self._use_pil:
            lines.append(f"头部角度: {format_value(snapshot.get('head_angle'))}")
            lines.append(f"状态: {self._STATUS_TEXT.get(status, status)}")
            self._draw_pil_lines(frame, lines, x=10, y_start=30, color=color)
        else:
            lines.append(f"Head: {format_value(snapshot.get('head_angle'))}")
            lines.append(f"Status: {self._STATUS_TEXT_EN.get(status, status)}")
            y = 30
            for text in lines:
                cv2.putText(frame, text, (10, y), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2)
                y += 30

    def _draw_session(self, frame: np.ndarray, snapshot: dict) -> None:
        """在右上角绘制会话时长和事件次数。"""
        h, w = frame.shape[:2]
        elapsed = snapshot.get("elapsed", "00:00:00")
        drowsy = snapshot.get("drowsy_event_count", 0)
        sleeping = snapshot.get("sleep_event_count", 0)

        if self._use_pil:
            lines = [f"时长: {elapsed}", f"疲劳: {drowsy} 次", f"睡着: {sleeping} 次"]
            self._draw_pil_lines(frame, lines, x=w - 200, y_start=30, color=(255, 255, 0))
        else:
            lines = [f"Time: {elapsed}", f"Drowsy: {drowsy}", f"Sleep: {sleeping}"]
            y = 30
            for text in lines:
                cv2.putText(frame, text, (w - 200, y), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 0), 2)
                y += 25

    def _draw_sleep_warning(self, frame: np.ndarray) -> None:
        """在画面中央显示红色大字体警告。"""
        h, w = frame.shape[:2]
        warning = "您可能睡着了！请休息！"

        if self._use_pil:
            from PIL import Image, ImageDraw

            img_pil = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            draw = ImageDraw.Draw(img_pil)
            bbox = draw.textbbox((0, 0), warning, font=self._pil_font_large)
            text_w = bbox[2] - bbox[0]
            text_h = bbox[3] - bbox[1]
            x = (w - text_w) // 2
            y = (h - text_h) // 2
            draw.text((x, y), warning, font=self._pil_font_large, fill=(255, 0, 0))
            frame[:] = cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)
        else:
            warning_en = "WAKE UP! PLEASE REST!"
            font_scale = 1.5
            thickness = 3
            (text_w, text_h), _ = cv2.getTextSize(
                warning_en, cv2.FONT_HERSHEY_SIMPLEX, font_scale, thickness
            )
            x = (w - text_w) // 2
            y = (h + text_h) // 2
            cv2.putText(
                frame, warning_en, (x, y),
                cv2.FONT_HERSHEY_SIMPLEX, font_scale, (0, 0, 255), thickness,
            )

    def _draw_pil_lines(
        self,
        frame: np.ndarray,
        lines: list,
        x: int,
        y_start: int,
        color: tuple,
    ) -> None:
        """使用 PIL 在帧上绘制多行文字（BGR color -> RGB fill）。"""
        from PIL import Image, ImageDraw

        img_pil = Image.fromarray(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
        draw = ImageDraw.Draw(img_pil)
        fill = (color[2], color[1], color[0])
        y = y_start
        for line in lines:
            draw.text((x, y), line, font=self._pil_font, fill=fill)
            y += 28
        frame[:] = cv2.cvtColor(np.array(img_pil), cv2.COLOR_RGB2BGR)
