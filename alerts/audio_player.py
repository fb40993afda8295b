"""报警音播放能力，由 AlertPolicy 持有并注入"""

import logging
import os
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


def _load_pygame():
    """延迟加载 pygame，处理导入错误"""
    try:
        import pygame
        return pygame
    except ImportError as e:
        raise ImportError("pygame 未安装，请运行 pip install pygame 安装") from e


class AudioPlayer(ABC):
    """报警音播放接口"""

    @abstractmethod
    def play(self) -> None:
        """播放一次报警音"""

    def close(self) -> None:
        """释放音频资源"""


class PygameAudioPlayer(AudioPlayer):
    """使用 pygame.mixer 播放报警音，首次播放时才初始化音频设备"""

    def __init__(self, sound_path: str, volume: float = 1.0):
        if not os.path.exists(sound_path):
            raise FileNotFoundError(f"报警音文件不存在: {sound_path}")
        self.sound_path = sound_path
        self.volume = volume
        self._pygame = None
        self._sound = None

    def _ensure_loaded(self):
        if self._sound is not None:
            return
        pygame = _load_pygame()
        pygame.mixer.init()
        self._sound = pygame.mixer.Sound(self.sound_path)
        self._sound.set_volume(self.volume)
        self._pygame = pygame

    def play(self) -> None:
        self._ensure_loaded()
        self._sound.play()

    def close(self) -> None:
        if self._pygame is not None:
            self._pygame.mixer.quit()
            self._pygame = None
            self._sound = None


def create_audio_player(sound_path):
    """按配置创建播放器；文件不存在或未配置时返回 None"""
    if not sound_path:
        return None
    try:
        return PygameAudioPlayer(sound_path)
    except FileNotFoundError as e:
        logger.warning("%s，声音报警不可用", e)
        return None
