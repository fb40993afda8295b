"""JSON 配置加载：缺失字段使用默认值"""

import json
import logging

from classifiers.indicator_classifier import thresholds_from_sensitivity
from models.data_models import Thresholds

logger = logging.getLogger(__name__)

# 默认配置
DEFAULTS = {
    "ear_threshold": 0.22,
    "mar_threshold": 0.6,
    "head_tilt_threshold": 25.0,
    "sensitivity": None,
    "smoothing_ticks": 1,
    "detection_interval": 3.0,
    "elapsed_interval": 1.0,
    "sound_alerts": True,
    "alert_sound_path": "assets/alert.wav",
    "indicator_source": "local",
    "remote_url": None,
    "remote_timeout": 5.0,
    "trust_remote_labels": True,
    "persistence_url": None,
    "auth_token": None,
    "camera_index": 0,
    "log_level": "INFO",
}


def load_config(config_path=None, defaults=None) -> dict:
    """
    从 JSON 配置文件加载参数，缺失字段或 null 值使用默认值，未知字段忽略。

    Args:
        config_path: JSON 文件路径，None 时直接返回默认配置
        defaults: 默认配置，None 时使用 DEFAULTS

    Returns:
        合并后的配置字典
    """
    base = DEFAULTS if defaults is None else defaults
    config = dict(base)

    if config_path is None:
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认配置", config_path)
        return config
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认配置", config_path)
        return config

    if not isinstance(data, dict):
        logger.warning("配置文件顶层不是对象 %s，使用默认配置", config_path)
        return config

    # 用配置文件中的值覆盖默认值
    for key in base:
        if key in data and data[key] is not None:
            config[key] = data[key]

    return config


def build_thresholds(config: dict) -> Thresholds:
    """配置了 sensitivity 时由灵敏度推导 EAR/MAR 阈值，否则使用显式阈值"""
    head_tilt = float(config.get("head_tilt_threshold", DEFAULTS["head_tilt_threshold"]))
    if config.get("sensitivity") is not None:
        return thresholds_from_sensitivity(config["sensitivity"], head_tilt_threshold=head_tilt)
    return Thresholds(
        ear_threshold=float(config.get("ear_threshold", DEFAULTS["ear_threshold"])),
        mar_threshold=float(config.get("mar_threshold", DEFAULTS["mar_threshold"])),
        head_tilt_threshold=head_tilt,
    )
