"""日志配置"""

import logging
import sys

_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """为根 logger 安装唯一的 stdout handler，重复调用只更新级别"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if not any(getattr(h, "_alertness_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._alertness_handler = True
        root.addHandler(handler)

    # 第三方库日志降噪
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    return root
