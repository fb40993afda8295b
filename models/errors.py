"""异常类型定义"""


class AlertnessError(Exception):
    """检测流水线异常基类"""


class SessionNotActiveError(AlertnessError):
    """会话未启动时调用了只能在会话内进行的操作"""


class RemoteClassificationError(AlertnessError):
    """远程分类服务返回无法解析的结果"""
