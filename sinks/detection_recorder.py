"""检测记录的持久化边界：发出即忘，失败只记录日志"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from models.data_models import DetectionRecord

logger = logging.getLogger(__name__)


class DetectionRecorder(ABC):
    """持久化协作方接口"""

    def is_authenticated(self) -> bool:
        return True

    @abstractmethod
    def save_detection(self, record: DetectionRecord) -> None:
        """保存一条检测记录，失败时只记录日志"""

    def close(self) -> None:
        """释放资源"""


class MemoryDetectionRecorder(DetectionRecorder):
    """在内存中保留最近的检测记录"""

    MAX_RECORDS = 200

    def __init__(self):
        self._records: List[DetectionRecord] = []
        self._lock = threading.Lock()

    def save_detection(self, record: DetectionRecord) -> None:
        with self._lock:
            self._records.append(record)
            if len(self._records) > self.MAX_RECORDS:
                self._records = self._records[-self.MAX_RECORDS:]

    def records(self) -> List[DetectionRecord]:
        with self._lock:
            return list(self._records)


class HttpDetectionRecorder(DetectionRecorder):
    """将检测记录 POST 到 <base_url>/detect，在后台线程中发送"""

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 5.0,
        background: bool = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.background = background
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def is_authenticated(self) -> bool:
        return bool(self.auth_token)

    def save_detection(self, record: DetectionRecord) -> None:
        if self.background:
            threading.Thread(target=self._send, args=(record,), daemon=True).start()
        else:
            self._send(record)

    def _send(self, record: DetectionRecord) -> bool:
        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        try:
            resp = self._client.post(f"{self.base_url}/detect", json=record.to_payload(), headers=headers)
            resp.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("检测记录保存失败 (%s): %s", record.status.value, e)
            return False

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def create_recorder(config: dict) -> DetectionRecorder:
    """按配置选择持久化方式"""
    if config.get("persistence_url"):
        return HttpDetectionRecorder(config["persistence_url"], auth_token=config.get("auth_token"))
    return MemoryDetectionRecorder()
