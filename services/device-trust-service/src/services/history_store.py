from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List, Optional

import redis
from structlog import get_logger

from ..models.fingerprint_models import DeviceFingerprint

logger = get_logger(__name__)

MAX_HISTORY = 10


class DeviceHistoryStore(ABC):
    """Bounded, ordered per-user fingerprint log (oldest first)"""

    def __init__(self, max_history: int = MAX_HISTORY):
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.max_history = max_history

    @abstractmethod
    def get_history(self, user_id: str) -> List[DeviceFingerprint]:
        ...

    @abstractmethod
    def append(self, user_id: str, fingerprint: DeviceFingerprint) -> None:
        """Append a fingerprint, evicting the oldest entries past max_history"""

    @abstractmethod
    def clear(self, user_id: str) -> None:
        ...

    def latest(self, user_id: str) -> Optional[DeviceFingerprint]:
        history = self.get_history(user_id)
        return history[-1] if history else None


class InMemoryHistoryStore(DeviceHistoryStore):
    def __init__(self, max_history: int = MAX_HISTORY):
        super().__init__(max_history)
        self._histories: Dict[str, Deque[DeviceFingerprint]] = {}

    def get_history(self, user_id: str) -> List[DeviceFingerprint]:
        return list(self._histories.get(user_id, ()))

    def append(self, user_id: str, fingerprint: DeviceFingerprint) -> None:
        history = self._histories.get(user_id)
        if history is None:
            history = deque(maxlen=self.max_history)
            self._histories[user_id] = history
        history.append(fingerprint)

    def clear(self, user_id: str) -> None:
        self._histories.pop(user_id, None)


class RedisHistoryStore(DeviceHistoryStore):
    """History kept in a Redis list per user, one JSON document per fingerprint"""

    def __init__(
        self,
        redis_client: redis.Redis,
        max_history: int = MAX_HISTORY,
        ttl_seconds: Optional[int] = None,
        key_prefix: str = "device_history"
    ):
        super().__init__(max_history)
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    def get_history(self, user_id: str) -> List[DeviceFingerprint]:
        raw_entries = self.redis.lrange(self._key(user_id), 0, -1)
        return [DeviceFingerprint.model_validate_json(raw) for raw in raw_entries]

    def append(self, user_id: str, fingerprint: DeviceFingerprint) -> None:
        key = self._key(user_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.rpush(key, fingerprint.model_dump_json())
        pipe.ltrim(key, -self.max_history, -1)
        if self.ttl_seconds:
            pipe.expire(key, self.ttl_seconds)
        pipe.execute()

    def clear(self, user_id: str) -> None:
        self.redis.delete(self._key(user_id))
        logger.info("Device history cleared", user_id=user_id, backend="redis")
