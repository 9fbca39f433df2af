"""
Local cache store: offline mirror of documents, quizzes and results
"""
import json
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import redis

from groundschool.config import settings

logger = logging.getLogger(__name__)


class CacheWriteOutcome(str, Enum):
    OK = "ok"
    FAILED = "failed"


class KeyValueBackend(Protocol):
    """String-keyed, string-valued storage capability"""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class RedisBackend:
    """Redis-backed key-value storage"""

    def __init__(self, url: str = None, ttl: int = None):
        self.redis_client = redis.from_url(
            url or settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5
        )
        self.ttl = settings.CACHE_TTL_SECONDS if ttl is None else ttl

    def get_item(self, key: str) -> Optional[str]:
        return self.redis_client.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.ttl:
            self.redis_client.setex(key, self.ttl, value)
        else:
            self.redis_client.set(key, value)

    def remove_item(self, key: str) -> None:
        self.redis_client.delete(key)


class LocalCacheStore:
    """
    Namespaced cache over a key-value backend

    Keys:
    - <kind>_<id> for single entities (quiz, document, results)
    - quizList, documentHistory, quizHistory index lists, most recent first

    The cache is an optimization: writes never raise, they report a
    CacheWriteOutcome and log failures. Reads return None/[] on failure.
    """

    QUIZ = "quiz"
    DOCUMENT = "document"
    RESULTS = "results"

    QUIZ_LIST = "quizList"
    DOCUMENT_HISTORY = "documentHistory"
    QUIZ_HISTORY = "quizHistory"

    def __init__(self, backend: KeyValueBackend):
        self.backend = backend

    @staticmethod
    def entity_key(kind: str, entity_id: str) -> str:
        return f"{kind}_{entity_id}"

    def put(self, kind: str, entity_id: str, value: Any) -> CacheWriteOutcome:
        """Store a JSON-serializable value under <kind>_<id>"""
        key = self.entity_key(kind, entity_id)
        try:
            self.backend.set_item(key, json.dumps(value, default=str))
            logger.debug(f"Cache set: {key}")
            return CacheWriteOutcome.OK
        except Exception as e:
            logger.error(f"Cache set error for {key}: {str(e)}")
            return CacheWriteOutcome.FAILED

    def get(self, kind: str, entity_id: str) -> Optional[Any]:
        key = self.entity_key(kind, entity_id)
        try:
            value = self.backend.get_item(key)
            if value is None:
                logger.debug(f"Cache miss: {key}")
                return None
            logger.debug(f"Cache hit: {key}")
            return json.loads(value)
        except Exception as e:
            logger.error(f"Cache get error for {key}: {str(e)}")
            return None

    def remove(self, kind: str, entity_id: str) -> CacheWriteOutcome:
        key = self.entity_key(kind, entity_id)
        try:
            self.backend.remove_item(key)
            return CacheWriteOutcome.OK
        except Exception as e:
            logger.error(f"Cache delete error for {key}: {str(e)}")
            return CacheWriteOutcome.FAILED

    def read_index(self, list_name: str) -> List[Dict[str, Any]]:
        """Entries of an index list, most recent first"""
        try:
            raw = self.backend.get_item(list_name)
            entries = json.loads(raw) if raw else []
            return [entry for entry in entries if isinstance(entry, dict)]
        except Exception as e:
            logger.error(f"Cache index read error for {list_name}: {str(e)}")
            return []

    def append_to_index(self, list_name: str, entry: Dict[str, Any]) -> CacheWriteOutcome:
        """
        Insert or update an index entry keyed by its "id"

        An existing entry is merged with the new fields and moved to the
        front, so history views list the most recent write first.
        """
        entry_id = entry.get("id")
        if not entry_id:
            logger.error(f"Refusing to index entry without id in {list_name}")
            return CacheWriteOutcome.FAILED

        try:
            raw = self.backend.get_item(list_name)
            entries = json.loads(raw) if raw else []

            merged = dict(entry)
            remaining = []
            for existing in entries:
                if isinstance(existing, dict) and existing.get("id") == entry_id:
                    merged = {**existing, **entry}
                else:
                    remaining.append(existing)

            self.backend.set_item(list_name, json.dumps([merged] + remaining, default=str))
            return CacheWriteOutcome.OK
        except Exception as e:
            logger.error(f"Cache index update error for {list_name}: {str(e)}")
            return CacheWriteOutcome.FAILED
