"""
Write-once key/value cache for tokens, metadata blobs and user profiles.

Cache keys are either content hashes or chain-immutable identities, so an
entry never needs to change once written. Every operation is fail-soft:
read problems look like a miss, write problems are logged and reported as
"not written".
"""
import json
import os
import re
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from colony_indexer.utils.logger import logger

_SAFE_KEY = re.compile(r"[^A-Za-z0-9._-]")


class CacheStore(ABC):
    """get / put / exists over one namespace."""

    namespace: str = "default"

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the cached value or None on a miss."""

    @abstractmethod
    def put(self, key: str, value: Dict[str, Any]) -> bool:
        """Store a value. Returns False if the key already existed or the write failed."""

    def exists(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryCacheStore(CacheStore):
    """Thread-safe dict-backed cache, used for tests and cache-less runs."""

    def __init__(self, namespace: str = "default"):
        self.namespace = namespace
        self._entries: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._entries.get(key)
        if value is None:
            return None
        # hand out copies so callers can't mutate the stored entry
        return json.loads(json.dumps(value))

    def put(self, key: str, value: Dict[str, Any]) -> bool:
        try:
            serialized = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            logger.error("[Cache:%s] Refusing to store unserializable value for %s: %s", self.namespace, key, e)
            return False
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = serialized
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FileCacheStore(CacheStore):
    """One JSON file per key under ``<root>/<namespace>/``.

    Files are created with exclusive-create, so two writers racing on the same
    key can't clobber each other; the loser simply reports ``False``.
    """

    def __init__(self, root: str, namespace: str):
        self.namespace = namespace
        self.directory = os.path.join(root, namespace)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{_SAFE_KEY.sub('_', key)}.json")

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            with open(self._path(key), "r", encoding="utf-8") as f:
                value = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("[Cache:%s] Unreadable entry for %s, treating as miss: %s", self.namespace, key, e)
            return None
        if not isinstance(value, dict):
            return None
        return value

    def put(self, key: str, value: Dict[str, Any]) -> bool:
        path = self._path(key)
        try:
            payload = json.dumps(value, indent=2)
        except (TypeError, ValueError) as e:
            logger.error("[Cache:%s] Refusing to store unserializable value for %s: %s", self.namespace, key, e)
            return False
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(path, "x", encoding="utf-8") as f:
                f.write(payload)
            return True
        except FileExistsError:
            return False
        except OSError as e:
            logger.error("[Cache:%s] Failed to write %s: %s", self.namespace, path, e)
            return False


def build_cache_store(cache_dir: Optional[str], namespace: str) -> CacheStore:
    """File-backed when a cache directory is configured, in-memory otherwise."""
    if cache_dir:
        return FileCacheStore(cache_dir, namespace)
    return InMemoryCacheStore(namespace)
