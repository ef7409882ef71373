"""TTL cache for raw upstream fetches and resolved sub-playlists.

The cache is optional. ``ResponseCache`` wraps whatever store is configured
(or none at all) and never lets a store failure reach the request pipeline:
failed reads behave like misses and failed writes are only logged.
"""

import base64
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import redis
from cachetools import TLRUCache
from requests.structures import CaseInsensitiveDict

from .fetcher import FetchResult

logger = logging.getLogger(__name__)

RAW_PREFIX = "proxy_raw:"
PROCESSED_PREFIX = "m3u8_processed:"
DEFAULT_MAXBYTES = 64 * 1024 * 1024
DEFAULT_MAX_ENTRY_BYTES = 1024 * 1024
WRITER_THREADS = 4


class MemoryCacheStore:
    """In-process store with a per-entry TTL.

    Capacity is measured in characters of stored values, not in entries. When
    it is exceeded the least recently used entries are evicted; a single
    value larger than the whole store is not kept at all.
    """

    def __init__(self, maxbytes=DEFAULT_MAXBYTES, timer=time.monotonic):
        self.maxbytes = maxbytes
        self._cache = TLRUCache(maxsize=maxbytes, ttu=self._expires_at, timer=timer, getsizeof=self._sizeof)
        self._lock = threading.Lock()

    @staticmethod
    def _expires_at(key, value, now):
        return now + value[1]

    @staticmethod
    def _sizeof(entry):
        return len(entry[0])

    def get(self, key):
        with self._lock:
            entry = self._cache.get(key)
        return entry[0] if entry is not None else None

    def put(self, key, value, ttl):
        if len(value) > self.maxbytes:
            logger.debug(f"Not caching {key}: {len(value)} bytes exceeds store capacity {self.maxbytes}")
            return
        with self._lock:
            self._cache[key] = (value, ttl)

    @property
    def size(self):
        with self._lock:
            return self._cache.currsize

    def __len__(self):
        with self._lock:
            return len(self._cache)


class RedisCacheStore:
    """Store backed by a Redis server; expiry is left to Redis."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, url):
        return cls(redis.Redis.from_url(url))

    def get(self, key):
        value = self.client.get(key)
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def put(self, key, value, ttl):
        self.client.setex(key, ttl, value)


def build_cache_store(config):
    """Create the store named by ``config.cache_backend``, or None when caching is off."""
    if config.cache_backend == "none":
        logger.info("Response cache disabled")
        return None
    if config.cache_backend == "redis":
        if not config.redis_url:
            logger.warning("CACHE_BACKEND=redis but REDIS_URL is not set, response cache disabled")
            return None
        logger.info("Using Redis response cache")
        return RedisCacheStore.from_url(config.redis_url)
    logger.info(f"Using in-memory response cache (maxbytes={config.cache_maxbytes})")
    return MemoryCacheStore(maxbytes=config.cache_maxbytes)


class ResponseCache:
    """Namespaced raw and processed entries over an optional store.

    Raw bodies larger than ``max_entry_bytes`` are never stored. With
    ``background`` set, writes are queued on a small shared thread pool.
    """

    def __init__(self, store=None, ttl=86400, background=False, max_entry_bytes=DEFAULT_MAX_ENTRY_BYTES):
        self.store = store
        self.ttl = ttl
        self.background = background
        self.max_entry_bytes = max_entry_bytes
        self._executor = None
        self._executor_lock = threading.Lock()

    @property
    def enabled(self):
        return self.store is not None

    def get_raw(self, target_url):
        """Cached upstream response for ``target_url``, or None."""
        key = RAW_PREFIX + target_url
        value = self._get(key)
        if value is None:
            return None
        try:
            data = json.loads(value)
            return FetchResult(
                url=target_url,
                status=200,
                content=base64.b64decode(data["body"]),
                headers=CaseInsensitiveDict(data.get("headers") or {}),
                encoding=data.get("encoding") or "utf-8",
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable cache entry {key}: {e}")
            return None

    def put_raw(self, result: FetchResult):
        if self.store is None:
            return
        if len(result.content) > self.max_entry_bytes:
            logger.debug(f"Not caching {result.url}: {len(result.content)} bytes exceeds {self.max_entry_bytes}")
            return
        value = json.dumps({
            "body": base64.b64encode(result.content).decode("ascii"),
            "headers": {k.lower(): v for k, v in result.headers.items()},
            "encoding": result.encoding,
        })
        self._put(RAW_PREFIX + result.url, value)

    def get_processed(self, variant_url):
        return self._get(PROCESSED_PREFIX + variant_url)

    def put_processed(self, variant_url, text):
        self._put(PROCESSED_PREFIX + variant_url, text)

    def _get(self, key):
        if self.store is None:
            return None
        try:
            value = self.store.get(key)
        except Exception as e:
            logger.warning(f"Failed to read cache ({key}): {e}")
            return None
        logger.debug(f"[Cache {'hit' if value is not None else 'miss'}] {key}")
        return value

    def _put(self, key, value):
        if self.store is None:
            return
        if self.background:
            self._writer().submit(self._write, key, value)
        else:
            self._write(key, value)

    def _write(self, key, value):
        try:
            self.store.put(key, value, self.ttl)
            logger.debug(f"Written to cache: {key}")
        except Exception as e:
            logger.warning(f"Failed to write cache ({key}): {e}")

    def _writer(self):
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=WRITER_THREADS, thread_name_prefix="cache-writer")
            return self._executor

    def close(self):
        """Wait for queued background writes and stop the writer threads."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
