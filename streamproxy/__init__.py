"""HLS-aware streaming proxy engine."""

from .cache import MemoryCacheStore, RedisCacheStore, ResponseCache, build_cache_store
from .config import ProxyConfig
from .errors import (
    InvalidTargetError,
    ProxyError,
    RecursionLimitExceeded,
    UpstreamError,
    UpstreamStatusError,
    UpstreamTransportError,
)
from .fetcher import FetchResult, UpstreamFetcher, UserAgentProvider
from .handler import ProxyHandler, ProxyRequest, ProxyResponse
from .playlist import PlaylistKind, classify, rewrite_media_playlist, select_variant
from .resolver import PlaylistResolver
from .urls import decode_target, resolve_base, resolve_url, to_proxy_path

__version__ = "1.0.0"


def build_handler(config=None, cache_store=None, fetcher=None, background_cache_writes=False):
    """Wire a ProxyHandler from a config; the cache store defaults to the configured backend."""
    config = config or ProxyConfig.from_env()
    if cache_store is None:
        cache_store = build_cache_store(config)
    cache = ResponseCache(
        cache_store,
        ttl=config.cache_ttl,
        background=background_cache_writes,
        max_entry_bytes=config.cache_max_entry_bytes,
    )
    return ProxyHandler(config, fetcher=fetcher, cache=cache)


__all__ = [
    "FetchResult",
    "InvalidTargetError",
    "MemoryCacheStore",
    "PlaylistKind",
    "PlaylistResolver",
    "ProxyConfig",
    "ProxyError",
    "ProxyHandler",
    "ProxyRequest",
    "ProxyResponse",
    "RecursionLimitExceeded",
    "RedisCacheStore",
    "ResponseCache",
    "UpstreamError",
    "UpstreamFetcher",
    "UpstreamStatusError",
    "UpstreamTransportError",
    "UserAgentProvider",
    "build_cache_store",
    "build_handler",
    "classify",
    "decode_target",
    "resolve_base",
    "resolve_url",
    "rewrite_media_playlist",
    "select_variant",
    "to_proxy_path",
]
