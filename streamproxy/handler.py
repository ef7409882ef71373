"""Host-agnostic request handling.

Host adapters translate their native request into a ``ProxyRequest``, call
``ProxyHandler.handle`` and translate the returned ``ProxyResponse`` back.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .cache import ResponseCache
from .config import ProxyConfig
from .errors import InvalidTargetError, ProxyError
from .fetcher import UpstreamFetcher, UserAgentProvider
from .playlist import is_playlist
from .resolver import PlaylistResolver
from .urls import PROXY_PREFIX, decode_target, is_absolute_http, repair_collapsed_scheme, validate_target

logger = logging.getLogger(__name__)

M3U8_RESPONSE_TYPE = "application/vnd.apple.mpegurl;charset=utf-8"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}
PREFLIGHT_MAX_AGE = "86400"
# The body is re-encoded by us, and these headers are ours to set.
STRIPPED_UPSTREAM_HEADERS = {
    "content-encoding",
    "content-length",
    "cache-control",
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "set-cookie",
    "content-security-policy",
    "x-frame-options",
}


@dataclass
class ProxyRequest:
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProxyResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self):
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""


def error_response(status, message, target_url=None):
    payload = {
        "success": False,
        "error": f"Proxy processing error: {message}",
        "targetUrl": target_url,
    }
    headers = dict(CORS_HEADERS)
    headers["Content-Type"] = "application/json"
    return ProxyResponse(status, headers, json.dumps(payload).encode("utf-8"))


def preflight_response():
    headers = dict(CORS_HEADERS)
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    return ProxyResponse(204, headers)


class ProxyHandler:
    def __init__(self, config: Optional[ProxyConfig] = None, fetcher=None, cache: Optional[ResponseCache] = None):
        self.config = config or ProxyConfig()
        self.fetcher = fetcher or UpstreamFetcher(
            UserAgentProvider(self.config.user_agents),
            timeout=self.config.request_timeout,
        )
        self.cache = cache or ResponseCache(None, ttl=self.config.cache_ttl)
        self.resolver = PlaylistResolver(self.fetcher, self.cache, self.config.max_recursion)

    @property
    def cache_control(self):
        return f"public, max-age={self.config.cache_ttl}"

    def handle(self, request: ProxyRequest) -> ProxyResponse:
        method = request.method.upper()
        if method == "OPTIONS":
            return preflight_response()
        if method not in ("GET", "HEAD"):
            return error_response(405, f"Method {method} not allowed")

        target_url = None
        try:
            target_url = self.target_from_path(request.path)
            logger.info(f"Proxy request: {target_url}")
            response = self.proxy(target_url, request.headers)
        except ProxyError as e:
            url = e.target_url or target_url
            if e.status >= 500:
                logger.error(f"Proxy error for {url or request.path}: {e.message}")
            else:
                logger.warning(f"Rejected proxy request {request.path}: {e.message}")
            return error_response(e.status, e.message, url)
        except Exception as e:
            logger.exception(f"Unexpected error while proxying {target_url or request.path}")
            return error_response(500, str(e), target_url)

        if method == "HEAD":
            response.body = b""
        return response

    def target_from_path(self, path):
        if not path.startswith(PROXY_PREFIX):
            raise InvalidTargetError("Invalid proxy request. Path should be /proxy/<encoded URL>")
        segment, separator, query = path[len(PROXY_PREFIX):].partition("?")
        segment = repair_collapsed_scheme(segment)
        # An encoded target carries its own query; the outer one belongs to the proxy URL.
        if separator and is_absolute_http(segment):
            segment = f"{segment}?{query}"
        target_url = decode_target(segment)
        return validate_target(target_url, self.config.blocked_hosts, self.config.blocked_ip_prefixes)

    def proxy(self, target_url, inbound_headers):
        result = self.cache.get_raw(target_url)
        if result is None:
            result = self.fetcher.fetch(target_url, inbound_headers)
            self.cache.put_raw(result)
        else:
            logger.info(f"[Cache hit] Raw content: {target_url}")

        body = result.text
        if is_playlist(body, result.content_type):
            logger.info(f"Processing M3U8 content: {target_url}")
            processed = self.resolver.process(target_url, body)
            return self.playlist_response(processed)

        logger.info(f"Returning non-M3U8 content directly: {target_url}, type: {result.content_type}")
        return self.passthrough_response(result)

    def playlist_response(self, text):
        headers = dict(CORS_HEADERS)
        headers["Content-Type"] = M3U8_RESPONSE_TYPE
        headers["Cache-Control"] = self.cache_control
        return ProxyResponse(200, headers, text.encode("utf-8"))

    def passthrough_response(self, result):
        headers = {}
        for key, value in result.headers.items():
            lower_key = key.lower()
            if lower_key in STRIPPED_UPSTREAM_HEADERS or lower_key.startswith("access-control-"):
                continue
            headers[key] = value
        headers["Cache-Control"] = self.cache_control
        headers.update(CORS_HEADERS)
        return ProxyResponse(200, headers, result.content)
