"""Upstream HTTP retrieval."""

import logging
import random
import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import requests
from requests.structures import CaseInsensitiveDict

from .config import DEFAULT_USER_AGENTS
from .errors import UpstreamStatusError, UpstreamTransportError

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9,zh-CN;q=0.8,zh;q=0.7"
ERROR_BODY_EXCERPT = 200
_CHARSET_RE = re.compile(r"charset=[\"']?([\w.:-]+)", re.IGNORECASE)


class UserAgentProvider:
    """Picks a User-Agent uniformly at random from a fixed list."""

    def __init__(self, user_agents=None, rng=None):
        self.user_agents = list(user_agents or DEFAULT_USER_AGENTS)
        self._rng = rng or random.Random()

    def __call__(self):
        return self._rng.choice(self.user_agents)


@dataclass
class FetchResult:
    url: str
    status: int
    content: bytes
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    encoding: str = "utf-8"

    @property
    def content_type(self):
        return self.headers.get("Content-Type", "")

    @property
    def text(self):
        try:
            return self.content.decode(self.encoding or "utf-8", errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")


def charset_of(content_type):
    match = _CHARSET_RE.search(content_type or "")
    return match.group(1) if match else None


def origin_of(url):
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


class UpstreamFetcher:
    def __init__(self, user_agent_provider=None, timeout=30.0, session=None):
        self.user_agent_provider = user_agent_provider or UserAgentProvider()
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_headers(self, target_url, inbound_headers=None):
        """Outbound headers for ``target_url``; a few client headers are passed through."""
        inbound = CaseInsensitiveDict(inbound_headers or {})
        headers = {
            "User-Agent": self.user_agent_provider(),
            "Accept": inbound.get("Accept") or "*/*",
            "Accept-Language": inbound.get("Accept-Language") or DEFAULT_ACCEPT_LANGUAGE,
            "Referer": inbound.get("Referer") or origin_of(target_url),
        }
        return {key: value for key, value in headers.items() if value}

    def fetch(self, target_url, inbound_headers=None) -> FetchResult:
        headers = self.build_headers(target_url, inbound_headers)
        logger.debug(f"Requesting {target_url} with headers {headers}")
        try:
            response = self.session.get(target_url, headers=headers, allow_redirects=True, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Request failed for {target_url}: {e}")
            raise UpstreamTransportError(target_url, str(e))

        if not 200 <= response.status_code < 300:
            excerpt = response.text[:ERROR_BODY_EXCERPT]
            logger.error(f"Upstream returned {response.status_code} for {target_url}")
            raise UpstreamStatusError(response.status_code, target_url, excerpt)

        result = FetchResult(
            url=target_url,
            status=response.status_code,
            content=response.content,
            headers=CaseInsensitiveDict(response.headers),
            encoding=charset_of(response.headers.get("Content-Type", "")) or "utf-8",
        )
        logger.debug(f"Fetched {target_url} (final URL {response.url}), Content-Type: {result.content_type}, {len(result.content)} bytes")
        return result
