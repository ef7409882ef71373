from urllib.parse import unquote

import pytest
from requests.structures import CaseInsensitiveDict

from streamproxy.cache import MemoryCacheStore, ResponseCache
from streamproxy.config import ProxyConfig
from streamproxy.fetcher import FetchResult
from streamproxy.handler import ProxyHandler

M3U8_TYPE = "application/vnd.apple.mpegurl"


def make_result(url, body, content_type=M3U8_TYPE, headers=None):
    all_headers = CaseInsensitiveDict({"Content-Type": content_type})
    all_headers.update(headers or {})
    content = body.encode("utf-8") if isinstance(body, str) else body
    return FetchResult(url=url, status=200, content=content, headers=all_headers)


def unproxy(path):
    """Target URL behind a /proxy/ path."""
    assert path.startswith("/proxy/"), path
    return unquote(path[len("/proxy/"):])


def segment_lines(text):
    return [line for line in text.split("\n") if line and not line.startswith("#")]


class FakeFetcher:
    """Serves canned responses by URL and records every call."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def add(self, url, body, content_type=M3U8_TYPE, headers=None):
        self.responses[url] = make_result(url, body, content_type, headers)

    def fetch(self, target_url, inbound_headers=None):
        self.calls.append((target_url, inbound_headers))
        response = self.responses[target_url]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def urls(self):
        return [url for url, _ in self.calls]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryCacheStore(maxbytes=1024 * 1024, timer=clock)


@pytest.fixture
def config():
    return ProxyConfig(cache_ttl=60, user_agents=["TestAgent/1.0"])


@pytest.fixture
def handler(config, fetcher, store):
    cache = ResponseCache(store, ttl=config.cache_ttl)
    return ProxyHandler(config, fetcher=fetcher, cache=cache)
