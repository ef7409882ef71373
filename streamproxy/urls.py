"""Proxy path encoding and URL resolution helpers."""

import logging
import re
from urllib.parse import quote, unquote, urljoin, urlsplit

from .errors import InvalidTargetError

logger = logging.getLogger(__name__)

PROXY_PREFIX = "/proxy/"
# Characters encodeURIComponent leaves alone on top of quote()'s defaults.
_COMPONENT_SAFE = "!*'()"
_ABSOLUTE_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_COLLAPSED_SCHEME_RE = re.compile(r"^(https?:)/([^/])", re.IGNORECASE)


def is_absolute_http(url):
    return bool(url) and bool(_ABSOLUTE_HTTP_RE.match(url))


def decode_target(path_segment: str) -> str:
    """Turn the part of the path after /proxy/ into the target URL.

    Clients are expected to percent-encode the whole target. A segment that
    was not encoded but already is an http(s) URL is accepted as-is.
    """
    if not path_segment:
        raise InvalidTargetError("Invalid proxy request. Path should be /proxy/<encoded URL>")

    try:
        decoded = unquote(path_segment, errors="strict")
    except UnicodeDecodeError as e:
        logger.debug(f"Error decoding target URL: {path_segment} - {e}")
        decoded = None

    if decoded is not None and is_absolute_http(decoded):
        return decoded

    if is_absolute_http(path_segment):
        logger.warning(f"Path was not encoded but looks like a URL: {path_segment}")
        return path_segment

    raise InvalidTargetError(
        f"Invalid proxy request path. Could not extract a valid target URL from \"{path_segment}\""
    )


def repair_collapsed_scheme(path_segment):
    """Restore ``https:/host`` to ``https://host`` when a server merged the double slash."""
    return _COLLAPSED_SCHEME_RE.sub(r"\1//\2", path_segment, count=1)


def to_proxy_path(url: str) -> str:
    return PROXY_PREFIX + quote(url, safe=_COMPONENT_SAFE)


def requote_path(path):
    """Percent-encode a request path the server has already decoded.

    The target inside it is then decoded exactly once by ``decode_target``.
    Slashes and colons stay literal so bare and collapsed-scheme targets are
    still recognised.
    """
    return quote(path, safe="/:")


def resolve_base(url: str) -> str:
    """Directory of ``url``, always ending in a slash."""
    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError("not an absolute URL")
    except ValueError as e:
        logger.debug(f"Error getting base URL: {url} - {e}")
        last_slash = url.rfind("/")
        if last_slash > url.find("://") + 2:
            return url[:last_slash + 1]
        return url + "/"

    origin = f"{parts.scheme}://{parts.netloc}"
    if not parts.path or parts.path == "/":
        return origin + "/"
    segments = parts.path.split("/")
    segments.pop()
    return origin + "/".join(segments) + "/"


def resolve_url(base: str, relative: str) -> str:
    """Resolve a playlist reference against the playlist's base URL."""
    if not relative:
        return ""
    if is_absolute_http(relative):
        return relative
    try:
        return urljoin(base, relative)
    except ValueError as e:
        logger.debug(f"Failed to resolve URL: base={base}, relative={relative}, error={e}")
        if relative.startswith("/"):
            parts = urlsplit(base)
            return f"{parts.scheme}://{parts.netloc}{relative}"
        return base[:base.rfind("/") + 1] + relative


def validate_target(url, blocked_hosts=(), blocked_prefixes=()):
    """Refuse targets pointing at local or private hosts."""
    try:
        parts = urlsplit(url)
        hostname = parts.hostname or ""
    except ValueError as e:
        raise InvalidTargetError(f"Invalid URL: {url} ({e})", target_url=url)

    if parts.scheme.lower() not in ("http", "https") or not hostname:
        raise InvalidTargetError(f"Invalid URL: {url}", target_url=url)
    if hostname in blocked_hosts:
        raise InvalidTargetError(f"Target host is not allowed: {hostname}", target_url=url)
    for prefix in blocked_prefixes:
        if hostname.startswith(prefix):
            raise InvalidTargetError(f"Target host is not allowed: {hostname}", target_url=url)
    return url
