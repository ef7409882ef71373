"""M3U8 classification and rewriting."""

import enum
import logging
import re
from typing import List, NamedTuple, Optional

from .urls import resolve_base, resolve_url, to_proxy_path

logger = logging.getLogger(__name__)

M3U8_CONTENT_TYPES = (
    "application/vnd.apple.mpegurl",
    "application/x-mpegurl",
    "audio/mpegurl",
)
STREAM_INF_TAG = "#EXT-X-STREAM-INF"
MEDIA_TAG = "#EXT-X-MEDIA:"

_URI_ATTR_RE = re.compile(r'URI="([^"]+)"')
_BANDWIDTH_RE = re.compile(r"(?:^|[:,])\s*BANDWIDTH=(\d+)")
_M3U8_REF_RE = re.compile(r"\.m3u8($|\?.*)", re.IGNORECASE)


class PlaylistKind(enum.Enum):
    MASTER = "master"
    MEDIA = "media"
    OPAQUE = "opaque"


class Variant(NamedTuple):
    bandwidth: int
    uri: str


def is_playlist(body, content_type=""):
    content_type = (content_type or "").lower()
    if any(t in content_type for t in M3U8_CONTENT_TYPES):
        return True
    return bool(body) and body.strip().startswith("#EXTM3U")


def is_master_playlist(body):
    return STREAM_INF_TAG in body or MEDIA_TAG in body


def classify(body, content_type="") -> PlaylistKind:
    if not is_playlist(body, content_type):
        return PlaylistKind.OPAQUE
    if is_master_playlist(body):
        return PlaylistKind.MASTER
    return PlaylistKind.MEDIA


def _rewrite_uri_attribute(line, base_url):
    """Proxy the first URI="..." of an attribute line, leaving the rest untouched."""

    def _replace(match):
        absolute = resolve_url(base_url, match.group(1))
        logger.debug(f"Rewriting {line.split(':', 1)[0]} URI: original='{match.group(1)}', absolute='{absolute}'")
        return f'URI="{to_proxy_path(absolute)}"'

    return _URI_ATTR_RE.sub(_replace, line, count=1)


def rewrite_media_playlist(target_url: str, body: str) -> str:
    """Route every key, init segment and media segment of a media playlist through the proxy."""
    base_url = resolve_base(target_url)
    lines = body.split("\n")
    last_index = len(lines) - 1
    output = []

    for index, raw_line in enumerate(lines):
        line = raw_line.strip()
        if not line:
            # Only a trailing empty line survives, so the document keeps its final newline.
            if index == last_index:
                output.append(line)
            continue

        if line.startswith("#EXT-X-KEY") or line.startswith("#EXT-X-MAP"):
            output.append(_rewrite_uri_attribute(line, base_url))
        elif line.startswith("#"):
            output.append(line)
        else:
            absolute = resolve_url(base_url, line)
            logger.debug(f"Rewriting media segment: original='{line}', absolute='{absolute}'")
            output.append(to_proxy_path(absolute))

    return "\n".join(output)


def parse_variants(body) -> List[Variant]:
    """All (bandwidth, uri) pairs of a master playlist, in document order.

    A stream-inf tag without a following URI line is skipped; a missing
    BANDWIDTH attribute counts as 0.
    """
    lines = body.split("\n")
    variants = []
    i = 0
    while i < len(lines):
        if lines[i].strip().startswith(STREAM_INF_TAG):
            match = _BANDWIDTH_RE.search(lines[i])
            bandwidth = int(match.group(1)) if match else 0
            for j in range(i + 1, len(lines)):
                candidate = lines[j].strip()
                if candidate.startswith(STREAM_INF_TAG):
                    break
                if candidate and not candidate.startswith("#"):
                    variants.append(Variant(bandwidth, candidate))
                    i = j
                    break
        i += 1
    return variants


def select_variant(body) -> Optional[Variant]:
    """Pick the variant to follow from a master playlist.

    The highest bandwidth wins and, because candidates replace the current
    best on ``>=``, the last of several equal-bandwidth entries is chosen.
    Without any stream-inf entry the first ``.m3u8`` reference is used.
    """
    best = None
    for variant in parse_variants(body):
        if best is None or variant.bandwidth >= best.bandwidth:
            best = variant
    if best is not None:
        return best

    for raw_line in body.split("\n"):
        line = raw_line.strip()
        if line and not line.startswith("#") and _M3U8_REF_RE.search(line):
            logger.debug(f"No stream-inf entries, falling back to first sub-playlist reference: {line}")
            return Variant(0, line)
    return None
