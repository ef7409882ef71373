"""Exceptions raised by the proxy pipeline.

Every error carries the HTTP status it should be reported with and, when
known, the target URL that triggered it, so the handler can build a
diagnostic response without consulting server logs.
"""


class ProxyError(Exception):
    """Base class for errors that end up in a client-facing error response."""

    status = 500

    def __init__(self, message, status=None, target_url=None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        self.target_url = target_url


class InvalidTargetError(ProxyError):
    """The proxy path did not carry a usable http(s) target."""

    status = 400


class UpstreamError(ProxyError):
    """Fetching the upstream resource failed."""


class UpstreamStatusError(UpstreamError):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status, target_url, body_excerpt=""):
        message = f"HTTP error {status}. URL: {target_url}. Body: {body_excerpt}"
        super().__init__(message, status=status, target_url=target_url)
        self.body_excerpt = body_excerpt


class UpstreamTransportError(UpstreamError):
    """DNS, connect, timeout or other transport level failure."""

    def __init__(self, target_url, reason):
        super().__init__(f"Failed to request target URL {target_url}: {reason}", target_url=target_url)
        self.reason = reason


class RecursionLimitExceeded(ProxyError):
    """Master playlists were nested deeper than the configured limit."""

    def __init__(self, target_url, limit):
        super().__init__(
            f"Recursion depth exceeded maximum limit ({limit}) when processing master playlist: {target_url}",
            target_url=target_url,
        )
        self.limit = limit
