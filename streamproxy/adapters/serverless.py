"""Function-style host adapter.

Maps an API-gateway style event (``httpMethod``/``rawPath``/``headers``) to a
ProxyRequest and the ProxyResponse back to a ``statusCode``/``body`` dict.
The handler is built on the first invocation and reused while the
function instance stays warm.
"""

import base64
import logging
from urllib.parse import urlencode

from .. import build_handler
from ..config import ProxyConfig
from ..handler import ProxyRequest
from ..logs import configure_logging
from ..urls import requote_path

logger = logging.getLogger(__name__)

TEXT_CONTENT_TYPES = ("text/", "application/json", "application/vnd.apple.mpegurl")

_handler = None


def get_handler():
    global _handler
    if _handler is None:
        config = ProxyConfig.from_env()
        configure_logging(config.debug)
        _handler = build_handler(config)
    return _handler


def event_to_request(event):
    method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "GET")
    query = event.get("rawQueryString")
    if event.get("rawPath"):
        path = event["rawPath"]
    else:
        # Gateways hand over "path" already percent-decoded.
        decoded = event.get("path") or ""
        path = requote_path(decoded)
        if query is None and event.get("queryStringParameters"):
            query = urlencode(event["queryStringParameters"])
        if "?" in decoded:
            query = None
    if query:
        path = f"{path}?{query}"
    return ProxyRequest(method=method, path=path, headers=dict(event.get("headers") or {}))


def response_to_dict(response):
    content_type = response.content_type.lower()
    is_text = any(content_type.startswith(t) for t in TEXT_CONTENT_TYPES)
    body, encoded = None, False
    if is_text or not response.body:
        try:
            body = response.body.decode("utf-8")
        except UnicodeDecodeError:
            body = None
    if body is None:
        body = base64.b64encode(response.body).decode("ascii")
        encoded = True
    return {
        "statusCode": response.status,
        "headers": dict(response.headers),
        "body": body,
        "isBase64Encoded": encoded,
    }


def handler(event, context=None, proxy_handler=None):
    proxy_handler = proxy_handler or get_handler()
    proxy_request = event_to_request(event)
    logger.debug(f"{proxy_request.method} {proxy_request.path}")
    return response_to_dict(proxy_handler.handle(proxy_request))
