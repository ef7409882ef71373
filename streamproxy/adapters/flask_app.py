import logging
from datetime import datetime, timezone

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request

from .. import build_handler
from ..config import ProxyConfig
from ..handler import ProxyRequest
from ..logs import configure_logging
from ..urls import requote_path


def request_path():
    """Path plus query exactly as the client sent it, so percent-encoding survives."""
    raw_uri = request.environ.get("RAW_URI") or request.environ.get("REQUEST_URI")
    if raw_uri:
        return raw_uri
    path = requote_path(request.path)
    query = request.query_string.decode("latin-1")
    # A "?" in the decoded path came from an encoded target, which owns its query.
    if query and "?" not in request.path:
        return f"{path}?{query}"
    return path


def create_app(config=None, cache_store=None, fetcher=None):
    config = config or ProxyConfig.from_env()
    handler = build_handler(config, cache_store=cache_store, fetcher=fetcher, background_cache_writes=True)

    app = Flask(__name__)
    # Targets carry "//" after the scheme; merging would redirect them to a broken URL.
    app.url_map.merge_slashes = False
    app.config["PROXY_HANDLER"] = handler

    @app.route("/proxy/", defaults={"target": ""}, methods=["GET", "HEAD", "OPTIONS"])
    @app.route("/proxy/<path:target>", methods=["GET", "HEAD", "OPTIONS"])
    def proxy(target):
        proxy_request = ProxyRequest(
            method=request.method,
            path=request_path(),
            headers=dict(request.headers),
        )
        result = handler.handle(proxy_request)
        return Response(result.body, status=result.status, headers=result.headers)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()})

    return app


def main():
    load_dotenv()
    config = ProxyConfig.from_env()
    configure_logging(config.debug)
    app = create_app(config)
    logging.info(f"Starting Flask HLS proxy server on {config.host}:{config.port}")
    app.run(host=config.host, port=config.port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
