"""Logging setup shared by the host adapters."""

import logging

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"


def configure_logging(debug=False):
    """Log to the command line; DEBUG enables the per-line rewrite detail."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format=LOG_FORMAT, level=level)
    logging.getLogger("streamproxy").setLevel(level)
    # urllib3 is chatty at DEBUG about every pooled connection.
    logging.getLogger("urllib3").setLevel(logging.INFO if debug else logging.WARNING)
