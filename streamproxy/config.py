"""Proxy configuration.

Settings are read once, from the process environment and an optional YAML
file, into a ``ProxyConfig`` that is handed to every component explicitly.
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Safari/605.1.15",
]
DEFAULT_BLOCKED_HOSTS = ["localhost", "127.0.0.1", "0.0.0.0", "::1"]
DEFAULT_BLOCKED_IP_PREFIXES = ["192.168.", "10.", "172."]
CACHE_BACKENDS = ("memory", "redis", "none")


@dataclass
class ProxyConfig:
    cache_ttl: int = 86400
    max_recursion: int = 5
    user_agents: List[str] = field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    debug: bool = False
    request_timeout: float = 30.0
    blocked_hosts: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_HOSTS))
    blocked_ip_prefixes: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_IP_PREFIXES))
    cache_backend: str = "memory"
    cache_maxbytes: int = 64 * 1024 * 1024
    cache_max_entry_bytes: int = 1024 * 1024
    redis_url: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8888

    @classmethod
    def from_env(cls, environ=None):
        """Build a config from environment variables, layered over PROXY_CONFIG_FILE if set."""
        if environ is None:
            environ = os.environ

        settings = {}
        config_file = environ.get("PROXY_CONFIG_FILE")
        if config_file:
            settings.update(load_yaml_settings(config_file))
        for key in _SETTING_KEYS:
            value = environ.get(key.upper())
            # An empty blocked list is meaningful: it switches the guard off.
            if value is not None and (value != "" or key.startswith("blocked_")):
                settings[key] = value
        return cls.from_mapping(settings)

    @classmethod
    def from_mapping(cls, settings: Dict):
        """Coerce raw (string or YAML-typed) values, falling back to defaults on bad input."""
        config = cls()
        values = {}
        if "cache_ttl" in settings:
            values["cache_ttl"] = _as_int("cache_ttl", settings["cache_ttl"], config.cache_ttl)
        if "max_recursion" in settings:
            values["max_recursion"] = _as_int("max_recursion", settings["max_recursion"], config.max_recursion)
        if "user_agents_json" in settings:
            values["user_agents"] = parse_user_agents(settings["user_agents_json"])
        if "debug" in settings:
            values["debug"] = _as_bool(settings["debug"])
        if "request_timeout" in settings:
            values["request_timeout"] = _as_float("request_timeout", settings["request_timeout"], config.request_timeout)
        if "blocked_hosts" in settings:
            values["blocked_hosts"] = _as_list(settings["blocked_hosts"])
        if "blocked_ip_prefixes" in settings:
            values["blocked_ip_prefixes"] = _as_list(settings["blocked_ip_prefixes"])
        if "cache_backend" in settings:
            backend = str(settings["cache_backend"]).strip().lower()
            if backend in CACHE_BACKENDS:
                values["cache_backend"] = backend
            else:
                logger.warning(f"Unknown cache backend '{backend}', using '{config.cache_backend}'")
        if "cache_maxbytes" in settings:
            values["cache_maxbytes"] = _as_int("cache_maxbytes", settings["cache_maxbytes"], config.cache_maxbytes)
        if "cache_max_entry_bytes" in settings:
            values["cache_max_entry_bytes"] = _as_int(
                "cache_max_entry_bytes", settings["cache_max_entry_bytes"], config.cache_max_entry_bytes
            )
        if "redis_url" in settings:
            values["redis_url"] = str(settings["redis_url"])
        if "host" in settings:
            values["host"] = str(settings["host"])
        if "port" in settings:
            values["port"] = _as_int("port", settings["port"], config.port)
        return replace(config, **values)


_SETTING_KEYS = (
    "cache_ttl",
    "max_recursion",
    "user_agents_json",
    "debug",
    "request_timeout",
    "blocked_hosts",
    "blocked_ip_prefixes",
    "cache_backend",
    "cache_maxbytes",
    "cache_max_entry_bytes",
    "redis_url",
    "host",
    "port",
)


def load_yaml_settings(path):
    """Read a YAML mapping of settings. Missing or malformed files yield an empty mapping."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning(f"Configuration file '{path}' not found, using environment and defaults")
        return {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file '{path}': {e}. Ignoring it.")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"{path} is empty or not a mapping, ignoring it")
        return {}

    settings = {}
    for key, value in data.items():
        key = str(key).lower()
        # A YAML list of agents is accepted as well as the JSON string form.
        if key in ("user_agents", "user_agents_json"):
            key = "user_agents_json"
        if key in _SETTING_KEYS:
            settings[key] = value
        else:
            logger.warning(f"Unknown setting '{key}' in {path}")
    return settings


def parse_user_agents(raw):
    """Return a non-empty list of user agent strings, or the built-in default list."""
    agents = raw
    if isinstance(raw, str):
        try:
            agents = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Failed to parse USER_AGENTS_JSON: {e}, using default user agents")
            return list(DEFAULT_USER_AGENTS)

    if isinstance(agents, list) and agents and all(isinstance(a, str) and a for a in agents):
        return list(agents)
    logger.warning("USER_AGENTS_JSON is not a non-empty array of strings, using default user agents")
    return list(DEFAULT_USER_AGENTS)


def _as_int(name, value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for {name.upper()}: {value!r}, using {default}")
        return default


def _as_float(name, value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid number for {name.upper()}: {value!r}, using {default}")
        return default


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _as_list(value):
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]
