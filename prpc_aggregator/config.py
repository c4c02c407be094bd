#!/usr/bin/env python3
"""
Aggregator Configuration
Defaults, JSON config files and environment overrides
"""

import os
import json
import logging
import tempfile
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .exceptions import ConfigError, ValidationError
from .registry import BOOTSTRAP_ENDPOINTS, split_endpoints, ENDPOINTS_ENV_VAR

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

DEFAULT_METHODS = ("get-pods-with-stats", "get-pods")
DEFAULT_CREDITS_URL = "https://podcredits.xandeum.network/api/pods-credits"
DEFAULT_GEO_URL = "http://ip-api.com/json/{ip}?fields=country,regionName,city"
DEFAULT_CACHE_FILE = str(Path(tempfile.gettempdir()) / "prpc_aggregator_snapshot.json")

# env var -> (field name, converter)
ENV_OVERRIDES = {
    "PRPC_RELAY_URL": ("relay_url", str),
    "PRPC_CREDITS_URL": ("credits_url", str),
    "PRPC_CACHE_FILE": ("cache_file", str),
    "PRPC_FETCH_TIMEOUT": ("fetch_timeout", float),
    "PRPC_PROBE_TIMEOUT": ("probe_timeout", float),
}


@dataclass(frozen=True)
class AggregatorConfig:
    """Runtime settings for one aggregator instance"""
    endpoints: Tuple[str, ...] = BOOTSTRAP_ENDPOINTS
    methods: Tuple[str, ...] = DEFAULT_METHODS

    # Transport
    fetch_timeout: float = 8.0
    probe_timeout: float = 3.0
    probe_method: str = "get-pods"
    max_retries: int = 1
    retry_backoff: float = 0.2
    batch_size: int = 6
    relay_url: Optional[str] = None
    user_agent: str = f"prpc-aggregator/{VERSION}"
    verify_tls: bool = True

    # Credit feed
    credits_url: str = DEFAULT_CREDITS_URL
    credits_timeout: float = 10.0
    enable_credits: bool = True

    # Geo lookup
    enable_geo: bool = False
    geo_url: str = DEFAULT_GEO_URL
    geo_timeout: float = 3.5
    geo_cache_ttl: float = 24 * 3600
    geo_cache_size: int = 4096

    # Snapshot cache
    cache_file: str = DEFAULT_CACHE_FILE
    cache_max_age: float = 600.0

    # Trust gate
    min_trusted_coverage: float = 0.30
    min_trusted_sample: int = 5

    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        # Accept lists from JSON/CLI but store tuples
        object.__setattr__(self, "endpoints", tuple(self.endpoints))
        object.__setattr__(self, "methods", tuple(self.methods))
        self.validate()

    def validate(self) -> None:
        if not self.endpoints:
            raise ValidationError("At least one endpoint is required")
        if not self.methods:
            raise ValidationError("At least one RPC method is required")
        if self.batch_size < 1:
            raise ValidationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_retries < 0:
            raise ValidationError(f"max_retries must be >= 0, got {self.max_retries}")
        for name in ("fetch_timeout", "probe_timeout", "credits_timeout", "geo_timeout"):
            if getattr(self, name) <= 0:
                raise ValidationError(f"{name} must be positive")
        if not 0.0 <= self.min_trusted_coverage <= 1.0:
            raise ValidationError("min_trusted_coverage must be within [0, 1]")

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]] = None) -> "AggregatorConfig":
        """Build a config from a plain dict, ignoring unknown keys"""
        config = config or {}
        known = {f.name for f in fields(cls)} - {"extra"}

        kwargs = {}
        extra = {}
        for key, value in config.items():
            if key in known:
                if value is not None:
                    kwargs[key] = value
            else:
                extra[key] = value

        if extra:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(extra))}")

        return cls(extra=extra, **kwargs)

    @classmethod
    def from_file(cls, path: str) -> "AggregatorConfig":
        """Load a JSON config file"""
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file {path}: {e}")

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")

        logger.debug(f"Loaded config from {path}")
        return cls.from_dict(data)

    def with_env(self, environ: Optional[Dict[str, str]] = None) -> "AggregatorConfig":
        """Return a copy with PRPC_* environment overrides applied"""
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}

        endpoints = split_endpoints(environ.get(ENDPOINTS_ENV_VAR))
        if endpoints:
            overrides["endpoints"] = tuple(endpoints)

        for var, (name, convert) in ENV_OVERRIDES.items():
            raw = environ.get(var)
            if not raw:
                continue
            try:
                overrides[name] = convert(raw)
            except ValueError:
                raise ValidationError(f"Invalid value for {var}: {raw!r}")

        if not overrides:
            return self
        logger.debug(f"Applying environment overrides: {', '.join(sorted(overrides))}")
        return replace(self, **overrides)

    def merged(self, **overrides) -> "AggregatorConfig":
        """Return a copy with non-None overrides applied"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return replace(self, **changes)


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> AggregatorConfig:
    """Defaults, then optional JSON file, then environment"""
    config = AggregatorConfig.from_file(path) if path else AggregatorConfig()
    return config.with_env(environ)
