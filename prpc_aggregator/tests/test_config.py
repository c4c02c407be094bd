"""
Tests for configuration loading and the endpoint registry
"""

import json

import pytest

from prpc_aggregator.config import AggregatorConfig, load_config, DEFAULT_METHODS
from prpc_aggregator.exceptions import ConfigError, ValidationError
from prpc_aggregator.registry import (
    BOOTSTRAP_ENDPOINTS, EndpointRegistry, normalize_endpoint, split_endpoints
)


class TestEndpointRegistry:
    def test_bootstrap_default(self):
        registry = EndpointRegistry()
        assert len(registry) == 9
        assert registry.endpoints == BOOTSTRAP_ENDPOINTS
        assert all(e.startswith("http://") and e.endswith(":6000/rpc") for e in registry)

    def test_deduplicates_preserving_order(self):
        registry = EndpointRegistry(["http://b/rpc", "a:6000/rpc", "http://b/rpc", " "])
        assert registry.endpoints == ("http://b/rpc", "http://a:6000/rpc")
        assert "a:6000/rpc" in registry

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            EndpointRegistry([])

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PRPC_ENDPOINTS", "http://x/rpc,\nhttp://y/rpc")
        assert EndpointRegistry.from_env().endpoints == ("http://x/rpc", "http://y/rpc")

    def test_from_env_fallback(self, monkeypatch):
        monkeypatch.delenv("PRPC_ENDPOINTS", raising=False)
        assert len(EndpointRegistry.from_env()) == 9

    def test_helpers(self):
        assert normalize_endpoint(" 1.2.3.4:6000/rpc ") == "http://1.2.3.4:6000/rpc"
        assert normalize_endpoint("https://h/rpc") == "https://h/rpc"
        assert split_endpoints(None) == []
        assert split_endpoints("a, ,b") == ["http://a", "http://b"]


class TestAggregatorConfig:
    def test_defaults(self):
        config = AggregatorConfig()
        assert config.endpoints == BOOTSTRAP_ENDPOINTS
        assert config.methods == DEFAULT_METHODS
        assert config.fetch_timeout == 8.0
        assert config.probe_timeout == 3.0
        assert config.max_retries == 1
        assert config.batch_size == 6
        assert config.cache_max_age == 600.0
        assert config.min_trusted_coverage == 0.30
        assert config.min_trusted_sample == 5
        assert config.relay_url is None
        assert config.enable_geo is False

    @pytest.mark.parametrize("overrides", [
        {"endpoints": []},
        {"methods": []},
        {"batch_size": 0},
        {"max_retries": -1},
        {"fetch_timeout": 0},
        {"min_trusted_coverage": 1.5},
    ])
    def test_validation(self, overrides):
        with pytest.raises(ValidationError):
            AggregatorConfig(**overrides)

    def test_from_dict_lists_become_tuples(self):
        config = AggregatorConfig.from_dict({"endpoints": ["http://a/rpc"], "methods": ["get-pods"],
                                             "relay_url": None, "colour": "blue"})
        assert config.endpoints == ("http://a/rpc",)
        assert config.methods == ("get-pods",)
        assert config.relay_url is None
        assert config.extra == {"colour": "blue"}

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"fetch_timeout": 4.0, "batch_size": 3}))
        config = AggregatorConfig.from_file(str(path))
        assert config.fetch_timeout == 4.0
        assert config.batch_size == 3

    def test_from_file_errors(self, tmp_path):
        with pytest.raises(ConfigError):
            AggregatorConfig.from_file(str(tmp_path / "missing.json"))

        bad = tmp_path / "bad.json"
        bad.write_text("{not json")
        with pytest.raises(ConfigError):
            AggregatorConfig.from_file(str(bad))

        array = tmp_path / "array.json"
        array.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            AggregatorConfig.from_file(str(array))

    def test_env_overrides(self):
        config = AggregatorConfig().with_env({
            "PRPC_ENDPOINTS": "10.0.0.1:6000/rpc",
            "PRPC_RELAY_URL": "https://relay.example",
            "PRPC_FETCH_TIMEOUT": "2.5",
        })
        assert config.endpoints == ("http://10.0.0.1:6000/rpc",)
        assert config.relay_url == "https://relay.example"
        assert config.fetch_timeout == 2.5

    def test_env_invalid_number(self):
        with pytest.raises(ValidationError):
            AggregatorConfig().with_env({"PRPC_PROBE_TIMEOUT": "soon"})

    def test_env_untouched_returns_same(self):
        config = AggregatorConfig()
        assert config.with_env({}) is config

    def test_merged_skips_none(self):
        config = AggregatorConfig().merged(batch_size=2, relay_url=None)
        assert config.batch_size == 2
        assert config.relay_url is None

    def test_load_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_retries": 0}))
        config = load_config(str(path), environ={"PRPC_CACHE_FILE": str(tmp_path / "snap.json")})
        assert config.max_retries == 0
        assert config.cache_file == str(tmp_path / "snap.json")
