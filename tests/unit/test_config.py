"""
Unit Tests for Configuration Module

These tests verify that the configuration system works correctly:
- Settings are loaded with usable defaults
- Property methods derive the right values
- Validation catches invalid configurations

Run with:
    pytest tests/unit/test_config.py -v
"""

import pytest
from core.config import Settings, settings, validate_configuration


class TestConfigurationLoading:
    """Test that configuration loads correctly"""

    def test_source_base_urls_loaded(self):
        """Verify every source has an http(s) base URL"""
        for url in (settings.oracle_base_url, settings.dexscreener_base_url, settings.coingecko_base_url):
            assert url is not None
            assert url.startswith("http")

    def test_app_port_is_valid_integer(self):
        """Verify app port is a valid integer"""
        assert isinstance(settings.app_port, int)
        assert 1 <= settings.app_port <= 65535

    def test_debug_mode_is_boolean(self):
        """Verify debug setting is a boolean"""
        assert isinstance(settings.debug, bool)

    def test_log_level_is_set(self):
        """Verify log level is configured"""
        assert settings.log_level is not None
        assert isinstance(settings.log_level, str)
        assert len(settings.log_level) > 0

    def test_default_cache_ttls(self):
        """Price cache is short lived, metadata cache much longer"""
        config = Settings(_env_file=None)
        assert config.price_cache_ttl == 5.0
        assert config.metadata_cache_ttl == 300.0
        assert config.metadata_cache_ttl > config.price_cache_ttl

    def test_default_chain_is_bsc(self):
        config = Settings(_env_file=None)
        assert config.default_chain_id == 56
        assert config.default_chain.slug == "bsc"


class TestSettingsProperties:
    """Test the derived settings properties"""

    def test_coingecko_disabled_without_key(self):
        config = Settings(_env_file=None, coingecko_api_key="")
        assert config.use_coingecko is False
        assert "x-cg-pro-api-key" not in config.get_coingecko_headers()

    def test_coingecko_enabled_with_key(self):
        config = Settings(_env_file=None, coingecko_api_key="CG-test")
        assert config.use_coingecko is True
        assert config.get_coingecko_headers()["x-cg-pro-api-key"] == "CG-test"

    def test_oracle_headers_include_api_key(self):
        config = Settings(_env_file=None, oracle_api_key="secret")
        headers = config.get_oracle_headers()
        assert headers["X-API-Key"] == "secret"
        assert headers["Content-Type"] == "application/json"

    def test_oracle_headers_without_api_key(self):
        config = Settings(_env_file=None, oracle_api_key="")
        assert "X-API-Key" not in config.get_oracle_headers()

    def test_header_builders_accept_key_override(self):
        config = Settings(_env_file=None, oracle_api_key="", coingecko_api_key="")
        assert config.get_oracle_headers("client-key")["X-API-Key"] == "client-key"
        assert config.get_coingecko_headers("CG-client")["x-cg-pro-api-key"] == "CG-client"

    def test_cors_origins_list_strips_whitespace(self):
        config = Settings(_env_file=None, cors_origins=" http://a.test , http://b.test ,")
        assert config.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_unsupported_default_chain_raises(self):
        config = Settings(_env_file=None, default_chain_id=999)
        with pytest.raises(ValueError):
            _ = config.default_chain


class TestConfigurationValidation:
    """Test the configuration validation function"""

    def test_validation_passes_with_defaults(self):
        """Default configuration should pass validation"""
        validate_configuration(Settings(_env_file=None))

    def test_invalid_port_fails(self):
        with pytest.raises(ValueError, match="Invalid port"):
            validate_configuration(Settings(_env_file=None, app_port=70000))

    def test_invalid_log_level_fails(self):
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            validate_configuration(Settings(_env_file=None, log_level="VERBOSE"))

    def test_unsupported_chain_fails(self):
        with pytest.raises(ValueError, match="DEFAULT_CHAIN_ID"):
            validate_configuration(Settings(_env_file=None, default_chain_id=12345))

    def test_non_positive_ttl_fails(self):
        with pytest.raises(ValueError, match="PRICE_CACHE_TTL"):
            validate_configuration(Settings(_env_file=None, price_cache_ttl=0))

    def test_negative_retries_fail(self):
        with pytest.raises(ValueError, match="MAX_RETRIES"):
            validate_configuration(Settings(_env_file=None, max_retries=-1))

    def test_zero_batch_size_fails(self):
        with pytest.raises(ValueError, match="BATCH_SIZE"):
            validate_configuration(Settings(_env_file=None, batch_size=0))

    def test_zero_cache_max_entries_fails(self):
        with pytest.raises(ValueError, match="CACHE_MAX_ENTRIES"):
            validate_configuration(Settings(_env_file=None, cache_max_entries=0))
