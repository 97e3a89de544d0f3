"""
Unit Tests for Configuration Module

These tests verify that the configuration system works correctly:
- Default values match the relayed KuCoin feed
- Validation catches invalid configurations
- Property methods work as expected

Run with:
    pytest tests/unit/test_config.py -v
"""

import pytest
from core.config import Settings, VALID_INTERVALS, settings, validate_configuration


class TestConfigurationDefaults:
    """Test that configuration loads with sensible defaults"""

    def test_kucoin_base_url_loaded(self):
        """Verify KuCoin Futures API URL is set"""
        assert settings.kucoin_base_url.startswith("http")
        assert "kucoin" in settings.kucoin_base_url.lower()

    def test_default_feed(self):
        """Verify the relay follows SOLUSDTM 1min by default"""
        config = Settings(_env_file=None)
        assert config.feed_symbol == "SOLUSDTM"
        assert config.feed_interval == "1min"

    def test_default_timing(self):
        """Verify keep-alive and retry delays"""
        config = Settings(_env_file=None)
        assert config.ping_interval == 25.0
        assert config.bootstrap_retry_delay == 10.0
        assert config.reconnect_delay == 5.0

    def test_app_port_is_valid_integer(self):
        """Verify app port is a valid integer"""
        assert isinstance(settings.app_port, int)
        assert 1 <= settings.app_port <= 65535

    def test_env_override(self, monkeypatch):
        """Verify environment variables override defaults"""
        monkeypatch.setenv("FEED_SYMBOL", "XBTUSDTM")
        monkeypatch.setenv("RECONNECT_DELAY", "2.5")
        config = Settings(_env_file=None)
        assert config.feed_symbol == "XBTUSDTM"
        assert config.reconnect_delay == 2.5


class TestCustomProperties:
    """Test derived settings"""

    def test_feed_topic(self):
        config = Settings(_env_file=None, feed_symbol="SOLUSDTM", feed_interval="5min")
        assert config.feed_topic == "/contractMarket/limitCandle:SOLUSDTM_5min"

    def test_cors_origins_list_strips_whitespace(self):
        config = Settings(_env_file=None, cors_origins=" http://a.test , http://b.test ,")
        assert config.cors_origins_list == ["http://a.test", "http://b.test"]


class TestConfigurationValidation:
    """Test validate_configuration()"""

    def test_defaults_are_valid(self):
        """Verify default configuration passes validation"""
        validate_configuration(Settings(_env_file=None))

    def test_lowercase_symbol_rejected(self):
        with pytest.raises(ValueError, match="uppercase"):
            validate_configuration(Settings(_env_file=None, feed_symbol="solusdtm"))

    def test_unknown_interval_rejected(self):
        with pytest.raises(ValueError, match="Invalid interval"):
            validate_configuration(Settings(_env_file=None, feed_interval="7min"))

    @pytest.mark.parametrize("interval", VALID_INTERVALS)
    def test_all_known_intervals_accepted(self, interval):
        validate_configuration(Settings(_env_file=None, feed_interval=interval))

    def test_invalid_port_rejected(self):
        with pytest.raises(ValueError, match="port"):
            validate_configuration(Settings(_env_file=None, app_port=70000))

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValueError, match="LOG_LEVEL"):
            validate_configuration(Settings(_env_file=None, log_level="LOUD"))

    def test_non_positive_delay_rejected(self):
        with pytest.raises(ValueError, match="RECONNECT_DELAY"):
            validate_configuration(Settings(_env_file=None, reconnect_delay=0))

    def test_zero_queue_size_rejected(self):
        with pytest.raises(ValueError, match="SUBSCRIBER_QUEUE_SIZE"):
            validate_configuration(Settings(_env_file=None, subscriber_queue_size=0))
