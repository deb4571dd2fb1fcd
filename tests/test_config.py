"""Unit tests for Config class."""

import os

import pytest

from submission_queue import Config


class TestConfig:
    """Test suite for Config class."""

    def test_config_has_required_attributes(self):
        """Test that Config class has all required configuration attributes."""
        # Database configuration
        assert hasattr(Config, "QUEUE_DATA_DIR")
        assert hasattr(Config, "DATABASE_URL")
        assert hasattr(Config, "DATABASE_ECHO")

        # Dispatcher configuration
        assert hasattr(Config, "QUEUE_POLL_INTERVAL_MS")
        assert hasattr(Config, "QUEUE_BATCH_SIZE")
        assert hasattr(Config, "QUEUE_CLAIM_LEASE_MS")
        assert hasattr(Config, "LOG_LEVEL")

        # MQTT configuration
        assert hasattr(Config, "MQTT_BROKER")
        assert hasattr(Config, "MQTT_PORT")
        assert hasattr(Config, "MQTT_TOPIC")
        assert hasattr(Config, "BROADCAST_TYPE")

    def test_config_value_types(self):
        assert isinstance(Config.QUEUE_POLL_INTERVAL_MS, int)
        assert isinstance(Config.QUEUE_BATCH_SIZE, int)
        assert isinstance(Config.QUEUE_MAX_ATTEMPTS, int)
        assert isinstance(Config.QUEUE_BACKOFF_MULTIPLIER, float)
        assert isinstance(Config.MQTT_PORT, int)
        assert isinstance(Config.DATABASE_ECHO, bool)

    def test_database_url_format(self):
        assert Config.DATABASE_URL.startswith("sqlite:///") or os.getenv("DATABASE_URL")

    def test_priority_constants(self):
        """Test priorities run from 1 (most urgent) to 10 (least)."""
        assert Config.MIN_PRIORITY == 1
        assert Config.MAX_PRIORITY == 10
        assert Config.HIGH_PRIORITY == Config.MIN_PRIORITY
        assert Config.LOW_PRIORITY == Config.MAX_PRIORITY
        assert Config.MIN_PRIORITY < Config.DEFAULT_PRIORITY < Config.MAX_PRIORITY

    def test_retry_defaults(self):
        assert Config.QUEUE_POLL_INTERVAL_MS == 30000 or os.getenv("QUEUE_POLL_INTERVAL_MS")
        assert Config.QUEUE_BATCH_SIZE == 10 or os.getenv("QUEUE_BATCH_SIZE")
        assert Config.QUEUE_MAX_ATTEMPTS == 5 or os.getenv("QUEUE_MAX_ATTEMPTS")
        assert Config.QUEUE_BACKOFF_MULTIPLIER == 2.0 or os.getenv("QUEUE_BACKOFF_MULTIPLIER")
        assert Config.QUEUE_BASE_BACKOFF_MS == 1000 or os.getenv("QUEUE_BASE_BACKOFF_MS")
        assert Config.QUEUE_MAX_BACKOFF_MS == 300000 or os.getenv("QUEUE_MAX_BACKOFF_MS")

    def test_mqtt_defaults(self):
        assert Config.MQTT_BROKER == "localhost" or os.getenv("MQTT_BROKER")
        assert Config.MQTT_PORT == 1883 or os.getenv("MQTT_PORT")
        assert Config.MQTT_TOPIC == "submissions/queue" or os.getenv("MQTT_TOPIC")
        assert Config.BROADCAST_TYPE == "none" or os.getenv("BROADCAST_TYPE")
        assert Config.LOG_LEVEL in ["DEBUG", "INFO", "WARNING", "ERROR"] or os.getenv(
            "LOG_LEVEL"
        )


class TestConfigHelpers:
    """Test suite for the environment parsing helpers."""

    def test_get_int_from_env(self, monkeypatch):
        monkeypatch.setenv("QUEUE_TEST_INT", "42")
        assert Config._get_int("QUEUE_TEST_INT", 7) == 42

    def test_get_int_default(self, monkeypatch):
        monkeypatch.delenv("QUEUE_TEST_INT", raising=False)
        assert Config._get_int("QUEUE_TEST_INT", 7) == 7

    def test_get_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("QUEUE_TEST_INT", "soon")
        with pytest.raises(ValueError):
            _ = Config._get_int("QUEUE_TEST_INT", 7)

    def test_get_float(self, monkeypatch):
        monkeypatch.setenv("QUEUE_TEST_FLOAT", "1.5")
        assert Config._get_float("QUEUE_TEST_FLOAT", 2.0) == 1.5

    @pytest.mark.parametrize(
        "raw,expected",
        [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False)],
    )
    def test_get_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("QUEUE_TEST_BOOL", raw)
        assert Config._get_bool("QUEUE_TEST_BOOL") is expected
