"""Configuration for the submission retry queue.

Usage:
    from submission_queue.config import Config

    # Access config values
    database_url = Config.DATABASE_URL
    interval = Config.QUEUE_POLL_INTERVAL_MS
"""

import os


class Config:
    """Centralized configuration for the queue, its dispatcher and its tooling.

    All configuration values are class variables that can be accessed directly.
    Values are loaded from environment variables with sensible defaults.

    Example:
        from submission_queue.config import Config

        print(Config.DATABASE_URL)
        print(Config.QUEUE_BATCH_SIZE)
    """

    # ========================================================================
    # Helper methods (static)
    # ========================================================================

    @staticmethod
    def _get_value(key: str, default: str) -> str:
        """Get configuration value from environment with optional default."""
        return os.getenv(key, default)

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Get integer configuration value."""
        return int(os.getenv(key, str(default)))

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        """Get float configuration value."""
        return float(os.getenv(key, str(default)))

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        """Get boolean configuration value."""
        return os.getenv(key, str(default)).lower() in ("true", "1", "yes")

    # ========================================================================
    # Database Configuration
    # ========================================================================

    QUEUE_DATA_DIR: str = _get_value("QUEUE_DATA_DIR", ".")
    DATABASE_URL: str = _get_value("DATABASE_URL", f"sqlite:///{QUEUE_DATA_DIR}/submission_queue.db")
    DATABASE_ECHO: bool = _get_bool("DATABASE_ECHO", False)

    # ========================================================================
    # Priorities (1 = most urgent, 10 = least)
    # ========================================================================

    MIN_PRIORITY: int = 1
    MAX_PRIORITY: int = 10
    HIGH_PRIORITY: int = 1
    DEFAULT_PRIORITY: int = 5
    LOW_PRIORITY: int = 10

    # ========================================================================
    # Dispatcher / Retry Configuration
    # ========================================================================

    QUEUE_POLL_INTERVAL_MS: int = _get_int("QUEUE_POLL_INTERVAL_MS", 30000)
    QUEUE_BATCH_SIZE: int = _get_int("QUEUE_BATCH_SIZE", 10)
    QUEUE_MAX_ATTEMPTS: int = _get_int("QUEUE_MAX_ATTEMPTS", 5)
    QUEUE_BACKOFF_MULTIPLIER: float = _get_float("QUEUE_BACKOFF_MULTIPLIER", 2.0)
    QUEUE_BASE_BACKOFF_MS: int = _get_int("QUEUE_BASE_BACKOFF_MS", 1000)
    QUEUE_MAX_BACKOFF_MS: int = _get_int("QUEUE_MAX_BACKOFF_MS", 300000)

    # How long a claimed entry stays invisible to other claimants
    QUEUE_CLAIM_LEASE_MS: int = _get_int("QUEUE_CLAIM_LEASE_MS", 600000)

    LOG_LEVEL: str = _get_value("LOG_LEVEL", "INFO")

    # ========================================================================
    # MQTT Configuration (queue activity events)
    # ========================================================================

    BROADCAST_TYPE: str = _get_value("BROADCAST_TYPE", "none")
    MQTT_BROKER: str = _get_value("MQTT_BROKER", "localhost")
    MQTT_PORT: int = _get_int("MQTT_PORT", 1883)
    MQTT_TOPIC: str = _get_value("MQTT_TOPIC", "submissions/queue")
