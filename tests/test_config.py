"""
Tests for configuration objects.
"""

import dataclasses

import pytest

from marketdash.config import Config, QueueConfig, config
from marketdash.constants import INDICATOR_CACHE_TTL_SECONDS


class TestQueueConfig:
    def test_defaults(self):
        queue_config = QueueConfig()
        assert queue_config.min_interval_seconds == 2.0
        assert queue_config.max_parallel_requests == 1
        assert queue_config.max_retries == 3
        assert queue_config.retry_base_delay_seconds == 1.0
        assert queue_config.max_retry_delay_seconds == 30.0
        assert queue_config.rate_limit_interval_seconds == 120.0
        assert queue_config.rate_limit_cooldown_seconds == 300.0
        assert queue_config.request_timeout_seconds is None

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            QueueConfig().max_retries = 5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_interval_seconds": -1},
            {"max_parallel_requests": 0},
            {"max_retries": 0},
            {"retry_base_delay_seconds": -0.5},
            {"min_interval_seconds": 200.0},
            {"rate_limit_cooldown_seconds": -1},
            {"request_timeout_seconds": 0},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            QueueConfig(**kwargs)


class TestConfig:
    def test_global_config(self):
        assert config.indicator_cache_ttl == INDICATOR_CACHE_TTL_SECONDS == 900
        assert config.cache_max_entries is None
        assert config.fred_queue == QueueConfig()
        assert config.yahoo_queue.max_parallel_requests == 2

    def test_independent_instances(self):
        """Each Config gets its own queue settings objects."""
        custom = Config(fred_queue=QueueConfig(min_interval_seconds=5.0))
        assert custom.fred_queue.min_interval_seconds == 5.0
        assert config.fred_queue.min_interval_seconds == 2.0
