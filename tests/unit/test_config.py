"""Tests for sheetsync.config.SheetSyncConfig."""

from __future__ import annotations

import pytest

from sheetsync.config import GOOGLE_SHEETS_MAX_BATCH_REQUESTS, SheetSyncConfig


class TestDefaults:
    def test_defaults(self):
        config = SheetSyncConfig(token="tok")
        assert config.base_url == "https://sheets.googleapis.com/v4"
        assert config.concurrency_limit == 10
        assert config.batch_size_cap == GOOGLE_SHEETS_MAX_BATCH_REQUESTS
        assert config.retry_max_attempts == 3
        assert config.events is None

    def test_repr_masks_token(self):
        config = SheetSyncConfig(token="ya29.secret-value-abcd")
        text = repr(config)
        assert "secret-value" not in text
        assert "token='...abcd'" in text

    def test_repr_short_token(self):
        assert "token='****'" in repr(SheetSyncConfig(token="ab"))


class TestValidation:
    @pytest.mark.parametrize("field, value", [
        ("concurrency_limit", 0),
        ("quota_requests_per_window", 0),
        ("quota_window_seconds", 0),
        ("breaker_failure_threshold", 0),
        ("breaker_cooldown_seconds", -1),
        ("cache_max_bytes", -1),
        ("cache_ttl_seconds", 0),
        ("batch_size_cap", 0),
        ("batch_size_cap", GOOGLE_SHEETS_MAX_BATCH_REQUESTS + 1),
        ("max_payload_bytes", 0),
        ("retry_max_attempts", 0),
        ("retry_base_delay", -0.5),
        ("attempt_timeout_seconds", 0),
        ("diff_block_rows", 0),
    ])
    def test_rejects_out_of_range(self, field, value):
        with pytest.raises(ValueError, match=field):
            SheetSyncConfig(token="tok", **{field: value})

    def test_rejects_insecure_remote_http(self):
        with pytest.raises(ValueError, match="insecure HTTP"):
            SheetSyncConfig(token="tok", base_url="http://sheets.example.com/v4")

    def test_allows_local_http(self):
        SheetSyncConfig(token="tok", base_url="http://localhost:8080/v4")


class TestFromEnv:
    def test_reads_prefixed_variables(self):
        config = SheetSyncConfig.from_env({
            "SHEETSYNC_TOKEN": "env-token",
            "SHEETSYNC_CONCURRENCY_LIMIT": "4",
            "SHEETSYNC_RETRY_JITTER": "off",
            "SHEETSYNC_CACHE_TTL_SECONDS": "12.5",
        })
        assert config.token == "env-token"
        assert config.concurrency_limit == 4
        assert config.retry_jitter is False
        assert config.cache_ttl_seconds == 12.5

    def test_overrides_win(self):
        config = SheetSyncConfig.from_env({"SHEETSYNC_CONCURRENCY_LIMIT": "4"}, concurrency_limit=2)
        assert config.concurrency_limit == 2

    def test_bad_number(self):
        with pytest.raises(ValueError, match="SHEETSYNC_CONCURRENCY_LIMIT"):
            SheetSyncConfig.from_env({"SHEETSYNC_CONCURRENCY_LIMIT": "many"})

    def test_bad_boolean(self):
        with pytest.raises(ValueError, match="boolean"):
            SheetSyncConfig.from_env({"SHEETSYNC_RETRY_JITTER": "maybe"})

    def test_optional_string(self):
        config = SheetSyncConfig.from_env({"SHEETSYNC_HTTP_PROXY": "http://proxy:3128"})
        assert config.http_proxy == "http://proxy:3128"
