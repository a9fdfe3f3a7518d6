"""Tests for application configuration."""

from __future__ import annotations

from matchfeed.common.config import Settings, get_settings


class TestSettings:
    def test_settings_loads(self):
        assert get_settings() is not None

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_environment_defaults_to_testing(self):
        # conftest.py sets ENVIRONMENT=testing
        assert get_settings().environment == "testing"

    def test_test_env_disables_background_work(self):
        settings = get_settings()
        assert settings.replay_enabled is False
        assert settings.create_tables_on_startup is False
        assert settings.database_url.startswith("sqlite+aiosqlite")

    def test_feed_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.matches_default_limit == 10
        assert settings.max_list_limit == 100
        assert settings.heartbeat_interval_seconds == 30.0
        assert settings.ws_max_message_bytes == 1024 * 1024
        assert settings.replay_poll_interval_seconds == 2.0

    def test_seed_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.seed_match_duration_minutes == 120
        assert settings.seed_minute_offset_seconds == 10
        assert settings.seed_force_live is True

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("HEARTBEAT_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("REPLAY_POLL_INTERVAL_SECONDS", "0.5")
        settings = Settings(_env_file=None)
        assert settings.heartbeat_interval_seconds == 5.0
        assert settings.replay_poll_interval_seconds == 0.5
