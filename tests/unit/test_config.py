"""Unit tests for configuration and settings."""
from common.config import Settings, get_settings, reset_settings_cache


class TestSettings:
    """Test configuration management."""

    def test_get_settings_returns_same_instance(self):
        """Test that get_settings returns cached instance."""
        assert get_settings() is get_settings()

    def test_reset_settings_cache(self):
        """Test that cache can be reset."""
        settings1 = get_settings()
        reset_settings_cache()
        settings2 = get_settings()

        assert settings1 is not settings2

    def test_reservation_defaults(self):
        """Defaults match the documented reservation rules."""
        settings = Settings(_env_file=None)

        assert settings.min_duration_minutes == 15
        assert settings.default_ttl_ms == 30_000
        assert (settings.min_ttl_ms, settings.max_ttl_ms) == (1_000, 300_000)
        assert settings.slot_step_minutes == 15
        assert (settings.min_slot_minutes, settings.max_slot_minutes) == (15, 480)
        assert settings.cleanup_age_ms == 300_000
        assert settings.appointments_service_url is None
        assert settings.appointments_owner_field == "doctor"
        assert settings.sweeper_grace_seconds * 1000 >= settings.max_ttl_ms

    def test_environment_overrides(self, monkeypatch):
        """Values are read from the environment."""
        monkeypatch.setenv("SLOT_STEP_MINUTES", "30")
        monkeypatch.setenv("EVENTS_ENABLED", "true")

        settings = Settings(_env_file=None)

        assert settings.slot_step_minutes == 30
        assert settings.events_enabled is True

    def test_test_environment_disables_background_work(self):
        """The suite runs without the sweeper or rate limits."""
        settings = get_settings()

        assert settings.rate_limiting_enabled is False
        assert settings.sweeper_enabled is False
        assert settings.database_url.startswith("sqlite")
