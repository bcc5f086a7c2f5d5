"""
Unit Tests - Configuration
"""
import pytest
from pydantic import ValidationError

from src.config.settings import AbuseDetectionSettings, AnalyticsSettings, Settings, get_settings
from src.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAbuseDetectionSettings:
    """Tests for the abuse threshold surface"""

    def test_defaults(self, monkeypatch):
        """Test documented defaults"""
        for name in ("MAX_VIEWS_PER_MINUTE", "MIN_VIEWS_FOR_ANALYSIS", "ABUSE_DETECTION_ENABLED"):
            monkeypatch.delenv(name, raising=False)

        settings = AbuseDetectionSettings()

        assert settings.max_views_per_minute == 30
        assert settings.max_views_per_session == 500
        assert settings.min_avg_interval_ms == 2000
        assert settings.consecutive_fast_views == 5
        assert settings.fast_view_threshold_ms == 1000
        assert settings.min_views_for_analysis == 10
        assert settings.abuse_detection_enabled is True

    def test_environment_overrides(self, monkeypatch):
        """Test each threshold reads its own variable"""
        monkeypatch.setenv("MAX_VIEWS_PER_MINUTE", "45")
        monkeypatch.setenv("ABUSE_DETECTION_ENABLED", "false")

        settings = AbuseDetectionSettings()

        assert settings.max_views_per_minute == 45
        assert settings.abuse_detection_enabled is False

    def test_frozen(self):
        """Test thresholds cannot change after load"""
        settings = AbuseDetectionSettings()
        with pytest.raises(ValidationError):
            settings.max_views_per_minute = 99


class TestGetSettings:
    """Tests for startup validation"""

    def test_invalid_threshold_is_configuration_error(self, monkeypatch):
        """Test a non-positive threshold fails at load"""
        monkeypatch.setenv("MAX_VIEWS_PER_MINUTE", "0")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_invalid_number_is_configuration_error(self, monkeypatch):
        """Test a non-numeric threshold fails at load"""
        monkeypatch.setenv("MIN_AVG_INTERVAL_MS", "fast")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_unknown_timezone_is_configuration_error(self, monkeypatch):
        """Test an unknown zone name fails at load"""
        monkeypatch.setenv("ANALYTICS_TIMEZONE", "Mars/Olympus_Mons")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_settings_cached(self, monkeypatch):
        """Test settings load once"""
        monkeypatch.setenv("ANALYTICS_TIMEZONE", "Asia/Seoul")

        first = get_settings()

        assert first is get_settings()
        assert first.analytics.tzinfo.key == "Asia/Seoul"

    def test_analytics_defaults(self, monkeypatch):
        """Test report defaults"""
        monkeypatch.delenv("ANALYTICS_TIMEZONE", raising=False)

        settings = AnalyticsSettings()

        assert settings.timezone == "UTC"
        assert (settings.daily_buckets, settings.weekly_buckets, settings.monthly_buckets) == (7, 8, 6)
        assert settings.ledger_batch_size == 100


class TestEnvFile:
    """Tests for values placed in .env"""

    def test_sections_read_env_file(self, monkeypatch, tmp_path):
        """Test thresholds and the timezone in .env reach every section"""
        for name in ("APP_ENV", "POSTGRES_HOST", "MAX_VIEWS_PER_MINUTE", "ABUSE_DETECTION_ENABLED", "ANALYTICS_TIMEZONE"):
            monkeypatch.delenv(name, raising=False)
        (tmp_path / ".env").write_text(
            "APP_ENV=staging\n"
            "POSTGRES_HOST=db.internal\n"
            "MAX_VIEWS_PER_MINUTE=7\n"
            "ABUSE_DETECTION_ENABLED=false\n"
            "ANALYTICS_TIMEZONE=Asia/Seoul\n",
            encoding="utf-8",
        )

        settings = Settings()

        assert settings.app_env == "staging"
        assert settings.database.host == "db.internal"
        assert settings.abuse.max_views_per_minute == 7
        assert settings.abuse.abuse_detection_enabled is False
        assert settings.analytics.tzinfo.key == "Asia/Seoul"

    def test_environment_beats_env_file(self, monkeypatch, tmp_path):
        """Test a process variable overrides the same key in .env"""
        (tmp_path / ".env").write_text("MAX_VIEWS_PER_MINUTE=7\n", encoding="utf-8")
        monkeypatch.setenv("MAX_VIEWS_PER_MINUTE", "12")

        assert get_settings().abuse.max_views_per_minute == 12

    def test_invalid_env_file_value_is_configuration_error(self, monkeypatch, tmp_path):
        """Test a bad threshold in .env fails at load"""
        monkeypatch.delenv("MAX_VIEWS_PER_MINUTE", raising=False)
        (tmp_path / ".env").write_text("MAX_VIEWS_PER_MINUTE=0\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            get_settings()
