"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from pfs_engine.config import AppSettings, get_settings, validate_all_settings
from pfs_engine.orchestrator import create_portfolio_service
from pfs_engine.services.storage import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "STORAGE_BACKEND",
        "STRICT_VALIDATION",
        "STALENESS_TRACKING_ENABLED",
        "MAX_SNAPSHOT_NAME_LENGTH",
        "GOOGLE_SHEETS_CREDENTIALS_PATH",
        "GOOGLE_SHEETS_SPREADSHEET_ID",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAppSettings:
    """Tests for AppSettings."""

    def test_defaults(self):
        """Test defaults: in-memory, strict, staleness on."""
        settings = AppSettings()
        assert settings.storage_backend == "memory"
        assert settings.strict_validation is True
        assert settings.staleness_tracking_enabled is True
        assert settings.default_template_id == "default"
        assert settings.max_snapshot_name_length == 200

    def test_environment_overrides(self, monkeypatch):
        """Test environment variables."""
        monkeypatch.setenv("STRICT_VALIDATION", "false")
        monkeypatch.setenv("MAX_SNAPSHOT_NAME_LENGTH", "50")
        settings = AppSettings()
        assert settings.strict_validation is False
        assert settings.max_snapshot_name_length == 50

    def test_unknown_backend_rejected(self, monkeypatch):
        """Test that only known backends are accepted."""
        monkeypatch.setenv("STORAGE_BACKEND", "postgres")
        with pytest.raises(ValidationError):
            AppSettings()


class TestValidateAllSettings:
    """Tests for the startup check."""

    def test_memory_backend(self):
        """Test that the memory backend needs no Google settings."""
        assert validate_all_settings() == {"app": True}

    def test_google_sheets_unconfigured(self, monkeypatch):
        """Test that a selected but unconfigured backend is reported."""
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        results = validate_all_settings()
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results


class TestCreatePortfolioService:
    """Tests for the service factory."""

    def test_memory_service(self, monkeypatch):
        """Test that settings flow into the service and tracker."""
        monkeypatch.setenv("STALENESS_TRACKING_ENABLED", "false")
        service = create_portfolio_service()
        assert service.staleness_tracker.pending == 0
        assert service.repositories is not None

    def test_unconfigured_backend_fails_fast(self, monkeypatch):
        """Test that no silent fallback to memory happens."""
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        with pytest.raises(ConfigurationError):
            create_portfolio_service()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
