"""
Unit Tests for Core Modules
Configuration loading and startup provider validation
"""
import pytest

from dialer.core.config import ConfigManager, Settings
from dialer.core.validation import ProviderValidator, validate_providers_on_startup

REQUIRED = ["SUPABASE_URL", "SUPABASE_SERVICE_KEY", "ELEVENLABS_API_KEY", "ELEVENLABS_WEBHOOK_SECRET"]


class TestConfigManager:
    """Test configuration manager"""

    def test_load_default_config(self):
        config = ConfigManager(env="nonexistent")

        assert config.get("queue.max_leads_per_job") == 500
        assert config.get("queue.call_timeout_seconds") == 900
        assert config.get("queue.dispatch_retry.max_attempts") == 3
        assert config.get("webhooks.signature_tolerance_seconds") == 1800

    def test_environment_override(self):
        config = ConfigManager(env="development")

        assert config.get("queue.call_timeout_seconds") == 300
        assert config.get("queue.dispatch_retry.backoff_seconds") == 0.1
        # Untouched siblings survive the merge
        assert config.get("queue.dispatch_retry.max_attempts") == 3

    def test_missing_key_returns_default(self):
        config = ConfigManager(env="development")

        assert config.get("queue.nope", "fallback") == "fallback"
        assert config.get("queue.max_leads_per_job.deeper") is None

    def test_env_var_substitution(self, monkeypatch):
        monkeypatch.setenv("QUEUE_TEST_VALUE", "from-env")
        config = ConfigManager(env="development")
        config._config = {"section": {"value": "${QUEUE_TEST_VALUE}"}}

        config._substitute_env_vars(config._config)

        assert config.get("section.value") == "from-env"


class TestSettings:
    """Test environment-backed settings"""

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("TEST_MODE", "true")
        monkeypatch.setenv("TEST_PHONE_NUMBER", "+15557770000")
        monkeypatch.setenv("ELEVENLABS_API_KEY", "xi-key")

        settings = Settings(_env_file=None)

        assert settings.test_mode is True
        assert settings.test_phone_number == "+15557770000"
        assert settings.elevenlabs_api_key == "xi-key"
        assert settings.elevenlabs_base_url == "https://api.elevenlabs.io"


class TestProviderValidator:
    """Test startup validation"""

    def test_all_configured(self, monkeypatch):
        for var in REQUIRED + ["REDIS_URL"]:
            monkeypatch.setenv(var, "value")

        all_valid, results = ProviderValidator(strict=True).validate_all()

        assert all_valid
        assert len(results) == 5

    def test_missing_required(self, monkeypatch):
        for var in REQUIRED:
            monkeypatch.setenv(var, "value")
        monkeypatch.delenv("ELEVENLABS_WEBHOOK_SECRET")

        validator = ProviderValidator()
        all_valid, _ = validator.validate_all()

        assert not all_valid
        assert "ELEVENLABS_WEBHOOK_SECRET" in validator.get_error_summary()

    def test_missing_redis_is_warning_unless_strict(self, monkeypatch):
        for var in REQUIRED:
            monkeypatch.setenv(var, "value")
        monkeypatch.delenv("REDIS_URL", raising=False)

        assert ProviderValidator(strict=False).validate_all()[0]
        assert not ProviderValidator(strict=True).validate_all()[0]

    def test_startup_raises(self, monkeypatch):
        for var in REQUIRED:
            monkeypatch.delenv(var, raising=False)

        with pytest.raises(RuntimeError, match="Provider configuration errors"):
            validate_providers_on_startup()
