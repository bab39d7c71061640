import pytest

from spoils.config.settings import NutritionProviderType, Settings, get_settings


def test_default_settings():
    """Test default settings values."""
    settings = Settings()

    assert settings.app_name == "Spoils"
    assert settings.version == "1.0.0"
    assert settings.nutrition_provider == NutritionProviderType.STUB
    assert settings.job_concurrency == 5
    assert settings.job_visibility_timeout_s == 300
    assert settings.job_cleanup_after_days == 30
    assert settings.job_worker_in_app is False


def test_production_usda_requires_api_key():
    with pytest.raises(ValueError, match="requires USDA_API_KEY in production"):
        Settings(environment="production", nutrition_provider=NutritionProviderType.USDA)


def test_production_usda_with_key():
    settings = Settings(
        environment="production",
        nutrition_provider=NutritionProviderType.USDA,
        usda_api_key="secret",
    )
    assert settings.usda_api_key == "secret"


def test_development_usda_without_key_allowed():
    settings = Settings(
        environment="development", nutrition_provider=NutritionProviderType.USDA
    )
    assert settings.usda_api_key is None


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("JOB_CONCURRENCY", "12")
    monkeypatch.setenv("NUTRITION_PROVIDER", "usda")

    settings = Settings()

    assert settings.job_concurrency == 12
    assert settings.nutrition_provider == NutritionProviderType.USDA


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert settings.app_name == "Spoils"
