from unittest.mock import patch

import pytest

from pkp.config.settings import BlobBackend, EnrichmentProviderType, Settings, get_settings


def test_default_settings():
    """Test default settings values."""
    settings = Settings(_env_file=None)

    assert settings.app_name == "PKP Enrichment"
    assert settings.environment == "development"
    assert settings.job_max_attempts == 3
    assert settings.job_stale_lease_s == 300
    assert settings.job_batch_limit == 10
    assert settings.enrichment_provider == EnrichmentProviderType.STUB
    assert settings.blob_backend == BlobBackend.LOCAL
    assert settings.classify_confidence_threshold == 0.7


def test_production_requires_cron_secret():
    """Production refuses to start without a run trigger secret."""
    with pytest.raises(ValueError, match="CRON_SECRET must be set in production environment"):
        Settings(_env_file=None, environment="production")


def test_production_with_cron_secret():
    settings = Settings(_env_file=None, environment="production", cron_secret="s3cret")
    assert settings.cron_secret == "s3cret"


def test_development_allows_missing_cron_secret():
    settings = Settings(_env_file=None, environment="development")
    assert settings.cron_secret is None


def test_settings_dependency_injection():
    """Test the get_settings dependency function."""
    settings = get_settings()
    assert isinstance(settings, Settings)


@patch.dict(
    "os.environ",
    {
        "JOB_MAX_ATTEMPTS": "5",
        "JOB_TIMEOUT_S": "90",
        "ENRICHMENT_PROVIDER": "openai",
        "CRON_SECRET": "from-env",
    },
)
def test_environment_variable_override():
    """Test that environment variables override defaults."""
    settings = Settings(_env_file=None)

    assert settings.job_max_attempts == 5
    assert settings.job_timeout_s == 90.0
    assert settings.enrichment_provider == EnrichmentProviderType.OPENAI
    assert settings.cron_secret == "from-env"


def test_invalid_threshold_rejected():
    with pytest.raises(ValueError):
        Settings(_env_file=None, classify_confidence_threshold=1.5)


def test_zero_attempts_rejected():
    with pytest.raises(ValueError):
        Settings(_env_file=None, job_max_attempts=0)


def test_job_timeout_must_stay_below_stale_lease():
    """A job still within its timeout must never look stale to other runners."""
    with pytest.raises(ValueError, match="JOB_TIMEOUT_S must be lower than JOB_STALE_LEASE_S"):
        Settings(_env_file=None, job_timeout_s=600, job_stale_lease_s=300)

    with pytest.raises(ValueError, match="JOB_TIMEOUT_S must be lower than JOB_STALE_LEASE_S"):
        Settings(_env_file=None, job_timeout_s=300, job_stale_lease_s=300)


@patch.dict("os.environ", {"JOB_TIMEOUT_S": "600"})
def test_job_timeout_from_environment_is_checked():
    with pytest.raises(ValueError, match="JOB_STALE_LEASE_S"):
        Settings(_env_file=None)


def test_provider_timeout_must_stay_below_job_timeout():
    with pytest.raises(ValueError, match="PROVIDER_TIMEOUT_S must be lower than JOB_TIMEOUT_S"):
        Settings(_env_file=None, job_timeout_s=60, provider_timeout_s=60)


def test_longer_timeouts_accepted_with_longer_lease():
    settings = Settings(
        _env_file=None, job_timeout_s=600, job_stale_lease_s=900, provider_timeout_s=300
    )
    assert settings.job_timeout_s < settings.job_stale_lease_s
