import pytest

from listing_pipeline.core.config import PipelineConfig, Settings


def test_pipeline_config_from_settings():
    s = Settings(
        job_service_url="http://jobs.internal/api/v1/",
        upload_service_url="http://uploads.internal/api/v1",
        poll_max_attempts=12,
        submission_source="mobile",
    )

    cfg = PipelineConfig.from_settings(s)

    assert cfg.job_service_url == "http://jobs.internal/api/v1"
    assert cfg.upload_service_url == "http://uploads.internal/api/v1"
    assert cfg.poll_max_attempts == 12
    assert cfg.poll_interval_seconds == 5.0
    assert cfg.submission_source == "mobile"


def test_pipeline_config_defaults():
    cfg = PipelineConfig(job_service_url="http://j", upload_service_url="http://u")
    assert (cfg.poll_max_attempts, cfg.poll_interval_seconds) == (60, 5.0)
    assert cfg.probe_timeout_seconds < cfg.submit_timeout_seconds < cfg.upload_timeout_seconds


@pytest.mark.parametrize("kwargs", [{"poll_max_attempts": 0}, {"poll_interval_seconds": -1}])
def test_pipeline_config_rejects_bad_bounds(kwargs):
    with pytest.raises(ValueError):
        PipelineConfig(job_service_url="http://j", upload_service_url="http://u", **kwargs)


def test_pipeline_config_is_frozen():
    cfg = PipelineConfig(job_service_url="http://j", upload_service_url="http://u")
    with pytest.raises(AttributeError):
        cfg.poll_max_attempts = 1
