import pytest

from log_prioritization.app.config import Settings
from log_prioritization.data.event_store import JsonEventStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        logs_path=str(tmp_path / "logs"),
        analysis_base_url="http://analysis.test",
        analysis_api_key="secret-key",
        analysis_timeout_seconds=5,
        analysis_max_retries=2,
        analysis_retry_base_delay_seconds=0.01,
    )


@pytest.fixture
def store(settings) -> JsonEventStore:
    return JsonEventStore(settings.logs_path)
