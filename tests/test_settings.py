import pytest
from pydantic import ValidationError

from gbp_harvest.settings import Settings


#============================================
def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.REPORT_TIMEZONE == "Europe/Rome"
    assert settings.SLICE_BUDGET_SECONDS == 55 * 60
    assert settings.LOG_MAX_ROWS == 1500
    assert str(settings.tz) == "Europe/Rome"


#============================================
def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("SLICE_BUDGET_MINUTES", "5")
    monkeypatch.setenv("RETRY_BASE_DELAY_SECONDS", "0.5")
    settings = Settings(_env_file=None)
    assert settings.SLICE_BUDGET_SECONDS == 300
    assert settings.RETRY_BASE_DELAY_SECONDS == 0.5


#============================================
@pytest.mark.parametrize("name, value", [
    ("REPORT_TIMEZONE", "Mars/Olympus"),
    ("SLICE_BUDGET_MINUTES", "0"),
    ("RETRY_BASE_DELAY_SECONDS", "-1"),
])
def test_invalid_values_are_rejected(monkeypatch, name, value) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
