import pytest
from pydantic import ValidationError

from gophermart_api.__main__ import apply_overrides, parse_args
from gophermart_api.core.settings import Settings, settings


def test_bare_accrual_address_gets_scheme() -> None:
    config = Settings(accrual_system_address="localhost:8081/")
    assert config.accrual_system_address == "http://localhost:8081"

    config = Settings(accrual_system_address="https://accrual.example.com/")
    assert config.accrual_system_address == "https://accrual.example.com"


def test_database_uri_is_accepted_as_alias(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URI", "postgresql+asyncpg://user:pass@db/gophermart")

    assert Settings().database_url == "postgresql+asyncpg://user:pass@db/gophermart"


def test_run_address_is_split_into_host_and_port() -> None:
    config = Settings(run_address="127.0.0.1:9090")
    assert (config.run_host, config.run_port) == ("127.0.0.1", 9090)

    config = Settings(run_address=":8081")
    assert (config.run_host, config.run_port) == ("0.0.0.0", 8081)


def test_backoff_settings_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(accrual_backoff_base_seconds=0)
    with pytest.raises(ValidationError):
        Settings(accrual_pending_recheck_seconds=-1)


def test_command_line_flags_override_environment(monkeypatch) -> None:
    monkeypatch.setenv("RUN_ADDRESS", "0.0.0.0:7000")
    monkeypatch.setenv("ACCRUAL_SYSTEM_ADDRESS", "http://localhost:8080")
    for field_name in ("run_address", "accrual_system_address"):
        monkeypatch.setattr(settings, field_name, getattr(settings, field_name))

    apply_overrides(parse_args(["-a", "127.0.0.1:9000", "-r", "accrual:8080"]))

    assert settings.run_address == "127.0.0.1:9000"
    assert settings.accrual_system_address == "http://accrual:8080"


def test_no_flags_leave_settings_untouched(monkeypatch) -> None:
    monkeypatch.setattr(settings, "run_address", "0.0.0.0:8000")

    apply_overrides(parse_args([]))

    assert settings.run_address == "0.0.0.0:8000"
