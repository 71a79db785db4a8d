import pytest
from pydantic import ValidationError

from greeting_operator.config import OperatorSettings


def test_defaults(monkeypatch):
    for name in ("WORKER_LIMIT", "CLEANUP_MODE", "WATCH_NAMESPACE", "FORCE_APPLY", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = OperatorSettings.from_env()

    assert settings.worker_limit == 5
    assert settings.resync_period == 300
    assert settings.cleanup_mode == "ownerReferences"
    assert settings.force_apply is True
    assert settings.watch_namespace is None
    assert settings.log_level == "INFO"
    assert not settings.uses_finalizer


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("WORKER_LIMIT", "8")
    monkeypatch.setenv("BACKOFF_MAX", "60")
    monkeypatch.setenv("CLEANUP_MODE", "finalizer")
    monkeypatch.setenv("FORCE_APPLY", "false")
    monkeypatch.setenv("MANAGE_CRDS", "TRUE")
    monkeypatch.setenv("WATCH_NAMESPACE", "greetings")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = OperatorSettings.from_env()

    assert settings.worker_limit == 8
    assert settings.backoff_max == 60
    assert settings.uses_finalizer
    assert settings.force_apply is False
    assert settings.manage_crds is True
    assert settings.watch_namespace == "greetings"
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name, value",
    [("WORKER_LIMIT", "0"), ("WORKER_LIMIT", "many"), ("CLEANUP_MODE", "manual")],
)
def test_rejects_bad_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        OperatorSettings.from_env()


def test_settings_are_immutable():
    settings = OperatorSettings()
    with pytest.raises(ValidationError):
        settings.worker_limit = 3
