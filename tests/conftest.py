import pytest

from greeting_operator.config import OperatorSettings
from greeting_operator.plugins.registry import PluginRegistry

from tests.fakes import InMemoryStore


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def settings():
    """Settings with short delays so controller tests finish quickly."""
    return OperatorSettings(
        worker_limit=2,
        resync_period=300,
        invalid_spec_retry=900,
        backoff_base=0.01,
        backoff_max=0.05,
        reconcile_timeout=5,
        shutdown_grace_period=1,
    )


@pytest.fixture
def plugin_registry():
    registry = PluginRegistry()
    registry.clear()
    yield registry
    registry.clear()
