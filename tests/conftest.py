# tests/conftest.py
import pytest
import structlog

from balance_sim.core.state import StateView
from balance_sim.core.vm import BlockEnv

from .chain import InMemoryStateProvider, chain_accounts


def pytest_configure(config):
    # keep log lines out of captured stdout/stderr, which some tests parse as JSON
    structlog.configure(logger_factory=structlog.ReturnLoggerFactory())


@pytest.fixture
def provider() -> InMemoryStateProvider:
    return InMemoryStateProvider(chain_accounts())


@pytest.fixture
def block(provider) -> BlockEnv:
    return provider.get_latest_block()


@pytest.fixture
def remote_view(provider) -> StateView:
    return StateView(provider=provider, block_number=provider.block_number)
