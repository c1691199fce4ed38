"""Shared fixtures."""
import pytest

from localnet.config import NetworkDefaults
from localnet.genesis import GenesisLedgerBuilder
from localnet.keys import KeyMaterialManager, LocalKeyGenerator
from localnet.lifecycle import LifecycleController
from localnet.store import NetworkStateStore
from localnet.topology import TopologyResolver
from tests.mock_runtime import FakeRuntime, SteppingClock


@pytest.fixture
def home(tmp_path):
    return tmp_path / "localnet-home"


@pytest.fixture
def defaults():
    return NetworkDefaults()


@pytest.fixture
def ledger_builder(defaults):
    return GenesisLedgerBuilder(defaults.stake, clock=SteppingClock())


@pytest.fixture
def resolver(home, defaults, ledger_builder):
    return TopologyResolver(defaults, KeyMaterialManager(home, LocalKeyGenerator()), ledger_builder)


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def controller(home, resolver, runtime):
    return LifecycleController(NetworkStateStore(home), resolver, runtime)
