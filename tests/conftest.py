import pytest
import pytest_asyncio

import zerogkit
from zerogkit import Client, ZeroGConfig
from zerogkit.client.connection import ConnectionRegistry
from zerogkit.client.state import ActivationStore

from tests.fakes import TEST_PRIVATE_KEY, CountingFactory, FakeBroker, FakeWeb3


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "state.json"


@pytest.fixture
def store(state_file):
    return ActivationStore(state_file, fallback_path=None)


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def factory(broker):
    return CountingFactory(broker)


@pytest.fixture
def registry(store):
    return ConnectionRegistry(store=store, web3_factory=lambda rpc_url: FakeWeb3())


@pytest.fixture
def config(factory):
    return ZeroGConfig(private_key=TEST_PRIVATE_KEY, broker_factory=factory, retry_delay=0, timeout=5)


@pytest_asyncio.fixture
async def client(config, registry):
    c = Client(config, registry=registry)
    yield c
    await c.aclose()


@pytest.fixture(autouse=True)
def clean_global_client():
    zerogkit.reset()
    yield
    zerogkit.reset()
