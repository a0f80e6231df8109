import asyncio
from decimal import Decimal

import pytest

from zerogkit import ZeroGConfig
from zerogkit.client.connection import ConnectionRegistry, identity_for
from zerogkit.client.exceptions import ConfigurationError, InsufficientFundsError, NetworkError, ValidationError
from zerogkit.client.state import ActivationStore
from zerogkit.types import ConnectionState

from tests.fakes import OTHER_PRIVATE_KEY, TEST_ADDRESS, TEST_PRIVATE_KEY, CountingFactory, FakeEth, FakeWeb3


def test_identity_is_address_and_rpc(config):
    identity = identity_for(config)
    assert identity.address == TEST_ADDRESS
    assert identity.rpc_url == config.rpc_url


def test_registry_memoizes_per_identity(registry, config, factory):
    first = registry.get_connection(config)
    assert registry.get_connection(config) is first
    assert registry.get_connection(ZeroGConfig(private_key=TEST_PRIVATE_KEY[2:], broker_factory=factory)) is first

    other_key = registry.get_connection(ZeroGConfig(private_key=OTHER_PRIVATE_KEY, broker_factory=factory))
    other_rpc = registry.get_connection(
        ZeroGConfig(private_key=TEST_PRIVATE_KEY, rpc_url="https://rpc.example.org", broker_factory=factory)
    )
    assert other_key is not first
    assert other_rpc is not first
    assert len(registry) == 3

    registry.reset()
    assert len(registry) == 0
    assert registry.get_connection(config) is not first


@pytest.mark.asyncio
async def test_concurrent_acquisitions_share_one_initialization(registry, config, factory, broker):
    results = await asyncio.gather(
        registry.get_connection(config).acquire_broker(),
        registry.get_connection(config).acquire_broker(),
        registry.get_connection(config).init(),
    )

    assert factory.calls == 1
    assert results[0] is broker
    assert results[1] is broker
    assert registry.get_connection(config).state is ConnectionState.READY


@pytest.mark.asyncio
async def test_init_is_idempotent_once_ready(registry, config, factory):
    connection = registry.get_connection(config)
    await connection.init()
    await connection.init()
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_concurrent_callers_observe_the_same_failure(registry, config):
    factory = CountingFactory(fail_times=100)
    config.broker_factory = factory
    connection = registry.get_connection(config)

    results = await asyncio.gather(connection.init(), connection.acquire_broker(), return_exceptions=True)

    assert all(isinstance(r, NetworkError) for r in results)
    assert results[0] is results[1]
    assert "Failed to initialize" in str(results[0])
    # one init sequence, retried `retries` times
    assert factory.calls == config.retries
    assert connection.state is ConnectionState.FAILED


@pytest.mark.asyncio
async def test_failed_connection_can_be_reinitialized(registry, config):
    factory = CountingFactory(fail_times=3)
    config.broker_factory = factory
    connection = registry.get_connection(config)

    with pytest.raises(NetworkError):
        await connection.init()
    assert connection.state is ConnectionState.FAILED

    broker = await connection.acquire_broker()
    assert broker is factory.broker
    assert connection.state is ConnectionState.READY
    assert factory.calls == 4


@pytest.mark.asyncio
async def test_health_check_is_retried(store, config, factory):
    eth = FakeEth(fail_times=2)
    registry = ConnectionRegistry(store=store, web3_factory=lambda rpc_url: FakeWeb3(eth))

    await registry.get_connection(config).init()

    assert eth.calls == 3
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_unreachable_node_fails_init(store, config, factory):
    eth = FakeEth(fail_times=100)
    registry = ConnectionRegistry(store=store, web3_factory=lambda rpc_url: FakeWeb3(eth))

    with pytest.raises(NetworkError) as exc:
        await registry.get_connection(config).init()

    assert isinstance(exc.value.cause, ConnectionError)
    assert factory.calls == 0


@pytest.mark.asyncio
async def test_wallet_is_bound_to_identity(registry, config, factory):
    await registry.get_connection(config).init()
    assert factory.wallets[0].address == TEST_ADDRESS


@pytest.mark.asyncio
async def test_missing_broker_factory_is_a_configuration_error(registry):
    connection = registry.get_connection(ZeroGConfig(private_key=TEST_PRIVATE_KEY))
    with pytest.raises(ConfigurationError):
        await connection.init()


@pytest.mark.asyncio
async def test_broker_factory_from_import_path(registry):
    connection = registry.get_connection(ZeroGConfig(private_key=TEST_PRIVATE_KEY, broker_factory="tests.fakes:create_broker"))
    broker = await connection.acquire_broker()
    assert await broker.ledger.get_ledger()


@pytest.mark.asyncio
async def test_auto_deposit_runs_once_across_restarts(state_file, config, factory, broker):
    config.auto_deposit = True
    web3_factory = lambda rpc_url: FakeWeb3()  # noqa: E731

    first = ConnectionRegistry(store=ActivationStore(state_file, fallback_path=None), web3_factory=web3_factory)
    await first.get_connection(config).init()
    assert broker.ledger.deposits == [0.1]
    assert first.get_connection(config).activated

    # a new process: fresh registry and store over the same file
    second = ConnectionRegistry(store=ActivationStore(state_file, fallback_path=None), web3_factory=web3_factory)
    connection = second.get_connection(config)
    assert connection.activated
    await connection.init()
    assert broker.ledger.deposits == [0.1]


@pytest.mark.asyncio
async def test_auto_deposit_skipped_when_record_says_activated(store, registry, config, broker):
    store.mark_activated(TEST_ADDRESS, config.rpc_url)
    config.auto_deposit = True

    await registry.get_connection(config).init()
    assert broker.ledger.deposits == []


@pytest.mark.asyncio
async def test_auto_deposit_disabled_by_default(registry, config, broker):
    await registry.get_connection(config).init()
    assert broker.ledger.deposits == []


@pytest.mark.asyncio
async def test_auto_deposit_failure_does_not_fail_init(store, registry, config, broker):
    config.auto_deposit = True
    broker.ledger.deposit_failures = 1
    connection = registry.get_connection(config)

    await connection.init()

    assert connection.state is ConnectionState.READY
    assert broker.ledger.deposits == [0.1]
    assert not connection.activated
    assert not store.is_activated(TEST_ADDRESS, config.rpc_url)


@pytest.mark.asyncio
async def test_acquire_broker_counts_requests(store, registry, config):
    connection = registry.get_connection(config)
    await connection.acquire_broker()
    await connection.acquire_broker()
    assert store.get(TEST_ADDRESS, config.rpc_url).totalRequests == 2


@pytest.mark.asyncio
async def test_balances_are_converted_to_og(registry, config):
    connection = registry.get_connection(config)
    assert await connection.get_balance() == Decimal("2")
    assert await connection.get_locked_balance() == Decimal("0.5")
    assert await connection.get_available_balance() == Decimal("1.5")


@pytest.mark.asyncio
async def test_balance_failure_is_a_network_error(registry, config, broker):
    broker.ledger.ledger_error = RuntimeError("rpc exploded")
    with pytest.raises(NetworkError) as exc:
        await registry.get_connection(config).get_balance()
    assert isinstance(exc.value.cause, RuntimeError)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1, float("nan"), float("inf"), "1", None, True])
async def test_invalid_amounts_never_touch_the_network(registry, config, factory, amount):
    connection = registry.get_connection(config)
    with pytest.raises(ValidationError):
        await connection.deposit(amount)
    with pytest.raises(ValidationError):
        await connection.withdraw(amount)
    assert factory.calls == 0


@pytest.mark.asyncio
async def test_deposit_is_retried(registry, config, broker):
    broker.ledger.deposit_failures = 1
    await registry.get_connection(config).deposit(0.5)
    assert broker.ledger.deposits == [0.5, 0.5]
    assert await registry.get_connection(config).get_balance() == Decimal("2.5")


@pytest.mark.asyncio
async def test_deposit_failure_is_a_network_error(registry, config, broker):
    broker.ledger.deposit_failures = 100
    with pytest.raises(NetworkError) as exc:
        await registry.get_connection(config).deposit(1)
    assert "deposit" in str(exc.value)
    assert len(broker.ledger.deposits) == config.retries


@pytest.mark.asyncio
async def test_withdraw(registry, config, broker):
    await registry.get_connection(config).withdraw(1)
    assert broker.ledger.refunds == [1]
    assert await registry.get_connection(config).get_balance() == Decimal("1")


@pytest.mark.asyncio
async def test_withdraw_beyond_balance_is_insufficient_funds(registry, config):
    with pytest.raises(InsufficientFundsError) as exc:
        await registry.get_connection(config).withdraw(10)
    assert not isinstance(exc.value, NetworkError)


@pytest.mark.asyncio
async def test_withdraw_other_failures_are_network_errors(registry, config, broker):
    async def broken_refund(amount):
        raise RuntimeError("nonce too low")

    broker.ledger.refund = broken_refund
    with pytest.raises(NetworkError):
        await registry.get_connection(config).withdraw(1)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [Decimal("sNaN"), Decimal("NaN"), Decimal("Infinity"), Decimal("0")])
async def test_non_finite_decimal_amounts_are_validation_errors(registry, config, factory, amount):
    connection = registry.get_connection(config)
    with pytest.raises(ValidationError):
        await connection.deposit(amount)
    with pytest.raises(ValidationError):
        await connection.withdraw(amount)
    assert factory.calls == 0
