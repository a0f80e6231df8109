"""Lazy, memoized connections to the 0G network, one per signing identity."""

import asyncio
import logging
from collections import namedtuple
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Optional

from eth_account import Account
from web3 import AsyncWeb3, Web3

from ..types import ConnectionState, LedgerInfo, ZeroGConfig
from ._utils import maybe_await, validate_amount, with_retry
from .broker import Broker, Wallet, resolve_broker_factory
from .exceptions import InsufficientFundsError, NetworkError, ZeroGError
from .state import ActivationStore

logger = logging.getLogger(__name__)

Identity = namedtuple("Identity", ["address", "rpc_url"])

_INSUFFICIENT = "insufficient"


def identity_for(config: ZeroGConfig) -> Identity:
    """Derive the memoization key for ``config``: wallet address plus RPC endpoint."""
    account = Account.from_key(config.private_key)
    return Identity(address=account.address, rpc_url=config.rpc_url)


def _default_web3(rpc_url: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))


def _consume_exception(future: asyncio.Future) -> None:
    # Late failures are observed by awaiting callers; mark them retrieved either way.
    if not future.cancelled():
        future.exception()


class Connection:
    """
    A wallet and broker handle for one identity.

    The connection starts ``UNINITIALIZED`` and is brought up by the first call that
    needs the broker. Concurrent callers share a single in-flight initialization and
    all observe its outcome. A ``FAILED`` connection is re-initialized by the next
    caller, never in the background.

    Usage:
        connection = registry.get_connection(config)
        broker = await connection.acquire_broker()
        balance = await connection.get_balance()
    """

    def __init__(
        self,
        identity: Identity,
        config: ZeroGConfig,
        store: ActivationStore,
        web3_factory: Callable[[str], AsyncWeb3] = _default_web3,
    ):
        self.identity = identity
        self.config = config
        self.state = ConnectionState.UNINITIALIZED
        self.activated = store.is_activated(identity.address, identity.rpc_url)

        self._store = store
        self._web3_factory = web3_factory
        self._wallet: Optional[Wallet] = None
        self._broker: Optional[Broker] = None
        self._init_future: Optional[asyncio.Future] = None

    @property
    def address(self) -> str:
        return self.identity.address

    @property
    def wallet(self) -> Optional[Wallet]:
        return self._wallet

    async def init(self) -> None:
        """Bring the connection to ``READY``, joining an initialization already in flight."""
        if self.state is ConnectionState.READY:
            return

        if self._init_future is None or self._init_future.done():
            self.state = ConnectionState.INITIALIZING
            self._init_future = asyncio.ensure_future(self._run_init())
            self._init_future.add_done_callback(_consume_exception)
        else:
            logger.debug("Initialization already in progress for %s, waiting", self.address)

        await asyncio.shield(self._init_future)

    async def _run_init(self) -> None:
        try:
            await self._do_init()
        except BaseException:
            self.state = ConnectionState.FAILED
            logger.error("0G connection for %s failed to initialize", self.address)
            raise
        self.state = ConnectionState.READY
        logger.info("0G connection ready for %s", self.address)

    async def _do_init(self) -> None:
        config = self.config
        factory = resolve_broker_factory(config.broker_factory)
        retry = dict(max_attempts=config.retries, initial_delay=config.retry_delay)

        try:
            logger.info("Connecting to 0G network at %s...", config.rpc_url)
            web3 = self._web3_factory(config.rpc_url)

            async def health_check():
                return await web3.eth.chain_id

            chain_id = await with_retry(health_check, operation_name="health check", **retry)
            logger.debug("Connected to chain %s", chain_id)

            self._wallet = Wallet(account=Account.from_key(config.private_key), web3=web3)
            logger.debug("Wallet created for %s", self._wallet.address)

            self._broker = await with_retry(
                lambda: maybe_await(factory(self._wallet)), operation_name="broker creation", **retry
            )
        except ZeroGError:
            raise
        except Exception as e:
            raise NetworkError("Failed to initialize 0G connection", cause=e) from e

        if config.auto_deposit and not self._store.is_activated(self.identity.address, self.identity.rpc_url):
            await self._activate()

    async def _activate(self) -> None:
        amount = self.config.auto_deposit_amount
        try:
            logger.info("Auto-depositing %s OG to activate %s...", amount, self.address)
            await maybe_await(self._broker.ledger.deposit_fund(amount))
        except Exception as e:
            # The account can still be activated later with a manual deposit.
            logger.warning("Auto-deposit failed, continuing: %s", e)
            return
        self._store.mark_activated(self.identity.address, self.identity.rpc_url)
        self.activated = True
        logger.info("Auto-deposit successful")

    async def acquire_broker(self) -> Broker:
        """Return the broker, initializing the connection on first use."""
        await self.init()
        self._store.record_request(self.identity.address, self.identity.rpc_url)
        return self._broker

    async def get_ledger(self) -> LedgerInfo:
        """Fetch raw ledger balances (wei)."""
        try:
            broker = await self.acquire_broker()
            raw = await with_retry(
                lambda: maybe_await(broker.ledger.get_ledger()),
                max_attempts=self.config.retries,
                initial_delay=self.config.retry_delay,
                operation_name="get ledger",
            )
            ledger = LedgerInfo.from_raw(raw)
        except ZeroGError:
            raise
        except Exception as e:
            logger.error("Failed to get balance: %s", e)
            raise NetworkError("Failed to retrieve balance", cause=e) from e

        logger.debug("Ledger retrieved: total=%s locked=%s", ledger.total_balance, ledger.locked)
        return ledger

    async def get_balance(self) -> Decimal:
        """Total ledger balance in OG."""
        ledger = await self.get_ledger()
        return _to_og(ledger.total_balance)

    async def get_locked_balance(self) -> Decimal:
        """Balance locked for provider settlement, in OG."""
        ledger = await self.get_ledger()
        return _to_og(ledger.locked)

    async def get_available_balance(self) -> Decimal:
        """Total minus locked balance, in OG."""
        ledger = await self.get_ledger()
        return _to_og(ledger.available)

    async def deposit(self, amount: float) -> None:
        """
        Deposit ``amount`` OG into the ledger.

        Raises:
            ValidationError: If ``amount`` is not a positive number. No network call is made.
            NetworkError: If the deposit fails after all retries.
        """
        validate_amount(amount, "deposit")

        try:
            logger.info("Depositing %s OG...", amount)
            broker = await self.acquire_broker()
            await with_retry(
                lambda: maybe_await(broker.ledger.deposit_fund(amount)),
                max_attempts=self.config.retries,
                initial_delay=self.config.retry_delay,
                operation_name="deposit",
            )
        except ZeroGError:
            raise
        except Exception as e:
            logger.error("Deposit failed: %s OG: %s", amount, e)
            raise NetworkError(f"Failed to deposit {amount} OG", cause=e) from e

        logger.info("Deposit successful: %s OG", amount)

    async def withdraw(self, amount: float) -> None:
        """
        Withdraw ``amount`` OG from the ledger back to the wallet.

        Raises:
            ValidationError: If ``amount`` is not a positive number. No network call is made.
            InsufficientFundsError: If the ledger cannot cover ``amount``.
            NetworkError: For any other failure.
        """
        validate_amount(amount, "withdraw")

        try:
            logger.info("Withdrawing %s OG...", amount)
            broker = await self.acquire_broker()
            await with_retry(
                lambda: maybe_await(broker.ledger.refund(amount)),
                max_attempts=self.config.retries,
                initial_delay=self.config.retry_delay,
                operation_name="withdraw",
            )
        except ZeroGError:
            raise
        except Exception as e:
            logger.error("Withdrawal failed: %s OG: %s", amount, e)
            if _INSUFFICIENT in str(e).lower():
                raise InsufficientFundsError(f"Insufficient balance to withdraw {amount} OG", cause=e) from e
            raise NetworkError(f"Failed to withdraw {amount} OG", cause=e) from e

        logger.info("Withdrawal successful: %s OG", amount)


def _to_og(wei: int) -> Decimal:
    return Decimal(Web3.from_wei(wei, "ether"))


class ConnectionRegistry:
    """
    Maps identities to their `Connection`.

    One registry is the unit of memoization: every ``get_connection`` call with the same
    private key and RPC URL returns the same object for the registry's lifetime.

    Usage:
        registry = ConnectionRegistry()
        connection = registry.get_connection(config)
        assert registry.get_connection(config) is connection
    """

    def __init__(
        self,
        store: Optional[ActivationStore] = None,
        web3_factory: Callable[[str], AsyncWeb3] = _default_web3,
    ):
        self._connections: Dict[Identity, Connection] = {}
        self._default_store = store
        self._stores: Dict[str, ActivationStore] = {}
        self._web3_factory = web3_factory

    def get_connection(self, config: ZeroGConfig) -> Connection:
        """Return the connection for ``config``'s identity, registering it on first use."""
        identity = identity_for(config)
        connection = self._connections.get(identity)
        if connection is not None:
            return connection

        connection = Connection(identity, config, self._store_for(config), web3_factory=self._web3_factory)
        self._connections[identity] = connection
        logger.debug("Registered connection for %s on %s", identity.address, identity.rpc_url)
        return connection

    def _store_for(self, config: ZeroGConfig) -> ActivationStore:
        if config.state_path:
            if config.state_path not in self._stores:
                self._stores[config.state_path] = ActivationStore(Path(config.state_path))
            return self._stores[config.state_path]
        if self._default_store is None:
            self._default_store = ActivationStore()
        return self._default_store

    def reset(self) -> None:
        """Forget every connection. Persisted activation records are kept."""
        self._connections.clear()

    def __contains__(self, identity: Identity) -> bool:
        return identity in self._connections

    def __len__(self) -> int:
        return len(self._connections)
