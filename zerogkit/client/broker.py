"""Protocol definitions for the 0G serving broker SDK.

zerogkit does not speak the provider wire protocol or sign requests itself. It drives
a broker object that does, through the capability set described here. Methods may be
plain functions or coroutines; callers await results when they are awaitable.
"""

import importlib
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Protocol, Union

from eth_account.account import LocalAccount
from web3 import AsyncWeb3

from .exceptions import ConfigurationError

# ============================================================================
# Broker Protocols
# ============================================================================


class InferenceBroker(Protocol):
    """Provider discovery and request authentication."""

    def list_service(self) -> Union[List[Any], Awaitable[List[Any]]]:
        """Return the raw service list, in network order."""
        ...

    def acknowledge_provider_signer(self, provider_address: str) -> Any:
        """Register the provider's signer for this identity. Required before the first request."""
        ...

    def get_service_metadata(self, provider_address: str) -> Union[Dict[str, str], Awaitable[Dict[str, str]]]:
        """Return ``{"endpoint": ..., "model": ...}`` for the provider."""
        ...

    def get_request_headers(self, provider_address: str, content: str) -> Union[Dict[str, str], Awaitable[Dict[str, str]]]:
        """Return single-use auth headers bound to ``content``."""
        ...


class LedgerBroker(Protocol):
    """Prepaid balance backing an identity's requests."""

    def get_ledger(self) -> Any:
        """Return the ledger, exposing ``totalBalance`` and ``locked`` in wei."""
        ...

    def deposit_fund(self, amount: float) -> Any:
        """Move ``amount`` OG from the wallet into the ledger."""
        ...

    def refund(self, amount: float) -> Any:
        """Move ``amount`` OG from the ledger back to the wallet."""
        ...


class Broker(Protocol):
    inference: InferenceBroker
    ledger: LedgerBroker


@dataclass
class Wallet:
    """Signing account bound to the chain it pays on."""

    account: LocalAccount
    web3: AsyncWeb3

    @property
    def address(self) -> str:
        return self.account.address


BrokerFactory = Callable[[Wallet], Union[Broker, Awaitable[Broker]]]


def resolve_broker_factory(factory: Union[BrokerFactory, str, None]) -> BrokerFactory:
    """
    Turn the configured broker factory into a callable.

    Args:
        factory: A callable, or a ``"package.module:attribute"`` import path.

    Raises:
        ConfigurationError: If no factory is configured or the import path is invalid.
    """
    if factory is None:
        raise ConfigurationError(
            "No broker factory configured. Pass broker_factory=... or set ZG_BROKER_FACTORY to 'module:callable'."
        )
    if callable(factory):
        return factory
    if not isinstance(factory, str) or ":" not in factory:
        raise ConfigurationError(f"Invalid broker factory {factory!r}, expected 'module:callable'")

    module_name, _, attr = factory.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import broker factory module {module_name!r}", cause=e) from e

    target: Any = module
    for part in attr.split("."):
        target = getattr(target, part, None)
        if target is None:
            raise ConfigurationError(f"Broker factory {factory!r} not found")
    if not callable(target):
        raise ConfigurationError(f"Broker factory {factory!r} is not callable")
    return target
