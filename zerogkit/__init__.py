"""
zerogkit -- a client-side convenience layer for the 0G decentralized compute network.

## Overview

zerogkit discovers inference providers, negotiates per-request authentication through the
0G serving broker, sends chat-completion requests and manages the prepaid ledger that pays
for them. Connections are created lazily, once per signing identity, and reused.

## Quick Start

```python
import asyncio
import zerogkit

zerogkit.init(private_key="0x...", broker_factory="my_broker:create")

async def main():
    print(await zerogkit.chat("Hello!"))
    print(await zerogkit.use_deepseek("Explain zero-knowledge proofs in one sentence."))
    print(await zerogkit.get_balance())

asyncio.run(main())
```

When `init()` was never called, the chat functions configure themselves from ``ZG_*``
environment variables (see `zerogkit.types.ZeroGConfig.from_env`).

## The broker

The broker object speaks the provider protocol and signs requests. zerogkit only drives
it; see `zerogkit.client.broker` for the interface it expects and how to plug one in.
"""

import logging
from decimal import Decimal
from typing import List, Optional

import httpx

from .client import Client, ConnectionRegistry, SyncClient
from .client._utils import validate_chat_message
from .client.inference import LIMITS, TIMEOUT
from .client.exceptions import (
    ConfigurationError,
    ErrorKind,
    InsufficientFundsError,
    NetworkError,
    RequestTimeoutError,
    ValidationError,
    ZeroGError,
)
from .types import ChatOptions, ChatResponse, ConnectionState, ServiceDescriptor, ZeroGConfig

logger = logging.getLogger(__name__)

global_client: Optional[Client] = None
"""Global client instance. Set by calling `init()`."""

_registry = ConnectionRegistry()
_http_client: Optional[httpx.AsyncClient] = None


def _shared_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=TIMEOUT, limits=LIMITS)
    return _http_client


def init(config: Optional[ZeroGConfig] = None, **kwargs) -> Client:
    """Initialize the global zerogkit client.

    Args:
        config: A ready `ZeroGConfig`. When omitted, ``kwargs`` are passed to `ZeroGConfig`.
        **kwargs: `ZeroGConfig` fields, e.g. ``private_key`` and ``broker_factory``.

    Returns:
        The newly created `Client` instance.

    Usage:
        import zerogkit
        zerogkit.init(private_key="0x...", broker_factory="my_broker:create")
        reply = await zerogkit.chat("Hello!")
    """
    global global_client
    if config is None:
        config = ZeroGConfig(**kwargs)
    if global_client is not None:
        logger.warning("zerogkit already initialized, replacing with new config")
    # Module-level clients share one connection pool.
    global_client = Client(config, registry=_registry, http_client=_shared_http_client())
    return global_client


def reset() -> None:
    """Drop the global client and every memoized connection. `close()` also releases the HTTP pool."""
    global global_client, _registry, _http_client
    global_client = None
    _http_client = None
    _registry = ConnectionRegistry()


async def close() -> None:
    """Close the shared HTTP client, then `reset()`."""
    if _http_client is not None:
        await _http_client.aclose()
    reset()


def _require_client() -> Client:
    if global_client is None:
        raise ConfigurationError("zerogkit not initialized. Call zerogkit.init() first.")
    return global_client


def _client_or_env() -> Client:
    if global_client is None:
        logger.info("zerogkit not initialized, configuring from environment")
        init(ZeroGConfig.from_env())
    return global_client


def _options(options: Optional[ChatOptions], overrides) -> Optional[ChatOptions]:
    if not overrides:
        return options
    if options is not None:
        raise ValidationError("Pass either a ChatOptions object or keyword options, not both")
    return ChatOptions(**overrides)


async def chat(message: str, options: Optional[ChatOptions] = None, **overrides) -> str:
    """Send ``message`` to a 0G provider and return the reply text.

    Keyword overrides (``model``, ``provider``, ``temperature``, ``max_tokens``, ``timeout``,
    ``retries``) build a `ChatOptions` when ``options`` is not given.
    """
    validate_chat_message(message)
    return await _client_or_env().chat(message, _options(options, overrides))


async def chat_advanced(message: str, options: Optional[ChatOptions] = None, **overrides) -> ChatResponse:
    """Like `chat`, returning a `ChatResponse` with model, provider and request metadata."""
    validate_chat_message(message)
    return await _client_or_env().chat_advanced(message, _options(options, overrides))


async def use_deepseek(message: str, options: Optional[ChatOptions] = None, **overrides) -> str:
    validate_chat_message(message)
    return await _client_or_env().use_deepseek(message, _options(options, overrides))


async def use_llama(message: str, options: Optional[ChatOptions] = None, **overrides) -> str:
    validate_chat_message(message)
    return await _client_or_env().use_llama(message, _options(options, overrides))


async def list_services() -> List[ServiceDescriptor]:
    return await _client_or_env().list_services()


async def get_available_models() -> List[str]:
    return await _client_or_env().get_available_models()


async def get_balance() -> Decimal:
    return await _require_client().get_balance()


async def deposit(amount: float) -> None:
    await _require_client().deposit(amount)


async def withdraw(amount: float) -> None:
    await _require_client().withdraw(amount)


__all__ = [
    "Client",
    "SyncClient",
    "ConnectionRegistry",
    "global_client",
    "init",
    "reset",
    "close",
    "chat",
    "chat_advanced",
    "use_deepseek",
    "use_llama",
    "list_services",
    "get_available_models",
    "get_balance",
    "deposit",
    "withdraw",
    "ZeroGConfig",
    "ChatOptions",
    "ChatResponse",
    "ConnectionState",
    "ServiceDescriptor",
    "ErrorKind",
    "ZeroGError",
    "ConfigurationError",
    "NetworkError",
    "RequestTimeoutError",
    "InsufficientFundsError",
    "ValidationError",
]
