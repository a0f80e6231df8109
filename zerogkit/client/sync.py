"""Blocking facade over `Client` for code that does not run an event loop."""

import asyncio
import threading
from decimal import Decimal
from typing import List, Optional

from ..types import ChatOptions, ChatResponse, ServiceDescriptor, ZeroGConfig
from .client import Client
from .connection import ConnectionRegistry
from .exceptions import ConfigurationError


class SyncClient:
    """
    Synchronous wrapper around `Client`.

    All coroutines run on one event loop owned by a daemon thread, so the connection's
    shared initialization and the HTTP connection pool stay on a single loop no matter
    which thread calls in.

    Usage:
        client = SyncClient(ZeroGConfig.from_env())
        print(client.chat("Hello!"))
        client.close()
    """

    def __init__(self, config: ZeroGConfig, registry: Optional[ConnectionRegistry] = None):
        self._closed = False
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(target=self._run_event_loop, daemon=True)
        self._loop_thread.start()
        self._client = self._run_coroutine(self._create_client(config, registry))

    @staticmethod
    async def _create_client(config: ZeroGConfig, registry: Optional[ConnectionRegistry]) -> Client:
        return Client(config, registry=registry)

    def _run_event_loop(self):
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _run_coroutine(self, coroutine):
        if self._closed:
            coroutine.close()
            raise ConfigurationError("Client is closed.")
        future = asyncio.run_coroutine_threadsafe(coroutine, self._loop)
        return future.result()

    @property
    def client(self) -> Client:
        return self._client

    @property
    def address(self) -> str:
        return self._client.address

    def init(self) -> None:
        self._run_coroutine(self._client.init())

    def chat(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return self._run_coroutine(self._client.chat(message, options))

    def chat_advanced(self, message: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        return self._run_coroutine(self._client.chat_advanced(message, options))

    def use_model(self, model_name: str, message: str, options: Optional[ChatOptions] = None) -> str:
        return self._run_coroutine(self._client.use_model(model_name, message, options))

    def use_deepseek(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return self._run_coroutine(self._client.use_deepseek(message, options))

    def use_llama(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return self._run_coroutine(self._client.use_llama(message, options))

    def list_services(self) -> List[ServiceDescriptor]:
        return self._run_coroutine(self._client.list_services())

    def get_available_models(self) -> List[str]:
        return self._run_coroutine(self._client.get_available_models())

    def get_balance(self) -> Decimal:
        return self._run_coroutine(self._client.get_balance())

    def get_locked_balance(self) -> Decimal:
        return self._run_coroutine(self._client.get_locked_balance())

    def get_available_balance(self) -> Decimal:
        return self._run_coroutine(self._client.get_available_balance())

    def deposit(self, amount: float) -> None:
        self._run_coroutine(self._client.deposit(amount))

    def withdraw(self, amount: float) -> None:
        self._run_coroutine(self._client.withdraw(amount))

    def close(self) -> None:
        if self._closed:
            return
        self._run_coroutine(self._client.aclose())
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=5)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
