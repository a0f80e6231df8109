"""Main Client class that ties a connection, inference and the ledger together."""

import logging
from decimal import Decimal
from typing import List, Optional

import httpx

from ..types import ChatOptions, ChatResponse, ServiceDescriptor, ZeroGConfig
from ._utils import set_log_level
from .connection import Connection, ConnectionRegistry
from .inference import LIMITS, TIMEOUT, Inference

logger = logging.getLogger(__name__)


class Client:
    """
    Main zerogkit client.

    Owns the HTTP client used for inference and borrows its `Connection` from a
    `ConnectionRegistry`. Clients built on the same registry with the same private key
    and RPC URL share one connection, so the network is initialized once.

    Usage:
        config = ZeroGConfig(private_key="0x...", broker_factory="my_broker:create")
        async with Client(config) as client:
            print(await client.chat("Hello!"))
            print(await client.get_balance())
    """

    inference: Inference
    """Chat inference via 0G providers."""

    connection: Connection
    """Connection for this client's identity, shared through the registry."""

    def __init__(
        self,
        config: ZeroGConfig,
        registry: Optional[ConnectionRegistry] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client. No network call is made until the first request.

        Args:
            config: Identity and behaviour settings.
            registry: Registry to memoize the connection in. A private one is created when
                omitted.
            http_client: HTTP client for inference calls. The client closes it only when it
                created it.
        """
        set_log_level(config.log_level)

        self.config = config
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.connection = self.registry.get_connection(config)

        self._owns_http_client = http_client is None
        self._http_client = http_client if http_client is not None else httpx.AsyncClient(timeout=TIMEOUT, limits=LIMITS)
        self.inference = Inference(self.connection, self._http_client)

        logger.info("Client created rpc_url=%s auto_deposit=%s", config.rpc_url, config.auto_deposit)

    @property
    def address(self) -> str:
        return self.connection.address

    async def init(self) -> None:
        """Initialize the connection now instead of on first use."""
        await self.connection.init()

    async def chat(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return await self.inference.chat(message, options)

    async def chat_advanced(self, message: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        return await self.inference.chat_advanced(message, options)

    async def use_model(self, model_name: str, message: str, options: Optional[ChatOptions] = None) -> str:
        return await self.inference.use_model(model_name, message, options)

    async def use_deepseek(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return await self.inference.use_deepseek(message, options)

    async def use_llama(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return await self.inference.use_llama(message, options)

    async def list_services(self) -> List[ServiceDescriptor]:
        return await self.inference.list_services()

    async def get_available_models(self) -> List[str]:
        return await self.inference.get_available_models()

    async def get_balance(self) -> Decimal:
        return await self.connection.get_balance()

    async def get_locked_balance(self) -> Decimal:
        return await self.connection.get_locked_balance()

    async def get_available_balance(self) -> Decimal:
        return await self.connection.get_available_balance()

    async def deposit(self, amount: float) -> None:
        await self.connection.deposit(amount)

    async def withdraw(self, amount: float) -> None:
        await self.connection.withdraw(amount)

    async def aclose(self) -> None:
        """Close the HTTP client if this client created it. The shared connection stays."""
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
