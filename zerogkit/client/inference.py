"""Chat inference against 0G providers, from discovery to the extracted reply."""

import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import httpx

from ..defaults import FALLBACK_RESPONSE
from ..types import ChatOptions, ChatResponse, ServiceDescriptor
from ._utils import maybe_await, validate_chat_message, with_retry
from .connection import Connection
from .exceptions import InsufficientFundsError, NetworkError, RequestTimeoutError, ValidationError, ZeroGError
from .providers import available_models, fetch_metadata, find_provider_for_model, list_providers, select_provider

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"
PAYMENT_REQUIRED_STATUSES = (402, 403)

TIMEOUT = httpx.Timeout(
    timeout=90.0,
    connect=15.0,
    read=60.0,
    write=30.0,
    pool=10.0,
)
LIMITS = httpx.Limits(
    max_keepalive_connections=20,
    max_connections=100,
    keepalive_expiry=60 * 5,  # 5 minutes
)

DEEPSEEK = "deepseek"
LLAMA = "llama"


class Deadline:
    """
    Wall-clock limit for one in-flight request.

    ``arm`` schedules a timer that cancels the target when it fires; ``disarm`` must run
    on every exit path so a finished request never leaves a pending timer behind.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self.expired = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self._target: Optional[asyncio.Future] = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    def arm(self, target: asyncio.Future) -> None:
        loop = asyncio.get_running_loop()
        self._target = target
        self._handle = loop.call_later(self.timeout, self._expire)

    def disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._target = None

    def _expire(self) -> None:
        self._handle = None
        if self._target is not None and not self._target.done():
            self.expired = True
            logger.warning("Request timeout after %ss, aborting...", self.timeout)
            self._target.cancel()


def extract_content(data: Any, soft_fallback: bool = False) -> str:
    """
    Pull the assistant text out of a chat-completions body.

    With ``soft_fallback`` a body without text still yields a string: a description of
    the requested tool calls, the reasoning text, or a fixed apology, in that order.

    Raises:
        NetworkError: If there is no content and ``soft_fallback`` is off.
    """
    message: Dict[str, Any] = {}
    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
    if not isinstance(message, dict):
        message = {}

    content = message.get("content")
    if isinstance(content, str) and content:
        return content

    if not soft_fallback:
        raise NetworkError("Invalid response format from AI service")

    tool_calls = message.get("tool_calls")
    if tool_calls:
        names = []
        for call in tool_calls:
            function = call.get("function") if isinstance(call, dict) else None
            names.append((function or {}).get("name") or "unknown")
        return f"[Tool call requested: {', '.join(names)}]"

    reasoning = message.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning:
        return reasoning

    return FALLBACK_RESPONSE


def _tokens_used(data: Any) -> Optional[int]:
    if not isinstance(data, dict):
        return None
    usage = data.get("usage")
    if not isinstance(usage, dict) or usage.get("total_tokens") is None:
        return None
    try:
        return int(usage["total_tokens"])
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed usage: %r", usage)
        return None


class Inference:
    """
    Chat inference namespace.

    Every call runs the same pipeline: discover providers, pick one, acknowledge it,
    fetch its metadata and single-use auth headers, then POST the message under a
    deadline and extract the reply. Broker calls are retried; the POST is not.

    Usage:
        client = zerogkit.Client(config)

        reply = await client.inference.chat("Hello!")
        detailed = await client.inference.chat_advanced("Hello!", ChatOptions(temperature=0.2))
        reply = await client.inference.use_llama("Summarize this...")
    """

    def __init__(self, connection: Connection, http_client: httpx.AsyncClient):
        self._connection = connection
        self._http_client = http_client

    async def chat(self, message: str, options: Optional[ChatOptions] = None) -> str:
        """
        Send ``message`` to a provider and return the reply text.

        Args:
            message (str): User message, non-empty.
            options (ChatOptions, optional): Per-call provider, model, sampling, timeout and
                retry overrides.

        Returns:
            str: The assistant's reply.

        Raises:
            ValidationError: If the message or options are invalid. Nothing is sent.
            InsufficientFundsError: If the provider answers 402 or 403.
            RequestTimeoutError: If the request exceeds its timeout.
            NetworkError: For any other failure, including a reply without content.
        """
        response = await self._run(message, options)
        return response.content

    async def chat_advanced(self, message: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        """Like `chat`, but returns the resolved model, provider, request id, timestamp and usage."""
        return await self._run(message, options)

    async def use_model(self, model_name: str, message: str, options: Optional[ChatOptions] = None) -> str:
        """
        Chat with the first provider whose model name contains ``model_name``.

        Replies without text fall back to a tool-call description, the reasoning text or
        a fixed apology instead of raising.
        """
        response = await self._run(message, options, model_name=model_name, soft_fallback=True)
        return response.content

    async def use_deepseek(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return await self.use_model(DEEPSEEK, message, options)

    async def use_llama(self, message: str, options: Optional[ChatOptions] = None) -> str:
        return await self.use_model(LLAMA, message, options)

    async def list_services(self) -> List[ServiceDescriptor]:
        """Currently available inference services, in network order."""
        config = self._connection.config
        try:
            broker = await self._connection.acquire_broker()
            return await list_providers(broker, config.retries, config.retry_delay)
        except ZeroGError:
            raise
        except Exception as e:
            raise NetworkError("Failed to list services", cause=e) from e

    async def get_available_models(self) -> List[str]:
        return available_models(await self.list_services())

    async def _run(
        self,
        message: str,
        options: Optional[ChatOptions],
        model_name: Optional[str] = None,
        soft_fallback: bool = False,
    ) -> ChatResponse:
        options = options or ChatOptions()
        config = self._connection.config
        request_id = str(uuid.uuid4())
        t0 = time.perf_counter()

        timeout = options.timeout if options.timeout is not None else config.timeout
        retries = options.retries if options.retries is not None else config.retries
        retry = dict(max_attempts=retries, initial_delay=config.retry_delay)

        try:
            validate_chat_message(message)
            if timeout <= 0:
                raise ValidationError("timeout must be positive", field="timeout")
            if retries < 1:
                raise ValidationError("retries must be at least 1", field="retries")

            logger.info(
                "Chat request started request_id=%s message_length=%d model=%s",
                request_id,
                len(message),
                options.model or model_name,
            )

            broker = await self._connection.acquire_broker()
            services = await list_providers(broker, retries, config.retry_delay)

            if model_name:
                provider = await find_provider_for_model(broker, services, model_name)
            else:
                provider = select_provider(services, provider=options.provider, model=options.model)
            logger.debug("Selected provider %s request_id=%s", provider, request_id)

            await with_retry(
                lambda: maybe_await(broker.inference.acknowledge_provider_signer(provider)),
                operation_name="acknowledge provider",
                **retry,
            )
            metadata = await with_retry(lambda: fetch_metadata(broker, provider), operation_name="service metadata", **retry)
            # Auth headers are bound to this exact message and valid for one request.
            headers = await with_retry(
                lambda: maybe_await(broker.inference.get_request_headers(provider, message)),
                operation_name="request headers",
                **retry,
            )

            model = options.model or metadata.model or config.default_model
            payload: Dict[str, Any] = {
                "messages": [{"role": "user", "content": message}],
                "model": model,
            }
            if options.temperature is not None:
                payload["temperature"] = options.temperature
            if options.max_tokens is not None:
                payload["max_tokens"] = options.max_tokens

            logger.debug("Sending inference request to %s model=%s request_id=%s", metadata.endpoint, model, request_id)
            response = await self._post(metadata.endpoint + CHAT_COMPLETIONS_PATH, payload, dict(headers or {}), timeout)

            if not response.is_success:
                logger.error("HTTP %d: %s request_id=%s", response.status_code, response.text, request_id)
                if response.status_code in PAYMENT_REQUIRED_STATUSES:
                    raise InsufficientFundsError(
                        "Insufficient funds for AI inference request", status_code=response.status_code
                    )
                raise NetworkError(f"AI service error: HTTP {response.status_code}", status_code=response.status_code)

            try:
                data = response.json()
            except ValueError as e:
                raise NetworkError("Malformed JSON response from AI service", cause=e) from e

            try:
                content = extract_content(data, soft_fallback=soft_fallback)
            except NetworkError:
                logger.error("Invalid response format request_id=%s data=%s", request_id, data)
                raise

            result = ChatResponse(
                content=content,
                model=model,
                provider=provider,
                request_id=request_id,
                timestamp=int(time.time() * 1000),
                tokens_used=_tokens_used(data),
            )
        except asyncio.CancelledError:
            raise
        except ZeroGError as e:
            logger.error("Chat request failed request_id=%s duration_ms=%d: %s", request_id, _elapsed_ms(t0), e)
            raise
        except Exception as e:
            logger.error("Chat request failed request_id=%s duration_ms=%d: %s", request_id, _elapsed_ms(t0), e)
            raise NetworkError("Unexpected error during chat request", cause=e) from e

        logger.info(
            "Chat request completed request_id=%s duration_ms=%d response_length=%d model=%s provider=%s",
            request_id,
            _elapsed_ms(t0),
            len(result.content),
            result.model,
            result.provider,
        )
        return result

    async def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: float) -> httpx.Response:
        headers = {"Content-Type": "application/json", **headers}
        request = asyncio.ensure_future(self._http_client.post(url, json=payload, headers=headers, timeout=timeout + 5))
        deadline = Deadline(timeout)
        deadline.arm(request)

        try:
            return await request
        except asyncio.CancelledError:
            if deadline.expired:
                raise RequestTimeoutError(f"Request timed out after {timeout}s", timeout=timeout)
            raise
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request timed out after {timeout}s", timeout=timeout, cause=e) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Inference request failed: {e}", cause=e) from e
        finally:
            deadline.disarm()
            if not request.done():
                request.cancel()


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)
