"""
zerogkit specific types
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from dotenv import find_dotenv, load_dotenv

from .client.exceptions import ConfigurationError
from .defaults import (
    DEFAULT_AUTO_DEPOSIT,
    DEFAULT_AUTO_DEPOSIT_AMOUNT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MODEL,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY_SEC,
    DEFAULT_RPC_URL,
    DEFAULT_TIMEOUT_SEC,
)

LOG_LEVELS = ("debug", "info", "warn", "warning", "error", "silent")

_PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class ConnectionState(str, Enum):
    """Lifecycle of a `Connection`."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class ZeroGConfig:
    """
    Settings for one signing identity.

    Attributes:
        private_key: Hex private key of the wallet that pays for inference. A missing
            ``0x`` prefix is added.
        rpc_url: JSON-RPC endpoint of the 0G chain.
        auto_deposit: Deposit ``auto_deposit_amount`` OG once, on first use of this identity.
        default_model: Model reported when neither the caller nor the provider names one.
        timeout: Per-request deadline in seconds for inference calls.
        retries: Total attempts for every retryable network call.
        retry_delay: Delay in seconds before the second attempt, doubled afterwards.
        log_level: One of debug, info, warn, warning, error, silent.
        broker_factory: Callable taking a `Wallet` and returning the broker SDK handle,
            or a ``"package.module:attribute"`` string naming one.
        state_path: Override for the activation record file.
    """

    private_key: str
    rpc_url: str = DEFAULT_RPC_URL
    auto_deposit: bool = DEFAULT_AUTO_DEPOSIT
    auto_deposit_amount: float = DEFAULT_AUTO_DEPOSIT_AMOUNT
    default_model: str = DEFAULT_MODEL
    timeout: float = DEFAULT_TIMEOUT_SEC
    retries: int = DEFAULT_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY_SEC
    log_level: str = DEFAULT_LOG_LEVEL
    broker_factory: Optional[Union[Callable[..., Any], str]] = field(default=None, repr=False)
    state_path: Optional[str] = None

    def __post_init__(self):
        if not self.private_key or not isinstance(self.private_key, str):
            raise ConfigurationError("private_key is required")
        if not self.private_key.startswith("0x"):
            self.private_key = "0x" + self.private_key
        if not _PRIVATE_KEY_RE.match(self.private_key):
            raise ConfigurationError("private_key must be 32 bytes of hex")
        if not isinstance(self.rpc_url, str) or not self.rpc_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"rpc_url must be an http(s) URL, got {self.rpc_url!r}")
        if self.timeout is None or self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if not isinstance(self.retries, int) or self.retries < 1:
            raise ConfigurationError("retries must be an integer >= 1")
        if self.retry_delay < 0:
            raise ConfigurationError("retry_delay cannot be negative")
        if self.auto_deposit_amount <= 0:
            raise ConfigurationError("auto_deposit_amount must be positive")
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    def __repr__(self):
        return f"ZeroGConfig(rpc_url={self.rpc_url!r}, auto_deposit={self.auto_deposit}, timeout={self.timeout}, retries={self.retries})"

    @classmethod
    def from_env(cls, **overrides) -> "ZeroGConfig":
        """Build a config from ``ZG_*`` environment variables (and a ``.env`` file, if present)."""
        load_dotenv(find_dotenv(usecwd=True))

        private_key = os.getenv("ZG_PRIVATE_KEY") or os.getenv("PRIVATE_KEY")
        if not private_key and "private_key" not in overrides:
            raise ConfigurationError("ZG_PRIVATE_KEY environment variable not set")

        values: Dict[str, Any] = {"private_key": private_key}
        if os.getenv("ZG_RPC_URL"):
            values["rpc_url"] = os.environ["ZG_RPC_URL"]
        if os.getenv("ZG_AUTO_DEPOSIT") is not None:
            values["auto_deposit"] = _parse_bool("ZG_AUTO_DEPOSIT", os.environ["ZG_AUTO_DEPOSIT"])
        if os.getenv("ZG_DEFAULT_MODEL"):
            values["default_model"] = os.environ["ZG_DEFAULT_MODEL"]
        if os.getenv("ZG_TIMEOUT"):
            values["timeout"] = _parse_number("ZG_TIMEOUT", os.environ["ZG_TIMEOUT"], float)
        if os.getenv("ZG_RETRIES"):
            values["retries"] = _parse_number("ZG_RETRIES", os.environ["ZG_RETRIES"], int)
        if os.getenv("ZG_LOG_LEVEL"):
            values["log_level"] = os.environ["ZG_LOG_LEVEL"].lower()
        if os.getenv("ZG_BROKER_FACTORY"):
            values["broker_factory"] = os.environ["ZG_BROKER_FACTORY"]
        if os.getenv("ZG_STATE_PATH"):
            values["state_path"] = os.environ["ZG_STATE_PATH"]

        values.update(overrides)
        return cls(**values)


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _parse_number(name: str, raw: str, kind):
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a {kind.__name__}, got {raw!r}") from e


@dataclass
class ChatOptions:
    """
    Per-call overrides for a chat request. ``None`` means "use the connection default".
    """

    model: Optional[str] = None
    provider: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout: Optional[float] = None
    retries: Optional[int] = None


@dataclass
class ChatResponse:
    """
    Detailed result of a chat request.
    """

    content: str
    """Extracted assistant text."""

    model: str
    """Model that served the request."""

    provider: str
    """Address of the provider that served the request."""

    request_id: str
    """Identifier generated for this request, also used in log lines."""

    timestamp: int
    """Completion time in epoch milliseconds."""

    tokens_used: Optional[int] = None
    """Total tokens reported by the provider, if any."""


@dataclass
class ServiceMetadata:
    endpoint: str
    model: str

    @classmethod
    def from_raw(cls, raw: Any) -> "ServiceMetadata":
        endpoint = _pick(raw, "endpoint", "url")
        model = _pick(raw, "model")
        if not endpoint:
            raise ValueError(f"Service metadata has no endpoint: {raw!r}")
        return cls(endpoint=str(endpoint).rstrip("/"), model=str(model or ""))


@dataclass
class ServiceDescriptor:
    """
    One inference offering on the network.

    Attributes:
        provider: Provider address, used as the key for every broker call.
        service_type: Service category, e.g. ``chatbot``.
        url: Provider endpoint as advertised in the service list.
        input_price: Price per input unit, in neuron.
        output_price: Price per output unit, in neuron.
        updated_at: Last update of the listing, in seconds.
        model: Declared model identifier.
        verifiability: Verification class, e.g. ``TeeML``.
    """

    provider: str
    service_type: str = ""
    url: str = ""
    input_price: int = 0
    output_price: int = 0
    updated_at: int = 0
    model: str = ""
    verifiability: str = ""

    _FIELDS = ("provider", "service_type", "url", "input_price", "output_price", "updated_at", "model", "verifiability")
    _ALIASES = {
        "provider": ("provider", "address"),
        "service_type": ("service_type", "serviceType"),
        "url": ("url", "endpoint"),
        "input_price": ("input_price", "inputPrice"),
        "output_price": ("output_price", "outputPrice"),
        "updated_at": ("updated_at", "updatedAt"),
        "model": ("model",),
        "verifiability": ("verifiability",),
    }

    @classmethod
    def from_raw(cls, raw: Any) -> "ServiceDescriptor":
        """
        Normalize one entry of the broker's service list.

        Accepts a bare address, a positional sequence in broker order, a mapping,
        or an object exposing the fields as attributes.
        """
        if isinstance(raw, ServiceDescriptor):
            return raw
        if isinstance(raw, str):
            values: Dict[str, Any] = {"provider": raw}
        elif isinstance(raw, Sequence):
            values = dict(zip(cls._FIELDS, raw))
        else:
            values = {name: _pick(raw, *aliases) for name, aliases in cls._ALIASES.items()}

        provider = values.get("provider")
        if not provider:
            raise ValueError(f"Service entry has no provider address: {raw!r}")

        return cls(
            provider=str(provider),
            service_type=str(values.get("service_type") or ""),
            url=str(values.get("url") or ""),
            input_price=_to_int(values.get("input_price")),
            output_price=_to_int(values.get("output_price")),
            updated_at=_to_int(values.get("updated_at")),
            model=str(values.get("model") or ""),
            verifiability=str(values.get("verifiability") or ""),
        )


@dataclass
class LedgerInfo:
    """Raw ledger balances, in wei."""

    total_balance: int
    locked: int = 0

    @property
    def available(self) -> int:
        return self.total_balance - self.locked

    @classmethod
    def from_raw(cls, raw: Any) -> "LedgerInfo":
        if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
            # broker order: user, availableBalance, totalBalance, ...
            total = raw[2] if len(raw) > 2 else raw[0]
            locked = raw[2] - raw[1] if len(raw) > 2 else 0
            return cls(total_balance=_to_int(total), locked=_to_int(locked))
        total = _pick(raw, "total_balance", "totalBalance")
        if total is None:
            raise ValueError(f"Ledger has no total balance: {raw!r}")
        return cls(total_balance=_to_int(total), locked=_to_int(_pick(raw, "locked")))


def _pick(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, Mapping):
            if name in raw:
                return raw[name]
        elif hasattr(raw, name):
            return getattr(raw, name)
    return None


def _to_int(value: Any) -> int:
    if value is None or value == "":
        return 0
    return int(value)
