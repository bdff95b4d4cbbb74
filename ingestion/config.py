"""Configuration for the aggregator."""

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

T = TypeVar("T")

WS_SCHEMES = ("ws", "wss")
RPC_SCHEMES = ("http", "https")

TRUTHY = ("1", "true", "yes", "on")


def _lookup(env: Mapping[str, str], name: str) -> Optional[str]:
    """Read ``NAME`` or its lower-case alias."""
    value = env.get(name)
    if value is None:
        value = env.get(name.lower())
    if value is not None:
        value = value.strip()
    return value or None


def _require_url(env: Mapping[str, str], name: str, schemes: tuple) -> str:
    value = _lookup(env, name)
    if value is None:
        raise ConfigurationError(f"{name} is not set")

    parsed = urlparse(value)
    if parsed.scheme not in schemes or not parsed.netloc:
        raise ConfigurationError(
            f"{name} is not a valid {'/'.join(schemes)} URL: {value!r}"
        )
    return value


def _optional(
    env: Mapping[str, str],
    name: str,
    default: T,
    cast: Callable[[str], T],
    check: Optional[Callable[[T], bool]] = None,
) -> T:
    raw = _lookup(env, name)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} has an invalid value: {raw!r}") from None
    if check is not None and not check(value):
        raise ConfigurationError(f"{name} is out of range: {raw!r}")
    return value


def _flag(raw: str) -> bool:
    return raw.lower() in TRUTHY


def _positive(value) -> bool:
    return value > 0


def _non_negative(value) -> bool:
    return value >= 0


def _valid_port(value: int) -> bool:
    return 0 < value < 65536


@dataclass
class IngestionConfig:
    """Runtime settings for ingestion, storage and the query service."""

    # Endpoints
    ws_url: str
    rpc_url: str

    # Ingestion
    max_slots: int = 100
    fetch_pacing_seconds: float = 1.0
    rpc_timeout_seconds: float = 30.0
    worker_count: int = 8
    queue_size: int = 64
    subscribe_attempts: int = 3

    # Storage
    database_path: str = "transactions.db"
    db_pool_size: int = 4
    unique_signatures: bool = False

    # Query service
    api_host: str = "127.0.0.1"
    api_port: int = 8080

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "IngestionConfig":
        """
        Build configuration from the process environment.

        Raises:
            ConfigurationError: an endpoint is missing or unparsable, or an
                optional setting has a bad value.
        """
        env = os.environ if env is None else env

        return cls(
            ws_url=_require_url(env, "WS_URL", WS_SCHEMES),
            rpc_url=_require_url(env, "RPC_URL", RPC_SCHEMES),
            max_slots=_optional(env, "MAX_SLOTS", 100, int, _positive),
            fetch_pacing_seconds=_optional(env, "FETCH_PACING_SECONDS", 1.0, float, _non_negative),
            rpc_timeout_seconds=_optional(env, "RPC_TIMEOUT_SECONDS", 30.0, float, _positive),
            worker_count=_optional(env, "INGEST_WORKERS", 8, int, _positive),
            queue_size=_optional(env, "INGEST_QUEUE_SIZE", 64, int, _positive),
            subscribe_attempts=_optional(env, "SUBSCRIBE_ATTEMPTS", 3, int, _positive),
            database_path=_optional(env, "DATABASE_PATH", "transactions.db", str),
            db_pool_size=_optional(env, "DB_POOL_SIZE", 4, int, _positive),
            unique_signatures=_optional(env, "UNIQUE_SIGNATURES", False, _flag),
            api_host=_optional(env, "API_HOST", "127.0.0.1", str),
            api_port=_optional(env, "API_PORT", 8080, int, _valid_port),
            log_level=_optional(env, "LOG_LEVEL", "INFO", str.upper),
        )
