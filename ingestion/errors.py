"""Error taxonomy for the aggregator."""

from enum import Enum
from typing import Optional


class AggregatorError(Exception):
    """Base class for every error raised by the aggregator."""


class ConfigurationError(AggregatorError):
    """Missing or invalid runtime configuration. Fatal at startup."""


class SubscriptionError(AggregatorError):
    """The slot subscription could not be opened or was lost."""


class FetchErrorKind(str, Enum):
    """Why a block fetch failed."""

    NETWORK = "network"
    RPC = "rpc"
    DECODE = "decode"
    BLOCK_TIME = "block_time"


class FetchError(AggregatorError):
    """A single getBlock call failed. Never retried."""

    def __init__(self, slot: int, kind: FetchErrorKind, message: str = ""):
        self.slot = slot
        self.kind = kind
        super().__init__(f"slot {slot}: {kind.value} error{': ' + message if message else ''}")


class TimeFetchError(FetchError):
    """The block came back without a block time."""

    def __init__(self, slot: int):
        super().__init__(slot, FetchErrorKind.BLOCK_TIME, "block time missing")


class ExtractError(AggregatorError):
    """A raw transaction could not be turned into a Transfer."""

    def __init__(self, message: str, signature: Optional[str] = None):
        self.signature = signature
        super().__init__(message)


class MissingMetadataError(ExtractError):
    """No raw message or no status metadata on the transaction."""


class MalformedTransactionError(ExtractError):
    """Too few signatures, account keys or balance entries."""


class InvalidPublicKeyError(ExtractError):
    """An account key is not a valid base58 public key."""


class StoreError(AggregatorError):
    """Base class for persistence failures."""


class StoreConnectError(StoreError):
    pass


class StoreInsertError(StoreError):
    pass


class StoreQueryError(StoreError):
    pass
