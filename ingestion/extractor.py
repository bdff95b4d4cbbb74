"""Transfer extraction from raw getBlock transactions.

Every transaction is treated as a single two-party balance transfer:
the first account key is the sender, the second the receiver, and the
amount is the balance delta of the first account. Instructions and all
other accounts are ignored.
"""

from datetime import datetime, timezone
from typing import Optional

from solders.pubkey import Pubkey

from .errors import InvalidPublicKeyError, MalformedTransactionError, MissingMetadataError
from .models import RawTransaction, Transfer

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_timestamp(block_time: int) -> str:
    """Format a unix block time as a UTC ``YYYY-MM-DD HH:MM:SS`` string."""
    return datetime.fromtimestamp(block_time, tz=timezone.utc).strftime(TIMESTAMP_FORMAT)


def _parse_key(key, index: int, signature: Optional[str]) -> Pubkey:
    if not isinstance(key, str):
        raise InvalidPublicKeyError(f"account key {index} is not a string", signature)
    try:
        return Pubkey.from_string(key)
    except ValueError as e:
        raise InvalidPublicKeyError(f"account key {index} is invalid: {key!r}", signature) from e


def extract_transfer(raw: RawTransaction, timestamp: str) -> Transfer:
    """
    Turn one raw transaction into a Transfer.

    Args:
        raw: A transaction entry from a json-encoded getBlock result
        timestamp: Formatted block time, see ``get_timestamp``

    Returns:
        The extracted Transfer

    Raises:
        MissingMetadataError: no raw message or no status metadata
        MalformedTransactionError: fewer than one signature, two account
            keys, or one pre/post balance
        InvalidPublicKeyError: sender or receiver is not a valid key
    """
    meta = raw.get("meta") if isinstance(raw, dict) else None
    transaction = raw.get("transaction") if isinstance(raw, dict) else None

    # Binary encodings come back as [data, encoding] lists
    if not isinstance(transaction, dict):
        raise MissingMetadataError("transaction is not json encoded")

    signatures = transaction.get("signatures") or []
    signature = signatures[0] if signatures else None

    message = transaction.get("message")
    if not isinstance(message, dict) or not isinstance(message.get("accountKeys"), list):
        raise MissingMetadataError("transaction has no raw message", signature)
    if not isinstance(meta, dict):
        raise MissingMetadataError("transaction has no status metadata", signature)

    account_keys = message["accountKeys"]
    # jsonParsed messages carry {"pubkey": ...} objects instead of strings
    if any(isinstance(key, dict) for key in account_keys):
        raise MissingMetadataError("transaction message is parsed, not raw", signature)

    if signature is None:
        raise MalformedTransactionError("transaction has no signatures")
    if len(account_keys) < 2:
        raise MalformedTransactionError(
            f"expected at least 2 account keys, got {len(account_keys)}", signature
        )

    pre_balances = meta.get("preBalances")
    post_balances = meta.get("postBalances")
    if not isinstance(pre_balances, list) or not isinstance(post_balances, list):
        raise MalformedTransactionError("pre/post balances are not lists", signature)
    if not pre_balances or not post_balances:
        raise MalformedTransactionError("missing pre/post balances", signature)

    try:
        amount = int(pre_balances[0]) - int(post_balances[0])
    except (TypeError, ValueError) as e:
        raise MalformedTransactionError("balance is not an integer", signature) from e

    return Transfer(
        sender=_parse_key(account_keys[0], 0, signature),
        receiver=_parse_key(account_keys[1], 1, signature),
        amount=amount,
        timestamp=timestamp,
        signature=signature,
    )
