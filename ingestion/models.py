"""Data types flowing through the ingestion pipeline."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from solders.pubkey import Pubkey

from .errors import AggregatorError

# A transaction as returned by getBlock with "json" encoding.
RawTransaction = Dict[str, Any]


@dataclass
class Block:
    """A confirmed block retrieved for one slot."""

    slot: int
    block_time: Optional[int]
    transactions: List[RawTransaction] = field(default_factory=list)
    blockhash: Optional[str] = None
    parent_slot: Optional[int] = None

    @classmethod
    def from_rpc(cls, slot: int, result: dict) -> "Block":
        """Build a Block from a getBlock ``result`` object."""
        return cls(
            slot=slot,
            block_time=result.get("blockTime"),
            transactions=list(result.get("transactions") or []),
            blockhash=result.get("blockhash"),
            parent_slot=result.get("parentSlot"),
        )


@dataclass(frozen=True)
class Transfer:
    """Simplified two-party balance transfer derived from a transaction."""

    sender: Pubkey
    receiver: Pubkey
    amount: int
    timestamp: str
    signature: str

    def to_row(self) -> tuple:
        """Column values in table order."""
        return (
            str(self.sender),
            str(self.receiver),
            self.amount,
            self.timestamp,
            self.signature,
        )


@dataclass(frozen=True)
class PersistedRecord:
    """One row of the ``transactions`` table."""

    sender: str
    receiver: str
    amount: int
    timestamp: str
    signature: str

    def format(self) -> str:
        """Render as ``{sender:<v>, receiver:<v>, ...}`` for the query API."""
        return (
            f"{{sender:{self.sender}, receiver:{self.receiver}, "
            f"amount:{self.amount}, timestamp:{self.timestamp}, "
            f"signature:{self.signature}}}"
        )


@dataclass
class TransferFilter:
    """Optional equality and range constraints for a store query.

    All set fields are combined with AND. Date bounds are inclusive and
    compared as strings against the stored ``YYYY-MM-DD HH:MM:SS`` value.
    """

    signature: Optional[str] = None
    sender: Optional[str] = None
    receiver: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def to_sql(self) -> tuple:
        """Return ``(where_clause, params)``; the clause is empty when unfiltered."""
        clauses = []
        params = []
        if self.start_date is not None:
            clauses.append("timestamp >= ?")
            params.append(self.start_date)
        if self.end_date is not None:
            clauses.append("timestamp <= ?")
            params.append(self.end_date)
        if self.signature is not None:
            clauses.append("signature = ?")
            params.append(self.signature)
        if self.sender is not None:
            clauses.append("sender = ?")
            params.append(self.sender)
        if self.receiver is not None:
            clauses.append("receiver = ?")
            params.append(self.receiver)

        if not clauses:
            return "", []
        return " WHERE " + " AND ".join(clauses), params


@dataclass
class SlotOutcome:
    """Result of processing one slot, reported to the orchestrator."""

    slot: int
    inserted: int = 0
    transactions: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_name(self) -> Optional[str]:
        if self.error is None:
            return None
        return type(self.error).__name__

    @property
    def is_domain_error(self) -> bool:
        return isinstance(self.error, AggregatorError)
