"""Ingestion Layer - Real-time Solana slot to transfer pipeline."""

from .block_fetcher import BlockFetcher
from .config import IngestionConfig
from .errors import (
    AggregatorError,
    ConfigurationError,
    ExtractError,
    FetchError,
    FetchErrorKind,
    StoreError,
    SubscriptionError,
    TimeFetchError,
)
from .extractor import extract_transfer, get_timestamp
from .models import Block, PersistedRecord, SlotOutcome, Transfer, TransferFilter
from .orchestrator import IngestionOrchestrator, IngestionStats, OrchestratorState, run_ingestion
from .slot_watcher import SlotSubscription, SlotWatcher

__all__ = [
    "BlockFetcher",
    "IngestionConfig",
    "AggregatorError",
    "ConfigurationError",
    "ExtractError",
    "FetchError",
    "FetchErrorKind",
    "StoreError",
    "SubscriptionError",
    "TimeFetchError",
    "extract_transfer",
    "get_timestamp",
    "Block",
    "PersistedRecord",
    "SlotOutcome",
    "Transfer",
    "TransferFilter",
    "IngestionOrchestrator",
    "IngestionStats",
    "OrchestratorState",
    "run_ingestion",
    "SlotSubscription",
    "SlotWatcher",
]
