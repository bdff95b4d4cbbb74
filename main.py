#!/usr/bin/env python3
"""
Solana Transfer Aggregator

Subscribes to new root slots, fetches each block, extracts one transfer
per transaction and stores it in SQLite. A small HTTP service answers
filtered queries over the stored transfers.

Usage:
    python main.py                      # Query service + ingestion
    python main.py --mode ingest        # Ingestion only
    python main.py --mode api           # Query service only
    python main.py --max-slots 20       # Override MAX_SLOTS
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

import uvicorn
from dotenv import load_dotenv

from api.server import create_app
from ingestion.config import IngestionConfig
from ingestion.errors import ConfigurationError
from ingestion.orchestrator import run_ingestion
from storage import TransferStore

load_dotenv()

logger = logging.getLogger("transfer-aggregator")

EXIT_OK = 0
EXIT_WORKER_FAILED = 1
EXIT_CONFIG = 2


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_server(config: IngestionConfig) -> uvicorn.Server:
    """Create the uvicorn server for the query service."""

    def store_factory() -> TransferStore:
        return TransferStore(
            config.database_path,
            pool_size=config.db_pool_size,
            unique_signatures=config.unique_signatures,
        )

    app = create_app(store_factory)
    return uvicorn.Server(uvicorn.Config(
        app,
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower(),
    ))


class Supervisor:
    """
    Runs the top-level workers and reports the first failure.

    There is no restart: if any worker raises, the others are stopped and
    the run fails. A worker finishing cleanly leaves the rest running.
    """

    def __init__(self, config: IngestionConfig, mode: str = "full"):
        self.config = config
        self.mode = mode
        self.server: Optional[uvicorn.Server] = None

    async def _ingest(self) -> None:
        stats = await run_ingestion(self.config)
        logger.info(
            f"Ingestion worker done: {stats.transfers_inserted} transfers from "
            f"{stats.slots_processed} slots ({dict(stats.errors)} errors)"
        )

    async def _serve(self) -> None:
        self.server = build_server(self.config)
        logger.info(f"Query service on http://{self.config.api_host}:{self.config.api_port}")
        await self.server.serve()

    async def run(self) -> int:
        tasks = {}
        if self.mode in ("full", "api"):
            tasks[asyncio.create_task(self._serve(), name="query-service")] = "query service"
        if self.mode in ("full", "ingest"):
            tasks[asyncio.create_task(self._ingest(), name="ingestion")] = "ingestion"

        pending = set(tasks)
        exit_code = EXIT_OK
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            failed = [task for task in done if not task.cancelled() and task.exception()]
            if failed:
                for task in failed:
                    logger.error(
                        f"{tasks[task]} worker failed: {task.exception()!r}",
                        exc_info=task.exception(),
                    )
                exit_code = EXIT_WORKER_FAILED
                await self._stop(pending)
                break
        return exit_code

    async def _stop(self, pending: set) -> None:
        if self.server is not None:
            self.server.should_exit = True
        for task in pending:
            if task.get_name() != "query-service":
                task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Solana Transfer Aggregator")
    parser.add_argument(
        "--mode",
        choices=["full", "ingest", "api"],
        default="full",
        help="Run mode: full (both workers), ingest (ingestion only), api (query service only)",
    )
    parser.add_argument("--max-slots", type=int, help="Slot notifications to ingest")
    args = parser.parse_args(argv)

    try:
        config = IngestionConfig.from_env()
    except ConfigurationError as e:
        configure_logging("INFO")
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    if args.max_slots is not None:
        if args.max_slots <= 0:
            parser.error("--max-slots must be positive")
        config.max_slots = args.max_slots

    configure_logging(config.log_level)

    supervisor = Supervisor(config, mode=args.mode)
    try:
        return asyncio.run(supervisor.run())
    except KeyboardInterrupt:
        logger.info("Interrupt received, shutting down...")
        return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
