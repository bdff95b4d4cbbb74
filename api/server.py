"""
FastAPI query service for stored transfers.

Provides:
- GET /transactions with optional start_date, end_date, signature,
  sender and receiver filters
- GET /health for liveness checks
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, List, Optional

from fastapi import FastAPI, HTTPException, Request

from ingestion.errors import StoreError
from ingestion.models import TransferFilter
from storage import TransferStore

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


async def _open_store(app: FastAPI) -> TransferStore:
    """Return the app's store, opening it if the startup attempt failed."""
    if app.state.store is not None:
        return app.state.store

    async with app.state.store_lock:
        if app.state.store is None:
            store = app.state.store_factory()
            await store.open()
            app.state.store = store
            logger.info("Transfer store opened")
    return app.state.store


def create_app(store_factory: Callable[[], TransferStore]) -> FastAPI:
    """
    Build the query service.

    Args:
        store_factory: Returns a new, unopened TransferStore
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store_factory = store_factory
        app.state.store = None
        app.state.store_lock = asyncio.Lock()
        try:
            await _open_store(app)
        except StoreError as e:
            logger.error(f"Transfer store unavailable at startup: {e}")

        yield

        if app.state.store is not None:
            await app.state.store.close()
        logger.info("Query service stopped")

    app = FastAPI(title="Solana transfer aggregator", lifespan=lifespan)

    @app.get("/transactions", response_model=List[str])
    async def transactions(
        request: Request,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        signature: Optional[str] = None,
        sender: Optional[str] = None,
        receiver: Optional[str] = None,
    ):
        """Return stored transfers matching every supplied filter."""
        filters = TransferFilter(
            signature=signature,
            sender=sender,
            receiver=receiver,
            start_date=start_date,
            end_date=end_date,
        )
        try:
            store = await _open_store(request.app)
            records = await store.query(filters)
        except StoreError as e:
            logger.error(f"Transfer query failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return [record.format() for record in records]

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
