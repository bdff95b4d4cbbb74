"""Transfer Store - append-only ``transactions`` table."""

import logging
import sqlite3
from typing import List, Optional

from ingestion.errors import StoreError, StoreInsertError, StoreQueryError
from ingestion.models import PersistedRecord, Transfer, TransferFilter

from .pool import SqlitePool

logger = logging.getLogger(__name__)

CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS transactions (
        sender      text,
        receiver    text,
        amount      bigint,
        timestamp   char(20),
        signature   text
    )
"""

CREATE_UNIQUE_SIGNATURE = """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_transactions_signature
    ON transactions(signature)
"""

INSERT = """
    INSERT {conflict}INTO transactions (sender, receiver, amount, timestamp, signature)
    VALUES (?, ?, ?, ?, ?)
"""

SELECT = "SELECT sender, receiver, amount, timestamp, signature FROM transactions"


class TransferStore:
    """
    Persists Transfers and answers filtered queries.

    Inserts never update or delete. With ``unique_signatures`` a unique
    index on ``signature`` makes re-inserting a seen transaction a no-op;
    otherwise duplicates are stored as separate rows.
    """

    def __init__(
        self,
        db_path: str = "transactions.db",
        pool_size: int = 4,
        unique_signatures: bool = False,
        pool: Optional[SqlitePool] = None,
    ):
        self.db_path = db_path
        self.unique_signatures = unique_signatures
        self.pool = pool or SqlitePool(db_path, size=pool_size)
        self._insert_sql = INSERT.format(conflict="OR IGNORE " if unique_signatures else "")

    async def __aenter__(self) -> "TransferStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self) -> None:
        """
        Open the pool and create the schema if needed.

        Raises:
            StoreConnectError: the database cannot be opened
            StoreError: the schema cannot be created
        """
        await self.pool.open()
        try:
            await self.pool.run(self._init_schema)
        except sqlite3.Error as e:
            await self.pool.close()
            raise StoreError(f"cannot initialize schema in {self.db_path}: {e}") from e
        logger.info(f"Transfer store ready: {self.db_path}")

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(CREATE_TABLE)
        if self.unique_signatures:
            conn.execute(CREATE_UNIQUE_SIGNATURE)
        conn.commit()

    async def close(self) -> None:
        await self.pool.close()

    def _insert(self, conn: sqlite3.Connection, row: tuple) -> int:
        with conn:
            cursor = conn.execute(self._insert_sql, row)
        return cursor.rowcount

    async def insert(self, transfer: Transfer) -> bool:
        """
        Append one Transfer.

        Returns:
            False when the row was skipped as a duplicate signature

        Raises:
            StoreInsertError: the write failed
        """
        try:
            inserted = await self.pool.run(self._insert, transfer.to_row())
        except (sqlite3.Error, OverflowError) as e:
            raise StoreInsertError(f"insert of {transfer.signature} failed: {e}") from e
        return inserted > 0

    def _select(self, conn: sqlite3.Connection, sql: str, params: list) -> list:
        return conn.execute(sql, params).fetchall()

    async def query(self, filters: Optional[TransferFilter] = None) -> List[PersistedRecord]:
        """
        Return the rows matching every set field of ``filters``, in insertion order.

        Raises:
            StoreQueryError: the read failed
        """
        where, params = (filters or TransferFilter()).to_sql()
        sql = f"{SELECT}{where} ORDER BY rowid"
        try:
            rows = await self.pool.run(self._select, sql, params)
        except sqlite3.Error as e:
            raise StoreQueryError(f"query failed: {e}") from e
        return [PersistedRecord(*row) for row in rows]

    async def count(self) -> int:
        try:
            rows = await self.pool.run(self._select, "SELECT COUNT(*) FROM transactions", [])
        except sqlite3.Error as e:
            raise StoreQueryError(f"count failed: {e}") from e
        return rows[0][0]
