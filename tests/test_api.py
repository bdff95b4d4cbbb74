"""Tests for the transfer query service."""

import asyncio

import pytest
from fastapi.testclient import TestClient
from solders.pubkey import Pubkey

from api.server import _open_store, create_app
from ingestion.models import Transfer
from storage import TransferStore

from conftest import RECEIVER, SENDER, THIRD


def seed(db_path, rows):
    async def _seed():
        async with TransferStore(db_path) as store:
            for sig, sender, receiver, amount, ts in rows:
                await store.insert(Transfer(
                    sender=Pubkey.from_string(sender),
                    receiver=Pubkey.from_string(receiver),
                    amount=amount,
                    timestamp=ts,
                    signature=sig,
                ))
    asyncio.run(_seed())


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "transactions.db")
    seed(path, [
        ("a", SENDER, RECEIVER, 20, "2024-07-28 21:11:50"),
        ("b", RECEIVER, THIRD, -5, "2024-07-29 08:00:00"),
    ])
    return path


@pytest.fixture
def client(db_path):
    app = create_app(lambda: TransferStore(db_path, pool_size=1))
    with TestClient(app) as c:
        yield c


class TestTransactionsEndpoint:

    def test_all_rows(self, client):
        resp = client.get("/transactions")

        assert resp.status_code == 200
        assert resp.json() == [
            f"{{sender:{SENDER}, receiver:{RECEIVER}, amount:20, "
            f"timestamp:2024-07-28 21:11:50, signature:a}}",
            f"{{sender:{RECEIVER}, receiver:{THIRD}, amount:-5, "
            f"timestamp:2024-07-29 08:00:00, signature:b}}",
        ]

    def test_sender_filter(self, client):
        resp = client.get("/transactions", params={"sender": RECEIVER})

        assert resp.status_code == 200
        assert len(resp.json()) == 1
        assert resp.json()[0].endswith("signature:b}")

    def test_date_filter(self, client):
        resp = client.get("/transactions", params={"start_date": "2024-07-29"})
        assert [r[-2] for r in resp.json()] == ["b"]

        resp = client.get("/transactions", params={"end_date": "2024-07-28 23:59:59"})
        assert [r[-2] for r in resp.json()] == ["a"]

    def test_no_match(self, client):
        resp = client.get("/transactions", params={"signature": "missing", "receiver": THIRD})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_injection_attempt_returns_nothing(self, client):
        resp = client.get("/transactions", params={"sender": '" OR 1=1 --'})
        assert resp.json() == []

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestStoreUnavailable:

    def test_open_failure_is_500(self, tmp_path):
        # A directory cannot be opened as a database file
        app = create_app(lambda: TransferStore(str(tmp_path), pool_size=1))

        with TestClient(app) as client:
            resp = client.get("/transactions")

        assert resp.status_code == 500

    def test_recovers_once_store_opens(self, tmp_path):
        path = str(tmp_path / "late.db")
        attempts = []

        def factory():
            attempts.append(1)
            target = str(tmp_path) if len(attempts) == 1 else path
            return TransferStore(target, pool_size=1)

        app = create_app(factory)
        with TestClient(app) as client:
            resp = client.get("/transactions")

        assert resp.status_code == 200
        assert resp.json() == []
        assert len(attempts) == 2

    def test_parent_is_a_file_is_500(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        path = str(blocker / "sub" / "t.db")
        app = create_app(lambda: TransferStore(path, pool_size=1))

        with TestClient(app) as client:
            resp = client.get("/transactions")

        assert resp.status_code == 500


class TestLazyOpen:

    @pytest.mark.asyncio
    async def test_concurrent_first_requests_open_once(self):
        opened = []

        class SlowStore:
            async def open(self):
                await asyncio.sleep(0.02)
                opened.append(self)

        app = create_app(SlowStore)
        app.state.store_factory = SlowStore
        app.state.store = None
        app.state.store_lock = asyncio.Lock()

        stores = await asyncio.gather(*(_open_store(app) for _ in range(5)))

        assert len(opened) == 1
        assert all(s is opened[0] for s in stores)
