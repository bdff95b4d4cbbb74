"""Tests for process supervision in main.py."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

import main
from ingestion.config import IngestionConfig
from ingestion.errors import SubscriptionError


@pytest.fixture
def config():
    return IngestionConfig(ws_url="ws://localhost:8900", rpc_url="http://localhost:8899")


class TestSupervisor:

    @pytest.mark.asyncio
    async def test_ingest_only_success(self, config):
        supervisor = main.Supervisor(config, mode="ingest")
        supervisor._ingest = AsyncMock()

        assert await supervisor.run() == main.EXIT_OK
        supervisor._ingest.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ingestion_failure_stops_server(self, config):
        supervisor = main.Supervisor(config, mode="full")
        stopped = asyncio.Event()

        async def serve():
            supervisor.server = MagicMock(should_exit=False)
            while not supervisor.server.should_exit:
                await asyncio.sleep(0.01)
            stopped.set()

        supervisor._serve = serve
        supervisor._ingest = AsyncMock(side_effect=SubscriptionError("cannot connect"))

        assert await supervisor.run() == main.EXIT_WORKER_FAILED
        assert stopped.is_set()

    @pytest.mark.asyncio
    async def test_clean_ingestion_keeps_server(self, config):
        supervisor = main.Supervisor(config, mode="full")
        server_done = asyncio.Event()

        async def serve():
            await asyncio.sleep(0.05)
            server_done.set()

        supervisor._serve = serve
        supervisor._ingest = AsyncMock()

        assert await supervisor.run() == main.EXIT_OK
        assert server_done.is_set()


class TestMain:

    def test_configuration_error_exit_code(self, monkeypatch):
        for name in ("WS_URL", "RPC_URL", "ws_url", "rpc_url"):
            monkeypatch.delenv(name, raising=False)

        assert main.main(["--mode", "ingest"]) == main.EXIT_CONFIG
