"""Tests for the FastAPI endpoints."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from txwatch.api.app import create_app
from txwatch.tracking.base import Milestone, SimulatedDepositHandle

TX = "sync-tx:" + "ab" * 32
ETH_TX = "0x" + "cd" * 32


@pytest.fixture
def test_app(watcher):
    """Application serving the test watcher."""
    return create_app(watcher)


@pytest_asyncio.fixture
async def client(test_app):
    """Create async test client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "txwatch"}

    async def test_detailed_health(self, client):
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["config"]["dry_run"] is True
        assert data["engine"]["active_watches"] == 0


class TestTransactionEndpoints:
    """Tests for transaction endpoints."""

    async def test_watch_and_read_status(self, client, notifier, until):
        response = await client.post(
            "/api/v1/transactions/watch", json={"hash": TX, "already_submitted": True}
        )
        assert response.status_code == 202
        assert response.json()["already_watched"] is False

        await until(lambda: notifier.wait_count(TX, Milestone.VERIFY) == 1)

        response = await client.get(f"/api/v1/transactions/{TX}")
        assert response.status_code == 200
        assert response.json() == {"hash": TX, "status": "Committed"}

        response = await client.get("/api/v1/transactions")
        assert list(response.json()) == [TX]

        response = await client.post("/api/v1/transactions/watch", json={"hash": TX})
        assert response.json()["already_watched"] is True

    async def test_verified_transaction_is_gone(self, client, watcher, notifier):
        notifier.resolve(TX, Milestone.VERIFY)
        await client.post("/api/v1/transactions/watch", json={"hash": TX, "already_submitted": True})
        await watcher.wait_idle(timeout=1.0)

        response = await client.get(f"/api/v1/transactions/{TX}")
        assert response.status_code == 404

    async def test_invalid_hash_rejected(self, client):
        response = await client.post("/api/v1/transactions/watch", json={"hash": "not a hash"})
        assert response.status_code == 422

    async def test_withdrawal_link(self, client):
        response = await client.get(f"/api/v1/withdrawals/{TX}/link")
        assert response.status_code == 404

        response = await client.put(f"/api/v1/withdrawals/{TX}/link", json={"eth_tx_hash": ETH_TX})
        assert response.json()["created"] is True

        response = await client.put(
            f"/api/v1/withdrawals/{TX}/link", json={"eth_tx_hash": "0x" + "ee" * 32}
        )
        assert response.json() == {"tx_hash": TX, "eth_tx_hash": ETH_TX, "created": False}

        response = await client.get(f"/api/v1/withdrawals/{TX}/link")
        assert response.json()["eth_tx_hash"] == ETH_TX

    async def test_refresh_is_debounced(self, client, watcher, refresher, until):
        for _ in range(5):
            response = await client.post("/api/v1/refresh")
            assert response.status_code == 202

        await until(lambda: refresher.balance_refreshes == 1)
        await watcher.scheduler.flush()
        assert refresher.history_refreshes == 1

    async def test_abandon(self, client, watcher):
        await client.post("/api/v1/transactions/watch", json={"hash": TX})

        response = await client.post("/api/v1/watches/abandon")
        assert response.json() == {"abandoned": 1}
        assert watcher.store.get(TX) is None


class TestDepositEndpoints:
    """Tests for deposit endpoints."""

    async def test_watch_deposit_lifecycle(self, client, watcher, monkeypatch, until):
        handle = SimulatedDepositHandle(ETH_TX)
        monkeypatch.setattr(
            "txwatch.api.routes.deposits.get_deposit_handle", lambda eth_tx_hash: handle
        )

        response = await client.post(
            "/api/v1/deposits/watch",
            json={"eth_tx_hash": ETH_TX, "token": "eth", "amount": "1000"},
        )
        assert response.status_code == 202
        await until(lambda: watcher.store.revision == 1)

        response = await client.get("/api/v1/deposits/ETH")
        assert response.json() == [
            {"hash": ETH_TX, "amount": "1000", "status": "Initiated", "confirmations": 1}
        ]

        handle.confirm()
        await watcher.wait_idle(timeout=1.0)

        response = await client.get("/api/v1/deposits")
        assert response.json() == {"revision": 2, "deposits": {"ETH": []}}

    async def test_dry_run_deposit_handle(self, client, watcher):
        await client.post(
            "/api/v1/deposits/watch",
            json={"eth_tx_hash": ETH_TX, "token": "DAI", "amount": "7"},
        )

        # Dry-run receipts arrive after one poll interval
        assert await watcher.wait_idle(timeout=1.0) is True
        assert watcher.store.list_by_token("DAI") == []

    @pytest.mark.parametrize("amount", ["-1", "1.5", "abc"])
    async def test_invalid_amount_rejected(self, client, amount):
        response = await client.post(
            "/api/v1/deposits/watch",
            json={"eth_tx_hash": ETH_TX, "token": "ETH", "amount": amount},
        )
        assert response.status_code == 422
