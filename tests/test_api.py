"""
HTTP tests for the /api routers
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import FastAPI
from solders.keypair import Keypair

from src.api.auth import build_login_message, create_access_token
from src.api.router import router as api_router
from src.database import crud
from src.database.engine import get_session
from src.services.ai_yield_agent import AIYieldAgent, get_ai_yield_agent
from src.services.investment import InvestmentOrchestrator, get_investment_orchestrator
from src.services.openai_service import NO_INTENT, OpenAIService, get_openai_service
from src.services.solana_rpc_service import SolanaRpcError, get_solana_rpc_service
from src.services.wallet_signer import KeypairSigner
from tests.fakes import LP_MINT, RAY, SOL, USDC, FakeRpc, FakeSigner, FakeVenue


@pytest.fixture
def rpc() -> FakeRpc:
    rpc = FakeRpc({SOL.mint: Decimal("10"), USDC.mint: Decimal("200")})
    rpc.effects[b"swap"] = {SOL.mint: Decimal("-2"), RAY.mint: Decimal("50")}
    rpc.effects[b"liquidity"] = {
        RAY.mint: Decimal("-50"),
        USDC.mint: Decimal("-100"),
        LP_MINT: Decimal("35"),
    }
    rpc.effects[b"stake"] = {LP_MINT: Decimal("-35")}
    rpc.get_balance = AsyncMock(return_value=Decimal("1.5"))
    return rpc


@pytest.fixture
def venue() -> FakeVenue:
    return FakeVenue()


@pytest.fixture
def app(session_maker, rpc, venue) -> FastAPI:
    async def override_session():
        async with session_maker() as session:
            yield session

    app = FastAPI()
    app.include_router(api_router, prefix="/api")
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_solana_rpc_service] = lambda: rpc
    app.dependency_overrides[get_investment_orchestrator] = lambda: InvestmentOrchestrator(rpc, venue)
    app.dependency_overrides[get_openai_service] = lambda: OpenAIService(api_key="")
    app.dependency_overrides[get_ai_yield_agent] = lambda: AIYieldAgent(api_key="")
    return app


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


# ===========================
# YIELDS
# ===========================


@pytest.mark.asyncio
async def test_list_and_sort_yields(client, ray_usdc, msol_staking):
    response = await client.get("/api/yields", params={"sort_by": "apy"})

    assert response.status_code == 200
    assert [o["name"] for o in response.json()] == ["RAY-USDC LP", "mSOL Staking"]

    response = await client.get("/api/yields", params={"sort_by": "risk"})
    assert [o["risk_level"] for o in response.json()] == ["low", "medium-high"]

    response = await client.get("/api/yields", params={"protocol": "Marinade"})
    assert [o["id"] for o in response.json()] == [msol_staking.id]


@pytest.mark.asyncio
async def test_best_yield_and_detail(client, ray_usdc, msol_staking):
    best = await client.get("/api/yields/best")
    assert best.status_code == 200
    assert best.json()["id"] == ray_usdc.id
    assert best.json()["protocol_info"]["name"] == "Raydium"

    detail = await client.get(f"/api/yields/{msol_staking.id}")
    assert detail.status_code == 200
    assert detail.json()["supports_liquidity"] is False

    missing = await client.get("/api/yields/9999")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_best_yield_empty(client):
    response = await client.get("/api/yields/best")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_yield_stats(client, ray_usdc, msol_staking):
    response = await client.get("/api/yields/stats")

    assert response.status_code == 200
    stats = response.json()
    assert stats["opportunity_count"] == 2
    assert stats["protocol_count"] == 2


# ===========================
# USER
# ===========================


@pytest.mark.asyncio
async def test_risk_profile_anonymous(client):
    response = await client.get("/api/user/risk-profile")
    assert response.json() == {"level": "moderate-conservative", "percentage": 35}


@pytest.mark.asyncio
async def test_update_preferences_changes_risk_profile(client, auth):
    response = await client.patch(
        "/api/user/preferences", json={"risk_tolerance": "aggressive"}, headers=auth
    )
    assert response.status_code == 200
    assert response.json()["risk_tolerance"] == "aggressive"

    response = await client.get("/api/user/risk-profile", headers=auth)
    assert response.json() == {"level": "aggressive", "percentage": 90}


@pytest.mark.asyncio
async def test_protected_routes_require_wallet(client):
    for path in ("/api/portfolio", "/api/transactions", "/api/user/preferences"):
        response = await client.get(path)
        assert response.status_code == 401
        assert response.json()["detail"] == "Wallet not connected"

    response = await client.get("/api/portfolio", headers={"Authorization": "Bearer junk"})
    assert response.status_code == 401


# ===========================
# PREMIUM GATE
# ===========================


@pytest.mark.asyncio
async def test_ai_routes_require_subscription(client, auth, db_session, user):
    response = await client.get("/api/ai/recommendations", headers=auth)
    assert response.status_code == 403
    assert response.json()["detail"] == "Subscription required for AI features"

    await crud.create_subscription(db_session, user.id, "5" * 64, Decimal("0.000001"), "SOL")

    response = await client.get("/api/ai/recommendations", headers=auth)
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_subscribe_rejects_other_wallet(client, auth):
    response = await client.post(
        "/api/wallet/subscribe",
        json={"transaction_hash": "5" * 64, "wallet_address": "SomeoneElse111111111111111111111111111111"},
        headers=auth,
    )
    assert response.status_code == 400


# ===========================
# PORTFOLIO
# ===========================


@pytest.mark.asyncio
async def test_execute_investment_without_signer(client, auth, ray_usdc, monkeypatch):
    monkeypatch.setattr("src.api.portfolio.get_signer_for_wallet", lambda wallet: None)

    response = await client.post(
        "/api/portfolio/invest/execute",
        json={"opportunity_id": ray_usdc.id, "amount": "2"},
        headers=auth,
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Wallet not connected"


@pytest.mark.asyncio
async def test_execute_investment(client, auth, ray_usdc, monkeypatch):
    monkeypatch.setattr("src.api.portfolio.get_signer_for_wallet", lambda wallet: FakeSigner(wallet))

    response = await client.post(
        "/api/portfolio/invest/execute",
        json={"opportunity_id": ray_usdc.id, "amount": "2"},
        headers=auth,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["stage"] == "stake"
    assert body["token"] == "RAY-USDC-LP-STAKED"
    assert body["degraded"] is False

    portfolio = await client.get("/api/portfolio", headers=auth)
    assert [p["id"] for p in portfolio.json()["positions"]] == [body["position_id"]]


@pytest.mark.asyncio
async def test_execute_investment_venue_error(client, auth, ray_usdc, venue, rpc, monkeypatch):
    monkeypatch.setattr("src.api.portfolio.get_signer_for_wallet", lambda wallet: FakeSigner(wallet))
    venue.swap_error = "ROUTE_NOT_FOUND"

    response = await client.post(
        "/api/portfolio/invest/execute",
        json={"opportunity_id": ray_usdc.id, "amount": "2"},
        headers=auth,
    )

    assert response.status_code == 502
    assert response.json()["detail"] == {"message": "ROUTE_NOT_FOUND", "stage": "swap"}
    assert rpc.sent == []

    transactions = await client.get("/api/transactions", headers=auth)
    assert transactions.json() == []


@pytest.mark.asyncio
async def test_record_investment_unknown_opportunity(client, auth):
    response = await client.post(
        "/api/portfolio/invest",
        json={"opportunity_id": 9999, "amount": "1", "token": "SOL"},
        headers=auth,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_withdraw(client, auth, db_session, user, ray_usdc):
    other = await crud.create_user(db_session, wallet_address="OtherWallet1111111111111111111111111111111")
    foreign, _ = await crud.create_investment(db_session, other.id, ray_usdc.id, Decimal("3"), "RAY")
    own, _ = await crud.create_investment(db_session, user.id, ray_usdc.id, Decimal("4"), "RAY")

    response = await client.post(f"/api/portfolio/{foreign.id}/withdraw", json={}, headers=auth)
    assert response.status_code == 404

    response = await client.post(f"/api/portfolio/{own.id}/withdraw", json={"amount": "10"}, headers=auth)
    assert response.status_code == 400

    response = await client.post(f"/api/portfolio/{own.id}/withdraw", json={"amount": "1"}, headers=auth)
    assert response.status_code == 200
    assert response.json()["remaining"] == 3.0
    assert response.json()["active"] is True


# ===========================
# TRANSACTIONS
# ===========================


@pytest.mark.asyncio
async def test_transactions_filter(client, auth, ray_usdc):
    await client.post(
        "/api/portfolio/invest",
        json={"opportunity_id": ray_usdc.id, "amount": "1", "token": "RAY"},
        headers=auth,
    )
    await client.post(
        "/api/transactions",
        json={"transaction_type": "stake", "amount": "0.5", "token": "RAY-USDC-LP"},
        headers=auth,
    )

    everything = await client.get("/api/transactions", headers=auth)
    assert {t["transaction_type"] for t in everything.json()} == {"invest", "stake"}

    stakes = await client.get("/api/transactions", params={"filter": "stake"}, headers=auth)
    assert [t["token"] for t in stakes.json()] == ["RAY-USDC-LP"]


# ===========================
# WALLET
# ===========================


@pytest.mark.asyncio
async def test_subscription_status(client, user):
    assert (await client.get("/api/wallet/subscription")).status_code == 400

    response = await client.get("/api/wallet/subscription", params={"address": "Unknown"})
    assert response.json() == {"is_subscribed": False}

    response = await client.get("/api/wallet/subscription", params={"address": user.wallet_address})
    assert response.json() == {"is_subscribed": False}


@pytest.mark.asyncio
async def test_wallet_status(client, auth, rpc, user):
    response = await client.get("/api/wallet/status")
    assert response.json()["connected"] is False

    response = await client.get("/api/wallet/status", headers=auth)
    assert response.json() == {
        "connected": True,
        "address": user.wallet_address,
        "balance": 1.5,
        "user_id": user.id,
    }

    rpc.get_balance.side_effect = SolanaRpcError("getBalance", "node is behind")
    response = await client.get("/api/wallet/status", headers=auth)
    assert response.json()["connected"] is False


@pytest.mark.asyncio
async def test_connect_with_signed_message(client):
    signer = KeypairSigner(Keypair())
    message = (await client.get("/api/wallet/login-message", params={"address": signer.public_key})).json()["message"]
    assert message == build_login_message(signer.public_key, int(message.rsplit(" ", 1)[1]))

    response = await client.post(
        "/api/wallet/connect",
        json={
            "wallet_address": signer.public_key,
            "message": message,
            "signature": signer.sign_message(message.encode()),
        },
    )

    assert response.status_code == 200
    token = response.json()["access_token"]

    status = await client.get("/api/wallet/status", headers={"Authorization": f"Bearer {token}"})
    assert status.json()["address"] == signer.public_key


@pytest.mark.asyncio
async def test_connect_with_bad_signature(client):
    signer = KeypairSigner(Keypair())
    message = build_login_message(signer.public_key)

    response = await client.post(
        "/api/wallet/connect",
        json={
            "wallet_address": signer.public_key,
            "message": message,
            "signature": KeypairSigner(Keypair()).sign_message(message.encode()),
        },
    )

    assert response.status_code == 401


# ===========================
# CHAT
# ===========================


@pytest.mark.asyncio
async def test_chat(client, auth, ray_usdc):
    empty = await client.post("/api/chat", json={"message": "   "}, headers=auth)
    assert empty.status_code == 400

    response = await client.post("/api/chat", json={"message": "Where should I stake?"}, headers=auth)
    assert response.status_code == 200
    assert response.json()["transaction_intent"] == NO_INTENT

    cleared = await client.delete("/api/chat/history", headers=auth)
    assert cleared.json() == {"success": True}
