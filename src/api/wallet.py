"""
Wallet API Endpoints
Sign-in with a Solana wallet, balances, and the premium subscription payment
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.config import SUBSCRIPTION_FEE, SUBSCRIPTION_CURRENCY, SUBSCRIPTION_RECEIVER
from config.tokens import TOKENS
from src.api.auth import (
    build_login_message,
    create_access_token,
    get_current_user,
    get_optional_user,
    verify_wallet_signature,
)
from src.database import crud
from src.database.engine import get_session
from src.database.models import User
from src.services.dexscreener_service import DexScreenerService, get_dexscreener_service
from src.services.solana_rpc_service import SolanaRpcService, SolanaRpcError, get_solana_rpc_service
from src.services.subscription_service import (
    SubscriptionService,
    PaymentVerificationError,
    get_subscription_service,
)

router = APIRouter(prefix="/wallet", tags=["wallet"])


class RegisterRequest(BaseModel):
    wallet_address: str = Field(..., min_length=32, max_length=64)
    username: Optional[str] = None


class ConnectRequest(BaseModel):
    wallet_address: str = Field(..., min_length=32, max_length=64)
    message: str
    signature: str


class SubscribeRequest(BaseModel):
    transaction_hash: str = Field(..., min_length=32, max_length=128)
    wallet_address: Optional[str] = None
    amount: Decimal = SUBSCRIPTION_FEE
    currency: str = SUBSCRIPTION_CURRENCY


@router.get("/login-message")
async def get_login_message(address: str = Query(..., min_length=32)) -> Dict[str, str]:
    """Message for the wallet to sign in POST /connect"""
    return {"message": build_login_message(address)}


@router.post("/register")
async def register_wallet(
    request: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Create a user for a wallet (or return the existing one)

    Returns:
        {"id": 1, "wallet_address": "...", "created": true}
    """
    try:
        user, created = await crud.get_or_create_user(
            session, request.wallet_address, username=request.username
        )
        return {"id": user.id, "wallet_address": user.wallet_address, "created": created}
    except Exception as e:
        logger.exception(f"Error registering wallet {request.wallet_address}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/connect")
async def connect_wallet(
    request: ConnectRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Verify a signed login message and open a session

    Returns:
        {"access_token": "...", "token_type": "bearer", "user_id": 1, "wallet_address": "..."}
    """
    verify_wallet_signature(request.wallet_address, request.message, request.signature)

    try:
        user, created = await crud.get_or_create_user(session, request.wallet_address)
        await crud.touch_last_login(session, user)

        logger.info(f"Wallet connected: {user.wallet_address} (user {user.id}, new={created})")
        return {
            "access_token": create_access_token(user),
            "token_type": "bearer",
            "user_id": user.id,
            "wallet_address": user.wallet_address,
        }
    except Exception as e:
        logger.exception(f"Error connecting wallet {request.wallet_address}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/disconnect")
async def disconnect_wallet(user: Optional[User] = Depends(get_optional_user)) -> Dict[str, Any]:
    """Sessions are stateless JWTs; the client discards its token"""
    if user:
        logger.info(f"Wallet disconnected: {user.wallet_address}")
    return {"success": True}


@router.get("/status")
async def wallet_status(
    user: Optional[User] = Depends(get_optional_user),
    rpc: SolanaRpcService = Depends(get_solana_rpc_service),
) -> Dict[str, Any]:
    """
    Connection status and SOL balance

    Reports connected=false when there is no session or the balance lookup fails.
    """
    disconnected = {"connected": False, "address": None, "balance": 0.0, "user_id": None}
    if user is None:
        return disconnected

    try:
        balance = await rpc.get_balance(user.wallet_address)
    except SolanaRpcError as e:
        logger.warning(f"Balance lookup failed for {user.wallet_address}: {e}")
        return disconnected

    return {
        "connected": True,
        "address": user.wallet_address,
        "balance": float(balance),
        "user_id": user.id,
    }


@router.get("/info")
async def wallet_info(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    rpc: SolanaRpcService = Depends(get_solana_rpc_service),
    prices: DexScreenerService = Depends(get_dexscreener_service),
) -> Dict[str, Any]:
    """
    Balances valued in USD plus subscription flag

    Returns:
        {
            "address": "...",
            "balance": 1.5,
            "balance_in_usd": 225.0,
            "usdc_balance": 10.0,
            "total_value": 235.0,
            "value_change": 2.4,
            "is_subscribed": false
        }
    """
    try:
        sol_balance = await rpc.get_balance(user.wallet_address)
        usdc_balance = await rpc.get_token_balance(user.wallet_address, TOKENS["USDC"].mint)
    except SolanaRpcError as e:
        logger.error(f"Wallet info RPC failure for {user.wallet_address}: {e}")
        raise HTTPException(status_code=502, detail=e.detail)

    try:
        sol_price = await prices.get_token_price("SOL") or {"price_usd": 0.0, "price_change_24h": 0.0}
        balance_in_usd = float(sol_balance) * sol_price["price_usd"]

        return {
            "address": user.wallet_address,
            "balance": float(sol_balance),
            "balance_in_usd": round(balance_in_usd, 2),
            "usdc_balance": float(usdc_balance),
            "total_value": round(balance_in_usd + float(usdc_balance), 2),
            "value_change": round(sol_price["price_change_24h"], 2),
            "is_subscribed": await crud.check_user_is_subscribed(session, user.id),
        }
    except Exception as e:
        logger.exception(f"Error building wallet info for {user.wallet_address}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/subscription")
async def subscription_status(
    address: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Subscription flag for a wallet address (false for unknown wallets)"""
    if not address:
        raise HTTPException(status_code=400, detail="Wallet address is required")

    user = await crud.get_user_by_wallet_address(session, address)
    if user is None:
        return {"is_subscribed": False}

    return {"is_subscribed": await crud.check_user_is_subscribed(session, user.id)}


@router.get("/subscription/pricing")
async def subscription_pricing() -> Dict[str, Any]:
    """Fee and receiver for the one-time payment"""
    return {
        "amount": float(SUBSCRIPTION_FEE),
        "currency": SUBSCRIPTION_CURRENCY,
        "receiver": SUBSCRIPTION_RECEIVER or None,
    }


@router.post("/subscribe")
async def subscribe(
    request: SubscribeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    service: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    """
    Record the one-time subscription payment

    Returns the existing subscription if one is already active.
    """
    if request.wallet_address and request.wallet_address != user.wallet_address:
        raise HTTPException(status_code=400, detail="Wallet address does not match the connected wallet")

    try:
        subscription, created = await service.subscribe(
            session, user, request.transaction_hash, request.amount, request.currency
        )
    except PaymentVerificationError as e:
        logger.warning(f"Subscription payment rejected for {user.wallet_address}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Error recording subscription for {user.wallet_address}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "success": True,
        "created": created,
        "subscription": {
            "id": subscription.id,
            "transaction_hash": subscription.transaction_hash,
            "amount": float(subscription.amount),
            "currency": subscription.currency,
            "is_active": subscription.is_active,
            "subscription_date": crud.as_utc(subscription.subscription_date).isoformat(),
        },
    }
