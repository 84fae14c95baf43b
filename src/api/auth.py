"""
Wallet Authentication
- Sign-in: ed25519 signature of a login message by the wallet key
- Sessions: HS256 JWT bound to the wallet address
- Premium gate: active SolanaSubscription row required
"""

import re
import time
from datetime import datetime, timedelta, UTC
from typing import Any, Dict, Optional

from fastapi import HTTPException, Header, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
from loguru import logger
from solders.pubkey import Pubkey
from solders.signature import Signature

from config.config import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRATION_HOURS, WALLET_AUTH_MAX_AGE
from config.sentry import set_wallet_context
from src.database import crud
from src.database.engine import get_session
from src.database.models import User

LOGIN_MESSAGE_TEMPLATE = "Sign in to Sol YieldHunter\nWallet: {wallet}\nIssued At: {issued_at}"

_WALLET_LINE = re.compile(r"^Wallet:\s*(\S+)\s*$", re.MULTILINE)
_ISSUED_AT_LINE = re.compile(r"^Issued At:\s*(\d+)\s*$", re.MULTILINE)


def build_login_message(wallet_address: str, issued_at: Optional[int] = None) -> str:
    """Message the wallet is asked to sign"""
    return LOGIN_MESSAGE_TEMPLATE.format(
        wallet=wallet_address, issued_at=issued_at if issued_at is not None else int(time.time())
    )


def verify_wallet_signature(
    wallet_address: str,
    message: str,
    signature: str,
    max_age: int = WALLET_AUTH_MAX_AGE,
) -> None:
    """
    Validate a signed login message

    Process:
    1. Message must name the wallet and carry an Issued At timestamp
    2. Timestamp must be younger than max_age (and not in the future)
    3. Base58 ed25519 signature must verify against the wallet public key

    Raises:
        HTTPException: 401 if any check fails
    """
    wallet_match = _WALLET_LINE.search(message)
    issued_match = _ISSUED_AT_LINE.search(message)
    if not wallet_match or not issued_match:
        raise HTTPException(status_code=401, detail="Malformed login message")

    if wallet_match.group(1) != wallet_address:
        raise HTTPException(status_code=401, detail="Login message is for a different wallet")

    age = time.time() - int(issued_match.group(1))
    if age > max_age:
        raise HTTPException(status_code=401, detail="Login message expired")
    if age < -60:
        raise HTTPException(status_code=401, detail="Login message issued in the future")

    try:
        pubkey = Pubkey.from_string(wallet_address)
        sig = Signature.from_string(signature)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid wallet address or signature encoding")

    if not sig.verify(pubkey, message.encode()):
        logger.warning(f"Invalid login signature for wallet {wallet_address}")
        raise HTTPException(status_code=401, detail="Invalid signature")


def create_access_token(user: User) -> str:
    """JWT for a verified wallet"""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user.id),
        "wallet": user.wallet_address,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=JWT_EXPIRATION_HOURS)).timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Raises:
        HTTPException: 401 for invalid or expired tokens
    """
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token")


async def _user_from_header(
    authorization: Optional[str], session: AsyncSession
) -> User:
    if not authorization:
        raise HTTPException(status_code=401, detail="Wallet not connected")
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401, detail="Invalid authorization header. Expected: 'Bearer <token>'"
        )

    payload = decode_access_token(authorization[7:])
    user = await crud.get_user(session, int(payload.get("sub", 0)))
    if user is None or user.wallet_address != payload.get("wallet"):
        raise HTTPException(status_code=401, detail="Wallet not connected")

    set_wallet_context(user.id, user.wallet_address)
    return user


async def get_current_user(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    Dependency: user of the connected wallet

    Usage:
        @router.get("/endpoint")
        async def handler(user: User = Depends(get_current_user)):
            ...
    """
    return await _user_from_header(authorization, session)


async def get_optional_user(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """Like get_current_user, but None instead of 401"""
    if not authorization:
        return None
    try:
        return await _user_from_header(authorization, session)
    except HTTPException:
        return None


async def require_subscription(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> User:
    """
    Dependency for premium endpoints

    Only an active subscription row grants access; wallet balance is never
    considered.
    """
    if not await crud.check_user_is_subscribed(session, user.id):
        raise HTTPException(status_code=403, detail="Subscription required for AI features")
    return user
