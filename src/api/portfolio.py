"""
Portfolio API Endpoints
Positions, summary, investing (record-only or executed on chain) and withdrawals
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.database import crud
from src.database.engine import get_session
from src.database.models import User
from src.services.investment import (
    InvestmentError,
    InvestmentOrchestrator,
    VenueError,
    get_investment_orchestrator,
    summarize,
)
from src.services.wallet_signer import get_signer_for_wallet

router = APIRouter(prefix="/portfolio", tags=["portfolio"])


class RecordInvestmentRequest(BaseModel):
    opportunity_id: int
    amount: Decimal = Field(..., gt=0)
    token: str = Field(..., min_length=1, max_length=64)
    transaction_hash: Optional[str] = None
    deposit_date: Optional[datetime] = None
    active: bool = True


class ExecuteInvestmentRequest(BaseModel):
    opportunity_id: int
    amount: Decimal = Field(..., gt=0)
    source_token: str = "SOL"
    auto_stake: bool = True


class WithdrawRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    transaction_hash: Optional[str] = None


def investment_http_error(e: InvestmentError) -> HTTPException:
    """Map a workflow error to its HTTP status"""
    detail: Any = str(e)
    if isinstance(e, VenueError):
        detail = {"message": e.detail, "stage": e.stage}
    return HTTPException(status_code=e.status_code, detail=detail)


@router.get("")
async def get_portfolio(
    time_range: Literal["1D", "1W", "1M", "1Y", "All"] = Query("1M"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Active positions, total value and net-invested chart

    Returns:
        {
            "total_value": 12.5,
            "change_percentage": 25.0,
            "positions": [{"id": 1, "name": "RAY-USDC LP", "protocol": "Raydium", "apy": 12.3, ...}],
            "chart_data": [{"timestamp": "...", "value": 10.0}, ...]
        }
    """
    try:
        return await crud.get_user_portfolio(session, user.id, time_range)
    except Exception as e:
        logger.exception(f"Error loading portfolio for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/summary")
async def get_portfolio_summary(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    try:
        return await crud.get_portfolio_summary(session, user.id)
    except Exception as e:
        logger.exception(f"Error loading portfolio summary for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/invest")
async def record_investment(
    request: RecordInvestmentRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Record a position the client already executed on chain"""
    opportunity = await crud.get_yield_opportunity(session, request.opportunity_id)
    if opportunity is None:
        raise HTTPException(status_code=404, detail="Yield opportunity not found")

    try:
        position, transaction = await crud.create_investment(
            session,
            user_id=user.id,
            opportunity_id=opportunity.id,
            amount=request.amount,
            token=request.token,
            transaction_hash=request.transaction_hash,
            details={"recorded_by": "client"},
            active=request.active,
            deposit_date=request.deposit_date,
        )
        return {
            "success": True,
            "position_id": position.id,
            "transaction_id": transaction.id,
            "amount": float(position.amount),
            "token": position.token,
        }
    except Exception as e:
        logger.exception(f"Error recording investment for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/invest/execute")
async def execute_investment(
    request: ExecuteInvestmentRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    orchestrator: InvestmentOrchestrator = Depends(get_investment_orchestrator),
) -> Dict[str, Any]:
    """
    Run swap -> liquidity -> stake with the server-side signer

    A degraded run still returns success with the held asset and a
    continuation hint; a failed swap records nothing.
    """
    opportunity = await crud.get_yield_opportunity(session, request.opportunity_id)
    if opportunity is None:
        raise HTTPException(status_code=404, detail="Yield opportunity not found")

    try:
        result = await orchestrator.invest(
            session,
            user.id,
            opportunity,
            request.amount,
            get_signer_for_wallet(user.wallet_address),
            source_token=request.source_token,
            auto_stake=request.auto_stake,
        )
    except InvestmentError as e:
        logger.warning(f"Investment failed for user {user.id}: {e}")
        raise investment_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return summarize(result)


@router.post("/{position_id}/withdraw")
async def withdraw(
    position_id: int,
    request: WithdrawRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Withdraw / unstake all or part of a position"""
    position = await crud.get_position(session, user.id, position_id)
    if position is None:
        raise HTTPException(status_code=404, detail="Position not found")

    try:
        transaction = await crud.withdraw_position(
            session, position, amount=request.amount, transaction_hash=request.transaction_hash
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "success": True,
        "transaction_id": transaction.id,
        "withdrawn": float(transaction.amount),
        "token": transaction.token,
        "remaining": float(position.amount),
        "active": position.active,
    }
