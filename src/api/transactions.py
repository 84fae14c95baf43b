"""
Transaction History API Endpoints
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.database import crud
from src.database.engine import get_session
from src.database.models import User, Transaction, TransactionType, TransactionStatus

router = APIRouter(prefix="/transactions", tags=["transactions"])


class CreateTransactionRequest(BaseModel):
    transaction_type: TransactionType
    amount: Decimal = Field(..., ge=0)
    token: str = Field(..., min_length=1, max_length=64)
    opportunity_id: Optional[int] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    transaction_hash: Optional[str] = None
    transaction_date: Optional[datetime] = None
    details: Optional[Dict[str, Any]] = None


def transaction_to_dict(tx: Transaction) -> Dict[str, Any]:
    return {
        "id": tx.id,
        "transaction_type": tx.transaction_type,
        "amount": float(tx.amount),
        "token": tx.token,
        "status": tx.status,
        "transaction_hash": tx.transaction_hash,
        "transaction_date": crud.as_utc(tx.transaction_date).isoformat(),
        "opportunity_id": tx.opportunity_id,
        "opportunity_name": tx.opportunity.name if tx.opportunity else None,
        "protocol": tx.opportunity.protocol if tx.opportunity else None,
        "details": tx.details,
    }


@router.get("")
async def list_transactions(
    filter: str = Query("all"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    """Newest first; filter is 'all' or a transaction type"""
    try:
        transactions = await crud.get_user_transactions(session, user.id, filter)
        return [transaction_to_dict(tx) for tx in transactions]
    except Exception as e:
        logger.exception(f"Error listing transactions for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("")
async def create_transaction(
    request: CreateTransactionRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    if request.opportunity_id is not None:
        if await crud.get_yield_opportunity(session, request.opportunity_id) is None:
            raise HTTPException(status_code=404, detail="Yield opportunity not found")

    try:
        tx = await crud.create_transaction(
            session,
            user_id=user.id,
            transaction_type=request.transaction_type.value,
            amount=request.amount,
            token=request.token,
            opportunity_id=request.opportunity_id,
            status=request.status.value,
            transaction_hash=request.transaction_hash,
            details=request.details,
            transaction_date=request.transaction_date,
        )
        return {"success": True, "id": tx.id}
    except Exception as e:
        logger.exception(f"Error creating transaction for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
