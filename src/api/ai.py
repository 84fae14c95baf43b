"""
AI API Endpoints (premium)
Every route requires an active subscription.
"""

from decimal import Decimal
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import require_subscription
from src.api.portfolio import investment_http_error
from src.database.engine import get_session
from src.database.models import User
from src.services.ai_yield_agent import AIYieldAgent, get_ai_yield_agent
from src.services.investment import (
    InvestmentError,
    InvestmentOrchestrator,
    get_investment_orchestrator,
)
from src.services.wallet_signer import get_signer_for_wallet

router = APIRouter(prefix="/ai", tags=["ai"])


class AutoInvestRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    source_token: str = "SOL"


@router.get("/recommendations")
async def get_recommendations(
    user: User = Depends(require_subscription),
    session: AsyncSession = Depends(get_session),
    agent: AIYieldAgent = Depends(get_ai_yield_agent),
) -> List[Dict[str, Any]]:
    try:
        return await agent.get_recommendations_for_user(session, user)
    except Exception as e:
        logger.exception(f"Error loading recommendations for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/portfolio/analysis")
async def get_portfolio_analysis(
    user: User = Depends(require_subscription),
    session: AsyncSession = Depends(get_session),
    agent: AIYieldAgent = Depends(get_ai_yield_agent),
) -> Dict[str, Any]:
    analysis = await agent.analyze_portfolio(session, user)
    if analysis is None:
        raise HTTPException(status_code=404, detail="Portfolio analysis not available")
    return analysis


@router.get("/best-opportunity")
async def get_best_opportunity(
    user: User = Depends(require_subscription),
    session: AsyncSession = Depends(get_session),
    agent: AIYieldAgent = Depends(get_ai_yield_agent),
) -> Dict[str, Any]:
    best = await agent.get_best_opportunity_for_user(session, user)
    if best is None:
        raise HTTPException(status_code=404, detail="No recommended opportunity found")
    return best


@router.post("/auto-invest")
async def auto_invest(
    request: AutoInvestRequest,
    user: User = Depends(require_subscription),
    session: AsyncSession = Depends(get_session),
    agent: AIYieldAgent = Depends(get_ai_yield_agent),
    orchestrator: InvestmentOrchestrator = Depends(get_investment_orchestrator),
) -> Dict[str, Any]:
    """Invest into the highest-confidence recommendation"""
    try:
        return await agent.auto_invest(
            session,
            user,
            request.amount,
            get_signer_for_wallet(user.wallet_address),
            orchestrator,
            source_token=request.source_token,
        )
    except InvestmentError as e:
        logger.warning(f"Auto-invest failed for user {user.id}: {e}")
        raise investment_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
