"""
Yield Opportunities API Endpoints
"""

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import crud
from src.database.engine import get_session
from src.services.yield_service import opportunity_to_dict

router = APIRouter(prefix="/yields", tags=["yields"])


@router.get("")
async def list_yields(
    protocol: Optional[str] = Query(None),
    sort_by: Optional[Literal["apy", "tvl", "risk"]] = Query(None),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    """
    List opportunities, optionally filtered by protocol

    sort_by: apy (desc), tvl (desc), risk (low -> high)
    """
    try:
        opportunities = await crud.get_yield_opportunities(session, protocol=protocol, sort_by=sort_by)
        return [opportunity_to_dict(o) for o in opportunities]
    except Exception as e:
        logger.exception(f"Error listing yields: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/best")
async def best_yield(session: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    """Highest APY opportunity"""
    opportunity = await crud.get_best_yield_opportunity(session)
    if opportunity is None:
        raise HTTPException(status_code=404, detail="No yield opportunities found")
    return opportunity_to_dict(opportunity, with_protocol_info=True)


@router.get("/stats")
async def yield_stats(session: AsyncSession = Depends(get_session)) -> Dict[str, Any]:
    """
    Returns:
        {"avg_apy": 7.48, "protocol_count": 5, "opportunity_count": 8}
    """
    try:
        return await crud.get_yield_stats(session)
    except Exception as e:
        logger.exception(f"Error computing yield stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{opportunity_id}")
async def get_yield(
    opportunity_id: int,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    opportunity = await crud.get_yield_opportunity(session, opportunity_id)
    if opportunity is None:
        raise HTTPException(status_code=404, detail="Yield opportunity not found")
    return opportunity_to_dict(opportunity, with_protocol_info=True)
