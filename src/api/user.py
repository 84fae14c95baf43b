"""
User Preferences API Endpoints
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user, get_optional_user
from src.database import crud
from src.database.engine import get_session
from src.database.models import User, UserPreference, RiskTolerance

router = APIRouter(prefix="/user", tags=["user"])

DEFAULT_RISK_PROFILE = {
    "level": RiskTolerance.MODERATE_CONSERVATIVE.value,
    "percentage": RiskTolerance.percentage(RiskTolerance.MODERATE_CONSERVATIVE.value),
}


class UpdatePreferencesRequest(BaseModel):
    risk_tolerance: Optional[RiskTolerance] = None
    preferred_chains: Optional[List[str]] = None
    preferred_tokens: Optional[List[str]] = None
    notifications_enabled: Optional[bool] = None
    telegram_chat_id: Optional[str] = None
    telegram_username: Optional[str] = None


def preferences_to_dict(preferences: UserPreference) -> Dict[str, Any]:
    return {
        "risk_tolerance": preferences.risk_tolerance,
        "preferred_chains": list(preferences.preferred_chains or []),
        "preferred_tokens": list(preferences.preferred_tokens or []),
        "notifications_enabled": preferences.notifications_enabled,
        "telegram_chat_id": preferences.telegram_chat_id,
        "telegram_username": preferences.telegram_username,
    }


@router.get("/preferences")
async def get_preferences(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    preferences = await crud.get_user_preferences(session, user.id)
    if preferences is None:
        raise HTTPException(status_code=404, detail="Preferences not found")
    return preferences_to_dict(preferences)


@router.patch("/preferences")
async def update_preferences(
    request: UpdatePreferencesRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """Partial update; creates the row with defaults when missing"""
    updates = request.model_dump(exclude_unset=True)
    if request.risk_tolerance is not None:
        updates["risk_tolerance"] = request.risk_tolerance.value

    try:
        preferences = await crud.update_user_preferences(session, user.id, **updates)
        return preferences_to_dict(preferences)
    except Exception as e:
        logger.exception(f"Error updating preferences for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/risk-profile")
async def get_risk_profile(
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Returns:
        {"level": "moderate-conservative", "percentage": 35}
    """
    if user is None:
        return dict(DEFAULT_RISK_PROFILE)

    try:
        return await crud.get_user_risk_profile(session, user.id)
    except Exception as e:
        logger.error(f"Error loading risk profile for user {user.id}: {e}")
        return dict(DEFAULT_RISK_PROFILE)
