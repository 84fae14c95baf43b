"""
Chat API Endpoints
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.database import crud
from src.database.engine import get_session
from src.database.models import User
from src.services.openai_service import OpenAIService, get_openai_service

router = APIRouter(prefix="/chat", tags=["chat"])


class ChatRequest(BaseModel):
    message: str = Field(..., max_length=4000)


@router.post("")
async def send_message(
    request: ChatRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    chat: OpenAIService = Depends(get_openai_service),
) -> Dict[str, Any]:
    """
    Returns:
        {
            "response": "...",
            "transaction_intent": {"action": "invest", "protocol": "Raydium", "amount": 5.0, "opportunity_id": 3}
        }
    """
    message = request.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    try:
        opportunities = await crud.get_yield_opportunities(session)
        return await chat.process_message(user.id, message, opportunities)
    except Exception as e:
        logger.exception(f"Chat error for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/history")
async def clear_history(
    user: User = Depends(get_current_user),
    chat: OpenAIService = Depends(get_openai_service),
) -> Dict[str, bool]:
    chat.clear_history(user.id)
    return {"success": True}
