"""
Main API router
"""

from fastapi import APIRouter

from src.api.wallet import router as wallet_router
from src.api.yields import router as yields_router
from src.api.portfolio import router as portfolio_router
from src.api.transactions import router as transactions_router
from src.api.user import router as user_router
from src.api.chat import router as chat_router
from src.api.ai import router as ai_router


router = APIRouter(tags=["yieldhunter"])

# Sub-routers carry their own prefixes; api_server mounts this under /api
router.include_router(wallet_router)
router.include_router(yields_router)
router.include_router(portfolio_router)
router.include_router(transactions_router)
router.include_router(user_router)
router.include_router(chat_router)
router.include_router(ai_router)  # Premium (subscription required)
