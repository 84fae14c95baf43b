"""
Investment workflow: swap -> liquidity -> stake -> record

    from src.services.investment import get_investment_orchestrator
    result = await get_investment_orchestrator().invest(session, user.id, opportunity, amount, signer)
"""
from typing import Optional

from src.services.investment.errors import (
    InvestmentError,
    WalletNotConnectedError,
    InsufficientBalanceError,
    VenueError,
    ConfirmationError,
)
from src.services.investment.models import Stage, Asset, StageRecord, Completed
from src.services.investment.orchestrator import (
    InvestmentOrchestrator,
    InvestmentResult,
    summarize,
)

__all__ = [
    "InvestmentError",
    "WalletNotConnectedError",
    "InsufficientBalanceError",
    "VenueError",
    "ConfirmationError",
    "Stage",
    "Asset",
    "StageRecord",
    "Completed",
    "InvestmentOrchestrator",
    "InvestmentResult",
    "summarize",
    "get_investment_orchestrator",
]


_orchestrator: Optional[InvestmentOrchestrator] = None


def get_investment_orchestrator() -> InvestmentOrchestrator:
    """Shared orchestrator wired to the configured RPC and venue"""
    global _orchestrator
    if _orchestrator is None:
        from src.services.raydium_service import RaydiumService
        from src.services.solana_rpc_service import get_solana_rpc_service

        _orchestrator = InvestmentOrchestrator(get_solana_rpc_service(), RaydiumService())
    return _orchestrator
