"""
In-memory stand-ins for the chain RPC, the swap/liquidity venue and a wallet
signer, plus row-count helpers for assertions
"""

import base64
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.tokens import TOKENS
from src.database.models import Transaction, UserPortfolio
from src.services.raydium_service import RaydiumApiError
from src.services.solana_rpc_service import TransactionNotConfirmed

WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"

SOL = TOKENS["SOL"]
USDC = TOKENS["USDC"]
RAY = TOKENS["RAY"]
LP_MINT = "FbC6K13MzHvN42bXrtGaWsvZY9fxrackRSZcBGfjPc7m"


def encode(payload: bytes) -> str:
    return base64.b64encode(payload).decode()


class FakeSigner:
    """Returns the transaction unchanged so effects can be keyed on payload bytes"""

    def __init__(self, public_key: str = WALLET):
        self._public_key = public_key
        self.signed: List[bytes] = []

    @property
    def public_key(self) -> str:
        return self._public_key

    async def sign_transaction(self, raw_transaction: bytes) -> bytes:
        self.signed.append(raw_transaction)
        return raw_transaction


class FakeRpc:
    """
    In-memory chain: balances per mint, payload -> balance effects applied on
    send, and payloads whose confirmation fails
    """

    def __init__(self, balances: Optional[Dict[str, Decimal]] = None):
        self.balances: Dict[str, Decimal] = dict(balances or {})
        self.effects: Dict[bytes, Dict[str, Decimal]] = {}
        self.fail_confirm: Dict[bytes, str] = {}
        self.sent: List[bytes] = []
        self._signatures: Dict[str, bytes] = {}

    async def get_token_balance(self, owner: str, mint: str) -> Decimal:
        return self.balances.get(mint, Decimal("0"))

    async def get_token_account(self, owner: str, mint: str) -> str:
        return f"ata-{mint[:6]}"

    async def send_transaction(self, raw: bytes) -> str:
        self.sent.append(raw)
        signature = f"sig-{len(self.sent)}-{raw.decode()}"
        self._signatures[signature] = raw
        if raw not in self.fail_confirm:
            for mint, delta in self.effects.get(raw, {}).items():
                self.balances[mint] = self.balances.get(mint, Decimal("0")) + delta
        return signature

    async def confirm_transaction(self, signature: str) -> None:
        raw = self._signatures[signature]
        if raw in self.fail_confirm:
            raise TransactionNotConfirmed(signature, self.fail_confirm[raw])


def ray_usdc_pool() -> dict:
    return {
        "id": "pool-ray-usdc",
        "mintA": {"address": RAY.mint, "symbol": "RAY", "decimals": RAY.decimals},
        "mintB": {"address": USDC.mint, "symbol": "USDC", "decimals": USDC.decimals},
        "mintAmountA": 1_000_000,
        "mintAmountB": 2_000_000,
        "lpMint": {"address": LP_MINT, "decimals": 6},
        "lpAmount": 1_400_000,
    }


class FakeVenue:
    """Raydium stand-in; set *_error to make a builder reject"""

    def __init__(self, pool: Optional[dict] = None, other_amount_threshold: int = 0):
        self.pool = pool or ray_usdc_pool()
        self.other_amount_threshold = other_amount_threshold
        self.swap_error: Optional[str] = None
        self.liquidity_error: Optional[str] = None
        self.stake_error: Optional[str] = None
        self.calls: List[str] = []

    async def get_priority_fee(self) -> int:
        return 1000

    async def quote_swap(self, input_mint, output_mint, amount, slippage_bps) -> dict:
        self.calls.append("quote")
        if self.swap_error:
            raise RaydiumApiError(self.swap_error)
        return {
            "success": True,
            "data": {
                "inputMint": input_mint,
                "outputMint": output_mint,
                "inAmount": str(amount),
                "otherAmountThreshold": str(self.other_amount_threshold),
            },
        }

    async def build_swap_transactions(self, quote, **kwargs) -> List[str]:
        self.calls.append("swap")
        return [encode(b"swap")]

    async def get_pool_info(self, pool_id: str) -> dict:
        self.calls.append("pool")
        return self.pool

    async def build_add_liquidity_transactions(self, pool_id, **kwargs) -> List[str]:
        self.calls.append("liquidity")
        if self.liquidity_error:
            raise RaydiumApiError(self.liquidity_error)
        return [encode(b"liquidity")]

    async def build_farm_deposit_transactions(self, farm_id, **kwargs) -> List[str]:
        self.calls.append("stake")
        if self.stake_error:
            raise RaydiumApiError(self.stake_error)
        return [encode(b"stake")]


async def count_user_records(session: AsyncSession, user_id: int) -> tuple[int, int]:
    """(portfolio rows, transaction rows) for a user"""
    positions = await session.scalar(
        select(func.count(UserPortfolio.id)).where(UserPortfolio.user_id == user_id)
    )
    transactions = await session.scalar(
        select(func.count(Transaction.id)).where(Transaction.user_id == user_id)
    )
    return positions, transactions
