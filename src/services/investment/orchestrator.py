"""
Investment Orchestrator

Turns "invest X of token T into opportunity O" into up to three on-chain
stages and records what the wallet ends up holding:

1. swap       source token -> entry token (aborts everything on failure)
2. liquidity  entry token + paired token -> LP share token
3. stake      LP share token -> farm receipt

A failure in stage 2 or 3 does not undo earlier stages: the workflow stops,
records the asset from the last successful stage and returns a
continuation hint. No stage is retried.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Any, Awaitable, List, Optional, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config.config import SWAP_SLIPPAGE_BPS, LIQUIDITY_SLIPPAGE_BPS
from config.tokens import SOL_MINT, TokenInfo, get_token
from src.database import crud
from src.database.models import YieldOpportunity, UserPortfolio, Transaction
from src.services.investment.errors import (
    InvestmentError,
    WalletNotConnectedError,
    InsufficientBalanceError,
    VenueError,
    ConfirmationError,
)
from src.services.investment.models import Stage, Asset, StageRecord, Completed
from src.services.raydium_service import RaydiumService, RaydiumApiError
from src.services.solana_rpc_service import (
    SolanaRpcService,
    SolanaRpcError,
    TransactionNotConfirmed,
)
from src.services.wallet_signer import WalletSigner, decode_transaction

T = TypeVar("T")

STAKED_SUFFIX = "-STAKED"


def to_base_units(amount: Decimal, decimals: int) -> int:
    return int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(raw: int, decimals: int) -> Decimal:
    return Decimal(raw) / (Decimal(10) ** decimals)


@dataclass
class InvestmentResult:
    completed: Completed
    position: UserPortfolio
    transaction: Transaction


class InvestmentOrchestrator:
    """
    Runs the swap -> liquidity -> stake workflow for one request

    Args:
        rpc: Chain RPC client
        venue: Swap / liquidity / farm venue client
        swap_slippage_bps: Slippage for the swap quote
        liquidity_slippage_bps: Headroom on the paired amount for add-liquidity
    """

    def __init__(
        self,
        rpc: SolanaRpcService,
        venue: RaydiumService,
        swap_slippage_bps: int = SWAP_SLIPPAGE_BPS,
        liquidity_slippage_bps: int = LIQUIDITY_SLIPPAGE_BPS,
    ):
        self.rpc = rpc
        self.venue = venue
        self.swap_slippage_bps = swap_slippage_bps
        self.liquidity_slippage_bps = liquidity_slippage_bps

    # ===========================
    # ENTRY POINT
    # ===========================

    async def invest(
        self,
        session: AsyncSession,
        user_id: int,
        opportunity: YieldOpportunity,
        amount: Decimal,
        signer: Optional[WalletSigner],
        source_token: str = "SOL",
        auto_stake: bool = True,
        extra_details: Optional[dict] = None,
    ) -> InvestmentResult:
        """
        Execute the workflow and record the resulting position

        Raises:
            WalletNotConnectedError: signer is None
            ValueError: Non-positive amount or unknown token
            InvestmentError: Stage 1 failed (nothing is recorded)
        """
        if signer is None:
            raise WalletNotConnectedError()
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        source = self._token(source_token)
        entry = self._token(self._entry_symbol(opportunity, source_token))

        wants_liquidity = bool(
            auto_stake and opportunity.pool_id and len(opportunity.token_pair or []) == 2
        )
        if wants_liquidity and opportunity.farm_id:
            target = Stage.STAKE
        elif wants_liquidity:
            target = Stage.LIQUIDITY
        else:
            target = Stage.SWAP

        logger.info(
            f"Investment started: user={user_id} wallet={signer.public_key} "
            f"opportunity={opportunity.id} {amount} {source.symbol} -> {entry.symbol} target={target.value}"
        )

        swap = await self._swap(signer, source, entry, amount)
        completed = Completed(stage=Stage.SWAP, asset=swap.asset, trail=[swap], target_stage=target)

        if wants_liquidity:
            await self._advance(completed, self._add_liquidity(signer, opportunity, completed.asset))

        if completed.stage == Stage.LIQUIDITY and opportunity.farm_id:
            await self._advance(completed, self._stake(signer, opportunity, completed.asset))

        details = {
            "source_token": source.symbol,
            "source_amount": str(amount),
            **completed.to_details(),
            **(extra_details or {}),
        }
        position, transaction = await crud.create_investment(
            session,
            user_id=user_id,
            opportunity_id=opportunity.id,
            amount=completed.asset.amount,
            token=completed.asset.token,
            transaction_hash=completed.last_signature,
            details=details,
        )

        logger.info(
            f"Investment finished: user={user_id} stage={completed.stage.value} "
            f"holding={completed.asset.amount} {completed.asset.token} degraded={completed.degraded}"
        )
        return InvestmentResult(completed=completed, position=position, transaction=transaction)

    async def _advance(self, completed: Completed, stage_run: Awaitable[StageRecord]) -> None:
        """Run a follow-up stage; on failure keep the previous asset and note why"""
        try:
            record = await stage_run
        except InvestmentError as e:
            completed.degraded_reason = str(e)
            logger.warning(
                f"Stage after {completed.stage.value} failed, keeping "
                f"{completed.asset.amount} {completed.asset.token}: {e}"
            )
            return
        except Exception as e:
            # Earlier stages are confirmed on chain; record what is held
            completed.degraded_reason = f"Unexpected {type(e).__name__}: {e}"
            logger.exception(
                f"Stage after {completed.stage.value} crashed, keeping "
                f"{completed.asset.amount} {completed.asset.token}: {e}"
            )
            return

        completed.trail.append(record)
        completed.stage = record.stage
        completed.asset = record.asset

    # ===========================
    # STAGES
    # ===========================

    async def _swap(
        self, signer: WalletSigner, source: TokenInfo, entry: TokenInfo, amount: Decimal
    ) -> StageRecord:
        owner = signer.public_key

        available = await self._balance(Stage.SWAP, owner, source.mint)
        if available < amount:
            raise InsufficientBalanceError(source.symbol, amount, available)

        if source.mint == entry.mint:
            return StageRecord(
                Stage.SWAP,
                Asset(entry.symbol, amount, entry.mint, entry.decimals),
                skipped=True,
            )

        before = await self._balance(Stage.SWAP, owner, entry.mint)

        quote = await self._venue(
            Stage.SWAP,
            self.venue.quote_swap(
                source.mint, entry.mint, to_base_units(amount, source.decimals), self.swap_slippage_bps
            ),
        )
        priority_fee = await self._venue(Stage.SWAP, self.venue.get_priority_fee())

        input_account = None
        if source.mint != SOL_MINT:
            input_account = await self._venue(Stage.SWAP, self.rpc.get_token_account(owner, source.mint))
        output_account = None
        if entry.mint != SOL_MINT:
            output_account = await self._venue(Stage.SWAP, self.rpc.get_token_account(owner, entry.mint))

        transactions = await self._venue(
            Stage.SWAP,
            self.venue.build_swap_transactions(
                quote,
                wallet=owner,
                priority_fee=priority_fee,
                wrap_sol=source.mint == SOL_MINT,
                unwrap_sol=entry.mint == SOL_MINT,
                input_account=input_account,
                output_account=output_account,
            ),
        )
        signatures = await self._execute(Stage.SWAP, signer, transactions)

        after = await self._balance(Stage.SWAP, owner, entry.mint)
        received = after - before
        if received <= 0:
            # RPC lag: fall back to the quote's guaranteed minimum
            received = from_base_units(int(quote["data"]["otherAmountThreshold"]), entry.decimals)
            logger.warning(
                f"Swap output not visible yet for {owner}, using quoted minimum {received} {entry.symbol}"
            )

        return StageRecord(
            Stage.SWAP, Asset(entry.symbol, received, entry.mint, entry.decimals), signatures
        )

    async def _add_liquidity(
        self, signer: WalletSigner, opportunity: YieldOpportunity, held: Asset
    ) -> StageRecord:
        owner = signer.public_key
        pool = await self._venue(Stage.LIQUIDITY, self.venue.get_pool_info(opportunity.pool_id))

        if pool["mintA"]["address"] == held.mint:
            side, fixed, other = "a", pool["mintA"], pool["mintB"]
            fixed_reserve, other_reserve = pool["mintAmountA"], pool["mintAmountB"]
        elif pool["mintB"]["address"] == held.mint:
            side, fixed, other = "b", pool["mintB"], pool["mintA"]
            fixed_reserve, other_reserve = pool["mintAmountB"], pool["mintAmountA"]
        else:
            raise VenueError(f"Pool {opportunity.pool_id} does not contain {held.token}", Stage.LIQUIDITY.value)

        fixed_reserve = Decimal(str(fixed_reserve))
        other_reserve = Decimal(str(other_reserve))
        if fixed_reserve <= 0 or other_reserve <= 0:
            raise VenueError(f"Pool {opportunity.pool_id} has no liquidity", Stage.LIQUIDITY.value)

        held_balance = await self._balance(Stage.LIQUIDITY, owner, held.mint)
        amount_in = min(held.amount, held_balance)
        if amount_in <= 0:
            raise InsufficientBalanceError(held.token, held.amount, held_balance)

        other_symbol = other.get("symbol") or other["address"]
        slippage = Decimal(1) + Decimal(self.liquidity_slippage_bps) / Decimal(10_000)
        other_required = (amount_in * other_reserve / fixed_reserve * slippage).quantize(
            Decimal(1).scaleb(-int(other["decimals"])), rounding=ROUND_DOWN
        )
        other_available = await self._balance(Stage.LIQUIDITY, owner, other["address"])
        if other_available < other_required:
            raise InsufficientBalanceError(other_symbol, other_required, other_available)

        lp_mint = pool["lpMint"]["address"]
        lp_decimals = int(pool["lpMint"]["decimals"])
        lp_before = await self._balance(Stage.LIQUIDITY, owner, lp_mint)

        priority_fee = await self._venue(Stage.LIQUIDITY, self.venue.get_priority_fee())
        transactions = await self._venue(
            Stage.LIQUIDITY,
            self.venue.build_add_liquidity_transactions(
                opportunity.pool_id,
                wallet=owner,
                fixed_amount=to_base_units(amount_in, int(fixed["decimals"])),
                other_amount_max=to_base_units(other_required, int(other["decimals"])),
                fixed_side=side,
                priority_fee=priority_fee,
            ),
        )
        signatures = await self._execute(Stage.LIQUIDITY, signer, transactions)

        lp_after = await self._balance(Stage.LIQUIDITY, owner, lp_mint)
        minted = lp_after - lp_before
        if minted <= 0:
            minted = (amount_in / fixed_reserve * Decimal(str(pool.get("lpAmount") or 0))).quantize(
                Decimal(1).scaleb(-lp_decimals), rounding=ROUND_DOWN
            )
            logger.warning(f"LP balance not visible yet for {owner}, estimated {minted} from pool share")

        lp_symbol = opportunity.lp_token or "-".join(opportunity.token_pair) + "-LP"
        return StageRecord(
            Stage.LIQUIDITY, Asset(lp_symbol, minted, lp_mint, lp_decimals), signatures
        )

    async def _stake(
        self, signer: WalletSigner, opportunity: YieldOpportunity, lp: Asset
    ) -> StageRecord:
        priority_fee = await self._venue(Stage.STAKE, self.venue.get_priority_fee())
        transactions = await self._venue(
            Stage.STAKE,
            self.venue.build_farm_deposit_transactions(
                opportunity.farm_id,
                wallet=signer.public_key,
                lp_amount=to_base_units(lp.amount, lp.decimals if lp.decimals is not None else 9),
                priority_fee=priority_fee,
            ),
        )
        signatures = await self._execute(Stage.STAKE, signer, transactions)

        return StageRecord(
            Stage.STAKE,
            Asset(f"{lp.token}{STAKED_SUFFIX}", lp.amount, lp.mint, lp.decimals),
            signatures,
        )

    # ===========================
    # HELPERS
    # ===========================

    @staticmethod
    def _token(symbol: str) -> TokenInfo:
        token = get_token(symbol)
        if token is None:
            raise ValueError(f"Unsupported token: {symbol}")
        return token

    @staticmethod
    def _entry_symbol(opportunity: YieldOpportunity, source_token: str) -> str:
        if opportunity.entry_token:
            return opportunity.entry_token
        if opportunity.token_pair:
            return opportunity.token_pair[0]
        return source_token

    async def _venue(self, stage: Stage, call: Awaitable[T]) -> T:
        """Await a venue or RPC call, surfacing its error detail as VenueError"""
        try:
            return await call
        except RaydiumApiError as e:
            raise VenueError(e.detail, stage.value) from e
        except SolanaRpcError as e:
            raise VenueError(e.detail, stage.value) from e

    async def _balance(self, stage: Stage, owner: str, mint: str) -> Decimal:
        return await self._venue(stage, self.rpc.get_token_balance(owner, mint))

    async def _execute(
        self, stage: Stage, signer: WalletSigner, transactions: List[str]
    ) -> List[str]:
        """Sign, send and confirm each transaction in order"""
        signatures: List[str] = []
        for encoded in transactions:
            try:
                signed = await signer.sign_transaction(decode_transaction(encoded))
            except Exception as e:
                raise VenueError(f"Could not sign {stage.value} transaction: {e}", stage.value) from e

            signature = await self._venue(stage, self.rpc.send_transaction(signed))
            try:
                await self.rpc.confirm_transaction(signature)
            except TransactionNotConfirmed as e:
                raise ConfirmationError(signature, e.reason) from e
            except SolanaRpcError as e:
                raise ConfirmationError(signature, e.detail) from e

            logger.info(f"[{stage.value}] confirmed {signature} for {signer.public_key}")
            signatures.append(signature)

        return signatures


def summarize(result: InvestmentResult) -> dict[str, Any]:
    """API payload for an investment result"""
    completed = result.completed
    return {
        "success": True,
        "stage": completed.stage.value,
        "target_stage": completed.target_stage.value,
        "degraded": completed.degraded,
        "degraded_reason": completed.degraded_reason,
        "token": completed.asset.token,
        "amount": float(completed.asset.amount),
        "signatures": completed.signatures,
        "continuation": completed.continuation(),
        "position_id": result.position.id,
        "transaction_id": result.transaction.id,
    }
