# coding: utf-8
"""
Subscription Service

One-time on-chain payment that unlocks the premium AI features.
The payment signature supplied by the client is checked against the chain
before the subscription is recorded:
- transaction exists and succeeded
- the subscribing wallet signed it
- the treasury (SUBSCRIPTION_RECEIVER) was credited with at least the fee
"""
from decimal import Decimal
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from config.config import (
    SUBSCRIPTION_CURRENCY,
    SUBSCRIPTION_FEE,
    SUBSCRIPTION_RECEIVER,
    SUBSCRIPTION_VERIFY_ONCHAIN,
)
from src.database import crud
from src.database.models import User, SolanaSubscription
from src.services.solana_rpc_service import (
    SolanaRpcService,
    SolanaRpcError,
    LAMPORTS_PER_SOL,
    get_solana_rpc_service,
)


class PaymentVerificationError(Exception):
    """Payment transaction does not prove a valid subscription payment"""


class SubscriptionService:

    def __init__(
        self,
        rpc: Optional[SolanaRpcService] = None,
        receiver: str = SUBSCRIPTION_RECEIVER,
        fee: Decimal = SUBSCRIPTION_FEE,
        verify_onchain: bool = SUBSCRIPTION_VERIFY_ONCHAIN,
        currency: str = SUBSCRIPTION_CURRENCY,
    ):
        self.rpc = rpc
        self.receiver = receiver
        self.fee = fee
        self.currency = currency
        self.verify_onchain = verify_onchain

    def _rpc(self) -> SolanaRpcService:
        if self.rpc is None:
            self.rpc = get_solana_rpc_service()
        return self.rpc

    async def verify_payment(self, wallet_address: str, transaction_hash: str) -> Decimal:
        """
        Check a SOL payment transaction

        Returns:
            SOL credited to the receiver (the configured fee when no receiver is set)

        Raises:
            PaymentVerificationError: Any check failed
        """
        try:
            tx = await self._rpc().get_transaction(transaction_hash)
        except SolanaRpcError as e:
            raise PaymentVerificationError(f"Could not fetch payment transaction: {e.detail}") from e

        if not tx:
            raise PaymentVerificationError("Payment transaction not found or not confirmed yet")

        meta = tx.get("meta") or {}
        if meta.get("err") is not None:
            raise PaymentVerificationError(f"Payment transaction failed: {meta['err']}")

        account_keys = tx["transaction"]["message"]["accountKeys"]
        keys = [key["pubkey"] if isinstance(key, dict) else key for key in account_keys]
        signers = {
            key["pubkey"] for key in account_keys if isinstance(key, dict) and key.get("signer")
        }
        if wallet_address not in signers:
            raise PaymentVerificationError("Payment was not signed by the subscribing wallet")

        if not self.receiver:
            return self.fee

        if self.receiver not in keys:
            raise PaymentVerificationError("Payment does not transfer to the subscription address")

        index = keys.index(self.receiver)
        credited = Decimal(meta["postBalances"][index] - meta["preBalances"][index]) / LAMPORTS_PER_SOL
        if credited < self.fee:
            raise PaymentVerificationError(
                f"Payment of {credited} SOL is below the subscription fee of {self.fee} SOL"
            )
        return credited

    async def subscribe(
        self,
        session: AsyncSession,
        user: User,
        transaction_hash: str,
        amount: Decimal,
        currency: str,
    ) -> tuple[SolanaSubscription, bool]:
        """
        Record a subscription for a paid transaction

        Returns:
            Tuple of (subscription, is_created); an already active
            subscription is returned unchanged

        Raises:
            PaymentVerificationError: Reused or invalid payment
        """
        existing = await crud.get_active_subscription(session, user.id)
        if existing:
            logger.info(f"User {user.id} already subscribed ({existing.transaction_hash})")
            return existing, False

        if await crud.get_subscription_by_tx_hash(session, transaction_hash):
            raise PaymentVerificationError("Payment transaction was already used for a subscription")

        if self.verify_onchain:
            # verify_payment only proves a native SOL transfer
            amount = await self.verify_payment(user.wallet_address, transaction_hash)
            if currency != self.currency:
                logger.warning(
                    f"User {user.id} reported {currency} for {transaction_hash}, recording {self.currency}"
                )
            currency = self.currency

        subscription = await crud.create_subscription(
            session, user.id, transaction_hash, amount, currency
        )
        return subscription, True


_subscription_service: Optional[SubscriptionService] = None


def get_subscription_service() -> SubscriptionService:
    global _subscription_service
    if _subscription_service is None:
        _subscription_service = SubscriptionService()
    return _subscription_service
