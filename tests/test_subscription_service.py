"""
Tests for the one-time subscription payment
"""

from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from src.database import crud
from src.services.solana_rpc_service import SolanaRpcError
from src.services.subscription_service import PaymentVerificationError, SubscriptionService
from tests.fakes import WALLET

RECEIVER = "TreasuryWa11et1111111111111111111111111111"
PAYMENT = "4vJ9JU1bJJE96FWSJKvHsmmFADCg4gpZQff4P3bkLKi9ZZpTuQyYp2xWqr6jyc7Ggg4sZBkpSGeDqMaKbvYGavUG"


def payment_tx(signer=WALLET, receiver_delta=1_000, err=None):
    return {
        "meta": {
            "err": err,
            "preBalances": [5_000_000, 100],
            "postBalances": [5_000_000 - receiver_delta - 5_000, 100 + receiver_delta],
        },
        "transaction": {
            "message": {
                "accountKeys": [
                    {"pubkey": signer, "signer": True, "writable": True},
                    {"pubkey": RECEIVER, "signer": False, "writable": True},
                ]
            }
        },
    }


def service_with(tx=None, error=None, verify=True) -> SubscriptionService:
    rpc = Mock()
    rpc.get_transaction = AsyncMock(return_value=tx, side_effect=error)
    return SubscriptionService(
        rpc=rpc, receiver=RECEIVER, fee=Decimal("0.000001"), verify_onchain=verify, currency="SOL",
    )


@pytest.mark.asyncio
async def test_subscribe_records_verified_payment(db_session, user):
    service = service_with(payment_tx())

    subscription, created = await service.subscribe(db_session, user, PAYMENT, Decimal("0.000001"), "SOL")

    assert created is True
    assert subscription.transaction_hash == PAYMENT
    assert subscription.amount == Decimal("0.000001")
    assert subscription.currency == "SOL"
    assert await crud.check_user_is_subscribed(db_session, user.id) is True


@pytest.mark.asyncio
async def test_verified_payment_records_configured_currency(db_session, user):
    service = service_with(payment_tx())

    subscription, _ = await service.subscribe(db_session, user, PAYMENT, Decimal("25"), "USDC")

    # the chain shows a SOL transfer of 1000 lamports, whatever the client claimed
    assert subscription.currency == "SOL"
    assert subscription.amount == Decimal("0.000001")


@pytest.mark.asyncio
async def test_already_subscribed_returns_existing(db_session, user):
    service = service_with(payment_tx())
    first, _ = await service.subscribe(db_session, user, PAYMENT, Decimal("0.000001"), "SOL")

    second, created = await service.subscribe(db_session, user, "another-signature", Decimal("0.000001"), "SOL")

    assert created is False
    assert second.id == first.id
    service.rpc.get_transaction.assert_awaited_once()


@pytest.mark.asyncio
async def test_reused_payment_rejected(db_session, user):
    other = await crud.create_user(db_session, wallet_address="OtherWallet1111111111111111111111111111111")
    await crud.create_subscription(db_session, other.id, PAYMENT, Decimal("0.000001"), "SOL")

    with pytest.raises(PaymentVerificationError, match="already used"):
        await service_with(payment_tx()).subscribe(db_session, user, PAYMENT, Decimal("0.000001"), "SOL")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tx, message",
    [
        (None, "not found"),
        (payment_tx(err={"InstructionError": [0, "Custom"]}), "failed"),
        (payment_tx(signer="SomeoneElse111111111111111111111111111111"), "not signed"),
        (payment_tx(receiver_delta=500), "below the subscription fee"),
    ],
)
async def test_invalid_payment_rejected(db_session, user, tx, message):
    service = service_with(tx)

    with pytest.raises(PaymentVerificationError, match=message):
        await service.subscribe(db_session, user, PAYMENT, Decimal("0.000001"), "SOL")

    assert await crud.check_user_is_subscribed(db_session, user.id) is False


@pytest.mark.asyncio
async def test_rpc_failure_rejected(db_session, user):
    service = service_with(error=SolanaRpcError("getTransaction", "node is behind"))

    with pytest.raises(PaymentVerificationError, match="node is behind"):
        await service.subscribe(db_session, user, PAYMENT, Decimal("0.000001"), "SOL")


@pytest.mark.asyncio
async def test_verification_can_be_disabled(db_session, user):
    service = service_with(verify=False)

    subscription, created = await service.subscribe(db_session, user, PAYMENT, Decimal("0.5"), "USDC")

    assert created is True
    assert subscription.amount == Decimal("0.5")
    service.rpc.get_transaction.assert_not_awaited()
