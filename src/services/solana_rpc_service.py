# coding: utf-8
"""
Solana JSON-RPC client

Balances, transaction submission, confirmation polling and transaction
lookup over aiohttp. Submission is never retried here.
"""
import asyncio
import base64
import itertools
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from config.config import SOLANA_RPC_URL, CONFIRMATION_TIMEOUT, CONFIRMATION_POLL_INTERVAL
from config.tokens import SOL_MINT

LAMPORTS_PER_SOL = Decimal(1_000_000_000)
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


class SolanaRpcError(Exception):
    """JSON-RPC error or unreachable node"""

    def __init__(self, method: str, detail: str, code: Optional[int] = None):
        self.method = method
        self.detail = detail
        self.code = code
        super().__init__(f"{method}: {detail}")


class TransactionNotConfirmed(Exception):
    """Signature failed on chain or did not confirm in time"""

    def __init__(self, signature: str, reason: str):
        self.signature = signature
        self.reason = reason
        super().__init__(f"{signature}: {reason}")


class SolanaRpcService:
    """
    Minimal async Solana RPC client

    Features:
    - SOL and SPL token balances (jsonParsed token accounts)
    - sendTransaction with preflight
    - Confirmation polling via getSignatureStatuses, bounded by a timeout
    - getTransaction for payment verification
    """

    def __init__(self, rpc_url: str = SOLANA_RPC_URL):
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.rpc_url, json=payload, timeout=aiohttp.ClientTimeout(total=30)
                ) as response:
                    if response.status != 200:
                        raise SolanaRpcError(
                            method, f"HTTP {response.status}: {await response.text()}"
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SolanaRpcError(method, f"RPC unreachable: {e}") from e

        if data.get("error"):
            error = data["error"]
            raise SolanaRpcError(method, error.get("message", str(error)), error.get("code"))

        return data.get("result")

    async def get_balance(self, address: str) -> Decimal:
        """Native SOL balance"""
        result = await self._call("getBalance", [address, {"commitment": "confirmed"}])
        return Decimal(result["value"]) / LAMPORTS_PER_SOL

    async def _token_accounts(self, owner: str, mint: str) -> List[Dict[str, Any]]:
        result = await self._call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": "confirmed"}],
        )
        return result.get("value", []) if result else []

    async def get_token_balance(self, owner: str, mint: str) -> Decimal:
        """
        Balance of a mint across all of the owner's token accounts

        The wrapped SOL mint reads the native balance.
        """
        if mint == SOL_MINT:
            return await self.get_balance(owner)

        total = Decimal("0")
        for account in await self._token_accounts(owner, mint):
            amount = account["account"]["data"]["parsed"]["info"]["tokenAmount"]
            total += Decimal(amount.get("uiAmountString") or "0")
        return total

    async def get_token_account(self, owner: str, mint: str) -> Optional[str]:
        """First token account of owner for mint"""
        accounts = await self._token_accounts(owner, mint)
        return accounts[0]["pubkey"] if accounts else None

    async def send_transaction(self, raw_transaction: bytes) -> str:
        """
        Submit a signed transaction

        Returns:
            Transaction signature (base58)
        """
        encoded = base64.b64encode(raw_transaction).decode()
        return await self._call(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "skipPreflight": False,
                    "preflightCommitment": "confirmed",
                },
            ],
        )

    async def confirm_transaction(
        self,
        signature: str,
        timeout: float = CONFIRMATION_TIMEOUT,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL,
    ) -> None:
        """
        Wait until the signature reaches 'confirmed'

        Raises:
            TransactionNotConfirmed: Failed on chain or timed out
        """
        deadline = time.monotonic() + timeout
        while True:
            result = await self._call(
                "getSignatureStatuses", [[signature], {"searchTransactionHistory": False}]
            )
            status = (result or {}).get("value", [None])[0]
            if status is not None:
                if status.get("err") is not None:
                    raise TransactionNotConfirmed(signature, f"failed on chain: {status['err']}")
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return

            if time.monotonic() >= deadline:
                raise TransactionNotConfirmed(signature, f"not confirmed within {timeout:.0f}s")
            await asyncio.sleep(poll_interval)

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Confirmed transaction in jsonParsed encoding, or None if unknown"""
        return await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )


_rpc_service: Optional[SolanaRpcService] = None


def get_solana_rpc_service() -> SolanaRpcService:
    """Shared RPC client"""
    global _rpc_service
    if _rpc_service is None:
        _rpc_service = SolanaRpcService()
        logger.info(f"Solana RPC client created for {SOLANA_RPC_URL}")
    return _rpc_service
