# coding: utf-8
"""
Raydium venue client

- Swap quotes and swap transactions (transaction-v1 trade API)
- Priority fee estimate and pool info (api-v3)
- Add-liquidity and farm-deposit transactions from the transaction
  builder service at LIQUIDITY_TX_API_URL, which answers in the same
  {"success", "data": [{"transaction": <base64>}]} shape as the swap API

Calls on this client are part of the investment workflow and are not retried.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from config.config import RAYDIUM_API_URL, RAYDIUM_SWAP_URL, LIQUIDITY_TX_API_URL


class RaydiumApiError(Exception):
    """Venue rejected the request; detail is the venue's own message"""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


def check_pool(pool: Dict[str, Any], pool_id: str) -> Dict[str, Any]:
    """
    Reject pools the add-liquidity stage cannot work with

    Concentrated-liquidity pools have no LP mint; reserves and decimals
    must parse as numbers.
    """
    lp_mint = pool.get("lpMint")
    if not isinstance(lp_mint, dict) or not lp_mint.get("address"):
        raise RaydiumApiError(f"Pool {pool_id} has no LP mint (concentrated liquidity is not supported)")

    try:
        for side in ("mintA", "mintB"):
            int(pool[side]["decimals"])
            if not pool[side].get("address"):
                raise RaydiumApiError(f"Pool {pool_id} is missing the {side} address")
        int(lp_mint["decimals"])
        Decimal(str(pool["mintAmountA"]))
        Decimal(str(pool["mintAmountB"]))
    except (KeyError, TypeError, ValueError, ArithmeticError) as e:
        raise RaydiumApiError(f"Pool {pool_id} response is malformed: {e!r}") from e
    return pool


class RaydiumService:

    TX_VERSION = "V0"
    PRIORITY_FEE_PATH = "/main/auto-fee"

    def __init__(
        self,
        api_url: str = RAYDIUM_API_URL,
        swap_url: str = RAYDIUM_SWAP_URL,
        builder_url: str = LIQUIDITY_TX_API_URL,
    ):
        self.api_url = api_url.rstrip("/")
        self.swap_url = swap_url.rstrip("/")
        self.builder_url = builder_url.rstrip("/")

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method, url, params=params, json=json,
                    timeout=aiohttp.ClientTimeout(total=20),
                ) as response:
                    if response.status != 200:
                        raise RaydiumApiError(
                            f"HTTP {response.status} from {url}: {await response.text()}"
                        )
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise RaydiumApiError(f"Request to {url} failed: {e}") from e
        except TimeoutError as e:
            raise RaydiumApiError(f"Request to {url} timed out") from e

        if not data.get("success", False):
            raise RaydiumApiError(data.get("msg") or f"Unsuccessful response from {url}")
        return data

    @staticmethod
    def _transactions(data: Dict[str, Any]) -> List[str]:
        transactions = [item["transaction"] for item in data.get("data") or [] if item.get("transaction")]
        if not transactions:
            raise RaydiumApiError("Venue returned no transactions")
        return transactions

    async def get_priority_fee(self) -> int:
        """High-tier priority fee in micro-lamports per compute unit"""
        data = await self._request("GET", f"{self.api_url}{self.PRIORITY_FEE_PATH}")
        try:
            return int(data["data"]["default"]["h"])
        except (KeyError, TypeError, ValueError) as e:
            raise RaydiumApiError(f"Malformed priority fee response: {data.get('data')!r}") from e

    async def quote_swap(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> Dict[str, Any]:
        """
        Exact-in swap quote

        Args:
            input_mint: Source mint
            output_mint: Target mint
            amount: Input amount in base units
            slippage_bps: Allowed slippage

        Returns:
            Full quote response; data.outputAmount and data.otherAmountThreshold
            are base-unit strings
        """
        quote = await self._request(
            "GET",
            f"{self.swap_url}/compute/swap-base-in",
            params={
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(amount),
                "slippageBps": str(slippage_bps),
                "txVersion": self.TX_VERSION,
            },
        )
        logger.debug(
            f"Raydium quote {input_mint} -> {output_mint}: in={amount} "
            f"out={quote['data'].get('outputAmount')} min={quote['data'].get('otherAmountThreshold')}"
        )
        return quote

    async def build_swap_transactions(
        self,
        quote: Dict[str, Any],
        wallet: str,
        priority_fee: int,
        wrap_sol: bool,
        unwrap_sol: bool,
        input_account: Optional[str] = None,
        output_account: Optional[str] = None,
    ) -> List[str]:
        """Serialized (base64) swap transactions for the quote, in execution order"""
        body: Dict[str, Any] = {
            "computeUnitPriceMicroLamports": str(priority_fee),
            "swapResponse": quote,
            "txVersion": self.TX_VERSION,
            "wallet": wallet,
            "wrapSol": wrap_sol,
            "unwrapSol": unwrap_sol,
        }
        if input_account:
            body["inputAccount"] = input_account
        if output_account:
            body["outputAccount"] = output_account

        data = await self._request("POST", f"{self.swap_url}/transaction/swap-base-in", json=body)
        return self._transactions(data)

    async def get_pool_info(self, pool_id: str) -> Dict[str, Any]:
        """
        Pool reserves and mints

        Returns:
            Pool dict with mintA/mintB ({address, decimals, symbol}),
            mintAmountA/mintAmountB, lpMint and lpAmount
        """
        data = await self._request("GET", f"{self.api_url}/pools/info/ids", params={"ids": pool_id})
        pools = [pool for pool in data.get("data") or [] if pool]
        if not pools:
            raise RaydiumApiError(f"Pool {pool_id} not found")
        return check_pool(pools[0], pool_id)

    def _builder(self, path: str) -> str:
        if not self.builder_url:
            raise RaydiumApiError("Liquidity transaction builder is not configured")
        return f"{self.builder_url}{path}"

    async def build_add_liquidity_transactions(
        self,
        pool_id: str,
        wallet: str,
        fixed_amount: int,
        other_amount_max: int,
        fixed_side: str,
        priority_fee: int,
    ) -> List[str]:
        """Add liquidity with one side fixed and the other capped at other_amount_max"""
        data = await self._request(
            "POST",
            self._builder("/liquidity/add"),
            json={
                "poolId": pool_id,
                "wallet": wallet,
                "amount": str(fixed_amount),
                "otherAmountMax": str(other_amount_max),
                "fixedSide": fixed_side,
                "computeUnitPriceMicroLamports": str(priority_fee),
                "txVersion": self.TX_VERSION,
            },
        )
        return self._transactions(data)

    async def build_farm_deposit_transactions(
        self, farm_id: str, wallet: str, lp_amount: int, priority_fee: int
    ) -> List[str]:
        """Stake LP tokens into a reward farm"""
        data = await self._request(
            "POST",
            self._builder("/farm/deposit"),
            json={
                "farmId": farm_id,
                "wallet": wallet,
                "amount": str(lp_amount),
                "computeUnitPriceMicroLamports": str(priority_fee),
                "txVersion": self.TX_VERSION,
            },
        )
        return self._transactions(data)
