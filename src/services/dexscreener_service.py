# coding: utf-8
"""
DexScreener API Service for Solana token prices

Used for wallet valuation (SOL price in USD and 24h change).
Free API, no authentication required.
"""
import time
import logging
from typing import Optional, Dict, Any

import aiohttp
from loguru import logger
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from config.config import CACHE_TTL_PRICES
from config.tokens import get_token


# Create standard logger for tenacity
std_logger = logging.getLogger(__name__)


class DexScreenerService:
    """
    Token prices from DexScreener with a small in-memory TTL cache

    The most liquid Solana pair for a mint is used as the price source.
    """

    BASE_URL = "https://api.dexscreener.com"

    def __init__(self):
        self.cache: Dict[str, tuple[Any, float]] = {}
        self.cache_ttl = CACHE_TTL_PRICES

    def _get_cached(self, cache_key: str) -> Optional[Any]:
        """Get cached data if not expired"""
        if cache_key in self.cache:
            data, timestamp = self.cache[cache_key]
            if time.time() - timestamp < self.cache_ttl:
                return data
            del self.cache[cache_key]
        return None

    def _set_cache(self, cache_key: str, data: Any) -> None:
        self.cache[cache_key] = (data, time.time())

    @retry(
        retry=retry_if_exception_type((aiohttp.ClientError, TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(std_logger, logging.WARNING),
        reraise=True,
    )
    async def _make_request(self, endpoint: str) -> Dict[str, Any]:
        """
        GET an endpoint, retrying network errors up to 3 times (2-10s backoff)
        """
        url = f"{self.BASE_URL}{endpoint}"
        async with aiohttp.ClientSession() as session:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=10)) as response:
                response.raise_for_status()
                return await response.json()

    async def get_token_price(self, symbol: str) -> Optional[Dict[str, float]]:
        """
        Price of a known token

        Args:
            symbol: Token symbol from the registry (SOL, USDC, RAY, ...)

        Returns:
            {"price_usd": float, "price_change_24h": float} or None
        """
        token = get_token(symbol)
        if token is None:
            logger.warning(f"Unknown token for price lookup: {symbol}")
            return None

        cached = self._get_cached(token.mint)
        if cached is not None:
            return cached

        try:
            data = await self._make_request(f"/latest/dex/tokens/{token.mint}")
        except Exception as e:
            logger.error(f"DexScreener price request failed for {symbol}: {e}")
            return None

        pairs = [
            pair for pair in (data.get("pairs") or [])
            if pair.get("chainId") == "solana"
            and pair.get("baseToken", {}).get("address") == token.mint
            and pair.get("priceUsd")
        ]
        if not pairs:
            logger.warning(f"No DexScreener pairs with a USD price for {symbol}")
            return None

        best = max(pairs, key=lambda p: float((p.get("liquidity") or {}).get("usd") or 0))
        price = {
            "price_usd": float(best["priceUsd"]),
            "price_change_24h": float((best.get("priceChange") or {}).get("h24") or 0),
        }
        self._set_cache(token.mint, price)
        return price


_dexscreener_service: Optional[DexScreenerService] = None


def get_dexscreener_service() -> DexScreenerService:
    global _dexscreener_service
    if _dexscreener_service is None:
        _dexscreener_service = DexScreenerService()
    return _dexscreener_service
