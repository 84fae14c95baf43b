# coding: utf-8
"""
DefiLlama API Service for protocol TVL
"""
import logging
from decimal import Decimal
from typing import Optional

import aiohttp
from loguru import logger
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from config.tokens import PROTOCOLS


std_logger = logging.getLogger(__name__)


class DefiLlamaService:
    """Protocol TVL lookups (https://api.llama.fi/tvl/<slug>)"""

    BASE_URL = "https://api.llama.fi"

    @retry(
        retry=retry_if_exception_type((aiohttp.ClientError, TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(std_logger, logging.WARNING),
        reraise=True,
    )
    async def _fetch_tvl(self, slug: str) -> float:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                f"{self.BASE_URL}/tvl/{slug}", timeout=aiohttp.ClientTimeout(total=10)
            ) as response:
                response.raise_for_status()
                return float(await response.text())

    async def get_protocol_tvl(self, protocol: str) -> Optional[Decimal]:
        """
        TVL of a protocol in millions of USD (2 dp)

        Args:
            protocol: Protocol name as stored on opportunities (e.g. "Raydium")

        Returns:
            TVL or None when the protocol is unknown or the request fails
        """
        info = PROTOCOLS.get(protocol.lower())
        if info is None:
            logger.debug(f"No DefiLlama slug for protocol {protocol}")
            return None

        try:
            tvl_usd = await self._fetch_tvl(info["llama_slug"])
        except Exception as e:
            logger.warning(f"DefiLlama TVL fetch failed for {protocol}: {e}")
            return None

        return (Decimal(str(tvl_usd)) / Decimal(1_000_000)).quantize(Decimal("0.01"))
