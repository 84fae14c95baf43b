"""
Known SPL tokens (symbol -> mint address, decimals) and protocol metadata
"""

from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    mint: str
    decimals: int


# Wrapped SOL mint; native SOL balances are read with getBalance
SOL_MINT = "So11111111111111111111111111111111111111112"

TOKENS: Dict[str, TokenInfo] = {
    "SOL": TokenInfo("SOL", SOL_MINT, 9),
    "USDC": TokenInfo("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
    "USDT": TokenInfo("USDT", "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 6),
    "RAY": TokenInfo("RAY", "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", 6),
    "mSOL": TokenInfo("mSOL", "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So", 9),
    "ORCA": TokenInfo("ORCA", "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE", 6),
}


def get_token(symbol: str) -> Optional[TokenInfo]:
    """Lookup by symbol, case-insensitive (mSOL keeps its casing in the registry)"""
    if symbol in TOKENS:
        return TOKENS[symbol]
    upper = symbol.upper()
    for key, info in TOKENS.items():
        if key.upper() == upper:
            return info
    return None


# Protocol display metadata and DefiLlama slugs
PROTOCOLS: Dict[str, Dict[str, str]] = {
    "raydium": {
        "name": "Raydium",
        "logo": "R",
        "url": "https://raydium.io",
        "llama_slug": "raydium",
    },
    "marinade": {
        "name": "Marinade",
        "logo": "M",
        "url": "https://marinade.finance",
        "llama_slug": "marinade-finance",
    },
    "orca": {
        "name": "Orca",
        "logo": "O",
        "url": "https://www.orca.so",
        "llama_slug": "orca",
    },
    "solend": {
        "name": "Solend",
        "logo": "S",
        "url": "https://solend.fi",
        "llama_slug": "save",
    },
    "tulip": {
        "name": "Tulip",
        "logo": "T",
        "url": "https://tulip.garden",
        "llama_slug": "tulip-protocol",
    },
}
