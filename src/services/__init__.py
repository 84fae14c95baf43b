"""Services for external API integrations"""
from .openai_service import OpenAIService
from .dexscreener_service import DexScreenerService
from .defillama_service import DefiLlamaService

__all__ = ['OpenAIService', 'DexScreenerService', 'DefiLlamaService']
