# coding: utf-8
"""
OpenAI chat assistant with per-user history and transaction intent extraction
"""
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import (
    AsyncOpenAI,
    APIError,
    RateLimitError,
    APIConnectionError,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from loguru import logger

from config.config import OPENAI_API_KEY, CHAT_MODEL, ModelConfig
from config.prompts import (
    CHAT_SYSTEM_PROMPT,
    CHAT_CONTEXT_TEMPLATE,
    INTENT_EXTRACTION_PROMPT,
    CHAT_FALLBACK_NO_KEY,
    CHAT_FALLBACK_ERROR,
)
from src.database.models import YieldOpportunity


std_logger = logging.getLogger(__name__)

NO_INTENT = {"action": "none", "protocol": None, "amount": None, "opportunity_id": None}
INTENT_ACTIONS = {"invest", "withdraw", "none"}


def format_opportunities(opportunities: Sequence[YieldOpportunity]) -> str:
    """One line per opportunity, as the models see them"""
    return "\n".join(
        f"- id={o.id} | {o.name} | {o.protocol} | APY {float(o.apy):.2f}% | "
        f"risk {o.risk_level} | TVL ${float(o.tvl or 0):.2f}M | {o.asset_type} | "
        f"tokens {'/'.join(o.token_pair or [])}"
        for o in opportunities
    )


class OpenAIService:
    """
    Chat assistant

    Features:
    - In-memory history per user (system prompt + last 9 turns)
    - Latest user turn is sent with the current opportunity list
    - Second JSON-mode pass extracts invest / withdraw intent
    - Fixed fallback replies without an API key or on API failure
    """

    def __init__(self, api_key: str = OPENAI_API_KEY, model: str = CHAT_MODEL):
        self.model = model
        self.client: Optional[AsyncOpenAI] = AsyncOpenAI(api_key=api_key) if api_key else None
        self._histories: Dict[int, List[Dict[str, str]]] = {}

        if self.client is None:
            logger.warning("OPENAI_API_KEY not set - chat assistant will reply with a fallback message")

    @retry(
        retry=retry_if_exception_type((APIError, RateLimitError, APIConnectionError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(std_logger, logging.WARNING),
        reraise=True,
    )
    async def _completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
    ) -> str:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            params["max_tokens"] = max_tokens
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**params)
        return response.choices[0].message.content or ""

    def get_history(self, user_id: int) -> List[Dict[str, str]]:
        if user_id not in self._histories:
            self._histories[user_id] = [{"role": "system", "content": CHAT_SYSTEM_PROMPT}]
        return self._histories[user_id]

    def clear_history(self, user_id: int) -> None:
        self._histories.pop(user_id, None)
        logger.info(f"Chat history cleared for user {user_id}")

    def _trim_history(self, user_id: int) -> None:
        history = self._histories[user_id]
        limit = ModelConfig.CHAT_HISTORY_LIMIT
        if len(history) > limit:
            self._histories[user_id] = [history[0]] + history[-(limit - 1):]

    async def process_message(
        self,
        user_id: int,
        message: str,
        opportunities: Sequence[YieldOpportunity],
    ) -> Dict[str, Any]:
        """
        Answer a chat message

        Args:
            user_id: User ID (history key)
            message: User message
            opportunities: Current opportunity list for context

        Returns:
            {"response": str, "transaction_intent": {...}}
        """
        if self.client is None:
            return {"response": CHAT_FALLBACK_NO_KEY, "transaction_intent": dict(NO_INTENT)}

        history = self.get_history(user_id)
        contextual = CHAT_CONTEXT_TEMPLATE.format(
            message=message,
            opportunities=format_opportunities(opportunities) or "(none listed)",
        )

        try:
            reply = await self._completion(
                history + [{"role": "user", "content": contextual}],
                temperature=ModelConfig.CHAT_TEMPERATURE,
                max_tokens=ModelConfig.CHAT_MAX_TOKENS,
            )
        except Exception as e:
            logger.error(f"Chat completion failed for user {user_id}: {e}")
            return {"response": CHAT_FALLBACK_ERROR, "transaction_intent": dict(NO_INTENT)}

        history.append({"role": "user", "content": message})
        history.append({"role": "assistant", "content": reply})
        self._trim_history(user_id)

        intent = await self.extract_transaction_intent(message, opportunities)
        return {"response": reply, "transaction_intent": intent}

    async def extract_transaction_intent(
        self, message: str, opportunities: Sequence[YieldOpportunity]
    ) -> Dict[str, Any]:
        """
        Detect an invest / withdraw request in a message

        Skipped for short messages or when nothing is listed.
        """
        if (
            self.client is None
            or len(message) < ModelConfig.INTENT_MIN_MESSAGE_LENGTH
            or not opportunities
        ):
            return dict(NO_INTENT)

        prompt = INTENT_EXTRACTION_PROMPT.format(
            opportunities=format_opportunities(opportunities), message=message
        )
        try:
            content = await self._completion(
                [{"role": "user", "content": prompt}],
                temperature=ModelConfig.INTENT_TEMPERATURE,
                json_mode=True,
            )
        except Exception as e:
            logger.warning(f"Intent extraction failed: {e}")
            return dict(NO_INTENT)

        return parse_intent(content, {o.id for o in opportunities})


def parse_intent(content: str, known_ids: set) -> Dict[str, Any]:
    """Normalize the model's intent JSON; anything malformed means no intent"""
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return dict(NO_INTENT)
    if not isinstance(data, dict):
        return dict(NO_INTENT)

    action = str(data.get("action") or "none").lower()
    if action not in INTENT_ACTIONS or action == "none":
        return dict(NO_INTENT)

    amount = data.get("amount")
    try:
        amount = float(amount) if amount is not None else None
    except (TypeError, ValueError):
        amount = None

    try:
        opportunity_id = int(data.get("opportunityId"))
    except (TypeError, ValueError):
        opportunity_id = None
    if opportunity_id not in known_ids:
        opportunity_id = None

    return {
        "action": action,
        "protocol": data.get("protocol"),
        "amount": amount,
        "opportunity_id": opportunity_id,
    }


_openai_service: Optional[OpenAIService] = None


def get_openai_service() -> OpenAIService:
    global _openai_service
    if _openai_service is None:
        _openai_service = OpenAIService()
    return _openai_service
