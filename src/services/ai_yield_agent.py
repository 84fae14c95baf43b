# coding: utf-8
"""
AI Yield Agent

Premium feature set:
- Periodic scan that builds recommendations for every user with preferences
- Portfolio analysis (value, projected yield, risk, diversification)
- Best opportunity pick (highest confidence recommendation)
- Auto-invest into the best pick through the investment workflow
"""
import json
import logging
from datetime import datetime, timedelta, UTC
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncOpenAI, APIError, RateLimitError, APIConnectionError
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)
from loguru import logger

from config.config import (
    OPENAI_API_KEY,
    AI_AGENT_MODEL,
    AI_SCAN_INTERVAL_MINUTES,
    ModelConfig,
)
from config.prompts import (
    YIELD_AGENT_SYSTEM_PROMPT,
    YIELD_AGENT_USER_TEMPLATE,
    PORTFOLIO_ANALYSIS_SYSTEM_PROMPT,
)
from src.database import crud
from src.database.models import User, YieldOpportunity, UserPortfolio
from src.services.investment import InvestmentOrchestrator, summarize
from src.services.openai_service import format_opportunities
from src.services.wallet_signer import WalletSigner


std_logger = logging.getLogger(__name__)


class YieldRecommendation(BaseModel):
    """One recommendation as returned by the model (camelCase keys accepted)"""

    model_config = ConfigDict(populate_by_name=True)

    opportunity_id: int = Field(alias="opportunityId")
    name: str
    protocol: str
    apy: float
    risk_level: str = Field(alias="riskLevel")
    confidence: float
    reasoning: str = ""

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(100.0, value))


def parse_recommendations(
    payload: Any, opportunities: Sequence[YieldOpportunity]
) -> List[Dict[str, Any]]:
    """
    Validate recommendation entries from a model response

    Entries with unknown opportunity ids or malformed fields are dropped.
    At most ModelConfig.MAX_RECOMMENDATIONS are kept.

    Args:
        payload: JSON string or already decoded dict/list
        opportunities: Opportunities the model was shown

    Returns:
        List of snake_case recommendation dicts
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Yield agent returned non-JSON content")
            return []

    items = payload.get("recommendations", []) if isinstance(payload, dict) else payload
    if not isinstance(items, list):
        return []

    known_ids = {o.id for o in opportunities}
    recommendations = []
    for item in items:
        try:
            recommendation = YieldRecommendation.model_validate(item)
        except ValidationError as e:
            logger.debug(f"Dropping malformed recommendation: {e.errors()[:1]}")
            continue
        if recommendation.opportunity_id not in known_ids:
            logger.debug(f"Dropping recommendation for unknown opportunity {recommendation.opportunity_id}")
            continue
        recommendations.append(recommendation.model_dump())

    return recommendations[: ModelConfig.MAX_RECOMMENDATIONS]


def _format_positions(positions: Sequence[UserPortfolio]) -> str:
    if not positions:
        return "(no positions)"
    return "\n".join(
        f"- {p.amount} {p.token} in "
        f"{p.opportunity.name if p.opportunity else p.opportunity_id} "
        f"({p.opportunity.protocol if p.opportunity else '?'})"
        for p in positions
    )


class AIYieldAgent:
    """
    LLM-backed yield strategist with a per-user recommendation cache

    Cache entries are (recommendations, generated_at); an entry is fresh for
    one scan interval.
    """

    def __init__(
        self,
        api_key: str = OPENAI_API_KEY,
        model: str = AI_AGENT_MODEL,
        scan_interval_minutes: int = AI_SCAN_INTERVAL_MINUTES,
    ):
        self.model = model
        self.scan_interval = timedelta(minutes=scan_interval_minutes)
        self.client: Optional[AsyncOpenAI] = AsyncOpenAI(api_key=api_key) if api_key else None
        self._cache: Dict[int, tuple[List[Dict[str, Any]], datetime]] = {}
        self.last_scan: Optional[datetime] = None

        if self.client is None:
            logger.warning("OPENAI_API_KEY not set - AI yield agent disabled")

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @retry(
        retry=retry_if_exception_type((APIError, RateLimitError, APIConnectionError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(std_logger, logging.WARNING),
        reraise=True,
    )
    async def _json_completion(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=ModelConfig.AGENT_TEMPERATURE,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty response from OpenAI")
        return json.loads(content)

    async def _context(self, session: AsyncSession, user: User) -> Optional[tuple]:
        preferences = await crud.get_user_preferences(session, user.id)
        if preferences is None:
            return None
        opportunities = await crud.get_yield_opportunities(session)
        positions = await crud.get_active_positions(session, user.id)
        prompt = YIELD_AGENT_USER_TEMPLATE.format(
            risk_tolerance=preferences.risk_tolerance,
            preferred_tokens=", ".join(preferences.preferred_tokens or []) or "any",
            positions=_format_positions(positions),
            opportunities=format_opportunities(opportunities) or "(none)",
        )
        return prompt, opportunities, positions

    # ===========================
    # RECOMMENDATIONS
    # ===========================

    async def generate_recommendations(
        self, session: AsyncSession, user: User
    ) -> List[Dict[str, Any]]:
        """
        Ask the model for recommendations and cache them

        Returns:
            Validated recommendations; empty without preferences, opportunities or LLM
        """
        if not self.enabled:
            return []

        context = await self._context(session, user)
        if context is None:
            return []
        prompt, opportunities, _ = context
        if not opportunities:
            return []

        try:
            payload = await self._json_completion(YIELD_AGENT_SYSTEM_PROMPT, prompt)
        except Exception as e:
            logger.error(f"Recommendation generation failed for user {user.id}: {e}")
            return []

        recommendations = parse_recommendations(payload, opportunities)
        self._cache[user.id] = (recommendations, datetime.now(UTC))
        logger.info(f"Generated {len(recommendations)} recommendations for user {user.id}")
        return recommendations

    def get_cached(self, user_id: int) -> Optional[List[Dict[str, Any]]]:
        """Cached recommendations younger than one scan interval"""
        entry = self._cache.get(user_id)
        if entry is None:
            return None
        recommendations, generated_at = entry
        if datetime.now(UTC) - generated_at >= self.scan_interval:
            return None
        return recommendations

    async def get_recommendations_for_user(
        self, session: AsyncSession, user: User
    ) -> List[Dict[str, Any]]:
        cached = self.get_cached(user.id)
        if cached is not None:
            return cached
        return await self.generate_recommendations(session, user)

    async def get_best_opportunity_for_user(
        self, session: AsyncSession, user: User
    ) -> Optional[Dict[str, Any]]:
        """Highest-confidence recommendation"""
        recommendations = await self.get_recommendations_for_user(session, user)
        if not recommendations:
            return None
        return max(recommendations, key=lambda r: r["confidence"])

    async def scan_and_generate_recommendations(
        self, session_maker: async_sessionmaker[AsyncSession]
    ) -> int:
        """
        Scheduled job: refresh recommendations for every user with preferences

        Returns:
            Number of users processed
        """
        if not self.enabled:
            logger.debug("AI yield scan skipped - no API key")
            return 0

        async with session_maker() as session:
            users = await crud.get_users_with_preferences(session)
            logger.info(f"AI yield scan started for {len(users)} users")

            processed = 0
            for user in users:
                try:
                    await self.generate_recommendations(session, user)
                    processed += 1
                except Exception as e:
                    logger.exception(f"AI yield scan failed for user {user.id}: {e}")

        self.last_scan = datetime.now(UTC)
        logger.info(f"AI yield scan finished: {processed}/{len(users)} users")
        return processed

    # ===========================
    # PORTFOLIO ANALYSIS
    # ===========================

    async def analyze_portfolio(
        self, session: AsyncSession, user: User
    ) -> Optional[Dict[str, Any]]:
        """
        Model assessment of the user's portfolio

        Returns:
            Analysis dict or None when there is nothing to analyse or no LLM
        """
        if not self.enabled:
            return None

        context = await self._context(session, user)
        if context is None:
            return None
        prompt, opportunities, positions = context
        if not positions and not opportunities:
            return None

        try:
            payload = await self._json_completion(PORTFOLIO_ANALYSIS_SYSTEM_PROMPT, prompt)
        except Exception as e:
            logger.error(f"Portfolio analysis failed for user {user.id}: {e}")
            return None

        total_value = float(sum((p.amount for p in positions), Decimal("0")))
        recommendations = parse_recommendations(payload, opportunities)
        if not recommendations:
            recommendations = self.get_cached(user.id) or []

        return {
            "current_value": _as_float(payload.get("currentValue"), total_value),
            "projected_annual_yield": _as_float(payload.get("projectedAnnualYield"), 0.0),
            "risk_assessment": payload.get("riskAssessment") or "Unknown",
            "diversification_score": _as_float(payload.get("diversificationScore"), 0.0),
            "recommendations": recommendations,
        }

    # ===========================
    # AUTO-INVEST
    # ===========================

    async def auto_invest(
        self,
        session: AsyncSession,
        user: User,
        amount: Decimal,
        signer: Optional[WalletSigner],
        orchestrator: InvestmentOrchestrator,
        source_token: str = "SOL",
    ) -> Dict[str, Any]:
        """
        Invest into the best recommendation

        Raises:
            InvestmentError: Workflow failed at the swap stage
            ValueError: Invalid amount
        """
        best = await self.get_best_opportunity_for_user(session, user)
        if best is None:
            return {"success": False, "message": "No suitable investment opportunities found"}

        opportunity = await crud.get_yield_opportunity(session, best["opportunity_id"])
        if opportunity is None:
            return {"success": False, "message": "Recommended opportunity no longer exists"}

        result = await orchestrator.invest(
            session,
            user.id,
            opportunity,
            amount,
            signer,
            source_token=source_token,
            extra_details={
                "ai_recommended": True,
                "confidence": best["confidence"],
                "reasoning": best["reasoning"],
            },
        )

        logger.info(
            f"Auto-invest for user {user.id}: {amount} {source_token} into "
            f"{opportunity.name} (confidence {best['confidence']})"
        )
        return {
            **summarize(result),
            "message": f"Invested {amount} {source_token} in {opportunity.name}",
            "opportunity": {"id": opportunity.id, "name": opportunity.name, "protocol": opportunity.protocol},
            "confidence": best["confidence"],
            "reasoning": best["reasoning"],
        }


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


_ai_yield_agent: Optional[AIYieldAgent] = None


def get_ai_yield_agent() -> AIYieldAgent:
    global _ai_yield_agent
    if _ai_yield_agent is None:
        _ai_yield_agent = AIYieldAgent()
    return _ai_yield_agent
