"""
Investment workflow value types
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class Stage(str, Enum):
    """
    Workflow stages, in order.

    SWAP is mandatory; LIQUIDITY and STAKE run only when the opportunity
    defines a pool / farm and auto-stake is on.
    """
    SWAP = "swap"
    LIQUIDITY = "liquidity"
    STAKE = "stake"

    def next(self) -> Optional["Stage"]:
        members = list(Stage)
        index = members.index(self)
        return members[index + 1] if index + 1 < len(members) else None


@dataclass(frozen=True)
class Asset:
    """An amount of one token held by the wallet"""
    token: str
    amount: Decimal
    mint: Optional[str] = None
    decimals: Optional[int] = None


@dataclass
class StageRecord:
    """What one stage did on chain"""
    stage: Stage
    asset: Asset
    signatures: List[str] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "token": self.asset.token,
            "amount": str(self.asset.amount),
            "signatures": list(self.signatures),
            "skipped": self.skipped,
        }


@dataclass
class Completed:
    """
    Result of a workflow run: the last stage that succeeded and the asset
    it left in the wallet. degraded_reason is set when a later stage was
    attempted and failed.
    """
    stage: Stage
    asset: Asset
    trail: List[StageRecord] = field(default_factory=list)
    degraded_reason: Optional[str] = None
    target_stage: Stage = Stage.STAKE

    @property
    def signatures(self) -> List[str]:
        return [sig for record in self.trail for sig in record.signatures]

    @property
    def last_signature(self) -> Optional[str]:
        signatures = self.signatures
        return signatures[-1] if signatures else None

    @property
    def degraded(self) -> bool:
        return self.degraded_reason is not None

    def continuation(self) -> Optional[dict]:
        """Hint for finishing the remaining stages by hand"""
        if self.stage == self.target_stage:
            return None
        next_stage = self.stage.next()
        return {
            "next_stage": next_stage.value if next_stage else None,
            "holding": {"token": self.asset.token, "amount": str(self.asset.amount)},
            "message": (
                f"Funds are held as {self.asset.amount} {self.asset.token}. "
                f"You can complete the {next_stage.value if next_stage else ''} step manually."
            ),
        }

    def to_details(self) -> dict:
        return {
            "final_stage": self.stage.value,
            "target_stage": self.target_stage.value,
            "degraded": self.degraded,
            "degraded_reason": self.degraded_reason,
            "stages": [record.to_dict() for record in self.trail],
            "continuation": self.continuation(),
        }
