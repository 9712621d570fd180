from dataclasses import dataclass
from typing import Optional

import logfire
from sqlalchemy.orm import Session

import store
from config import FREE_MONTHLY_LIMIT

# monthly_limit None means unlimited
PLANS = {
    "free": {"name": "Free", "monthly_limit": FREE_MONTHLY_LIMIT},
    "pro": {"name": "Pro", "monthly_limit": None},
}


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    limit: Optional[int]
    used: int

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)


def resolve_plan(tier: Optional[str]) -> dict:
    # cancelled, missing and unknown statuses all fall back to the free plan
    if tier == "pro":
        return PLANS["pro"]
    return PLANS["free"]


def check_quota(tier: Optional[str], used: int) -> QuotaDecision:
    limit = resolve_plan(tier)["monthly_limit"]
    if limit is None:
        return QuotaDecision(allowed=True, limit=None, used=used)
    return QuotaDecision(allowed=used < limit, limit=limit, used=used)


def limit_message(limit: int) -> str:
    return (
        f"You've reached your monthly limit of {limit} responses. "
        "Upgrade to Pro for unlimited responses."
    )


def evaluate_quota(db: Session, user_id: str) -> QuotaDecision:
    tier = store.get_subscription_tier(db, user_id)
    used = store.get_monthly_usage_count(db, user_id)
    decision = check_quota(tier, used)
    logfire.info(
        "quota checked for {user_id}: tier={tier} used={used} limit={limit} allowed={allowed}",
        user_id=user_id,
        tier=tier,
        used=used,
        limit=decision.limit,
        allowed=decision.allowed,
    )
    return decision
