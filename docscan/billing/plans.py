"""Plan catalogue shared by the pricing endpoint and both payment providers."""

from dataclasses import dataclass, field

from docscan.storage.models import CreditTier
from docscan.utils.errors import NotFoundError


@dataclass(frozen=True)
class Plan:
    """A purchasable (or free) credits package."""

    id: str
    title: str
    credits: int
    tier: CreditTier
    price_vnd: int
    price_usd: float
    recurring: bool = False
    features: list[str] = field(default_factory=list)


PLANS: dict[str, Plan] = {
    "free": Plan(
        id="free",
        title="Free Tier",
        credits=50,
        tier=CreditTier.FREE,
        price_vnd=0,
        price_usd=0.0,
        features=["50 credits", "Basic features", "Community support"],
    ),
    "essential": Plan(
        id="essential",
        title="Essential Monthly",
        credits=1000,
        tier=CreditTier.TIER1,
        price_vnd=119000,
        price_usd=4.0,
        recurring=True,
        features=["1000 credits/month", "Premium features", "Priority support"],
    ),
    "onetime": Plan(
        id="onetime",
        title="One-Time 1000",
        credits=1000,
        tier=CreditTier.TIER2,
        price_vnd=119000,
        price_usd=5.0,
        features=["1000 credits", "Lifetime access", "Priority support"],
    ),
}


def get_plan(plan_id: str) -> Plan:
    """Look up a plan by id.

    Raises:
        NotFoundError: If the plan does not exist.
    """
    try:
        return PLANS[plan_id]
    except KeyError:
        raise NotFoundError(f"Unknown plan: {plan_id}") from None


def paid_plans() -> list[Plan]:
    return [plan for plan in PLANS.values() if plan.price_vnd > 0]
