"""Credits balance and plan catalogue endpoints."""

from fastapi import APIRouter

from docscan.api.deps import LedgerDep, UserDep
from docscan.api.schemas import CreditsResponse, PlanResponse
from docscan.billing.plans import PLANS

router = APIRouter(tags=["billing"])


@router.get("/credits", response_model=CreditsResponse)
def get_credits(user_id: UserDep, ledger: LedgerDep) -> CreditsResponse:
    return CreditsResponse.from_record(ledger.get_user_credits(user_id))


@router.get("/plans", response_model=list[PlanResponse])
def list_plans() -> list[PlanResponse]:
    return [
        PlanResponse(
            id=plan.id,
            title=plan.title,
            credits=plan.credits,
            tier=plan.tier.value,
            price_vnd=plan.price_vnd,
            price_usd=plan.price_usd,
            recurring=plan.recurring,
            features=list(plan.features),
        )
        for plan in PLANS.values()
    ]
