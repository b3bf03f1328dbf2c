"""Payment endpoints for the VNPay gateway and Stripe Checkout."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from docscan.api.deps import StripeDep, UserDep, VNPayDep
from docscan.api.schemas import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    VNPayPaymentRequest,
    VNPayPaymentResponse,
    VNPayReturnResponse,
)
from docscan.payments.vnpay import client_ip
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/payments/vnpay", response_model=VNPayPaymentResponse)
def create_vnpay_payment(
    body: VNPayPaymentRequest,
    request: Request,
    user_id: UserDep,
    payments: VNPayDep,
) -> VNPayPaymentResponse:
    """Record a pending purchase and return the signed gateway URL."""
    ip_address = client_ip(
        request.headers.get("x-forwarded-for"),
        request.client.host if request.client else None,
    )
    purchase, url = payments.create_payment(
        user_id,
        body.plan_id,
        ip_address,
        order_info=body.order_info,
        locale=body.language,
        bank_code=body.bank_code,
    )
    return VNPayPaymentResponse(url=url, order_id=purchase.id)


@router.get("/payments/vnpay/ipn")
def vnpay_ipn(request: Request, payments: VNPayDep) -> dict[str, str]:
    """Server-to-server notification; always answered with an RspCode."""
    return payments.process_ipn(dict(request.query_params))


@router.get("/payments/vnpay/return", response_model=VNPayReturnResponse)
def vnpay_return(request: Request, payments: VNPayDep) -> VNPayReturnResponse:
    """Verify the redirect the customer's browser lands on after paying."""
    result = payments.gateway.verify_return(dict(request.query_params))
    if not result.is_valid:
        logger.warning("Invalid VNPay return signature for order %s", result.order_id)
    return VNPayReturnResponse(**asdict(result))


@router.post("/payments/stripe/checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    body: CheckoutSessionRequest, user_id: UserDep, checkout: StripeDep
) -> CheckoutSessionResponse:
    return CheckoutSessionResponse(
        session_id=checkout.create_checkout_session(body.plan_type, user_id)
    )


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    checkout: StripeDep,
    stripe_signature: Annotated[str | None, Header()] = None,
) -> dict:
    if not stripe_signature:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No signature")
    payload = await request.body()
    return await run_in_threadpool(checkout.handle_webhook, payload, stripe_signature)
