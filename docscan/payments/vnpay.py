"""VNPay redirect gateway: payment URLs, return checks and IPN handling.

Requests are signed the way VNPay documents it: sort parameters by key,
URL-encode the values (spaces as ``+``), join as ``k=v&k=v`` and sign
with HMAC-SHA512 using the merchant hash secret.
"""

import hashlib
import hmac
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

from sqlalchemy import update
from sqlmodel import Session

from docscan.billing.credits import CreditLedger
from docscan.billing.plans import get_plan
from docscan.storage.models import PurchaseLog, PurchaseStatus, utcnow
from docscan.utils.config import VNPayConfig
from docscan.utils.errors import ConfigurationError, ValidationError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

VERSION = "2.1.0"
SUCCESS_CODE = "00"
HASH_FIELDS = ("vnp_SecureHash", "vnp_SecureHashType")

# characters encodeURIComponent leaves alone besides alphanumerics
_SAFE_CHARS = "-_.!~*'()"


def encode_value(value: Any) -> str:
    return quote(str(value), safe=_SAFE_CHARS).replace("%20", "+")


def sort_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Sort parameters by key and URL-encode their values."""
    return {key: encode_value(params[key]) for key in sorted(params)}


def build_query(sorted_params: Mapping[str, str]) -> str:
    """Join already-encoded parameters without encoding them again."""
    return "&".join(f"{key}={value}" for key, value in sorted_params.items())


def sign(params: Mapping[str, Any], secret: str) -> str:
    """Compute the hex HMAC-SHA512 signature of a parameter set."""
    sign_data = build_query(sort_params(params))
    return hmac.new(secret.encode("utf-8"), sign_data.encode("utf-8"), hashlib.sha512).hexdigest()


def client_ip(forwarded_for: str | None, peer: str | None = None) -> str:
    """Pick the client address: first X-Forwarded-For hop, then the peer."""
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer or "127.0.0.1"


@dataclass
class ReturnResult:
    """Outcome of verifying a VNPay return redirect."""

    is_valid: bool
    is_successful: bool
    response_code: str | None
    order_id: str | None
    order_info: str | None
    amount: float
    pay_date: str | None
    transaction_no: str | None
    bank_code: str | None


class VNPayGateway:
    """Signs outgoing payment requests and verifies gateway callbacks.

    Args:
        config: Merchant configuration.
    """

    def __init__(self, config: VNPayConfig) -> None:
        self.config = config

    def require_config(self) -> None:
        if not self.config.is_configured:
            raise ConfigurationError("Missing VNPay configuration")

    def create_date(self, now: datetime | None = None) -> str:
        tz = timezone(timedelta(hours=self.config.utc_offset_hours))
        moment = (now or datetime.now(timezone.utc)).astimezone(tz)
        return moment.strftime("%Y%m%d%H%M%S")

    def create_payment_url(
        self,
        order_id: str,
        amount: int,
        ip_address: str,
        order_info: str | None = None,
        order_type: str = "other",
        locale: str | None = None,
        bank_code: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Build the signed redirect URL for a payment.

        Args:
            order_id: Merchant transaction reference.
            amount: Amount in VND; sent multiplied by 100.
            ip_address: Customer IP address.
            order_info: Free-text order description.
            order_type: VNPay order category.
            locale: Payment page language.
            bank_code: Optional bank preselection.
            now: Creation time, defaults to the current time.

        Returns:
            Absolute gateway URL including ``vnp_SecureHash``.
        """
        self.require_config()
        params: dict[str, Any] = {
            "vnp_Version": VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.config.tmn_code,
            "vnp_Locale": locale or self.config.locale,
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": order_id,
            "vnp_OrderInfo": order_info or f"Thanh toan cho ma GD:{order_id}",
            "vnp_OrderType": order_type,
            "vnp_Amount": amount * 100,
            "vnp_ReturnUrl": self.config.return_url,
            "vnp_IpAddr": ip_address,
            "vnp_CreateDate": self.create_date(now),
        }
        if bank_code:
            params["vnp_BankCode"] = bank_code

        sorted_params = sort_params(params)
        secure_hash = sign(params, self.config.hash_secret)
        return f"{self.config.url}?{build_query(sorted_params)}&vnp_SecureHash={secure_hash}"

    def verify_signature(self, query: Mapping[str, str]) -> bool:
        """Check ``vnp_SecureHash`` against the remaining parameters."""
        if not self.config.hash_secret:
            raise ConfigurationError("Missing VNP_HASH_SECRET")
        received = query.get("vnp_SecureHash") or ""
        params = {k: v for k, v in query.items() if k not in HASH_FIELDS}
        expected = sign(params, self.config.hash_secret)
        return hmac.compare_digest(expected.lower(), received.lower())

    def verify_return(self, query: Mapping[str, str]) -> ReturnResult:
        """Verify the browser redirect the gateway sends after payment."""
        response_code = query.get("vnp_ResponseCode")
        return ReturnResult(
            is_valid=self.verify_signature(query),
            is_successful=response_code == SUCCESS_CODE,
            response_code=response_code,
            order_id=query.get("vnp_TxnRef"),
            order_info=query.get("vnp_OrderInfo"),
            amount=_amount(query.get("vnp_Amount")),
            pay_date=query.get("vnp_PayDate"),
            transaction_no=query.get("vnp_TransactionNo"),
            bank_code=query.get("vnp_BankCode"),
        )


def _amount(raw: str | None) -> float:
    try:
        return int(raw or "0") / 100
    except ValueError:
        return 0.0


class VNPayPayments:
    """Purchase bookkeeping around the VNPay gateway.

    Args:
        session: Open database session.
        gateway: Configured gateway.
        ledger: Credit ledger that receives top-ups.
    """

    def __init__(self, session: Session, gateway: VNPayGateway, ledger: CreditLedger) -> None:
        self.session = session
        self.gateway = gateway
        self.ledger = ledger

    def create_payment(
        self,
        user_id: str,
        plan_id: str,
        ip_address: str,
        order_info: str | None = None,
        locale: str | None = None,
        bank_code: str | None = None,
    ) -> tuple[PurchaseLog, str]:
        """Record a pending purchase and return it with its redirect URL."""
        plan = get_plan(plan_id)
        if plan.price_vnd <= 0:
            raise ValidationError(f"Plan {plan_id} cannot be purchased")
        self.gateway.require_config()

        purchase = PurchaseLog(
            user_id=user_id,
            plan_id=plan.id,
            provider="vnpay",
            amount=plan.price_vnd,
            order_info=order_info or f"{plan.id}-credits",
        )
        self.session.add(purchase)
        self.session.commit()
        self.session.refresh(purchase)

        url = self.gateway.create_payment_url(
            order_id=purchase.id,
            amount=purchase.amount,
            ip_address=ip_address,
            order_info=purchase.order_info,
            locale=locale,
            bank_code=bank_code,
        )
        logger.info("Created VNPay payment %s for %s (%s)", purchase.id, user_id, plan.id)
        return purchase, url

    def process_ipn(self, query: Mapping[str, str]) -> dict[str, str]:
        """Handle the server-to-server payment notification.

        Returns:
            ``{"RspCode": ..., "Message": ...}`` as VNPay expects.
        """
        try:
            if not self.gateway.verify_signature(query):
                logger.error("VNPay checksum verification failed")
                return {"RspCode": "97", "Message": "Checksum failed"}

            order_id = query.get("vnp_TxnRef") or ""
            purchase = self.session.get(PurchaseLog, order_id) if order_id else None
            if purchase is None or purchase.provider != "vnpay":
                logger.error("VNPay order not found: %s", order_id)
                return {"RspCode": "01", "Message": "Order not found"}

            if int(query.get("vnp_Amount") or "0") != purchase.amount * 100:
                logger.error(
                    "VNPay amount mismatch for %s: expected %s, received %s",
                    order_id,
                    purchase.amount * 100,
                    query.get("vnp_Amount"),
                )
                return {"RspCode": "04", "Message": "Amount invalid"}

            if purchase.status != PurchaseStatus.PENDING.value:
                return {
                    "RspCode": "02",
                    "Message": "This order has been updated to the payment status",
                }

            response_code = query.get("vnp_ResponseCode")
            succeeded = response_code == SUCCESS_CODE
            new_status = (
                PurchaseStatus.COMPLETED.value if succeeded else PurchaseStatus.FAILED.value
            )
            claimed = self.session.exec(
                update(PurchaseLog)
                .where(
                    PurchaseLog.id == purchase.id,
                    PurchaseLog.status == PurchaseStatus.PENDING.value,
                )
                .values(
                    status=new_status,
                    response_code=response_code,
                    external_ref=query.get("vnp_TransactionNo"),
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                self.session.rollback()
                return {
                    "RspCode": "02",
                    "Message": "This order has been updated to the payment status",
                }

            # status flip and top-up commit together
            if succeeded:
                plan = get_plan(purchase.plan_id)
                self.ledger.add_credits(
                    purchase.user_id, plan.tier, plan.credits, commit=False
                )
            self.session.commit()
            logger.info("VNPay order %s marked %s", order_id, new_status)
            return {"RspCode": "00", "Message": "Success"}
        except Exception as exc:
            logger.exception("Error processing VNPay IPN: %s", exc)
            self.session.rollback()
            return {"RspCode": "99", "Message": "Unknown error"}
