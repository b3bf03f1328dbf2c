"""Stripe Checkout sessions and webhook handling.

A monthly plan opens a subscription checkout, anything else a one-time
payment. Completed sessions credit the user named in the session
metadata; each session is credited once.
"""

import json

import stripe
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from docscan.billing.credits import CreditLedger
from docscan.billing.plans import get_plan
from docscan.storage.models import PurchaseLog, PurchaseStatus
from docscan.utils.config import StripeConfig
from docscan.utils.errors import ConfigurationError, PaymentError, ValidationError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

COMPLETED_EVENT = "checkout.session.completed"

# checkout mode -> plan credited
_MODE_PLANS = {"subscription": "essential", "payment": "onetime"}


class StripeCheckout:
    """Creates checkout sessions and applies webhook events.

    Args:
        config: Stripe keys, price ids and the public app URL.
        session: Open database session.
        ledger: Credit ledger that receives top-ups.
    """

    def __init__(self, config: StripeConfig, session: Session, ledger: CreditLedger) -> None:
        self.config = config
        self.session = session
        self.ledger = ledger

    def _secret_key(self) -> str:
        if not self.config.secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not set")
        return self.config.secret_key

    def create_checkout_session(self, plan_type: str, user_id: str) -> str:
        """Open a checkout session and return its id.

        Args:
            plan_type: ``monthly`` for the subscription, anything else for
                the one-time package.
            user_id: User credited when the session completes.
        """
        if not user_id:
            raise ValidationError("User ID is required")
        if plan_type == "monthly":
            price_id, mode = self.config.monthly_price_id, "subscription"
        else:
            price_id, mode = self.config.onetime_price_id, "payment"
        if not price_id:
            raise ConfigurationError(f"No Stripe price configured for {mode} checkout")

        app_url = self.config.app_url.rstrip("/")
        checkout = stripe.checkout.Session.create(
            api_key=self._secret_key(),
            mode=mode,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=f"{app_url}/profile?success=true",
            cancel_url=f"{app_url}/profile?canceled=true",
            metadata={"userId": user_id},
        )
        logger.info("Created Stripe %s checkout %s for %s", mode, checkout.id, user_id)
        return checkout.id

    def parse_event(self, payload: bytes, signature: str) -> dict:
        """Verify the webhook signature and decode the event.

        Raises:
            ConfigurationError: If no webhook secret is configured.
            PaymentError: If the signature or payload is invalid.
        """
        if not self.config.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not set")
        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self.config.webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
            return json.loads(body)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("Rejected Stripe webhook: %s", exc)
            raise PaymentError("Webhook Error") from exc

    def handle_webhook(self, payload: bytes, signature: str) -> dict:
        """Apply a verified webhook event.

        Returns:
            Acknowledgement with the event type and whether it was applied.
        """
        event = self.parse_event(payload, signature)
        event_type = event.get("type", "")
        applied = False
        if event_type == COMPLETED_EVENT:
            applied = self._complete_checkout(event.get("data", {}).get("object", {}))
        else:
            logger.debug("Ignoring Stripe event %s", event_type)
        return {"received": True, "type": event_type, "applied": applied}

    def _complete_checkout(self, checkout: dict) -> bool:
        user_id = (checkout.get("metadata") or {}).get("userId")
        if not user_id:
            raise ValidationError("No userId in session metadata")

        session_id = checkout.get("id")
        existing = self.session.exec(
            select(PurchaseLog).where(
                PurchaseLog.provider == "stripe", PurchaseLog.external_ref == session_id
            )
        ).first()
        if existing is not None:
            logger.info("Stripe session %s already applied", session_id)
            return False

        plan = get_plan(_MODE_PLANS.get(checkout.get("mode", ""), "onetime"))
        purchase = PurchaseLog(
            user_id=user_id,
            plan_id=plan.id,
            provider="stripe",
            amount=int(checkout.get("amount_total") or 0),
            status=PurchaseStatus.COMPLETED.value,
            external_ref=session_id,
        )
        # purchase record and top-up commit together
        try:
            self.session.add(purchase)
            self.ledger.add_credits(user_id, plan.tier, plan.credits, commit=False)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info("Stripe session %s applied concurrently", session_id)
            return False
        except Exception:
            self.session.rollback()
            raise
        logger.info("Stripe session %s credited %d to %s", session_id, plan.credits, user_id)
        return True
