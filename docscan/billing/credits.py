"""Credits ledger gating document processing.

Every user holds three counters. New users start with a small free
balance; paid top-ups land in tier 1 (subscription) or tier 2 (one-time).
Consumption drains free credits first, then tier 1, then tier 2.
"""

from sqlalchemy import update
from sqlmodel import Session

from docscan.storage.models import CreditTier, UserCredits, utcnow
from docscan.utils.config import BillingConfig
from docscan.utils.errors import InsufficientCreditsError, ValidationError
from docscan.utils.logger import get_logger

logger = get_logger(__name__)

_TIER_FIELDS: dict[CreditTier, str] = {
    CreditTier.FREE: "free_credits",
    CreditTier.TIER1: "paid_tier1_credits",
    CreditTier.TIER2: "paid_tier2_credits",
}

# drain order for consumption
_CONSUME_ORDER = (CreditTier.FREE, CreditTier.TIER1, CreditTier.TIER2)
_MAX_ATTEMPTS = 5


class CreditLedger:
    """Reads and updates user credit balances.

    Args:
        session: Open database session; the ledger commits its own writes
            unless told otherwise.
        config: Billing configuration.
    """

    def __init__(self, session: Session, config: BillingConfig | None = None) -> None:
        self.session = session
        self.config = config or BillingConfig()

    def get_user_credits(self, user_id: str, commit: bool = True) -> UserCredits:
        """Return a user's balances, creating the record on first access.

        With ``commit=False`` a new record is only flushed, so it joins the
        caller's transaction.
        """
        if not user_id:
            raise ValidationError("User ID is required")

        credits = self.session.get(UserCredits, user_id)
        if credits is None:
            credits = UserCredits(
                user_id=user_id, free_credits=self.config.initial_free_credits
            )
            self.session.add(credits)
            if not commit:
                self.session.flush()
                return credits
            self.session.commit()
            self.session.refresh(credits)
            logger.info(
                "Initialised credits for %s with %d free credits",
                user_id,
                credits.free_credits,
            )
        return credits

    def check_user_credits(self, user_id: str) -> bool:
        """Return True when any of the user's counters is positive."""
        return self.get_user_credits(user_id).total > 0

    def require(self, user_id: str, amount: int = 1) -> UserCredits:
        """Raise unless the user can afford ``amount`` credits."""
        credits = self.get_user_credits(user_id)
        if credits.total < amount:
            raise InsufficientCreditsError(
                f"Insufficient credits: {amount} required, {credits.total} available"
            )
        return credits

    def consume_credits(self, user_id: str, amount: int = 1) -> UserCredits:
        """Deduct ``amount`` credits, free balance first.

        The deduction only applies if the balances are unchanged since they
        were read; otherwise the balances are re-read and checked again.

        Raises:
            ValidationError: If ``amount`` is not positive.
            InsufficientCreditsError: If the balance is too low; nothing is
                deducted in that case.
        """
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")

        for _ in range(_MAX_ATTEMPTS):
            credits = self.require(user_id, amount)
            read = {name: getattr(credits, name) for name in _TIER_FIELDS.values()}

            balances = dict(read)
            remaining = amount
            for tier in _CONSUME_ORDER:
                field_name = _TIER_FIELDS[tier]
                taken = min(balances[field_name], remaining)
                balances[field_name] -= taken
                remaining -= taken

            statement = (
                update(UserCredits)
                .where(UserCredits.user_id == user_id)
                .where(*(getattr(UserCredits, name) == value for name, value in read.items()))
                .values(**balances, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if self.session.exec(statement).rowcount == 1:
                self.session.commit()
                self.session.refresh(credits)
                logger.info(
                    "Consumed %d credits for %s, %d left", amount, user_id, credits.total
                )
                return credits

            # balances moved underneath us; discard the read and retry
            self.session.rollback()
            logger.debug("Credit balances of %s changed concurrently, retrying", user_id)

        raise InsufficientCreditsError(f"Could not reserve {amount} credits for {user_id}")

    def add_credits(
        self, user_id: str, tier: CreditTier | str, amount: int, commit: bool = True
    ) -> UserCredits:
        """Top up one of the user's counters.

        The increment is applied in the database, so concurrent top-ups
        never overwrite each other. With ``commit=False`` the change is
        left in the caller's transaction.

        Raises:
            ValidationError: If the tier is unknown or ``amount`` is not positive.
        """
        if amount <= 0:
            raise ValidationError("Credit amount must be positive")
        try:
            tier = CreditTier(tier)
        except ValueError:
            raise ValidationError(f"Unknown credit tier: {tier}") from None

        credits = self.get_user_credits(user_id, commit=commit)
        field_name = _TIER_FIELDS[tier]
        column = getattr(UserCredits, field_name)
        self.session.exec(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values({field_name: column + amount, "updated_at": utcnow()})
            .execution_options(synchronize_session=False)
        )
        if commit:
            self.session.commit()
        self.session.refresh(credits)
        logger.info("Added %d %s credits for %s", amount, tier.value, user_id)
        return credits
