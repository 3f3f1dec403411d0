"""
Penalty Module

Late-payment penalty evaluation and the cooperative-wide penalty settings.

Evaluation is a pure function of (payment, reference date, settings) and is
never cached: "today" moves, so unpaid installments must be re-evaluated on
every read.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from .audit import AuditEventType, AuditTrail
from .config import get_config, LendingConfig
from .events import DomainEvent, EventPublisherMixin
from .exceptions import ConfigurationError, StorageError, ValidationError
from .loans import Payment
from .logging_config import get_logger, log_action
from .rbac import ADMINS, RolePolicy
from .storage import StorageInterface


logger = get_logger("coop_lending.penalties")


@dataclass(frozen=True)
class PenaltySettings:
    """Flat penalty charged once an installment passes its grace period"""
    penalty_amount: Decimal
    grace_period_days: int
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    is_default: bool = False

    def to_dict(self):
        return {
            "penalty_amount": str(self.penalty_amount),
            "grace_period_days": self.grace_period_days,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
            "is_default": self.is_default,
        }


@dataclass(frozen=True)
class PenaltyAssessment:
    """Result of evaluating one payment"""
    reference_date: date
    days_past_due: int
    is_late: bool            # paid, but after the grace period
    is_overdue: bool         # unpaid and past the grace period
    penalty: Decimal         # active amount (neither waived nor deferred)
    waived_amount: Decimal
    deferred_amount: Decimal

    @property
    def applies(self) -> bool:
        return self.is_late or self.is_overdue


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


class PenaltyEvaluator:
    """Decides whether a payment carries a penalty and how much"""

    def evaluate(self, payment: Payment, as_of: Union[date, datetime],
                 settings: PenaltySettings) -> PenaltyAssessment:
        """
        Evaluate one payment.

        Paid payments are judged against their recorded payment date, unpaid
        ones against ``as_of``. A payment counts as late/overdue only when it
        is more than ``grace_period_days`` past due.
        """
        zero = Decimal("0")
        if payment.is_paid and payment.payment_date is None:
            # Collected with no recorded date: nothing to measure lateness by
            return PenaltyAssessment(payment.due_date, 0, False, False, zero, zero, zero)

        paid_on = payment.payment_date if payment.is_paid else None
        reference = paid_on if paid_on is not None else _as_date(as_of)
        days = (reference - payment.due_date).days
        past_grace = days > settings.grace_period_days

        is_late = paid_on is not None and past_grace
        is_overdue = paid_on is None and past_grace
        charge = settings.penalty_amount if past_grace else zero

        if payment.penalty_waived:
            return PenaltyAssessment(reference, max(days, 0), is_late, is_overdue, zero, charge, zero)
        if payment.penalty_deferred:
            return PenaltyAssessment(reference, max(days, 0), is_late, is_overdue, zero, zero, charge)
        return PenaltyAssessment(reference, max(days, 0), is_late, is_overdue, charge, zero, zero)

    def penalty_for(self, payment: Payment, as_of: Union[date, datetime],
                    settings: PenaltySettings) -> Decimal:
        return self.evaluate(payment, as_of, settings).penalty


class PenaltySettingsStore(EventPublisherMixin):
    """
    Reads and writes the penalty settings singleton.

    Missing or unreadable settings fall back to the configured defaults;
    this is the only place those defaults are consulted.
    """

    def __init__(self, storage: StorageInterface, policy: RolePolicy,
                 audit: Optional[AuditTrail] = None, config: Optional[LendingConfig] = None):
        self.storage = storage
        self.policy = policy
        self.audit = audit
        self.config = config or get_config()
        self.settings_table = "settings"
        self.record_id = "penalty_settings"

    def defaults(self) -> PenaltySettings:
        return PenaltySettings(
            penalty_amount=Decimal(str(self.config.default_penalty_amount)),
            grace_period_days=int(self.config.default_grace_period_days),
            is_default=True,
        )

    def get(self) -> PenaltySettings:
        """Current settings, or the configured defaults"""
        try:
            return self._read()
        except ConfigurationError as e:
            logger.warning(f"Penalty settings unreadable, using defaults: {e.message}")
            return self.defaults()

    def _read(self) -> PenaltySettings:
        try:
            data = self.storage.load(self.settings_table, self.record_id)
        except StorageError as e:
            raise ConfigurationError(f"cannot load penalty settings: {e.message}") from e
        if not data:
            return self.defaults()
        try:
            amount = Decimal(str(data["penalty_amount"]))
            grace = int(data["grace_period_days"])
            updated_at = data.get("updated_at")
            settings = PenaltySettings(
                penalty_amount=amount,
                grace_period_days=grace,
                updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
                updated_by=data.get("updated_by"),
            )
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise ConfigurationError(f"malformed penalty settings record: {e}") from e
        if not amount.is_finite() or amount < 0 or grace < 0:
            raise ConfigurationError(
                f"penalty settings out of range (amount={amount}, grace={grace})"
            )
        return settings

    def update(self, penalty_amount: Union[Decimal, int, str], grace_period_days: int,
               acting_user: str) -> PenaltySettings:
        """
        Replace the penalty settings.

        Raises:
            PrerequisiteNotMet: If the acting user is not an admin
            ValidationError: If the amount is negative or the grace period is
                not a non-negative whole number of days
        """
        self.policy.require(acting_user, ADMINS, "change penalty settings")

        try:
            amount = Decimal(str(penalty_amount))
        except InvalidOperation as e:
            raise ValidationError(f"Penalty amount {penalty_amount!r} is not a number") from e
        if not amount.is_finite() or amount < 0:
            raise ValidationError("Penalty amount must be zero or greater")
        if isinstance(grace_period_days, bool) or not isinstance(grace_period_days, int) or grace_period_days < 0:
            raise ValidationError("Grace period must be a whole number of days, zero or greater")

        previous = self.get()
        settings = PenaltySettings(
            penalty_amount=amount,
            grace_period_days=grace_period_days,
            updated_at=datetime.now(timezone.utc),
            updated_by=acting_user,
        )
        record = settings.to_dict()
        record["id"] = self.record_id
        self.storage.save(self.settings_table, self.record_id, record)

        if self.audit:
            self.audit.log_event(
                AuditEventType.PENALTY_SETTINGS_UPDATED, "settings", self.record_id,
                {"from": previous.to_dict(), "to": settings.to_dict()}, acting_user
            )
        log_action(logger, "info", "Penalty settings updated", user_id=acting_user,
                   action="update_penalty_settings", resource="settings:penalty_settings",
                   extra={"penalty_amount": str(amount), "grace_period_days": grace_period_days})
        self.publish_event(DomainEvent.PENALTY_SETTINGS_UPDATED, "settings", self.record_id,
                           settings.to_dict())
        return settings
