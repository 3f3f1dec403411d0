"""
Tests for penalty evaluation and penalty settings
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from coop_lending.events import DomainEvent
from coop_lending.exceptions import PrerequisiteNotMet, StorageError, ValidationError
from coop_lending.loans import Payment, PaymentStatus
from coop_lending.penalties import PenaltyEvaluator, PenaltySettings, PenaltySettingsStore
from coop_lending.storage import InMemoryStorage


SETTINGS = PenaltySettings(penalty_amount=Decimal("500"), grace_period_days=3)


def make_payment(due=date(2024, 2, 15), status=PaymentStatus.PENDING, paid_on=None,
                 waived=False, deferred=False):
    now = datetime(2024, 1, 15, tzinfo=timezone.utc)
    return Payment(
        id="p-1",
        created_at=now,
        updated_at=now,
        loan_id="loan-1",
        payment_number=1,
        due_date=due,
        principal_component=Decimal("1666"),
        interest_component=Decimal("150.00"),
        amount=Decimal("1816.00"),
        status=status,
        payment_date=paid_on,
        penalty_waived=waived,
        penalty_deferred=deferred,
    )


class TestPenaltyEvaluator:

    def setup_method(self):
        self.evaluator = PenaltyEvaluator()

    def test_unpaid_past_grace_is_penalized(self):
        assessment = self.evaluator.evaluate(make_payment(), date(2024, 2, 19), SETTINGS)
        assert assessment.penalty == Decimal("500")
        assert assessment.is_overdue
        assert not assessment.is_late
        assert assessment.days_past_due == 4

    def test_last_day_of_grace_is_free(self):
        assessment = self.evaluator.evaluate(make_payment(), date(2024, 2, 18), SETTINGS)
        assert assessment.penalty == Decimal("0")
        assert not assessment.applies

    def test_not_yet_due(self):
        assessment = self.evaluator.evaluate(make_payment(), date(2024, 2, 1), SETTINGS)
        assert assessment.penalty == Decimal("0")
        assert assessment.days_past_due == 0

    def test_paid_late_is_judged_on_payment_date(self):
        payment = make_payment(status=PaymentStatus.PAID, paid_on=date(2024, 2, 20))
        # A much later "today" must not change the outcome
        assessment = self.evaluator.evaluate(payment, date(2024, 6, 1), SETTINGS)
        assert assessment.is_late
        assert assessment.penalty == Decimal("500")
        assert assessment.days_past_due == 5

    def test_paid_within_grace_has_no_penalty(self):
        payment = make_payment(status=PaymentStatus.PAID, paid_on=date(2024, 2, 17))
        assessment = self.evaluator.evaluate(payment, date(2024, 6, 1), SETTINGS)
        assert not assessment.is_late
        assert assessment.penalty == Decimal("0")

    def test_paid_without_date_has_no_penalty(self):
        payment = make_payment(status=PaymentStatus.PAID, paid_on=None)
        assessment = self.evaluator.evaluate(payment, date(2024, 6, 1), SETTINGS)
        assert assessment.penalty == Decimal("0")
        assert not assessment.applies

    def test_waived_penalty_is_always_zero(self):
        for as_of in (date(2024, 2, 19), date(2024, 12, 31)):
            assessment = self.evaluator.evaluate(make_payment(waived=True), as_of, SETTINGS)
            assert assessment.penalty == Decimal("0")
            assert assessment.waived_amount == Decimal("500")

    def test_deferred_penalty_is_tracked_separately(self):
        assessment = self.evaluator.evaluate(make_payment(deferred=True), date(2024, 3, 1), SETTINGS)
        assert assessment.penalty == Decimal("0")
        assert assessment.deferred_amount == Decimal("500")
        assert assessment.is_overdue

    def test_zero_grace(self):
        settings = PenaltySettings(penalty_amount=Decimal("250"), grace_period_days=0)
        assert self.evaluator.penalty_for(make_payment(), date(2024, 2, 15), settings) == Decimal("0")
        assert self.evaluator.penalty_for(make_payment(), date(2024, 2, 16), settings) == Decimal("250")

    def test_accepts_datetime_reference(self):
        as_of = datetime(2024, 2, 19, 8, 0, tzinfo=timezone.utc)
        assert self.evaluator.penalty_for(make_payment(), as_of, SETTINGS) == Decimal("500")


class TestPenaltySettingsStore:

    def test_defaults_when_nothing_stored(self, settings_store):
        settings = settings_store.get()
        assert settings.penalty_amount == Decimal("500")
        assert settings.grace_period_days == 3
        assert settings.is_default

    def test_admin_updates_settings(self, settings_store, audit):
        settings_store.update(Decimal("750"), 5, "admin")

        settings = settings_store.get()
        assert settings.penalty_amount == Decimal("750")
        assert settings.grace_period_days == 5
        assert settings.updated_by == "admin"
        assert not settings.is_default

        events = audit.get_events_for_entity("settings", "penalty_settings")
        assert len(events) == 1
        assert events[0].metadata["to"]["penalty_amount"] == "750"

    def test_non_admin_cannot_update(self, settings_store):
        with pytest.raises(PrerequisiteNotMet):
            settings_store.update(Decimal("750"), 5, "ap")
        assert settings_store.get().is_default

    @pytest.mark.parametrize("amount, grace", [
        (Decimal("-1"), 3),
        ("lots", 3),
        (Decimal("100"), -1),
        (Decimal("100"), 2.5),
    ])
    def test_rejects_invalid_values(self, settings_store, amount, grace):
        with pytest.raises(ValidationError):
            settings_store.update(amount, grace, "admin")

    def test_malformed_record_falls_back_to_defaults(self, settings_store, storage):
        storage.save("settings", "penalty_settings", {
            "id": "penalty_settings", "penalty_amount": "-20", "grace_period_days": 3,
        })
        settings = settings_store.get()
        assert settings.is_default
        assert settings.penalty_amount == Decimal("500")

    def test_storage_failure_falls_back_to_defaults(self, policy, lending_config):
        class BrokenStorage(InMemoryStorage):
            def load(self, table, record_id):
                raise StorageError("disk unavailable")

        store = PenaltySettingsStore(BrokenStorage(), policy, config=lending_config)
        assert store.get().is_default

    def test_update_publishes_event(self, settings_store, dispatcher):
        received = []
        dispatcher.subscribe(DomainEvent.PENALTY_SETTINGS_UPDATED, received.append)
        settings_store.set_event_dispatcher(dispatcher)

        settings_store.update(Decimal("600"), 2, "admin")

        assert len(received) == 1
        assert received[0].data["grace_period_days"] == 2
