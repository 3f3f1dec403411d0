"""
Shared fixtures: an in-memory lending core with one user per role and a
clock pinned to a known release date.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from coop_lending.audit import AuditTrail
from coop_lending.config import LendingConfig
from coop_lending.events import EventDispatcher
from coop_lending.lifecycle import LoanStateMachine
from coop_lending.loans import LoanRepository
from coop_lending.penalties import PenaltySettingsStore
from coop_lending.rbac import Role, StaticRolePolicy
from coop_lending.storage import InMemoryStorage


RELEASE_TIME = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)

ROLES = {
    "admin": Role.ADMIN,
    "bk": Role.BOOKKEEPER,
    "pc": Role.PAYROLL_CHECKER,
    "ap": Role.APPROVER,
    "clerk": Role.USER,
}


class FixedClock:
    """Callable clock that tests can move forward"""

    def __init__(self, now: datetime = RELEASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def policy():
    return StaticRolePolicy(dict(ROLES))


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def audit(storage):
    return AuditTrail(storage)


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def repository(storage):
    return LoanRepository(storage)


@pytest.fixture
def lending_config():
    return LendingConfig(use_sqlite=False, default_penalty_amount="500", default_grace_period_days=3)


@pytest.fixture
def settings_store(storage, policy, audit, lending_config):
    return PenaltySettingsStore(storage, policy, audit, lending_config)


@pytest.fixture
def machine(repository, policy, audit, dispatcher, clock):
    return LoanStateMachine(repository, policy, audit=audit, dispatcher=dispatcher, clock=clock)


def submit(machine, name="Maria Santos", amount=Decimal("10000"), term=6, acting_user="clerk"):
    return machine.submit_application(
        applicant_name=name,
        amount=amount,
        payment_term=term,
        loan_type="Cash Advance",
        purpose="Tuition Fee",
        acting_user=acting_user,
    )


def approved_loan(machine, **kwargs):
    loan = submit(machine, **kwargs)
    machine.observe(loan.id, "bk")
    machine.set_salary(loan.id, Decimal("25000"), "pc")
    return machine.approve(loan.id, "ap")


def released_loan(machine, **kwargs):
    loan = approved_loan(machine, **kwargs)
    return machine.release(loan.id, "bk")
