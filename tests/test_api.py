"""
Integration tests for the lending API
Tests end-to-end workflows using FastAPI TestClient
"""

import inspect

import pytest
from fastapi.testclient import TestClient

from conftest import FixedClock
from coop_lending.api import create_app
from coop_lending.api import loans as loans_api
from coop_lending.api.dependencies import LendingSystem
from coop_lending.config import LendingConfig
from coop_lending.rbac import Role
from coop_lending.risk_client import MockRiskNarrativeClient
from coop_lending.storage import InMemoryStorage


def as_user(user_id):
    return {"X-Acting-User": user_id}


@pytest.fixture
def system():
    config = LendingConfig(use_sqlite=False, log_format="text", bootstrap_admin_id="admin")
    system = LendingSystem(
        storage=InMemoryStorage(),
        config=config,
        risk_client=MockRiskNarrativeClient(),
        clock=FixedClock(),
    )
    for user_id, role in (("bk", Role.BOOKKEEPER), ("pc", Role.PAYROLL_CHECKER),
                          ("ap", Role.APPROVER), ("clerk", Role.USER)):
        system.user_directory.create_user(user_id, user_id, role)
    return system


@pytest.fixture
def client(system):
    return TestClient(create_app(system))


def create_loan(client, **overrides):
    body = {
        "applicant_name": "Maria Santos",
        "amount": "10000",
        "payment_term": 6,
        "loan_type": "Cash Advance",
        "purpose": "Business Capital",
    }
    body.update(overrides)
    r = client.post("/loans", json=body, headers=as_user("clerk"))
    assert r.status_code == 201, r.text
    return r.json()


def release(client, loan_id):
    client.get(f"/loans/{loan_id}", headers=as_user("bk"))
    client.put(f"/loans/{loan_id}/salary", json={"salary": "25000"}, headers=as_user("pc"))
    assert client.post(f"/loans/{loan_id}/approve", json={}, headers=as_user("ap")).status_code == 200
    r = client.post(f"/loans/{loan_id}/release", json={}, headers=as_user("bk"))
    assert r.status_code == 200, r.text
    return r.json()


class TestHealthEndpoints:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "loans" in r.json()["endpoints"]


class TestLoanFlow:

    def test_create_and_get(self, client):
        loan = create_loan(client)
        assert loan["status"] == "pending"
        assert loan["loan_number"] == 1

        r = client.get(f"/loans/{loan['id']}")
        assert r.status_code == 200
        assert r.json()["applicant_name"] == "Maria Santos"

    def test_invalid_term(self, client):
        r = client.post("/loans", json={
            "applicant_name": "Maria Santos", "amount": "10000", "payment_term": 7,
            "loan_type": "Cash Advance", "purpose": "Business Capital",
        }, headers=as_user("clerk"))
        assert r.status_code == 422
        assert r.json()["error"] == "invalid_loan_terms"

    def test_bookkeeper_view_verifies(self, client):
        loan = create_loan(client)
        r = client.get(f"/loans/{loan['id']}", headers=as_user("bk"))
        assert r.json()["bookkeeper_checked"] is True

    def test_approve_without_checklist(self, client):
        loan = create_loan(client)
        client.put(f"/loans/{loan['id']}/salary", json={"salary": "25000"}, headers=as_user("pc"))

        r = client.post(f"/loans/{loan['id']}/approve", json={}, headers=as_user("ap"))

        assert r.status_code == 403
        assert r.json() == {
            "error": "prerequisite_not_met",
            "detail": "Bookkeeper must verify the loan before approval.",
            "retryable": False,
        }

    def test_missing_acting_user(self, client):
        loan = create_loan(client)
        r = client.post(f"/loans/{loan['id']}/approve", json={})
        assert r.status_code == 403

    def test_release_returns_schedule(self, client):
        loan = create_loan(client)
        body = release(client, loan["id"])

        assert body["loan"]["status"] == "released"
        assert [p["due_date"] for p in body["payments"]] == [
            "2024-02-15", "2024-03-15", "2024-04-15", "2024-05-15", "2024-06-15", "2024-07-15",
        ]
        assert body["payments"][-1]["principal_component"] == "1670"

    def test_release_twice_conflicts(self, client):
        loan = create_loan(client)
        release(client, loan["id"])
        r = client.post(f"/loans/{loan['id']}/release", json={}, headers=as_user("bk"))
        assert r.status_code == 409
        assert r.json()["error"] == "invalid_state_transition"
        assert r.json()["retryable"] is False

    def test_stale_version(self, client):
        loan = create_loan(client)
        client.get(f"/loans/{loan['id']}", headers=as_user("bk"))
        r = client.put(f"/loans/{loan['id']}/salary",
                       json={"salary": "25000", "expected_version": loan["version"]},
                       headers=as_user("pc"))
        assert r.status_code == 409
        assert r.json()["retryable"] is True

    def test_deny(self, client):
        loan = create_loan(client)
        client.put(f"/loans/{loan['id']}/salary", json={"salary": "8000"}, headers=as_user("pc"))
        r = client.post(f"/loans/{loan['id']}/deny", json={"remarks": "Over capacity"}, headers=as_user("ap"))
        assert r.status_code == 200
        assert r.json()["status"] == "denied"

    def test_list_by_status(self, client):
        first = create_loan(client)
        create_loan(client, applicant_name="Jose Rizal")
        release(client, first["id"])

        r = client.get("/loans", params={"status": "released"})
        assert [loan["id"] for loan in r.json()["loans"]] == [first["id"]]

        assert client.get("/loans", params={"status": "closed"}).status_code == 422

    def test_unknown_loan(self, client):
        r = client.get("/loans/missing")
        assert r.status_code == 404
        assert r.json()["error"] == "loan_not_found"

    def test_edit(self, client):
        loan = create_loan(client)
        r = client.patch(f"/loans/{loan['id']}", json={"amount": "8000"}, headers=as_user("clerk"))
        assert r.status_code == 200
        assert r.json()["amount"] == "8000"


class TestTransitionCommand:

    def test_command_success(self, client):
        loan = create_loan(client)
        r = client.post(f"/loans/{loan['id']}/transitions",
                        json={"transition": "set_salary", "payload": {"salary": "20000"}},
                        headers=as_user("pc"))
        assert r.status_code == 200
        assert r.json()["loan"]["payroll_checked"] is True

    def test_command_rejection(self, client):
        loan = create_loan(client)
        r = client.post(f"/loans/{loan['id']}/transitions",
                        json={"transition": "approve"}, headers=as_user("ap"))
        assert r.status_code == 403
        body = r.json()
        assert body["success"] is False
        assert body["detail"] == "Bookkeeper must verify the loan before approval."
        assert body["loan"]["status"] == "pending"


class TestPayments:

    def test_mark_paid_until_fully_paid(self, client):
        loan = create_loan(client, payment_term=3)
        payments = release(client, loan["id"])["payments"]

        for payment in payments:
            r = client.post(f"/loans/{loan['id']}/payments/{payment['id']}/pay",
                            json={"payment_date": payment["due_date"]}, headers=as_user("bk"))
            assert r.status_code == 200

        assert r.json()["loan"]["status"] == "fully-paid"

        again = client.post(f"/loans/{loan['id']}/payments/{payments[0]['id']}/pay",
                            json={}, headers=as_user("bk"))
        assert again.json()["changed"] is False

    def test_payments_include_penalty(self, client):
        loan = create_loan(client)
        release(client, loan["id"])

        r = client.get(f"/loans/{loan['id']}/payments")
        body = r.json()
        assert len(body["payments"]) == 6
        assert body["payments"][0]["penalty"]["penalty"] == "0"
        assert body["penalty_settings"]["grace_period_days"] == 3

    def test_waive_and_defer(self, client):
        loan = create_loan(client)
        payments = release(client, loan["id"])["payments"]

        r = client.post(f"/loans/{loan['id']}/payments/{payments[0]['id']}/waive-penalty",
                        headers=as_user("ap"))
        assert r.json()["payment"]["penalty_waived"] is True

        r = client.post(f"/loans/{loan['id']}/payments/{payments[0]['id']}/defer-penalty",
                        headers=as_user("ap"))
        assert r.status_code == 422

    def test_unknown_payment(self, client):
        loan = create_loan(client)
        release(client, loan["id"])
        r = client.post(f"/loans/{loan['id']}/payments/nope/pay", json={}, headers=as_user("bk"))
        assert r.status_code == 404


class TestApplicantViews:

    def test_compliance_and_other_loans(self, client):
        previous = create_loan(client)
        release(client, previous["id"])
        current = create_loan(client)

        compliance = client.get(f"/loans/{current['id']}/compliance").json()
        assert compliance["risk_tier"] == "low"
        assert compliance["evaluated_count"] == 0

        others = client.get(f"/loans/{current['id']}/other-loans").json()["loans"]
        assert [loan["id"] for loan in others] == [previous["id"]]

    def test_risk_narrative(self, client):
        loan = create_loan(client)
        assert client.get(f"/loans/{loan['id']}/risk-narrative").status_code == 422

        client.put(f"/loans/{loan['id']}/salary", json={"salary": "25000"}, headers=as_user("pc"))
        r = client.get(f"/loans/{loan['id']}/risk-narrative")
        assert r.status_code == 200
        assert r.json()["risk_score"] == 10

    def test_risk_narrative_runs_in_threadpool(self):
        assert not inspect.iscoroutinefunction(loans_api.risk_narrative)


class TestComputations:

    def test_amortization(self, client):
        r = client.post("/compute/amortization", json={"principal": "10000", "term": 6})
        body = r.json()
        assert body["net_proceeds"] == "7784.00"
        assert [row["principal"] for row in body["schedule"]][-1] == "1670"

    def test_schedule_preview(self, client):
        r = client.post("/compute/schedule",
                        json={"principal": "10000", "term": 3, "released_at": "2024-01-31"})
        assert [p["due_date"] for p in r.json()["payments"]] == ["2024-02-29", "2024-03-31", "2024-04-30"]

    def test_penalty(self, client):
        r = client.post("/compute/penalty", json={"due_date": "2024-02-15", "as_of": "2024-02-19"})
        assert r.json()["assessment"]["penalty"] == "500"

    def test_compliance(self, client):
        r = client.post("/compute/compliance", json={
            "as_of": "2024-06-01",
            "payments": [
                {"due_date": "2024-02-15", "status": "paid", "payment_date": "2024-02-15"},
                {"due_date": "2024-05-01"},
            ],
        })
        body = r.json()
        assert body["past_due"] == 1
        assert body["risk_tier"] == "critical"


class TestAdministration:

    def test_penalty_settings(self, client):
        assert client.get("/settings/penalty").json()["penalty_amount"] == "500"

        r = client.put("/settings/penalty", json={"penalty_amount": "300", "grace_period_days": 5},
                       headers=as_user("admin"))
        assert r.status_code == 200
        assert client.get("/settings/penalty").json()["grace_period_days"] == 5

        denied = client.put("/settings/penalty", json={"penalty_amount": "1", "grace_period_days": 0},
                            headers=as_user("ap"))
        assert denied.status_code == 403

    def test_users(self, client):
        r = client.post("/users", json={"user_id": "u-9", "username": "Lia"}, headers=as_user("admin"))
        assert r.status_code == 201
        assert r.json()["role"] == "user"

        r = client.put("/users/u-9/role", json={"role": "approver"}, headers=as_user("admin"))
        assert r.json()["role"] == "approver"

        assert client.put("/users/u-9/role", json={"role": "admin"},
                          headers=as_user("u-9")).status_code == 403
        assert client.post("/users", json={"user_id": "u-10", "username": "X"},
                           headers=as_user("bk")).status_code == 403


class TestCollectionsAndReports:

    def test_past_due_and_penalties(self, client):
        loan = create_loan(client)
        release(client, loan["id"])

        r = client.get("/collections/past-due", params={"as_of": "2024-03-20"})
        assert r.json()["count"] == 2

        r = client.get("/collections/penalties", params={"as_of": "2024-03-20"})
        assert r.json()["total_penalty"] == "1000"

    def test_portfolio_report(self, client):
        create_loan(client)
        r = client.get("/reports/portfolio")
        assert r.json()["totals"]["total_loans"] == 1

        csv_report = client.get("/reports/portfolio", params={"format": "csv"})
        assert csv_report.headers["content-type"].startswith("text/csv")
        assert csv_report.text.startswith("month,count,amount")

        assert client.get("/reports/portfolio", params={"format": "xml"}).status_code == 422
