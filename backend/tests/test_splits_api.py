from decimal import Decimal

import pytest

from revsplit import create_app
from revsplit.domain.models import Invoice


@pytest.fixture()
def app():
    return create_app({"TESTING": True, "DATABASE_URL": "", "DEFAULT_COMPANY_PROFIT_PERCENTAGE": "25"})


@pytest.fixture()
def client(app):
    return app.test_client()


SPLIT = {
    "total_amount": 1000,
    "team_members": [
        {"name": "Dev", "role": "developer", "contribution_type": "percentage", "contribution": 40},
        {"name": "PM", "role": "manager", "contribution_type": "fixed", "contribution": 100},
    ],
    "agent": {"agent_name": "Ana", "rate": 10},
    "company_profit_percentage": 25,
}


def test_preview_returns_rounded_split_and_unallocated(client):
    r = client.post("/api/revenue-splits/preview", json=SPLIT)

    assert r.status_code == 200
    assert r.get_json() == {
        "total_amount": "1000.00",
        "team_total": "500.00",
        "commission": "100.00",
        "company_profit": "250.00",
        "unallocated": "150.00",
        "over_allocated": False,
    }


def test_preview_uses_configured_default_profit(client):
    r = client.post("/api/revenue-splits/preview", json={"total_amount": "100"})

    body = r.get_json()
    assert body["company_profit"] == "25.00"
    assert body["unallocated"] == "75.00"


def test_preview_flags_over_allocation(client):
    body = {
        "total_amount": 100,
        "team_members": [{"role": "dev", "contribution_type": "percentage", "contribution": 60}],
        "agent": {"agent_name": "Ana", "rate": 50},
        "company_profit_percentage": 25,
    }

    r = client.post("/api/revenue-splits/preview", json=body)

    assert r.status_code == 200
    assert r.get_json()["company_profit"] == "-10.00"
    assert r.get_json()["over_allocated"] is True


def test_preview_reports_all_invalid_fields(client):
    body = {
        "total_amount": -1,
        "team_members": [{"role": "dev", "contribution_type": "percentage", "contribution": 101}],
        "agent": {"agent_name": "Ana", "rate": "lots"},
        "company_profit_percentage": 25,
    }

    r = client.post("/api/revenue-splits/preview", json=body)

    assert r.status_code == 400
    error = r.get_json()["error"]
    assert error["code"] == "invalid_input"
    assert {f["field"] for f in error["fields"]} == {
        "total_amount",
        "team_members.0.contribution",
        "agent.rate",
    }


def test_preview_takes_total_from_invoice(client, monkeypatch):
    class FakeRepo:
        def get_invoice(self, *, invoice_id):
            assert invoice_id == 3
            return Invoice(
                id=3, invoice_number="INV-3", project_id=None,
                subtotal=Decimal("200.00"), tax=Decimal("0.00"), total=Decimal("200.00"),
                issue_date=None, due_date=None,  # type: ignore[arg-type]
            )

    monkeypatch.setattr("revsplit.api.deps.get_repo", lambda: FakeRepo())

    r = client.post("/api/revenue-splits/preview", json={"invoice_id": 3, "company_profit_percentage": 10})

    assert r.status_code == 200
    assert r.get_json()["total_amount"] == "200.00"
    assert r.get_json()["company_profit"] == "20.00"


def test_preview_unknown_invoice(client):
    r = client.post("/api/revenue-splits/preview", json={"invoice_id": 42})
    assert r.status_code == 404


def test_record_split_persists_summary_members_and_commission(client):
    client.post("/api/projects", json={"name": "Website"})

    r = client.post("/api/revenue-splits", json={**SPLIT, "project_id": 1})

    assert r.status_code == 201
    body = r.get_json()
    assert body["project_id"] == 1
    assert body["team_total"] == "500.00"
    assert body["company_profit"] == "250.00"
    assert body["unallocated"] == "150.00"
    assert [m["contribution_type"] for m in body["team_members"]] == ["percentage", "fixed"]
    assert body["project_commission"]["agent_name"] == "Ana"

    members = client.get("/api/projects/1/team-members").get_json()
    assert [m["name"] for m in members] == ["Dev", "PM"]
    assert client.get("/api/projects/1/commission").get_json()["rate"] == "10"
    assert len(client.get("/api/project-split-summaries?project_id=1").get_json()) == 1


def test_record_split_for_invoice_is_retrievable(client):
    client.post("/api/projects", json={"name": "Website"})
    client.post(
        "/api/invoices",
        json={"invoice_number": "INV-1", "project_id": 1, "subtotal": "400", "tax": "0", "total": "400",
              "issue_date": "2024-03-01", "due_date": "2024-03-31"},
    )

    r = client.post("/api/revenue-splits", json={"project_id": 1, "invoice_id": 1, "team_members": []})
    assert r.status_code == 201

    r = client.get("/api/projects/1/invoices/1/split-summary")
    assert r.status_code == 200
    assert r.get_json()["total_amount"] == "400.00"
    assert r.get_json()["company_profit"] == "100.00"

    assert client.get("/api/projects/1/invoices/2/split-summary").status_code == 404


def test_record_split_rejects_over_allocation_without_writing(client):
    client.post("/api/projects", json={"name": "Website"})
    body = {
        "project_id": 1,
        "total_amount": 100,
        "team_members": [{"role": "dev", "contribution_type": "percentage", "contribution": 60}],
        "agent": {"agent_name": "Ana", "rate": 50},
    }

    r = client.post("/api/revenue-splits", json=body)

    assert r.status_code == 422
    assert r.get_json()["error"]["code"] == "over_allocated"
    assert client.get("/api/project-split-summaries").get_json() == []
    assert client.get("/api/projects/1/team-members").get_json() == []


def test_record_split_second_commission_conflicts_without_writing(client):
    client.post("/api/projects", json={"name": "Website"})
    assert client.post("/api/revenue-splits", json={**SPLIT, "project_id": 1}).status_code == 201

    r = client.post("/api/revenue-splits", json={**SPLIT, "project_id": 1})

    assert r.status_code == 409
    assert len(client.get("/api/project-split-summaries").get_json()) == 1
    assert len(client.get("/api/projects/1/team-members").get_json()) == 2


def test_record_split_requires_project(client):
    r = client.post("/api/revenue-splits", json=SPLIT)
    assert r.status_code == 400
    assert [f["field"] for f in r.get_json()["error"]["fields"]] == ["project_id"]

    r = client.post("/api/revenue-splits", json={**SPLIT, "project_id": 9})
    assert r.status_code == 404


def test_record_split_requires_agent_name(client):
    client.post("/api/projects", json={"name": "Website"})
    r = client.post("/api/revenue-splits", json={**SPLIT, "project_id": 1, "agent": {"rate": 10}})

    assert r.status_code == 400
    assert [f["field"] for f in r.get_json()["error"]["fields"]] == ["agent.agent_name"]


def test_create_split_summary_directly(client):
    values = {"project_id": 1, "total_amount": "100", "team_total": "40", "commission": "10", "company_profit": "25"}

    r = client.post("/api/project-split-summaries", json=values)

    assert r.status_code == 201
    assert r.get_json()["invoice_id"] is None


def test_create_split_summary_rejects_negative_profit(client):
    values = {"total_amount": "100", "team_total": "60", "commission": "50", "company_profit": "-10"}
    assert client.post("/api/project-split-summaries", json=values).status_code == 422


def test_create_split_summary_rejects_shares_above_total(client):
    values = {"total_amount": "100", "team_total": "60", "commission": "30", "company_profit": "25"}
    r = client.post("/api/project-split-summaries", json=values)
    assert r.status_code == 400
    assert r.get_json()["error"]["fields"][0]["field"] == "total_amount"


def test_record_split_rejects_shares_that_only_overflow_after_rounding(client):
    client.post("/api/projects", json={"name": "Website"})
    body = {
        "project_id": 1,
        "total_amount": "0.03",
        "team_members": [{"role": "dev", "contribution_type": "percentage", "contribution": 50}],
        "agent": {"agent_name": "Ana", "rate": 50},
        "company_profit_percentage": 0,
    }

    r = client.post("/api/revenue-splits", json=body)

    assert r.status_code == 422
    assert client.get("/api/project-split-summaries").get_json() == []
    assert client.get("/api/projects/1/commission").status_code == 404

    r = client.post("/api/revenue-splits/preview", json=body)
    preview = r.get_json()
    assert preview["company_profit"] == "-0.01"
    assert preview["unallocated"] == "0.00"
    assert preview["over_allocated"] is True


def test_recorded_snapshot_is_accepted_as_a_summary(client):
    client.post("/api/projects", json={"name": "Website"})
    # 0.015 + 0.015 rounds to 0.02 + 0.02; the company share gives back the extra cent
    body = {
        "project_id": 1,
        "total_amount": "0.03",
        "team_members": [{"role": "dev", "contribution_type": "percentage", "contribution": 50}],
        "company_profit_percentage": 50,
    }

    r = client.post("/api/revenue-splits", json=body)
    assert r.status_code == 201
    recorded = r.get_json()
    assert (recorded["team_total"], recorded["company_profit"]) == ("0.02", "0.01")
    snapshot = {k: recorded[k] for k in ("total_amount", "team_total", "commission", "company_profit")}

    assert client.post("/api/project-split-summaries", json=snapshot).status_code == 201


def test_preview_lists_request_and_range_errors_together(client):
    body = {
        "total_amount": 100,
        "team_members": ["oops"],
        "agent": {"agent_name": "Ana", "rate": 150},
        "company_profit_percentage": 120,
    }

    r = client.post("/api/revenue-splits/preview", json=body)

    assert r.status_code == 400
    fields = {f["field"] for f in r.get_json()["error"]["fields"]}
    assert fields == {"team_members.0", "agent.rate", "company_profit_percentage"}


def test_record_split_lists_missing_project_with_range_errors(client):
    r = client.post("/api/revenue-splits", json={**SPLIT, "agent": {"agent_name": "Ana", "rate": 150}})

    assert r.status_code == 400
    fields = {f["field"] for f in r.get_json()["error"]["fields"]}
    assert fields == {"project_id", "agent.rate"}


def test_record_split_unknown_invoice_with_explicit_total(client):
    client.post("/api/projects", json={"name": "Website"})

    r = client.post("/api/revenue-splits", json={"project_id": 1, "invoice_id": 999, "total_amount": 100})

    assert r.status_code == 404
    assert client.get("/api/project-split-summaries").get_json() == []


def test_preview_unknown_invoice_with_explicit_total(client):
    r = client.post("/api/revenue-splits/preview", json={"invoice_id": 999, "total_amount": 100})
    assert r.status_code == 404
