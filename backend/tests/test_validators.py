from datetime import datetime, timezone
from decimal import Decimal

import pytest

from revsplit.api.validators import (
    ApiValidationError,
    parse_client,
    parse_invoice,
    parse_optional_int,
    parse_recurring_invoice,
    parse_split_request,
    parse_team_member,
    parse_timestamp,
)


def _fields(exc_info):
    return {e.field for e in exc_info.value.errors}


def test_parse_client_reports_all_fields():
    with pytest.raises(ApiValidationError) as exc:
        parse_client({"email": "not-an-email", "phone": 5})
    assert _fields(exc) == {"name", "email", "phone"}


def test_parse_client_partial_only_keeps_given_fields():
    assert parse_client({"phone": " 555 "}, partial=True) == {"phone": "555"}


def test_parse_client_rejects_non_object():
    with pytest.raises(ApiValidationError) as exc:
        parse_client(["x"])
    assert _fields(exc) == {"body", "name", "email"}


def test_parse_team_member_percentage_above_100():
    with pytest.raises(ApiValidationError) as exc:
        parse_team_member({"contribution": 150, "contribution_type": "percentage"})
    assert _fields(exc) == {"contribution"}


def test_parse_team_member_fixed_above_100_is_fine():
    values = parse_team_member({"name": "Dev", "contribution": "150.50", "contribution_type": "fixed"})
    assert values["contribution"] == Decimal("150.50")


def test_parse_invoice_with_items_derives_amounts_and_skips_totals():
    payload = parse_invoice(
        {
            "invoice_number": "INV-1",
            "issue_date": "2024-03-01",
            "due_date": "2024-03-31",
            "line_items": [{"description": "Design", "quantity": 2, "rate": "150.00", "tax": 10}],
        }
    )

    assert "total" not in payload.values
    assert payload.values["project_id"] is None
    assert payload.line_items[0]["amount"] == Decimal("300.00")
    assert payload.line_items[0]["tax"] == Decimal("10")


def test_parse_invoice_without_items_requires_totals():
    with pytest.raises(ApiValidationError) as exc:
        parse_invoice({"invoice_number": "INV-1", "issue_date": "2024-03-01", "due_date": "2024-03-31"})
    assert _fields(exc) == {"subtotal", "tax", "total"}


def test_parse_invoice_prefixes_line_item_errors():
    with pytest.raises(ApiValidationError) as exc:
        parse_invoice(
            {
                "invoice_number": "INV-1",
                "issue_date": "2024-03-01",
                "due_date": "2024-03-31",
                "line_items": [{"description": "ok", "quantity": 1, "rate": 1}, {"description": "", "quantity": -1, "rate": 1}],
            }
        )
    assert _fields(exc) == {"line_items.1.description", "line_items.1.quantity"}


def test_parse_invoice_due_before_issue():
    with pytest.raises(ApiValidationError) as exc:
        parse_invoice(
            {
                "invoice_number": "INV-1",
                "subtotal": 1,
                "tax": 0,
                "total": 1,
                "issue_date": "2024-03-10",
                "due_date": "2024-03-01",
            }
        )
    assert _fields(exc) == {"due_date"}


def test_parse_invoice_unknown_status():
    with pytest.raises(ApiValidationError) as exc:
        parse_invoice({"status": "void"}, partial=True)
    assert _fields(exc) == {"status"}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2024-03-01", datetime(2024, 3, 1, tzinfo=timezone.utc)),
        ("2024-03-01T10:00:00Z", datetime(2024, 3, 1, 10, tzinfo=timezone.utc)),
        ("2024-03-01T10:00:00+00:00", datetime(2024, 3, 1, 10, tzinfo=timezone.utc)),
    ],
)
def test_parse_timestamp(raw, expected):
    assert parse_timestamp(raw) == expected


@pytest.mark.parametrize("raw", ["", "yesterday", 20240301, None])
def test_parse_timestamp_rejects(raw):
    with pytest.raises(ValueError):
        parse_timestamp(raw)


def test_parse_optional_int():
    assert parse_optional_int(None, "client_id") is None
    assert parse_optional_int("", "client_id") is None
    assert parse_optional_int("7", "client_id") == 7
    with pytest.raises(ApiValidationError):
        parse_optional_int("seven", "client_id")


def test_parse_recurring_invoice_defaults():
    values = parse_recurring_invoice({"frequency": "weekly", "next_issue_date": "2024-01-01"})

    assert values["template"] == {}
    assert values["project_id"] is None
    assert "enabled" not in values


def test_parse_recurring_invoice_unknown_frequency():
    with pytest.raises(ApiValidationError) as exc:
        parse_recurring_invoice({"frequency": "yearly", "next_issue_date": "2024-01-01", "template": []})
    assert _fields(exc) == {"frequency", "template"}


def test_parse_split_request_uses_default_profit_and_agent_name_alias():
    req = parse_split_request(
        {
            "total_amount": 1000,
            "team_members": [{"role": "dev", "contribution_type": "fixed", "contribution": 100}],
            "agent": {"name": " Ana ", "rate": 10},
        },
        default_profit_percentage="25",
    )

    assert req.company_profit_percentage == "25"
    assert req.agent.agent_name == "Ana"
    assert req.team_members[0].contribution == 100
    assert req.invoice_id is None


def test_parse_split_request_needs_total_or_invoice():
    with pytest.raises(ApiValidationError) as exc:
        parse_split_request({"team_members": "x", "project_id": "1"}, default_profit_percentage="25")
    assert _fields(exc) == {"total_amount", "team_members", "project_id"}


def test_parse_split_request_reports_structure_and_ranges_together():
    body = {
        "total_amount": 100,
        "team_members": ["oops", {"role": "dev", "contribution_type": "percentage", "contribution": 150}],
        "agent": {"agent_name": "Ana", "rate": 150},
        "company_profit_percentage": 120,
    }

    with pytest.raises(ApiValidationError) as exc:
        parse_split_request(body, default_profit_percentage="25")

    assert _fields(exc) == {
        "team_members.0",
        "team_members.1.contribution",
        "agent.rate",
        "company_profit_percentage",
    }


def test_parse_split_request_for_record_needs_project_and_agent_name():
    body = {"total_amount": 100, "agent": {"rate": 150}}

    with pytest.raises(ApiValidationError) as exc:
        parse_split_request(body, default_profit_percentage="25", for_record=True)

    assert _fields(exc) == {"project_id", "agent.agent_name", "agent.rate"}


def test_parse_split_request_member_name_and_role_must_be_strings():
    body = {
        "total_amount": 100,
        "team_members": [{"name": 7, "role": ["dev"], "contribution_type": "fixed", "contribution": 10}],
    }

    with pytest.raises(ApiValidationError) as exc:
        parse_split_request(body, default_profit_percentage="25")

    assert _fields(exc) == {"team_members.0.name", "team_members.0.role"}


def test_parse_split_request_trims_member_name():
    body = {
        "total_amount": 100,
        "team_members": [{"name": " Dev ", "contribution_type": "fixed", "contribution": 10}],
    }

    req = parse_split_request(body, default_profit_percentage="25")

    assert req.team_members[0].name == "Dev"
    assert req.team_members[0].role == ""
