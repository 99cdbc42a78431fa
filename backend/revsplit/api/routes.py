from __future__ import annotations

import json

from flask import Blueprint, Response, jsonify, request

from revsplit.api import deps
from revsplit.api.responses import json_error, register_error_handlers, to_json
from revsplit.api.validators import (
    ApiValidationError,
    parse_client,
    parse_commission,
    parse_invoice,
    parse_line_item,
    parse_optional_int,
    parse_project,
    parse_recurring_invoice,
    parse_team_member,
)
from revsplit.domain.invoice_math import line_item_amount
from revsplit.domain.models import INVOICE_STATUSES, PROJECT_STATUSES
from revsplit.domain.revenue_split import FieldError
from revsplit.services.invoicing import (
    build_invoice_document,
    create_invoice_with_items,
    issue_recurring_invoice,
    refresh_invoice_totals,
)

api_bp = Blueprint("api", __name__, url_prefix="/api")
register_error_handlers(api_bp)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise ApiValidationError("Request body must be JSON.", [FieldError("body", "must be JSON")])
    return data


def _not_found(what: str):
    return json_error(f"{what} not found.", status=404, code="not_found")


def _status_filter(name: str, choices):
    status = request.args.get(name) or None
    if status is not None and status not in choices:
        raise ApiValidationError(f"'{name}' must be one of: " + ", ".join(choices), [FieldError(name, "unknown status")])
    return status


@api_bp.get("/health")
def health():
    return jsonify({"status": "ok"}), 200


# clients


@api_bp.get("/clients")
def list_clients():
    search = request.args.get("search", "").strip() or None
    return jsonify(to_json(deps.get_repo().list_clients(search=search))), 200


@api_bp.get("/clients/<int:client_id>")
def get_client(client_id: int):
    client = deps.get_repo().get_client(client_id=client_id)
    if client is None:
        return _not_found("Client")
    return jsonify(to_json(client)), 200


@api_bp.post("/clients")
def create_client():
    values = parse_client(_json_body())
    client = deps.get_repo().create_client(values=values)
    return jsonify(to_json(client)), 201


@api_bp.put("/clients/<int:client_id>")
def update_client(client_id: int):
    values = parse_client(_json_body(), partial=True)
    client = deps.get_repo().update_client(client_id=client_id, values=values)
    if client is None:
        return _not_found("Client")
    return jsonify(to_json(client)), 200


@api_bp.delete("/clients/<int:client_id>")
def delete_client(client_id: int):
    if not deps.get_repo().delete_client(client_id=client_id):
        return _not_found("Client")
    return "", 204


# projects


@api_bp.get("/projects")
def list_projects():
    client_id = parse_optional_int(request.args.get("client_id"), "client_id")
    status = _status_filter("status", PROJECT_STATUSES)
    projects = deps.get_repo().list_projects(client_id=client_id, status=status)
    return jsonify(to_json(projects)), 200


@api_bp.get("/projects/<int:project_id>")
def get_project(project_id: int):
    project = deps.get_repo().get_project(project_id=project_id)
    if project is None:
        return _not_found("Project")
    return jsonify(to_json(project)), 200


@api_bp.post("/projects")
def create_project():
    values = parse_project(_json_body())
    project = deps.get_repo().create_project(values=values)
    return jsonify(to_json(project)), 201


@api_bp.put("/projects/<int:project_id>")
def update_project(project_id: int):
    values = parse_project(_json_body(), partial=True)
    project = deps.get_repo().update_project(project_id=project_id, values=values)
    if project is None:
        return _not_found("Project")
    return jsonify(to_json(project)), 200


@api_bp.delete("/projects/<int:project_id>")
def delete_project(project_id: int):
    if not deps.get_repo().delete_project(project_id=project_id):
        return _not_found("Project")
    return "", 204


# team members


@api_bp.get("/projects/<int:project_id>/team-members")
def list_team_members(project_id: int):
    members = deps.get_repo().list_team_members(project_id=project_id)
    return jsonify(to_json(members)), 200


@api_bp.post("/projects/<int:project_id>/team-members")
def create_team_member(project_id: int):
    values = parse_team_member(_json_body())
    repo = deps.get_repo()
    if repo.get_project(project_id=project_id) is None:
        return _not_found("Project")
    member = repo.create_team_member(project_id=project_id, values=values)
    return jsonify(to_json(member)), 201


@api_bp.put("/project-team-members/<int:member_id>")
def update_team_member(member_id: int):
    values = parse_team_member(_json_body(), partial=True)
    repo = deps.get_repo()

    # A partial update can still push a percentage above 100 by changing
    # only one of the two fields; check the merged row.
    existing = repo.get_team_member(member_id=member_id)
    if existing is None:
        return _not_found("Team member")
    merged = {
        "contribution": values.get("contribution", existing.contribution),
        "contribution_type": values.get("contribution_type", existing.contribution_type),
    }
    parse_team_member(to_json(merged))

    member = repo.update_team_member(member_id=member_id, values=values)
    if member is None:
        return _not_found("Team member")
    return jsonify(to_json(member)), 200


@api_bp.delete("/project-team-members/<int:member_id>")
def delete_team_member(member_id: int):
    if not deps.get_repo().delete_team_member(member_id=member_id):
        return _not_found("Team member")
    return "", 204


# commission


@api_bp.get("/projects/<int:project_id>/commission")
def get_commission(project_id: int):
    commission = deps.get_repo().get_project_commission(project_id=project_id)
    if commission is None:
        return _not_found("Commission")
    return jsonify(to_json(commission)), 200


@api_bp.post("/projects/<int:project_id>/commission")
def create_commission(project_id: int):
    values = parse_commission(_json_body())
    repo = deps.get_repo()
    if repo.get_project(project_id=project_id) is None:
        return _not_found("Project")
    if repo.get_project_commission(project_id=project_id) is not None:
        return json_error("Commission for this project already exists.", status=409, code="conflict")
    commission = repo.create_commission(project_id=project_id, values=values)
    return jsonify(to_json(commission)), 201


@api_bp.put("/project-commissions/<int:commission_id>")
def update_commission(commission_id: int):
    values = parse_commission(_json_body(), partial=True)
    commission = deps.get_repo().update_commission(commission_id=commission_id, values=values)
    if commission is None:
        return _not_found("Commission")
    return jsonify(to_json(commission)), 200


@api_bp.delete("/project-commissions/<int:commission_id>")
def delete_commission(commission_id: int):
    if not deps.get_repo().delete_commission(commission_id=commission_id):
        return _not_found("Commission")
    return "", 204


# invoices


@api_bp.get("/invoices")
def list_invoices():
    status = _status_filter("status", INVOICE_STATUSES)
    return jsonify(to_json(deps.get_repo().list_invoices(status=status))), 200


@api_bp.get("/projects/<int:project_id>/invoices")
def list_project_invoices(project_id: int):
    return jsonify(to_json(deps.get_repo().list_invoices(project_id=project_id))), 200


@api_bp.get("/invoices/<int:invoice_id>")
def get_invoice(invoice_id: int):
    invoice = deps.get_repo().get_invoice(invoice_id=invoice_id)
    if invoice is None:
        return _not_found("Invoice")
    return jsonify(to_json(invoice)), 200


@api_bp.post("/invoices")
def create_invoice():
    payload = parse_invoice(_json_body())
    invoice, items = create_invoice_with_items(
        deps.get_repo(), values=payload.values, line_items=payload.line_items
    )
    body = to_json(invoice)
    body["line_items"] = to_json(items)
    return jsonify(body), 201


@api_bp.put("/invoices/<int:invoice_id>")
def update_invoice(invoice_id: int):
    payload = parse_invoice(_json_body(), partial=True)
    repo = deps.get_repo()

    # Changing only one of the dates must still keep due_date >= issue_date.
    if "issue_date" in payload.values or "due_date" in payload.values:
        existing = repo.get_invoice(invoice_id=invoice_id)
        if existing is None:
            return _not_found("Invoice")
        issue = payload.values.get("issue_date") or existing.issue_date
        due = payload.values.get("due_date") or existing.due_date
        if due < issue:
            raise ApiValidationError(
                "Invalid invoice.", [FieldError("due_date", "must not be before issue_date")]
            )

    invoice = repo.update_invoice(invoice_id=invoice_id, values=payload.values)
    if invoice is None:
        return _not_found("Invoice")
    return jsonify(to_json(invoice)), 200


@api_bp.delete("/invoices/<int:invoice_id>")
def delete_invoice(invoice_id: int):
    if not deps.get_repo().delete_invoice(invoice_id=invoice_id):
        return _not_found("Invoice")
    return "", 204


@api_bp.get("/invoices/<int:invoice_id>/export")
def export_invoice(invoice_id: int):
    repo = deps.get_repo()
    invoice = repo.get_invoice(invoice_id=invoice_id)
    if invoice is None:
        return _not_found("Invoice")
    document = to_json(build_invoice_document(repo, invoice))
    filename = f"invoice-{invoice.invoice_number}.json"
    return Response(
        json.dumps(document, indent=2),
        status=200,
        mimetype="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# line items


@api_bp.get("/invoices/<int:invoice_id>/line-items")
def list_line_items(invoice_id: int):
    return jsonify(to_json(deps.get_repo().list_line_items(invoice_id=invoice_id))), 200


@api_bp.post("/invoices/<int:invoice_id>/line-items")
def create_line_item(invoice_id: int):
    values = parse_line_item(_json_body())
    repo = deps.get_repo()
    if repo.get_invoice(invoice_id=invoice_id) is None:
        return _not_found("Invoice")
    item = repo.create_line_item(invoice_id=invoice_id, values=values)
    refresh_invoice_totals(repo, invoice_id=invoice_id)
    return jsonify(to_json(item)), 201


@api_bp.put("/invoice-line-items/<int:item_id>")
def update_line_item(item_id: int):
    values = parse_line_item(_json_body(), partial=True)
    repo = deps.get_repo()
    existing = repo.get_line_item(item_id=item_id)
    if existing is None:
        return _not_found("Line item")

    if "amount" not in values and ("quantity" in values or "rate" in values):
        values["amount"] = line_item_amount(
            values.get("quantity", existing.quantity), values.get("rate", existing.rate)
        )

    item = repo.update_line_item(item_id=item_id, values=values)
    refresh_invoice_totals(repo, invoice_id=existing.invoice_id)
    return jsonify(to_json(item)), 200


@api_bp.delete("/invoice-line-items/<int:item_id>")
def delete_line_item(item_id: int):
    repo = deps.get_repo()
    existing = repo.get_line_item(item_id=item_id)
    if existing is None or not repo.delete_line_item(item_id=item_id):
        return _not_found("Line item")
    refresh_invoice_totals(repo, invoice_id=existing.invoice_id)
    return "", 204


# recurring invoices


@api_bp.get("/recurring-invoices")
def list_recurring_invoices():
    return jsonify(to_json(deps.get_repo().list_recurring_invoices())), 200


@api_bp.get("/recurring-invoices/<int:recurring_id>")
def get_recurring_invoice(recurring_id: int):
    schedule = deps.get_repo().get_recurring_invoice(recurring_id=recurring_id)
    if schedule is None:
        return _not_found("Recurring invoice")
    return jsonify(to_json(schedule)), 200


@api_bp.post("/recurring-invoices")
def create_recurring_invoice():
    values = parse_recurring_invoice(_json_body())
    schedule = deps.get_repo().create_recurring_invoice(values=values)
    return jsonify(to_json(schedule)), 201


@api_bp.put("/recurring-invoices/<int:recurring_id>")
def update_recurring_invoice(recurring_id: int):
    values = parse_recurring_invoice(_json_body(), partial=True)
    schedule = deps.get_repo().update_recurring_invoice(recurring_id=recurring_id, values=values)
    if schedule is None:
        return _not_found("Recurring invoice")
    return jsonify(to_json(schedule)), 200


@api_bp.delete("/recurring-invoices/<int:recurring_id>")
def delete_recurring_invoice(recurring_id: int):
    if not deps.get_repo().delete_recurring_invoice(recurring_id=recurring_id):
        return _not_found("Recurring invoice")
    return "", 204


@api_bp.post("/recurring-invoices/<int:recurring_id>/issue")
def issue_recurring(recurring_id: int):
    repo = deps.get_repo()
    schedule = repo.get_recurring_invoice(recurring_id=recurring_id)
    if schedule is None:
        return _not_found("Recurring invoice")

    raw_items = (schedule.template or {}).get("line_items", [])
    if not isinstance(raw_items, list):
        raise ApiValidationError("Invalid recurring template.", [FieldError("template.line_items", "must be a list")])
    errors = []
    line_items = []
    for idx, raw in enumerate(raw_items):
        try:
            line_items.append(parse_line_item(raw, prefix=f"template.line_items.{idx}."))
        except ApiValidationError as e:
            errors.extend(e.errors)
    if errors:
        raise ApiValidationError("Invalid recurring template.", errors)

    invoice, updated = issue_recurring_invoice(repo, schedule, line_items=line_items)
    return jsonify({"invoice": to_json(invoice), "recurring_invoice": to_json(updated)}), 201


# dashboard


@api_bp.get("/dashboard/stats")
def dashboard_stats():
    return jsonify(to_json(deps.get_repo().dashboard_stats())), 200
