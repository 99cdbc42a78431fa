from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request

from revsplit.api import deps
from revsplit.api.responses import json_error, register_error_handlers, to_json
from revsplit.api.validators import (
    ApiValidationError,
    SplitRequest,
    parse_optional_int,
    parse_split_request,
    parse_split_summary,
)
from revsplit.domain.revenue_split import FieldError, RevenueSplit, compute_revenue_split
from revsplit.services.splits import OverAllocationError, is_over_allocated, record_revenue_split

splits_bp = Blueprint("splits", __name__, url_prefix="/api")
register_error_handlers(splits_bp)


def _parse_body(*, for_record: bool = False) -> SplitRequest:
    data = request.get_json(silent=True)
    if data is None:
        raise ApiValidationError("Request body must be JSON.", [FieldError("body", "must be JSON")])
    return parse_split_request(
        data,
        default_profit_percentage=current_app.config.get("DEFAULT_COMPANY_PROFIT_PERCENTAGE", "25"),
        for_record=for_record,
    )


def _compute(repo, req: SplitRequest):
    """Returns (split, None) or (None, error response)."""
    total = req.total_amount
    if req.invoice_id is not None:
        invoice = repo.get_invoice(invoice_id=req.invoice_id)
        if invoice is None:
            return None, json_error("Invoice not found.", status=404, code="not_found")
        if total is None:
            total = invoice.total
    split = compute_revenue_split(total, req.team_members, req.agent, req.company_profit_percentage)
    return split, None


def _split_body(split: RevenueSplit) -> dict:
    rounded = split.rounded()
    return {
        "total_amount": to_json(rounded.total_amount),
        "team_total": to_json(rounded.team_total),
        "commission": to_json(rounded.commission),
        "company_profit": to_json(rounded.company_profit),
        "unallocated": to_json(rounded.unallocated),
        "over_allocated": is_over_allocated(split),
    }


@splits_bp.post("/revenue-splits/preview")
def preview_split():
    req = _parse_body()
    split, error = _compute(deps.get_repo(), req)
    if error is not None:
        return error
    return jsonify(_split_body(split)), 200


@splits_bp.post("/revenue-splits")
def create_split():
    req = _parse_body(for_record=True)

    repo = deps.get_repo()
    if repo.get_project(project_id=req.project_id) is None:
        return json_error("Project not found.", status=404, code="not_found")

    split, error = _compute(repo, req)
    if error is not None:
        return error

    recorded = record_revenue_split(
        repo,
        project_id=req.project_id,
        invoice_id=req.invoice_id,
        split=split,
        team_members=req.team_members,
        agent=req.agent,
    )
    body = to_json(recorded.summary)
    body["team_members"] = to_json(recorded.team_members)
    body["project_commission"] = to_json(recorded.commission)
    body["unallocated"] = to_json(split.rounded().unallocated)
    return jsonify(body), 201


@splits_bp.get("/project-split-summaries")
def list_split_summaries():
    project_id = parse_optional_int(request.args.get("project_id"), "project_id")
    return jsonify(to_json(deps.get_repo().list_split_summaries(project_id=project_id))), 200


@splits_bp.post("/project-split-summaries")
def create_split_summary():
    data = request.get_json(silent=True)
    if data is None:
        return json_error("Request body must be JSON.", status=400)
    values = parse_split_summary(data)

    split = RevenueSplit(
        total_amount=values["total_amount"],
        team_total=values["team_total"],
        commission=values["commission"],
        company_profit=values["company_profit"],
    )
    if split.over_allocated:
        raise OverAllocationError(split)
    if split.unallocated < Decimal(0):
        raise ApiValidationError(
            "Shares exceed the total amount.",
            [FieldError("total_amount", "must be >= team_total + commission + company_profit")],
        )

    summary = deps.get_repo().create_split_summary(values=values)
    return jsonify(to_json(summary)), 201


@splits_bp.get("/projects/<int:project_id>/invoices/<int:invoice_id>/split-summary")
def get_split_summary(project_id: int, invoice_id: int):
    summary = deps.get_repo().get_split_summary(project_id=project_id, invoice_id=invoice_id)
    if summary is None:
        return json_error("Split summary not found.", status=404, code="not_found")
    return jsonify(to_json(summary)), 200
