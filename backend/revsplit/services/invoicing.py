# backend/revsplit/services/invoicing.py
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from revsplit.domain.invoice_math import (
    LineAmount,
    next_issue_date,
    recalculate_invoice_totals,
)
from revsplit.domain.models import Invoice, InvoiceLineItem, RecurringInvoice

logger = logging.getLogger(__name__)

DEFAULT_DUE_IN_DAYS = 30


class RecurringScheduleError(ValueError):
    """Raised when a recurring schedule cannot issue an invoice."""


def _totals_for(items: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    subtotal, tax, total = recalculate_invoice_totals(
        LineAmount(amount=i["amount"], tax_rate=i.get("tax")) for i in items
    )
    return {"subtotal": subtotal, "tax": tax, "total": total}


def create_invoice_with_items(
    repo, *, values: Mapping[str, Any], line_items: Sequence[Mapping[str, Any]]
) -> Tuple[Invoice, List[InvoiceLineItem]]:
    """
    Create an invoice and its line items. When items are given the
    invoice's subtotal/tax/total are derived from them.
    """
    values = dict(values)
    if line_items:
        values.update(_totals_for(line_items))

    invoice = repo.create_invoice(values=values)
    created = [repo.create_line_item(invoice_id=invoice.id, values=item) for item in line_items]
    logger.info("created invoice %s with %d line items", invoice.invoice_number, len(created))
    return invoice, created


def refresh_invoice_totals(repo, *, invoice_id: int) -> Optional[Invoice]:
    """Recompute subtotal/tax/total from the invoice's current line items."""
    items = repo.list_line_items(invoice_id=invoice_id)
    totals = _totals_for([{"amount": i.amount, "tax": i.tax} for i in items])
    return repo.update_invoice(invoice_id=invoice_id, values=totals)


def issue_recurring_invoice(
    repo,
    schedule: RecurringInvoice,
    *,
    line_items: Sequence[Mapping[str, Any]],
) -> Tuple[Invoice, RecurringInvoice]:
    """
    Issue the next draft invoice of a schedule and advance the schedule.

    Template keys used: invoice_prefix (default "REC"), notes,
    due_in_days (default 30). line_items come pre-validated from the
    template by the caller.
    """
    if not schedule.enabled:
        raise RecurringScheduleError("recurring invoice is disabled")

    template = schedule.template or {}
    issue_date = schedule.next_issue_date
    due_in_days = template.get("due_in_days", DEFAULT_DUE_IN_DAYS)
    if not isinstance(due_in_days, int) or isinstance(due_in_days, bool) or due_in_days < 0:
        raise RecurringScheduleError("template due_in_days must be a non-negative integer")

    prefix = template.get("invoice_prefix") or "REC"
    values: Dict[str, Any] = {
        "invoice_number": f"{prefix}-{schedule.id}-{issue_date:%Y%m%d}",
        "project_id": schedule.project_id,
        "subtotal": Decimal("0.00"),
        "tax": Decimal("0.00"),
        "total": Decimal("0.00"),
        "status": "draft",
        "notes": template.get("notes"),
        "issue_date": issue_date,
        "due_date": issue_date + timedelta(days=due_in_days),
    }
    invoice, _ = create_invoice_with_items(repo, values=values, line_items=line_items)

    updated = repo.update_recurring_invoice(
        recurring_id=schedule.id,
        values={
            "last_invoice_id": invoice.id,
            "next_issue_date": next_issue_date(issue_date, schedule.frequency),
        },
    )
    logger.info(
        "recurring invoice %s issued %s; next issue %s",
        schedule.id, invoice.invoice_number, updated.next_issue_date,
    )
    return invoice, updated


def build_invoice_document(repo, invoice: Invoice) -> Dict[str, Any]:
    """
    Everything needed to render an invoice: the invoice, its project and
    client, and its line items.
    """
    project = repo.get_project(project_id=invoice.project_id) if invoice.project_id is not None else None
    client = None
    if project is not None and project.client_id is not None:
        client = repo.get_client(client_id=project.client_id)

    return {
        "invoice_number": invoice.invoice_number,
        "issue_date": invoice.issue_date.date().isoformat(),
        "due_date": invoice.due_date.date().isoformat(),
        "status": invoice.status,
        "subtotal": invoice.subtotal,
        "tax": invoice.tax,
        "total": invoice.total,
        "notes": invoice.notes,
        "client": None if client is None else {
            "name": client.name,
            "email": client.email,
            "company": client.company,
            "address": client.address,
        },
        "project": None if project is None else {
            "name": project.name,
            "description": project.description,
        },
        "line_items": [
            {
                "description": item.description,
                "quantity": item.quantity,
                "rate": item.rate,
                "tax": item.tax,
                "amount": item.amount,
            }
            for item in repo.list_line_items(invoice_id=invoice.id)
        ],
    }
