# backend/revsplit/domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

PROJECT_STATUSES = ("active", "completed")
INVOICE_STATUSES = ("draft", "sent", "paid", "overdue")


@dataclass(frozen=True)
class Client:
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Project:
    id: int
    name: str
    description: Optional[str] = None
    client_id: Optional[int] = None
    status: str = "active"
    deadline: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectTeamMember:
    """
    A team member's agreed stake in a project.
    contribution is a percent when contribution_type == "percentage".
    """
    id: int
    project_id: int
    contribution: Decimal
    contribution_type: str
    name: Optional[str] = None
    role: Optional[str] = None


@dataclass(frozen=True)
class ProjectCommission:
    id: int
    project_id: int
    agent_name: str
    rate: Decimal


@dataclass(frozen=True)
class Invoice:
    id: int
    invoice_number: str
    project_id: Optional[int]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    issue_date: datetime
    due_date: datetime
    status: str = "draft"
    notes: Optional[str] = None
    paid_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class InvoiceLineItem:
    id: int
    invoice_id: int
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    tax: Optional[Decimal] = None


@dataclass(frozen=True)
class RecurringInvoice:
    """
    A schedule that issues a new draft invoice from template every period.
    template holds invoice fields (notes, line_items, ...) as plain JSON.
    """
    id: int
    project_id: Optional[int]
    frequency: str
    next_issue_date: datetime
    enabled: bool = True
    last_invoice_id: Optional[int] = None
    template: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectSplitSummary:
    """Persisted snapshot of one revenue split. Never recomputed."""
    id: int
    project_id: Optional[int]
    invoice_id: Optional[int]
    total_amount: Decimal
    team_total: Decimal
    commission: Decimal
    company_profit: Decimal
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DashboardStats:
    total_revenue: Decimal
    pending_amount: Decimal
    pending_count: int
    overdue_amount: Decimal
    overdue_count: int
    paid_amount: Decimal
    paid_count: int
