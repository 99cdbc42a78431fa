from __future__ import annotations

import logging
from dataclasses import fields as dataclass_fields
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Type, TypeVar

import psycopg
from psycopg import sql
from psycopg.rows import class_row
from psycopg.types.json import Jsonb

from revsplit.domain.models import (
    Client,
    DashboardStats,
    Invoice,
    InvoiceLineItem,
    Project,
    ProjectCommission,
    ProjectSplitSummary,
    ProjectTeamMember,
    RecurringInvoice,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


class RepositoryError(RuntimeError):
    """Raised when the backing store fails."""


class DuplicateError(RepositoryError):
    """Raised when a unique constraint (e.g. invoice_number) is violated."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _has_created_at(record_cls: type) -> bool:
    return any(f.name == "created_at" for f in dataclass_fields(record_cls))


class _Table(Generic[R]):
    """One in-memory table: id -> record, with its own id counter."""

    def __init__(self, record_cls: Type[R]):
        self.record_cls = record_cls
        self.rows: Dict[int, R] = {}
        self._next_id = 1

    def insert(self, values: Mapping[str, Any]) -> R:
        row_id = self._next_id
        self._next_id += 1
        extra: Dict[str, Any] = {}
        if _has_created_at(self.record_cls):
            extra["created_at"] = _now()
        record = self.record_cls(id=row_id, **{**values, **extra})  # type: ignore[call-arg]
        self.rows[row_id] = record
        return record

    def update(self, row_id: int, values: Mapping[str, Any]) -> Optional[R]:
        current = self.rows.get(row_id)
        if current is None:
            return None
        updated = replace(current, **values)  # type: ignore[type-var]
        self.rows[row_id] = updated
        return updated

    def delete(self, row_id: int) -> bool:
        return self.rows.pop(row_id, None) is not None

    def all(self) -> List[R]:
        return [self.rows[k] for k in sorted(self.rows)]


class InMemoryRepository:
    """
    Process-local store used when no DATABASE_URL is configured.
    Mirrors the cascade/set-null rules of db/schema.sql.
    """

    def __init__(self) -> None:
        self.clients: _Table[Client] = _Table(Client)
        self.projects: _Table[Project] = _Table(Project)
        self.team_members: _Table[ProjectTeamMember] = _Table(ProjectTeamMember)
        self.commissions: _Table[ProjectCommission] = _Table(ProjectCommission)
        self.invoices: _Table[Invoice] = _Table(Invoice)
        self.line_items: _Table[InvoiceLineItem] = _Table(InvoiceLineItem)
        self.recurring: _Table[RecurringInvoice] = _Table(RecurringInvoice)
        self.summaries: _Table[ProjectSplitSummary] = _Table(ProjectSplitSummary)

    def _null_references(self, table: _Table, column: str, value: int) -> None:
        for row in table.all():
            if getattr(row, column) == value:
                table.update(row.id, {column: None})

    # clients

    def list_clients(self, *, search: Optional[str] = None) -> List[Client]:
        clients = self.clients.all()
        if search:
            needle = search.lower()
            clients = [
                c for c in clients
                if needle in c.name.lower()
                or needle in c.email.lower()
                or (c.company is not None and needle in c.company.lower())
            ]
        return clients

    def get_client(self, *, client_id: int) -> Optional[Client]:
        return self.clients.rows.get(client_id)

    def create_client(self, *, values: Mapping[str, Any]) -> Client:
        return self.clients.insert(values)

    def update_client(self, *, client_id: int, values: Mapping[str, Any]) -> Optional[Client]:
        return self.clients.update(client_id, values)

    def delete_client(self, *, client_id: int) -> bool:
        deleted = self.clients.delete(client_id)
        if deleted:
            self._null_references(self.projects, "client_id", client_id)
        return deleted

    # projects

    def list_projects(self, *, client_id: Optional[int] = None, status: Optional[str] = None) -> List[Project]:
        projects = self.projects.all()
        if client_id is not None:
            projects = [p for p in projects if p.client_id == client_id]
        if status:
            projects = [p for p in projects if p.status == status]
        return projects

    def get_project(self, *, project_id: int) -> Optional[Project]:
        return self.projects.rows.get(project_id)

    def create_project(self, *, values: Mapping[str, Any]) -> Project:
        return self.projects.insert(values)

    def update_project(self, *, project_id: int, values: Mapping[str, Any]) -> Optional[Project]:
        return self.projects.update(project_id, values)

    def delete_project(self, *, project_id: int) -> bool:
        deleted = self.projects.delete(project_id)
        if deleted:
            for member in self.list_team_members(project_id=project_id):
                self.team_members.delete(member.id)
            for commission in self.commissions.all():
                if commission.project_id == project_id:
                    self.commissions.delete(commission.id)
            self._null_references(self.invoices, "project_id", project_id)
            self._null_references(self.recurring, "project_id", project_id)
            self._null_references(self.summaries, "project_id", project_id)
        return deleted

    # team members

    def list_team_members(self, *, project_id: int) -> List[ProjectTeamMember]:
        return [m for m in self.team_members.all() if m.project_id == project_id]

    def get_team_member(self, *, member_id: int) -> Optional[ProjectTeamMember]:
        return self.team_members.rows.get(member_id)

    def create_team_member(self, *, project_id: int, values: Mapping[str, Any]) -> ProjectTeamMember:
        return self.team_members.insert({**values, "project_id": project_id})

    def update_team_member(self, *, member_id: int, values: Mapping[str, Any]) -> Optional[ProjectTeamMember]:
        return self.team_members.update(member_id, values)

    def delete_team_member(self, *, member_id: int) -> bool:
        return self.team_members.delete(member_id)

    # commissions

    def get_project_commission(self, *, project_id: int) -> Optional[ProjectCommission]:
        for commission in self.commissions.all():
            if commission.project_id == project_id:
                return commission
        return None

    def create_commission(self, *, project_id: int, values: Mapping[str, Any]) -> ProjectCommission:
        if self.get_project_commission(project_id=project_id) is not None:
            raise DuplicateError(f"project {project_id} already has a commission")
        return self.commissions.insert({**values, "project_id": project_id})

    def update_commission(self, *, commission_id: int, values: Mapping[str, Any]) -> Optional[ProjectCommission]:
        return self.commissions.update(commission_id, values)

    def delete_commission(self, *, commission_id: int) -> bool:
        return self.commissions.delete(commission_id)

    # invoices

    def list_invoices(self, *, status: Optional[str] = None, project_id: Optional[int] = None) -> List[Invoice]:
        invoices = self.invoices.all()
        if status:
            invoices = [i for i in invoices if i.status == status]
        if project_id is not None:
            invoices = [i for i in invoices if i.project_id == project_id]
        return invoices

    def get_invoice(self, *, invoice_id: int) -> Optional[Invoice]:
        return self.invoices.rows.get(invoice_id)

    def _check_invoice_number(self, invoice_number: str, *, exclude_id: Optional[int] = None) -> None:
        for invoice in self.invoices.all():
            if invoice.invoice_number == invoice_number and invoice.id != exclude_id:
                raise DuplicateError(f"invoice number already exists: {invoice_number}")

    def create_invoice(self, *, values: Mapping[str, Any]) -> Invoice:
        self._check_invoice_number(values["invoice_number"])
        return self.invoices.insert(values)

    def update_invoice(self, *, invoice_id: int, values: Mapping[str, Any]) -> Optional[Invoice]:
        if "invoice_number" in values:
            self._check_invoice_number(values["invoice_number"], exclude_id=invoice_id)
        return self.invoices.update(invoice_id, values)

    def delete_invoice(self, *, invoice_id: int) -> bool:
        deleted = self.invoices.delete(invoice_id)
        if deleted:
            for item in self.list_line_items(invoice_id=invoice_id):
                self.line_items.delete(item.id)
            self._null_references(self.recurring, "last_invoice_id", invoice_id)
            self._null_references(self.summaries, "invoice_id", invoice_id)
        return deleted

    # line items

    def list_line_items(self, *, invoice_id: int) -> List[InvoiceLineItem]:
        return [i for i in self.line_items.all() if i.invoice_id == invoice_id]

    def get_line_item(self, *, item_id: int) -> Optional[InvoiceLineItem]:
        return self.line_items.rows.get(item_id)

    def create_line_item(self, *, invoice_id: int, values: Mapping[str, Any]) -> InvoiceLineItem:
        return self.line_items.insert({**values, "invoice_id": invoice_id})

    def update_line_item(self, *, item_id: int, values: Mapping[str, Any]) -> Optional[InvoiceLineItem]:
        return self.line_items.update(item_id, values)

    def delete_line_item(self, *, item_id: int) -> bool:
        return self.line_items.delete(item_id)

    # recurring invoices

    def list_recurring_invoices(self) -> List[RecurringInvoice]:
        return self.recurring.all()

    def get_recurring_invoice(self, *, recurring_id: int) -> Optional[RecurringInvoice]:
        return self.recurring.rows.get(recurring_id)

    def create_recurring_invoice(self, *, values: Mapping[str, Any]) -> RecurringInvoice:
        return self.recurring.insert(values)

    def update_recurring_invoice(self, *, recurring_id: int, values: Mapping[str, Any]) -> Optional[RecurringInvoice]:
        return self.recurring.update(recurring_id, values)

    def delete_recurring_invoice(self, *, recurring_id: int) -> bool:
        return self.recurring.delete(recurring_id)

    # split summaries

    def list_split_summaries(self, *, project_id: Optional[int] = None) -> List[ProjectSplitSummary]:
        summaries = self.summaries.all()
        if project_id is not None:
            summaries = [s for s in summaries if s.project_id == project_id]
        return summaries

    def get_split_summary(self, *, project_id: int, invoice_id: int) -> Optional[ProjectSplitSummary]:
        for summary in self.summaries.all():
            if summary.project_id == project_id and summary.invoice_id == invoice_id:
                return summary
        return None

    def create_split_summary(self, *, values: Mapping[str, Any]) -> ProjectSplitSummary:
        return self.summaries.insert(values)

    # dashboard

    def dashboard_stats(self) -> DashboardStats:
        by_status: Dict[str, List[Decimal]] = {"paid": [], "sent": [], "overdue": []}
        for invoice in self.invoices.all():
            if invoice.status in by_status:
                by_status[invoice.status].append(invoice.total)
        paid = sum(by_status["paid"], Decimal(0))
        return DashboardStats(
            total_revenue=paid,
            pending_amount=sum(by_status["sent"], Decimal(0)),
            pending_count=len(by_status["sent"]),
            overdue_amount=sum(by_status["overdue"], Decimal(0)),
            overdue_count=len(by_status["overdue"]),
            paid_amount=paid,
            paid_count=len(by_status["paid"]),
        )


class PostgresRepository:
    """
    psycopg 3 store. Table and column names match the record field names;
    see db/schema.sql.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url.strip()

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    def _connect(self):
        if not self.enabled:
            raise RepositoryError("DATABASE_URL not configured")
        try:
            return psycopg.connect(self.database_url)
        except psycopg.Error as e:
            raise RepositoryError("could not connect to database") from e

    def apply_schema(self) -> None:
        """Create missing tables from schema.sql. Safe to run repeatedly."""
        ddl = SCHEMA_PATH.read_text(encoding="utf-8")
        try:
            with self._connect() as conn:
                conn.execute(ddl)
                conn.commit()
        except psycopg.Error as e:
            logger.exception("applying schema failed")
            raise RepositoryError("could not apply schema") from e
        logger.info("database schema applied")

    @staticmethod
    def _adapt(values: Mapping[str, Any]) -> Dict[str, Any]:
        return {k: Jsonb(v) if isinstance(v, dict) else v for k, v in values.items()}

    def _fetch(self, record_cls: Type[R], query, params: Sequence[Any] = ()) -> List[R]:
        try:
            with self._connect() as conn, conn.cursor(row_factory=class_row(record_cls)) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
                conn.commit()
                return rows
        except psycopg.errors.UniqueViolation as e:
            raise DuplicateError(str(e)) from e
        except psycopg.Error as e:
            logger.exception("database query failed")
            raise RepositoryError("database query failed") from e

    def _fetch_one(self, record_cls: Type[R], query, params: Sequence[Any] = ()) -> Optional[R]:
        rows = self._fetch(record_cls, query, params)
        return rows[0] if rows else None

    def _select(self, record_cls: Type[R], table: str, where: Optional[Mapping[str, Any]] = None) -> List[R]:
        where = {k: v for k, v in (where or {}).items() if v is not None}
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table))
        if where:
            query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(
                sql.SQL("{} = %s").format(sql.Identifier(k)) for k in where
            )
        query += sql.SQL(" ORDER BY id ASC")
        return self._fetch(record_cls, query, list(where.values()))

    def _get(self, record_cls: Type[R], table: str, row_id: int) -> Optional[R]:
        rows = self._select(record_cls, table, {"id": row_id})
        return rows[0] if rows else None

    def _insert(self, record_cls: Type[R], table: str, values: Mapping[str, Any]) -> R:
        values = self._adapt(values)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(table),
            sql.SQL(", ").join(map(sql.Identifier, values)),
            sql.SQL(", ").join(sql.Placeholder() * len(values)),
        )
        row = self._fetch_one(record_cls, query, list(values.values()))
        if row is None:
            raise RepositoryError(f"insert into {table} returned no row")
        return row

    def _update(self, record_cls: Type[R], table: str, row_id: int, values: Mapping[str, Any]) -> Optional[R]:
        if not values:
            return self._get(record_cls, table, row_id)
        values = self._adapt(values)
        query = sql.SQL("UPDATE {} SET {} WHERE id = %s RETURNING *").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(k)) for k in values),
        )
        return self._fetch_one(record_cls, query, [*values.values(), row_id])

    def _delete(self, table: str, row_id: int) -> bool:
        query = sql.SQL("DELETE FROM {} WHERE id = %s").format(sql.Identifier(table))
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(query, (row_id,))
                deleted = cur.rowcount > 0
                conn.commit()
                return deleted
        except psycopg.Error as e:
            logger.exception("delete from %s failed", table)
            raise RepositoryError("database delete failed") from e

    # clients

    def list_clients(self, *, search: Optional[str] = None) -> List[Client]:
        if not search:
            return self._select(Client, "clients")
        pattern = f"%{search}%"
        return self._fetch(
            Client,
            """
            SELECT * FROM clients
            WHERE name ILIKE %s OR email ILIKE %s OR company ILIKE %s
            ORDER BY id ASC
            """,
            (pattern, pattern, pattern),
        )

    def get_client(self, *, client_id: int) -> Optional[Client]:
        return self._get(Client, "clients", client_id)

    def create_client(self, *, values: Mapping[str, Any]) -> Client:
        return self._insert(Client, "clients", values)

    def update_client(self, *, client_id: int, values: Mapping[str, Any]) -> Optional[Client]:
        return self._update(Client, "clients", client_id, values)

    def delete_client(self, *, client_id: int) -> bool:
        return self._delete("clients", client_id)

    # projects

    def list_projects(self, *, client_id: Optional[int] = None, status: Optional[str] = None) -> List[Project]:
        return self._select(Project, "projects", {"client_id": client_id, "status": status or None})

    def get_project(self, *, project_id: int) -> Optional[Project]:
        return self._get(Project, "projects", project_id)

    def create_project(self, *, values: Mapping[str, Any]) -> Project:
        return self._insert(Project, "projects", values)

    def update_project(self, *, project_id: int, values: Mapping[str, Any]) -> Optional[Project]:
        return self._update(Project, "projects", project_id, values)

    def delete_project(self, *, project_id: int) -> bool:
        return self._delete("projects", project_id)

    # team members

    def list_team_members(self, *, project_id: int) -> List[ProjectTeamMember]:
        return self._select(ProjectTeamMember, "project_team_members", {"project_id": project_id})

    def get_team_member(self, *, member_id: int) -> Optional[ProjectTeamMember]:
        return self._get(ProjectTeamMember, "project_team_members", member_id)

    def create_team_member(self, *, project_id: int, values: Mapping[str, Any]) -> ProjectTeamMember:
        return self._insert(ProjectTeamMember, "project_team_members", {**values, "project_id": project_id})

    def update_team_member(self, *, member_id: int, values: Mapping[str, Any]) -> Optional[ProjectTeamMember]:
        return self._update(ProjectTeamMember, "project_team_members", member_id, values)

    def delete_team_member(self, *, member_id: int) -> bool:
        return self._delete("project_team_members", member_id)

    # commissions

    def get_project_commission(self, *, project_id: int) -> Optional[ProjectCommission]:
        rows = self._select(ProjectCommission, "project_commissions", {"project_id": project_id})
        return rows[0] if rows else None

    def create_commission(self, *, project_id: int, values: Mapping[str, Any]) -> ProjectCommission:
        return self._insert(ProjectCommission, "project_commissions", {**values, "project_id": project_id})

    def update_commission(self, *, commission_id: int, values: Mapping[str, Any]) -> Optional[ProjectCommission]:
        return self._update(ProjectCommission, "project_commissions", commission_id, values)

    def delete_commission(self, *, commission_id: int) -> bool:
        return self._delete("project_commissions", commission_id)

    # invoices

    def list_invoices(self, *, status: Optional[str] = None, project_id: Optional[int] = None) -> List[Invoice]:
        return self._select(Invoice, "invoices", {"status": status or None, "project_id": project_id})

    def get_invoice(self, *, invoice_id: int) -> Optional[Invoice]:
        return self._get(Invoice, "invoices", invoice_id)

    def create_invoice(self, *, values: Mapping[str, Any]) -> Invoice:
        return self._insert(Invoice, "invoices", values)

    def update_invoice(self, *, invoice_id: int, values: Mapping[str, Any]) -> Optional[Invoice]:
        return self._update(Invoice, "invoices", invoice_id, values)

    def delete_invoice(self, *, invoice_id: int) -> bool:
        return self._delete("invoices", invoice_id)

    # line items

    def list_line_items(self, *, invoice_id: int) -> List[InvoiceLineItem]:
        return self._select(InvoiceLineItem, "invoice_line_items", {"invoice_id": invoice_id})

    def get_line_item(self, *, item_id: int) -> Optional[InvoiceLineItem]:
        return self._get(InvoiceLineItem, "invoice_line_items", item_id)

    def create_line_item(self, *, invoice_id: int, values: Mapping[str, Any]) -> InvoiceLineItem:
        return self._insert(InvoiceLineItem, "invoice_line_items", {**values, "invoice_id": invoice_id})

    def update_line_item(self, *, item_id: int, values: Mapping[str, Any]) -> Optional[InvoiceLineItem]:
        return self._update(InvoiceLineItem, "invoice_line_items", item_id, values)

    def delete_line_item(self, *, item_id: int) -> bool:
        return self._delete("invoice_line_items", item_id)

    # recurring invoices

    def list_recurring_invoices(self) -> List[RecurringInvoice]:
        return self._select(RecurringInvoice, "recurring_invoices")

    def get_recurring_invoice(self, *, recurring_id: int) -> Optional[RecurringInvoice]:
        return self._get(RecurringInvoice, "recurring_invoices", recurring_id)

    def create_recurring_invoice(self, *, values: Mapping[str, Any]) -> RecurringInvoice:
        return self._insert(RecurringInvoice, "recurring_invoices", values)

    def update_recurring_invoice(self, *, recurring_id: int, values: Mapping[str, Any]) -> Optional[RecurringInvoice]:
        return self._update(RecurringInvoice, "recurring_invoices", recurring_id, values)

    def delete_recurring_invoice(self, *, recurring_id: int) -> bool:
        return self._delete("recurring_invoices", recurring_id)

    # split summaries

    def list_split_summaries(self, *, project_id: Optional[int] = None) -> List[ProjectSplitSummary]:
        return self._select(ProjectSplitSummary, "project_split_summaries", {"project_id": project_id})

    def get_split_summary(self, *, project_id: int, invoice_id: int) -> Optional[ProjectSplitSummary]:
        rows = self._select(
            ProjectSplitSummary,
            "project_split_summaries",
            {"project_id": project_id, "invoice_id": invoice_id},
        )
        return rows[0] if rows else None

    def create_split_summary(self, *, values: Mapping[str, Any]) -> ProjectSplitSummary:
        return self._insert(ProjectSplitSummary, "project_split_summaries", values)

    # dashboard

    def dashboard_stats(self) -> DashboardStats:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT status::text, COALESCE(SUM(total), 0), COUNT(*)
                    FROM invoices
                    WHERE status IN ('paid', 'sent', 'overdue')
                    GROUP BY status
                    """
                )
                totals = {row[0]: (Decimal(row[1]), int(row[2])) for row in cur.fetchall()}
        except psycopg.Error as e:
            logger.exception("dashboard query failed")
            raise RepositoryError("database query failed") from e

        paid_amount, paid_count = totals.get("paid", (Decimal(0), 0))
        pending_amount, pending_count = totals.get("sent", (Decimal(0), 0))
        overdue_amount, overdue_count = totals.get("overdue", (Decimal(0), 0))
        return DashboardStats(
            total_revenue=paid_amount,
            pending_amount=pending_amount,
            pending_count=pending_count,
            overdue_amount=overdue_amount,
            overdue_count=overdue_count,
            paid_amount=paid_amount,
            paid_count=paid_count,
        )
