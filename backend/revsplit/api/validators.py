from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from revsplit.domain.invoice_math import FREQUENCIES, line_item_amount
from revsplit.domain.models import INVOICE_STATUSES, PROJECT_STATUSES
from revsplit.domain.money import HUNDRED, MoneyError, to_decimal
from revsplit.domain.revenue_split import (
    CONTRIBUTION_TYPES,
    ZERO,
    AgentCommission,
    FieldError,
    TeamMemberContribution,
    ValidationError,
    validate_split_inputs,
)

_MISSING = object()


class ApiValidationError(ValueError):
    """Raised when request payload validation fails. Lists every bad field."""

    def __init__(self, message: str, errors: Sequence[FieldError] = ()):
        super().__init__(message)
        self.errors = tuple(errors)


def parse_timestamp(value: object) -> datetime:
    """ISO 8601 date or datetime string -> aware datetime (naive means UTC)."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("must be an ISO 8601 date string")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_int(raw: Optional[str], name: str) -> Optional[int]:
    """Query-string integer; None or "" means absent."""
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ApiValidationError(f"'{name}' must be an integer.", [FieldError(name, "must be an integer")])


class _Payload:
    """
    Collects fields from a JSON object, recording every problem instead of
    stopping at the first.

    partial=True is for PUT bodies: absent fields are skipped and nothing is
    required.
    """

    def __init__(self, raw: object, *, partial: bool = False, prefix: str = ""):
        self.partial = partial
        self.prefix = prefix
        self.errors: List[FieldError] = []
        self.values: Dict[str, Any] = {}
        if not isinstance(raw, dict):
            self.errors.append(FieldError(prefix.rstrip(".") or "body", "must be a JSON object"))
            raw = {}
        self.raw: Dict[str, Any] = raw

    def _error(self, name: str, message: str) -> None:
        self.errors.append(FieldError(f"{self.prefix}{name}", message))

    def _take(self, name: str, required: bool, default: Any) -> Any:
        value = self.raw.get(name, _MISSING)
        if value is _MISSING:
            if self.partial:
                return _MISSING
            if required:
                self._error(name, "is required")
                return _MISSING
            if default is not _MISSING:
                self.values[name] = default
            return _MISSING
        if value is None:
            if required:
                self._error(name, "must not be null")
            else:
                self.values[name] = None
            return _MISSING
        return value

    def text(self, name: str, *, required: bool = False, default: Any = _MISSING) -> None:
        value = self._take(name, required, default)
        if value is _MISSING:
            return
        if not isinstance(value, str) or (required and not value.strip()):
            self._error(name, "must be a non-empty string" if required else "must be a string")
            return
        self.values[name] = value.strip()

    def email(self, name: str, *, required: bool = False) -> None:
        self.text(name, required=required)
        value = self.values.get(name)
        if isinstance(value, str) and ("@" not in value or value.startswith("@") or value.endswith("@")):
            self.values.pop(name)
            self._error(name, "must be an email address")

    def decimal(
        self,
        name: str,
        *,
        required: bool = False,
        minimum: Optional[Decimal] = None,
        maximum: Optional[Decimal] = None,
        default: Any = _MISSING,
    ) -> None:
        value = self._take(name, required, default)
        if value is _MISSING:
            return
        try:
            d = to_decimal(value, field=name)
        except MoneyError:
            self._error(name, "must be a number")
            return
        if minimum is not None and d < minimum:
            self._error(name, f"must be >= {minimum}")
            return
        if maximum is not None and d > maximum:
            self._error(name, f"must be <= {maximum}")
            return
        self.values[name] = d

    def integer(self, name: str, *, required: bool = False, default: Any = _MISSING) -> None:
        value = self._take(name, required, default)
        if value is _MISSING:
            return
        if not isinstance(value, int) or isinstance(value, bool):
            self._error(name, "must be an integer")
            return
        self.values[name] = value

    def choice(self, name: str, choices: Sequence[str], *, required: bool = False, default: Any = _MISSING) -> None:
        value = self._take(name, required, default)
        if value is _MISSING:
            return
        if value not in choices:
            self._error(name, "must be one of: " + ", ".join(choices))
            return
        self.values[name] = value

    def timestamp(self, name: str, *, required: bool = False, default: Any = _MISSING) -> None:
        value = self._take(name, required, default)
        if value is _MISSING:
            return
        try:
            self.values[name] = parse_timestamp(value)
        except ValueError:
            self._error(name, "must be an ISO 8601 date string")

    def boolean(self, name: str, *, default: Any = _MISSING) -> None:
        value = self._take(name, False, default)
        if value is _MISSING:
            return
        if not isinstance(value, bool):
            self._error(name, "must be a boolean")
            return
        self.values[name] = value

    def json_object(self, name: str, *, default: Any = _MISSING) -> None:
        value = self._take(name, False, default)
        if value is _MISSING:
            return
        if not isinstance(value, dict):
            self._error(name, "must be an object")
            return
        self.values[name] = value

    def finish(self, what: str) -> Dict[str, Any]:
        if self.errors:
            raise ApiValidationError(f"Invalid {what}.", self.errors)
        return self.values


def parse_client(raw: object, *, partial: bool = False) -> Dict[str, Any]:
    p = _Payload(raw, partial=partial)
    p.text("name", required=True)
    p.email("email", required=True)
    for name in ("phone", "company", "address"):
        p.text(name)
    return p.finish("client")


def parse_project(raw: object, *, partial: bool = False) -> Dict[str, Any]:
    p = _Payload(raw, partial=partial)
    p.text("name", required=True)
    p.text("description")
    p.integer("client_id")
    p.choice("status", PROJECT_STATUSES)
    p.timestamp("deadline")
    return p.finish("project")


def _contribution_range(p: _Payload) -> None:
    ctype = p.values.get("contribution_type")
    contribution = p.values.get("contribution")
    if ctype == "percentage" and contribution is not None and contribution > HUNDRED:
        p.values.pop("contribution")
        p._error("contribution", "must be between 0 and 100 for percentage contributions")


def parse_team_member(raw: object, *, partial: bool = False) -> Dict[str, Any]:
    p = _Payload(raw, partial=partial)
    p.text("name")
    p.text("role")
    p.decimal("contribution", required=True, minimum=Decimal(0))
    p.choice("contribution_type", CONTRIBUTION_TYPES, required=True)
    _contribution_range(p)
    return p.finish("team member")


def parse_commission(raw: object, *, partial: bool = False) -> Dict[str, Any]:
    p = _Payload(raw, partial=partial)
    p.text("agent_name", required=True)
    p.decimal("rate", required=True, minimum=Decimal(0), maximum=HUNDRED)
    return p.finish("commission")


def parse_line_item(raw: object, *, partial: bool = False, prefix: str = "") -> Dict[str, Any]:
    """
    amount defaults to quantity * rate when not given. On partial updates
    the caller recomputes it from the stored row.
    """
    p = _Payload(raw, partial=partial, prefix=prefix)
    p.text("description", required=True)
    p.decimal("quantity", required=True, minimum=Decimal(0))
    p.decimal("rate", required=True, minimum=Decimal(0))
    p.decimal("tax", minimum=Decimal(0), maximum=HUNDRED, default=None)
    p.decimal("amount", minimum=Decimal(0))
    values = p.finish("line item")
    if not partial and "amount" not in values:
        values["amount"] = line_item_amount(values["quantity"], values["rate"])
    return values


@dataclass(frozen=True)
class InvoicePayload:
    values: Dict[str, Any]
    line_items: List[Dict[str, Any]]


def parse_invoice(raw: object, *, partial: bool = False) -> InvoicePayload:
    """
    Embedded line_items (create only) make subtotal/tax/total optional:
    they are derived from the items by the caller.
    """
    p = _Payload(raw, partial=partial)
    raw_items = p.raw.get("line_items") if not partial else None
    has_items = bool(raw_items)

    p.text("invoice_number", required=True)
    p.integer("project_id", default=None)
    for name in ("subtotal", "tax", "total"):
        p.decimal(name, required=not has_items, minimum=Decimal(0))
    p.choice("status", INVOICE_STATUSES)
    p.text("notes")
    p.timestamp("issue_date", required=True)
    p.timestamp("due_date", required=True)
    p.timestamp("paid_date")

    line_items: List[Dict[str, Any]] = []
    if has_items:
        if not isinstance(raw_items, list):
            p._error("line_items", "must be a list")
        else:
            for idx, item in enumerate(raw_items):
                try:
                    line_items.append(parse_line_item(item, prefix=f"line_items.{idx}."))
                except ApiValidationError as e:
                    p.errors.extend(e.errors)

    issue, due = p.values.get("issue_date"), p.values.get("due_date")
    if issue is not None and due is not None and due < issue:
        p._error("due_date", "must not be before issue_date")

    return InvoicePayload(values=p.finish("invoice"), line_items=line_items)


def parse_recurring_invoice(raw: object, *, partial: bool = False) -> Dict[str, Any]:
    p = _Payload(raw, partial=partial)
    p.integer("project_id", default=None)
    p.choice("frequency", FREQUENCIES, required=True)
    p.timestamp("next_issue_date", required=True)
    p.boolean("enabled")
    p.integer("last_invoice_id")
    p.json_object("template", default={})
    return p.finish("recurring invoice")


def parse_split_summary(raw: object) -> Dict[str, Any]:
    p = _Payload(raw)
    p.integer("project_id", default=None)
    p.integer("invoice_id", default=None)
    p.decimal("total_amount", required=True, minimum=Decimal(0))
    p.decimal("team_total", required=True, minimum=Decimal(0))
    p.decimal("commission", required=True, minimum=Decimal(0))
    p.decimal("company_profit", required=True)
    return p.finish("split summary")


@dataclass(frozen=True)
class SplitRequest:
    """
    A revenue split as submitted by the form. Ranges are not checked here;
    compute_revenue_split reports all of them at once.
    """
    total_amount: object
    invoice_id: Optional[int]
    project_id: Optional[int]
    team_members: List[TeamMemberContribution]
    agent: Optional[AgentCommission]
    company_profit_percentage: object


def _optional_text(errors: List[FieldError], field: str, value: object) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(FieldError(field, "must be a string"))
        return None
    return value.strip() or None


def parse_split_request(
    raw: object,
    *,
    default_profit_percentage: object,
    for_record: bool = False,
) -> SplitRequest:
    """
    Structural and range problems are reported together in one
    ApiValidationError. for_record adds the fields needed to persist the
    split (project_id, the agent's name).
    """
    errors: List[FieldError] = []
    if not isinstance(raw, dict):
        raise ApiValidationError("Request body must be a JSON object.", [FieldError("body", "must be a JSON object")])

    invoice_id = raw.get("invoice_id")
    project_id = raw.get("project_id")
    for name, value in (("invoice_id", invoice_id), ("project_id", project_id)):
        if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
            errors.append(FieldError(name, "must be an integer"))
    if for_record and project_id is None:
        errors.append(FieldError("project_id", "is required"))

    total_amount = raw.get("total_amount")
    if total_amount is None and invoice_id is None:
        errors.append(FieldError("total_amount", "is required when invoice_id is not given"))

    raw_members = raw.get("team_members", [])
    if not isinstance(raw_members, list):
        errors.append(FieldError("team_members", "must be a list"))
        raw_members = []

    # Entries stay at their request index so range errors point at the right member.
    entries: List[object] = []
    for idx, m in enumerate(raw_members):
        prefix = f"team_members.{idx}"
        if not isinstance(m, dict):
            errors.append(FieldError(prefix, "must be an object"))
            entries.append(m)
            continue
        entries.append(
            TeamMemberContribution(
                role=_optional_text(errors, f"{prefix}.role", m.get("role")) or "",
                contribution_type=m.get("contribution_type"),  # type: ignore[arg-type]
                contribution=m.get("contribution"),  # type: ignore[arg-type]
                name=_optional_text(errors, f"{prefix}.name", m.get("name")),
            )
        )

    agent: Optional[AgentCommission] = None
    raw_agent = raw.get("agent")
    if raw_agent is not None:
        if not isinstance(raw_agent, dict):
            errors.append(FieldError("agent", "must be an object or null"))
        else:
            agent_name = raw_agent.get("agent_name", raw_agent.get("name"))
            agent_name = _optional_text(errors, "agent.agent_name", agent_name) or ""
            if for_record and not agent_name and not any(e.field == "agent.agent_name" for e in errors):
                errors.append(FieldError("agent.agent_name", "is required when an agent is given"))
            agent = AgentCommission(agent_name=agent_name, rate=raw_agent.get("rate"))  # type: ignore[arg-type]

    profit_pct = raw.get("company_profit_percentage")
    if profit_pct is None:
        profit_pct = default_profit_percentage

    # An invoice total is looked up later; validate the rest against zero.
    try:
        validate_split_inputs(
            total_amount if total_amount is not None else ZERO,
            entries,  # type: ignore[arg-type]
            agent,
            profit_pct,
        )
    except ValidationError as e:
        reported = {err.field for err in errors}
        errors.extend(err for err in e.errors if err.field not in reported)

    if errors:
        raise ApiValidationError("Invalid revenue split.", errors)

    return SplitRequest(
        total_amount=total_amount,
        invoice_id=invoice_id,
        project_id=project_id,
        team_members=[m for m in entries if isinstance(m, TeamMemberContribution)],
        agent=agent,
        company_profit_percentage=profit_pct,
    )
