# backend/revsplit/domain/revenue_split.py
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from revsplit.domain.money import (
    HUNDRED,
    MoneyError,
    percentage_of,
    round_currency,
    to_decimal,
)

PERCENTAGE = "percentage"
FIXED = "fixed"
CONTRIBUTION_TYPES = (PERCENTAGE, FIXED)

ZERO = Decimal(0)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class ValidationError(ValueError):
    """
    Raised when split inputs are out of range or malformed.

    Carries every violation found, not just the first one, so a form can
    show all problems at once.
    """

    def __init__(self, errors: Sequence[FieldError]):
        self.errors: Tuple[FieldError, ...] = tuple(errors)
        summary = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(summary or "invalid input")


@dataclass(frozen=True)
class TeamMemberContribution:
    """
    One team member's stake in an invoice.

    contribution is a percent of the invoice total when contribution_type
    is "percentage", otherwise a fixed currency amount.
    """
    role: str
    contribution_type: str
    contribution: Decimal
    name: Optional[str] = None


@dataclass(frozen=True)
class AgentCommission:
    agent_name: str
    rate: Decimal


@dataclass(frozen=True)
class RevenueSplit:
    """
    Result of one split computation, at full precision unless rounded().

    company_profit is negative when team and agent shares alone exceed
    the total. Callers must check over_allocated before persisting.
    """
    total_amount: Decimal
    team_total: Decimal
    commission: Decimal
    company_profit: Decimal

    @property
    def allocated(self) -> Decimal:
        return self.team_total + self.commission + self.company_profit

    @property
    def unallocated(self) -> Decimal:
        return self.total_amount - self.allocated

    @property
    def over_allocated(self) -> bool:
        return self.company_profit < ZERO

    def rounded(self) -> "RevenueSplit":
        """
        Cent-rounded copy. Shares are rounded one by one, so when they add
        up to more than the rounded total the company profit takes the
        difference (and may turn negative).
        """
        total = round_currency(self.total_amount)
        team_total = round_currency(self.team_total)
        commission = round_currency(self.commission)
        company_profit = round_currency(self.company_profit)
        if team_total + commission + company_profit > total:
            company_profit = total - team_total - commission
        return replace(
            self,
            total_amount=total,
            team_total=team_total,
            commission=commission,
            company_profit=company_profit,
        )


def _check_percent(
    errors: List[FieldError], field: str, value: object
) -> Optional[Decimal]:
    try:
        d = to_decimal(value, field=field)
    except MoneyError as e:
        errors.append(FieldError(field, str(e)))
        return None
    if d < ZERO or d > HUNDRED:
        errors.append(FieldError(field, "must be between 0 and 100"))
        return None
    return d


def _check_non_negative(
    errors: List[FieldError], field: str, value: object
) -> Optional[Decimal]:
    try:
        d = to_decimal(value, field=field)
    except MoneyError as e:
        errors.append(FieldError(field, str(e)))
        return None
    if d < ZERO:
        errors.append(FieldError(field, "must be >= 0"))
        return None
    return d


def validate_split_inputs(
    total_amount: object,
    team_members: Sequence[TeamMemberContribution],
    agent: Optional[AgentCommission],
    company_profit_percentage: object,
) -> Tuple[Decimal, List[Tuple[str, Decimal]], Optional[Decimal], Decimal]:
    """
    Check every input and return them normalized to Decimal.

    Returns (total, [(contribution_type, contribution), ...], agent_rate, profit_pct).
    Raises ValidationError listing all violations.
    """
    errors: List[FieldError] = []

    total = _check_non_negative(errors, "total_amount", total_amount)

    shares: List[Tuple[str, Decimal]] = []
    if not isinstance(team_members, (list, tuple)):
        errors.append(FieldError("team_members", "must be a list"))
        team_members = ()

    for idx, member in enumerate(team_members):
        prefix = f"team_members.{idx}"
        if not isinstance(member, TeamMemberContribution):
            errors.append(FieldError(prefix, "must be a team member contribution"))
            continue

        ctype = member.contribution_type
        if ctype not in CONTRIBUTION_TYPES:
            errors.append(
                FieldError(
                    f"{prefix}.contribution_type",
                    "must be one of: " + ", ".join(CONTRIBUTION_TYPES),
                )
            )

        field = f"{prefix}.contribution"
        if ctype == PERCENTAGE:
            amount = _check_percent(errors, field, member.contribution)
        else:
            amount = _check_non_negative(errors, field, member.contribution)

        if amount is not None and ctype in CONTRIBUTION_TYPES:
            shares.append((ctype, amount))

    rate: Optional[Decimal] = None
    if agent is not None:
        if not isinstance(agent, AgentCommission):
            errors.append(FieldError("agent", "must be an agent commission or absent"))
        else:
            rate = _check_percent(errors, "agent.rate", agent.rate)

    profit_pct = _check_percent(
        errors, "company_profit_percentage", company_profit_percentage
    )

    if errors:
        raise ValidationError(errors)

    return total, shares, rate, profit_pct  # type: ignore[return-value]


def compute_revenue_split(
    total_amount: object,
    team_members: Sequence[TeamMemberContribution],
    agent: Optional[AgentCommission],
    company_profit_percentage: object,
) -> RevenueSplit:
    """
    Divide an invoice total between the team, an optional agent and the company.

      team_total     = sum of fixed amounts and percent-of-total shares
      commission     = total * agent.rate / 100, or 0 without an agent
      company_profit = total * company_profit_percentage / 100

    If the three exceed the total, company_profit becomes the residual
    total - team_total - commission, which is negative when team and agent
    alone overshoot. Under budget the remainder is left unallocated.
    No rounding is applied here; see RevenueSplit.rounded().
    """
    total, shares, rate, profit_pct = validate_split_inputs(
        total_amount, team_members, agent, company_profit_percentage
    )

    if total == ZERO:
        return RevenueSplit(total_amount=total, team_total=ZERO, commission=ZERO, company_profit=ZERO)

    team_total = ZERO
    for ctype, amount in shares:
        team_total += percentage_of(total, amount) if ctype == PERCENTAGE else amount

    commission = percentage_of(total, rate) if rate is not None else ZERO

    company_profit = percentage_of(total, profit_pct)
    if team_total + commission + company_profit > total:
        company_profit = total - team_total - commission

    return RevenueSplit(
        total_amount=total,
        team_total=team_total,
        commission=commission,
        company_profit=company_profit,
    )
