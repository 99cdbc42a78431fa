# backend/revsplit/services/splits.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from revsplit.db.repository import DuplicateError
from revsplit.domain.models import (
    ProjectCommission,
    ProjectSplitSummary,
    ProjectTeamMember,
)
from revsplit.domain.money import round_currency, to_decimal
from revsplit.domain.revenue_split import (
    AgentCommission,
    RevenueSplit,
    TeamMemberContribution,
)

logger = logging.getLogger(__name__)


class OverAllocationError(ValueError):
    """Raised when a split would persist a negative company profit."""

    def __init__(self, split: RevenueSplit):
        super().__init__(
            "team and agent shares exceed the invoice total "
            f"(company profit would be {round_currency(split.company_profit)})"
        )
        self.split = split


def is_over_allocated(split: RevenueSplit) -> bool:
    """Over the total at full precision or once rounded to cents."""
    return split.over_allocated or split.rounded().over_allocated


@dataclass(frozen=True)
class RecordedSplit:
    summary: ProjectSplitSummary
    team_members: List[ProjectTeamMember]
    commission: Optional[ProjectCommission]


def record_revenue_split(
    repo,
    *,
    project_id: int,
    invoice_id: Optional[int],
    split: RevenueSplit,
    team_members: List[TeamMemberContribution],
    agent: Optional[AgentCommission],
) -> RecordedSplit:
    """
    Persist a computed split: the summary snapshot (rounded to cents), one
    team member row per contribution and the agent commission if any.

    Nothing is written when the split is over-allocated or the project
    already has a commission.
    """
    rounded = split.rounded()
    if is_over_allocated(split):
        logger.warning(
            "rejected over-allocated split for project %s invoice %s", project_id, invoice_id
        )
        raise OverAllocationError(rounded)

    if agent is not None and repo.get_project_commission(project_id=project_id) is not None:
        raise DuplicateError(f"project {project_id} already has a commission")

    summary = repo.create_split_summary(
        values={
            "project_id": project_id,
            "invoice_id": invoice_id,
            "total_amount": rounded.total_amount,
            "team_total": rounded.team_total,
            "commission": rounded.commission,
            "company_profit": rounded.company_profit,
        }
    )

    members = [
        repo.create_team_member(
            project_id=project_id,
            values={
                "name": m.name,
                "role": m.role or None,
                "contribution": to_decimal(m.contribution),
                "contribution_type": m.contribution_type,
            },
        )
        for m in team_members
    ]

    commission = None
    if agent is not None:
        commission = repo.create_commission(
            project_id=project_id,
            values={"agent_name": agent.agent_name, "rate": to_decimal(agent.rate)},
        )

    logger.info(
        "recorded split summary %s for project %s: team=%s commission=%s profit=%s",
        summary.id, project_id, rounded.team_total, rounded.commission, rounded.company_profit,
    )
    return RecordedSplit(summary=summary, team_members=members, commission=commission)
