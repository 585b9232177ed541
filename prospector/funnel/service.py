"""
Funnel reads and explicit stage moves.

Automated operations in builder.py only ever advance a company one stage
from an exact starting stage. Everything else (entering outreach, closing
a deal, demoting) goes through transition_stage.
"""
import logging
from datetime import datetime
from typing import List, Optional, Set, Tuple

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.errors import InvalidStageTransitionError, NotFoundError
from prospector.core.models import PipelineStage
from prospector.companies.database import CompanyModel
from prospector.funnel.database import FunnelMemberModel, FunnelModel

logger = logging.getLogger(__name__)


async def get_funnel(session: AsyncSession, funnel_id: int) -> FunnelModel:
    funnel = await session.get(FunnelModel, funnel_id)
    if funnel is None:
        raise NotFoundError("Funnel", funnel_id)
    return funnel


async def active_company_ids(session: AsyncSession, funnel_id: int) -> Set[int]:
    result = await session.execute(
        select(FunnelMemberModel.company_id).where(
            FunnelMemberModel.funnel_id == funnel_id,
            FunnelMemberModel.removed_at.is_(None),
            FunnelMemberModel.contact_id.is_(None),
        )
    )
    return {row[0] for row in result.all()}


async def soft_remove_members(session: AsyncSession, funnel_id: int) -> int:
    result = await session.execute(
        update(FunnelMemberModel)
        .where(FunnelMemberModel.funnel_id == funnel_id, FunnelMemberModel.removed_at.is_(None))
        .values(removed_at=datetime.utcnow())
    )
    return result.rowcount or 0


async def refresh_counts(session: AsyncSession, funnel: FunnelModel) -> FunnelModel:
    """Recount active company and contact members onto the funnel row."""
    result = await session.execute(
        select(
            func.count(func.distinct(case((FunnelMemberModel.contact_id.is_(None), FunnelMemberModel.company_id)))),
            func.count(func.distinct(FunnelMemberModel.contact_id)),
        ).where(FunnelMemberModel.funnel_id == funnel.id, FunnelMemberModel.removed_at.is_(None))
    )
    companies, contacts = result.one()
    funnel.company_count = companies or 0
    funnel.contact_count = contacts or 0
    funnel.updated_at = datetime.utcnow()
    await session.flush()
    return funnel


async def list_members(
    session: AsyncSession,
    funnel_id: int,
    stage: Optional[PipelineStage] = None,
    active_only: bool = True,
    contacts: Optional[bool] = False,
) -> List[Tuple[FunnelMemberModel, CompanyModel]]:
    """
    Members with their company, best composite score first.
    `contacts`: False for company rows, True for contact rows, None for both.
    """
    stmt = (
        select(FunnelMemberModel, CompanyModel)
        .join(CompanyModel, FunnelMemberModel.company_id == CompanyModel.id)
        .where(FunnelMemberModel.funnel_id == funnel_id)
    )
    if active_only:
        stmt = stmt.where(FunnelMemberModel.removed_at.is_(None))
    if contacts is False:
        stmt = stmt.where(FunnelMemberModel.contact_id.is_(None))
    elif contacts is True:
        stmt = stmt.where(FunnelMemberModel.contact_id.is_not(None))
    if stage is not None:
        stmt = stmt.where(CompanyModel.pipeline_stage == stage)
    stmt = stmt.order_by(FunnelMemberModel.composite_score.desc(), FunnelMemberModel.id)
    result = await session.execute(stmt)
    return [(member, company) for member, company in result.all()]


async def advance_companies(
    session: AsyncSession, company_ids: List[int], from_stage: PipelineStage
) -> int:
    """Move companies that are still at `from_stage` to the next stage. Others are untouched."""
    if not company_ids:
        return 0
    to_stage = from_stage.next()
    result = await session.execute(
        update(CompanyModel)
        .where(CompanyModel.id.in_(company_ids), CompanyModel.pipeline_stage == from_stage)
        .values(pipeline_stage=to_stage, updated_at=datetime.utcnow())
    )
    moved = result.rowcount or 0
    if moved:
        logger.info(f"Advanced {moved} companies {from_stage.value} -> {to_stage.value}")
    return moved


async def transition_stage(
    session: AsyncSession, member_id: int, to_stage: PipelineStage, reason: Optional[str] = None
) -> CompanyModel:
    """
    Explicit stage move for a member's company.

    Forward moves go one stage at a time; backward moves (demotions) may
    skip stages. Moving to the current stage is rejected.
    """
    member = await session.get(FunnelMemberModel, member_id)
    if member is None or member.removed_at is not None:
        raise NotFoundError("Funnel member", member_id)
    company = await session.get(CompanyModel, member.company_id)
    if company is None:
        raise NotFoundError("Company", member.company_id)

    current = PipelineStage(company.pipeline_stage)
    to_stage = PipelineStage(to_stage)
    if to_stage == current:
        raise InvalidStageTransitionError(f"{company.name} is already at {current.value}")
    if to_stage.rank > current.rank + 1:
        raise InvalidStageTransitionError(
            f"Cannot skip from {current.value} to {to_stage.value}; next stage is {current.next().value}"
        )

    company.pipeline_stage = to_stage
    company.updated_at = datetime.utcnow()
    note = f"Stage {current.value} -> {to_stage.value}" + (f": {reason}" if reason else "")
    member.added_reason = f"{member.added_reason}; {note}" if member.added_reason else note
    await session.flush()

    direction = "Demoted" if to_stage.rank < current.rank else "Moved"
    logger.info(f"{direction} {company.name} (member {member_id}) {current.value} -> {to_stage.value}")
    return company
