from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from escala.api.deps import get_current_actor, get_ledger, require_writer
from escala.db import get_db
from escala.schemas.duty_update import ApplyResultOut, DutyUpdateBatch
from escala.schemas.week_view import ActorOut, OfficerOut, PeriodOut, WeekViewOut
from escala.services.ledger import AssignmentLedger, DutyUpdate
from escala.services.lock_policy import Actor


router = APIRouter()


@router.get("", response_model=WeekViewOut)
async def get_state(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> WeekViewOut:
    view = await ledger.get_week_view(db)
    return WeekViewOut(
        period=PeriodOut(start=view.period.start, end=view.period.end),
        dates=view.dates,
        officers=[OfficerOut(**o) for o in view.officers],
        codes=view.codes,
        needs_description=view.needs_description,
        assignments=view.assignments,
        notes=view.notes,
        notes_meta=view.notes_meta,
        locked=ledger.is_locked(),
        me=ActorOut(canonical_name=actor.canonical_name, is_admin=actor.is_admin),
    )


@router.post("/updates", response_model=ApplyResultOut)
async def post_updates(
    payload: DutyUpdateBatch,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_writer),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> ApplyResultOut:
    result = await ledger.apply_updates(
        db,
        actor=actor,
        updates=[
            DutyUpdate(date=u.date, target_officer=u.canonical_name, code=u.code, description=u.description)
            for u in payload.updates
        ],
        override_lock=payload.override_lock,
    )
    return ApplyResultOut(applied_count=result.applied_count, changed_count=result.changed_count)
