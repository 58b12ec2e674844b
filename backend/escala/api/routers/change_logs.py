from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from escala.api.deps import get_config, get_current_actor
from escala.db import get_db
from escala.models.change_log import ChangeLog
from escala.schemas.change_log import ChangeLogOut
from escala.services.change_log import list_change_logs
from escala.services.lock_policy import Actor
from escala.services.schedule_config import ScheduleConfig
from escala.services.storage import guarded


router = APIRouter()


def _to_out(entry: ChangeLog) -> ChangeLogOut:
    return ChangeLogOut(
        id=entry.id,
        at=entry.at,
        actor=entry.actor,
        target_officer=entry.target_officer,
        date=entry.date,
        field=entry.field,
        before=entry.before,
        after=entry.after,
    )


@router.get("", response_model=list[ChangeLogOut])
async def get_change_logs(
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    config: ScheduleConfig = Depends(get_config),
) -> list[ChangeLogOut]:
    entries = await guarded(
        list_change_logs(db, actor=actor, limit=limit), timeout=config.storage_timeout
    )
    return [_to_out(e) for e in entries]
