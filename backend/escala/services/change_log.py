from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from escala.errors import PermissionDenied
from escala.models.change_log import ChangeLog
from escala.models.enums import ChangeField
from escala.services.lock_policy import Actor


MAX_QUERY_LIMIT = 500


def add_change_log(
    *,
    db: AsyncSession,
    at: datetime,
    actor: str,
    target_officer: str,
    day: date,
    field: ChangeField,
    before: str | None,
    after: str | None,
) -> ChangeLog:
    entry = ChangeLog(
        at=at,
        actor=actor,
        target_officer=target_officer,
        date=day,
        field=field.value,
        before=before or None,
        after=after or None,
    )
    db.add(entry)
    return entry


async def list_change_logs(db: AsyncSession, *, actor: Actor, limit: int = 100) -> list[ChangeLog]:
    if not actor.is_admin:
        raise PermissionDenied("Change history is restricted to admins")
    # Rows of one batch share `at`; the cell and field keep their order stable.
    stmt = (
        select(ChangeLog)
        .order_by(ChangeLog.at.desc(), ChangeLog.date, ChangeLog.target_officer, ChangeLog.field)
        .limit(max(1, min(limit, MAX_QUERY_LIMIT)))
    )
    return list((await db.execute(stmt)).scalars().all())
