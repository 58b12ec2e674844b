from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Iterable

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escala.errors import StorageFatal, ValidationError
from escala.models.duty_day import DutyDay
from escala.models.enums import ChangeField, DutyCode
from escala.models.state_store import STATE_ROW_ID, StateStore
from escala.services.change_log import add_change_log
from escala.services.duty_codes import code_values, needs_description, needs_description_values, normalize_code
from escala.services.lock_policy import Actor, ensure_can_write, is_locked, resolve_write_target
from escala.services.merge import (
    MergedWeek,
    blank_snapshot,
    cell_key,
    drop_snapshot_cell,
    merge_week,
    set_snapshot_cell,
)
from escala.services.schedule_config import ScheduleConfig
from escala.services.storage import dialect_insert, guarded, supports_row_locks
from escala.services.week_window import WeekPeriod, resolve_week


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeriodAdvance:
    period: WeekPeriod
    rolled_over: bool
    seeded: bool = False
    purged: int = 0


@dataclass(frozen=True)
class DutyUpdate:
    date: date
    target_officer: str
    code: str = ""
    description: str | None = None


@dataclass(frozen=True)
class ApplyResult:
    applied_count: int
    changed_count: int


@dataclass
class WeekView:
    period: WeekPeriod
    dates: list[str]
    officers: list[dict]
    codes: list[str]
    needs_description: list[str]
    assignments: dict[str, str]
    notes: dict[str, str]
    notes_meta: dict[str, dict]
    rolled_over: bool = False


@dataclass(frozen=True)
class _PreparedUpdate:
    index: int
    day: date
    target: str
    code: DutyCode | None
    description: str | None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AssignmentLedger:
    """
    Canonical per-officer, per-day duty assignments for the active week.

    Reads and writes go through both stores: the `duty_days` rows and the
    single `state_store` snapshot, whose period columns double as the rollover
    marker.
    """

    def __init__(self, config: ScheduleConfig, *, clock: Callable[[], datetime] | None = None) -> None:
        self.config = config
        self._clock = clock or _utcnow

    def _now(self, now: datetime | None) -> datetime:
        return now if now is not None else self._clock()

    def current_period(self, now: datetime | None = None) -> WeekPeriod:
        return resolve_week(
            self._now(now),
            timezone=self.config.timezone,
            cutover=self.config.cutover,
            override=self.config.override,
        )

    def is_locked(self, now: datetime | None = None) -> bool:
        return is_locked(self._now(now), timezone=self.config.timezone, close_hour=self.config.close_hour)

    # -- rollover -------------------------------------------------------------

    async def advance_period(self, db: AsyncSession, *, now: datetime | None = None) -> PeriodAdvance:
        return await guarded(self._advance_period(db, self._now(now)), timeout=self.config.storage_timeout)

    async def _advance_period(self, db: AsyncSession, now: datetime) -> PeriodAdvance:
        period = self.current_period(now)
        insert = dialect_insert(db)
        try:
            seeded = await db.execute(
                insert(StateStore)
                .values(
                    id=STATE_ROW_ID,
                    period_start=period.start,
                    period_end=period.end,
                    payload=blank_snapshot(),
                    updated_at=now,
                )
                .on_conflict_do_nothing(index_elements=["id"])
            )
            if seeded.rowcount == 1:
                await db.commit()
                logger.info("Seeded schedule state for %s..%s", period.start, period.end)
                return PeriodAdvance(period=period, rolled_over=False, seeded=True)

            # Compare-and-swap on the stored period: concurrent callers block on
            # the row and only the one whose UPDATE matched performs the purge.
            swapped = await db.execute(
                update(StateStore)
                .where(
                    StateStore.id == STATE_ROW_ID,
                    or_(StateStore.period_start != period.start, StateStore.period_end != period.end),
                )
                .values(
                    period_start=period.start,
                    period_end=period.end,
                    payload=blank_snapshot(),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if swapped.rowcount != 1:
                await db.commit()
                return PeriodAdvance(period=period, rolled_over=False)

            purged = await self._purge_assignments(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Rolled over to week %s..%s; purged %s day rows", period.start, period.end, purged)
        return PeriodAdvance(period=period, rolled_over=True, purged=purged)

    async def _purge_assignments(self, db: AsyncSession) -> int:
        result = await db.execute(delete(DutyDay).execution_options(synchronize_session=False))
        return max(result.rowcount or 0, 0)

    # -- reads ----------------------------------------------------------------

    async def _load_rows(self, db: AsyncSession, period: WeekPeriod) -> list[DutyDay]:
        stmt = (
            select(DutyDay)
            .where(DutyDay.date >= period.start, DutyDay.date <= period.end)
            .order_by(DutyDay.date, DutyDay.officer_name)
            .execution_options(populate_existing=True)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def _load_snapshot(self, db: AsyncSession, *, for_update: bool = False) -> StateStore:
        stmt = select(StateStore).where(StateStore.id == STATE_ROW_ID).execution_options(populate_existing=True)
        if for_update and supports_row_locks(db):
            stmt = stmt.with_for_update()
        snapshot = (await db.execute(stmt)).scalar_one_or_none()
        if snapshot is None:
            raise StorageFatal("Schedule state row is missing")
        return snapshot

    async def _merged(self, db: AsyncSession, period: WeekPeriod, snapshot: StateStore) -> tuple[list[DutyDay], MergedWeek]:
        rows = await self._load_rows(db, period)
        merged = merge_week(rows=rows, snapshot=snapshot.payload, period=period, resolver=self.config.resolver)
        return rows, merged

    async def get_week_view(self, db: AsyncSession, *, now: datetime | None = None) -> WeekView:
        return await guarded(self._get_week_view(db, self._now(now)), timeout=self.config.storage_timeout)

    async def _get_week_view(self, db: AsyncSession, now: datetime) -> WeekView:
        advance = await self._advance_period(db, now)
        period = advance.period
        snapshot = await self._load_snapshot(db)
        _, merged = await self._merged(db, period, snapshot)
        return WeekView(
            period=period,
            dates=[d.isoformat() for d in period.dates],
            officers=[officer.as_dict() for officer in self.config.roster],
            codes=code_values(),
            needs_description=needs_description_values(),
            assignments=merged.assignments,
            notes=merged.notes,
            notes_meta=merged.notes_meta,
            rolled_over=advance.rolled_over,
        )

    # -- writes ---------------------------------------------------------------

    def _prepare(self, actor: Actor, item: DutyUpdate, period: WeekPeriod, *, index: int) -> _PreparedUpdate:
        if not isinstance(item.date, date) or not period.contains(item.date):
            raise ValidationError(
                f"date {item.date} is outside the active week {period.start}..{period.end}", index=index
            )
        if item.target_officer not in self.config.officers_by_name:
            raise ValidationError(f"officer {item.target_officer!r} is not on the roster", index=index)

        target = resolve_write_target(actor, item.target_officer, strict=self.config.strict_target_check)

        raw_code = (item.code or "").strip()
        if not raw_code:
            return _PreparedUpdate(index=index, day=item.date, target=target, code=None, description=None)

        code = normalize_code(raw_code)
        if code is None:
            raise ValidationError(f"unknown code {raw_code!r}", index=index)

        description = (item.description or "").strip()
        if needs_description(code):
            if not description:
                raise ValidationError(f"code {code.value} requires a description", index=index)
            if len(description) > self.config.description_max_length:
                raise ValidationError(
                    f"description exceeds {self.config.description_max_length} characters", index=index
                )
            return _PreparedUpdate(index=index, day=item.date, target=target, code=code, description=description)

        if description:
            raise ValidationError(f"code {code.value} does not take a description", index=index)
        return _PreparedUpdate(index=index, day=item.date, target=target, code=code, description=None)

    async def apply_updates(
        self,
        db: AsyncSession,
        *,
        actor: Actor,
        updates: Iterable[DutyUpdate],
        override_lock: bool = False,
        now: datetime | None = None,
    ) -> ApplyResult:
        """
        Apply a batch of cell updates on behalf of `actor`.

        The lock gate runs first and rejects the whole call. Every item is then
        validated before anything is written (all-or-nothing); the writes, the
        snapshot mirror and the change-log rows share one transaction.
        """
        now = self._now(now)
        ensure_can_write(actor, locked=self.is_locked(now), override_lock=override_lock)
        return await guarded(
            self._apply_updates(db, actor, list(updates), now), timeout=self.config.storage_timeout
        )

    async def _apply_updates(
        self, db: AsyncSession, actor: Actor, updates: list[DutyUpdate], now: datetime
    ) -> ApplyResult:
        period = (await self._advance_period(db, now)).period
        prepared = [self._prepare(actor, item, period, index=i) for i, item in enumerate(updates)]
        if not prepared:
            return ApplyResult(applied_count=0, changed_count=0)

        resolver = self.config.resolver
        changed = 0
        try:
            snapshot = await self._load_snapshot(db, for_update=True)
            rows, merged = await self._merged(db, period, snapshot)
            payload = copy.deepcopy(snapshot.payload) if isinstance(snapshot.payload, dict) else blank_snapshot()

            for item in prepared:
                key = cell_key(item.target, item.day)
                before_code = merged.assignments.get(key, "")
                before_note = merged.notes.get(key, "")
                after_code = item.code.value if item.code else ""
                after_note = item.description or ""
                if before_code == after_code and before_note == after_note:
                    continue

                cell_rows = [
                    r for r in rows if r.date == item.day and resolver.canonical_for(r.officer_name) == item.target
                ]
                rows = [r for r in rows if r not in cell_rows]
                drop_snapshot_cell(payload, canonical_name=item.target, day=item.day, resolver=resolver)

                if item.code is None:
                    await self._delete_rows(db, cell_rows)
                    merged.forget(key)
                else:
                    created_by = next((r.created_by for r in cell_rows if r.created_by), None)
                    await self._delete_rows(db, [r for r in cell_rows if r.officer_name != item.target])
                    await self._upsert_row(db, item, actor=actor, now=now, created_by=created_by)
                    meta = {
                        "created_by": created_by or actor.canonical_name,
                        "updated_by": actor.canonical_name,
                        "updated_at": now.isoformat(),
                    }
                    set_snapshot_cell(
                        payload,
                        canonical_name=item.target,
                        day=item.day,
                        code=after_code,
                        note=item.description,
                        meta=meta,
                    )
                    merged.forget(key)
                    merged.assignments[key] = after_code
                    if item.description:
                        merged.notes[key] = item.description
                        merged.notes_meta[key] = meta

                if before_code != after_code:
                    add_change_log(
                        db=db,
                        at=now,
                        actor=actor.canonical_name,
                        target_officer=item.target,
                        day=item.day,
                        field=ChangeField.code,
                        before=before_code,
                        after=after_code,
                    )
                if before_note != after_note:
                    add_change_log(
                        db=db,
                        at=now,
                        actor=actor.canonical_name,
                        target_officer=item.target,
                        day=item.day,
                        field=ChangeField.description,
                        before=before_note,
                        after=after_note,
                    )
                changed += 1

            if changed:
                snapshot.payload = payload
                snapshot.updated_at = now
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("%s applied %s update(s), %s changed", actor.canonical_name, len(prepared), changed)
        return ApplyResult(applied_count=len(prepared), changed_count=changed)

    async def _delete_rows(self, db: AsyncSession, rows: list[DutyDay]) -> None:
        if not rows:
            return
        await db.execute(
            delete(DutyDay)
            .where(DutyDay.id.in_([r.id for r in rows]))
            .execution_options(synchronize_session=False)
        )

    async def _upsert_row(
        self,
        db: AsyncSession,
        item: _PreparedUpdate,
        *,
        actor: Actor,
        now: datetime,
        created_by: str | None,
    ) -> None:
        insert = dialect_insert(db)
        stmt = insert(DutyDay).values(
            id=uuid.uuid4(),
            date=item.day,
            officer_name=item.target,
            code=item.code.value,
            description=item.description,
            created_by=created_by or actor.canonical_name,
            updated_by=actor.canonical_name,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["date", "officer_name"],
            set_={
                "code": stmt.excluded.code,
                "description": stmt.excluded.description,
                "updated_by": stmt.excluded.updated_by,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)
