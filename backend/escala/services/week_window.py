from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class WeekPeriod:
    start: date
    end: date

    @property
    def dates(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range(7)]

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    def iso(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def local_now(now: datetime, timezone: str) -> datetime:
    """Express `now` in the civil zone. Naive values are taken as already local."""
    tz = ZoneInfo(timezone)
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def week_start(d: date) -> date:
    return d - timedelta(days=d.weekday())


def first_monday_on_or_after(d: date) -> date:
    return d + timedelta(days=(7 - d.weekday()) % 7)


def resolve_week(
    now: datetime,
    *,
    timezone: str,
    cutover: date | None = None,
    override: date | None = None,
) -> WeekPeriod:
    """
    Return the single editable Monday..Sunday period.

    The period starts on the Monday on or before max(today, override, cutover).
    A cutover that is not a Monday is moved forward, and an override never
    pulls the period below it, so the start is never before the cutover. An
    override must be a Monday.
    """
    if override is not None and override.weekday() != 0:
        raise ValueError(f"Week override {override.isoformat()} is not a Monday")

    today = local_now(now, timezone).date()
    floors = [today]
    if override is not None:
        floors.append(override)
    if cutover is not None:
        floors.append(first_monday_on_or_after(cutover))

    effective = max(floors)
    start = week_start(effective)
    return WeekPeriod(start=start, end=start + timedelta(days=6))
