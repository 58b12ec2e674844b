from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class PeriodOut(BaseModel):
    start: date
    end: date


class OfficerOut(BaseModel):
    canonical_name: str
    rank: str
    display_name: str


class ActorOut(BaseModel):
    canonical_name: str
    is_admin: bool


class WeekViewOut(BaseModel):
    period: PeriodOut
    dates: list[date]
    officers: list[OfficerOut]
    codes: list[str]
    needs_description: list[str]
    assignments: dict[str, str]
    notes: dict[str, str]
    notes_meta: dict[str, dict]
    locked: bool
    me: ActorOut
