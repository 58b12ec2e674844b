from __future__ import annotations

import re
from datetime import date

from pydantic import BaseModel, Field, field_validator


_LEADING_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})")


class DutyUpdateIn(BaseModel):
    date: date
    canonical_name: str = Field(min_length=1, max_length=200)
    code: str = ""
    description: str | None = Field(default=None, max_length=5000)

    @field_validator("date", mode="before")
    @classmethod
    def keep_calendar_day(cls, value):
        # "2026-02-23T00:00:00.000Z" and "2026-02-23T12:34:56-03:00" both mean 2026-02-23:
        # the leading date is kept as-is, never shifted across zones.
        if isinstance(value, str):
            match = _LEADING_DATE_RE.match(value.strip())
            if match is None:
                raise ValueError("date must start with YYYY-MM-DD")
            return match.group(1)
        return value

    @field_validator("code", mode="before")
    @classmethod
    def blank_code(cls, value):
        return "" if value is None else value


class DutyUpdateBatch(BaseModel):
    updates: list[DutyUpdateIn] = Field(default_factory=list, max_length=500)
    override_lock: bool = False


class ApplyResultOut(BaseModel):
    ok: bool = True
    applied_count: int
    changed_count: int
