from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel


class ChangeLogOut(BaseModel):
    id: uuid.UUID
    at: datetime
    actor: str
    target_officer: str
    date: date
    field: str
    before: str | None = None
    after: str | None = None
