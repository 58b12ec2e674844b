from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from escala.auth.security import read_access_token
from escala.db import get_db
from escala.services.credentials import get_credential
from escala.services.ledger import AssignmentLedger
from escala.services.lock_policy import Actor
from escala.services.schedule_config import ScheduleConfig, get_schedule_config
from escala.services.storage import guarded


http_bearer = HTTPBearer(auto_error=False)


def get_config() -> ScheduleConfig:
    return get_schedule_config()


def get_ledger(config: ScheduleConfig = Depends(get_config)) -> AssignmentLedger:
    return AssignmentLedger(config)


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    config: ScheduleConfig = Depends(get_config),
) -> Actor:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        canonical_name = read_access_token(credentials.credentials)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if canonical_name not in config.officers_by_name:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown officer")
    # Admin rights follow the current configuration, not the token.
    return Actor(canonical_name=canonical_name, is_admin=config.is_admin(canonical_name))


async def require_writer(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    config: ScheduleConfig = Depends(get_config),
) -> Actor:
    credential = await guarded(get_credential(db, actor.canonical_name), timeout=config.storage_timeout)
    if credential is None or credential.must_change:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Password change required")
    return actor
