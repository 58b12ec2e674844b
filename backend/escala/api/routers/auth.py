from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from escala.api.deps import get_config, get_current_actor
from escala.auth.security import create_access_token, verify_password
from escala.config import settings
from escala.db import get_db
from escala.schemas.auth import ChangePasswordRequest, LoginRequest, MeOut, TokenResponse
from escala.services.credentials import ensure_credential, get_credential, set_password
from escala.services.lock_policy import Actor
from escala.services.schedule_config import ScheduleConfig
from escala.services.storage import guarded


router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
    config: ScheduleConfig = Depends(get_config),
) -> TokenResponse:
    # Raises IdentityNotResolved for names below the login threshold.
    officer = config.resolver.resolve(payload.name).officer

    credential = await guarded(
        ensure_credential(db, officer.canonical_name, default_password=settings.DEFAULT_PASSWORD),
        timeout=config.storage_timeout,
    )
    if not verify_password(payload.password, credential.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return TokenResponse(
        access_token=create_access_token(officer.canonical_name),
        canonical_name=officer.canonical_name,
        is_admin=config.is_admin(officer.canonical_name),
        must_change=credential.must_change,
    )


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    config: ScheduleConfig = Depends(get_config),
) -> dict:
    credential = await guarded(get_credential(db, actor.canonical_name), timeout=config.storage_timeout)
    if credential is None or not verify_password(payload.current_password, credential.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if payload.new_password == settings.DEFAULT_PASSWORD:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Choose a password other than the default")

    await guarded(set_password(db, credential, payload.new_password), timeout=config.storage_timeout)
    return {"ok": True}


@router.get("/me", response_model=MeOut)
async def me(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    config: ScheduleConfig = Depends(get_config),
) -> MeOut:
    officer = config.officers_by_name[actor.canonical_name]
    credential = await guarded(get_credential(db, actor.canonical_name), timeout=config.storage_timeout)
    return MeOut(
        canonical_name=officer.canonical_name,
        rank=officer.rank,
        display_name=officer.display_name,
        is_admin=actor.is_admin,
        must_change=credential is None or credential.must_change,
    )
