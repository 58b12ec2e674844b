from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from escala.auth.security import get_password_hash
from escala.models.credential import Credential
from escala.services.storage import dialect_insert


logger = logging.getLogger(__name__)


async def get_credential(db: AsyncSession, canonical_name: str) -> Credential | None:
    stmt = (
        select(Credential)
        .where(Credential.canonical_name == canonical_name)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def ensure_credential(db: AsyncSession, canonical_name: str, *, default_password: str) -> Credential:
    """
    Return the officer's credential, creating it on first use.

    Creation is an insert that yields on conflict, so simultaneous first logins
    all end up reading the single row that won.
    """
    credential = await get_credential(db, canonical_name)
    if credential is not None:
        return credential

    insert = dialect_insert(db)
    try:
        result = await db.execute(
            insert(Credential)
            .values(
                canonical_name=canonical_name,
                password_hash=get_password_hash(default_password),
                must_change=True,
            )
            .on_conflict_do_nothing(index_elements=["canonical_name"])
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    if result.rowcount == 1:
        logger.info("Created initial credential for %s", canonical_name)

    credential = await get_credential(db, canonical_name)
    if credential is None:
        raise RuntimeError(f"Credential for {canonical_name} vanished after insert")
    return credential


async def set_password(db: AsyncSession, credential: Credential, new_password: str) -> None:
    credential.password_hash = get_password_hash(new_password)
    credential.must_change = False
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("Password changed for %s", credential.canonical_name)
