from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from escala.errors import StorageFatal, StorageTransient


logger = logging.getLogger(__name__)

T = TypeVar("T")

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def dialect_insert(db: AsyncSession):
    """Return the dialect's `insert` construct, which carries `on_conflict_*`."""
    name = db.get_bind().dialect.name
    try:
        return _INSERTS[name]
    except KeyError:
        raise StorageFatal(f"Unsupported database dialect for upserts: {name}") from None


def supports_row_locks(db: AsyncSession) -> bool:
    return db.get_bind().dialect.name == "postgresql"


async def guarded(operation: Awaitable[T], *, timeout: float) -> T:
    """
    Run one storage-bound operation under a deadline.

    Timeouts and connection failures surface as StorageTransient, integrity or
    schema problems as StorageFatal. Nothing is retried here.
    """
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Storage call exceeded %.1fs", timeout)
        raise StorageTransient("Storage call timed out") from exc
    except sa_exc.TimeoutError as exc:
        logger.warning("Connection pool exhausted: %s", exc)
        raise StorageTransient("Storage connection unavailable") from exc
    except (sa_exc.OperationalError, sa_exc.InterfaceError) as exc:
        logger.warning("Transient storage failure: %s", exc)
        raise StorageTransient("Storage temporarily unavailable") from exc
    except sa_exc.DBAPIError as exc:
        if exc.connection_invalidated:
            logger.warning("Storage connection invalidated: %s", exc)
            raise StorageTransient("Storage connection lost") from exc
        logger.exception("Fatal storage error")
        raise StorageFatal("Storage integrity or schema error") from exc
