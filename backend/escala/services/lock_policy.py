from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from escala.errors import ForbiddenTarget, LockError
from escala.services.week_window import local_now


logger = logging.getLogger(__name__)

FRIDAY = 4
WEEKEND = (5, 6)


@dataclass(frozen=True)
class Actor:
    canonical_name: str
    is_admin: bool = False


def is_locked(now: datetime, *, timezone: str, close_hour: int = 11) -> bool:
    local = local_now(now, timezone)
    if local.weekday() in WEEKEND:
        return True
    return local.weekday() == FRIDAY and local.hour >= close_hour


def ensure_can_write(actor: Actor, *, locked: bool, override_lock: bool = False) -> None:
    if not locked:
        return
    if actor.is_admin and override_lock:
        logger.info("Admin %s writing after lock with override", actor.canonical_name)
        return
    if actor.is_admin:
        raise LockError("Edit window is closed; admins must assert override_lock to write")
    raise LockError("Edit window is closed (Friday close hour through Sunday)")


def resolve_write_target(actor: Actor, requested_target: str, *, strict: bool = False) -> str:
    """
    Decide which officer row a write lands on.

    Admins write wherever they ask. Other actors only ever write their own row:
    a foreign target is redirected to the actor, or rejected when strict.
    """
    if actor.is_admin or requested_target == actor.canonical_name:
        return requested_target
    if strict:
        raise ForbiddenTarget(f"{actor.canonical_name} may not edit the row of {requested_target}")
    logger.info("Redirecting write from %s to own row of %s", requested_target, actor.canonical_name)
    return actor.canonical_name
