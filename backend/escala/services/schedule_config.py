from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from functools import cached_property, lru_cache

from escala.config import Settings, settings
from escala.services.identity import IdentityResolver
from escala.services.roster import Officer, load_roster


@dataclass(frozen=True)
class ScheduleConfig:
    """Read-only policy injected into the ledger; never persisted."""

    roster: tuple[Officer, ...]
    timezone: str = "America/Sao_Paulo"
    cutover: date | None = None
    override: date | None = None
    close_hour: int = 11
    admin_names: frozenset[str] = field(default_factory=frozenset)
    strict_target_check: bool = False
    description_max_length: int = 1000
    storage_timeout: float = 10.0

    @cached_property
    def officers_by_name(self) -> dict[str, Officer]:
        return {officer.canonical_name: officer for officer in self.roster}

    @cached_property
    def resolver(self) -> IdentityResolver:
        return IdentityResolver(self.roster)

    def is_admin(self, canonical_name: str) -> bool:
        return canonical_name in self.admin_names


def build_schedule_config(source: Settings) -> ScheduleConfig:
    roster = load_roster(source.ROSTER_PATH)
    known = {officer.canonical_name for officer in roster}
    unknown_admins = [name for name in source.admin_name_list if name not in known]
    if unknown_admins:
        raise ValueError(f"ADMIN_NAMES not on the roster: {', '.join(unknown_admins)}")
    return ScheduleConfig(
        roster=roster,
        timezone=source.TIMEZONE,
        cutover=source.CUTOVER_DATE,
        override=source.WEEK_OVERRIDE,
        close_hour=source.LOCK_CLOSE_HOUR,
        admin_names=frozenset(source.admin_name_list),
        strict_target_check=source.STRICT_TARGET_CHECK,
        description_max_length=source.DESCRIPTION_MAX_LENGTH,
        storage_timeout=source.DB_TIMEOUT_SECONDS,
    )


@lru_cache
def get_schedule_config() -> ScheduleConfig:
    return build_schedule_config(settings)
