from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable

from escala.services.duty_codes import normalize_code
from escala.services.identity import IdentityResolver
from escala.services.week_window import WeekPeriod


KEY_SEPARATOR = "|"
# Older snapshots stored {"byUser": {name: {YYYY-MM-DD: {"code", "obs"}}}}.
LEGACY_BY_USER = "byUser"


def blank_snapshot() -> dict:
    return {"assignments": {}, "notes": {}, "notes_meta": {}}


def cell_key(canonical_name: str, day: date) -> str:
    return f"{canonical_name}{KEY_SEPARATOR}{day.isoformat()}"


def split_key(key: str) -> tuple[str, date] | None:
    name, sep, raw_date = str(key).rpartition(KEY_SEPARATOR)
    if not sep or not name:
        return None
    return name, _parse_day(raw_date)


def _parse_day(value: Any) -> date | None:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


@dataclass
class MergedWeek:
    assignments: dict[str, str] = field(default_factory=dict)
    notes: dict[str, str] = field(default_factory=dict)
    notes_meta: dict[str, dict] = field(default_factory=dict)

    def forget(self, key: str) -> None:
        self.assignments.pop(key, None)
        self.notes.pop(key, None)
        self.notes_meta.pop(key, None)


@dataclass(frozen=True)
class SnapshotCell:
    code: str | None
    note: str
    meta: dict


def row_meta(row) -> dict:
    return {
        "created_by": getattr(row, "created_by", None),
        "updated_by": getattr(row, "updated_by", None),
        "updated_at": _iso(getattr(row, "updated_at", None)),
    }


def _iter_snapshot_entries(payload: dict) -> Iterable[tuple[str, date | None, Any, Any, Any]]:
    """Yield (raw officer name, day, code, note, meta) from both snapshot layouts."""
    assignments = _as_dict(payload.get("assignments"))
    notes = _as_dict(payload.get("notes"))
    notes_meta = _as_dict(payload.get("notes_meta"))
    for raw_key, code in assignments.items():
        parsed = split_key(raw_key)
        if parsed is None:
            continue
        name, day = parsed
        yield name, day, code, notes.get(raw_key), notes_meta.get(raw_key)

    for name, days in _as_dict(payload.get(LEGACY_BY_USER)).items():
        for raw_day, item in _as_dict(days).items():
            item = _as_dict(item)
            yield name, _parse_day(raw_day), item.get("code"), item.get("obs"), None


def read_snapshot(payload: dict | None, *, period: WeekPeriod, resolver: IdentityResolver) -> dict[str, SnapshotCell]:
    """
    Re-key a snapshot onto (canonical name, date) cells of the active period.

    Entries whose officer cannot be reconciled or whose date falls outside the
    period are dropped; the first entry for a cell wins.
    """
    cells: dict[str, SnapshotCell] = {}
    for name, day, code, note, meta in _iter_snapshot_entries(_as_dict(payload)):
        if day is None or not period.contains(day):
            continue
        canonical = resolver.canonical_for(name)
        if canonical is None:
            continue
        key = cell_key(canonical, day)
        if key in cells:
            continue
        normalized = normalize_code(str(code) if code is not None else None)
        cells[key] = SnapshotCell(
            code=normalized.value if normalized else None,
            note=str(note or "").strip(),
            meta=dict(_as_dict(meta)),
        )
    return cells


def _row_preference(row, canonical: str) -> tuple:
    updated = getattr(row, "updated_at", None) or getattr(row, "created_at", None)
    stamp = updated.timestamp() if isinstance(updated, datetime) else float("-inf")
    return (stamp, row.officer_name == canonical)


def merge_week(
    *,
    rows: Iterable,
    snapshot: dict | None,
    period: WeekPeriod,
    resolver: IdentityResolver,
) -> MergedWeek:
    """
    Merge relational day-rows with the snapshot into one assignment map.

    Precedence:
    - the relational code wins whenever a row exists for a cell;
    - snapshot cells without a row are used as they are;
    - a row without a description borrows the snapshot's description (and its
      meta) only when both sides carry the same code.
    """
    chosen: dict[str, tuple[Any, str]] = {}
    for row in rows:
        if row.date is None or not period.contains(row.date):
            continue
        canonical = resolver.canonical_for(row.officer_name)
        if canonical is None:
            continue
        code = normalize_code(row.code)
        if code is None:
            continue
        key = cell_key(canonical, row.date)
        current = chosen.get(key)
        if current is None or _row_preference(row, canonical) > _row_preference(current[0], canonical):
            chosen[key] = (row, code.value)

    merged = MergedWeek()
    for key, (row, code) in chosen.items():
        merged.assignments[key] = code
        description = (row.description or "").strip()
        if description:
            merged.notes[key] = description
            merged.notes_meta[key] = row_meta(row)

    for key, cell in read_snapshot(snapshot, period=period, resolver=resolver).items():
        if key not in merged.assignments:
            if cell.code is None:
                continue
            merged.assignments[key] = cell.code
            if cell.note:
                merged.notes[key] = cell.note
                merged.notes_meta[key] = cell.meta
        elif key not in merged.notes and cell.note and cell.code == merged.assignments[key]:
            merged.notes[key] = cell.note
            merged.notes_meta[key] = cell.meta

    return merged


def drop_snapshot_cell(payload: dict, *, canonical_name: str, day: date, resolver: IdentityResolver) -> None:
    """Remove every snapshot entry (any spelling, either layout) for one cell, in place."""
    assignments = _as_dict(payload.get("assignments"))
    notes = _as_dict(payload.get("notes"))
    notes_meta = _as_dict(payload.get("notes_meta"))
    for raw_key in list(assignments) + list(notes) + list(notes_meta):
        parsed = split_key(raw_key)
        if parsed is None or parsed[1] != day or resolver.canonical_for(parsed[0]) != canonical_name:
            continue
        assignments.pop(raw_key, None)
        notes.pop(raw_key, None)
        notes_meta.pop(raw_key, None)

    for name, days in _as_dict(payload.get(LEGACY_BY_USER)).items():
        if not isinstance(days, dict) or resolver.canonical_for(name) != canonical_name:
            continue
        for raw_day in list(days):
            if _parse_day(raw_day) == day:
                days.pop(raw_day)


def set_snapshot_cell(
    payload: dict,
    *,
    canonical_name: str,
    day: date,
    code: str,
    note: str | None,
    meta: dict,
) -> None:
    key = cell_key(canonical_name, day)
    for name in ("assignments", "notes", "notes_meta"):
        if not isinstance(payload.get(name), dict):
            payload[name] = {}
    payload["assignments"][key] = code
    if note:
        payload["notes"][key] = note
        payload["notes_meta"][key] = meta
    else:
        payload["notes"].pop(key, None)
        payload["notes_meta"].pop(key, None)
