from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Officer:
    canonical_name: str
    rank: str
    display_name: str

    def as_dict(self) -> dict:
        return {"canonical_name": self.canonical_name, "rank": self.rank, "display_name": self.display_name}


DEFAULT_ROSTER: tuple[Officer, ...] = (
    Officer("Eduardo Mosna Xavier", "Maj PM", "Maj PM Mosna"),
    Officer("Alberto Franzini Neto", "Cap PM", "Cap PM Franzini"),
    Officer("Rodrigo Antunes Lima", "Cap PM", "Cap PM Antunes"),
    Officer("Fernanda Sá Carvalho", "1º Ten PM", "1º Ten PM Fernanda"),
    Officer("João Batista Peixoto", "1º Ten PM", "1º Ten PM Peixoto"),
    Officer("Marcelo Augusto Ribeiro", "2º Ten PM", "2º Ten PM Ribeiro"),
    Officer("Luciana Prates Gonçalves", "2º Ten PM", "2º Ten PM Prates"),
    Officer("Thiago Henrique Moraes", "Asp Of PM", "Asp Of PM Moraes"),
)


def load_roster(path: str | None = None) -> tuple[Officer, ...]:
    """
    Load the officer roster.

    Without a path the built-in roster is used. A roster file is a JSON list of
    objects with `canonical_name`, `rank` and `display_name`.
    """
    if not path:
        return DEFAULT_ROSTER

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, list) or not raw:
        raise ValueError(f"Roster file {path} must contain a non-empty list")

    officers: list[Officer] = []
    seen: set[str] = set()
    for item in raw:
        canonical_name = str(item["canonical_name"]).strip()
        if not canonical_name or canonical_name in seen:
            raise ValueError(f"Invalid or duplicate canonical_name in roster: {canonical_name!r}")
        seen.add(canonical_name)
        rank = str(item.get("rank") or "").strip()
        display_name = str(item.get("display_name") or f"{rank} {canonical_name}").strip()
        officers.append(Officer(canonical_name=canonical_name, rank=rank, display_name=display_name))
    return tuple(officers)
