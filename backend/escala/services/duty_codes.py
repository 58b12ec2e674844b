from __future__ import annotations

import re
import unicodedata

from escala.models.enums import NEEDS_DESCRIPTION, DutyCode


_SEPARATORS_RE = re.compile(r"[\s_\-]+")


def strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _code_key(value: str) -> str:
    return _SEPARATORS_RE.sub("", strip_accents(value).upper())


_CODES_BY_KEY: dict[str, DutyCode] = {_code_key(code.value): code for code in DutyCode}


def normalize_code(value: str | None) -> DutyCode | None:
    """
    Map a stored or submitted code onto the canonical enumeration.

    "ferias", "Férias " and "FERIAS" all collapse to FÉRIAS; "cfp dia" to CFP_DIA.
    Returns None for empty or unknown codes.
    """
    if not value:
        return None
    return _CODES_BY_KEY.get(_code_key(value))


def needs_description(code: DutyCode | None) -> bool:
    return code in NEEDS_DESCRIPTION


def code_values() -> list[str]:
    return [code.value for code in DutyCode]


def needs_description_values() -> list[str]:
    return [code.value for code in DutyCode if code in NEEDS_DESCRIPTION]
