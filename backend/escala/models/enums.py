from __future__ import annotations

import enum


class DutyCode(str, enum.Enum):
    EXP = "EXP"
    SR = "SR"
    FOJ = "FOJ"
    FO_DESC = "FO*"
    MA = "MA"
    VE = "VE"
    LP = "LP"
    FERIAS = "FÉRIAS"
    CFP_DIA = "CFP_DIA"
    CFP_NOITE = "CFP_NOITE"
    OUTROS = "OUTROS"


NEEDS_DESCRIPTION: frozenset[DutyCode] = frozenset({DutyCode.FO_DESC, DutyCode.OUTROS})


class ChangeField(str, enum.Enum):
    code = "code"
    description = "description"
