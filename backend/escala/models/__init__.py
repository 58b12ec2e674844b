from escala.models.change_log import ChangeLog
from escala.models.credential import Credential
from escala.models.duty_day import DutyDay
from escala.models.state_store import StateStore

__all__ = [
    "ChangeLog",
    "Credential",
    "DutyDay",
    "StateStore",
]
