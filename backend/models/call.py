"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SalesOps - Modèle Call                                                      ║
║                                                                              ║
║  Un call = un rendez-vous de vente booké (Calendly / n8n / saisie manuelle)  ║
║  Statuts tri-state: picked_up, confirmed, showed_up, purchased               ║
║                                                                              ║
║  RÈGLE: une seule conversion tri-state, à la frontière HTTP / stockage       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Any, Optional
from pydantic import BaseModel, field_validator
from enum import Enum


class TriState(str, Enum):
    """YES / NO / TBD (stocké true / false / null)"""
    YES = "YES"
    NO = "NO"
    TBD = "TBD"

    @classmethod
    def from_value(cls, value: Any) -> "TriState":
        """
        Accepte true/false/null, "true"/"false"/"null"/"",
        "YES"/"NO"/"TBD" (casse libre).
        """
        if isinstance(value, TriState):
            return value
        if value is None:
            return cls.TBD
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        if isinstance(value, str):
            v = value.strip().lower()
            if v in ("true", "yes"):
                return cls.YES
            if v in ("false", "no"):
                return cls.NO
            if v in ("null", "none", "tbd", ""):
                return cls.TBD
        raise ValueError(f"Invalid tri-state value: {value!r}")

    def to_storage(self) -> Optional[bool]:
        if self is TriState.YES:
            return True
        if self is TriState.NO:
            return False
        return None


def is_yes(value: Any) -> bool:
    """Row helper: the stored flag counts as YES (bad values count as not YES)"""
    try:
        return TriState.from_value(value) is TriState.YES
    except ValueError:
        return False


def is_no(value: Any) -> bool:
    try:
        return TriState.from_value(value) is TriState.NO
    except ValueError:
        return False


# Colonnes tri-state modifiables via /api/call-status
CALL_STATUS_FIELDS = ("picked_up", "confirmed", "showed_up", "purchased")


class CallStatusUpdate(BaseModel):
    """Mise à jour d'un statut tri-state d'un call"""
    call_id: int
    field: str
    value: TriState = TriState.TBD
    sync_manychat: bool = True

    @field_validator('field')
    @classmethod
    def validate_field(cls, v):
        if v not in CALL_STATUS_FIELDS:
            raise ValueError(f"Unknown status field: {v}")
        return v

    @field_validator('value', mode='before')
    @classmethod
    def parse_tristate(cls, v):
        return TriState.from_value(v)
