"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SalesOps - Modèle Outcome (décision du closer)                              ║
║                                                                              ║
║  outcome_log: une ligne par call (non garanti en base, dédup par max id)     ║
║  outcome: yes | no | lock_in | follow_up | refund                            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum

from services.date_windows import parse_datetime


class Outcome(str, Enum):
    YES = "yes"
    NO = "no"
    LOCK_IN = "lock_in"
    FOLLOW_UP = "follow_up"
    REFUND = "refund"


# Outcomes qui créditent (ou débitent) une commission
COMMISSION_OUTCOMES = (Outcome.YES, Outcome.REFUND)

DEFAULT_CLAWBACK = 100.0


class OutcomeSave(BaseModel):
    """
    Sauvegarde d'une note closer

    Exemple:
    {
        "call_id": 812,
        "outcome": "refund",
        "offer_id": 3,
        "purchase_date": "2025-03-02",
        "refund_date": "2025-03-20",
        "clawback": 50
    }
    """
    call_id: int
    outcome: Outcome
    offer_id: Optional[int] = None
    discount: Optional[float] = Field(default=None, ge=0, le=100)
    pif: bool = False
    purchase_date: Optional[str] = None
    refund_date: Optional[str] = None
    clawback: Optional[float] = None
    paid_second_installment: bool = False
    notes: Optional[str] = ""

    @field_validator('purchase_date', 'refund_date', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('purchase_date', 'refund_date')
    @classmethod
    def validate_iso_date(cls, v):
        if v is None:
            return v
        try:
            parse_datetime(v)
        except ValueError:
            raise ValueError("must be an ISO date (YYYY-MM-DD or ISO datetime)")
        return v.strip()
