"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SalesOps - Models Package                                                   ║
║                                                                              ║
║  from models import TriState, Outcome, OutcomeSave, etc.                     ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Call (statuts tri-state)
from .call import (
    TriState,
    is_yes,
    is_no,
    CALL_STATUS_FIELDS,
    CallStatusUpdate,
)

# Outcome (notes closer)
from .outcome import (
    Outcome,
    COMMISSION_OUTCOMES,
    DEFAULT_CLAWBACK,
    OutcomeSave,
)

# Payloads /api
from .payloads import (
    FbclidStore,
    CancelCalendly,
    MetaConversion,
    ShiftToggle,
    AISetterMessage,
    BookingPayload,
)

__all__ = [
    # Call
    "TriState",
    "is_yes",
    "is_no",
    "CALL_STATUS_FIELDS",
    "CallStatusUpdate",
    # Outcome
    "Outcome",
    "COMMISSION_OUTCOMES",
    "DEFAULT_CLAWBACK",
    "OutcomeSave",
    # Payloads
    "FbclidStore",
    "CancelCalendly",
    "MetaConversion",
    "ShiftToggle",
    "AISetterMessage",
    "BookingPayload",
]
