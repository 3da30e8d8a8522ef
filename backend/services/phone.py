"""
SalesOps - Pays depuis le numéro de téléphone

Préfixe international le plus long d'abord (4 -> 1 chiffres).
"""

import re
from typing import Mapping, Optional

from config import COUNTRY_CODES

UNKNOWN_COUNTRY = "Unknown"


def clean_phone(phone: Optional[str]) -> str:
    """Garde uniquement les chiffres"""
    if not phone:
        return ""
    return re.sub(r"\D", "", str(phone))


def country_info(phone: Optional[str], codes: Mapping[str, str] = COUNTRY_CODES) -> dict:
    """
    Returns: {"country": "ES", "code": "34", "remaining": "600123456"}
    ou {"country": "Unknown", "code": None, "remaining": None}
    """
    digits = clean_phone(phone)
    if digits:
        for length in range(4, 0, -1):
            prefix = digits[:length]
            if prefix in codes:
                return {"country": codes[prefix], "code": prefix, "remaining": digits[length:]}
    return {"country": UNKNOWN_COUNTRY, "code": None, "remaining": None}


def country_from_phone(phone: Optional[str], codes: Mapping[str, str] = COUNTRY_CODES) -> str:
    return country_info(phone, codes)["country"]


def country_code_from_phone(phone: Optional[str], codes: Mapping[str, str] = COUNTRY_CODES) -> Optional[str]:
    return country_info(phone, codes)["code"]
