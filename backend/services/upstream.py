"""
SalesOps - Erreurs des APIs externes (ManyChat, Kajabi, GA4, Calendly, ...)
"""

import re
from typing import Any, Optional

CREDENTIAL_PATTERN = re.compile(r"credential|auth|401|403|PERMISSION_DENIED|UNAUTHENTICATED", re.IGNORECASE)


class UpstreamError(Exception):
    """Appel externe en échec (status HTTP amont si connu)"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


def is_credential_error(message: str, code: Any = None) -> bool:
    """Erreur attribuable aux identifiants -> 503, sinon 500"""
    if code is not None and str(code) in ("401", "403"):
        return True
    return bool(CREDENTIAL_PATTERN.search(message or ""))


def error_status(error: Exception) -> int:
    code = getattr(error, "status_code", None)
    if code == 503:
        return 503
    return 503 if is_credential_error(str(error), code) else 500


def response_body(resp) -> Any:
    """JSON si possible, sinon texte brut"""
    try:
        return resp.json()
    except ValueError:
        return resp.text
