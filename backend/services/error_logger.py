"""
SalesOps - Error Logger

Trace les erreurs d'écriture dans la table function_errors.
Best-effort: un échec du log lui-même est seulement écrit dans les logs.
"""

import json
import logging
from typing import Any, Optional

from config import get_db

logger = logging.getLogger("error_logger")


async def log_function_error(
    function_name: str,
    error: Any,
    details: Optional[dict] = None,
    source: str = "api"
) -> bool:
    """
    Insère une ligne function_errors.

    Args:
        function_name: e.g. save_outcome, store_fbclid
        error: exception ou message
        details: contexte libre (call_id, payload, ...), sérialisé en JSON
        source: api | webhook | dashboard
    """
    try:
        await get_db().table("function_errors").insert({
            "function_name": function_name,
            "error_message": str(error),
            "error_details": json.loads(json.dumps(details or {}, default=str)),
            "source": source,
        }).execute()
        return True
    except Exception as e:
        logger.error(f"Could not record error for {function_name}: {e}")
        return False
