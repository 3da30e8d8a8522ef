"""
Routes Shifts
  - current-setter      setter en shift maintenant (SHIFT_TIMEZONE)
  - ruben-shift-toggle  ouverture / fermeture du shift de Ruben
"""

import logging

from fastapi import HTTPException

from config import get_db, now_iso, rows
from models import ShiftToggle
from routes.common import ApiRequest, api_error, parse_body, require_method
from services.schedules import get_current_setter

logger = logging.getLogger("shifts")

RUBEN_TABLE = "ruben"


async def current_setter(req: ApiRequest):
    require_method(req, "GET")
    try:
        result = await get_current_setter()
    except Exception as e:
        logger.error(f"[current-setter] FAILED: {e}")
        raise api_error(500, "Failed to resolve current setter", details=str(e))

    response = {"success": True, "setter": result["setter"], "debug": result["debug"]}
    if result["setter"] is None:
        response["message"] = "No setter on shift right now"
    return response


async def ruben_shift_toggle(req: ApiRequest):
    """
    POST {action: start | end | toggle}
    start: ouvre un shift si aucun n'est ouvert
    end: ferme le shift ouvert le plus récent
    """
    require_method(req, "POST")
    data = parse_body(ShiftToggle, req)
    db = get_db()

    try:
        open_shifts = rows(
            await db.table(RUBEN_TABLE).select("*")
            .eq("status", "open")
            .order("start_time", desc=True)
            .limit(1)
            .execute()
        )
        current = open_shifts[0] if open_shifts else None

        action = data.action
        if action == "toggle":
            action = "end" if current else "start"

        if action == "start":
            if current:
                return {"success": True, "status": "open", "shift": current, "message": "Shift already open"}
            created = rows(
                await db.table(RUBEN_TABLE).insert({"start_time": now_iso(), "status": "open"}).execute()
            )
            logger.info("[ruben-shift-toggle] shift started")
            return {"success": True, "status": "open", "shift": created[0] if created else None}

        if not current:
            raise api_error(409, "No open shift to end")
        closed = rows(
            await db.table(RUBEN_TABLE).update({"end_time": now_iso(), "status": "closed"})
            .eq("id", current["id"])
            .execute()
        )
        logger.info(f"[ruben-shift-toggle] shift {current['id']} closed")
        return {"success": True, "status": "closed", "shift": closed[0] if closed else {**current, "status": "closed"}}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[ruben-shift-toggle] FAILED: {e}")
        raise api_error(500, "Failed to toggle shift", details=str(e))
