"""
Routes Outcomes / statuts de call
  - outcome-log   décision du closer + commission
  - call-status   statut tri-state d'un call, miroir ManyChat
"""

import logging

from config import get_db, rows
from models import CallStatusUpdate, OutcomeSave
from routes.common import ApiRequest, api_error, parse_body, require_method
from services import manychat
from services.outcomes import CallNotFoundError, save_outcome
from services.upstream import UpstreamError

logger = logging.getLogger("outcomes")


async def outcome_log(req: ApiRequest):
    """POST /api/outcome-log (OutcomeSave)"""
    require_method(req, "POST")
    data = parse_body(OutcomeSave, req)
    try:
        result = await save_outcome(data)
    except CallNotFoundError as e:
        raise api_error(404, str(e))
    except Exception as e:
        raise api_error(500, "Failed to save outcome", details=str(e))
    return {"success": True, "data": result}


async def _manychat_id_for(db, call: dict):
    if call.get("manychat_id"):
        return call["manychat_id"]
    if call.get("lead_id") is None:
        return None
    leads = rows(await db.table("leads").select("manychat_id").eq("id", call["lead_id"]).limit(1).execute())
    return leads[0].get("manychat_id") if leads else None


async def call_status(req: ApiRequest):
    """
    POST /api/call-status {call_id, field, value, sync_manychat}
    value: true/false/null, "YES"/"NO"/"TBD"...
    La synchro ManyChat est best-effort: son échec n'annule pas la mise à jour.
    """
    require_method(req, "POST")
    data = parse_body(CallStatusUpdate, req)
    db = get_db()

    try:
        found = rows(
            await db.table("calls").select("id, lead_id, manychat_id").eq("id", data.call_id).limit(1).execute()
        )
        if not found:
            raise api_error(404, f"Call {data.call_id} not found")
        await db.table("calls").update({data.field: data.value.to_storage()}).eq("id", data.call_id).execute()
    except Exception as e:
        if getattr(e, "status_code", None) == 404:
            raise
        logger.error(f"[call-status] update failed for call {data.call_id}: {e}")
        raise api_error(500, "Failed to update call", details=str(e))

    response = {
        "success": True,
        "data": {"call_id": data.call_id, "field": data.field, "value": data.value.value},
        "manychat": None,
    }
    if not data.sync_manychat:
        return response

    subscriber_id = await _manychat_id_for(db, found[0])
    if not subscriber_id:
        response["manychat"] = {"skipped": "no manychat_id"}
        return response
    try:
        synced = await manychat.sync_call_status(subscriber_id, data.field, data.value)
        response["manychat"] = {"skipped": "TBD"} if synced is None else {"synced": True}
    except UpstreamError as e:
        logger.warning(f"[call-status] ManyChat sync failed for call {data.call_id}: {e.message}")
        response["manychat"] = {"error": e.message}
    return response
