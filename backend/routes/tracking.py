"""
Routes de Tracking
Attribution Meta: fbclid capturé sur la LP + évènement Calendly booké
"""

import logging
from typing import Optional

from config import get_db, now_iso, rows
from models import FbclidStore, MetaConversion
from routes.common import ApiRequest, api_error, parse_body, require_method, upstream_error
from services.error_logger import log_function_error
from services.meta_conversion import send_event
from services.upstream import UpstreamError, error_status

logger = logging.getLogger("tracking")

FBCLID_TABLE = "fbclid_tracking"

# Ordre de priorité des headers proxy
IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip", "x-client-ip")


def client_ip(req: ApiRequest) -> Optional[str]:
    """Premier IP de x-forwarded-for, puis x-real-ip, cf-connecting-ip, puis l'IP socket"""
    for name in IP_HEADERS:
        value = req.header(name)
        if not value:
            continue
        ip = value.split(",")[0].strip()
        if ip:
            return ip
    return req.client_host


async def store_fbclid(req: ApiRequest):
    """
    POST /api/store-fbclid
    {fbclid, calendly_event_uri} -> fbclid_tracking
    """
    require_method(req, "POST")
    body = req.json_body()
    if not body.get("fbclid") or not body.get("calendly_event_uri"):
        raise api_error(400, "Missing required fields: fbclid and calendly_event_uri are required")
    data = parse_body(FbclidStore, req)

    record = {
        "fbclid": data.fbclid,
        "calendly_event_uri": data.calendly_event_uri,
        "ip_address": client_ip(req),
        "created_at": now_iso(),
    }
    try:
        inserted = rows(await get_db().table(FBCLID_TABLE).insert(record).execute())
    except Exception as e:
        logger.error(f"[store-fbclid] insert failed: {e}")
        await log_function_error("store_fbclid", e, {"calendly_event_uri": data.calendly_event_uri}, source="webhook")
        raise api_error(500, "Failed to store data", details=str(e))

    logger.info(f"[store-fbclid] stored fbclid for {data.calendly_event_uri}")
    return {
        "success": True,
        "data": inserted[0] if inserted else record,
        "message": "fbclid and calendly_event_uri stored successfully",
    }


async def meta_conversion(req: ApiRequest):
    """POST /api/meta-conversion"""
    require_method(req, "POST")
    data = parse_body(MetaConversion, req)
    if not (data.email or data.phone or data.fbclid or data.calendly_event_uri):
        raise api_error(400, "Missing user data: email, phone, fbclid or calendly_event_uri required")
    if not data.client_ip_address:
        data.client_ip_address = client_ip(req)
    if not data.client_user_agent:
        data.client_user_agent = req.header("user-agent")

    try:
        result = await send_event(data)
    except UpstreamError as e:
        raise upstream_error(e, error_status(e), "Meta conversion failed")
    return {"success": True, "data": result}
