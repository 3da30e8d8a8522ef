"""
Routes d'intégration (proxies vers les APIs externes)
manychat, kajabi-token, google-analytics, academic-stats, cancel-calendly, ai-setter
"""

import logging

from models import AISetterMessage, CancelCalendly
from routes.common import ApiRequest, api_error, parse_body, require_method, respond, upstream_error
from services import academic, ai_setter, calendly, google_analytics, kajabi, manychat
from services.date_windows import to_date
from services.upstream import UpstreamError, error_status, is_credential_error

logger = logging.getLogger("integrations")


# ==================== MANYCHAT ====================

async def manychat_proxy(req: ApiRequest):
    """
    POST /api/manychat
    action: set-fields-by-name | find-user-by-phone | create-user
    sinon: subscriberId + updates[] ou subscriberId + fieldId/value
    """
    require_method(req, "POST")
    body = req.json_body()
    action = body.get("action")
    subscriber_id = body.get("subscriberId")
    api_key = body.get("apiKey")

    try:
        if action == "set-fields-by-name":
            fields = body.get("fieldsByName")
            if not subscriber_id or not isinstance(fields, list):
                raise api_error(400, "Missing required fields: subscriberId and fieldsByName (array)")
            outcome = await manychat.set_fields_by_name(subscriber_id, fields, api_key)
            return {
                "success": not outcome["errors"],
                "results": outcome["results"],
                "errors": outcome["errors"] or None,
            }

        if action == "find-user-by-phone":
            phone = body.get("whatsapp_phone")
            if not phone or not api_key:
                raise api_error(400, "Missing required fields: whatsapp_phone and apiKey")
            try:
                found_id = await manychat.find_subscriber_by_phone(phone, api_key)
            except LookupError as e:
                raise api_error(404, str(e))
            if not found_id:
                raise api_error(404, "Subscriber not found for this phone number")
            return {"success": True, "subscriberId": found_id, "found": True}

        if action == "create-user":
            if not body.get("first_name") or not body.get("whatsapp_phone") or not api_key:
                raise api_error(400, "Missing required fields: first_name, whatsapp_phone, and apiKey")
            result = await manychat.create_or_find_subscriber(
                body["first_name"], body["whatsapp_phone"], body.get("last_name") or "", api_key
            )
            return {"success": True, **result}

        updates = body.get("updates")
        if isinstance(updates, list):
            if not subscriber_id:
                raise api_error(400, "Missing required fields: subscriberId")
            fields = [
                {"field_id": u["fieldId"], "field_value": u["value"]}
                for u in updates
                if isinstance(u, dict) and u.get("fieldId") and u.get("value") is not None
            ]
            if not fields:
                raise api_error(400, "No valid fields to update")
            return {"success": True, "data": await manychat.set_custom_fields(subscriber_id, fields, api_key)}

        if not subscriber_id or not body.get("fieldId"):
            raise api_error(400, "Missing required fields")
        fields = [{"field_id": body["fieldId"], "field_value": body.get("value")}]
        return {"success": True, "data": await manychat.set_custom_fields(subscriber_id, fields, api_key)}

    except UpstreamError as e:
        logger.error(f"[manychat] {e.message}")
        raise upstream_error(e, error_status(e), debug=e.payload)


# ==================== KAJABI TOKEN ====================

async def kajabi_token(req: ApiRequest):
    """GET /api/kajabi-token -> {access_token, expires_in}"""
    require_method(req, "GET")
    try:
        return await kajabi.fetch_access_token()
    except UpstreamError as e:
        raise upstream_error(e, e.status_code or 502)


# ==================== GOOGLE ANALYTICS ====================

def _truthy(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes")


async def google_analytics_views(req: ApiRequest):
    """GET /api/google-analytics?pagePath=/x&startDate=YYYY-MM-DD&endDate=YYYY-MM-DD"""
    require_method(req, "GET")
    page_path = (req.query.get("pagePath") or "").strip() or "/"
    start_date = (req.query.get("startDate") or "").strip()
    end_date = (req.query.get("endDate") or "").strip()
    if not start_date or not end_date:
        raise api_error(
            400, "Missing startDate or endDate",
            usage="?pagePath=/pricing&startDate=2024-01-01&endDate=2024-01-31",
        )
    try:
        to_date(start_date), to_date(end_date)
    except ValueError as e:
        raise api_error(400, f"Invalid date: {e}")

    try:
        return await google_analytics.fetch_page_views(
            page_path, start_date, end_date,
            whole_site=_truthy(req.query.get("wholeSite")),
            property_id=req.query.get("propertyId"),
        )
    except google_analytics.AnalyticsConfigError as e:
        logger.error(f"[google-analytics] {e}")
        raise api_error(503, "Invalid GOOGLE_SERVICE_ACCOUNT_JSON", details=str(e),
                        mock=google_analytics.mock_rows(start_date, end_date))
    except Exception as e:
        code = getattr(e, "code", None)
        credential = is_credential_error(str(e), code)
        logger.error(f"[google-analytics] FAILED: {e}")
        raise api_error(
            503 if credential else 500,
            "Google Analytics request failed",
            details=str(e),
            code=str(code) if code is not None else None,
            hint="Set GOOGLE_APPLICATION_CREDENTIALS or GOOGLE_SERVICE_ACCOUNT_JSON and grant the "
                 "service account access to the GA4 property." if credential else None,
            mock=google_analytics.mock_rows(start_date, end_date),
        )


# ==================== ACADEMIC STATS ====================

async def academic_stats(req: ApiRequest):
    """
    GET /api/academic-stats?startDate&endDate (défaut: hier)
    Toujours 200: l'app académique indisponible -> champs à null + error
    """
    require_method(req, "GET")
    empty = {"avgAttendance": None, "numberOfClasses": None, "numberOfStudents": None, "showUpRate": None}
    try:
        start, end = academic.attendance_bounds(req.query.get("startDate"), req.query.get("endDate"))
    except ValueError as e:
        raise api_error(400, f"Invalid date: {e}")
    start = req.query.get("from") or start
    end = req.query.get("to") or end

    try:
        data = await academic.fetch_attendance(start, end)
    except UpstreamError as e:
        logger.warning(f"[academic-stats] {e.message} ({e.status_code})")
        return {**empty, "error": e.message, "raw": e.payload}
    except Exception as e:
        logger.warning(f"[academic-stats] fetch failed: {e}")
        return {**empty, "error": str(e) or "Failed to fetch"}

    return {**academic.map_attendance(data), "startDate": start, "endDate": end, "raw": data}


# ==================== CALENDLY ====================

async def cancel_calendly(req: ApiRequest):
    """POST /api/cancel-calendly {event_uri | event_uuid, reason}"""
    require_method(req, "POST")
    data = parse_body(CancelCalendly, req)
    uuid = calendly.event_uuid_from(data.event_uri, data.event_uuid)
    if not uuid:
        raise api_error(400, "Missing required fields: event_uri or event_uuid")
    try:
        result = await calendly.cancel_event(uuid, data.reason or "")
    except UpstreamError as e:
        raise upstream_error(e, error_status(e), "Failed to cancel Calendly event")
    logger.info(f"[cancel-calendly] cancelled {uuid}")
    return {"success": True, "data": result}


# ==================== AI SETTER ====================

async def ai_setter_reply(req: ApiRequest):
    """POST /api/ai-setter {message, state, history}"""
    require_method(req, "POST")
    data = parse_body(AISetterMessage, req)
    try:
        result = await ai_setter.reply(data)
    except UpstreamError as e:
        if e.status_code == 503:
            return respond(503, {"error": "AI setter handler not available", "details": e.message})
        raise upstream_error(e, error_status(e), "AI setter request failed")
    return {"success": True, **result}
