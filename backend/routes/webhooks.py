"""
╔══════════════════════════════════════════════════════════════════════╗
║  WEBHOOKS ENTRANTS                                                   ║
║                                                                      ║
║  calendly-webhook  invitee.created / canceled / no_show              ║
║  kajabi-webhook    achat Kajabi -> élève dans l'app académique       ║
║  n8n-webhook       booking enrichi -> lead + call                    ║
║  zoom-webhook      challenge URL + logs des appels téléphoniques     ║
║                                                                      ║
║  Toujours POST. Aucun retry, aucune clé d'idempotence.               ║
╚══════════════════════════════════════════════════════════════════════╝
"""

import hashlib
import hmac
import logging
from typing import Any, Optional

import config
from config import get_db, now_iso, rows
from models import BookingPayload
from routes.common import ApiRequest, api_error, parse_body, require_method, respond
from services import academic, calendly
from services.error_logger import log_function_error
from services.upstream import UpstreamError

logger = logging.getLogger("webhooks")


# ==================== CALENDLY ====================

async def calendly_webhook(req: ApiRequest):
    """Accusé de réception systématique {received: true}"""
    require_method(req, "POST")
    body = req.json_body()
    event = body.get("event")
    payload = body.get("payload") if isinstance(body.get("payload"), dict) else {}
    logger.info(f"[calendly-webhook] event={event}")

    if event == "invitee.created":
        await calendly.notify_discord(payload)
    elif event == "invitee.canceled":
        count = await calendly.mark_call(payload, {"cancelled": True})
        logger.info(f"[calendly-webhook] cancellation marked on {count} call(s)")
    elif event == "invitee_no_show.created":
        count = await calendly.mark_call(payload, {"showed_up": False})
        logger.info(f"[calendly-webhook] no-show marked on {count} call(s)")

    return {"received": True}


# ==================== KAJABI ====================

async def store_inbound(raw: Any) -> Optional[int]:
    """Stocke le corps brut tel que reçu. Returns: id, None si échec"""
    try:
        stored = rows(
            await get_db().table("webhook_inbounds")
            .insert({"payload": raw, "created_at": now_iso()})
            .execute()
        )
    except Exception as e:
        logger.error(f"[kajabi-webhook] raw payload storage FAILED: {e}")
        await log_function_error("kajabi_webhook.store_inbound", e, source="webhook")
        return None
    return stored[0].get("id") if stored else None


async def kajabi_webhook(req: ApiRequest):
    """
    {id, event, payload: {member_email, member_name, offer_id, ...}}
    1. stockage brut dans webhook_inbounds (avant toute validation)
    2. offre par kajabi_id
    3. création de l'élève dans l'app académique
    """
    require_method(req, "POST")
    stored_id = await store_inbound(req.body)
    stored = stored_id is not None

    body = req.json_body()
    member = body.get("payload") if isinstance(body.get("payload"), dict) else {}

    if not member.get("member_email"):
        raise api_error(400, "Missing member_email in payload",
                        received=list(body.keys()), stored=stored, stored_id=stored_id)

    email = str(member["member_email"]).strip().lower()
    name = academic.customer_name(member, email)

    offer_id = member.get("offer_id")
    if offer_id is None or offer_id == "":
        raise api_error(400, "Missing offer_id in payload",
                        payload_structure=list(member.keys()), stored=stored, stored_id=stored_id)

    try:
        found = rows(
            await get_db().table("offers").select("kajabi_id, weekly_classes")
            .eq("kajabi_id", offer_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.error(f"[kajabi-webhook] offer lookup failed: {e}")
        raise api_error(500, "Failed to fetch offer", details=str(e))
    if not found:
        raise api_error(404, f"Offer not found for kajabi_id: {offer_id}", stored=stored, stored_id=stored_id)

    weekly_classes = found[0].get("weekly_classes") or 0
    try:
        created = await academic.create_student(email, name, weekly_classes)
    except UpstreamError as e:
        logger.error(f"[kajabi-webhook] academic app error: {e.payload}")
        raise api_error(e.status_code or 502, e.message, details=e.payload)

    logger.info(f"[kajabi-webhook] student created for {email} (offer {offer_id})")
    return {
        "message": "Student created successfully",
        "student": created.get("student") if isinstance(created, dict) else None,
        "offer": {"kajabi_id": offer_id, "weekly_classes": weekly_classes},
    }


# ==================== N8N ====================

async def find_or_create_lead(data: BookingPayload) -> dict:
    db = get_db()
    existing = rows(await db.table("leads").select("*").eq("email", data.email).limit(1).execute())
    if existing:
        return existing[0]
    record = {
        "name": data.name or "",
        "email": data.email,
        "phone": data.phone,
        "manychat_id": data.manychat_id,
    }
    created = rows(await db.table("leads").insert(record).execute())
    if not created:
        raise RuntimeError(f"Lead insert returned no row for {data.email}")
    logger.info(f"[n8n-webhook] new lead {created[0].get('id')} for {data.email}")
    return created[0]


async def n8n_webhook(req: ApiRequest):
    """Booking -> lead (trouvé par email ou créé) + call; reschedule si le lead a déjà des calls"""
    require_method(req, "POST")
    data = parse_body(BookingPayload, req)
    db = get_db()

    try:
        lead = await find_or_create_lead(data)
        previous = rows(await db.table("calls").select("id").eq("lead_id", lead["id"]).limit(1).execute())
        call = {
            "lead_id": lead["id"],
            "name": data.name or lead.get("name") or "",
            "email": data.email,
            "phone": data.phone or lead.get("phone"),
            "book_date": data.book_date or now_iso(),
            "call_date": data.call_date,
            "setter_id": data.setter_id,
            "closer_id": data.closer_id,
            "source_type": data.source_type or "organic",
            "utm_source": data.utm_source,
            "utm_medium": data.utm_medium,
            "utm_campaign": data.utm_campaign,
            "calendly_event_uri": data.calendly_event_uri,
            "manychat_id": data.manychat_id or lead.get("manychat_id"),
            "is_reschedule": bool(previous),
        }
        inserted = rows(await db.table("calls").insert(call).execute())
    except Exception as e:
        logger.error(f"[n8n-webhook] FAILED for {data.email}: {e}")
        await log_function_error("n8n_webhook", e, {"email": data.email}, source="webhook")
        raise api_error(500, "Failed to store booking", details=str(e))

    logger.info(f"[n8n-webhook] call stored for lead {lead['id']} (reschedule={bool(previous)})")
    return {
        "success": True,
        "data": {"lead": lead, "call": inserted[0] if inserted else call},
        "is_reschedule": bool(previous),
    }


# ==================== ZOOM ====================

def zoom_signature(secret: str, message: str) -> str:
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def verify_zoom_request(req: ApiRequest, secret: str) -> bool:
    """x-zm-signature = v0=HMAC(secret, 'v0:{timestamp}:{raw body}'), signature et timestamp obligatoires"""
    signature = req.header("x-zm-signature")
    timestamp = req.header("x-zm-request-timestamp")
    if not signature or not timestamp:
        return False
    raw = req.raw_body.decode("utf-8", errors="replace")
    expected = "v0=" + zoom_signature(secret, f"v0:{timestamp}:{raw}")
    return hmac.compare_digest(expected, signature)


def zoom_call_log(body: dict) -> dict:
    obj = (body.get("payload") or {}).get("object") or {}
    caller = obj.get("caller") or {}
    callee = obj.get("callee") or {}
    return {
        "event": body.get("event"),
        "call_id": obj.get("call_id") or obj.get("id"),
        "caller_number": caller.get("phone_number") or obj.get("caller_number"),
        "callee_number": callee.get("phone_number") or obj.get("callee_number"),
        "occurred_at": obj.get("date_time") or obj.get("start_time") or now_iso(),
        "payload": body,
    }


async def zoom_webhook(req: ApiRequest):
    require_method(req, "POST")
    body = req.json_body()
    secret = config.ZOOM_WEBHOOK_SECRET

    if body.get("event") == "endpoint.url_validation":
        plain = (body.get("payload") or {}).get("plainToken")
        if not plain:
            raise api_error(400, "Missing plainToken")
        if not secret:
            raise api_error(503, "ZOOM_WEBHOOK_SECRET not configured")
        return respond(200, {"plainToken": plain, "encryptedToken": zoom_signature(secret, plain)})

    if secret and not verify_zoom_request(req, secret):
        logger.warning("[zoom-webhook] invalid signature")
        raise api_error(401, "Invalid signature")

    if not body.get("event"):
        raise api_error(400, "Missing event")

    record = zoom_call_log(body)
    try:
        await get_db().table("zoom_call_logs").insert(record).execute()
    except Exception as e:
        logger.error(f"[zoom-webhook] insert failed: {e}")
        await log_function_error("zoom_webhook", e, {"event": record["event"]}, source="webhook")
        raise api_error(500, "Failed to store Zoom event", details=str(e))

    logger.info(f"[zoom-webhook] {record['event']} stored (call {record['call_id']})")
    return {"success": True, "received": True}
