"""
SalesOps - Calendly + notification Discord des nouveaux bookings
"""

import logging
from typing import Any, Optional

import config
from config import get_db, http_client
from services.upstream import UpstreamError, response_body

logger = logging.getLogger("calendly")

API_URL = "https://api.calendly.com"


def event_uuid_from(event_uri: Optional[str] = None, event_uuid: Optional[str] = None) -> Optional[str]:
    """https://api.calendly.com/scheduled_events/<uuid> -> <uuid>"""
    if event_uuid:
        return event_uuid.strip()
    if event_uri:
        return event_uri.rstrip("/").rsplit("/", 1)[-1] or None
    return None


async def cancel_event(event_uuid: str, reason: str = "") -> Any:
    if not config.CALENDLY_TOKEN:
        raise UpstreamError("Calendly token not configured", 503)
    async with http_client() as client:
        resp = await client.post(
            f"{API_URL}/scheduled_events/{event_uuid}/cancellation",
            json={"reason": reason or ""},
            headers={
                "Authorization": f"Bearer {config.CALENDLY_TOKEN}",
                "Content-Type": "application/json",
            },
        )
    body = response_body(resp)
    if resp.status_code >= 400:
        raise UpstreamError(f"Calendly cancellation failed ({resp.status_code})", resp.status_code, body)
    return body


# ==================== WEBHOOK EVENTS ====================

def booking_message(payload: dict) -> str:
    start_time = None
    for key in ("scheduled_event", "event"):
        event = payload.get(key)
        if isinstance(event, dict) and event.get("start_time"):
            start_time = event["start_time"]
            break
    lines = [
        f"👤 {payload.get('name') or 'Unknown name'}",
        f"✉️ {payload.get('email') or 'Unknown email'}",
    ]
    if start_time:
        lines.append(f"🕒 Starts at: {start_time}")
    return "\n".join(lines)


async def notify_discord(payload: dict) -> bool:
    """Best-effort: une erreur Discord ne fait pas échouer le webhook"""
    if not config.DISCORD_WEBHOOK_URL:
        logger.info("Discord webhook not configured, skipping notification")
        return False
    body = {"message": booking_message(payload)}
    if config.DISCORD_NOTIFY_USER_ID:
        body["userId"] = config.DISCORD_NOTIFY_USER_ID
    try:
        async with http_client() as client:
            resp = await client.post(config.DISCORD_WEBHOOK_URL, json=body)
        if resp.status_code >= 400:
            logger.error(f"Discord notification failed: {resp.status_code} {resp.text}")
            return False
    except Exception as e:
        logger.error(f"Error sending Discord notification: {e}")
        return False
    logger.info("Discord notification sent")
    return True


def scheduled_event_uri(payload: dict) -> Optional[str]:
    event = payload.get("scheduled_event")
    if isinstance(event, dict):
        return event.get("uri")
    return payload.get("event") if isinstance(payload.get("event"), str) else None


async def mark_call(payload: dict, patch: dict) -> int:
    """Applique patch aux calls liés à l'évènement Calendly. Returns: nb de lignes"""
    uri = scheduled_event_uri(payload)
    if not uri:
        logger.warning("Calendly payload without scheduled event uri")
        return 0
    result = await get_db().table("calls").update(patch).eq("calendly_event_uri", uri).execute()
    return len(result.data or [])
