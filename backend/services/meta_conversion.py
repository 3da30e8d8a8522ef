"""
SalesOps - Meta Conversions API

Evènement serveur (Schedule, Purchase, ...) avec email / téléphone hashés
SHA-256 et fbc construit depuis le fbclid stocké par /api/store-fbclid.
"""

import hashlib
import logging
import time
from typing import Any, Optional

import config
from config import get_db, http_client, rows
from models import MetaConversion
from services.phone import clean_phone
from services.upstream import UpstreamError, response_body

logger = logging.getLogger("meta_conversion")

GRAPH_URL = "https://graph.facebook.com/v19.0"


def sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hashed_email(email: Optional[str]) -> Optional[str]:
    if not email or not email.strip():
        return None
    return sha256(email.strip().lower())


def hashed_phone(phone: Optional[str]) -> Optional[str]:
    digits = clean_phone(phone)
    return sha256(digits) if digits else None


def fbc_from(fbclid: str, created_ms: Optional[int] = None) -> str:
    """fb.1.<timestamp ms>.<fbclid>"""
    if created_ms is None:
        created_ms = int(time.time() * 1000)
    return f"fb.1.{created_ms}.{fbclid}"


async def lookup_fbclid(calendly_event_uri: str) -> Optional[str]:
    found = rows(
        await get_db().table("fbclid_tracking").select("fbclid, created_at")
        .eq("calendly_event_uri", calendly_event_uri)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    return found[0].get("fbclid") if found else None


def build_event(data: MetaConversion, fbclid: Optional[str]) -> dict:
    user_data = {}
    if hashed_email(data.email):
        user_data["em"] = [hashed_email(data.email)]
    if hashed_phone(data.phone):
        user_data["ph"] = [hashed_phone(data.phone)]
    if fbclid:
        user_data["fbc"] = fbc_from(fbclid)
    if data.client_ip_address:
        user_data["client_ip_address"] = data.client_ip_address
    if data.client_user_agent:
        user_data["client_user_agent"] = data.client_user_agent

    event = {
        "event_name": data.event_name,
        "event_time": data.event_time or int(time.time()),
        "action_source": "website",
        "user_data": user_data,
    }
    if data.event_source_url:
        event["event_source_url"] = data.event_source_url
    if data.value is not None:
        event["custom_data"] = {"value": data.value, "currency": data.currency}
    return event


async def send_event(data: MetaConversion) -> Any:
    if not config.META_PIXEL_ID or not config.META_ACCESS_TOKEN:
        raise UpstreamError("Meta pixel / access token not configured", 503)

    fbclid = data.fbclid
    if not fbclid and data.calendly_event_uri:
        fbclid = await lookup_fbclid(data.calendly_event_uri)

    event = build_event(data, fbclid)
    async with http_client() as client:
        resp = await client.post(
            f"{GRAPH_URL}/{config.META_PIXEL_ID}/events",
            params={"access_token": config.META_ACCESS_TOKEN},
            json={"data": [event]},
        )
    body = response_body(resp)
    if resp.status_code >= 400:
        raise UpstreamError(f"Meta Conversions API error ({resp.status_code})", resp.status_code, body)
    logger.info(f"Meta event {data.event_name} sent (fbc={'yes' if fbclid else 'no'})")
    return {"event": event, "response": body}
