"""
SalesOps - Client ManyChat

API REST: https://api.manychat.com/fb (Bearer token)
  - subscriber/setCustomFields, setCustomFieldByName
  - subscriber/createSubscriber, updateSubscriber, findByCustomField
  - page/getCustomFields
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

import config
from config import http_client, MANYCHAT_FIELD_MAP
from models import TriState
from services.upstream import UpstreamError, response_body

logger = logging.getLogger("manychat")

BASE_URL = "https://api.manychat.com/fb/subscriber"
PAGE_URL = "https://api.manychat.com/fb/page"


def _headers(api_key: Optional[str]) -> dict:
    key = api_key or config.MANYCHAT_API_KEY
    if not key:
        raise UpstreamError("ManyChat API key not configured", 503)
    return {"Authorization": f"Bearer {key}", "Content-Type": "application/json"}


async def _post(path: str, payload: dict, api_key: Optional[str] = None) -> Any:
    async with http_client() as client:
        resp = await client.post(f"{BASE_URL}/{path}", json=payload, headers=_headers(api_key))
    if resp.status_code >= 400:
        raise UpstreamError(f"Manychat error ({resp.status_code}): {resp.text}", resp.status_code)
    return response_body(resp) if resp.content else {}


async def _get(url: str, params: Optional[dict] = None, api_key: Optional[str] = None) -> Any:
    async with http_client() as client:
        resp = await client.get(url, params=params, headers=_headers(api_key))
    if resp.status_code >= 400:
        raise UpstreamError(f"Manychat error ({resp.status_code}): {resp.text}", resp.status_code)
    return response_body(resp)


# ==================== CUSTOM FIELDS ====================

async def set_custom_fields(subscriber_id: str, fields: List[Dict[str, Any]], api_key: Optional[str] = None) -> Any:
    """fields: [{"field_id": 123, "field_value": true}, ...]"""
    return await _post("setCustomFields", {"subscriber_id": subscriber_id, "fields": fields}, api_key)


async def set_fields_by_name(subscriber_id: str, fields_by_name: List[dict], api_key: Optional[str] = None) -> dict:
    """
    Un appel setCustomFieldByName par champ; les erreurs sont collectées, pas levées.
    Returns: {"results": [...], "errors": [...]}
    """
    results, errors = [], []
    for field in fields_by_name:
        name = field.get("name")
        if not name or "value" not in field:
            errors.append({"field": name or "unknown", "error": "Missing field name or value"})
            continue
        try:
            data = await _post(
                "setCustomFieldByName",
                {"subscriber_id": subscriber_id, "field_name": name, "field_value": field["value"]},
                api_key,
            )
            results.append({"field": name, "success": True, "data": data})
        except UpstreamError as e:
            errors.append({"field": name, "error": e.message})
    return {"results": results, "errors": errors}


def field_value_for(value: Any) -> Optional[bool]:
    """Valeur tri-state -> valeur ManyChat, None = ne pas envoyer (TBD / vide)"""
    return TriState.from_value(value).to_storage()


async def sync_call_status(
    subscriber_id: str,
    field: str,
    value: Any,
    field_map: Mapping[str, int] = MANYCHAT_FIELD_MAP,
) -> Optional[Any]:
    """Miroir d'un statut de call vers ManyChat. TBD ou champ inconnu -> None (rien envoyé)"""
    field_id = field_map.get(field)
    if field_id is None:
        logger.warning(f"Field {field} not found in ManyChat field map")
        return None
    formatted = field_value_for(value)
    if formatted is None:
        logger.info(f"Skipping ManyChat update for {field}: TBD")
        return None
    return await set_custom_fields(subscriber_id, [{"field_id": field_id, "field_value": formatted}])


# ==================== SUBSCRIBERS ====================

async def find_phone_field_id(api_key: Optional[str] = None) -> Optional[Any]:
    data = await _get(f"{PAGE_URL}/getCustomFields", api_key=api_key)
    fields = (data or {}).get("data") or []
    for name in ("phone", "whatsapp_phone"):
        for f in fields:
            if f.get("name") == name and f.get("id"):
                return f["id"]
    return None


async def find_subscriber_by_phone(phone: str, api_key: Optional[str] = None) -> Optional[str]:
    """
    Raises: LookupError si le champ téléphone n'existe pas côté ManyChat
    Returns: subscriber id ou None
    """
    field_id = await find_phone_field_id(api_key)
    if not field_id:
        raise LookupError("Phone field not found in ManyChat custom fields")
    data = await _get(
        f"{BASE_URL}/findByCustomField",
        params={"field_id": field_id, "field_value": phone},
        api_key=api_key,
    )
    found = (data or {}).get("data") or []
    return found[0].get("id") if found else None


async def create_or_find_subscriber(
    first_name: str,
    whatsapp_phone: str,
    last_name: str = "",
    api_key: Optional[str] = None,
) -> dict:
    """
    createSubscriber; si ManyChat refuse (déjà existant), retrouve le subscriber
    par téléphone et met à jour son nom.
    Returns: {"subscriberId", "found", "debug": {"steps": [...]}}
    """
    steps: List[dict] = [{"step": 1, "action": "createSubscriber", "phone": whatsapp_phone}]
    async with http_client() as client:
        resp = await client.post(
            f"{BASE_URL}/createSubscriber",
            json={"first_name": first_name, "last_name": last_name or "", "whatsapp_phone": whatsapp_phone},
            headers=_headers(api_key),
        )
    steps.append({"step": 1, "status": resp.status_code, "response": resp.text})
    if resp.status_code < 400:
        data = response_body(resp) or {}
        subscriber_id = (data.get("data") or {}).get("id") or data.get("id")
        return {"subscriberId": subscriber_id, "found": False, "debug": {"steps": steps}}

    steps.append({"step": 2, "action": "findByCustomField"})
    try:
        subscriber_id = await find_subscriber_by_phone(whatsapp_phone, api_key)
    except LookupError as e:
        raise UpstreamError(str(e), payload={"steps": steps})
    if not subscriber_id:
        raise UpstreamError("Subscriber ID not found in response", payload={"steps": steps})

    await _post(
        "updateSubscriber",
        {"subscriber_id": subscriber_id, "first_name": first_name or "", "last_name": last_name or ""},
        api_key,
    )
    steps.append({"step": 3, "action": "updateSubscriber", "subscriber_id": subscriber_id})
    return {"subscriberId": subscriber_id, "found": True, "debug": {"steps": steps}}
