"""
╔══════════════════════════════════════════════════════════════════════╗
║  DISPATCHER /api/<route>                                             ║
║                                                                      ║
║  Une seule route catch-all. Le premier segment choisit le handler.   ║
║    /api            -> 200 {ok, message}                              ║
║    /api/inconnu    -> 404 {error: "Not found", path}                 ║
║  Toute exception d'un handler devient une enveloppe JSON.            ║
╚══════════════════════════════════════════════════════════════════════╝
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from routes import integrations, outcomes, shifts, stats, tracking, webhooks
from routes.common import ApiRequest, error_body, respond

logger = logging.getLogger("api")

router = APIRouter(tags=["API"])

Handler = Callable[[ApiRequest], Awaitable[Any]]

ROUTES: Dict[str, Handler] = {
    "academic-stats": integrations.academic_stats,
    "ai-setter": integrations.ai_setter_reply,
    "calendly-webhook": webhooks.calendly_webhook,
    "cancel-calendly": integrations.cancel_calendly,
    "current-setter": shifts.current_setter,
    "google-analytics": integrations.google_analytics_views,
    "kajabi-token": integrations.kajabi_token,
    "kajabi-webhook": webhooks.kajabi_webhook,
    "management-series": stats.management_series,
    "manychat": integrations.manychat_proxy,
    "meta-conversion": tracking.meta_conversion,
    "n8n-webhook": webhooks.n8n_webhook,
    "ruben-shift-toggle": shifts.ruben_shift_toggle,
    "store-fbclid": tracking.store_fbclid,
    "zoom-webhook": webhooks.zoom_webhook,
    "sales-stats": stats.sales_stats,
    "setter-recap": stats.setter_recap,
    "closer-summary": stats.closer_summary,
    "outcome-log": outcomes.outcome_log,
    "call-status": outcomes.call_status,
}

POST_ONLY_ROUTES = frozenset({
    "cancel-calendly", "manychat", "n8n-webhook", "calendly-webhook", "kajabi-webhook",
    "meta-conversion", "store-fbclid", "ai-setter", "ruben-shift-toggle", "zoom-webhook",
    "outcome-log", "call-status",
})

BASE_MESSAGE = "API base. Use e.g. /api/academic-stats"


def first_segment(path: str) -> str:
    parts = [p for p in (path or "").split("/") if p]
    return parts[0] if parts else ""


def decode_body(raw: bytes) -> Any:
    """JSON décodé; texte brut si invalide; {} si vide"""
    if not raw or not raw.strip():
        return {}
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


def effective_method(method: str, route: str, body: Any, content_type: str) -> str:
    """
    Un corps JSON objet non vide force POST (certains proxies réécrivent la méthode).
    Idem pour une route POST-only appelée avec Content-Type JSON.
    """
    method = (method or "GET").upper()
    if isinstance(body, dict) and body:
        return "POST"
    if route in POST_ONLY_ROUTES and "application/json" in (content_type or ""):
        return "POST"
    return method


async def build_request(request: Request, route: str, path: str) -> ApiRequest:
    raw = await request.body()
    body = decode_body(raw)
    headers = {k.lower(): v for k, v in request.headers.items()}
    return ApiRequest(
        method=effective_method(request.method, route, body, headers.get("content-type", "")),
        route=route,
        path=path,
        query=dict(request.query_params),
        headers=headers,
        body=body,
        raw_body=raw,
        client_host=request.client.host if request.client else None,
    )


async def dispatch(req: ApiRequest) -> Response:
    if not req.route:
        return respond(200, {"ok": True, "message": BASE_MESSAGE})
    handler = ROUTES.get(req.route)
    if handler is None:
        return respond(404, {"error": "Not found", "path": req.route})

    try:
        result = await handler(req)
    except HTTPException as e:
        if e.status_code >= 500:
            logger.error(f"[api/{req.route}] {e.status_code} {e.detail}")
        return respond(e.status_code, error_body(e.detail))
    except Exception as e:
        logger.error(f"[api/{req.route}] unhandled error: {e}", exc_info=True)
        return respond(500, {"success": False, "error": "Internal server error", "message": str(e)})

    if isinstance(result, Response):
        return result
    return respond(200, result)


ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


@router.api_route("/api", methods=ALL_METHODS)
@router.api_route("/api/{path:path}", methods=ALL_METHODS)
async def api_entry(request: Request, path: str = ""):
    route = first_segment(path)
    req = await build_request(request, route, path)
    logger.info(f"[api] {req.method} /api/{path} route={route or '-'}")
    return await dispatch(req)
