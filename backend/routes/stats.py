"""
Routes pour les statistiques (dashboard management, setters, closers)
"""

import logging

from config import STATS_TIMEZONE
from routes.common import ApiRequest, api_error, require_method
from services.date_windows import PRESETS, custom_window, date_window_for, to_date
from services.stats import (
    clamp_days,
    fetch_closer_summary,
    fetch_management_series,
    fetch_sales_stats,
    fetch_setter_recap,
)

logger = logging.getLogger("stats")


def _window_from_query(req: ApiRequest):
    """preset=this_week ou startDate/endDate (jours inclusifs), défaut: this_month"""
    preset = req.query.get("preset")
    start = req.query.get("startDate")
    end = req.query.get("endDate")
    try:
        if start and end:
            return custom_window(start, end, STATS_TIMEZONE)
        if start or end:
            raise api_error(400, "Both startDate and endDate are required")
        return date_window_for(preset or "this_month", STATS_TIMEZONE)
    except ValueError as e:
        raise api_error(400, str(e), presets=list(PRESETS))


async def sales_stats(req: ApiRequest):
    """GET /api/sales-stats?preset=last_week | ?startDate=...&endDate=..."""
    require_method(req, "GET")
    window = _window_from_query(req)
    stats = await fetch_sales_stats(window)
    if stats is None:
        raise api_error(500, "Failed to compute stats")
    return {"success": True, "data": stats}


async def management_series(req: ApiRequest):
    """GET /api/management-series?days=7 (1..31, fin = hier)"""
    require_method(req, "GET")
    days = clamp_days(req.query.get("days"))
    return await fetch_management_series(days, STATS_TIMEZONE)


async def setter_recap(req: ApiRequest):
    """GET /api/setter-recap?setterId=..&since=YYYY-MM-DD"""
    require_method(req, "GET")
    setter_id = req.query.get("setterId")
    if not setter_id:
        raise api_error(400, "Missing setterId")
    since = req.query.get("since")
    if since:
        try:
            since = to_date(since).isoformat()
        except ValueError:
            raise api_error(400, f"Invalid since: {since}", usage="since=YYYY-MM-DD")
    recap = await fetch_setter_recap(setter_id, since, STATS_TIMEZONE)
    if recap is None:
        raise api_error(500, "Failed to compute setter recap")
    return {"success": True, "data": recap}


async def closer_summary(req: ApiRequest):
    """GET /api/closer-summary?closerId=.."""
    require_method(req, "GET")
    closer_id = req.query.get("closerId")
    if not closer_id:
        raise api_error(400, "Missing closerId")
    summary = await fetch_closer_summary(closer_id, STATS_TIMEZONE)
    if summary is None:
        raise api_error(500, "Failed to compute closer summary")
    return {"success": True, "data": summary}
