"""
SalesOps - Google Analytics 4 (Data API v1beta)

Vues par jour d'une page (pagePath CONTAINS, insensible à la casse)
ou du site entier, plus les évènements de booking du même périmètre:
    {date, views, eventCount, bookingRate}

Identifiants: GOOGLE_SERVICE_ACCOUNT_JSON (JSON en string) ou
GOOGLE_APPLICATION_CREDENTIALS (chemin). Sans propriété ni identifiants
on renvoie des données factices déterministes, marquées mock.
"""

import hashlib
import json
import logging
from datetime import timedelta
from typing import Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.analytics.data_v1beta.types import (
    DateRange,
    Dimension,
    Filter,
    FilterExpression,
    FilterExpressionList,
    Metric,
    RunReportRequest,
)
from google.oauth2 import service_account

import config
from services.date_windows import to_date

logger = logging.getLogger("google_analytics")


class AnalyticsConfigError(Exception):
    """Identifiants GA4 présents mais inutilisables"""


def property_path(property_id) -> str:
    raw = str(property_id)
    if raw.startswith("properties/"):
        raw = raw[len("properties/"):]
    return f"properties/{raw}"


def has_credentials() -> bool:
    return bool(config.GOOGLE_SERVICE_ACCOUNT_JSON or config.GOOGLE_APPLICATION_CREDENTIALS)


def make_client() -> BetaAnalyticsDataClient:
    if config.GOOGLE_SERVICE_ACCOUNT_JSON:
        try:
            info = json.loads(config.GOOGLE_SERVICE_ACCOUNT_JSON)
        except ValueError as e:
            raise AnalyticsConfigError(f"Invalid GOOGLE_SERVICE_ACCOUNT_JSON: {e}")
        credentials = service_account.Credentials.from_service_account_info(info)
        return BetaAnalyticsDataClient(credentials=credentials)
    return BetaAnalyticsDataClient()


# ==================== REQUESTS ====================

def _page_filter(page_path: str) -> FilterExpression:
    return FilterExpression(filter=Filter(
        field_name="pagePath",
        string_filter=Filter.StringFilter(
            match_type=Filter.StringFilter.MatchType.CONTAINS,
            value=page_path,
            case_sensitive=False,
        ),
    ))


def _event_filter(event_name: str) -> FilterExpression:
    return FilterExpression(filter=Filter(
        field_name="eventName",
        string_filter=Filter.StringFilter(
            match_type=Filter.StringFilter.MatchType.EXACT,
            value=event_name,
        ),
    ))


def build_requests(property_id, page_path: str, start_date: str, end_date: str,
                   whole_site: bool = False, booking_event: str = "calendly_booking"):
    """(requête vues, requête évènements booking)"""
    date_range = [DateRange(start_date=start_date, end_date=end_date)]

    views = RunReportRequest(
        property=property_path(property_id),
        date_ranges=date_range,
        dimensions=[Dimension(name="date")],
        metrics=[Metric(name="screenPageViews")],
    )
    if not whole_site:
        views.dimension_filter = _page_filter(page_path)

    event_filter = _event_filter(booking_event)
    if not whole_site:
        event_filter = FilterExpression(
            and_group=FilterExpressionList(expressions=[event_filter, _page_filter(page_path)])
        )
    events = RunReportRequest(
        property=property_path(property_id),
        date_ranges=date_range,
        dimensions=[Dimension(name="date")],
        metrics=[Metric(name="eventCount")],
        dimension_filter=event_filter,
    )
    return views, events


def _ga_date(value: str) -> str:
    """20250314 -> 2025-03-14"""
    if len(value) == 8 and value.isdigit():
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return value


def _sum_by_date(response) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for row in getattr(response, "rows", None) or []:
        if not row.dimension_values or not row.metric_values:
            continue
        day = _ga_date(row.dimension_values[0].value)
        try:
            value = int(float(row.metric_values[0].value))
        except ValueError:
            value = 0
        totals[day] = totals.get(day, 0) + value
    return totals


def make_row(day: str, views: int, events: int) -> dict:
    return {
        "date": day,
        "views": views,
        "eventCount": events,
        "bookingRate": round(events / views * 100, 2) if views else 0,
    }


def merge_rows(views_response, events_response) -> List[dict]:
    views = _sum_by_date(views_response)
    events = _sum_by_date(events_response)
    return [make_row(day, views.get(day, 0), events.get(day, 0)) for day in sorted(set(views) | set(events))]


def mock_rows(start_date: str, end_date: str) -> List[dict]:
    """Même forme que les vraies lignes, valeurs stables par date"""
    out = []
    day, last = to_date(start_date), to_date(end_date)
    while day <= last:
        seed = int(hashlib.sha256(day.isoformat().encode()).hexdigest(), 16)
        views = 10 + seed % 80
        out.append(make_row(day.isoformat(), views, seed % 7))
        day += timedelta(days=1)
    return out


# ==================== FETCH ====================

async def fetch_page_views(
    page_path: str,
    start_date: str,
    end_date: str,
    whole_site: bool = False,
    property_id: Optional[str] = None,
) -> dict:
    """
    Returns: {"rows", "pagePath", "startDate", "endDate"} (+ "mock": True)
    Raises: AnalyticsConfigError, ou l'exception google.api_core
    """
    property_id = property_id or config.GA4_PROPERTY_ID
    result = {"pagePath": page_path, "startDate": start_date, "endDate": end_date, "wholeSite": whole_site}

    if not property_id or not has_credentials():
        logger.warning("[google-analytics] property or credentials missing, serving mock data")
        result.update({"rows": mock_rows(start_date, end_date), "mock": True})
        return result

    client = make_client()
    views_req, events_req = build_requests(
        property_id, page_path, start_date, end_date, whole_site, config.GA4_BOOKING_EVENT
    )
    logger.info(f"[google-analytics] runReport {views_req.property} {start_date} -> {end_date}")
    views = await run_in_threadpool(client.run_report, views_req)
    events = await run_in_threadpool(client.run_report, events_req)

    result["rows"] = merge_rows(views, events)
    return result
