"""
SalesOps - App académique (élèves, présence aux cours)

Base URL: ACADEMIC_APP_URL
  - POST /api/create-student   {email, name, weekly_classes}
  - GET  /api/attendance       ?startDate=ISO&endDate=ISO
"""

import logging
from datetime import timedelta
from typing import Any, Optional

import config
from config import http_client, STATS_TIMEZONE
from services.date_windows import local_today, window_for_days, to_date
from services.upstream import UpstreamError, response_body

logger = logging.getLogger("academic")


def customer_name(member: dict, email: str) -> str:
    """member_name, sinon prénom + nom, sinon l'email"""
    if member.get("member_name"):
        return member["member_name"]
    full = f"{member.get('member_first_name') or ''} {member.get('member_last_name') or ''}".strip()
    return full or email


async def create_student(email: str, name: str, weekly_classes: int) -> Any:
    async with http_client() as client:
        resp = await client.post(
            f"{config.ACADEMIC_APP_URL}/api/create-student",
            json={"email": email, "name": name, "weekly_classes": weekly_classes},
        )
    body = response_body(resp)
    if resp.status_code >= 400:
        raise UpstreamError("Failed to create student in academic app", resp.status_code, body)
    return body


def attendance_bounds(start_date: Optional[str], end_date: Optional[str], tz=STATS_TIMEZONE):
    """Jours inclusifs (défaut: hier) -> bornes ISO dans le fuseau canonique"""
    yesterday = local_today(tz) - timedelta(days=1)
    first = to_date(start_date) if start_date else yesterday
    last = to_date(end_date) if end_date else yesterday
    return window_for_days(first, last, tz).as_iso()


def _number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    return value if isinstance(value, (int, float)) else None


def map_attendance(data: dict) -> dict:
    """Réponse brute -> {avgAttendance, numberOfClasses, numberOfStudents, showUpRate}"""
    nested = data.get("data") if isinstance(data.get("data"), dict) else {}
    show_up = next(
        (v for v in (data.get("showUpRate"), data.get("show_up_rate"), data.get("showupRate"), nested.get("showUpRate"))
         if v is not None),
        None,
    )
    avg = data.get("averageAttendance")
    if avg is None:
        avg = data.get("avgAttendance")
    return {
        "avgAttendance": avg,
        "numberOfClasses": _number(data.get("classCount")),
        "numberOfStudents": _number(data.get("totalAttendance")),
        "showUpRate": _number(show_up),
    }


async def fetch_attendance(start: str, end: str) -> dict:
    async with http_client(headers={"Accept": "application/json"}) as client:
        resp = await client.get(
            f"{config.ACADEMIC_APP_URL}/api/attendance",
            params={"startDate": start, "endDate": end},
        )
    if resp.status_code >= 400:
        raise UpstreamError("Academic app unavailable", resp.status_code, resp.text)
    body = response_body(resp)
    return body if isinstance(body, dict) else {}
