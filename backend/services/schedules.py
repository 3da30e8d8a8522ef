"""
SalesOps - Setter on shift

Priorité (heure Europe/Madrid):
  1. override du jour (specific_date = aujourd'hui)
  2. override du lendemain, shift de nuit uniquement (partie "fin")
  3. planning hebdo du jour (day_of_week, 0 = dimanche)
  4. planning hebdo de la veille, shift de nuit uniquement (partie "fin")

Shift de nuit: end_time <= start_time.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from config import get_db, rows, SHIFT_TIMEZONE
from services.date_windows import resolve_tz

logger = logging.getLogger("schedules")


def time_to_minutes(value: Optional[str]) -> int:
    """"HH:MM[:SS]" -> minutes depuis minuit"""
    if not value:
        return 0
    parts = str(value).split(":")
    try:
        hours = int(parts[0])
    except ValueError:
        hours = 0
    try:
        minutes = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        minutes = 0
    return hours * 60 + minutes


def is_overnight(schedule: dict) -> bool:
    return time_to_minutes(schedule.get("end_time")) <= time_to_minutes(schedule.get("start_time"))


def time_in_range(check_minutes: int, start_time: str, end_time: str, is_start_day: bool = True) -> bool:
    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)
    if end <= start:
        if is_start_day:
            return check_minutes >= start
        return check_minutes <= end
    return start <= check_minutes <= end


def js_day_of_week(d) -> int:
    """0 = dimanche ... 6 = samedi"""
    return (d.weekday() + 1) % 7


def _first_match(schedules: Iterable[dict], minutes: int, start_day: bool, overnight_only: bool = False):
    for schedule in schedules:
        if overnight_only and not is_overnight(schedule):
            continue
        if time_in_range(minutes, schedule.get("start_time"), schedule.get("end_time"), start_day):
            return schedule
    return None


def level_matches(
    today_overrides: List[dict],
    tomorrow_overrides: List[dict],
    today_recurring: List[dict],
    yesterday_recurring: List[dict],
    minutes: int,
) -> List[dict]:
    """Première ligne qui matche à chaque niveau, par ordre de priorité"""
    candidates = (
        _first_match(today_overrides, minutes, True),
        _first_match(tomorrow_overrides, minutes, False, overnight_only=True),
        _first_match(today_recurring, minutes, True),
        _first_match(yesterday_recurring, minutes, False, overnight_only=True),
    )
    return [match for match in candidates if match is not None]


def resolve_setter_on_shift(
    today_overrides: List[dict],
    tomorrow_overrides: List[dict],
    today_recurring: List[dict],
    yesterday_recurring: List[dict],
    minutes: int,
) -> Optional[dict]:
    """Retourne la ligne setter_schedules gagnante, ou None"""
    matches = level_matches(today_overrides, tomorrow_overrides, today_recurring, yesterday_recurring, minutes)
    return matches[0] if matches else None


def shift_clock(tz=SHIFT_TIMEZONE, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(resolve_tz(tz))
    return {
        "local": local,
        "timezone": str(tz),
        "date": local.date().isoformat(),
        "time": local.strftime("%H:%M:00"),
        "dayOfWeek": js_day_of_week(local),
        "minutes": local.hour * 60 + local.minute,
        "serverTime": now.isoformat(),
    }


async def _schedules(db, **filters) -> List[dict]:
    query = db.table("setter_schedules").select("*")
    if "specific_date" in filters:
        query = query.eq("specific_date", filters["specific_date"])
    else:
        query = query.eq("day_of_week", filters["day_of_week"]).is_("specific_date", "null")
    return rows(await query.execute())


async def get_current_setter(tz=SHIFT_TIMEZONE, now: Optional[datetime] = None) -> dict:
    """
    Returns: {"setter": {id, name, discord_id} | None, "debug": {...}}
    Une requête en erreur compte comme "aucun planning" pour son niveau.
    """
    clock = shift_clock(tz, now)
    local = clock["local"]
    tomorrow = (local.date() + timedelta(days=1)).isoformat()
    yesterday_dow = (clock["dayOfWeek"] - 1) % 7

    db = get_db()
    levels = []
    for filters in (
        {"specific_date": clock["date"]},
        {"specific_date": tomorrow},
        {"day_of_week": clock["dayOfWeek"]},
        {"day_of_week": yesterday_dow},
    ):
        try:
            levels.append(await _schedules(db, **filters))
        except Exception as e:
            logger.warning(f"[current-setter] schedule query {filters} failed: {e}")
            levels.append([])

    # Setter absent de la table setters -> niveau suivant
    setter = None
    for match in level_matches(*levels, minutes=clock["minutes"]):
        if match.get("setter_id") is None:
            continue
        found = rows(
            await db.table("setters").select("id, name, discord_id")
            .eq("id", match["setter_id"]).limit(1).execute()
        )
        if found:
            setter = {
                "id": found[0].get("id"),
                "name": found[0].get("name"),
                "discord_id": found[0].get("discord_id"),
            }
            break

    debug = {k: clock[k] for k in ("timezone", "date", "time", "dayOfWeek", "serverTime")}
    return {"setter": setter, "debug": debug}
