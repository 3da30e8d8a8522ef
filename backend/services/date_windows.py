"""
SalesOps - Fenêtres de dates et buckets

Toutes les bornes de période passent par ici:
  - date_window_for(preset, tz)       -> DateWindow(start_utc, end_utc)
  - custom_window(start, end, tz)     -> idem pour des jours calendaires
  - bucket_key(value, tz, granularity) -> clé de regroupement

Les bornes sont calculées dans le fuseau canonique (STATS_TIMEZONE, UTC par
défaut) puis converties en UTC pour les requêtes Supabase. end_utc est
inclusif (dernière microseconde du dernier jour).
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import List, NamedTuple, Optional, Union

import pytz

PRESETS = (
    "today",
    "yesterday",
    "this_week",
    "last_week",
    "this_month",
    "last_month",
    "last_7_days",
    "last_30_days",
)

GRANULARITIES = ("day", "week", "fortnight", "month")

DateLike = Union[str, date, datetime]


class DateWindow(NamedTuple):
    start_utc: datetime
    end_utc: datetime

    def as_iso(self):
        return self.start_utc.isoformat(), self.end_utc.isoformat()


def resolve_tz(tz: Union[str, tzinfo, None]) -> tzinfo:
    if tz is None or tz == "":
        return pytz.UTC
    if isinstance(tz, tzinfo):
        return tz
    return pytz.timezone(tz)


def localize(naive: datetime, tz) -> datetime:
    """Heure murale locale -> datetime aware (pytz: localize, sinon tzinfo direct)"""
    z = resolve_tz(tz)
    if hasattr(z, "localize"):
        return z.localize(naive)
    return naive.replace(tzinfo=z)


def _utc_now(now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now


def local_today(tz, now: Optional[datetime] = None) -> date:
    """Date du jour dans le fuseau donné"""
    return _utc_now(now).astimezone(resolve_tz(tz)).date()


def window_for_days(first: date, last: date, tz) -> DateWindow:
    """[first 00:00, last 23:59:59.999999] local -> UTC (DST safe)"""
    start = localize(datetime.combine(first, time.min), tz).astimezone(timezone.utc)
    after = localize(datetime.combine(last + timedelta(days=1), time.min), tz).astimezone(timezone.utc)
    return DateWindow(start, after - timedelta(microseconds=1))


def _month_start(d: date) -> date:
    return d.replace(day=1)


def _next_month_start(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def date_window_for(preset: str, tz="UTC", now: Optional[datetime] = None) -> DateWindow:
    """
    Fenêtre UTC pour un preset de période.

    Semaines du lundi au dimanche, mois calendaires complets.
    last_7_days / last_30_days incluent aujourd'hui.
    """
    today = local_today(tz, now)

    if preset == "today":
        return window_for_days(today, today, tz)
    if preset == "yesterday":
        y = today - timedelta(days=1)
        return window_for_days(y, y, tz)
    if preset == "this_week":
        monday = today - timedelta(days=today.weekday())
        return window_for_days(monday, monday + timedelta(days=6), tz)
    if preset == "last_week":
        monday = today - timedelta(days=today.weekday() + 7)
        return window_for_days(monday, monday + timedelta(days=6), tz)
    if preset == "this_month":
        first = _month_start(today)
        return window_for_days(first, _next_month_start(first) - timedelta(days=1), tz)
    if preset == "last_month":
        last = _month_start(today) - timedelta(days=1)
        return window_for_days(_month_start(last), last, tz)
    if preset == "last_7_days":
        return window_for_days(today - timedelta(days=6), today, tz)
    if preset == "last_30_days":
        return window_for_days(today - timedelta(days=29), today, tz)

    raise ValueError(f"Unknown period preset: {preset}")


def custom_window(start_date: DateLike, end_date: DateLike, tz="UTC") -> DateWindow:
    """Jours calendaires inclusifs start_date..end_date"""
    first = to_date(start_date)
    last = to_date(end_date)
    if last < first:
        raise ValueError("end_date is before start_date")
    return window_for_days(first, last, tz)


def last_days(n: int, tz="UTC", now: Optional[datetime] = None) -> List[date]:
    """Les n derniers jours se terminant HIER, du plus ancien au plus récent"""
    yesterday = local_today(tz, now) - timedelta(days=1)
    return [yesterday - timedelta(days=i) for i in range(n - 1, -1, -1)]


# ==================== PARSING ====================

def parse_datetime(value: DateLike) -> datetime:
    """ISO string / date / datetime -> datetime aware (naïf = UTC)"""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    else:
        raise ValueError(f"Not a date: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _is_date_only(value: DateLike) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def to_date(value: DateLike) -> date:
    """Partie calendaire, sans conversion de fuseau"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if _is_date_only(value):
        return date.fromisoformat(value.strip())
    return parse_datetime(value).date()


def local_date(value: DateLike, tz="UTC") -> date:
    """Date calendaire dans le fuseau canonique (les dates pures restent telles quelles)"""
    if _is_date_only(value):
        return to_date(value)
    return parse_datetime(value).astimezone(resolve_tz(tz)).date()


def in_window(value: Optional[DateLike], window: DateWindow) -> bool:
    if not value:
        return False
    try:
        dt = parse_datetime(value)
    except ValueError:
        return False
    return window.start_utc <= dt <= window.end_utc


# ==================== BUCKETS ====================

def bucket_key(value: DateLike, tz="UTC", granularity: str = "day") -> str:
    """
    Clé de regroupement:
      day       -> 2025-03-14
      week      -> 2025-03-10 (lundi)
      fortnight -> 2025-03-A (jours 1-15) / 2025-03-B
      month     -> 2025-03
    """
    d = local_date(value, tz)
    if granularity == "day":
        return d.isoformat()
    if granularity == "week":
        return (d - timedelta(days=d.weekday())).isoformat()
    if granularity == "fortnight":
        half = "A" if d.day <= 15 else "B"
        return f"{d.year}-{d.month:02d}-{half}"
    if granularity == "month":
        return f"{d.year}-{d.month:02d}"
    raise ValueError(f"Unknown granularity: {granularity}")


def same_calendar_month(a: Optional[DateLike], b: Optional[DateLike]) -> bool:
    """year*12 + month, pas une différence en jours. Date absente -> False"""
    if not a or not b:
        return False
    da, db_ = to_date(a), to_date(b)
    return da.year * 12 + da.month == db_.year * 12 + db_.month
