"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SalesOps - Statistiques ventes                                              ║
║                                                                              ║
║  Deux axes de dates, volontairement différents:                              ║
║   - bookings faits dans la période  -> calls.book_date  (pick up rate)       ║
║   - calls de la période             -> calls.call_date  (confirm/show/dq)    ║
║   - achats                          -> outcome_log.purchase_date             ║
║     (jamais calls.purchased) : yes, ou refund avec clawback < 100            ║
║                                                                              ║
║  Taux en %, 0 si dénominateur nul.                                           ║
║  Les fetchers retournent None si Supabase échoue (l'UI affiche "no data").   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from config import get_db, rows, COUNTRY_CODES, STATS_TIMEZONE
from models import is_yes, is_no, Outcome, DEFAULT_CLAWBACK
from services.commission import month_commission_total
from services.date_windows import (
    DateWindow, bucket_key, date_window_for, in_window, last_days,
    local_date, local_today, parse_datetime, window_for_days,
)
from services.outcomes import dedupe_outcome_logs
from services.phone import country_from_phone

logger = logging.getLogger("stats")

CALL_COLUMNS = (
    "id, lead_id, setter_id, closer_id, phone, book_date, call_date, picked_up, "
    "confirmed, showed_up, purchased, source_type, utm_source, utm_medium, is_reschedule"
)

COUNTERS = (
    "bookingsMade",
    "pickedUpFromBookings",
    "totalBooked",
    "totalPickedUp",
    "totalConfirmed",
    "totalShowedUp",
    "totalPurchased",
)


# ═══════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════

def rate(numerator: float, denominator: float) -> float:
    """Pourcentage, 0 si dénominateur nul"""
    if not denominator:
        return 0
    return numerator / denominator * 100


def is_ads(source_type: Optional[str]) -> bool:
    """organic vs ads: "ad" contenu dans source_type"""
    return "ad" in (source_type or "organic").lower()


def source_of(call: dict) -> str:
    return "ads" if is_ads(call.get("source_type")) else "organic"


def medium_of(call: dict) -> Optional[str]:
    """tiktok / instagram / other, uniquement pour les calls ads"""
    if not is_ads(call.get("source_type")):
        return None
    text = f"{call.get('utm_source') or ''} {call.get('utm_medium') or ''}".lower()
    if "tiktok" in text:
        return "tiktok"
    if "instagram" in text or "ig" in text.split():
        return "instagram"
    return "other"


def dedupe_reschedules(calls: Iterable[dict]) -> List[dict]:
    """
    Un lead reprogrammé dans la fenêtre ne compte que par ses calls de reschedule:
    garde les reschedules + les calls dont le lead n'a pas de reschedule.
    """
    calls = list(calls or [])
    rescheduled_leads = {c.get("lead_id") for c in calls if is_yes(c.get("is_reschedule"))}
    return [
        c for c in calls
        if is_yes(c.get("is_reschedule")) or c.get("lead_id") not in rescheduled_leads
    ]


def is_counted_purchase(log: dict) -> bool:
    """yes, ou refund dont le clawback est partiel (< 100)"""
    outcome = log.get("outcome")
    if outcome == Outcome.YES.value:
        return True
    if outcome == Outcome.REFUND.value:
        clawback = log.get("clawback")
        clawback = DEFAULT_CLAWBACK if clawback is None else float(clawback)
        return clawback < 100
    return False


def counted_purchases(logs: Iterable[dict]) -> List[dict]:
    return [log for log in dedupe_outcome_logs(logs) if is_counted_purchase(log)]


def with_rates(counts: Mapping[str, int]) -> dict:
    result = dict(counts)
    result.update({
        "pickUpRate": rate(counts["pickedUpFromBookings"], counts["bookingsMade"]),
        "confirmationRate": rate(counts["totalConfirmed"], counts["totalBooked"]),
        "showUpRate": rate(counts["totalShowedUp"], counts["totalConfirmed"]),
        "showUpRateBooked": rate(counts["totalShowedUp"], counts["totalBooked"]),
        "conversionRate": rate(counts["totalPurchased"], counts["totalShowedUp"]),
        "conversionRateBooked": rate(counts["totalPurchased"], counts["totalBooked"]),
        "dqRate": rate(counts["totalPickedUp"] - counts["totalConfirmed"], counts["totalPickedUp"]),
    })
    return result


# ═══════════════════════════════════════════════════════════════
# AGGREGATION
# ═══════════════════════════════════════════════════════════════

def aggregate(
    bookings: Iterable[dict],
    calls: Iterable[dict],
    purchase_calls: Iterable[Optional[dict]],
    key_fn: Callable[[dict], Optional[str]] = lambda c: "all",
) -> Dict[str, dict]:
    """
    Compteurs par clé. key_fn reçoit une ligne calls, None = ligne ignorée.
    purchase_calls: le call de chaque achat compté ({} si introuvable).
    """
    groups: Dict[str, dict] = {}

    def bucket(row):
        key = key_fn(row or {})
        if key is None:
            return None
        if key not in groups:
            groups[key] = dict.fromkeys(COUNTERS, 0)
        return groups[key]

    for booking in bookings:
        g = bucket(booking)
        if g is None:
            continue
        g["bookingsMade"] += 1
        if is_yes(booking.get("picked_up")):
            g["pickedUpFromBookings"] += 1

    for call in calls:
        g = bucket(call)
        if g is None:
            continue
        g["totalBooked"] += 1
        if is_yes(call.get("picked_up")):
            g["totalPickedUp"] += 1
        if is_yes(call.get("confirmed")):
            g["totalConfirmed"] += 1
        if is_yes(call.get("showed_up")):
            g["totalShowedUp"] += 1

    for call in purchase_calls:
        g = bucket(call)
        if g is not None:
            g["totalPurchased"] += 1

    return groups


def _breakdown(groups: Dict[str, dict], label: str, names: Optional[Mapping] = None) -> List[dict]:
    out = []
    for key, counts in groups.items():
        item = {label: key}
        if names is not None:
            item["name"] = names.get(key, "Unknown")
        item.update(with_rates(counts))
        out.append(item)
    out.sort(key=lambda x: (-x["totalPurchased"], -x["totalBooked"], str(x[label])))
    return out


def compute_sales_stats(
    bookings: Iterable[dict],
    calls: Iterable[dict],
    purchase_logs: Iterable[dict],
    purchase_call_rows: Iterable[dict],
    setters: Iterable[dict] = (),
    closers: Iterable[dict] = (),
    codes: Mapping[str, str] = COUNTRY_CODES,
) -> dict:
    """
    Stats d'une période à partir de lignes déjà filtrées par date.

    Args:
        bookings: calls avec book_date dans la période
        calls: calls avec call_date dans la période (dédup reschedule appliqué ici)
        purchase_logs: outcome_log avec purchase_date dans la période (dédup ici)
        purchase_call_rows: calls référencés par ces achats
    """
    bookings = list(bookings)
    calls = dedupe_reschedules(calls)
    by_id = {c.get("id"): c for c in purchase_call_rows}
    purchases = counted_purchases(purchase_logs)
    p_calls = [by_id.get(log.get("call_id"), {}) for log in purchases]

    setter_names = {s.get("id"): s.get("name") for s in setters}
    closer_names = {c.get("id"): c.get("name") for c in closers}

    totals = aggregate(bookings, calls, p_calls).get("all", dict.fromkeys(COUNTERS, 0))

    return {
        "totals": with_rates(totals),
        "totalRescheduled": sum(1 for c in calls if is_yes(c.get("is_reschedule"))),
        "byCloser": _breakdown(
            aggregate(bookings, calls, p_calls, lambda c: c.get("closer_id")),
            "closerId", closer_names),
        "bySetter": _breakdown(
            aggregate(bookings, calls, p_calls, lambda c: c.get("setter_id")),
            "setterId", setter_names),
        "byCountry": _breakdown(
            aggregate(bookings, calls, p_calls, lambda c: country_from_phone(c.get("phone"), codes)),
            "country"),
        "bySource": _breakdown(aggregate(bookings, calls, p_calls, source_of), "source"),
        "byMedium": _breakdown(aggregate(bookings, calls, p_calls, medium_of), "medium"),
    }


# ═══════════════════════════════════════════════════════════════
# MANAGEMENT SERIES
# ═══════════════════════════════════════════════════════════════

def show_up_summary(calls: Iterable[dict]) -> dict:
    """showed / confirmed * 100, None si aucun confirmé"""
    filtered = dedupe_reschedules(calls)
    confirmed = sum(1 for c in filtered if is_yes(c.get("confirmed")))
    showed = sum(1 for c in filtered if is_yes(c.get("showed_up")))
    if confirmed == 0:
        return {"showUpRate": None, "totalShowedUp": 0, "totalConfirmed": 0}
    return {"showUpRate": showed / confirmed * 100, "totalShowedUp": showed, "totalConfirmed": confirmed}


def split_bookings(bookings: Iterable[dict]) -> dict:
    organic = ads = rescheduled = 0
    for b in bookings:
        if is_yes(b.get("is_reschedule")):
            rescheduled += 1
        elif is_ads(b.get("source_type")):
            ads += 1
        else:
            organic += 1
    return {"organic": organic, "ads": ads, "rescheduled": rescheduled, "total": organic + ads + rescheduled}


def series_point(day: date, calls: List[dict], bookings: List[dict]) -> dict:
    overall = show_up_summary(calls)
    organic = show_up_summary([c for c in calls if not is_ads(c.get("source_type"))])
    ads = show_up_summary([c for c in calls if is_ads(c.get("source_type"))])
    split = split_bookings(bookings)
    return {
        "date": day.isoformat(),
        "showUpRate": overall["showUpRate"],
        "showUpRateOrganic": organic["showUpRate"],
        "showUpRateAds": ads["showUpRate"],
        "totalShowedUp": overall["totalShowedUp"],
        "totalConfirmed": overall["totalConfirmed"],
        "bookings": split["total"],
        "bookingsOrganic": split["organic"],
        "bookingsAds": split["ads"],
        "bookingsRescheduled": split["rescheduled"],
        "calls": len(calls),
    }


def clamp_days(value, default: int = 7) -> int:
    try:
        n = int(value)
    except (TypeError, ValueError):
        n = default
    if n <= 0:
        n = default
    return min(max(1, n), 31)


# ═══════════════════════════════════════════════════════════════
# FORTNIGHT RECAP (setter)
# ═══════════════════════════════════════════════════════════════

SHOW_UP_PAY = 4
PURCHASE_PAY = 25


def fortnight_recap(
    calls: Iterable[dict],
    purchases: Iterable[dict],
    tz=STATS_TIMEZONE,
    today: Optional[date] = None,
) -> List[dict]:
    """
    Recap par quinzaine (A = 1-15, B = 16-fin):
      callsBooked / pickUps par book_date, showUps / confirmed par call_date,
      purchases (outcome yes) par purchase_date.
    showUpRate utilise seulement les confirmés déjà passés.
    """
    today = today or local_today(tz)
    grouped: Dict[str, dict] = {}

    def get(value):
        if not value:
            return None
        key = bucket_key(value, tz, "fortnight")
        if key not in grouped:
            grouped[key] = {
                "period": key[:7],
                "fortnight": key[-1],
                "callsBooked": 0,
                "pickUps": 0,
                "confirmed": 0,
                "confirmedPast": 0,
                "showUps": 0,
                "purchases": 0,
            }
        return grouped[key]

    for call in calls:
        if not call.get("book_date"):
            continue
        get(call["book_date"])["callsBooked"] += 1
        if is_yes(call.get("picked_up")):
            get(call["book_date"])["pickUps"] += 1
        if is_yes(call.get("showed_up")):
            g = get(call.get("call_date"))
            if g:
                g["showUps"] += 1
        if is_yes(call.get("confirmed")):
            g = get(call.get("call_date"))
            if g:
                g["confirmed"] += 1
                if local_date(call["call_date"], tz) < today:
                    g["confirmedPast"] += 1

    for log in purchases:
        if log.get("outcome") == Outcome.YES.value and log.get("purchase_date"):
            get(log["purchase_date"])["purchases"] += 1

    out = []
    for key in sorted(grouped):
        item = grouped[key]
        item["pickUpRate"] = rate(item["pickUps"], item["callsBooked"])
        item["showUpRate"] = rate(item["showUps"], item["confirmedPast"])
        item["total"] = item["showUps"] * SHOW_UP_PAY + item["purchases"] * PURCHASE_PAY
        out.append(item)
    return out


# ═══════════════════════════════════════════════════════════════
# CLOSER MONTH SUMMARY
# ═══════════════════════════════════════════════════════════════

def previous_month_window(month: DateWindow, tz) -> DateWindow:
    first = local_date(month.start_utc, tz)
    last_prev = first - timedelta(days=1)
    return window_for_days(last_prev.replace(day=1), last_prev, tz)


def closer_month_summary(
    calls: Iterable[dict],
    logs: Iterable[dict],
    offers: Iterable[dict],
    month: DateWindow,
    previous_month: DateWindow,
) -> dict:
    """
    commission: month_commission_total
    conversionRate: yes du mois / calls show-up du mois (1 décimale, None si 0 show)
    pifRate: part des yes dont l'offre a 0 échéance
    downsellRate: part des yes dont l'offre a un weekly_classes
    """
    calls = list(calls)
    logs = dedupe_outcome_logs(logs)
    offers_by_id = {o.get("id"): o for o in offers}

    showed = sum(
        1 for c in calls
        if is_yes(c.get("showed_up")) and in_window(c.get("call_date"), month)
    )
    yes_in_month = [
        log for log in logs
        if log.get("outcome") == Outcome.YES.value and in_window(log.get("purchase_date"), month)
    ]

    def share(predicate):
        if not yes_in_month:
            return None
        hits = sum(1 for log in yes_in_month if predicate(offers_by_id.get(log.get("offer_id")) or {}))
        return round(hits / len(yes_in_month) * 100, 1)

    def is_pif(offer):
        return offer.get("installments") is not None and float(offer["installments"]) == 0

    return {
        "commission": month_commission_total(logs, month, previous_month),
        "purchases": len(yes_in_month),
        "showedUp": showed,
        "conversionRate": round(len(yes_in_month) / showed * 100, 1) if showed else None,
        "pifRate": share(is_pif),
        "downsellRate": share(lambda o: o.get("weekly_classes") is not None),
    }


# ═══════════════════════════════════════════════════════════════
# FETCHERS (Supabase)
# ═══════════════════════════════════════════════════════════════

async def _logs_for_calls(db, call_ids: List) -> List[dict]:
    if not call_ids:
        return []
    return rows(await db.table("outcome_log").select("*").in_("call_id", call_ids).execute())


async def fetch_sales_stats(window: DateWindow, codes: Mapping[str, str] = COUNTRY_CODES) -> Optional[dict]:
    """Stats de la fenêtre, None si une requête échoue"""
    start, end = window.as_iso()
    try:
        db = get_db()
        bookings = rows(await db.table("calls").select(CALL_COLUMNS).gte("book_date", start).lte("book_date", end).execute())
        calls = rows(await db.table("calls").select(CALL_COLUMNS).gte("call_date", start).lte("call_date", end).execute())

        in_range = rows(
            await db.table("outcome_log").select("id, call_id")
            .gte("purchase_date", start).lte("purchase_date", end).execute()
        )
        call_ids = sorted({log["call_id"] for log in in_range if log.get("call_id") is not None})
        # dédup sur toutes les lignes du call, puis re-filtre sur la période
        logs = [
            log for log in dedupe_outcome_logs(await _logs_for_calls(db, call_ids))
            if in_window(log.get("purchase_date"), window)
        ]
        purchase_calls = rows(await db.table("calls").select(CALL_COLUMNS).in_("id", call_ids).execute()) if call_ids else []

        setters = rows(await db.table("setters").select("id, name").execute())
        closers = rows(await db.table("closers").select("id, name").execute())
    except Exception as e:
        logger.error(f"fetch_sales_stats failed ({start} -> {end}): {e}")
        return None

    stats = compute_sales_stats(bookings, calls, logs, purchase_calls, setters, closers, codes)
    stats["period"] = {"start": start, "end": end}
    return stats


async def fetch_management_series(days: int = 7, tz=STATS_TIMEZONE, now: Optional[datetime] = None) -> dict:
    """N derniers jours (fin = hier). Un jour en erreur reste à zéro."""
    series = []
    try:
        db = get_db()
    except RuntimeError as e:
        logger.warning(f"[management-series] {e}")
        return {
            "series": [series_point(day, [], []) for day in last_days(days, tz, now)],
            "error": "Missing Supabase config",
        }
    for day in last_days(days, tz, now):
        start, end = window_for_days(day, day, tz).as_iso()
        calls: List[dict] = []
        bookings: List[dict] = []
        try:
            calls = rows(
                await db.table("calls").select("showed_up, confirmed, lead_id, is_reschedule, source_type")
                .gte("call_date", start).lte("call_date", end).execute()
            )
        except Exception as e:
            logger.warning(f"[management-series] calls error {day}: {e}")
        try:
            bookings = rows(
                await db.table("calls").select("source_type, is_reschedule")
                .gte("book_date", start).lte("book_date", end).execute()
            )
        except Exception as e:
            logger.warning(f"[management-series] bookings error {day}: {e}")
        series.append(series_point(day, calls, bookings))
    return {"series": series}


async def fetch_setter_recap(setter_id, since: Optional[str] = None, tz=STATS_TIMEZONE) -> Optional[dict]:
    since = since or (local_today(tz) - timedelta(days=180)).isoformat()
    try:
        db = get_db()
        setter = rows(await db.table("setters").select("id, name").eq("id", setter_id).limit(1).execute())
        calls = rows(
            await db.table("calls").select(CALL_COLUMNS)
            .eq("setter_id", setter_id).gte("book_date", since).order("book_date").execute()
        )
        call_ids = [c["id"] for c in calls]
        logs = [
            log for log in dedupe_outcome_logs(await _logs_for_calls(db, call_ids))
            if log.get("purchase_date") and parse_datetime(log["purchase_date"]) >= parse_datetime(since)
        ]
    except Exception as e:
        logger.error(f"fetch_setter_recap failed for setter {setter_id}: {e}")
        return None

    return {
        "setterId": setter_id,
        "setterName": setter[0]["name"] if setter else None,
        "since": since,
        "fortnights": fortnight_recap(calls, logs, tz),
    }


async def fetch_closer_summary(closer_id, tz=STATS_TIMEZONE, now: Optional[datetime] = None) -> Optional[dict]:
    month = date_window_for("this_month", tz, now)
    previous = previous_month_window(month, tz)
    try:
        db = get_db()
        calls = rows(
            await db.table("calls").select("id, lead_id, call_date, showed_up")
            .eq("closer_id", closer_id).execute()
        )
        logs = dedupe_outcome_logs(await _logs_for_calls(db, [c["id"] for c in calls]))
        offer_ids = sorted({log["offer_id"] for log in logs if log.get("offer_id") is not None})
        offers = rows(await db.table("offers").select("*").in_("id", offer_ids).execute()) if offer_ids else []
        lead_ids = sorted({c["lead_id"] for c in calls if c.get("lead_id") is not None})
        leads = rows(await db.table("leads").select("id, name, email").in_("id", lead_ids).execute()) if lead_ids else []
    except Exception as e:
        logger.error(f"fetch_closer_summary failed for closer {closer_id}: {e}")
        return None

    summary = closer_month_summary(calls, logs, offers, month, previous)
    summary["month"] = bucket_key(month.start_utc, tz, "month")

    leads_by_id = {lead.get("id"): lead for lead in leads}
    outcome_by_call = {log.get("call_id"): log.get("outcome") for log in logs}

    def row(call):
        lead = leads_by_id.get(call.get("lead_id")) or {}
        return {
            "id": call.get("id"),
            "lead_id": call.get("lead_id"),
            "name": lead.get("name") or "—",
            "email": lead.get("email") or "—",
            "call_date": call.get("call_date"),
            "outcome": outcome_by_call.get(call.get("id")),
        }

    dated = sorted((c for c in calls if c.get("call_date")), key=lambda c: parse_datetime(c["call_date"]), reverse=True)
    summary["noShowCalls"] = [row(c) for c in dated if is_no(c.get("showed_up"))][:20]
    summary["lastShowUps"] = [row(c) for c in dated if is_yes(c.get("showed_up"))][:5]
    return summary
