"""
SalesOps - Service Outcomes (notes closer)

Table: outcome_log (une ligne "autoritaire" par call_id, pas de contrainte unique)

Pipeline save_outcome:
  1. Charger le call + l'offre
  2. Calculer la commission
  3. Upsert outcome_log avec garde anti-doublon
  4. Synchroniser calls.purchased / purchased_at
"""

import logging
from typing import Dict, Iterable, List, Optional

from config import get_db, now_iso, rows
from models import Outcome, OutcomeSave, DEFAULT_CLAWBACK
from services.commission import compute_commission
from services.date_windows import parse_datetime
from services.error_logger import log_function_error

logger = logging.getLogger("outcomes")


class CallNotFoundError(LookupError):
    """Le call référencé n'existe pas"""


# ═══════════════════════════════════════════════════════════════
# DEDUP
# ═══════════════════════════════════════════════════════════════

def dedupe_outcome_logs(logs: Iterable[dict]) -> List[dict]:
    """
    Une ligne par call_id: garde celle avec le plus grand id.
    Les lignes sans call_id sont ignorées.
    """
    kept: Dict = {}
    for log in logs or []:
        call_id = log.get("call_id")
        if call_id is None:
            continue
        current = kept.get(call_id)
        if current is None or (log.get("id") or 0) > (current.get("id") or 0):
            kept[call_id] = log
    return list(kept.values())


# ═══════════════════════════════════════════════════════════════
# PURCHASED SYNC
# ═══════════════════════════════════════════════════════════════

def purchased_update_for(outcome, purchased_at: Optional[str] = None) -> Optional[dict]:
    """
    Patch à appliquer sur le call, ou None pour ne rien toucher.
      yes         -> purchased=True, purchased_at=timestamp
      no / refund -> purchased=False, purchased_at=None
      lock_in / follow_up -> None
    """
    outcome = Outcome(outcome)
    if outcome is Outcome.YES:
        return {"purchased": True, "purchased_at": purchased_at or now_iso()}
    if outcome in (Outcome.NO, Outcome.REFUND):
        return {"purchased": False, "purchased_at": None}
    return None


def _purchase_timestamp(purchase_date: Optional[str]) -> str:
    if not purchase_date:
        return now_iso()
    return parse_datetime(purchase_date).isoformat()


# ═══════════════════════════════════════════════════════════════
# SAVE
# ═══════════════════════════════════════════════════════════════

def build_outcome_record(data: OutcomeSave, offer: Optional[dict]) -> dict:
    clawback = data.clawback
    if data.outcome is Outcome.REFUND and clawback is None:
        clawback = DEFAULT_CLAWBACK

    return {
        "call_id": data.call_id,
        "outcome": data.outcome.value,
        "offer_id": data.offer_id,
        "discount": data.discount,
        "commission": compute_commission(
            data.outcome,
            offer,
            discount=data.discount,
            pif=data.pif,
            purchase_date=data.purchase_date,
            refund_date=data.refund_date,
            clawback=clawback,
        ),
        "purchase_date": data.purchase_date,
        "refund_date": data.refund_date if data.outcome is Outcome.REFUND else None,
        "clawback": clawback if data.outcome is Outcome.REFUND else None,
        "PIF": data.pif,
        "paid_second_installment": data.paid_second_installment,
        "notes": data.notes or "",
    }


async def save_outcome(data: OutcomeSave) -> dict:
    """
    Enregistre la décision du closer pour un call.

    Returns: {"id", "action": created|updated, "commission", "call_update"}
    Raises: CallNotFoundError, ou l'erreur Supabase (tracée dans function_errors)
    """
    db = get_db()
    try:
        found = rows(await db.table("calls").select("id, closer_note_id").eq("id", data.call_id).limit(1).execute())
        if not found:
            raise CallNotFoundError(f"Call {data.call_id} not found")
        call = found[0]

        offer = None
        if data.offer_id is not None:
            offers = rows(await db.table("offers").select("*").eq("id", data.offer_id).limit(1).execute())
            offer = offers[0] if offers else None

        record = build_outcome_record(data, offer)
        purchased_at = _purchase_timestamp(data.purchase_date) if data.outcome is Outcome.YES else None
        call_update = purchased_update_for(data.outcome, purchased_at)
        note_id = call.get("closer_note_id")
        action = "updated"

        if note_id:
            await db.table("outcome_log").update(record).eq("id", note_id).execute()
        else:
            # Pas encore lié: une ligne existe peut-être déjà (retry, double clic)
            existing = rows(
                await db.table("outcome_log").select("id")
                .eq("call_id", data.call_id)
                .order("id", desc=True)
                .limit(1)
                .execute()
            )
            if existing:
                note_id = existing[0]["id"]
                await db.table("outcome_log").update(record).eq("id", note_id).execute()
            else:
                inserted = rows(await db.table("outcome_log").insert(record).execute())
                note_id = inserted[0]["id"] if inserted else None
                action = "created"
            if note_id is not None:
                await db.table("calls").update({"closer_note_id": note_id}).eq("id", data.call_id).execute()

        if call_update is not None:
            await db.table("calls").update(call_update).eq("id", data.call_id).execute()

        logger.info(f"Outcome {data.outcome.value} {action} for call {data.call_id} (commission={record['commission']})")
        return {
            "id": note_id,
            "action": action,
            "commission": record["commission"],
            "call_update": call_update,
        }

    except CallNotFoundError:
        raise
    except Exception as e:
        logger.error(f"save_outcome failed for call {data.call_id}: {e}")
        await log_function_error("save_outcome", e, {"call_id": data.call_id, "outcome": data.outcome.value})
        raise
