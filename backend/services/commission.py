"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SalesOps - Commission closer                                                ║
║                                                                              ║
║  1. outcome hors {yes, refund} ou pas d'offre -> None                        ║
║  2. PIF + PIF_commission -> PIF_commission                                   ║
║     sinon base_commission * (1 - discount/100)                               ║
║  3. yes -> +montant, refund -> -montant                                      ║
║  4. refund avec clawback < 100:                                              ║
║     - même mois calendaire (achat / refund) -> |montant| * (100-cb)/100      ║
║     - sinon -> -montant * cb/100                                             ║
║     clawback <= 0 se comporte comme 0                                        ║
║  5. arrondi au centime, -0.0 -> 0.0                                          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from models import Outcome, COMMISSION_OUTCOMES, DEFAULT_CLAWBACK
from services.date_windows import DateWindow, DateLike, in_window, same_calendar_month


def round_cents(value: float) -> float:
    """Arrondi au centime (half-up), sans -0.0"""
    rounded = float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    return 0.0 if rounded == 0 else rounded


def _num(value, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    return float(value)


def base_amount(offer: dict, discount: Optional[float] = None, pif: bool = False) -> float:
    """Montant avant signe: PIF_commission si PIF, sinon base remisée"""
    pif_commission = offer.get("PIF_commission")
    if pif and pif_commission is not None:
        return _num(pif_commission)
    return _num(offer.get("base_commission")) * (1 - _num(discount) / 100)


def compute_commission(
    outcome: Union[Outcome, str, None],
    offer: Optional[dict],
    discount: Optional[float] = None,
    pif: bool = False,
    purchase_date: Optional[DateLike] = None,
    refund_date: Optional[DateLike] = None,
    clawback: Optional[float] = None,
) -> Optional[float]:
    """Commission signée à stocker dans outcome_log.commission"""
    try:
        outcome = Outcome(outcome) if outcome is not None else None
    except ValueError:
        return None
    if outcome not in COMMISSION_OUTCOMES or not offer:
        return None

    amount = base_amount(offer, discount, pif)

    if outcome is Outcome.YES:
        return round_cents(amount)

    commission = -amount
    clawback = DEFAULT_CLAWBACK if clawback is None else float(clawback)
    if clawback < 100:
        clawback = max(clawback, 0.0)
        original = abs(amount)
        if same_calendar_month(purchase_date, refund_date):
            commission = original * (100 - clawback) / 100
        else:
            commission = commission * clawback / 100

    return round_cents(commission)


# ==================== TOTAL MENSUEL ====================

def month_commission_total(
    logs: Iterable[dict],
    month: DateWindow,
    previous_month: DateWindow,
) -> float:
    """
    Commission d'un closer pour un mois (logs déjà filtrés sur ses calls et dédupliqués).
    Somme de quatre termes indépendants:
      + yes achetés dans le mois
      + yes du mois précédent dont la 2e échéance est payée
      + refunds remboursés dans le mois
      + refunds achetés dans le mois
    Un refund acheté ET remboursé dans le mois entre dans les deux derniers termes.
    """
    total = 0.0
    for log in logs:
        commission = log.get("commission")
        if commission is None:
            continue
        outcome = log.get("outcome")
        purchased_in_month = in_window(log.get("purchase_date"), month)

        if outcome == Outcome.YES.value:
            if purchased_in_month:
                total += _num(commission)
            if log.get("paid_second_installment") and in_window(log.get("purchase_date"), previous_month):
                total += _num(commission)
        elif outcome == Outcome.REFUND.value:
            if in_window(log.get("refund_date"), month):
                total += _num(commission)
            if purchased_in_month:
                total += _num(commission)

    return round_cents(total)
