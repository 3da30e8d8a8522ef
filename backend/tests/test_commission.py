"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SalesOps - Commission closer                                                ║
║                                                                              ║
║  compute_commission (yes / refund / clawback) + total mensuel                ║
║  Run: cd backend && pytest tests/test_commission.py -v                       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from datetime import date

import pytest

from services.commission import compute_commission, month_commission_total, round_cents
from services.date_windows import window_for_days

OFFER = {"id": 1, "base_commission": 100, "PIF_commission": 150}
OFFER_NO_PIF = {"id": 2, "base_commission": 100, "PIF_commission": None}


class TestYesOutcome:

    def test_plain_sale_pays_base_commission(self):
        assert compute_commission("yes", OFFER_NO_PIF) == 100

    def test_discount_reduces_base(self):
        """20% de remise sur 100 -> 80"""
        assert compute_commission("yes", OFFER, discount=20) == 80

    def test_pif_overrides_discount(self):
        assert compute_commission("yes", OFFER, discount=20, pif=True) == 150

    def test_pif_without_pif_commission_falls_back_to_base(self):
        assert compute_commission("yes", OFFER_NO_PIF, discount=10, pif=True) == 90

    def test_rounded_to_cents(self):
        offer = {"base_commission": 99.99}
        assert compute_commission("yes", offer, discount=33) == 66.99


class TestNoCommission:

    @pytest.mark.parametrize("outcome", ["no", "lock_in", "follow_up", None, "garbage"])
    def test_other_outcomes(self, outcome):
        assert compute_commission(outcome, OFFER) is None

    def test_missing_offer(self):
        assert compute_commission("yes", None) is None


class TestRefund:

    def test_default_clawback_is_full(self):
        assert compute_commission("refund", OFFER_NO_PIF) == -100

    def test_full_clawback_explicit(self):
        assert compute_commission("refund", OFFER_NO_PIF, clawback=100,
                                  purchase_date="2025-03-02", refund_date="2025-03-20") == -100

    def test_partial_clawback_same_month_is_positive(self):
        """Même mois: 100 * (100 - 50) / 100 = +50"""
        result = compute_commission("refund", OFFER_NO_PIF, clawback=50,
                                    purchase_date="2025-03-02", refund_date="2025-03-20")
        assert result == 50

    def test_partial_clawback_other_month(self):
        result = compute_commission("refund", OFFER_NO_PIF, clawback=50,
                                    purchase_date="2025-02-25", refund_date="2025-03-05")
        assert result == -50

    def test_same_month_number_different_year(self):
        result = compute_commission("refund", OFFER_NO_PIF, clawback=50,
                                    purchase_date="2024-03-10", refund_date="2025-03-10")
        assert result == -50

    def test_missing_refund_date_uses_other_month_formula(self):
        assert compute_commission("refund", OFFER_NO_PIF, clawback=25, purchase_date="2025-03-02") == -25

    def test_zero_clawback_other_month_is_zero(self):
        result = compute_commission("refund", OFFER_NO_PIF, clawback=0,
                                    purchase_date="2025-01-10", refund_date="2025-03-05")
        assert result == 0.0
        assert str(result) == "0.0"

    def test_negative_clawback_behaves_as_zero(self):
        same = compute_commission("refund", OFFER_NO_PIF, clawback=-20,
                                  purchase_date="2025-03-01", refund_date="2025-03-09")
        other = compute_commission("refund", OFFER_NO_PIF, clawback=-20,
                                   purchase_date="2025-01-01", refund_date="2025-03-09")
        assert same == 100
        assert other == 0.0

    def test_pif_refund(self):
        assert compute_commission("refund", OFFER, pif=True) == -150


class TestRoundCents:

    def test_half_up(self):
        assert round_cents(2.675) == 2.68

    def test_negative_zero_normalised(self):
        assert str(round_cents(-0.001)) == "0.0"


class TestMonthTotal:
    """Mars 2025, mois précédent février"""

    MARCH = window_for_days(date(2025, 3, 1), date(2025, 3, 31), "UTC")
    FEBRUARY = window_for_days(date(2025, 2, 1), date(2025, 2, 28), "UTC")

    def test_sums_yes_in_month(self):
        logs = [
            {"call_id": 1, "outcome": "yes", "commission": 100, "purchase_date": "2025-03-04"},
            {"call_id": 2, "outcome": "yes", "commission": 80, "purchase_date": "2025-02-20"},
        ]
        assert month_commission_total(logs, self.MARCH, self.FEBRUARY) == 100

    def test_previous_month_second_installment(self):
        logs = [
            {"call_id": 2, "outcome": "yes", "commission": 80, "purchase_date": "2025-02-20",
             "paid_second_installment": True},
        ]
        assert month_commission_total(logs, self.MARCH, self.FEBRUARY) == 80

    def test_refund_bought_and_refunded_same_month_counts_in_both_terms(self):
        """Acheté ET remboursé en mars: terme 'remboursés' + terme 'achetés dans le mois'"""
        logs = [
            {"call_id": 3, "outcome": "refund", "commission": -100,
             "purchase_date": "2025-03-02", "refund_date": "2025-03-15"},
        ]
        assert month_commission_total(logs, self.MARCH, self.FEBRUARY) == -200

    def test_refund_by_purchase_date_only(self):
        logs = [
            {"call_id": 3, "outcome": "refund", "commission": 30,
             "purchase_date": "2025-03-02", "refund_date": "2025-04-03"},
        ]
        assert month_commission_total(logs, self.MARCH, self.FEBRUARY) == 30

    def test_refund_by_refund_date(self):
        logs = [
            {"call_id": 3, "outcome": "refund", "commission": -50,
             "purchase_date": "2025-01-02", "refund_date": "2025-03-15"},
        ]
        assert month_commission_total(logs, self.MARCH, self.FEBRUARY) == -50

    def test_ignores_rows_without_commission(self):
        logs = [{"call_id": 4, "outcome": "yes", "commission": None, "purchase_date": "2025-03-04"}]
        assert month_commission_total(logs, self.MARCH, self.FEBRUARY) == 0.0
