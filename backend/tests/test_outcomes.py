"""
SalesOps - Outcomes: dédup outcome_log, synchro purchased, upsert anti-doublon
Run: cd backend && pytest tests/test_outcomes.py -v
"""

import pytest
from pydantic import ValidationError

from models import OutcomeSave
from services.outcomes import (
    CallNotFoundError,
    build_outcome_record,
    dedupe_outcome_logs,
    purchased_update_for,
    save_outcome,
)

OFFER = {"id": 3, "base_commission": 100, "PIF_commission": 150}


# ═══════════════════════════════════════════════════════════════
# DEDUP
# ═══════════════════════════════════════════════════════════════

class TestDedupe:

    def test_keeps_highest_id_per_call(self):
        logs = [
            {"id": 4, "call_id": 10, "outcome": "no"},
            {"id": 9, "call_id": 10, "outcome": "yes"},
            {"id": 5, "call_id": 11, "outcome": "yes"},
        ]
        kept = {log["call_id"]: log for log in dedupe_outcome_logs(logs)}
        assert kept[10]["id"] == 9
        assert kept[10]["outcome"] == "yes"
        assert kept[11]["id"] == 5
        assert len(kept) == 2

    def test_order_does_not_matter(self):
        logs = [{"id": 9, "call_id": 10}, {"id": 4, "call_id": 10}]
        assert dedupe_outcome_logs(logs) == [{"id": 9, "call_id": 10}]

    def test_rows_without_call_id_are_skipped(self):
        assert dedupe_outcome_logs([{"id": 1, "call_id": None}]) == []

    def test_empty(self):
        assert dedupe_outcome_logs(None) == []


# ═══════════════════════════════════════════════════════════════
# PURCHASED SYNC
# ═══════════════════════════════════════════════════════════════

class TestPurchasedUpdate:

    def test_yes_marks_purchased(self):
        update = purchased_update_for("yes", "2025-03-02T00:00:00+00:00")
        assert update == {"purchased": True, "purchased_at": "2025-03-02T00:00:00+00:00"}

    def test_yes_without_date_stamps_now(self):
        update = purchased_update_for("yes")
        assert update["purchased"] is True
        assert update["purchased_at"]

    @pytest.mark.parametrize("outcome", ["no", "refund"])
    def test_no_and_refund_clear_purchase(self, outcome):
        assert purchased_update_for(outcome) == {"purchased": False, "purchased_at": None}

    @pytest.mark.parametrize("outcome", ["lock_in", "follow_up"])
    def test_lock_in_and_follow_up_leave_call_alone(self, outcome):
        assert purchased_update_for(outcome) is None


class TestOutcomeRecord:

    def test_refund_defaults_full_clawback(self):
        data = OutcomeSave(call_id=1, outcome="refund", offer_id=3, purchase_date="2025-03-01")
        record = build_outcome_record(data, OFFER)
        assert record["clawback"] == 100
        assert record["commission"] == -100

    def test_yes_drops_refund_fields(self):
        data = OutcomeSave(call_id=1, outcome="yes", offer_id=3, refund_date="2025-03-09", clawback=40)
        record = build_outcome_record(data, OFFER)
        assert record["refund_date"] is None
        assert record["clawback"] is None
        assert record["commission"] == 100

    def test_blank_dates_become_none(self):
        data = OutcomeSave(call_id=1, outcome="no", purchase_date="  ", refund_date="")
        assert data.purchase_date is None
        assert data.refund_date is None

    @pytest.mark.parametrize("field", ["purchase_date", "refund_date"])
    def test_unparseable_date_is_rejected(self, field):
        with pytest.raises(ValidationError):
            OutcomeSave(call_id=1, outcome="yes", **{field: "03/02/2025"})

    def test_iso_datetime_is_accepted(self):
        data = OutcomeSave(call_id=1, outcome="yes", purchase_date=" 2025-03-02T10:00:00Z ")
        assert data.purchase_date == "2025-03-02T10:00:00Z"


# ═══════════════════════════════════════════════════════════════
# SAVE (FakeSupabase)
# ═══════════════════════════════════════════════════════════════

class TestSaveOutcome:

    @pytest.mark.asyncio
    async def test_creates_and_links_row(self, db):
        db.tables["calls"] = [{"id": 1, "closer_note_id": None, "purchased": None}]
        db.tables["offers"] = [OFFER]

        result = await save_outcome(OutcomeSave(call_id=1, outcome="yes", offer_id=3, purchase_date="2025-03-02"))

        assert result["action"] == "created"
        assert result["commission"] == 100
        assert len(db.tables["outcome_log"]) == 1
        call = db.tables["calls"][0]
        assert call["closer_note_id"] == result["id"]
        assert call["purchased"] is True
        assert call["purchased_at"].startswith("2025-03-02")

    @pytest.mark.asyncio
    async def test_existing_row_is_updated_not_duplicated(self, db):
        """Call pas encore lié mais une ligne existe déjà (double clic)"""
        db.tables["calls"] = [{"id": 1, "closer_note_id": None}]
        db.tables["offers"] = [OFFER]
        db.tables["outcome_log"] = [
            {"id": 7, "call_id": 1, "outcome": "follow_up"},
            {"id": 12, "call_id": 1, "outcome": "follow_up"},
        ]

        result = await save_outcome(OutcomeSave(call_id=1, outcome="no"))

        assert result["action"] == "updated"
        assert result["id"] == 12
        assert len(db.tables["outcome_log"]) == 2
        updated = next(r for r in db.tables["outcome_log"] if r["id"] == 12)
        assert updated["outcome"] == "no"
        assert db.tables["calls"][0]["closer_note_id"] == 12

    @pytest.mark.asyncio
    async def test_linked_row_is_updated(self, db):
        db.tables["calls"] = [{"id": 1, "closer_note_id": 5, "purchased": True, "purchased_at": "2025-01-01"}]
        db.tables["outcome_log"] = [{"id": 5, "call_id": 1, "outcome": "yes"}]

        result = await save_outcome(OutcomeSave(call_id=1, outcome="lock_in"))

        assert result["id"] == 5
        assert result["call_update"] is None
        assert db.tables["outcome_log"][0]["outcome"] == "lock_in"
        # lock_in ne touche pas au call
        assert db.tables["calls"][0]["purchased"] is True
        assert db.tables["calls"][0]["purchased_at"] == "2025-01-01"

    @pytest.mark.asyncio
    async def test_unknown_call(self, db):
        with pytest.raises(CallNotFoundError):
            await save_outcome(OutcomeSave(call_id=99, outcome="yes"))

    @pytest.mark.asyncio
    async def test_failure_is_recorded_in_function_errors(self, db):
        db.tables["calls"] = [{"id": 1, "closer_note_id": None}]
        db.fail_tables.add("outcome_log")

        with pytest.raises(RuntimeError):
            await save_outcome(OutcomeSave(call_id=1, outcome="no"))

        errors = db.tables["function_errors"]
        assert errors[0]["function_name"] == "save_outcome"
        assert errors[0]["error_details"]["call_id"] == 1

    @pytest.mark.asyncio
    async def test_purchase_date_only_read_for_yes(self, db):
        """lock_in: la date n'est pas utilisée, le call reste intact"""
        db.tables["calls"] = [{"id": 1, "closer_note_id": None, "purchased": True, "purchased_at": "2025-01-01"}]

        result = await save_outcome(OutcomeSave(call_id=1, outcome="lock_in", purchase_date="2025-03-02"))

        assert result["call_update"] is None
        assert db.tables["calls"][0]["purchased_at"] == "2025-01-01"

    @pytest.mark.asyncio
    async def test_yes_syncs_purchased_with_log(self, db):
        db.tables["calls"] = [{"id": 1, "closer_note_id": None, "purchased": False, "purchased_at": None}]
        db.tables["offers"] = [OFFER]

        await save_outcome(OutcomeSave(call_id=1, outcome="yes", offer_id=3, purchase_date="2025-03-02T10:00:00Z"))

        assert db.tables["outcome_log"][0]["outcome"] == "yes"
        assert db.tables["calls"][0]["purchased"] is True
        assert db.tables["calls"][0]["purchased_at"] == "2025-03-02T10:00:00+00:00"
