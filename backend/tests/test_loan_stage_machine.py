"""Tests for loan creation, stage tracking, disbursement and top-up eligibility."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from conftest import drop_table, loan_payload, quotation_payload
from loandesk.models.audit import AuditLog
from loandesk.models.loan import LoanStage, LoanStatus, STAGE_ORDER
from loandesk.models.policy import PolicyConfig
from loandesk.services import loan_stage_machine, quotation_engine
from loandesk.services.emi_calculator import calculate_emi
from loandesk.services.errors import NotFoundError, ValidationError
from loandesk.services.loan_stage_machine import derive_current_stage, top_up_date


def _stages(*completed):
    return [SimpleNamespace(stage=s, completed=s in completed) for s in STAGE_ORDER]


class TestDeriveCurrentStage:
    def test_nothing_complete_is_first_stage(self):
        assert derive_current_stage(_stages()) == LoanStage.APPLICATION_SUBMITTED

    def test_contiguous_prefix(self):
        stages = _stages(LoanStage.APPLICATION_SUBMITTED, LoanStage.DOCUMENT_VERIFICATION)
        assert derive_current_stage(stages) == LoanStage.DOCUMENT_VERIFICATION

    def test_out_of_order_completion_takes_last_in_canonical_order(self):
        stages = _stages(LoanStage.APPLICATION_SUBMITTED, LoanStage.SANCTION)
        assert derive_current_stage(stages) == LoanStage.SANCTION

    def test_input_order_does_not_matter(self):
        stages = list(reversed(_stages(LoanStage.CREDIT_APPRAISAL)))
        assert derive_current_stage(stages) == LoanStage.CREDIT_APPRAISAL

    def test_all_complete(self):
        assert derive_current_stage(_stages(*STAGE_ORDER)) == LoanStage.DISBURSEMENT_READY


class TestTopUpDate:
    def test_calendar_months(self):
        start = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)
        assert top_up_date(start, 12) == datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)

    def test_month_end_clamps(self):
        start = datetime(2025, 1, 31, tzinfo=timezone.utc)
        assert top_up_date(start, 1) == datetime(2025, 2, 28, tzinfo=timezone.utc)


class TestCreateLoan:
    @pytest.mark.asyncio
    async def test_initial_state(self, db, admin_actor):
        now = datetime(2025, 4, 1, 9, 30, tzinfo=timezone.utc)
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor, now=now)
        await db.commit()

        assert loan.loan_number == "L-2025-00001"
        assert loan.status == LoanStatus.ACTIVE
        assert loan.current_stage == LoanStage.APPLICATION_SUBMITTED
        assert [s.stage for s in loan.stages] == list(STAGE_ORDER)
        assert [s.label for s in loan.stages][:2] == ["Application Submitted", "Document Verification"]
        assert not any(s.completed for s in loan.stages)
        assert all(s.completed_at is None for s in loan.stages)
        assert loan.top_up_notified is False
        assert loan.top_up_eligible_date == datetime(2026, 4, 1, 9, 30, tzinfo=timezone.utc)
        assert loan.emi > 0

    @pytest.mark.asyncio
    async def test_round_trip_keeps_stage_order(self, db, session_factory, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        async with session_factory() as other:
            fetched = await loan_stage_machine.get_loan(other, loan.id)
            assert [s.stage for s in fetched.stages] == list(STAGE_ORDER)
            assert fetched.loan_number == loan.loan_number

    @pytest.mark.asyncio
    async def test_top_up_window_from_policy(self, db, admin_actor):
        db.add(PolicyConfig(top_up_eligibility_months=6))
        await db.commit()
        now = datetime(2025, 1, 10, tzinfo=timezone.utc)
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor, now=now)
        await db.commit()
        assert loan.top_up_eligible_date == datetime(2025, 7, 10, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_terms_rounded_before_pricing(self, db, session_factory, admin_actor):
        loan = await loan_stage_machine.create_loan(
            db, loan_payload(interest_rate=9.495, approved_amount=1100000.004), admin_actor,
        )
        await db.commit()
        async with session_factory() as other:
            fetched = await loan_stage_machine.get_loan(other, loan.id)
        assert (fetched.interest_rate, fetched.approved_amount) == (9.5, 1100000)
        assert fetched.emi == calculate_emi(1200000, 9.5, 120)

    @pytest.mark.asyncio
    async def test_policy_outage_uses_default_top_up_window(self, db, admin_actor):
        await drop_table(db, "policy_config")
        now = datetime(2025, 4, 1, tzinfo=timezone.utc)
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor, now=now)
        await db.commit()
        assert loan.top_up_eligible_date == datetime(2026, 4, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_links_existing_quotation(self, db, agent_actor, admin_actor):
        quotation = await quotation_engine.create_quotation(db, quotation_payload(), agent_actor)
        await db.commit()
        loan = await loan_stage_machine.create_loan(
            db, loan_payload(quotation_id=quotation.id), admin_actor,
        )
        await db.commit()
        assert loan.quotation_id == quotation.id

    @pytest.mark.asyncio
    async def test_unknown_quotation(self, db, admin_actor):
        with pytest.raises(NotFoundError):
            await loan_stage_machine.create_loan(db, loan_payload(quotation_id=4242), admin_actor)

    @pytest.mark.asyncio
    async def test_invalid_terms(self, db, admin_actor):
        with pytest.raises(ValidationError):
            await loan_stage_machine.create_loan(db, loan_payload(interest_rate=101), admin_actor)
        assert await loan_stage_machine.list_loans(db) == []


class TestUpdateStage:
    @pytest.mark.asyncio
    async def test_complete_stage_sets_timestamp_and_current(self, db, admin_actor, agent_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()

        loan = await loan_stage_machine.update_stage(
            db, loan.id, "application_submitted", True, "KYC received", actor=agent_actor,
        )
        await db.commit()
        first = loan.stages[0]
        assert first.completed is True
        assert first.completed_at is not None
        assert first.remarks == "KYC received"
        assert loan.current_stage == LoanStage.APPLICATION_SUBMITTED

    @pytest.mark.asyncio
    async def test_out_of_order_completion(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        await loan_stage_machine.update_stage(
            db, loan.id, LoanStage.APPLICATION_SUBMITTED, True, actor=admin_actor,
        )
        await db.commit()
        loan = await loan_stage_machine.update_stage(
            db, loan.id, LoanStage.SANCTION, True, actor=admin_actor,
        )
        await db.commit()
        assert loan.current_stage == LoanStage.SANCTION

    @pytest.mark.asyncio
    async def test_uncomplete_clears_timestamp_and_moves_back(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        for stage in (LoanStage.APPLICATION_SUBMITTED, LoanStage.DOCUMENT_VERIFICATION):
            await loan_stage_machine.update_stage(db, loan.id, stage, True, actor=admin_actor)
            await db.commit()

        loan = await loan_stage_machine.update_stage(
            db, loan.id, LoanStage.DOCUMENT_VERIFICATION, False, actor=admin_actor,
        )
        await db.commit()
        assert loan.stages[1].completed is False
        assert loan.stages[1].completed_at is None
        assert loan.current_stage == LoanStage.APPLICATION_SUBMITTED

    @pytest.mark.asyncio
    async def test_remarks_kept_when_not_provided(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        await loan_stage_machine.update_stage(
            db, loan.id, LoanStage.CREDIT_APPRAISAL, True, "CIBIL 780", actor=admin_actor,
        )
        await db.commit()
        loan = await loan_stage_machine.update_stage(
            db, loan.id, LoanStage.CREDIT_APPRAISAL, False, actor=admin_actor,
        )
        await db.commit()
        assert loan.stages[2].remarks == "CIBIL 780"

    @pytest.mark.asyncio
    async def test_unknown_stage(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        with pytest.raises(NotFoundError):
            await loan_stage_machine.update_stage(db, loan.id, "valuation", True, actor=admin_actor)

    @pytest.mark.asyncio
    async def test_unknown_loan(self, db, admin_actor):
        with pytest.raises(NotFoundError):
            await loan_stage_machine.update_stage(
                db, 999, LoanStage.SANCTION, True, actor=admin_actor,
            )

    @pytest.mark.asyncio
    async def test_audited(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        await loan_stage_machine.update_stage(db, loan.id, LoanStage.SANCTION, True, actor=admin_actor)
        await db.commit()
        entry = (
            await db.execute(select(AuditLog).where(AuditLog.action == "updated_loan_stage"))
        ).scalar_one()
        assert entry.changes["stage"] == "sanction"
        assert entry.changes["completed"] is True

    @pytest.mark.asyncio
    async def test_attach_document(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        await loan_stage_machine.attach_stage_document(
            db, loan.id, LoanStage.DOCUMENT_VERIFICATION, "pan.pdf", "https://files.test/pan.pdf",
            actor=admin_actor,
        )
        await db.commit()
        loan = await loan_stage_machine.attach_stage_document(
            db, loan.id, LoanStage.DOCUMENT_VERIFICATION, "aadhaar.pdf",
            "https://files.test/aadhaar.pdf", actor=admin_actor,
        )
        await db.commit()
        docs = loan.stages[1].documents
        assert [d["name"] for d in docs] == ["pan.pdf", "aadhaar.pdf"]
        assert all("uploaded_at" in d for d in docs)


class TestDisburse:
    @pytest.mark.asyncio
    async def test_defaults_to_loan_amount_and_leaves_stages(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        loan = await loan_stage_machine.disburse(db, loan.id, actor=admin_actor)
        await db.commit()
        assert loan.disbursement_amount == 1200000
        assert loan.disbursement_date is not None
        assert loan.status == LoanStatus.ACTIVE
        assert loan.current_stage == LoanStage.APPLICATION_SUBMITTED
        assert not any(s.completed for s in loan.stages)

    @pytest.mark.asyncio
    async def test_explicit_amount(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        loan = await loan_stage_machine.disburse(db, loan.id, 1150000, actor=admin_actor)
        await db.commit()
        assert loan.disbursement_amount == 1150000

    @pytest.mark.asyncio
    async def test_non_positive_amount(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        with pytest.raises(ValidationError):
            await loan_stage_machine.disburse(db, loan.id, 0, actor=admin_actor)

    @pytest.mark.asyncio
    async def test_top_up_date_never_before_disbursement(self, db, admin_actor):
        created = datetime.now(timezone.utc) - timedelta(days=800)
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor, now=created)
        await db.commit()
        loan = await loan_stage_machine.disburse(db, loan.id, actor=admin_actor)
        await db.commit()
        assert loan.top_up_eligible_date >= loan.disbursement_date

    @pytest.mark.asyncio
    async def test_future_top_up_date_kept(self, db, admin_actor):
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor)
        await db.commit()
        eligible = loan.top_up_eligible_date
        loan = await loan_stage_machine.disburse(db, loan.id, actor=admin_actor)
        await db.commit()
        assert loan.top_up_eligible_date == eligible


class TestTopUpEligibility:
    @pytest.mark.asyncio
    async def test_inclusive_boundary(self, db, admin_actor):
        created = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor, now=created)
        await db.commit()
        eligible_at = loan.top_up_eligible_date

        just_before = eligible_at - timedelta(seconds=1)
        assert await loan_stage_machine.list_top_up_eligible(db, now=just_before) == []
        eligible = await loan_stage_machine.list_top_up_eligible(db, now=eligible_at)
        assert [l.id for l in eligible] == [loan.id]

    @pytest.mark.asyncio
    async def test_excludes_notified_and_inactive(self, db, admin_actor):
        created = datetime(2023, 1, 1, tzinfo=timezone.utc)
        ids = []
        for _ in range(3):
            loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor, now=created)
            await db.commit()
            ids.append(loan.id)

        await loan_stage_machine.mark_top_up_notified(db, ids[0], actor=admin_actor)
        closed = await loan_stage_machine.get_loan(db, ids[1])
        closed.status = LoanStatus.CLOSED
        await db.commit()

        eligible = await loan_stage_machine.list_top_up_eligible(db)
        assert [l.id for l in eligible] == [ids[2]]

    @pytest.mark.asyncio
    async def test_listing_does_not_flip_flag(self, db, admin_actor):
        created = datetime(2023, 1, 1, tzinfo=timezone.utc)
        loan = await loan_stage_machine.create_loan(db, loan_payload(), admin_actor, now=created)
        await db.commit()
        await loan_stage_machine.list_top_up_eligible(db)
        assert len(await loan_stage_machine.list_top_up_eligible(db)) == 1
        assert (await loan_stage_machine.get_loan(db, loan.id)).top_up_notified is False


class TestListLoans:
    @pytest.mark.asyncio
    async def test_filters(self, db, admin_actor):
        await loan_stage_machine.create_loan(db, loan_payload(client_id="c-1"), admin_actor)
        await db.commit()
        await loan_stage_machine.create_loan(db, loan_payload(client_id="c-2"), admin_actor)
        await db.commit()

        assert len(await loan_stage_machine.list_loans(db)) == 2
        only_c2 = await loan_stage_machine.list_loans(db, client_id="c-2")
        assert [l.client_id for l in only_c2] == ["c-2"]
        assert await loan_stage_machine.list_loans(db, status=LoanStatus.CLOSED) == []
