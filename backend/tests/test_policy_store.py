"""Tests for policy reads, defaults and administrator edits."""

import pytest
from sqlalchemy import func, select

from conftest import drop_table
from loandesk.models.audit import AuditLog
from loandesk.models.policy import PolicyConfig
from loandesk.models.user import User, UserRole
from loandesk.services import policy_store
from loandesk.services.errors import TransientStorageError


class TestReads:
    @pytest.mark.asyncio
    async def test_defaults_without_row(self, db):
        thresholds = await policy_store.get_policy_thresholds(db)
        assert thresholds == policy_store.DEFAULT_THRESHOLDS
        assert (thresholds.loan_amount, thresholds.min_interest_rate, thresholds.max_tenure) == (
            1_000_000, 12, 60,
        )
        assert await policy_store.get_top_up_eligibility_months(db) == 12

    @pytest.mark.asyncio
    async def test_get_policy_creates_single_default_row(self, db):
        first = await policy_store.get_policy(db)
        await db.commit()
        second = await policy_store.get_policy(db)
        assert first.id == second.id
        assert first.updated_by == "system"
        assert first.email_notifications is True
        assert first.sms_notifications is False
        assert await db.scalar(select(func.count(PolicyConfig.id))) == 1

    @pytest.mark.asyncio
    async def test_outage_uses_defaults(self, db):
        await drop_table(db, "policy_config")
        assert await policy_store.get_policy_thresholds(db) == policy_store.DEFAULT_THRESHOLDS
        assert await policy_store.get_top_up_eligibility_months(db) == 12

    @pytest.mark.asyncio
    async def test_failed_read_leaves_caller_transaction_usable(self, db, users):
        await drop_table(db, "policy_config")
        db.add(User(email="late@loandesk.test", display_name="Late Joiner", role=UserRole.AGENT))
        assert await policy_store.get_policy_thresholds(db) == policy_store.DEFAULT_THRESHOLDS
        await db.commit()
        assert await db.scalar(select(func.count(User.id))) == len(users) + 1

    @pytest.mark.asyncio
    async def test_outage_on_explicit_read_is_transient(self, db):
        await drop_table(db, "policy_config")
        with pytest.raises(TransientStorageError):
            await policy_store.get_policy(db)


class TestUpdatePolicy:
    @pytest.mark.asyncio
    async def test_nested_thresholds_and_flags(self, db, admin_actor):
        policy = await policy_store.update_policy(
            db,
            {
                "high_value_thresholds": {"loan_amount": 2500000, "max_tenure": 84},
                "top_up_eligibility_months": 18,
                "sms_notifications": True,
            },
            admin_actor,
        )
        await db.commit()

        assert policy.high_value_loan_amount == 2500000
        assert policy.high_value_min_interest_rate == 12
        assert policy.high_value_max_tenure == 84
        assert policy.top_up_eligibility_months == 18
        assert policy.sms_notifications is True
        assert policy.updated_by == str(admin_actor.uid)

        thresholds = await policy_store.get_policy_thresholds(db)
        assert thresholds.loan_amount == 2500000
        assert thresholds.max_tenure == 84

    @pytest.mark.asyncio
    async def test_audited(self, db, admin_actor):
        await policy_store.update_policy(db, {"email_notifications": False}, admin_actor)
        await db.commit()
        entry = (await db.execute(select(AuditLog))).scalar_one()
        assert entry.action == "updated_policy"
        assert entry.entity_type == "policy"
        assert entry.changes == {"email_notifications": False}
