"""Tests for the withdrawal workflow: request, process, complete, fail, cancel."""

import uuid
from decimal import Decimal

import pytest
from django.db import OperationalError

from core import accounts, ledger, withdrawals
from core.constants import FAIL_WITHDRAWAL, MAX_TRANSACTION_HASH_LENGTH, PROCESS_WITHDRAWAL
from core.errors import (
    ConflictError,
    DatabaseError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from core.models import AdminLog, LedgerEntry, ReferenceType, TransactionType, Withdrawal, WithdrawalMethod
from core.transitions import WithdrawalStatus

DETAILS = {"account_number": "0123456789", "bank": "Test Bank"}


def request(user, amount="50.00", method=WithdrawalMethod.BANK_TRANSFER, details=None):
    return withdrawals.request_withdrawal(user.pk, amount, method, details or DETAILS)


@pytest.mark.django_db
class TestRequest:

    def test_creates_pending_without_debit(self, funded_user):
        w = request(funded_user)
        assert w.status == WithdrawalStatus.PENDING
        assert w.amount == Decimal("50.00")
        assert ledger.get_balance(funded_user.pk) == Decimal("100.00")

    @pytest.mark.parametrize(
        "amount,method,details",
        [
            ("9.99", WithdrawalMethod.PAYPAL, DETAILS),
            ("-20.00", WithdrawalMethod.PAYPAL, DETAILS),
            ("10.001", WithdrawalMethod.PAYPAL, DETAILS),
            ("20.00", "cheque", DETAILS),
            ("20.00", WithdrawalMethod.PAYPAL, {}),
            ("20.00", WithdrawalMethod.PAYPAL, "email@example.com"),
        ],
    )
    def test_invalid_requests(self, funded_user, amount, method, details):
        with pytest.raises(ValidationError):
            withdrawals.request_withdrawal(funded_user.pk, amount, method, details)
        assert not Withdrawal.objects.exists()

    def test_minimum_amount_is_accepted(self, funded_user):
        assert request(funded_user, amount="10.00").amount == Decimal("10.00")

    def test_insufficient_balance(self, funded_user):
        with pytest.raises(InsufficientBalanceError):
            request(funded_user, amount="100.01")

    def test_blocked_user(self, funded_user):
        funded_user.is_blocked = True
        funded_user.save()
        with pytest.raises(ForbiddenError):
            request(funded_user)

    def test_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            withdrawals.request_withdrawal(uuid.uuid4(), "20.00", WithdrawalMethod.CRYPTO, {"address": "bc1q"})

    def test_one_open_withdrawal_at_a_time(self, funded_user):
        request(funded_user, amount="20.00")
        with pytest.raises(ConflictError):
            request(funded_user, amount="20.00")

    def test_weekly_rate_limit(self, funded_user):
        for _ in range(3):
            withdrawals.cancel_withdrawal(request(funded_user, amount="10.00").pk, funded_user.pk)

        with pytest.raises(RateLimitError) as exc:
            request(funded_user, amount="10.00")

        assert 0 < exc.value.retry_after <= 7 * 24 * 3600


@pytest.mark.django_db
class TestProcessing:

    def test_process_debits_once(self, funded_user, admin):
        w = request(funded_user)

        processed = withdrawals.process_withdrawal(w.pk, admin.pk)

        assert processed.status == WithdrawalStatus.PROCESSING
        assert processed.processed_by_id == admin.pk
        assert ledger.get_balance(funded_user.pk) == Decimal("50.00")
        debit = LedgerEntry.objects.get(type=TransactionType.WITHDRAWAL)
        assert debit.amount == Decimal("-50.00")
        assert debit.reference_type == ReferenceType.WITHDRAWAL
        assert debit.reference_id == str(w.pk)
        assert AdminLog.objects.filter(action=PROCESS_WITHDRAWAL).count() == 1

        with pytest.raises(InvalidStateError):
            withdrawals.process_withdrawal(w.pk, admin.pk)
        assert LedgerEntry.objects.filter(type=TransactionType.WITHDRAWAL).count() == 1
        assert ledger.get_balance(funded_user.pk) == Decimal("50.00")

    def test_process_requires_admin(self, funded_user):
        w = request(funded_user)
        with pytest.raises(ForbiddenError):
            withdrawals.process_withdrawal(w.pk, funded_user.pk)

    def test_process_fails_when_balance_dropped(self, funded_user, admin):
        w = request(funded_user, amount="60.00")
        accounts.adjust_balance(funded_user.pk, admin.pk, "-50.00", "Reversing a duplicate bonus")

        with pytest.raises(InsufficientBalanceError):
            withdrawals.process_withdrawal(w.pk, admin.pk)

        w.refresh_from_db()
        assert w.status == WithdrawalStatus.PENDING
        assert ledger.get_balance(funded_user.pk) == Decimal("50.00")

    def test_complete_records_hash_without_ledger_effect(self, funded_user, admin):
        w = request(funded_user)
        withdrawals.process_withdrawal(w.pk, admin.pk)

        with pytest.raises(ValidationError):
            withdrawals.complete_withdrawal(w.pk, admin.pk, " ab ")

        done = withdrawals.complete_withdrawal(w.pk, admin.pk, "  TX-998877  ")

        assert done.status == WithdrawalStatus.COMPLETED
        assert done.transaction_hash == "TX-998877"
        assert done.completed_at is not None
        assert ledger.get_balance(funded_user.pk) == Decimal("50.00")
        assert LedgerEntry.objects.filter(user=funded_user).count() == 2

    def test_complete_rejects_oversized_hash(self, funded_user, admin):
        w = request(funded_user)
        withdrawals.process_withdrawal(w.pk, admin.pk)

        with pytest.raises(ValidationError):
            withdrawals.complete_withdrawal(w.pk, admin.pk, "0x" + "a" * MAX_TRANSACTION_HASH_LENGTH)

        w.refresh_from_db()
        assert w.status == WithdrawalStatus.PROCESSING
        assert withdrawals.complete_withdrawal(w.pk, admin.pk, "a" * MAX_TRANSACTION_HASH_LENGTH).transaction_hash

    def test_database_fault_surfaces_as_database_error(self, funded_user, admin, monkeypatch):
        w = request(funded_user)
        withdrawals.process_withdrawal(w.pk, admin.pk)

        def broken_save(self, *args, **kwargs):
            raise OperationalError("connection reset")

        monkeypatch.setattr(Withdrawal, "save", broken_save)

        with pytest.raises(DatabaseError) as exc:
            withdrawals.complete_withdrawal(w.pk, admin.pk, "0xabcdef")

        assert isinstance(exc.value.__cause__, OperationalError)
        monkeypatch.undo()
        w.refresh_from_db()
        assert w.status == WithdrawalStatus.PROCESSING
        assert w.transaction_hash == ""

    def test_complete_requires_processing(self, funded_user, admin):
        w = request(funded_user)
        with pytest.raises(InvalidStateError):
            withdrawals.complete_withdrawal(w.pk, admin.pk, "TX-998877")

    def test_fail_refunds_exact_amount(self, funded_user, admin):
        w = request(funded_user, amount="50.00")
        withdrawals.process_withdrawal(w.pk, admin.pk)
        assert ledger.get_balance(funded_user.pk) == Decimal("50.00")

        failed = withdrawals.fail_withdrawal(w.pk, admin.pk, "Bank rejected the account number")

        assert failed.status == WithdrawalStatus.FAILED
        assert failed.failure_reason == "Bank rejected the account number"
        assert ledger.get_balance(funded_user.pk) == Decimal("100.00")
        refund = LedgerEntry.objects.get(type=TransactionType.REFUND)
        assert refund.amount == Decimal("50.00")
        assert refund.reference_id == str(w.pk)
        assert AdminLog.objects.filter(action=FAIL_WITHDRAWAL).count() == 1

        with pytest.raises(InvalidStateError):
            withdrawals.fail_withdrawal(w.pk, admin.pk, "Bank rejected the account number")
        assert LedgerEntry.objects.filter(type=TransactionType.REFUND).count() == 1
        assert ledger.find_balance_mismatches() == []

    def test_fail_reason_too_short(self, funded_user, admin):
        w = request(funded_user)
        withdrawals.process_withdrawal(w.pk, admin.pk)
        with pytest.raises(ValidationError):
            withdrawals.fail_withdrawal(w.pk, admin.pk, "nope")

    def test_fail_requires_processing(self, funded_user, admin):
        w = request(funded_user)
        with pytest.raises(InvalidStateError):
            withdrawals.fail_withdrawal(w.pk, admin.pk, "Bank rejected the account number")
        assert ledger.get_balance(funded_user.pk) == Decimal("100.00")


@pytest.mark.django_db
class TestCancel:

    def test_owner_cancels_pending(self, funded_user):
        w = request(funded_user)
        cancelled = withdrawals.cancel_withdrawal(w.pk, funded_user.pk)
        assert cancelled.status == WithdrawalStatus.CANCELLED
        assert not LedgerEntry.objects.filter(type=TransactionType.WITHDRAWAL).exists()

    def test_other_user_cannot_cancel(self, funded_user, other_user):
        w = request(funded_user)
        with pytest.raises(ForbiddenError):
            withdrawals.cancel_withdrawal(w.pk, other_user.pk)

    def test_cannot_cancel_processing(self, funded_user, admin):
        w = request(funded_user)
        withdrawals.process_withdrawal(w.pk, admin.pk)
        with pytest.raises(InvalidStateError):
            withdrawals.cancel_withdrawal(w.pk, funded_user.pk)

    def test_new_request_allowed_after_cancel(self, funded_user):
        withdrawals.cancel_withdrawal(request(funded_user).pk, funded_user.pk)
        assert request(funded_user).status == WithdrawalStatus.PENDING


@pytest.mark.django_db
class TestQueries:

    def test_owner_only_lookup(self, funded_user, other_user):
        w = request(funded_user)
        assert withdrawals.get_withdrawal_by_id(w.pk, funded_user.pk) == w
        with pytest.raises(ForbiddenError):
            withdrawals.get_withdrawal_by_id(w.pk, other_user.pk)
        with pytest.raises(NotFoundError):
            withdrawals.get_withdrawal_by_id(uuid.uuid4(), funded_user.pk)

    def test_listing_queue_and_stats(self, funded_user, admin):
        first = request(funded_user, amount="30.00")
        withdrawals.process_withdrawal(first.pk, admin.pk)
        withdrawals.complete_withdrawal(first.pk, admin.pk, "TX-00001")
        second = request(funded_user, amount="20.00")

        assert [w.pk for w in withdrawals.get_user_withdrawals(funded_user.pk)] == [second.pk, first.pk]
        assert [w.pk for w in withdrawals.get_pending_withdrawals()] == [second.pk]

        stats = withdrawals.get_user_withdrawal_stats(funded_user.pk)
        assert stats["completed"] == 1
        assert stats["pending"] == 1
        assert stats["total"] == 2
        assert stats["total_withdrawn"] == Decimal("30.00")


@pytest.mark.django_db
def test_withdraw_then_fail_restores_balance(funded_user, admin):
    w = request(funded_user, amount="50.00")
    withdrawals.process_withdrawal(w.pk, admin.pk)
    withdrawals.fail_withdrawal(w.pk, admin.pk, "Payout provider timed out")

    w.refresh_from_db()
    assert w.status == WithdrawalStatus.FAILED
    assert ledger.get_balance(funded_user.pk) == Decimal("100.00")
    audit = ledger.audit_user_balance(funded_user.pk)
    assert audit["is_consistent"] is True
