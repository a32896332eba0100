"""Withdrawal requests and their admin-side processing.

pending -> processing -> completed | failed
pending -> cancelled

Requesting does not touch the balance. The wallet is debited when an admin picks the
request up (processing) and refunded, to the cent, if the payout then fails. The
transfer itself happens out of band; completion only records the reference.
"""

import logging
from django.db import transaction, IntegrityError
from django.db.models import Count, Sum
from django.utils import timezone

from .models import Withdrawal, WithdrawalMethod, TransactionType, ReferenceType
from .transitions import WithdrawalStatus, OPEN_WITHDRAWAL_STATUSES
from .constants import (
	WITHDRAWALS_PER_WEEK, WITHDRAWAL_WINDOW, MIN_WITHDRAWAL_AMOUNT, MIN_REASON_LENGTH, MIN_TRANSACTION_HASH_LENGTH,
	MAX_TRANSACTION_HASH_LENGTH, PROCESS_WITHDRAWAL, COMPLETE_WITHDRAWAL, FAIL_WITHDRAWAL, RESOURCE_WITHDRAWAL,
	as_uuid, to_money, require_text, page_bounds, retry_after_seconds, money_total,
)
from .errors import (
	ValidationError, NotFoundError, ForbiddenError, ConflictError, RateLimitError, InsufficientBalanceError,
	wraps_db_errors,
)
from .adapters.admin_log import AdminLogSink
from .accounts import require_admin, get_user
from . import ledger

logger = logging.getLogger(__name__)


def _clean_request(amount, method, payment_details):
	amount = to_money(amount)
	if amount <= 0:
		raise ValidationError("amount must be positive")
	if amount < MIN_WITHDRAWAL_AMOUNT:
		raise ValidationError(f"Minimum withdrawal amount is {MIN_WITHDRAWAL_AMOUNT}", {"minimum": str(MIN_WITHDRAWAL_AMOUNT)})
	if method not in WithdrawalMethod.values:
		raise ValidationError(f"Invalid withdrawal method: {method}", {"allowed": WithdrawalMethod.values})
	if not isinstance(payment_details, dict) or not payment_details:
		raise ValidationError("payment_details must be a non-empty object")
	return amount


def _lock_withdrawal(withdrawal_id) -> Withdrawal:
	try:
		return Withdrawal.objects.select_for_update().get(pk=as_uuid(withdrawal_id, "withdrawal_id"))
	except Withdrawal.DoesNotExist:
		raise NotFoundError("Withdrawal", withdrawal_id)


def _check_status_filter(status):
	if status is not None and status not in WithdrawalStatus.values:
		raise ValidationError(f"Invalid withdrawal status: {status}", {"allowed": WithdrawalStatus.values})


@wraps_db_errors
@transaction.atomic
def request_withdrawal(user_id, amount, method, payment_details) -> Withdrawal:
	"""
	Record a pending withdrawal. The balance check here is advisory; the debit at
	processing time is what actually enforces it.
	"""
	amount = _clean_request(amount, method, payment_details)

	user = get_user(user_id, lock=True)
	if user.is_blocked:
		raise ForbiddenError("Account is blocked")
	if user.balance < amount:
		raise InsufficientBalanceError(user.balance, amount)

	since = timezone.now() - WITHDRAWAL_WINDOW
	recent = list(
		Withdrawal.objects
		.filter(user_id=user.pk, created_at__gt=since)
		.order_by("created_at")
		.values_list("created_at", flat=True)
	)
	if len(recent) >= WITHDRAWALS_PER_WEEK:
		raise RateLimitError(
			f"Maximum {WITHDRAWALS_PER_WEEK} withdrawals per week",
			retry_after=retry_after_seconds(recent[0], WITHDRAWAL_WINDOW),
		)

	if Withdrawal.objects.filter(user_id=user.pk, status__in=OPEN_WITHDRAWAL_STATUSES).exists():
		raise ConflictError("You already have a pending withdrawal")

	try:
		with transaction.atomic():
			withdrawal = Withdrawal.objects.create(
				user=user, amount=amount, method=method, payment_details=payment_details,
			)
	except IntegrityError:
		raise ConflictError("You already have a pending withdrawal")

	logger.info("withdrawal %s requested by %s: %s via %s", withdrawal.pk, user.pk, amount, method)
	return withdrawal


@wraps_db_errors
@transaction.atomic
def process_withdrawal(withdrawal_id, admin_id) -> Withdrawal:
	"""
	Debit the wallet and move the request to processing. The only place a balance goes down.
	"""
	admin = require_admin(admin_id)
	withdrawal = _lock_withdrawal(withdrawal_id)
	withdrawal.transition_to(WithdrawalStatus.PROCESSING)

	ledger.create_entry(
		withdrawal.user_id,
		TransactionType.WITHDRAWAL,
		-withdrawal.amount,
		ReferenceType.WITHDRAWAL,
		withdrawal.pk,
		{"method": withdrawal.method, "processed_by": str(admin.pk)},
	)

	withdrawal.processed_by = admin
	withdrawal.processed_at = timezone.now()
	withdrawal.save(update_fields=["status", "processed_by", "processed_at", "updated_at"])

	AdminLogSink.record(admin.pk, PROCESS_WITHDRAWAL, RESOURCE_WITHDRAWAL, withdrawal.pk, {
		"user_id": str(withdrawal.user_id), "amount": withdrawal.amount,
	})
	return withdrawal


@wraps_db_errors
@transaction.atomic
def complete_withdrawal(withdrawal_id, admin_id, transaction_hash) -> Withdrawal:
	admin = require_admin(admin_id)
	transaction_hash = require_text(
		transaction_hash, "transaction_hash", MIN_TRANSACTION_HASH_LENGTH, MAX_TRANSACTION_HASH_LENGTH,
	)
	withdrawal = _lock_withdrawal(withdrawal_id)
	withdrawal.transition_to(WithdrawalStatus.COMPLETED)

	withdrawal.transaction_hash = transaction_hash
	withdrawal.completed_at = timezone.now()
	withdrawal.save(update_fields=["status", "transaction_hash", "completed_at", "updated_at"])

	AdminLogSink.record(admin.pk, COMPLETE_WITHDRAWAL, RESOURCE_WITHDRAWAL, withdrawal.pk, {
		"user_id": str(withdrawal.user_id), "amount": withdrawal.amount, "transaction_hash": transaction_hash,
	})
	return withdrawal


@wraps_db_errors
@transaction.atomic
def fail_withdrawal(withdrawal_id, admin_id, reason) -> Withdrawal:
	"""
	Mark a processing withdrawal failed and refund exactly the debited amount.
	"""
	admin = require_admin(admin_id)
	reason = require_text(reason, "reason", MIN_REASON_LENGTH)
	withdrawal = _lock_withdrawal(withdrawal_id)
	withdrawal.transition_to(WithdrawalStatus.FAILED)

	ledger.create_entry(
		withdrawal.user_id,
		TransactionType.REFUND,
		withdrawal.amount,
		ReferenceType.WITHDRAWAL,
		withdrawal.pk,
		{"reason": reason, "failed_by": str(admin.pk)},
	)

	withdrawal.failure_reason = reason
	withdrawal.save(update_fields=["status", "failure_reason", "updated_at"])

	AdminLogSink.record(admin.pk, FAIL_WITHDRAWAL, RESOURCE_WITHDRAWAL, withdrawal.pk, {
		"user_id": str(withdrawal.user_id), "amount": withdrawal.amount, "reason": reason,
	})
	return withdrawal


@wraps_db_errors
@transaction.atomic
def cancel_withdrawal(withdrawal_id, user_id) -> Withdrawal:
	"""
	Owner-only; allowed while still pending. Nothing was debited yet, so no ledger entry.
	"""
	withdrawal = _lock_withdrawal(withdrawal_id)
	if withdrawal.user_id != as_uuid(user_id, "user_id"):
		raise ForbiddenError("Access denied")
	withdrawal.transition_to(WithdrawalStatus.CANCELLED)
	withdrawal.save(update_fields=["status", "updated_at"])
	logger.info("withdrawal %s cancelled by owner %s", withdrawal.pk, withdrawal.user_id)
	return withdrawal


@wraps_db_errors
def get_user_withdrawals(user_id, limit: int = 20, offset: int = 0, status: str | None = None) -> list[Withdrawal]:
	limit, offset = page_bounds(limit, offset)
	_check_status_filter(status)
	qs = Withdrawal.objects.filter(user_id=as_uuid(user_id, "user_id"))
	if status:
		qs = qs.filter(status=status)
	return list(qs.order_by("-created_at")[offset:offset + limit])


@wraps_db_errors
def get_withdrawal_by_id(withdrawal_id, user_id) -> Withdrawal:
	try:
		withdrawal = Withdrawal.objects.get(pk=as_uuid(withdrawal_id, "withdrawal_id"))
	except Withdrawal.DoesNotExist:
		raise NotFoundError("Withdrawal", withdrawal_id)
	if withdrawal.user_id != as_uuid(user_id, "user_id"):
		raise ForbiddenError("Access denied")
	return withdrawal


@wraps_db_errors
def get_pending_withdrawals(limit: int = 50, offset: int = 0, status: str | None = None) -> list[Withdrawal]:
	"""
	Admin queue, oldest first. Defaults to pending + processing.
	"""
	limit, offset = page_bounds(limit, offset)
	_check_status_filter(status)
	qs = Withdrawal.objects.select_related("user")
	qs = qs.filter(status=status) if status else qs.filter(status__in=OPEN_WITHDRAWAL_STATUSES)
	return list(qs.order_by("created_at")[offset:offset + limit])


@wraps_db_errors
def get_user_withdrawal_stats(user_id) -> dict:
	user_id = as_uuid(user_id, "user_id")
	rows = (
		Withdrawal.objects
		.filter(user_id=user_id)
		.values("status")
		.annotate(n=Count("id"), total=Sum("amount"))
		.order_by()
	)
	by_status = {row["status"]: row for row in rows}
	stats = {status: by_status.get(status, {}).get("n", 0) for status in WithdrawalStatus.values}
	stats["total"] = sum(row["n"] for row in by_status.values())
	completed = by_status.get(WithdrawalStatus.COMPLETED, {}).get("total")
	stats["total_withdrawn"] = money_total(completed)
	return stats
