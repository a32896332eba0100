"""Wallet ledger engine.

The one place that moves money. Every balance change is:
lock user row -> check overdraft -> append wallet_ledger row -> apply delta -> verify.

All of it runs inside transaction.atomic, so when called from a submission or
withdrawal workflow it joins that workflow's transaction (as a savepoint) and a
failure anywhere rolls back the entry, the balance change and the status change together.
"""

import logging
from decimal import Decimal
from django.db import transaction, Error as DbError
from django.db.models import Count, DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from .models import User, LedgerEntry, TransactionType, ReferenceType
from .constants import LEDGER_TOLERANCE, as_uuid, money_total, to_money, require_text, page_bounds
from .errors import (
	AppError, ValidationError, NotFoundError, InsufficientBalanceError, LedgerMismatchError, DatabaseError,
	wraps_db_errors,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _balances_agree(stored, expected) -> bool:
	return abs(stored - expected) <= LEDGER_TOLERANCE


def _validate_entry(user_id, type, amount, reference_type, reference_id, metadata):
	if user_id in (None, ""):
		raise ValidationError("user_id is required")
	user_id = as_uuid(user_id, "user_id")
	if type not in TransactionType.values:
		raise ValidationError(f"Invalid transaction type: {type}", {"allowed": TransactionType.values})
	amount = to_money(amount)
	if amount == 0:
		raise ValidationError("amount cannot be zero")
	if reference_type not in ReferenceType.values:
		raise ValidationError(f"Invalid reference type: {reference_type}", {"allowed": ReferenceType.values})
	reference_id = require_text(str(reference_id) if reference_id is not None else None, "reference_id")
	if metadata is not None and not isinstance(metadata, dict):
		raise ValidationError("metadata must be an object")
	return user_id, amount, reference_id


def create_entry(user_id, type: str, amount, reference_type: str, reference_id, metadata: dict | None = None) -> LedgerEntry:
	"""
	Append one ledger entry and apply it to the user's balance.

	amount is signed: positive credits, negative debits. A debit that would take the
	balance below zero raises InsufficientBalanceError; this is the only overdraft check.
	"""
	user_id, amount, reference_id = _validate_entry(user_id, type, amount, reference_type, reference_id, metadata)
	try:
		with transaction.atomic():
			return _append(user_id, type, amount, reference_type, reference_id, metadata)
	except AppError:
		raise
	except DbError as e:
		logger.error("ledger write failed for user %s (%s %s)", user_id, type, amount, exc_info=True)
		raise DatabaseError("Failed to create ledger entry") from e


def _append(user_id, type, amount, reference_type, reference_id, metadata) -> LedgerEntry:
	try:
		user = User.objects.select_for_update().only("id", "balance").get(pk=user_id)
	except User.DoesNotExist:
		raise NotFoundError("User", user_id)

	current = user.balance
	expected = current + amount
	if amount < 0 and expected < 0:
		raise InsufficientBalanceError(current, -amount)

	entry = LedgerEntry.objects.create(
		user_id=user_id,
		type=type,
		amount=amount,
		balance_after=expected,
		reference_type=reference_type,
		reference_id=reference_id,
		metadata=metadata,
	)
	User.objects.filter(pk=user_id)._apply_ledger_delta(amount)

	stored = User.objects.filter(pk=user_id).values_list("balance", flat=True).get()
	if not _balances_agree(stored, expected):
		logger.critical(
			"balance mismatch after ledger write: user=%s stored=%s expected=%s entry=%s",
			user_id, stored, expected, entry.id,
		)
		raise LedgerMismatchError(user_id, stored, expected)

	logger.info("ledger %s %s for user %s -> %s (%s %s)", type, amount, user_id, expected, reference_type, reference_id)
	return entry


@wraps_db_errors
def get_balance(user_id) -> Decimal:
	try:
		return User.objects.filter(pk=as_uuid(user_id, "user_id")).values_list("balance", flat=True).get()
	except User.DoesNotExist:
		raise NotFoundError("User", user_id)


def _ensure_user(user_id):
	user_id = as_uuid(user_id, "user_id")
	if not User.objects.filter(pk=user_id).exists():
		raise NotFoundError("User", user_id)
	return user_id


@wraps_db_errors
def calculate_balance_from_ledger(user_id) -> Decimal:
	"""
	Sum of the user's entries, ignoring users.balance entirely.
	"""
	total = LedgerEntry.objects.filter(user_id=as_uuid(user_id, "user_id")).aggregate(total=Sum("amount"))["total"]
	return money_total(total)


@wraps_db_errors
def audit_user_balance(user_id) -> dict:
	stored = get_balance(user_id)
	ledger_balance = calculate_balance_from_ledger(user_id)
	return {
		"user_id": str(user_id),
		"stored_balance": stored,
		"ledger_balance": ledger_balance,
		"is_consistent": _balances_agree(stored, ledger_balance),
		"difference": stored - ledger_balance,
	}


@wraps_db_errors
def find_balance_mismatches() -> list[dict]:
	"""
	Every user whose stored balance differs from their ledger sum. Empty means healthy.
	"""
	rows = (
		User.objects
		.annotate(ledger_balance=Coalesce(
			Sum("ledger_entries__amount"), Value(ZERO),
			output_field=DecimalField(max_digits=14, decimal_places=2),
		))
		.values_list("id", "balance", "ledger_balance")
		.order_by("id")
	)
	mismatches = []
	for user_id, stored, ledger_balance in rows.iterator():
		ledger_balance = money_total(ledger_balance)
		if not _balances_agree(stored, ledger_balance):
			mismatches.append({
				"user_id": str(user_id),
				"stored_balance": stored,
				"ledger_balance": ledger_balance,
				"difference": stored - ledger_balance,
			})
	if mismatches:
		logger.critical("found %d balance mismatches: %s", len(mismatches), [m["user_id"] for m in mismatches])
	return mismatches


@wraps_db_errors
def get_transaction_history(user_id, limit: int = 50, offset: int = 0, type: str | None = None) -> list[LedgerEntry]:
	"""
	Newest first.
	"""
	limit, offset = page_bounds(limit, offset)
	if type is not None and type not in TransactionType.values:
		raise ValidationError(f"Invalid transaction type: {type}", {"allowed": TransactionType.values})
	user_id = _ensure_user(user_id)
	qs = LedgerEntry.objects.filter(user_id=user_id)
	if type:
		qs = qs.filter(type=type)
	return list(qs.order_by("-id")[offset:offset + limit])


@wraps_db_errors
def get_transaction_stats(user_id) -> dict:
	user_id = _ensure_user(user_id)
	by_type = {}
	rows = (
		LedgerEntry.objects
		.filter(user_id=user_id)
		.values("type")
		.annotate(total=Sum("amount"), count=Count("id"))
		.order_by()
	)
	for row in rows:
		by_type[row["type"]] = {"count": row["count"], "total": money_total(row["total"])}

	def total(kind):
		return by_type.get(kind, {}).get("total") or ZERO

	refunded = total(TransactionType.REFUND)
	return {
		"total_earned": total(TransactionType.AD_PAYOUT) + total(TransactionType.BONUS),
		"total_withdrawn": ZERO - total(TransactionType.WITHDRAWAL) - refunded,
		"total_refunded": refunded,
		"total_adjustments": total(TransactionType.ADJUSTMENT),
		"total_transactions": sum(row["count"] for row in by_type.values()),
		"by_type": by_type,
	}
