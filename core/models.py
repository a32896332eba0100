"""Database models for the wallet.


Tables:
- User: identity, role, blocked flag and the denormalized wallet balance
- Ad: reference data for advertised actions (payout per approved proof, view cap)
- LedgerEntry: append-only wallet ledger; the only thing that moves a balance
- Submission: a user's proof for an ad, reviewed by an admin
- Withdrawal: a payout request, processed by an admin out of band
- AdminLog: append-only record of admin actions
- ReconciliationRun: result of a stored-vs-ledger balance sweep

Balance encapsulation: User.save() never writes balance on an existing row and
User.objects.update(balance=...) is refused. core.ledger.create_entry is the one caller
of the private delta update.
"""

import uuid
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models, IntegrityError
from django.db.models import F, Q
from django.utils import timezone

from .transitions import (
	SubmissionStatus, WithdrawalStatus, SUBMISSION_TRANSITIONS, WITHDRAWAL_TRANSITIONS,
	OPEN_SUBMISSION_STATUSES, OPEN_WITHDRAWAL_STATUSES, assert_transition, is_terminal,
)
from .constants import MAX_TRANSACTION_HASH_LENGTH

IMMUTABLE_LEDGER = "Wallet ledger entries are immutable and cannot be modified"
BALANCE_IS_LEDGER_OWNED = "users.balance is only written through the wallet ledger"


class Role(models.TextChoices):
	USER = "user", "User"
	ADMIN = "admin", "Admin"


class UserQuerySet(models.QuerySet):

	def update(self, **kwargs):
		if "balance" in kwargs:
			raise IntegrityError(BALANCE_IS_LEDGER_OWNED)
		return super().update(**kwargs)

	def _apply_ledger_delta(self, amount):
		# caller holds the row lock and has already inserted the ledger entry
		return super().update(balance=F("balance") + amount, updated_at=timezone.now())


class User(models.Model):
	"""
	Platform user. Balance is the sum of the user's ledger entries, kept denormalized.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	email = models.EmailField(unique=True)
	role = models.CharField(max_length=20, choices=Role.choices, default=Role.USER)
	balance = models.DecimalField(max_digits=12, decimal_places=2, default=0, editable=False)
	is_blocked = models.BooleanField(default=False)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	objects = UserQuerySet.as_manager()

	class Meta:
		db_table = "users"
		constraints = [
			models.CheckConstraint(condition=Q(balance__gte=0), name="users_balance_non_negative"),
			models.CheckConstraint(condition=Q(role__in=Role.values), name="users_valid_role"),
		]

	def __str__(self):
		return self.email

	@property
	def is_admin(self) -> bool:
		return self.role == Role.ADMIN

	def save(self, *args, **kwargs):
		if self._state.adding:
			if self.balance:
				raise IntegrityError("new users start with a zero balance")
		else:
			update_fields = kwargs.get("update_fields")
			if update_fields is None:
				update_fields = [f.name for f in self._meta.concrete_fields if not f.primary_key]
			kwargs["update_fields"] = [name for name in update_fields if name != "balance"]
		super().save(*args, **kwargs)


class AdStatus(models.TextChoices):
	ACTIVE = "active", "Active"
	PAUSED = "paused", "Paused"
	EXPIRED = "expired", "Expired"


class Ad(models.Model):
	"""
	An advertised action. payout_per_view is paid once per approved submission.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	title = models.CharField(max_length=255)
	advertiser = models.CharField(max_length=255)
	target_url = models.URLField(max_length=2048)
	payout_per_view = models.DecimalField(max_digits=10, decimal_places=2)
	max_views = models.PositiveIntegerField(null=True, blank=True)
	total_views = models.PositiveIntegerField(default=0)
	status = models.CharField(max_length=20, choices=AdStatus.choices, default=AdStatus.PAUSED)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		db_table = "ads"
		constraints = [
			models.CheckConstraint(condition=Q(payout_per_view__gt=0), name="ads_payout_positive"),
			models.CheckConstraint(condition=Q(status__in=AdStatus.values), name="ads_valid_status"),
		]
		indexes = [models.Index(fields=["status", "created_at"], name="ads_status_created_idx")]

	def __str__(self):
		return self.title

	@property
	def is_capped(self) -> bool:
		return self.max_views is not None and self.total_views >= self.max_views


class TransactionType(models.TextChoices):
	AD_PAYOUT = "ad_payout", "Ad payout"
	WITHDRAWAL = "withdrawal", "Withdrawal"
	REFUND = "refund", "Refund"
	BONUS = "bonus", "Bonus"
	ADJUSTMENT = "adjustment", "Adjustment"


class ReferenceType(models.TextChoices):
	SUBMISSION = "submission", "Submission"
	WITHDRAWAL = "withdrawal", "Withdrawal"
	ADMIN_ACTION = "admin_action", "Admin action"
	SYSTEM = "system", "System"


class LedgerEntryQuerySet(models.QuerySet):

	def update(self, **kwargs):
		raise IntegrityError(IMMUTABLE_LEDGER)

	def delete(self):
		raise IntegrityError(IMMUTABLE_LEDGER)


class LedgerEntry(models.Model):
	"""
	One signed balance change. Never updated, never deleted (see also the
	wallet_ledger triggers in migration 0002).

	The id sequence orders a user's entries: inserts for one user happen under that
	user's row lock, so balance_after always follows the previous entry.
	"""
	id = models.BigAutoField(primary_key=True)
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="ledger_entries")
	type = models.CharField(max_length=20, choices=TransactionType.choices)
	amount = models.DecimalField(max_digits=12, decimal_places=2) # + credit, - debit
	balance_after = models.DecimalField(max_digits=12, decimal_places=2)
	reference_type = models.CharField(max_length=20, choices=ReferenceType.choices)
	reference_id = models.CharField(max_length=64)
	metadata = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
	created_at = models.DateTimeField(auto_now_add=True)

	objects = LedgerEntryQuerySet.as_manager()

	class Meta:
		db_table = "wallet_ledger"
		ordering = ["id"]
		verbose_name_plural = "ledger entries"
		constraints = [
			models.CheckConstraint(condition=~Q(amount=0), name="wallet_ledger_amount_not_zero"),
			models.CheckConstraint(condition=Q(balance_after__gte=0), name="wallet_ledger_balance_after_non_negative"),
			models.CheckConstraint(condition=Q(type__in=TransactionType.values), name="wallet_ledger_valid_type"),
			models.CheckConstraint(condition=Q(reference_type__in=ReferenceType.values), name="wallet_ledger_valid_reference_type"),
			# one payout per submission, one debit + one refund per withdrawal
			models.UniqueConstraint(
				fields=["type", "reference_type", "reference_id"],
				condition=Q(reference_type__in=[ReferenceType.SUBMISSION, ReferenceType.WITHDRAWAL]),
				name="wallet_ledger_one_entry_per_workflow_ref",
			),
		]
		indexes = [
			models.Index(fields=["user", "id"], name="ledger_user_order_idx"),
			models.Index(fields=["reference_type", "reference_id"], name="ledger_reference_idx"),
			models.Index(fields=["created_at"], name="ledger_created_idx"),
		]

	def __str__(self):
		return f"{self.type} {self.amount} -> {self.balance_after}"

	def save(self, *args, **kwargs):
		if not self._state.adding:
			raise IntegrityError(IMMUTABLE_LEDGER)
		super().save(*args, **kwargs)

	def delete(self, *args, **kwargs):
		raise IntegrityError(IMMUTABLE_LEDGER)


class Submission(models.Model):
	"""
	Proof that a user completed an ad's action. At most one open (pending or
	under_review) submission per user and ad.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="submissions")
	ad = models.ForeignKey(Ad, on_delete=models.CASCADE, related_name="submissions")
	proof_url = models.URLField(max_length=2048)
	status = models.CharField(max_length=20, choices=SubmissionStatus.choices, default=SubmissionStatus.PENDING)
	rejection_reason = models.TextField(blank=True, default="")
	reviewed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="reviewed_submissions")
	reviewed_at = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		db_table = "submissions"
		constraints = [
			models.CheckConstraint(condition=Q(status__in=SubmissionStatus.values), name="submissions_valid_status"),
			models.UniqueConstraint(
				fields=["user", "ad"],
				condition=Q(status__in=OPEN_SUBMISSION_STATUSES),
				name="submissions_one_open_per_user_ad",
			),
		]
		indexes = [
			models.Index(fields=["user", "ad", "created_at"], name="submissions_user_ad_idx"),
			models.Index(fields=["status", "created_at"], name="submissions_queue_idx"),
		]

	@property
	def is_terminal(self) -> bool:
		return is_terminal(SUBMISSION_TRANSITIONS, self.status)

	def transition_to(self, status: str) -> None:
		assert_transition(SUBMISSION_TRANSITIONS, self.status, status)
		self.status = status


class WithdrawalMethod(models.TextChoices):
	BANK_TRANSFER = "bank_transfer", "Bank transfer"
	PAYPAL = "paypal", "PayPal"
	CRYPTO = "crypto", "Crypto"
	MOBILE_MONEY = "mobile_money", "Mobile money"


class Withdrawal(models.Model):
	"""
	A payout request. The wallet is debited when an admin moves it to processing and
	refunded if it later fails; completion itself has no ledger effect.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="withdrawals")
	amount = models.DecimalField(max_digits=12, decimal_places=2)
	method = models.CharField(max_length=20, choices=WithdrawalMethod.choices)
	payment_details = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
	status = models.CharField(max_length=20, choices=WithdrawalStatus.choices, default=WithdrawalStatus.PENDING)
	transaction_hash = models.CharField(max_length=MAX_TRANSACTION_HASH_LENGTH, blank=True, default="")
	failure_reason = models.TextField(blank=True, default="")
	processed_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="processed_withdrawals")
	processed_at = models.DateTimeField(null=True, blank=True)
	completed_at = models.DateTimeField(null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)

	class Meta:
		db_table = "withdrawals"
		constraints = [
			models.CheckConstraint(condition=Q(amount__gt=0), name="withdrawals_amount_positive"),
			models.CheckConstraint(condition=Q(status__in=WithdrawalStatus.values), name="withdrawals_valid_status"),
			models.CheckConstraint(condition=Q(method__in=WithdrawalMethod.values), name="withdrawals_valid_method"),
			models.UniqueConstraint(
				fields=["user"],
				condition=Q(status__in=OPEN_WITHDRAWAL_STATUSES),
				name="withdrawals_one_open_per_user",
			),
		]
		indexes = [
			models.Index(fields=["user", "created_at"], name="withdrawals_user_created_idx"),
			models.Index(fields=["status", "created_at"], name="withdrawals_queue_idx"),
		]

	@property
	def is_terminal(self) -> bool:
		return is_terminal(WITHDRAWAL_TRANSITIONS, self.status)

	def transition_to(self, status: str) -> None:
		assert_transition(WITHDRAWAL_TRANSITIONS, self.status, status)
		self.status = status


class AdminLog(models.Model):
	"""
	Who did what to which resource. Written in the same transaction as the action.
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	admin = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name="admin_logs")
	action = models.CharField(max_length=50, db_index=True)
	resource_type = models.CharField(max_length=50)
	resource_id = models.CharField(max_length=64)
	details = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
	created_at = models.DateTimeField(auto_now_add=True, db_index=True)

	class Meta:
		db_table = "admin_logs"
		indexes = [models.Index(fields=["resource_type", "resource_id"], name="admin_logs_resource_idx")]


class ReconciliationRun(models.Model):
	"""
	Snapshot of one stored-vs-ledger balance sweep. ok is False when any user drifted.
	"""
	id = models.BigAutoField(primary_key=True)
	users_checked = models.IntegerField()
	mismatch_count = models.IntegerField(default=0)
	ok = models.BooleanField(default=True)
	mismatches = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		db_table = "reconciliation_runs"
