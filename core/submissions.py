"""Proof submissions and their review.

pending -> under_review -> approved | rejected

Approval is the only step with money attached: the ad's payout_per_view is credited
through the ledger in the same transaction as the status change, keyed by the
submission id so a second payout cannot be written even by a racing approval.
"""

import logging
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.db import transaction, IntegrityError
from django.db.models import Count, Sum
from django.utils import timezone

from .models import Submission, LedgerEntry, TransactionType, ReferenceType
from .transitions import SubmissionStatus, OPEN_SUBMISSION_STATUSES
from .constants import (
	SUBMISSIONS_PER_AD_PER_DAY, SUBMISSION_WINDOW, MIN_REASON_LENGTH,
	APPROVE_SUBMISSION, REJECT_SUBMISSION, RESOURCE_SUBMISSION,
	as_uuid, require_text, page_bounds, retry_after_seconds, money_total,
)
from .errors import (
	ValidationError, NotFoundError, ForbiddenError, ConflictError, RateLimitError, InvalidStateError, wraps_db_errors,
)
from .adapters.ad_catalog import AdCatalog
from .adapters.admin_log import AdminLogSink
from .accounts import require_admin, get_user
from . import ledger

logger = logging.getLogger(__name__)

_url_validator = URLValidator(schemes=["http", "https"])


def _clean_proof_url(proof_url) -> str:
	proof_url = require_text(proof_url, "proof_url")
	try:
		_url_validator(proof_url)
	except DjangoValidationError:
		raise ValidationError("proof_url must be a valid http(s) URL", {"proof_url": proof_url})
	return proof_url


def _lock_submission(submission_id) -> Submission:
	try:
		return Submission.objects.select_for_update().get(pk=as_uuid(submission_id, "submission_id"))
	except Submission.DoesNotExist:
		raise NotFoundError("Submission", submission_id)


def _check_status_filter(status):
	if status is not None and status not in SubmissionStatus.values:
		raise ValidationError(f"Invalid submission status: {status}", {"allowed": SubmissionStatus.values})


@wraps_db_errors
@transaction.atomic
def submit_proof(user_id, ad_id, proof_url) -> Submission:
	"""
	Create a pending submission for (user, ad).

	The user row is locked first so two submissions from the same user are decided one
	after the other; the partial unique index on open submissions backs up the checks.
	"""
	proof_url = _clean_proof_url(proof_url)
	if not ad_id:
		raise ValidationError("ad_id is required")

	user = get_user(user_id, lock=True)
	if user.is_blocked:
		raise ForbiddenError("Account is blocked")

	ad = AdCatalog.get(ad_id)
	AdCatalog.ensure_accepting(ad)

	since = timezone.now() - SUBMISSION_WINDOW
	recent = list(
		Submission.objects
		.filter(user_id=user.pk, ad_id=ad.pk, created_at__gt=since)
		.order_by("created_at")
		.values_list("created_at", flat=True)
	)
	if len(recent) >= SUBMISSIONS_PER_AD_PER_DAY:
		raise RateLimitError(
			"You can only submit once per ad per day",
			retry_after=retry_after_seconds(recent[0], SUBMISSION_WINDOW),
		)

	if Submission.objects.filter(user_id=user.pk, ad_id=ad.pk, status__in=OPEN_SUBMISSION_STATUSES).exists():
		raise ConflictError("You already have a pending submission for this ad")

	try:
		with transaction.atomic():
			submission = Submission.objects.create(user=user, ad=ad, proof_url=proof_url)
	except IntegrityError:
		raise ConflictError("You already have a pending submission for this ad")

	logger.info("submission %s created by %s for ad %s", submission.pk, user.pk, ad.pk)
	return submission


@wraps_db_errors
@transaction.atomic
def approve_submission(submission_id, admin_id) -> dict:
	"""
	Pay the ad's payout_per_view to the submitter and mark the submission approved.
	"""
	admin = require_admin(admin_id)
	submission = _lock_submission(submission_id)
	if submission.is_terminal:
		raise InvalidStateError(submission.status, SubmissionStatus.APPROVED)

	if submission.status == SubmissionStatus.PENDING:
		submission.transition_to(SubmissionStatus.UNDER_REVIEW)
		submission.save(update_fields=["status", "updated_at"])

	payout = AdCatalog.payout_for(submission.ad_id)
	now = timezone.now()
	ledger.create_entry(
		submission.user_id,
		TransactionType.AD_PAYOUT,
		payout,
		ReferenceType.SUBMISSION,
		submission.pk,
		{"ad_id": str(submission.ad_id), "approved_by": str(admin.pk), "approved_at": now.isoformat()},
	)

	submission.transition_to(SubmissionStatus.APPROVED)
	submission.reviewed_by = admin
	submission.reviewed_at = now
	submission.save(update_fields=["status", "reviewed_by", "reviewed_at", "updated_at"])

	AdCatalog.record_view(submission.ad_id)
	AdminLogSink.record(admin.pk, APPROVE_SUBMISSION, RESOURCE_SUBMISSION, submission.pk, {
		"user_id": str(submission.user_id), "ad_id": str(submission.ad_id), "payout_amount": payout,
	})

	return {
		"submission_id": str(submission.pk),
		"status": submission.status,
		"payout_amount": payout,
		"user_id": str(submission.user_id),
	}


@wraps_db_errors
@transaction.atomic
def reject_submission(submission_id, admin_id, reason) -> Submission:
	admin = require_admin(admin_id)
	reason = require_text(reason, "reason", MIN_REASON_LENGTH)
	submission = _lock_submission(submission_id)
	if submission.is_terminal:
		raise InvalidStateError(submission.status, SubmissionStatus.REJECTED)

	if submission.status == SubmissionStatus.PENDING:
		submission.transition_to(SubmissionStatus.UNDER_REVIEW)
		submission.save(update_fields=["status", "updated_at"])

	submission.transition_to(SubmissionStatus.REJECTED)
	submission.rejection_reason = reason
	submission.reviewed_by = admin
	submission.reviewed_at = timezone.now()
	submission.save(update_fields=["status", "rejection_reason", "reviewed_by", "reviewed_at", "updated_at"])

	AdminLogSink.record(admin.pk, REJECT_SUBMISSION, RESOURCE_SUBMISSION, submission.pk, {
		"user_id": str(submission.user_id), "ad_id": str(submission.ad_id), "reason": reason,
	})
	return submission


@wraps_db_errors
def get_user_submissions(user_id, limit: int = 20, offset: int = 0, status: str | None = None) -> list[Submission]:
	limit, offset = page_bounds(limit, offset)
	_check_status_filter(status)
	qs = Submission.objects.filter(user_id=as_uuid(user_id, "user_id")).select_related("ad")
	if status:
		qs = qs.filter(status=status)
	return list(qs.order_by("-created_at")[offset:offset + limit])


@wraps_db_errors
def get_submission_by_id(submission_id, user_id=None) -> Submission:
	"""
	With user_id set, only the owner may read it (ForbiddenError otherwise).
	"""
	try:
		submission = Submission.objects.select_related("ad").get(pk=as_uuid(submission_id, "submission_id"))
	except Submission.DoesNotExist:
		raise NotFoundError("Submission", submission_id)
	if user_id is not None and submission.user_id != as_uuid(user_id, "user_id"):
		raise ForbiddenError("You do not have access to this submission")
	return submission


@wraps_db_errors
def get_pending_submissions(limit: int = 50, offset: int = 0, status: str | None = None) -> list[Submission]:
	"""
	Admin review queue, oldest first. Defaults to everything still open.
	"""
	limit, offset = page_bounds(limit, offset)
	_check_status_filter(status)
	qs = Submission.objects.select_related("ad", "user")
	qs = qs.filter(status=status) if status else qs.filter(status__in=OPEN_SUBMISSION_STATUSES)
	return list(qs.order_by("created_at")[offset:offset + limit])


@wraps_db_errors
def get_user_submission_stats(user_id) -> dict:
	user_id = as_uuid(user_id, "user_id")
	counts = dict(
		Submission.objects
		.filter(user_id=user_id)
		.values_list("status")
		.annotate(n=Count("id"))
		.order_by()
	)
	earned = LedgerEntry.objects.filter(
		user_id=user_id, type=TransactionType.AD_PAYOUT,
	).aggregate(total=Sum("amount"))["total"]

	stats = {status: counts.get(status, 0) for status in SubmissionStatus.values}
	stats["total"] = sum(counts.values())
	stats["total_earned"] = money_total(earned)
	return stats
