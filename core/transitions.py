"""Status enums and the edges each workflow may take.

A status not listed as a key has no way out; terminal statuses map to an empty set.
The same tables are mirrored by the status triggers in migration 0002, so a row that
reached a terminal status stays there even if something bypasses these checks.
"""

from django.db import models

from .errors import InvalidStateError


class SubmissionStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	UNDER_REVIEW = "under_review", "Under review"
	APPROVED = "approved", "Approved"
	REJECTED = "rejected", "Rejected"


class WithdrawalStatus(models.TextChoices):
	PENDING = "pending", "Pending"
	PROCESSING = "processing", "Processing"
	COMPLETED = "completed", "Completed"
	FAILED = "failed", "Failed"
	CANCELLED = "cancelled", "Cancelled"


SUBMISSION_TRANSITIONS = {
	SubmissionStatus.PENDING: frozenset({SubmissionStatus.UNDER_REVIEW}),
	SubmissionStatus.UNDER_REVIEW: frozenset({SubmissionStatus.APPROVED, SubmissionStatus.REJECTED}),
	SubmissionStatus.APPROVED: frozenset(),
	SubmissionStatus.REJECTED: frozenset(),
}

WITHDRAWAL_TRANSITIONS = {
	WithdrawalStatus.PENDING: frozenset({WithdrawalStatus.PROCESSING, WithdrawalStatus.CANCELLED}),
	WithdrawalStatus.PROCESSING: frozenset({WithdrawalStatus.COMPLETED, WithdrawalStatus.FAILED}),
	WithdrawalStatus.COMPLETED: frozenset(),
	WithdrawalStatus.FAILED: frozenset(),
	WithdrawalStatus.CANCELLED: frozenset(),
}

OPEN_SUBMISSION_STATUSES = (SubmissionStatus.PENDING, SubmissionStatus.UNDER_REVIEW)
OPEN_WITHDRAWAL_STATUSES = (WithdrawalStatus.PENDING, WithdrawalStatus.PROCESSING)


def is_terminal(table: dict, status: str) -> bool:
	return not table.get(status)


def assert_transition(table: dict, current: str, attempted: str) -> None:
	"""
	Raise InvalidStateError unless current -> attempted is an allowed edge of table.
	"""
	if attempted not in table.get(current, frozenset()):
		raise InvalidStateError(current, attempted)
