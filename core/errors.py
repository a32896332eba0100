"""Typed failures raised by the wallet core.

Every operational error carries an HTTP-ish status_code, a stable code string and
optional details, so the API layer can branch on the type without parsing messages.
LedgerMismatchError and DatabaseError are the two internal ones: callers see a generic
failure while the full detail goes to the logs.
"""

import logging
from functools import wraps
from django.db import Error as DbError

logger = logging.getLogger(__name__)


class AppError(Exception):
	status_code = 500
	code = "INTERNAL_ERROR"
	critical = False

	def __init__(self, message: str, details: dict | None = None):
		super().__init__(message)
		self.message = message
		self.details = details

	def to_dict(self) -> dict:
		body = {"message": self.message, "code": self.code}
		if self.details:
			body["details"] = self.details
		return {"error": body}


class ValidationError(AppError):
	status_code = 400
	code = "VALIDATION_ERROR"


class ForbiddenError(AppError):
	status_code = 403
	code = "FORBIDDEN"

	def __init__(self, message: str = "Access denied", details: dict | None = None):
		super().__init__(message, details)


class NotFoundError(AppError):
	status_code = 404
	code = "NOT_FOUND"

	def __init__(self, resource: str = "Resource", resource_id=None):
		message = f"{resource} with id {resource_id} not found" if resource_id else f"{resource} not found"
		super().__init__(message)
		self.resource = resource
		self.resource_id = resource_id


class ConflictError(AppError):
	status_code = 409
	code = "DUPLICATE_REQUEST"

	def __init__(self, message: str = "Request already in progress", details: dict | None = None):
		super().__init__(message, details)


class InsufficientBalanceError(AppError):
	status_code = 400
	code = "INSUFFICIENT_BALANCE"

	def __init__(self, available, required):
		super().__init__(
			f"Insufficient balance. Available: {available}, Required: {required}",
			{"available": str(available), "required": str(required)},
		)
		self.available = available
		self.required = required


class InvalidStateError(AppError):
	status_code = 400
	code = "INVALID_STATE_TRANSITION"

	def __init__(self, current_state, attempted_state):
		super().__init__(
			f"Invalid state transition from {current_state} to {attempted_state}",
			{"current_state": str(current_state), "attempted_state": str(attempted_state)},
		)
		self.current_state = current_state
		self.attempted_state = attempted_state


class RateLimitError(AppError):
	status_code = 429
	code = "RATE_LIMIT_EXCEEDED"

	def __init__(self, message: str = "Rate limit exceeded", retry_after: int | None = None):
		super().__init__(message, {"retry_after": retry_after})
		self.retry_after = retry_after


class LedgerMismatchError(AppError):
	"""
	Post-write balance verification failed. A bug or out-of-band tampering; never retry.
	"""
	status_code = 500
	code = "LEDGER_MISMATCH"
	critical = True

	def __init__(self, user_id, stored_balance, expected_balance):
		super().__init__(
			f"CRITICAL: Balance mismatch for user {user_id}. Stored: {stored_balance}, Expected: {expected_balance}",
			{"user_id": str(user_id), "stored_balance": str(stored_balance), "expected_balance": str(expected_balance)},
		)
		self.user_id = user_id
		self.stored_balance = stored_balance
		self.expected_balance = expected_balance


class DatabaseError(AppError):
	"""
	Unexpected storage failure. The original exception is chained as __cause__.
	"""
	status_code = 500
	code = "DATABASE_ERROR"


PUBLIC_MESSAGE = "Internal server error"


def public_body(error: AppError) -> dict:
	"""
	What an end user gets to see: internal errors are flattened to a generic message.
	"""
	if isinstance(error, (LedgerMismatchError, DatabaseError)):
		return {"error": {"message": PUBLIC_MESSAGE, "code": "INTERNAL_ERROR"}}
	return error.to_dict()


def wraps_db_errors(func):
	"""
	Re-raise any django.db.Error escaping func as DatabaseError, original chained as __cause__.

	Goes outside @transaction.atomic so the rollback has already happened.
	"""
	@wraps(func)
	def wrapper(*args, **kwargs):
		try:
			return func(*args, **kwargs)
		except DbError as e:
			logger.error("%s hit a database error", func.__qualname__, exc_info=True)
			raise DatabaseError(f"Database error in {func.__name__}") from e
	return wrapper
