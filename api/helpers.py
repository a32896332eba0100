"""Plumbing shared by the JSON views: method check, caller identity, error mapping."""

import json
import logging
from functools import wraps
from django.db import Error as DbError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from core.constants import as_uuid
from core.errors import AppError, DatabaseError, ForbiddenError, RateLimitError, ValidationError, public_body

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def api_view(method: str):
	"""
	Restrict a view to one HTTP method and turn AppError into its JSON error body.

	Internal failures (5xx) are logged with the full detail; the client only sees the
	generic message from core.errors.public_body.
	"""
	def decorator(view):
		@wraps(view)
		def wrapper(request, *args, **kwargs):
			if request.method != method:
				return JsonResponse(
					{"error": {"message": f"{method} only", "code": "METHOD_NOT_ALLOWED"}}, status=405,
				)
			try:
				return view(request, *args, **kwargs)
			except AppError as e:
				if e.status_code >= 500:
					log = logger.critical if e.critical else logger.error
					log("%s %s failed: %s %s", request.method, request.path, e.code, e.details, exc_info=True)
				response = JsonResponse(public_body(e), status=e.status_code)
				if isinstance(e, RateLimitError) and e.retry_after:
					response["Retry-After"] = str(e.retry_after)
				return response
			except DbError:
				logger.error("%s %s failed on a database error", request.method, request.path, exc_info=True)
				return JsonResponse(public_body(DatabaseError("Unhandled database error")), status=500)
		# callers authenticate with a header, not a session cookie
		return csrf_exempt(wrapper)
	return decorator


def caller_id(request):
	raw = request.headers.get(USER_HEADER)
	if not raw:
		raise ForbiddenError(f"{USER_HEADER} header required")
	return as_uuid(raw, "user_id")


def read_json(request) -> dict:
	try:
		body = json.loads(request.body or b"{}")
	except (ValueError, UnicodeDecodeError):
		raise ValidationError("Request body must be valid JSON")
	if not isinstance(body, dict):
		raise ValidationError("Request body must be a JSON object")
	return body


def paging(request, default_limit: int = 20):
	return request.GET.get("limit", default_limit), request.GET.get("offset", 0)


def money(value) -> str:
	return f"{value:.2f}"


def ad_json(ad) -> dict:
	return {
		"id": str(ad.id),
		"title": ad.title,
		"advertiser": ad.advertiser,
		"target_url": ad.target_url,
		"payout_per_view": money(ad.payout_per_view),
		"max_views": ad.max_views,
		"total_views": ad.total_views,
		"status": ad.status,
	}


def entry_json(e) -> dict:
	return {
		"id": e.id,
		"type": e.type,
		"amount": money(e.amount),
		"balance_after": money(e.balance_after),
		"reference_type": e.reference_type,
		"reference_id": e.reference_id,
		"metadata": e.metadata,
		"created_at": e.created_at.isoformat(),
	}


def submission_json(s) -> dict:
	return {
		"id": str(s.id),
		"user_id": str(s.user_id),
		"ad_id": str(s.ad_id),
		"proof_url": s.proof_url,
		"status": s.status,
		"rejection_reason": s.rejection_reason or None,
		"reviewed_by": str(s.reviewed_by_id) if s.reviewed_by_id else None,
		"reviewed_at": s.reviewed_at.isoformat() if s.reviewed_at else None,
		"created_at": s.created_at.isoformat(),
	}


def withdrawal_json(w) -> dict:
	return {
		"id": str(w.id),
		"user_id": str(w.user_id),
		"amount": money(w.amount),
		"method": w.method,
		"status": w.status,
		"transaction_hash": w.transaction_hash or None,
		"failure_reason": w.failure_reason or None,
		"processed_by": str(w.processed_by_id) if w.processed_by_id else None,
		"processed_at": w.processed_at.isoformat() if w.processed_at else None,
		"completed_at": w.completed_at.isoformat() if w.completed_at else None,
		"created_at": w.created_at.isoformat(),
	}


def admin_log_json(log) -> dict:
	return {
		"id": str(log.id),
		"admin_id": str(log.admin_id) if log.admin_id else None,
		"action": log.action,
		"resource_type": log.resource_type,
		"resource_id": log.resource_id,
		"details": log.details,
		"created_at": log.created_at.isoformat(),
	}
