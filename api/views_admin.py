"""Admin endpoints: review queues, workflow transitions, account control and audits.

Every view requires the X-User-Id caller to be an admin; the core operations
check it again before doing anything.
"""

from django.http import JsonResponse

from core import accounts, ledger, submissions, withdrawals
from core.constants import page_bounds
from core.adapters.admin_log import AdminLogSink
from .helpers import (
	api_view, caller_id, read_json, paging, money, entry_json, submission_json, withdrawal_json, admin_log_json,
)


def _admin(request):
	return accounts.require_admin(caller_id(request)).pk


@api_view("GET")
def submission_queue(request):
	_admin(request)
	limit, offset = paging(request, default_limit=50)
	rows = submissions.get_pending_submissions(limit, offset, request.GET.get("status"))
	return JsonResponse({"submissions": [submission_json(s) for s in rows]})


@api_view("POST")
def approve_submission(request, submission_id):
	result = submissions.approve_submission(submission_id, caller_id(request))
	result["payout_amount"] = money(result["payout_amount"])
	return JsonResponse(result)


@api_view("POST")
def reject_submission(request, submission_id):
	body = read_json(request)
	submission = submissions.reject_submission(submission_id, caller_id(request), body.get("reason"))
	return JsonResponse(submission_json(submission))


@api_view("GET")
def withdrawal_queue(request):
	_admin(request)
	limit, offset = paging(request, default_limit=50)
	rows = withdrawals.get_pending_withdrawals(limit, offset, request.GET.get("status"))
	return JsonResponse({"withdrawals": [withdrawal_json(w) for w in rows]})


@api_view("POST")
def process_withdrawal(request, withdrawal_id):
	withdrawal = withdrawals.process_withdrawal(withdrawal_id, caller_id(request))
	return JsonResponse(withdrawal_json(withdrawal))


@api_view("POST")
def complete_withdrawal(request, withdrawal_id):
	body = read_json(request)
	withdrawal = withdrawals.complete_withdrawal(withdrawal_id, caller_id(request), body.get("transaction_hash"))
	return JsonResponse(withdrawal_json(withdrawal))


@api_view("POST")
def fail_withdrawal(request, withdrawal_id):
	body = read_json(request)
	withdrawal = withdrawals.fail_withdrawal(withdrawal_id, caller_id(request), body.get("reason"))
	return JsonResponse(withdrawal_json(withdrawal))


def _set_blocked(request, user_id, blocked):
	body = read_json(request)
	user = accounts.set_user_blocked(user_id, caller_id(request), blocked, body.get("reason") or "")
	return JsonResponse({"user_id": str(user.id), "is_blocked": user.is_blocked})


@api_view("POST")
def block_user(request, user_id):
	return _set_blocked(request, user_id, True)


@api_view("POST")
def unblock_user(request, user_id):
	return _set_blocked(request, user_id, False)


@api_view("POST")
def grant_bonus(request, user_id):
	"""
	POST: {"amount": "5.00", "reason": "..."} -> bonus ledger entry
	"""
	body = read_json(request)
	entry = accounts.grant_bonus(user_id, caller_id(request), body.get("amount"), body.get("reason"))
	return JsonResponse(entry_json(entry), status=201)


@api_view("POST")
def adjust_balance(request, user_id):
	"""
	POST: {"amount": "-2.50", "reason": "..."} -> signed adjustment entry
	"""
	body = read_json(request)
	entry = accounts.adjust_balance(user_id, caller_id(request), body.get("amount"), body.get("reason"))
	return JsonResponse(entry_json(entry), status=201)


@api_view("GET")
def user_audit(request, user_id):
	_admin(request)
	return JsonResponse(ledger.audit_user_balance(user_id))


@api_view("GET")
def balance_mismatches(request):
	_admin(request)
	mismatches = ledger.find_balance_mismatches()
	return JsonResponse({"ok": not mismatches, "mismatches": mismatches})


@api_view("GET")
def admin_logs(request):
	_admin(request)
	limit, offset = page_bounds(*paging(request, default_limit=50))
	rows = AdminLogSink.recent(limit, offset, request.GET.get("admin_id"), request.GET.get("action"))
	return JsonResponse({"logs": [admin_log_json(log) for log in rows]})
