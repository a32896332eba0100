"""User-facing endpoints: browse ads, submit proofs, wallet and withdrawals.

The caller is whoever X-User-Id names; an upstream auth layer is expected to set it.
"""

from django.http import JsonResponse

from core import ledger, submissions, withdrawals
from core.accounts import get_user
from core.constants import page_bounds
from core.adapters.ad_catalog import AdCatalog
from .helpers import (
	api_view, caller_id, read_json, paging, money, ad_json, entry_json, submission_json, withdrawal_json,
)


@api_view("GET")
def health(request):
	return JsonResponse({"ok": True})


@api_view("GET")
def ads(request):
	"""
	GET: Active ads that are still under their view cap
	"""
	caller_id(request)
	limit, offset = page_bounds(*paging(request))
	return JsonResponse({"ads": [ad_json(ad) for ad in AdCatalog.available(limit, offset)]})


@api_view("POST")
def submit(request, ad_id):
	"""
	POST: {"proof_url": "..."} -> pending submission
	"""
	body = read_json(request)
	submission = submissions.submit_proof(caller_id(request), ad_id, body.get("proof_url"))
	return JsonResponse(submission_json(submission), status=201)


@api_view("GET")
def my_submissions(request):
	user_id = caller_id(request)
	limit, offset = paging(request)
	rows = submissions.get_user_submissions(user_id, limit, offset, request.GET.get("status"))
	return JsonResponse({
		"submissions": [submission_json(s) for s in rows],
		"stats": submissions.get_user_submission_stats(user_id),
	})


@api_view("GET")
def submission_detail(request, submission_id):
	submission = submissions.get_submission_by_id(submission_id, caller_id(request))
	return JsonResponse(submission_json(submission))


@api_view("GET")
def wallet(request):
	"""
	GET: Current balance plus lifetime totals from the ledger
	"""
	user = get_user(caller_id(request))
	return JsonResponse({
		"user_id": str(user.id),
		"balance": money(user.balance),
		"stats": ledger.get_transaction_stats(user.id),
	})


@api_view("GET")
def wallet_transactions(request):
	limit, offset = paging(request)
	rows = ledger.get_transaction_history(caller_id(request), limit, offset, request.GET.get("type"))
	return JsonResponse({"transactions": [entry_json(e) for e in rows]})


@api_view("POST")
def withdraw(request):
	"""
	POST: {"amount": "25.00", "method": "paypal", "payment_details": {...}}
	"""
	body = read_json(request)
	withdrawal = withdrawals.request_withdrawal(
		caller_id(request), body.get("amount"), body.get("method"), body.get("payment_details"),
	)
	return JsonResponse(withdrawal_json(withdrawal), status=201)


@api_view("GET")
def my_withdrawals(request):
	user_id = caller_id(request)
	limit, offset = paging(request)
	rows = withdrawals.get_user_withdrawals(user_id, limit, offset, request.GET.get("status"))
	return JsonResponse({
		"withdrawals": [withdrawal_json(w) for w in rows],
		"stats": withdrawals.get_user_withdrawal_stats(user_id),
	})


@api_view("GET")
def withdrawal_detail(request, withdrawal_id):
	withdrawal = withdrawals.get_withdrawal_by_id(withdrawal_id, caller_id(request))
	return JsonResponse(withdrawal_json(withdrawal))


@api_view("POST")
def withdrawal_cancel(request, withdrawal_id):
	withdrawal = withdrawals.cancel_withdrawal(withdrawal_id, caller_id(request))
	return JsonResponse(withdrawal_json(withdrawal))
