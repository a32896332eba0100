"""Public API surface.

- ads, submissions, wallet/*: the calling user's own data and requests
- admin/*: review queues, submission/withdrawal transitions, account control, audits
- health: liveness probe
"""

from django.urls import path
from . import views_user, views_admin


urlpatterns = [
	path("health", views_user.health),
	path("ads", views_user.ads),
	path("ads/<uuid:ad_id>/submit", views_user.submit),
	path("submissions", views_user.my_submissions),
	path("submissions/<uuid:submission_id>", views_user.submission_detail),
	path("wallet", views_user.wallet),
	path("wallet/transactions", views_user.wallet_transactions),
	path("wallet/withdraw", views_user.withdraw),
	path("wallet/withdrawals", views_user.my_withdrawals),
	path("wallet/withdrawals/<uuid:withdrawal_id>", views_user.withdrawal_detail),
	path("wallet/withdrawals/<uuid:withdrawal_id>/cancel", views_user.withdrawal_cancel),

	path("admin/submissions", views_admin.submission_queue),
	path("admin/submissions/<uuid:submission_id>/approve", views_admin.approve_submission),
	path("admin/submissions/<uuid:submission_id>/reject", views_admin.reject_submission),
	path("admin/withdrawals", views_admin.withdrawal_queue),
	path("admin/withdrawals/<uuid:withdrawal_id>/process", views_admin.process_withdrawal),
	path("admin/withdrawals/<uuid:withdrawal_id>/complete", views_admin.complete_withdrawal),
	path("admin/withdrawals/<uuid:withdrawal_id>/fail", views_admin.fail_withdrawal),
	path("admin/users/<uuid:user_id>/block", views_admin.block_user),
	path("admin/users/<uuid:user_id>/unblock", views_admin.unblock_user),
	path("admin/users/<uuid:user_id>/bonus", views_admin.grant_bonus),
	path("admin/users/<uuid:user_id>/adjust", views_admin.adjust_balance),
	path("admin/users/<uuid:user_id>/audit", views_admin.user_audit),
	path("admin/audit/mismatches", views_admin.balance_mismatches),
	path("admin/logs", views_admin.admin_logs),
]
