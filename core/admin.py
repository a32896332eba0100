from django.contrib import admin
from .models import User, Ad, LedgerEntry, Submission, Withdrawal, AdminLog, ReconciliationRun


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
	list_display = ("email", "role", "balance", "is_blocked", "created_at")
	list_filter = ("role", "is_blocked")
	search_fields = ("email",)
	readonly_fields = ("balance",)


@admin.register(Ad)
class AdAdmin(admin.ModelAdmin):
	list_display = ("title", "advertiser", "payout_per_view", "total_views", "max_views", "status")
	list_filter = ("status",)
	search_fields = ("title", "advertiser")
	readonly_fields = ("total_views",)


class ReadOnlyAdmin(admin.ModelAdmin):

	def has_add_permission(self, request):
		return False

	def has_change_permission(self, request, obj=None):
		return False

	def has_delete_permission(self, request, obj=None):
		return False


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdmin):
	list_display = ("id", "user", "type", "amount", "balance_after", "reference_type", "reference_id", "created_at")
	list_filter = ("type", "reference_type")
	search_fields = ("user__email", "reference_id")
	date_hierarchy = "created_at"


@admin.register(Submission)
class SubmissionAdmin(ReadOnlyAdmin):
	list_display = ("user", "ad", "status", "reviewed_by", "created_at")
	list_filter = ("status",)
	date_hierarchy = "created_at"


@admin.register(Withdrawal)
class WithdrawalAdmin(ReadOnlyAdmin):
	list_display = ("user", "amount", "method", "status", "processed_by", "created_at")
	list_filter = ("status", "method")
	date_hierarchy = "created_at"


@admin.register(AdminLog)
class AdminLogAdmin(ReadOnlyAdmin):
	list_display = ("admin", "action", "resource_type", "resource_id", "created_at")
	list_filter = ("action", "resource_type")
	date_hierarchy = "created_at"


@admin.register(ReconciliationRun)
class ReconciliationRunAdmin(ReadOnlyAdmin):
	list_display = ("id", "users_checked", "mismatch_count", "ok", "created_at")
	list_filter = ("ok",)
