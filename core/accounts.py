"""Admin-side account operations: role checks, blocking and manual balance entries."""

import logging
from django.db import transaction

from .models import User, TransactionType, ReferenceType
from .constants import (
	BLOCK_USER, UNBLOCK_USER, GRANT_BONUS, MANUAL_ADJUSTMENT, RESOURCE_USER, MIN_REASON_LENGTH,
	as_uuid, to_money, require_text,
)
from .errors import ForbiddenError, NotFoundError, ValidationError, wraps_db_errors
from .adapters.admin_log import AdminLogSink
from . import ledger

logger = logging.getLogger(__name__)


@wraps_db_errors
def require_admin(admin_id) -> User:
	"""
	Return the admin user or raise ForbiddenError (unknown ids included).
	"""
	if not admin_id:
		raise ForbiddenError("Admin access required")
	admin = User.objects.filter(pk=as_uuid(admin_id, "admin_id")).first()
	if admin is None or not admin.is_admin:
		raise ForbiddenError("Admin access required")
	return admin


@wraps_db_errors
def get_user(user_id, lock: bool = False) -> User:
	qs = User.objects.select_for_update() if lock else User.objects
	try:
		return qs.get(pk=as_uuid(user_id, "user_id"))
	except User.DoesNotExist:
		raise NotFoundError("User", user_id)


@wraps_db_errors
@transaction.atomic
def set_user_blocked(user_id, admin_id, blocked: bool, reason: str = "") -> User:
	admin = require_admin(admin_id)
	user = get_user(user_id, lock=True)
	if user.pk == admin.pk:
		raise ValidationError("Admins cannot block themselves")
	user.is_blocked = bool(blocked)
	user.save(update_fields=["is_blocked", "updated_at"])
	AdminLogSink.record(
		admin.pk, BLOCK_USER if blocked else UNBLOCK_USER, RESOURCE_USER, user.pk,
		{"reason": reason.strip()} if reason else {},
	)
	return user


@wraps_db_errors
@transaction.atomic
def grant_bonus(user_id, admin_id, amount, reason: str):
	admin = require_admin(admin_id)
	amount = to_money(amount)
	if amount <= 0:
		raise ValidationError("Bonus amount must be positive")
	reason = require_text(reason, "reason", MIN_REASON_LENGTH)
	entry = ledger.create_entry(
		user_id, TransactionType.BONUS, amount, ReferenceType.ADMIN_ACTION, admin.pk,
		{"reason": reason, "granted_by": str(admin.pk)},
	)
	AdminLogSink.record(admin.pk, GRANT_BONUS, RESOURCE_USER, user_id, {"amount": amount, "reason": reason, "entry_id": entry.id})
	return entry


@wraps_db_errors
@transaction.atomic
def adjust_balance(user_id, admin_id, amount, reason: str):
	"""
	Signed correction entry. A negative adjustment is still subject to the overdraft check.
	"""
	admin = require_admin(admin_id)
	amount = to_money(amount)
	reason = require_text(reason, "reason", MIN_REASON_LENGTH)
	entry = ledger.create_entry(
		user_id, TransactionType.ADJUSTMENT, amount, ReferenceType.ADMIN_ACTION, admin.pk,
		{"reason": reason, "adjusted_by": str(admin.pk)},
	)
	AdminLogSink.record(admin.pk, MANUAL_ADJUSTMENT, RESOURCE_USER, user_id, {"amount": amount, "reason": reason, "entry_id": entry.id})
	logger.warning("manual balance adjustment %s for user %s by %s", amount, user_id, admin.pk)
	return entry
