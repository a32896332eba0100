"""Append-only sink for admin actions.

Rows are written inside whatever transaction the admin action runs in, so a rolled
back approval leaves no log row behind.
"""

import logging

from ..models import AdminLog
from ..constants import as_uuid

logger = logging.getLogger(__name__)


class AdminLogSink:

	@staticmethod
	def record(admin_id, action: str, resource_type: str, resource_id, details: dict | None = None) -> AdminLog:
		entry = AdminLog.objects.create(
			admin_id=admin_id,
			action=action,
			resource_type=resource_type,
			resource_id=str(resource_id),
			details=details or {},
		)
		logger.info("admin action %s on %s %s by %s", action, resource_type, resource_id, admin_id)
		return entry


	@staticmethod
	def recent(limit: int = 50, offset: int = 0, admin_id=None, action: str | None = None):
		qs = AdminLog.objects.order_by("-created_at")
		if admin_id:
			qs = qs.filter(admin_id=as_uuid(admin_id, "admin_id"))
		if action:
			qs = qs.filter(action=action)
		return list(qs[offset:offset + limit])
