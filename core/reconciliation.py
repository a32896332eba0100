"""Periodic stored-vs-ledger balance sweep.

Meant for a nightly cron (`manage.py reconcile_balances`). Any mismatch means either a
bug in the ledger path or someone writing users.balance behind its back.
"""

import logging

from .models import User, ReconciliationRun
from .errors import wraps_db_errors
from . import ledger

logger = logging.getLogger(__name__)


@wraps_db_errors
def run_reconciliation() -> ReconciliationRun:
	users_checked = User.objects.count()
	mismatches = ledger.find_balance_mismatches()
	run = ReconciliationRun.objects.create(
		users_checked=users_checked,
		mismatch_count=len(mismatches),
		ok=not mismatches,
		mismatches=mismatches,
	)
	if mismatches:
		logger.critical("reconciliation run %s: %d of %d users out of balance", run.pk, len(mismatches), users_checked)
	else:
		logger.info("reconciliation run %s: %d users consistent", run.pk, users_checked)
	return run
