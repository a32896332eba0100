"""Wallet rules and money helpers shared across the core app.


- Rate limits, minimums and the ledger tolerance come from settings with defaults.
- to_money parses user/admin supplied amounts into 2-decimal Decimals.
- Admin action / resource names are what lands in admin_logs.
"""

import math
import uuid
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.utils import timezone

from .errors import ValidationError

SUBMISSIONS_PER_AD_PER_DAY = getattr(settings, "SUBMISSIONS_PER_AD_PER_DAY", 1)
SUBMISSION_WINDOW = timedelta(hours=getattr(settings, "SUBMISSION_WINDOW_HOURS", 24))
WITHDRAWALS_PER_WEEK = getattr(settings, "WITHDRAWALS_PER_WEEK", 3)
WITHDRAWAL_WINDOW = timedelta(days=getattr(settings, "WITHDRAWAL_WINDOW_DAYS", 7))
MIN_WITHDRAWAL_AMOUNT = Decimal(getattr(settings, "MIN_WITHDRAWAL_AMOUNT", "10.00"))
LEDGER_TOLERANCE = Decimal(getattr(settings, "LEDGER_TOLERANCE", "0.01"))

MONEY_PLACES = Decimal("0.01")
MIN_REASON_LENGTH = 10
MIN_TRANSACTION_HASH_LENGTH = 5
MAX_TRANSACTION_HASH_LENGTH = 255
MAX_PAGE_SIZE = 100

# admin_logs.action
APPROVE_SUBMISSION = "approve_submission"
REJECT_SUBMISSION = "reject_submission"
PROCESS_WITHDRAWAL = "process_withdrawal"
COMPLETE_WITHDRAWAL = "complete_withdrawal"
FAIL_WITHDRAWAL = "fail_withdrawal"
BLOCK_USER = "block_user"
UNBLOCK_USER = "unblock_user"
GRANT_BONUS = "grant_bonus"
MANUAL_ADJUSTMENT = "manual_adjustment"

# admin_logs.resource_type
RESOURCE_USER = "user"
RESOURCE_SUBMISSION = "submission"
RESOURCE_WITHDRAWAL = "withdrawal"


def to_money(value, field: str = "amount") -> Decimal:
    """
    Convert str/int/float/Decimal into a finite Decimal with at most 2 decimal places.

    Floats go through str() so 0.1 stays 0.1. Extra precision is rejected, not rounded.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", {field: str(value)})
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", {field: str(value)})
    if amount != amount.quantize(MONEY_PLACES):
        raise ValidationError(f"{field} cannot have more than 2 decimal places", {field: str(value)})
    return amount.quantize(MONEY_PLACES)


def require_text(value, field: str, min_length: int = 1, max_length: int | None = None) -> str:
    """
    Return the stripped string or raise ValidationError when it is shorter than min_length
    (or longer than max_length, when given).
    """
    text = value.strip() if isinstance(value, str) else ""
    if len(text) < min_length:
        if min_length <= 1:
            raise ValidationError(f"{field} is required")
        raise ValidationError(f"{field} must be at least {min_length} characters")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def as_uuid(value, field: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"{field} must be a valid UUID", {field: str(value)})


def page_bounds(limit, offset) -> tuple[int, int]:
    try:
        limit, offset = int(limit), int(offset)
    except (TypeError, ValueError):
        raise ValidationError("limit and offset must be integers")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset cannot be negative")
    return limit, offset


def retry_after_seconds(oldest, window: timedelta, now=None) -> int:
    """
    Seconds until `oldest` (a timestamp inside the rolling window) falls out of it.
    """
    now = now or timezone.now()
    remaining = (oldest + window - now).total_seconds()
    return max(1, math.ceil(remaining))


def money_total(value) -> Decimal:
    """
    Normalise an aggregate (None when there are no rows) to a 2-place Decimal.
    """
    if value is None:
        return Decimal("0.00")
    return Decimal(value).quantize(MONEY_PLACES)
