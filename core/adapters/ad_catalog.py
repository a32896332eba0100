"""Adapter over the ads table.

Ads are reference data managed elsewhere (Django admin). The wallet only needs
to look one up, know what it pays, bump its view counter on approval and list
what a user may still submit proof for.
"""

from decimal import Decimal
from django.db.models import F, Q
from django.utils import timezone

from ..models import Ad, AdStatus
from ..errors import NotFoundError, ValidationError
from ..constants import as_uuid


class AdCatalog:
	"""
	Static helpers; callers own the transaction.
	"""

	@staticmethod
	def get(ad_id) -> Ad:
		try:
			return Ad.objects.get(pk=as_uuid(ad_id, "ad_id"))
		except Ad.DoesNotExist:
			raise NotFoundError("Ad", ad_id)


	@staticmethod
	def payout_for(ad_id) -> Decimal:
		ad = AdCatalog.get(ad_id)
		return ad.payout_per_view


	@staticmethod
	def ensure_accepting(ad: Ad) -> None:
		"""
		Raise ValidationError unless the ad is active and under its view cap.
		"""
		if ad.status != AdStatus.ACTIVE:
			raise ValidationError("Ad is not active", {"ad_id": str(ad.id), "status": ad.status})
		if ad.is_capped:
			raise ValidationError("Ad has reached its view limit", {"ad_id": str(ad.id)})


	@staticmethod
	def record_view(ad_id) -> None:
		Ad.objects.filter(pk=ad_id).update(total_views=F("total_views") + 1, updated_at=timezone.now())


	@staticmethod
	def available(limit: int = 20, offset: int = 0):
		qs = (
			Ad.objects
			.filter(status=AdStatus.ACTIVE)
			.filter(Q(max_views__isnull=True) | Q(total_views__lt=F("max_views")))
			.order_by("-created_at")
		)
		return list(qs[offset:offset + limit])
