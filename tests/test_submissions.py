"""Tests for the submission workflow (submit, approve, reject, queries)."""

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from core import ledger, submissions
from core.adapters.admin_log import AdminLogSink
from core.constants import APPROVE_SUBMISSION, REJECT_SUBMISSION
from core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from core.models import Ad, AdminLog, AdStatus, LedgerEntry, ReferenceType, Submission, TransactionType
from core.transitions import SubmissionStatus

PROOF = "https://example.com/proof.png"


def backdate(submission, hours):
    Submission.objects.filter(pk=submission.pk).update(created_at=timezone.now() - timedelta(hours=hours))


@pytest.mark.django_db
class TestSubmitProof:

    def test_creates_pending_submission(self, user, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)
        assert submission.status == SubmissionStatus.PENDING
        assert submission.user_id == user.pk
        assert submission.ad_id == ad.pk
        assert ledger.get_balance(user.pk) == Decimal("0.00")

    @pytest.mark.parametrize("url", ["", "   ", None, "not a url", "ftp://example.com/proof.png"])
    def test_proof_url_must_be_http(self, user, ad, url):
        with pytest.raises(ValidationError):
            submissions.submit_proof(user.pk, ad.pk, url)

    def test_blocked_user(self, user, ad):
        user.is_blocked = True
        user.save()
        with pytest.raises(ForbiddenError):
            submissions.submit_proof(user.pk, ad.pk, PROOF)

    def test_unknown_user_and_ad(self, user, ad):
        with pytest.raises(NotFoundError):
            submissions.submit_proof(uuid.uuid4(), ad.pk, PROOF)
        with pytest.raises(NotFoundError):
            submissions.submit_proof(user.pk, uuid.uuid4(), PROOF)

    def test_inactive_ad(self, user, ad):
        Ad.objects.filter(pk=ad.pk).update(status=AdStatus.PAUSED)
        with pytest.raises(ValidationError):
            submissions.submit_proof(user.pk, ad.pk, PROOF)

    def test_ad_at_view_cap(self, user, ad):
        Ad.objects.filter(pk=ad.pk).update(max_views=3, total_views=3)
        with pytest.raises(ValidationError):
            submissions.submit_proof(user.pk, ad.pk, PROOF)

    def test_second_submission_same_day_is_rate_limited(self, user, ad):
        first = submissions.submit_proof(user.pk, ad.pk, PROOF)
        backdate(first, hours=2)

        with pytest.raises(RateLimitError) as exc:
            submissions.submit_proof(user.pk, ad.pk, PROOF)

        # oldest submission leaves the 24h window in about 22h
        assert 21 * 3600 < exc.value.retry_after <= 22 * 3600
        assert Submission.objects.filter(user=user).count() == 1

    def test_open_submission_outside_window_is_a_conflict(self, user, ad):
        first = submissions.submit_proof(user.pk, ad.pk, PROOF)
        backdate(first, hours=25)

        with pytest.raises(ConflictError):
            submissions.submit_proof(user.pk, ad.pk, PROOF)

    def test_resubmit_after_rejection_once_window_passed(self, user, admin, ad):
        first = submissions.submit_proof(user.pk, ad.pk, PROOF)
        submissions.reject_submission(first.pk, admin.pk, "Screenshot is unreadable")
        backdate(first, hours=25)

        second = submissions.submit_proof(user.pk, ad.pk, PROOF)

        assert second.status == SubmissionStatus.PENDING

    def test_other_ads_are_not_rate_limited(self, user, ad):
        other_ad = Ad.objects.create(
            title="Install the app",
            advertiser="Acme",
            target_url="https://example.com/app",
            payout_per_view=Decimal("1.00"),
            status=AdStatus.ACTIVE,
        )
        submissions.submit_proof(user.pk, ad.pk, PROOF)
        submissions.submit_proof(user.pk, other_ad.pk, PROOF)
        assert Submission.objects.filter(user=user).count() == 2


@pytest.mark.django_db
class TestApprove:

    def test_approve_pays_user_once(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)

        result = submissions.approve_submission(submission.pk, admin.pk)

        assert result == {
            "submission_id": str(submission.pk),
            "status": SubmissionStatus.APPROVED,
            "payout_amount": Decimal("2.50"),
            "user_id": str(user.pk),
        }
        assert ledger.get_balance(user.pk) == Decimal("2.50")

        entry = LedgerEntry.objects.get(user=user)
        assert entry.type == TransactionType.AD_PAYOUT
        assert entry.reference_type == ReferenceType.SUBMISSION
        assert entry.reference_id == str(submission.pk)
        assert entry.metadata["approved_by"] == str(admin.pk)

        submission.refresh_from_db()
        assert submission.status == SubmissionStatus.APPROVED
        assert submission.reviewed_by_id == admin.pk
        assert submission.reviewed_at is not None

        ad.refresh_from_db()
        assert ad.total_views == 1
        assert AdminLog.objects.filter(action=APPROVE_SUBMISSION, resource_id=str(submission.pk)).count() == 1

    def test_second_approval_is_invalid_and_pays_nothing(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)
        submissions.approve_submission(submission.pk, admin.pk)

        with pytest.raises(InvalidStateError) as exc:
            submissions.approve_submission(submission.pk, admin.pk)

        assert exc.value.current_state == SubmissionStatus.APPROVED
        assert LedgerEntry.objects.filter(user=user, type=TransactionType.AD_PAYOUT).count() == 1
        assert ledger.get_balance(user.pk) == Decimal("2.50")

    def test_approve_from_under_review(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)
        Submission.objects.filter(pk=submission.pk).update(status=SubmissionStatus.UNDER_REVIEW)

        submissions.approve_submission(submission.pk, admin.pk)

        assert ledger.get_balance(user.pk) == Decimal("2.50")

    def test_non_admin_cannot_approve(self, user, other_user, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)

        with pytest.raises(ForbiddenError):
            submissions.approve_submission(submission.pk, other_user.pk)

        submission.refresh_from_db()
        assert submission.status == SubmissionStatus.PENDING
        assert ledger.get_balance(user.pk) == Decimal("0.00")

    def test_unknown_submission(self, admin):
        with pytest.raises(NotFoundError):
            submissions.approve_submission(uuid.uuid4(), admin.pk)

    def test_failure_after_payout_rolls_everything_back(self, user, admin, ad, monkeypatch):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)

        def broken_record(*args, **kwargs):
            raise RuntimeError("log sink down")

        monkeypatch.setattr(AdminLogSink, "record", staticmethod(broken_record))

        with pytest.raises(RuntimeError):
            submissions.approve_submission(submission.pk, admin.pk)

        submission.refresh_from_db()
        ad.refresh_from_db()
        assert submission.status == SubmissionStatus.PENDING
        assert ledger.get_balance(user.pk) == Decimal("0.00")
        assert not LedgerEntry.objects.filter(user=user).exists()
        assert ad.total_views == 0


@pytest.mark.django_db
class TestReject:

    def test_reject_records_reason_without_ledger_effect(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)

        rejected = submissions.reject_submission(submission.pk, admin.pk, "  Screenshot is unreadable  ")

        assert rejected.status == SubmissionStatus.REJECTED
        assert rejected.rejection_reason == "Screenshot is unreadable"
        assert rejected.reviewed_by_id == admin.pk
        assert not LedgerEntry.objects.filter(user=user).exists()
        assert AdminLog.objects.filter(action=REJECT_SUBMISSION).count() == 1

    def test_reason_too_short(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)
        with pytest.raises(ValidationError):
            submissions.reject_submission(submission.pk, admin.pk, "blurry   ")

    def test_cannot_reject_approved(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)
        submissions.approve_submission(submission.pk, admin.pk)

        with pytest.raises(InvalidStateError):
            submissions.reject_submission(submission.pk, admin.pk, "Changed my mind about this")

        assert ledger.get_balance(user.pk) == Decimal("2.50")

    def test_cannot_approve_rejected(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)
        submissions.reject_submission(submission.pk, admin.pk, "Screenshot is unreadable")
        with pytest.raises(InvalidStateError):
            submissions.approve_submission(submission.pk, admin.pk)


@pytest.mark.django_db
class TestQueries:

    def test_owner_only_access(self, user, other_user, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)

        assert submissions.get_submission_by_id(submission.pk, user.pk) == submission
        assert submissions.get_submission_by_id(submission.pk) == submission
        with pytest.raises(ForbiddenError):
            submissions.get_submission_by_id(submission.pk, other_user.pk)
        with pytest.raises(NotFoundError):
            submissions.get_submission_by_id(uuid.uuid4(), user.pk)

    def test_pending_queue_is_oldest_first(self, user, other_user, admin, ad):
        first = submissions.submit_proof(user.pk, ad.pk, PROOF)
        second = submissions.submit_proof(other_user.pk, ad.pk, PROOF)
        backdate(first, hours=3)
        backdate(second, hours=1)

        queue = submissions.get_pending_submissions()
        assert [s.pk for s in queue] == [first.pk, second.pk]

        submissions.approve_submission(first.pk, admin.pk)
        assert [s.pk for s in submissions.get_pending_submissions()] == [second.pk]
        assert [s.pk for s in submissions.get_pending_submissions(status=SubmissionStatus.APPROVED)] == [first.pk]

    def test_user_submissions_and_stats(self, user, admin, ad):
        submission = submissions.submit_proof(user.pk, ad.pk, PROOF)
        submissions.approve_submission(submission.pk, admin.pk)

        rows = submissions.get_user_submissions(user.pk)
        stats = submissions.get_user_submission_stats(user.pk)

        assert [s.pk for s in rows] == [submission.pk]
        assert stats["approved"] == 1
        assert stats["pending"] == 0
        assert stats["total"] == 1
        assert stats["total_earned"] == Decimal("2.50")

    def test_status_filter_is_validated(self, user):
        with pytest.raises(ValidationError):
            submissions.get_user_submissions(user.pk, status="done")
