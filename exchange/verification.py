"""
Identity verification gate.

A user must pass verification once before they may list or request items.
Each submission is scored synchronously by IdentityTrustScorer; there is no
background processing, so a submission never stays pending after the call
returns. A rejected user may submit again.
"""

import logging
from collections import namedtuple

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from .exceptions import (
    AlreadyVerified,
    Forbidden,
    InvalidRequest,
    VerificationInFlight,
    VerificationRequired,
)
from .models import Verification
from .storage import ImageStore
from .trust import IdentityTrustScorer

logger = logging.getLogger(__name__)


VerificationOutcome = namedtuple(
    'VerificationOutcome',
    ['verification', 'score', 'approved', 'reasons', 'message'],
)


def require_verified(user):
    """Raise VerificationRequired unless ``user`` has passed verification."""
    if not user.is_verified:
        raise VerificationRequired()


class VerificationGate:
    """
    Orchestrates verification attempts per user.

    Args:
        scorer: IdentityTrustScorer instance
        image_store: ImageStore for the submitted ID photo
        clock: Callable returning the current aware datetime
    """

    def __init__(self, scorer=None, image_store=None, clock=None):
        self.image_store = image_store or ImageStore()
        self.scorer = scorer or IdentityTrustScorer(image_store=self.image_store)
        self.clock = clock or timezone.now

    def submit(self, user, image):
        """
        Submit an ID photo for verification.

        Steps:
        1. Lock the user row (serializes double submissions)
        2. Refuse if already verified or an attempt is in flight
        3. Store the photo and score it
        4. Record the attempt and update the user's verification fields

        Args:
            user: User submitting
            image: Uploaded ID photo

        Returns:
            VerificationOutcome

        Raises:
            AlreadyVerified: user is already verified (no record created)
            VerificationInFlight: a pending/processing attempt exists
        """
        User = get_user_model()

        with transaction.atomic():
            locked = User.objects.select_for_update().get(pk=user.pk)

            if locked.is_verified:
                raise AlreadyVerified(status=Verification.STATUS_APPROVED)

            existing = Verification.objects.filter(
                user=locked,
                status__in=Verification.IN_FLIGHT_STATUSES,
            ).first()
            if existing is not None:
                raise VerificationInFlight(
                    verification_id=existing.pk,
                    status=existing.status,
                )

            path = self.image_store.store(image, 'verifications')
            result = self.scorer.score(locked, image)
            now = self.clock()

            verification = Verification.objects.create(
                user=locked,
                id_image_path=path,
                status=Verification.STATUS_APPROVED if result.approved else Verification.STATUS_REJECTED,
                ai_confidence=result.score,
                rejection_reason='' if result.approved else ' '.join(result.reasons),
                submitted_at=now,
                reviewed_at=now,
            )

            if result.approved:
                locked.is_verified = True
                locked.verification_status = 'approved'
            else:
                locked.verification_status = 'rejected'
            locked.save(update_fields=['is_verified', 'verification_status', 'updated_at'])

        user.is_verified = locked.is_verified
        user.verification_status = locked.verification_status

        if result.approved:
            message = 'Your institutional ID has been verified successfully!'
        else:
            message = 'Verification failed. ' + ' '.join(result.reasons)

        logger.info(
            f"Verification {verification.status}. "
            f"User: {locked.email} (ID: {locked.pk}), "
            f"Verification ID: {verification.pk}, Score: {result.score}"
        )

        return VerificationOutcome(
            verification=verification,
            score=result.score,
            approved=result.approved,
            reasons=result.reasons,
            message=message,
        )

    def status(self, user):
        """
        Return the latest verification record for ``user``, or None.
        """
        return Verification.objects.filter(user=user).order_by('-submitted_at', '-id').first()

    def queue(self, status=None):
        """Verification records for admin review, newest first."""
        queryset = Verification.objects.select_related('user', 'reviewed_by')
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-submitted_at', '-id')

    def review(self, verification, reviewer, approve, reason=''):
        """
        Manually override the decision on a user's latest verification.

        Only the latest record can be reviewed, which keeps ``is_verified``
        equal to "latest record is approved".

        Args:
            verification: Verification to review
            reviewer: Admin user performing the review
            approve: True to approve, False to reject
            reason: Required when rejecting

        Returns:
            Verification: the updated record
        """
        if not reviewer.is_admin():
            raise Forbidden('Only administrators can review verifications.')

        if not approve and not (reason or '').strip():
            raise InvalidRequest('A rejection reason is required.', field='rejection_reason')

        User = get_user_model()

        with transaction.atomic():
            owner = User.objects.select_for_update().get(pk=verification.user_id)
            latest = self.status(owner)
            if latest is None or latest.pk != verification.pk:
                raise InvalidRequest(
                    'Only the most recent verification of a user can be reviewed.',
                    verification_id=verification.pk,
                )

            verification.status = Verification.STATUS_APPROVED if approve else Verification.STATUS_REJECTED
            verification.rejection_reason = '' if approve else reason.strip()
            verification.reviewed_by = reviewer
            verification.reviewed_at = self.clock()
            verification.save(update_fields=['status', 'rejection_reason', 'reviewed_by', 'reviewed_at'])

            owner.is_verified = approve
            owner.verification_status = 'approved' if approve else 'rejected'
            owner.save(update_fields=['is_verified', 'verification_status', 'updated_at'])

        logger.info(
            f"Verification {verification.pk} manually {verification.status}. "
            f"User: {owner.email} (ID: {owner.pk}), Reviewer: {reviewer.email} (ID: {reviewer.pk})"
        )
        return verification
