"""
Tests for the verification gate.

Test Coverage:
- Approved and rejected submissions and the user fields they set
- is_verified always equals "latest verification is approved"
- Already verified users are refused without a new record
- Submissions are refused while an attempt is pending or processing
- Resubmission after a rejection is allowed
- Admin review: approve/reject overrides, reason required, latest only
"""

import os
import random
import shutil
import tempfile
from decimal import Decimal
from io import BytesIO

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from PIL import Image

from exchange.exceptions import AlreadyVerified, Forbidden, InvalidRequest, VerificationInFlight
from exchange.models import Verification
from exchange.trust import IdentityTrustScorer
from exchange.verification import VerificationGate, require_verified

User = get_user_model()

TEST_MEDIA_ROOT = tempfile.mkdtemp()


# ============================================================================
# Helper Functions
# ============================================================================

class FixedRandom:
    def __init__(self, value):
        self.value = value

    def randint(self, a, b):
        return self.value


def create_test_user(email, student_id='2024-12345', **kwargs):
    return User.objects.create_user(
        username=email,
        email=email,
        password='testpass123',
        student_id=student_id,
        **kwargs
    )


def create_id_photo(size=(400, 400)):
    """Random-pixel PNG large enough to pass the file-size check."""
    data = random.Random(1).randbytes(size[0] * size[1] * 3)
    file = BytesIO()
    Image.frombytes('RGB', size, data).save(file, 'PNG')
    return SimpleUploadedFile('id.png', file.getvalue(), content_type='image/png')


def make_gate():
    return VerificationGate(scorer=IdentityTrustScorer(rng=FixedRandom(500)))


def assert_verification_invariant(testcase, user):
    user.refresh_from_db()
    latest = Verification.objects.filter(user=user).order_by('-submitted_at', '-id').first()
    expected = latest is not None and latest.status == Verification.STATUS_APPROVED
    testcase.assertEqual(user.is_verified, expected)


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class VerificationSubmitTests(TestCase):

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_MEDIA_ROOT, ignore_errors=True)

    def setUp(self):
        self.gate = make_gate()
        self.member = create_test_user('juan.delacruz@minsu.edu.ph')
        self.outsider = create_test_user('juan@gmail.com')

    def test_valid_submission_is_approved(self):
        outcome = self.gate.submit(self.member, create_id_photo())

        self.assertTrue(outcome.approved)
        self.assertEqual(outcome.score, Decimal('95.00'))
        self.assertEqual(outcome.message, 'Your institutional ID has been verified successfully!')
        self.assertEqual(outcome.verification.status, Verification.STATUS_APPROVED)
        self.assertEqual(outcome.verification.ai_confidence, Decimal('95.00'))
        self.assertIsNotNone(outcome.verification.reviewed_at)

        self.member.refresh_from_db()
        self.assertTrue(self.member.is_verified)
        self.assertEqual(self.member.verification_status, 'approved')
        assert_verification_invariant(self, self.member)

    def test_submission_updates_passed_instance(self):
        self.gate.submit(self.member, create_id_photo())

        self.assertTrue(self.member.is_verified)

    def test_photo_is_stored(self):
        outcome = self.gate.submit(self.member, create_id_photo())

        path = outcome.verification.id_image_path
        self.assertTrue(path.startswith('verifications/'))
        self.assertTrue(os.path.exists(os.path.join(settings.MEDIA_ROOT, path)))

    def test_non_institutional_email_is_rejected_with_reasons(self):
        outcome = self.gate.submit(self.outsider, create_id_photo())

        self.assertFalse(outcome.approved)
        self.assertEqual(outcome.score, Decimal('65.00'))
        self.assertIn('Email is not from the institutional domain', outcome.message)
        self.assertTrue(outcome.message.startswith('Verification failed. '))
        self.assertEqual(outcome.verification.status, Verification.STATUS_REJECTED)
        self.assertIn('institutional domain', outcome.verification.rejection_reason)

        self.outsider.refresh_from_db()
        self.assertFalse(self.outsider.is_verified)
        self.assertEqual(self.outsider.verification_status, 'rejected')
        assert_verification_invariant(self, self.outsider)

    def test_already_verified_user_is_refused_without_new_record(self):
        self.gate.submit(self.member, create_id_photo())

        with self.assertRaises(AlreadyVerified) as ctx:
            self.gate.submit(self.member, create_id_photo())

        self.assertEqual(ctx.exception.context['status'], 'approved')
        self.assertEqual(Verification.objects.filter(user=self.member).count(), 1)
        assert_verification_invariant(self, self.member)

    def test_in_flight_attempt_blocks_submission(self):
        for in_flight in Verification.IN_FLIGHT_STATUSES:
            with self.subTest(status=in_flight):
                Verification.objects.filter(user=self.member).delete()
                pending = Verification.objects.create(
                    user=self.member,
                    id_image_path='verifications/pending.png',
                    status=in_flight,
                )

                with self.assertRaises(VerificationInFlight) as ctx:
                    self.gate.submit(self.member, create_id_photo())

                self.assertEqual(ctx.exception.context['verification_id'], pending.pk)
                self.assertEqual(ctx.exception.context['status'], in_flight)
                self.assertEqual(Verification.objects.filter(user=self.member).count(), 1)

    def test_resubmission_after_rejection_is_allowed(self):
        self.gate.submit(self.outsider, create_id_photo())

        # Fixing the email is enough for the second attempt to pass
        self.outsider.email = 'juan.fixed@minsu.edu.ph'
        self.outsider.save()

        outcome = self.gate.submit(self.outsider, create_id_photo())

        self.assertTrue(outcome.approved)
        self.assertEqual(Verification.objects.filter(user=self.outsider).count(), 2)
        assert_verification_invariant(self, self.outsider)

    def test_status_returns_latest_record(self):
        self.assertIsNone(self.gate.status(self.outsider))

        self.gate.submit(self.outsider, create_id_photo())
        first = self.gate.status(self.outsider)
        self.gate.submit(self.outsider, create_id_photo())
        second = self.gate.status(self.outsider)

        self.assertEqual(first.status, Verification.STATUS_REJECTED)
        self.assertNotEqual(first.pk, second.pk)
        self.assertGreater(second.pk, first.pk)

    def test_require_verified(self):
        from exchange.exceptions import VerificationRequired

        with self.assertRaises(VerificationRequired):
            require_verified(self.member)

        self.gate.submit(self.member, create_id_photo())
        require_verified(self.member)


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class VerificationReviewTests(TestCase):

    def setUp(self):
        self.gate = make_gate()
        self.admin = create_test_user('admin@minsu.edu.ph', role='admin')
        self.outsider = create_test_user('maria@gmail.com')
        self.outcome = self.gate.submit(self.outsider, create_id_photo())

    def test_admin_can_approve_rejected_attempt(self):
        verification = self.gate.review(self.outcome.verification, self.admin, approve=True)

        self.assertEqual(verification.status, Verification.STATUS_APPROVED)
        self.assertEqual(verification.reviewed_by, self.admin)
        self.assertEqual(verification.rejection_reason, '')
        assert_verification_invariant(self, self.outsider)
        self.assertTrue(self.outsider.is_verified)

    def test_admin_can_reject_approved_attempt(self):
        member = create_test_user('pedro@minsu.edu.ph')
        outcome = self.gate.submit(member, create_id_photo())

        verification = self.gate.review(outcome.verification, self.admin, approve=False, reason='Blurry photo.')

        self.assertEqual(verification.status, Verification.STATUS_REJECTED)
        self.assertEqual(verification.rejection_reason, 'Blurry photo.')
        assert_verification_invariant(self, member)
        self.assertFalse(member.is_verified)

    def test_rejection_requires_reason(self):
        with self.assertRaises(InvalidRequest) as ctx:
            self.gate.review(self.outcome.verification, self.admin, approve=False, reason='   ')

        self.assertEqual(ctx.exception.context['field'], 'rejection_reason')

    def test_non_admin_cannot_review(self):
        reviewer = create_test_user('student@minsu.edu.ph')

        with self.assertRaises(Forbidden):
            self.gate.review(self.outcome.verification, reviewer, approve=True)

        assert_verification_invariant(self, self.outsider)

    def test_only_latest_attempt_can_be_reviewed(self):
        older = self.outcome.verification
        self.gate.submit(self.outsider, create_id_photo())

        with self.assertRaises(InvalidRequest):
            self.gate.review(older, self.admin, approve=True)

        assert_verification_invariant(self, self.outsider)

    def test_queue_filters_by_status(self):
        member = create_test_user('ana@minsu.edu.ph')
        self.gate.submit(member, create_id_photo())

        rejected = list(self.gate.queue(Verification.STATUS_REJECTED))
        everything = list(self.gate.queue())

        self.assertEqual([v.user for v in rejected], [self.outsider])
        self.assertEqual(len(everything), 2)
