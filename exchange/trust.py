"""
Rule-based trust scoring for identity verification.

The score is a simulation standing in for a real ID-verification provider:
five deterministic checks on the account and the uploaded ID photo, plus a
bounded pseudo-random "ML confidence" bonus that takes the place of an
OCR/ML call. The randomness source is injectable so tests can pin scores.

Components (additive):
- Institutional email domain: +30
- Institutional ID format (e.g. 2024-12345): +20
- User type is student, faculty or staff: +10
- ID photo byte size within [50 000, 5 120 000]: +15
- ID photo at least 200x200 pixels: +15
- ML confidence bonus: 5.00 - 10.00

The total is capped at 99.9; a score at or above the approval threshold
approves the attempt.
"""

import random
import re
from collections import namedtuple
from decimal import Decimal

from django.conf import settings

from .storage import ImageStore


TrustScore = namedtuple('TrustScore', ['score', 'reasons', 'approved'])

EMAIL_DOMAIN_POINTS = Decimal('30')
ID_FORMAT_POINTS = Decimal('20')
USER_TYPE_POINTS = Decimal('10')
FILE_SIZE_POINTS = Decimal('15')
DIMENSION_POINTS = Decimal('15')

MIN_FILE_SIZE = 50000
MAX_FILE_SIZE = 5120000
MIN_DIMENSION = 200

# Bonus is drawn as an integer number of hundredths.
ML_BONUS_MIN_HUNDREDTHS = 500
ML_BONUS_MAX_HUNDREDTHS = 1000

MAX_SCORE = Decimal('99.9')
VALID_USER_TYPES = ('student', 'faculty', 'staff')


class IdentityTrustScorer:
    """
    Compute a trust score and decision for a verification attempt.

    Args:
        rng: random.Random-like object used for the ML confidence bonus
        image_store: ImageStore used to read photo dimensions
        email_domain: Required email suffix (defaults to settings)
        id_pattern: Regex for institutional IDs (defaults to settings)
        threshold: Minimum score for approval (defaults to settings)
    """

    def __init__(self, rng=None, image_store=None, email_domain=None,
                 id_pattern=None, threshold=None):
        self.rng = rng or random.Random()
        self.image_store = image_store or ImageStore()
        self.email_domain = (email_domain or settings.INSTITUTION_EMAIL_DOMAIN).lower()
        self.id_pattern = re.compile(id_pattern or settings.INSTITUTIONAL_ID_PATTERN)
        if threshold is None:
            threshold = settings.VERIFICATION_APPROVAL_THRESHOLD
        self.threshold = Decimal(str(threshold))

    def ml_confidence_bonus(self):
        """Simulated OCR/ML confidence, uniformly 5.00 - 10.00."""
        hundredths = self.rng.randint(ML_BONUS_MIN_HUNDREDTHS, ML_BONUS_MAX_HUNDREDTHS)
        return Decimal(hundredths) / 100

    def score(self, user, image):
        """
        Score a user and their submitted ID photo.

        Args:
            user: User submitting the verification
            image: Uploaded file (needs .size and readable content)

        Returns:
            TrustScore: (score as Decimal, list of failed-check reasons, approved flag)
        """
        total = Decimal('0')
        reasons = []

        if (user.email or '').lower().endswith(self.email_domain):
            total += EMAIL_DOMAIN_POINTS
        else:
            reasons.append(f'Email is not from the institutional domain ({self.email_domain}).')

        if self.id_pattern.match(user.student_id or ''):
            total += ID_FORMAT_POINTS
        else:
            reasons.append('Student/Employee ID format is invalid.')

        if user.user_type in VALID_USER_TYPES:
            total += USER_TYPE_POINTS
        else:
            reasons.append('Invalid user type.')

        size = getattr(image, 'size', None) or 0
        if MIN_FILE_SIZE <= size <= MAX_FILE_SIZE:
            total += FILE_SIZE_POINTS
        else:
            reasons.append('ID image file size is outside expected range.')

        # Unreadable dimensions are a soft failure: no points, scoring continues.
        dimensions = self.image_store.read_dimensions(image)
        if dimensions is None:
            reasons.append('Could not read image dimensions.')
        elif dimensions[0] >= MIN_DIMENSION and dimensions[1] >= MIN_DIMENSION:
            total += DIMENSION_POINTS
        else:
            reasons.append('ID image resolution is too low.')

        total += self.ml_confidence_bonus()

        final = min(MAX_SCORE, total).quantize(Decimal('0.01'))
        return TrustScore(final, reasons, final >= self.threshold)
