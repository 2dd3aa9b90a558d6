"""
Validators for uploaded images and institutional identifiers.
"""

import re

from django.conf import settings
from django.core.exceptions import ValidationError


MAX_IMAGE_SIZE = 5 * 1024 * 1024

VALID_IMAGE_EXTENSIONS = ['jpg', 'jpeg', 'png', 'webp']

VALID_IMAGE_CONTENT_TYPES = [
    'image/jpeg',
    'image/png',
    'image/webp',
]


def validate_image_upload(image):
    """
    Validate an uploaded image file (ID photo, item photo or handoff proof).

    Checks:
    - File size (max 5MB)
    - File extension (jpg, jpeg, png, webp)
    - MIME type, when the client sent one

    Args:
        image: UploadedFile object

    Raises:
        ValidationError: If image is invalid
    """
    if not image:
        return

    if image.size > MAX_IMAGE_SIZE:
        raise ValidationError(
            f'Image file size cannot exceed 5MB. Current size: {image.size / (1024 * 1024):.2f}MB',
            code='image_too_large'
        )

    file_name = (image.name or '').lower()
    if not any(file_name.endswith(f'.{ext}') for ext in VALID_IMAGE_EXTENSIONS):
        raise ValidationError(
            f'Invalid image format. Allowed formats: {", ".join(VALID_IMAGE_EXTENSIONS)}',
            code='invalid_image_format'
        )

    content_type = getattr(image, 'content_type', None)
    if content_type and content_type not in VALID_IMAGE_CONTENT_TYPES:
        raise ValidationError(
            f'Invalid image content type: {content_type}',
            code='invalid_content_type'
        )


def validate_institutional_id(value):
    """
    Validate a student/employee ID against INSTITUTIONAL_ID_PATTERN.

    Empty values are allowed; the trust scorer treats them as a failed check.
    """
    if not value:
        return

    if not re.match(settings.INSTITUTIONAL_ID_PATTERN, value):
        raise ValidationError(
            'Student/Employee ID must look like 2024-12345.',
            code='invalid_institutional_id'
        )
