"""
Signal receivers that remove stored image files when their rows go away.

Rows deleted directly or through a cascade (deleting a user cascades to their
items and verifications) both fire post_delete, so stored files never outlive
the records that reference them.
"""

import logging

from django.db import transaction
from django.db.models.signals import post_delete
from django.dispatch import receiver

from .models import ItemImage, Transaction, Verification
from .storage import ImageStore

logger = logging.getLogger(__name__)


def _delete_after_commit(name):
    """Delete a stored file once the surrounding transaction commits."""
    if not name:
        return

    def delete():
        try:
            ImageStore().delete(name)
        except OSError:
            logger.exception(f"Could not delete stored image {name}")

    transaction.on_commit(delete)


@receiver(post_delete, sender=ItemImage)
def delete_item_image_file(sender, instance, **kwargs):
    _delete_after_commit(instance.image_path)


@receiver(post_delete, sender=Verification)
def delete_verification_image_file(sender, instance, **kwargs):
    _delete_after_commit(instance.id_image_path)


@receiver(post_delete, sender=Transaction)
def delete_proof_photo_file(sender, instance, **kwargs):
    _delete_after_commit(instance.proof_photo_path)
