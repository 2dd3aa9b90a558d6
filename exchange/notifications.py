"""
Fire-and-forget notification delivery.

Services call ``notify`` after their own database work has finished. A
failure to record a notification is logged and never propagates, so it can
not undo the state change it reports.
"""

import logging

from django.db import DatabaseError, transaction

from .models import Notification

logger = logging.getLogger(__name__)


class DatabaseNotificationSink:
    """Record notifications as rows the front end polls for."""

    def notify(self, recipient_id, type, title, body, link='', related_id=None, related_type=''):
        try:
            with transaction.atomic():
                Notification.objects.create(
                    recipient_id=recipient_id,
                    type=type,
                    title=title,
                    message=body,
                    link=link or '',
                    related_id=related_id,
                    related_type=related_type or '',
                )
        except DatabaseError:
            logger.exception(
                f"Failed to record notification. "
                f"Recipient: {recipient_id}, Type: {type}, Related: {related_type}#{related_id}"
            )
            return

        logger.debug(f"Notification {type} recorded for user {recipient_id}")


def unread_for(user):
    return Notification.objects.filter(recipient=user, read_at__isnull=True)


def mark_all_read(user, when):
    """Mark every unread notification of ``user`` as read; returns the count."""
    return unread_for(user).update(read_at=when)
