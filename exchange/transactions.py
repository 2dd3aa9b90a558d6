"""
Transaction state machine.

Lifecycle:
    requested -> approved -> meeting -> completed
    requested | approved | meeting -> cancelled

completed and cancelled are terminal. complete is also allowed straight from
approved (the meeting stage is optional).

Every transition locks the transaction row (and the item row where the item
status changes) inside one database transaction, so the status write, the
coupled item write and reward accrual commit together or not at all. A second
caller racing on the same transaction waits for the lock, then sees the new
status and is refused. Notifications are sent after commit.
"""

import enum
import logging
from collections import namedtuple

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from .exceptions import (
    AlreadyRequested,
    Forbidden,
    InvalidTransition,
    ItemNotAvailable,
    ResourceNotFound,
)
from .models import Item, Transaction
from .notifications import DatabaseNotificationSink
from .rewards import RewardLedger
from .storage import ImageStore
from .verification import require_verified

logger = logging.getLogger(__name__)


class TransactionParticipant(enum.Enum):
    """The acting user's role in one transaction."""

    DONOR = 'donor'
    RECEIVER = 'receiver'
    NEITHER = 'neither'

    @classmethod
    def of(cls, txn, user):
        if user.pk == txn.donor_id:
            return cls.DONOR
        if user.pk == txn.receiver_id:
            return cls.RECEIVER
        return cls.NEITHER

    @property
    def is_participant(self):
        return self is not TransactionParticipant.NEITHER


BOTH_PARTIES = frozenset({TransactionParticipant.DONOR, TransactionParticipant.RECEIVER})

# target None: the action does not change the status.
Rule = namedtuple('Rule', ['sources', 'target', 'actors', 'forbidden_message'])

TRANSITIONS = {
    'approve': Rule(
        sources=frozenset({Transaction.STATUS_REQUESTED}),
        target=Transaction.STATUS_APPROVED,
        actors=frozenset({TransactionParticipant.DONOR}),
        forbidden_message='Only the donor can approve.',
    ),
    'start_meeting': Rule(
        sources=frozenset({Transaction.STATUS_APPROVED}),
        target=Transaction.STATUS_MEETING,
        actors=BOTH_PARTIES,
        forbidden_message='Unauthorized',
    ),
    'complete': Rule(
        sources=frozenset({Transaction.STATUS_APPROVED, Transaction.STATUS_MEETING}),
        target=Transaction.STATUS_COMPLETED,
        actors=BOTH_PARTIES,
        forbidden_message='Unauthorized',
    ),
    'upload_proof': Rule(
        sources=frozenset({Transaction.STATUS_APPROVED, Transaction.STATUS_MEETING}),
        target=None,
        actors=BOTH_PARTIES,
        forbidden_message='Unauthorized',
    ),
    'cancel': Rule(
        sources=frozenset({
            Transaction.STATUS_REQUESTED,
            Transaction.STATUS_APPROVED,
            Transaction.STATUS_MEETING,
        }),
        target=Transaction.STATUS_CANCELLED,
        actors=BOTH_PARTIES,
        forbidden_message='Unauthorized',
    ),
}

TIMESTAMP_FIELDS = {
    Transaction.STATUS_APPROVED: 'approved_at',
    Transaction.STATUS_MEETING: 'meeting_at',
    Transaction.STATUS_COMPLETED: 'completed_at',
    Transaction.STATUS_CANCELLED: 'cancelled_at',
}

ITEM_STATUS_ON = {
    Transaction.STATUS_COMPLETED: Item.STATUS_COMPLETED,
    Transaction.STATUS_CANCELLED: Item.STATUS_ACTIVE,
}


def allowed_actions(status):
    """Names of the actions permitted from ``status``."""
    return sorted(name for name, rule in TRANSITIONS.items() if status in rule.sources)


class TransactionEngine:
    """
    Two-party request/approve/meet/complete/cancel state machine.

    Args:
        ledger: RewardLedger credited on completion
        notifier: object with a ``notify`` method (NotificationSink)
        image_store: ImageStore for proof photos
        clock: Callable returning the current aware datetime
    """

    def __init__(self, ledger=None, notifier=None, image_store=None, clock=None):
        self.ledger = ledger or RewardLedger()
        self.notifier = notifier or DatabaseNotificationSink()
        self.image_store = image_store or ImageStore()
        self.clock = clock or timezone.now

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def visible_to(self, txn, user):
        return TransactionParticipant.of(txn, user).is_participant or user.is_admin()

    def requests_for(self, user):
        return (
            Transaction.objects.filter(receiver=user)
            .select_related('item', 'donor', 'receiver')
            .prefetch_related('item__images')
            .order_by('-requested_at', '-id')
        )

    def donations_for(self, user):
        return (
            Transaction.objects.filter(donor=user)
            .select_related('item', 'donor', 'receiver')
            .prefetch_related('item__images')
            .order_by('-requested_at', '-id')
        )

    def stats_for(self, user):
        """
        Contribution counts shown on profiles.

        Returns:
            dict: items_shared and items_received (completed transactions as
            donor / receiver), their sum as completed_transactions, and
            active_listings
        """
        completed = Transaction.objects.filter(status=Transaction.STATUS_COMPLETED)
        counts = completed.filter(Q(donor=user) | Q(receiver=user)).aggregate(
            items_shared=Count('pk', filter=Q(donor=user)),
            items_received=Count('pk', filter=Q(receiver=user)),
        )
        return {
            'items_shared': counts['items_shared'],
            'items_received': counts['items_received'],
            'active_listings': Item.objects.filter(owner=user, status=Item.STATUS_ACTIVE).count(),
            'completed_transactions': counts['items_shared'] + counts['items_received'],
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request(self, item, receiver):
        """
        Request an item: creates a transaction and reserves the item.

        The item row is locked so that of two concurrent requests only one
        sees the item active; the other fails with ItemNotAvailable.

        Raises:
            VerificationRequired: receiver is not verified
            Forbidden: receiver owns the item
            AlreadyRequested: receiver has a non-cancelled transaction for it
            ItemNotAvailable: item is not active
        """
        require_verified(receiver)

        with transaction.atomic():
            try:
                locked_item = Item.objects.select_for_update().get(pk=item.pk)
            except Item.DoesNotExist:
                raise ResourceNotFound('Item not found.', item_id=item.pk)

            if locked_item.owner_id == receiver.pk:
                raise Forbidden('You cannot request your own item.', code='own_item')

            existing = Transaction.objects.filter(
                item=locked_item,
                receiver=receiver,
            ).exclude(status=Transaction.STATUS_CANCELLED).first()
            if existing is not None:
                raise AlreadyRequested(transaction_id=existing.pk, status=existing.status)

            if locked_item.status != Item.STATUS_ACTIVE:
                logger.warning(
                    f"Request refused, item not available. "
                    f"Item ID: {locked_item.pk}, Status: {locked_item.status}, "
                    f"Receiver: {receiver.email} (ID: {receiver.pk})"
                )
                raise ItemNotAvailable(item_status=locked_item.status)

            txn = Transaction.objects.create(
                item=locked_item,
                donor_id=locked_item.owner_id,
                receiver=receiver,
                status=Transaction.STATUS_REQUESTED,
                meetup_location=locked_item.meetup_location,
                requested_at=self.clock(),
            )

            locked_item.status = Item.STATUS_RESERVED
            locked_item.save(update_fields=['status', 'updated_at'])

        item.status = locked_item.status

        logger.info(
            f"Item requested. Transaction ID: {txn.pk}, Item ID: {locked_item.pk}, "
            f"Donor ID: {txn.donor_id}, Receiver: {receiver.email} (ID: {receiver.pk})"
        )

        self._notify(
            txn.donor_id,
            'item_request',
            'New Item Request',
            f'{receiver.full_name} has requested your item "{locked_item.title}".',
            f'/browseitem/{locked_item.pk}',
            txn.pk,
            'transaction',
        )
        return txn

    def approve(self, txn, actor):
        txn = self._apply('approve', txn, actor)
        self._notify(
            txn.receiver_id,
            'request_approved',
            'Request Approved',
            f'Your request for "{txn.item.title}" has been approved!',
            f'/browseitem/{txn.item_id}',
            txn.pk,
            'transaction',
        )
        return txn

    def start_meeting(self, txn, actor):
        return self._apply('start_meeting', txn, actor)

    def complete(self, txn, actor):
        """
        Complete the handoff: item completed, donor and receiver rewarded.

        The status check-and-set happens under the transaction row lock, so
        points are awarded exactly once even if both parties complete at the
        same moment.
        """
        txn = self._apply('complete', txn, actor)
        self._notify(
            txn.other_party_id(actor.pk),
            'transaction_completed',
            'Transaction Completed',
            f'The transaction for "{txn.item.title}" has been completed.',
            f'/browseitem/{txn.item_id}',
            txn.pk,
            'transaction',
        )
        return txn

    def cancel(self, txn, actor):
        """Cancel a non-terminal transaction and make the item available again."""
        txn = self._apply('cancel', txn, actor)
        self._notify(
            txn.other_party_id(actor.pk),
            'transaction_cancelled',
            'Transaction Cancelled',
            f'The transaction for "{txn.item.title}" has been cancelled.',
            f'/browseitem/{txn.item_id}',
            txn.pk,
            'transaction',
        )
        return txn

    def upload_proof(self, txn, actor, photo):
        """Attach a handoff proof photo; the status is unchanged."""
        return self._apply('upload_proof', txn, actor, photo=photo)

    def _notify(self, recipient_id, type, title, body, link, related_id, related_type):
        # Runs after commit; a failing sink must not fail the caller.
        try:
            self.notifier.notify(recipient_id, type, title, body, link, related_id, related_type)
        except Exception:
            logger.exception(
                f"Notification sink failed. Recipient: {recipient_id}, Type: {type}, "
                f"Related: {related_type}#{related_id}"
            )

    def _apply(self, action, txn, actor, photo=None):
        rule = TRANSITIONS[action]

        with transaction.atomic():
            try:
                locked = Transaction.objects.select_for_update().get(pk=txn.pk)
            except Transaction.DoesNotExist:
                raise ResourceNotFound('Transaction not found.', transaction_id=txn.pk)

            participant = TransactionParticipant.of(locked, actor)
            if participant not in rule.actors:
                logger.warning(
                    f"Unauthorized transaction action. Action: {action}, "
                    f"Transaction ID: {locked.pk}, User: {actor.email} (ID: {actor.pk}), "
                    f"Role: {participant.value}"
                )
                raise Forbidden(rule.forbidden_message, action=action)

            old_status = locked.status
            if old_status not in rule.sources:
                raise InvalidTransition(old_status, action)

            now = self.clock()
            update_fields = ['updated_at']

            if photo is not None:
                previous_photo = locked.proof_photo_path
                locked.proof_photo_path = self.image_store.store(photo, 'proofs')
                update_fields.append('proof_photo_path')
            else:
                previous_photo = ''

            if rule.target is not None:
                locked.status = rule.target
                setattr(locked, TIMESTAMP_FIELDS[rule.target], now)
                update_fields += ['status', TIMESTAMP_FIELDS[rule.target]]

            locked.save(update_fields=update_fields)

            item_status = ITEM_STATUS_ON.get(rule.target)
            if item_status is not None:
                item = Item.objects.select_for_update().get(pk=locked.item_id)
                item.status = item_status
                item.save(update_fields=['status', 'updated_at'])

            if rule.target == Transaction.STATUS_COMPLETED:
                self.ledger.award(locked.donor, settings.DONOR_COMPLETION_POINTS)
                self.ledger.award(locked.receiver, settings.RECEIVER_COMPLETION_POINTS)

        if previous_photo:
            self.image_store.delete(previous_photo)

        logger.info(
            f"Transaction {action}. Transaction ID: {locked.pk}, "
            f"Old Status: {old_status}, New Status: {locked.status}, "
            f"User: {actor.email} (ID: {actor.pk}), Role: {participant.value}"
        )
        return locked
