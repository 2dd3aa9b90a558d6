"""
Tests for the transaction state machine.

Test Coverage:
- Full happy path: request -> approve -> meeting -> complete
- Request guards: own item, duplicate request, unavailable item, unverified receiver
- Exhaustive transition table: every disallowed (status, action) pair fails
- Actor rules: donor-only approve, participants only for everything else
- Completing twice awards points once
- Cancel restores the item from every cancellable status
- Proof upload keeps the status
- Notifications go to the other party and never roll back a transition
"""

import shutil
import tempfile
from io import BytesIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError
from django.test import TestCase, override_settings
from PIL import Image

from exchange.exceptions import (
    AlreadyRequested,
    Forbidden,
    InvalidTransition,
    ItemNotAvailable,
    VerificationRequired,
)
from exchange.models import Item, Notification, Transaction
from exchange.transactions import (
    TRANSITIONS,
    TransactionEngine,
    TransactionParticipant,
    allowed_actions,
)

User = get_user_model()

TEST_MEDIA_ROOT = tempfile.mkdtemp()

ALL_STATUSES = [status for status, _ in Transaction.STATUS_CHOICES]

ITEM_STATUS_FOR = {
    Transaction.STATUS_REQUESTED: Item.STATUS_RESERVED,
    Transaction.STATUS_APPROVED: Item.STATUS_RESERVED,
    Transaction.STATUS_MEETING: Item.STATUS_RESERVED,
    Transaction.STATUS_COMPLETED: Item.STATUS_COMPLETED,
    Transaction.STATUS_CANCELLED: Item.STATUS_ACTIVE,
}


# ============================================================================
# Helper Functions
# ============================================================================

def create_test_user(email, is_verified=True, **kwargs):
    return User.objects.create_user(
        username=email,
        email=email,
        password='testpass123',
        first_name=email.split('@')[0].title(),
        is_verified=is_verified,
        **kwargs
    )


def create_item(owner, status=Item.STATUS_ACTIVE, title='Scientific Calculator'):
    return Item.objects.create(
        owner=owner,
        title=title,
        description='Casio fx-991ES, works fine.',
        category='electronics',
        status=status,
        meetup_location='Library Entrance',
    )


def create_proof_photo():
    file = BytesIO()
    Image.new('RGB', (300, 300), color='green').save(file, 'PNG')
    return SimpleUploadedFile('proof.png', file.getvalue(), content_type='image/png')


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, recipient_id, type, title, body, link='', related_id=None, related_type=''):
        self.sent.append((recipient_id, type, related_id))


class BrokenNotifier:
    def notify(self, *args, **kwargs):
        raise RuntimeError('push gateway unreachable')


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class TransactionTestBase(TestCase):

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_MEDIA_ROOT, ignore_errors=True)

    def setUp(self):
        self.donor = create_test_user('donor@minsu.edu.ph')
        self.receiver = create_test_user('receiver@minsu.edu.ph')
        self.outsider = create_test_user('outsider@minsu.edu.ph')
        self.item = create_item(self.donor)
        self.engine = TransactionEngine()

    def transaction_in(self, status):
        """A transaction for a fresh item, placed directly in ``status``."""
        item = create_item(self.donor, status=ITEM_STATUS_FOR[status], title=f'Item in {status}')
        return Transaction.objects.create(
            item=item,
            donor=self.donor,
            receiver=self.receiver,
            status=status,
            meetup_location=item.meetup_location,
        )

    def reload(self, *objects):
        for obj in objects:
            obj.refresh_from_db()


class HappyPathTests(TransactionTestBase):

    def test_full_exchange(self):
        txn = self.engine.request(self.item, self.receiver)
        self.reload(self.item)
        self.assertEqual(txn.status, Transaction.STATUS_REQUESTED)
        self.assertEqual(txn.donor, self.donor)
        self.assertEqual(txn.meetup_location, 'Library Entrance')
        self.assertEqual(self.item.status, Item.STATUS_RESERVED)

        txn = self.engine.approve(txn, self.donor)
        self.assertEqual(txn.status, Transaction.STATUS_APPROVED)
        self.assertIsNotNone(txn.approved_at)

        txn = self.engine.start_meeting(txn, self.receiver)
        self.assertEqual(txn.status, Transaction.STATUS_MEETING)
        self.assertIsNotNone(txn.meeting_at)

        txn = self.engine.complete(txn, self.donor)
        self.assertEqual(txn.status, Transaction.STATUS_COMPLETED)
        self.assertIsNotNone(txn.completed_at)

        self.reload(self.item, self.donor, self.receiver)
        self.assertEqual(self.item.status, Item.STATUS_COMPLETED)
        self.assertEqual(self.donor.points, 10)
        self.assertEqual(self.receiver.points, 5)
        self.assertEqual(self.donor.tier, User.TIER_BRONZE)

    def test_complete_directly_from_approved(self):
        txn = self.engine.request(self.item, self.receiver)
        txn = self.engine.approve(txn, self.donor)

        txn = self.engine.complete(txn, self.receiver)

        self.assertEqual(txn.status, Transaction.STATUS_COMPLETED)
        self.assertIsNone(txn.meeting_at)

    def test_completion_recomputes_tier(self):
        User.objects.filter(pk=self.donor.pk).update(points=95)
        txn = self.transaction_in(Transaction.STATUS_MEETING)

        self.engine.complete(txn, self.donor)

        self.reload(self.donor)
        self.assertEqual(self.donor.points, 105)
        self.assertEqual(self.donor.tier, User.TIER_SILVER)


class RequestGuardTests(TransactionTestBase):

    def test_cannot_request_own_item(self):
        with self.assertRaises(Forbidden) as ctx:
            self.engine.request(self.item, self.donor)

        self.assertEqual(str(ctx.exception), 'You cannot request your own item.')
        self.assertFalse(Transaction.objects.exists())

    def test_unverified_receiver_is_refused(self):
        unverified = create_test_user('new@minsu.edu.ph', is_verified=False)

        with self.assertRaises(VerificationRequired):
            self.engine.request(self.item, unverified)

    def test_reserved_item_is_not_available(self):
        self.engine.request(self.item, self.receiver)

        with self.assertRaises(ItemNotAvailable) as ctx:
            self.engine.request(self.item, self.outsider)

        self.assertEqual(ctx.exception.context['item_status'], Item.STATUS_RESERVED)

    def test_duplicate_request_is_refused(self):
        txn = self.engine.request(self.item, self.receiver)

        with self.assertRaises(AlreadyRequested) as ctx:
            self.engine.request(self.item, self.receiver)

        self.assertEqual(ctx.exception.context['transaction_id'], txn.pk)

    def test_duplicate_is_reported_before_availability(self):
        txn = self.engine.request(self.item, self.receiver)
        self.engine.approve(txn, self.donor)

        with self.assertRaises(AlreadyRequested):
            self.engine.request(self.item, self.receiver)

    def test_inactive_items_cannot_be_requested(self):
        for status in (Item.STATUS_PENDING_REVIEW, Item.STATUS_COMPLETED, Item.STATUS_REMOVED):
            with self.subTest(status=status):
                item = create_item(self.donor, status=status, title=f'{status} item')
                with self.assertRaises(ItemNotAvailable):
                    self.engine.request(item, self.receiver)

    def test_receiver_can_request_again_after_cancelling(self):
        first = self.engine.request(self.item, self.receiver)
        self.engine.cancel(first, self.receiver)

        second = self.engine.request(self.item, self.receiver)

        self.assertNotEqual(first.pk, second.pk)
        self.assertEqual(second.status, Transaction.STATUS_REQUESTED)

    def test_at_most_one_open_transaction_per_item(self):
        self.engine.request(self.item, self.receiver)
        for user in (self.outsider, create_test_user('late@minsu.edu.ph')):
            with self.assertRaises(ItemNotAvailable):
                self.engine.request(self.item, user)

        open_count = Transaction.objects.filter(item=self.item).exclude(
            status=Transaction.STATUS_CANCELLED
        ).count()
        self.assertEqual(open_count, 1)


class TransitionTableTests(TransactionTestBase):

    def run_action(self, action, txn, actor):
        if action == 'upload_proof':
            return self.engine.upload_proof(txn, actor, create_proof_photo())
        return getattr(self.engine, action)(txn, actor)

    def test_every_disallowed_pair_fails(self):
        for status in ALL_STATUSES:
            for action, rule in TRANSITIONS.items():
                if status in rule.sources:
                    continue
                with self.subTest(status=status, action=action):
                    txn = self.transaction_in(status)
                    item_status = txn.item.status

                    with self.assertRaises(InvalidTransition) as ctx:
                        self.run_action(action, txn, self.donor)

                    self.assertEqual(ctx.exception.current_status, status)
                    self.assertEqual(ctx.exception.action, action)
                    self.assertEqual(ctx.exception.status_code, 422)
                    txn.refresh_from_db()
                    txn.item.refresh_from_db()
                    self.assertEqual(txn.status, status)
                    self.assertEqual(txn.item.status, item_status)

    def test_complete_from_requested_fails(self):
        txn = self.engine.request(self.item, self.receiver)

        with self.assertRaises(InvalidTransition):
            self.engine.complete(txn, self.donor)

    def test_allowed_actions(self):
        self.assertEqual(allowed_actions(Transaction.STATUS_REQUESTED), ['approve', 'cancel'])
        self.assertEqual(
            allowed_actions(Transaction.STATUS_MEETING),
            ['cancel', 'complete', 'upload_proof'],
        )
        self.assertEqual(allowed_actions(Transaction.STATUS_COMPLETED), [])
        self.assertEqual(allowed_actions(Transaction.STATUS_CANCELLED), [])


class ActorRuleTests(TransactionTestBase):

    def test_only_donor_can_approve(self):
        txn = self.engine.request(self.item, self.receiver)

        for actor in (self.receiver, self.outsider):
            with self.subTest(actor=actor.email):
                with self.assertRaises(Forbidden):
                    self.engine.approve(txn, actor)

        txn.refresh_from_db()
        self.assertEqual(txn.status, Transaction.STATUS_REQUESTED)

    def test_outsider_cannot_act(self):
        for status, action in [
            (Transaction.STATUS_REQUESTED, 'cancel'),
            (Transaction.STATUS_APPROVED, 'start_meeting'),
            (Transaction.STATUS_MEETING, 'complete'),
        ]:
            with self.subTest(action=action):
                txn = self.transaction_in(status)
                with self.assertRaises(Forbidden):
                    getattr(self.engine, action)(txn, self.outsider)
                txn.refresh_from_db()
                self.assertEqual(txn.status, status)

    def test_actor_is_checked_before_status(self):
        txn = self.transaction_in(Transaction.STATUS_COMPLETED)

        with self.assertRaises(Forbidden):
            self.engine.cancel(txn, self.outsider)

    def test_either_party_can_cancel(self):
        for actor in (self.donor, self.receiver):
            with self.subTest(actor=actor.email):
                txn = self.transaction_in(Transaction.STATUS_APPROVED)
                self.assertEqual(self.engine.cancel(txn, actor).status, Transaction.STATUS_CANCELLED)

    def test_participant_roles(self):
        txn = self.transaction_in(Transaction.STATUS_REQUESTED)

        self.assertEqual(TransactionParticipant.of(txn, self.donor), TransactionParticipant.DONOR)
        self.assertEqual(TransactionParticipant.of(txn, self.receiver), TransactionParticipant.RECEIVER)
        self.assertEqual(TransactionParticipant.of(txn, self.outsider), TransactionParticipant.NEITHER)

    def test_visibility(self):
        txn = self.transaction_in(Transaction.STATUS_REQUESTED)
        admin = create_test_user('admin@minsu.edu.ph', role='admin')

        self.assertTrue(self.engine.visible_to(txn, self.donor))
        self.assertTrue(self.engine.visible_to(txn, self.receiver))
        self.assertTrue(self.engine.visible_to(txn, admin))
        self.assertFalse(self.engine.visible_to(txn, self.outsider))


class CompletionAndCancelTests(TransactionTestBase):

    def test_completing_twice_awards_points_once(self):
        txn = self.transaction_in(Transaction.STATUS_MEETING)
        self.engine.complete(txn, self.donor)

        with self.assertRaises(InvalidTransition):
            self.engine.complete(txn, self.receiver)

        self.reload(self.donor, self.receiver)
        self.assertEqual(self.donor.points, 10)
        self.assertEqual(self.receiver.points, 5)

    def test_cancel_restores_item_from_every_open_status(self):
        for status in (Transaction.STATUS_REQUESTED, Transaction.STATUS_APPROVED, Transaction.STATUS_MEETING):
            with self.subTest(status=status):
                txn = self.transaction_in(status)

                txn = self.engine.cancel(txn, self.receiver)

                txn.item.refresh_from_db()
                self.assertEqual(txn.status, Transaction.STATUS_CANCELLED)
                self.assertIsNotNone(txn.cancelled_at)
                self.assertEqual(txn.item.status, Item.STATUS_ACTIVE)

    def test_cancel_awards_no_points(self):
        txn = self.transaction_in(Transaction.STATUS_MEETING)

        self.engine.cancel(txn, self.donor)

        self.reload(self.donor, self.receiver)
        self.assertEqual((self.donor.points, self.receiver.points), (0, 0))

    def test_ledger_failure_rolls_back_completion(self):
        txn = self.transaction_in(Transaction.STATUS_MEETING)

        with mock.patch.object(self.engine.ledger, 'award', side_effect=DatabaseError('disk full')):
            with self.assertRaises(DatabaseError):
                self.engine.complete(txn, self.donor)

        txn.refresh_from_db()
        txn.item.refresh_from_db()
        self.assertEqual(txn.status, Transaction.STATUS_MEETING)
        self.assertEqual(txn.item.status, Item.STATUS_RESERVED)


class ProofUploadTests(TransactionTestBase):

    def test_proof_is_stored_and_status_unchanged(self):
        txn = self.transaction_in(Transaction.STATUS_MEETING)

        txn = self.engine.upload_proof(txn, self.receiver, create_proof_photo())

        self.assertEqual(txn.status, Transaction.STATUS_MEETING)
        self.assertTrue(txn.proof_photo_path.startswith('proofs/'))

    def test_new_proof_replaces_previous_file(self):
        txn = self.transaction_in(Transaction.STATUS_APPROVED)
        first = self.engine.upload_proof(txn, self.donor, create_proof_photo()).proof_photo_path

        with mock.patch.object(self.engine.image_store, 'delete') as delete:
            second = self.engine.upload_proof(txn, self.donor, create_proof_photo()).proof_photo_path

        self.assertNotEqual(first, second)
        delete.assert_called_once_with(first)

    def test_outsider_cannot_upload_proof(self):
        txn = self.transaction_in(Transaction.STATUS_MEETING)

        with self.assertRaises(Forbidden):
            self.engine.upload_proof(txn, self.outsider, create_proof_photo())


class NotificationTests(TransactionTestBase):

    def setUp(self):
        super().setUp()
        self.notifier = RecordingNotifier()
        self.engine = TransactionEngine(notifier=self.notifier)

    def test_each_transition_notifies_the_other_party(self):
        txn = self.engine.request(self.item, self.receiver)
        self.engine.approve(txn, self.donor)
        self.engine.start_meeting(txn, self.receiver)
        self.engine.complete(txn, self.receiver)

        self.assertEqual(self.notifier.sent, [
            (self.donor.pk, 'item_request', txn.pk),
            (self.receiver.pk, 'request_approved', txn.pk),
            (self.donor.pk, 'transaction_completed', txn.pk),
        ])

    def test_cancel_notifies_the_other_party(self):
        txn = self.transaction_in(Transaction.STATUS_APPROVED)

        self.engine.cancel(txn, self.donor)

        self.assertEqual(self.notifier.sent, [(self.receiver.pk, 'transaction_cancelled', txn.pk)])

    def test_failed_transition_sends_nothing(self):
        txn = self.transaction_in(Transaction.STATUS_COMPLETED)

        with self.assertRaises(InvalidTransition):
            self.engine.cancel(txn, self.donor)

        self.assertEqual(self.notifier.sent, [])


class DatabaseNotificationTests(TransactionTestBase):

    def test_notification_rows_are_recorded(self):
        txn = self.engine.request(self.item, self.receiver)

        notification = Notification.objects.get(recipient=self.donor)
        self.assertEqual(notification.type, 'item_request')
        self.assertEqual(notification.related_id, txn.pk)
        self.assertEqual(notification.related_type, 'transaction')
        self.assertEqual(notification.link, f'/browseitem/{self.item.pk}')
        self.assertIn('Scientific Calculator', notification.message)
        self.assertFalse(notification.is_read)

    def test_notification_failure_does_not_roll_back(self):
        txn = self.transaction_in(Transaction.STATUS_MEETING)

        with mock.patch.object(Notification.objects, 'create', side_effect=DatabaseError('table locked')):
            with self.assertLogs('exchange.notifications', level='ERROR'):
                txn = self.engine.complete(txn, self.donor)

        txn.refresh_from_db()
        self.reload(self.donor)
        self.assertEqual(txn.status, Transaction.STATUS_COMPLETED)
        self.assertEqual(self.donor.points, 10)
        self.assertFalse(Notification.objects.exists())

    def test_any_sink_error_is_logged_after_commit(self):
        engine = TransactionEngine(notifier=BrokenNotifier())
        txn = self.transaction_in(Transaction.STATUS_APPROVED)

        with self.assertLogs('exchange.transactions', level='ERROR') as logs:
            returned = engine.complete(txn, self.receiver)

        self.assertEqual(returned.status, Transaction.STATUS_COMPLETED)
        self.assertIn('Notification sink failed', logs.output[0])
        txn.refresh_from_db()
        self.reload(self.donor, self.receiver)
        self.assertEqual(txn.status, Transaction.STATUS_COMPLETED)
        self.assertEqual(self.donor.points, 10)
        self.assertEqual(self.receiver.points, 5)

    def test_request_survives_a_failing_sink(self):
        engine = TransactionEngine(notifier=BrokenNotifier())

        with self.assertLogs('exchange.transactions', level='ERROR'):
            txn = engine.request(self.item, self.receiver)

        self.reload(self.item)
        self.assertEqual(txn.status, Transaction.STATUS_REQUESTED)
        self.assertEqual(self.item.status, Item.STATUS_RESERVED)
