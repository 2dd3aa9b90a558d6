"""
Tests for item listings: creation, monthly quota, browsing, view counting,
updates and removal.
"""

import shutil
import tempfile
from datetime import datetime, timedelta
from io import BytesIO
from zoneinfo import ZoneInfo

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from PIL import Image

from exchange.catalog import ContentScreener, ListingCatalog, month_bounds
from exchange.exceptions import (
    InvalidRequest,
    ItemNotAvailable,
    QuotaExceeded,
    Unauthorized,
    VerificationRequired,
)
from exchange.models import Item, ItemImage, Transaction

User = get_user_model()

MANILA = ZoneInfo('Asia/Manila')
TEST_MEDIA_ROOT = tempfile.mkdtemp()


# ============================================================================
# Helper Functions
# ============================================================================

def create_test_user(email, is_verified=True, **kwargs):
    return User.objects.create_user(
        username=email,
        email=email,
        password='testpass123',
        student_id='2024-12345',
        is_verified=is_verified,
        **kwargs
    )


def create_test_image(filename='item.png', size=(100, 100)):
    file = BytesIO()
    Image.new('RGB', size, color='blue').save(file, 'PNG')
    return SimpleUploadedFile(filename, file.getvalue(), content_type='image/png')


def item_fields(**overrides):
    fields = {
        'title': 'Calculus Textbook',
        'description': 'Stewart, 8th edition. A few highlights.',
        'category': 'books',
        'condition': 'good',
        'campus': 'main',
    }
    fields.update(overrides)
    return fields


class FrozenClock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment


class RejectAllScreener(ContentScreener):
    def screen(self, item):
        return False


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class ListingCreateTests(TestCase):

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_MEDIA_ROOT, ignore_errors=True)

    def setUp(self):
        self.owner = create_test_user('owner@minsu.edu.ph')
        self.catalog = ListingCatalog()

    def test_create_lists_active_screened_item(self):
        item = self.catalog.create(self.owner, item_fields(), [create_test_image()])

        self.assertEqual(item.status, Item.STATUS_ACTIVE)
        self.assertTrue(item.is_screened)
        self.assertIsNotNone(item.posted_at)
        self.assertEqual(item.owner, self.owner)
        self.assertEqual(item.meetup_location, 'Arawatan Corner')

    def test_custom_meetup_location_is_kept(self):
        item = self.catalog.create(
            self.owner, item_fields(meetup_location='Library Entrance'), [create_test_image()]
        )

        self.assertEqual(item.meetup_location, 'Library Entrance')

    def test_first_image_is_primary(self):
        images = [create_test_image(f'photo{n}.png') for n in range(3)]

        item = self.catalog.create(self.owner, item_fields(), images)

        stored = list(ItemImage.objects.filter(item=item))
        self.assertEqual(len(stored), 3)
        self.assertEqual([image.is_primary for image in stored], [True, False, False])
        self.assertEqual([image.sort_order for image in stored], [0, 1, 2])
        self.assertTrue(all(image.image_path.startswith('items/') for image in stored))
        self.assertEqual(item.primary_image, stored[0])

    def test_screener_can_hold_item_for_review(self):
        catalog = ListingCatalog(screener=RejectAllScreener())

        item = catalog.create(self.owner, item_fields(), [create_test_image()])

        self.assertEqual(item.status, Item.STATUS_PENDING_REVIEW)
        self.assertFalse(item.is_screened)

    def test_unverified_owner_cannot_list(self):
        unverified = create_test_user('new@minsu.edu.ph', is_verified=False)

        with self.assertRaises(VerificationRequired):
            self.catalog.create(unverified, item_fields(), [create_test_image()])

        self.assertFalse(Item.objects.exists())

    def test_at_least_one_image_is_required(self):
        with self.assertRaises(InvalidRequest):
            self.catalog.create(self.owner, item_fields(), [])


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT, MONTHLY_ITEM_QUOTA=5)
class MonthlyQuotaTests(TestCase):

    def setUp(self):
        self.owner = create_test_user('owner@minsu.edu.ph')

    def create_at(self, moment, title='Item'):
        catalog = ListingCatalog(clock=FrozenClock(moment))
        return catalog.create(self.owner, item_fields(title=title), [create_test_image()])

    def test_sixth_item_in_a_month_is_refused(self):
        october = datetime(2026, 10, 5, 9, 0, tzinfo=MANILA)
        for n in range(5):
            self.create_at(october + timedelta(days=n), title=f'Item {n}')

        with self.assertRaises(QuotaExceeded) as ctx:
            self.create_at(october + timedelta(days=10), title='One too many')

        self.assertEqual(ctx.exception.context, {'limit': 5, 'used': 5})
        self.assertEqual(Item.objects.filter(owner=self.owner).count(), 5)

    def test_next_month_resets_the_quota(self):
        october = datetime(2026, 10, 5, 9, 0, tzinfo=MANILA)
        for n in range(5):
            self.create_at(october, title=f'Item {n}')

        item = self.create_at(datetime(2026, 11, 1, 0, 0, tzinfo=MANILA), title='November item')

        self.assertEqual(item.status, Item.STATUS_ACTIVE)

    def test_month_follows_local_time_zone(self):
        october = datetime(2026, 10, 5, 9, 0, tzinfo=MANILA)
        for n in range(5):
            self.create_at(october, title=f'Item {n}')

        # 2026-10-31 17:00 UTC is already November 1st in Manila
        item = self.create_at(datetime(2026, 10, 31, 17, 0, tzinfo=ZoneInfo('UTC')))

        self.assertEqual(item.owner, self.owner)

    def test_removed_items_still_count(self):
        october = datetime(2026, 10, 5, 9, 0, tzinfo=MANILA)
        for n in range(5):
            self.create_at(october, title=f'Item {n}')
        Item.objects.filter(owner=self.owner).update(status=Item.STATUS_REMOVED)

        with self.assertRaises(QuotaExceeded):
            self.create_at(october)

    def test_quota_is_per_user(self):
        october = datetime(2026, 10, 5, 9, 0, tzinfo=MANILA)
        for n in range(5):
            self.create_at(october, title=f'Item {n}')

        other = create_test_user('other@minsu.edu.ph')
        catalog = ListingCatalog(clock=FrozenClock(october))

        self.assertEqual(catalog.create(other, item_fields(), [create_test_image()]).owner, other)

    def test_monthly_usage(self):
        october = datetime(2026, 10, 5, 9, 0, tzinfo=MANILA)
        for n in range(3):
            self.create_at(october, title=f'Item {n}')

        usage = ListingCatalog(clock=FrozenClock(october)).monthly_usage(self.owner)

        self.assertEqual((usage.used, usage.limit, usage.remaining), (3, 5, 2))

    def test_month_bounds(self):
        start, end = month_bounds(datetime(2026, 12, 15, 12, 0, tzinfo=MANILA))

        self.assertEqual((start.year, start.month, start.day, start.hour), (2026, 12, 1, 0))
        self.assertEqual((end.year, end.month, end.day), (2027, 1, 1))


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class BrowseTests(TestCase):

    def setUp(self):
        self.owner = create_test_user('owner@minsu.edu.ph')
        self.catalog = ListingCatalog()
        base = datetime(2026, 10, 1, 8, 0, tzinfo=MANILA)

        self.book = self.make_item('Calculus Textbook', 'books', 'main', 'good', base, views=3)
        self.fan = self.make_item('Electric Fan', 'furniture', 'bongabong', 'fair', base + timedelta(hours=1), views=10)
        self.calc = self.make_item('Scientific Calculator', 'electronics', 'main', 'like-new',
                                   base + timedelta(hours=2), views=0)
        self.reserved = self.make_item('Reserved Lamp', 'electronics', 'main', 'good',
                                       base + timedelta(hours=3), status=Item.STATUS_RESERVED)

    def make_item(self, title, category, campus, condition, created_at, views=0, status=Item.STATUS_ACTIVE):
        return Item.objects.create(
            owner=self.owner,
            title=title,
            description=f'{title} in {condition} condition',
            category=category,
            campus=campus,
            condition=condition,
            status=status,
            views_count=views,
            created_at=created_at,
        )

    def test_only_active_items_are_listed_newest_first(self):
        self.assertEqual(list(self.catalog.browse()), [self.calc, self.fan, self.book])

    def test_sort_orders(self):
        self.assertEqual(list(self.catalog.browse(sort='oldest')), [self.book, self.fan, self.calc])
        self.assertEqual(list(self.catalog.browse(sort='popular')), [self.fan, self.book, self.calc])

    def test_unknown_sort_falls_back_to_newest(self):
        self.assertEqual(list(self.catalog.browse(sort='cheapest')), [self.calc, self.fan, self.book])

    def test_search_matches_title_and_description_case_insensitively(self):
        self.assertEqual(list(self.catalog.browse(search='CALC')), [self.calc, self.book])
        self.assertEqual(list(self.catalog.browse(search='fair condition')), [self.fan])

    def test_filters(self):
        self.assertEqual(list(self.catalog.browse(category='electronics')), [self.calc])
        self.assertEqual(list(self.catalog.browse(campus='bongabong')), [self.fan])
        self.assertEqual(list(self.catalog.browse(condition='good')), [self.book])
        self.assertEqual(
            list(self.catalog.browse(category='all', campus='all', condition='all')),
            [self.calc, self.fan, self.book],
        )

    def test_owned_by_includes_every_status(self):
        other = create_test_user('other@minsu.edu.ph')
        Item.objects.create(owner=other, title='Not mine', description='x')

        self.assertEqual(set(self.catalog.owned_by(self.owner)), {self.book, self.fan, self.calc, self.reserved})

    def test_every_view_counts(self):
        for _ in range(3):
            self.catalog.view(self.book)

        self.assertEqual(self.book.views_count, 6)
        self.book.refresh_from_db()
        self.assertEqual(self.book.views_count, 6)


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class UpdateAndRemoveTests(TestCase):

    def setUp(self):
        self.owner = create_test_user('owner@minsu.edu.ph')
        self.other = create_test_user('other@minsu.edu.ph')
        self.admin = create_test_user('admin@minsu.edu.ph', role='admin')
        self.catalog = ListingCatalog()
        self.item = self.catalog.create(self.owner, item_fields(), [create_test_image()])

    def test_owner_can_partially_update(self):
        self.catalog.update(self.item, self.owner, {'title': 'Calculus 8th ed.', 'condition': 'fair'})

        self.item.refresh_from_db()
        self.assertEqual(self.item.title, 'Calculus 8th ed.')
        self.assertEqual(self.item.condition, 'fair')
        self.assertEqual(self.item.category, 'books')

    def test_other_user_cannot_update(self):
        with self.assertRaises(Unauthorized):
            self.catalog.update(self.item, self.other, {'title': 'Mine now'})

        self.item.refresh_from_db()
        self.assertEqual(self.item.title, 'Calculus Textbook')

    def test_admin_cannot_edit_listing(self):
        with self.assertRaises(Unauthorized):
            self.catalog.update(self.item, self.admin, {'title': 'Edited'})

    def test_other_user_cannot_remove(self):
        with self.assertRaises(Unauthorized):
            self.catalog.remove(self.item, self.other)

        self.assertTrue(Item.objects.filter(pk=self.item.pk).exists())

    def test_owner_removal_deletes_item_and_images(self):
        deleted = self.catalog.remove(self.item, self.owner)

        self.assertTrue(deleted)
        self.assertFalse(Item.objects.filter(pk=self.item.pk).exists())
        self.assertFalse(ItemImage.objects.filter(item_id=self.item.pk).exists())

    def test_admin_can_remove(self):
        self.assertTrue(self.catalog.remove(self.item, self.admin))

    def test_item_with_history_is_soft_removed(self):
        Transaction.objects.create(
            item=self.item, donor=self.owner, receiver=self.other, status=Transaction.STATUS_CANCELLED
        )

        deleted = self.catalog.remove(self.item, self.owner)

        self.assertFalse(deleted)
        self.item.refresh_from_db()
        self.assertEqual(self.item.status, Item.STATUS_REMOVED)
        self.assertEqual(Transaction.objects.filter(item=self.item).count(), 1)

    def test_item_with_active_transaction_cannot_be_removed(self):
        Transaction.objects.create(
            item=self.item, donor=self.owner, receiver=self.other, status=Transaction.STATUS_APPROVED
        )

        with self.assertRaises(ItemNotAvailable):
            self.catalog.remove(self.item, self.owner)

        self.assertTrue(Item.objects.filter(pk=self.item.pk).exists())
