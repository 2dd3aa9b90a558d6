"""
Item listings: creation under a monthly quota, browsing, view counting,
owner updates and removal.
"""

import logging
from collections import namedtuple
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import InvalidRequest, ItemNotAvailable, QuotaExceeded, Unauthorized
from .models import Item, ItemImage, Transaction
from .storage import ImageStore
from .verification import require_verified

logger = logging.getLogger(__name__)


UPDATABLE_FIELDS = ('title', 'description', 'category', 'condition', 'campus', 'meetup_location')

SORT_ORDERS = {
    'newest': ('-created_at', '-id'),
    'oldest': ('created_at', 'id'),
    'popular': ('-views_count', '-created_at'),
}

QuotaUsage = namedtuple('QuotaUsage', ['used', 'limit', 'remaining'])


class ContentScreener:
    """
    Moderation hook run on every new listing.

    ``screen`` returns True when the listing may go live. Listings that fail
    stay in pending_review for manual moderation.
    """

    def screen(self, item):
        raise NotImplementedError


class AutoApproveScreener(ContentScreener):
    """Passes every listing; placeholder until an automated screen exists."""

    def screen(self, item):
        return True


def month_bounds(moment):
    """
    Return the [start, end) datetimes of the calendar month containing ``moment``.

    Boundaries are computed in the project's TIME_ZONE.
    """
    local = timezone.localtime(moment)
    start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = (start + timedelta(days=32)).replace(day=1)
    return start, end


class ListingCatalog:
    """
    Item CRUD with quota enforcement.

    Args:
        screener: ContentScreener applied to new listings
        image_store: ImageStore for listing photos
        clock: Callable returning the current aware datetime
    """

    def __init__(self, screener=None, image_store=None, clock=None):
        self.screener = screener or AutoApproveScreener()
        self.image_store = image_store or ImageStore()
        self.clock = clock or timezone.now

    @property
    def monthly_quota(self):
        return settings.MONTHLY_ITEM_QUOTA

    def _count_this_month(self, owner, now):
        start, end = month_bounds(now)
        return Item.objects.filter(
            owner=owner,
            created_at__gte=start,
            created_at__lt=end,
        ).count()

    def monthly_usage(self, owner):
        used = self._count_this_month(owner, self.clock())
        return QuotaUsage(used, self.monthly_quota, max(0, self.monthly_quota - used))

    def create(self, owner, fields, images):
        """
        Create a listing with its images.

        The owner row is locked for the quota check so two concurrent
        creations by the same user cannot both slip under the limit.

        Args:
            owner: Verified user creating the listing
            fields: dict of title, description, category, condition, campus,
                    and optional meetup_location
            images: Ordered list of uploaded files; the first is primary

        Returns:
            Item: the created item

        Raises:
            VerificationRequired: owner is not verified
            QuotaExceeded: owner already created the monthly quota this month
        """
        require_verified(owner)

        if not images:
            raise InvalidRequest('At least one image is required.', field='images')

        User = get_user_model()
        now = self.clock()

        with transaction.atomic():
            User.objects.select_for_update().get(pk=owner.pk)

            used = self._count_this_month(owner, now)
            if used >= self.monthly_quota:
                logger.warning(
                    f"Monthly listing quota reached. "
                    f"User: {owner.email} (ID: {owner.pk}), Used: {used}"
                )
                raise QuotaExceeded(
                    f'You have reached the monthly limit of {self.monthly_quota} item listings.',
                    limit=self.monthly_quota,
                    used=used,
                )

            values = {key: fields[key] for key in UPDATABLE_FIELDS if fields.get(key) is not None}
            if not values.get('meetup_location'):
                values['meetup_location'] = settings.DEFAULT_MEETUP_LOCATION

            item = Item.objects.create(
                owner=owner,
                status=Item.STATUS_PENDING_REVIEW,
                posted_at=now,
                created_at=now,
                **values
            )

            for order, image in enumerate(images):
                ItemImage.objects.create(
                    item=item,
                    image_path=self.image_store.store(image, 'items'),
                    is_primary=order == 0,
                    sort_order=order,
                )

            if self.screener.screen(item):
                item.status = Item.STATUS_ACTIVE
                item.is_screened = True
                item.save(update_fields=['status', 'is_screened', 'updated_at'])

        logger.info(
            f"Item listed. Item ID: {item.pk}, Status: {item.status}, "
            f"Owner: {owner.email} (ID: {owner.pk}), Images: {len(images)}"
        )
        return item

    def browse(self, search=None, category=None, campus=None, condition=None, sort='newest'):
        """
        Active listings matching the given filters.

        Every filter is optional; 'all' is treated as no filter. Search is a
        case-insensitive substring match on title or description.

        Returns:
            QuerySet: ordered, unevaluated queryset ready for pagination
        """
        queryset = Item.objects.filter(status=Item.STATUS_ACTIVE)

        if search:
            queryset = queryset.filter(
                Q(title__icontains=search) | Q(description__icontains=search)
            )

        if category and category != 'all':
            queryset = queryset.filter(category=category)

        if campus and campus != 'all':
            queryset = queryset.filter(campus=campus)

        if condition and condition != 'all':
            queryset = queryset.filter(condition=condition)

        ordering = SORT_ORDERS.get(sort, SORT_ORDERS['newest'])

        return queryset.select_related('owner').prefetch_related('images').order_by(*ordering)

    def owned_by(self, owner):
        return (
            Item.objects.filter(owner=owner)
            .prefetch_related('images')
            .order_by('-created_at', '-id')
        )

    def view(self, item):
        """
        Record one view of an item.

        A plain counter: every call adds one, repeat viewers included.
        """
        Item.objects.filter(pk=item.pk).update(views_count=F('views_count') + 1)
        item.refresh_from_db(fields=['views_count'])
        return item

    def update(self, item, actor, fields):
        """
        Partially update a listing; only the owner may do so.

        Keys missing from ``fields`` keep their current value.
        """
        if item.owner_id != actor.pk:
            raise Unauthorized()

        changed = []
        for key in UPDATABLE_FIELDS:
            if key in fields and fields[key] is not None:
                setattr(item, key, fields[key])
                changed.append(key)

        if changed:
            item.save(update_fields=changed + ['updated_at'])
            logger.info(f"Item {item.pk} updated by {actor.email}: {', '.join(changed)}")

        return item

    def remove(self, item, actor):
        """
        Remove a listing; the owner or an admin may do so.

        Items without transaction history are deleted together with their
        stored images. Items referenced by past transactions are kept for the
        history and only marked removed. Items with an active transaction
        cannot be removed until it is cancelled or completed.

        Returns:
            bool: True if the record was deleted, False if soft-removed
        """
        if item.owner_id != actor.pk and not actor.is_admin():
            raise Unauthorized()

        with transaction.atomic():
            locked = Item.objects.select_for_update().get(pk=item.pk)
            history = Transaction.objects.filter(item=locked)

            if history.exclude(status__in=Transaction.TERMINAL_STATUSES).exists():
                raise ItemNotAvailable(
                    'This item has an active transaction and cannot be removed.',
                    status=locked.status,
                )

            if history.exists():
                locked.status = Item.STATUS_REMOVED
                locked.save(update_fields=['status', 'updated_at'])
                item.status = locked.status
                deleted = False
            else:
                for image in locked.images.all():
                    image.delete()
                locked.delete()
                deleted = True

        logger.info(
            f"Item {item.pk} {'deleted' if deleted else 'marked removed'} "
            f"by {actor.email} (ID: {actor.pk})"
        )
        return deleted
