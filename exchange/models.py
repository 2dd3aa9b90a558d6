"""
Data model for the campus community exchange.

Users list unwanted items, other users request them, and a Transaction tracks
the handoff between donor and receiver. Verification records hold the outcome
of each identity-verification attempt.
"""

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


CAMPUS_CHOICES = [
    ('main', 'Main Campus'),
    ('bongabong', 'Bongabong'),
    ('victoria', 'Victoria'),
    ('pinamalayan', 'Pinamalayan'),
]


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - email: Required, unique email address (stored lower-case)
    - student_id: Institutional ID string (e.g. 2024-12345)
    - campus: Home campus
    - user_type: student, faculty or staff
    - is_verified / verification_status: identity-verification outcome
    - points / tier: reward ledger state
    - role: 'user' or 'admin'
    """

    USER_TYPE_CHOICES = [
        ('student', 'Student'),
        ('faculty', 'Faculty'),
        ('staff', 'Staff'),
    ]

    VERIFICATION_STATUS_CHOICES = [
        ('none', 'Not Submitted'),
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    TIER_BRONZE = 'Bronze Contributor'
    TIER_SILVER = 'Silver Contributor'
    TIER_GOLD = 'Gold Community Champion'

    TIER_CHOICES = [
        (TIER_BRONZE, TIER_BRONZE),
        (TIER_SILVER, TIER_SILVER),
        (TIER_GOLD, TIER_GOLD),
    ]

    ROLE_CHOICES = [
        ('user', 'User'),
        ('admin', 'Administrator'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Institutional email address.')
    )

    student_id = models.CharField(
        _('institutional ID'),
        max_length=30,
        blank=True,
        default='',
        help_text=_('Student or employee ID, e.g. 2024-12345.')
    )

    campus = models.CharField(
        _('campus'),
        max_length=20,
        choices=CAMPUS_CHOICES,
        default='main',
    )

    user_type = models.CharField(
        _('user type'),
        max_length=10,
        choices=USER_TYPE_CHOICES,
        default='student',
    )

    is_verified = models.BooleanField(
        _('verified status'),
        default=False,
        help_text=_('True once the latest identity verification was approved.')
    )

    verification_status = models.CharField(
        _('verification status'),
        max_length=10,
        choices=VERIFICATION_STATUS_CHOICES,
        default='none',
    )

    points = models.PositiveIntegerField(
        _('points'),
        default=0,
        help_text=_('Reward points earned from completed exchanges.')
    )

    tier = models.CharField(
        _('tier'),
        max_length=30,
        choices=TIER_CHOICES,
        default=TIER_BRONZE,
    )

    role = models.CharField(
        _('role'),
        max_length=10,
        choices=ROLE_CHOICES,
        default='user',
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email'], name='exchange_us_email_4d6e2b_idx'),
            models.Index(fields=['is_verified'], name='exchange_us_is_veri_1f3a0c_idx'),
            models.Index(fields=['points'], name='exchange_us_points_8b2c71_idx'),
        ]

    def __str__(self):
        return self.email or self.username

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'.strip() or self.email

    def is_admin(self):
        """
        Check if user holds the admin role.

        Returns:
            bool: True if role is 'admin'
        """
        return self.role == 'admin'

    def clean(self):
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({
                'email': _('Email address is required.')
            })

    def save(self, *args, **kwargs):
        # Normalize email to lowercase for case-insensitive uniqueness
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


class Verification(models.Model):
    """
    One identity-verification attempt.

    Records are never edited by the automatic flow after creation; an admin
    review may overwrite the decision on the user's latest record.
    """

    STATUS_PENDING = 'pending'
    STATUS_PROCESSING = 'processing'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    IN_FLIGHT_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='verifications',
    )

    id_image_path = models.CharField(_('ID image path'), max_length=255)

    status = models.CharField(
        _('status'),
        max_length=12,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    ai_confidence = models.DecimalField(
        _('trust score'),
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(99.9)],
    )

    rejection_reason = models.CharField(
        _('rejection reason'),
        max_length=500,
        blank=True,
        default='',
    )

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='reviewed_verifications',
    )

    submitted_at = models.DateTimeField(_('submitted at'), default=timezone.now)
    reviewed_at = models.DateTimeField(_('reviewed at'), null=True, blank=True)

    class Meta:
        verbose_name = _('verification')
        verbose_name_plural = _('verifications')
        ordering = ['-submitted_at', '-id']
        get_latest_by = ['submitted_at', 'id']
        indexes = [
            models.Index(fields=['user', 'status'], name='exchange_ve_user_id_7e2d43_idx'),
        ]

    def __str__(self):
        return f'Verification #{self.pk} for {self.user.email} ({self.status})'


class Item(models.Model):
    """
    A listed item offered for free to other members.

    Status changes are driven by the transaction state machine; moderation
    may set 'removed'.
    """

    STATUS_PENDING_REVIEW = 'pending_review'
    STATUS_ACTIVE = 'active'
    STATUS_RESERVED = 'reserved'
    STATUS_COMPLETED = 'completed'
    STATUS_REMOVED = 'removed'

    STATUS_CHOICES = [
        (STATUS_PENDING_REVIEW, 'Pending Review'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_RESERVED, 'Reserved'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_REMOVED, 'Removed'),
    ]

    CATEGORY_CHOICES = [
        ('books', 'Books'),
        ('electronics', 'Electronics'),
        ('clothing', 'Clothing'),
        ('supplies', 'School Supplies'),
        ('equipment', 'Equipment'),
        ('furniture', 'Furniture'),
        ('sports', 'Sports'),
        ('others', 'Others'),
    ]

    CONDITION_CHOICES = [
        ('like-new', 'Like New'),
        ('excellent', 'Excellent'),
        ('good', 'Good'),
        ('fair', 'Fair'),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='items',
    )

    title = models.CharField(_('title'), max_length=255)
    description = models.TextField(_('description'))

    category = models.CharField(
        _('category'),
        max_length=20,
        choices=CATEGORY_CHOICES,
        default='others',
    )

    condition = models.CharField(
        _('condition'),
        max_length=20,
        choices=CONDITION_CHOICES,
        default='good',
    )

    campus = models.CharField(
        _('campus'),
        max_length=20,
        choices=CAMPUS_CHOICES,
        default='main',
    )

    meetup_location = models.CharField(
        _('meetup location'),
        max_length=255,
        default='Arawatan Corner',
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING_REVIEW,
    )

    is_screened = models.BooleanField(
        _('screened'),
        default=False,
        help_text=_('Set once the content screener passed the listing.')
    )

    views_count = models.PositiveIntegerField(_('views'), default=0)

    posted_at = models.DateTimeField(_('posted at'), null=True, blank=True)

    # Not auto_now_add: the listing catalog stamps it from its clock so the
    # monthly quota window can be tested.
    created_at = models.DateTimeField(_('created at'), default=timezone.now)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('item')
        verbose_name_plural = _('items')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['owner', 'created_at'], name='exchange_it_owner_i_5a9e3d_idx'),
            models.Index(fields=['status'], name='exchange_it_status_c7d410_idx'),
            models.Index(fields=['category'], name='exchange_it_categor_2e8f59_idx'),
            models.Index(fields=['campus'], name='exchange_it_campus_9b1d62_idx'),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        super().clean()

        if not self.title or not self.title.strip():
            raise ValidationError({
                'title': _('Title cannot be empty.')
            })

        if not self.description or not self.description.strip():
            raise ValidationError({
                'description': _('Description cannot be empty.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_available(self):
        return self.status == self.STATUS_ACTIVE

    @property
    def primary_image(self):
        images = list(self.images.all())
        return images[0] if images else None


class ItemImage(models.Model):
    """Stored image of an item; the lowest sort_order is the primary image."""

    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='images',
    )

    image_path = models.CharField(_('image path'), max_length=255)
    is_primary = models.BooleanField(_('primary'), default=False)
    sort_order = models.PositiveIntegerField(_('order'), default=0)
    uploaded_at = models.DateTimeField(_('uploaded at'), auto_now_add=True)

    class Meta:
        verbose_name = _('item image')
        verbose_name_plural = _('item images')
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f'Image {self.sort_order} for {self.item.title}'


class Transaction(models.Model):
    """
    Two-party exchange of one item.

    Lifecycle: requested -> approved -> meeting -> completed, with cancelled
    reachable from any non-terminal status. Status is only changed through
    exchange.transactions.TransactionEngine.
    """

    STATUS_REQUESTED = 'requested'
    STATUS_APPROVED = 'approved'
    STATUS_MEETING = 'meeting'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_REQUESTED, 'Requested'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_MEETING, 'Meeting'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='transactions',
    )

    donor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='donor_transactions',
    )

    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='receiver_transactions',
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_REQUESTED,
    )

    meetup_location = models.CharField(
        _('meetup location'),
        max_length=255,
        default='Arawatan Corner',
    )

    proof_photo_path = models.CharField(
        _('proof photo path'),
        max_length=255,
        blank=True,
        default='',
    )

    requested_at = models.DateTimeField(_('requested at'), default=timezone.now)
    approved_at = models.DateTimeField(_('approved at'), null=True, blank=True)
    meeting_at = models.DateTimeField(_('meeting started at'), null=True, blank=True)
    completed_at = models.DateTimeField(_('completed at'), null=True, blank=True)
    cancelled_at = models.DateTimeField(_('cancelled at'), null=True, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('transaction')
        verbose_name_plural = _('transactions')
        ordering = ['-requested_at', '-id']
        indexes = [
            models.Index(fields=['item', 'status'], name='exchange_tr_item_id_3f7a25_idx'),
            models.Index(fields=['donor'], name='exchange_tr_donor_i_a4e8c1_idx'),
            models.Index(fields=['receiver'], name='exchange_tr_receive_0d5b97_idx'),
        ]

    def __str__(self):
        return f'Transaction #{self.pk}: {self.item.title} ({self.status})'

    def clean(self):
        super().clean()

        if self.donor_id and self.receiver_id and self.donor_id == self.receiver_id:
            raise ValidationError({
                'receiver': _('Donor and receiver cannot be the same user.')
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_active(self):
        return self.status not in self.TERMINAL_STATUSES

    def other_party_id(self, user_id):
        """Return the id of the participant who is not ``user_id``."""
        return self.receiver_id if user_id == self.donor_id else self.donor_id


class Notification(models.Model):
    """In-app notification, polled by the front end."""

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )

    type = models.CharField(_('type'), max_length=50)
    title = models.CharField(_('title'), max_length=255)
    message = models.TextField(_('message'))
    link = models.CharField(_('link'), max_length=255, blank=True, default='')
    related_id = models.PositiveBigIntegerField(_('related id'), null=True, blank=True)
    related_type = models.CharField(_('related type'), max_length=50, blank=True, default='')
    read_at = models.DateTimeField(_('read at'), null=True, blank=True)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient', 'read_at'], name='exchange_no_recipie_6c0b84_idx'),
        ]

    def __str__(self):
        return f'{self.type} for {self.recipient_id}: {self.title}'

    @property
    def is_read(self):
        return self.read_at is not None

    def mark_read(self, when=None):
        if self.read_at is None:
            self.read_at = when or timezone.now()
            self.save(update_fields=['read_at'])
