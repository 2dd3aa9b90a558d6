"""
Serializers for authentication, listings, transactions, verification and
notifications.

Serializers validate input and shape output; state changes go through the
service classes (VerificationGate, ListingCatalog, TransactionEngine).
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import CAMPUS_CHOICES, Item, ItemImage, Notification, Transaction, Verification
from .storage import ImageStore
from .validators import validate_image_upload, validate_institutional_id

User = get_user_model()

MAX_ITEM_IMAGES = 5


def _image_url(name, context):
    url = ImageStore().url(name)
    if url is None:
        return None
    request = context.get('request')
    if request is not None:
        return request.build_absolute_uri(url)
    return url


def _validated_image(image):
    try:
        validate_image_upload(image)
    except DjangoValidationError as e:
        raise serializers.ValidationError(list(e.messages))
    return image


# ============================================================================
# Authentication
# ============================================================================

class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Token serializer that takes an email instead of a username.
    """
    username_field = 'email'

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['is_verified'] = user.is_verified
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data['user'] = UserSummarySerializer(self.user).data
        return data


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration.

    Fields:
    - email: Required, unique (case-insensitive)
    - password / confirm_password: Required, must match and pass Django's
      password validators
    - first_name, last_name: Required
    - student_id: Optional, institutional ID format when given
    - campus, user_type: Optional, model defaults apply
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = [
            'id', 'email', 'password', 'confirm_password', 'first_name', 'last_name',
            'student_id', 'campus', 'user_type', 'is_verified', 'points', 'tier',
            'created_at',
        ]
        read_only_fields = ['id', 'is_verified', 'points', 'tier', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
            'first_name': {'required': True, 'allow_blank': False},
            'last_name': {'required': True, 'allow_blank': False},
        }

    def validate_email(self, value):
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that email already exists."
            )

        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate_student_id(self, value):
        value = (value or '').strip()
        try:
            validate_institutional_id(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        return attrs

    def create(self, validated_data):
        """
        Create the user with a hashed password.

        Verification, points, tier and role always start at their defaults.
        """
        validated_data.pop('confirm_password', None)
        validated_data['password'] = make_password(validated_data.pop('password'))

        # AbstractUser requires a unique username; the email is used for login
        validated_data['username'] = validated_data['email'][:150]

        with transaction.atomic():
            user = User.objects.create(**validated_data)

        return user


class UserSummarySerializer(serializers.ModelSerializer):
    """Public user details embedded in other responses."""

    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'full_name', 'campus', 'user_type', 'is_verified', 'points', 'tier']
        read_only_fields = fields


class UserProfileSerializer(serializers.ModelSerializer):
    """
    The caller's own profile.

    Only first_name, last_name and campus are writable; verification,
    points, tier and role are maintained by the services.
    """

    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'student_id',
            'campus', 'user_type', 'role', 'is_verified', 'verification_status',
            'points', 'tier', 'created_at',
        ]
        read_only_fields = [
            'id', 'email', 'student_id', 'user_type', 'role', 'is_verified',
            'verification_status', 'points', 'tier', 'created_at',
        ]
        extra_kwargs = {
            'first_name': {'allow_blank': False},
            'last_name': {'allow_blank': False},
        }

    def validate_first_name(self, value):
        if not value.strip():
            raise serializers.ValidationError("First name cannot be empty.")
        return value.strip()

    def validate_last_name(self, value):
        if not value.strip():
            raise serializers.ValidationError("Last name cannot be empty.")
        return value.strip()


class PublicProfileSerializer(serializers.ModelSerializer):
    """What other members may see; no email or ID number."""

    full_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'first_name', 'last_name', 'full_name', 'campus', 'is_verified', 'points', 'tier', 'created_at']
        read_only_fields = fields


# ============================================================================
# Verification
# ============================================================================

class VerificationUploadSerializer(serializers.Serializer):
    """Validates the uploaded ID photo."""

    id_image = serializers.ImageField(required=True)

    def validate_id_image(self, value):
        return _validated_image(value)


class VerificationSerializer(serializers.ModelSerializer):
    """
    Verification record as shown to its owner.

    The stored image path is never exposed here.
    """

    class Meta:
        model = Verification
        fields = ['id', 'status', 'ai_confidence', 'rejection_reason', 'submitted_at', 'reviewed_at']
        read_only_fields = fields


class AdminVerificationSerializer(serializers.ModelSerializer):
    """Verification record for the admin review queue."""

    user = UserSummarySerializer(read_only=True)
    reviewed_by = serializers.EmailField(source='reviewed_by.email', read_only=True, default=None)
    id_image = serializers.SerializerMethodField()

    class Meta:
        model = Verification
        fields = [
            'id', 'user', 'status', 'ai_confidence', 'rejection_reason', 'id_image',
            'reviewed_by', 'submitted_at', 'reviewed_at',
        ]
        read_only_fields = fields

    def get_id_image(self, obj):
        return _image_url(obj.id_image_path, self.context)


class VerificationReviewSerializer(serializers.Serializer):
    """Input for an admin rejection."""

    rejection_reason = serializers.CharField(required=True, allow_blank=False, max_length=500)


# ============================================================================
# Items
# ============================================================================

class ItemImageSerializer(serializers.ModelSerializer):
    """Item image with a full URL."""

    image = serializers.SerializerMethodField()

    class Meta:
        model = ItemImage
        fields = ['id', 'image', 'is_primary', 'sort_order']
        read_only_fields = fields

    def get_image(self, obj):
        return _image_url(obj.image_path, self.context)


class ItemCreateSerializer(serializers.Serializer):
    """
    Input for a new listing.

    Fields:
    - title, description: Required, not blank
    - category, condition, campus: Required, one of the model choices
    - meetup_location: Optional, defaults to DEFAULT_MEETUP_LOCATION
    - images: Required, 1-5 image files (JPEG, PNG, WebP, max 5MB each)
    """

    title = serializers.CharField(max_length=255)
    description = serializers.CharField()
    category = serializers.ChoiceField(choices=Item.CATEGORY_CHOICES)
    condition = serializers.ChoiceField(choices=Item.CONDITION_CHOICES)
    campus = serializers.ChoiceField(choices=CAMPUS_CHOICES)
    meetup_location = serializers.CharField(max_length=255, required=False, allow_blank=True)
    images = serializers.ListField(
        child=serializers.ImageField(),
        allow_empty=False,
        max_length=MAX_ITEM_IMAGES,
        help_text='List of 1-5 image files (JPEG, PNG, WebP, max 5MB each)'
    )

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()

    def validate_description(self, value):
        if not value.strip():
            raise serializers.ValidationError("Description cannot be empty.")
        return value.strip()

    def validate_images(self, value):
        return [_validated_image(image) for image in value]


class ItemUpdateSerializer(serializers.Serializer):
    """Partial listing update; every field is optional."""

    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False)
    category = serializers.ChoiceField(choices=Item.CATEGORY_CHOICES, required=False)
    condition = serializers.ChoiceField(choices=Item.CONDITION_CHOICES, required=False)
    campus = serializers.ChoiceField(choices=CAMPUS_CHOICES, required=False)
    meetup_location = serializers.CharField(max_length=255, required=False)

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title cannot be empty.")
        return value.strip()

    def validate_description(self, value):
        if not value.strip():
            raise serializers.ValidationError("Description cannot be empty.")
        return value.strip()


class ItemSerializer(serializers.ModelSerializer):
    """Listing as shown in browse results and the detail page."""

    owner = UserSummarySerializer(read_only=True)
    images = ItemImageSerializer(many=True, read_only=True)
    primary_image = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = [
            'id', 'title', 'description', 'category', 'condition', 'campus',
            'meetup_location', 'status', 'views_count', 'owner', 'images',
            'primary_image', 'posted_at', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_primary_image(self, obj):
        image = obj.primary_image
        return _image_url(image.image_path, self.context) if image else None


class QuotaSerializer(serializers.Serializer):
    used = serializers.IntegerField()
    limit = serializers.IntegerField()
    remaining = serializers.IntegerField()


# ============================================================================
# Transactions
# ============================================================================

class TransactionItemSerializer(serializers.ModelSerializer):
    primary_image = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = ['id', 'title', 'category', 'condition', 'status', 'primary_image']
        read_only_fields = fields

    def get_primary_image(self, obj):
        image = obj.primary_image
        return _image_url(image.image_path, self.context) if image else None


class TransactionSerializer(serializers.ModelSerializer):
    """Transaction with both parties and the item it concerns."""

    item = TransactionItemSerializer(read_only=True)
    donor = UserSummarySerializer(read_only=True)
    receiver = UserSummarySerializer(read_only=True)
    proof_photo = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            'id', 'item', 'donor', 'receiver', 'status', 'meetup_location',
            'proof_photo', 'requested_at', 'approved_at', 'meeting_at',
            'completed_at', 'cancelled_at',
        ]
        read_only_fields = fields

    def get_proof_photo(self, obj):
        return _image_url(obj.proof_photo_path, self.context)


class ProofUploadSerializer(serializers.Serializer):
    proof_photo = serializers.ImageField(required=True)

    def validate_proof_photo(self, value):
        return _validated_image(value)


# ============================================================================
# Notifications
# ============================================================================

class NotificationSerializer(serializers.ModelSerializer):
    is_read = serializers.BooleanField(read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id', 'type', 'title', 'message', 'link', 'related_id', 'related_type',
            'is_read', 'read_at', 'created_at',
        ]
        read_only_fields = fields
