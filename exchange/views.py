"""
API views for the campus exchange.

Views authenticate the caller, validate input with serializers, delegate the
state change to a service (VerificationGate, ListingCatalog,
TransactionEngine) and log the outcome with the client IP. Domain errors
raised by the services are rendered by exchange_exception_handler.
"""

import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import generics, status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from .catalog import ListingCatalog
from .exceptions import AlreadyVerified, ResourceNotFound
from .models import Item, Notification, Transaction, Verification
from .notifications import mark_all_read, unread_for
from .permissions import IsAdminRole, IsTransactionParticipant, IsVerifiedMember
from .serializers import (
    AdminVerificationSerializer,
    EmailTokenObtainPairSerializer,
    ItemCreateSerializer,
    ItemSerializer,
    ItemUpdateSerializer,
    NotificationSerializer,
    ProofUploadSerializer,
    PublicProfileSerializer,
    QuotaSerializer,
    TransactionSerializer,
    UserProfileSerializer,
    UserRegistrationSerializer,
    VerificationReviewSerializer,
    VerificationSerializer,
    VerificationUploadSerializer,
)
from .transactions import TransactionEngine
from .verification import VerificationGate

User = get_user_model()

logger = logging.getLogger(__name__)


class ClientIPMixin:

    def get_client_ip(self, request):
        """
        Get client IP address from request.
        Handles proxy headers for accurate IP detection.
        """
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0].strip()
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip


# ============================================================================
# Authentication
# ============================================================================

class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Obtain a JWT pair with email + password.

    POST /api/auth/token/
    Request body: {"email": "juan@minsu.edu.ph", "password": "..."}
    """
    serializer_class = EmailTokenObtainPairSerializer
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'


class UserRegistrationView(ClientIPMixin, generics.CreateAPIView):
    """
    API endpoint for user registration.

    POST /api/auth/register/

    New accounts are unverified with zero points; they must pass identity
    verification before listing or requesting items.
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'register'

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self.perform_create(serializer)
        except IntegrityError:
            # Concurrent registration with the same email
            return Response(
                {'email': ['A user with that email already exists.']},
                status=status.HTTP_400_BAD_REQUEST
            )

        logger.info(
            f"User registered. Email: {serializer.instance.email} "
            f"(ID: {serializer.instance.pk}), IP: {self.get_client_ip(request)}"
        )

        headers = self.get_success_headers(serializer.data)
        return Response(serializer.data, status=status.HTTP_201_CREATED, headers=headers)


# ============================================================================
# Profiles
# ============================================================================

class UserProfileView(ClientIPMixin, APIView):
    """
    API endpoint for the authenticated user's own profile.

    GET /api/user/profile/

    Success response (200):
    {
        "user": {"id": 1, "email": "juan@minsu.edu.ph", "first_name": "Juan",
                 "points": 15, "tier": "Bronze Contributor", ...},
        "stats": {"items_shared": 1, "items_received": 0,
                  "active_listings": 2, "completed_transactions": 1}
    }

    PUT / PATCH /api/user/profile/
    Body: {"first_name": "...", "last_name": "...", "campus": "victoria"}
    Every field is optional; read-only fields in the body are ignored.

    Error responses:
    - 400: Blank name or unknown campus
    - 401: Missing or invalid token
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def get(self, request, *args, **kwargs):
        return Response(self.profile_payload(request.user))

    def patch(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        logger.info(
            f"Profile updated. User: {user.email} (ID: {user.pk}), "
            f"Fields: {', '.join(sorted(serializer.validated_data))}, IP: {self.get_client_ip(request)}"
        )
        return Response(self.profile_payload(user))

    def put(self, request, *args, **kwargs):
        return self.patch(request, *args, **kwargs)

    def profile_payload(self, user):
        return {
            'user': UserProfileSerializer(user).data,
            'stats': TransactionEngine().stats_for(user),
        }


class PublicProfileView(APIView):
    """
    GET /api/users/<id>/

    Another member's public profile: name, campus, points, tier and how many
    items they have shared and received.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        user = get_object_or_404(User, pk=pk, is_active=True)
        stats = TransactionEngine().stats_for(user)

        return Response({
            'user': PublicProfileSerializer(user).data,
            'stats': {
                'items_shared': stats['items_shared'],
                'items_received': stats['items_received'],
            },
        })


# ============================================================================
# Verification
# ============================================================================

class VerificationUploadView(ClientIPMixin, APIView):
    """
    Submit an institutional ID photo for verification.

    POST /api/verification/upload/  (multipart, field ``id_image``)

    Success response (200):
    {
        "status": "approved" | "rejected",
        "approved": true,
        "score": "95.42",
        "reasons": [],
        "message": "...",
        "verification": {...}
    }

    Error responses:
    - 400: Missing or invalid image
    - 409: A verification is already pending or processing
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, *args, **kwargs):
        """
        Steps:
        1. Validate the uploaded image
        2. Score and record the attempt (already verified users get an
           idempotent 200 and nothing is recorded)
        3. Log and return the outcome
        """
        serializer = VerificationUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        gate = VerificationGate()
        try:
            outcome = gate.submit(request.user, serializer.validated_data['id_image'])
        except AlreadyVerified as e:
            return Response(
                {
                    'status': Verification.STATUS_APPROVED,
                    'approved': True,
                    'message': e.message,
                },
                status=status.HTTP_200_OK
            )

        logger.info(
            f"Verification submitted. User: {request.user.email} (ID: {request.user.pk}), "
            f"Result: {outcome.verification.status}, IP: {self.get_client_ip(request)}"
        )

        return Response(
            {
                'status': outcome.verification.status,
                'approved': outcome.approved,
                'score': str(outcome.score),
                'reasons': outcome.reasons,
                'message': outcome.message,
                'verification': VerificationSerializer(outcome.verification).data,
            },
            status=status.HTTP_200_OK
        )


class VerificationStatusView(APIView):
    """
    GET /api/verification/status/

    Returns the caller's latest verification, or status "none" when they
    have never submitted.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        latest = VerificationGate().status(request.user)

        if latest is None:
            return Response({
                'status': 'none',
                'is_verified': request.user.is_verified,
                'verification': None,
            })

        return Response({
            'status': latest.status,
            'is_verified': request.user.is_verified,
            'verification': VerificationSerializer(latest).data,
        })


class AdminVerificationListView(generics.ListAPIView):
    """
    GET /api/admin/verifications/?status=pending

    Verification records for administrators, newest first.
    """
    serializer_class = AdminVerificationSerializer
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get_queryset(self):
        return VerificationGate().queue(self.request.query_params.get('status'))


class AdminVerificationReviewView(ClientIPMixin, APIView):
    """
    Approve or reject a user's latest verification.

    POST /api/admin/verifications/<id>/approve/
    POST /api/admin/verifications/<id>/reject/  {"rejection_reason": "..."}
    """
    permission_classes = [IsAuthenticated, IsAdminRole]
    decision = None

    def post(self, request, pk, *args, **kwargs):
        verification = get_object_or_404(Verification.objects.select_related('user'), pk=pk)

        reason = ''
        if self.decision == 'reject':
            serializer = VerificationReviewSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            reason = serializer.validated_data['rejection_reason']

        verification = VerificationGate().review(
            verification,
            request.user,
            approve=self.decision == 'approve',
            reason=reason,
        )

        logger.info(
            f"Verification reviewed. Verification ID: {verification.pk}, "
            f"Decision: {self.decision}, Admin: {request.user.email} (ID: {request.user.pk}), "
            f"IP: {self.get_client_ip(request)}"
        )

        return Response(
            AdminVerificationSerializer(verification, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


# ============================================================================
# Items
# ============================================================================

class ItemListCreateView(ClientIPMixin, generics.GenericAPIView):
    """
    Browse and create listings.

    GET /api/items/?search=&category=&campus=&condition=&sort=newest&page=1&per_page=12
        Public. Active listings only.

    POST /api/items/  (multipart)
        Verified users only. Fields: title, description, category, condition,
        campus, meetup_location (optional), images (1-5 files).

    Error responses (POST):
    - 400: Invalid input
    - 403: Account not verified
    - 409: Monthly listing quota reached
    """
    serializer_class = ItemSerializer
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated(), IsVerifiedMember()]

    def get(self, request, *args, **kwargs):
        params = request.query_params
        queryset = ListingCatalog().browse(
            search=params.get('search', '').strip() or None,
            category=params.get('category'),
            campus=params.get('campus'),
            condition=params.get('condition'),
            sort=params.get('sort', 'newest'),
        )

        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def post(self, request, *args, **kwargs):
        serializer = ItemCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        fields = dict(serializer.validated_data)
        images = fields.pop('images')

        item = ListingCatalog().create(request.user, fields, images)

        logger.info(
            f"Item created. Item ID: {item.pk}, User: {request.user.email} "
            f"(ID: {request.user.pk}), IP: {self.get_client_ip(request)}"
        )

        return Response(
            ItemSerializer(item, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class ItemDetailView(ClientIPMixin, APIView):
    """
    GET    /api/items/<id>/   Public; every call counts one view
    PATCH  /api/items/<id>/   Owner only
    DELETE /api/items/<id>/   Owner or admin
    """
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    HIDDEN_STATUSES = (Item.STATUS_PENDING_REVIEW, Item.STATUS_REMOVED)

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get_item(self, pk):
        queryset = Item.objects.select_related('owner').prefetch_related('images')
        try:
            return queryset.get(pk=pk)
        except Item.DoesNotExist:
            raise ResourceNotFound(f'Item with ID {pk} does not exist.', item_id=pk)

    def get(self, request, pk, *args, **kwargs):
        item = self.get_item(pk)

        user = request.user
        is_privileged = user.is_authenticated and (item.owner_id == user.pk or user.is_admin())
        if item.status in self.HIDDEN_STATUSES and not is_privileged:
            raise ResourceNotFound(f'Item with ID {pk} does not exist.', item_id=pk)

        ListingCatalog().view(item)
        return Response(ItemSerializer(item, context={'request': request}).data)

    def patch(self, request, pk, *args, **kwargs):
        item = self.get_item(pk)

        serializer = ItemUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        item = ListingCatalog().update(item, request.user, serializer.validated_data)

        logger.info(
            f"Item updated. Item ID: {item.pk}, User: {request.user.email} "
            f"(ID: {request.user.pk}), IP: {self.get_client_ip(request)}"
        )
        return Response(ItemSerializer(item, context={'request': request}).data)

    def delete(self, request, pk, *args, **kwargs):
        item = self.get_item(pk)

        deleted = ListingCatalog().remove(item, request.user)

        logger.info(
            f"Item removed. Item ID: {pk}, Hard delete: {deleted}, "
            f"User: {request.user.email} (ID: {request.user.pk}), IP: {self.get_client_ip(request)}"
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class UserItemsView(generics.ListAPIView):
    """GET /api/user/items/: the caller's own listings, any status."""
    serializer_class = ItemSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return ListingCatalog().owned_by(self.request.user)


class ItemQuotaView(APIView):
    """GET /api/user/items/quota/: listings used this calendar month."""
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        usage = ListingCatalog().monthly_usage(request.user)
        return Response(QuotaSerializer(usage._asdict()).data)


# ============================================================================
# Transactions
# ============================================================================

class ItemRequestView(ClientIPMixin, APIView):
    """
    Request an item.

    POST /api/items/<id>/request/

    Error responses:
    - 403: Not verified, or requesting your own item
    - 404: Item not found
    - 409: Already requested, or item not available
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        item = get_object_or_404(Item, pk=pk)

        txn = TransactionEngine().request(item, request.user)

        logger.info(
            f"Item request created. Transaction ID: {txn.pk}, Item ID: {item.pk}, "
            f"User: {request.user.email} (ID: {request.user.pk}), IP: {self.get_client_ip(request)}"
        )

        return Response(
            TransactionSerializer(txn, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class TransactionDetailView(generics.RetrieveAPIView):
    """GET /api/transactions/<id>/: donor, receiver or admin only."""
    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated, IsTransactionParticipant]
    queryset = Transaction.objects.select_related('item', 'donor', 'receiver').prefetch_related('item__images')


class TransactionActionView(ClientIPMixin, APIView):
    """
    Move a transaction through its lifecycle.

    PUT /api/transactions/<id>/approve/    donor only, from requested
    PUT /api/transactions/<id>/meeting/    either party, from approved
    PUT /api/transactions/<id>/complete/   either party, from approved or meeting
    PUT /api/transactions/<id>/cancel/     either party, from any non-final status

    Error responses:
    - 403: Caller is not allowed to perform the action
    - 404: Transaction not found
    - 422: Action not allowed from the current status
    """
    permission_classes = [IsAuthenticated]
    transition = None

    ACTIONS = {
        'approve': 'approve',
        'meeting': 'start_meeting',
        'complete': 'complete',
        'cancel': 'cancel',
    }

    def put(self, request, pk, *args, **kwargs):
        txn = get_object_or_404(Transaction, pk=pk)
        engine = TransactionEngine()

        old_status = txn.status
        txn = getattr(engine, self.ACTIONS[self.transition])(txn, request.user)

        logger.info(
            f"Transaction status updated. Transaction ID: {txn.pk}, "
            f"Old Status: {old_status}, New Status: {txn.status}, "
            f"User: {request.user.email} (ID: {request.user.pk}), IP: {self.get_client_ip(request)}"
        )

        txn = Transaction.objects.select_related('item', 'donor', 'receiver').get(pk=txn.pk)
        return Response(TransactionSerializer(txn, context={'request': request}).data)


class ProofUploadView(ClientIPMixin, APIView):
    """
    POST /api/transactions/<id>/proof/  (multipart, field ``proof_photo``)

    Attach a handoff photo while the transaction is approved or meeting.
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, pk, *args, **kwargs):
        txn = get_object_or_404(Transaction, pk=pk)

        serializer = ProofUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        txn = TransactionEngine().upload_proof(txn, request.user, serializer.validated_data['proof_photo'])

        logger.info(
            f"Proof photo uploaded. Transaction ID: {txn.pk}, "
            f"User: {request.user.email} (ID: {request.user.pk}), IP: {self.get_client_ip(request)}"
        )

        txn = Transaction.objects.select_related('item', 'donor', 'receiver').get(pk=txn.pk)
        return Response(TransactionSerializer(txn, context={'request': request}).data)


class UserRequestsView(generics.ListAPIView):
    """GET /api/user/requests/: transactions where the caller is the receiver."""
    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return TransactionEngine().requests_for(self.request.user)


class UserDonationsView(generics.ListAPIView):
    """GET /api/user/donations/: transactions where the caller is the donor."""
    serializer_class = TransactionSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return TransactionEngine().donations_for(self.request.user)


# ============================================================================
# Notifications
# ============================================================================

class NotificationListView(generics.ListAPIView):
    """GET /api/notifications/?unread=true"""
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        if self.request.query_params.get('unread', '').lower() in ('1', 'true'):
            return unread_for(self.request.user).order_by('-created_at', '-id')
        return Notification.objects.filter(recipient=self.request.user).order_by('-created_at', '-id')


class NotificationUnreadCountView(APIView):
    """GET /api/notifications/unread-count/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        return Response({'unread_count': unread_for(request.user).count()})


class NotificationReadView(APIView):
    """PUT /api/notifications/<id>/read/"""
    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        notification = get_object_or_404(Notification, pk=pk, recipient=request.user)
        notification.mark_read(timezone.now())
        return Response(NotificationSerializer(notification).data)


class NotificationReadAllView(APIView):
    """PUT /api/notifications/read-all/"""
    permission_classes = [IsAuthenticated]

    def put(self, request, *args, **kwargs):
        updated = mark_all_read(request.user, timezone.now())
        return Response({'updated': updated})
