"""
URL configuration for the campus_exchange project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenBlacklistView,
    TokenRefreshView,
)
from exchange.views import (
    AdminVerificationListView,
    AdminVerificationReviewView,
    EmailTokenObtainPairView,
    ItemDetailView,
    ItemListCreateView,
    ItemQuotaView,
    ItemRequestView,
    NotificationListView,
    NotificationReadAllView,
    NotificationReadView,
    NotificationUnreadCountView,
    ProofUploadView,
    PublicProfileView,
    TransactionActionView,
    TransactionDetailView,
    UserDonationsView,
    UserItemsView,
    UserProfileView,
    UserRegistrationView,
    UserRequestsView,
    VerificationStatusView,
    VerificationUploadView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/auth/logout/', TokenBlacklistView.as_view(), name='user_logout'),

    # Profile endpoints
    path('api/user/profile/', UserProfileView.as_view(), name='user_profile'),
    path('api/users/<int:pk>/', PublicProfileView.as_view(), name='public_profile'),

    # Verification endpoints
    path('api/verification/upload/', VerificationUploadView.as_view(), name='verification_upload'),
    path('api/verification/status/', VerificationStatusView.as_view(), name='verification_status'),

    # Item endpoints
    path('api/items/', ItemListCreateView.as_view(), name='item_list'),
    path('api/items/<int:pk>/', ItemDetailView.as_view(), name='item_detail'),
    path('api/items/<int:pk>/request/', ItemRequestView.as_view(), name='item_request'),
    path('api/user/items/', UserItemsView.as_view(), name='user_items'),
    path('api/user/items/quota/', ItemQuotaView.as_view(), name='user_item_quota'),

    # Transaction endpoints
    path('api/transactions/<int:pk>/', TransactionDetailView.as_view(), name='transaction_detail'),
    path('api/transactions/<int:pk>/approve/',
         TransactionActionView.as_view(transition='approve'), name='transaction_approve'),
    path('api/transactions/<int:pk>/meeting/',
         TransactionActionView.as_view(transition='meeting'), name='transaction_meeting'),
    path('api/transactions/<int:pk>/complete/',
         TransactionActionView.as_view(transition='complete'), name='transaction_complete'),
    path('api/transactions/<int:pk>/cancel/',
         TransactionActionView.as_view(transition='cancel'), name='transaction_cancel'),
    path('api/transactions/<int:pk>/proof/', ProofUploadView.as_view(), name='transaction_proof'),
    path('api/user/requests/', UserRequestsView.as_view(), name='user_requests'),
    path('api/user/donations/', UserDonationsView.as_view(), name='user_donations'),

    # Notification endpoints
    path('api/notifications/', NotificationListView.as_view(), name='notification_list'),
    path('api/notifications/unread-count/', NotificationUnreadCountView.as_view(), name='notification_unread_count'),
    path('api/notifications/read-all/', NotificationReadAllView.as_view(), name='notification_read_all'),
    path('api/notifications/<int:pk>/read/', NotificationReadView.as_view(), name='notification_read'),

    # Admin endpoints
    path('api/admin/verifications/', AdminVerificationListView.as_view(), name='admin_verification_list'),
    path('api/admin/verifications/<int:pk>/approve/',
         AdminVerificationReviewView.as_view(decision='approve'), name='admin_verification_approve'),
    path('api/admin/verifications/<int:pk>/reject/',
         AdminVerificationReviewView.as_view(decision='reject'), name='admin_verification_reject'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
