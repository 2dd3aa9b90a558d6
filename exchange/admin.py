"""
Django admin configuration for the campus exchange models.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Item, ItemImage, Notification, Transaction, User, Verification


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin interface for the custom User model.

    Points and tier are read-only: they only change through completed
    transactions or the recalculate_tiers command.
    """

    list_display = [
        'email',
        'student_id',
        'campus',
        'user_type',
        'is_verified',
        'points',
        'tier',
        'role',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'user_type',
        'campus',
        'is_verified',
        'verification_status',
        'tier',
        'role',
        'is_active',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
        'student_id',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
                'student_id',
                'campus',
                'user_type',
            )
        }),
        (_('Verification & Rewards'), {
            'fields': ('is_verified', 'verification_status', 'points', 'tier', 'role')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
                'student_id',
                'campus',
                'user_type',
            ),
        }),
    )

    readonly_fields = ['points', 'tier', 'created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25


@admin.register(Verification)
class VerificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'status', 'ai_confidence', 'submitted_at', 'reviewed_by', 'reviewed_at']
    list_filter = ['status']
    search_fields = ['user__email', 'user__student_id']
    readonly_fields = ['user', 'id_image_path', 'ai_confidence', 'submitted_at']
    list_select_related = ['user', 'reviewed_by']


class ItemImageInline(admin.TabularInline):
    model = ItemImage
    extra = 0
    readonly_fields = ['image_path', 'is_primary', 'sort_order', 'uploaded_at']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['id', 'title', 'owner', 'category', 'condition', 'campus', 'status', 'views_count', 'created_at']
    list_filter = ['status', 'category', 'condition', 'campus', 'is_screened']
    search_fields = ['title', 'description', 'owner__email']
    readonly_fields = ['views_count', 'posted_at', 'created_at', 'updated_at']
    inlines = [ItemImageInline]
    list_select_related = ['owner']


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Transactions are read-only here; status changes must go through the
    transaction engine so item status and rewards stay consistent.
    """

    list_display = ['id', 'item', 'donor', 'receiver', 'status', 'requested_at', 'completed_at']
    list_filter = ['status']
    search_fields = ['item__title', 'donor__email', 'receiver__email']
    list_select_related = ['item', 'donor', 'receiver']

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'recipient', 'type', 'title', 'read_at', 'created_at']
    list_filter = ['type']
    search_fields = ['recipient__email', 'title']
