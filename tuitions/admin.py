"""
Django admin configuration for the eTuition models.

Lifecycle fields (status, hired tutor, transition timestamps) are read-only
here: they only change through the lifecycle objects and the reconciler.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Application, CheckoutSession, Listing, Payment, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Extends Django's UserAdmin with user_type and phone_number.
    """

    list_display = [
        'email',
        'username',
        'user_type',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'user_type',
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
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
                'phone_number',
                'user_type',
            )
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
                'user_type',
            ),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return self.readonly_fields
        return []


# ============================================================================
# Listing and Application Admin
# ============================================================================

class ApplicationInline(admin.TabularInline):
    model = Application
    extra = 0
    fields = ['tutor', 'expected_salary', 'status', 'applied_at', 'decided_at']
    readonly_fields = fields
    can_delete = False
    show_change_link = True


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):
    """Admin interface for Listing model."""

    list_display = [
        'id',
        'subject',
        'class_name',
        'owner',
        'budget',
        'status',
        'hired_tutor',
        'withdrawn_at',
        'created_at',
    ]

    list_filter = [
        'status',
        'created_at',
    ]

    search_fields = [
        'subject',
        'location',
        'owner__email',
        'hired_tutor__email',
    ]

    readonly_fields = [
        'status',
        'hired_tutor',
        'created_at',
        'updated_at',
        'approved_at',
        'rejected_at',
        'hired_at',
        'withdrawn_at',
    ]

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [ApplicationInline]

    fieldsets = (
        (None, {
            'fields': ('owner', 'subject', 'class_name', 'medium', 'description')
        }),
        (_('Tuition Details'), {
            'fields': ('location', 'schedule', 'phone', 'budget')
        }),
        (_('Lifecycle'), {
            'fields': ('status', 'hired_tutor'),
        }),
        (_('Timestamps'), {
            'fields': (
                'created_at', 'updated_at', 'approved_at',
                'rejected_at', 'hired_at', 'withdrawn_at',
            ),
            'classes': ('collapse',),
        }),
    )


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    """Admin interface for Application model."""

    list_display = [
        'id',
        'listing',
        'tutor',
        'expected_salary',
        'status',
        'applied_at',
        'decided_at',
    ]

    list_filter = [
        'status',
        'applied_at',
    ]

    search_fields = [
        'tutor__email',
        'listing__subject',
    ]

    readonly_fields = ['status', 'applied_at', 'updated_at', 'decided_at']

    ordering = ['-applied_at']

    list_per_page = 25


# ============================================================================
# Payment Admin
# ============================================================================

class ReadOnlyAdmin(admin.ModelAdmin):
    """Ledger records are inspected in the admin, never edited."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(ReadOnlyAdmin):

    list_display = [
        'transaction_ref',
        'listing',
        'payer',
        'payee',
        'amount',
        'currency',
        'status',
        'paid_at',
    ]

    list_filter = ['status', 'paid_at']

    search_fields = [
        'transaction_ref',
        'checkout_session_id',
        'payer__email',
        'payee__email',
    ]

    ordering = ['-paid_at']

    date_hierarchy = 'paid_at'


@admin.register(CheckoutSession)
class CheckoutSessionAdmin(ReadOnlyAdmin):

    list_display = [
        'session_id',
        'listing',
        'application',
        'payer',
        'quoted_amount',
        'currency',
        'created_at',
    ]

    search_fields = ['session_id', 'payer__email', 'payee__email']

    ordering = ['-created_at']
