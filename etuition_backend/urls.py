"""
URL configuration for the etuition_backend project.
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenBlacklistView,
    TokenRefreshView,
    TokenVerifyView,
)
from tuitions.views import (
    ApplicationDetailView,
    ApplicationRejectView,
    ApplicationWithdrawView,
    CheckoutView,
    EmailTokenObtainPairView,
    ListingApplicationsView,
    ListingDetailView,
    ListingListCreateView,
    ListingModerationView,
    MyApplicationsView,
    MyListingsView,
    MyPaymentsView,
    PaymentConfirmView,
    ReceivedPaymentsView,
    StripeWebhookView,
    UserRegistrationView,
    UserRoleView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/logout/', TokenBlacklistView.as_view(), name='user_logout'),
    path('api/auth/role/', UserRoleView.as_view(), name='user_role'),

    # Listing endpoints
    path('api/listings/', ListingListCreateView.as_view(), name='listing_list'),
    path('api/listings/mine/', MyListingsView.as_view(), name='listing_mine'),
    path('api/listings/<int:pk>/', ListingDetailView.as_view(), name='listing_detail'),
    path('api/listings/<int:pk>/moderate/', ListingModerationView.as_view(), name='listing_moderate'),
    path('api/listings/<int:pk>/applications/', ListingApplicationsView.as_view(), name='listing_applications'),

    # Application endpoints
    path('api/applications/mine/', MyApplicationsView.as_view(), name='application_mine'),
    path('api/applications/<int:pk>/', ApplicationDetailView.as_view(), name='application_detail'),
    path('api/applications/<int:pk>/reject/', ApplicationRejectView.as_view(), name='application_reject'),
    path('api/applications/<int:pk>/withdraw/', ApplicationWithdrawView.as_view(), name='application_withdraw'),

    # Checkout and payment endpoints
    path('api/checkout/', CheckoutView.as_view(), name='checkout_start'),
    path('api/payments/confirm/', PaymentConfirmView.as_view(), name='payment_confirm'),
    path('api/payments/webhook/', StripeWebhookView.as_view(), name='payment_webhook'),
    path('api/payments/mine/', MyPaymentsView.as_view(), name='payment_mine'),
    path('api/payments/received/', ReceivedPaymentsView.as_view(), name='payment_received'),

    # JWT Authentication endpoints
    path('api/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),
]
