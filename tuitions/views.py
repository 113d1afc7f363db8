"""
REST API views for the eTuition marketplace.

Views are thin: they authenticate, validate request shape with a serializer
and hand off to the lifecycle objects. Marketplace errors raised there are
rendered by ``tuitions.exceptions.marketplace_exception_handler``.
"""

import logging

from django.db import IntegrityError
from rest_framework import generics, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from .applications import ApplicationLifecycle
from .checkout import CheckoutInitiator
from .exceptions import Conflict, Forbidden, InvalidState, NotFound
from .gateway import get_payment_gateway
from .listings import ListingLifecycle
from .models import Payment
from .permissions import IsStaffUser, IsStudent, IsTutor
from .reconciler import PaymentReconciler
from .serializers import (
    ApplicationSerializer,
    BidSerializer,
    CheckoutSessionSerializer,
    CheckoutStartSerializer,
    EmailTokenObtainPairSerializer,
    ListingSerializer,
    ListingWriteSerializer,
    ModerationSerializer,
    PaymentConfirmSerializer,
    PaymentSerializer,
    UserRegistrationSerializer,
    UserRoleSerializer,
)

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


# ============================================================================
# Authentication Views
# ============================================================================

class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Custom view to use email-based authentication instead of username.
    """
    serializer_class = EmailTokenObtainPairSerializer


class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for registering a student or tutor.

    POST /api/auth/register/
    Request body: {
        "email": "student@example.com",
        "password": "SecurePass123!",
        "confirm_password": "SecurePass123!",
        "user_type": "student"
    }

    Error responses:
    - 400: Invalid data or email already registered
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]
    authentication_classes = []

    def create(self, request, *args, **kwargs):
        """
        Handle registration, catching IntegrityError for concurrent
        duplicate email attempts.
        """
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self.perform_create(serializer)
        except IntegrityError:
            return Response(
                {'email': ['A user with that email already exists.']},
                status=status.HTTP_400_BAD_REQUEST
            )

        logger.info(
            f"User registered. User ID: {serializer.instance.id}, "
            f"Email: {serializer.instance.email}, Type: {serializer.instance.user_type}, "
            f"IP: {get_client_ip(request)}"
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)


class UserRoleView(APIView):
    """
    GET /api/auth/role/

    Returns the caller's role so clients can pick the student or tutor
    dashboard.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        return Response(UserRoleSerializer(request.user).data)


# ============================================================================
# Listing Views
# ============================================================================

class ListingListCreateView(APIView):
    """
    GET  /api/listings/  Open listings, visible to anyone
    POST /api/listings/  Post a new listing (students only)

    Request body (POST): {
        "subject": "Physics",
        "class_name": "Class 10",
        "location": "Dhanmondi, Dhaka",
        "budget": "5000.00",
        "medium": "English", "schedule": "3 days/week", "phone": "", "description": ""
    }

    Error responses:
    - 401: Missing, invalid, or expired JWT token (POST)
    - 403: Caller is not a student
    - 400: Invalid data
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, *args, **kwargs):
        listings = ListingLifecycle().open_listings().select_related('hired_tutor')
        return Response(ListingSerializer(listings, many=True).data)

    def post(self, request, *args, **kwargs):
        serializer = ListingWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            listing = ListingLifecycle().create(request.user, serializer.validated_data)
        except Forbidden:
            logger.warning(
                f"Non-student attempted to post a listing. User: {request.user.email}, "
                f"IP: {get_client_ip(request)}"
            )
            raise

        return Response(ListingSerializer(listing).data, status=status.HTTP_201_CREATED)


class MyListingsView(APIView):
    """GET /api/listings/mine/  Listings posted by the caller."""
    permission_classes = [IsAuthenticated, IsStudent]

    def get(self, request, *args, **kwargs):
        listings = ListingLifecycle().owned_by(request.user)
        return Response(ListingSerializer(listings, many=True).data)


class ListingDetailView(APIView):
    """
    GET    /api/listings/<id>/  Listing detail
    PATCH  /api/listings/<id>/  Edit a pending or rejected listing (owner only)
    DELETE /api/listings/<id>/  Withdraw the listing (owner only)

    Withdrawal is soft: the listing keeps its history and every pending
    application on it is withdrawn as well.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        listing = (
            ListingLifecycle()
            .visible_to(request.user)
            .select_related('owner', 'hired_tutor')
            .filter(pk=pk)
            .first()
        )
        if listing is None:
            raise NotFound(f'Listing {pk} does not exist.')
        return Response(ListingSerializer(listing).data)

    def patch(self, request, pk, *args, **kwargs):
        serializer = ListingWriteSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        listing = ListingLifecycle().update(pk, serializer.validated_data, request.user)
        return Response(ListingSerializer(listing).data)

    def delete(self, request, pk, *args, **kwargs):
        listing = ListingLifecycle().withdraw(pk, request.user)
        logger.info(
            f"Listing withdrawn via API. Listing ID: {listing.id}, "
            f"User: {request.user.email}, IP: {get_client_ip(request)}"
        )
        return Response(ListingSerializer(listing).data)


class ListingModerationView(APIView):
    """
    POST /api/listings/<id>/moderate/

    Request body: {"decision": "approved" | "rejected"}

    Error responses:
    - 403: Caller is not staff
    - 400: Listing is not pending
    - 404: Listing does not exist
    """
    permission_classes = [IsAuthenticated, IsStaffUser]

    def post(self, request, pk, *args, **kwargs):
        serializer = ModerationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        listing = ListingLifecycle().moderate(pk, serializer.validated_data['decision'], request.user)
        logger.info(
            f"Listing moderated via API. Listing ID: {listing.id}, Status: {listing.status}, "
            f"Moderator: {request.user.email}, IP: {get_client_ip(request)}"
        )

        return Response(ListingSerializer(listing).data)


# ============================================================================
# Application Views
# ============================================================================

class ListingApplicationsView(APIView):
    """
    GET  /api/listings/<id>/applications/  Applications on a listing (owner only)
    POST /api/listings/<id>/applications/  Apply to an open listing (tutors only)

    Request body (POST): {
        "qualifications": "BSc Physics, BUET",
        "experience": "3 years",
        "expected_salary": "4500.00"
    }

    Error responses:
    - 403: Caller may not view or apply
    - 400: Listing is not open for applications
    - 404: Listing does not exist
    - 409: Tutor already applied
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, pk, *args, **kwargs):
        applications = ApplicationLifecycle().for_listing(pk, request.user)
        return Response(ApplicationSerializer(applications, many=True).data)

    def post(self, request, pk, *args, **kwargs):
        serializer = BidSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            application = ApplicationLifecycle().apply(pk, request.user, serializer.validated_data)
        except Conflict:
            logger.warning(
                f"Duplicate application attempt. Listing ID: {pk}, "
                f"Tutor: {request.user.email}, IP: {get_client_ip(request)}"
            )
            raise

        return Response(ApplicationSerializer(application).data, status=status.HTTP_201_CREATED)


class MyApplicationsView(APIView):
    """GET /api/applications/mine/  Applications submitted by the caller."""
    permission_classes = [IsAuthenticated, IsTutor]

    def get(self, request, *args, **kwargs):
        applications = ApplicationLifecycle().submitted_by(request.user).select_related('tutor')
        return Response(ApplicationSerializer(applications, many=True).data)


class ApplicationDetailView(APIView):
    """PATCH /api/applications/<id>/  Amend a pending bid (applying tutor only)."""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk, *args, **kwargs):
        serializer = BidSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        application = ApplicationLifecycle().amend(pk, serializer.validated_data, request.user)
        return Response(ApplicationSerializer(application).data)


class ApplicationRejectView(APIView):
    """POST /api/applications/<id>/reject/  Listing owner turns down a bid."""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        application = ApplicationLifecycle().reject(pk, request.user)
        return Response(ApplicationSerializer(application).data)


class ApplicationWithdrawView(APIView):
    """POST /api/applications/<id>/withdraw/  Tutor pulls back a bid."""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        application = ApplicationLifecycle().withdraw(pk, request.user)
        return Response(ApplicationSerializer(application).data)


# ============================================================================
# Checkout and Payment Views
# ============================================================================

class CheckoutView(APIView):
    """
    POST /api/checkout/

    Opens a hosted checkout page to hire the tutor behind an application.
    The amount charged is the application's expected salary as stored.

    Request body: {"application_id": 12}

    Success response (201):
    {
        "session_id": "cs_test_...",
        "url": "https://checkout.stripe.com/...",
        "listing": 4,
        "application": 12,
        "quoted_amount": "4500.00",
        "currency": "bdt",
        "created_at": "..."
    }

    Error responses:
    - 403: Caller does not own the listing
    - 400: Listing closed or application already decided
    - 503: Payment gateway unavailable
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = CheckoutStartSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        initiator = CheckoutInitiator(gateway=get_payment_gateway())
        session = initiator.start(serializer.validated_data['application_id'], request.user)

        return Response(CheckoutSessionSerializer(session).data, status=status.HTTP_201_CREATED)


class PaymentConfirmView(APIView):
    """
    POST /api/payments/confirm/

    Called by the client after the gateway redirects back to the success
    page. The session is read from the gateway and reconciled; calling this
    again for the same session returns the same payment.

    Request body: {"session_id": "cs_test_..."}

    Error responses:
    - 400: The payment could not be applied (details are logged)
    - 403: Caller is not the payer
    - 503: Payment gateway unavailable
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PaymentConfirmSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        session_id = serializer.validated_data['session_id']
        reconciler = PaymentReconciler(gateway=get_payment_gateway())

        try:
            result = reconciler.confirm_session(session_id)
        except (InvalidState, Conflict, NotFound) as e:
            logger.warning(
                f"Payment confirmation failed. Session: {session_id}, Reason: {e}, "
                f"User: {request.user.email}, IP: {get_client_ip(request)}"
            )
            return Response(
                {'detail': 'This payment could not be confirmed. Please contact support.',
                 'code': 'payment_not_confirmed'},
                status=status.HTTP_400_BAD_REQUEST
            )

        payment = result.payment
        if payment.payer_id != request.user.id:
            logger.warning(
                f"Payment confirmed by someone other than the payer. Payment ID: {payment.id}, "
                f"User: {request.user.email}, IP: {get_client_ip(request)}"
            )
            raise Forbidden('Only the payer can view this payment.')

        return Response(
            PaymentSerializer(payment).data,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
        )


class StripeWebhookView(APIView):
    """
    POST /api/payments/webhook/

    Receives Stripe events. Only checkout.session.completed is acted on.
    Deliveries that fail validation are acknowledged with 200 after the
    anomaly is logged, since redelivering them cannot succeed. Invalid
    signatures get 400; infrastructure failures surface as 5xx so Stripe
    retries.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        signature = request.META.get('HTTP_STRIPE_SIGNATURE', '')
        gateway = get_payment_gateway()

        confirmation = gateway.parse_webhook(request.body, signature)
        if confirmation is None:
            return Response({'received': True, 'processed': False})

        try:
            result = PaymentReconciler(gateway=gateway).reconcile(confirmation)
        except (InvalidState, Conflict, NotFound) as e:
            logger.warning(
                f"Webhook payment not applied. Transaction: {confirmation.transaction_ref}, "
                f"Session: {confirmation.session_id}, Reason: {e}"
            )
            return Response({'received': True, 'processed': False})

        return Response({
            'received': True,
            'processed': True,
            'payment_id': result.payment.id,
            'created': result.created,
        })


class MyPaymentsView(APIView):
    """GET /api/payments/mine/  Payments the caller made."""
    permission_classes = [IsAuthenticated, IsStudent]

    def get(self, request, *args, **kwargs):
        payments = (
            Payment.objects.filter(payer=request.user)
            .select_related('listing', 'payer', 'payee')
        )
        return Response(PaymentSerializer(payments, many=True).data)


class ReceivedPaymentsView(APIView):
    """GET /api/payments/received/  Payments that hired the caller."""
    permission_classes = [IsAuthenticated, IsTutor]

    def get(self, request, *args, **kwargs):
        payments = (
            Payment.objects.filter(payee=request.user)
            .select_related('listing', 'payer', 'payee')
        )
        return Response(PaymentSerializer(payments, many=True).data)
