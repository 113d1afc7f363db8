"""
Shared fixtures: users, JWT-authenticated clients, listing and application
factories, and an in-memory payment gateway that stands in for Stripe.
"""

import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from tuitions.exceptions import InvalidState, UpstreamFailure
from tuitions.gateway import GatewaySession, PaymentConfirmation
from tuitions.models import Application, Listing

User = get_user_model()


class FakeGateway:
    """
    In-memory payment gateway.

    Sessions start unpaid; ``pay()`` settles one under a transaction
    reference the way a customer completing checkout would.
    """

    def __init__(self):
        self.sessions = {}
        self.requests = []
        self.fail = False

    def create_session(self, request):
        if self.fail:
            raise UpstreamFailure('Payment session creation failed.')
        session_id = f'cs_test_{len(self.sessions) + 1}'
        self.requests.append(request)
        self.sessions[session_id] = {
            'payment_status': 'unpaid',
            'payment_intent': '',
            'amount_total': Decimal(request.amount),
            'currency': request.currency,
            'metadata': dict(request.metadata),
        }
        return GatewaySession(id=session_id, url=f'https://checkout.test/{session_id}')

    def pay(self, session_id, transaction_ref, amount=None):
        session = self.sessions[session_id]
        session['payment_status'] = 'paid'
        session['payment_intent'] = transaction_ref
        if amount is not None:
            session['amount_total'] = Decimal(amount)

    def add_paid_session(self, session_id, transaction_ref, amount, metadata, currency='bdt'):
        self.sessions[session_id] = {
            'payment_status': 'paid',
            'payment_intent': transaction_ref,
            'amount_total': Decimal(amount),
            'currency': currency,
            'metadata': dict(metadata),
        }

    def retrieve_confirmation(self, session_id):
        if self.fail or session_id not in self.sessions:
            raise UpstreamFailure('Could not retrieve the payment session.')
        session = self.sessions[session_id]
        return PaymentConfirmation(
            transaction_ref=session['payment_intent'],
            session_id=session_id,
            payment_status=session['payment_status'],
            amount_total=session['amount_total'],
            currency=session['currency'],
            metadata=dict(session['metadata']),
        )

    def parse_webhook(self, payload, signature):
        if signature != 'valid':
            raise InvalidState('Invalid webhook signature or payload.')
        return self.retrieve_confirmation(payload.decode())


def build_confirmation(application, transaction_ref, amount=None, payment_status='paid', **metadata):
    """Build the confirmation the gateway would report for an application."""
    listing = application.listing
    routing = {
        'application_id': str(application.id),
        'listing_id': str(listing.id),
        'payer': listing.owner.email,
        'payee': application.tutor.email,
    }
    routing.update(metadata)
    return PaymentConfirmation(
        transaction_ref=transaction_ref,
        session_id=f'cs_{transaction_ref}',
        payment_status=payment_status,
        amount_total=Decimal(amount if amount is not None else application.expected_salary),
        currency='bdt',
        metadata=routing,
    )


@pytest.fixture
def api_client():
    """Return API client for testing."""
    return APIClient()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def student(db):
    """Create a student user for testing."""
    return User.objects.create_user(
        username='student@test.com',
        email='student@test.com',
        password='TestPass123!',
        user_type='student'
    )


@pytest.fixture
def other_student(db):
    return User.objects.create_user(
        username='student2@test.com',
        email='student2@test.com',
        password='TestPass123!',
        user_type='student'
    )


@pytest.fixture
def tutor(db):
    """Create a tutor user for testing."""
    return User.objects.create_user(
        username='tutor1@test.com',
        email='tutor1@test.com',
        password='TestPass123!',
        user_type='tutor'
    )


@pytest.fixture
def tutor2(db):
    return User.objects.create_user(
        username='tutor2@test.com',
        email='tutor2@test.com',
        password='TestPass123!',
        user_type='tutor'
    )


@pytest.fixture
def staff_user(db):
    """Create a staff moderator for testing."""
    return User.objects.create_user(
        username='staff@test.com',
        email='staff@test.com',
        password='TestPass123!',
        user_type='student',
        is_staff=True
    )


@pytest.fixture
def make_listing(db, student):
    """Factory for listings; approved (open) by default."""

    def _make(owner=None, status=Listing.APPROVED, **attrs):
        values = {
            'subject': 'Physics',
            'class_name': 'Class 10',
            'location': 'Dhanmondi, Dhaka',
            'budget': Decimal('5000.00'),
        }
        values.update(attrs)
        listing = Listing.objects.create(owner=owner or student, status=status, **values)
        if status == Listing.APPROVED:
            listing.approved_at = timezone.now()
            listing.save(update_fields=['approved_at'])
        return listing

    return _make


@pytest.fixture
def make_application(db):
    """Factory for pending applications."""

    def _make(listing, tutor, expected_salary='500.00', **attrs):
        values = {
            'qualifications': 'BSc in Physics',
            'experience': '2 years',
        }
        values.update(attrs)
        return Application.objects.create(
            listing=listing,
            tutor=tutor,
            expected_salary=Decimal(expected_salary),
            **values
        )

    return _make


@pytest.fixture
def make_confirmation():
    return build_confirmation


@pytest.fixture
def auth_client(db):
    """Factory returning an APIClient carrying a bearer token for a user."""

    def _client(user):
        client = APIClient()
        token = str(RefreshToken.for_user(user).access_token)
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        return client

    return _client


@pytest.fixture
def sign_webhook():
    """
    Factory returning (payload, Stripe-Signature header) for an event, signed
    the way Stripe signs webhook deliveries.
    """

    def _sign(event, secret):
        payload = json.dumps(event)
        timestamp = int(time.time())
        digest = hmac.new(
            secret.encode('utf-8'),
            f'{timestamp}.{payload}'.encode('utf-8'),
            hashlib.sha256,
        ).hexdigest()
        return payload.encode('utf-8'), f't={timestamp},v1={digest}'

    return _sign
