"""
Payment gateway adapter.

Wraps Stripe Checkout behind three calls the rest of the app needs: open a
checkout session, read a session back as a payment confirmation, and verify
a webhook delivery. The API key is passed per request so no process-wide
Stripe state is mutated.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

import stripe
from django.conf import settings

from .exceptions import InvalidState, UpstreamFailure

logger = logging.getLogger(__name__)

MINOR_UNITS = Decimal('100')
CENTS = Decimal('0.01')


def to_minor_units(amount):
    return int((Decimal(amount) * MINOR_UNITS).quantize(Decimal('1')))


def from_minor_units(value):
    return (Decimal(value) / MINOR_UNITS).quantize(CENTS)


@dataclass(frozen=True)
class CheckoutRequest:
    """Everything the gateway needs to open a hosted checkout page."""

    name: str
    description: str
    amount: Decimal
    currency: str
    customer_email: str
    metadata: dict
    success_url: str
    cancel_url: str
    quantity: int = 1


@dataclass(frozen=True)
class GatewaySession:
    id: str
    url: str


@dataclass(frozen=True)
class PaymentConfirmation:
    """
    A payment confirmation as read back from the gateway.

    Only transaction_ref and amount_total are authoritative. Metadata is the
    opaque dict attached at checkout and is treated as routing hints.
    """

    transaction_ref: str
    session_id: str
    payment_status: str
    amount_total: Decimal
    currency: str
    metadata: dict = field(default_factory=dict)

    @property
    def is_paid(self):
        return self.payment_status == 'paid'


def _as_dict(obj):
    """Plain dict copy of a StripeObject or a mapping."""
    if obj is None:
        return {}
    if hasattr(obj, 'to_dict'):
        return obj.to_dict()
    return dict(obj)


def confirmation_from_session(session):
    """Build a PaymentConfirmation from a Stripe checkout session object."""
    session = _as_dict(session)

    payment_intent = session.get('payment_intent')
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = _as_dict(payment_intent).get('id')

    metadata = _as_dict(session.get('metadata'))

    return PaymentConfirmation(
        transaction_ref=payment_intent or '',
        session_id=session.get('id'),
        payment_status=session.get('payment_status') or '',
        amount_total=from_minor_units(session.get('amount_total') or 0),
        currency=(session.get('currency') or '').lower(),
        metadata={key: str(value) for key, value in metadata.items()},
    )


class StripeGateway:
    """Stripe Checkout implementation of the payment gateway."""

    COMPLETED_EVENT = 'checkout.session.completed'

    def __init__(self, api_key, webhook_secret=''):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_session(self, request):
        """
        Open a hosted checkout session.

        Args:
            request: CheckoutRequest

        Returns:
            GatewaySession with the gateway id and redirect url

        Raises:
            UpstreamFailure: If Stripe rejects or cannot be reached
        """
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode='payment',
                line_items=[
                    {
                        'price_data': {
                            'currency': request.currency,
                            'product_data': {
                                'name': request.name,
                                'description': request.description,
                            },
                            'unit_amount': to_minor_units(request.amount),
                        },
                        'quantity': request.quantity,
                    },
                ],
                customer_email=request.customer_email,
                metadata=request.metadata,
                payment_intent_data={'metadata': request.metadata},
                success_url=request.success_url,
                cancel_url=request.cancel_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise UpstreamFailure('Payment session creation failed.') from e

        return GatewaySession(id=session.id, url=session.url)

    def retrieve_confirmation(self, session_id):
        """
        Read a checkout session back from Stripe.

        Raises:
            UpstreamFailure: If Stripe cannot be reached or the session is unknown
        """
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe session retrieval failed for {session_id}: {e}")
            raise UpstreamFailure('Could not retrieve the payment session.') from e

        return confirmation_from_session(session)

    def parse_webhook(self, payload, signature):
        """
        Verify a webhook delivery and extract the confirmation it carries.

        Returns:
            PaymentConfirmation for checkout.session.completed events, None for
            any other event type.

        Raises:
            InvalidState: If the signature or payload is invalid
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected Stripe webhook delivery: {e}")
            raise InvalidState('Invalid webhook signature or payload.') from e

        event = _as_dict(event)
        if event.get('type') != self.COMPLETED_EVENT:
            logger.info(f"Ignoring Stripe webhook event type {event.get('type')}")
            return None

        return confirmation_from_session(_as_dict(event.get('data')).get('object'))


def get_payment_gateway():
    """Build the configured gateway for the current request."""
    return StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )
