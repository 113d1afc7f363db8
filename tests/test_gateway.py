"""
Test suite for the Stripe gateway adapter.

Stripe is never called over the network: the library entry points are
patched, and sessions and events are real StripeObjects built with
construct_from so the adapter sees what the library actually returns.
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

import pytest
import stripe

from tuitions.exceptions import InvalidState, UpstreamFailure
from tuitions.gateway import (
    CheckoutRequest,
    StripeGateway,
    confirmation_from_session,
    from_minor_units,
    get_payment_gateway,
    to_minor_units,
)


def session_data(**overrides):
    session = {
        'id': 'cs_test_abc',
        'object': 'checkout.session',
        'payment_intent': 'pi_123',
        'payment_status': 'paid',
        'amount_total': 50000,
        'currency': 'BDT',
        'metadata': {
            'application_id': '12',
            'listing_id': '4',
            'payer': 'student@test.com',
            'payee': 'tutor1@test.com',
        },
    }
    session.update(overrides)
    return session


def stripe_session(**overrides):
    return stripe.checkout.Session.construct_from(session_data(**overrides), 'sk_test_key')


def event_data(event_type='checkout.session.completed', session=None):
    return {
        'id': 'evt_test_1',
        'object': 'event',
        'type': event_type,
        'data': {'object': session if session is not None else session_data()},
    }


@pytest.fixture
def checkout_request():
    return CheckoutRequest(
        name='Tuition: Physics',
        description='Class 10 tuition',
        amount=Decimal('4500.50'),
        currency='bdt',
        customer_email='student@test.com',
        metadata={'application_id': '12', 'listing_id': '4'},
        success_url='http://client.test/payment-success?session_id={CHECKOUT_SESSION_ID}',
        cancel_url='http://client.test/tuition/4',
    )


class TestMinorUnits:

    def test_to_minor_units(self):
        assert to_minor_units(Decimal('4500.50')) == 450050
        assert to_minor_units('12') == 1200

    def test_from_minor_units(self):
        assert from_minor_units(50000) == Decimal('500.00')
        assert from_minor_units(1) == Decimal('0.01')


class TestConfirmationFromSession:

    def test_reads_paid_session(self):
        confirmation = confirmation_from_session(stripe_session())

        assert confirmation.transaction_ref == 'pi_123'
        assert confirmation.session_id == 'cs_test_abc'
        assert confirmation.is_paid
        assert confirmation.amount_total == Decimal('500.00')
        assert confirmation.currency == 'bdt'
        assert confirmation.metadata['application_id'] == '12'

    def test_expanded_payment_intent(self):
        confirmation = confirmation_from_session(
            stripe_session(payment_intent={'id': 'pi_expanded', 'object': 'payment_intent'})
        )

        assert confirmation.transaction_ref == 'pi_expanded'

    def test_unpaid_session_has_no_reference(self):
        confirmation = confirmation_from_session(
            stripe_session(payment_intent=None, payment_status='unpaid', amount_total=None)
        )

        assert confirmation.transaction_ref == ''
        assert not confirmation.is_paid
        assert confirmation.amount_total == Decimal('0.00')


class TestStripeGateway:

    def test_create_session_sends_minor_units(self, checkout_request):
        gateway = StripeGateway(api_key='sk_test_key')

        with mock.patch('stripe.checkout.Session.create') as create:
            create.return_value = SimpleNamespace(id='cs_test_new', url='https://checkout.stripe.test/x')
            session = gateway.create_session(checkout_request)

        assert session.id == 'cs_test_new'
        assert session.url == 'https://checkout.stripe.test/x'
        kwargs = create.call_args.kwargs
        assert kwargs['api_key'] == 'sk_test_key'
        assert kwargs['mode'] == 'payment'
        assert kwargs['line_items'][0]['price_data']['unit_amount'] == 450050
        assert kwargs['metadata'] == checkout_request.metadata
        assert kwargs['success_url'] == checkout_request.success_url

    def test_create_session_wraps_stripe_errors(self, checkout_request):
        gateway = StripeGateway(api_key='sk_test_key')

        with mock.patch('stripe.checkout.Session.create', side_effect=stripe.StripeError('boom')):
            with pytest.raises(UpstreamFailure):
                gateway.create_session(checkout_request)

    def test_retrieve_confirmation(self):
        gateway = StripeGateway(api_key='sk_test_key')

        with mock.patch('stripe.checkout.Session.retrieve', return_value=stripe_session()) as retrieve:
            confirmation = gateway.retrieve_confirmation('cs_test_abc')

        retrieve.assert_called_once_with('cs_test_abc', api_key='sk_test_key')
        assert confirmation.transaction_ref == 'pi_123'

    def test_retrieve_wraps_stripe_errors(self):
        gateway = StripeGateway(api_key='sk_test_key')

        with mock.patch('stripe.checkout.Session.retrieve', side_effect=stripe.StripeError('down')):
            with pytest.raises(UpstreamFailure):
                gateway.retrieve_confirmation('cs_test_abc')


class TestWebhookParsing:

    def test_signed_completed_event(self, sign_webhook):
        gateway = StripeGateway(api_key='sk_test_key', webhook_secret='whsec_test')
        payload, signature = sign_webhook(event_data(), 'whsec_test')

        confirmation = gateway.parse_webhook(payload, signature)

        assert confirmation.transaction_ref == 'pi_123'
        assert confirmation.session_id == 'cs_test_abc'
        assert confirmation.amount_total == Decimal('500.00')
        assert confirmation.metadata == {
            'application_id': '12',
            'listing_id': '4',
            'payer': 'student@test.com',
            'payee': 'tutor1@test.com',
        }

    def test_signed_with_wrong_secret(self, sign_webhook):
        gateway = StripeGateway(api_key='sk_test_key', webhook_secret='whsec_test')
        payload, signature = sign_webhook(event_data(), 'whsec_other')

        with pytest.raises(InvalidState):
            gateway.parse_webhook(payload, signature)

    def test_completed_event_object(self):
        gateway = StripeGateway(api_key='sk_test_key', webhook_secret='whsec_test')
        event = stripe.Event.construct_from(event_data(), 'sk_test_key')

        with mock.patch('stripe.Webhook.construct_event', return_value=event) as construct:
            confirmation = gateway.parse_webhook(b'{}', 't=1,v1=abc')

        construct.assert_called_once_with(b'{}', 't=1,v1=abc', 'whsec_test')
        assert confirmation.transaction_ref == 'pi_123'

    def test_other_events_ignored(self, sign_webhook):
        gateway = StripeGateway(api_key='sk_test_key', webhook_secret='whsec_test')
        payload, signature = sign_webhook(
            event_data('payment_intent.created', {'id': 'pi_123', 'object': 'payment_intent'}),
            'whsec_test'
        )

        assert gateway.parse_webhook(payload, signature) is None

    def test_bad_signature(self):
        gateway = StripeGateway(api_key='sk_test_key', webhook_secret='whsec_test')
        error = stripe.SignatureVerificationError('No signatures found', 'sig')

        with mock.patch('stripe.Webhook.construct_event', side_effect=error):
            with pytest.raises(InvalidState):
                gateway.parse_webhook(b'{}', 'sig')

    def test_malformed_payload(self):
        gateway = StripeGateway(api_key='sk_test_key', webhook_secret='whsec_test')

        with mock.patch('stripe.Webhook.construct_event', side_effect=ValueError('bad json')):
            with pytest.raises(InvalidState):
                gateway.parse_webhook(b'not json', 'sig')


def test_gateway_built_from_settings(settings):
    settings.STRIPE_SECRET_KEY = 'sk_test_from_settings'
    settings.STRIPE_WEBHOOK_SECRET = 'whsec_from_settings'

    gateway = get_payment_gateway()

    assert gateway.api_key == 'sk_test_from_settings'
    assert gateway.webhook_secret == 'whsec_from_settings'
