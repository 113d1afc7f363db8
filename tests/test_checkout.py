"""
Test suite for checkout initiation.
"""

from decimal import Decimal

import pytest

from tuitions.applications import ApplicationLifecycle
from tuitions.checkout import CheckoutInitiator
from tuitions.exceptions import Forbidden, InvalidState, UpstreamFailure
from tuitions.listings import ListingLifecycle
from tuitions.models import CheckoutSession


@pytest.fixture
def initiator(gateway):
    return CheckoutInitiator(gateway=gateway)


@pytest.mark.django_db
class TestCheckoutStart:

    def test_owner_starts_checkout(self, initiator, gateway, make_listing, make_application, student, tutor):
        listing = make_listing(subject='Chemistry')
        application = make_application(listing, tutor, expected_salary='4200.00')

        session = initiator.start(application.id, student)

        assert session.session_id == 'cs_test_1'
        assert session.url == 'https://checkout.test/cs_test_1'
        assert session.quoted_amount == Decimal('4200.00')
        assert session.currency == 'bdt'
        assert session.payer == student
        assert session.payee == tutor
        assert CheckoutSession.objects.filter(application=application).count() == 1

        request = gateway.requests[0]
        assert request.amount == Decimal('4200.00')
        assert request.name == 'Tuition: Chemistry'
        assert request.customer_email == student.email
        assert request.metadata == {
            'application_id': str(application.id),
            'listing_id': str(listing.id),
            'payer': student.email,
            'payee': tutor.email,
        }
        assert request.success_url == 'http://client.test/payment-success?session_id={CHECKOUT_SESSION_ID}'
        assert request.cancel_url == f'http://client.test/tuition/{listing.id}'

    def test_non_owner_cannot_start(self, initiator, make_listing, make_application, other_student, tutor):
        application = make_application(make_listing(), tutor)

        with pytest.raises(Forbidden):
            initiator.start(application.id, other_student)

        assert CheckoutSession.objects.count() == 0

    def test_closed_listing(self, initiator, make_listing, make_application, student, tutor):
        listing = make_listing()
        application = make_application(listing, tutor)
        ListingLifecycle().withdraw(listing.id, student)

        with pytest.raises(InvalidState):
            initiator.start(application.id, student)

    def test_decided_application(self, initiator, make_listing, make_application, student, tutor):
        application = make_application(make_listing(), tutor)
        ApplicationLifecycle().reject(application.id, student)

        with pytest.raises(InvalidState):
            initiator.start(application.id, student)

    def test_gateway_failure_stores_nothing(self, initiator, gateway, make_listing, make_application, student, tutor):
        application = make_application(make_listing(), tutor)
        gateway.fail = True

        with pytest.raises(UpstreamFailure):
            initiator.start(application.id, student)

        assert CheckoutSession.objects.count() == 0

    def test_each_attempt_opens_new_session(self, initiator, make_listing, make_application, student, tutor):
        application = make_application(make_listing(), tutor)

        first = initiator.start(application.id, student)
        second = initiator.start(application.id, student)

        assert first.session_id != second.session_id
        assert CheckoutSession.objects.filter(application=application).count() == 2
