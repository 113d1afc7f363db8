"""
Checkout initiation.

Opens a gateway checkout session that, once paid, will hire the applying
tutor. The amount is always the application's expected salary as stored on
the server; nothing the client sends influences it.
"""

import logging

from django.conf import settings

from .exceptions import Forbidden, InvalidState, UpstreamFailure
from .gateway import CheckoutRequest
from .ledger import LedgerOperation
from .models import Application, CheckoutSession

logger = logging.getLogger(__name__)


class CheckoutInitiator(LedgerOperation):
    """
    Builds checkout requests for pending applications.

    Args:
        gateway: Payment gateway that opens the hosted checkout page
        using: Database alias to read and write through
        clock: Callable returning the current aware datetime
    """

    def __init__(self, gateway=None, **kwargs):
        super().__init__(**kwargs)
        self.gateway = gateway

    def start(self, application_id, requester):
        """
        Open a checkout session for an application.

        Args:
            application_id: Application the student wants to hire
            requester: Authenticated user, must own the listing

        Returns:
            CheckoutSession: The stored session, carrying the redirect url

        Raises:
            NotFound: If the application does not exist
            Forbidden: If the requester does not own the listing
            InvalidState: If the listing is closed or the application decided
            UpstreamFailure: If the gateway cannot open a session
        """
        if self.gateway is None:
            raise UpstreamFailure('No payment gateway is configured.')

        application = self.get(Application, application_id)
        listing = application.listing

        if listing.owner_id != requester.id:
            logger.warning(
                f"Checkout attempt by non-owner. Application ID: {application.id}, "
                f"Listing ID: {listing.id}, User: {requester.email}"
            )
            raise Forbidden('Only the listing owner can hire a tutor for it.')

        if not listing.is_open:
            raise InvalidState('This listing is no longer open for hiring.')

        if application.status != Application.PENDING:
            raise InvalidState(f'This application is already {application.status}.')

        tutor = application.tutor
        currency = settings.PAYMENT_CURRENCY
        request = CheckoutRequest(
            name=f'Tuition: {listing.subject}',
            description=f'{listing.class_name} tuition in {listing.location} with {tutor.email}',
            amount=application.expected_salary,
            currency=currency,
            customer_email=requester.email,
            metadata={
                'application_id': str(application.id),
                'listing_id': str(listing.id),
                'payer': requester.email,
                'payee': tutor.email,
            },
            success_url=f'{settings.CLIENT_DOMAIN}/payment-success?session_id={{CHECKOUT_SESSION_ID}}',
            cancel_url=f'{settings.CLIENT_DOMAIN}/tuition/{listing.id}',
        )

        gateway_session = self.gateway.create_session(request)

        session = CheckoutSession(
            session_id=gateway_session.id,
            listing=listing,
            application=application,
            payer=requester,
            payee=tutor,
            quoted_amount=application.expected_salary,
            currency=currency,
            url=gateway_session.url or '',
        )
        session.save(using=self.using)

        logger.info(
            f"Checkout started. Session: {session.session_id}, Application ID: {application.id}, "
            f"Listing ID: {listing.id}, Payer: {requester.email}, "
            f"Amount: {application.expected_salary} {currency}"
        )
        return session
