"""
Payment reconciliation.

Turns a payment confirmation from the gateway into a hire: the winning
application is approved, competing applications are rejected, the listing
is bound to the tutor and a Payment row is recorded, all in one database
transaction. The Payment's unique transaction_ref is the idempotency key, so
the same confirmation may be processed any number of times, concurrently or
not, and produces one Payment.

Hired listings that somehow end up without a Payment are repaired by
``PaymentReconciler.recover``, which completes the missing Payment from the
gateway rather than undoing the hire.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError

from .applications import ApplicationLifecycle
from .exceptions import Conflict, InvalidState, NotFound, UpstreamFailure
from .ledger import LedgerOperation
from .listings import ListingLifecycle
from .models import Application, CheckoutSession, Listing, Payment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationResult:
    payment: Payment
    created: bool


@dataclass
class RecoveryReport:
    """Outcome of one recovery pass over hired listings."""

    completed: list = field(default_factory=list)
    unresolved: list = field(default_factory=list)
    closed_applications: int = 0

    @property
    def clean(self):
        return not self.completed and not self.unresolved and not self.closed_applications


class PaymentReconciler(LedgerOperation):
    """
    Applies payment confirmations to listings and applications.

    Args:
        gateway: Payment gateway used by confirm_session() and recover()
        using: Database alias to read and write through
        clock: Callable returning the current aware datetime
    """

    def __init__(self, gateway=None, **kwargs):
        super().__init__(**kwargs)
        self.gateway = gateway
        self.listings = ListingLifecycle(using=self.using, clock=self.clock)
        self.applications = ApplicationLifecycle(using=self.using, clock=self.clock)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def confirm_session(self, session_id):
        """Fetch a checkout session from the gateway and reconcile it."""
        if self.gateway is None:
            raise UpstreamFailure('No payment gateway is configured.')
        confirmation = self.gateway.retrieve_confirmation(session_id)
        return self.reconcile(confirmation)

    def reconcile(self, confirmation):
        """
        Process one payment confirmation.

        Steps:
        1. Return the existing Payment if this transaction_ref was processed
        2. Validate the listing and application still allow the hire
        3. Take the amount from the gateway's settled total
        4. Approve the winner, reject competitors, hire the listing
        5. Insert the Payment

        Steps 2 to 5 run in one transaction under a lock on the listing row.
        A unique-constraint failure on the insert means another worker won
        the race; its Payment is returned instead.

        Returns:
            ReconciliationResult

        Raises:
            NotFound: If the listing or application does not exist
            InvalidState: If the confirmation cannot hire (logged as an anomaly)
            Conflict: If a replay disagrees with the recorded Payment
        """
        transaction_ref = confirmation.transaction_ref
        if not transaction_ref:
            raise self._anomaly(confirmation, 'Payment confirmation carries no transaction reference.')

        existing = self._existing_payment(transaction_ref)
        if existing is not None:
            return self._replay(existing, confirmation)

        try:
            with self.atomic():
                return self._apply_hire(confirmation)
        except IntegrityError as e:
            existing = self._existing_payment(transaction_ref)
            if existing is None:
                logger.error(
                    f"Payment insert violated a constraint other than the transaction reference. "
                    f"Transaction: {transaction_ref}, Error: {e}"
                )
                raise Conflict('This payment conflicts with an existing payment record.') from e
            logger.info(
                f"Concurrent reconciliation lost the insert race. "
                f"Transaction: {transaction_ref}, Payment ID: {existing.id}"
            )
            return self._replay(existing, confirmation)

    def _apply_hire(self, confirmation):
        """
        Run steps 2 to 5 inside the caller's transaction.

        Returns:
            ReconciliationResult, replaying the Payment another worker
            committed while this one waited for the listing lock
        """
        listing_id = self._routing_id(confirmation, 'listing_id')
        application_id = self._routing_id(confirmation, 'application_id')

        listing = self.lock(Listing, listing_id)

        # Re-check under the lock: a worker holding the same reference may
        # have committed while this one was blocked.
        existing = self._existing_payment(confirmation.transaction_ref)
        if existing is not None:
            return self._replay(existing, confirmation)

        application = self.get(Application, application_id)
        self._validate(confirmation, listing, application)

        amount = Decimal(confirmation.amount_total)
        now = self.clock()

        # Another writer can still move the application without the listing lock.
        try:
            self.applications.mark_approved(application.pk, now)
            rejected = self.applications.reject_competing(listing.pk, application.pk, now)
            self.listings.mark_hired(listing.pk, application.tutor, now)
        except InvalidState as e:
            raise self._anomaly(confirmation, str(e)) from e

        payment = Payment(
            transaction_ref=confirmation.transaction_ref,
            listing=listing,
            application=application,
            payer=listing.owner,
            payee=application.tutor,
            amount=amount,
            currency=(confirmation.currency or settings.PAYMENT_CURRENCY).lower(),
            status=Payment.COMPLETED,
            checkout_session_id=confirmation.session_id or '',
            paid_at=now,
        )
        with self.atomic():
            payment.save(using=self.using)

        logger.info(
            f"Hire reconciled. Payment ID: {payment.id}, Transaction: {payment.transaction_ref}, "
            f"Listing ID: {listing.pk}, Application ID: {application.pk}, "
            f"Tutor: {application.tutor.email}, Amount: {amount}, "
            f"Competing applications rejected: {rejected}"
        )
        return ReconciliationResult(payment=payment, created=True)

    def _validate(self, confirmation, listing, application):
        if not confirmation.is_paid:
            raise self._anomaly(
                confirmation,
                f"Payment has not been settled (status '{confirmation.payment_status}')."
            )

        if application.listing_id != listing.pk:
            raise self._anomaly(
                confirmation,
                f'Application {application.pk} does not belong to listing {listing.pk}.'
            )

        if not listing.is_open:
            raise self._anomaly(
                confirmation,
                f'Listing {listing.pk} is not open for hiring (status {listing.status}, '
                f'withdrawn: {listing.is_withdrawn}).'
            )

        if application.status != Application.PENDING:
            raise self._anomaly(
                confirmation,
                f'Application {application.pk} is already {application.status}.'
            )

        metadata = confirmation.metadata or {}
        payer = metadata.get('payer')
        payee = metadata.get('payee')
        if payer and payer.lower() != listing.owner.email:
            raise self._anomaly(confirmation, 'Payment payer does not own the listing.')
        if payee and payee.lower() != application.tutor.email:
            raise self._anomaly(confirmation, 'Payment payee did not submit the application.')

        if confirmation.amount_total is None or Decimal(confirmation.amount_total) <= 0:
            raise self._anomaly(confirmation, 'Settled amount must be positive.')

    def _replay(self, payment, confirmation):
        """
        Resolve a confirmation whose transaction_ref is already recorded.

        An identical replay returns the recorded Payment. A replay naming a
        different amount, listing or application is a Conflict that needs
        manual reconciliation; the recorded Payment is never changed.
        """
        metadata = confirmation.metadata or {}
        mismatches = []

        if confirmation.amount_total is not None and Decimal(confirmation.amount_total) != payment.amount:
            mismatches.append(f'amount {confirmation.amount_total} != {payment.amount}')
        if metadata.get('listing_id') and str(metadata['listing_id']) != str(payment.listing_id):
            mismatches.append(f"listing {metadata['listing_id']} != {payment.listing_id}")
        if metadata.get('application_id') and str(metadata['application_id']) != str(payment.application_id):
            mismatches.append(f"application {metadata['application_id']} != {payment.application_id}")

        if mismatches:
            logger.error(
                f"Payment replay disagrees with recorded payment; manual reconciliation required. "
                f"Transaction: {payment.transaction_ref}, Payment ID: {payment.id}, "
                f"Differences: {'; '.join(mismatches)}"
            )
            raise Conflict(
                'This transaction was already recorded with different details. '
                'It has been flagged for manual reconciliation.'
            )

        logger.info(
            f"Duplicate payment confirmation ignored. "
            f"Transaction: {payment.transaction_ref}, Payment ID: {payment.id}"
        )
        return ReconciliationResult(payment=payment, created=False)

    def _routing_id(self, confirmation, key):
        value = (confirmation.metadata or {}).get(key)
        try:
            return int(value)
        except (TypeError, ValueError):
            raise self._anomaly(confirmation, f"Payment metadata has no valid '{key}'.")

    def _existing_payment(self, transaction_ref):
        return self.objects(Payment).filter(transaction_ref=transaction_ref).first()

    def _anomaly(self, confirmation, message):
        logger.error(
            f"Payment confirmation rejected as a data-integrity anomaly: {message} "
            f"Transaction: {confirmation.transaction_ref}, Session: {confirmation.session_id}, "
            f"Metadata: {confirmation.metadata}"
        )
        return InvalidState(message)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover(self, dry_run=False, batch_size=100):
        """
        Repair hired listings that are missing their Payment.

        For each hired listing without a Payment, the approved application's
        checkout sessions are read back from the gateway and the paid one is
        recorded as the Payment. Pending applications left on any hired
        listing are rejected. Nothing is ever rolled back: the money has
        moved, so the hire stands and unresolvable cases are reported for an
        operator.

        Returns:
            RecoveryReport
        """
        report = RecoveryReport()

        stranded = (
            self.objects(Application)
            .filter(listing__status=Listing.HIRED, status=Application.PENDING)
        )
        if dry_run:
            report.closed_applications = stranded.count()
        else:
            now = self.clock()
            report.closed_applications = stranded.update(
                status=Application.REJECTED, decided_at=now, updated_at=now
            )
        if report.closed_applications:
            logger.error(
                f"Recovery found {report.closed_applications} pending application(s) "
                f"on hired listings{' (dry run)' if dry_run else '; rejected them'}."
            )

        unpaid_ids = list(
            self.objects(Listing)
            .filter(status=Listing.HIRED, payments__isnull=True)
            .order_by('pk')
            .values_list('pk', flat=True)
        )
        for start in range(0, len(unpaid_ids), batch_size):
            batch = self.objects(Listing).select_related('owner').in_bulk(unpaid_ids[start:start + batch_size])
            self._repair_batch(batch, dry_run, report)

        return report

    def _repair_batch(self, listings, dry_run, report):
        for listing in sorted(listings.values(), key=lambda listing: listing.pk):
            try:
                payment = self._complete_payment(listing, dry_run)
            except (NotFound, InvalidState, UpstreamFailure, IntegrityError) as e:
                logger.error(
                    f"Hired listing has no payment and could not be repaired. "
                    f"Listing ID: {listing.pk}, Reason: {e}"
                )
                report.unresolved.append((listing.pk, str(e)))
                continue

            report.completed.append((listing.pk, payment.transaction_ref))

    def _complete_payment(self, listing, dry_run):
        winner = (
            self.objects(Application)
            .filter(listing=listing, status=Application.APPROVED)
            .select_related('tutor')
            .first()
        )
        if winner is None:
            raise NotFound('No approved application exists for this hired listing.')

        if self.gateway is None:
            raise UpstreamFailure('No payment gateway is configured.')

        sessions = self.objects(CheckoutSession).filter(application=winner).order_by('-created_at')
        for session in sessions:
            confirmation = self.gateway.retrieve_confirmation(session.session_id)
            if not confirmation.is_paid or not confirmation.transaction_ref:
                continue
            if confirmation.amount_total <= 0:
                continue

            payment = Payment(
                transaction_ref=confirmation.transaction_ref,
                listing=listing,
                application=winner,
                payer=listing.owner,
                payee=winner.tutor,
                amount=confirmation.amount_total,
                currency=(confirmation.currency or session.currency).lower(),
                status=Payment.COMPLETED,
                checkout_session_id=session.session_id,
                paid_at=listing.hired_at or self.clock(),
            )
            if dry_run:
                logger.info(
                    f"[DRY-RUN] Would record payment {confirmation.transaction_ref} "
                    f"for hired listing {listing.pk}"
                )
                return payment

            with self.atomic():
                payment.save(using=self.using)

            logger.error(
                f"Recovery recorded a missing payment. Payment ID: {payment.id}, "
                f"Transaction: {payment.transaction_ref}, Listing ID: {listing.pk}"
            )
            return payment

        raise InvalidState('No paid checkout session was found for the hired application.')
