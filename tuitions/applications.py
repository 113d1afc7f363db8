"""
Application lifecycle.

    pending --(payment reconciliation)--> approved
    pending --reject / reconciliation---> rejected
    pending --withdraw / listing withdrawn--> withdrawn

All three outcomes are terminal.
"""

import logging

from django.db import IntegrityError

from .exceptions import Conflict, Forbidden, InvalidState, InvalidTransition
from .ledger import LedgerOperation
from .models import Application, Listing

logger = logging.getLogger(__name__)


class ApplicationLifecycle(LedgerOperation):
    """Guarded transitions for tutor applications."""

    def apply(self, listing_id, tutor, bid):
        """
        Submit a tutor's bid on an open listing.

        The listing row is locked while the duplicate check and the insert
        run, so two concurrent applies by the same tutor serialise; the
        partial unique index catches anything that slips past on databases
        that enforce it.

        Raises:
            Forbidden: If the caller is not a tutor
            NotFound: If the listing does not exist
            InvalidState: If the listing is not open for applications
            Conflict: If the tutor already has an active application on it
        """
        if not tutor.is_tutor():
            raise Forbidden('Only tutors can apply to tuition listings.')

        with self.atomic():
            listing = self.lock(Listing, listing_id)

            if not listing.is_open:
                logger.warning(
                    f"Application to closed listing rejected. Listing ID: {listing.id}, "
                    f"Status: {listing.status}, Withdrawn: {listing.is_withdrawn}, "
                    f"Tutor: {tutor.email}"
                )
                raise InvalidState('This listing is not open for applications.')

            duplicate = (
                self.objects(Application)
                .filter(listing=listing, tutor=tutor)
                .exclude(status=Application.WITHDRAWN)
                .exists()
            )
            if duplicate:
                raise Conflict('You have already applied to this listing.')

            application = Application(listing=listing, tutor=tutor, status=Application.PENDING)
            for name in Application.BID_FIELDS:
                if name in bid:
                    setattr(application, name, bid[name])
            application.full_clean(validate_unique=False, validate_constraints=False)

            try:
                with self.atomic():
                    application.save(using=self.using)
            except IntegrityError as e:
                logger.warning(
                    f"Duplicate application blocked by constraint. Listing ID: {listing.id}, "
                    f"Tutor: {tutor.email}, Error: {e}"
                )
                raise Conflict('You have already applied to this listing.') from e

        logger.info(
            f"Application submitted. Application ID: {application.id}, "
            f"Listing ID: {listing.id}, Tutor: {tutor.email}"
        )
        return application

    def amend(self, application_id, bid, requester):
        """
        Change the bid of a pending application.

        Raises:
            NotFound: If the application does not exist
            Forbidden: If the requester did not submit it
            InvalidTransition: If it has already been decided
        """
        with self.atomic():
            application = self.lock(Application, application_id)

            if application.tutor_id != requester.id:
                raise Forbidden('You can only amend your own applications.')

            if application.status != Application.PENDING:
                raise InvalidTransition(
                    f'Only pending applications can be amended. This one is {application.status}.'
                )

            changed = []
            for name in Application.BID_FIELDS:
                if name in bid:
                    setattr(application, name, bid[name])
                    changed.append(name)

            if changed:
                application.full_clean(validate_unique=False, validate_constraints=False)
                application.save(using=self.using, update_fields=changed + ['updated_at'])

        logger.info(f"Application amended. Application ID: {application.id}, Tutor: {requester.email}")
        return application

    def reject(self, application_id, requester):
        """
        Turn down a pending application. Only the listing owner may do this.

        Raises:
            NotFound: If the application does not exist
            Forbidden: If the requester does not own the listing
            InvalidTransition: If the application is no longer pending
        """
        application = self.get(Application, application_id)
        if application.listing.owner_id != requester.id:
            raise Forbidden('Only the listing owner can reject applications.')

        return self._decide(application, Application.REJECTED, requester)

    def withdraw(self, application_id, requester):
        """
        Pull back a pending application. Only the applying tutor may do this.

        Raises:
            NotFound: If the application does not exist
            Forbidden: If the requester did not submit it
            InvalidTransition: If the application is no longer pending
        """
        application = self.get(Application, application_id)
        if application.tutor_id != requester.id:
            raise Forbidden('You can only withdraw your own applications.')

        return self._decide(application, Application.WITHDRAWN, requester)

    def _decide(self, application, new_status, requester):
        now = self.clock()
        swapped = self.swap_status(
            Application,
            application.pk,
            Application.PENDING,
            status=new_status,
            decided_at=now,
            updated_at=now,
        )
        application.refresh_from_db(using=self.using)

        if not swapped:
            logger.warning(
                f"Application transition refused. Application ID: {application.id}, "
                f"Status: {application.status}, Requested: {new_status}, User: {requester.email}"
            )
            raise InvalidTransition(
                f'Only pending applications can be {new_status}. This one is {application.status}.'
            )

        logger.info(
            f"Application {new_status}. Application ID: {application.id}, "
            f"Listing ID: {application.listing_id}, User: {requester.email}"
        )
        return application

    # ------------------------------------------------------------------
    # Reconciler-only transitions
    # ------------------------------------------------------------------

    def mark_approved(self, application_id, now):
        """
        Approve the winning application of a hire.

        Raises:
            InvalidState: If the application is no longer pending
        """
        swapped = self.swap_status(
            Application,
            application_id,
            Application.PENDING,
            status=Application.APPROVED,
            decided_at=now,
            updated_at=now,
        )
        if not swapped:
            raise InvalidState(f'Application {application_id} is no longer pending.')

    def reject_competing(self, listing_id, winner_id, now):
        """Reject every other pending application on a hired listing."""
        return (
            self.objects(Application)
            .filter(listing_id=listing_id, status=Application.PENDING)
            .exclude(pk=winner_id)
            .update(status=Application.REJECTED, decided_at=now, updated_at=now)
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def for_listing(self, listing_id, requester):
        """
        Applications on a listing, visible to its owner and to staff.

        Raises:
            NotFound: If the listing does not exist
            Forbidden: If the requester may not see them
        """
        listing = self.get(Listing, listing_id)
        if listing.owner_id != requester.id and not requester.is_staff:
            raise Forbidden('Only the listing owner can view its applications.')
        return self.objects(Application).filter(listing=listing).select_related('tutor')

    def submitted_by(self, tutor):
        return self.objects(Application).filter(tutor=tutor).select_related('listing')
