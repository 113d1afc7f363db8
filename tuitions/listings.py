"""
Listing lifecycle.

    pending --moderate--> approved --mark_hired--> hired
    pending --moderate--> rejected

Rejected and hired are terminal. Owners may edit a listing until it opens
for applications and may withdraw it at any point before it is hired.
"""

import logging

from django.db.models import Q

from .exceptions import Forbidden, InvalidState, InvalidTransition
from .ledger import LedgerOperation
from .models import Application, Listing

logger = logging.getLogger(__name__)

MODERATION_DECISIONS = {
    Listing.APPROVED: 'approved_at',
    Listing.REJECTED: 'rejected_at',
}


class ListingLifecycle(LedgerOperation):
    """Guarded transitions for tuition listings."""

    def create(self, owner, attrs):
        """
        Post a new tuition listing in pending status.

        Raises:
            Forbidden: If the owner is not a student
            ValidationError: If the attributes are invalid
        """
        if not owner.is_student():
            raise Forbidden('Only students can post tuition listings.')

        listing = Listing(owner=owner, status=Listing.PENDING)
        for name in Listing.EDITABLE_FIELDS:
            if name in attrs:
                setattr(listing, name, attrs[name])

        listing.full_clean()
        listing.save(using=self.using)

        logger.info(f"Listing created. Listing ID: {listing.id}, Owner: {owner.email}")
        return listing

    def moderate(self, listing_id, decision, moderator):
        """
        Approve or reject a pending listing.

        Raises:
            Forbidden: If the moderator is not staff
            NotFound: If the listing does not exist
            InvalidTransition: If the decision is unknown or the listing is not pending
        """
        if not moderator.is_staff:
            raise Forbidden('Only staff members can moderate listings.')

        if decision not in MODERATION_DECISIONS:
            raise InvalidTransition(
                f"Unknown moderation decision '{decision}'. "
                f"Must be one of: {', '.join(MODERATION_DECISIONS)}."
            )

        listing = self.get(Listing, listing_id)
        now = self.clock()
        swapped = (
            self.objects(Listing)
            .filter(pk=listing.pk, status=Listing.PENDING, withdrawn_at__isnull=True)
            .update(status=decision, updated_at=now, **{MODERATION_DECISIONS[decision]: now})
        )
        if not swapped:
            listing.refresh_from_db(using=self.using)
            logger.warning(
                f"Rejected moderation of listing {listing.id}. "
                f"Status: {listing.status}, Withdrawn: {listing.is_withdrawn}, "
                f"Moderator: {moderator.email}"
            )
            raise InvalidTransition(
                f'Only pending listings can be moderated. This listing is {listing.status}.'
            )

        listing.refresh_from_db(using=self.using)
        logger.info(
            f"Listing moderated. Listing ID: {listing.id}, Decision: {decision}, "
            f"Moderator: {moderator.email}"
        )
        return listing

    def update(self, listing_id, attrs, requester):
        """
        Edit the descriptive attributes of a listing.

        Raises:
            NotFound: If the listing does not exist
            Forbidden: If the requester does not own the listing
            InvalidTransition: If the listing is open, hired or withdrawn
        """
        with self.atomic():
            listing = self.lock(Listing, listing_id)

            if listing.owner_id != requester.id:
                raise Forbidden('You can only edit your own listings.')

            if listing.status in (Listing.APPROVED, Listing.HIRED):
                raise InvalidTransition(
                    f'A listing that is {listing.status} can no longer be edited.'
                )

            if listing.is_withdrawn:
                raise InvalidTransition('A withdrawn listing can no longer be edited.')

            changed = []
            for name in Listing.EDITABLE_FIELDS:
                if name in attrs:
                    setattr(listing, name, attrs[name])
                    changed.append(name)

            if changed:
                listing.full_clean()
                listing.save(using=self.using, update_fields=changed + ['updated_at'])

        logger.info(
            f"Listing updated. Listing ID: {listing.id}, Fields: {', '.join(changed) or 'none'}"
        )
        return listing

    def withdraw(self, listing_id, requester):
        """
        Withdraw a listing and every pending application against it.

        Raises:
            NotFound: If the listing does not exist
            Forbidden: If the requester does not own the listing
            InvalidTransition: If the listing is hired or already withdrawn
        """
        with self.atomic():
            listing = self.lock(Listing, listing_id)

            if listing.owner_id != requester.id:
                raise Forbidden('You can only withdraw your own listings.')

            if listing.status == Listing.HIRED:
                raise InvalidTransition('A hired listing cannot be withdrawn.')

            if listing.is_withdrawn:
                raise InvalidTransition('This listing has already been withdrawn.')

            now = self.clock()
            listing.withdrawn_at = now
            listing.save(using=self.using, update_fields=['withdrawn_at', 'updated_at'])

            closed = (
                self.objects(Application)
                .filter(listing=listing, status=Application.PENDING)
                .update(status=Application.WITHDRAWN, decided_at=now, updated_at=now)
            )

        logger.info(
            f"Listing withdrawn. Listing ID: {listing.id}, "
            f"Applications withdrawn: {closed}, Owner: {requester.email}"
        )
        return listing

    def mark_hired(self, listing_id, tutor, now):
        """
        Bind a tutor to an open listing.

        Only payment reconciliation calls this, inside its own transaction.
        The swap succeeds once per listing: it requires the listing to be
        approved, not withdrawn and without a hired tutor.

        Raises:
            InvalidState: If the listing is no longer open
        """
        swapped = (
            self.objects(Listing)
            .filter(
                pk=listing_id,
                status=Listing.APPROVED,
                withdrawn_at__isnull=True,
                hired_tutor__isnull=True,
            )
            .update(status=Listing.HIRED, hired_tutor=tutor, hired_at=now, updated_at=now)
        )
        if not swapped:
            raise InvalidState(f'Listing {listing_id} is no longer open for hiring.')

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def open_listings(self):
        return self.objects(Listing).filter(
            status=Listing.APPROVED,
            withdrawn_at__isnull=True,
        ).select_related('owner')

    def owned_by(self, owner):
        return self.objects(Listing).filter(owner=owner).select_related('owner', 'hired_tutor')

    def visible_to(self, user):
        """Listings a user may look at: open ones, their own, and ones they were hired for."""
        if user.is_staff:
            return self.objects(Listing).all()
        return self.objects(Listing).filter(
            Q(status=Listing.APPROVED, withdrawn_at__isnull=True)
            | Q(owner=user)
            | Q(hired_tutor=user)
            | Q(applications__tutor=user)
        ).distinct()
