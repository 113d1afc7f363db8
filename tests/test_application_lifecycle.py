"""
Test suite for the application lifecycle.

Tests cover:
- Applying to open listings only
- Duplicate application prevention
- Amending, rejecting and withdrawing pending applications
- Reconciler-only approval and competitor rejection
"""

from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from tuitions.applications import ApplicationLifecycle
from tuitions.exceptions import Conflict, Forbidden, InvalidState, InvalidTransition, NotFound
from tuitions.listings import ListingLifecycle
from tuitions.models import Application, Listing

BID = {
    'qualifications': 'BSc in Mathematics, DU',
    'experience': '4 years of home tuition',
    'expected_salary': Decimal('5500.00'),
}


@pytest.fixture
def lifecycle():
    return ApplicationLifecycle()


@pytest.mark.django_db
class TestApply:

    def test_tutor_applies_to_open_listing(self, lifecycle, make_listing, tutor):
        listing = make_listing()

        application = lifecycle.apply(listing.id, tutor, BID)

        assert application.status == Application.PENDING
        assert application.listing == listing
        assert application.tutor == tutor
        assert application.expected_salary == Decimal('5500.00')

    def test_student_cannot_apply(self, lifecycle, make_listing, other_student):
        listing = make_listing()

        with pytest.raises(Forbidden):
            lifecycle.apply(listing.id, other_student, BID)

    @pytest.mark.parametrize('status', [Listing.PENDING, Listing.REJECTED])
    def test_listing_not_approved(self, lifecycle, make_listing, tutor, status):
        listing = make_listing(status=status)

        with pytest.raises(InvalidState):
            lifecycle.apply(listing.id, tutor, BID)

        assert Application.objects.count() == 0

    def test_hired_listing_closed(self, lifecycle, make_listing, tutor, tutor2):
        listing = make_listing(status=Listing.HIRED, hired_tutor=tutor2)

        with pytest.raises(InvalidState):
            lifecycle.apply(listing.id, tutor, BID)

    def test_withdrawn_listing_closed(self, lifecycle, make_listing, student, tutor):
        listing = make_listing()
        ListingLifecycle().withdraw(listing.id, student)

        with pytest.raises(InvalidState):
            lifecycle.apply(listing.id, tutor, BID)

    def test_missing_listing(self, lifecycle, tutor):
        with pytest.raises(NotFound):
            lifecycle.apply(987654, tutor, BID)

    def test_applying_twice_conflicts(self, lifecycle, make_listing, tutor):
        listing = make_listing()
        lifecycle.apply(listing.id, tutor, BID)

        with pytest.raises(Conflict):
            lifecycle.apply(listing.id, tutor, BID)

        assert Application.objects.filter(listing=listing, tutor=tutor).count() == 1

    def test_reapply_after_withdrawal(self, lifecycle, make_listing, tutor):
        listing = make_listing()
        first = lifecycle.apply(listing.id, tutor, BID)
        lifecycle.withdraw(first.id, tutor)

        second = lifecycle.apply(listing.id, tutor, BID)

        assert second.id != first.id
        assert second.status == Application.PENDING

    def test_invalid_bid_rejected(self, lifecycle, make_listing, tutor):
        listing = make_listing()

        with pytest.raises(ValidationError):
            lifecycle.apply(listing.id, tutor, dict(BID, expected_salary=Decimal('-1')))

    def test_unique_constraint_backs_duplicate_check(self, make_listing, make_application, tutor):
        listing = make_listing()
        make_application(listing, tutor)

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_application(listing, tutor)


@pytest.mark.django_db
class TestAmend:

    def test_tutor_amends_pending_bid(self, lifecycle, make_listing, make_application, tutor):
        application = make_application(make_listing(), tutor)

        amended = lifecycle.amend(application.id, {'expected_salary': Decimal('650')}, tutor)

        assert amended.expected_salary == Decimal('650')

    def test_other_tutor_cannot_amend(self, lifecycle, make_listing, make_application, tutor, tutor2):
        application = make_application(make_listing(), tutor)

        with pytest.raises(Forbidden):
            lifecycle.amend(application.id, {'experience': 'none'}, tutor2)

    def test_decided_bid_is_frozen(self, lifecycle, make_listing, make_application, tutor):
        application = make_application(make_listing(), tutor)
        lifecycle.withdraw(application.id, tutor)

        with pytest.raises(InvalidTransition):
            lifecycle.amend(application.id, {'experience': 'none'}, tutor)


@pytest.mark.django_db
class TestDecisions:

    def test_owner_rejects(self, lifecycle, make_listing, make_application, student, tutor):
        application = make_application(make_listing(), tutor)

        rejected = lifecycle.reject(application.id, student)

        assert rejected.status == Application.REJECTED
        assert rejected.decided_at is not None

    def test_non_owner_cannot_reject(self, lifecycle, make_listing, make_application, other_student, tutor):
        application = make_application(make_listing(), tutor)

        with pytest.raises(Forbidden):
            lifecycle.reject(application.id, other_student)

    def test_tutor_withdraws(self, lifecycle, make_listing, make_application, tutor):
        application = make_application(make_listing(), tutor)

        withdrawn = lifecycle.withdraw(application.id, tutor)

        assert withdrawn.status == Application.WITHDRAWN

    def test_other_tutor_cannot_withdraw(self, lifecycle, make_listing, make_application, tutor, tutor2):
        application = make_application(make_listing(), tutor)

        with pytest.raises(Forbidden):
            lifecycle.withdraw(application.id, tutor2)

    def test_terminal_states_are_final(self, lifecycle, make_listing, make_application, student, tutor):
        application = make_application(make_listing(), tutor)
        lifecycle.reject(application.id, student)

        with pytest.raises(InvalidTransition):
            lifecycle.withdraw(application.id, tutor)
        with pytest.raises(InvalidTransition):
            lifecycle.reject(application.id, student)

        application.refresh_from_db()
        assert application.status == Application.REJECTED

    def test_missing_application(self, lifecycle, tutor):
        with pytest.raises(NotFound):
            lifecycle.withdraw(31337, tutor)


@pytest.mark.django_db
class TestReconcilerTransitions:

    def test_mark_approved_once(self, lifecycle, make_listing, make_application, tutor):
        application = make_application(make_listing(), tutor)
        now = timezone.now()

        lifecycle.mark_approved(application.id, now)

        with pytest.raises(InvalidState):
            lifecycle.mark_approved(application.id, now)

    def test_reject_competing_spares_winner(
        self, lifecycle, make_listing, make_application, tutor, tutor2
    ):
        listing = make_listing()
        winner = make_application(listing, tutor)
        loser = make_application(listing, tutor2)
        elsewhere = make_application(make_listing(subject='Biology'), tutor2)

        count = lifecycle.reject_competing(listing.id, winner.id, timezone.now())

        assert count == 1
        winner.refresh_from_db()
        loser.refresh_from_db()
        elsewhere.refresh_from_db()
        assert winner.status == Application.PENDING
        assert loser.status == Application.REJECTED
        assert elsewhere.status == Application.PENDING

    def test_single_approved_application_per_listing(self, make_listing, make_application, tutor, tutor2):
        listing = make_listing()
        first = make_application(listing, tutor)
        second = make_application(listing, tutor2)
        Application.objects.filter(pk=first.pk).update(status=Application.APPROVED)

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Application.objects.filter(pk=second.pk).update(status=Application.APPROVED)


@pytest.mark.django_db
class TestApplicationQueries:

    def test_owner_sees_applications(self, lifecycle, make_listing, make_application, student, tutor, tutor2):
        listing = make_listing()
        make_application(listing, tutor)
        make_application(listing, tutor2)

        assert lifecycle.for_listing(listing.id, student).count() == 2

    def test_staff_sees_applications(self, lifecycle, make_listing, make_application, staff_user, tutor):
        listing = make_listing()
        make_application(listing, tutor)

        assert lifecycle.for_listing(listing.id, staff_user).count() == 1

    def test_others_cannot_see_applications(self, lifecycle, make_listing, tutor):
        listing = make_listing()

        with pytest.raises(Forbidden):
            lifecycle.for_listing(listing.id, tutor)

    def test_submitted_by(self, lifecycle, make_listing, make_application, tutor, tutor2):
        mine = make_application(make_listing(), tutor)
        make_application(make_listing(subject='Biology'), tutor2)

        assert list(lifecycle.submitted_by(tutor)) == [mine]
