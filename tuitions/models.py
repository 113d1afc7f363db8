"""
Models for the eTuition marketplace.

Students post tuition Listings, tutors submit Applications against them and a
Payment records the settlement that hires one tutor for a listing.
"""

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _

from .validators import validate_not_blank, validate_phone_number, validate_positive_amount


class User(AbstractUser):
    """
    Custom User model extending Django's AbstractUser.

    Additional fields:
    - email: Required, unique email address (the caller identity)
    - phone_number: Optional phone number with validation
    - user_type: Either 'student' or 'tutor'
    - created_at: Account creation timestamp
    - updated_at: Last update timestamp

    Staff users moderate listings.
    """

    USER_TYPE_CHOICES = [
        ('student', 'Student'),
        ('tutor', 'Tutor'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Enter a valid email address.')
    )

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
        help_text=_('Optional. Enter phone number in international format.')
    )

    user_type = models.CharField(
        _('user type'),
        max_length=10,
        choices=USER_TYPE_CHOICES,
        default='student',
        help_text=_('Whether the account posts tuitions (student) or applies to them (tutor).')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user_type'], name='user_type_idx'),
        ]

    def __str__(self):
        return self.email or self.username

    def is_student(self):
        return self.user_type == 'student'

    def is_tutor(self):
        return self.user_type == 'tutor'

    def clean(self):
        super().clean()
        if self.email:
            self.email = self.email.lower()
        if not self.email:
            raise ValidationError({'email': _('Email address is required.')})

    def save(self, *args, **kwargs):
        # Lowercase so uniqueness is effectively case-insensitive
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


class Listing(models.Model):
    """
    A student's tuition request.

    Status flow: pending -> approved | rejected (staff moderation),
    approved -> hired (payment reconciliation only). Rejected and hired are
    terminal. A withdrawn listing keeps its status but carries withdrawn_at
    and no longer accepts applications or payments.
    """

    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    HIRED = 'hired'

    STATUS_CHOICES = [
        (PENDING, 'Pending moderation'),
        (APPROVED, 'Open for applications'),
        (REJECTED, 'Rejected'),
        (HIRED, 'Tutor hired'),
    ]

    # Fields the owner may edit; everything else is lifecycle-managed.
    EDITABLE_FIELDS = [
        'subject', 'class_name', 'medium', 'location',
        'schedule', 'phone', 'description', 'budget',
    ]

    owner = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='listings',
        help_text=_('Student who posted the tuition request')
    )

    subject = models.CharField(_('subject'), max_length=120, validators=[validate_not_blank])
    class_name = models.CharField(_('class'), max_length=60, validators=[validate_not_blank])
    medium = models.CharField(_('medium'), max_length=60, blank=True, default='')
    location = models.CharField(_('location'), max_length=255, validators=[validate_not_blank])
    schedule = models.CharField(_('schedule'), max_length=255, blank=True, default='')
    phone = models.CharField(
        _('contact phone'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number]
    )
    description = models.TextField(_('description'), blank=True, default='')
    budget = models.DecimalField(
        _('monthly budget'),
        max_digits=10,
        decimal_places=2,
        validators=[validate_positive_amount],
        help_text=_('Salary the student offers per month')
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=PENDING
    )

    hired_tutor = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='hired_listings',
        null=True,
        blank=True,
        help_text=_('Tutor bound to this listing by a confirmed payment')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)
    approved_at = models.DateTimeField(_('approved at'), null=True, blank=True)
    rejected_at = models.DateTimeField(_('rejected at'), null=True, blank=True)
    hired_at = models.DateTimeField(_('hired at'), null=True, blank=True)
    withdrawn_at = models.DateTimeField(_('withdrawn at'), null=True, blank=True)

    class Meta:
        verbose_name = _('listing')
        verbose_name_plural = _('listings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner'], name='listing_owner_idx'),
            models.Index(fields=['status'], name='listing_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status='hired', hired_tutor__isnull=False)
                    | (~Q(status='hired') & Q(hired_tutor__isnull=True))
                ),
                name='listing_hired_tutor_iff_hired',
            ),
        ]

    def __str__(self):
        return f"{self.subject} ({self.class_name}) by {self.owner.email}"

    @property
    def is_withdrawn(self):
        return self.withdrawn_at is not None

    @property
    def is_open(self):
        """True while tutors may apply and a hire payment may be accepted."""
        return self.status == self.APPROVED and not self.is_withdrawn

    def clean(self):
        super().clean()

        if self.owner_id and not self.owner.is_student():
            raise ValidationError({
                'owner': _('Only students can post tuition listings.')
            })

        if (self.status == self.HIRED) != (self.hired_tutor_id is not None):
            raise ValidationError({
                'hired_tutor': _('A hired tutor is set if and only if the listing is hired.')
            })


class Application(models.Model):
    """
    A tutor's bid on a listing.

    Status flow: pending -> approved | rejected | withdrawn, all terminal.
    Approval is only ever performed by payment reconciliation.
    """

    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    WITHDRAWN = 'withdrawn'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (APPROVED, 'Approved'),
        (REJECTED, 'Rejected'),
        (WITHDRAWN, 'Withdrawn'),
    ]

    BID_FIELDS = ['qualifications', 'experience', 'expected_salary']

    listing = models.ForeignKey(
        Listing,
        on_delete=models.PROTECT,
        related_name='applications'
    )

    tutor = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='applications'
    )

    qualifications = models.TextField(_('qualifications'), validators=[validate_not_blank])
    experience = models.TextField(_('experience'), blank=True, default='')
    expected_salary = models.DecimalField(
        _('expected salary'),
        max_digits=10,
        decimal_places=2,
        validators=[validate_positive_amount]
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=PENDING
    )

    applied_at = models.DateTimeField(_('applied at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)
    decided_at = models.DateTimeField(_('decided at'), null=True, blank=True)

    class Meta:
        verbose_name = _('application')
        verbose_name_plural = _('applications')
        ordering = ['-applied_at']
        indexes = [
            models.Index(fields=['listing', 'status'], name='application_listing_idx'),
            models.Index(fields=['tutor'], name='application_tutor_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['listing', 'tutor'],
                condition=~Q(status='withdrawn'),
                name='unique_active_application_per_tutor',
            ),
            models.UniqueConstraint(
                fields=['listing'],
                condition=Q(status='approved'),
                name='single_approved_application_per_listing',
            ),
        ]

    def __str__(self):
        return f"Application by {self.tutor.email} for listing {self.listing_id}"

    def clean(self):
        super().clean()

        if self.tutor_id and not self.tutor.is_tutor():
            raise ValidationError({
                'tutor': _('Only tutors can apply to tuition listings.')
            })


class CheckoutSession(models.Model):
    """
    A payment gateway checkout session opened for one application.

    Kept so that a hire can always be traced back to the gateway session
    that paid for it, which is how the recovery pass re-derives the
    transaction reference of a hired listing with no payment.
    """

    session_id = models.CharField(_('gateway session id'), max_length=255, unique=True)
    listing = models.ForeignKey(Listing, on_delete=models.PROTECT, related_name='checkout_sessions')
    application = models.ForeignKey(
        Application,
        on_delete=models.PROTECT,
        related_name='checkout_sessions'
    )
    payer = models.ForeignKey(User, on_delete=models.PROTECT, related_name='+')
    payee = models.ForeignKey(User, on_delete=models.PROTECT, related_name='+')
    quoted_amount = models.DecimalField(_('quoted amount'), max_digits=10, decimal_places=2)
    currency = models.CharField(_('currency'), max_length=3)
    url = models.URLField(_('checkout url'), max_length=2048, blank=True, default='')
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('checkout session')
        verbose_name_plural = _('checkout sessions')
        ordering = ['-created_at']

    def __str__(self):
        return self.session_id


class Payment(models.Model):
    """
    A completed settlement that hired a tutor.

    transaction_ref is the gateway's payment reference and the idempotency
    key: at most one Payment ever exists per reference. Rows are written once
    and never updated.
    """

    COMPLETED = 'completed'

    STATUS_CHOICES = [
        (COMPLETED, 'Completed'),
    ]

    transaction_ref = models.CharField(_('transaction reference'), max_length=255, unique=True)
    listing = models.ForeignKey(Listing, on_delete=models.PROTECT, related_name='payments')
    application = models.OneToOneField(
        Application,
        on_delete=models.PROTECT,
        related_name='payment'
    )
    payer = models.ForeignKey(User, on_delete=models.PROTECT, related_name='payments_made')
    payee = models.ForeignKey(User, on_delete=models.PROTECT, related_name='payments_received')
    amount = models.DecimalField(
        _('amount'),
        max_digits=10,
        decimal_places=2,
        validators=[validate_positive_amount]
    )
    currency = models.CharField(_('currency'), max_length=3)
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=COMPLETED
    )
    checkout_session_id = models.CharField(
        _('gateway session id'),
        max_length=255,
        blank=True,
        default=''
    )
    paid_at = models.DateTimeField(_('paid at'))

    class Meta:
        verbose_name = _('payment')
        verbose_name_plural = _('payments')
        ordering = ['-paid_at']
        indexes = [
            models.Index(fields=['payer'], name='payment_payer_idx'),
            models.Index(fields=['payee'], name='payment_payee_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='payment_amount_positive',
            ),
        ]

    def __str__(self):
        return f"Payment {self.transaction_ref} ({self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError(_('Payments are immutable once recorded.'))
        self.full_clean(validate_unique=False, validate_constraints=False)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(_('Payments cannot be deleted.'))
