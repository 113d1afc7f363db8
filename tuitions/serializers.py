"""
Serializers for authentication, listings, applications and payments.

Write serializers only validate request shape; state changes go through the
lifecycle objects so that every guard lives in one place.
"""

import re

from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .listings import MODERATION_DECISIONS
from .models import Application, CheckoutSession, Listing, Payment

User = get_user_model()


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Custom serializer to use email instead of username for authentication.
    """
    username_field = 'email'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if 'username' in self.fields:
            del self.fields['username']
        if 'email' not in self.fields:
            self.fields['email'] = serializers.EmailField()


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration.

    Fields:
    - email: Required, unique, valid email format
    - password: Required, must meet strength requirements
    - confirm_password: Required, must match password
    - phone_number: Optional, must be valid format if provided
    - user_type: Required, must be 'student' or 'tutor'
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'confirm_password', 'first_name', 'last_name',
                  'phone_number', 'user_type', 'created_at']
        read_only_fields = ['id', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
            'user_type': {'required': True},
        }

    def validate_email(self, value):
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that email already exists."
            )

        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate_phone_number(self, value):
        if not value:
            return value

        cleaned = re.sub(r'[\s\-\(\)]', '', value)

        if not re.match(r'^\+?\d{10,15}$', cleaned):
            raise serializers.ValidationError(
                "Phone number must be between 10-15 digits and may start with '+'."
            )

        return value

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        return attrs

    def create(self, validated_data):
        """
        Create the user with a hashed password.

        The username is the email itself: AbstractUser requires a unique
        username, and the email is already unique.
        """
        validated_data.pop('confirm_password', None)
        validated_data['password'] = make_password(validated_data.pop('password'))
        validated_data['username'] = validated_data['email']

        with transaction.atomic():
            user = User.objects.create(**validated_data)

        return user


class UserSummarySerializer(serializers.ModelSerializer):
    """Public view of a user nested in listings, applications and payments."""

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'user_type']
        read_only_fields = fields


class UserRoleSerializer(serializers.ModelSerializer):

    class Meta:
        model = User
        fields = ['id', 'email', 'user_type', 'is_staff']
        read_only_fields = fields


# ============================================================================
# Listing Serializers
# ============================================================================

class ListingSerializer(serializers.ModelSerializer):
    """
    Read serializer for listings.

    Views should select_related('owner', 'hired_tutor') to avoid N+1 queries.
    """

    owner = UserSummarySerializer(read_only=True)
    hired_tutor = UserSummarySerializer(read_only=True)
    is_withdrawn = serializers.BooleanField(read_only=True)

    class Meta:
        model = Listing
        fields = [
            'id',
            'owner',
            'subject',
            'class_name',
            'medium',
            'location',
            'schedule',
            'phone',
            'description',
            'budget',
            'status',
            'hired_tutor',
            'is_withdrawn',
            'created_at',
            'updated_at',
            'approved_at',
            'rejected_at',
            'hired_at',
            'withdrawn_at',
        ]
        read_only_fields = fields


class ListingWriteSerializer(serializers.ModelSerializer):
    """
    Validates the owner-editable listing attributes.

    Used with partial=True for PATCH. Status, ownership and timestamps are
    not writable here.
    """

    class Meta:
        model = Listing
        fields = Listing.EDITABLE_FIELDS

    def validate_budget(self, value):
        if value <= 0:
            raise serializers.ValidationError("Budget must be greater than 0.")
        return value


class ModerationSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=list(MODERATION_DECISIONS))


# ============================================================================
# Application Serializers
# ============================================================================

class ApplicationSerializer(serializers.ModelSerializer):

    tutor = UserSummarySerializer(read_only=True)
    listing_subject = serializers.CharField(source='listing.subject', read_only=True)

    class Meta:
        model = Application
        fields = [
            'id',
            'listing',
            'listing_subject',
            'tutor',
            'qualifications',
            'experience',
            'expected_salary',
            'status',
            'applied_at',
            'updated_at',
            'decided_at',
        ]
        read_only_fields = fields


class BidSerializer(serializers.ModelSerializer):
    """Validates a tutor's bid. Used with partial=True when amending."""

    class Meta:
        model = Application
        fields = Application.BID_FIELDS

    def validate_expected_salary(self, value):
        if value <= 0:
            raise serializers.ValidationError("Expected salary must be greater than 0.")
        return value


# ============================================================================
# Checkout and Payment Serializers
# ============================================================================

class CheckoutStartSerializer(serializers.Serializer):
    application_id = serializers.IntegerField(min_value=1)


class CheckoutSessionSerializer(serializers.ModelSerializer):

    class Meta:
        model = CheckoutSession
        fields = ['session_id', 'url', 'listing', 'application', 'quoted_amount', 'currency', 'created_at']
        read_only_fields = fields


class PaymentConfirmSerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=255)


class PaymentSerializer(serializers.ModelSerializer):

    payer = UserSummarySerializer(read_only=True)
    payee = UserSummarySerializer(read_only=True)
    listing_subject = serializers.CharField(source='listing.subject', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id',
            'transaction_ref',
            'listing',
            'listing_subject',
            'application',
            'payer',
            'payee',
            'amount',
            'currency',
            'status',
            'paid_at',
        ]
        read_only_fields = fields
