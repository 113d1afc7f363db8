"""
Field validators shared by users, listings and applications.
"""

import re
from decimal import Decimal

from django.core.exceptions import ValidationError


def validate_phone_number(value):
    """
    Validate phone number format.

    Accepts international formats with optional country codes, spaces, dashes, and parentheses.
    Requires at least 10 digits.

    Valid formats:
    - +880 1712-345678
    - +1 (234) 567-8900
    - 01712345678

    Raises:
        ValidationError: If phone number format is invalid
    """
    if not value:  # Empty string is allowed (optional field)
        return

    if not re.match(r'^[\d\s\-\+\(\)]+$', value):
        raise ValidationError(
            'Phone number can only contain digits, spaces, dashes, parentheses, and plus sign.',
            code='invalid_phone_chars'
        )

    digits = re.sub(r'\D', '', value)

    if len(digits) < 10:
        raise ValidationError(
            'Phone number must contain at least 10 digits.',
            code='phone_too_short'
        )

    if len(set(digits)) == 1:
        raise ValidationError(
            'Phone number cannot be all the same digit.',
            code='invalid_phone_pattern'
        )


def validate_positive_amount(value):
    """Reject zero and negative money amounts."""
    if value is not None and value <= Decimal('0'):
        raise ValidationError(
            'Amount must be greater than 0.',
            code='non_positive_amount'
        )


def validate_not_blank(value):
    if value is not None and not str(value).strip():
        raise ValidationError('This field cannot be blank.', code='blank')
