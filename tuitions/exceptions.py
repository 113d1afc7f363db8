"""
Error taxonomy for listing, application and payment operations.

Lifecycle and reconciler code raises these; the REST layer renders them
through ``marketplace_exception_handler``.
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class MarketplaceError(Exception):
    """Base class for every rejected marketplace action."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = 'marketplace_error'
    default_detail = 'The requested action could not be completed.'

    def __init__(self, detail=None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = 'not_found'
    default_detail = 'The requested record does not exist.'


class Forbidden(MarketplaceError):
    """The caller does not own the record it is trying to change."""

    status_code = status.HTTP_403_FORBIDDEN
    code = 'forbidden'
    default_detail = 'You do not have permission to perform this action.'


class InvalidState(MarketplaceError):
    """A lifecycle precondition does not hold for the current record state."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = 'invalid_state'
    default_detail = 'The record is not in a state that allows this action.'


class InvalidTransition(InvalidState):
    code = 'invalid_transition'
    default_detail = 'This status transition is not allowed.'


class Conflict(MarketplaceError):
    """A uniqueness or idempotency guard rejected the action."""

    status_code = status.HTTP_409_CONFLICT
    code = 'conflict'
    default_detail = 'The action conflicts with an existing record.'


class UpstreamFailure(MarketplaceError):
    """The payment gateway or the database is unavailable; safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = 'upstream_failure'
    default_detail = 'A dependent service is unavailable. Please retry later.'


def marketplace_exception_handler(exc, context):
    """
    DRF exception handler that knows about marketplace errors.

    MarketplaceError subclasses become ``{"detail", "code"}`` payloads with
    their own status code. Model validation errors raised from ``clean()``
    become 400 responses carrying the message dict. Everything else falls
    through to the default DRF handler.
    """
    if isinstance(exc, MarketplaceError):
        return Response(
            {'detail': exc.detail, 'code': exc.code},
            status=exc.status_code
        )

    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'message_dict'):
            payload = exc.message_dict
        else:
            payload = {'detail': exc.messages}
        return Response(payload, status=status.HTTP_400_BAD_REQUEST)

    return exception_handler(exc, context)
