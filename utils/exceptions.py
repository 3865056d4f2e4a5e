"""
Domain errors for trip inventory and bookings, and the DRF exception handler
that renders every failure in the API response envelope.
"""
import logging

from django.conf import settings
from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for errors the booking core reports to callers."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Request could not be processed.'

    def __init__(self, message=None, data=None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found.'


class InvalidRequest(DomainError):
    default_message = 'Invalid request.'


class SeatConflict(DomainError):
    """One or more requested seats are already booked."""
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Selected seats are no longer available.'


class InsufficientInventory(DomainError):
    default_message = 'Not enough seats available.'


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You do not have permission to perform this action.'


class AlreadyCancelled(DomainError):
    default_message = 'Booking is already cancelled.'


class StorageError(DomainError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Storage is temporarily unavailable. Please try again.'


def _flatten_detail(detail):
    """Collapse DRF error detail (str, list or dict) into one readable line."""
    if isinstance(detail, dict):
        parts = []
        for field, value in detail.items():
            text = _flatten_detail(value)
            parts.append(text if field in ('detail', 'non_field_errors') else f"{field}: {text}")
        return '; '.join(parts)
    if isinstance(detail, (list, tuple)):
        return ' '.join(_flatten_detail(item) for item in detail)
    return str(detail)


def api_exception_handler(exc, context):
    """
    Translate any exception raised by a view into {success: false, message}.

    Domain errors keep their own status, DRF errors keep DRF's status,
    database failures become StorageError and anything else is a generic 500.
    """
    if isinstance(exc, DatabaseError):
        logger.exception("Database failure while handling request")
        exc = StorageError()

    if isinstance(exc, DomainError):
        if exc.status_code >= 500:
            logger.error("Domain error: %s", exc.message)
        else:
            logger.info("Domain error: %s", exc.message)
        set_rollback()
        body = {'success': False, 'message': exc.message}
        if exc.data is not None:
            body['data'] = exc.data
        return Response(body, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        response.data = {'success': False, 'message': _flatten_detail(response.data)}
        return response

    logger.exception("Unhandled exception: %s", exc)
    set_rollback()
    body = {'success': False, 'message': 'Server error'}
    if settings.DEBUG:
        body['detail'] = str(exc)
    return Response(body, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
