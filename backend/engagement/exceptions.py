"""
Engagement error taxonomy + DRF exception handler.

Taxonomy:
- NotFound          target/user missing              -> surfaced, no mutation
- InvalidArgument   bad target type, rating range    -> surfaced, no mutation
- SelfReference     self-follow                      -> surfaced, no mutation
- Forbidden         actor does not own the entity    -> surfaced, no mutation
- Conflict          duplicate key on create          -> translated by the toggle path
- DependencyFailure counter/notification write failed -> logged by the engine, never surfaced
"""
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status
from django.db import IntegrityError
import logging

logger = logging.getLogger(__name__)


class EngagementError(Exception):
    code = 'engagement_error'

    def __init__(self, message=''):
        super().__init__(message)
        self.message = message


class NotFound(EngagementError):
    code = 'not_found'


class InvalidArgument(EngagementError):
    code = 'invalid_argument'


class SelfReference(InvalidArgument):
    code = 'self_reference'


class Forbidden(EngagementError):
    code = 'forbidden'


class Conflict(EngagementError):
    code = 'conflict'


class DependencyFailure(EngagementError):
    code = 'dependency_failure'


ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    SelfReference: status.HTTP_400_BAD_REQUEST,
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    Forbidden: status.HTTP_403_FORBIDDEN,
    Conflict: status.HTTP_409_CONFLICT,
}


def custom_exception_handler(exc, context):
    """
    Custom exception handler that:
    1. Maps the engagement taxonomy onto HTTP status codes
    2. Converts Django exceptions to DRF responses
    3. Provides consistent error format
    """
    if isinstance(exc, EngagementError):
        for error_class, status_code in ERROR_STATUS.items():
            if isinstance(exc, error_class):
                return Response(
                    {'error': exc.message, 'code': exc.code},
                    status=status_code
                )

    # Call DRF's default exception handler first
    response = exception_handler(exc, context)

    # If DRF handled it, enhance the response
    if response is not None:
        # Ensure consistent format
        if not isinstance(response.data, dict) or 'error' not in response.data:
            response.data = {
                'error': str(exc),
                'details': response.data
            }
        return response

    if isinstance(exc, IntegrityError):
        logger.warning(f"IntegrityError: {exc}")
        return Response(
            {'error': 'Data integrity error. This may be a duplicate entry.'},
            status=status.HTTP_409_CONFLICT
        )

    if isinstance(exc, ValueError):
        return Response(
            {'error': str(exc)},
            status=status.HTTP_400_BAD_REQUEST
        )

    # Log unexpected exceptions (DependencyFailure included: it should never get here)
    logger.exception(f"Unhandled exception: {exc}")

    return Response(
        {'error': 'An unexpected error occurred.'},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
