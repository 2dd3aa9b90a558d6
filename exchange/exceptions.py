"""
Exception hierarchy for the exchange services.

Every error is a DRF APIException, so a service call that fails inside a view
is rendered with its status code and a body of the form
``{"detail": ..., "code": ..., <context fields>}``. Context fields (current
status, attempted action, quota limit, reasons) let the front end explain why
the request was refused.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ExchangeError(APIException):
    """Base class for all domain errors raised by the exchange services."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The request could not be completed.'
    default_code = 'exchange_error'

    def __init__(self, detail=None, code=None, **context):
        message = detail if detail is not None else self.default_detail
        self.message = str(message)
        self.context = context
        self.error_code = code or self.default_code
        payload = {'detail': self.message, 'code': self.error_code}
        payload.update(context)
        super().__init__(payload, self.error_code)
        # Keep context values typed; DRF would coerce them to strings
        self.detail = payload

    def __str__(self):
        return self.message


# Validation errors (400)
class InvalidRequest(ExchangeError):
    """Malformed input the caller can correct."""

    default_detail = 'Validation failed.'
    default_code = 'validation_error'


# Authorization errors (403)
class Forbidden(ExchangeError):
    """The acting user is not permitted to perform this action."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class Unauthorized(Forbidden):
    """The acting user does not own the resource and is not an admin."""

    default_detail = 'Unauthorized'
    default_code = 'unauthorized'


class VerificationRequired(Forbidden):
    """The acting user has not passed identity verification."""

    default_detail = 'Account verification required.'
    default_code = 'verification_required'


# Not found errors (404)
class ResourceNotFound(ExchangeError):
    """A referenced entity no longer exists."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Resource not found.'
    default_code = 'not_found'


# Conflict errors (409)
class Conflict(ExchangeError):
    """The request conflicts with the current state of a resource."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource conflict.'
    default_code = 'conflict'


class AlreadyVerified(Conflict):
    default_detail = 'Your account is already verified.'
    default_code = 'already_verified'


class VerificationInFlight(Conflict):
    default_detail = 'You already have a pending verification request.'
    default_code = 'verification_in_flight'


class QuotaExceeded(Conflict):
    default_detail = 'You have reached the monthly limit of item listings.'
    default_code = 'quota_exceeded'


class ItemNotAvailable(Conflict):
    default_detail = 'This item is no longer available.'
    default_code = 'item_not_available'


class AlreadyRequested(Conflict):
    default_detail = 'You have already requested this item.'
    default_code = 'already_requested'


class InvalidTransition(Conflict):
    """A state-machine action was attempted from a status that does not allow it."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = 'invalid_transition'

    def __init__(self, current_status, action, detail=None):
        self.current_status = current_status
        self.action = action
        if detail is None:
            detail = f'Cannot {action.replace("_", " ")} a transaction that is {current_status}.'
        super().__init__(detail, current_status=current_status, action=action)


def exchange_exception_handler(exc, context):
    """
    DRF exception handler that logs domain errors before rendering them.

    Rendering is delegated to DRF's default handler.
    """
    if isinstance(exc, ExchangeError):
        view = context.get('view')
        request = context.get('request')
        logger.info(
            f"Request refused: {exc.error_code} - {exc.message}. "
            f"View: {view.__class__.__name__ if view else 'unknown'}, "
            f"User: {getattr(getattr(request, 'user', None), 'pk', None)}"
        )
    return exception_handler(exc, context)
