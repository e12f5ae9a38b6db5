"""
BlueMoon — Domain exceptions and the DRF exception handler.

Services raise EstateError subclasses; api_exception_handler renders them,
and DRF's own errors, as {success: false, message, errors?}.
"""
import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class EstateError(Exception):
    """Base exception for billing and registry rules."""
    default_message = 'Request could not be processed'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message=None, errors=None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)


class InvalidInputError(EstateError):
    default_message = 'Validation failed'

    @classmethod
    def for_field(cls, field, message):
        return cls(errors=[{'field': field, 'message': message}])


class NotFoundError(EstateError):
    default_message = 'Resource not found'
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(EstateError):
    default_message = 'Resource conflicts with an existing record'
    status_code = status.HTTP_409_CONFLICT


class AlreadyPaidError(ConflictError):
    default_message = 'Fee already paid for this apartment'


def _flatten_errors(data, prefix=''):
    """Turn DRF's nested error dict into [{field, message}, ...]."""
    if isinstance(data, dict):
        items = []
        for key, value in data.items():
            field = f'{prefix}.{key}' if prefix else str(key)
            items.extend(_flatten_errors(value, field))
        return items
    if isinstance(data, list):
        items = []
        for value in data:
            if isinstance(value, (dict, list)):
                items.extend(_flatten_errors(value, prefix))
            else:
                items.append({'field': prefix or None, 'message': str(value)})
        return items
    return [{'field': prefix or None, 'message': str(data)}]


def api_exception_handler(exc, context):
    """REST_FRAMEWORK['EXCEPTION_HANDLER']"""
    if isinstance(exc, EstateError):
        view = context.get('view')
        logger.info('%s rejected: %s', view.__class__.__name__ if view else 'request', exc.message)
        payload = {'success': False, 'message': exc.message}
        if exc.errors:
            payload['errors'] = exc.errors
        return Response(payload, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, exceptions.ValidationError):
        response.data = {
            'success': False,
            'message': 'Validation failed',
            'errors': _flatten_errors(response.data),
        }
    else:
        detail = response.data.get('detail', '') if isinstance(response.data, dict) else response.data
        response.data = {'success': False, 'message': str(detail)}
    return response
