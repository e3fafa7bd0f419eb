"""
Error taxonomy for room assignment and the unified API error handler.

Business rule failures (``RoomNotSelected``, ``Conflict``, ``InUse``)
are expected outcomes and keep their own code and status when they
reach the HTTP layer; storage failures surface as ``Internal``.
"""
import logging

from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class AssignmentError(Exception):
    status_code = 400
    code = 'assignment_error'
    default_message = 'Room assignment failed'

    def __init__(self, message=None, *, detail=None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def as_dict(self) -> dict:
        error = {'code': self.code, 'message': self.message}
        if self.detail is not None:
            error['detail'] = self.detail
        return error


class InvalidArgument(AssignmentError):
    code = 'invalid_argument'
    default_message = 'Invalid argument'


class RoomNotSelected(AssignmentError):
    """The doctor has not selected a room for today."""
    code = 'room_not_selected'
    default_message = 'Please select a room for today before assigning patients'


class NotFound(AssignmentError):
    status_code = 404
    code = 'not_found'
    default_message = 'Not found'


class Conflict(AssignmentError):
    status_code = 409
    code = 'conflict'
    default_message = 'Room number already exists'


class InUse(AssignmentError):
    """Room still referenced; ``detail`` carries counts and names."""
    status_code = 409
    code = 'room_in_use'
    default_message = 'Room is in use'


class Internal(AssignmentError):
    status_code = 500
    code = 'internal_error'
    default_message = 'Internal error'


def api_exception_handler(exc, context):
    if isinstance(exc, AssignmentError):
        return Response({'ok': False, 'error': exc.as_dict()}, status=exc.status_code)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('unhandled error in %s', context.get('view').__class__.__name__, exc_info=exc)
        return Response({'ok': False, 'error': {'code': 'server_error', 'message': 'Internal server error'}}, status=500)
    # normalize response
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = resp.data
    return Response({'ok': False, 'error': {'code': 'api_error', 'message': detail}}, status=resp.status_code)
