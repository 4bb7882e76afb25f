"""Error taxonomy shared by the domain services and the API layer.

Services raise the classes below; ``problem_exception_handler`` (configured as
``REST_FRAMEWORK['EXCEPTION_HANDLER']``) renders them, and every other error
DRF knows about, as a problem-detail body inside the response envelope::

    {"success": false,
     "error": {"type": "schedule-conflict", "title": "Schedule conflict",
               "status": 409, "detail": "...", ...}}
"""
import logging

from django.core import exceptions as django_exceptions
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class DomainError(drf_exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = 'error'
    title = 'Request failed'
    default_detail = 'The request could not be completed.'

    def __init__(self, detail=None, **extra):
        super().__init__(detail=detail)
        self.extra = extra

    def as_problem(self) -> dict:
        problem = {
            'type': self.error_type,
            'title': self.title,
            'status': self.status_code,
            'detail': str(self.detail),
        }
        problem.update(self.extra)
        return problem


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = 'validation-error'
    title = 'Validation failed'
    default_detail = 'Invalid input.'


class InvalidTimeRange(ValidationError):
    error_type = 'invalid-time-range'
    title = 'Invalid time range'
    default_detail = 'Start time must be before end time.'


class PermissionDenied(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = 'permission-denied'
    title = 'Permission denied'
    default_detail = 'You do not have permission to perform this action.'


class EditWindowExpired(PermissionDenied):
    error_type = 'edit-window-expired'
    title = 'Edit window expired'
    default_detail = 'The edit window for this attendance record has expired.'


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = 'not-found'
    title = 'Not found'
    default_detail = 'The requested resource was not found.'


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    error_type = 'conflict'
    title = 'Conflict'
    default_detail = 'The request conflicts with the current state.'


class DuplicateCode(ConflictError):
    error_type = 'duplicate-code'
    title = 'Duplicate code'
    default_detail = 'An entity with this code already exists.'


class EntityInUse(ConflictError):
    error_type = 'entity-in-use'
    title = 'Entity in use'
    default_detail = 'The entity is referenced by other records.'


class ScheduleConflict(ConflictError):
    error_type = 'schedule-conflict'
    title = 'Schedule conflict'
    default_detail = 'The teacher is already booked for an overlapping period.'


class SubstitutionConflict(ConflictError):
    error_type = 'substitution-conflict'
    title = 'Substitution conflict'
    default_detail = 'A substitution already covers this teacher and period.'


class AlreadyMarked(ConflictError):
    error_type = 'already-marked'
    title = 'Attendance already marked'
    default_detail = 'Attendance has already been marked for this period.'


class InvalidStateTransition(ConflictError):
    error_type = 'invalid-state'
    title = 'Invalid state'
    default_detail = 'The operation is not allowed in the current state.'


def _envelope(problem: dict) -> dict:
    return {'success': False, 'error': problem}


def _generic_problem(exc, response) -> dict:
    data = response.data
    if isinstance(exc, drf_exceptions.ValidationError):
        return {
            'type': ValidationError.error_type,
            'title': ValidationError.title,
            'status': response.status_code,
            'detail': 'Invalid input.',
            'errors': data,
        }
    if isinstance(exc, drf_exceptions.NotAuthenticated) or isinstance(exc, drf_exceptions.AuthenticationFailed):
        error_type, title = 'not-authenticated', 'Authentication required'
    elif isinstance(exc, drf_exceptions.PermissionDenied):
        error_type, title = PermissionDenied.error_type, PermissionDenied.title
    elif isinstance(exc, drf_exceptions.NotFound):
        error_type, title = NotFoundError.error_type, NotFoundError.title
    elif isinstance(exc, drf_exceptions.MethodNotAllowed):
        error_type, title = 'method-not-allowed', 'Method not allowed'
    else:
        error_type, title = 'error', 'Request failed'
    detail = data.get('detail') if isinstance(data, dict) else data
    return {
        'type': error_type,
        'title': title,
        'status': response.status_code,
        'detail': str(detail),
    }


def problem_exception_handler(exc, context):
    if isinstance(exc, DomainError):
        if exc.status_code == status.HTTP_409_CONFLICT:
            logger.info('conflict type=%s detail=%s', exc.error_type, exc.detail)
        return Response(_envelope(exc.as_problem()), status=exc.status_code)

    if isinstance(exc, django_exceptions.ValidationError):
        errors = exc.message_dict if hasattr(exc, 'error_dict') else exc.messages
        problem = {
            'type': ValidationError.error_type,
            'title': ValidationError.title,
            'status': status.HTTP_400_BAD_REQUEST,
            'detail': 'Invalid input.',
            'errors': errors,
        }
        return Response(_envelope(problem), status=status.HTTP_400_BAD_REQUEST)

    # DRF's handler maps Http404 and django PermissionDenied itself.
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, django_exceptions.PermissionDenied):
        exc = drf_exceptions.PermissionDenied()
    response.data = _envelope(_generic_problem(exc, response))
    return response
