"""Capability codes and the single authorization check used by the services.

Every service operation receives the acting user explicitly and calls
``require(user, CODE)`` once before touching storage.
"""
import enum
import logging

from schoolerp import exceptions as errors

from .utils import get_user_college, get_user_permissions

logger = logging.getLogger(__name__)

SHIFT_VIEW = 'shift:view'
SHIFT_MANAGE = 'shift:manage'
TIMETABLE_VIEW = 'timetable:view'
TIMETABLE_MANAGE = 'timetable:manage'

TIMETABLES_READ = 'timetables:read'
TIMETABLES_CREATE = 'timetables:create'
TIMETABLES_UPDATE = 'timetables:update'
TIMETABLES_DELETE = 'timetables:delete'
TIMETABLES_PUBLISH = 'timetables:publish'

ATTENDANCE_VIEW_CLASS = 'student_attendance:view_class'
ATTENDANCE_MARK_CLASS = 'student_attendance:mark_class'
ATTENDANCE_ADMIN_EDIT = 'student_attendance:admin_edit'
ATTENDANCE_MANAGE_SETTINGS = 'student_attendance:manage_settings'

SUBSTITUTION_VIEW = 'substitution:view'
SUBSTITUTION_CREATE = 'substitution:create'
SUBSTITUTION_UPDATE = 'substitution:update'
SUBSTITUTION_DELETE = 'substitution:delete'
SUBSTITUTION_APPROVE = 'substitution:approve'

ALL_CAPABILITIES = (
    SHIFT_VIEW,
    SHIFT_MANAGE,
    TIMETABLE_VIEW,
    TIMETABLE_MANAGE,
    TIMETABLES_READ,
    TIMETABLES_CREATE,
    TIMETABLES_UPDATE,
    TIMETABLES_DELETE,
    TIMETABLES_PUBLISH,
    ATTENDANCE_VIEW_CLASS,
    ATTENDANCE_MARK_CLASS,
    ATTENDANCE_ADMIN_EDIT,
    ATTENDANCE_MANAGE_SETTINGS,
    SUBSTITUTION_VIEW,
    SUBSTITUTION_CREATE,
    SUBSTITUTION_UPDATE,
    SUBSTITUTION_DELETE,
    SUBSTITUTION_APPROVE,
)


class Decision(enum.Enum):
    ALLOWED = 'allowed'
    DENIED = 'denied'


def authorize(user, capability: str) -> Decision:
    if user is None or not getattr(user, 'is_authenticated', False):
        return Decision.DENIED
    if user.is_superuser:
        return Decision.ALLOWED
    if capability in get_user_permissions(user):
        return Decision.ALLOWED
    return Decision.DENIED


def has_capability(user, capability: str) -> bool:
    return authorize(user, capability) is Decision.ALLOWED


def require(user, capability: str) -> None:
    if authorize(user, capability) is Decision.DENIED:
        logger.info('capability denied user=%s capability=%s', getattr(user, 'pk', None), capability)
        raise errors.PermissionDenied(
            f'Missing required permission: {capability}.',
            capability=capability,
        )


def require_college(user):
    """Return the caller's college; users without one cannot act on tenant data."""
    college = get_user_college(user)
    if college is None:
        raise errors.PermissionDenied('Your account is not linked to a college.')
    return college
