"""Schedule template store: shifts, day patterns, period slots and the
weekday -> day pattern map of each branch.

Every public function takes the acting user first and checks exactly one
capability. Updates take a patch (see ``schoolerp.patch``).
"""
import logging
from typing import List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Max

from accounts import capabilities
from college.models import Branch
from schoolerp import exceptions as errors
from schoolerp.patch import Patch, apply_patch
from timetable.models import (
    DAY_NAMES,
    DayPattern,
    DayPatternAssignment,
    PeriodSlot,
    Shift,
)

logger = logging.getLogger(__name__)

SHIFT_FIELDS = ('name', 'code', 'start_time', 'end_time', 'description', 'display_order', 'is_active')
DAY_PATTERN_FIELDS = ('name', 'code', 'description', 'total_periods', 'display_order', 'is_active')
PERIOD_SLOT_FIELDS = (
    'name', 'period_number', 'slot_type', 'start_time', 'end_time',
    'day_pattern', 'shift', 'display_order', 'is_active',
)


def normalize_code(code) -> str:
    return str(code or '').strip().upper()


def validate_time_range(start_time, end_time) -> None:
    if start_time is None or end_time is None or start_time >= end_time:
        raise errors.InvalidTimeRange(
            'start_time must be before end_time.',
            start_time=start_time.strftime('%H:%M') if start_time else None,
            end_time=end_time.strftime('%H:%M') if end_time else None,
        )


def validate_day_of_week(day_of_week) -> int:
    try:
        day = int(day_of_week)
    except (TypeError, ValueError):
        raise errors.ValidationError('day_of_week must be an integer between 0 and 6.', field='day_of_week')
    if day not in DAY_NAMES:
        raise errors.ValidationError('day_of_week must be between 0 (Sunday) and 6 (Saturday).', field='day_of_week')
    return day


def next_display_order(queryset) -> int:
    current = queryset.aggregate(m=Max('display_order'))['m']
    return (current or 0) + 1


def get_branch(college, branch_id) -> Branch:
    branch = Branch.objects.filter(pk=branch_id, college=college).first()
    if branch is None:
        raise errors.NotFoundError('Branch not found.', resource='branch', id=branch_id)
    return branch


def _check_branch(college, branch) -> None:
    if branch is None or branch.college_id != college.pk:
        raise errors.ValidationError('Branch does not belong to your college.', field='branch_id')


def _fill_display_order(changes: dict, siblings) -> None:
    # display_order is not nullable; an explicit null means "put it last"
    if 'display_order' in changes and changes['display_order'] is None:
        changes['display_order'] = next_display_order(siblings)


def _save_with_code(instance, scope: str, siblings) -> None:
    """Save an entity whose ``code`` is unique among ``siblings``.

    The unique constraint is authoritative; a violation at write time is
    reported as ``DuplicateCode``. Any other integrity error propagates.
    """
    try:
        with transaction.atomic():
            instance.save()
    except IntegrityError:
        if not siblings.filter(code=instance.code).exclude(pk=instance.pk).exists():
            raise
        logger.warning('duplicate code rejected by constraint model=%s code=%s', type(instance).__name__, instance.code)
        raise errors.DuplicateCode(f"Code '{instance.code}' already exists in this {scope}.", code=instance.code)


# --- shifts -----------------------------------------------------------------

def list_shifts(user, branch_id: Optional[int] = None, is_active: Optional[bool] = None):
    capabilities.require(user, capabilities.SHIFT_VIEW)
    college = capabilities.require_college(user)
    qs = Shift.objects.filter(branch__college=college).select_related('branch')
    if branch_id is not None:
        qs = qs.filter(branch_id=branch_id)
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    return qs.order_by('display_order', 'start_time', 'pk')


def _load_shift(college, shift_id) -> Shift:
    shift = Shift.objects.select_related('branch').filter(pk=shift_id, branch__college=college).first()
    if shift is None:
        raise errors.NotFoundError('Shift not found.', resource='shift', id=shift_id)
    return shift


def get_shift(user, shift_id) -> Shift:
    capabilities.require(user, capabilities.SHIFT_VIEW)
    return _load_shift(capabilities.require_college(user), shift_id)


def create_shift(user, data: Patch) -> Shift:
    capabilities.require(user, capabilities.SHIFT_MANAGE)
    college = capabilities.require_college(user)
    branch = data.get('branch')
    _check_branch(college, branch)
    validate_time_range(data.get('start_time'), data.get('end_time'))

    code = normalize_code(data.get('code'))
    if not code:
        raise errors.ValidationError('code is required.', field='code')
    if Shift.objects.filter(branch=branch, code=code).exists():
        raise errors.DuplicateCode(f"Code '{code}' already exists in this branch.", code=code)

    display_order = data.get('display_order')
    if display_order is None:
        display_order = next_display_order(Shift.objects.filter(branch=branch))

    shift = Shift(
        branch=branch,
        name=data.get('name'),
        code=code,
        start_time=data.get('start_time'),
        end_time=data.get('end_time'),
        description=data.get('description') or '',
        display_order=display_order,
        is_active=data.get('is_active', True),
        created_by=user,
    )
    _save_with_code(shift, 'branch', Shift.objects.filter(branch=branch))
    logger.info('shift created id=%s branch=%s code=%s user=%s', shift.pk, branch.pk, code, user.pk)
    return shift


def update_shift(user, shift_id, changes: Patch) -> Shift:
    capabilities.require(user, capabilities.SHIFT_MANAGE)
    shift = _load_shift(capabilities.require_college(user), shift_id)
    changes = dict(changes)
    if 'code' in changes:
        changes['code'] = normalize_code(changes['code'])
        if not changes['code']:
            raise errors.ValidationError('code cannot be blank.', field='code')
        if Shift.objects.filter(branch=shift.branch, code=changes['code']).exclude(pk=shift.pk).exists():
            raise errors.DuplicateCode(f"Code '{changes['code']}' already exists in this branch.", code=changes['code'])
    _fill_display_order(changes, Shift.objects.filter(branch=shift.branch).exclude(pk=shift.pk))
    if 'description' in changes and changes['description'] is None:
        changes['description'] = ''

    apply_patch(shift, changes, SHIFT_FIELDS)
    validate_time_range(shift.start_time, shift.end_time)
    _save_with_code(shift, 'branch', Shift.objects.filter(branch=shift.branch))
    return shift


def delete_shift(user, shift_id) -> None:
    capabilities.require(user, capabilities.SHIFT_MANAGE)
    shift = _load_shift(capabilities.require_college(user), shift_id)
    in_use = shift.period_slots.filter(is_active=True).count()
    if in_use:
        raise errors.EntityInUse(
            f'Shift is used by {in_use} active period slot(s).',
            resource='shift', id=shift.pk, references=in_use,
        )
    shift.delete()
    logger.info('shift deleted id=%s user=%s', shift_id, user.pk)


def toggle_shift(user, shift_id) -> Shift:
    capabilities.require(user, capabilities.SHIFT_MANAGE)
    shift = _load_shift(capabilities.require_college(user), shift_id)
    shift.is_active = not shift.is_active
    shift.save(update_fields=['is_active', 'updated_at'])
    return shift


# --- day patterns -----------------------------------------------------------

def list_day_patterns(user, is_active: Optional[bool] = None):
    capabilities.require(user, capabilities.TIMETABLE_VIEW)
    college = capabilities.require_college(user)
    qs = DayPattern.objects.filter(college=college)
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    return qs.order_by('display_order', 'name', 'pk')


def _load_day_pattern(college, pattern_id) -> DayPattern:
    pattern = DayPattern.objects.filter(pk=pattern_id, college=college).first()
    if pattern is None:
        raise errors.NotFoundError('Day pattern not found.', resource='day_pattern', id=pattern_id)
    return pattern


def get_day_pattern(user, pattern_id) -> DayPattern:
    capabilities.require(user, capabilities.TIMETABLE_VIEW)
    return _load_day_pattern(capabilities.require_college(user), pattern_id)


def _check_total_periods(value) -> None:
    if value is not None and value < 1:
        raise errors.ValidationError('total_periods must be at least 1.', field='total_periods')


def create_day_pattern(user, data: Patch) -> DayPattern:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    college = capabilities.require_college(user)
    code = normalize_code(data.get('code'))
    if not code:
        raise errors.ValidationError('code is required.', field='code')
    if DayPattern.objects.filter(college=college, code=code).exists():
        raise errors.DuplicateCode(f"Code '{code}' already exists in this college.", code=code)
    total_periods = data.get('total_periods')
    _check_total_periods(total_periods)

    display_order = data.get('display_order')
    if display_order is None:
        display_order = next_display_order(DayPattern.objects.filter(college=college))

    pattern = DayPattern(
        college=college,
        name=data.get('name'),
        code=code,
        description=data.get('description') or '',
        total_periods=total_periods or 8,
        display_order=display_order,
        is_active=data.get('is_active', True),
    )
    _save_with_code(pattern, 'college', DayPattern.objects.filter(college=college))
    logger.info('day pattern created id=%s code=%s user=%s', pattern.pk, code, user.pk)
    return pattern


def update_day_pattern(user, pattern_id, changes: Patch) -> DayPattern:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    college = capabilities.require_college(user)
    pattern = _load_day_pattern(college, pattern_id)
    changes = dict(changes)
    if 'code' in changes:
        changes['code'] = normalize_code(changes['code'])
        if not changes['code']:
            raise errors.ValidationError('code cannot be blank.', field='code')
        if DayPattern.objects.filter(college=college, code=changes['code']).exclude(pk=pattern.pk).exists():
            raise errors.DuplicateCode(f"Code '{changes['code']}' already exists in this college.", code=changes['code'])
    if 'total_periods' in changes:
        _check_total_periods(changes['total_periods'])
        if changes['total_periods'] is None:
            changes['total_periods'] = 8
    if 'description' in changes and changes['description'] is None:
        changes['description'] = ''
    _fill_display_order(changes, DayPattern.objects.filter(college=college).exclude(pk=pattern.pk))

    apply_patch(pattern, changes, DAY_PATTERN_FIELDS)
    _save_with_code(pattern, 'college', DayPattern.objects.filter(college=college))
    return pattern


def delete_day_pattern(user, pattern_id) -> None:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    pattern = _load_day_pattern(capabilities.require_college(user), pattern_id)
    in_use = pattern.period_slots.count()
    if in_use:
        raise errors.EntityInUse(
            f'Day pattern is used by {in_use} period slot(s).',
            resource='day_pattern', id=pattern.pk, references=in_use,
        )
    pattern.delete()
    logger.info('day pattern deleted id=%s user=%s', pattern_id, user.pk)


def toggle_day_pattern(user, pattern_id) -> DayPattern:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    pattern = _load_day_pattern(capabilities.require_college(user), pattern_id)
    pattern.is_active = not pattern.is_active
    pattern.save(update_fields=['is_active', 'updated_at'])
    return pattern


# --- period slots -----------------------------------------------------------

def list_period_slots(user, branch_id: Optional[int] = None, day_pattern_id: Optional[int] = None,
                      shift_id: Optional[int] = None, slot_type: Optional[str] = None,
                      is_active: Optional[bool] = None):
    capabilities.require(user, capabilities.TIMETABLE_VIEW)
    college = capabilities.require_college(user)
    qs = PeriodSlot.objects.filter(branch__college=college).select_related('branch', 'day_pattern', 'shift')
    if branch_id is not None:
        qs = qs.filter(branch_id=branch_id)
    if day_pattern_id is not None:
        qs = qs.filter(day_pattern_id=day_pattern_id)
    if shift_id is not None:
        qs = qs.filter(shift_id=shift_id)
    if slot_type:
        qs = qs.filter(slot_type=slot_type)
    if is_active is not None:
        qs = qs.filter(is_active=is_active)
    return qs.order_by('display_order', 'start_time', 'pk')


def _load_period_slot(college, slot_id) -> PeriodSlot:
    slot = (
        PeriodSlot.objects
        .select_related('branch', 'day_pattern', 'shift')
        .filter(pk=slot_id, branch__college=college)
        .first()
    )
    if slot is None:
        raise errors.NotFoundError('Period slot not found.', resource='period_slot', id=slot_id)
    return slot


def get_period_slot(user, slot_id) -> PeriodSlot:
    capabilities.require(user, capabilities.TIMETABLE_VIEW)
    return _load_period_slot(capabilities.require_college(user), slot_id)


def _check_slot_links(college, slot: PeriodSlot) -> None:
    if slot.period_number is not None and slot.period_number < 1:
        raise errors.ValidationError('period_number must be at least 1.', field='period_number')
    if slot.day_pattern is not None and slot.day_pattern.college_id != college.pk:
        raise errors.ValidationError('Day pattern does not belong to your college.', field='day_pattern_id')
    if slot.shift is not None and slot.shift.branch_id != slot.branch_id:
        raise errors.ValidationError('Shift belongs to a different branch.', field='shift_id')


def create_period_slot(user, data: Patch) -> PeriodSlot:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    college = capabilities.require_college(user)
    branch = data.get('branch')
    _check_branch(college, branch)
    validate_time_range(data.get('start_time'), data.get('end_time'))

    display_order = data.get('display_order')
    if display_order is None:
        display_order = next_display_order(PeriodSlot.objects.filter(branch=branch))

    slot = PeriodSlot(
        branch=branch,
        name=data.get('name'),
        period_number=data.get('period_number'),
        slot_type=data.get('slot_type') or PeriodSlot.SlotType.REGULAR,
        start_time=data.get('start_time'),
        end_time=data.get('end_time'),
        day_pattern=data.get('day_pattern'),
        shift=data.get('shift'),
        display_order=display_order,
        is_active=data.get('is_active', True),
    )
    _check_slot_links(college, slot)
    slot.save()
    logger.info('period slot created id=%s branch=%s user=%s', slot.pk, branch.pk, user.pk)
    return slot


def update_period_slot(user, slot_id, changes: Patch) -> PeriodSlot:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    college = capabilities.require_college(user)
    slot = _load_period_slot(college, slot_id)
    changes = dict(changes)
    if 'slot_type' in changes and not changes['slot_type']:
        changes['slot_type'] = PeriodSlot.SlotType.REGULAR
    _fill_display_order(changes, PeriodSlot.objects.filter(branch=slot.branch).exclude(pk=slot.pk))

    apply_patch(slot, changes, PERIOD_SLOT_FIELDS)
    validate_time_range(slot.start_time, slot.end_time)
    _check_slot_links(college, slot)
    slot.save()
    return slot


def delete_period_slot(user, slot_id) -> None:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    slot = _load_period_slot(capabilities.require_college(user), slot_id)
    entries = slot.timetable_entries.count()
    if entries:
        raise errors.EntityInUse(
            f'Period slot is used by {entries} timetable entr{"y" if entries == 1 else "ies"}.',
            resource='period_slot', id=slot.pk, references=entries,
        )
    if slot.attendance_records.exists():
        raise errors.EntityInUse(
            'Period slot has recorded attendance.',
            resource='period_slot', id=slot.pk,
        )
    slot.delete()
    logger.info('period slot deleted id=%s user=%s', slot_id, user.pk)


def toggle_period_slot(user, slot_id) -> PeriodSlot:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    slot = _load_period_slot(capabilities.require_college(user), slot_id)
    slot.is_active = not slot.is_active
    slot.save(update_fields=['is_active', 'updated_at'])
    return slot


# --- day pattern assignments ------------------------------------------------

def _default_assignment(branch, day_of_week) -> DayPatternAssignment:
    # unsaved placeholder for days nobody configured yet
    return DayPatternAssignment(branch=branch, day_of_week=day_of_week, is_working_day=True)


def list_day_assignments(user, branch_id) -> List[DayPatternAssignment]:
    capabilities.require(user, capabilities.TIMETABLE_VIEW)
    branch = get_branch(capabilities.require_college(user), branch_id)
    stored = {
        a.day_of_week: a
        for a in DayPatternAssignment.objects.filter(branch=branch).select_related('day_pattern')
    }
    return [stored.get(day) or _default_assignment(branch, day) for day in sorted(DAY_NAMES)]


def get_day_assignment(user, branch_id, day_of_week) -> DayPatternAssignment:
    capabilities.require(user, capabilities.TIMETABLE_VIEW)
    day = validate_day_of_week(day_of_week)
    branch = get_branch(capabilities.require_college(user), branch_id)
    assignment = DayPatternAssignment.objects.select_related('day_pattern').filter(branch=branch, day_of_week=day).first()
    return assignment or _default_assignment(branch, day)


@transaction.atomic
def upsert_day_assignment(user, branch_id, day_of_week, changes: Patch) -> Tuple[DayPatternAssignment, bool]:
    capabilities.require(user, capabilities.TIMETABLE_MANAGE)
    day = validate_day_of_week(day_of_week)
    college = capabilities.require_college(user)
    branch = get_branch(college, branch_id)

    pattern = changes.get('day_pattern')
    if pattern is not None and pattern.college_id != college.pk:
        raise errors.ValidationError('Day pattern does not belong to your college.', field='day_pattern_id')

    assignment, created = DayPatternAssignment.objects.select_for_update().get_or_create(
        branch=branch,
        day_of_week=day,
        defaults={'is_working_day': True},
    )
    changes = dict(changes)
    if changes.get('is_working_day') is None:
        changes.pop('is_working_day', None)
    apply_patch(assignment, changes, ('day_pattern', 'is_working_day'))
    assignment.save()
    logger.info(
        'day assignment saved branch=%s day=%s pattern=%s working=%s user=%s',
        branch.pk, day, assignment.day_pattern_id, assignment.is_working_day, user.pk,
    )
    return assignment, created
