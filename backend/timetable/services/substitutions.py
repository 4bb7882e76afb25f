"""Teacher substitutions: another teacher covering an absent teacher's
periods on one date.

A substitution is created pending, confirmed by an approver, and may be
cancelled while pending or confirmed. A substitute is busy in a period when
a published timetable books them for an overlapping slot that weekday, or
when another non-cancelled substitution on the same date already uses them
for an overlapping slot.
"""
import logging
from typing import Dict, Iterable, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from academics.models import StaffProfile
from academics.services import academic_year_for
from accounts import capabilities
from schoolerp import exceptions as errors
from schoolerp.patch import Patch, apply_patch
from timetable.models import (
    DayPatternAssignment,
    PeriodSlot,
    Substitution,
    SubstitutionPeriod,
    Timetable,
    TimetableEntry,
    day_of_week_for,
)
from timetable.services import conflicts
from timetable.services.templates import get_branch

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('reason', 'notes')


def _load_substitution(college, substitution_id, for_update: bool = False) -> Substitution:
    qs = Substitution.objects.select_related('branch', 'original_staff__user', 'substitute_staff__user')
    if for_update:
        qs = qs.select_for_update(of=('self',))
    substitution = qs.filter(pk=substitution_id, college=college).first()
    if substitution is None:
        raise errors.NotFoundError('Substitution not found.', resource='substitution', id=substitution_id)
    return substitution


def _require_status(substitution: Substitution, allowed, action: str) -> None:
    if substitution.status not in allowed:
        raise errors.InvalidStateTransition(
            f'Substitution cannot be {action}; it is {substitution.status}.',
            status_value=substitution.status,
        )


def _check_staff(college, staff: Optional[StaffProfile], field: str) -> StaffProfile:
    if staff is None or staff.user.college_id != college.pk:
        raise errors.ValidationError('Staff member does not belong to your college.', field=field)
    return staff


def _lock_staff(*staff_ids) -> None:
    list(
        StaffProfile.objects.select_for_update()
        .filter(pk__in=sorted(set(staff_ids)))
        .order_by('pk')
        .values_list('pk', flat=True)
    )


def _published_entries(college, staff_id, day: int):
    return (
        TimetableEntry.objects
        .filter(
            timetable__college=college,
            timetable__status=Timetable.Status.PUBLISHED,
            staff_id=staff_id,
            day_of_week=day,
            is_free_period=False,
        )
        .select_related('period_slot', 'subject', 'timetable__section')
        .order_by('period_slot__start_time', 'pk')
    )


def _booked_periods(staff_id, on_date, exclude_substitution_id: Optional[int] = None):
    qs = (
        SubstitutionPeriod.objects
        .filter(substitution__substitute_staff_id=staff_id, substitution__substitution_date=on_date)
        .exclude(substitution__status=Substitution.Status.CANCELLED)
        .select_related('period_slot')
    )
    if exclude_substitution_id is not None:
        qs = qs.exclude(substitution_id=exclude_substitution_id)
    return list(qs)


def substitute_conflicts(college, staff_id, on_date, slots: Iterable[PeriodSlot],
                         exclude_substitution_id: Optional[int] = None) -> List[dict]:
    """Everything that keeps ``staff_id`` from covering ``slots`` on ``on_date``."""
    day = day_of_week_for(on_date)
    booked = _booked_periods(staff_id, on_date, exclude_substitution_id)
    found = []
    for slot in slots:
        for conflict in conflicts.find_conflicts(college, staff_id, day, slot):
            found.append(dict(conflict.as_dict(), source='timetable', requested_period_slot_id=slot.pk))
        for period in booked:
            taken = period.period_slot
            if conflicts.ranges_overlap(slot.start_time, slot.end_time, taken.start_time, taken.end_time):
                found.append({
                    'source': 'substitution',
                    'substitution_id': period.substitution_id,
                    'period_slot_id': taken.pk,
                    'period_name': taken.name,
                    'start_time': taken.start_time.strftime('%H:%M'),
                    'end_time': taken.end_time.strftime('%H:%M'),
                    'requested_period_slot_id': slot.pk,
                })
    return found


def _raise_if_busy(college, substitute: StaffProfile, on_date, slots, exclude_substitution_id=None) -> None:
    found = substitute_conflicts(college, substitute.pk, on_date, slots, exclude_substitution_id)
    if found:
        raise errors.ScheduleConflict(
            f'{substitute.display_name} is not free for {len(found)} of the requested periods.',
            conflicts=found,
        )


def _raise_if_covered(original: StaffProfile, on_date, slots) -> None:
    qs = (
        SubstitutionPeriod.objects
        .filter(
            substitution__original_staff=original,
            substitution__substitution_date=on_date,
            period_slot__in=[s.pk for s in slots],
        )
        .exclude(substitution__status=Substitution.Status.CANCELLED)
    )
    covered = list(qs.values_list('substitution_id', 'period_slot_id'))
    if covered:
        raise errors.SubstitutionConflict(
            f'{original.display_name} already has a substitute for {len(covered)} of these periods on {on_date}.',
            substitution_ids=sorted({pk for pk, _ in covered}),
            period_slot_ids=sorted({slot_id for _, slot_id in covered}),
        )


def _clean_periods(college, branch, original: StaffProfile, on_date, rows: List[Patch]) -> List[Dict]:
    if not rows:
        raise errors.ValidationError('periods must contain at least one period.', field='periods')
    day = day_of_week_for(on_date)
    scheduled = {e.period_slot_id: e for e in _published_entries(college, original.pk, day)}
    cleaned, seen = [], set()
    for row in rows:
        slot: PeriodSlot = row.get('period_slot')
        if slot is None:
            raise errors.ValidationError('period_slot_id is required.', field='period_slot_id')
        if slot.branch_id != branch.pk:
            raise errors.ValidationError(
                f"Period slot '{slot.name}' belongs to a different branch.",
                field='period_slot_id', period_slot_id=slot.pk,
            )
        if slot.pk in seen:
            raise errors.ValidationError(
                f"Period slot '{slot.name}' is listed twice.", field='periods', period_slot_id=slot.pk,
            )
        seen.add(slot.pk)

        entry = row.get('timetable_entry')
        if entry is not None and scheduled.get(slot.pk) != entry:
            raise errors.ValidationError(
                "Timetable entry is not the absent teacher's published class in this period.",
                field='timetable_entry_id', period_slot_id=slot.pk,
            )
        entry = scheduled.get(slot.pk)

        subject = row.get('subject') or (entry.subject if entry else None)
        if subject is not None and subject.college_id != college.pk:
            raise errors.ValidationError('Subject does not belong to your college.', field='subject_id')
        section = row.get('section') or (entry.timetable.section if entry else None)
        if section is not None and section.branch_id != branch.pk:
            raise errors.ValidationError('Section belongs to a different branch.', field='section_id')

        room_number = row.get('room_number')
        if room_number is None:
            room_number = entry.room_number if entry else ''
        cleaned.append({
            'period_slot': slot,
            'timetable_entry': entry,
            'subject': subject,
            'section': section,
            'room_number': room_number,
            'notes': row.get('notes') or '',
        })
    return cleaned


# --- reads ------------------------------------------------------------------

def list_substitutions(user, branch_id: Optional[int] = None, original_staff_id: Optional[int] = None,
                       substitute_staff_id: Optional[int] = None, start_date=None, end_date=None,
                       status: Optional[str] = None):
    capabilities.require(user, capabilities.SUBSTITUTION_VIEW)
    college = capabilities.require_college(user)
    if start_date and end_date and start_date > end_date:
        raise errors.ValidationError('start_date must not be after end_date.', field='end_date')
    if status and status not in Substitution.Status.values:
        raise errors.ValidationError(f"Unknown status '{status}'.", field='status')
    qs = (
        Substitution.objects.filter(college=college)
        .select_related('branch', 'original_staff__user', 'substitute_staff__user')
        .prefetch_related('periods__period_slot', 'periods__subject', 'periods__section')
    )
    if branch_id is not None:
        qs = qs.filter(branch_id=branch_id)
    if original_staff_id is not None:
        qs = qs.filter(original_staff_id=original_staff_id)
    if substitute_staff_id is not None:
        qs = qs.filter(substitute_staff_id=substitute_staff_id)
    if start_date:
        qs = qs.filter(substitution_date__gte=start_date)
    if end_date:
        qs = qs.filter(substitution_date__lte=end_date)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_substitution(user, substitution_id) -> Substitution:
    capabilities.require(user, capabilities.SUBSTITUTION_VIEW)
    return _load_substitution(capabilities.require_college(user), substitution_id)


def available_teachers(user, branch_id, on_date, period_slot_ids: List[int],
                       exclude_staff_id: Optional[int] = None) -> List[dict]:
    """Staff of a branch ranked for covering ``period_slot_ids`` on ``on_date``.

    Teachers without a conflict come first, then those with the lightest day.
    """
    capabilities.require(user, capabilities.SUBSTITUTION_VIEW)
    college = capabilities.require_college(user)
    branch = get_branch(college, branch_id)
    slots = list(PeriodSlot.objects.filter(pk__in=period_slot_ids, branch=branch))
    missing = set(period_slot_ids) - {s.pk for s in slots}
    if missing:
        raise errors.ValidationError(
            'Unknown period slot for this branch.', field='period_slot_ids', period_slot_ids=sorted(missing),
        )

    day = day_of_week_for(on_date)
    assignment = DayPatternAssignment.objects.filter(branch=branch, day_of_week=day).first()
    teaching_slots = PeriodSlot.objects.filter(
        branch=branch, is_active=True, slot_type__in=PeriodSlot.TEACHING_TYPES,
    )
    if assignment is not None and assignment.day_pattern_id:
        teaching_slots = teaching_slots.filter(
            Q(day_pattern_id=assignment.day_pattern_id) | Q(day_pattern__isnull=True),
        )
    working = assignment is None or assignment.is_working_day
    slots_in_day = teaching_slots.count() if working else 0

    staff = (
        StaffProfile.objects
        .filter(branch=branch, user__college=college, status='ACTIVE')
        .select_related('user')
        .order_by('staff_id')
    )
    if exclude_staff_id is not None:
        staff = staff.exclude(pk=exclude_staff_id)

    result = []
    for member in staff:
        total = _published_entries(college, member.pk, day).count()
        found = substitute_conflicts(college, member.pk, on_date, slots)
        result.append({
            'staff_id': member.pk,
            'staff_name': member.display_name,
            'designation': member.designation,
            'total_periods': total,
            'free_periods': max(0, slots_in_day - total),
            'has_conflict': bool(found),
            'conflicting_period_slot_ids': sorted({c['requested_period_slot_id'] for c in found}),
        })
    result.sort(key=lambda row: (row['has_conflict'], row['total_periods'], row['staff_name']))
    return result


def teacher_absence_periods(user, staff_id, on_date) -> List[TimetableEntry]:
    """The published classes a teacher would miss by being absent on ``on_date``."""
    capabilities.require(user, capabilities.SUBSTITUTION_VIEW)
    college = capabilities.require_college(user)
    staff = StaffProfile.objects.select_related('user').filter(pk=staff_id, user__college=college).first()
    if staff is None:
        raise errors.NotFoundError('Staff member not found.', resource='staff', id=staff_id)
    qs = _published_entries(college, staff.pk, day_of_week_for(on_date))
    year = academic_year_for(college, on_date)
    if year is not None:
        qs = qs.filter(timetable__academic_year=year)
    return list(qs.select_related('staff__user'))


# --- writes -----------------------------------------------------------------

@transaction.atomic
def create_substitution(user, data: Patch) -> Substitution:
    capabilities.require(user, capabilities.SUBSTITUTION_CREATE)
    college = capabilities.require_college(user)
    branch = data.get('branch')
    if branch is None or branch.college_id != college.pk:
        raise errors.ValidationError('Branch does not belong to your college.', field='branch_id')
    original = _check_staff(college, data.get('original_staff'), 'original_staff_id')
    substitute = _check_staff(college, data.get('substitute_staff'), 'substitute_staff_id')
    if original.pk == substitute.pk:
        raise errors.ValidationError('A teacher cannot substitute for themselves.', field='substitute_staff_id')
    on_date = data.get('substitution_date')
    if on_date is None:
        raise errors.ValidationError('substitution_date is required.', field='substitution_date')

    periods = _clean_periods(college, branch, original, on_date, list(data.get('periods') or []))
    slots = [p['period_slot'] for p in periods]
    # serialize bookings of the same teachers
    _lock_staff(original.pk, substitute.pk)
    _raise_if_covered(original, on_date, slots)
    _raise_if_busy(college, substitute, on_date, slots)

    try:
        with transaction.atomic():
            substitution = Substitution.objects.create(
                college=college,
                branch=branch,
                original_staff=original,
                substitute_staff=substitute,
                substitution_date=on_date,
                reason=data.get('reason') or '',
                notes=data.get('notes') or '',
                created_by=user,
            )
            SubstitutionPeriod.objects.bulk_create(
                [SubstitutionPeriod(substitution=substitution, **period) for period in periods]
            )
    except IntegrityError:
        logger.warning('substitution create failed original=%s date=%s user=%s', original.pk, on_date, user.pk)
        raise errors.SubstitutionConflict('The substitution clashes with one saved at the same time.')
    logger.info(
        'substitution created id=%s original=%s substitute=%s date=%s periods=%s user=%s',
        substitution.pk, original.pk, substitute.pk, on_date, len(periods), user.pk,
    )
    return substitution


@transaction.atomic
def update_substitution(user, substitution_id, changes: Patch) -> Substitution:
    """Change the substitute, reason, notes, or mark a confirmed substitution completed."""
    capabilities.require(user, capabilities.SUBSTITUTION_UPDATE)
    college = capabilities.require_college(user)
    substitution = _load_substitution(college, substitution_id, for_update=True)

    if 'substitute_staff' in changes:
        _require_status(substitution, (Substitution.Status.PENDING,), 'reassigned')
        substitute = _check_staff(college, changes['substitute_staff'], 'substitute_staff_id')
        if substitute.pk == substitution.original_staff_id:
            raise errors.ValidationError('A teacher cannot substitute for themselves.', field='substitute_staff_id')
        if substitute.pk != substitution.substitute_staff_id:
            slots = [p.period_slot for p in substitution.periods.select_related('period_slot')]
            _lock_staff(substitution.original_staff_id, substitute.pk)
            _raise_if_busy(college, substitute, substitution.substitution_date, slots, substitution.pk)
            substitution.substitute_staff = substitute

    if 'status' in changes:
        new_status = changes['status']
        if new_status != Substitution.Status.COMPLETED:
            raise errors.ValidationError(
                'Use confirm or cancel to change status; only completed may be set here.', field='status',
            )
        _require_status(substitution, (Substitution.Status.CONFIRMED, Substitution.Status.COMPLETED), 'completed')
        substitution.status = new_status

    text = {key: changes[key] or '' for key in TEXT_FIELDS if key in changes}
    apply_patch(substitution, text, TEXT_FIELDS)
    substitution.save()
    return substitution


@transaction.atomic
def confirm_substitution(user, substitution_id) -> Substitution:
    capabilities.require(user, capabilities.SUBSTITUTION_APPROVE)
    substitution = _load_substitution(capabilities.require_college(user), substitution_id, for_update=True)
    _require_status(substitution, (Substitution.Status.PENDING,), 'confirmed')
    substitution.status = Substitution.Status.CONFIRMED
    substitution.approved_by = user
    substitution.approved_at = timezone.now()
    substitution.save(update_fields=['status', 'approved_by', 'approved_at', 'updated_at'])
    logger.info('substitution confirmed id=%s user=%s', substitution.pk, user.pk)
    return substitution


@transaction.atomic
def cancel_substitution(user, substitution_id) -> Substitution:
    capabilities.require(user, capabilities.SUBSTITUTION_APPROVE)
    substitution = _load_substitution(capabilities.require_college(user), substitution_id, for_update=True)
    _require_status(substitution, (Substitution.Status.PENDING, Substitution.Status.CONFIRMED), 'cancelled')
    substitution.status = Substitution.Status.CANCELLED
    substitution.save(update_fields=['status', 'updated_at'])
    logger.info('substitution cancelled id=%s user=%s', substitution.pk, user.pk)
    return substitution


@transaction.atomic
def delete_substitution(user, substitution_id) -> None:
    capabilities.require(user, capabilities.SUBSTITUTION_DELETE)
    substitution = _load_substitution(capabilities.require_college(user), substitution_id, for_update=True)
    _require_status(substitution, (Substitution.Status.PENDING,), 'deleted')
    substitution.delete()
    logger.info('substitution deleted id=%s user=%s', substitution_id, user.pk)
