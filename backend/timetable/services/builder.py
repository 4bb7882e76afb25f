"""Timetable builder: draft editing, entry upserts and the publish/archive
lifecycle.

Publishing is one unit of work: validate every entry, lock the teachers
being booked, re-run the conflict check against the other published
timetables of the college, archive the section-year's current timetable and
publish this one. The partial unique constraint on
``(section, academic_year) WHERE status = 'published'`` decides races between
concurrent publishes.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.utils import timezone

from academics.models import AcademicYear, Section, StaffProfile
from academics.services import has_active_teaching_assignment
from accounts import capabilities
from schoolerp import exceptions as errors
from schoolerp.patch import Patch, apply_patch
from timetable.models import DAY_NAMES, PeriodSlot, Timetable, TimetableEntry
from timetable.services import conflicts
from timetable.services.templates import validate_day_of_week

logger = logging.getLogger(__name__)

TIMETABLE_FIELDS = ('name', 'description', 'effective_from', 'effective_to')
ENTRY_FIELDS = ('subject', 'staff', 'room_number', 'notes', 'is_free_period')


def _load_timetable(college, timetable_id, for_update: bool = False) -> Timetable:
    qs = Timetable.objects.select_related('section', 'academic_year', 'branch')
    if for_update:
        qs = qs.select_for_update(of=('self',))
    timetable = qs.filter(pk=timetable_id, college=college).first()
    if timetable is None:
        raise errors.NotFoundError('Timetable not found.', resource='timetable', id=timetable_id)
    return timetable


def _require_draft(timetable: Timetable, action: str) -> None:
    if not timetable.is_draft:
        raise errors.InvalidStateTransition(
            f'Only draft timetables can be {action}; this one is {timetable.status}.',
            status_value=timetable.status,
        )


def _check_effective_range(effective_from, effective_to) -> None:
    if effective_from and effective_to and effective_from > effective_to:
        raise errors.ValidationError('effective_from must not be after effective_to.', field='effective_to')


def list_timetables(user, branch_id: Optional[int] = None, section_id: Optional[int] = None,
                    academic_year_id: Optional[int] = None, status: Optional[str] = None):
    capabilities.require(user, capabilities.TIMETABLES_READ)
    college = capabilities.require_college(user)
    qs = Timetable.objects.filter(college=college).select_related('section', 'academic_year', 'branch')
    if branch_id is not None:
        qs = qs.filter(branch_id=branch_id)
    if section_id is not None:
        qs = qs.filter(section_id=section_id)
    if academic_year_id is not None:
        qs = qs.filter(academic_year_id=academic_year_id)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_timetable(user, timetable_id) -> Timetable:
    capabilities.require(user, capabilities.TIMETABLES_READ)
    return _load_timetable(capabilities.require_college(user), timetable_id)


def create_timetable(user, data: Patch) -> Timetable:
    capabilities.require(user, capabilities.TIMETABLES_CREATE)
    college = capabilities.require_college(user)
    section: Section = data.get('section')
    academic_year: AcademicYear = data.get('academic_year')
    if section is None or section.branch.college_id != college.pk:
        raise errors.ValidationError('Section does not belong to your college.', field='section_id')
    if academic_year is None or academic_year.college_id != college.pk:
        raise errors.ValidationError('Academic year does not belong to your college.', field='academic_year_id')
    _check_effective_range(data.get('effective_from'), data.get('effective_to'))

    timetable = Timetable.objects.create(
        college=college,
        branch=section.branch,
        section=section,
        academic_year=academic_year,
        name=data.get('name'),
        description=data.get('description') or '',
        effective_from=data.get('effective_from'),
        effective_to=data.get('effective_to'),
        created_by=user,
        updated_by=user,
    )
    logger.info('timetable created id=%s section=%s year=%s user=%s', timetable.pk, section.pk, academic_year.pk, user.pk)
    return timetable


@transaction.atomic
def update_timetable(user, timetable_id, changes: Patch) -> Timetable:
    capabilities.require(user, capabilities.TIMETABLES_UPDATE)
    timetable = _load_timetable(capabilities.require_college(user), timetable_id, for_update=True)
    _require_draft(timetable, 'edited')
    for key, field in (('section', 'section_id'), ('academic_year', 'academic_year_id')):
        if key in changes:
            raise errors.ValidationError(
                f'{field} cannot be changed; create a new timetable for another section or year.',
                field=field,
            )
    changes = dict(changes)
    if 'description' in changes and changes['description'] is None:
        changes['description'] = ''
    apply_patch(timetable, changes, TIMETABLE_FIELDS)
    _check_effective_range(timetable.effective_from, timetable.effective_to)
    timetable.updated_by = user
    timetable.save()
    return timetable


@transaction.atomic
def delete_timetable(user, timetable_id) -> None:
    capabilities.require(user, capabilities.TIMETABLES_DELETE)
    timetable = _load_timetable(capabilities.require_college(user), timetable_id, for_update=True)
    _require_draft(timetable, 'deleted')
    timetable.delete()
    logger.info('timetable deleted id=%s user=%s', timetable_id, user.pk)


# --- entries ----------------------------------------------------------------

def list_entries(user, timetable_id) -> Tuple[Timetable, List[TimetableEntry]]:
    capabilities.require(user, capabilities.TIMETABLES_READ)
    timetable = _load_timetable(capabilities.require_college(user), timetable_id)
    entries = list(
        timetable.entries
        .select_related('period_slot', 'subject', 'staff__user')
        .order_by('day_of_week', 'period_slot__start_time', 'pk')
    )
    return timetable, entries


def _clean_entry_row(college, timetable: Timetable, row: Patch) -> Dict:
    day = validate_day_of_week(row.get('day_of_week'))
    slot: PeriodSlot = row.get('period_slot')
    if slot is None:
        raise errors.ValidationError('period_slot_id is required.', field='period_slot_id')
    if slot.branch_id != timetable.branch_id:
        raise errors.ValidationError(
            f"Period slot '{slot.name}' belongs to a different branch.",
            field='period_slot_id', period_slot_id=slot.pk,
        )
    subject = row.get('subject')
    if subject is not None and subject.college_id != college.pk:
        raise errors.ValidationError('Subject does not belong to your college.', field='subject_id')
    staff = row.get('staff')
    if staff is not None and staff.user.college_id != college.pk:
        raise errors.ValidationError('Staff member does not belong to your college.', field='staff_id')

    cleaned = {key: row[key] for key in ENTRY_FIELDS if key in row}
    if 'is_free_period' not in cleaned and (subject is not None or staff is not None):
        # booking a subject or teacher turns a free period into a teaching one
        cleaned['is_free_period'] = False
    if cleaned.get('is_free_period'):
        cleaned['subject'] = None
        cleaned['staff'] = None
    for text_field in ('room_number', 'notes'):
        if text_field in cleaned and cleaned[text_field] is None:
            cleaned[text_field] = ''
    return {'day_of_week': day, 'period_slot': slot, 'changes': cleaned}


def _advisory_conflicts(college, timetable: Timetable, entry: TimetableEntry) -> List[dict]:
    if entry.is_free_period or entry.staff_id is None:
        return []
    found = conflicts.find_conflicts(
        college, entry.staff_id, entry.day_of_week, entry.period_slot, exclude_timetable_id=timetable.pk,
    )
    return [c.as_dict() for c in found]


def _upsert_row(timetable: Timetable, cleaned: Dict) -> Tuple[TimetableEntry, bool]:
    entry = (
        TimetableEntry.objects.select_for_update()
        .filter(timetable=timetable, day_of_week=cleaned['day_of_week'], period_slot=cleaned['period_slot'])
        .first()
    )
    created = entry is None
    if created:
        entry = TimetableEntry(timetable=timetable, day_of_week=cleaned['day_of_week'], period_slot=cleaned['period_slot'])
    apply_patch(entry, cleaned['changes'], ENTRY_FIELDS)
    entry.save()
    return entry, created


def _touch(timetable: Timetable, user) -> None:
    timetable.updated_by = user
    timetable.save(update_fields=['updated_by', 'updated_at'])


@transaction.atomic
def upsert_entry(user, timetable_id, row: Patch) -> Tuple[TimetableEntry, bool, List[dict]]:
    """Create or replace the entry at (day_of_week, period_slot).

    Returns the entry, whether it was created, and advisory conflict
    warnings; conflicts never block a draft write.
    """
    capabilities.require(user, capabilities.TIMETABLES_UPDATE)
    college = capabilities.require_college(user)
    timetable = _load_timetable(college, timetable_id, for_update=True)
    _require_draft(timetable, 'edited')
    cleaned = _clean_entry_row(college, timetable, row)
    entry, created = _upsert_row(timetable, cleaned)
    _touch(timetable, user)
    return entry, created, _advisory_conflicts(college, timetable, entry)


@transaction.atomic
def bulk_upsert_entries(user, timetable_id, rows: Iterable[Patch]) -> Dict:
    """Replace-or-insert every (day_of_week, period_slot) row in one transaction.

    Entries of the timetable that are not in ``rows`` are left as they are.
    """
    capabilities.require(user, capabilities.TIMETABLES_UPDATE)
    college = capabilities.require_college(user)
    timetable = _load_timetable(college, timetable_id, for_update=True)
    _require_draft(timetable, 'edited')

    cleaned_rows = [_clean_entry_row(college, timetable, row) for row in rows]
    if not cleaned_rows:
        raise errors.ValidationError('entries must contain at least one row.', field='entries')
    seen = set()
    for cleaned in cleaned_rows:
        key = (cleaned['day_of_week'], cleaned['period_slot'].pk)
        if key in seen:
            raise errors.ValidationError(
                f"Duplicate entry for {DAY_NAMES[key[0]]} / {cleaned['period_slot'].name}.",
                field='entries', day_of_week=key[0], period_slot_id=key[1],
            )
        seen.add(key)

    saved, created_count, warnings = [], 0, []
    for cleaned in cleaned_rows:
        entry, created = _upsert_row(timetable, cleaned)
        saved.append(entry)
        created_count += int(created)
        warnings.extend(_advisory_conflicts(college, timetable, entry))
    _touch(timetable, user)
    logger.info(
        'timetable entries upserted timetable=%s created=%s updated=%s user=%s',
        timetable.pk, created_count, len(saved) - created_count, user.pk,
    )
    return {
        'entries': saved,
        'created': created_count,
        'updated': len(saved) - created_count,
        'warnings': warnings,
    }


@transaction.atomic
def delete_entry(user, timetable_id, entry_id) -> None:
    capabilities.require(user, capabilities.TIMETABLES_UPDATE)
    timetable = _load_timetable(capabilities.require_college(user), timetable_id, for_update=True)
    _require_draft(timetable, 'edited')
    deleted, _ = TimetableEntry.objects.filter(pk=entry_id, timetable=timetable).delete()
    if not deleted:
        raise errors.NotFoundError('Timetable entry not found.', resource='timetable_entry', id=entry_id)
    _touch(timetable, user)


# --- publish / archive ------------------------------------------------------

def _invalid_entries(timetable: Timetable, entries: List[TimetableEntry]) -> List[dict]:
    problems = []
    for entry in entries:
        reason = None
        slot = entry.period_slot
        if slot.branch_id != timetable.branch_id:
            reason = 'period slot belongs to a different branch'
        elif not slot.is_active:
            reason = 'period slot is inactive'
        elif entry.is_free_period:
            continue
        elif entry.subject_id is None:
            reason = 'entry has no subject and is not a free period'
        elif entry.staff_id is not None and not has_active_teaching_assignment(
            entry.staff_id, entry.subject_id, timetable.section_id, timetable.academic_year_id,
        ):
            reason = 'teacher has no active teaching assignment for this subject and section'
        if reason:
            problems.append({
                'entry_id': entry.pk,
                'day_of_week': entry.day_of_week,
                'day_name': DAY_NAMES.get(entry.day_of_week),
                'period_slot_id': slot.pk,
                'period_name': slot.name,
                'reason': reason,
            })
    return problems


def _internal_clashes(entries: List[TimetableEntry]) -> List[Tuple[TimetableEntry, TimetableEntry]]:
    """Pairs of entries of one timetable that book a teacher twice at once."""
    clashes = []
    booked = [e for e in entries if e.staff_id is not None and not e.is_free_period]
    for i, first in enumerate(booked):
        for second in booked[i + 1:]:
            if (
                first.staff_id == second.staff_id
                and first.day_of_week == second.day_of_week
                and conflicts.ranges_overlap(
                    first.period_slot.start_time, first.period_slot.end_time,
                    second.period_slot.start_time, second.period_slot.end_time,
                )
            ):
                clashes.append((first, second))
    return clashes


def check_publishable(college, timetable: Timetable, entries: List[TimetableEntry]) -> None:
    """Raise if the timetable cannot be published as it stands."""
    problems = _invalid_entries(timetable, entries)
    if problems:
        raise errors.ValidationError(
            f'{len(problems)} timetable entr{"y is" if len(problems) == 1 else "ies are"} invalid.',
            invalid_entries=problems,
        )

    clashes = _internal_clashes(entries)
    if clashes:
        first, second = clashes[0]
        raise errors.ScheduleConflict(
            f"{first.staff.display_name} is booked twice on {DAY_NAMES[first.day_of_week]} "
            f"({first.period_slot.name} and {second.period_slot.name}).",
            conflicts=[],
        )

    # the section-year's current timetable is archived by this publish
    superseded = set(
        Timetable.objects
        .filter(
            section_id=timetable.section_id,
            academic_year_id=timetable.academic_year_id,
            status=Timetable.Status.PUBLISHED,
        )
        .values_list('pk', flat=True)
    )
    found = []
    for entry in entries:
        if entry.is_free_period or entry.staff_id is None:
            continue
        for conflict in conflicts.find_conflicts(
            college, entry.staff_id, entry.day_of_week, entry.period_slot, exclude_timetable_id=timetable.pk,
        ):
            if conflict.timetable_id not in superseded:
                found.append((entry, conflict))
    if found:
        entry, conflict = found[0]
        raise errors.ScheduleConflict(
            f"Cannot publish: {conflict.describe()}; requested for {DAY_NAMES[entry.day_of_week]} "
            f"{entry.period_slot.name}.",
            conflicts=[dict(c.as_dict(), requested_entry_id=e.pk) for e, c in found],
        )


def archive_superseded(timetable: Timetable, user) -> int:
    """Archive whatever is currently published for the timetable's section-year."""
    return (
        Timetable.objects
        .filter(
            section_id=timetable.section_id,
            academic_year_id=timetable.academic_year_id,
            status=Timetable.Status.PUBLISHED,
        )
        .exclude(pk=timetable.pk)
        .update(status=Timetable.Status.ARCHIVED, updated_by=user, updated_at=timezone.now())
    )


def publish_timetable(user, timetable_id) -> Timetable:
    capabilities.require(user, capabilities.TIMETABLES_PUBLISH)
    college = capabilities.require_college(user)
    try:
        with transaction.atomic():
            timetable = _load_timetable(college, timetable_id, for_update=True)
            if timetable.status == Timetable.Status.PUBLISHED:
                raise errors.InvalidStateTransition('Timetable is already published.', status_value=timetable.status)
            _require_draft(timetable, 'published')

            entries = list(
                timetable.entries
                .select_related('period_slot', 'subject', 'staff__user')
                .order_by('day_of_week', 'period_slot__start_time', 'pk')
            )
            staff_ids = sorted({e.staff_id for e in entries if e.staff_id is not None and not e.is_free_period})
            # serialize publishes that book the same teachers
            list(StaffProfile.objects.select_for_update().filter(pk__in=staff_ids).order_by('pk').values_list('pk', flat=True))
            list(
                Timetable.objects.select_for_update()
                .filter(section_id=timetable.section_id, academic_year_id=timetable.academic_year_id)
                .order_by('pk')
                .values_list('pk', flat=True)
            )

            check_publishable(college, timetable, entries)

            archived = archive_superseded(timetable, user)
            timetable.status = Timetable.Status.PUBLISHED
            timetable.published_at = timezone.now()
            timetable.published_by = user
            timetable.updated_by = user
            timetable.save(update_fields=['status', 'published_at', 'published_by', 'updated_by', 'updated_at'])
    except IntegrityError:
        logger.warning('publish lost race timetable=%s user=%s', timetable_id, user.pk)
        raise errors.ConflictError(
            'Another timetable was published for this section and academic year at the same time.',
            timetable_id=timetable_id,
        )
    logger.info(
        'timetable published id=%s section=%s year=%s archived=%s user=%s',
        timetable.pk, timetable.section_id, timetable.academic_year_id, archived, user.pk,
    )
    return timetable


@transaction.atomic
def archive_timetable(user, timetable_id) -> Timetable:
    capabilities.require(user, capabilities.TIMETABLES_PUBLISH)
    timetable = _load_timetable(capabilities.require_college(user), timetable_id, for_update=True)
    if timetable.status == Timetable.Status.ARCHIVED:
        raise errors.InvalidStateTransition('Timetable is already archived.', status_value=timetable.status)
    timetable.status = Timetable.Status.ARCHIVED
    timetable.updated_by = user
    timetable.save(update_fields=['status', 'updated_by', 'updated_at'])
    logger.info('timetable archived id=%s user=%s', timetable.pk, user.pk)
    return timetable


# --- read models ------------------------------------------------------------

def _academic_year_for(college, academic_year_id: Optional[int]) -> Optional[AcademicYear]:
    if academic_year_id is not None:
        year = AcademicYear.objects.filter(pk=academic_year_id, college=college).first()
        if year is None:
            raise errors.NotFoundError('Academic year not found.', resource='academic_year', id=academic_year_id)
        return year
    today = timezone.localdate()
    return (
        AcademicYear.objects.filter(college=college, start_date__lte=today, end_date__gte=today).first()
        or AcademicYear.objects.filter(college=college, is_active=True).first()
    )


def conflicts_for(user, staff_id: int, day_of_week, period_slot_id: int,
                  exclude_timetable_id: Optional[int] = None) -> List[conflicts.TeacherConflict]:
    capabilities.require(user, capabilities.TIMETABLES_READ)
    college = capabilities.require_college(user)
    day = validate_day_of_week(day_of_week)
    slot = PeriodSlot.objects.filter(pk=period_slot_id, branch__college=college).first()
    if slot is None:
        raise errors.NotFoundError('Period slot not found.', resource='period_slot', id=period_slot_id)
    return conflicts.find_conflicts(college, staff_id, day, slot, exclude_timetable_id=exclude_timetable_id)


def section_timetable(user, section_id, academic_year_id: Optional[int] = None) -> Tuple[Timetable, List[TimetableEntry]]:
    """The published timetable of a section with its entries."""
    capabilities.require(user, capabilities.TIMETABLES_READ)
    college = capabilities.require_college(user)
    section = Section.objects.filter(pk=section_id, branch__college=college).first()
    if section is None:
        raise errors.NotFoundError('Section not found.', resource='section', id=section_id)
    year = _academic_year_for(college, academic_year_id)
    qs = Timetable.objects.filter(section=section, status=Timetable.Status.PUBLISHED)
    if year is not None:
        qs = qs.filter(academic_year=year)
    timetable = qs.select_related('section', 'academic_year', 'branch').order_by('-published_at').first()
    if timetable is None:
        raise errors.NotFoundError('No published timetable for this section.', resource='timetable', section_id=section.pk)
    entries = list(
        timetable.entries
        .select_related('period_slot', 'subject', 'staff__user')
        .order_by('day_of_week', 'period_slot__start_time', 'pk')
    )
    return timetable, entries


def teacher_schedule(user, staff_id, academic_year_id: Optional[int] = None) -> Tuple[StaffProfile, List[TimetableEntry]]:
    """Every published entry a staff member teaches, ordered by day and time."""
    capabilities.require(user, capabilities.TIMETABLES_READ)
    college = capabilities.require_college(user)
    staff = StaffProfile.objects.select_related('user').filter(pk=staff_id, user__college=college).first()
    if staff is None:
        raise errors.NotFoundError('Staff member not found.', resource='staff', id=staff_id)
    qs = TimetableEntry.objects.filter(
        staff=staff,
        is_free_period=False,
        timetable__college=college,
        timetable__status=Timetable.Status.PUBLISHED,
    )
    if academic_year_id is not None:
        qs = qs.filter(timetable__academic_year_id=academic_year_id)
    entries = list(
        qs.select_related('period_slot', 'subject', 'timetable__section', 'staff__user')
        .order_by('day_of_week', 'period_slot__start_time', 'pk')
    )
    return staff, entries
