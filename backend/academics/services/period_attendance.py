"""Per-period student attendance: listing a section's periods for a day,
loading the roster, the full-roster mark, record edits with their audit
trail, and the per-branch attendance settings.
"""
import logging
from typing import Dict, Iterable, List, Optional

from django.conf import settings as django_settings
from django.db import IntegrityError, transaction
from django.db.models import Count
from django.utils import timezone

from academics.models import (
    AttendanceAuditEntry,
    AttendanceSettings,
    AttendanceStatus,
    PeriodAttendanceRecord,
    Section,
    StaffProfile,
)
from academics.services import academic_year_for, current_students
from academics.services.edit_window import EditWindowStatus, evaluate_edit_window
from accounts import capabilities
from schoolerp import exceptions as errors
from schoolerp.patch import Patch
from timetable.models import (
    DayPatternAssignment,
    PeriodSlot,
    Substitution,
    SubstitutionPeriod,
    Timetable,
    TimetableEntry,
    day_of_week_for,
)
from timetable.services.templates import get_branch

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('status', 'remarks', 'late_arrival_time')
SETTINGS_FIELDS = ('edit_window_minutes', 'late_threshold_minutes', 'period_attendance_enabled')
MAX_EDIT_WINDOW_MINUTES = 1440
MAX_LATE_THRESHOLD_MINUTES = 240


def summarize(records: Iterable[PeriodAttendanceRecord]) -> Dict[str, int]:
    summary = {'total': 0, 'present': 0, 'absent': 0, 'late': 0, 'half_day': 0}
    for record in records:
        summary['total'] += 1
        if record.status in summary:
            summary[record.status] += 1
    return summary


def summary_message(summary: Dict[str, int]) -> str:
    return 'Attendance marked: %d present, %d absent, %d late, %d half-day' % (
        summary['present'], summary['absent'], summary['late'], summary['half_day'],
    )


def _load_section(college, section_id) -> Section:
    section = Section.objects.select_related('branch').filter(pk=section_id, branch__college=college).first()
    if section is None:
        raise errors.NotFoundError('Section not found.', resource='section', id=section_id)
    return section


def _branch_settings(branch) -> AttendanceSettings:
    found = AttendanceSettings.objects.filter(branch=branch).first()
    if found is not None:
        return found
    return AttendanceSettings(
        branch=branch,
        edit_window_minutes=getattr(django_settings, 'ATTENDANCE_DEFAULT_EDIT_WINDOW_MINUTES', 120),
    )


def _window_for(user, branch, marked_at, marked_by_id) -> EditWindowStatus:
    return evaluate_edit_window(
        marked_at=marked_at,
        now=timezone.now(),
        window_minutes=_branch_settings(branch).edit_window_minutes,
        is_original_marker=marked_by_id is not None and marked_by_id == user.pk,
        has_override=capabilities.has_capability(user, capabilities.ATTENDANCE_ADMIN_EDIT),
    )


def _published_timetable(section: Section, on_date) -> Optional[Timetable]:
    year = academic_year_for(section.branch.college_id, on_date)
    if year is None:
        return None
    return Timetable.objects.filter(
        section=section, academic_year=year, status=Timetable.Status.PUBLISHED,
    ).first()


def _is_working_day(branch, day: int) -> bool:
    assignment = DayPatternAssignment.objects.filter(branch=branch, day_of_week=day).first()
    return assignment is None or assignment.is_working_day


def _teaching_entries(section: Section, on_date) -> List[TimetableEntry]:
    day = day_of_week_for(on_date)
    if not _is_working_day(section.branch, day):
        return []
    timetable = _published_timetable(section, on_date)
    if timetable is None:
        return []
    return list(
        timetable.entries
        .filter(
            day_of_week=day,
            is_free_period=False,
            period_slot__slot_type__in=PeriodSlot.TEACHING_TYPES,
            period_slot__is_active=True,
        )
        .select_related('period_slot', 'subject', 'staff__user')
        .order_by('period_slot__start_time', 'pk')
    )


def _resolve_entry(section: Section, period_slot_id, on_date) -> TimetableEntry:
    for entry in _teaching_entries(section, on_date):
        if entry.period_slot_id == period_slot_id:
            return entry
    raise errors.ValidationError(
        'This period is not a published teaching period of the section on that date.',
        field='period_id', period_slot_id=period_slot_id,
    )


def _period_records(section: Section, period_slot_id, on_date):
    return (
        PeriodAttendanceRecord.objects
        .filter(section=section, period_slot_id=period_slot_id, date=on_date)
        .select_related('student__user', 'marked_by')
    )


# --- reads ------------------------------------------------------------------

def list_periods(user, section_id, on_date) -> List[dict]:
    capabilities.require(user, capabilities.ATTENDANCE_VIEW_CLASS)
    section = _load_section(capabilities.require_college(user), section_id)
    entries = _teaching_entries(section, on_date)
    if not entries:
        return []

    total_students = len(current_students(section, on_date))
    marked = {}
    for slot_id in (
        PeriodAttendanceRecord.objects
        .filter(section=section, date=on_date, period_slot_id__in=[e.period_slot_id for e in entries])
        .values_list('period_slot_id', flat=True)
    ):
        marked[slot_id] = marked.get(slot_id, 0) + 1

    periods = []
    for entry in entries:
        slot = entry.period_slot
        count = marked.get(slot.pk, 0)
        periods.append({
            'period_slot_id': slot.pk,
            'timetable_entry_id': entry.pk,
            'period_name': slot.name,
            'period_number': slot.period_number,
            'start_time': slot.start_time.strftime('%H:%M'),
            'end_time': slot.end_time.strftime('%H:%M'),
            'subject_id': entry.subject_id,
            'subject_name': entry.subject.name if entry.subject else '',
            'staff_id': entry.staff_id,
            'staff_name': entry.staff.display_name if entry.staff else '',
            'is_marked': count > 0,
            'marked_count': count,
            'total_students': total_students,
        })
    return periods


def _taught_periods(college, staff: StaffProfile, on_date) -> Dict[int, int]:
    """Section id -> number of periods ``staff`` takes there on ``on_date``."""
    counts: Dict[int, int] = {}
    entries = TimetableEntry.objects.filter(
        timetable__college=college,
        timetable__status=Timetable.Status.PUBLISHED,
        staff=staff,
        day_of_week=day_of_week_for(on_date),
        is_free_period=False,
    )
    year = academic_year_for(college, on_date)
    if year is not None:
        entries = entries.filter(timetable__academic_year=year)
    covered = (
        SubstitutionPeriod.objects
        .filter(
            substitution__substitute_staff=staff,
            substitution__substitution_date=on_date,
            section__isnull=False,
        )
        .exclude(substitution__status=Substitution.Status.CANCELLED)
    )
    for section_id in list(entries.values_list('timetable__section_id', flat=True)) + list(
        covered.values_list('section_id', flat=True)
    ):
        counts[section_id] = counts.get(section_id, 0) + 1
    return counts


def teacher_sections(user, on_date, branch_id: Optional[int] = None) -> List[dict]:
    """Sections the caller can mark on ``on_date`` with that day's progress.

    A staff member gets the sections of their published classes that weekday
    plus those they cover as a substitute on the date. Anyone else gets every
    active section of the college that has students.
    """
    capabilities.require(user, capabilities.ATTENDANCE_VIEW_CLASS)
    college = capabilities.require_college(user)
    staff = StaffProfile.objects.filter(user=user).first()
    periods: Dict[int, int] = {}
    if staff is not None:
        periods = _taught_periods(college, staff, on_date)
        sections = Section.objects.filter(pk__in=list(periods), branch__college=college)
    else:
        sections = Section.objects.filter(branch__college=college, is_active=True)
    if branch_id is not None:
        sections = sections.filter(branch_id=branch_id)
    sections = list(sections.select_related('branch').order_by('class_name', 'name'))

    marked = dict(
        PeriodAttendanceRecord.objects
        .filter(section__in=sections, date=on_date)
        .values('section_id')
        .annotate(n=Count('id'))
        .values_list('section_id', 'n')
    )
    rows = []
    for section in sections:
        student_count = len(current_students(section, on_date))
        if staff is None and not student_count:
            continue
        count = marked.get(section.pk, 0)
        rows.append({
            'section_id': section.pk,
            'section_name': section.name,
            'class_name': section.class_name,
            'branch_id': section.branch_id,
            'student_count': student_count,
            'periods_today': periods.get(section.pk, 0),
            'is_marked_today': count > 0,
            'marked_count': count,
        })
    return rows


def get_roster(user, section_id, period_slot_id, on_date) -> dict:
    capabilities.require(user, capabilities.ATTENDANCE_VIEW_CLASS)
    section = _load_section(capabilities.require_college(user), section_id)
    entry = _resolve_entry(section, period_slot_id, on_date)

    records = {r.student_id: r for r in _period_records(section, period_slot_id, on_date)}
    rows = []
    for student in current_students(section, on_date):
        record = records.get(student.pk)
        if record is None:
            record = PeriodAttendanceRecord(
                section=section, student=student, period_slot_id=period_slot_id,
                date=on_date, status=AttendanceStatus.PRESENT, marked_at=None,
            )
        rows.append(record)
    for student_id, record in records.items():
        if all(row.student_id != student_id for row in rows):
            rows.append(record)

    first = min(records.values(), key=lambda r: (r.marked_at, r.pk)) if records else None
    window = _window_for(user, section.branch, first.marked_at, first.marked_by_id) if first else None
    return {
        'section': section,
        'entry': entry,
        'date': on_date,
        'records': rows,
        'is_marked': first is not None,
        'can_edit': window.can_edit if window else True,
        'marked_at': first.marked_at if first else None,
        'marked_by': first.marked_by if first else None,
        'summary': summarize(rows),
    }


# --- marking ----------------------------------------------------------------

def _clean_rows(rows, enrolled: Dict[int, object]) -> Dict[int, dict]:
    if not rows:
        raise errors.ValidationError('students must contain at least one entry.', field='students')
    cleaned = {}
    for row in rows:
        student_id = row.get('student_id')
        if student_id in cleaned:
            raise errors.ValidationError(f'Student {student_id} appears more than once.', field='students', student_id=student_id)
        if student_id not in enrolled:
            raise errors.ValidationError(f'Student {student_id} is not enrolled in this section.', field='students', student_id=student_id)
        status = row.get('status')
        if status not in AttendanceStatus.values:
            raise errors.ValidationError(f"Unknown attendance status '{status}'.", field='status', student_id=student_id)
        cleaned[student_id] = {
            'status': status,
            'remarks': row.get('remarks') or '',
            'late_arrival_time': row.get('late_arrival_time'),
        }
    missing = sorted(set(enrolled) - set(cleaned))
    if missing:
        raise errors.ValidationError(
            f'Attendance must be submitted for every enrolled student; {len(missing)} missing.',
            field='students', missing_student_ids=missing,
        )
    return cleaned


def _snapshot(record: PeriodAttendanceRecord) -> dict:
    return {name: getattr(record, name) for name in EDITABLE_FIELDS}


def _write_edit(record: PeriodAttendanceRecord, changes: dict, reason: str, user) -> AttendanceAuditEntry:
    before = _snapshot(record)
    for name, value in changes.items():
        setattr(record, name, value)
    record.updated_by = user
    record.save()
    return AttendanceAuditEntry.objects.create(
        record=record,
        change_type=AttendanceAuditEntry.ChangeType.EDIT,
        previous_status=before['status'],
        previous_remarks=before['remarks'],
        previous_late_arrival_time=before['late_arrival_time'],
        new_status=record.status,
        new_remarks=record.remarks,
        new_late_arrival_time=record.late_arrival_time,
        change_reason=reason,
        changed_by=user,
    )


@transaction.atomic
def mark_period_attendance(user, section_id, period_slot_id, on_date, rows: List[Patch],
                           reason: Optional[str] = None) -> dict:
    """Record attendance for every enrolled student of one period.

    A repeat submission for a period that is already marked is applied as a
    set of edits when the caller may still edit it, otherwise rejected with
    ``AlreadyMarked``.
    """
    capabilities.require(user, capabilities.ATTENDANCE_MARK_CLASS)
    college = capabilities.require_college(user)
    if on_date > timezone.localdate():
        raise errors.ValidationError('Attendance cannot be marked for a future date.', field='date')
    section = _load_section(college, section_id)
    if not _branch_settings(section.branch).period_attendance_enabled:
        raise errors.ValidationError('Period attendance is disabled for this branch.', branch_id=section.branch_id)
    entry = _resolve_entry(section, period_slot_id, on_date)

    enrolled = {s.pk: s for s in current_students(section, on_date)}
    cleaned = _clean_rows(rows, enrolled)

    existing = {r.student_id: r for r in _period_records(section, period_slot_id, on_date).select_for_update(of=('self',))}
    created = updated = 0
    now = timezone.now()

    if not existing:
        records = [
            PeriodAttendanceRecord(
                college=college, section=section, student=enrolled[student_id],
                period_slot_id=period_slot_id, timetable_entry=entry, date=on_date,
                marked_by=user, marked_at=now, **values
            )
            for student_id, values in cleaned.items()
        ]
        try:
            with transaction.atomic():
                PeriodAttendanceRecord.objects.bulk_create(records)
        except IntegrityError:
            logger.warning('concurrent mark rejected section=%s slot=%s date=%s', section.pk, period_slot_id, on_date)
            raise errors.AlreadyMarked(
                'Attendance for this period was marked by another request.',
                section_id=section.pk, period_slot_id=period_slot_id, date=on_date.isoformat(),
            )
        created = len(records)
    else:
        first = min(existing.values(), key=lambda r: (r.marked_at, r.pk))
        window = _window_for(user, section.branch, first.marked_at, first.marked_by_id)
        if not window.can_edit:
            raise errors.AlreadyMarked(
                'Attendance for this period has already been marked.',
                section_id=section.pk, period_slot_id=period_slot_id, date=on_date.isoformat(),
                marked_at=first.marked_at.isoformat(), edit_denied_reason=window.edit_denied_reason,
            )
        reason = (reason or '').strip()
        if not reason:
            raise errors.ValidationError('A reason is required to change marked attendance.', field='reason')

        for student_id, values in cleaned.items():
            record = existing.get(student_id)
            if record is None:
                record = PeriodAttendanceRecord.objects.create(
                    college=college, section=section, student=enrolled[student_id],
                    period_slot_id=period_slot_id, timetable_entry=entry, date=on_date,
                    marked_by=user, marked_at=now, **values
                )
                AttendanceAuditEntry.objects.create(
                    record=record,
                    change_type=AttendanceAuditEntry.ChangeType.CREATE,
                    new_status=record.status,
                    new_remarks=record.remarks,
                    new_late_arrival_time=record.late_arrival_time,
                    change_reason=reason,
                    changed_by=user,
                )
                created += 1
                continue
            changes = {name: value for name, value in values.items() if getattr(record, name) != value}
            if changes:
                _write_edit(record, changes, reason, user)
                updated += 1

    summary = summarize(_period_records(section, period_slot_id, on_date))
    logger.info(
        'period attendance marked section=%s slot=%s date=%s created=%s updated=%s user=%s',
        section.pk, period_slot_id, on_date, created, updated, user.pk,
    )
    return {
        'section_id': section.pk,
        'period_slot_id': period_slot_id,
        'date': on_date,
        'created': created,
        'updated': updated,
        'summary': summary,
        'message': summary_message(summary),
    }


# --- edits and audit --------------------------------------------------------

def _load_record(college, record_id, for_update: bool = False) -> PeriodAttendanceRecord:
    qs = PeriodAttendanceRecord.objects.filter(pk=record_id, college=college)
    if for_update:
        qs = qs.select_for_update()
    record = qs.first()
    if record is None:
        raise errors.NotFoundError('Attendance record not found.', resource='attendance', id=record_id)
    return record


@transaction.atomic
def edit_attendance(user, record_id, changes: Patch) -> PeriodAttendanceRecord:
    capabilities.require(user, capabilities.ATTENDANCE_MARK_CLASS)
    college = capabilities.require_college(user)
    reason = (changes.get('reason') or '').strip()
    if not reason:
        raise errors.ValidationError('A reason is required to edit attendance.', field='reason')
    fields = {name: changes[name] for name in EDITABLE_FIELDS if name in changes}
    if not fields:
        raise errors.ValidationError('Supply at least one of status, remarks or late_arrival_time.')
    if 'status' in fields and fields['status'] not in AttendanceStatus.values:
        raise errors.ValidationError(f"Unknown attendance status '{fields['status']}'.", field='status')
    if 'remarks' in fields and fields['remarks'] is None:
        fields['remarks'] = ''

    record = _load_record(college, record_id, for_update=True)
    window = _window_for(user, record.section.branch, record.marked_at, record.marked_by_id)
    if not window.can_edit:
        logger.info('attendance edit denied record=%s user=%s reason=%s', record.pk, user.pk, window.edit_denied_reason)
        if not window.is_within_window:
            raise errors.EditWindowExpired(
                f'The {window.window_minutes}-minute edit window for this record has expired.',
                elapsed_minutes=window.elapsed_minutes, window_minutes=window.window_minutes,
            )
        raise errors.PermissionDenied('Only the teacher who marked this attendance may edit it.')

    entry = _write_edit(record, fields, reason, user)
    logger.info(
        'attendance edited record=%s %s->%s user=%s',
        record.pk, entry.previous_status, entry.new_status, user.pk,
    )
    return record


def attendance_history(user, record_id) -> dict:
    capabilities.require(user, capabilities.ATTENDANCE_VIEW_CLASS)
    record = _load_record(capabilities.require_college(user), record_id)
    entries = list(record.audit_entries.select_related('changed_by'))
    return {
        'attendance_id': record.pk,
        'student_id': record.student_id,
        'student_name': record.student.display_name,
        'date': record.date,
        'entries': entries,
        'total_changes': len(entries),
    }


def edit_status(user, record_id) -> EditWindowStatus:
    capabilities.require(user, capabilities.ATTENDANCE_VIEW_CLASS)
    record = _load_record(capabilities.require_college(user), record_id)
    return _window_for(user, record.section.branch, record.marked_at, record.marked_by_id)


# --- settings ---------------------------------------------------------------

def get_settings(user, branch_id) -> AttendanceSettings:
    capabilities.require(user, capabilities.ATTENDANCE_VIEW_CLASS)
    return _branch_settings(get_branch(capabilities.require_college(user), branch_id))


@transaction.atomic
def update_settings(user, branch_id, changes: Patch) -> AttendanceSettings:
    capabilities.require(user, capabilities.ATTENDANCE_MANAGE_SETTINGS)
    branch = get_branch(capabilities.require_college(user), branch_id)
    window = changes.get('edit_window_minutes')
    if window is not None and not 0 <= window <= MAX_EDIT_WINDOW_MINUTES:
        raise errors.ValidationError(
            f'edit_window_minutes must be between 0 and {MAX_EDIT_WINDOW_MINUTES}.', field='edit_window_minutes',
        )
    threshold = changes.get('late_threshold_minutes')
    if threshold is not None and not 0 <= threshold <= MAX_LATE_THRESHOLD_MINUTES:
        raise errors.ValidationError(
            f'late_threshold_minutes must be between 0 and {MAX_LATE_THRESHOLD_MINUTES}.', field='late_threshold_minutes',
        )

    current, _ = AttendanceSettings.objects.select_for_update().get_or_create(
        branch=branch,
        defaults={'edit_window_minutes': getattr(django_settings, 'ATTENDANCE_DEFAULT_EDIT_WINDOW_MINUTES', 120)},
    )
    for name in SETTINGS_FIELDS:
        if changes.get(name) is not None:
            setattr(current, name, changes[name])
    current.updated_by = user
    current.save()
    logger.info('attendance settings updated branch=%s window=%s user=%s', branch.pk, current.edit_window_minutes, user.pk)
    return current
