import datetime

from django.core.exceptions import ValidationError as ModelValidationError
from django.test import TestCase
from django.utils import timezone

from academics.models import AttendanceAuditEntry, AttendanceSettings, PeriodAttendanceRecord
from academics.services import period_attendance
from accounts import capabilities as caps
from schoolerp import exceptions as errors
from timetable.models import DayPatternAssignment, Substitution, SubstitutionPeriod, Timetable
from timetable.tests import factories

# a Friday inside the 2024-25 academic year
DAY = datetime.date(2025, 1, 10)
FRIDAY = 5

MARKER_CAPS = [caps.ATTENDANCE_VIEW_CLASS, caps.ATTENDANCE_MARK_CLASS]


class AttendanceFixture:
    def setUp(self):
        self.college = factories.make_college()
        self.branch = factories.main_branch(self.college)
        self.year = factories.make_year(self.college)
        self.section = factories.make_section(self.branch)
        self.subject = factories.make_subject(self.college)
        self.teacher = factories.make_staff(self.college, 'xavier', first_name='Xavier')
        self.p1 = factories.make_slot(self.branch, 'P1', datetime.time(9, 0), datetime.time(9, 45))
        timetable = factories.make_timetable(self.section, self.year, status=Timetable.Status.PUBLISHED)
        factories.add_entry(timetable, FRIDAY, self.p1, self.subject, self.teacher)

        self.students = [
            factories.make_student(self.college, self.section, 'S001', 'Asha'),
            factories.make_student(self.college, self.section, 'S002', 'Bala'),
            factories.make_student(self.college, self.section, 'S003', 'Chitra'),
        ]
        self.marker = factories.make_user('marker', self.college, MARKER_CAPS)
        self.other_marker = factories.make_user('other', self.college, MARKER_CAPS)
        self.admin = factories.make_user('admin', self.college, MARKER_CAPS + [
            caps.ATTENDANCE_ADMIN_EDIT, caps.ATTENDANCE_MANAGE_SETTINGS,
        ])

    def _rows(self, status='present', **overrides):
        return [
            {'student_id': s.pk, 'status': overrides.get(s.reg_no, status)}
            for s in self.students
        ]

    def _mark(self, user=None, rows=None, reason=None, on_date=DAY):
        return period_attendance.mark_period_attendance(
            user or self.marker, self.section.pk, self.p1.pk, on_date,
            self._rows() if rows is None else rows, reason=reason,
        )

    def _record(self, student):
        return PeriodAttendanceRecord.objects.get(student=student, period_slot=self.p1, date=DAY)


class PeriodAttendanceTests(AttendanceFixture, TestCase):
    def test_list_periods(self):
        periods = period_attendance.list_periods(self.marker, self.section.pk, DAY)
        self.assertEqual(len(periods), 1)
        self.assertEqual(periods[0]['period_slot_id'], self.p1.pk)
        self.assertEqual(periods[0]['total_students'], 3)
        self.assertFalse(periods[0]['is_marked'])

        self._mark()
        periods = period_attendance.list_periods(self.marker, self.section.pk, DAY)
        self.assertTrue(periods[0]['is_marked'])
        self.assertEqual(periods[0]['marked_count'], 3)

    def test_no_periods_on_other_weekday_or_holiday(self):
        self.assertEqual(period_attendance.list_periods(self.marker, self.section.pk, DAY - datetime.timedelta(days=1)), [])
        DayPatternAssignment.objects.create(branch=self.branch, day_of_week=FRIDAY, is_working_day=False)
        self.assertEqual(period_attendance.list_periods(self.marker, self.section.pk, DAY), [])

    def test_unmarked_roster_defaults_to_present(self):
        roster = period_attendance.get_roster(self.marker, self.section.pk, self.p1.pk, DAY)
        self.assertFalse(roster['is_marked'])
        self.assertTrue(roster['can_edit'])
        self.assertEqual(len(roster['records']), 3)
        self.assertTrue(all(r.pk is None for r in roster['records']))
        self.assertEqual(roster['summary'], {'total': 3, 'present': 3, 'absent': 0, 'late': 0, 'half_day': 0})

    def test_first_mark_creates_one_record_per_student(self):
        result = self._mark(rows=self._rows(S003='late'))
        self.assertEqual(result['created'], 3)
        self.assertEqual(result['summary']['present'], 2)
        self.assertEqual(result['summary']['late'], 1)
        self.assertEqual(result['message'], 'Attendance marked: 2 present, 0 absent, 1 late, 0 half-day')
        self.assertEqual(PeriodAttendanceRecord.objects.filter(section=self.section, date=DAY).count(), 3)
        self.assertEqual(AttendanceAuditEntry.objects.count(), 0)
        record = self._record(self.students[0])
        self.assertEqual(record.marked_by, self.marker)
        self.assertEqual(record.college, self.college)

    def test_mark_then_edit_scenario(self):
        self._mark()
        record = self._record(self.students[1])
        period_attendance.edit_attendance(self.marker, record.pk, {'status': 'absent', 'reason': 'left early'})

        roster = period_attendance.get_roster(self.marker, self.section.pk, self.p1.pk, DAY)
        self.assertEqual(roster['summary']['present'], 2)
        self.assertEqual(roster['summary']['absent'], 1)

        history = period_attendance.attendance_history(self.marker, record.pk)
        self.assertEqual(history['total_changes'], 1)
        entry = history['entries'][0]
        self.assertEqual(entry.change_type, AttendanceAuditEntry.ChangeType.EDIT)
        self.assertEqual(entry.previous_status, 'present')
        self.assertEqual(entry.new_status, 'absent')
        self.assertEqual(entry.change_reason, 'left early')
        self.assertEqual(entry.changed_by, self.marker)

    def test_remark_without_edit_rights_is_rejected(self):
        self._mark()
        before = list(PeriodAttendanceRecord.objects.order_by('pk').values_list('pk', 'status', 'updated_at'))
        with self.assertRaises(errors.AlreadyMarked):
            self._mark(user=self.other_marker, rows=self._rows('absent'), reason='retake')
        after = list(PeriodAttendanceRecord.objects.order_by('pk').values_list('pk', 'status', 'updated_at'))
        self.assertEqual(before, after)
        self.assertEqual(AttendanceAuditEntry.objects.count(), 0)

    def test_remark_by_original_marker_is_audited(self):
        self._mark()
        late_joiner = factories.make_student(self.college, self.section, 'S004', 'Dev')
        self.students.append(late_joiner)

        result = self._mark(rows=self._rows(S001='absent'), reason='corrected roll call')
        self.assertEqual(result['created'], 1)
        self.assertEqual(result['updated'], 1)

        edited = self._record(self.students[0])
        self.assertEqual(edited.status, 'absent')
        self.assertEqual(edited.audit_entries.get().change_type, AttendanceAuditEntry.ChangeType.EDIT)
        created = self._record(late_joiner)
        self.assertEqual(created.audit_entries.get().change_type, AttendanceAuditEntry.ChangeType.CREATE)
        self.assertEqual(self._record(self.students[1]).audit_entries.count(), 0)

    def test_remark_requires_reason(self):
        self._mark()
        with self.assertRaises(errors.ValidationError):
            self._mark(rows=self._rows('absent'))

    def test_payload_must_cover_enrolled_students(self):
        with self.assertRaises(errors.ValidationError):
            self._mark(rows=self._rows()[:2])

        outsider = factories.make_student(self.college, factories.make_section(self.branch, name='B'), 'S900')
        with self.assertRaises(errors.ValidationError):
            self._mark(rows=self._rows() + [{'student_id': outsider.pk, 'status': 'present'}])

        rows = self._rows()
        with self.assertRaises(errors.ValidationError):
            self._mark(rows=rows + [rows[0]])

        with self.assertRaises(errors.ValidationError):
            self._mark(rows=self._rows('on_leave'))
        self.assertFalse(PeriodAttendanceRecord.objects.exists())

    def test_future_date_rejected(self):
        with self.assertRaises(errors.ValidationError):
            self._mark(on_date=timezone.localdate() + datetime.timedelta(days=7))

    def test_period_must_be_scheduled_that_day(self):
        with self.assertRaises(errors.ValidationError):
            self._mark(on_date=DAY - datetime.timedelta(days=1))

    def test_disabled_branch_rejects_marking(self):
        AttendanceSettings.objects.create(branch=self.branch, period_attendance_enabled=False)
        with self.assertRaises(errors.ValidationError):
            self._mark()

    def test_mark_needs_capability(self):
        viewer = factories.make_user('viewer', self.college, [caps.ATTENDANCE_VIEW_CLASS])
        with self.assertRaises(errors.PermissionDenied):
            self._mark(user=viewer)


class MyClassesTests(AttendanceFixture, TestCase):
    def setUp(self):
        super().setUp()
        self.yamini = factories.make_staff(self.college, 'yamini', first_name='Yamini', capabilities=MARKER_CAPS)
        self.section_b = factories.make_section(self.branch, name='B')
        factories.make_student(self.college, self.section_b, 'S101')
        p2 = factories.make_slot(self.branch, 'P2', datetime.time(9, 45), datetime.time(10, 30), period_number=2)
        timetable_b = factories.make_timetable(self.section_b, self.year, status=Timetable.Status.PUBLISHED)
        factories.add_entry(timetable_b, FRIDAY, p2, self.subject, self.yamini)

    def _cover_section_a(self):
        substitution = Substitution.objects.create(
            college=self.college, branch=self.branch, original_staff=self.teacher,
            substitute_staff=self.yamini, substitution_date=DAY,
        )
        SubstitutionPeriod.objects.create(
            substitution=substitution, period_slot=self.p1, section=self.section, subject=self.subject,
        )
        return substitution

    def test_staff_sees_taught_and_covered_sections(self):
        substitution = self._cover_section_a()
        self._mark()
        rows = {r['section_id']: r for r in period_attendance.teacher_sections(self.yamini.user, DAY)}
        self.assertEqual(set(rows), {self.section.pk, self.section_b.pk})
        self.assertTrue(rows[self.section.pk]['is_marked_today'])
        self.assertEqual(rows[self.section.pk]['marked_count'], 3)
        self.assertEqual(rows[self.section.pk]['student_count'], 3)
        self.assertEqual(rows[self.section.pk]['periods_today'], 1)
        self.assertFalse(rows[self.section_b.pk]['is_marked_today'])
        self.assertEqual(rows[self.section_b.pk]['student_count'], 1)

        substitution.status = Substitution.Status.CANCELLED
        substitution.save()
        rows = period_attendance.teacher_sections(self.yamini.user, DAY)
        self.assertEqual([r['section_id'] for r in rows], [self.section_b.pk])

    def test_staff_without_classes_that_day(self):
        saturday = DAY + datetime.timedelta(days=1)
        self.assertEqual(period_attendance.teacher_sections(self.yamini.user, saturday), [])

    def test_non_staff_sees_sections_with_students(self):
        empty = factories.make_section(self.branch, name='C')
        rows = period_attendance.teacher_sections(self.admin, DAY)
        ids = [r['section_id'] for r in rows]
        self.assertEqual(ids, [self.section.pk, self.section_b.pk])
        self.assertNotIn(empty.pk, ids)
        self.assertEqual(rows[0]['periods_today'], 0)


class AttendanceEditTests(AttendanceFixture, TestCase):
    def setUp(self):
        super().setUp()
        AttendanceSettings.objects.create(branch=self.branch, edit_window_minutes=30)
        self._mark()
        self.record = self._record(self.students[0])

    def _age(self, minutes):
        PeriodAttendanceRecord.objects.filter(pk=self.record.pk).update(
            marked_at=timezone.now() - datetime.timedelta(minutes=minutes),
        )

    def test_original_marker_inside_window(self):
        self._age(29)
        record = period_attendance.edit_attendance(self.marker, self.record.pk, {'status': 'late', 'reason': 'bus delay'})
        self.assertEqual(record.status, 'late')
        self.assertEqual(record.updated_by, self.marker)
        self.assertEqual(record.audit_entries.count(), 1)

    def test_original_marker_after_window(self):
        self._age(31)
        with self.assertRaises(errors.EditWindowExpired):
            period_attendance.edit_attendance(self.marker, self.record.pk, {'status': 'absent', 'reason': 'late fix'})
        self.record.refresh_from_db()
        self.assertEqual(self.record.status, 'present')
        self.assertEqual(self.record.audit_entries.count(), 0)

    def test_override_after_window(self):
        self._age(31)
        period_attendance.edit_attendance(self.admin, self.record.pk, {'status': 'absent', 'reason': 'parent call'})
        self.record.refresh_from_db()
        self.assertEqual(self.record.status, 'absent')

        status = period_attendance.edit_status(self.admin, self.record.pk)
        self.assertTrue(status.can_edit)
        self.assertTrue(status.requires_admin_edit)

    def test_other_teacher_inside_window(self):
        with self.assertRaises(errors.PermissionDenied) as ctx:
            period_attendance.edit_attendance(self.other_marker, self.record.pk, {'status': 'absent', 'reason': 'x'})
        self.assertNotIsInstance(ctx.exception, errors.EditWindowExpired)

    def test_edit_needs_reason_and_a_field(self):
        with self.assertRaises(errors.ValidationError):
            period_attendance.edit_attendance(self.marker, self.record.pk, {'status': 'absent', 'reason': '   '})
        with self.assertRaises(errors.ValidationError):
            period_attendance.edit_attendance(self.marker, self.record.pk, {'reason': 'nothing to change'})

    def test_each_edit_appends_one_snapshot(self):
        period_attendance.edit_attendance(self.marker, self.record.pk, {'status': 'late', 'reason': 'first'})
        period_attendance.edit_attendance(self.marker, self.record.pk, {'remarks': 'came at 9:10', 'reason': 'second'})

        entries = list(self.record.audit_entries.all())
        self.assertEqual(len(entries), 2)
        self.assertEqual((entries[0].previous_status, entries[0].new_status), ('present', 'late'))
        self.assertEqual((entries[1].previous_status, entries[1].new_status), ('late', 'late'))
        self.assertEqual(entries[1].previous_remarks, '')
        self.assertEqual(entries[1].new_remarks, 'came at 9:10')

    def test_audit_entries_are_immutable(self):
        period_attendance.edit_attendance(self.marker, self.record.pk, {'status': 'late', 'reason': 'first'})
        entry = self.record.audit_entries.get()
        entry.change_reason = 'rewritten'
        with self.assertRaises(ModelValidationError):
            entry.save()
        with self.assertRaises(ModelValidationError):
            entry.delete()
        entry.refresh_from_db()
        self.assertEqual(entry.change_reason, 'first')

    def test_audit_entries_reject_bulk_writes(self):
        period_attendance.edit_attendance(self.marker, self.record.pk, {'status': 'late', 'reason': 'first'})
        entries = AttendanceAuditEntry.objects.filter(record=self.record)
        with self.assertRaises(ModelValidationError):
            entries.update(change_reason='rewritten')
        with self.assertRaises(ModelValidationError):
            entries.delete()
        self.assertEqual(entries.get().change_reason, 'first')

    def test_settings(self):
        current = period_attendance.get_settings(self.marker, self.branch.pk)
        self.assertEqual(current.edit_window_minutes, 30)
        with self.assertRaises(errors.PermissionDenied):
            period_attendance.update_settings(self.marker, self.branch.pk, {'edit_window_minutes': 60})
        updated = period_attendance.update_settings(self.admin, self.branch.pk, {'edit_window_minutes': 60})
        self.assertEqual(updated.edit_window_minutes, 60)
        self.assertEqual(updated.late_threshold_minutes, 15)
