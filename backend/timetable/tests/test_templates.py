import datetime

from django.db import IntegrityError
from django.test import TestCase

from accounts import capabilities as caps
from schoolerp import exceptions as errors
from timetable.models import DayPatternAssignment, PeriodSlot, Shift
from timetable.services import templates

from . import factories


class ShiftTemplateTests(TestCase):
    def setUp(self):
        self.college = factories.make_college()
        self.branch = factories.main_branch(self.college)
        self.admin = factories.make_user('admin', self.college, [caps.SHIFT_VIEW, caps.SHIFT_MANAGE, caps.TIMETABLE_MANAGE])

    def _shift(self, code='morn', start=datetime.time(8, 0), end=datetime.time(13, 0), **extra):
        data = {'branch': self.branch, 'name': 'Morning', 'code': code, 'start_time': start, 'end_time': end}
        data.update(extra)
        return templates.create_shift(self.admin, data)

    def test_code_is_normalized_and_unique_per_branch(self):
        shift = self._shift(code='  morn ')
        self.assertEqual(shift.code, 'MORN')
        with self.assertRaises(errors.DuplicateCode):
            self._shift(code='Morn')
        self.assertEqual(Shift.objects.filter(branch=self.branch).count(), 1)

    def test_same_code_allowed_on_another_branch(self):
        other = self.college.branches.create(code='EAST', name='East campus')
        self._shift()
        shift = templates.create_shift(self.admin, {
            'branch': other, 'name': 'Morning', 'code': 'MORN',
            'start_time': datetime.time(8, 0), 'end_time': datetime.time(13, 0),
        })
        self.assertEqual(shift.branch, other)

    def test_start_must_be_before_end(self):
        with self.assertRaises(errors.InvalidTimeRange):
            self._shift(start=datetime.time(13, 0), end=datetime.time(8, 0))
        with self.assertRaises(errors.InvalidTimeRange):
            self._shift(start=datetime.time(8, 0), end=datetime.time(8, 0))

    def test_patch_validates_resulting_range(self):
        shift = self._shift()
        # only end_time is sent; the stored start_time still applies
        with self.assertRaises(errors.InvalidTimeRange):
            templates.update_shift(self.admin, shift.pk, {'end_time': datetime.time(7, 0)})
        shift.refresh_from_db()
        self.assertEqual(shift.end_time, datetime.time(13, 0))

    def test_patch_leaves_absent_fields_alone(self):
        shift = self._shift(description='first half')
        updated = templates.update_shift(self.admin, shift.pk, {'name': 'Early'})
        self.assertEqual(updated.name, 'Early')
        self.assertEqual(updated.description, 'first half')
        self.assertEqual(updated.code, 'MORN')

    def test_display_order_defaults_to_next(self):
        first = self._shift(code='A')
        second = self._shift(code='B', display_order=None)
        self.assertEqual(first.display_order, 1)
        self.assertEqual(second.display_order, 2)

    def test_null_display_order_moves_shift_last(self):
        first = self._shift(code='A')
        self._shift(code='B')
        updated = templates.update_shift(self.admin, first.pk, {'display_order': None})
        self.assertEqual(updated.display_order, 3)
        self.assertEqual(updated.code, 'A')

    def test_only_code_clashes_become_duplicate_code(self):
        shift = self._shift()
        shift.display_order = None
        with self.assertRaises(IntegrityError):
            templates._save_with_code(shift, 'branch', Shift.objects.filter(branch=self.branch))

    def test_delete_blocked_by_active_slot(self):
        shift = self._shift()
        slot = factories.make_slot(self.branch, shift=shift)
        with self.assertRaises(errors.EntityInUse):
            templates.delete_shift(self.admin, shift.pk)

        slot.is_active = False
        slot.save()
        templates.delete_shift(self.admin, shift.pk)
        slot.refresh_from_db()
        self.assertIsNone(slot.shift_id)

    def test_toggle_active(self):
        shift = self._shift()
        self.assertFalse(templates.toggle_shift(self.admin, shift.pk).is_active)
        self.assertTrue(templates.toggle_shift(self.admin, shift.pk).is_active)

    def test_view_only_user_cannot_create(self):
        viewer = factories.make_user('viewer', self.college, [caps.SHIFT_VIEW])
        with self.assertRaises(errors.PermissionDenied):
            templates.create_shift(viewer, {
                'branch': self.branch, 'name': 'Morning', 'code': 'M',
                'start_time': datetime.time(8, 0), 'end_time': datetime.time(9, 0),
            })

    def test_other_college_cannot_see_shift(self):
        shift = self._shift()
        other = factories.make_college(code='OTH', name='Other School')
        outsider = factories.make_user('outsider', other, [caps.SHIFT_VIEW])
        with self.assertRaises(errors.NotFoundError):
            templates.get_shift(outsider, shift.pk)
        self.assertEqual(list(templates.list_shifts(outsider)), [])

    def test_user_without_college_is_rejected(self):
        loner = factories.make_user('loner', None, [caps.SHIFT_VIEW])
        with self.assertRaises(errors.PermissionDenied):
            templates.list_shifts(loner)


class PeriodSlotTemplateTests(TestCase):
    def setUp(self):
        self.college = factories.make_college()
        self.branch = factories.main_branch(self.college)
        self.admin = factories.make_user('admin', self.college, [caps.TIMETABLE_VIEW, caps.TIMETABLE_MANAGE, caps.SHIFT_MANAGE])
        self.pattern = templates.create_day_pattern(self.admin, {'name': 'Regular day', 'code': 'reg'})

    def _slot(self, **extra):
        data = {
            'branch': self.branch, 'name': 'P1', 'period_number': 1,
            'start_time': datetime.time(9, 0), 'end_time': datetime.time(9, 45),
        }
        data.update(extra)
        return templates.create_period_slot(self.admin, data)

    def test_duration_is_derived(self):
        slot = self._slot()
        self.assertEqual(slot.duration_minutes, 45)
        self.assertEqual(slot.slot_type, PeriodSlot.SlotType.REGULAR)

        slot = templates.update_period_slot(self.admin, slot.pk, {'end_time': datetime.time(10, 0)})
        slot.refresh_from_db()
        self.assertEqual(slot.duration_minutes, 60)

    def test_invalid_range(self):
        with self.assertRaises(errors.InvalidTimeRange):
            self._slot(start_time=datetime.time(10, 0), end_time=datetime.time(9, 0))

    def test_shift_must_be_on_same_branch(self):
        other = self.college.branches.create(code='EAST', name='East campus')
        shift = Shift.objects.create(branch=other, name='Morning', code='M', start_time=datetime.time(8, 0), end_time=datetime.time(13, 0))
        with self.assertRaises(errors.ValidationError):
            self._slot(shift=shift)

    def test_explicit_null_clears_link(self):
        slot = self._slot(day_pattern=self.pattern)
        slot = templates.update_period_slot(self.admin, slot.pk, {'day_pattern': None})
        slot.refresh_from_db()
        self.assertIsNone(slot.day_pattern_id)

    def test_list_filters(self):
        self._slot(day_pattern=self.pattern)
        self._slot(name='Lunch', slot_type=PeriodSlot.SlotType.LUNCH, start_time=datetime.time(12, 0), end_time=datetime.time(12, 30))
        lunch = templates.list_period_slots(self.admin, slot_type='lunch')
        self.assertEqual([s.name for s in lunch], ['Lunch'])
        patterned = templates.list_period_slots(self.admin, day_pattern_id=self.pattern.pk)
        self.assertEqual([s.name for s in patterned], ['P1'])

    def test_day_pattern_in_use(self):
        self._slot(day_pattern=self.pattern)
        with self.assertRaises(errors.EntityInUse):
            templates.delete_day_pattern(self.admin, self.pattern.pk)

    def test_null_display_order_is_recomputed(self):
        first = self._slot()
        self._slot(name='P2', start_time=datetime.time(9, 45), end_time=datetime.time(10, 30))
        slot = templates.update_period_slot(self.admin, first.pk, {'display_order': None})
        slot.refresh_from_db()
        self.assertEqual(slot.display_order, 3)

        pattern = templates.update_day_pattern(self.admin, self.pattern.pk, {'display_order': None})
        self.assertEqual(pattern.display_order, 1)
        templates.create_day_pattern(self.admin, {'name': 'Half day', 'code': 'half'})
        pattern = templates.update_day_pattern(self.admin, self.pattern.pk, {'display_order': None})
        self.assertEqual(pattern.display_order, 3)
        self.assertEqual(pattern.code, 'REG')

    def test_day_pattern_duplicate_code(self):
        with self.assertRaises(errors.DuplicateCode):
            templates.create_day_pattern(self.admin, {'name': 'Again', 'code': ' REG '})

    def test_slot_used_by_entry_cannot_be_deleted(self):
        slot = self._slot()
        year = factories.make_year(self.college)
        section = factories.make_section(self.branch)
        timetable = factories.make_timetable(section, year)
        factories.add_entry(timetable, factories.MONDAY, slot, is_free_period=True)
        with self.assertRaises(errors.EntityInUse):
            templates.delete_period_slot(self.admin, slot.pk)
        self.assertTrue(PeriodSlot.objects.filter(pk=slot.pk).exists())


class DayAssignmentTests(TestCase):
    def setUp(self):
        self.college = factories.make_college()
        self.branch = factories.main_branch(self.college)
        self.admin = factories.make_user('admin', self.college, [caps.TIMETABLE_VIEW, caps.TIMETABLE_MANAGE])
        self.pattern = templates.create_day_pattern(self.admin, {'name': 'Half day', 'code': 'HALF'})

    def test_list_reports_every_day(self):
        rows = templates.list_day_assignments(self.admin, self.branch.pk)
        self.assertEqual([r.day_of_week for r in rows], list(range(7)))
        self.assertTrue(all(r.is_working_day and r.day_pattern_id is None for r in rows))

    def test_upsert_creates_then_updates(self):
        row, created = templates.upsert_day_assignment(self.admin, self.branch.pk, 6, {'day_pattern': self.pattern})
        self.assertTrue(created)
        self.assertEqual(row.day_pattern, self.pattern)

        row, created = templates.upsert_day_assignment(self.admin, self.branch.pk, 6, {'is_working_day': False})
        self.assertFalse(created)
        self.assertFalse(row.is_working_day)
        self.assertEqual(row.day_pattern, self.pattern)
        self.assertEqual(DayPatternAssignment.objects.filter(branch=self.branch).count(), 1)

    def test_day_out_of_range(self):
        with self.assertRaises(errors.ValidationError):
            templates.upsert_day_assignment(self.admin, self.branch.pk, 7, {'is_working_day': False})
        with self.assertRaises(errors.ValidationError):
            templates.get_day_assignment(self.admin, self.branch.pk, -1)
