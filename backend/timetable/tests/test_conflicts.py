import datetime

from django.test import SimpleTestCase, TestCase

from timetable.models import Timetable
from timetable.services import conflicts

from . import factories


class RangesOverlapTests(SimpleTestCase):
    def test_overlap(self):
        t = datetime.time
        self.assertTrue(conflicts.ranges_overlap(t(9, 0), t(9, 45), t(9, 30), t(10, 15)))
        self.assertTrue(conflicts.ranges_overlap(t(9, 0), t(10, 0), t(9, 15), t(9, 30)))
        self.assertTrue(conflicts.ranges_overlap(t(9, 0), t(9, 45), t(9, 0), t(9, 45)))

    def test_touching_ranges_do_not_overlap(self):
        t = datetime.time
        self.assertFalse(conflicts.ranges_overlap(t(9, 0), t(9, 45), t(9, 45), t(10, 30)))
        self.assertFalse(conflicts.ranges_overlap(t(9, 45), t(10, 30), t(9, 0), t(9, 45)))


class FindConflictsTests(TestCase):
    def setUp(self):
        self.college = factories.make_college()
        self.branch = factories.main_branch(self.college)
        self.year = factories.make_year(self.college)
        self.section = factories.make_section(self.branch, name='A')
        self.subject = factories.make_subject(self.college)
        self.staff = factories.make_staff(self.college, 'xavier', first_name='Xavier', last_name='Lobo')
        self.p1 = factories.make_slot(self.branch, 'P1', datetime.time(9, 0), datetime.time(9, 45))
        self.timetable = factories.make_timetable(self.section, self.year, status=Timetable.Status.PUBLISHED)
        self.entry = factories.add_entry(self.timetable, factories.MONDAY, self.p1, self.subject, self.staff)

    def test_reports_overlapping_published_entry(self):
        other_branch = self.college.branches.create(code='EAST', name='East campus')
        east_slot = factories.make_slot(other_branch, 'E1', datetime.time(9, 30), datetime.time(10, 15))
        found = conflicts.find_conflicts(self.college, self.staff.pk, factories.MONDAY, east_slot)
        self.assertEqual(len(found), 1)
        conflict = found[0]
        self.assertEqual(conflict.entry_id, self.entry.pk)
        self.assertEqual(conflict.staff_name, 'Xavier Lobo')
        self.assertEqual(conflict.day_name, 'Monday')
        self.assertEqual(conflict.as_dict()['start_time'], '09:00')

    def test_other_day_or_touching_slot_is_free(self):
        p2 = factories.make_slot(self.branch, 'P2', datetime.time(9, 45), datetime.time(10, 30))
        self.assertIsNone(conflicts.find_conflict(self.college, self.staff.pk, factories.MONDAY, p2))
        self.assertIsNone(conflicts.find_conflict(self.college, self.staff.pk, 2, self.p1))

    def test_excluded_timetable_never_conflicts_with_itself(self):
        found = conflicts.find_conflicts(
            self.college, self.staff.pk, factories.MONDAY, self.p1, exclude_timetable_id=self.timetable.pk,
        )
        self.assertEqual(found, [])

    def test_draft_timetables_are_not_commitments(self):
        Timetable.objects.filter(pk=self.timetable.pk).update(status=Timetable.Status.DRAFT)
        self.assertEqual(conflicts.find_conflicts(self.college, self.staff.pk, factories.MONDAY, self.p1), [])
