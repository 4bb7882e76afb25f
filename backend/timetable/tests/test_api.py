import datetime

from django.test import TestCase
from rest_framework.test import APIClient

from academics.models import TeachingAssignment
from accounts import capabilities as caps
from timetable.models import Shift, Timetable

from . import factories


class TemplateApiTests(TestCase):
    def setUp(self):
        self.college = factories.make_college()
        self.branch = factories.main_branch(self.college)
        self.admin = factories.make_user('admin', self.college, list(caps.ALL_CAPABILITIES))
        self.client = APIClient()
        self.client.force_authenticate(self.admin)

    def test_requires_authentication(self):
        response = APIClient().get('/api/shifts/')
        self.assertEqual(response.status_code, 401)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error']['type'], 'not-authenticated')

    def test_list_is_enveloped(self):
        Shift.objects.create(branch=self.branch, name='Morning', code='M', start_time=datetime.time(8, 0), end_time=datetime.time(13, 0))
        response = self.client.get('/api/shifts/', {'branch_id': self.branch.pk})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['total'], 1)
        self.assertEqual(body['data']['items'][0]['code'], 'M')

    def test_create_update_toggle_delete(self):
        response = self.client.post('/api/shifts/', {
            'branch_id': self.branch.pk, 'name': 'Morning', 'code': 'morn',
            'start_time': '08:00', 'end_time': '13:00',
        })
        self.assertEqual(response.status_code, 201)
        shift_id = response.data['id']
        self.assertEqual(response.data['code'], 'MORN')

        response = self.client.patch(f'/api/shifts/{shift_id}/', {'description': 'first half'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['name'], 'Morning')
        self.assertEqual(response.data['description'], 'first half')

        response = self.client.post(f'/api/shifts/{shift_id}/toggle-active/')
        self.assertFalse(response.data['is_active'])

        response = self.client.delete(f'/api/shifts/{shift_id}/')
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Shift.objects.filter(pk=shift_id).exists())

    def test_invalid_range_is_a_problem_response(self):
        response = self.client.post('/api/period-slots/', {
            'branch_id': self.branch.pk, 'name': 'P1', 'start_time': '10:00', 'end_time': '09:00',
        })
        self.assertEqual(response.status_code, 400)
        error = response.json()['error']
        self.assertEqual(error['type'], 'invalid-time-range')
        self.assertEqual(error['status'], 400)

    def test_null_display_order_patch(self):
        slot = factories.make_slot(self.branch, display_order=4)
        response = self.client.patch(f'/api/period-slots/{slot.pk}/', {'display_order': None}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['display_order'], 1)

        shift = Shift.objects.create(branch=self.branch, name='Morning', code='M', start_time=datetime.time(8, 0), end_time=datetime.time(13, 0))
        response = self.client.patch(f'/api/shifts/{shift.pk}/', {'display_order': None}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['code'], 'M')

    def test_duplicate_code_is_conflict(self):
        payload = {'name': 'Regular', 'code': 'REG'}
        self.assertEqual(self.client.post('/api/day-patterns/', payload).status_code, 201)
        response = self.client.post('/api/day-patterns/', payload)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['type'], 'duplicate-code')

    def test_missing_capability_is_forbidden(self):
        viewer = factories.make_user('viewer', self.college, [caps.TIMETABLE_VIEW])
        client = APIClient()
        client.force_authenticate(viewer)
        response = client.post('/api/day-patterns/', {'name': 'Regular', 'code': 'REG'})
        self.assertEqual(response.status_code, 403)
        error = response.json()['error']
        self.assertEqual(error['type'], 'permission-denied')
        self.assertEqual(error['capability'], caps.TIMETABLE_MANAGE)

    def test_day_pattern_assignments(self):
        response = self.client.get('/api/day-pattern-assignments/', {'branch_id': self.branch.pk})
        self.assertEqual(response.data['total'], 7)

        response = self.client.put(f'/api/day-pattern-assignments/0/?branch_id={self.branch.pk}', {'is_working_day': False})
        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.data['is_working_day'])
        self.assertEqual(response.data['day_name'], 'Sunday')


class TimetableApiTests(TestCase):
    def setUp(self):
        self.college = factories.make_college()
        self.branch = factories.main_branch(self.college)
        self.year = factories.make_year(self.college)
        self.section = factories.make_section(self.branch, name='A')
        self.section2 = factories.make_section(self.branch, name='B')
        self.subject = factories.make_subject(self.college)
        self.teacher = factories.make_staff(self.college, 'xavier', first_name='Xavier', last_name='Lobo')
        self.p1 = factories.make_slot(self.branch, 'P1', datetime.time(9, 0), datetime.time(9, 45))
        self.admin = factories.make_user('admin', self.college, list(caps.ALL_CAPABILITIES))
        self.client = APIClient()
        self.client.force_authenticate(self.admin)

    def _create(self, section):
        response = self.client.post('/api/timetables/', {
            'section_id': section.pk, 'academic_year_id': self.year.pk, 'name': f'Timetable {section.name}',
        })
        self.assertEqual(response.status_code, 201)
        return response.data['id']

    def _add_teacher_entry(self, timetable_id):
        return self.client.post(f'/api/timetables/{timetable_id}/entries/', {
            'day_of_week': factories.MONDAY, 'period_slot_id': self.p1.pk,
            'subject_id': self.subject.pk, 'staff_id': self.teacher.pk,
        })

    def test_build_publish_and_conflict(self):
        for section in (self.section, self.section2):
            TeachingAssignment.objects.create(staff=self.teacher, subject=self.subject, section=section, academic_year=self.year)

        first = self._create(self.section)
        response = self._add_teacher_entry(first)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['warnings'], [])

        response = self.client.post(f'/api/timetables/{first}/publish/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'published')

        second = self._create(self.section2)
        response = self._add_teacher_entry(second)
        self.assertEqual(len(response.data['warnings']), 1)

        response = self.client.get('/api/timetables/conflicts/', {
            'staff_id': self.teacher.pk, 'day_of_week': factories.MONDAY,
            'period_slot_id': self.p1.pk, 'exclude_timetable_id': first,
        })
        self.assertEqual(response.data, {'has_conflict': False, 'conflicts': []})

        response = self.client.post(f'/api/timetables/{second}/publish/')
        self.assertEqual(response.status_code, 409)
        error = response.json()['error']
        self.assertEqual(error['type'], 'schedule-conflict')
        self.assertEqual(error['conflicts'][0]['staff_name'], 'Xavier Lobo')
        self.assertEqual(Timetable.objects.get(pk=second).status, 'draft')

        response = self.client.get(f'/api/timetables/section/{self.section.pk}/', {'academic_year_id': self.year.pk})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['days'][0]['day_name'], 'Monday')
        self.assertEqual(response.data['days'][0]['entries'][0]['period_name'], 'P1')

        response = self.client.get(f'/api/timetables/teacher/{self.teacher.pk}/')
        self.assertEqual(response.data['total_periods'], 1)
        self.assertEqual(response.data['days'][0]['entries'][0]['section_name'], str(self.section))

    def test_bulk_entries_and_delete(self):
        timetable_id = self._create(self.section)
        p2 = factories.make_slot(self.branch, 'P2', datetime.time(9, 45), datetime.time(10, 30), period_number=2)
        response = self.client.post(f'/api/timetables/{timetable_id}/entries/bulk/', {'entries': [
            {'day_of_week': 1, 'period_slot_id': self.p1.pk, 'is_free_period': True},
            {'day_of_week': 1, 'period_slot_id': p2.pk, 'is_free_period': True},
        ]}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['created'], 2)

        entry_id = response.data['items'][0]['id']
        response = self.client.delete(f'/api/timetables/{timetable_id}/entries/{entry_id}/')
        self.assertEqual(response.status_code, 204)

        response = self.client.get(f'/api/timetables/{timetable_id}/entries/')
        self.assertEqual(response.data['total'], 1)

    def test_published_timetable_cannot_be_deleted(self):
        timetable_id = self._create(self.section)
        self.client.post(f'/api/timetables/{timetable_id}/publish/')
        response = self.client.delete(f'/api/timetables/{timetable_id}/')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['type'], 'invalid-state')

    def test_update_rejects_section_change(self):
        timetable_id = self._create(self.section)
        response = self.client.patch(f'/api/timetables/{timetable_id}/', {'section_id': self.section2.pk})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['field'], 'section_id')

    def test_unknown_timetable(self):
        response = self.client.get('/api/timetables/999999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error']['type'], 'not-found')
