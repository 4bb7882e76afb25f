from django.test import TestCase
from rest_framework.test import APIClient

from academics.models import PeriodAttendanceRecord

from .test_period_attendance import DAY, AttendanceFixture


class StudentAttendanceApiTests(AttendanceFixture, TestCase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.client.force_authenticate(self.marker)
        self.period_url = f'/api/student-attendance/period/{self.p1.pk}/?section_id={self.section.pk}&date={DAY.isoformat()}'

    def _payload(self, **overrides):
        return {'students': [
            {'student_id': s.pk, 'status': overrides.get(s.reg_no, 'present')} for s in self.students
        ]}

    def test_periods_require_query_params(self):
        response = self.client.get('/api/student-attendance/periods/', {'section_id': self.section.pk})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['field'], 'date')

        response = self.client.get('/api/student-attendance/periods/', {
            'section_id': self.section.pk, 'date': DAY.isoformat(),
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['items'][0]['period_name'], 'P1')

    def test_roster_mark_edit_history(self):
        response = self.client.get(self.period_url)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data['is_marked'])
        self.assertEqual(len(response.data['students']), 3)

        response = self.client.post(self.period_url, self._payload(), format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['message'], 'Attendance marked: 3 present, 0 absent, 0 late, 0 half-day')

        record = PeriodAttendanceRecord.objects.get(student=self.students[1], date=DAY)
        response = self.client.put(
            f'/api/student-attendance/{record.pk}/', {'status': 'absent', 'reason': 'left early'}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'absent')

        response = self.client.get(f'/api/student-attendance/{record.pk}/history/')
        self.assertEqual(response.data['total_changes'], 1)
        self.assertEqual(response.data['entries'][0]['previous_status'], 'present')
        self.assertEqual(response.data['entries'][0]['new_status'], 'absent')

        response = self.client.get(self.period_url)
        self.assertEqual(response.data['summary']['present'], 2)
        self.assertEqual(response.data['summary']['absent'], 1)

        response = self.client.get(f'/api/student-attendance/{record.pk}/edit-status/')
        self.assertTrue(response.data['can_edit'])
        self.assertTrue(response.data['is_original_marker'])

    def test_second_marker_gets_conflict(self):
        self.client.post(self.period_url, self._payload(), format='json')
        other = APIClient()
        other.force_authenticate(self.other_marker)
        response = other.post(self.period_url, self._payload(S001='absent'), format='json')
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error']['type'], 'already-marked')

    def test_settings_endpoint(self):
        url = f'/api/student-attendance/settings/?branch_id={self.branch.pk}'
        response = self.client.get(url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['edit_window_minutes'], 120)

        response = self.client.put(url, {'edit_window_minutes': 45}, format='json')
        self.assertEqual(response.status_code, 403)

        admin = APIClient()
        admin.force_authenticate(self.admin)
        response = admin.put(url, {'edit_window_minutes': 45}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['edit_window_minutes'], 45)
        self.assertEqual(response.json()['data']['branch_id'], self.branch.pk)

    def test_edit_without_reason(self):
        self.client.post(self.period_url, self._payload(), format='json')
        record = PeriodAttendanceRecord.objects.filter(date=DAY).first()
        response = self.client.put(f'/api/student-attendance/{record.pk}/', {'status': 'late', 'reason': ''}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['field'], 'reason')

    def test_my_classes_requires_date(self):
        response = self.client.get('/api/student-attendance/my-classes/')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['field'], 'date')

        response = self.client.get('/api/student-attendance/my-classes/', {'date': DAY.isoformat()})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['items'][0]['section_id'], self.section.pk)
        self.assertFalse(response.data['items'][0]['is_marked_today'])
