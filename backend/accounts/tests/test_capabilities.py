from django.contrib.auth.models import AnonymousUser
from django.test import TestCase
from rest_framework.test import APIClient

from accounts import capabilities as caps
from accounts.models import Role, UserRole
from accounts.utils import get_user_permissions
from schoolerp import exceptions as errors
from timetable.tests import factories


class CapabilityTests(TestCase):
    def setUp(self):
        self.college = factories.make_college()

    def test_role_grants_capability(self):
        user = factories.make_user('teacher', self.college, [caps.TIMETABLE_VIEW])
        self.assertIs(caps.authorize(user, caps.TIMETABLE_VIEW), caps.Decision.ALLOWED)
        self.assertIs(caps.authorize(user, caps.TIMETABLE_MANAGE), caps.Decision.DENIED)

    def test_require_raises_with_capability_code(self):
        user = factories.make_user('teacher', self.college, [caps.TIMETABLE_VIEW])
        with self.assertRaises(errors.PermissionDenied) as ctx:
            caps.require(user, caps.TIMETABLES_PUBLISH)
        self.assertEqual(ctx.exception.extra['capability'], caps.TIMETABLES_PUBLISH)

    def test_anonymous_is_always_denied(self):
        self.assertIs(caps.authorize(AnonymousUser(), caps.SHIFT_VIEW), caps.Decision.DENIED)
        self.assertIs(caps.authorize(None, caps.SHIFT_VIEW), caps.Decision.DENIED)
        self.assertEqual(get_user_permissions(AnonymousUser()), set())

    def test_superuser_holds_everything(self):
        user = factories.make_user('root', self.college, is_superuser=True)
        for code in caps.ALL_CAPABILITIES:
            self.assertTrue(caps.has_capability(user, code))

    def test_trailing_period_is_ignored(self):
        user = factories.make_user('teacher', self.college, ['shift:view.'])
        self.assertTrue(caps.has_capability(user, caps.SHIFT_VIEW))

    def test_user_without_college_cannot_act(self):
        user = factories.make_user('drifter', None, [caps.SHIFT_VIEW])
        with self.assertRaises(errors.PermissionDenied):
            caps.require_college(user)
        bound = factories.make_user('bound', self.college)
        self.assertEqual(caps.require_college(bound), self.college)


class SeededRoleTests(TestCase):
    def test_admin_role_holds_every_capability(self):
        user = factories.make_user('principal')
        UserRole.objects.create(user=user, role=Role.objects.get(name='ADMIN'))
        self.assertEqual(get_user_permissions(user), set(caps.ALL_CAPABILITIES))

    def test_staff_role_can_mark_but_not_publish(self):
        user = factories.make_user('teacher')
        UserRole.objects.create(user=user, role=Role.objects.get(name='STAFF'))
        self.assertTrue(caps.has_capability(user, caps.ATTENDANCE_MARK_CLASS))
        self.assertFalse(caps.has_capability(user, caps.TIMETABLES_PUBLISH))
        self.assertFalse(caps.has_capability(user, caps.ATTENDANCE_ADMIN_EDIT))
        self.assertTrue(caps.has_capability(user, caps.SUBSTITUTION_VIEW))
        self.assertFalse(caps.has_capability(user, caps.SUBSTITUTION_APPROVE))


class MeEndpointTests(TestCase):
    def test_me_lists_roles_and_permissions(self):
        college = factories.make_college()
        user = factories.make_user('teacher', college, [caps.TIMETABLE_VIEW])
        client = APIClient()
        client.force_authenticate(user)
        response = client.get('/api/accounts/me/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['roles'], ['ROLE_TEACHER'])
        self.assertEqual(response.data['permissions'], [caps.TIMETABLE_VIEW])
        self.assertEqual(response.data['college']['code'], 'DPS')
        self.assertIsNone(response.data['profile_type'])

    def test_me_requires_authentication(self):
        response = APIClient().get('/api/accounts/me/')
        self.assertEqual(response.status_code, 401)
