import datetime

from django.test import SimpleTestCase

from academics.services.edit_window import NOT_ORIGINAL_MARKER, WINDOW_EXPIRED, evaluate_edit_window

MARKED_AT = datetime.datetime(2025, 1, 10, 9, 0, tzinfo=datetime.timezone.utc)


def _at(minutes, seconds=0):
    return MARKED_AT + datetime.timedelta(minutes=minutes, seconds=seconds)


class EditWindowTests(SimpleTestCase):
    def test_original_marker_inside_window(self):
        result = evaluate_edit_window(MARKED_AT, _at(29), 30, is_original_marker=True, has_override=False)
        self.assertTrue(result.can_edit)
        self.assertTrue(result.is_within_window)
        self.assertFalse(result.requires_admin_edit)
        self.assertEqual(result.elapsed_minutes, 29)
        self.assertEqual(result.remaining_minutes, 1)
        self.assertIsNone(result.edit_denied_reason)

    def test_original_marker_after_window(self):
        result = evaluate_edit_window(MARKED_AT, _at(31), 30, is_original_marker=True, has_override=False)
        self.assertFalse(result.can_edit)
        self.assertTrue(result.requires_admin_edit)
        self.assertEqual(result.remaining_minutes, 0)
        self.assertEqual(result.edit_denied_reason, WINDOW_EXPIRED)

    def test_override_after_window(self):
        result = evaluate_edit_window(MARKED_AT, _at(31), 30, is_original_marker=True, has_override=True)
        self.assertTrue(result.can_edit)
        self.assertTrue(result.requires_admin_edit)

    def test_window_boundary_uses_whole_minutes(self):
        self.assertTrue(evaluate_edit_window(MARKED_AT, _at(29, 59), 30, True, False).can_edit)
        self.assertFalse(evaluate_edit_window(MARKED_AT, _at(30), 30, True, False).can_edit)

    def test_other_teacher_inside_window(self):
        result = evaluate_edit_window(MARKED_AT, _at(5), 30, is_original_marker=False, has_override=False)
        self.assertFalse(result.can_edit)
        self.assertFalse(result.requires_admin_edit)
        self.assertEqual(result.edit_denied_reason, NOT_ORIGINAL_MARKER)

    def test_clock_skew_never_gives_negative_elapsed(self):
        result = evaluate_edit_window(MARKED_AT, _at(-3), 30, True, False)
        self.assertEqual(result.elapsed_minutes, 0)
        self.assertEqual(result.remaining_minutes, 30)
        self.assertTrue(result.can_edit)

    def test_zero_window_only_allows_override(self):
        self.assertFalse(evaluate_edit_window(MARKED_AT, MARKED_AT, 0, True, False).can_edit)
        self.assertTrue(evaluate_edit_window(MARKED_AT, MARKED_AT, 0, False, True).can_edit)
