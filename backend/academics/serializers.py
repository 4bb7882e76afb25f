from rest_framework import serializers

from .models import (
    AttendanceAuditEntry,
    AttendanceSettings,
    AttendanceStatus,
    PeriodAttendanceRecord,
)


def _user_name(user):
    if user is None:
        return None
    return user.get_full_name().strip() or user.get_username()


class PeriodAttendanceRecordSerializer(serializers.ModelSerializer):
    student_id = serializers.IntegerField(read_only=True)
    student_name = serializers.CharField(source='student.display_name', read_only=True)
    reg_no = serializers.CharField(source='student.reg_no', read_only=True)
    period_slot_id = serializers.IntegerField(read_only=True)
    status_label = serializers.CharField(source='get_status_display', read_only=True)
    short_label = serializers.CharField(read_only=True)
    is_saved = serializers.SerializerMethodField()
    marked_by_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = PeriodAttendanceRecord
        fields = (
            'id', 'student_id', 'student_name', 'reg_no', 'period_slot_id', 'date', 'status',
            'status_label', 'short_label', 'late_arrival_time', 'remarks', 'is_saved',
            'marked_by_id', 'marked_at', 'updated_at',
        )

    def get_is_saved(self, obj):
        return obj.pk is not None


class StudentMarkSerializer(serializers.Serializer):
    student_id = serializers.IntegerField()
    status = serializers.ChoiceField(choices=AttendanceStatus.choices)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    late_arrival_time = serializers.TimeField(required=False, allow_null=True)


class MarkAttendanceSerializer(serializers.Serializer):
    students = StudentMarkSerializer(many=True, allow_empty=False)
    reason = serializers.CharField(required=False, allow_blank=True)


class EditAttendanceSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True)
    status = serializers.ChoiceField(choices=AttendanceStatus.choices, required=False)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    late_arrival_time = serializers.TimeField(required=False, allow_null=True)


class AttendanceAuditEntrySerializer(serializers.ModelSerializer):
    changed_by_id = serializers.IntegerField(read_only=True)
    changed_by_name = serializers.SerializerMethodField()

    class Meta:
        model = AttendanceAuditEntry
        fields = (
            'id', 'change_type', 'previous_status', 'new_status', 'previous_remarks', 'new_remarks',
            'previous_late_arrival_time', 'new_late_arrival_time', 'change_reason',
            'changed_by_id', 'changed_by_name', 'changed_at',
        )

    def get_changed_by_name(self, obj):
        return _user_name(obj.changed_by)


class AttendanceSettingsSerializer(serializers.ModelSerializer):
    branch_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = AttendanceSettings
        fields = (
            'branch_id', 'edit_window_minutes', 'late_threshold_minutes',
            'period_attendance_enabled', 'updated_at',
        )
        read_only_fields = ('updated_at',)


class AttendanceSettingsWriteSerializer(serializers.Serializer):
    edit_window_minutes = serializers.IntegerField(required=False, min_value=0, max_value=1440)
    late_threshold_minutes = serializers.IntegerField(required=False, min_value=0, max_value=240)
    period_attendance_enabled = serializers.BooleanField(required=False)


def roster_payload(roster: dict) -> dict:
    entry = roster['entry']
    slot = entry.period_slot
    return {
        'section_id': roster['section'].pk,
        'section_name': str(roster['section']),
        'date': roster['date'].isoformat(),
        'period': {
            'period_slot_id': slot.pk,
            'timetable_entry_id': entry.pk,
            'period_name': slot.name,
            'period_number': slot.period_number,
            'start_time': slot.start_time.strftime('%H:%M'),
            'end_time': slot.end_time.strftime('%H:%M'),
            'subject_name': entry.subject.name if entry.subject else '',
        },
        'students': PeriodAttendanceRecordSerializer(roster['records'], many=True).data,
        'is_marked': roster['is_marked'],
        'can_edit': roster['can_edit'],
        'marked_at': roster['marked_at'].isoformat() if roster['marked_at'] else None,
        'marked_by': _user_name(roster['marked_by']),
        'summary': roster['summary'],
    }
