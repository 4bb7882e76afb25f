from rest_framework import serializers

from academics.models import AcademicYear, Section, StaffProfile, Subject
from college.models import Branch

from .models import (
    DAY_NAMES,
    DayPattern,
    DayPatternAssignment,
    PeriodSlot,
    Shift,
    Substitution,
    SubstitutionPeriod,
    Timetable,
    TimetableEntry,
)


class ShiftSerializer(serializers.ModelSerializer):
    branch_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Shift
        fields = (
            'id', 'branch_id', 'name', 'code', 'start_time', 'end_time', 'description',
            'display_order', 'is_active', 'created_at', 'updated_at',
        )


class ShiftWriteSerializer(serializers.Serializer):
    branch_id = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.all(), source='branch')
    name = serializers.CharField(max_length=100)
    code = serializers.CharField(max_length=20)
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    display_order = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    is_active = serializers.BooleanField(required=False)


class DayPatternSerializer(serializers.ModelSerializer):
    class Meta:
        model = DayPattern
        fields = (
            'id', 'name', 'code', 'description', 'total_periods', 'display_order',
            'is_active', 'created_at', 'updated_at',
        )


class DayPatternWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    code = serializers.CharField(max_length=20)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    total_periods = serializers.IntegerField(required=False, allow_null=True)
    display_order = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    is_active = serializers.BooleanField(required=False)


class PeriodSlotSerializer(serializers.ModelSerializer):
    branch_id = serializers.IntegerField(read_only=True)
    day_pattern_id = serializers.IntegerField(read_only=True)
    shift_id = serializers.IntegerField(read_only=True)
    is_teaching_period = serializers.BooleanField(read_only=True)

    class Meta:
        model = PeriodSlot
        fields = (
            'id', 'branch_id', 'name', 'period_number', 'slot_type', 'start_time', 'end_time',
            'duration_minutes', 'day_pattern_id', 'shift_id', 'display_order', 'is_active',
            'is_teaching_period', 'created_at', 'updated_at',
        )


class PeriodSlotWriteSerializer(serializers.Serializer):
    branch_id = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.all(), source='branch')
    name = serializers.CharField(max_length=50)
    period_number = serializers.IntegerField(required=False, allow_null=True)
    slot_type = serializers.ChoiceField(choices=PeriodSlot.SlotType.choices, required=False)
    start_time = serializers.TimeField()
    end_time = serializers.TimeField()
    day_pattern_id = serializers.PrimaryKeyRelatedField(
        queryset=DayPattern.objects.all(), source='day_pattern', required=False, allow_null=True,
    )
    shift_id = serializers.PrimaryKeyRelatedField(
        queryset=Shift.objects.all(), source='shift', required=False, allow_null=True,
    )
    display_order = serializers.IntegerField(required=False, allow_null=True, min_value=0)
    is_active = serializers.BooleanField(required=False)


class DayPatternAssignmentSerializer(serializers.ModelSerializer):
    branch_id = serializers.IntegerField(read_only=True)
    day_name = serializers.SerializerMethodField()
    day_pattern_id = serializers.IntegerField(read_only=True)
    day_pattern_name = serializers.SerializerMethodField()

    class Meta:
        model = DayPatternAssignment
        fields = ('id', 'branch_id', 'day_of_week', 'day_name', 'day_pattern_id', 'day_pattern_name', 'is_working_day')

    def get_day_name(self, obj):
        return DAY_NAMES.get(obj.day_of_week)

    def get_day_pattern_name(self, obj):
        return obj.day_pattern.name if obj.day_pattern_id else None


class DayPatternAssignmentWriteSerializer(serializers.Serializer):
    day_pattern_id = serializers.PrimaryKeyRelatedField(
        queryset=DayPattern.objects.all(), source='day_pattern', required=False, allow_null=True,
    )
    is_working_day = serializers.BooleanField(required=False)


class TimetableEntrySerializer(serializers.ModelSerializer):
    day_name = serializers.SerializerMethodField()
    period_slot_id = serializers.IntegerField(read_only=True)
    period_name = serializers.CharField(source='period_slot.name', read_only=True)
    start_time = serializers.TimeField(source='period_slot.start_time', read_only=True, format='%H:%M')
    end_time = serializers.TimeField(source='period_slot.end_time', read_only=True, format='%H:%M')
    subject_id = serializers.IntegerField(read_only=True)
    subject_name = serializers.SerializerMethodField()
    staff_id = serializers.IntegerField(read_only=True)
    staff_name = serializers.SerializerMethodField()

    class Meta:
        model = TimetableEntry
        fields = (
            'id', 'timetable_id', 'day_of_week', 'day_name', 'period_slot_id', 'period_name',
            'start_time', 'end_time', 'subject_id', 'subject_name', 'staff_id', 'staff_name',
            'room_number', 'notes', 'is_free_period',
        )

    def get_day_name(self, obj):
        return DAY_NAMES.get(obj.day_of_week)

    def get_subject_name(self, obj):
        return obj.subject.name if obj.subject_id else None

    def get_staff_name(self, obj):
        return obj.staff.display_name if obj.staff_id else None


class TeacherScheduleEntrySerializer(TimetableEntrySerializer):
    section_id = serializers.IntegerField(source='timetable.section_id', read_only=True)
    section_name = serializers.SerializerMethodField()

    class Meta(TimetableEntrySerializer.Meta):
        fields = TimetableEntrySerializer.Meta.fields + ('section_id', 'section_name')

    def get_section_name(self, obj):
        return str(obj.timetable.section)


class TimetableEntryWriteSerializer(serializers.Serializer):
    day_of_week = serializers.IntegerField()
    period_slot_id = serializers.PrimaryKeyRelatedField(queryset=PeriodSlot.objects.all(), source='period_slot')
    subject_id = serializers.PrimaryKeyRelatedField(
        queryset=Subject.objects.all(), source='subject', required=False, allow_null=True,
    )
    staff_id = serializers.PrimaryKeyRelatedField(
        queryset=StaffProfile.objects.select_related('user'), source='staff', required=False, allow_null=True,
    )
    room_number = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    is_free_period = serializers.BooleanField(required=False)


class BulkEntriesSerializer(serializers.Serializer):
    entries = TimetableEntryWriteSerializer(many=True)


class TimetableSerializer(serializers.ModelSerializer):
    branch_id = serializers.IntegerField(read_only=True)
    section_id = serializers.IntegerField(read_only=True)
    section_name = serializers.SerializerMethodField()
    academic_year_id = serializers.IntegerField(read_only=True)
    academic_year_name = serializers.CharField(source='academic_year.name', read_only=True)
    published_by_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Timetable
        fields = (
            'id', 'branch_id', 'section_id', 'section_name', 'academic_year_id', 'academic_year_name',
            'name', 'description', 'status', 'effective_from', 'effective_to',
            'published_at', 'published_by_id', 'created_at', 'updated_at',
        )

    def get_section_name(self, obj):
        return str(obj.section)


class TimetableDetailSerializer(TimetableSerializer):
    entries = serializers.SerializerMethodField()

    class Meta(TimetableSerializer.Meta):
        fields = TimetableSerializer.Meta.fields + ('entries',)

    def get_entries(self, obj):
        entries = (
            obj.entries
            .select_related('period_slot', 'subject', 'staff__user')
            .order_by('day_of_week', 'period_slot__start_time', 'pk')
        )
        return TimetableEntrySerializer(entries, many=True).data


class TimetableWriteSerializer(serializers.Serializer):
    section_id = serializers.PrimaryKeyRelatedField(
        queryset=Section.objects.select_related('branch'), source='section',
    )
    academic_year_id = serializers.PrimaryKeyRelatedField(queryset=AcademicYear.objects.all(), source='academic_year')
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    effective_from = serializers.DateField(required=False, allow_null=True)
    effective_to = serializers.DateField(required=False, allow_null=True)


def group_by_day(entries, serializer_class=TimetableEntrySerializer):
    """``[{day_of_week, day_name, entries}]`` for the days that have entries."""
    days = {}
    for entry in entries:
        days.setdefault(entry.day_of_week, []).append(entry)
    return [
        {
            'day_of_week': day,
            'day_name': DAY_NAMES.get(day),
            'entries': serializer_class(days[day], many=True).data,
        }
        for day in sorted(days)
    ]


class SubstitutionPeriodSerializer(serializers.ModelSerializer):
    period_slot_id = serializers.IntegerField(read_only=True)
    period_name = serializers.CharField(source='period_slot.name', read_only=True)
    start_time = serializers.TimeField(source='period_slot.start_time', read_only=True, format='%H:%M')
    end_time = serializers.TimeField(source='period_slot.end_time', read_only=True, format='%H:%M')
    timetable_entry_id = serializers.IntegerField(read_only=True)
    subject_id = serializers.IntegerField(read_only=True)
    subject_name = serializers.SerializerMethodField()
    section_id = serializers.IntegerField(read_only=True)
    section_name = serializers.SerializerMethodField()

    class Meta:
        model = SubstitutionPeriod
        fields = (
            'id', 'period_slot_id', 'period_name', 'start_time', 'end_time', 'timetable_entry_id',
            'subject_id', 'subject_name', 'section_id', 'section_name', 'room_number', 'notes',
        )

    def get_subject_name(self, obj):
        return obj.subject.name if obj.subject_id else None

    def get_section_name(self, obj):
        return str(obj.section) if obj.section_id else None


class SubstitutionSerializer(serializers.ModelSerializer):
    branch_id = serializers.IntegerField(read_only=True)
    original_staff_id = serializers.IntegerField(read_only=True)
    original_staff_name = serializers.CharField(source='original_staff.display_name', read_only=True)
    substitute_staff_id = serializers.IntegerField(read_only=True)
    substitute_staff_name = serializers.CharField(source='substitute_staff.display_name', read_only=True)
    approved_by_id = serializers.IntegerField(read_only=True)
    periods = serializers.SerializerMethodField()

    class Meta:
        model = Substitution
        fields = (
            'id', 'branch_id', 'original_staff_id', 'original_staff_name', 'substitute_staff_id',
            'substitute_staff_name', 'substitution_date', 'reason', 'status', 'notes',
            'approved_by_id', 'approved_at', 'periods', 'created_at', 'updated_at',
        )

    def get_periods(self, obj):
        periods = sorted(obj.periods.all(), key=lambda p: (p.period_slot.start_time, p.pk))
        return SubstitutionPeriodSerializer(periods, many=True).data


class SubstitutionPeriodWriteSerializer(serializers.Serializer):
    period_slot_id = serializers.PrimaryKeyRelatedField(queryset=PeriodSlot.objects.all(), source='period_slot')
    timetable_entry_id = serializers.PrimaryKeyRelatedField(
        queryset=TimetableEntry.objects.all(), source='timetable_entry', required=False, allow_null=True,
    )
    subject_id = serializers.PrimaryKeyRelatedField(
        queryset=Subject.objects.all(), source='subject', required=False, allow_null=True,
    )
    section_id = serializers.PrimaryKeyRelatedField(
        queryset=Section.objects.all(), source='section', required=False, allow_null=True,
    )
    room_number = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class SubstitutionWriteSerializer(serializers.Serializer):
    branch_id = serializers.PrimaryKeyRelatedField(queryset=Branch.objects.all(), source='branch')
    original_staff_id = serializers.PrimaryKeyRelatedField(
        queryset=StaffProfile.objects.select_related('user'), source='original_staff',
    )
    substitute_staff_id = serializers.PrimaryKeyRelatedField(
        queryset=StaffProfile.objects.select_related('user'), source='substitute_staff',
    )
    substitution_date = serializers.DateField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    periods = SubstitutionPeriodWriteSerializer(many=True)


class SubstitutionUpdateSerializer(serializers.Serializer):
    substitute_staff_id = serializers.PrimaryKeyRelatedField(
        queryset=StaffProfile.objects.select_related('user'), source='substitute_staff', required=False,
    )
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=Substitution.Status.choices, required=False)
