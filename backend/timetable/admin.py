from django.contrib import admin

from .models import (
    DayPattern,
    DayPatternAssignment,
    PeriodSlot,
    Shift,
    Substitution,
    SubstitutionPeriod,
    Timetable,
    TimetableEntry,
)


@admin.register(Shift)
class ShiftAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'branch', 'start_time', 'end_time', 'display_order', 'is_active')
    list_filter = ('branch', 'is_active')
    search_fields = ('name', 'code')


@admin.register(DayPattern)
class DayPatternAdmin(admin.ModelAdmin):
    list_display = ('name', 'code', 'college', 'total_periods', 'is_active')
    list_filter = ('college', 'is_active')
    search_fields = ('name', 'code')


@admin.register(DayPatternAssignment)
class DayPatternAssignmentAdmin(admin.ModelAdmin):
    list_display = ('branch', 'day_of_week', 'day_pattern', 'is_working_day')
    list_filter = ('branch', 'is_working_day')


@admin.register(PeriodSlot)
class PeriodSlotAdmin(admin.ModelAdmin):
    list_display = ('name', 'branch', 'period_number', 'slot_type', 'start_time', 'end_time', 'duration_minutes', 'is_active')
    list_filter = ('branch', 'slot_type', 'day_pattern', 'is_active')
    readonly_fields = ('duration_minutes',)
    ordering = ('branch', 'display_order', 'start_time')


class TimetableEntryInline(admin.TabularInline):
    model = TimetableEntry
    extra = 0
    raw_id_fields = ('period_slot', 'subject', 'staff')


@admin.register(Timetable)
class TimetableAdmin(admin.ModelAdmin):
    list_display = ('name', 'section', 'academic_year', 'status', 'published_at')
    list_filter = ('status', 'branch', 'academic_year')
    search_fields = ('name',)
    readonly_fields = ('published_at', 'published_by', 'created_by', 'updated_by')
    inlines = (TimetableEntryInline,)


class SubstitutionPeriodInline(admin.TabularInline):
    model = SubstitutionPeriod
    extra = 0
    raw_id_fields = ('period_slot', 'timetable_entry', 'subject', 'section')


@admin.register(Substitution)
class SubstitutionAdmin(admin.ModelAdmin):
    list_display = ('substitution_date', 'original_staff', 'substitute_staff', 'branch', 'status')
    list_filter = ('status', 'branch')
    date_hierarchy = 'substitution_date'
    raw_id_fields = ('original_staff', 'substitute_staff')
    readonly_fields = ('approved_by', 'approved_at', 'created_by')
    inlines = (SubstitutionPeriodInline,)
