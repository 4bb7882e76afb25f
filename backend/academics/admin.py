from django import forms
from django.contrib import admin
from django.core.exceptions import ValidationError

from .models import (
    AcademicYear,
    AttendanceAuditEntry,
    AttendanceSettings,
    PeriodAttendanceRecord,
    Section,
    StaffProfile,
    StudentProfile,
    StudentSectionAssignment,
    Subject,
    TeachingAssignment,
)


class StudentProfileForm(forms.ModelForm):
    class Meta:
        model = StudentProfile
        fields = '__all__'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance and self.instance.pk and 'reg_no' in self.fields:
            self.fields['reg_no'].disabled = True

    def clean_reg_no(self):
        val = self.cleaned_data.get('reg_no')
        if self.instance and self.instance.pk and val != self.instance.reg_no:
            raise ValidationError('Student reg_no is immutable and cannot be changed.')
        return val


@admin.register(AcademicYear)
class AcademicYearAdmin(admin.ModelAdmin):
    list_display = ('name', 'college', 'start_date', 'end_date', 'is_active')
    list_filter = ('college', 'is_active')


@admin.register(Section)
class SectionAdmin(admin.ModelAdmin):
    list_display = ('class_name', 'name', 'branch', 'is_active')
    list_filter = ('branch', 'is_active')
    search_fields = ('class_name', 'name')


@admin.register(Subject)
class SubjectAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'college')
    search_fields = ('code', 'name')


class StudentSectionAssignmentInline(admin.TabularInline):
    model = StudentSectionAssignment
    extra = 0


@admin.register(StudentProfile)
class StudentProfileAdmin(admin.ModelAdmin):
    form = StudentProfileForm
    list_display = ('user', 'reg_no', 'status')
    search_fields = ('reg_no', 'user__username', 'user__email')
    list_filter = ('status',)
    inlines = (StudentSectionAssignmentInline,)


@admin.register(StaffProfile)
class StaffProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'staff_id', 'branch', 'designation', 'status')
    search_fields = ('staff_id', 'user__username')
    list_filter = ('branch', 'status')


@admin.register(TeachingAssignment)
class TeachingAssignmentAdmin(admin.ModelAdmin):
    list_display = ('staff', 'subject', 'section', 'academic_year', 'is_active')
    list_filter = ('academic_year', 'is_active')
    raw_id_fields = ('staff', 'subject', 'section')


@admin.register(PeriodAttendanceRecord)
class PeriodAttendanceRecordAdmin(admin.ModelAdmin):
    list_display = ('student', 'section', 'period_slot', 'date', 'status', 'marked_by', 'marked_at')
    list_filter = ('date', 'status', 'section')
    search_fields = ('student__reg_no',)
    # changes must go through the edit endpoint so they are audited
    readonly_fields = [f.name for f in PeriodAttendanceRecord._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(AttendanceAuditEntry)
class AttendanceAuditEntryAdmin(admin.ModelAdmin):
    list_display = ('record', 'change_type', 'previous_status', 'new_status', 'changed_by', 'changed_at')
    list_filter = ('change_type',)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AttendanceSettings)
class AttendanceSettingsAdmin(admin.ModelAdmin):
    list_display = ('branch', 'edit_window_minutes', 'late_threshold_minutes', 'period_attendance_enabled')
