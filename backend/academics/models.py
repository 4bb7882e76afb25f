from datetime import date

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class AcademicYear(models.Model):
    college = models.ForeignKey('college.College', on_delete=models.CASCADE, related_name='academic_years')
    name = models.CharField(max_length=32)
    start_date = models.DateField()
    end_date = models.DateField()
    is_active = models.BooleanField(default=False)

    class Meta:
        verbose_name = 'Academic Year'
        verbose_name_plural = 'Academic Years'
        ordering = ('-start_date',)
        unique_together = ('college', 'name')

    def __str__(self):
        return self.name

    def clean(self):
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError({'end_date': _('end_date cannot be before start_date')})


class Section(models.Model):
    """A class section (e.g. Grade 5 / A) taught on one branch."""
    branch = models.ForeignKey('college.Branch', on_delete=models.PROTECT, related_name='sections')
    class_name = models.CharField(max_length=64)
    name = models.CharField(max_length=16)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ('class_name', 'name')
        unique_together = ('branch', 'class_name', 'name')

    def __str__(self):
        return f"{self.class_name} / {self.name}"


class Subject(models.Model):
    college = models.ForeignKey('college.College', on_delete=models.CASCADE, related_name='subjects')
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=128)

    class Meta:
        ordering = ('code',)
        unique_together = ('college', 'code')

    def __str__(self):
        return f"{self.code} - {self.name}"


PROFILE_STATUS_CHOICES = (
    ('ACTIVE', 'Active'),
    ('INACTIVE', 'Inactive'),
    ('ALUMNI', 'Alumni'),
    ('RESIGNED', 'Resigned'),
)


def _display_name(user) -> str:
    if user is None:
        return ''
    full = user.get_full_name().strip()
    return full or user.get_username()


class StudentProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='student_profile'
    )
    reg_no = models.CharField(max_length=64, unique=True, db_index=True)
    status = models.CharField(max_length=16, choices=PROFILE_STATUS_CHOICES, default='ACTIVE')

    class Meta:
        ordering = ('reg_no',)

    def __str__(self):
        return f"Student {self.reg_no} ({self.user.username})"

    @property
    def display_name(self) -> str:
        return _display_name(self.user)

    def save(self, *args, **kwargs):
        # reg_no is immutable after creation
        if self.pk:
            old = StudentProfile.objects.filter(pk=self.pk).values_list('reg_no', flat=True).first()
            if old is not None and old != self.reg_no:
                raise ValidationError('Student reg_no is immutable and cannot be changed.')
        super().save(*args, **kwargs)


class StudentSectionAssignment(models.Model):
    """Time-bound enrollment of a student in a section.

    The open assignment (``end_date`` is null) is the student's current
    section; closed ones are kept as history.
    """
    student = models.ForeignKey(StudentProfile, on_delete=models.CASCADE, related_name='section_assignments')
    section = models.ForeignKey(Section, on_delete=models.PROTECT, related_name='student_assignments')
    start_date = models.DateField(default=date.today)
    end_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Student Section Assignment'
        verbose_name_plural = 'Student Section Assignments'
        constraints = [
            models.UniqueConstraint(fields=['student'], condition=Q(end_date__isnull=True), name='unique_active_section_per_student')
        ]

    def __str__(self):
        return f"{self.student.reg_no} -> {self.section}"

    def save(self, *args, **kwargs):
        # opening a new assignment closes the previous open one
        if self.pk is None and self.end_date is None:
            StudentSectionAssignment.objects.filter(
                student=self.student, end_date__isnull=True
            ).update(end_date=self.start_date)
        super().save(*args, **kwargs)


class StaffProfile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='staff_profile'
    )
    staff_id = models.CharField(max_length=64, unique=True, db_index=True)
    branch = models.ForeignKey('college.Branch', on_delete=models.SET_NULL, null=True, blank=True, related_name='staff')
    designation = models.CharField(max_length=128, blank=True)
    status = models.CharField(max_length=16, choices=PROFILE_STATUS_CHOICES, default='ACTIVE')

    class Meta:
        ordering = ('staff_id',)

    def __str__(self):
        return f"Staff {self.staff_id} ({self.user.username})"

    @property
    def display_name(self) -> str:
        return _display_name(self.user)


class TeachingAssignment(models.Model):
    """Assign a staff member to teach a subject for a section in an academic year."""
    staff = models.ForeignKey(StaffProfile, on_delete=models.CASCADE, related_name='teaching_assignments')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='teaching_assignments')
    section = models.ForeignKey(Section, on_delete=models.CASCADE, related_name='teaching_assignments')
    academic_year = models.ForeignKey(AcademicYear, on_delete=models.PROTECT, related_name='teaching_assignments')
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name = 'Teaching Assignment'
        verbose_name_plural = 'Teaching Assignments'
        constraints = [
            models.UniqueConstraint(
                fields=['staff', 'subject', 'section', 'academic_year'],
                name='unique_staff_subject_section_year'
            ),
        ]

    def __str__(self):
        return f"{self.staff.staff_id} -> {self.subject.code} ({self.section} | {self.academic_year})"


class AttendanceStatus(models.TextChoices):
    PRESENT = 'present', 'Present'
    ABSENT = 'absent', 'Absent'
    LATE = 'late', 'Late'
    HALF_DAY = 'half_day', 'Half Day'


ATTENDANCE_SHORT_LABELS = {
    AttendanceStatus.PRESENT: 'P',
    AttendanceStatus.ABSENT: 'A',
    AttendanceStatus.LATE: 'L',
    AttendanceStatus.HALF_DAY: 'H',
}


class PeriodAttendanceRecord(models.Model):
    """Attendance of one student in one teaching period on one date.

    Rows for a (section, period_slot, date) are written together by a single
    roster mark and afterwards only changed through the edit path, which
    appends an ``AttendanceAuditEntry`` per change.
    """
    college = models.ForeignKey('college.College', on_delete=models.CASCADE, related_name='period_attendance_records')
    section = models.ForeignKey(Section, on_delete=models.PROTECT, related_name='period_attendance_records')
    student = models.ForeignKey(StudentProfile, on_delete=models.PROTECT, related_name='period_attendance_records')
    period_slot = models.ForeignKey('timetable.PeriodSlot', on_delete=models.PROTECT, related_name='attendance_records')
    timetable_entry = models.ForeignKey(
        'timetable.TimetableEntry',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='attendance_records',
    )
    date = models.DateField()
    status = models.CharField(max_length=16, choices=AttendanceStatus.choices, default=AttendanceStatus.PRESENT)
    late_arrival_time = models.TimeField(null=True, blank=True)
    remarks = models.TextField(blank=True, default='')

    marked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='marked_period_attendance',
    )
    marked_at = models.DateTimeField(default=timezone.now)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='updated_period_attendance',
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Period Attendance Record'
        verbose_name_plural = 'Period Attendance Records'
        ordering = ('date', 'period_slot', 'student__reg_no')
        constraints = [
            models.UniqueConstraint(fields=['student', 'period_slot', 'date'], name='unique_student_period_date'),
        ]
        indexes = [
            models.Index(fields=['section', 'period_slot', 'date'], name='period_att_section_slot_date'),
        ]

    def __str__(self):
        return f"{self.student.reg_no} {self.date} slot={self.period_slot_id} {self.status}"

    @property
    def short_label(self) -> str:
        return ATTENDANCE_SHORT_LABELS.get(self.status, '')


class AuditEntryQuerySet(models.QuerySet):
    """Bulk writes would skip the per-instance guards below."""

    def update(self, **kwargs):
        raise ValidationError('Attendance audit entries are immutable.')

    def delete(self):
        raise ValidationError('Attendance audit entries cannot be deleted.')


class AttendanceAuditEntry(models.Model):
    """Append-only record of one change to a ``PeriodAttendanceRecord``."""

    class ChangeType(models.TextChoices):
        CREATE = 'create', 'Create'
        EDIT = 'edit', 'Edit'

    record = models.ForeignKey(PeriodAttendanceRecord, on_delete=models.PROTECT, related_name='audit_entries')
    change_type = models.CharField(max_length=8, choices=ChangeType.choices)

    previous_status = models.CharField(max_length=16, choices=AttendanceStatus.choices, null=True, blank=True)
    previous_remarks = models.TextField(null=True, blank=True)
    previous_late_arrival_time = models.TimeField(null=True, blank=True)
    new_status = models.CharField(max_length=16, choices=AttendanceStatus.choices)
    new_remarks = models.TextField(blank=True, default='')
    new_late_arrival_time = models.TimeField(null=True, blank=True)

    change_reason = models.TextField(blank=True, default='')
    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='attendance_audit_entries',
    )
    changed_at = models.DateTimeField(default=timezone.now)

    objects = AuditEntryQuerySet.as_manager()

    class Meta:
        verbose_name = 'Attendance Audit Entry'
        verbose_name_plural = 'Attendance Audit Entries'
        ordering = ('changed_at', 'id')

    def __str__(self):
        return f"{self.change_type} {self.previous_status or '-'} -> {self.new_status} (record {self.record_id})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError('Attendance audit entries are immutable.')
        if self.change_type == self.ChangeType.EDIT and not (self.change_reason or '').strip():
            raise ValidationError({'change_reason': 'A reason is required for an edit.'})
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Attendance audit entries cannot be deleted.')


class AttendanceSettings(models.Model):
    """Per-branch attendance policy; ``edit_window_minutes`` drives editing."""
    branch = models.OneToOneField('college.Branch', on_delete=models.CASCADE, related_name='attendance_settings')
    edit_window_minutes = models.PositiveIntegerField(default=120, validators=[MaxValueValidator(1440)])
    late_threshold_minutes = models.PositiveIntegerField(default=15, validators=[MaxValueValidator(240)])
    period_attendance_enabled = models.BooleanField(default=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Attendance Settings'
        verbose_name_plural = 'Attendance Settings'

    def __str__(self):
        return f"{self.branch} window={self.edit_window_minutes}m"
