from django.conf import settings
from django.db import models
from django.db.models import F, Q


# 0 = Sunday, matching the day numbering used by the front-end calendar.
DAYS_OF_WEEK = (
    (0, 'Sunday'),
    (1, 'Monday'),
    (2, 'Tuesday'),
    (3, 'Wednesday'),
    (4, 'Thursday'),
    (5, 'Friday'),
    (6, 'Saturday'),
)
DAY_NAMES = dict(DAYS_OF_WEEK)


def day_of_week_for(value) -> int:
    """Day number (0 = Sunday) of a ``datetime.date``."""
    return value.isoweekday() % 7


def minutes_between(start, end) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)


class Shift(models.Model):
    """Named daily time window (e.g. Morning) of a branch."""
    branch = models.ForeignKey('college.Branch', on_delete=models.CASCADE, related_name='shifts')
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20)
    start_time = models.TimeField()
    end_time = models.TimeField()
    description = models.TextField(blank=True, default='')
    display_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('display_order', 'start_time')
        constraints = [
            models.UniqueConstraint(fields=['branch', 'code'], name='unique_shift_code_per_branch'),
            models.CheckConstraint(condition=Q(end_time__gt=F('start_time')), name='shift_end_after_start'),
        ]

    def __str__(self):
        return f"{self.name} ({self.start_time:%H:%M}-{self.end_time:%H:%M})"


class DayPattern(models.Model):
    """Reusable period structure of a day, independent of the weekday it runs on."""
    college = models.ForeignKey('college.College', on_delete=models.CASCADE, related_name='day_patterns')
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20)
    description = models.TextField(blank=True, default='')
    total_periods = models.PositiveSmallIntegerField(default=8)
    display_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('display_order', 'name')
        constraints = [
            models.UniqueConstraint(fields=['college', 'code'], name='unique_day_pattern_code_per_college'),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


class DayPatternAssignment(models.Model):
    """Which day pattern a branch runs on a given weekday, if any."""
    branch = models.ForeignKey('college.Branch', on_delete=models.CASCADE, related_name='day_pattern_assignments')
    day_of_week = models.PositiveSmallIntegerField(choices=DAYS_OF_WEEK)
    day_pattern = models.ForeignKey(DayPattern, on_delete=models.SET_NULL, null=True, blank=True, related_name='assignments')
    is_working_day = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('branch', 'day_of_week')
        constraints = [
            models.UniqueConstraint(fields=['branch', 'day_of_week'], name='unique_day_assignment_per_branch'),
        ]

    def __str__(self):
        return f"{self.branch.code} {self.get_day_of_week_display()} -> {self.day_pattern or 'none'}"


class PeriodSlot(models.Model):
    class SlotType(models.TextChoices):
        REGULAR = 'regular', 'Regular'
        SHORT = 'short', 'Short'
        ASSEMBLY = 'assembly', 'Assembly'
        BREAK = 'break', 'Break'
        LUNCH = 'lunch', 'Lunch'
        ACTIVITY = 'activity', 'Activity'
        ZERO_PERIOD = 'zero_period', 'Zero Period'

    TEACHING_TYPES = (SlotType.REGULAR, SlotType.SHORT)

    branch = models.ForeignKey('college.Branch', on_delete=models.CASCADE, related_name='period_slots')
    name = models.CharField(max_length=50)
    period_number = models.PositiveSmallIntegerField(null=True, blank=True)
    slot_type = models.CharField(max_length=20, choices=SlotType.choices, default=SlotType.REGULAR)
    start_time = models.TimeField()
    end_time = models.TimeField()
    # always derived from start_time/end_time in save()
    duration_minutes = models.PositiveSmallIntegerField(default=0, editable=False)
    day_pattern = models.ForeignKey(DayPattern, on_delete=models.PROTECT, null=True, blank=True, related_name='period_slots')
    shift = models.ForeignKey(Shift, on_delete=models.SET_NULL, null=True, blank=True, related_name='period_slots')
    display_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('display_order', 'start_time')
        constraints = [
            models.CheckConstraint(condition=Q(end_time__gt=F('start_time')), name='period_slot_end_after_start'),
        ]

    def __str__(self):
        return f"{self.name} ({self.start_time:%H:%M}-{self.end_time:%H:%M})"

    @property
    def is_teaching_period(self) -> bool:
        return self.slot_type in self.TEACHING_TYPES

    def save(self, *args, **kwargs):
        if self.start_time is not None and self.end_time is not None:
            self.duration_minutes = max(0, minutes_between(self.start_time, self.end_time))
            update_fields = kwargs.get('update_fields')
            if update_fields is not None and 'duration_minutes' not in update_fields:
                kwargs['update_fields'] = list(update_fields) + ['duration_minutes']
        super().save(*args, **kwargs)


class Timetable(models.Model):
    """Weekly schedule of one section in one academic year.

    Lifecycle is draft -> published -> archived. At most one timetable per
    (section, academic_year) may be published; the partial unique constraint
    below is what enforces it under concurrent publishes.
    """

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        PUBLISHED = 'published', 'Published'
        ARCHIVED = 'archived', 'Archived'

    college = models.ForeignKey('college.College', on_delete=models.CASCADE, related_name='timetables')
    branch = models.ForeignKey('college.Branch', on_delete=models.PROTECT, related_name='timetables')
    section = models.ForeignKey('academics.Section', on_delete=models.PROTECT, related_name='timetables')
    academic_year = models.ForeignKey('academics.AcademicYear', on_delete=models.PROTECT, related_name='timetables')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True, default='')
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT)
    effective_from = models.DateField(null=True, blank=True)
    effective_to = models.DateField(null=True, blank=True)
    published_at = models.DateTimeField(null=True, blank=True)
    published_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    updated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('-created_at', '-id')
        constraints = [
            models.UniqueConstraint(
                fields=['section', 'academic_year'],
                condition=Q(status='published'),
                name='unique_published_timetable_per_section_year',
            ),
        ]
        indexes = [
            models.Index(fields=['college', 'status'], name='timetable_college_status_idx'),
        ]

    def __str__(self):
        return f"{self.name} [{self.status}]"

    @property
    def is_draft(self) -> bool:
        return self.status == self.Status.DRAFT


class TimetableEntry(models.Model):
    """One (day_of_week, period_slot) -> (subject, staff) binding of a timetable."""
    timetable = models.ForeignKey(Timetable, on_delete=models.CASCADE, related_name='entries')
    day_of_week = models.PositiveSmallIntegerField(choices=DAYS_OF_WEEK)
    period_slot = models.ForeignKey(PeriodSlot, on_delete=models.PROTECT, related_name='timetable_entries')
    subject = models.ForeignKey('academics.Subject', on_delete=models.PROTECT, null=True, blank=True, related_name='timetable_entries')
    staff = models.ForeignKey('academics.StaffProfile', on_delete=models.PROTECT, null=True, blank=True, related_name='timetable_entries')
    room_number = models.CharField(max_length=50, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    is_free_period = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'Timetable entries'
        ordering = ('day_of_week', 'period_slot__start_time')
        constraints = [
            models.UniqueConstraint(fields=['timetable', 'day_of_week', 'period_slot'], name='unique_entry_per_day_slot'),
        ]

    def __str__(self):
        return f"{self.timetable_id} {DAY_NAMES.get(self.day_of_week)} {self.period_slot}"


class Substitution(models.Model):
    """A substitute teacher covering some of an absent teacher's periods on one date."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'

    college = models.ForeignKey('college.College', on_delete=models.CASCADE, related_name='substitutions')
    branch = models.ForeignKey('college.Branch', on_delete=models.CASCADE, related_name='substitutions')
    original_staff = models.ForeignKey('academics.StaffProfile', on_delete=models.CASCADE, related_name='absences_covered')
    substitute_staff = models.ForeignKey('academics.StaffProfile', on_delete=models.CASCADE, related_name='substitutions_taken')
    substitution_date = models.DateField()
    reason = models.CharField(max_length=255, blank=True, default='')
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    notes = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    approved_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    approved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ('-substitution_date', '-created_at')
        constraints = [
            models.CheckConstraint(
                condition=~Q(original_staff=F('substitute_staff')),
                name='substitution_different_staff',
            ),
        ]
        indexes = [
            models.Index(fields=['college', 'substitution_date', 'status'], name='substitution_date_status_idx'),
        ]

    def __str__(self):
        return f"{self.substitution_date} {self.original_staff_id} -> {self.substitute_staff_id} [{self.status}]"


class SubstitutionPeriod(models.Model):
    """One covered period of a substitution."""
    substitution = models.ForeignKey(Substitution, on_delete=models.CASCADE, related_name='periods')
    period_slot = models.ForeignKey(PeriodSlot, on_delete=models.CASCADE, related_name='substitution_periods')
    timetable_entry = models.ForeignKey(
        TimetableEntry, on_delete=models.SET_NULL, null=True, blank=True, related_name='substitution_periods',
    )
    subject = models.ForeignKey('academics.Subject', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    section = models.ForeignKey('academics.Section', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    room_number = models.CharField(max_length=50, blank=True, default='')
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ('period_slot__start_time', 'pk')
        constraints = [
            models.UniqueConstraint(fields=['substitution', 'period_slot'], name='unique_substitution_period_slot'),
        ]

    def __str__(self):
        return f"{self.substitution_id} {self.period_slot}"
