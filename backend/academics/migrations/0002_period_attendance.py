from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone

STATUS_CHOICES = [('present', 'Present'), ('absent', 'Absent'), ('late', 'Late'), ('half_day', 'Half Day')]


class Migration(migrations.Migration):

    dependencies = [
        ('academics', '0001_initial'),
        ('college', '0001_initial'),
        ('timetable', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PeriodAttendanceRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField()),
                ('status', models.CharField(choices=STATUS_CHOICES, default='present', max_length=16)),
                ('late_arrival_time', models.TimeField(blank=True, null=True)),
                ('remarks', models.TextField(blank=True, default='')),
                ('marked_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('college', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='period_attendance_records', to='college.college')),
                ('marked_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='marked_period_attendance', to=settings.AUTH_USER_MODEL)),
                ('period_slot', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='attendance_records', to='timetable.periodslot')),
                ('section', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='period_attendance_records', to='academics.section')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='period_attendance_records', to='academics.studentprofile')),
                ('timetable_entry', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='attendance_records', to='timetable.timetableentry')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='updated_period_attendance', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Period Attendance Record',
                'verbose_name_plural': 'Period Attendance Records',
                'ordering': ('date', 'period_slot', 'student__reg_no'),
                'constraints': [models.UniqueConstraint(fields=('student', 'period_slot', 'date'), name='unique_student_period_date')],
                'indexes': [models.Index(fields=['section', 'period_slot', 'date'], name='period_att_section_slot_date')],
            },
        ),
        migrations.CreateModel(
            name='AttendanceAuditEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('change_type', models.CharField(choices=[('create', 'Create'), ('edit', 'Edit')], max_length=8)),
                ('previous_status', models.CharField(blank=True, choices=STATUS_CHOICES, max_length=16, null=True)),
                ('previous_remarks', models.TextField(blank=True, null=True)),
                ('previous_late_arrival_time', models.TimeField(blank=True, null=True)),
                ('new_status', models.CharField(choices=STATUS_CHOICES, max_length=16)),
                ('new_remarks', models.TextField(blank=True, default='')),
                ('new_late_arrival_time', models.TimeField(blank=True, null=True)),
                ('change_reason', models.TextField(blank=True, default='')),
                ('changed_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('changed_by', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='attendance_audit_entries', to=settings.AUTH_USER_MODEL)),
                ('record', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='audit_entries', to='academics.periodattendancerecord')),
            ],
            options={
                'verbose_name': 'Attendance Audit Entry',
                'verbose_name_plural': 'Attendance Audit Entries',
                'ordering': ('changed_at', 'id'),
            },
        ),
        migrations.CreateModel(
            name='AttendanceSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('edit_window_minutes', models.PositiveIntegerField(default=120, validators=[django.core.validators.MaxValueValidator(1440)])),
                ('late_threshold_minutes', models.PositiveIntegerField(default=15, validators=[django.core.validators.MaxValueValidator(240)])),
                ('period_attendance_enabled', models.BooleanField(default=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('branch', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='attendance_settings', to='college.branch')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Attendance Settings',
                'verbose_name_plural': 'Attendance Settings',
            },
        ),
    ]
