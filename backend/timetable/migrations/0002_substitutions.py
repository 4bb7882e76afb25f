from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion

STATUS_CHOICES = [('pending', 'Pending'), ('confirmed', 'Confirmed'), ('completed', 'Completed'), ('cancelled', 'Cancelled')]


class Migration(migrations.Migration):

    dependencies = [
        ('academics', '0001_initial'),
        ('college', '0001_initial'),
        ('timetable', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Substitution',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('substitution_date', models.DateField()),
                ('reason', models.CharField(blank=True, default='', max_length=255)),
                ('status', models.CharField(choices=STATUS_CHOICES, default='pending', max_length=16)),
                ('notes', models.TextField(blank=True, default='')),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('approved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('branch', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='substitutions', to='college.branch')),
                ('college', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='substitutions', to='college.college')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('original_staff', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='absences_covered', to='academics.staffprofile')),
                ('substitute_staff', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='substitutions_taken', to='academics.staffprofile')),
            ],
            options={
                'ordering': ('-substitution_date', '-created_at'),
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('original_staff', models.F('substitute_staff')), _negated=True),
                        name='substitution_different_staff',
                    ),
                ],
                'indexes': [
                    models.Index(fields=['college', 'substitution_date', 'status'], name='substitution_date_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SubstitutionPeriod',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('room_number', models.CharField(blank=True, default='', max_length=50)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('period_slot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='substitution_periods', to='timetable.periodslot')),
                ('section', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='academics.section')),
                ('subject', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='academics.subject')),
                ('substitution', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='periods', to='timetable.substitution')),
                ('timetable_entry', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='substitution_periods', to='timetable.timetableentry')),
            ],
            options={
                'ordering': ('period_slot__start_time', 'pk'),
                'constraints': [
                    models.UniqueConstraint(fields=('substitution', 'period_slot'), name='unique_substitution_period_slot'),
                ],
            },
        ),
    ]
