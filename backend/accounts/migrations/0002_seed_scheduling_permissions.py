from django.db import migrations

ADMIN_CODES = [
    'shift:view',
    'shift:manage',
    'timetable:view',
    'timetable:manage',
    'timetables:read',
    'timetables:create',
    'timetables:update',
    'timetables:delete',
    'timetables:publish',
    'student_attendance:view_class',
    'student_attendance:mark_class',
    'student_attendance:admin_edit',
    'student_attendance:manage_settings',
]

STAFF_CODES = [
    'shift:view',
    'timetable:view',
    'timetables:read',
    'student_attendance:view_class',
    'student_attendance:mark_class',
]


def add_scheduling_permissions(apps, schema_editor):
    Role = apps.get_model('accounts', 'Role')
    Permission = apps.get_model('accounts', 'Permission')
    RolePermission = apps.get_model('accounts', 'RolePermission')

    for role_name, codes in (('ADMIN', ADMIN_CODES), ('STAFF', STAFF_CODES)):
        role, _ = Role.objects.get_or_create(name=role_name)
        for code in codes:
            perm, _ = Permission.objects.get_or_create(code=code, defaults={'description': 'Scheduling and attendance'})
            RolePermission.objects.get_or_create(role=role, permission=perm)


def remove_scheduling_permissions(apps, schema_editor):
    Permission = apps.get_model('accounts', 'Permission')
    RolePermission = apps.get_model('accounts', 'RolePermission')

    RolePermission.objects.filter(permission__code__in=ADMIN_CODES).delete()
    Permission.objects.filter(code__in=ADMIN_CODES).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('accounts', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(add_scheduling_permissions, remove_scheduling_permissions),
    ]
