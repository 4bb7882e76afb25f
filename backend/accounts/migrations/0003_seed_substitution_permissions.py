from django.db import migrations

ADMIN_CODES = [
    'substitution:view',
    'substitution:create',
    'substitution:update',
    'substitution:delete',
    'substitution:approve',
]

STAFF_CODES = [
    'substitution:view',
]


def add_substitution_permissions(apps, schema_editor):
    Role = apps.get_model('accounts', 'Role')
    Permission = apps.get_model('accounts', 'Permission')
    RolePermission = apps.get_model('accounts', 'RolePermission')

    for role_name, codes in (('ADMIN', ADMIN_CODES), ('STAFF', STAFF_CODES)):
        role, _ = Role.objects.get_or_create(name=role_name)
        for code in codes:
            perm, _ = Permission.objects.get_or_create(code=code, defaults={'description': 'Teacher substitutions'})
            RolePermission.objects.get_or_create(role=role, permission=perm)


def remove_substitution_permissions(apps, schema_editor):
    Permission = apps.get_model('accounts', 'Permission')
    RolePermission = apps.get_model('accounts', 'RolePermission')

    RolePermission.objects.filter(permission__code__in=ADMIN_CODES).delete()
    Permission.objects.filter(code__in=ADMIN_CODES).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('accounts', '0002_seed_scheduling_permissions'),
    ]

    operations = [
        migrations.RunPython(add_substitution_permissions, remove_substitution_permissions),
    ]
