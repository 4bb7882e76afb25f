from django.db import models
from django.contrib.auth.models import AbstractUser
from django.conf import settings


class User(AbstractUser):
    """
    Base user model.
    Students, staff and administrators are all users; what they may do is
    decided by roles + permissions, and which institution they act in by
    `college`.
    """
    roles = models.ManyToManyField(
        'Role',
        through='UserRole',
        related_name='users'
    )

    college = models.ForeignKey(
        'college.College',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='users',
    )

    mobile_no = models.CharField(
        'Mobile no',
        max_length=32,
        blank=True,
        default='',
    )

    def __str__(self):
        return self.username


class Role(models.Model):
    """
    Logical role (STAFF, ADMIN, etc.)
    """
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)

    def __str__(self):
        return self.name


class Permission(models.Model):
    """
    Atomic capability code, e.g. `timetables:publish`.
    """
    code = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)

    def __str__(self):
        return self.code


class RolePermission(models.Model):
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='role_permissions'
    )
    permission = models.ForeignKey(
        Permission,
        on_delete=models.CASCADE,
        related_name='permission_roles'
    )

    class Meta:
        unique_together = ('role', 'permission')

    def __str__(self):
        return f"{self.role.name} -> {self.permission.code}"


class UserRole(models.Model):
    """
    Assigns a role to a user. A user can hold several roles (STAFF + ADMIN).
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )
    role = models.ForeignKey(
        Role,
        on_delete=models.CASCADE,
        related_name='user_roles'
    )

    class Meta:
        unique_together = ('user', 'role')

    def __str__(self):
        return f"{self.user.username} -> {self.role.name}"
