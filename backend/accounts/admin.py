from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import Permission, Role, RolePermission, User, UserRole


class UserRoleInline(admin.TabularInline):
    model = UserRole
    extra = 0


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ('username', 'email', 'college', 'is_staff', 'get_roles')
    list_filter = DjangoUserAdmin.list_filter + ('college',)
    inlines = (UserRoleInline,)

    fieldsets = DjangoUserAdmin.fieldsets + (
        ('Institution', {'fields': ('college', 'mobile_no')}),
    )

    @admin.display(description='Roles')
    def get_roles(self, obj):
        return ', '.join(r.name for r in obj.roles.all())


class RolePermissionInline(admin.TabularInline):
    model = RolePermission
    extra = 0


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ('name', 'description')
    search_fields = ('name',)
    inlines = (RolePermissionInline,)


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ('code', 'description')
    search_fields = ('code',)
