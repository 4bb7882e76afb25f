from django.contrib import admin
from .models import Branch, College


class BranchInline(admin.TabularInline):
    model = Branch
    extra = 0


@admin.register(College)
class CollegeAdmin(admin.ModelAdmin):
    list_display = ('code', 'short_name', 'name', 'is_active')
    search_fields = ('code', 'short_name', 'name')
    list_filter = ('is_active',)
    inlines = (BranchInline,)


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'college', 'city', 'is_primary', 'is_active')
    search_fields = ('code', 'name', 'city')
    list_filter = ('college', 'is_active')
