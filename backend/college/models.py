from django.db import models


class College(models.Model):
    """An institution. Every scheduling and attendance record is scoped to one.

    Users are bound to a college through ``accounts.User.college``; the API
    resolves the caller's college from the authenticated user.
    """

    code = models.CharField(max_length=32, unique=True, help_text='Short college code (e.g. IDCS)')
    name = models.CharField(max_length=255)
    short_name = models.CharField(max_length=64, blank=True, help_text='Optional short display name')
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'College'
        verbose_name_plural = 'Colleges'

    def __str__(self):
        return f"{self.code} - {self.short_name or self.name}"


class Branch(models.Model):
    """A campus of a college. Shifts, period slots and sections live on a branch."""

    college = models.ForeignKey(College, on_delete=models.CASCADE, related_name='branches')
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=255)
    city = models.CharField(max_length=128, blank=True)
    is_primary = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Branch'
        verbose_name_plural = 'Branches'
        ordering = ('college', 'code')
        unique_together = ('college', 'code')

    def __str__(self):
        return f"{self.college.code}/{self.code} - {self.name}"
