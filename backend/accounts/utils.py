from typing import Set

from .models import RolePermission


def get_user_permissions(user) -> Set[str]:
    """Return the set of permission codes granted to *user* through their roles."""
    if user is None or not getattr(user, 'is_authenticated', False):
        return set()

    qs = RolePermission.objects.filter(role__user_roles__user=user).values_list('permission__code', flat=True).distinct()
    # Codes entered by hand sometimes carry a trailing period.
    return {str(p).strip().rstrip('.') for p in qs if p}


def get_user_college(user):
    """Return the college the user acts in, or None for unbound accounts."""
    if user is None or not getattr(user, 'is_authenticated', False):
        return None
    return getattr(user, 'college', None)
