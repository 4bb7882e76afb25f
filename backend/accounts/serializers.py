from rest_framework import serializers
from django.contrib.auth import get_user_model

from .utils import get_user_permissions

User = get_user_model()


class MeSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    username = serializers.CharField(read_only=True)
    email = serializers.EmailField(read_only=True)
    roles = serializers.SerializerMethodField()
    permissions = serializers.SerializerMethodField()
    profile_type = serializers.SerializerMethodField()
    college = serializers.SerializerMethodField()

    def get_roles(self, obj):
        return sorted(r.name for r in obj.roles.all())

    def get_permissions(self, obj):
        return sorted(get_user_permissions(obj))

    def get_profile_type(self, obj):
        if getattr(obj, 'staff_profile', None) is not None:
            return 'STAFF'
        if getattr(obj, 'student_profile', None) is not None:
            return 'STUDENT'
        return None

    def get_college(self, obj):
        college = getattr(obj, 'college', None)
        if college is None:
            return None
        return {'id': college.pk, 'code': college.code, 'name': college.name}
