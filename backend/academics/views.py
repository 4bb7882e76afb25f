from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from schoolerp.api import items_payload, query_date, query_int

from .serializers import (
    AttendanceAuditEntrySerializer,
    AttendanceSettingsSerializer,
    AttendanceSettingsWriteSerializer,
    EditAttendanceSerializer,
    MarkAttendanceSerializer,
    PeriodAttendanceRecordSerializer,
    roster_payload,
)
from .services import period_attendance


class SectionPeriodsView(APIView):
    """Teaching periods of a section on a date, with marking progress."""
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        periods = period_attendance.list_periods(
            request.user,
            query_int(request, 'section_id', required=True),
            query_date(request, 'date', required=True),
        )
        return Response(items_payload(periods))


class MyClassesView(APIView):
    """Sections the caller takes on a date, with marking progress."""
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        rows = period_attendance.teacher_sections(
            request.user,
            query_date(request, 'date', required=True),
            branch_id=query_int(request, 'branch_id'),
        )
        return Response(items_payload(rows))


class PeriodRosterView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, period_id: int):
        roster = period_attendance.get_roster(
            request.user,
            query_int(request, 'section_id', required=True),
            period_id,
            query_date(request, 'date', required=True),
        )
        return Response(roster_payload(roster))

    def post(self, request, period_id: int):
        section_id = query_int(request, 'section_id', required=True)
        on_date = query_date(request, 'date', required=True)
        serializer = MarkAttendanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = period_attendance.mark_period_attendance(
            request.user,
            section_id,
            period_id,
            on_date,
            serializer.validated_data['students'],
            reason=serializer.validated_data.get('reason'),
        )
        result['date'] = result['date'].isoformat()
        code = status.HTTP_201_CREATED if result['created'] and not result['updated'] else status.HTTP_200_OK
        return Response(result, status=code)


class AttendanceRecordView(APIView):
    permission_classes = (IsAuthenticated,)

    def put(self, request, pk: int):
        serializer = EditAttendanceSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        record = period_attendance.edit_attendance(request.user, pk, serializer.validated_data)
        return Response(PeriodAttendanceRecordSerializer(record).data)


class AttendanceHistoryView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, pk: int):
        history = period_attendance.attendance_history(request.user, pk)
        return Response({
            'attendance_id': history['attendance_id'],
            'student_id': history['student_id'],
            'student_name': history['student_name'],
            'date': history['date'].isoformat(),
            'entries': AttendanceAuditEntrySerializer(history['entries'], many=True).data,
            'total_changes': history['total_changes'],
        })


class AttendanceEditStatusView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request, pk: int):
        return Response(period_attendance.edit_status(request.user, pk).as_dict())


class AttendanceSettingsView(APIView):
    permission_classes = (IsAuthenticated,)

    def get(self, request):
        current = period_attendance.get_settings(request.user, query_int(request, 'branch_id', required=True))
        return Response(AttendanceSettingsSerializer(current).data)

    def put(self, request):
        branch_id = query_int(request, 'branch_id', required=True)
        serializer = AttendanceSettingsWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        current = period_attendance.update_settings(request.user, branch_id, serializer.validated_data)
        return Response(AttendanceSettingsSerializer(current).data)
