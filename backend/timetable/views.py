from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from schoolerp.api import items_payload, query_bool, query_date, query_int, query_int_list

from .serializers import (
    BulkEntriesSerializer,
    DayPatternAssignmentSerializer,
    DayPatternAssignmentWriteSerializer,
    DayPatternSerializer,
    DayPatternWriteSerializer,
    PeriodSlotSerializer,
    PeriodSlotWriteSerializer,
    ShiftSerializer,
    ShiftWriteSerializer,
    SubstitutionSerializer,
    SubstitutionUpdateSerializer,
    SubstitutionWriteSerializer,
    TeacherScheduleEntrySerializer,
    TimetableDetailSerializer,
    TimetableEntrySerializer,
    TimetableEntryWriteSerializer,
    TimetableSerializer,
    TimetableWriteSerializer,
    group_by_day,
)
from .services import builder, substitutions, templates


def _validated(serializer_class, request, partial=False, data=None):
    serializer = serializer_class(data=request.data if data is None else data, partial=partial)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class TemplateEntityViewSet(viewsets.ViewSet):
    """CRUD plus toggle-active over one template-store entity.

    Subclasses bind the service functions and the read/write serializers.
    """
    permission_classes = (IsAuthenticated,)
    lookup_value_regex = r'\d+'
    read_serializer = None
    write_serializer = None

    def list_filters(self, request):
        return {'is_active': query_bool(request, 'is_active')}

    def list(self, request):
        items = self.list_items(request.user, **self.list_filters(request))
        return Response(items_payload(self.read_serializer(items, many=True).data))

    def retrieve(self, request, pk=None):
        return Response(self.read_serializer(self.get_item(request.user, pk)).data)

    def create(self, request):
        item = self.create_item(request.user, _validated(self.write_serializer, request))
        return Response(self.read_serializer(item).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        item = self.update_item(request.user, pk, _validated(self.write_serializer, request, partial=True))
        return Response(self.read_serializer(item).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk)

    def destroy(self, request, pk=None):
        self.delete_item(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='toggle-active')
    def toggle_active(self, request, pk=None):
        return Response(self.read_serializer(self.toggle_item(request.user, pk)).data)


class ShiftViewSet(TemplateEntityViewSet):
    read_serializer = ShiftSerializer
    write_serializer = ShiftWriteSerializer
    list_items = staticmethod(templates.list_shifts)
    get_item = staticmethod(templates.get_shift)
    create_item = staticmethod(templates.create_shift)
    update_item = staticmethod(templates.update_shift)
    delete_item = staticmethod(templates.delete_shift)
    toggle_item = staticmethod(templates.toggle_shift)

    def list_filters(self, request):
        filters = super().list_filters(request)
        filters['branch_id'] = query_int(request, 'branch_id')
        return filters


class DayPatternViewSet(TemplateEntityViewSet):
    read_serializer = DayPatternSerializer
    write_serializer = DayPatternWriteSerializer
    list_items = staticmethod(templates.list_day_patterns)
    get_item = staticmethod(templates.get_day_pattern)
    create_item = staticmethod(templates.create_day_pattern)
    update_item = staticmethod(templates.update_day_pattern)
    delete_item = staticmethod(templates.delete_day_pattern)
    toggle_item = staticmethod(templates.toggle_day_pattern)


class PeriodSlotViewSet(TemplateEntityViewSet):
    read_serializer = PeriodSlotSerializer
    write_serializer = PeriodSlotWriteSerializer
    list_items = staticmethod(templates.list_period_slots)
    get_item = staticmethod(templates.get_period_slot)
    create_item = staticmethod(templates.create_period_slot)
    update_item = staticmethod(templates.update_period_slot)
    delete_item = staticmethod(templates.delete_period_slot)
    toggle_item = staticmethod(templates.toggle_period_slot)

    def list_filters(self, request):
        filters = super().list_filters(request)
        filters.update(
            branch_id=query_int(request, 'branch_id'),
            day_pattern_id=query_int(request, 'day_pattern_id'),
            shift_id=query_int(request, 'shift_id'),
            slot_type=request.query_params.get('slot_type') or None,
        )
        return filters


class DayPatternAssignmentViewSet(viewsets.ViewSet):
    permission_classes = (IsAuthenticated,)
    lookup_field = 'day_of_week'
    lookup_value_regex = r'\d+'

    def list(self, request):
        rows = templates.list_day_assignments(request.user, query_int(request, 'branch_id', required=True))
        return Response(items_payload(DayPatternAssignmentSerializer(rows, many=True).data))

    def retrieve(self, request, day_of_week=None):
        row = templates.get_day_assignment(request.user, query_int(request, 'branch_id', required=True), day_of_week)
        return Response(DayPatternAssignmentSerializer(row).data)

    def update(self, request, day_of_week=None):
        changes = _validated(DayPatternAssignmentWriteSerializer, request, partial=True)
        row, created = templates.upsert_day_assignment(
            request.user, query_int(request, 'branch_id', required=True), day_of_week, changes,
        )
        return Response(
            DayPatternAssignmentSerializer(row).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class TimetableViewSet(viewsets.ViewSet):
    permission_classes = (IsAuthenticated,)
    lookup_value_regex = r'\d+'

    def list(self, request):
        timetables = builder.list_timetables(
            request.user,
            branch_id=query_int(request, 'branch_id'),
            section_id=query_int(request, 'section_id'),
            academic_year_id=query_int(request, 'academic_year_id'),
            status=request.query_params.get('status') or None,
        )
        return Response(items_payload(TimetableSerializer(timetables, many=True).data))

    def retrieve(self, request, pk=None):
        return Response(TimetableDetailSerializer(builder.get_timetable(request.user, pk)).data)

    def create(self, request):
        timetable = builder.create_timetable(request.user, _validated(TimetableWriteSerializer, request))
        return Response(TimetableSerializer(timetable).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        changes = _validated(TimetableWriteSerializer, request, partial=True)
        return Response(TimetableSerializer(builder.update_timetable(request.user, pk, changes)).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk)

    def destroy(self, request, pk=None):
        builder.delete_timetable(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def publish(self, request, pk=None):
        return Response(TimetableSerializer(builder.publish_timetable(request.user, pk)).data)

    @action(detail=True, methods=['post'])
    def archive(self, request, pk=None):
        return Response(TimetableSerializer(builder.archive_timetable(request.user, pk)).data)

    @action(detail=True, methods=['get', 'post'])
    def entries(self, request, pk=None):
        if request.method == 'GET':
            _, entries = builder.list_entries(request.user, pk)
            return Response(items_payload(TimetableEntrySerializer(entries, many=True).data))

        entry, created, warnings = builder.upsert_entry(
            request.user, pk, _validated(TimetableEntryWriteSerializer, request),
        )
        return Response(
            {'entry': TimetableEntrySerializer(entry).data, 'warnings': warnings},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=['post'], url_path='entries/bulk')
    def bulk_entries(self, request, pk=None):
        rows = _validated(BulkEntriesSerializer, request)['entries']
        result = builder.bulk_upsert_entries(request.user, pk, rows)
        payload = items_payload(TimetableEntrySerializer(result['entries'], many=True).data)
        payload.update(created=result['created'], updated=result['updated'], warnings=result['warnings'])
        return Response(payload)

    @action(detail=True, methods=['delete'], url_path=r'entries/(?P<entry_id>\d+)')
    def delete_entry(self, request, pk=None, entry_id=None):
        builder.delete_entry(request.user, pk, entry_id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'])
    def conflicts(self, request):
        found = builder.conflicts_for(
            request.user,
            staff_id=query_int(request, 'staff_id', required=True),
            day_of_week=query_int(request, 'day_of_week', required=True),
            period_slot_id=query_int(request, 'period_slot_id', required=True),
            exclude_timetable_id=query_int(request, 'exclude_timetable_id'),
        )
        return Response({'has_conflict': bool(found), 'conflicts': [c.as_dict() for c in found]})

    @action(detail=False, methods=['get'], url_path=r'section/(?P<section_id>\d+)')
    def section(self, request, section_id=None):
        timetable, entries = builder.section_timetable(
            request.user, section_id, academic_year_id=query_int(request, 'academic_year_id'),
        )
        return Response({
            'timetable': TimetableSerializer(timetable).data,
            'days': group_by_day(entries),
            'total_entries': len(entries),
        })

    @action(detail=False, methods=['get'], url_path=r'teacher/(?P<staff_id>\d+)')
    def teacher(self, request, staff_id=None):
        staff, entries = builder.teacher_schedule(
            request.user, staff_id, academic_year_id=query_int(request, 'academic_year_id'),
        )
        return Response({
            'staff_id': staff.pk,
            'staff_name': staff.display_name,
            'days': group_by_day(entries, TeacherScheduleEntrySerializer),
            'total_periods': len(entries),
        })


class SubstitutionViewSet(viewsets.ViewSet):
    permission_classes = (IsAuthenticated,)
    lookup_value_regex = r'\d+'

    def list(self, request):
        rows = substitutions.list_substitutions(
            request.user,
            branch_id=query_int(request, 'branch_id'),
            original_staff_id=query_int(request, 'original_staff_id'),
            substitute_staff_id=query_int(request, 'substitute_staff_id'),
            start_date=query_date(request, 'start_date'),
            end_date=query_date(request, 'end_date'),
            status=request.query_params.get('status') or None,
        )
        return Response(items_payload(SubstitutionSerializer(rows, many=True).data))

    def retrieve(self, request, pk=None):
        return Response(SubstitutionSerializer(substitutions.get_substitution(request.user, pk)).data)

    def create(self, request):
        substitution = substitutions.create_substitution(request.user, _validated(SubstitutionWriteSerializer, request))
        return Response(SubstitutionSerializer(substitution).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        changes = _validated(SubstitutionUpdateSerializer, request, partial=True)
        return Response(SubstitutionSerializer(substitutions.update_substitution(request.user, pk, changes)).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk)

    def destroy(self, request, pk=None):
        substitutions.delete_substitution(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        return Response(SubstitutionSerializer(substitutions.confirm_substitution(request.user, pk)).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        return Response(SubstitutionSerializer(substitutions.cancel_substitution(request.user, pk)).data)

    @action(detail=False, methods=['get'], url_path='available-teachers')
    def available_teachers(self, request):
        rows = substitutions.available_teachers(
            request.user,
            branch_id=query_int(request, 'branch_id', required=True),
            on_date=query_date(request, 'date', required=True),
            period_slot_ids=query_int_list(request, 'period_slot_ids', required=True),
            exclude_staff_id=query_int(request, 'exclude_staff_id'),
        )
        return Response(items_payload(rows))

    @action(detail=False, methods=['get'], url_path='absence-periods')
    def absence_periods(self, request):
        entries = substitutions.teacher_absence_periods(
            request.user,
            staff_id=query_int(request, 'staff_id', required=True),
            on_date=query_date(request, 'date', required=True),
        )
        return Response(items_payload(TeacherScheduleEntrySerializer(entries, many=True).data))
