from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    DayPatternAssignmentViewSet,
    DayPatternViewSet,
    PeriodSlotViewSet,
    ShiftViewSet,
    SubstitutionViewSet,
    TimetableViewSet,
)

router = DefaultRouter()
router.register('shifts', ShiftViewSet, basename='shift')
router.register('day-patterns', DayPatternViewSet, basename='day-pattern')
router.register('period-slots', PeriodSlotViewSet, basename='period-slot')
router.register('day-pattern-assignments', DayPatternAssignmentViewSet, basename='day-pattern-assignment')
router.register('timetables', TimetableViewSet, basename='timetable')
router.register('substitutions', SubstitutionViewSet, basename='substitution')

urlpatterns = [
    path('', include(router.urls)),
]
