from django.urls import path

from .views import (
    AttendanceEditStatusView,
    AttendanceHistoryView,
    AttendanceRecordView,
    AttendanceSettingsView,
    MyClassesView,
    PeriodRosterView,
    SectionPeriodsView,
)

# Included under `/api/student-attendance/`.
urlpatterns = [
    path('periods/', SectionPeriodsView.as_view(), name='student-attendance-periods'),
    path('my-classes/', MyClassesView.as_view(), name='student-attendance-my-classes'),
    path('period/<int:period_id>/', PeriodRosterView.as_view(), name='student-attendance-period'),
    path('settings/', AttendanceSettingsView.as_view(), name='student-attendance-settings'),
    path('<int:pk>/', AttendanceRecordView.as_view(), name='student-attendance-record'),
    path('<int:pk>/history/', AttendanceHistoryView.as_view(), name='student-attendance-history'),
    path('<int:pk>/edit-status/', AttendanceEditStatusView.as_view(), name='student-attendance-edit-status'),
]
