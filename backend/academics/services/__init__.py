from typing import List, Optional

from academics.models import (
    AcademicYear,
    StudentProfile,
    StudentSectionAssignment,
    TeachingAssignment,
)


def current_students(section, on_date=None) -> List[StudentProfile]:
    """Students enrolled in ``section``, optionally as of ``on_date``."""
    assignments = StudentSectionAssignment.objects.filter(section=section)
    if on_date is None:
        assignments = assignments.filter(end_date__isnull=True)
    else:
        assignments = assignments.filter(start_date__lte=on_date).exclude(end_date__lte=on_date)
    return list(
        StudentProfile.objects
        .filter(pk__in=assignments.values('student_id'), status='ACTIVE')
        .select_related('user')
        .order_by('reg_no')
    )


def academic_year_for(college, on_date) -> Optional[AcademicYear]:
    return (
        AcademicYear.objects
        .filter(college=college, start_date__lte=on_date, end_date__gte=on_date)
        .order_by('-start_date')
        .first()
    )


def has_active_teaching_assignment(staff_id, subject_id, section_id, academic_year_id) -> bool:
    return TeachingAssignment.objects.filter(
        staff_id=staff_id,
        subject_id=subject_id,
        section_id=section_id,
        academic_year_id=academic_year_id,
        is_active=True,
    ).exists()
