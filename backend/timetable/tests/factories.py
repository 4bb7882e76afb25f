"""ORM builders shared by the timetable and attendance tests."""
import datetime

from django.contrib.auth import get_user_model

from academics.models import (
    AcademicYear,
    Section,
    StaffProfile,
    StudentProfile,
    StudentSectionAssignment,
    Subject,
    TeachingAssignment,
)
from accounts.models import Permission, Role, RolePermission
from college.models import Branch, College
from timetable.models import PeriodSlot, Timetable, TimetableEntry

MONDAY = 1


def make_college(code='DPS', name='Delhi Public School'):
    college = College.objects.create(code=code, name=name)
    Branch.objects.create(college=college, code='MAIN', name=f'{name} Main', is_primary=True)
    return college


def main_branch(college):
    return college.branches.get(code='MAIN')


def make_user(username, college=None, capabilities=(), **extra):
    """A user bound to ``college`` holding exactly ``capabilities``."""
    User = get_user_model()
    user = User.objects.create_user(username=username, password='pass', college=college, **extra)
    if capabilities:
        role = Role.objects.create(name=f'ROLE_{username.upper()}')
        for code in capabilities:
            perm, _ = Permission.objects.get_or_create(code=code)
            RolePermission.objects.create(role=role, permission=perm)
        user.roles.add(role)
    return user


def make_year(college, name='2024-25', start=datetime.date(2024, 6, 1), end=datetime.date(2025, 5, 31)):
    return AcademicYear.objects.create(college=college, name=name, start_date=start, end_date=end, is_active=True)


def make_section(branch, class_name='Grade 5', name='A'):
    return Section.objects.create(branch=branch, class_name=class_name, name=name)


def make_subject(college, code='MATH', name='Mathematics'):
    return Subject.objects.create(college=college, code=code, name=name)


def make_staff(college, username, first_name='', last_name='', capabilities=()):
    user = make_user(username, college=college, capabilities=capabilities, first_name=first_name, last_name=last_name)
    return StaffProfile.objects.create(user=user, staff_id=f'STF-{username.upper()}', branch=main_branch(college))


def make_student(college, section, reg_no, first_name='', start_date=datetime.date(2024, 6, 1)):
    user = make_user(f'stu_{reg_no.lower()}', college=college, first_name=first_name)
    student = StudentProfile.objects.create(user=user, reg_no=reg_no)
    StudentSectionAssignment.objects.create(student=student, section=section, start_date=start_date)
    return student


def make_slot(branch, name='P1', start=datetime.time(9, 0), end=datetime.time(9, 45), **extra):
    extra.setdefault('period_number', 1)
    return PeriodSlot.objects.create(branch=branch, name=name, start_time=start, end_time=end, **extra)


def make_timetable(section, year, name='Main timetable', **extra):
    return Timetable.objects.create(
        college=year.college,
        branch=section.branch,
        section=section,
        academic_year=year,
        name=name,
        **extra
    )


def add_entry(timetable, day, slot, subject=None, staff=None, assign=True, **extra):
    """Add an entry; with ``assign`` the teacher is also given the teaching assignment."""
    if assign and staff is not None and subject is not None:
        TeachingAssignment.objects.get_or_create(
            staff=staff, subject=subject, section=timetable.section, academic_year=timetable.academic_year,
        )
    return TimetableEntry.objects.create(
        timetable=timetable, day_of_week=day, period_slot=slot, subject=subject, staff=staff, **extra
    )
