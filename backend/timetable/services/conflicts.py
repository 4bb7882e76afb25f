"""Teacher double-booking detection.

Two period slots clash when their half-open ranges ``[start, end)`` overlap,
i.e. ``s1 < e2 and s2 < e1``; touching ranges (one ends when the next
starts) do not clash. Only entries of *published* timetables count as
commitments.
"""
import datetime
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

from timetable.models import DAY_NAMES, PeriodSlot, Timetable, TimetableEntry


def ranges_overlap(s1, e1, s2, e2) -> bool:
    return s1 < e2 and s2 < e1


@dataclass(frozen=True)
class TeacherConflict:
    staff_id: int
    staff_name: str
    day_of_week: int
    day_name: str
    period_slot_id: int
    period_name: str
    start_time: datetime.time
    end_time: datetime.time
    timetable_id: int
    entry_id: int
    section_id: int
    section_name: str
    subject_name: str

    @classmethod
    def from_entry(cls, entry: TimetableEntry) -> 'TeacherConflict':
        slot = entry.period_slot
        section = entry.timetable.section
        return cls(
            staff_id=entry.staff_id,
            staff_name=entry.staff.display_name if entry.staff else '',
            day_of_week=entry.day_of_week,
            day_name=DAY_NAMES.get(entry.day_of_week, ''),
            period_slot_id=slot.pk,
            period_name=slot.name,
            start_time=slot.start_time,
            end_time=slot.end_time,
            timetable_id=entry.timetable_id,
            entry_id=entry.pk,
            section_id=section.pk,
            section_name=str(section),
            subject_name=entry.subject.name if entry.subject else '',
        )

    def as_dict(self) -> dict:
        data = asdict(self)
        data['start_time'] = self.start_time.strftime('%H:%M')
        data['end_time'] = self.end_time.strftime('%H:%M')
        return data

    def describe(self) -> str:
        return (
            f"{self.staff_name} is already teaching {self.section_name} on {self.day_name} "
            f"{self.period_name} ({self.start_time:%H:%M}-{self.end_time:%H:%M})"
        )


def detect_overlaps(start_time, end_time, commitments: Iterable[TimetableEntry]) -> List[TimetableEntry]:
    """Return the commitments whose slot overlaps ``[start_time, end_time)``."""
    return [
        entry for entry in commitments
        if ranges_overlap(start_time, end_time, entry.period_slot.start_time, entry.period_slot.end_time)
    ]


def published_commitments(college, staff_id: int, day_of_week: int, exclude_timetable_id: Optional[int] = None):
    qs = (
        TimetableEntry.objects
        .filter(
            timetable__college=college,
            timetable__status=Timetable.Status.PUBLISHED,
            staff_id=staff_id,
            day_of_week=day_of_week,
            is_free_period=False,
        )
        .select_related('period_slot', 'staff__user', 'subject', 'timetable__section')
        .order_by('period_slot__start_time', 'pk')
    )
    if exclude_timetable_id is not None:
        qs = qs.exclude(timetable_id=exclude_timetable_id)
    return qs


def find_conflicts(college, staff_id: int, day_of_week: int, period_slot: PeriodSlot,
                   exclude_timetable_id: Optional[int] = None) -> List[TeacherConflict]:
    commitments = published_commitments(college, staff_id, day_of_week, exclude_timetable_id)
    overlapping = detect_overlaps(period_slot.start_time, period_slot.end_time, commitments)
    return [TeacherConflict.from_entry(entry) for entry in overlapping]


def find_conflict(college, staff_id: int, day_of_week: int, period_slot: PeriodSlot,
                  exclude_timetable_id: Optional[int] = None) -> Optional[TeacherConflict]:
    conflicts = find_conflicts(college, staff_id, day_of_week, period_slot, exclude_timetable_id)
    return conflicts[0] if conflicts else None
