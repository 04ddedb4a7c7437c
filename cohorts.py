import logging
import re
from collections import OrderedDict
from datetime import date
from typing import Dict, List, Optional, Tuple

from models import Cohort, Department, Student, DEFAULT_SECTION_CAPACITY
from roster_store import RosterStore

ACADEMIC_YEARS = ('1st Year', '2nd Year', '3rd Year', '4th Year')

_ORDINALS = {1: '1st', 2: '2nd', 3: '3rd', 4: '4th'}


def academic_year(batch, current_year: int) -> Optional[str]:
    """
    Map an enrollment batch to its year-of-study label.

    2025 seen from 2025 is the "1st Year", 2024 the "2nd Year". Batches in
    the future give "0th Year" and below; a batch that is not a number gives None.
    """
    try:
        batch_year = int(str(batch).strip())
    except (TypeError, ValueError):
        return None
    year_of_study = current_year - batch_year + 1
    return f"{_ORDINALS.get(year_of_study, f'{year_of_study}th')} Year"


def year_ordinal(label: str) -> int:
    digits = re.sub(r'\D', '', label or '')
    return int(digits) if digits else 0


class CohortResolver:
    """
    Computes cohort occupancy straight from the roster store.

    Nothing is cached between calls: every count reflects the roster as it
    is at the moment of the read.
    """

    def __init__(self, store: RosterStore, capacity: int = DEFAULT_SECTION_CAPACITY,
                 current_year: Optional[int] = None):
        if capacity <= 0:
            raise ValueError("Section capacity must be positive")
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.capacity = capacity
        self._current_year = current_year

    @property
    def current_year(self) -> int:
        return self._current_year or date.today().year

    def academic_year_of(self, student: Student) -> Optional[str]:
        return academic_year(student.batch, self.current_year)

    def capacity_for(self, department: Department) -> int:
        return department.max_students_per_section or self.capacity

    def list_cohorts(self, departments: Optional[List[Department]] = None) -> List[Cohort]:
        if departments is None:
            departments = self.store.list_departments()
        cohorts = []
        for department in departments:
            for year in ACADEMIC_YEARS:
                cohorts.extend(self._build_cohorts(department, year))
        return cohorts

    def cohorts_for(self, department: str, year: str) -> List[Cohort]:
        return self._build_cohorts(self.store.get_department(department), year)

    def _build_cohorts(self, department: Department, year: str) -> List[Cohort]:
        counts = {section: 0 for section in department.sections}
        for student in self.store.find_students(department=department.name):
            if student.section in counts and self.academic_year_of(student) == year:
                counts[student.section] += 1
        capacity = self.capacity_for(department)
        return [Cohort(department.name, year, section, counts[section], capacity)
                for section in department.sections]

    def available_sections(self, department: str, year: str,
                           exclude: Optional[str] = None) -> List[Cohort]:
        """Sections with spare capacity, least filled first."""
        available = [c for c in self.cohorts_for(department, year)
                     if c.current_count < c.capacity and c.section != exclude]
        # sorted() is stable so equal counts keep the department's section order
        return sorted(available, key=lambda c: c.current_count)

    def unassigned_students(self, department: Optional[str] = None,
                            year: Optional[str] = None) -> List[Student]:
        filters = {'section': None}
        if department is not None:
            filters['department'] = department
        return [s for s in self.store.find_students(**filters)
                if s.department and s.batch and self._in_year(s, year)]

    def assigned_students(self, department: Optional[str] = None,
                          year: Optional[str] = None) -> List[Student]:
        filters = {'department': department} if department is not None else {}
        return [s for s in self.store.find_students(**filters)
                if s.is_assigned and self._in_year(s, year)]

    def _in_year(self, student: Student, year: Optional[str]) -> bool:
        return year is None or self.academic_year_of(student) == year

    def group_unassigned(self) -> List[Dict]:
        groups: 'OrderedDict[Tuple[str, str], Dict]' = OrderedDict()
        for student in self.unassigned_students():
            year = self.academic_year_of(student)
            key = (student.department, year)
            if key not in groups:
                groups[key] = {'department': student.department, 'academic_year': year, 'students': []}
            groups[key]['students'].append(student)
        return list(groups.values())

    def group_assigned(self) -> List[Dict]:
        capacities = {d.name: self.capacity_for(d) for d in self.store.list_departments()}
        groups: Dict[Tuple[str, str, str], Dict] = {}
        for student in self.assigned_students():
            year = self.academic_year_of(student)
            key = (student.department, year, student.section)
            if key not in groups:
                groups[key] = {
                    'display_name': f"{year} {student.department} - Section {student.section}",
                    'department': student.department,
                    'academic_year': year,
                    'section': student.section,
                    'capacity': capacities.get(student.department, self.capacity),
                    'students': [],
                }
            groups[key]['students'].append(student)
        return sorted(groups.values(),
                      key=lambda g: (year_ordinal(g['academic_year']), g['department'], g['section']))

    def summary(self) -> Dict[str, int]:
        """Roster totals; incomplete counts pending students without department or batch."""
        total = len(self.store.find_students())
        assigned = len(self.assigned_students())
        unassigned = len(self.unassigned_students())
        return {
            'assigned': assigned,
            'unassigned': unassigned,
            'incomplete': total - assigned - unassigned,
            'total': total,
        }
