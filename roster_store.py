import logging
import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from models import Department, Student, STUDENT_ROLE


class StudentNotFound(KeyError):
    pass


class DepartmentNotFound(KeyError):
    pass


class RosterStore:
    """
    Read/write interface the allocator talks to.

    Implementations keep students in roster (insertion) order and only ever
    return records whose role is Student from find_students.
    """

    def find_students(self, **filters) -> List[Student]:
        raise NotImplementedError

    def get_student(self, student_id: str) -> Student:
        raise NotImplementedError

    def update_student_section(self, student_id: str, section: Optional[str]) -> Student:
        raise NotImplementedError

    def list_departments(self) -> List[Department]:
        raise NotImplementedError

    def get_department(self, name: str) -> Department:
        for department in self.list_departments():
            if department.name == name:
                return department
        raise DepartmentNotFound(name)


def matches(student: Student, filters: Dict) -> bool:
    """Exact attribute match; a filter value of None matches an unset field."""
    for attr, expected in filters.items():
        value = getattr(student, attr)
        if expected is None:
            if value:
                return False
        elif value != expected:
            return False
    return True


class InMemoryRosterStore(RosterStore):
    def __init__(self, students: Optional[Iterable[Student]] = None,
                 departments: Optional[Iterable[Department]] = None):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._students: List[Student] = list(students or [])
        self._departments: List[Department] = list(departments or [])

    def find_students(self, **filters) -> List[Student]:
        with self._lock:
            return [replace(s) for s in self._students
                    if s.role == STUDENT_ROLE and matches(s, filters)]

    def all_users(self) -> List[Student]:
        with self._lock:
            return [replace(s) for s in self._students]

    def get_student(self, student_id: str) -> Student:
        with self._lock:
            return replace(self._find(student_id))

    def update_student_section(self, student_id: str, section: Optional[str]) -> Student:
        with self._lock:
            student = self._find(student_id)
            student.section = section or None
            self.logger.debug(f"Student {student_id} section set to {student.section}")
            return replace(student)

    def _find(self, student_id: str) -> Student:
        for student in self._students:
            if student.student_id == student_id:
                return student
        raise StudentNotFound(student_id)

    def add_student(self, student: Student) -> bool:
        with self._lock:
            if any(s.student_id == student.student_id for s in self._students):
                return False
            self._students.append(replace(student))
            return True

    def replace_students(self, students: Iterable[Student]):
        with self._lock:
            self._students = [replace(s) for s in students]

    def list_departments(self) -> List[Department]:
        with self._lock:
            return [replace(d, sections=list(d.sections)) for d in self._departments]

    def add_department(self, department: Department) -> bool:
        with self._lock:
            if any(d.name == department.name for d in self._departments):
                return False
            self._departments.append(department)
            return True

    def clear(self, students: bool = True, departments: bool = False):
        with self._lock:
            if students:
                self._students = []
            if departments:
                self._departments = []
