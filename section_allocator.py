import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from cohorts import CohortResolver
from models import Cohort, Student, DEFAULT_SECTION_CAPACITY
from notifications import NotificationSink, LoggingNotificationSink, SUCCESS, WARNING, ERROR
from roster_store import RosterStore, StudentNotFound, DepartmentNotFound


class Outcome(Enum):
    SUCCESS = 'success'
    NOT_FOUND = 'not_found'
    INCOMPLETE_RECORD = 'incomplete_record'
    NO_ELIGIBLE_STUDENTS = 'no_eligible_students'
    NO_CAPACITY_AVAILABLE = 'no_capacity_available'
    PARTIAL_ASSIGNMENT = 'partial_assignment'
    INVALID_SECTION_REFERENCE = 'invalid_section_reference'
    CAPACITY_EXCEEDED = 'capacity_exceeded'
    NO_SECTIONS_AVAILABLE = 'no_sections_available'

    @property
    def category(self) -> str:
        if self is Outcome.SUCCESS:
            return SUCCESS
        if self in (Outcome.NO_ELIGIBLE_STUDENTS, Outcome.PARTIAL_ASSIGNMENT,
                    Outcome.NO_SECTIONS_AVAILABLE):
            return WARNING
        return ERROR


@dataclass
class AllocationResult:
    outcome: Outcome
    message: str
    student: Optional[Student] = None
    options: List[Cohort] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def category(self) -> str:
        return self.outcome.category

    def counts(self) -> Dict[str, int]:
        return {}

    def to_dict(self) -> Dict:
        return {
            'outcome': self.outcome.value,
            'category': self.category,
            'message': self.message,
            'student': self.student.to_dict() if self.student else None,
            'options': [c.to_dict() for c in self.options],
        }


@dataclass
class BulkAllocationResult:
    outcome: Outcome
    message: str
    department: str
    academic_year: str
    eligible: int = 0
    assigned: int = 0
    assignments: Dict[str, str] = field(default_factory=OrderedDict)

    @property
    def remaining(self) -> int:
        return self.eligible - self.assigned

    @property
    def ok(self) -> bool:
        return self.outcome in (Outcome.SUCCESS, Outcome.PARTIAL_ASSIGNMENT)

    @property
    def category(self) -> str:
        return self.outcome.category

    def counts(self) -> Dict[str, int]:
        return {'assigned': self.assigned, 'eligible': self.eligible, 'remaining': self.remaining}

    def to_dict(self) -> Dict:
        data = {
            'outcome': self.outcome.value,
            'category': self.category,
            'message': self.message,
            'department': self.department,
            'academic_year': self.academic_year,
            'assignments': dict(self.assignments),
        }
        data.update(self.counts())
        return data


class KeyedLocks:
    """One lock per (department, academic year) so a cohort group has a single writer."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple, threading.Lock] = {}

    def for_key(self, key: Tuple) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())


class SectionAllocator:
    def __init__(self, store: RosterStore, capacity: int = DEFAULT_SECTION_CAPACITY,
                 current_year: Optional[int] = None,
                 notifier: Optional[NotificationSink] = None,
                 enforce_capacity: bool = True):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.resolver = CohortResolver(store, capacity=capacity, current_year=current_year)
        self.notifier = notifier or LoggingNotificationSink()
        self.enforce_capacity = enforce_capacity
        self._locks = KeyedLocks()

    @property
    def capacity(self) -> int:
        return self.resolver.capacity

    def list_cohorts(self) -> List[Cohort]:
        return self.resolver.list_cohorts()

    def allocate(self, student_id: str, target_section: str) -> AllocationResult:
        student, failure = self._load_student(student_id)
        if failure:
            return self._finish(failure)

        year = self.resolver.academic_year_of(student)
        with self._locks.for_key((student.department, year)):
            return self._finish(self._assign(student, target_section, year))

    def _assign(self, student: Student, section: str, year: str) -> AllocationResult:
        if self.enforce_capacity:
            try:
                department = self.store.get_department(student.department)
            except DepartmentNotFound:
                return AllocationResult(Outcome.NOT_FOUND,
                                        f"Department {student.department} not found", student)
            if section not in department.sections:
                return AllocationResult(
                    Outcome.INVALID_SECTION_REFERENCE,
                    f"Section {section} does not exist in {department.name}", student)
            if student.section != section:
                cohort = next(c for c in self.resolver.cohorts_for(department.name, year)
                              if c.section == section)
                if cohort.is_full:
                    return AllocationResult(
                        Outcome.CAPACITY_EXCEEDED,
                        f"Section {section} of {department.name} {year} is full "
                        f"({cohort.current_count}/{cohort.capacity})", student)

        try:
            updated = self.store.update_student_section(student.student_id, section)
        except StudentNotFound:
            return AllocationResult(Outcome.NOT_FOUND, f"Student {student.student_id} not found")
        return AllocationResult(Outcome.SUCCESS,
                                f"{updated.name} successfully assigned to Section {section}",
                                updated)

    def bulk_allocate(self, department: str, year: str) -> BulkAllocationResult:
        with self._locks.for_key((department, year)):
            return self._finish(self._bulk_allocate(department, year))

    def _bulk_allocate(self, department: str, year: str) -> BulkAllocationResult:
        try:
            available = self.resolver.available_sections(department, year)
        except DepartmentNotFound:
            return BulkAllocationResult(Outcome.NOT_FOUND, f"Department {department} not found",
                                        department, year)

        eligible = self.resolver.unassigned_students(department, year)
        if not eligible:
            return BulkAllocationResult(Outcome.NO_ELIGIBLE_STUDENTS,
                                        f"No unassigned students found for {department} {year}.",
                                        department, year)
        if not available:
            return BulkAllocationResult(Outcome.NO_CAPACITY_AVAILABLE,
                                        f"No available sections for {department} {year}",
                                        department, year, eligible=len(eligible))

        self.logger.debug(f"Bulk allocating {len(eligible)} students over sections "
                          f"{[(c.section, c.current_count) for c in available]}")
        result = BulkAllocationResult(Outcome.SUCCESS, '', department, year, eligible=len(eligible))
        cursor = 0
        for student in eligible:
            if cursor >= len(available):
                break
            cohort = available[cursor]
            try:
                self.store.update_student_section(student.student_id, cohort.section)
            except StudentNotFound:
                self.logger.warning(f"Student {student.student_id} disappeared during bulk allocation")
                continue
            result.assignments[student.student_id] = cohort.section
            result.assigned += 1
            # running count is kept in memory; the store is not re-read mid-loop
            cohort.current_count += 1
            if cohort.current_count >= cohort.capacity:
                cursor += 1

        if result.remaining > 0:
            result.outcome = Outcome.PARTIAL_ASSIGNMENT
            result.message = (f"Assigned {result.assigned} of {result.eligible} students for "
                              f"{department} {year}; {result.remaining} remain unassigned "
                              f"because all sections are full")
        else:
            result.message = f"Successfully assigned {result.assigned} students to sections"
        return result

    def reassignment_options(self, student_id: str) -> List[Cohort]:
        student = self.store.get_student(student_id)
        year = self.resolver.academic_year_of(student)
        if not student.department or year is None:
            return []
        return self.resolver.available_sections(student.department, year, exclude=student.section)

    def reassign(self, student_id: str, new_section: str) -> AllocationResult:
        student, failure = self._load_student(student_id)
        if failure:
            return self._finish(failure)

        year = self.resolver.academic_year_of(student)
        with self._locks.for_key((student.department, year)):
            return self._finish(self._reassign(student_id, new_section))

    def _reassign(self, student_id: str, new_section: str) -> AllocationResult:
        try:
            student = self.store.get_student(student_id)
            options = self.reassignment_options(student_id)
        except StudentNotFound:
            return AllocationResult(Outcome.NOT_FOUND, f"Student {student_id} not found")
        except DepartmentNotFound:
            return AllocationResult(Outcome.NOT_FOUND, f"Department {student.department} not found",
                                    student)

        if not options:
            return AllocationResult(
                Outcome.NO_SECTIONS_AVAILABLE,
                "No available sections for reassignment. All sections are either full "
                "or this is the student's current section.", student)
        if new_section not in [c.section for c in options]:
            return AllocationResult(
                Outcome.INVALID_SECTION_REFERENCE,
                f"Section {new_section} is not available for {student.name}", student, options)

        previous = student.section or 'Unassigned'
        updated = self.store.update_student_section(student_id, new_section)
        return AllocationResult(
            Outcome.SUCCESS,
            f"{updated.name} reassigned from Section {previous} to Section {new_section}", updated)

    def unassign(self, student_id: str) -> AllocationResult:
        try:
            student = self.store.get_student(student_id)
        except StudentNotFound:
            return self._finish(AllocationResult(Outcome.NOT_FOUND, f"Student {student_id} not found"))

        year = self.resolver.academic_year_of(student)
        with self._locks.for_key((student.department, year)):
            try:
                current = self.store.get_student(student_id)
                if not current.is_assigned:
                    return self._finish(AllocationResult(
                        Outcome.SUCCESS, f"{current.name} is already unassigned", current))
                updated = self.store.update_student_section(student_id, None)
            except StudentNotFound:
                return self._finish(AllocationResult(Outcome.NOT_FOUND, f"Student {student_id} not found"))
            return self._finish(AllocationResult(
                Outcome.SUCCESS, f"{updated.name} removed from Section {current.section}", updated))

    def _load_student(self, student_id: str):
        try:
            student = self.store.get_student(student_id)
        except StudentNotFound:
            return None, AllocationResult(Outcome.NOT_FOUND, f"Student {student_id} not found")
        if not student.department or self.resolver.academic_year_of(student) is None:
            return None, AllocationResult(
                Outcome.INCOMPLETE_RECORD,
                f"{student.name} needs a department and batch before section allocation", student)
        return student, None

    def _finish(self, result):
        self.notifier.notify(result.category, result.message, **result.counts())
        return result
