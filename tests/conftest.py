import pytest

from models import Department, Student
from notifications import RecordingNotificationSink
from roster_store import InMemoryRosterStore
from section_allocator import SectionAllocator

CURRENT_YEAR = 2025
FIRST_YEAR_BATCH = '2025'


@pytest.fixture
def departments():
    return [
        Department('CSE', ['A', 'B', 'C']),
        Department('ECE', ['A', 'B']),
    ]


@pytest.fixture
def store(departments):
    return InMemoryRosterStore(departments=departments)


@pytest.fixture
def enroll(store):
    def _enroll(student_id, department='CSE', batch=FIRST_YEAR_BATCH, section=None, name=None):
        student = Student(student_id=student_id, name=name or f"Student {student_id}",
                          department=department, batch=batch, section=section)
        store.add_student(student)
        return student
    return _enroll


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def make_allocator(store, notifier):
    def _make(capacity=65, **kwargs):
        return SectionAllocator(store, capacity=capacity, current_year=CURRENT_YEAR,
                                notifier=notifier, **kwargs)
    return _make
