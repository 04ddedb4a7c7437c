import random
import threading
import time
from collections import Counter

from models import Department, Student
from roster_store import InMemoryRosterStore
from section_allocator import Outcome, SectionAllocator

FIRST = '1st Year'


def _section_counts(store, department='CSE', batch='2025'):
    return Counter(s.section for s in store.find_students(department=department, batch=batch)
                   if s.section)


def _sections(store):
    return {s.student_id: s.section for s in store.find_students()}


def test_bulk_fill_keeps_stable_order_until_section_is_full(enroll, make_allocator) -> None:
    # two-section department with A empty and B holding one student
    allocator = make_allocator(capacity=2)
    allocator.store.add_department(Department('CIV', ['A', 'B']))
    enroll('P1', department='CIV', section='B')
    for student_id in ('S1', 'S2', 'S3'):
        enroll(student_id, department='CIV')

    result = allocator.bulk_allocate('CIV', FIRST)

    assert result.outcome is Outcome.SUCCESS
    assert dict(result.assignments) == {'S1': 'A', 'S2': 'A', 'S3': 'B'}
    assert (result.assigned, result.eligible, result.remaining) == (3, 3, 0)
    assert _section_counts(allocator.store, 'CIV') == {'A': 2, 'B': 2}


def test_bulk_leaves_remainder_when_capacity_runs_out(store, enroll, make_allocator, notifier) -> None:
    allocator = make_allocator(capacity=2)
    enroll('X1', section='A')
    enroll('X2', section='C')
    enroll('X3', section='C')
    for i in range(1, 6):
        enroll(f"S{i}")

    result = allocator.bulk_allocate('CSE', FIRST)

    assert result.outcome is Outcome.PARTIAL_ASSIGNMENT
    assert result.assigned == 3
    assert result.remaining == 2
    # B (empty) fills first, then A
    assert dict(result.assignments) == {'S1': 'B', 'S2': 'B', 'S3': 'A'}
    assert store.get_student('S4').section is None
    assert store.get_student('S5').section is None
    assert notifier.last.category == 'warning'
    assert notifier.last.counts == {'assigned': 3, 'eligible': 5, 'remaining': 2}


def test_bulk_with_every_section_full_changes_nothing(store, enroll, make_allocator, notifier) -> None:
    allocator = make_allocator(capacity=1)
    for section in ('A', 'B', 'C'):
        enroll(f"F{section}", section=section)
    enroll('S1')
    enroll('S2')
    before = _sections(store)

    result = allocator.bulk_allocate('CSE', FIRST)

    assert result.outcome is Outcome.NO_CAPACITY_AVAILABLE
    assert result.assigned == 0
    assert _sections(store) == before
    assert notifier.last.category == 'error'


def test_bulk_without_pending_students_is_informational(enroll, make_allocator, notifier) -> None:
    allocator = make_allocator()
    enroll('S1', section='A')

    result = allocator.bulk_allocate('CSE', FIRST)

    assert result.outcome is Outcome.NO_ELIGIBLE_STUDENTS
    assert result.eligible == 0
    assert notifier.last.category == 'warning'
    assert 'No unassigned students found for CSE 1st Year' in notifier.last.message


def test_bulk_only_touches_the_requested_cohort_group(store, enroll, make_allocator) -> None:
    allocator = make_allocator()
    enroll('FIRST1')
    enroll('SECOND1', batch='2024')
    enroll('ECE1', department='ECE')

    result = allocator.bulk_allocate('CSE', FIRST)

    assert list(result.assignments) == ['FIRST1']
    assert store.get_student('SECOND1').section is None
    assert store.get_student('ECE1').section is None


def test_bulk_starts_with_least_filled_section(enroll, make_allocator) -> None:
    allocator = make_allocator(capacity=5)
    for i, section in enumerate(['A', 'A', 'A', 'B', 'C', 'C']):
        enroll(f"X{i}", section=section)
    enroll('S1')
    enroll('S2')

    result = allocator.bulk_allocate('CSE', FIRST)

    assert dict(result.assignments) == {'S1': 'B', 'S2': 'B'}


def test_bulk_for_unknown_department(make_allocator) -> None:
    result = make_allocator().bulk_allocate('History', FIRST)
    assert result.outcome is Outcome.NOT_FOUND


def test_allocate_assigns_section(store, enroll, make_allocator, notifier) -> None:
    allocator = make_allocator()
    enroll('S1', name='Asha Rao')

    result = allocator.allocate('S1', 'B')

    assert result.ok
    assert result.student.section == 'B'
    assert store.get_student('S1').section == 'B'
    assert notifier.last.message == 'Asha Rao successfully assigned to Section B'


def test_allocate_unknown_student(make_allocator) -> None:
    result = make_allocator().allocate('missing', 'A')
    assert result.outcome is Outcome.NOT_FOUND


def test_allocate_rejects_section_outside_department(enroll, make_allocator) -> None:
    enroll('S1', department='ECE')
    result = make_allocator().allocate('S1', 'C')
    assert result.outcome is Outcome.INVALID_SECTION_REFERENCE


def test_allocate_rejects_full_section(store, enroll, make_allocator) -> None:
    allocator = make_allocator(capacity=1)
    enroll('S1', section='A')
    enroll('S2')

    result = allocator.allocate('S2', 'A')

    assert result.outcome is Outcome.CAPACITY_EXCEEDED
    assert store.get_student('S2').section is None


def test_allocate_to_current_section_is_a_no_op_even_when_full(enroll, make_allocator) -> None:
    enroll('S1', section='A')
    result = make_allocator(capacity=1).allocate('S1', 'A')
    assert result.ok
    assert result.student.section == 'A'


def test_allocate_without_enforcement_writes_unconditionally(store, enroll, make_allocator) -> None:
    allocator = make_allocator(capacity=1, enforce_capacity=False)
    enroll('S1', section='A')
    enroll('S2')

    result = allocator.allocate('S2', 'A')

    assert result.ok
    assert _section_counts(store)['A'] == 2


def test_allocate_needs_batch(enroll, make_allocator) -> None:
    enroll('S1', batch='')
    result = make_allocator().allocate('S1', 'A')
    assert result.outcome is Outcome.INCOMPLETE_RECORD


def test_reassignment_options_exclude_current_section(enroll, make_allocator) -> None:
    allocator = make_allocator()
    enroll('S1', department='ECE', section='A')

    options = allocator.reassignment_options('S1')

    assert [c.section for c in options] == ['B']


def test_reassign_moves_student(store, enroll, make_allocator, notifier) -> None:
    allocator = make_allocator()
    enroll('S1', department='ECE', section='A', name='Ravi Kumar')

    result = allocator.reassign('S1', 'B')

    assert result.ok
    assert store.get_student('S1').section == 'B'
    assert notifier.last.message == 'Ravi Kumar reassigned from Section A to Section B'


def test_reassign_to_current_section_is_rejected(store, enroll, make_allocator) -> None:
    allocator = make_allocator()
    enroll('S1', department='ECE', section='A')

    result = allocator.reassign('S1', 'A')

    assert result.outcome is Outcome.INVALID_SECTION_REFERENCE
    assert [c.section for c in result.options] == ['B']
    assert store.get_student('S1').section == 'A'


def test_reassign_with_no_open_sections(store, enroll, make_allocator, notifier) -> None:
    allocator = make_allocator(capacity=1)
    enroll('S1', department='ECE', section='A')
    enroll('S2', department='ECE', section='B')

    result = allocator.reassign('S1', 'B')

    assert result.outcome is Outcome.NO_SECTIONS_AVAILABLE
    assert store.get_student('S1').section == 'A'
    assert notifier.last.category == 'warning'


def test_unassign_is_idempotent(store, enroll, make_allocator) -> None:
    allocator = make_allocator()
    enroll('S1', section='C')

    first = allocator.unassign('S1')
    after_first = store.get_student('S1')
    second = allocator.unassign('S1')

    assert first.ok and second.ok
    assert after_first.section is None
    assert store.get_student('S1') == after_first


def test_unassign_unknown_student(make_allocator) -> None:
    assert make_allocator().unassign('nobody').outcome is Outcome.NOT_FOUND


def test_capacity_and_conservation_hold_over_mixed_operations(store, enroll, make_allocator) -> None:
    rng = random.Random(7)
    allocator = make_allocator(capacity=4)
    batches = ['2025', '2024', '2023']
    for i in range(40):
        enroll(f"S{i}", department=rng.choice(['CSE', 'ECE']), batch=rng.choice(batches))
    total = len(store.find_students())
    years = ['1st Year', '2nd Year', '3rd Year']

    for _ in range(200):
        student_id = f"S{rng.randrange(40)}"
        action = rng.choice(['allocate', 'bulk', 'reassign', 'unassign'])
        if action == 'allocate':
            allocator.allocate(student_id, rng.choice(['A', 'B', 'C']))
        elif action == 'bulk':
            allocator.bulk_allocate(rng.choice(['CSE', 'ECE']), rng.choice(years))
        elif action == 'reassign':
            allocator.reassign(student_id, rng.choice(['A', 'B', 'C']))
        else:
            allocator.unassign(student_id)

        assert all(c.current_count <= c.capacity for c in allocator.list_cohorts())
        resolver = allocator.resolver
        assert len(resolver.assigned_students()) + len(resolver.unassigned_students()) == total


class SlowRosterStore(InMemoryRosterStore):
    def update_student_section(self, student_id, section):
        time.sleep(0.002)
        return super().update_student_section(student_id, section)


def test_concurrent_bulk_runs_do_not_overfill() -> None:
    store = SlowRosterStore(departments=[Department('CSE', ['A', 'B'])])
    allocator = SectionAllocator(store, capacity=3, current_year=2025)
    for i in range(10):
        store.add_student(Student(f"S{i}", f"Student {i}", 'CSE', '2025'))

    results = []
    threads = [threading.Thread(target=lambda: results.append(allocator.bulk_allocate('CSE', FIRST)))
               for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    counts = _section_counts(store)
    assert counts == {'A': 3, 'B': 3}
    assert sum(r.assigned for r in results) == 6
