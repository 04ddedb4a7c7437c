from create_test_data import create_roster, write_roster
from models import Department
from roster_store import InMemoryRosterStore
from section_allocator import SectionAllocator


def test_roster_covers_four_batches_per_department() -> None:
    departments = [Department('Computer Science', ['A', 'B'])]

    roster = create_roster(departments, current_year=2025, students_per_batch=10, seed=3)

    assert len(roster) == 40
    assert sorted({s.batch for s in roster}) == ['2022', '2023', '2024', '2025']
    assert len({s.student_id for s in roster}) == 40
    assert all(s.section in (None, 'A', 'B') for s in roster)


def test_generated_roster_can_be_bulk_allocated() -> None:
    departments = [Department('Computer Science', ['A', 'B'])]
    roster = create_roster(departments, current_year=2025, students_per_batch=30, seed=11)
    store = InMemoryRosterStore(roster, departments)
    allocator = SectionAllocator(store, capacity=20, current_year=2025)

    result = allocator.bulk_allocate('Computer Science', '1st Year')

    assert result.ok
    assert all(c.current_count <= 20 for c in allocator.list_cohorts())


def test_write_roster(tmp_path) -> None:
    roster = create_roster([Department('Mechanical Engineering', ['A'])], current_year=2025,
                           students_per_batch=2, seed=1)

    output_file, df = write_roster(roster, str(tmp_path / 'roster.xlsx'))

    assert list(df.columns) == ['student_id', 'name', 'department', 'batch', 'section', 'email']
    assert len(df) == 8
    assert (tmp_path / 'roster.xlsx').exists()
