# Plain data records shared by the roster stores, the allocator and the
# spreadsheet exports. Cohorts are computed from the roster on demand and are
# never persisted.
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

STUDENT_ROLE = 'Student'
DEFAULT_SECTION_CAPACITY = 65


@dataclass
class Student:
    student_id: str
    name: str
    department: str
    batch: str
    section: Optional[str] = None
    role: str = STUDENT_ROLE
    email: Optional[str] = None

    @property
    def is_assigned(self) -> bool:
        return bool(self.section)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Department:
    name: str
    sections: List[str] = field(default_factory=lambda: ['A', 'B', 'C'])
    max_students_per_section: Optional[int] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Cohort:
    department: str
    academic_year: str
    section: str
    current_count: int
    capacity: int

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.current_count, 0)

    @property
    def is_full(self) -> bool:
        return self.current_count >= self.capacity

    @property
    def key(self):
        return (self.department, self.academic_year, self.section)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['remaining'] = self.remaining
        return data
