#!/usr/bin/env python3
"""
Create a realistic student roster for trying out section allocation.
"""
import random
from datetime import date

import pandas as pd
from faker import Faker

from models import Department, Student

SAMPLE_DEPARTMENTS = [
    Department('Computer Science', ['A', 'B', 'C']),
    Department('Mechanical Engineering', ['A', 'B']),
    Department('Electrical Engineering', ['A', 'B', 'C']),
    Department('Business Administration', ['A', 'B'], max_students_per_section=60),
]

DEPARTMENT_CODES = {
    'Computer Science': 'CSE',
    'Mechanical Engineering': 'ME',
    'Electrical Engineering': 'EE',
    'Business Administration': 'BBA',
}


def create_roster(departments=None, current_year=None, students_per_batch=70,
                  assigned_ratio=0.5, seed=None):
    """
    Build students for the four batches currently enrolled in each department.

    Roughly `assigned_ratio` of each batch already sits in a section (spread
    round robin); the rest are waiting for allocation.
    """
    departments = departments or SAMPLE_DEPARTMENTS
    current_year = current_year or date.today().year
    fake = Faker('en_IN')
    rng = random.Random(seed)
    if seed is not None:
        fake.seed_instance(seed)

    students = []
    for department in departments:
        code = DEPARTMENT_CODES.get(department.name, department.name[:3].upper())
        for offset in range(4):
            batch = str(current_year - offset)
            for i in range(students_per_batch):
                section = None
                if rng.random() < assigned_ratio:
                    section = department.sections[i % len(department.sections)]
                first_name = fake.first_name()
                last_name = fake.last_name()
                students.append(Student(
                    student_id=f"{code}{batch}{str(i + 1).zfill(3)}",
                    name=f"{first_name} {last_name}",
                    department=department.name,
                    batch=batch,
                    section=section,
                    email=f"{first_name.lower()}.{last_name.lower()}{i + 1}@college.edu",
                ))
    return students


def write_roster(students, output_file='students_roster_test_data.xlsx'):
    df = pd.DataFrame([s.to_dict() for s in students]).drop(columns=['role'])
    df.to_excel(output_file, index=False, engine='openpyxl')
    return output_file, df


if __name__ == "__main__":
    print("Creating sample roster")
    print("=" * 50)

    roster = create_roster()
    output_file, df = write_roster(roster)

    print(f"Roster created: '{output_file}'")
    print(f"Total Students: {len(df)}")
    print(f"Pending allocation: {int(df['section'].isna().sum())}")
    print("\nDepartment/batch distribution:")
    for (department, batch), count in df.groupby(['department', 'batch']).size().items():
        print(f"   {department} {batch}: {count} students")
