import zipfile

import openpyxl
import pandas as pd

from excel_handler import ExcelHandler
from models import Cohort, Student


def _write_roster(path, rows):
    pd.DataFrame(rows).to_excel(path, index=False, engine='openpyxl')
    return str(path)


def test_read_student_data_maps_columns_and_normalizes(tmp_path) -> None:
    filepath = _write_roster(tmp_path / 'roster.xlsx', [
        {'Roll No': 'CSE001', 'Student Name': ' Meera Nair ', 'Dept': 'Computer Science',
         'Admission Year': 2024, 'Section': 'A'},
        {'Roll No': 'CSE002', 'Student Name': 'Arjun Das', 'Dept': 'Computer Science',
         'Admission Year': 2025, 'Section': None},
        {'Roll No': 'CSE001', 'Student Name': 'Duplicate', 'Dept': 'Computer Science',
         'Admission Year': 2025, 'Section': 'B'},
    ])
    handler = ExcelHandler(str(tmp_path / 'exports'))

    df = handler.read_student_data(filepath)
    students = handler.students_from_frame(df)

    assert [s.student_id for s in students] == ['CSE001', 'CSE002']
    assert students[0].name == 'Meera Nair'
    assert students[0].batch == '2024'
    assert students[0].section == 'A'
    assert students[1].section is None
    assert students[1].email is None


def test_read_student_data_requires_department_and_batch(tmp_path) -> None:
    filepath = _write_roster(tmp_path / 'bad.xlsx', [{'Name': 'No Id', 'Section': 'A'}])
    assert ExcelHandler(str(tmp_path)).read_student_data(filepath) is None


def test_export_section_roster(tmp_path) -> None:
    handler = ExcelHandler(str(tmp_path / 'exports'))
    cohort = Cohort('Computer Science', '1st Year', 'A', 2, 65)
    students = [
        Student('CSE001', 'Meera Nair', 'Computer Science', '2025', 'A'),
        Student('CSE002', 'Arjun Das', 'Computer Science', '2025', 'A', email='arjun@college.edu'),
    ]

    filepath = handler.export_section_roster(cohort, students)

    sheet = openpyxl.load_workbook(filepath).active
    assert sheet['A1'].value == 'Computer Science - 1st Year - Section A'
    assert sheet['A2'].value == 'Occupancy: 2 / 65'
    assert [sheet.cell(row=5, column=c).value for c in range(1, 5)] == [
        1, 'CSE001', 'Meera Nair', '2025']
    assert sheet.cell(row=6, column=5).value == 'arjun@college.edu'
    assert filepath.endswith('Computer_Science_1st_Year_A_roster.xlsx')


def test_summary_workbook_lists_every_cohort(tmp_path) -> None:
    handler = ExcelHandler(str(tmp_path))
    cohorts = [
        Cohort('CSE', '1st Year', 'A', 65, 65),
        Cohort('CSE', '1st Year', 'B', 10, 65),
    ]

    filepath = handler.create_cohort_summary_workbook(cohorts)

    sheet = openpyxl.load_workbook(filepath).active
    assert sheet.cell(row=5, column=8).value == 'Full'
    assert sheet.cell(row=6, column=6).value == 55
    assert sheet.cell(row=6, column=8).value == 'Open'


def test_zip_contains_occupied_sections_and_summary(tmp_path) -> None:
    handler = ExcelHandler(str(tmp_path))
    occupied = Cohort('CSE', '1st Year', 'A', 1, 65)
    empty = Cohort('CSE', '1st Year', 'B', 0, 65)
    rosters = {occupied.key: [Student('S1', 'Meera', 'CSE', '2025', 'A')]}

    zip_path = handler.export_all_sections_zip([occupied, empty], rosters)

    with zipfile.ZipFile(zip_path) as archive:
        names = archive.namelist()
    assert 'CSE_1st_Year_A_roster.xlsx' in names
    assert not any('_B_roster' in name for name in names)
    assert any(name.startswith('section_summary_') for name in names)
