import pandas as pd
import openpyxl
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.workbook import Workbook
import os
import logging
import zipfile
from datetime import datetime
from typing import Optional, Dict, List

from models import Cohort, Student


class ExcelHandler:
    def __init__(self, export_folder: str = 'exports'):
        self.logger = logging.getLogger(__name__)
        self.export_folder = export_folder

    def read_student_data(self, filepath: str) -> Optional[pd.DataFrame]:
        """
        Read student roster from Excel file.
        Expected columns: Student ID, Name, Department, Batch and optionally Section, Email
        """
        try:
            df = pd.read_excel(filepath)

            # Normalize column names (handle case variations and spaces)
            df.columns = df.columns.astype(str).str.strip().str.lower().str.replace(' ', '_')

            column_mappings = {
                'student_id': ['student_id', 'id', 'roll_number', 'roll_no', 'roll', 'registration_number'],
                'name': ['name', 'student_name', 'full_name'],
                'department': ['department', 'dept', 'branch', 'programme', 'program'],
                'batch': ['batch', 'admission_year', 'enrollment_year', 'year_of_admission'],
                'section': ['section', 'sec', 'division'],
                'email': ['email', 'email_id', 'mail'],
            }

            mapped_columns = {}
            for expected_col, possible_names in column_mappings.items():
                for possible_name in possible_names:
                    if possible_name in df.columns:
                        mapped_columns[expected_col] = possible_name
                        break

            required_columns = ['student_id', 'name', 'department', 'batch']
            missing_columns = [col for col in required_columns if col not in mapped_columns]
            if missing_columns:
                self.logger.error(f"Missing required columns: {missing_columns}")
                return None

            result_df = pd.DataFrame()
            for standard_name in column_mappings:
                if standard_name in mapped_columns:
                    result_df[standard_name] = df[mapped_columns[standard_name]]
                else:
                    result_df[standard_name] = None

            return self._clean_student_data(result_df)

        except Exception as e:
            self.logger.error(f"Error reading Excel file: {str(e)}")
            return None

    def _clean_student_data(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Clean and validate roster data.
        """
        df = df.dropna(subset=['student_id', 'name', 'department', 'batch']).copy()

        for col in ['student_id', 'name', 'department']:
            df[col] = df[col].astype(str).str.strip()

        # 2024.0 from numeric cells -> "2024"
        df['batch'] = df['batch'].map(self._normalize_batch)

        # Blank sections mean the student is still waiting for allocation
        df['section'] = df['section'].map(self._normalize_optional)
        df['email'] = df['email'].map(self._normalize_optional)

        df = df.drop_duplicates(subset=['student_id'], keep='first')
        return df.reset_index(drop=True)

    @staticmethod
    def _normalize_batch(value) -> str:
        text = str(value).strip()
        try:
            return str(int(float(text)))
        except ValueError:
            return text

    @staticmethod
    def _normalize_optional(value) -> Optional[str]:
        if value is None or pd.isna(value):
            return None
        text = str(value).strip()
        return text or None

    def students_from_frame(self, df: pd.DataFrame) -> List[Student]:
        return [
            Student(
                student_id=row['student_id'],
                name=row['name'],
                department=row['department'],
                batch=row['batch'],
                section=self._normalize_optional(row['section']),
                email=self._normalize_optional(row['email']),
            )
            for row in df.to_dict('records')
        ]

    def export_section_roster(self, cohort: Cohort, students: List[Student]) -> Optional[str]:
        """
        Export the class list of one section to an Excel file.
        """
        try:
            os.makedirs(self.export_folder, exist_ok=True)
            wb = openpyxl.Workbook()
            ws = wb.active
            ws.title = f"Section {cohort.section}"

            header_font = Font(bold=True, size=12, color="FFFFFF")
            header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
            border = Border(
                left=Side(style='thin'),
                right=Side(style='thin'),
                top=Side(style='thin'),
                bottom=Side(style='thin')
            )
            center_alignment = Alignment(horizontal='center', vertical='center')

            ws['A1'] = f"{cohort.department} - {cohort.academic_year} - Section {cohort.section}"
            ws['A1'].font = Font(bold=True, size=14)
            ws.merge_cells('A1:E1')

            ws['A2'] = f"Occupancy: {len(students)} / {cohort.capacity}"
            ws.merge_cells('A2:E2')

            headers = ['S.No', 'Student ID', 'Name', 'Batch', 'Email']
            for col, header in enumerate(headers, 1):
                cell = ws.cell(row=4, column=col, value=header)
                cell.font = header_font
                cell.fill = header_fill
                cell.border = border
                cell.alignment = center_alignment

            row_num = 5
            for index, student in enumerate(students, 1):
                row_data = [index, student.student_id, student.name, student.batch, student.email or '']
                for col, value in enumerate(row_data, 1):
                    cell = ws.cell(row=row_num, column=col, value=value)
                    cell.border = border
                row_num += 1

            ws.cell(row=row_num + 1, column=1, value="Summary:").font = Font(bold=True)
            ws.cell(row=row_num + 2, column=1, value=f"Capacity: {cohort.capacity}")
            ws.cell(row=row_num + 3, column=1, value=f"Enrolled: {len(students)}")
            ws.cell(row=row_num + 4, column=1, value=f"Open Seats: {max(cohort.capacity - len(students), 0)}")

            for col_idx in range(1, len(headers) + 1):
                max_length = 0
                column_letter = get_column_letter(col_idx)
                for row_idx in range(4, row_num):
                    value = ws.cell(row=row_idx, column=col_idx).value
                    if value:
                        max_length = max(max_length, len(str(value)))
                ws.column_dimensions[column_letter].width = min(max_length + 2, 50)

            filename = self._safe_name(
                f"{cohort.department}_{cohort.academic_year}_{cohort.section}_roster.xlsx")
            filepath = os.path.join(self.export_folder, filename)
            wb.save(filepath)

            self.logger.info(f"Exported section roster to {filepath}")
            return filepath

        except Exception as e:
            self.logger.error(f"Error exporting section roster: {str(e)}")
            return None

    @staticmethod
    def _safe_name(filename: str) -> str:
        return filename.replace(' ', '_').replace('/', '-')

    def create_cohort_summary_workbook(self, cohorts: List[Cohort]) -> Optional[str]:
        """
        Create a summary workbook with the occupancy of every section.
        """
        try:
            os.makedirs(self.export_folder, exist_ok=True)
            wb = Workbook()
            ws = wb.active
            ws.title = "Section Summary"

            ws.merge_cells('A1:H1')
            title_cell = ws.cell(row=1, column=1, value="Section Allocation Summary")
            title_cell.font = Font(size=16, bold=True)
            title_cell.alignment = Alignment(horizontal='center')

            ws.cell(row=2, column=1, value=f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
            ws.cell(row=2, column=1).font = Font(size=10, italic=True)

            current_row = 4
            headers = ['Department', 'Academic Year', 'Section', 'Capacity', 'Enrolled',
                       'Open Seats', 'Utilization %', 'Status']
            for col, header in enumerate(headers, 1):
                cell = ws.cell(row=current_row, column=col, value=header)
                cell.font = Font(bold=True)
                cell.fill = PatternFill(start_color="D9EAD3", end_color="D9EAD3", fill_type="solid")
            current_row += 1

            total_capacity = 0
            total_enrolled = 0
            for cohort in cohorts:
                utilization = round(cohort.current_count / cohort.capacity * 100, 1) if cohort.capacity else 0
                total_capacity += cohort.capacity
                total_enrolled += cohort.current_count

                if cohort.is_full:
                    status, status_color = "Full", "FFE6E6"
                elif utilization >= 80:
                    status, status_color = "Filling", "FFF2CC"
                else:
                    status, status_color = "Open", "E6F3FF"

                row_data = [cohort.department, cohort.academic_year, cohort.section, cohort.capacity,
                            cohort.current_count, cohort.remaining, f"{utilization}%", status]
                for col, value in enumerate(row_data, 1):
                    cell = ws.cell(row=current_row, column=col, value=value)
                    if col == 8:
                        cell.fill = PatternFill(start_color=status_color, end_color=status_color, fill_type="solid")
                current_row += 1

            current_row += 1
            ws.cell(row=current_row, column=1, value="TOTALS").font = Font(bold=True)
            ws.cell(row=current_row, column=4, value=total_capacity).font = Font(bold=True)
            ws.cell(row=current_row, column=5, value=total_enrolled).font = Font(bold=True)
            ws.cell(row=current_row, column=6, value=total_capacity - total_enrolled).font = Font(bold=True)
            overall_util = round(total_enrolled / total_capacity * 100, 1) if total_capacity > 0 else 0
            ws.cell(row=current_row, column=7, value=f"{overall_util}%").font = Font(bold=True)

            for col_idx in range(1, len(headers) + 1):
                ws.column_dimensions[get_column_letter(col_idx)].width = 16

            filename = f"section_summary_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"
            filepath = os.path.join(self.export_folder, filename)
            wb.save(filepath)

            self.logger.info(f"Created summary workbook: {filepath}")
            return filepath

        except Exception as e:
            self.logger.error(f"Error creating summary workbook: {str(e)}")
            return None

    def export_all_sections_zip(self, cohorts: List[Cohort], rosters: Dict[tuple, List[Student]]) -> Optional[str]:
        """
        Export every occupied section plus the summary workbook as one ZIP.
        `rosters` maps a cohort key to the students enrolled in it.
        """
        try:
            exported_files = []
            for cohort in cohorts:
                students = rosters.get(cohort.key, [])
                if not students:
                    continue
                filepath = self.export_section_roster(cohort, students)
                if filepath:
                    exported_files.append(filepath)

            summary_file = self.create_cohort_summary_workbook(cohorts)
            if summary_file:
                exported_files.append(summary_file)

            if not exported_files:
                return None

            timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
            zip_filepath = os.path.join(self.export_folder, f"section_rosters_{timestamp}.zip")

            with zipfile.ZipFile(zip_filepath, 'w', zipfile.ZIP_DEFLATED) as zip_file:
                for file_path in exported_files:
                    zip_file.write(file_path, os.path.basename(file_path))

            for file_path in exported_files:
                try:
                    os.remove(file_path)
                except OSError as e:
                    self.logger.warning(f"Could not remove {file_path}: {str(e)}")

            self.logger.info(f"Created section roster ZIP: {zip_filepath}")
            return zip_filepath

        except Exception as e:
            self.logger.error(f"Error creating ZIP export: {str(e)}")
            return None
