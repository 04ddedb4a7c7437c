import os
import logging
from flask import Flask, current_app, request, jsonify, send_file
from werkzeug.utils import secure_filename

from create_test_data import SAMPLE_DEPARTMENTS, create_roster
from database import SqliteRosterStore, get_db, init_db, close_db
from excel_handler import ExcelHandler
from models import Student, DEFAULT_SECTION_CAPACITY
from notifications import LoggingNotificationSink
from roster_store import InMemoryRosterStore, StudentNotFound
from section_allocator import Outcome, SectionAllocator

# Set up logging
logging.basicConfig(level=logging.DEBUG)

ALLOWED_EXTENSIONS = {'xlsx', 'xls'}

OUTCOME_STATUS = {
    Outcome.SUCCESS: 200,
    Outcome.PARTIAL_ASSIGNMENT: 200,
    Outcome.NO_ELIGIBLE_STUDENTS: 200,
    Outcome.NOT_FOUND: 404,
    Outcome.INCOMPLETE_RECORD: 409,
    Outcome.INVALID_SECTION_REFERENCE: 409,
    Outcome.CAPACITY_EXCEEDED: 409,
    Outcome.NO_CAPACITY_AVAILABLE: 409,
    Outcome.NO_SECTIONS_AVAILABLE: 409,
}


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _env_int(name, default=None):
    value = os.environ.get(name)
    return int(value) if value else default


def create_app(config=None):
    app = Flask(__name__)
    app.secret_key = os.environ.get("SESSION_SECRET", "dev-secret-key-change-in-production")

    # Configuration
    app.config['UPLOAD_FOLDER'] = os.environ.get('UPLOAD_FOLDER', 'uploads')
    app.config['EXPORT_FOLDER'] = os.environ.get('EXPORT_FOLDER', 'exports')
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max file size
    app.config['SECTION_CAPACITY'] = _env_int('SECTION_CAPACITY', DEFAULT_SECTION_CAPACITY)
    app.config['ACADEMIC_CURRENT_YEAR'] = _env_int('ACADEMIC_CURRENT_YEAR')
    app.config['ROSTER_BACKEND'] = os.environ.get('ROSTER_BACKEND', 'memory')
    app.config['DATABASE'] = os.environ.get('DATABASE', 'roster.db')
    app.config['DEPARTMENTS'] = SAMPLE_DEPARTMENTS
    app.config['ROSTER_STORE'] = None
    if config:
        app.config.update(config)

    store = app.config['ROSTER_STORE']
    if store is None:
        if app.config['ROSTER_BACKEND'] == 'sqlite':
            store = SqliteRosterStore(get_db)
            app.teardown_appcontext(close_db)
            with app.app_context():
                init_db()
                if not store.list_departments():
                    for department in app.config['DEPARTMENTS']:
                        store.add_department(department)
        else:
            store = InMemoryRosterStore(departments=app.config['DEPARTMENTS'])

    app.extensions['roster_store'] = store
    app.extensions['section_allocator'] = SectionAllocator(
        store,
        capacity=app.config['SECTION_CAPACITY'],
        current_year=app.config['ACADEMIC_CURRENT_YEAR'],
        notifier=LoggingNotificationSink(),
    )
    app.extensions['excel_handler'] = ExcelHandler(app.config['EXPORT_FOLDER'])

    register_routes(app)
    return app


def _store():
    return current_app.extensions['roster_store']


def _allocator():
    return current_app.extensions['section_allocator']


def _excel():
    return current_app.extensions['excel_handler']


def _payload():
    return request.get_json(silent=True) or request.form


def _required(data, *fields):
    values = [str(data.get(field) or '').strip() for field in fields]
    missing = [field for field, value in zip(fields, values) if not value]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    return values


def _result_response(result):
    return jsonify(result.to_dict()), OUTCOME_STATUS.get(result.outcome, 200)


def _error(message, status):
    return jsonify({'category': 'error', 'message': message}), status


def register_routes(app):

    @app.route('/')
    def index():
        allocator = _allocator()
        return jsonify({
            'summary': allocator.resolver.summary(),
            'capacity': allocator.capacity,
            'current_year': allocator.resolver.current_year,
            'departments': [d.to_dict() for d in _store().list_departments()],
        })

    @app.route('/cohorts')
    def cohorts():
        department = request.args.get('department')
        year = request.args.get('academic_year')
        result = [c for c in _allocator().list_cohorts()
                  if (not department or c.department == department)
                  and (not year or c.academic_year == year)]
        return jsonify([c.to_dict() for c in result])

    @app.route('/students')
    def students():
        status = request.args.get('status', 'all')
        resolver = _allocator().resolver
        if status == 'assigned':
            records = resolver.assigned_students()
        elif status == 'unassigned':
            records = resolver.unassigned_students()
        else:
            records = _store().find_students()
        return jsonify([s.to_dict() for s in records])

    @app.route('/students/unassigned/grouped')
    def unassigned_grouped():
        groups = _allocator().resolver.group_unassigned()
        for group in groups:
            group['students'] = [s.to_dict() for s in group['students']]
        return jsonify(groups)

    @app.route('/students/assigned/grouped')
    def assigned_grouped():
        groups = _allocator().resolver.group_assigned()
        for group in groups:
            group['students'] = [s.to_dict() for s in group['students']]
        return jsonify(groups)

    @app.route('/students', methods=['POST'])
    def add_student():
        try:
            data = _payload()
            student_id, name, department, batch = _required(
                data, 'student_id', 'name', 'department', 'batch')
            student = Student(
                student_id=student_id,
                name=name,
                department=department,
                batch=batch,
                section=(data.get('section') or '').strip() or None,
                email=(data.get('email') or '').strip() or None,
            )
            if not _store().add_student(student):
                return _error('Student ID already exists', 409)
            return jsonify({'category': 'success', 'message': 'Student added successfully',
                            'student': student.to_dict()}), 201
        except ValueError as e:
            return _error(str(e), 400)
        except Exception as e:
            logging.error(f"Error adding student: {str(e)}")
            return _error(f'Error adding student: {str(e)}', 500)

    @app.route('/upload_students', methods=['POST'])
    def upload_students():
        try:
            if 'file' not in request.files:
                return _error('No file selected', 400)

            file = request.files['file']
            if not file.filename:
                return _error('No file selected', 400)
            if not allowed_file(file.filename):
                return _error('Invalid file type. Please upload an Excel file (.xlsx or .xls)', 400)

            os.makedirs(current_app.config['UPLOAD_FOLDER'], exist_ok=True)
            filepath = os.path.join(current_app.config['UPLOAD_FOLDER'], secure_filename(file.filename))
            file.save(filepath)

            df = _excel().read_student_data(filepath)
            if df is None:
                return _error('Error processing Excel file. Please check the format.', 422)

            roster = _excel().students_from_frame(df)
            _store().replace_students(roster)
            return jsonify({'category': 'success',
                            'message': f'Successfully uploaded {len(roster)} students',
                            'count': len(roster)})
        except Exception as e:
            logging.error(f"Error uploading file: {str(e)}")
            return _error(f'Error uploading file: {str(e)}', 500)

    @app.route('/load_sample_data', methods=['POST'])
    def load_sample_data():
        try:
            roster = create_roster(current_year=_allocator().resolver.current_year)
            _store().replace_students(roster)
            return jsonify({'category': 'success',
                            'message': f'Sample data loaded: {len(roster)} students',
                            'count': len(roster)})
        except Exception as e:
            logging.error(f"Error loading sample data: {str(e)}")
            return _error('Error loading sample data', 500)

    @app.route('/clear_data', methods=['POST'])
    def clear_data():
        data_type = _payload().get('data_type', 'students')
        if data_type not in ('students', 'all'):
            return _error(f'Unknown data type: {data_type}', 400)
        _store().clear(students=True, departments=(data_type == 'all'))
        message = 'All data cleared' if data_type == 'all' else 'Student data cleared'
        return jsonify({'category': 'info', 'message': message})

    @app.route('/allocate', methods=['POST'])
    def allocate():
        try:
            student_id, section = _required(_payload(), 'student_id', 'section')
        except ValueError as e:
            return _error(str(e), 400)
        return _result_response(_allocator().allocate(student_id, section))

    @app.route('/bulk_allocate', methods=['POST'])
    def bulk_allocate():
        try:
            department, year = _required(_payload(), 'department', 'academic_year')
        except ValueError as e:
            return _error(str(e), 400)
        return _result_response(_allocator().bulk_allocate(department, year))

    @app.route('/students/<student_id>/reassign_options')
    def reassign_options(student_id):
        try:
            options = _allocator().reassignment_options(student_id)
        except StudentNotFound:
            return _error(f'Student {student_id} not found', 404)
        return jsonify([c.to_dict() for c in options])

    @app.route('/reassign', methods=['POST'])
    def reassign():
        try:
            student_id, section = _required(_payload(), 'student_id', 'section')
        except ValueError as e:
            return _error(str(e), 400)
        return _result_response(_allocator().reassign(student_id, section))

    @app.route('/unassign', methods=['POST'])
    def unassign():
        try:
            (student_id,) = _required(_payload(), 'student_id')
        except ValueError as e:
            return _error(str(e), 400)
        return _result_response(_allocator().unassign(student_id))

    @app.route('/export_section/<department>/<academic_year>/<section>')
    def export_section(department, academic_year, section):
        try:
            resolver = _allocator().resolver
            cohort = next((c for c in resolver.list_cohorts()
                           if c.key == (department, academic_year, section)), None)
            if cohort is None:
                return _error('Section not found', 404)

            students = [s for s in resolver.assigned_students(department, academic_year)
                        if s.section == section]
            filepath = _excel().export_section_roster(cohort, students)
            if not filepath:
                return _error('Error generating Excel file', 500)
            return send_file(os.path.abspath(filepath), as_attachment=True,
                             download_name=os.path.basename(filepath))
        except Exception as e:
            logging.error(f"Error exporting section: {str(e)}")
            return _error(f'Error exporting section: {str(e)}', 500)

    @app.route('/export_summary')
    def export_summary():
        filepath = _excel().create_cohort_summary_workbook(_allocator().list_cohorts())
        if not filepath:
            return _error('Error generating summary workbook', 500)
        return send_file(os.path.abspath(filepath), as_attachment=True,
                         download_name=os.path.basename(filepath))

    @app.route('/export_all_sections_zip')
    def export_all_sections_zip():
        resolver = _allocator().resolver
        rosters = {}
        for student in resolver.assigned_students():
            key = (student.department, resolver.academic_year_of(student), student.section)
            rosters.setdefault(key, []).append(student)

        filepath = _excel().export_all_sections_zip(resolver.list_cohorts(), rosters)
        if not filepath:
            return _error('Error exporting section rosters', 500)
        return send_file(os.path.abspath(filepath), as_attachment=True,
                         download_name=os.path.basename(filepath))


app = create_app()

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=5000, debug=True)
