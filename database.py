import json
import sqlite3
from typing import Callable, List, Optional

from flask import g, current_app

from models import Department, Student, STUDENT_ROLE
from roster_store import RosterStore, StudentNotFound

SCHEMA = """
    CREATE TABLE IF NOT EXISTS students (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        student_id TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        email TEXT,
        department TEXT,
        batch TEXT,
        section TEXT,
        role TEXT NOT NULL DEFAULT 'Student'
    );

    CREATE TABLE IF NOT EXISTS departments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT UNIQUE NOT NULL,
        sections_json TEXT NOT NULL,
        max_students_per_section INTEGER
    );
"""


def get_db():
    """Get a database connection"""
    if 'db' not in g:
        g.db = sqlite3.connect(current_app.config['DATABASE'])
        g.db.row_factory = sqlite3.Row
    return g.db


def close_db(e=None):
    """Close the database connection"""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def init_db(db=None):
    """Initialize the database with required tables"""
    db = db or get_db()
    db.executescript(SCHEMA)
    db.commit()


def query_db(db, query, args=(), one=False):
    """Execute a query and return results"""
    cur = db.execute(query, args)
    rv = cur.fetchall()
    cur.close()
    return (rv[0] if rv else None) if one else rv


def execute_db(db, query, args=()):
    """Execute a query that doesn't return results"""
    cur = db.execute(query, args)
    db.commit()
    count = cur.rowcount
    cur.close()
    return count


def _student_from_row(row) -> Student:
    return Student(
        student_id=row['student_id'],
        name=row['name'],
        department=row['department'],
        batch=row['batch'],
        section=row['section'] or None,
        role=row['role'],
        email=row['email'],
    )


def _department_from_row(row) -> Department:
    return Department(
        name=row['name'],
        sections=json.loads(row['sections_json']),
        max_students_per_section=row['max_students_per_section'],
    )


class SqliteRosterStore(RosterStore):
    """
    Roster store backed by SQLite.

    `connect` is called for every operation; inside the app it is get_db so
    the connection follows the request lifecycle.
    """

    FILTER_COLUMNS = ('student_id', 'name', 'email', 'department', 'batch', 'section')

    def __init__(self, connect: Callable[[], sqlite3.Connection]):
        self.connect = connect

    def find_students(self, **filters) -> List[Student]:
        clauses = ['role = ?']
        args = [STUDENT_ROLE]
        for column, value in filters.items():
            if column not in self.FILTER_COLUMNS:
                raise ValueError(f"Unknown student filter: {column}")
            if value is None:
                clauses.append(f"({column} IS NULL OR {column} = '')")
            else:
                clauses.append(f"{column} = ?")
                args.append(value)
        rows = query_db(self.connect(),
                        f"SELECT * FROM students WHERE {' AND '.join(clauses)} ORDER BY id", args)
        return [_student_from_row(row) for row in rows]

    def get_student(self, student_id: str) -> Student:
        row = query_db(self.connect(), "SELECT * FROM students WHERE student_id = ?",
                       [student_id], one=True)
        if row is None:
            raise StudentNotFound(student_id)
        return _student_from_row(row)

    def update_student_section(self, student_id: str, section: Optional[str]) -> Student:
        changed = execute_db(self.connect(), "UPDATE students SET section = ? WHERE student_id = ?",
                             (section or None, student_id))
        if not changed:
            raise StudentNotFound(student_id)
        return self.get_student(student_id)

    def add_student(self, student: Student) -> bool:
        try:
            execute_db(
                self.connect(),
                """INSERT INTO students (student_id, name, email, department, batch, section, role)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (student.student_id, student.name, student.email, student.department,
                 student.batch, student.section or None, student.role)
            )
            return True
        except sqlite3.IntegrityError:
            return False

    def replace_students(self, students):
        db = self.connect()
        db.execute("DELETE FROM students")
        db.executemany(
            """INSERT OR IGNORE INTO students (student_id, name, email, department, batch, section, role)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            [(s.student_id, s.name, s.email, s.department, s.batch, s.section or None, s.role)
             for s in students]
        )
        db.commit()

    def all_users(self) -> List[Student]:
        return [_student_from_row(row)
                for row in query_db(self.connect(), "SELECT * FROM students ORDER BY id")]

    def list_departments(self) -> List[Department]:
        rows = query_db(self.connect(), "SELECT * FROM departments ORDER BY id")
        return [_department_from_row(row) for row in rows]

    def add_department(self, department: Department) -> bool:
        try:
            execute_db(
                self.connect(),
                "INSERT INTO departments (name, sections_json, max_students_per_section) VALUES (?, ?, ?)",
                (department.name, json.dumps(list(department.sections)),
                 department.max_students_per_section)
            )
            return True
        except sqlite3.IntegrityError:
            return False

    def clear(self, students: bool = True, departments: bool = False):
        db = self.connect()
        if students:
            db.execute("DELETE FROM students")
        if departments:
            db.execute("DELETE FROM departments")
        db.commit()
