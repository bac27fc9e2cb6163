"""
Database models for the Exam Results Admin.

Tables:
- classes, subjects, exam_types, exams, students
- marks: one row per student + exam + subject (objective and subjective parts)
- non_academic_records: one row per student + exam
- teacher_remarks: one row per student + exam + subject
- school_config: single branding row (id = 1)
"""

import uuid
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

EXAM_STATUSES = ('Upcoming', 'Ongoing', 'Completed', 'Published')
STUDENT_STATUSES = ('Active', 'Inactive', 'Suspended')
SKILL_GRADES = ('A', 'B', 'C', 'D', 'E')


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else ''


class SchoolClass(db.Model):
    """A class and section, e.g. X - A"""
    __tablename__ = 'classes'
    __table_args__ = (db.UniqueConstraint('name', 'section', name='uq_class_section'),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    class_name = db.Column('name', db.String(50), nullable=False)
    section = db.Column(db.String(20), nullable=False)

    def to_dict(self):
        return {'id': self.id, 'class_name': self.class_name, 'section': self.section}

    def __repr__(self):
        return f"<SchoolClass({self.class_name}-{self.section})>"


class Subject(db.Model):
    __tablename__ = 'subjects'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), unique=True, nullable=False)
    max_marks = db.Column(db.Integer, nullable=False, default=100)
    pass_marks = db.Column(db.Integer, nullable=False, default=33)
    max_marks_objective = db.Column(db.Integer, default=0)
    max_marks_subjective = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code,
            'max_marks': self.max_marks,
            'pass_marks': self.pass_marks,
            'max_marks_objective': self.max_marks_objective or 0,
            'max_marks_subjective': self.max_marks_subjective or 0,
        }

    def __repr__(self):
        return f"<Subject(code={self.code}, name={self.name})>"


class ExamType(db.Model):
    __tablename__ = 'exam_types'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text, default='')

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'description': self.description or ''}


class Exam(db.Model):
    __tablename__ = 'exams'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(150), nullable=False)
    term = db.Column(db.String(100), default='')  # exam type name
    start_date = db.Column(db.Date)
    status = db.Column(db.String(20), nullable=False, default='Upcoming')
    academic_year = db.Column(db.String(10))

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.term or '',
            'date': _iso(self.start_date),
            'status': self.status,
            'academic_year': self.academic_year or '',
        }


class Student(db.Model):
    __tablename__ = 'students'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    full_name = db.Column(db.String(150), nullable=False)
    roll_number = db.Column(db.String(20), unique=True, nullable=False)
    class_name = db.Column(db.String(50), nullable=False)
    section = db.Column(db.String(20), nullable=False)
    contact_number = db.Column(db.String(30), default='')
    guardian_name = db.Column(db.String(150), default='')
    status = db.Column(db.String(20), nullable=False, default='Active')
    avatar_url = db.Column(db.String(500), default='')
    date_of_birth = db.Column(db.Date)

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'roll_number': self.roll_number,
            'class_name': self.class_name,
            'section': self.section,
            'contact_number': self.contact_number or '',
            'guardian_name': self.guardian_name or '',
            'status': self.status,
            'avatar_url': self.avatar_url or '',
            'date_of_birth': _iso(self.date_of_birth),
        }

    def __repr__(self):
        return f"<Student(roll={self.roll_number}, name={self.full_name})>"


class MarkRecord(db.Model):
    """Marks of one student in one subject of one exam"""
    __tablename__ = 'marks'

    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), primary_key=True)
    exam_id = db.Column(db.String(36), db.ForeignKey('exams.id'), primary_key=True)
    subject_id = db.Column(db.String(36), db.ForeignKey('subjects.id'), primary_key=True)
    obj_marks = db.Column(db.Float, default=0)
    obj_max_marks = db.Column(db.Float, default=0)
    sub_marks = db.Column(db.Float, default=0)
    sub_max_marks = db.Column(db.Float, default=0)
    exam_date = db.Column(db.Date)
    grade = db.Column(db.String(10), default='F')
    remarks = db.Column(db.Text, default='')
    attended = db.Column(db.Boolean, default=True)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'exam_id': self.exam_id,
            'subject_id': self.subject_id,
            'obj_marks': self.obj_marks or 0,
            'obj_max_marks': self.obj_max_marks or 0,
            'sub_marks': self.sub_marks or 0,
            'sub_max_marks': self.sub_max_marks or 0,
            'exam_date': _iso(self.exam_date),
            'grade': self.grade or 'F',
            'remarks': self.remarks or '',
            'attended': True if self.attended is None else bool(self.attended),
        }


class NonAcademicRecord(db.Model):
    __tablename__ = 'non_academic_records'

    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), primary_key=True)
    exam_id = db.Column(db.String(36), db.ForeignKey('exams.id'), primary_key=True)
    attendance = db.Column(db.String(20), default='')  # e.g. "45/50"
    discipline = db.Column(db.String(2), default='A')
    communication = db.Column('leadership', db.String(2), default='A')
    participation = db.Column('arts', db.String(2), default='A')
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'exam_id': self.exam_id,
            'attendance': self.attendance or '',
            'discipline': self.discipline or 'A',
            'communication': self.communication or 'A',
            'participation': self.participation or 'A',
            'updated_at': _iso(self.updated_at),
        }


class TeacherRemark(db.Model):
    __tablename__ = 'teacher_remarks'

    student_id = db.Column(db.String(36), db.ForeignKey('students.id'), primary_key=True)
    exam_id = db.Column(db.String(36), db.ForeignKey('exams.id'), primary_key=True)
    subject_id = db.Column(db.String(36), db.ForeignKey('subjects.id'), primary_key=True)
    remark = db.Column(db.Text, default='')
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    def to_dict(self):
        return {
            'student_id': self.student_id,
            'exam_id': self.exam_id,
            'subject_id': self.subject_id,
            'remark': self.remark or '',
        }


class SchoolConfig(db.Model):
    """School branding; a single row with id 1"""
    __tablename__ = 'school_config'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200))
    tagline = db.Column(db.String(300))
    logo_url = db.Column(db.String(500), default='')
    watermark_url = db.Column(db.String(500), default='')
    scorecard_layout = db.Column(db.JSON)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)
