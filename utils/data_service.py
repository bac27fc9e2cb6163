"""
Module for reading and writing exam-result records.

This module provides functionality to:
- Create, read, update and delete classes, subjects, exam types, exams and students
- Upsert marks, non-academic records and teacher remarks
- Read and save the school branding configuration and uploaded assets
- Report connection health and dashboard counts

Every failed write is rolled back and raised as a DataServiceError carrying
a human readable message and an HTTP status for the web layer.
"""

import os
import secrets
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.utils import secure_filename

from config import DEFAULT_SCHOOL_NAME, DEFAULT_SCHOOL_TAGLINE, ROLL_NUMBER_PREFIX
from models import (
    EXAM_STATUSES, SKILL_GRADES, STUDENT_STATUSES,
    Exam, ExamType, MarkRecord, NonAcademicRecord, SchoolClass, SchoolConfig,
    Student, Subject, TeacherRemark,
)
from utils.grading import entry_grade, mark_pass_rate


class DataServiceError(Exception):
    """A data operation that could not be completed."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RecordNotFoundError(DataServiceError):
    status_code = 404


def _required(data: Dict[str, Any], field: str, label: str) -> str:
    value = str(data.get(field) or '').strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


def _to_number(value, label: str, default: float = 0) -> float:
    if value is None or value == '':
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number")
    if number < 0:
        raise ValueError(f"{label} cannot be negative")
    return number


def _to_int(value, label: str, default: int = 0) -> int:
    number = _to_number(value, label, default)
    if number != int(number):
        raise ValueError(f"{label} must be a whole number")
    return int(number)


def _to_date(value, label: str) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
    except ValueError:
        raise ValueError(f"{label} must be a date in YYYY-MM-DD format")


def _to_bool(value, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ('false', '0', 'no', 'absent', 'ab', '')
    return bool(value)


def default_avatar_url(full_name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(full_name)}&background=random"


class DataService:
    """
    Data access for the admin screens, bound to a SQLAlchemy session.
    """

    def __init__(self, session, upload_folder: str = 'uploads'):
        """
        Args:
            session: SQLAlchemy session (normally ``db.session``)
            upload_folder (str): Directory where uploaded branding assets are stored
        """
        self.session = session
        self.upload_folder = upload_folder

    # --- helpers ---

    def _commit(self, failure_message: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DataServiceError(f"{failure_message}: a record with the same key already exists", 409) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DataServiceError(failure_message, 500) from e

    def _get_or_404(self, model, key, label: str):
        record = self.session.get(model, key)
        if record is None:
            raise RecordNotFoundError(f"{label} not found")
        return record

    # --- classes ---

    def get_classes(self) -> List[SchoolClass]:
        stmt = select(SchoolClass).order_by(SchoolClass.class_name, SchoolClass.section)
        return list(self.session.scalars(stmt))

    def get_class(self, class_id: str) -> SchoolClass:
        return self._get_or_404(SchoolClass, class_id, 'Class')

    def add_class(self, data: Dict[str, Any]) -> SchoolClass:
        cls = SchoolClass(
            class_name=_required(data, 'class_name', 'Class name'),
            section=_required(data, 'section', 'Section'),
        )
        self.session.add(cls)
        self._commit("Failed to add class")
        return cls

    def update_class(self, class_id: str, data: Dict[str, Any]) -> SchoolClass:
        cls = self.get_class(class_id)
        cls.class_name = _required(data, 'class_name', 'Class name')
        cls.section = _required(data, 'section', 'Section')
        self._commit("Failed to update class")
        return cls

    def delete_class(self, class_id: str) -> None:
        self.session.delete(self.get_class(class_id))
        self._commit("Failed to delete class")

    # --- subjects ---

    def get_subjects(self) -> List[Subject]:
        return list(self.session.scalars(select(Subject).order_by(Subject.name)))

    def get_subject(self, subject_id: str) -> Subject:
        return self._get_or_404(Subject, subject_id, 'Subject')

    def _apply_subject(self, subject: Subject, data: Dict[str, Any]) -> Subject:
        subject.name = _required(data, 'name', 'Subject name')
        subject.code = _required(data, 'code', 'Subject code').upper()
        objective = _to_int(data.get('max_marks_objective'), 'Objective max marks')
        subjective = _to_int(data.get('max_marks_subjective'), 'Subjective max marks')
        # Component maxima define the total whenever they are given
        if objective + subjective > 0:
            max_marks = objective + subjective
        else:
            max_marks = _to_int(data.get('max_marks'), 'Max marks', 100)
        pass_marks = _to_int(data.get('pass_marks'), 'Pass marks', 0)
        if max_marks <= 0:
            raise ValueError("Max marks must be greater than zero")
        if pass_marks > max_marks:
            raise ValueError("Pass marks cannot exceed max marks")
        subject.max_marks_objective = objective
        subject.max_marks_subjective = subjective
        subject.max_marks = max_marks
        subject.pass_marks = pass_marks
        return subject

    def add_subject(self, data: Dict[str, Any]) -> Subject:
        subject = self._apply_subject(Subject(), data)
        self.session.add(subject)
        self._commit("Failed to add subject")
        return subject

    def update_subject(self, subject_id: str, data: Dict[str, Any]) -> Subject:
        subject = self._apply_subject(self.get_subject(subject_id), data)
        self._commit("Failed to update subject")
        return subject

    def delete_subject(self, subject_id: str) -> None:
        subject = self.get_subject(subject_id)
        self.session.query(MarkRecord).filter_by(subject_id=subject_id).delete()
        self.session.query(TeacherRemark).filter_by(subject_id=subject_id).delete()
        self.session.delete(subject)
        self._commit("Failed to delete subject")

    # --- exam types ---

    def get_exam_types(self) -> List[ExamType]:
        return list(self.session.scalars(select(ExamType).order_by(ExamType.name)))

    def get_exam_type(self, type_id: str) -> ExamType:
        return self._get_or_404(ExamType, type_id, 'Exam type')

    def add_exam_type(self, data: Dict[str, Any]) -> ExamType:
        exam_type = ExamType(
            name=_required(data, 'name', 'Exam type name'),
            description=str(data.get('description') or '').strip(),
        )
        self.session.add(exam_type)
        self._commit("Failed to add exam type. Name might be duplicate")
        return exam_type

    def update_exam_type(self, type_id: str, data: Dict[str, Any]) -> ExamType:
        exam_type = self.get_exam_type(type_id)
        exam_type.name = _required(data, 'name', 'Exam type name')
        exam_type.description = str(data.get('description') or '').strip()
        self._commit("Failed to update exam type")
        return exam_type

    def delete_exam_type(self, type_id: str) -> None:
        self.session.delete(self.get_exam_type(type_id))
        self._commit("Failed to delete exam type")

    # --- exams ---

    def get_exams(self) -> List[Exam]:
        return list(self.session.scalars(select(Exam).order_by(Exam.start_date, Exam.name)))

    def get_exam(self, exam_id: str) -> Exam:
        return self._get_or_404(Exam, exam_id, 'Exam')

    def _apply_exam(self, exam: Exam, data: Dict[str, Any]) -> Exam:
        status = str(data.get('status') or 'Upcoming').strip()
        if status not in EXAM_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(EXAM_STATUSES)}")
        exam.name = _required(data, 'name', 'Exam name')
        exam.term = str(data.get('type') or '').strip()
        exam.start_date = _to_date(data.get('date'), 'Exam date')
        exam.status = status
        return exam

    def add_exam(self, data: Dict[str, Any]) -> Exam:
        exam = self._apply_exam(Exam(), data)
        exam.academic_year = str(date.today().year)
        self.session.add(exam)
        self._commit("Failed to add exam")
        return exam

    def update_exam(self, exam_id: str, data: Dict[str, Any]) -> Exam:
        exam = self._apply_exam(self.get_exam(exam_id), data)
        self._commit("Failed to update exam")
        return exam

    def duplicate_exam(self, exam_id: str) -> Exam:
        source = self.get_exam(exam_id)
        return self.add_exam({
            'name': f"{source.name} (Copy)",
            'type': source.term,
            'date': source.start_date,
            'status': 'Upcoming',
        })

    def delete_exam(self, exam_id: str) -> None:
        exam = self.get_exam(exam_id)
        self.session.query(MarkRecord).filter_by(exam_id=exam_id).delete()
        self.session.query(TeacherRemark).filter_by(exam_id=exam_id).delete()
        self.session.query(NonAcademicRecord).filter_by(exam_id=exam_id).delete()
        self.session.delete(exam)
        self._commit("Failed to delete exam")

    # --- students ---

    def get_students(self, class_name: Optional[str] = None, section: Optional[str] = None) -> List[Student]:
        stmt = select(Student)
        if class_name:
            stmt = stmt.where(Student.class_name == class_name)
        if section:
            stmt = stmt.where(Student.section == section)
        return list(self.session.scalars(stmt.order_by(Student.roll_number)))

    def get_students_in_class(self, class_id: str) -> List[Student]:
        cls = self.get_class(class_id)
        return self.get_students(cls.class_name, cls.section)

    def get_student(self, student_id: str) -> Student:
        return self._get_or_404(Student, student_id, 'Student')

    def _last_roll_sequence(self) -> int:
        highest = 0
        for roll in self.session.scalars(select(Student.roll_number)):
            digits = ''.join(ch for ch in str(roll) if ch.isdigit())
            if digits:
                highest = max(highest, int(digits))
        return highest

    def _apply_student(self, student: Student, data: Dict[str, Any]) -> Student:
        status = str(data.get('status') or 'Active').strip()
        if status not in STUDENT_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(STUDENT_STATUSES)}")
        student.full_name = _required(data, 'full_name', 'Full name')
        student.class_name = _required(data, 'class_name', 'Class name')
        student.section = _required(data, 'section', 'Section')
        student.contact_number = str(data.get('contact_number') or '').strip()
        student.guardian_name = str(data.get('guardian_name') or '').strip()
        student.status = status
        student.avatar_url = str(data.get('avatar_url') or '').strip() or default_avatar_url(student.full_name)
        student.date_of_birth = _to_date(data.get('date_of_birth'), 'Date of birth')
        return student

    def add_student(self, data: Dict[str, Any]) -> Student:
        student = self._apply_student(Student(), data)
        student.roll_number = f"{ROLL_NUMBER_PREFIX}{self._last_roll_sequence() + 1:03d}"
        self.session.add(student)
        self._commit("Failed to add student")
        return student

    def bulk_add_students(self, rows: List[Dict[str, Any]]) -> List[Student]:
        """
        Add many students in one transaction, numbering rolls after the current highest.

        Raises:
            ValueError: naming the first invalid row (1-based)
        """
        start = self._last_roll_sequence()
        students = []
        for idx, row in enumerate(rows, start=1):
            try:
                student = self._apply_student(Student(), row)
            except ValueError as e:
                raise ValueError(f"Row {idx}: {e}")
            student.roll_number = f"{ROLL_NUMBER_PREFIX}{start + idx:03d}"
            students.append(student)
        self.session.add_all(students)
        self._commit("Failed to bulk add students")
        return students

    def update_student(self, student_id: str, data: Dict[str, Any]) -> Student:
        student = self._apply_student(self.get_student(student_id), data)
        self._commit("Failed to update student")
        return student

    def delete_student(self, student_id: str) -> None:
        student = self.get_student(student_id)
        self.session.query(MarkRecord).filter_by(student_id=student_id).delete()
        self.session.query(TeacherRemark).filter_by(student_id=student_id).delete()
        self.session.query(NonAcademicRecord).filter_by(student_id=student_id).delete()
        self.session.delete(student)
        self._commit("Failed to delete student")

    # --- marks ---

    def get_marks(self, exam_id: str, subject_id: str) -> List[MarkRecord]:
        stmt = select(MarkRecord).where(MarkRecord.exam_id == exam_id, MarkRecord.subject_id == subject_id)
        return list(self.session.scalars(stmt))

    def _merge_remarks(self, marks: List[MarkRecord], remarks: List[TeacherRemark]) -> List[Dict[str, Any]]:
        by_key = {(r.exam_id, r.subject_id): r.remark for r in remarks}
        merged = []
        for mark in marks:
            record = mark.to_dict()
            remark = by_key.get((mark.exam_id, mark.subject_id))
            if remark:
                record['remarks'] = remark
            merged.append(record)
        return merged

    def get_student_marks(self, student_id: str, exam_id: str) -> List[Dict[str, Any]]:
        marks = self.session.scalars(select(MarkRecord).filter_by(student_id=student_id, exam_id=exam_id))
        remarks = self.session.scalars(select(TeacherRemark).filter_by(student_id=student_id, exam_id=exam_id))
        return self._merge_remarks(list(marks), list(remarks))

    def get_student_history(self, student_id: str) -> List[Dict[str, Any]]:
        """All marks of a student across exams, with teacher remarks merged in."""
        marks = self.session.scalars(select(MarkRecord).filter_by(student_id=student_id))
        remarks = self.session.scalars(select(TeacherRemark).filter_by(student_id=student_id))
        return self._merge_remarks(list(marks), list(remarks))

    def get_exam_marks(self, exam_id: str) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.session.scalars(select(MarkRecord).filter_by(exam_id=exam_id))]

    def get_all_marks(self) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.session.scalars(select(MarkRecord))]

    def _stage_mark(self, data: Dict[str, Any]) -> MarkRecord:
        student_id = _required(data, 'student_id', 'Student')
        exam_id = _required(data, 'exam_id', 'Exam')
        subject_id = _required(data, 'subject_id', 'Subject')
        self.get_student(student_id)
        exam = self.get_exam(exam_id)
        self.get_subject(subject_id)

        obj_marks = _to_number(data.get('obj_marks'), 'Objective marks')
        sub_marks = _to_number(data.get('sub_marks'), 'Subjective marks')
        obj_max = _to_number(data.get('obj_max_marks'), 'Objective max marks')
        sub_max = _to_number(data.get('sub_max_marks'), 'Subjective max marks')
        if obj_max > 0 and obj_marks > obj_max:
            raise ValueError(f"Objective marks cannot exceed {obj_max:g}")
        if sub_max > 0 and sub_marks > sub_max:
            raise ValueError(f"Subjective marks cannot exceed {sub_max:g}")
        exam_date = _to_date(data.get('exam_date'), 'Exam date') or exam.start_date or date.today()

        key = (student_id, exam_id, subject_id)
        mark = self.session.get(MarkRecord, key)
        if mark is None:
            mark = MarkRecord(student_id=student_id, exam_id=exam_id, subject_id=subject_id)
            self.session.add(mark)
        mark.obj_marks = obj_marks
        mark.sub_marks = sub_marks
        mark.obj_max_marks = obj_max
        mark.sub_max_marks = sub_max
        mark.exam_date = exam_date
        mark.attended = _to_bool(data.get('attended'))
        mark.remarks = str(data.get('remarks') or '')
        mark.grade = str(data.get('grade') or '').strip() or entry_grade(obj_marks, sub_marks, obj_max, sub_max)
        return mark

    def update_mark(self, data: Dict[str, Any]) -> MarkRecord:
        mark = self._stage_mark(data)
        self._commit("Failed to upsert marks record")
        return mark

    def bulk_update_marks(self, records: List[Dict[str, Any]]) -> int:
        """
        Upsert many mark records in one transaction.

        Returns:
            int: number of records written
        """
        if not records:
            return 0
        try:
            for idx, data in enumerate(records, start=1):
                try:
                    self._stage_mark(data)
                except ValueError as e:
                    raise ValueError(f"Record {idx}: {e}")
        except (ValueError, DataServiceError):
            self.session.rollback()
            raise
        self._commit("Database batch operation failed")
        return len(records)

    # --- non-academic records ---

    def get_non_academic_records(self, exam_id: str) -> List[NonAcademicRecord]:
        return list(self.session.scalars(select(NonAcademicRecord).filter_by(exam_id=exam_id)))

    def save_non_academic_record(self, data: Dict[str, Any]) -> NonAcademicRecord:
        student_id = _required(data, 'student_id', 'Student')
        exam_id = _required(data, 'exam_id', 'Exam')
        self.get_student(student_id)
        self.get_exam(exam_id)
        grades = {}
        for field in ('discipline', 'communication', 'participation'):
            value = str(data.get(field) or 'A').strip().upper()
            if value not in SKILL_GRADES:
                raise ValueError(f"{field.capitalize()} must be a grade from A to E")
            grades[field] = value

        record = self.session.get(NonAcademicRecord, (student_id, exam_id))
        if record is None:
            record = NonAcademicRecord(student_id=student_id, exam_id=exam_id)
            self.session.add(record)
        record.attendance = str(data.get('attendance') or '').strip()
        record.discipline = grades['discipline']
        record.communication = grades['communication']
        record.participation = grades['participation']
        record.updated_at = datetime.now()
        self._commit("Failed to save non-academic record")
        return record

    # --- teacher remarks ---

    def get_teacher_remarks(self, exam_id: str, subject_id: str) -> List[TeacherRemark]:
        return list(self.session.scalars(select(TeacherRemark).filter_by(exam_id=exam_id, subject_id=subject_id)))

    def save_teacher_remark(self, data: Dict[str, Any]) -> TeacherRemark:
        student_id = _required(data, 'student_id', 'Student')
        exam_id = _required(data, 'exam_id', 'Exam')
        subject_id = _required(data, 'subject_id', 'Subject')
        self.get_student(student_id)
        self.get_exam(exam_id)
        self.get_subject(subject_id)

        remark = self.session.get(TeacherRemark, (student_id, exam_id, subject_id))
        if remark is None:
            remark = TeacherRemark(student_id=student_id, exam_id=exam_id, subject_id=subject_id)
            self.session.add(remark)
        remark.remark = str(data.get('remark') or '').strip()
        remark.updated_at = datetime.now()
        self._commit("Failed to save remark")
        return remark

    # --- school configuration ---

    def get_school_info(self) -> Dict[str, Any]:
        config = self.session.get(SchoolConfig, 1)
        if config is None:
            return {
                'name': DEFAULT_SCHOOL_NAME,
                'tagline': DEFAULT_SCHOOL_TAGLINE,
                'logo': '',
                'watermark': '',
                'scorecard_layout': None,
            }
        return {
            'name': config.name or DEFAULT_SCHOOL_NAME,
            'tagline': config.tagline or '',
            'logo': config.logo_url or '',
            'watermark': config.watermark_url or '',
            'scorecard_layout': config.scorecard_layout,
        }

    def update_school_info(self, data: Dict[str, Any]) -> Dict[str, Any]:
        layout = data.get('scorecard_layout')
        if layout is not None and not isinstance(layout, list):
            raise ValueError("Score card layout must be a list of blocks")

        config = self.session.get(SchoolConfig, 1)
        if config is None:
            config = SchoolConfig(id=1)
            self.session.add(config)
        config.name = _required(data, 'name', 'School name')
        config.tagline = str(data.get('tagline') or '').strip()
        config.logo_url = str(data.get('logo') or '').strip()
        config.watermark_url = str(data.get('watermark') or '').strip()
        if 'scorecard_layout' in data:
            config.scorecard_layout = layout
        config.updated_at = datetime.now()
        self._commit("Failed to update school info")
        return self.get_school_info()

    def save_upload(self, file_storage, folder: str = 'branding') -> str:
        """
        Store an uploaded file under the upload folder with a unique name.

        Returns:
            str: public path of the stored file, e.g. ``/uploads/branding/1700000000_ab12cd.png``
        """
        original = secure_filename(file_storage.filename or '')
        ext = original.rsplit('.', 1)[1].lower() if '.' in original else 'bin'
        folder = secure_filename(folder) or 'branding'
        filename = f"{int(datetime.now().timestamp() * 1000)}_{secrets.token_hex(4)}.{ext}"
        target_dir = os.path.join(self.upload_folder, folder)
        os.makedirs(target_dir, exist_ok=True)
        try:
            file_storage.save(os.path.join(target_dir, filename))
        except OSError as e:
            raise DataServiceError("Failed to upload file", 500) from e
        return f"/uploads/{folder}/{filename}"

    # --- health ---

    def check_connection(self) -> bool:
        try:
            self.session.execute(text('SELECT 1'))
            return True
        except SQLAlchemyError:
            self.session.rollback()
            return False

    def get_dashboard_stats(self) -> Dict[str, Any]:
        total_students = self.session.scalar(select(func.count()).select_from(Student)) or 0
        total_exams = self.session.scalar(select(func.count()).select_from(Exam)) or 0
        pending = self.session.scalar(
            select(func.count()).select_from(Exam).where(Exam.status.in_(('Upcoming', 'Ongoing')))
        ) or 0
        return {
            'total_students': total_students,
            'active_exams': total_exams,
            'pending_exams': pending,
            'pass_rate': mark_pass_rate(self.get_all_marks()),
        }
