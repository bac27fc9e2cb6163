import io
import os

import pytest
from werkzeug.datastructures import FileStorage

from models import MarkRecord, NonAcademicRecord, TeacherRemark
from utils.data_service import DataServiceError, RecordNotFoundError


class TestClassesAndSubjects:

    def test_classes_are_sorted(self, service):
        service.add_class({'class_name': 'X', 'section': 'B'})
        service.add_class({'class_name': 'IX', 'section': 'A'})
        service.add_class({'class_name': 'X', 'section': 'A'})
        assert [(c.class_name, c.section) for c in service.get_classes()] == [('IX', 'A'), ('X', 'A'), ('X', 'B')]

    def test_duplicate_class_is_rejected(self, service):
        service.add_class({'class_name': 'X', 'section': 'A'})
        with pytest.raises(DataServiceError) as exc:
            service.add_class({'class_name': 'X', 'section': 'A'})
        assert exc.value.status_code == 409

    def test_class_requires_name(self, service):
        with pytest.raises(ValueError, match='Class name is required'):
            service.add_class({'class_name': ' ', 'section': 'A'})

    def test_subject_total_follows_components(self, service):
        subject = service.add_subject({'name': 'Physics', 'code': 'phy', 'max_marks': 50,
                                       'pass_marks': 30, 'max_marks_objective': 25, 'max_marks_subjective': 75})
        assert subject.code == 'PHY'
        assert subject.max_marks == 100

    def test_subject_pass_marks_cannot_exceed_max(self, service):
        with pytest.raises(ValueError, match='Pass marks cannot exceed max marks'):
            service.add_subject({'name': 'Art', 'code': 'ART', 'max_marks': 50, 'pass_marks': 60})

    def test_subjects_and_exam_types_sorted_by_name(self, service):
        service.add_subject({'name': 'Science', 'code': 'SCI'})
        service.add_subject({'name': 'English', 'code': 'ENG'})
        service.add_subject({'name': 'Mathematics', 'code': 'MATH'})
        assert [s.name for s in service.get_subjects()] == ['English', 'Mathematics', 'Science']

        service.add_exam_type({'name': 'Unit Test'})
        service.add_exam_type({'name': 'Final'})
        service.add_exam_type({'name': 'Half Yearly'})
        assert [t.name for t in service.get_exam_types()] == ['Final', 'Half Yearly', 'Unit Test']

    def test_delete_subject_removes_its_records(self, service, school):
        for subject in (school.math, school.science):
            service.update_mark({'student_id': school.asha.id, 'exam_id': school.unit.id, 'subject_id': subject.id,
                                 'sub_marks': 40, 'sub_max_marks': 80})
            service.save_teacher_remark({'student_id': school.asha.id, 'exam_id': school.unit.id,
                                         'subject_id': subject.id, 'remark': 'Steady'})
        math_id = school.math.id
        service.delete_subject(math_id)
        assert [s.name for s in service.get_subjects()] == ['Science']
        assert service.session.query(MarkRecord).filter_by(subject_id=math_id).count() == 0
        assert service.session.query(TeacherRemark).filter_by(subject_id=math_id).count() == 0
        assert service.session.query(MarkRecord).count() == 1
        assert service.session.query(TeacherRemark).count() == 1

    def test_missing_record(self, service):
        with pytest.raises(RecordNotFoundError):
            service.get_subject('missing')


class TestExams:

    def test_exam_status_is_validated(self, service):
        with pytest.raises(ValueError, match='Status must be one of'):
            service.add_exam({'name': 'Finals', 'status': 'Cancelled'})

    def test_exams_sorted_by_date(self, service):
        service.add_exam({'name': 'Finals', 'date': '2025-03-01'})
        service.add_exam({'name': 'Unit Test 1', 'date': '2024-08-15'})
        service.add_exam({'name': 'Half Yearly', 'date': '2024-11-20'})
        assert [e.name for e in service.get_exams()] == ['Unit Test 1', 'Half Yearly', 'Finals']

    def test_duplicate_exam(self, service):
        exam = service.add_exam({'name': 'Finals', 'type': 'Term', 'date': '2025-03-01', 'status': 'Published'})
        copy = service.duplicate_exam(exam.id)
        assert copy.id != exam.id
        assert copy.name == 'Finals (Copy)'
        assert copy.status == 'Upcoming'
        assert copy.start_date == exam.start_date

    def test_delete_exam_removes_its_records(self, service, school):
        service.update_mark({'student_id': school.asha.id, 'exam_id': school.unit.id, 'subject_id': school.math.id,
                             'obj_marks': 10, 'sub_marks': 40, 'obj_max_marks': 20, 'sub_max_marks': 80})
        service.save_teacher_remark({'student_id': school.asha.id, 'exam_id': school.unit.id,
                                     'subject_id': school.math.id, 'remark': 'Steady'})
        service.save_non_academic_record({'student_id': school.asha.id, 'exam_id': school.unit.id})
        service.delete_exam(school.unit.id)
        assert service.session.query(MarkRecord).count() == 0
        assert service.session.query(TeacherRemark).count() == 0
        assert service.session.query(NonAcademicRecord).count() == 0


class TestStudents:

    def test_roll_numbers_are_sequential(self, service, school):
        assert school.asha.roll_number == 'ACS001'
        assert school.ravi.roll_number == 'ACS002'
        assert school.asha.avatar_url.startswith('https://ui-avatars.com/api/?name=Asha%20Verma')

    def test_students_sorted_by_roll_number(self, service, school):
        service.update_student(school.asha.id, {'full_name': 'Zara Verma', 'class_name': 'X', 'section': 'A'})
        service.add_student({'full_name': 'Aman Gill', 'class_name': 'X', 'section': 'A'})
        assert [(s.roll_number, s.full_name) for s in service.get_students()] == [
            ('ACS001', 'Zara Verma'), ('ACS002', 'Ravi Kumar'), ('ACS003', 'Aman Gill'),
        ]

    def test_bulk_add_continues_sequence(self, service, school):
        students = service.bulk_add_students([
            {'full_name': 'Meera Shah', 'class_name': 'X', 'section': 'A'},
            {'full_name': 'Kabir Rao', 'class_name': 'X', 'section': 'B'},
        ])
        assert [s.roll_number for s in students] == ['ACS003', 'ACS004']
        assert len(service.get_students_in_class(school.cls.id)) == 3

    def test_bulk_add_names_bad_row(self, service):
        with pytest.raises(ValueError, match='Row 2: Full name is required'):
            service.bulk_add_students([
                {'full_name': 'Meera Shah', 'class_name': 'X', 'section': 'A'},
                {'full_name': '', 'class_name': 'X', 'section': 'A'},
            ])
        assert service.get_students() == []


class TestMarks:

    def test_upsert_mark_sets_entry_grade(self, service, school):
        data = {'student_id': school.asha.id, 'exam_id': school.unit.id, 'subject_id': school.math.id,
                'obj_marks': 10, 'sub_marks': 30, 'obj_max_marks': 20, 'sub_max_marks': 80}
        mark = service.update_mark(data)
        assert mark.grade == 'Pass'
        assert str(mark.exam_date) == '2025-01-10'

        service.update_mark(dict(data, obj_marks=2, sub_marks=10))
        marks = service.get_marks(school.unit.id, school.math.id)
        assert len(marks) == 1
        assert marks[0].grade == 'Fail'

    def test_mark_above_maximum_is_rejected(self, service, school):
        with pytest.raises(ValueError, match='Objective marks cannot exceed 20'):
            service.update_mark({'student_id': school.asha.id, 'exam_id': school.unit.id,
                                 'subject_id': school.math.id, 'obj_marks': 25, 'obj_max_marks': 20})

    def test_bulk_update_is_all_or_nothing(self, service, school):
        good = {'student_id': school.asha.id, 'exam_id': school.unit.id, 'subject_id': school.math.id,
                'obj_marks': 10, 'sub_marks': 30, 'obj_max_marks': 20, 'sub_max_marks': 80}
        bad = dict(good, student_id=school.ravi.id, sub_marks=-1)
        with pytest.raises(ValueError, match='Record 2: Subjective marks cannot be negative'):
            service.bulk_update_marks([good, bad])
        assert service.get_marks(school.unit.id, school.math.id) == []

        assert service.bulk_update_marks([good, dict(good, student_id=school.ravi.id)]) == 2

    def test_history_merges_teacher_remarks(self, service, school):
        service.update_mark({'student_id': school.asha.id, 'exam_id': school.unit.id, 'subject_id': school.math.id,
                             'sub_marks': 40, 'sub_max_marks': 80, 'remarks': 'old note'})
        service.save_teacher_remark({'student_id': school.asha.id, 'exam_id': school.unit.id,
                                     'subject_id': school.math.id, 'remark': 'Works hard'})
        history = service.get_student_history(school.asha.id)
        assert len(history) == 1
        assert history[0]['remarks'] == 'Works hard'

    def test_non_academic_grades(self, service, school):
        record = service.save_non_academic_record({'student_id': school.asha.id, 'exam_id': school.unit.id,
                                                   'attendance': '45/50', 'discipline': 'b'})
        assert record.discipline == 'B'
        assert record.communication == 'A'
        with pytest.raises(ValueError, match='Participation must be a grade from A to E'):
            service.save_non_academic_record({'student_id': school.asha.id, 'exam_id': school.unit.id,
                                              'participation': 'F'})

    def test_delete_student_removes_marks(self, service, school):
        service.update_mark({'student_id': school.ravi.id, 'exam_id': school.unit.id, 'subject_id': school.math.id,
                             'sub_marks': 40, 'sub_max_marks': 80})
        service.delete_student(school.ravi.id)
        assert service.get_all_marks() == []


class TestSchoolConfig:

    def test_defaults_before_first_save(self, service):
        info = service.get_school_info()
        assert info['name'] == 'UNACADEMY'
        assert info['tagline'] == 'Excellence in Education'
        assert info['scorecard_layout'] is None

    def test_update_and_layout(self, service):
        layout = [{'id': 'logo', 'type': 'logo', 'x': 0, 'y': 0, 'w': 10, 'h': 10}]
        info = service.update_school_info({'name': 'Greenwood High', 'tagline': 'Learn', 'scorecard_layout': layout})
        assert info['name'] == 'Greenwood High'
        assert info['scorecard_layout'] == layout

        info = service.update_school_info({'name': 'Greenwood High'})
        assert info['scorecard_layout'] == layout
        assert info['tagline'] == ''

    def test_layout_must_be_list(self, service):
        with pytest.raises(ValueError, match='Score card layout must be a list'):
            service.update_school_info({'name': 'X', 'scorecard_layout': 'nope'})

    def test_save_upload(self, service):
        upload = FileStorage(stream=io.BytesIO(b'\x89PNG fake'), filename='my logo.PNG')
        url = service.save_upload(upload)
        assert url.startswith('/uploads/branding/')
        assert url.endswith('.png')
        stored = os.path.join(service.upload_folder, url[len('/uploads/'):])
        assert os.path.exists(stored)


def test_dashboard_stats(service, school):
    service.update_mark({'student_id': school.asha.id, 'exam_id': school.unit.id, 'subject_id': school.math.id,
                         'sub_marks': 40, 'sub_max_marks': 80, 'obj_max_marks': 20})
    service.update_mark({'student_id': school.ravi.id, 'exam_id': school.unit.id, 'subject_id': school.math.id,
                         'sub_marks': 10, 'sub_max_marks': 80, 'obj_max_marks': 20})
    stats = service.get_dashboard_stats()
    assert stats == {'total_students': 2, 'active_exams': 2, 'pending_exams': 0, 'pass_rate': 50.0}
    assert service.check_connection() is True
