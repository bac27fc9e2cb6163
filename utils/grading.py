"""
Module for score-card arithmetic and class result analysis.

This module provides functionality to:
- Convert percentages to letter grades
- Compute per-subject and overall totals for a student's score card
- Label single mark entries as Pass/Fail
- Summarise a class's results for one exam (subject-wise and overall)
"""

from datetime import date
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from config import ENTRY_PASS_PERCENTAGE

GRADE_BANDS = [
    (90, 'A+'),
    (80, 'A'),
    (70, 'B'),
    (60, 'C'),
    (50, 'D'),
    (40, 'E'),
]

OBJECTIVE = 'Objective'
SUBJECTIVE = 'Subjective'


def grade_for_percentage(percentage: float) -> str:
    """
    Map a percentage to its letter grade.

    Args:
        percentage (float): Score percentage (0-100)

    Returns:
        str: One of A+, A, B, C, D, E or F
    """
    for threshold, grade in GRADE_BANDS:
        if percentage >= threshold:
            return grade
    return 'F'


def entry_grade(obj_marks: float, sub_marks: float, obj_max: float, sub_max: float) -> str:
    """Pass/Fail label shown on the marks entry screen."""
    total_max = (obj_max or 0) + (sub_max or 0)
    percentage = ((obj_marks or 0) + (sub_marks or 0)) / total_max * 100 if total_max > 0 else 0
    return 'Pass' if percentage >= ENTRY_PASS_PERCENTAGE else 'Fail'


def mark_pass_rate(marks: List[Dict[str, Any]]) -> float:
    """
    Percentage of attended mark records at or above the entry pass percentage.

    Returns:
        float: pass rate rounded to one decimal, 0.0 when nothing is recorded
    """
    if not marks:
        return 0.0
    df = pd.DataFrame(marks)
    df = df[df['attended'].astype(bool)]
    if df.empty:
        return 0.0
    maximum = df['obj_max_marks'] + df['sub_max_marks']
    obtained = df['obj_marks'] + df['sub_marks']
    graded = maximum > 0
    if not graded.any():
        return 0.0
    passed = (obtained[graded] / maximum[graded] * 100) >= ENTRY_PASS_PERCENTAGE
    return round(float(passed.mean() * 100), 1)


def _parse_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return date.min


class ScoreCardCalculator:
    """
    Computes the figures printed on a student's score card.

    Exams and subjects are plain dicts as returned by the models' ``to_dict``;
    marks are mark dicts for a single student (any number of exams).
    """

    def __init__(self, exams: List[Dict[str, Any]], subjects: List[Dict[str, Any]]):
        """
        Args:
            exams (list): Exams shown as columns on the score card
            subjects (list): Subjects shown as rows on the score card
        """
        self.exams = exams
        self.subjects = subjects
        self._subjects_by_id = {s['id']: s for s in subjects}

    @staticmethod
    def _find(marks, exam_id, subject_id):
        for mark in marks:
            if mark['exam_id'] == exam_id and mark['subject_id'] == subject_id:
                return mark
        return None

    def get_mark(self, marks, exam_id: str, subject_id: str, component: str):
        """
        Obtained marks for one component, ``AB`` when absent, ``-`` when not entered.
        """
        record = self._find(marks, exam_id, subject_id)
        if record is None:
            return '-'
        if not record.get('attended', True):
            return 'AB'
        return record['obj_marks'] if component == OBJECTIVE else record['sub_marks']

    def get_max_mark(self, marks, exam_id: str, subject_id: str, component: str) -> float:
        record = self._find(marks, exam_id, subject_id)
        if record is not None:
            value = record.get('obj_max_marks') if component == OBJECTIVE else record.get('sub_max_marks')
            if value is not None:
                return value
        subject = self._subjects_by_id.get(subject_id)
        if subject:
            if component == OBJECTIVE:
                return subject.get('max_marks_objective') or 0
            return subject.get('max_marks_subjective') or 0
        return 0

    def get_remark(self, marks, subject_id: str) -> str:
        """Remark from the most recent exam (by date) that has one for this subject."""
        remarked = {m['exam_id']: m['remarks'] for m in marks if m['subject_id'] == subject_id and m.get('remarks')}
        for exam in sorted(self.exams, key=lambda e: _parse_date(e.get('date')), reverse=True):
            if exam['id'] in remarked:
                return remarked[exam['id']]
        return ''

    def calculate_subject_stats(self, marks, subject_id: str) -> Dict[str, Any]:
        """
        Totals for one subject across every exam on the card.

        Returns:
            Dict: obtained, max, percentage (one decimal, as text) and grade
        """
        subject = self._subjects_by_id.get(subject_id)
        if subject is None:
            return {'obtained': 0, 'max': 0, 'percentage': '0.0', 'grade': '-'}

        default_obj = subject.get('max_marks_objective') or 0
        default_sub = subject.get('max_marks_subjective') or 0
        total_obtained = 0
        total_max = 0
        for exam in self.exams:
            mark = self._find(marks, exam['id'], subject_id)
            if mark is not None:
                exam_obj_max = mark.get('obj_max_marks') or 0
                exam_sub_max = mark.get('sub_max_marks') or 0
                if exam_obj_max == 0 and exam_sub_max == 0:
                    exam_obj_max, exam_sub_max = default_obj, default_sub
                if mark.get('attended', True):
                    total_obtained += (mark.get('obj_marks') or 0) + (mark.get('sub_marks') or 0)
            else:
                exam_obj_max, exam_sub_max = default_obj, default_sub
            total_max += exam_obj_max + exam_sub_max

        percentage = (total_obtained / total_max * 100) if total_max > 0 else 0
        return {
            'obtained': total_obtained,
            'max': total_max,
            'percentage': f"{percentage:.1f}",
            'grade': grade_for_percentage(percentage),
        }

    def calculate_overall(self, marks) -> Dict[str, str]:
        """
        Grand percentage and grade over all subjects.

        Returns:
            Dict: total_pct, overall_grade and result (FAIL only for grade F)
        """
        grand_obtained = 0
        grand_max = 0
        for subject in self.subjects:
            stats = self.calculate_subject_stats(marks, subject['id'])
            grand_obtained += stats['obtained']
            grand_max += stats['max']
        if grand_max > 0:
            percentage = grand_obtained / grand_max * 100
            grade = grade_for_percentage(percentage)
        else:
            percentage = 0
            grade = 'N/A'
        return {
            'total_pct': f"{percentage:.1f}",
            'overall_grade': grade,
            'result': 'FAIL' if grade == 'F' else 'PASS',
        }

    def build_card(self, student: Dict[str, Any], marks, non_academic: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Assemble everything a score card shows for one student.
        """
        rows = []
        for subject in self.subjects:
            cells = []
            for exam in self.exams:
                cells.append({
                    'exam_id': exam['id'],
                    'subjective_max': self.get_max_mark(marks, exam['id'], subject['id'], SUBJECTIVE),
                    'subjective': self.get_mark(marks, exam['id'], subject['id'], SUBJECTIVE),
                    'objective_max': self.get_max_mark(marks, exam['id'], subject['id'], OBJECTIVE),
                    'objective': self.get_mark(marks, exam['id'], subject['id'], OBJECTIVE),
                })
            rows.append({
                'subject': subject,
                'cells': cells,
                'stats': self.calculate_subject_stats(marks, subject['id']),
                'remark': self.get_remark(marks, subject['id']),
            })
        return {
            'student': student,
            'exams': self.exams,
            'rows': rows,
            'overall': self.calculate_overall(marks),
            'non_academic': non_academic,
        }


class ClassResultProcessor:
    """
    Summarises one exam's results for the students of a class.
    """

    def __init__(self, students: List[Dict[str, Any]], subjects: List[Dict[str, Any]], marks: List[Dict[str, Any]]):
        """
        Args:
            students (list): Student dicts of the class
            subjects (list): Subject dicts
            marks (list): Mark dicts of the exam (other students' marks are ignored)
        """
        self.students = students
        self.subjects = subjects
        self.df = self._build_frame(marks)

    def _build_frame(self, marks) -> pd.DataFrame:
        columns = ['student_id', 'subject_id', 'obtained', 'maximum', 'attended', 'passed']
        student_ids = {s['id'] for s in self.students}
        subjects = {s['id']: s for s in self.subjects}
        rows = []
        for mark in marks:
            subject = subjects.get(mark['subject_id'])
            if subject is None or mark['student_id'] not in student_ids:
                continue
            maximum = (mark.get('obj_max_marks') or 0) + (mark.get('sub_max_marks') or 0)
            if maximum == 0:
                maximum = (subject.get('max_marks_objective') or 0) + (subject.get('max_marks_subjective') or 0)
            if maximum == 0:
                maximum = subject.get('max_marks') or 0
            attended = bool(mark.get('attended', True))
            obtained = (mark.get('obj_marks') or 0) + (mark.get('sub_marks') or 0) if attended else 0
            rows.append({
                'student_id': mark['student_id'],
                'subject_id': mark['subject_id'],
                'obtained': float(obtained),
                'maximum': float(maximum),
                'attended': attended,
                'passed': attended and obtained >= (subject.get('pass_marks') or 0),
            })
        return pd.DataFrame(rows, columns=columns)

    def get_subject_wise_summary(self) -> pd.DataFrame:
        """
        Pass/fail counts for each subject.

        Returns:
            pd.DataFrame: Subject, Code, Passed, Failed, Absent, Pending, Total, Pass Percentage
        """
        total = len(self.students)
        summary_data = []
        for subject in self.subjects:
            sub_df = self.df[self.df['subject_id'] == subject['id']]
            passed = int(sub_df['passed'].sum())
            absent = int((~sub_df['attended'].astype(bool)).sum())
            failed = len(sub_df) - passed - absent
            pass_percentage = (passed / total * 100) if total > 0 else 0
            summary_data.append({
                'Subject': subject['name'],
                'Code': subject.get('code', ''),
                'Passed': passed,
                'Failed': failed,
                'Absent': absent,
                'Pending': total - len(sub_df),
                'Total': total,
                'Pass Percentage': f"{pass_percentage:.2f}%",
            })
        return pd.DataFrame(summary_data, columns=[
            'Subject', 'Code', 'Passed', 'Failed', 'Absent', 'Pending', 'Total', 'Pass Percentage'
        ])

    def get_student_results(self) -> pd.DataFrame:
        """
        One row per student with totals, grade and overall status.

        A student passes overall only when every recorded subject is passed.
        """
        rows = []
        for student in self.students:
            st_df = self.df[self.df['student_id'] == student['id']]
            obtained = st_df['obtained'].sum()
            maximum = st_df['maximum'].sum()
            percentage = (obtained / maximum * 100) if maximum > 0 else np.nan
            passed = int(st_df['passed'].sum())
            failed = len(st_df) - passed
            if st_df.empty:
                status = 'Pending'
            else:
                status = 'Pass' if failed == 0 else 'Fail'
            rows.append({
                'Student Name': student['full_name'],
                'Roll No.': student['roll_number'],
                'Obtained': obtained,
                'Maximum': maximum,
                'Percentage': round(percentage, 2) if not np.isnan(percentage) else np.nan,
                'Grade': grade_for_percentage(percentage) if not np.isnan(percentage) else '-',
                'Passed Subjects': passed,
                'Failed Subjects': failed,
                'Overall Status': status,
            })
        return pd.DataFrame(rows, columns=[
            'Student Name', 'Roll No.', 'Obtained', 'Maximum', 'Percentage', 'Grade',
            'Passed Subjects', 'Failed Subjects', 'Overall Status'
        ])

    def get_overall_statistics(self) -> Dict[str, Any]:
        """
        Get overall statistics for the class.

        Returns:
            Dict: Dictionary containing various statistics
        """
        results = self.get_student_results()
        total_students = len(results)
        passed_students = int((results['Overall Status'] == 'Pass').sum())
        failed_students = int((results['Overall Status'] == 'Fail').sum())
        pass_percentage = (passed_students / total_students * 100) if total_students > 0 else 0

        percentages = results['Percentage'].astype(float).values
        if percentages.size and not np.all(np.isnan(percentages)):
            average = np.nanmean(percentages)
            highest = np.nanmax(percentages)
            lowest = np.nanmin(percentages)
        else:
            average = highest = lowest = 0.0

        return {
            'Total Students': total_students,
            'Passed Students': passed_students,
            'Failed Students': failed_students,
            'Pass Percentage': f"{pass_percentage:.2f}%",
            'Average Percentage': f"{average:.2f}",
            'Highest Percentage': f"{highest:.2f}",
            'Lowest Percentage': f"{lowest:.2f}",
        }

    def get_top_and_weak_subjects(self):
        """Subjects with the highest and lowest average percentage, or ('-', '-')."""
        graded = self.df[self.df['maximum'] > 0]
        if graded.empty:
            return '-', '-'
        ratios = (graded['obtained'] / graded['maximum']).groupby(graded['subject_id']).mean()
        names = {s['id']: s['name'] for s in self.subjects}
        return names[ratios.idxmax()], names[ratios.idxmin()]
