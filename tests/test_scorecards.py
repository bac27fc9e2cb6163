import io
from datetime import date

import pytest
from PyPDF2 import PdfReader

from utils.scorecard_pdf import DEFAULT_LAYOUT, build_scorecards_pdf, load_image, resolve_layout, session_label


@pytest.fixture
def marked(client):
    cls = client.post('/api/classes', json={'class_name': 'X', 'section': 'A'}).get_json()['data']
    subject = client.post('/api/subjects', json={'name': 'Mathematics', 'code': 'MATH', 'pass_marks': 33,
                                                 'max_marks_objective': 20, 'max_marks_subjective': 80}).get_json()['data']
    exam = client.post('/api/exams', json={'name': 'Half Yearly', 'date': '2025-03-10',
                                           'status': 'Completed'}).get_json()['data']
    students = []
    for name in ('Asha Verma', 'Ravi Kumar'):
        students.append(client.post('/api/students', json={'full_name': name, 'class_name': 'X',
                                                           'section': 'A'}).get_json()['data'])
    client.post('/api/marks', json={'student_id': students[0]['id'], 'exam_id': exam['id'],
                                    'subject_id': subject['id'], 'obj_marks': 18, 'sub_marks': 74,
                                    'obj_max_marks': 20, 'sub_max_marks': 80, 'remarks': 'Outstanding'})
    client.post('/api/non-academic', json={'student_id': students[0]['id'], 'exam_id': exam['id'],
                                           'attendance': '48/50', 'discipline': 'A'})
    return {'class': cls, 'subject': subject, 'exam': exam, 'students': students}


def test_resolve_layout_defaults():
    assert resolve_layout(None) == DEFAULT_LAYOUT
    assert resolve_layout([]) is not DEFAULT_LAYOUT
    with pytest.raises(ValueError, match='needs numeric'):
        resolve_layout([{'id': 'logo', 'type': 'logo', 'x': 'left', 'y': 0, 'w': 1, 'h': 1}])


def test_session_label():
    assert session_label(date(2025, 6, 1)) == 'SESSION 2025-2026'


@pytest.fixture
def card():
    return {
        'student': {'full_name': 'Asha Verma', 'guardian_name': '', 'class_name': 'X', 'section': 'A',
                    'roll_number': 'ACS001'},
        'exams': [{'id': 'e1', 'name': 'Half Yearly'}],
        'rows': [{
            'subject': {'id': 'm', 'name': 'Mathematics'},
            'cells': [{'exam_id': 'e1', 'subjective_max': 80, 'subjective': 'AB', 'objective_max': 20, 'objective': 'AB'}],
            'stats': {'obtained': 0, 'max': 100, 'percentage': '0.0', 'grade': 'F'},
            'remark': 'Absent <unwell>',
        }],
        'overall': {'total_pct': '0.0', 'overall_grade': 'F', 'result': 'FAIL'},
        'non_academic': None,
    }


def test_build_pdf_one_page_per_card(card):
    school = {'name': 'Greenwood High', 'tagline': '', 'logo': '/uploads/branding/missing.png', 'watermark': ''}
    buffer = build_scorecards_pdf([card, card, card], school)
    assert len(PdfReader(buffer).pages) == 3


def test_unreadable_and_svg_branding_are_skipped(card, tmp_path):
    branding = tmp_path / 'branding'
    branding.mkdir()
    (branding / 'broken.png').write_bytes(b'not really a png')
    (branding / 'crest.svg').write_text('<svg xmlns="http://www.w3.org/2000/svg"></svg>')
    assert load_image('/uploads/branding/broken.png', str(tmp_path)) is None
    assert load_image('/uploads/branding/crest.svg', str(tmp_path)) is None

    school = {'name': 'Greenwood High', 'tagline': '', 'logo': '/uploads/branding/crest.svg',
              'watermark': '/uploads/branding/broken.png'}
    buffer = build_scorecards_pdf([card], school, upload_folder=str(tmp_path))
    assert len(PdfReader(buffer).pages) == 1


def test_invalid_layout_colours_fall_back(card):
    layout = resolve_layout(None)
    for block in layout:
        block['style']['backgroundColor'] = 'not-a-colour'
        block['style']['color'] = 'also-bad'
    buffer = build_scorecards_pdf([card], {'name': 'Greenwood High', 'tagline': ''}, layout)
    assert len(PdfReader(buffer).pages) == 1


def test_build_pdf_requires_cards():
    with pytest.raises(ValueError, match='No students selected'):
        build_scorecards_pdf([], {'name': 'X'})


def test_scorecard_json(client, marked):
    response = client.get(f"/api/scorecards/{marked['students'][0]['id']}")
    card = response.get_json()['data']
    assert card['overall'] == {'total_pct': '92.0', 'overall_grade': 'A+', 'result': 'PASS'}
    assert card['rows'][0]['remark'] == 'Outstanding'
    assert card['non_academic']['attendance'] == '48/50'

    other = client.get(f"/api/scorecards/{marked['students'][1]['id']}").get_json()['data']
    assert other['rows'][0]['cells'][0]['objective'] == '-'
    assert other['non_academic'] is None


def test_scorecards_pdf_for_class(client, marked):
    response = client.post('/scorecards/pdf', json={'class_id': marked['class']['id']})
    assert response.status_code == 200
    assert response.mimetype == 'application/pdf'
    assert len(PdfReader(io.BytesIO(response.data)).pages) == 2


def test_scorecards_pdf_without_selection(client, marked):
    response = client.post('/scorecards/pdf', json={})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'No students selected'


def test_print_view(client, marked):
    response = client.get('/scorecards/print', query_string={'student_id': marked['students'][0]['id']})
    assert response.status_code == 200
    html = response.get_data(as_text=True)
    assert 'ASHA VERMA' in html
    assert 'GRADE A+' in html
    assert 'window.print()' in html
