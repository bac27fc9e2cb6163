import io

import pytest


def create(client, url, payload):
    response = client.post(url, json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['data']


@pytest.fixture
def seeded(client):
    cls = create(client, '/api/classes', {'class_name': 'X', 'section': 'A'})
    math = create(client, '/api/subjects', {'name': 'Mathematics', 'code': 'MATH', 'pass_marks': 33,
                                            'max_marks_objective': 20, 'max_marks_subjective': 80})
    exam = create(client, '/api/exams', {'name': 'Half Yearly', 'type': 'Term', 'date': '2025-03-10',
                                         'status': 'Completed'})
    student = create(client, '/api/students', {'full_name': 'Asha Verma', 'class_name': 'X', 'section': 'A'})
    return {'class': cls, 'math': math, 'exam': exam, 'student': student}


def test_index_and_health(client):
    assert client.get('/').status_code == 200
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json()['connected'] is True


def test_class_crud(client):
    cls = create(client, '/api/classes', {'class_name': 'IX', 'section': 'B'})
    response = client.put(f"/api/classes/{cls['id']}", json={'class_name': 'IX', 'section': 'C'})
    assert response.get_json()['data']['section'] == 'C'

    assert client.delete(f"/api/classes/{cls['id']}").status_code == 200
    assert client.get('/api/classes').get_json()['data'] == []
    assert client.delete(f"/api/classes/{cls['id']}").status_code == 404


def test_validation_errors_are_reported(client):
    response = client.post('/api/subjects', json={'name': 'Art', 'code': 'ART', 'max_marks': 50, 'pass_marks': 60})
    assert response.status_code == 400
    assert response.get_json() == {'success': False, 'message': 'Pass marks cannot exceed max marks'}

    response = client.post('/api/classes', data='not json', content_type='text/plain')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Invalid request payload. Expected JSON.'


def test_duplicate_exam_type_conflict(client):
    create(client, '/api/exam-types', {'name': 'Unit Test', 'description': 'Monthly'})
    response = client.post('/api/exam-types', json={'name': 'Unit Test'})
    assert response.status_code == 409
    assert response.get_json()['message'].startswith('Failed to add exam type. Name might be duplicate')


def test_failed_update_does_not_leak_into_next_request(client, seeded):
    exam_id = seeded['exam']['id']
    response = client.put(f"/api/exams/{exam_id}", json={'name': 'Renamed', 'status': 'Bogus'})
    assert response.status_code == 400
    exams = client.get('/api/exams').get_json()['data']
    assert exams[0]['name'] == 'Half Yearly'


def test_exam_duplicate_route(client, seeded):
    response = client.post(f"/api/exams/{seeded['exam']['id']}/duplicate")
    assert response.status_code == 201
    assert response.get_json()['data']['name'] == 'Half Yearly (Copy)'


def test_marks_single_and_bulk(client, seeded):
    base = {'student_id': seeded['student']['id'], 'exam_id': seeded['exam']['id'],
            'subject_id': seeded['math']['id'], 'obj_max_marks': 20, 'sub_max_marks': 80}
    response = client.post('/api/marks', json=dict(base, obj_marks=15, sub_marks=60))
    assert response.get_json()['data']['grade'] == 'Pass'

    response = client.post('/api/marks', json={'records': [dict(base, obj_marks=30)]})
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Record 1: Objective marks cannot exceed 20'

    response = client.get('/api/marks', query_string={'exam_id': base['exam_id'], 'subject_id': base['subject_id']})
    assert response.get_json()['data'][0]['obj_marks'] == 15


def test_import_students(client):
    csv = b"Full Name,Class,Section,Guardian Name\nMeera Shah,X,A,S. Shah\nKabir Rao,X,B,\n"
    response = client.post('/api/students/import', data={'file': (io.BytesIO(csv), 'students.csv')},
                           content_type='multipart/form-data')
    assert response.status_code == 201
    rolls = [s['roll_number'] for s in response.get_json()['data']]
    assert rolls == ['ACS001', 'ACS002']


def test_import_rejects_legacy_excel(client):
    response = client.post('/api/students/import', data={'file': (io.BytesIO(b'\xd0\xcf\x11\xe0'), 'students.xls')},
                           content_type='multipart/form-data')
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Invalid file format. Allowed: csv, xlsx'


def test_import_marks(client, seeded):
    roll = seeded['student']['roll_number']
    csv = f"Roll No.,Objective,Subjective,Remarks\n{roll},18,70,Excellent\n".encode()
    response = client.post('/api/marks/import', data={
        'file': (io.BytesIO(csv), 'marks.csv'),
        'exam_id': seeded['exam']['id'],
        'subject_id': seeded['math']['id'],
    }, content_type='multipart/form-data')
    assert response.status_code == 200, response.get_json()
    history = client.get(f"/api/students/{seeded['student']['id']}/history").get_json()['data']
    assert history[0]['sub_marks'] == 70
    assert history[0]['remarks'] == 'Excellent'


def test_import_marks_unknown_roll(client, seeded):
    csv = b"Roll No.,Objective,Subjective\nACS999,10,10\n"
    response = client.post('/api/marks/import', data={
        'file': (io.BytesIO(csv), 'marks.csv'),
        'exam_id': seeded['exam']['id'],
        'subject_id': seeded['math']['id'],
    }, content_type='multipart/form-data')
    assert response.status_code == 400
    assert 'ACS999' in response.get_json()['message']


def test_school_config_and_layout(client):
    info = client.get('/api/school-config').get_json()['data']
    assert info['name'] == 'UNACADEMY'

    layout = client.get('/api/school-config/layout').get_json()
    assert layout['is_default'] is True
    assert layout['data'][0]['type'] == 'logo'

    bad = client.put('/api/school-config', json={'name': 'Greenwood', 'scorecard_layout': [{'type': 'clock'}]})
    assert bad.status_code == 400

    saved = client.put('/api/school-config', json={'name': 'Greenwood', 'tagline': 'Learn',
                                                   'scorecard_layout': layout['data'][:2]})
    assert saved.status_code == 200
    assert client.get('/api/school-config/layout').get_json()['is_default'] is False

    client.post('/api/school-config/layout/reset')
    assert client.get('/api/school-config/layout').get_json()['is_default'] is True
    assert client.get('/api/school-config').get_json()['data']['name'] == 'Greenwood'


def test_branding_upload(client):
    response = client.post('/api/school-config/upload/logo', data={'file': (io.BytesIO(b'GIF89a'), 'logo.gif')},
                           content_type='multipart/form-data')
    assert response.status_code == 201
    url = response.get_json()['url']
    assert client.get(url).data == b'GIF89a'

    response = client.post('/api/school-config/upload/logo', data={'file': (io.BytesIO(b'x'), 'logo.exe')},
                           content_type='multipart/form-data')
    assert response.status_code == 400


def test_sql_fix(client):
    sql = client.get('/api/school-config/sql-fix').get_json()['sql']
    assert sql.startswith('-- SQL FIX FOR UNACADEMY SYSTEM')


def test_class_summary_and_download(client, seeded):
    client.post('/api/marks', json={'student_id': seeded['student']['id'], 'exam_id': seeded['exam']['id'],
                                    'subject_id': seeded['math']['id'], 'obj_marks': 15, 'sub_marks': 60,
                                    'obj_max_marks': 20, 'sub_max_marks': 80})
    response = client.get('/api/reports/class-summary',
                          query_string={'exam_id': seeded['exam']['id'], 'class_id': seeded['class']['id']})
    body = response.get_json()
    assert response.status_code == 200
    assert body['statistics']['Passed Students'] == 1
    assert body['results'][0]['Grade'] == 'B'

    csv = client.get('/api/reports/download?format=csv')
    assert csv.status_code == 200
    assert b'Asha Verma' in csv.data
    pdf = client.get('/api/reports/download?format=pdf')
    assert pdf.mimetype == 'application/pdf'


def test_download_without_report(client):
    assert client.get('/api/reports/download').status_code == 400


def test_unknown_api_route(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json()['success'] is False
