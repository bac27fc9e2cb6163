"""
Main Flask application for the Exam Results Admin.

Features:
- Manage classes, subjects, exam types, exams and students
- Enter marks, non-academic records and teacher remarks
- Configure school branding and the score-card layout
- Download score cards as a multi-page PDF or open a print view
- Class result summaries with CSV/PDF download
- AI system assistant that also dispenses the database repair script
"""

from flask import Flask, render_template, request, send_file, send_from_directory, jsonify, session
import pandas as pd
import os
from datetime import datetime
from functools import wraps
from io import BytesIO

from config import (
    UPLOAD_FOLDER, DOWNLOAD_FOLDER, CHAT_FOLDER, LOG_FOLDER, ALLOWED_IMAGE_EXTENSIONS,
    ALLOWED_IMPORT_EXTENSIONS, MAX_FILE_SIZE, SECRET_KEY, DATABASE_URL,
)
from models import db
from utils.assistant import SystemAssistant, ChatHistory, SUGGESTIONS, REPAIR_SQL, make_message
from utils.data_service import DataService, DataServiceError
from utils.file_reader import read_student_sheet, read_marks_sheet
from utils.grading import ScoreCardCalculator, ClassResultProcessor
from utils.scorecard_pdf import build_scorecards_pdf, resolve_layout, session_label, DEFAULT_LAYOUT

from reportlab.lib.pagesizes import letter, landscape
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle
from reportlab.lib import colors
import logging
from logging.handlers import RotatingFileHandler

# Setup logging
os.makedirs(LOG_FOLDER, exist_ok=True)
logger = logging.getLogger('exam_results_admin')
logger.setLevel(logging.INFO)
handler = RotatingFileHandler(os.path.join(LOG_FOLDER, 'error.log'), maxBytes=1024*1024, backupCount=3)
formatter = logging.Formatter('%(asctime)s %(levelname)s: %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)


# Initialize Flask application
app = Flask(__name__)
app.secret_key = SECRET_KEY
app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['MAX_CONTENT_LENGTH'] = MAX_FILE_SIZE
app.config['DOWNLOAD_FOLDER'] = DOWNLOAD_FOLDER
app.config['CHAT_FOLDER'] = CHAT_FOLDER
app.config['SQLALCHEMY_DATABASE_URI'] = DATABASE_URL
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

db.init_app(app)

with app.app_context():
    db.create_all()


def allowed_file(filename: str, extensions) -> bool:
    """
    Check if uploaded file has an allowed extension.

    Args:
        filename (str): Name of the uploaded file
        extensions (set): Allowed lowercase extensions

    Returns:
        bool: True if file extension is allowed, False otherwise
    """
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in extensions


def generate_filename(base_name: str, extension: str = 'csv') -> str:
    """
    Generate a unique filename with timestamp.

    Args:
        base_name (str): Base name for the file
        extension (str): File extension (default: csv)

    Returns:
        str: Generated filename with timestamp
    """
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    return f"{base_name}_{timestamp}.{extension}"


def get_service() -> DataService:
    return DataService(db.session, app.config['UPLOAD_FOLDER'])


def get_assistant() -> SystemAssistant:
    assistant = app.config.get('ASSISTANT')
    if assistant is None:
        assistant = SystemAssistant()
        app.config['ASSISTANT'] = assistant
    return assistant


def json_body() -> dict:
    """Parse the JSON body, raising ValueError when it is missing or not an object."""
    req_json = request.get_json(silent=True)
    if not isinstance(req_json, dict):
        logger.warning('Empty or invalid JSON received for %s', request.path)
        raise ValueError('Invalid request payload. Expected JSON.')
    return req_json


def api_errors(view):
    """
    Turn exceptions from a JSON view into ``{'success': False, 'message': ...}`` responses.
    """
    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except ValueError as e:
            db.session.rollback()
            return jsonify({'success': False, 'message': str(e)}), 400
        except DataServiceError as e:
            db.session.rollback()
            if e.status_code >= 500:
                logger.exception('Data service failure in %s', view.__name__)
            return jsonify({'success': False, 'message': e.message}), e.status_code
        except Exception as e:
            db.session.rollback()
            logger.exception('Exception in %s', view.__name__)
            return jsonify({'success': False, 'message': f'Error: {str(e)}'}), 500
    return wrapper


def saved_upload(field: str, extensions) -> str:
    """
    Save the uploaded file in ``request.files[field]`` to the upload folder.

    Returns:
        str: Path of the saved file on the server
    """
    if field not in request.files:
        raise ValueError('No file uploaded')
    file = request.files[field]
    if file.filename == '':
        raise ValueError('No file selected')
    if not allowed_file(file.filename, extensions):
        raise ValueError(f"Invalid file format. Allowed: {', '.join(sorted(extensions))}")
    imports_dir = os.path.join(app.config['UPLOAD_FOLDER'], 'imports')
    os.makedirs(imports_dir, exist_ok=True)
    ext = file.filename.rsplit('.', 1)[1].lower()
    path = os.path.join(imports_dir, generate_filename('import', extension=ext))
    file.save(path)
    return path


def _records(items):
    return [item.to_dict() for item in items]


@app.route('/')
def index():
    """
    Display the admin home page.

    Returns:
        Rendered index.html template
    """
    service = get_service()
    return render_template('index.html', school=service.get_school_info(), stats=service.get_dashboard_stats())


@app.route('/api/health')
def health():
    connected = get_service().check_connection()
    status = 200 if connected else 503
    return jsonify({'success': connected, 'connected': connected,
                    'message': 'Database connected' if connected else 'Database unavailable'}), status


@app.route('/api/dashboard')
@api_errors
def dashboard():
    return jsonify({'success': True, 'statistics': get_service().get_dashboard_stats()}), 200


# --- Classes ---

@app.route('/api/classes', methods=['GET'])
@api_errors
def list_classes():
    return jsonify({'success': True, 'data': _records(get_service().get_classes())}), 200


@app.route('/api/classes', methods=['POST'])
@api_errors
def create_class():
    cls = get_service().add_class(json_body())
    return jsonify({'success': True, 'message': 'Class added successfully', 'data': cls.to_dict()}), 201


@app.route('/api/classes/<class_id>', methods=['PUT'])
@api_errors
def edit_class(class_id):
    cls = get_service().update_class(class_id, json_body())
    return jsonify({'success': True, 'message': 'Class updated successfully', 'data': cls.to_dict()}), 200


@app.route('/api/classes/<class_id>', methods=['DELETE'])
@api_errors
def remove_class(class_id):
    get_service().delete_class(class_id)
    return jsonify({'success': True, 'message': 'Class deleted successfully'}), 200


@app.route('/api/classes/<class_id>/students', methods=['GET'])
@api_errors
def list_class_students(class_id):
    return jsonify({'success': True, 'data': _records(get_service().get_students_in_class(class_id))}), 200


# --- Subjects ---

@app.route('/api/subjects', methods=['GET'])
@api_errors
def list_subjects():
    return jsonify({'success': True, 'data': _records(get_service().get_subjects())}), 200


@app.route('/api/subjects', methods=['POST'])
@api_errors
def create_subject():
    subject = get_service().add_subject(json_body())
    return jsonify({'success': True, 'message': 'Subject created', 'data': subject.to_dict()}), 201


@app.route('/api/subjects/<subject_id>', methods=['PUT'])
@api_errors
def edit_subject(subject_id):
    subject = get_service().update_subject(subject_id, json_body())
    return jsonify({'success': True, 'message': 'Subject updated', 'data': subject.to_dict()}), 200


@app.route('/api/subjects/<subject_id>', methods=['DELETE'])
@api_errors
def remove_subject(subject_id):
    get_service().delete_subject(subject_id)
    return jsonify({'success': True, 'message': 'Subject deleted successfully'}), 200


# --- Exam types ---

@app.route('/api/exam-types', methods=['GET'])
@api_errors
def list_exam_types():
    return jsonify({'success': True, 'data': _records(get_service().get_exam_types())}), 200


@app.route('/api/exam-types', methods=['POST'])
@api_errors
def create_exam_type():
    exam_type = get_service().add_exam_type(json_body())
    return jsonify({'success': True, 'message': 'Exam type added successfully', 'data': exam_type.to_dict()}), 201


@app.route('/api/exam-types/<type_id>', methods=['PUT'])
@api_errors
def edit_exam_type(type_id):
    exam_type = get_service().update_exam_type(type_id, json_body())
    return jsonify({'success': True, 'message': 'Exam type updated successfully', 'data': exam_type.to_dict()}), 200


@app.route('/api/exam-types/<type_id>', methods=['DELETE'])
@api_errors
def remove_exam_type(type_id):
    get_service().delete_exam_type(type_id)
    return jsonify({'success': True, 'message': 'Exam type deleted successfully'}), 200


# --- Exams ---

@app.route('/api/exams', methods=['GET'])
@api_errors
def list_exams():
    return jsonify({'success': True, 'data': _records(get_service().get_exams())}), 200


@app.route('/api/exams', methods=['POST'])
@api_errors
def create_exam():
    exam = get_service().add_exam(json_body())
    return jsonify({'success': True, 'message': 'Exam created successfully', 'data': exam.to_dict()}), 201


@app.route('/api/exams/<exam_id>', methods=['PUT'])
@api_errors
def edit_exam(exam_id):
    exam = get_service().update_exam(exam_id, json_body())
    return jsonify({'success': True, 'message': 'Exam updated successfully', 'data': exam.to_dict()}), 200


@app.route('/api/exams/<exam_id>/duplicate', methods=['POST'])
@api_errors
def copy_exam(exam_id):
    exam = get_service().duplicate_exam(exam_id)
    return jsonify({'success': True, 'message': 'Exam duplicated successfully', 'data': exam.to_dict()}), 201


@app.route('/api/exams/<exam_id>', methods=['DELETE'])
@api_errors
def remove_exam(exam_id):
    get_service().delete_exam(exam_id)
    return jsonify({'success': True, 'message': 'Exam deleted successfully'}), 200


# --- Students ---

@app.route('/api/students', methods=['GET'])
@api_errors
def list_students():
    service = get_service()
    class_id = request.args.get('class_id')
    students = service.get_students_in_class(class_id) if class_id else service.get_students()
    return jsonify({'success': True, 'data': _records(students)}), 200


@app.route('/api/students', methods=['POST'])
@api_errors
def create_student():
    student = get_service().add_student(json_body())
    return jsonify({'success': True, 'message': 'Student added successfully', 'data': student.to_dict()}), 201


@app.route('/api/students/import', methods=['POST'])
@api_errors
def import_students():
    """
    Bulk admission from a CSV/Excel student list.

    Returns:
        JSON response with the created students
    """
    path = saved_upload('file', ALLOWED_IMPORT_EXTENSIONS)
    success, rows, message = read_student_sheet(path)
    if not success:
        return jsonify({'success': False, 'message': message}), 400
    students = get_service().bulk_add_students(rows)
    return jsonify({
        'success': True,
        'message': f'{len(students)} student(s) imported successfully',
        'data': _records(students),
    }), 201


@app.route('/api/students/<student_id>', methods=['PUT'])
@api_errors
def edit_student(student_id):
    student = get_service().update_student(student_id, json_body())
    return jsonify({'success': True, 'message': 'Student updated successfully', 'data': student.to_dict()}), 200


@app.route('/api/students/<student_id>', methods=['DELETE'])
@api_errors
def remove_student(student_id):
    get_service().delete_student(student_id)
    return jsonify({'success': True, 'message': 'Student deleted successfully'}), 200


@app.route('/api/students/<student_id>/history', methods=['GET'])
@api_errors
def student_history(student_id):
    service = get_service()
    service.get_student(student_id)
    return jsonify({'success': True, 'data': service.get_student_history(student_id)}), 200


# --- Marks, non-academic records and remarks ---

@app.route('/api/marks', methods=['GET'])
@api_errors
def list_marks():
    exam_id = request.args.get('exam_id')
    subject_id = request.args.get('subject_id')
    if not exam_id or not subject_id:
        raise ValueError('exam_id and subject_id are required')
    return jsonify({'success': True, 'data': _records(get_service().get_marks(exam_id, subject_id))}), 200


@app.route('/api/marks', methods=['POST'])
@api_errors
def save_marks():
    """
    Upsert one mark record, or many when the body holds a ``records`` list.
    """
    req_json = json_body()
    service = get_service()
    if 'records' in req_json:
        records = req_json['records']
        if not isinstance(records, list):
            raise ValueError('records must be a list')
        saved = service.bulk_update_marks(records)
        return jsonify({'success': True, 'message': 'Marks saved successfully!', 'saved': saved}), 200
    mark = service.update_mark(req_json)
    return jsonify({'success': True, 'message': 'Marks saved successfully!', 'data': mark.to_dict()}), 200


@app.route('/api/marks/import', methods=['POST'])
@api_errors
def import_marks():
    """
    Import a marks sheet (Roll No., Objective, Subjective) for one exam and subject.
    """
    exam_id = request.form.get('exam_id', '')
    subject_id = request.form.get('subject_id', '')
    if not exam_id or not subject_id:
        raise ValueError('exam_id and subject_id are required')
    service = get_service()
    service.get_exam(exam_id)
    subject = service.get_subject(subject_id)
    path = saved_upload('file', ALLOWED_IMPORT_EXTENSIONS)
    success, rows, message = read_marks_sheet(path, subject.max_marks_objective or 0, subject.max_marks_subjective or 0)
    if not success:
        return jsonify({'success': False, 'message': message}), 400

    by_roll = {s.roll_number: s.id for s in service.get_students()}
    unknown = [row['roll_number'] for row in rows if row['roll_number'] not in by_roll]
    if unknown:
        return jsonify({'success': False, 'message': f"Unknown roll number(s): {', '.join(unknown)}"}), 400
    records = []
    for row in rows:
        record = dict(row, student_id=by_roll[row['roll_number']], exam_id=exam_id, subject_id=subject_id)
        record.pop('roll_number')
        records.append(record)
    saved = service.bulk_update_marks(records)
    return jsonify({'success': True, 'message': f'{saved} mark record(s) imported', 'saved': saved}), 200


@app.route('/api/non-academic', methods=['GET'])
@api_errors
def list_non_academic():
    exam_id = request.args.get('exam_id')
    if not exam_id:
        raise ValueError('exam_id is required')
    return jsonify({'success': True, 'data': _records(get_service().get_non_academic_records(exam_id))}), 200


@app.route('/api/non-academic', methods=['POST'])
@api_errors
def save_non_academic():
    record = get_service().save_non_academic_record(json_body())
    return jsonify({'success': True, 'message': 'Record saved', 'data': record.to_dict()}), 200


@app.route('/api/remarks', methods=['GET'])
@api_errors
def list_remarks():
    exam_id = request.args.get('exam_id')
    subject_id = request.args.get('subject_id')
    if not exam_id or not subject_id:
        raise ValueError('exam_id and subject_id are required')
    return jsonify({'success': True, 'data': _records(get_service().get_teacher_remarks(exam_id, subject_id))}), 200


@app.route('/api/remarks', methods=['POST'])
@api_errors
def save_remark():
    remark = get_service().save_teacher_remark(json_body())
    return jsonify({'success': True, 'message': 'Remark saved', 'data': remark.to_dict()}), 200


# --- School configuration ---

@app.route('/api/school-config', methods=['GET'])
@api_errors
def school_config():
    return jsonify({'success': True, 'data': get_service().get_school_info()}), 200


@app.route('/api/school-config', methods=['PUT'])
@api_errors
def update_school_config():
    req_json = json_body()
    if req_json.get('scorecard_layout'):
        resolve_layout(req_json['scorecard_layout'])
    info = get_service().update_school_info(req_json)
    return jsonify({'success': True, 'message': 'Configuration saved successfully', 'data': info}), 200


@app.route('/api/school-config/upload/<asset>', methods=['POST'])
@api_errors
def upload_branding(asset):
    """
    Upload a logo or watermark; the returned URL is stored when the configuration is saved.
    """
    if asset not in ('logo', 'watermark'):
        raise ValueError('Asset must be logo or watermark')
    if 'file' not in request.files or request.files['file'].filename == '':
        raise ValueError('No file selected')
    file = request.files['file']
    if not allowed_file(file.filename, ALLOWED_IMAGE_EXTENSIONS):
        raise ValueError('Invalid image format. Please upload PNG, JPG, GIF, SVG or WEBP.')
    url = get_service().save_upload(file, 'branding')
    return jsonify({'success': True, 'message': f"{asset} uploaded successfully. Don't forget to save.", 'url': url}), 201


@app.route('/api/school-config/layout', methods=['GET'])
@api_errors
def scorecard_layout():
    saved = get_service().get_school_info()['scorecard_layout']
    return jsonify({'success': True, 'data': resolve_layout(saved), 'is_default': not saved}), 200


@app.route('/api/school-config/layout/reset', methods=['POST'])
@api_errors
def reset_scorecard_layout():
    service = get_service()
    info = service.get_school_info()
    info['scorecard_layout'] = None
    service.update_school_info(info)
    return jsonify({'success': True, 'message': 'Layout reset to default', 'data': DEFAULT_LAYOUT}), 200


@app.route('/api/school-config/sql-fix', methods=['GET'])
def sql_fix():
    return jsonify({'success': True, 'sql': REPAIR_SQL}), 200


@app.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(os.path.abspath(app.config['UPLOAD_FOLDER']), filename)


# --- Score cards ---

def _latest_non_academic(service, exams, student_id):
    """Non-academic record from the most recent exam that has one for the student."""
    for exam in sorted(exams, key=lambda e: e['date'] or '', reverse=True):
        for record in service.get_non_academic_records(exam['id']):
            if record.student_id == student_id:
                return record.to_dict()
    return None


def build_cards(student_ids=None, class_id=None):
    """
    Assemble score cards for the given students, or for every student of a class.

    Raises:
        ValueError: if no students are selected
    """
    service = get_service()
    if student_ids:
        students = [service.get_student(sid) for sid in student_ids]
    elif class_id:
        students = service.get_students_in_class(class_id)
    else:
        students = []
    if not students:
        raise ValueError('No students selected')

    exams = _records(service.get_exams())
    subjects = _records(service.get_subjects())
    calculator = ScoreCardCalculator(exams, subjects)
    cards = []
    for student in students:
        marks = service.get_student_history(student.id)
        cards.append(calculator.build_card(student.to_dict(), marks, _latest_non_academic(service, exams, student.id)))
    return cards


def _selection():
    if request.method == 'POST':
        req_json = request.get_json(silent=True) or {}
        return req_json.get('student_ids') or [], req_json.get('class_id')
    return request.args.getlist('student_id'), request.args.get('class_id')


@app.route('/api/scorecards/<student_id>', methods=['GET'])
@api_errors
def scorecard(student_id):
    card = build_cards([student_id])[0]
    return jsonify({'success': True, 'data': card}), 200


@app.route('/scorecards/pdf', methods=['GET', 'POST'])
@api_errors
def scorecards_pdf():
    """
    Download score cards as one PDF, one A4 page per student.

    Returns:
        PDF file download response
    """
    student_ids, class_id = _selection()
    cards = build_cards(student_ids, class_id)
    info = get_service().get_school_info()
    layout = resolve_layout(info['scorecard_layout'])
    buffer = build_scorecards_pdf(cards, info, layout, app.config['UPLOAD_FOLDER'])
    download_name = f"Score_Cards_{int(datetime.now().timestamp() * 1000)}.pdf"
    return send_file(buffer, mimetype='application/pdf', as_attachment=True, download_name=download_name)


@app.route('/scorecards/print', methods=['GET'])
@api_errors
def scorecards_print():
    """
    Printable HTML view of the score cards with one A4 page per student.
    """
    student_ids, class_id = _selection()
    cards = build_cards(student_ids, class_id)
    info = get_service().get_school_info()
    layout = [b for b in resolve_layout(info['scorecard_layout']) if b.get('isVisible', True)]
    return render_template('scorecard_print.html', cards=cards, school=info, layout=layout,
                           session_label=session_label())


# --- Reports ---

def _class_processor(exam_id, class_id):
    service = get_service()
    exam = service.get_exam(exam_id)
    students = _records(service.get_students_in_class(class_id))
    subjects = _records(service.get_subjects())
    return exam, ClassResultProcessor(students, subjects, service.get_exam_marks(exam_id))


@app.route('/api/reports/class-summary', methods=['GET'])
@api_errors
def class_summary():
    """
    Subject-wise and overall results of one class in one exam.

    Returns:
        JSON response with summary rows, statistics and per-student results
    """
    exam_id = request.args.get('exam_id')
    class_id = request.args.get('class_id')
    if not exam_id or not class_id:
        raise ValueError('exam_id and class_id are required')
    exam, processor = _class_processor(exam_id, class_id)
    summary_df = processor.get_subject_wise_summary()
    results_df = processor.get_student_results()

    # Store results as CSV on server for downloads (avoid large session cookies)
    os.makedirs(app.config['DOWNLOAD_FOLDER'], exist_ok=True)
    results_path = os.path.join(app.config['DOWNLOAD_FOLDER'], generate_filename('class_results', extension='csv'))
    results_df.to_csv(results_path, index=False)
    session['report_file'] = results_path
    session['report_title'] = f"{exam.name} results"

    return jsonify({
        'success': True,
        'message': 'Summary generated successfully',
        'exam': exam.to_dict(),
        'summary': summary_df.fillna('').to_dict('records'),
        'statistics': processor.get_overall_statistics(),
        'results': results_df.fillna('').to_dict('records'),
    }), 200


@app.route('/api/reports/download')
def download_report():
    """
    Download the last generated class results as CSV or PDF.

    Returns:
        CSV or PDF file download response
    """
    try:
        report_path = session.get('report_file')
        if not report_path or not os.path.exists(report_path):
            return jsonify({'success': False, 'message': 'No report available for download. Generate a summary first.'}), 400

        fmt = request.args.get('format', 'csv').lower()

        if fmt == 'pdf':
            # Read CSV and generate PDF in-memory
            df = pd.read_csv(report_path)
            buffer = BytesIO()
            doc = SimpleDocTemplate(buffer, pagesize=landscape(letter), title=session.get('report_title', 'Results'))
            data = [list(df.columns)] + df.fillna('').astype(str).values.tolist()
            table = Table(data)
            table.setStyle(TableStyle([
                ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1e1b4b')),
                ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
                ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
                ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
                ('FONTSIZE', (0, 0), (-1, -1), 8),
            ]))
            doc.build([table])
            buffer.seek(0)
            return send_file(buffer, mimetype='application/pdf', as_attachment=True,
                             download_name=generate_filename('class_results', extension='pdf'))
        return send_file(report_path, mimetype='text/csv', as_attachment=True,
                         download_name=os.path.basename(report_path))

    except Exception as e:
        logger.exception('Exception in download_report')
        return jsonify({'success': False, 'message': f'Error downloading file: {str(e)}'}), 500


# --- AI assistant ---

def _chat_path():
    path = session.get('chat_file')
    if not path:
        path = ChatHistory(app.config['CHAT_FOLDER']).new_path()
        session['chat_file'] = path
    return path


@app.route('/api/assistant/history', methods=['GET'])
@api_errors
def assistant_history():
    history = ChatHistory(app.config['CHAT_FOLDER'])
    return jsonify({'success': True, 'messages': history.load(session.get('chat_file')),
                    'suggestions': SUGGESTIONS}), 200


@app.route('/api/assistant/chat', methods=['POST'])
@api_errors
def assistant_chat():
    """
    Send a message to the assistant and return its reply.

    Returns:
        JSON response with the reply; SQL replies carry a separate ``sql`` field for copying
    """
    message = str(json_body().get('message') or '')
    reply = get_assistant().chat(message)

    history = ChatHistory(app.config['CHAT_FOLDER'])
    path = _chat_path()
    messages = history.load(path)
    messages += [make_message('user', message.strip()), reply]
    history.save(path, messages)
    return jsonify({'success': True, 'reply': reply}), 200


@app.route('/api/assistant/clear', methods=['POST'])
@api_errors
def assistant_clear():
    messages = ChatHistory(app.config['CHAT_FOLDER']).reset(_chat_path())
    return jsonify({'success': True, 'message': 'Chat history cleared', 'messages': messages}), 200


@app.route('/api/assistant/remark', methods=['POST'])
@api_errors
def assistant_remark():
    req_json = json_body()
    service = get_service()
    student = service.get_student(str(req_json.get('student_id') or ''))
    exam = service.get_exam(str(req_json.get('exam_id') or ''))
    marks = service.get_student_marks(student.id, exam.id)
    remark = get_assistant().generate_student_remark(student.to_dict(), exam.name, marks,
                                                     _records(service.get_subjects()))
    return jsonify({'success': True, 'remark': remark}), 200


@app.route('/api/assistant/analysis', methods=['POST'])
@api_errors
def assistant_analysis():
    req_json = json_body()
    exam, processor = _class_processor(str(req_json.get('exam_id') or ''), str(req_json.get('class_id') or ''))
    stats = processor.get_overall_statistics()
    top, weak = processor.get_top_and_weak_subjects()
    analysis = get_assistant().analyze_class_performance(
        exam.name,
        float(stats['Average Percentage']),
        float(stats['Pass Percentage'].rstrip('%')),
        top,
        weak,
    )
    return jsonify({'success': True, 'analysis': analysis, 'statistics': stats}), 200


@app.route('/clear-session', methods=['POST'])
def clear_session():
    """
    Clear session data (report downloads and chat history).

    Returns:
        JSON response with success status
    """
    try:
        session.clear()
        return jsonify({'success': True, 'message': 'Session cleared.'}), 200
    except Exception as e:
        logger.exception('Exception in clear_session')
        return jsonify({'success': False, 'message': f'Error: {str(e)}'}), 500


@app.errorhandler(413)
def request_entity_too_large(error):
    """Handle file size exceeded error."""
    return jsonify({'success': False, 'message': 'File size exceeds maximum limit (16MB)'}), 413


@app.errorhandler(404)
def not_found(error):
    """Handle page not found error."""
    if request.path.startswith('/api/'):
        return jsonify({'success': False, 'message': 'Not found'}), 404
    return render_template('404.html'), 404


@app.errorhandler(500)
def internal_error(error):
    """Handle internal server error."""
    return jsonify({'success': False, 'message': 'Internal server error'}), 500


if __name__ == '__main__':
    # Create necessary directories
    os.makedirs(UPLOAD_FOLDER, exist_ok=True)
    os.makedirs(DOWNLOAD_FOLDER, exist_ok=True)

    # Run Flask app
    app.run(debug=True, host='127.0.0.1', port=5000)
