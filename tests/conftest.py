import os
import tempfile
from types import SimpleNamespace

import pytest

_WORK_DIR = tempfile.mkdtemp(prefix='exam_results_test_')
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
for _name in ('UPLOAD_FOLDER', 'DOWNLOAD_FOLDER', 'CHAT_FOLDER', 'LOG_FOLDER'):
    os.environ[_name] = os.path.join(_WORK_DIR, _name.split('_')[0].lower())
os.environ['GEMINI_API_KEY'] = ''

from app import app as flask_app  # noqa: E402
from models import db  # noqa: E402
from utils.assistant import SystemAssistant  # noqa: E402
from utils.data_service import DataService  # noqa: E402


class FakeModelFactory:
    """Stands in for google-generativeai; records prompts and returns a canned reply."""

    def __init__(self, reply='All good.', error=None):
        self.reply = reply
        self.error = error
        self.prompts = []
        self.instructions = []

    def __call__(self, system_instruction=None):
        self.instructions.append(system_instruction)
        return self

    def generate_content(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)


@pytest.fixture
def make_model():
    return FakeModelFactory


@pytest.fixture
def model_factory():
    return FakeModelFactory()


@pytest.fixture
def app(model_factory):
    flask_app.config.update(TESTING=True, ASSISTANT=SystemAssistant(model_factory=model_factory))
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()
    flask_app.config['ASSISTANT'] = None


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    with app.app_context():
        yield DataService(db.session, app.config['UPLOAD_FOLDER'])
        db.session.remove()


@pytest.fixture
def school(service):
    """A class with two students, two subjects and two exams."""
    cls = service.add_class({'class_name': 'X', 'section': 'A'})
    math = service.add_subject({'name': 'Mathematics', 'code': 'math', 'pass_marks': 33,
                                'max_marks_objective': 20, 'max_marks_subjective': 80})
    science = service.add_subject({'name': 'Science', 'code': 'sci', 'pass_marks': 40,
                                   'max_marks_objective': 30, 'max_marks_subjective': 70})
    unit = service.add_exam({'name': 'Unit Test 1', 'type': 'Unit Test', 'date': '2025-01-10', 'status': 'Completed'})
    term = service.add_exam({'name': 'Half Yearly', 'type': 'Term', 'date': '2025-03-10', 'status': 'Completed'})
    asha = service.add_student({'full_name': 'Asha Verma', 'class_name': 'X', 'section': 'A',
                                'guardian_name': 'R. Verma'})
    ravi = service.add_student({'full_name': 'Ravi Kumar', 'class_name': 'X', 'section': 'A'})
    return SimpleNamespace(cls=cls, math=math, science=science, unit=unit, term=term, asha=asha, ravi=ravi)
