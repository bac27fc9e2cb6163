"""
AI system assistant for administrators.

Wraps the Gemini API for:
- the chat screen (with a fixed system instruction)
- report-card remarks for a student
- a short class-performance analysis for the principal

Requests to repair the database are answered locally with the SQL repair
script, so the script is available even when the AI service is down.
"""

import json
import logging
import os
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import google.generativeai as genai

from config import GEMINI_API_KEY, GEMINI_MODEL

logger = logging.getLogger('exam_results_admin')

REPAIR_SQL = """-- SQL FIX FOR UNACADEMY SYSTEM
CREATE TABLE IF NOT EXISTS subjects (id UUID PRIMARY KEY DEFAULT gen_random_uuid(), name TEXT, code TEXT UNIQUE, max_marks INTEGER, pass_marks INTEGER, max_marks_objective INTEGER, max_marks_subjective INTEGER);
CREATE TABLE IF NOT EXISTS classes (id UUID PRIMARY KEY DEFAULT gen_random_uuid(), name TEXT, section TEXT, UNIQUE(name, section));
CREATE TABLE IF NOT EXISTS students (id UUID PRIMARY KEY DEFAULT gen_random_uuid(), full_name TEXT, roll_number TEXT UNIQUE, class_name TEXT, section TEXT, guardian_name TEXT, contact_number TEXT, status TEXT, avatar_url TEXT, date_of_birth DATE);
CREATE TABLE IF NOT EXISTS exams (id UUID PRIMARY KEY DEFAULT gen_random_uuid(), name TEXT, term TEXT, start_date DATE, status TEXT, academic_year TEXT);
CREATE TABLE IF NOT EXISTS exam_types (id UUID PRIMARY KEY DEFAULT gen_random_uuid(), name TEXT UNIQUE, description TEXT);
CREATE TABLE IF NOT EXISTS marks (student_id UUID REFERENCES students(id), exam_id UUID REFERENCES exams(id), subject_id UUID REFERENCES subjects(id), obj_marks NUMERIC, obj_max_marks NUMERIC, sub_marks NUMERIC, sub_max_marks NUMERIC, exam_date DATE, grade TEXT, remarks TEXT, attended BOOLEAN, updated_at TIMESTAMPTZ, PRIMARY KEY(student_id, exam_id, subject_id));
CREATE TABLE IF NOT EXISTS teacher_remarks (student_id UUID REFERENCES students(id), exam_id UUID REFERENCES exams(id), subject_id UUID REFERENCES subjects(id), remark TEXT, updated_at TIMESTAMPTZ DEFAULT NOW(), PRIMARY KEY(student_id, exam_id, subject_id));
CREATE TABLE IF NOT EXISTS non_academic_records (student_id UUID REFERENCES students(id), exam_id UUID REFERENCES exams(id), attendance TEXT, discipline TEXT, leadership TEXT, arts TEXT, updated_at TIMESTAMPTZ DEFAULT NOW(), PRIMARY KEY(student_id, exam_id));
CREATE TABLE IF NOT EXISTS school_config (id INTEGER PRIMARY KEY, name TEXT, tagline TEXT, logo_url TEXT, watermark_url TEXT, scorecard_layout JSONB, updated_at TIMESTAMPTZ DEFAULT NOW());

ALTER TABLE school_config ADD COLUMN IF NOT EXISTS scorecard_layout JSONB;
ALTER TABLE school_config ADD COLUMN IF NOT EXISTS watermark_url TEXT;

ALTER TABLE subjects DISABLE ROW LEVEL SECURITY;
ALTER TABLE classes DISABLE ROW LEVEL SECURITY;
ALTER TABLE students DISABLE ROW LEVEL SECURITY;
ALTER TABLE exams DISABLE ROW LEVEL SECURITY;
ALTER TABLE exam_types DISABLE ROW LEVEL SECURITY;
ALTER TABLE marks DISABLE ROW LEVEL SECURITY;
ALTER TABLE teacher_remarks DISABLE ROW LEVEL SECURITY;
ALTER TABLE non_academic_records DISABLE ROW LEVEL SECURITY;
ALTER TABLE school_config DISABLE ROW LEVEL SECURITY;

INSERT INTO school_config (id, name, tagline) VALUES (1, 'UNACADEMY', 'Excellence in Education') ON CONFLICT (id) DO NOTHING;"""

SYSTEM_INSTRUCTION = f"""You are the "Unacademy System Assistant".
Your purpose is to help administrators manage the Exam Result Management System.
If the user asks to "recreate tables", "fix database", "schema error", or "role permission error", provide this EXACT SQL script:

{REPAIR_SQL}

Answer academic management questions concisely. Always maintain a professional, helpful tone."""

REPAIR_TRIGGERS = (
    'recreate tables',
    'recreate all system tables',
    'fix database',
    'schema error',
    'role permission error',
    'role_permissions',
)

GREETING = "Hello! I'm your Unacademy System Assistant. How can I help you manage your students, exams, or database today?"
CLEARED = "Chat history cleared. How can I help you now?"
EMPTY_REPLY = "I'm sorry, I couldn't generate a response."
CONNECTION_ERROR = "I encountered an error connecting to the AI brain. Please check your internet connection."
REPAIR_INTRO = "Here is the SQL repair script. Run it in your database SQL editor, then reload the admin screens.\n\n"

SUGGESTIONS = [
    {'label': 'Recreate Database Tables', 'prompt': 'I need the SQL code to recreate all system tables.'},
    {'label': 'Check System Status', 'prompt': 'Is the system database connected properly?'},
    {'label': 'Fix Permission Errors', 'prompt': 'I am getting a "role_permissions" column error. How do I fix it?'},
]

MAX_HISTORY = 100


class AssistantUnavailable(Exception):
    """The AI service is not configured or could not be reached."""


def is_repair_request(message: str) -> bool:
    lowered = message.lower()
    return any(trigger in lowered for trigger in REPAIR_TRIGGERS)


def split_sql(text: str) -> Tuple[str, Optional[str]]:
    """
    Split a reply into prose and an SQL block for copy-to-clipboard.

    Returns:
        Tuple[str, Optional[str]]: (prose, sql) where sql is None when the
        reply contains no CREATE TABLE / ALTER TABLE statement
    """
    if 'CREATE TABLE' not in text and 'ALTER TABLE' not in text:
        return text, None
    if '--' not in text:
        return '', text
    prose, rest = text.split('--', 1)
    return prose.strip(), '--' + rest


def make_message(role: str, text: str) -> Dict[str, Any]:
    prose, sql = split_sql(text)
    return {
        'role': role,
        'text': text,
        'prose': prose,
        'sql': sql,
        'timestamp': datetime.now().isoformat(timespec='seconds'),
    }


def _default_model_factory(api_key: str, model_name: str) -> Callable:
    def factory(system_instruction: Optional[str] = None):
        if not api_key:
            raise AssistantUnavailable("AI API key is not configured")
        genai.configure(api_key=api_key)
        if system_instruction:
            return genai.GenerativeModel(model_name, system_instruction=system_instruction)
        return genai.GenerativeModel(model_name)
    return factory


class SystemAssistant:
    """
    Gemini-backed assistant.

    ``model_factory(system_instruction)`` returns an object with a
    ``generate_content(prompt)`` method; it defaults to google-generativeai.
    """

    def __init__(self, api_key: str = GEMINI_API_KEY, model_name: str = GEMINI_MODEL,
                 model_factory: Optional[Callable] = None):
        self.model_name = model_name
        self.model_factory = model_factory or _default_model_factory(api_key, model_name)

    def _generate(self, prompt: str, system_instruction: Optional[str] = None) -> str:
        model = self.model_factory(system_instruction)
        response = model.generate_content(prompt)
        return (getattr(response, 'text', '') or '').strip()

    def chat(self, message: str) -> Dict[str, Any]:
        """
        Answer one chat message.

        Raises:
            ValueError: if the message is empty
        """
        message = (message or '').strip()
        if not message:
            raise ValueError("Message cannot be empty")

        if is_repair_request(message):
            return make_message('model', REPAIR_INTRO + REPAIR_SQL)

        try:
            text = self._generate(message, SYSTEM_INSTRUCTION)
        except Exception:
            logger.exception('AI chat request failed')
            return make_message('model', CONNECTION_ERROR)
        return make_message('model', text or EMPTY_REPLY)

    def generate_student_remark(self, student: Dict[str, Any], exam_name: str,
                                marks: List[Dict[str, Any]], subjects: List[Dict[str, Any]]) -> str:
        """Short personalised report-card remark addressed to the guardian."""
        subject_map = {s['id']: s for s in subjects}
        parts = []
        for mark in marks:
            subject = subject_map.get(mark['subject_id'])
            if subject is None:
                continue
            total = (mark.get('obj_marks') or 0) + (mark.get('sub_marks') or 0)
            parts.append(
                f"{subject['name']}: {total:g}/{subject['max_marks']} "
                f"(Obj: {mark.get('obj_marks') or 0:g}, Subj: {mark.get('sub_marks') or 0:g})"
            )
        prompt = f"""
Act as a supportive and analytical senior teacher.
Generate a concise, constructive, and personalized remark (max 50 words) for a report card.

Student: {student['full_name']}
Exam: {exam_name}
Performance Summary: {', '.join(parts) or 'No marks recorded'}

Note: The exam has Objective and Subjective components.
Highlight strengths and gently suggest areas for improvement if necessary. Direct address to the parent/guardian.
"""
        try:
            return self._generate(prompt) or "Could not generate remark."
        except Exception:
            logger.exception('AI remark generation failed')
            return "Remark generation unavailable currently."

    def analyze_class_performance(self, exam_name: str, average_score: float, pass_percentage: float,
                                  top_subject: str, weak_subject: str) -> str:
        prompt = f"""
Provide a brief strategic analysis (3 bullet points) for the school principal regarding the recent {exam_name}.
Data:
- Average Score: {average_score}%
- Pass Rate: {pass_percentage}%
- Strongest Subject: {top_subject}
- Weakest Subject: {weak_subject}

Focus on actionable advice for curriculum adjustment.
"""
        try:
            return self._generate(prompt) or "Analysis unavailable."
        except Exception:
            logger.exception('AI class analysis failed')
            return "Analysis unavailable due to network error."


class ChatHistory:
    """
    Conversation stored as a JSON file on the server; the browser session
    only keeps the file path.
    """

    def __init__(self, folder: str):
        self.folder = folder

    def new_path(self) -> str:
        os.makedirs(self.folder, exist_ok=True)
        return os.path.join(self.folder, f"chat_{secrets.token_hex(8)}.json")

    def load(self, path: Optional[str]) -> List[Dict[str, Any]]:
        if not path or not os.path.exists(path):
            return [make_message('model', GREETING)]
        with open(path, 'r', encoding='utf-8') as fh:
            return json.load(fh)

    def save(self, path: str, messages: List[Dict[str, Any]]) -> None:
        with open(path, 'w', encoding='utf-8') as fh:
            json.dump(messages[-MAX_HISTORY:], fh)

    def reset(self, path: str) -> List[Dict[str, Any]]:
        messages = [make_message('model', CLEARED)]
        self.save(path, messages)
        return messages
