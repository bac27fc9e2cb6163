"""
Configuration settings for the Exam Results Admin
"""
import os

# Flask configuration
FLASK_ENV = os.getenv('FLASK_ENV', 'development')
DEBUG = FLASK_ENV == 'development'
SECRET_KEY = os.getenv('SECRET_KEY', 'your-secret-key-change-in-production')

# Database configuration (any SQLAlchemy URL; PostgreSQL for a hosted service)
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///' + os.path.join(BASE_DIR, 'exam_results.db'))

# File upload configuration
UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', 'uploads')
DOWNLOAD_FOLDER = os.getenv('DOWNLOAD_FOLDER', 'downloads')
CHAT_FOLDER = os.getenv('CHAT_FOLDER', 'chats')  # assistant conversations, one JSON file each
LOG_FOLDER = os.getenv('LOG_FOLDER', 'logs')
ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'svg', 'webp'}
ALLOWED_IMPORT_EXTENSIONS = {'csv', 'xlsx'}
MAX_FILE_SIZE = 16 * 1024 * 1024  # 16MB

# AI assistant configuration
GEMINI_API_KEY = os.getenv('GEMINI_API_KEY') or os.getenv('API_KEY', '')
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.5-flash')

# School defaults (used until the school config row is saved)
DEFAULT_SCHOOL_NAME = 'UNACADEMY'
DEFAULT_SCHOOL_TAGLINE = 'Excellence in Education'

# Marking configuration
ENTRY_PASS_PERCENTAGE = 33  # Marks entry screen labels a mark Pass at this percentage
ROLL_NUMBER_PREFIX = 'ACS'

# Create folders if they don't exist
os.makedirs(UPLOAD_FOLDER, exist_ok=True)
os.makedirs(DOWNLOAD_FOLDER, exist_ok=True)
os.makedirs(CHAT_FOLDER, exist_ok=True)
