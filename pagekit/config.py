"""Environment-driven settings shared by the engine and the Flask app."""
import os

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_ROOT = os.environ.get('PAGEKIT_DATA_DIR', BASE_DIR)

UPLOAD_FOLDER = os.path.join(DATA_ROOT, 'uploads')
THUMB_FOLDER = os.path.join(DATA_ROOT, 'thumbs')
DATA_DIR = os.path.join(DATA_ROOT, 'data')

MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 100 * 1024 * 1024))
SECRET_KEY = os.environ.get('SECRET_KEY', '!@#$%^&*()_+pagekit-dev-key')  # Replace in production!
ENABLE_CSRF = os.environ.get('ENABLE_CSRF', '0') in ('1', 'true', 'True')
ENABLE_CLEANUP = os.environ.get('ENABLE_CLEANUP', '1') in ('1', 'true', 'True')
CLEANUP_INTERVAL_SEC = int(os.environ.get('CLEANUP_INTERVAL_SEC', 60))
CLEANUP_MAX_AGE_SEC = int(os.environ.get('CLEANUP_MAX_AGE_SEC', 1800))

# undo snapshots kept per session; oldest evicted first
HISTORY_LIMIT = int(os.environ.get('HISTORY_LIMIT', 50))
THUMB_SCALE = float(os.environ.get('THUMB_SCALE', 0.6))

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

BIND_HOST = os.environ.get('BIND_HOST', '127.0.0.1')
PORT = int(os.environ.get('PORT', 1000))


def strict_mode(debug: bool = False) -> bool:
    """Whether store desync errors propagate instead of degrading to a no-op."""
    value = os.environ.get('PAGEKIT_STRICT')
    if value is None:
        return debug
    return value in ('1', 'true', 'True')
