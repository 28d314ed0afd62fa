import os
from datetime import timedelta
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR}/classroom.db")

# DEV ONLY default secret; set SECRET_KEY in the environment for real deployments.
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE = timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")))

# Identifiers
ID_FORMAT = os.getenv("ID_FORMAT", "hex24")  # "hex24" or "uuid"
ID_MAX_UNWRAP_DEPTH = 3

# Submission content
COMMENT_MIN_LENGTH = 10
COMMENT_MAX_LENGTH = 2000
FEEDBACK_MIN_LENGTH = 10
FEEDBACK_MAX_LENGTH = 5000

# Attachments
DEFAULT_ALLOWED_FILE_TYPES = ("png", "jpeg", "jpg", "gif", "webp", "pdf", "doc", "docx", "txt")
DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB
MAX_FILES_PER_UPLOAD = 10
MAX_FILENAME_LENGTH = 255

BLOB_STORAGE_DIR = Path(os.getenv("BLOB_STORAGE_DIR", str(BASE_DIR / "blobs")))
BLOB_BASE_URL = os.getenv("BLOB_BASE_URL", "http://localhost:8000/blobs")

# Upload retry policy (client side)
UPLOAD_MAX_RETRIES = 3
UPLOAD_BASE_DELAY_SECONDS = 2.0
UPLOAD_BACKOFF_MULTIPLIER = 2.0

# Grade calls repeating the last review within this window are treated as client retries
DUPLICATE_GRADE_WINDOW_SECONDS = 10
