# Runtime configuration, read once from the environment (.env supported)

import os
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------
_package_dir = Path(__file__).resolve().parent
for _env_path in [_package_dir / ".env", _package_dir.parent / ".env", Path.cwd() / ".env"]:
    if _env_path.is_file():
        load_dotenv(_env_path, override=True)
        break
else:
    load_dotenv(override=True)

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------
HOST        = os.getenv("HOST", "0.0.0.0")
PORT        = int(os.getenv("PORT", 5001))
def normalize_prefix(value: str) -> str:
    """``api/`` -> ``/api``; an empty or bare ``/`` prefix mounts at the root."""
    value = value.strip().strip("/")
    return f"/{value}" if value else ""

API_PREFIX  = normalize_prefix(os.getenv("API_PREFIX", "/api"))
LOG_LEVEL   = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
MONGODB_URL     = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGODB_DB      = os.getenv("MONGODB_DB", "grievance_system")

# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------
UPLOAD_DIR           = Path(os.getenv("UPLOAD_DIR", "uploads")).resolve()
MAX_FILE_SIZE_MB     = int(os.getenv("MAX_FILE_SIZE_MB", 10))
MAX_FILE_SIZE        = MAX_FILE_SIZE_MB * 1024 * 1024
MAX_FILES_PER_UPLOAD = int(os.getenv("MAX_FILES_PER_UPLOAD", 5))

ALLOWED_CONTENT_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)

# ---------------------------------------------------------------------------
# Client / dev tooling
# ---------------------------------------------------------------------------
API_BASE_URL = (os.getenv("GRIEVANCE_API_URL")
                or os.getenv("REACT_APP_API_URL")
                or f"http://localhost:{PORT}/api")
FRONTEND_CMD = os.getenv("FRONTEND_CMD", "")
FRONTEND_DIR = os.getenv("FRONTEND_DIR", "")
