# Validation and presentation helpers shared by the API and the client layer

import random
import re
import string
import time
from typing import Any, Dict, List, Optional

from .config import ALLOWED_CONTENT_TYPES, MAX_FILE_SIZE

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TITLE_MIN_LENGTH = 5
DESCRIPTION_MIN_LENGTH = 20
NAME_MIN_LENGTH = 2

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
BASE36 = string.digits + string.ascii_lowercase

STATUS_COLORS = {
    "submitted":    "blue",
    "under_review": "yellow",
    "in_progress":  "orange",
    "resolved":     "green",
    "closed":       "gray",
}

STATUS_LABELS = {
    "submitted":    "Submitted",
    "under_review": "Under Review",
    "in_progress":  "In Progress",
    "resolved":     "Resolved",
    "closed":       "Closed",
}

PRIORITY_COLORS = {
    "low":    "green",
    "medium": "yellow",
    "high":   "red",
    "urgent": "purple",
}

DEFAULT_CATEGORY_ICON = "📝"
CATEGORY_ICONS = {
    "academic":       "📚",
    "hostel":         "🏠",
    "transport":      "🚌",
    "library":        "📖",
    "canteen":        "🍽️",
    "sports":         "⚽",
    "medical":        "🏥",
    "administrative": "📋",
    "infrastructure": "🏗️",
    "other":          DEFAULT_CATEGORY_ICON,
}

INVALID_TYPE_MESSAGE = ("Invalid file type. Only JPEG, PNG, GIF, PDF, TXT, DOC, "
                        "and DOCX files are allowed.")

# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_status_color(status: str) -> str:
    return STATUS_COLORS.get(status, "gray")

def get_status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)

def get_priority_color(priority: str) -> str:
    return PRIORITY_COLORS.get(priority, "gray")

def get_category_icon(category: str) -> str:
    return CATEGORY_ICONS.get(category, DEFAULT_CATEGORY_ICON)

# ---------------------------------------------------------------------------
# Grievance validation
# ---------------------------------------------------------------------------
def is_valid_email(email: Optional[str]) -> bool:
    return isinstance(email, str) and EMAIL_RE.fullmatch(email) is not None

def _field(data: Any, *names: str) -> Any:
    """Read the first present key from a dict, accepting snake and camel case."""
    for name in names:
        value = data.get(name)
        if value is not None:
            return value
    return None

def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""

def validate_grievance_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Check a grievance payload before it is submitted.

    Every rule runs; the returned ``errors`` list keeps the order in which
    the rules are checked so callers can show them as-is.
    """
    errors: List[str] = []

    if len(_text(data.get("title"))) < TITLE_MIN_LENGTH:
        errors.append(f"Title must be at least {TITLE_MIN_LENGTH} characters long")

    if len(_text(data.get("description"))) < DESCRIPTION_MIN_LENGTH:
        errors.append(f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters long")

    if not data.get("category"):
        errors.append("Category is required")

    if not _field(data, "is_anonymous", "isAnonymous"):
        name = _field(data, "submitter_name", "submitterName")
        if len(_text(name)) < NAME_MIN_LENGTH:
            errors.append("Name is required for non-anonymous submissions")

        email = _field(data, "submitter_email", "submitterEmail")
        if not is_valid_email(email):
            errors.append("Valid email is required for non-anonymous submissions")

    return {"is_valid": not errors, "errors": errors}

# ---------------------------------------------------------------------------
# Reference ids
# ---------------------------------------------------------------------------
def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))

def generate_reference_id() -> str:
    """Human-facing token such as ``GRV-LZ3K9Q1A-4F7XD``.

    Not a primary key: two calls in the same millisecond can collide.
    """
    timestamp = to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(BASE36, k=5))
    return f"GRV-{timestamp}-{suffix}".upper()

def generate_tracking_token() -> str:
    chars = string.ascii_uppercase + string.digits
    return "TRK-" + "".join(random.choices(chars, k=8))

_REFERENCE_RE = re.compile(r"^GRV-[0-9A-Z]{6,12}-[0-9A-Z]{5}$")
_TRACKING_RE = re.compile(r"^TRK-[A-Z0-9]{8}$")

def validate_reference_id(reference_id: Any) -> bool:
    if not reference_id or not isinstance(reference_id, str):
        return False
    return bool(_REFERENCE_RE.match(reference_id) or _TRACKING_RE.match(reference_id))

# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------
def validate_file(content_type: Optional[str], size: int,
                  max_size: int = MAX_FILE_SIZE) -> Dict[str, Any]:
    if content_type not in ALLOWED_CONTENT_TYPES:
        return {"valid": False, "error": INVALID_TYPE_MESSAGE}
    if size > max_size:
        return {"valid": False,
                "error": f"File too large. Maximum size is {format_file_size(max_size)}."}
    return {"valid": True}

def format_file_size(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value, i = float(size), 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"

def is_image(content_type: Optional[str]) -> bool:
    return bool(content_type) and content_type.startswith("image/")

def get_file_icon(content_type: Optional[str]) -> str:
    content_type = content_type or ""
    if is_image(content_type):
        return "🖼️"
    if content_type == "application/pdf":
        return "📄"
    if "word" in content_type:
        return "📝"
    if content_type == "text/plain":
        return "📃"
    return "📎"
