# Pydantic models for grievances, attachments and API payloads

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .helpers import DESCRIPTION_MIN_LENGTH, TITLE_MIN_LENGTH, is_valid_email

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class GrievanceStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"

class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

# Status a new grievance starts in; update requests use the lowercase values.
INITIAL_STATUS = "Submitted"

# ---------------------------------------------------------------------------
# Grievances
# ---------------------------------------------------------------------------
class GrievanceCreate(BaseModel):
    user_id: Optional[str] = Field(None, max_length=100)
    title: str = Field(..., max_length=200)
    description: str = Field(..., max_length=5000)
    category: str = Field(..., max_length=100)
    priority: Priority = Priority.MEDIUM
    is_anonymous: bool = False
    submitter_name: Optional[str] = Field(None, max_length=200)
    submitter_email: Optional[str] = Field(None, max_length=320)

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        if len(v.strip()) < TITLE_MIN_LENGTH:
            raise ValueError(f"Title must be at least {TITLE_MIN_LENGTH} characters long")
        return v

    @field_validator("description")
    @classmethod
    def check_description(cls, v):
        if len(v.strip()) < DESCRIPTION_MIN_LENGTH:
            raise ValueError(f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters long")
        return v

    @field_validator("category")
    @classmethod
    def check_category(cls, v):
        if not v.strip():
            raise ValueError("Category is required")
        return v

    @field_validator("submitter_email")
    @classmethod
    def check_email(cls, v):
        if v and not is_valid_email(v):
            raise ValueError("Invalid email address")
        return v

class Grievance(BaseModel):
    id: str
    reference_id: str
    user_id: Optional[str] = None
    title: str
    description: str
    category: str
    priority: str = Priority.MEDIUM.value
    is_anonymous: bool = False
    submitter_name: Optional[str] = None
    submitter_email: Optional[str] = None
    status: str = INITIAL_STATUS
    created_at: datetime
    updated_at: datetime

class StatusUpdate(BaseModel):
    status: str = Field(..., max_length=50)

class GrievanceEnvelope(BaseModel):
    message: str
    data: Grievance

class GrievanceStatistics(BaseModel):
    total: int
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_priority: Dict[str, int] = Field(default_factory=dict)
    recent: List[Grievance] = Field(default_factory=list)

# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------
class Attachment(BaseModel):
    id: str
    grievance_id: str
    original_name: str
    stored_name: str
    path: str
    content_type: str
    size: int
    description: str = ""
    uploaded_at: datetime

class AttachmentResponse(BaseModel):
    id: str
    grievance_id: str
    original_name: str
    content_type: str
    size: int
    description: str = ""
    uploaded_at: datetime

class UploadResponse(BaseModel):
    success: bool = True
    message: str = "Files uploaded successfully"
    files: List[AttachmentResponse]

class FileListResponse(BaseModel):
    files: List[AttachmentResponse]

class MessageResponse(BaseModel):
    success: bool = True
    message: str

class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: datetime
    uptime: float
