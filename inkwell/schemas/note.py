"""
Inkwell Backend — Note, Chat and Shared Pydantic Schemas
==========================================================

What:  Pydantic models defining the API contract for notes, AI actions,
       errors and health.
How:   FastAPI validates request bodies against the *Create/*Update/*Request
       models (failures become 400 validation errors) and serializes
       responses from the *Response models.
Who:   Note, AI and health route handlers; services build the responses.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    """Body of POST /api/notes. Title and content are trimmed before length checks."""
    title: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1, max_length=1_000_000)
    tags: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("title", "content", "tags", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v


class NoteUpdate(BaseModel):
    """
    Body of PATCH /api/notes/{id}.

    At least one field must be present. An explicit `"tags": null` clears tags.
    """
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    content: Optional[str] = Field(default=None, min_length=1, max_length=1_000_000)
    tags: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("title", "content", "tags", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v

    @model_validator(mode="after")
    def require_one_field(self) -> "NoteUpdate":
        if not self.model_fields_set & {"title", "content", "tags"}:
            raise ValueError("At least one of [title, content, tags] must be provided")
        for name in ("title", "content"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ChatRequest(BaseModel):
    """Body of POST /api/notes/{id}/chat."""
    message: str = Field(min_length=1, max_length=2000, description="The user's question")

    @field_validator("message", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    """Full representation of a note."""
    id: uuid.UUID = Field(description="Unique note identifier (UUID)")
    title: str
    content: str
    tags: Optional[str] = None
    created_at: datetime = Field(description="When the note was created (UTC ISO 8601)")
    updated_at: datetime

    model_config = {"from_attributes": True}


class NoteListItem(BaseModel):
    """Compact note representation for list views (content preview, first 200 chars)."""
    id: uuid.UUID
    title: str
    content_preview: str = Field(description="First 200 characters of the content")
    tags: Optional[str] = None
    created_at: datetime


class NoteListResponse(BaseModel):
    """
    Paginated response wrapper for GET /api/notes.

    next_cursor is `<created_at>|<id>` of the last item; pass it back as
    `cursor` to fetch the next page.
    """
    notes: List[NoteListItem]
    total_count: int = Field(description="Total number of notes owned by the caller")
    next_cursor: Optional[str] = Field(
        default=None,
        description="Cursor for next page (created_at|id). Null if no more pages."
    )
    has_more: bool


class TagResponse(BaseModel):
    """Result of POST /api/notes/{id}/tags."""
    tags: List[str]


class ChatResponse(BaseModel):
    """Result of POST /api/notes/{id}/chat."""
    response: str


class ChatTurnResponse(BaseModel):
    id: int
    note_id: uuid.UUID
    role: str = Field(description="user or assistant")
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ChatHistoryResponse(BaseModel):
    """Result of GET /api/notes/{id}/chat, oldest turn first."""
    messages: List[ChatTurnResponse]


# ══════════════════════════════════════════════════════════════════════════
# Error & Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "insufficient_credits",
            "message": "Insufficient credits for this operation.",
            "details": {"required": 2},
            "request_id": "550e8400"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="Database connectivity: connected, disconnected")
    llm: str = Field(description="Completion API: configured, unconfigured")
    uptime_seconds: float
