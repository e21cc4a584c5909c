"""Модели данных для публикации вакансий."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, computed_field, field_validator


class FieldType(str, Enum):
    """Semantic meaning of a form control."""
    TITLE = "title"
    DESCRIPTION = "description"
    LOCATION = "location"
    COMPANY = "company"
    EMAIL = "email"
    SUBMIT = "submit"
    OTHER = "other"


class BoardStatus(str, Enum):
    """Status of one board posting (see src/posting/state.py for transitions)."""
    PENDING = "pending"
    ANALYZING = "analyzing"
    FILLING = "filling"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BoardStatus.SUCCEEDED, BoardStatus.FAILED)


class JobStatus(str, Enum):
    """Overall status of a posting run, derived from board statuses."""
    PENDING = "pending"
    POSTING = "posting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Typed reason for a failed board posting."""
    FORM_NOT_UNDERSTOOD = "form_not_understood"
    REQUIRED_FIELD_MISSING = "required_field_missing"
    TIMEOUT = "timeout"
    UNCONFIRMED_SUBMISSION = "unconfirmed_submission"
    BUDGET_EXCEEDED = "budget_exceeded"
    NAVIGATION_FAILURE = "navigation_failure"
    CANCELLED = "cancelled"


class Job(BaseModel):
    """Вакансия для публикации на нескольких досках."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    location: str = ""
    company: str = ""
    contact_email: str = ""
    salary_min: Optional[int] = Field(default=None, ge=0)
    salary_max: Optional[int] = Field(default=None, ge=0)
    salary_currency: str = "USD"
    employment_type: Optional[str] = None
    board_ids: list[str] = Field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    total_cost: float = 0.0
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = {
        "frozen": False,  # Orchestrator updates status and total_cost
        "extra": "ignore",
    }

    @field_validator("board_ids")
    @classmethod
    def _dedupe_board_ids(cls, value: list[str]) -> list[str]:
        """Keep first occurrence of every board id, preserving order."""
        seen: dict[str, None] = {}
        for board_id in value:
            board_id = board_id.strip()
            if board_id:
                seen.setdefault(board_id, None)
        return list(seen)

    @computed_field
    @property
    def salary_display(self) -> str:
        """Форматированное отображение зарплаты."""
        if not self.salary_min and not self.salary_max:
            return "Competitive"

        currency = self.salary_currency or "USD"

        if self.salary_min and self.salary_max:
            return f"{self.salary_min:,} - {self.salary_max:,} {currency}"
        elif self.salary_min:
            return f"{self.salary_min:,}+ {currency}"
        else:
            return f"Up to {self.salary_max:,} {currency}"

    def field_values(self) -> dict[FieldType, str]:
        """Values to type into each semantic field."""
        return {
            FieldType.TITLE: self.title,
            FieldType.DESCRIPTION: self.description,
            FieldType.LOCATION: self.location,
            FieldType.COMPANY: self.company,
            FieldType.EMAIL: self.contact_email,
        }


class Board(BaseModel):
    """Внешняя доска объявлений из каталога (read-only)."""

    id: str
    name: str
    base_url: str
    post_url: str
    login_url: Optional[str] = None
    requires_auth: bool = False
    enabled: bool = True
    category: str = ""
    pricing: str = ""  # free | paid
    # Confirmation signal after submit
    success_url_pattern: Optional[str] = None
    success_selectors: list[str] = Field(default_factory=list)
    success_markers: list[str] = Field(default_factory=list)
    job_link_selector: Optional[str] = None

    model_config = {
        "frozen": True,
        "extra": "ignore",
    }


class Credentials(BaseModel):
    """Login data for boards that require an account. Never logged or stored."""

    email: str
    password: SecretStr
    company: Optional[str] = None

    model_config = {"frozen": True}


class FieldMapping(BaseModel):
    """Association between a semantic field and a concrete control on the page."""

    selector: str = Field(min_length=1)
    field_type: FieldType
    required: bool = False
    confidence: float = Field(ge=0.0, le=1.0)
    label: Optional[str] = None

    model_config = {"frozen": True}


class UsageRecord(BaseModel):
    """One backend call: tokens, price and latency. Append-only."""

    provider: str
    model: str
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_usd: float = Field(default=0.0, ge=0.0)
    latency_seconds: float = Field(default=0.0, ge=0.0)
    success: bool = True
    job_id: Optional[str] = None
    board_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}


class FormAnalysis(BaseModel):
    """Result of a successful detector call."""

    fields: list[FieldMapping]
    confidence: float = Field(ge=0.0, le=1.0)
    provider: str
    model: str
    usage: Optional[UsageRecord] = None
    warnings: list[str] = Field(default_factory=list)

    def by_type(self, field_type: FieldType) -> Optional[FieldMapping]:
        """Most confident mapping for a field type (first wins on ties)."""
        best: Optional[FieldMapping] = None
        for mapping in self.fields:
            if mapping.field_type == field_type and (best is None or mapping.confidence > best.confidence):
                best = mapping
        return best


def _clamp_unit(value) -> float:
    """Coerce an LLM-provided score into [0, 1]; garbage becomes 0."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(max(value, 0.0), 1.0)


# ==================== Structured Output Models ====================
# These models are used with OpenAI's json_schema response_format
# for guaranteed schema compliance.
#
# OpenAI strict mode requires:
# 1. additionalProperties: false
# 2. ALL properties in required array (even those with defaults)


class DetectedField(BaseModel):
    """Single form control as returned by the LLM."""
    selector: str = Field(description="CSS selector of the control")
    type: str = Field(description="title|description|location|company|email|submit|other")
    label: Optional[str] = Field(default=None, description="Visible label text or null")
    required: bool = Field(default=False, description="Whether the form marks the control as required")
    confidence: float = Field(default=0.0, description="0.0-1.0 confidence for this control")

    model_config = {
        "extra": "ignore",
    }

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value) -> float:
        return _clamp_unit(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value) -> str:
        text = str(value or "").strip().lower()
        return text if text in {t.value for t in FieldType} else FieldType.OTHER.value


class FormAnalysisSchema(BaseModel):
    """Schema for LLM form analysis response."""
    success: bool = Field(default=True, description="False when no job posting form is present")
    fields: list[DetectedField] = Field(default_factory=list, description="Detected form controls")
    confidence: float = Field(default=0.0, description="Overall 0.0-1.0 confidence")
    warnings: list[str] = Field(default_factory=list, description="Warnings about the form")

    model_config = {
        "extra": "ignore",
    }

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value) -> float:
        return _clamp_unit(value)

    @classmethod
    def model_json_schema(cls, **kwargs):
        """Override to make all properties required for OpenAI strict mode."""
        schema = super().model_json_schema(**kwargs)
        if "properties" in schema:
            schema["required"] = list(schema["properties"].keys())
        if "$defs" in schema and "DetectedField" in schema["$defs"]:
            nested = schema["$defs"]["DetectedField"]
            if "properties" in nested:
                nested["required"] = list(nested["properties"].keys())
        return schema


# ==================== Results ====================


class BoardResult(BaseModel):
    """Terminal outcome of one board posting."""

    board_id: str
    board_name: str
    success: bool
    external_url: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: int = 0
    cost_usd: float = 0.0
    duration_seconds: float = 0.0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobResult(BaseModel):
    """Aggregated outcome of a posting run. Never an error."""

    job_id: str
    status: JobStatus
    overall_success: bool
    results: list[BoardResult]
    total_cost: float = 0.0
    total_time: float = 0.0

    @computed_field
    @property
    def total_boards(self) -> int:
        return len(self.results)

    @computed_field
    @property
    def successful_postings(self) -> int:
        return sum(1 for r in self.results if r.success)

    @computed_field
    @property
    def failed_postings(self) -> int:
        return self.total_boards - self.successful_postings

    def for_board(self, board_id: str) -> Optional[BoardResult]:
        return next((r for r in self.results if r.board_id == board_id), None)


class StatusEvent(BaseModel):
    """Event pushed to the status channel."""

    job_id: str
    board_id: Optional[str] = None  # None for job-level events
    status: str
    external_url: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
