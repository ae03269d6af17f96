import secrets
import string
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

AIMode = Literal["none", "assisted_creation", "dynamic"]

RATING_SCALE_LIMIT = 10

_ID_ALPHABET = string.ascii_lowercase + string.digits


def random_token(length: int) -> str:
    """Random lower-case base36 token, used for field ids and option fallbacks."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def new_field_id() -> str:
    return f"field_{random_token(9)}"


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    RATING = "rating"
    DATE = "date"
    EMAIL = "email"
    NUMBER = "number"
    NPS = "nps"
    PAGEBREAK = "pagebreak"


CHOICE_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX})
TEXT_TYPES = frozenset({FieldType.TEXT, FieldType.TEXTAREA})


# ---------------------------------------------------------------------------
# Field schemas
# ---------------------------------------------------------------------------


class FieldOption(BaseModel):
    label: str = Field(..., max_length=500)
    value: str = Field(..., max_length=200)


class FieldDefinition(BaseModel):
    """Single field in a form's ordered field list."""

    id: str = Field(default_factory=new_field_id, min_length=1, max_length=100)
    label: str = Field("", max_length=1000)
    type: FieldType
    required: bool = False
    placeholder: str | None = None
    description: str | None = None
    options: list[FieldOption] | None = None
    min_rating: int | None = Field(None, ge=0, le=RATING_SCALE_LIMIT)
    max_rating: int | None = Field(None, ge=1, le=RATING_SCALE_LIMIT)

    @model_validator(mode="after")
    def _pagebreak_never_required(self) -> "FieldDefinition":
        if self.type == FieldType.PAGEBREAK:
            self.required = False
        return self


class OptionDraft(BaseModel):
    """Option as suggested by AI or typed by an author; value may be missing."""

    label: str
    value: str | None = None


# ---------------------------------------------------------------------------
# Form CRUD schemas
# ---------------------------------------------------------------------------


class FormCreate(BaseModel):
    title: str = Field(..., max_length=255)
    description: str | None = None
    fields: list[FieldDefinition]
    is_anonymous: bool = False
    ai_mode: AIMode = "none"


class FormUpdate(FormCreate):
    """Full replacement of a form's definition; partial patches are not supported."""


class FormOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str | None
    fields: list[FieldDefinition]
    is_anonymous: bool
    ai_mode: AIMode
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime


class FormSummaryOut(FormOut):
    response_count: int = 0
    share_url: str


class FormDetailOut(FormSummaryOut):
    default_answers: dict[str, Any]


class FormListResponse(BaseModel):
    items: list[FormSummaryOut]
    total: int
    page: int
    page_size: int


# ---------------------------------------------------------------------------
# AI question suggestions
# ---------------------------------------------------------------------------


class SuggestQuestionsRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=5000)


class SuggestQuestionsResponse(BaseModel):
    fields: list[FieldDefinition]


# ---------------------------------------------------------------------------
# Form response schemas
# ---------------------------------------------------------------------------


class FormSubmission(BaseModel):
    """Answers to a form, keyed by field id."""

    answers: dict[str, Any] = Field(
        default_factory=dict,
        description="Map of field id to answer value",
    )


class FormResponseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    form_id: uuid.UUID
    user_id: uuid.UUID | None
    answers: dict[str, Any]
    timestamp: datetime


class FormResponseRow(FormResponseSchema):
    display: dict[str, str] = Field(
        default_factory=dict,
        description="Human-readable answer per non-pagebreak field id",
    )


class FormResponseListResponse(BaseModel):
    items: list[FormResponseRow]
    total: int
    page: int
    page_size: int
