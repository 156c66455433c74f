import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator
from pydantic.alias_generators import to_camel

QuestionType = Literal["text", "number", "select", "multiselect", "date", "boolean"]
SELECT_TYPES = ("select", "multiselect")

# Answer values are text, numbers, booleans, one option id or a list of option ids
AnswerValue = bool | int | float | str | list[str] | None


def to_epoch_ms(value: datetime) -> int:
    """Timestamps cross the API boundary as epoch milliseconds (naive = UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Question schemas
# ---------------------------------------------------------------------------


class Option(CamelModel):
    id: str = Field(..., min_length=1, max_length=100)
    text: str = Field(..., max_length=1000)


class Question(CamelModel):
    """Single question; sub-questions point at a parent question and one of its options."""

    id: str = Field(..., min_length=1, max_length=100)
    text: str = Field("", max_length=1000)
    type: QuestionType
    required: bool = False
    options: list[Option] | None = None
    parent_id: str | None = None
    parent_option_id: str | None = None
    include_in_power_bi: bool = Field(False, alias="includeInPowerBI")
    power_bi_field_name: str | None = Field(None, alias="powerBIFieldName")

    @model_validator(mode="after")
    def _check_options(self) -> "Question":
        if self.type in SELECT_TYPES:
            if not self.options:
                raise ValueError(f"Question '{self.id}': {self.type} requires at least one option")
            option_ids = [o.id for o in self.options]
            if len(set(option_ids)) != len(option_ids):
                raise ValueError(f"Question '{self.id}': option ids must be unique")
        elif self.options:
            raise ValueError(f"Question '{self.id}': only select and multiselect questions take options")
        else:
            self.options = None
        return self

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def option_ids(self) -> list[str]:
        return [o.id for o in self.options or []]

    def option_text(self, option_id: Any) -> str | None:
        for option in self.options or []:
            if option.id == option_id:
                return option.text
        return None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Form CRUD schemas
# ---------------------------------------------------------------------------


class FormCreate(CamelModel):
    name: str = Field(..., max_length=255)
    description: str = ""
    questions: list[Question] = Field(..., min_length=1)


class FormUpdate(FormCreate):
    """Full replacement of a form's name, description and question list."""


class FormOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str
    questions: list[Question]
    created_by: uuid.UUID
    version: int
    created_at: datetime
    updated_at: datetime

    @field_serializer("created_at", "updated_at")
    def _serialize_timestamp(self, value: datetime) -> int:
        return to_epoch_ms(value)


class FormDetailOut(FormOut):
    response_count: int = 0


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


class VisibilityRequest(CamelModel):
    answers: dict[str, AnswerValue] = Field(default_factory=dict)


class VisibilityOut(CamelModel):
    questions: list[Question]


class QuestionTreeNode(CamelModel):
    question: Question
    # option id -> sub-questions gated on that option
    children: dict[str, list["QuestionTreeNode"]] = Field(default_factory=dict)


class QuestionTreeOut(CamelModel):
    roots: list[QuestionTreeNode]
