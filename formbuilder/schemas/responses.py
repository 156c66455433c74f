import uuid
from datetime import datetime

from pydantic import ConfigDict, Field, field_serializer

from formbuilder.schemas.forms import AnswerValue, CamelModel, to_epoch_ms

# 9999-12-31T23:59:59.999Z, the last instant a datetime can hold
MAX_EPOCH_MS = 253_402_300_799_999


class QuestionResponse(CamelModel):
    question_id: str = Field(..., min_length=1)
    value: AnswerValue = None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ResponseCreate(CamelModel):
    form_id: uuid.UUID
    form_version: int = Field(1, ge=1)
    responses: list[QuestionResponse] = Field(..., min_length=1)
    updated_offline: bool = False


class ResponseReplace(CamelModel):
    """Full replacement of an existing response's answers."""

    form_version: int | None = Field(None, ge=1)
    responses: list[QuestionResponse] = Field(..., min_length=1)


class ResponseImportEntry(CamelModel):
    """One offline-collected response; createdAt is epoch milliseconds."""

    form_id: uuid.UUID
    form_version: int = Field(..., ge=1)
    responses: list[QuestionResponse] = Field(..., min_length=1)
    created_at: int | None = Field(None, ge=0, le=MAX_EPOCH_MS)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ResponseOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    form_id: uuid.UUID
    form_version: int
    responses: list[QuestionResponse]
    created_at: datetime
    updated_offline: bool
    user_id: uuid.UUID
    username: str | None = None

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> int:
        return to_epoch_ms(value)


class ResponseCreated(CamelModel):
    id: uuid.UUID


class ImportResult(CamelModel):
    imported: int
    message: str = "Responses imported"
