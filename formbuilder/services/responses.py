"""Response aggregate operations: submission, answer validation, owner-scoped edits, batch import."""

import logging
import uuid
from collections.abc import Sequence
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from formbuilder.models.form import Form
from formbuilder.models.form_response import FormResponse
from formbuilder.schemas.forms import Question
from formbuilder.schemas.responses import (
    QuestionResponse,
    ResponseCreate,
    ResponseImportEntry,
    ResponseReplace,
)
from formbuilder.services.auth import Principal
from formbuilder.services.exceptions import InvalidPayloadError, NotFoundError
from formbuilder.services.forms import get_form_for_filling, load_questions
from formbuilder.services.hierarchy import visible_questions

logger = logging.getLogger(__name__)


def from_epoch_ms(value: int) -> datetime:
    """Epoch milliseconds to a naive UTC datetime, as stored."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Answer validation
# ---------------------------------------------------------------------------


def _value_error(question: Question, value: Any) -> str | None:
    """Check one non-null value against the shape its question type allows."""
    q_type = question.type
    if q_type == "text":
        if not isinstance(value, str):
            return "text answer must be a string"
    elif q_type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return "number answer must be numeric"
    elif q_type == "boolean":
        if not isinstance(value, bool):
            return "boolean answer must be true or false"
    elif q_type == "date":
        if not isinstance(value, str):
            return "date answer must be an ISO date string"
        try:
            date.fromisoformat(value[:10])
        except ValueError:
            return f"'{value}' is not a valid date"
    elif q_type == "select":
        if value not in question.option_ids:
            return f"'{value}' is not a valid option"
    elif q_type == "multiselect":
        if not isinstance(value, list):
            return "multiselect answer must be a list of option ids"
        unknown = [v for v in value if v not in question.option_ids]
        if unknown:
            return f"{unknown} are not valid options"
    return None


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


def validate_answers(
    questions: Sequence[Question],
    responses: Sequence[QuestionResponse],
    *,
    check_required: bool = True,
) -> None:
    """Validate answers against the form's current questions.

    Unknown or repeated question ids and values of the wrong shape are
    rejected. With ``check_required``, every required question visible under
    the submitted answers must have a non-blank value.
    """
    by_id = {q.id: q for q in questions}
    errors: list[str] = []
    answers: dict[str, Any] = {}

    for response in responses:
        question = by_id.get(response.question_id)
        if question is None:
            errors.append(f"Unknown question '{response.question_id}'")
            continue
        if response.question_id in answers:
            errors.append(f"Question '{response.question_id}' answered more than once")
            continue
        answers[response.question_id] = response.value
        if _is_blank(response.value):
            continue
        error = _value_error(question, response.value)
        if error:
            errors.append(f"Question '{question.id}': {error}")

    if check_required:
        for question in visible_questions(questions, answers):
            if question.required and _is_blank(answers.get(question.id)):
                errors.append(f"Question '{question.id}' ('{question.text}') is required")

    if errors:
        raise InvalidPayloadError("; ".join(errors))


def _check_version(form: Form, form_version: int) -> None:
    if form_version > form.version:
        raise InvalidPayloadError(
            f"Form version {form_version} does not exist (current version is {form.version})"
        )


def _serialize(responses: Sequence[QuestionResponse]) -> list[dict[str, Any]]:
    return [r.model_dump(by_alias=True) for r in responses]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_for_form(db: Session, form_id: uuid.UUID) -> Sequence[FormResponse]:
    return (
        db.execute(
            select(FormResponse)
            .options(joinedload(FormResponse.user))
            .where(FormResponse.form_id == form_id)
            .order_by(FormResponse.created_at.desc())
        )
        .scalars()
        .all()
    )


def get_owned_response(db: Session, response_id: uuid.UUID, principal: Principal) -> FormResponse:
    """Admins reach any response, other users only their own.

    A response owned by someone else is reported exactly like a missing one.
    """
    response = db.get(FormResponse, response_id)
    if response is None or (not principal.is_admin and response.user_id != principal.id):
        raise NotFoundError("Response")
    return response


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_response(db: Session, principal: Principal, payload: ResponseCreate) -> FormResponse:
    """Store a new response.

    Answers are validated only when they target the form's current version;
    responses to older versions are stored as submitted.
    """
    form = get_form_for_filling(db, payload.form_id)
    _check_version(form, payload.form_version)
    if payload.form_version == form.version:
        validate_answers(load_questions(form), payload.responses)

    response = FormResponse(
        form_id=form.id,
        form_version=payload.form_version,
        responses=_serialize(payload.responses),
        user_id=principal.id,
        updated_offline=payload.updated_offline,
    )
    db.add(response)
    db.commit()
    db.refresh(response)
    logger.info("Response %s stored for form %s v%d", response.id, form.id, response.form_version)
    return response


def replace_response(
    db: Session,
    response_id: uuid.UUID,
    principal: Principal,
    payload: ResponseReplace,
) -> FormResponse:
    """Replace the answers of an existing response in place.

    The id, owner and creation time are kept.
    """
    response = get_owned_response(db, response_id, principal)
    form = get_form_for_filling(db, response.form_id)
    form_version = payload.form_version or response.form_version
    _check_version(form, form_version)
    if form_version == form.version:
        validate_answers(load_questions(form), payload.responses)

    response.form_version = form_version
    response.responses = _serialize(payload.responses)
    db.commit()
    db.refresh(response)
    logger.info("Response %s replaced by %s", response.id, principal.username)
    return response


def delete_response(db: Session, response_id: uuid.UUID, principal: Principal) -> None:
    response = get_owned_response(db, response_id, principal)
    db.delete(response)
    db.commit()
    logger.info("Response %s deleted by %s", response_id, principal.username)


def import_responses(
    db: Session,
    principal: Principal,
    entries: Sequence[ResponseImportEntry],
) -> int:
    """Insert a batch of offline-collected responses, all or nothing.

    Every row is tagged ``updated_offline`` and owned by the importing user.
    Any invalid entry rolls the whole batch back.
    """
    forms: dict[uuid.UUID, Form] = {}
    try:
        for position, entry in enumerate(entries, start=1):
            form = forms.get(entry.form_id) or db.get(Form, entry.form_id)
            if form is None:
                raise InvalidPayloadError(f"Entry {position}: form {entry.form_id} not found")
            forms[form.id] = form
            try:
                _check_version(form, entry.form_version)
                if entry.form_version == form.version:
                    validate_answers(load_questions(form), entry.responses, check_required=False)
            except InvalidPayloadError as exc:
                raise InvalidPayloadError(f"Entry {position}: {exc}") from exc

            row = FormResponse(
                form_id=form.id,
                form_version=entry.form_version,
                responses=_serialize(entry.responses),
                user_id=principal.id,
                updated_offline=True,
            )
            if entry.created_at is not None:
                row.created_at = from_epoch_ms(entry.created_at)
            db.add(row)
            db.flush()
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("Import of %d responses by %s aborted", len(entries), principal.username)
        raise

    logger.info("Imported %d offline responses for %s", len(entries), principal.username)
    return len(entries)
