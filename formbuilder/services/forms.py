"""Form aggregate operations: listing, ownership rules, save-time normalization, cascade delete."""

import logging
import uuid
from collections.abc import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from formbuilder.models.form import Form
from formbuilder.models.form_response import FormResponse
from formbuilder.schemas.forms import Question
from formbuilder.services.auth import Principal
from formbuilder.services.exceptions import InvalidPayloadError, NotFoundError
from formbuilder.services.hierarchy import HierarchyError, QuestionIndex, canonicalize

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Name and questions are required"


def load_questions(form: Form) -> list[Question]:
    return [Question.model_validate(q) for q in form.questions or []]


def prepare_questions(questions: Sequence[Question]) -> list[Question]:
    """Validate the submitted hierarchy and return it in canonical form."""
    try:
        QuestionIndex(questions)
    except HierarchyError as exc:
        raise InvalidPayloadError(str(exc)) from exc

    canonical = canonicalize(questions)
    if not canonical:
        raise InvalidPayloadError(REQUIRED_FIELDS_MESSAGE)
    return canonical


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidPayloadError(REQUIRED_FIELDS_MESSAGE)
    return cleaned


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_forms(db: Session, principal: Principal) -> Sequence[Form]:
    """Admins see every form; other users only the forms they created."""
    query = select(Form)
    if not principal.is_admin:
        query = query.where(Form.created_by == principal.id)
    return db.execute(query.order_by(Form.updated_at.desc())).scalars().all()


def get_form(db: Session, form_id: uuid.UUID, principal: Principal) -> Form:
    form = db.get(Form, form_id)
    if form is None or (not principal.is_admin and form.created_by != principal.id):
        raise NotFoundError("Form")
    return form


def get_form_for_filling(db: Session, form_id: uuid.UUID) -> Form:
    """Any authenticated user may respond to any form."""
    form = db.get(Form, form_id)
    if form is None:
        raise NotFoundError("Form")
    return form


def count_responses(db: Session, form_id: uuid.UUID) -> int:
    return db.execute(
        select(func.count()).select_from(FormResponse).where(FormResponse.form_id == form_id)
    ).scalar_one()


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_form(
    db: Session,
    principal: Principal,
    *,
    name: str,
    description: str,
    questions: Sequence[Question],
) -> Form:
    form = Form(
        name=_clean_name(name),
        description=(description or "").strip(),
        questions=[q.to_storage() for q in prepare_questions(questions)],
        created_by=principal.id,
        version=1,
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info("Form %s created by %s (%d questions)", form.id, principal.username, len(form.questions))
    return form


def update_form(
    db: Session,
    form_id: uuid.UUID,
    *,
    name: str,
    description: str,
    questions: Sequence[Question],
) -> Form:
    """Replace name, description and questions; bumps the version by one.

    Last writer wins: concurrent editors are not detected.
    """
    form = db.get(Form, form_id)
    if form is None:
        raise NotFoundError("Form")

    cleaned_name = _clean_name(name)
    canonical = prepare_questions(questions)

    form.name = cleaned_name
    form.description = (description or "").strip()
    form.questions = [q.to_storage() for q in canonical]
    form.version = Form.version + 1
    db.commit()
    db.refresh(form)
    logger.info("Form %s updated to version %d", form.id, form.version)
    return form


def _delete_responses(db: Session, form_id: uuid.UUID) -> int:
    result = db.execute(
        delete(FormResponse).where(FormResponse.form_id == form_id)
    )
    return result.rowcount


def _delete_form_row(db: Session, form_id: uuid.UUID) -> None:
    db.execute(delete(Form).where(Form.id == form_id))


def delete_form(db: Session, form_id: uuid.UUID) -> int:
    """Delete a form and all of its responses in one transaction.

    Returns the number of responses removed. On any failure both deletions
    are rolled back and the error propagates.
    """
    if db.get(Form, form_id) is None:
        raise NotFoundError("Form")

    try:
        removed = _delete_responses(db, form_id)
        _delete_form_row(db, form_id)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Failed to delete form %s; rolled back", form_id)
        raise

    logger.info("Form %s deleted with %d responses", form_id, removed)
    return removed
