"""Form endpoints: CRUD, visibility, the question tree, and spreadsheet export/import of responses."""

import uuid
from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from formbuilder.core.auth import get_admin_principal, get_current_principal
from formbuilder.core.config import settings
from formbuilder.core.database import get_db
from formbuilder.models.form import Form
from formbuilder.schemas.forms import (
    FormCreate,
    FormDetailOut,
    FormOut,
    FormUpdate,
    QuestionTreeNode,
    QuestionTreeOut,
    VisibilityOut,
    VisibilityRequest,
)
from formbuilder.schemas.responses import ImportResult, ResponseOut
from formbuilder.services import forms as form_service
from formbuilder.services import responses as response_service
from formbuilder.services import spreadsheet
from formbuilder.services.auth import Principal
from formbuilder.services.exceptions import InvalidPayloadError, NotFoundError
from formbuilder.services.hierarchy import (
    HierarchyError,
    QuestionIndex,
    QuestionNode,
    build_forest,
    visible_questions,
)

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_form_or_404(form_id: uuid.UUID, db: Session, principal: Principal) -> Form:
    try:
        return form_service.get_form(db, form_id, principal)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")


def _get_fillable_form_or_404(form_id: uuid.UUID, db: Session) -> Form:
    try:
        return form_service.get_form_for_filling(db, form_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")


def _tree_node(node: QuestionNode) -> QuestionTreeNode:
    return QuestionTreeNode(
        question=node.question,
        children={option_id: [_tree_node(c) for c in nodes] for option_id, nodes in node.children.items()},
    )


def _export_filename(form: Form, extension: str) -> str:
    return f"form_{form.name.replace(' ', '_')}_{form.id}.{extension}"


# ---------------------------------------------------------------------------
# Form CRUD
# ---------------------------------------------------------------------------


@router.get("", response_model=list[FormOut])
def list_forms(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return form_service.list_forms(db, principal)


@router.post("", response_model=FormOut, status_code=201)
def create_form(
    payload: FormCreate,
    principal: Principal = Depends(get_admin_principal),
    db: Session = Depends(get_db),
):
    try:
        return form_service.create_form(
            db,
            principal,
            name=payload.name,
            description=payload.description,
            questions=payload.questions,
        )
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/{form_id}", response_model=FormDetailOut)
def get_form(
    form_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    form = _get_form_or_404(form_id, db, principal)
    detail = FormDetailOut.model_validate(form)
    detail.response_count = form_service.count_responses(db, form.id)
    return detail


@router.put("/{form_id}", response_model=FormOut)
def update_form(
    form_id: uuid.UUID,
    payload: FormUpdate,
    principal: Principal = Depends(get_admin_principal),
    db: Session = Depends(get_db),
):
    try:
        return form_service.update_form(
            db,
            form_id,
            name=payload.name,
            description=payload.description,
            questions=payload.questions,
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/{form_id}")
def delete_form(
    form_id: uuid.UUID,
    principal: Principal = Depends(get_admin_principal),
    db: Session = Depends(get_db),
):
    try:
        removed = form_service.delete_form(db, form_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")
    return {"message": "Form deleted", "deletedResponses": removed}


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------


@router.post("/{form_id}/visible", response_model=VisibilityOut)
def get_visible_questions(
    form_id: uuid.UUID,
    payload: VisibilityRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Questions to display for the answers entered so far."""
    form = _get_fillable_form_or_404(form_id, db)
    questions = form_service.load_questions(form)
    return VisibilityOut(questions=visible_questions(questions, payload.answers))


@router.get("/{form_id}/tree", response_model=QuestionTreeOut)
def get_question_tree(
    form_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """The form's questions nested under the options that reveal them."""
    form = _get_fillable_form_or_404(form_id, db)
    try:
        index = QuestionIndex(form_service.load_questions(form))
    except HierarchyError as exc:
        raise HTTPException(status_code=409, detail=f"Stored questions are inconsistent: {exc}")
    return QuestionTreeOut(roots=[_tree_node(node) for node in build_forest(index)])


# ---------------------------------------------------------------------------
# Responses of a form
# ---------------------------------------------------------------------------


@router.get("/{form_id}/responses", response_model=list[ResponseOut])
def list_form_responses(
    form_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    _get_fillable_form_or_404(form_id, db)
    return response_service.list_for_form(db, form_id)


@router.get("/{form_id}/responses/export")
def export_form_responses(
    form_id: uuid.UUID,
    file_format: Literal["xlsx", "csv"] = Query("xlsx", alias="format"),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Download every response of a form as an XLSX workbook or CSV file."""
    form = _get_fillable_form_or_404(form_id, db)
    # Oldest first, as a spreadsheet reads top to bottom
    responses = list(reversed(response_service.list_for_form(db, form_id)))

    if file_format == "csv":
        content = spreadsheet.to_csv(form, responses)
        media_type = "text/csv"
    else:
        content = spreadsheet.to_xlsx(form, responses)
        media_type = XLSX_MEDIA_TYPE

    filename = _export_filename(form, file_format)
    return StreamingResponse(
        iter([content]),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{form_id}/responses/import", response_model=ImportResult)
async def import_form_responses(
    form_id: uuid.UUID,
    file: UploadFile = File(...),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Import an XLSX workbook in export layout as offline responses."""
    form = _get_fillable_form_or_404(form_id, db)

    content = await file.read()
    if len(content) > settings.MAX_IMPORT_FILE_SIZE_MB * 1024 * 1024:
        raise HTTPException(
            status_code=400,
            detail=f"File exceeds {settings.MAX_IMPORT_FILE_SIZE_MB} MB limit",
        )

    try:
        entries = spreadsheet.read_xlsx(form, content)
        imported = response_service.import_responses(db, principal, entries)
    except (spreadsheet.SpreadsheetError, InvalidPayloadError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ImportResult(imported=imported)
