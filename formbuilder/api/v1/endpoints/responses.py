"""Response endpoints: submission, in-place edit, owner-scoped delete and offline batch import."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from formbuilder.core.auth import get_current_principal
from formbuilder.core.database import get_db
from formbuilder.schemas.responses import (
    ImportResult,
    ResponseCreate,
    ResponseCreated,
    ResponseImportEntry,
    ResponseOut,
    ResponseReplace,
)
from formbuilder.services import responses as response_service
from formbuilder.services.auth import Principal
from formbuilder.services.exceptions import InvalidPayloadError, NotFoundError

router = APIRouter()

NOT_FOUND_OR_NOT_AUTHORIZED = "Response not found or not authorized"


@router.post("", response_model=ResponseCreated, status_code=201)
def create_response(
    payload: ResponseCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        response = response_service.create_response(db, principal, payload)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ResponseCreated(id=response.id)


@router.post("/import", response_model=ImportResult)
def import_responses(
    payload: list[ResponseImportEntry],
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Import responses collected offline; the whole batch is written or none of it."""
    try:
        imported = response_service.import_responses(db, principal, payload)
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ImportResult(imported=imported)


@router.put("/{response_id}", response_model=ResponseOut)
def replace_response(
    response_id: uuid.UUID,
    payload: ResponseReplace,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        return response_service.replace_response(db, response_id, principal, payload)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=NOT_FOUND_OR_NOT_AUTHORIZED)
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/{response_id}")
def delete_response(
    response_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    try:
        response_service.delete_response(db, response_id, principal)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=NOT_FOUND_OR_NOT_AUTHORIZED)
    return {"message": "Response deleted"}
