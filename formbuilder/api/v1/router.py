from fastapi import APIRouter

from formbuilder.api.v1.endpoints import (
    auth,
    forms,
    responses,
)

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(forms.router, prefix="/forms", tags=["forms"])
api_router.include_router(responses.router, prefix="/responses", tags=["responses"])
