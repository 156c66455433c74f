from formbuilder.models.form import Form
from formbuilder.models.form_response import FormResponse
from formbuilder.models.user import User

__all__ = [
    "Form",
    "FormResponse",
    "User",
]
