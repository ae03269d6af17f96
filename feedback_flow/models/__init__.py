from feedback_flow.models.form import Form
from feedback_flow.models.form_response import FormResponse
from feedback_flow.models.user import User

__all__ = [
    "Form",
    "FormResponse",
    "User",
]
