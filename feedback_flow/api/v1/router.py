from fastapi import APIRouter

from feedback_flow.api.v1.endpoints import auth, forms

api_v1_router = APIRouter()

api_v1_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_v1_router.include_router(forms.router, prefix="/forms", tags=["forms"])
