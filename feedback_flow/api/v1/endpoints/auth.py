import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from feedback_flow.core.auth import get_current_user
from feedback_flow.core.database import get_db
from feedback_flow.models.user import User
from feedback_flow.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserProfileResponse,
)
from feedback_flow.services.auth import (
    create_access_token,
    create_user,
    get_user_by_email,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=UserProfileResponse, status_code=201)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    if get_user_by_email(db, body.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered",
        )
    user = create_user(
        db,
        display_name=body.display_name,
        email=body.email,
        password=body.password,
    )
    logger.info("Registered user %s", user.id)
    return user


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = get_user_by_email(db, body.email)
    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    return TokenResponse(access_token=create_access_token(user.id))


@router.get("/me", response_model=UserProfileResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user
