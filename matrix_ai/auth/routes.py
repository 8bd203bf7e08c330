from datetime import datetime, timezone
from fastapi import APIRouter, Depends, status
from sqlalchemy import or_
from sqlalchemy.orm import Session
import logging

from matrix_ai.auth.gate import Principal, access_gate, get_current_principal
from matrix_ai.auth.schemas import ChangePasswordInput, LoginInput, RegisterInput, TokenResponse, UserOut
from matrix_ai.auth.security import hash_password, verify_password
from matrix_ai.core.errors import Forbidden, NotFoundError, Unauthenticated, ValidationError
from matrix_ai.db.models.common import User, UserRole
from matrix_ai.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register_route(payload: RegisterInput, db: Session = Depends(get_db)):
    existing = db.query(User).filter(
        or_(User.username == payload.username, User.email == payload.email)
    ).first()
    if existing:
        raise ValidationError("A user with this username or email already exists")

    user = User(
        username=payload.username,
        email=payload.email,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=UserRole.USER,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User registered: {user.username}")

    return TokenResponse(
        message="User registered successfully",
        token=access_gate.create_access_token(user),
        user=UserOut.from_user(user),
    )

@router.post("/login", response_model=TokenResponse)
def login_route(payload: LoginInput, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.username == payload.username).first()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise Unauthenticated("Invalid username or password")
    if not user.is_active:
        raise Forbidden("Account is deactivated")

    user.last_login = datetime.now(timezone.utc)
    db.commit()
    db.refresh(user)

    return TokenResponse(
        message="Login successful",
        token=access_gate.create_access_token(user),
        user=UserOut.from_user(user),
    )

@router.get("/me", response_model=UserOut)
def me_route(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    user = db.get(User, principal.id)
    if user is None:
        raise NotFoundError("User not found")
    return UserOut.from_user(user)

@router.put("/change-password")
def change_password_route(
    payload: ChangePasswordInput,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    user = db.get(User, principal.id)
    if user is None:
        raise NotFoundError("User not found")
    if not verify_password(payload.current_password, user.password_hash):
        raise Unauthenticated("Current password is incorrect")

    user.password_hash = hash_password(payload.new_password)
    db.commit()
    logger.info(f"Password changed for {user.username}")
    return {"message": "Password updated successfully"}

@router.get("/users/{user_id}", response_model=UserOut)
def get_user_route(user_id: str, principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    """Profile lookup: the account owner or an admin."""
    if not access_gate.authorize_owner_or_admin(principal, user_id):
        raise Forbidden("Access denied. You are not the owner of this resource.")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return UserOut.from_user(user)
