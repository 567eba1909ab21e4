import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fixly.config import settings
from fixly.database import get_db
from fixly.dependencies import require_token
from fixly.models.user import User
from fixly.schemas.user import (
    AdminSetupRequest,
    LoginRequest,
    LoginResponse,
    SignupRequest,
    UserResponse,
    user_to_response,
)
from fixly.services.auth_service import DuplicateUserError, auth_service
from fixly.utils.security import MIN_PASSWORD_LENGTH

logger = logging.getLogger("fixly.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


def _register(db: Session, req: SignupRequest, role: str) -> User:
    if len(req.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    try:
        return auth_service.signup(
            db, req.username, req.name, req.email, req.password, role,
            city=req.city, skills=req.skills,
        )
    except DuplicateUserError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/signup", response_model=UserResponse, status_code=201)
async def signup(req: SignupRequest, db: Session = Depends(get_db)):
    return user_to_response(_register(db, req, req.role))


@router.post("/admin-setup", response_model=UserResponse, status_code=201)
async def admin_setup(req: AdminSetupRequest, db: Session = Depends(get_db)):
    # Only bootstraps the first admin account.
    expected = settings.admin_setup_key
    if not expected or not secrets.compare_digest(req.setup_key.encode(), expected.encode()):
        logger.warning("Rejected admin setup attempt for %s", req.username)
        raise HTTPException(status_code=401, detail="Invalid setup key")
    if db.query(User).filter(User.role == "admin").first():
        raise HTTPException(status_code=409, detail="Admin already configured")
    return user_to_response(_register(db, req, "admin"))


@router.post("/login", response_model=LoginResponse)
async def login(req: LoginRequest, db: Session = Depends(get_db)):
    result = auth_service.login(db, req.username, req.password)
    if result is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return LoginResponse(**result)


@router.post("/logout")
async def logout(token: str = Depends(require_token)):
    auth_service.logout(token)
    return {"message": "Logged out"}
