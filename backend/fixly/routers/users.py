from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fixly.database import get_db
from fixly.dependencies import get_current_user
from fixly.models.user import User
from fixly.schemas.user import PublicProfile, UserResponse, user_to_response

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return user_to_response(user)


@router.get("/{username}", response_model=PublicProfile)
async def get_profile(username: str, db: Session = Depends(get_db),
                      _: User = Depends(get_current_user)):
    user = db.query(User).filter(User.username == username.lower()).first()
    if not user or user.banned:
        raise HTTPException(status_code=404, detail="User not found")
    return user_to_response(user, public=True)
