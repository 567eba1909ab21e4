from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from fixly.database import get_db
from fixly.models.user import User
from fixly.services.auth_service import auth_service


async def require_token(authorization: str = Header(...)) -> str:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return authorization[7:]


async def get_current_user(token: str = Depends(require_token), db: Session = Depends(get_db)) -> User:
    user_id = auth_service.user_id_for_token(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Session expired or invalid token")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.banned:
        raise HTTPException(status_code=403, detail="Account suspended")
    return user


def require_role(*roles: str):
    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail=f"Only {' or '.join(roles)} accounts can do this")
        return user
    return checker
