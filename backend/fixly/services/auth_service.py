import json
import logging
import time
import uuid

from sqlalchemy.orm import Session

from fixly.config import settings
from fixly.models.user import User
from fixly.utils.security import generate_token, hash_password, password_needs_rehash, verify_password
from fixly.utils.timestamps import to_iso, utcnow

logger = logging.getLogger("fixly.auth")


class DuplicateUserError(Exception):
    pass


class AuthService:
    def __init__(self):
        self._active_tokens: dict[str, tuple[str, float]] = {}  # token -> (user_id, expires_at)

    def _cleanup_expired(self):
        now = time.time()
        self._active_tokens = {
            t: entry for t, entry in self._active_tokens.items() if entry[1] > now
        }

    def signup(self, db: Session, username: str, name: str, email: str, password: str,
               role: str, city: str | None = None, skills: list[str] | None = None) -> User:
        username = username.lower()
        email = email.lower()
        existing = db.query(User).filter((User.username == username) | (User.email == email)).first()
        if existing:
            field = "Username" if existing.username == username else "Email"
            raise DuplicateUserError(f"{field} already registered")

        user = User(
            id=str(uuid.uuid4()),
            username=username,
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
            city=city,
            skills=json.dumps([s.lower().strip() for s in skills or []]),
            created_at=to_iso(utcnow()),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Registered %s %s", role, username)
        return user

    def login(self, db: Session, username: str, password: str) -> dict | None:
        user = db.query(User).filter(User.username == username.lower()).first()
        if not user or not verify_password(user.password_hash, password):
            logger.info("Failed login for %s", username)
            return None

        if password_needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)
            db.commit()

        token = generate_token()
        self._active_tokens[token] = (user.id, time.time() + settings.token_ttl_seconds)
        return {"token": token, "expires_in_seconds": settings.token_ttl_seconds, "user_id": user.id}

    def logout(self, token: str):
        self._active_tokens.pop(token, None)

    def user_id_for_token(self, token: str) -> str | None:
        self._cleanup_expired()
        entry = self._active_tokens.get(token)
        return entry[0] if entry else None


auth_service = AuthService()
