import json
from typing import Literal

from pydantic import BaseModel, Field

from fixly.models.user import User


class SignupRequest(BaseModel):
    username: str = Field(min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str
    role: Literal["hirer", "fixer"]
    city: str | None = None
    skills: list[str] = []


class AdminSetupRequest(SignupRequest):
    role: Literal["hirer", "fixer", "admin"] = "admin"
    setup_key: str = ""


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    token: str
    expires_in_seconds: int
    user_id: str


class PublicProfile(BaseModel):
    id: str
    username: str
    name: str
    role: str
    city: str | None
    skills: list[str]
    rating_average: float
    rating_count: int
    jobs_posted: int
    jobs_completed: int


class UserResponse(PublicProfile):
    email: str
    total_earnings: float
    created_at: str


def user_to_response(user: User, public: bool = False) -> PublicProfile:
    data = {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "role": user.role,
        "city": user.city,
        "skills": json.loads(user.skills or "[]"),
        "rating_average": user.rating_average,
        "rating_count": user.rating_count,
        "jobs_posted": user.jobs_posted,
        "jobs_completed": user.jobs_completed,
    }
    if public:
        return PublicProfile(**data)
    return UserResponse(
        **data,
        email=user.email,
        total_earnings=user.total_earnings,
        created_at=user.created_at,
    )
