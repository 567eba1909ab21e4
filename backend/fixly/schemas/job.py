from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from fixly.services.job_lifecycle import (
    Application,
    Budget,
    Cancellation,
    Comment,
    Completion,
    Dispute,
    DisputeStatus,
    Duration,
    Location,
    MaterialItem,
    Message,
    Progress,
    RatingCategories,
)


class JobCreate(BaseModel):
    title: str
    description: str
    skills_required: list[str]
    budget: Budget
    location: Location
    deadline: datetime
    urgency: Literal["asap", "flexible", "scheduled"] = "flexible"
    job_type: Literal["one-time", "recurring"] = "one-time"
    experience_level: Literal["beginner", "intermediate", "expert"] = "intermediate"
    scheduled_date: datetime | None = None
    estimated_duration: Duration | None = None
    featured: bool = False


class JobDetailsUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    skills_required: list[str] | None = None
    budget: Budget | None = None
    deadline: datetime | None = None
    urgency: Literal["asap", "flexible", "scheduled"] | None = None
    scheduled_date: datetime | None = None


class JobActionRequest(BaseModel):
    action: Literal["update_details", "accept_application", "reject_application", "cancel_job"]
    data: dict[str, Any] = {}


class JobResponse(BaseModel):
    id: str
    title: str
    description: str
    skills_required: list[str]
    experience_level: str
    job_type: str
    urgency: str
    scheduled_date: datetime | None
    estimated_duration: Duration | None
    budget: Budget
    location: Location
    deadline: datetime
    status: str
    created_by: str
    assigned_to: str | None
    featured: bool
    featured_until: datetime | None
    views: int
    created_at: datetime
    updated_at: datetime
    application_count: int = 0
    time_remaining: str = ""
    is_urgent: bool = False


class JobDetailResponse(JobResponse):
    comments: list[Comment] = []
    progress: Progress
    completion: Completion
    dispute: Dispute
    cancellation: Cancellation
    has_applied: bool = False
    can_apply: bool = False
    # Full list for the creator, the caller's own application for a fixer.
    applications: list[Application] | None = None
    my_application: Application | None = None


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int
    page: int
    per_page: int


class ApplicationCreate(BaseModel):
    proposed_amount: float = Field(gt=0)
    time_estimate: Duration | None = None
    materials_list: list[MaterialItem] = []
    cover_letter: str = Field("", max_length=1000)


class ApplicationListResponse(BaseModel):
    applications: list[Application]
    total_applications: int


class MarkDoneRequest(BaseModel):
    notes: str = ""
    after_images: list[str] = []


class ConfirmRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: str = Field("", max_length=1000)


class RatingRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: str = ""
    categories: RatingCategories | None = None


class CancelRequest(BaseModel):
    reason: str = ""
    refund_amount: float | None = None


class CommentCreate(BaseModel):
    message: str


class MessageCreate(BaseModel):
    message: str


class MessageListResponse(BaseModel):
    messages: list[Message]
    marked_read: int


class DisputeCreate(BaseModel):
    reason: str
    description: str
    evidence: list[str] = []


class DisputeUpdate(BaseModel):
    status: DisputeStatus
    resolution: str = ""


class MilestoneCreate(BaseModel):
    title: str
    description: str = ""


class WorkImageCreate(BaseModel):
    url: str
    caption: str = ""
