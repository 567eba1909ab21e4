"""
Job aggregate and its lifecycle rules.

A job moves open -> in_progress -> completed, or sideways into disputed or
cancelled. Every transition is a method on ``Job``; route handlers never
assign ``status`` themselves. Guarded methods return an ``Outcome`` whose
``failure`` says why a call was refused. Field constraint violations raise
``JobValidationError`` instead.
"""
import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
)

from fixly.config import settings
from fixly.utils.timestamps import as_utc, local_midnight, utcnow

logger = logging.getLogger("fixly.lifecycle")

UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
DurationUnit = Literal["hours", "days", "weeks"]

EDITABLE_FIELDS = ("title", "description", "budget", "deadline", "urgency",
                   "scheduled_date", "skills_required")


class JobStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class DisputeStatus(str, enum.Enum):
    PENDING = "pending"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    CLOSED = "closed"


class JobValidationError(ValueError):
    pass


class Failure(str, enum.Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_STATE = "invalid_state"


@dataclass(frozen=True)
class Outcome:
    value: Any = None
    failure: Failure | None = None
    reason: str = ""

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(value=value)

    @classmethod
    def fail(cls, failure: Failure, reason: str) -> "Outcome":
        return cls(failure=failure, reason=reason)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def __bool__(self) -> bool:
        return self.ok


def _new_id() -> str:
    return str(uuid.uuid4())


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err["loc"])
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def _build(model_cls, **values):
    try:
        return model_cls(**values)
    except ValidationError as exc:
        raise JobValidationError(_first_error(exc)) from exc


def _require_future(value: datetime | None, now: datetime, label: str):
    if value is not None and as_utc(value) <= now:
        raise JobValidationError(f"{label} must be in the future")


# --------------------------------------------------------------------------
# Embedded documents
# --------------------------------------------------------------------------

class _Embedded(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class Budget(_Embedded):
    type: Literal["fixed", "negotiable", "hourly"] = "negotiable"
    amount: float | None = Field(None, ge=0, le=1_000_000)
    currency: Literal["INR", "USD"] = "INR"
    materials_included: bool = False


class Location(_Embedded):
    address: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=50)
    state: str = Field(min_length=1, max_length=50)
    pincode: str | None = Field(None, pattern=r"^[0-9]{6}$")
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)


class Duration(_Embedded):
    value: int = Field(ge=1, le=365)
    unit: DurationUnit = "hours"


class MaterialItem(_Embedded):
    item: str = Field(min_length=1, max_length=100)
    quantity: int = Field(1, ge=1)
    estimated_cost: float = Field(0, ge=0, le=100_000)


class Application(_Embedded):
    id: str = Field(default_factory=_new_id)
    fixer: str
    proposed_amount: float = Field(ge=0, le=1_000_000)
    time_estimate: Duration | None = None
    materials_list: list[MaterialItem] = []
    cover_letter: str = Field("", max_length=1000)
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: UtcDatetime = Field(default_factory=utcnow)


class Message(_Embedded):
    id: str = Field(default_factory=_new_id)
    sender: str
    message: str = Field(min_length=1, max_length=1000)
    sent_at: UtcDatetime = Field(default_factory=utcnow)
    read: bool = False


class Reply(_Embedded):
    id: str = Field(default_factory=_new_id)
    author: str
    message: str = Field(min_length=1, max_length=500)
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Comment(_Embedded):
    id: str = Field(default_factory=_new_id)
    author: str
    message: str = Field(min_length=1, max_length=500)
    replies: list[Reply] = []
    created_at: UtcDatetime = Field(default_factory=utcnow)


class Milestone(_Embedded):
    id: str = Field(default_factory=_new_id)
    title: str = Field(min_length=1, max_length=100)
    description: str = Field("", max_length=500)
    completed: bool = False
    completed_at: UtcDatetime | None = None


class WorkImage(_Embedded):
    url: str = Field(pattern=r"(?i)^https?://.+\.(jpg|jpeg|png|gif|webp)$")
    caption: str = Field("", max_length=200)
    uploaded_at: UtcDatetime = Field(default_factory=utcnow)


class Progress(_Embedded):
    started_at: UtcDatetime | None = None
    completed_at: UtcDatetime | None = None
    marked_done_at: UtcDatetime | None = None
    confirmed_at: UtcDatetime | None = None
    milestones: list[Milestone] = []
    work_images: list[WorkImage] = []


class RatingCategories(_Embedded):
    communication: int | None = Field(None, ge=1, le=5)
    quality: int | None = Field(None, ge=1, le=5)
    timeliness: int | None = Field(None, ge=1, le=5)
    professionalism: int | None = Field(None, ge=1, le=5)


class PartyRating(_Embedded):
    rating: int = Field(ge=1, le=5)
    review: str = Field("", max_length=500)
    categories: RatingCategories = Field(default_factory=RatingCategories)
    rated_by: str
    rated_at: UtcDatetime = Field(default_factory=utcnow)


class Completion(_Embedded):
    marked_done_by: str | None = None
    marked_done_at: UtcDatetime | None = None
    completion_notes: str = Field("", max_length=1000)
    before_images: list[str] = []
    after_images: list[str] = []
    confirmed_by: str | None = None
    confirmed_at: UtcDatetime | None = None
    rating: int | None = Field(None, ge=1, le=5)
    review: str = Field("", max_length=1000)
    # Hirer's review of the fixer, and the fixer's review of the hirer.
    fixer_rating: PartyRating | None = None
    hirer_rating: PartyRating | None = None


class Dispute(_Embedded):
    raised: bool = False
    raised_by: str | None = None
    reason: str = Field("", max_length=200)
    description: str = Field("", max_length=1000)
    evidence: list[str] = []
    status: DisputeStatus = DisputeStatus.PENDING
    resolution: str = Field("", max_length=1000)
    resolved_by: str | None = None
    resolved_at: UtcDatetime | None = None
    created_at: UtcDatetime | None = None


class Cancellation(_Embedded):
    cancelled: bool = False
    cancelled_by: str | None = None
    reason: str = Field("", max_length=500)
    cancelled_at: UtcDatetime | None = None
    refund_amount: float | None = Field(None, ge=0)


class ViewRecord(BaseModel):
    user: str
    viewed_at: UtcDatetime


# --------------------------------------------------------------------------
# Aggregate root
# --------------------------------------------------------------------------

class Job(_Embedded):
    id: str = Field(default_factory=_new_id)
    title: str = Field(min_length=10, max_length=100)
    description: str = Field(min_length=30, max_length=2000)
    skills_required: list[str] = Field(min_length=1)
    experience_level: Literal["beginner", "intermediate", "expert"] = "intermediate"
    job_type: Literal["one-time", "recurring"] = "one-time"
    urgency: Literal["asap", "flexible", "scheduled"] = "flexible"
    scheduled_date: UtcDatetime | None = None
    estimated_duration: Duration | None = None
    budget: Budget = Field(default_factory=Budget)
    location: Location
    deadline: UtcDatetime

    status: JobStatus = JobStatus.OPEN
    created_by: str
    assigned_to: str | None = None

    applications: list[Application] = []
    messages: list[Message] = []
    comments: list[Comment] = []
    progress: Progress = Field(default_factory=Progress)
    completion: Completion = Field(default_factory=Completion)
    dispute: Dispute = Field(default_factory=Dispute)
    cancellation: Cancellation = Field(default_factory=Cancellation)

    featured: bool = False
    featured_until: UtcDatetime | None = None
    views: int = Field(0, ge=0)
    viewed_by: list[ViewRecord] = []

    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    # Revision the aggregate was loaded at; 0 until first stored.
    _version: int = PrivateAttr(0)

    @field_validator("skills_required")
    @classmethod
    def _check_skill_length(cls, skills: list[str]) -> list[str]:
        for skill in skills:
            if not 2 <= len(skill.strip()) <= 50:
                raise ValueError("Skill must be between 2 and 50 characters")
            if "," in skill:
                raise ValueError("Skill cannot contain a comma")
        return skills

    # -- construction / persistence ------------------------------------

    @classmethod
    def post(cls, created_by: str, now: datetime | None = None, **fields) -> "Job":
        """Build a new open job, checking the dates that must lie ahead."""
        now = now or utcnow()
        _require_future(fields.get("deadline"), now, "Deadline")
        _require_future(fields.get("scheduled_date"), now, "Scheduled date")
        job = _build(cls, created_by=created_by, created_at=now, updated_at=now, **fields)
        job.prepare_for_save(now)
        return job

    @classmethod
    def from_document(cls, document: str, version: int = 0) -> "Job":
        job = cls.model_validate_json(document)
        job._version = version
        return job

    def to_document(self) -> str:
        return self.model_dump_json()

    @property
    def version(self) -> int:
        return self._version

    def prepare_for_save(self, now: datetime | None = None):
        now = now or utcnow()
        self.skills_required = [skill.lower().strip() for skill in self.skills_required]
        if self.featured_until is not None and self.featured_until < now:
            self.featured = False
        if self.budget.type in ("fixed", "hourly") and not self.budget.amount:
            raise JobValidationError("Budget amount is required for fixed and hourly pricing")
        try:
            type(self).model_validate(self.model_dump())
        except ValidationError as exc:
            raise JobValidationError(_first_error(exc)) from exc
        self.updated_at = now

    # -- derived values --------------------------------------------------

    @property
    def parties(self) -> set[str]:
        return {p for p in (self.created_by, self.assigned_to) if p}

    @property
    def application_count(self) -> int:
        return sum(1 for a in self.applications if a.status != ApplicationStatus.WITHDRAWN)

    def time_remaining(self, now: datetime | None = None) -> str:
        diff = self.deadline - (now or utcnow())
        if diff <= timedelta(0):
            return "Expired"
        if diff.days > 0:
            return f"{diff.days} days"
        return f"{diff.seconds // 3600} hours"

    def is_urgent(self, now: datetime | None = None) -> bool:
        return self.deadline - (now or utcnow()) <= timedelta(hours=24)

    # -- applications ----------------------------------------------------

    def can_apply(self, user_id: str, now: datetime | None = None) -> bool:
        if self.status != JobStatus.OPEN:
            return False
        if user_id == self.created_by:
            return False
        if self.deadline < (now or utcnow()):
            return False
        return not any(
            a.fixer == user_id and a.status != ApplicationStatus.WITHDRAWN
            for a in self.applications
        )

    def get_application_by_fixer(self, fixer_id: str) -> Application | None:
        for application in reversed(self.applications):
            if application.fixer == fixer_id:
                return application
        return None

    def _find_application(self, application_id: str) -> Application | None:
        return next((a for a in self.applications if a.id == application_id), None)

    def apply(self, fixer_id: str, proposed_amount: float, time_estimate: dict | None = None,
              materials_list: list[dict] | None = None, cover_letter: str = "",
              now: datetime | None = None) -> Outcome:
        now = now or utcnow()
        if fixer_id == self.created_by:
            return Outcome.fail(Failure.UNAUTHORIZED, "You cannot apply to your own job")
        if not self.can_apply(fixer_id, now):
            return Outcome.fail(Failure.INVALID_STATE, "You cannot apply to this job")
        application = _build(
            Application,
            fixer=fixer_id,
            proposed_amount=proposed_amount,
            time_estimate=time_estimate,
            materials_list=materials_list or [],
            cover_letter=cover_letter or "",
            applied_at=now,
        )
        self.applications.append(application)
        return Outcome.success(application)

    def withdraw_application(self, fixer_id: str) -> Outcome:
        for application in reversed(self.applications):
            if application.fixer == fixer_id and application.status == ApplicationStatus.PENDING:
                application.status = ApplicationStatus.WITHDRAWN
                return Outcome.success(application)
        return Outcome.fail(Failure.NOT_FOUND, "No pending application found")

    def accept_application(self, application_id: str, now: datetime | None = None) -> Outcome:
        application = self._find_application(application_id)
        if application is None:
            return Outcome.fail(Failure.NOT_FOUND, "Application not found")
        if self.status != JobStatus.OPEN:
            return Outcome.fail(Failure.INVALID_STATE, "Job is not open for applications")
        if application.status != ApplicationStatus.PENDING:
            return Outcome.fail(Failure.INVALID_STATE, "Only pending applications can be accepted")

        application.status = ApplicationStatus.ACCEPTED
        for other in self.applications:
            if other.id != application.id:
                other.status = ApplicationStatus.REJECTED
        self.assigned_to = application.fixer
        self.status = JobStatus.IN_PROGRESS
        self.progress.started_at = now or utcnow()
        logger.info("Job %s assigned to fixer %s", self.id, application.fixer)
        return Outcome.success(application)

    def reject_application(self, application_id: str) -> Outcome:
        application = self._find_application(application_id)
        if application is None:
            return Outcome.fail(Failure.NOT_FOUND, "Application not found")
        if application.status != ApplicationStatus.PENDING:
            return Outcome.fail(Failure.INVALID_STATE, "Only pending applications can be rejected")
        application.status = ApplicationStatus.REJECTED
        return Outcome.success(application)

    # -- completion ------------------------------------------------------

    def mark_done(self, fixer_id: str, notes: str = "", after_images: list[str] | None = None,
                  now: datetime | None = None) -> Outcome:
        if self.assigned_to is None or self.assigned_to != fixer_id:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only the assigned fixer can mark this job done")
        if self.status != JobStatus.IN_PROGRESS:
            return Outcome.fail(Failure.INVALID_STATE, "Job must be in progress to mark as completed")

        now = now or utcnow()
        self.status = JobStatus.COMPLETED
        # Both stamps are kept; older clients read the progress one.
        self.progress.completed_at = now
        self.progress.marked_done_at = now
        self.completion.marked_done_by = fixer_id
        self.completion.marked_done_at = now
        self.completion.completion_notes = notes or ""
        self.completion.after_images = list(after_images or [])
        logger.info("Job %s marked done by %s", self.id, fixer_id)
        return Outcome.success()

    def confirm_completion(self, hirer_id: str, rating: int, review: str = "",
                           now: datetime | None = None) -> Outcome:
        if hirer_id != self.created_by:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only the job creator can confirm completion")
        if self.status != JobStatus.COMPLETED:
            return Outcome.fail(Failure.INVALID_STATE, "Job must be completed before confirmation")
        if self.completion.confirmed_at is not None:
            return Outcome.fail(Failure.INVALID_STATE, "Completion already confirmed")
        if not 1 <= rating <= 5:
            raise JobValidationError("Rating must be between 1 and 5")

        now = now or utcnow()
        self.completion.confirmed_by = hirer_id
        self.completion.confirmed_at = now
        self.completion.rating = rating
        self.completion.review = review or ""
        self.progress.confirmed_at = now
        return Outcome.success()

    def rate(self, user_id: str, rating: int, review: str = "", categories: dict | None = None,
             now: datetime | None = None) -> Outcome:
        if user_id not in self.parties:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only job participants can rate")
        if self.status != JobStatus.COMPLETED:
            return Outcome.fail(Failure.INVALID_STATE, "Job must be completed before rating")

        field = "fixer_rating" if user_id == self.created_by else "hirer_rating"
        if getattr(self.completion, field) is not None:
            return Outcome.fail(Failure.INVALID_STATE, "You have already rated for this job")
        party_rating = _build(
            PartyRating,
            rating=rating,
            review=review or "",
            categories=categories or {},
            rated_by=user_id,
            rated_at=now or utcnow(),
        )
        setattr(self.completion, field, party_rating)
        return Outcome.success(party_rating)

    def rated_party(self, user_id: str) -> str | None:
        """The user on the other side of a rating written by ``user_id``."""
        if user_id == self.created_by:
            return self.assigned_to
        if user_id == self.assigned_to:
            return self.created_by
        return None

    # -- cancellation / disputes ----------------------------------------

    def cancel(self, user_id: str, reason: str = "", refund_amount: float | None = None,
               now: datetime | None = None) -> Outcome:
        if user_id not in self.parties:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only job participants can cancel")
        if self.status not in (JobStatus.OPEN, JobStatus.IN_PROGRESS):
            return Outcome.fail(Failure.INVALID_STATE, "Job cannot be cancelled in current status")

        self.cancellation = _build(
            Cancellation,
            cancelled=True,
            cancelled_by=user_id,
            reason=reason or "No reason provided",
            cancelled_at=now or utcnow(),
            refund_amount=refund_amount,
        )
        self.status = JobStatus.CANCELLED
        logger.info("Job %s cancelled by %s", self.id, user_id)
        return Outcome.success()

    def raise_dispute(self, user_id: str, reason: str, description: str,
                      evidence: list[str] | None = None, now: datetime | None = None) -> Outcome:
        if user_id not in self.parties:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only involved parties can raise a dispute")
        if self.dispute.raised:
            return Outcome.fail(Failure.INVALID_STATE, "A dispute has already been raised")

        self.dispute = _build(
            Dispute,
            raised=True,
            raised_by=user_id,
            reason=reason,
            description=description,
            evidence=list(evidence or []),
            created_at=now or utcnow(),
        )
        self.status = JobStatus.DISPUTED
        logger.info("Dispute raised on job %s by %s", self.id, user_id)
        return Outcome.success(self.dispute)

    def update_dispute(self, resolver_id: str, status: DisputeStatus, resolution: str = "",
                       now: datetime | None = None) -> Outcome:
        if not self.dispute.raised:
            return Outcome.fail(Failure.INVALID_STATE, "No dispute has been raised")
        if self.dispute.status in (DisputeStatus.RESOLVED, DisputeStatus.CLOSED):
            return Outcome.fail(Failure.INVALID_STATE, "Dispute is already settled")
        if len(resolution or "") > 1000:
            raise JobValidationError("Dispute resolution cannot exceed 1000 characters")

        self.dispute.status = DisputeStatus(status)
        if resolution:
            self.dispute.resolution = resolution
        if self.dispute.status in (DisputeStatus.RESOLVED, DisputeStatus.CLOSED):
            self.dispute.resolved_by = resolver_id
            self.dispute.resolved_at = now or utcnow()
        return Outcome.success(self.dispute)

    # -- conversation ----------------------------------------------------

    def add_comment(self, author_id: str, message: str, now: datetime | None = None) -> Outcome:
        comment = _build(Comment, author=author_id, message=message, created_at=now or utcnow())
        self.comments.append(comment)
        return Outcome.success(comment)

    def add_reply(self, comment_id: str, author_id: str, message: str,
                  now: datetime | None = None) -> Outcome:
        comment = next((c for c in self.comments if c.id == comment_id), None)
        if comment is None:
            return Outcome.fail(Failure.NOT_FOUND, "Comment not found")
        reply = _build(Reply, author=author_id, message=message, created_at=now or utcnow())
        comment.replies.append(reply)
        return Outcome.success(reply)

    def add_message(self, sender_id: str, message: str, now: datetime | None = None) -> Outcome:
        if sender_id not in self.parties:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only job participants can send messages")
        if self.assigned_to is None:
            return Outcome.fail(Failure.INVALID_STATE, "Messaging opens once a fixer is assigned")
        msg = _build(Message, sender=sender_id, message=message, sent_at=now or utcnow())
        self.messages.append(msg)
        return Outcome.success(msg)

    def mark_messages_read(self, reader_id: str) -> int:
        count = 0
        for msg in self.messages:
            if msg.sender != reader_id and not msg.read:
                msg.read = True
                count += 1
        return count

    # -- progress --------------------------------------------------------

    def add_milestone(self, user_id: str, title: str, description: str = "") -> Outcome:
        if user_id not in self.parties:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only job participants can add milestones")
        milestone = _build(Milestone, title=title, description=description or "")
        self.progress.milestones.append(milestone)
        return Outcome.success(milestone)

    def complete_milestone(self, user_id: str, milestone_id: str,
                           now: datetime | None = None) -> Outcome:
        if user_id not in self.parties:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only job participants can update milestones")
        milestone = next((m for m in self.progress.milestones if m.id == milestone_id), None)
        if milestone is None:
            return Outcome.fail(Failure.NOT_FOUND, "Milestone not found")
        if milestone.completed:
            return Outcome.fail(Failure.INVALID_STATE, "Milestone already completed")
        milestone.completed = True
        milestone.completed_at = now or utcnow()
        return Outcome.success(milestone)

    def add_work_image(self, fixer_id: str, url: str, caption: str = "",
                       now: datetime | None = None) -> Outcome:
        if self.assigned_to is None or fixer_id != self.assigned_to:
            return Outcome.fail(Failure.UNAUTHORIZED, "Only the assigned fixer can add work images")
        if self.status != JobStatus.IN_PROGRESS:
            return Outcome.fail(Failure.INVALID_STATE, "Work images can only be added while in progress")
        image = _build(WorkImage, url=url, caption=caption or "", uploaded_at=now or utcnow())
        self.progress.work_images.append(image)
        return Outcome.success(image)

    # -- views / edits ---------------------------------------------------

    def add_view(self, user_id: str, now: datetime | None = None) -> bool:
        if user_id == self.created_by:
            return False
        now = now or utcnow()
        today = local_midnight(now)
        if any(v.user == user_id and v.viewed_at >= today for v in self.viewed_by):
            return False

        self.views += 1
        self.viewed_by.append(ViewRecord(user=user_id, viewed_at=now))
        limit = settings.view_log_limit
        if len(self.viewed_by) > limit:
            self.viewed_by = self.viewed_by[-limit:]
        return True

    def update_details(self, data: dict, now: datetime | None = None) -> Outcome:
        if self.status != JobStatus.OPEN:
            return Outcome.fail(Failure.INVALID_STATE, "Only open jobs can be edited")

        now = now or utcnow()
        updates = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
        _require_future(updates.get("deadline"), now, "Deadline")
        _require_future(updates.get("scheduled_date"), now, "Scheduled date")

        merged = self.model_dump()
        merged.update(updates)
        try:
            validated = type(self).model_validate(merged)
        except ValidationError as exc:
            raise JobValidationError(_first_error(exc)) from exc
        for key in updates:
            setattr(self, key, getattr(validated, key))
        return Outcome.success(sorted(updates))
