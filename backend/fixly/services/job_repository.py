import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from fixly.models.job import JobRecord
from fixly.services.job_lifecycle import Job, JobStatus
from fixly.utils.timestamps import to_iso, utcnow

logger = logging.getLogger("fixly.jobs")


class ConcurrentUpdateError(Exception):
    """The job changed after it was loaded; the write was not applied."""


SORT_PRESETS = {
    "newest": (JobRecord.created_at.desc(),),
    "deadline": (JobRecord.deadline.asc(),),
    "budget_high": (JobRecord.budget_amount.desc().nulls_last(), JobRecord.featured.desc()),
    "budget_low": (JobRecord.budget_amount.asc().nulls_last(), JobRecord.featured.desc()),
    "popular": (JobRecord.views.desc(),),
}
DEFAULT_SORT = (JobRecord.featured.desc(), JobRecord.created_at.desc())


@dataclass
class JobFilters:
    city: str | None = None
    state: str | None = None
    skills: list[str] = field(default_factory=list)
    budget_min: float | None = None
    budget_max: float | None = None
    urgency: str | None = None
    job_type: str | None = None
    experience_level: str | None = None
    budget_type: str | None = None
    search: str | None = None
    sort_by: str | None = None

    def cache_key(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)


def _columns(job: Job) -> dict:
    return {
        "title": job.title,
        "description": job.description,
        "status": job.status.value,
        "created_by": job.created_by,
        "assigned_to": job.assigned_to,
        "city": job.location.city,
        "state": job.location.state,
        "skills": "," + ",".join(job.skills_required) + ",",
        "urgency": job.urgency,
        "job_type": job.job_type,
        "experience_level": job.experience_level,
        "budget_type": job.budget.type,
        "budget_amount": job.budget.amount,
        "featured": job.featured,
        "featured_until": to_iso(job.featured_until),
        "deadline": to_iso(job.deadline),
        "views": job.views,
        "document": job.to_document(),
        "updated_at": to_iso(job.updated_at),
    }


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def to_job(record: JobRecord) -> Job:
    return Job.from_document(record.document, version=record.version)


def create(db: Session, job: Job, now: datetime | None = None) -> Job:
    job.prepare_for_save(now)
    record = JobRecord(id=job.id, version=1, created_at=to_iso(job.created_at), **_columns(job))
    db.add(record)
    db.commit()
    job._version = 1
    logger.info("Job %s posted by %s", job.id, job.created_by)
    return job


def get(db: Session, job_id: str) -> Job | None:
    record = db.query(JobRecord).filter(JobRecord.id == job_id).first()
    if not record:
        return None
    return to_job(record)


def save(db: Session, job: Job, now: datetime | None = None) -> Job:
    """Write ``job`` back, provided nobody else saved it since it was loaded."""
    job.prepare_for_save(now)
    values = _columns(job)
    values["version"] = job.version + 1
    updated = (
        db.query(JobRecord)
        .filter(JobRecord.id == job.id, JobRecord.version == job.version)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        logger.warning("Stale write rejected for job %s at version %s", job.id, job.version)
        raise ConcurrentUpdateError(f"Job {job.id} was modified by another request")
    db.commit()
    job._version += 1
    return job


def find_with_filters(db: Session, filters: JobFilters) -> Query:
    query = db.query(JobRecord).filter(JobRecord.status == JobStatus.OPEN.value)

    if filters.city:
        query = query.filter(JobRecord.city.ilike(f"%{filters.city}%"))
    if filters.state:
        query = query.filter(JobRecord.state.ilike(f"%{filters.state}%"))
    if filters.skills:
        query = query.filter(or_(*[
            JobRecord.skills.like(f"%,{_escape_like(skill.lower().strip())},%", escape="\\")
            for skill in filters.skills
        ]))
    if filters.budget_min is not None:
        query = query.filter(JobRecord.budget_amount >= filters.budget_min)
    if filters.budget_max is not None:
        query = query.filter(JobRecord.budget_amount <= filters.budget_max)
    if filters.urgency:
        query = query.filter(JobRecord.urgency == filters.urgency)
    if filters.job_type:
        query = query.filter(JobRecord.job_type == filters.job_type)
    if filters.experience_level:
        query = query.filter(JobRecord.experience_level == filters.experience_level)
    if filters.budget_type:
        query = query.filter(JobRecord.budget_type == filters.budget_type)
    if filters.search:
        query = query.filter(
            JobRecord.title.ilike(f"%{filters.search}%")
            | JobRecord.description.ilike(f"%{filters.search}%")
        )

    order = SORT_PRESETS.get(filters.sort_by, SORT_PRESETS["newest"]) if filters.sort_by else DEFAULT_SORT
    return query.order_by(*order)


def find_urgent(db: Session, now: datetime | None = None) -> list[Job]:
    now = now or utcnow()
    records = (
        db.query(JobRecord)
        .filter(JobRecord.status == JobStatus.OPEN.value)
        .filter(JobRecord.deadline > to_iso(now))
        .filter(JobRecord.deadline <= to_iso(now + timedelta(hours=24)))
        .order_by(JobRecord.deadline.asc())
        .all()
    )
    return [to_job(r) for r in records]


def find_by_user(db: Session, user_id: str, role: str = "created", status: str | None = None) -> Query:
    column = JobRecord.created_by if role == "created" else JobRecord.assigned_to
    query = db.query(JobRecord).filter(column == user_id)
    if status:
        query = query.filter(JobRecord.status == status)
    return query.order_by(JobRecord.created_at.desc())
