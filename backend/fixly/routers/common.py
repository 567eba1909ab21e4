import logging
from datetime import datetime

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from fixly.database import get_db
from fixly.models.user import User
from fixly.schemas.job import JobDetailResponse, JobResponse
from fixly.services import job_repository
from fixly.services.job_lifecycle import ApplicationStatus, Failure, Job, Outcome
from fixly.utils.cache import browse_cache
from fixly.utils.timestamps import utcnow

logger = logging.getLogger("fixly.jobs")

BROWSE_CACHE_PREFIX = "browse:"

FAILURE_STATUS = {
    Failure.NOT_FOUND: 404,
    Failure.UNAUTHORIZED: 403,
    Failure.INVALID_STATE: 409,
}


async def get_job(job_id: str, db: Session = Depends(get_db)) -> Job:
    job = job_repository.get(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def raise_for_outcome(outcome: Outcome):
    if not outcome:
        logger.debug("Refused (%s): %s", outcome.failure.value, outcome.reason)
        raise HTTPException(status_code=FAILURE_STATUS[outcome.failure], detail=outcome.reason)
    return outcome.value


def persist(db: Session, job: Job) -> Job:
    job_repository.save(db, job)
    browse_cache.invalidate_prefix(BROWSE_CACHE_PREFIX)
    return job


def get_user(db: Session, user_id: str | None) -> User | None:
    if not user_id:
        return None
    return db.query(User).filter(User.id == user_id).first()


def job_to_response(job: Job, now: datetime | None = None) -> JobResponse:
    now = now or utcnow()
    return JobResponse(
        **job.model_dump(mode="json"),
        application_count=job.application_count,
        time_remaining=job.time_remaining(now),
        is_urgent=job.is_urgent(now),
    )


def job_to_detail(job: Job, viewer: User, now: datetime | None = None) -> JobDetailResponse:
    now = now or utcnow()
    data = job.model_dump(mode="json", exclude={"applications", "messages", "viewed_by"})
    own = job.get_application_by_fixer(viewer.id)
    is_creator = viewer.id == job.created_by
    return JobDetailResponse(
        **data,
        application_count=job.application_count,
        time_remaining=job.time_remaining(now),
        is_urgent=job.is_urgent(now),
        has_applied=own is not None and own.status != ApplicationStatus.WITHDRAWN,
        can_apply=viewer.role == "fixer" and job.can_apply(viewer.id, now),
        applications=job.applications if is_creator else None,
        my_application=own,
    )
