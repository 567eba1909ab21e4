import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.orm import Session

from fixly.config import settings
from fixly.database import get_db
from fixly.dependencies import get_current_user, require_role
from fixly.models.user import User
from fixly.routers.common import (
    BROWSE_CACHE_PREFIX,
    get_job,
    job_to_detail,
    job_to_response,
    persist,
    raise_for_outcome,
)
from fixly.schemas.job import (
    CancelRequest,
    JobActionRequest,
    JobCreate,
    JobDetailResponse,
    JobDetailsUpdate,
    JobListResponse,
    JobResponse,
)
from fixly.services import job_repository
from fixly.services.job_lifecycle import Job, JobStatus
from fixly.services.job_repository import ConcurrentUpdateError
from fixly.utils.cache import browse_cache
from fixly.utils.timestamps import utcnow

logger = logging.getLogger("fixly.jobs")

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _page(query, page: int, per_page: int) -> tuple[list[Job], int]:
    total = query.count()
    records = query.offset((page - 1) * per_page).limit(per_page).all()
    return [job_repository.to_job(r) for r in records], total


@router.post("/post", response_model=JobResponse, status_code=201)
async def post_job(req: JobCreate, db: Session = Depends(get_db),
                   user: User = Depends(require_role("hirer"))):
    now = utcnow()
    fields = req.model_dump(exclude={"featured"})
    if req.featured:
        fields["featured"] = True
        fields["featured_until"] = now + timedelta(days=settings.featured_days)

    job = Job.post(user.id, now=now, **fields)
    job_repository.create(db, job, now)
    browse_cache.invalidate_prefix(BROWSE_CACHE_PREFIX)

    user.jobs_posted += 1
    db.commit()
    return job_to_response(job, now)


@router.get("/post", response_model=JobListResponse)
async def list_my_jobs(
    status: JobStatus | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
    user: User = Depends(require_role("hirer")),
):
    query = job_repository.find_by_user(db, user.id, "created", status.value if status else None)
    jobs, total = _page(query, page, per_page)
    return JobListResponse(jobs=[job_to_response(j) for j in jobs], total=total, page=page, per_page=per_page)


@router.get("/browse", response_model=JobListResponse)
async def browse_jobs(
    search: str | None = None,
    city: str | None = None,
    state: str | None = None,
    skills: str | None = Query(None, description="Comma separated"),
    budget_min: float | None = None,
    budget_max: float | None = None,
    urgency: str | None = None,
    job_type: str | None = None,
    experience_level: str | None = None,
    budget_type: str | None = None,
    sort_by: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(12, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    filters = job_repository.JobFilters(
        city=city,
        state=state,
        skills=[s for s in (skills or "").split(",") if s.strip()],
        budget_min=budget_min,
        budget_max=budget_max,
        urgency=urgency,
        job_type=job_type,
        experience_level=experience_level,
        budget_type=budget_type,
        search=search,
        sort_by=sort_by,
    )
    cache_key = f"{BROWSE_CACHE_PREFIX}{filters.cache_key()}:{page}:{per_page}"
    cached = browse_cache.get(cache_key)
    if cached is not None:
        return cached

    jobs, total = _page(job_repository.find_with_filters(db, filters), page, per_page)
    result = JobListResponse(jobs=[job_to_response(j) for j in jobs], total=total, page=page, per_page=per_page)
    browse_cache.set(cache_key, result)
    return result


@router.get("/urgent", response_model=list[JobResponse])
async def urgent_jobs(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return [job_to_response(j) for j in job_repository.find_urgent(db)]


@router.get("/assigned", response_model=JobListResponse)
async def assigned_jobs(
    status: JobStatus | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
    user: User = Depends(require_role("fixer")),
):
    query = job_repository.find_by_user(db, user.id, "assigned", status.value if status else None)
    jobs, total = _page(query, page, per_page)
    return JobListResponse(jobs=[job_to_response(j) for j in jobs], total=total, page=page, per_page=per_page)


@router.get("/{job_id}", response_model=JobDetailResponse)
async def get_job_detail(job: Job = Depends(get_job), user: User = Depends(get_current_user)):
    return job_to_detail(job, user)


@router.put("/{job_id}", response_model=JobDetailResponse)
async def update_job(req: JobActionRequest, job: Job = Depends(get_job),
                     db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if job.created_by != user.id:
        raise HTTPException(status_code=403, detail="Permission denied")

    if req.action == "update_details":
        try:
            details = JobDetailsUpdate(**req.data)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc
        raise_for_outcome(job.update_details(details.model_dump(exclude_unset=True)))
    elif req.action in ("accept_application", "reject_application"):
        application_id = req.data.get("application_id")
        if not application_id:
            raise HTTPException(status_code=400, detail="application_id is required")
        if req.action == "accept_application":
            raise_for_outcome(job.accept_application(application_id))
        else:
            raise_for_outcome(job.reject_application(application_id))
    else:
        raise_for_outcome(job.cancel(user.id, req.data.get("reason", "")))

    persist(db, job)
    logger.info("Job %s: %s by %s", job.id, req.action, user.id)
    return job_to_detail(job, user)


@router.post("/{job_id}/cancel", response_model=JobDetailResponse)
async def cancel_job(req: CancelRequest, job: Job = Depends(get_job),
                     db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    raise_for_outcome(job.cancel(user.id, req.reason, req.refund_amount))
    persist(db, job)
    return job_to_detail(job, user)


def count_view(db: Session, job: Job, user_id: str) -> tuple[Job, bool]:
    """Record a view, reloading once if another request saved the job first."""
    if not job.add_view(user_id):
        return job, False
    try:
        persist(db, job)
    except ConcurrentUpdateError:
        job = job_repository.get(db, job.id)
        if not job.add_view(user_id):
            return job, False
        persist(db, job)
    return job, True


@router.post("/{job_id}/view")
async def record_view(job: Job = Depends(get_job), db: Session = Depends(get_db),
                      user: User = Depends(get_current_user)):
    job, counted = count_view(db, job, user.id)
    return {"counted": counted, "views": job.views}
