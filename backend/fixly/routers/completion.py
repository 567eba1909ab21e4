import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fixly.database import get_db
from fixly.dependencies import get_current_user
from fixly.models.user import User
from fixly.routers.common import get_job, get_user, job_to_detail, persist, raise_for_outcome
from fixly.schemas.job import (
    ConfirmRequest,
    JobDetailResponse,
    MarkDoneRequest,
    MilestoneCreate,
    RatingRequest,
    WorkImageCreate,
)
from fixly.services.job_lifecycle import Job, Milestone, PartyRating, WorkImage

logger = logging.getLogger("fixly.completion")

router = APIRouter(prefix="/jobs/{job_id}", tags=["completion"])


@router.post("/complete", response_model=JobDetailResponse)
async def mark_done(req: MarkDoneRequest, job: Job = Depends(get_job),
                    db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    raise_for_outcome(job.mark_done(user.id, req.notes, req.after_images))
    persist(db, job)

    user.jobs_completed += 1
    user.total_earnings += job.budget.amount or 0
    db.commit()
    return job_to_detail(job, user)


@router.post("/confirm", response_model=JobDetailResponse)
async def confirm_completion(req: ConfirmRequest, job: Job = Depends(get_job),
                             db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    raise_for_outcome(job.confirm_completion(user.id, req.rating, req.review))
    persist(db, job)
    # The fixer's average only moves through /rating.
    logger.info("Job %s confirmed by %s with rating %s", job.id, user.id, req.rating)
    return job_to_detail(job, user)


@router.post("/rating", response_model=PartyRating)
async def rate_party(req: RatingRequest, job: Job = Depends(get_job),
                     db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rating = raise_for_outcome(job.rate(
        user.id,
        req.rating,
        req.review,
        categories=req.categories.model_dump() if req.categories else None,
    ))
    persist(db, job)

    rated = get_user(db, job.rated_party(user.id))
    if rated:
        rated.add_rating(req.rating)
        db.commit()
    return rating


@router.post("/milestones", response_model=Milestone, status_code=201)
async def add_milestone(req: MilestoneCreate, job: Job = Depends(get_job),
                        db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    milestone = raise_for_outcome(job.add_milestone(user.id, req.title, req.description))
    persist(db, job)
    return milestone


@router.post("/milestones/{milestone_id}/complete", response_model=Milestone)
async def complete_milestone(milestone_id: str, job: Job = Depends(get_job),
                             db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    milestone = raise_for_outcome(job.complete_milestone(user.id, milestone_id))
    persist(db, job)
    return milestone


@router.post("/work-images", response_model=WorkImage, status_code=201)
async def add_work_image(req: WorkImageCreate, job: Job = Depends(get_job),
                         db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    image = raise_for_outcome(job.add_work_image(user.id, req.url, req.caption))
    persist(db, job)
    return image
