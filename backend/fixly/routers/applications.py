import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fixly.database import get_db
from fixly.dependencies import get_current_user, require_role
from fixly.models.user import User
from fixly.routers.common import get_job, persist, raise_for_outcome
from fixly.schemas.job import ApplicationCreate, ApplicationListResponse
from fixly.services.job_lifecycle import Application, Job

logger = logging.getLogger("fixly.applications")

router = APIRouter(prefix="/jobs/{job_id}", tags=["applications"])


@router.post("/apply", response_model=Application, status_code=201)
async def apply_to_job(req: ApplicationCreate, job: Job = Depends(get_job),
                       db: Session = Depends(get_db), user: User = Depends(require_role("fixer"))):
    application = raise_for_outcome(job.apply(
        user.id,
        req.proposed_amount,
        time_estimate=req.time_estimate.model_dump() if req.time_estimate else None,
        materials_list=[m.model_dump() for m in req.materials_list],
        cover_letter=req.cover_letter,
    ))
    persist(db, job)
    logger.info("Fixer %s applied to job %s", user.id, job.id)
    return application


@router.get("/applications", response_model=ApplicationListResponse)
async def list_applications(job: Job = Depends(get_job), user: User = Depends(get_current_user)):
    if user.id == job.created_by:
        applications = job.applications
    else:
        applications = [a for a in job.applications if a.fixer == user.id]
        if not applications:
            raise HTTPException(status_code=403, detail="Access denied")
    return ApplicationListResponse(applications=applications, total_applications=len(job.applications))


@router.post("/applications/withdraw", response_model=Application)
async def withdraw_application(job: Job = Depends(get_job), db: Session = Depends(get_db),
                               user: User = Depends(get_current_user)):
    application = raise_for_outcome(job.withdraw_application(user.id))
    persist(db, job)
    return application
