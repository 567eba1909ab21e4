import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fixly.database import get_db
from fixly.dependencies import get_current_user, require_role
from fixly.models.user import User
from fixly.routers.common import get_job, persist, raise_for_outcome
from fixly.schemas.job import DisputeCreate, DisputeUpdate
from fixly.services.job_lifecycle import Dispute, Job

logger = logging.getLogger("fixly.disputes")

router = APIRouter(prefix="/jobs/{job_id}/dispute", tags=["disputes"])


@router.post("", response_model=Dispute, status_code=201)
async def raise_dispute(req: DisputeCreate, job: Job = Depends(get_job),
                        db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    dispute = raise_for_outcome(job.raise_dispute(user.id, req.reason, req.description, req.evidence))
    persist(db, job)
    return dispute


@router.put("", response_model=Dispute)
async def update_dispute(req: DisputeUpdate, job: Job = Depends(get_job),
                         db: Session = Depends(get_db), admin: User = Depends(require_role("admin"))):
    dispute = raise_for_outcome(job.update_dispute(admin.id, req.status, req.resolution))
    persist(db, job)
    logger.info("Dispute on job %s moved to %s by %s", job.id, req.status.value, admin.id)
    return dispute
