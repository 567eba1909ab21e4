from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fixly.database import get_db
from fixly.dependencies import get_current_user
from fixly.models.user import User
from fixly.routers.common import get_job, persist, raise_for_outcome
from fixly.schemas.job import CommentCreate, MessageCreate, MessageListResponse
from fixly.services.job_lifecycle import Comment, Job, Message, Reply

router = APIRouter(prefix="/jobs/{job_id}", tags=["conversation"])


@router.get("/comments", response_model=list[Comment])
async def list_comments(job: Job = Depends(get_job), _: User = Depends(get_current_user)):
    return job.comments


@router.post("/comments", response_model=Comment, status_code=201)
async def add_comment(req: CommentCreate, job: Job = Depends(get_job),
                      db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    comment = raise_for_outcome(job.add_comment(user.id, req.message))
    persist(db, job)
    return comment


@router.post("/comments/{comment_id}/replies", response_model=Reply, status_code=201)
async def add_reply(comment_id: str, req: CommentCreate, job: Job = Depends(get_job),
                    db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    reply = raise_for_outcome(job.add_reply(comment_id, user.id, req.message))
    persist(db, job)
    return reply


@router.get("/messages", response_model=MessageListResponse)
async def list_messages(job: Job = Depends(get_job), db: Session = Depends(get_db),
                        user: User = Depends(get_current_user)):
    if user.id not in job.parties:
        raise HTTPException(status_code=403, detail="Access denied")
    marked = job.mark_messages_read(user.id)
    if marked:
        persist(db, job)
    return MessageListResponse(messages=job.messages, marked_read=marked)


@router.post("/messages", response_model=Message, status_code=201)
async def send_message(req: MessageCreate, job: Job = Depends(get_job),
                       db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    message = raise_for_outcome(job.add_message(user.id, req.message))
    persist(db, job)
    return message
