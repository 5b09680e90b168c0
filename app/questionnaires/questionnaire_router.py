from typing import Optional

from fastapi import APIRouter, Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser, get_current_learner
from app.core.config import IDEMPOTENCY_HEADER
from app.core.database import get_db
from app.questionnaires import gate_service, submission_service
from app.questionnaires.questionnaire_schemas import (
    AssignmentContext, GateRequest, GateResult,
    StartRequest, StartResponse, SubmitRequest, SubmitResponse
)

router = APIRouter(prefix="/questionnaires", tags=["Questionnaires"])


@router.post("/gate", response_model=GateResult)
async def check_gate(
    data: GateRequest,
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Can the caller enter the course (or module)?
    Returns the blocking assignments when not
    """
    return await gate_service.can_access(db, user.uid, data.course_id, data.module_id)


@router.get("/context", response_model=AssignmentContext)
async def get_context(
    course_id: str,
    module_id: Optional[str] = None,
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Active assignments for a course or module with the caller's completion state"""
    return await gate_service.get_assignment_context(db, user.uid, course_id, module_id)


@router.post("/start", response_model=StartResponse)
async def start(
    data: StartRequest,
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await submission_service.start_assignment(db, user.uid, data.assignment_id)


@router.post("/submit", response_model=SubmitResponse, response_model_exclude_none=True)
async def submit(
    data: SubmitRequest,
    idempotency_key: Optional[str] = Header(None, alias=IDEMPOTENCY_HEADER),
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Grade and record the caller's answers

    score is omitted for questionnaires without scored questions.
    """
    answers = [answer.model_dump() for answer in data.answers]
    return await submission_service.submit(db, user.uid, data.assignment_id, answers, idempotency_key)
