from typing import List, Optional

from fastapi import APIRouter, Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser, get_current_learner
from app.core.config import IDEMPOTENCY_HEADER
from app.core.database import get_db
from app.courses import course_service as service
from app.courses.course_schemas import (
    CourseResponse, EnrollRequest, EnrollResponse, ModuleResponse
)

router = APIRouter(tags=["Courses"])


@router.get("/courses/{course_id}", response_model=CourseResponse)
async def get_course(
    course_id: str,
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await service.get_course(db, course_id)


@router.get("/courses/{course_id}/modules", response_model=List[ModuleResponse])
async def list_modules(
    course_id: str,
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Modules in course order"""
    return await service.list_modules(db, course_id)


@router.post("/enroll", response_model=EnrollResponse)
async def enroll(
    data: EnrollRequest,
    idempotency_key: Optional[str] = Header(None, alias=IDEMPOTENCY_HEADER),
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Enroll the caller in a published course

    Enrolling twice returns the existing enrollment with is_new=false.
    """
    return await service.enroll(db, user.uid, data.course_id, idempotency_key)
