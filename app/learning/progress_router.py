from typing import Optional

from fastapi import APIRouter, Depends, Header
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser, get_current_learner
from app.core.config import IDEMPOTENCY_HEADER
from app.core.database import get_db
from app.learning import progress_service as service
from app.learning.progress_schemas import ProgressComplete, ProgressResult

router = APIRouter(tags=["Learning Progress"])


@router.post("/progress", response_model=ProgressResult)
async def complete_module(
    data: ProgressComplete,
    idempotency_key: Optional[str] = Header(None, alias=IDEMPOTENCY_HEADER),
    user: AuthUser = Depends(get_current_learner),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Mark a module completed for the caller and return the recomputed enrollment

    Replays (same module twice, or same idempotency key) never move counters.
    """
    return await service.complete_module(
        db,
        user.uid,
        data.course_id,
        data.module_id,
        data.module_index,
        idempotency_key,
    )
