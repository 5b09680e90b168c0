from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

# ==================== DATABASE MODELS ====================

class Enrollment(BaseModel):
    """
    One learner in one course
    _id is "{uid}_{course_id}" so a learner can never be enrolled twice
    """
    uid: str
    course_id: str
    completed_count: int = 0
    progress_pct: int = 0  # 0..100
    last_module_index: int = 0  # resume pointer
    completed: bool = False  # flips false -> true once, never back
    completed_at: Optional[datetime] = None
    pre_course_complete: bool = False
    post_course_complete: bool = False
    enrolled_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class Progress(BaseModel):
    """One learner in one module, _id is "{uid}_{course_id}_{module_id}" """
    uid: str
    course_id: str
    module_id: str
    completed: bool = False
    completed_at: Optional[datetime] = None
    pre_module_complete: bool = False
    post_module_complete: bool = False
    updated_at: datetime = Field(default_factory=datetime.utcnow)
