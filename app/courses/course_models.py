from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

# ==================== DATABASE MODELS ====================

class Course(BaseModel):
    course_id: str  # CRS_XXXXXX
    owner_id: str
    title: str
    description: str = ""
    published: bool = False
    module_count: int = 0  # recomputed on every module upsert
    enrollment_count: int = 0
    completion_count: int = 0  # bumped once per enrollment that completes
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class CourseModule(BaseModel):
    module_id: str  # MOD_XXXXXX
    course_id: str
    owner_id: str  # inherited from the course
    index: int  # zero-based position inside the course
    title: str
    summary: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
