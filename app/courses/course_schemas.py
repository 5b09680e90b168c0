from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

# ==================== REQUEST SCHEMAS ====================

class CourseUpsert(BaseModel):
    course_id: Optional[str] = None  # omitted on create
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""

class CoursePublish(BaseModel):
    published: bool = True

class ModuleUpsert(BaseModel):
    module_id: Optional[str] = None  # omitted on create
    course_id: str
    index: int = Field(..., ge=0)
    title: str = Field(..., min_length=1, max_length=200)
    summary: Optional[str] = None

class EnrollRequest(BaseModel):
    course_id: str

# ==================== RESPONSE SCHEMAS ====================

class CourseResponse(BaseModel):
    course_id: str
    title: str
    description: str = ""
    published: bool
    module_count: int
    enrollment_count: int
    completion_count: int
    updated_at: Optional[datetime] = None

class ModuleResponse(BaseModel):
    module_id: str
    course_id: str
    index: int
    title: str
    summary: Optional[str] = None

class EnrollResponse(BaseModel):
    enrollment_id: str
    course_id: str
    is_new: bool
    enrolled_at: datetime
