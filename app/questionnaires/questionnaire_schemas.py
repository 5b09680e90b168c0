from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from app.questionnaires.questionnaire_models import (
    Purpose, Question, Scope, ScopeType, Timing, Answer, Score
)

# ==================== REQUEST SCHEMAS ====================

class TemplateUpsert(BaseModel):
    questionnaire_id: Optional[str] = None  # omitted on create
    title: str = Field(..., min_length=1, max_length=200)
    purpose: Purpose
    version: Optional[int] = Field(None, ge=0)  # omitted means next version
    questions: List[Question] = Field(..., min_length=1)

class AssignmentUpsert(BaseModel):
    assignment_id: Optional[str] = None  # omitted on create
    questionnaire_id: str
    scope: Scope
    timing: Timing
    active: Optional[bool] = None

class AssignmentUpdate(BaseModel):
    scope: Optional[Scope] = None
    timing: Optional[Timing] = None
    active: Optional[bool] = None

class GateRequest(BaseModel):
    course_id: str
    module_id: Optional[str] = None

    @field_validator('course_id')
    @classmethod
    def validate_course_id(cls, v):
        if not v or not v.strip():
            raise ValueError('course_id is required')
        return v

class StartRequest(BaseModel):
    assignment_id: str

class SubmitRequest(BaseModel):
    assignment_id: str
    answers: List[Answer]

# ==================== RESPONSE SCHEMAS ====================

class TemplateUpsertResponse(BaseModel):
    questionnaire_id: str
    version: int

class TemplateSummary(BaseModel):
    questionnaire_id: str
    title: str
    purpose: Purpose
    version: int
    question_count: int
    updated_at: Optional[datetime] = None

class AssignmentResponse(BaseModel):
    assignment_id: str
    questionnaire_id: str
    questionnaire_version: int
    scope: Scope
    timing: Timing
    active: bool
    response_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class BlockingAssignment(BaseModel):
    assignment_id: str
    questionnaire_id: str
    scope: ScopeType
    timing: Timing

class GateResult(BaseModel):
    allowed: bool
    reason: str
    blocking_assignments: List[BlockingAssignment]
    total_required: int
    completed: int

class ContextAssignment(BaseModel):
    assignment_id: str
    questionnaire_id: str
    questionnaire_version: int
    scope: ScopeType
    timing: Timing
    is_complete: bool
    submitted_at: Optional[datetime] = None

class AssignmentContext(BaseModel):
    course_id: str
    module_id: Optional[str] = None
    assignments: List[ContextAssignment]
    completed_count: int
    total_count: int
    completion_rate: float

class LearnerQuestion(BaseModel):
    """Question as rendered to a learner (no correct answers)"""
    id: str
    type: str
    prompt: str
    options: Optional[List[dict]] = None
    scale: Optional[dict] = None
    required: bool
    points: int

class StartResponse(BaseModel):
    assignment_id: str
    questionnaire_id: str
    version: int
    title: str
    purpose: Purpose
    timing: Timing
    scope: Scope
    questions: List[LearnerQuestion]

class SubmitResponse(BaseModel):
    response_id: str
    score: Optional[Score] = None
