from datetime import datetime
from typing import Any, Optional, List
from pydantic import BaseModel, Field
from enum import Enum

# ==================== ENUMS ====================

class Purpose(str, Enum):
    SURVEY = "survey"
    QUIZ = "quiz"
    ASSESSMENT = "assessment"

class QuestionType(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
    SCALE = "scale"
    TEXT = "text"

class Timing(str, Enum):
    PRE = "pre"
    POST = "post"

class ScopeType(str, Enum):
    COURSE = "course"
    MODULE = "module"

# ==================== EMBEDDED MODELS ====================

class QuestionOption(BaseModel):
    id: str
    label: str

class ScaleRange(BaseModel):
    min: float
    max: float

class Question(BaseModel):
    id: str
    type: QuestionType
    prompt: str
    options: Optional[List[QuestionOption]] = None  # single / multi only
    scale: Optional[ScaleRange] = None  # scale only
    required: bool = False
    correct: Optional[List[str]] = None  # accepted answers, never shown to learners
    points: int = 1

class Scope(BaseModel):
    type: ScopeType
    course_id: str
    module_id: Optional[str] = None

class Score(BaseModel):
    earned: int
    total: int

# ==================== DATABASE MODELS ====================

class Questionnaire(BaseModel):
    """
    Current head of a template
    Every version ever written also lives in questionnaire_versions
    """
    questionnaire_id: str  # QNR_XXXXXX
    owner_id: str
    title: str
    purpose: Purpose
    version: int = 1
    questions: List[Question]
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class QuestionnaireVersion(BaseModel):
    """Immutable snapshot, unique on (questionnaire_id, version)"""
    questionnaire_id: str
    version: int
    owner_id: str
    title: str
    purpose: Purpose
    questions: List[Question]
    created_at: datetime = Field(default_factory=datetime.utcnow)

class AssignmentStats(BaseModel):
    responses: int = 0
    last_response_at: Optional[datetime] = None

class QuestionnaireAssignment(BaseModel):
    assignment_id: str  # QAS_XXXXXX
    questionnaire_id: str
    questionnaire_version: int  # frozen at bind time
    owner_id: str
    scope: Scope
    timing: Timing
    active: bool = True
    stats: AssignmentStats = Field(default_factory=AssignmentStats)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class Answer(BaseModel):
    question_id: str
    value: Any = None  # shape depends on the question type
