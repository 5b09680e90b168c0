from pydantic import BaseModel, Field
from typing import Optional

class ProgressComplete(BaseModel):
    course_id: str
    module_id: str
    module_index: Optional[int] = Field(None, ge=0)  # defaults to the module's stored index

class ProgressResult(BaseModel):
    progress_pct: int
    completed: bool
    completed_count: int
    last_module_index: int
    total_modules: int
    was_already_completed: bool
    course_completed_first_time: bool
