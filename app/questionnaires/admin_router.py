from typing import List, Optional

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser, get_current_admin
from app.core.audit import get_audit_trail
from app.core.database import get_db
from app.courses import course_service
from app.courses.course_schemas import (
    CoursePublish, CourseResponse, CourseUpsert, ModuleResponse, ModuleUpsert
)
from app.questionnaires import assignment_service, template_service
from app.questionnaires.questionnaire_schemas import (
    AssignmentResponse, AssignmentUpdate, AssignmentUpsert,
    TemplateSummary, TemplateUpsert, TemplateUpsertResponse
)

router = APIRouter(prefix="/admin", tags=["Authoring"])

# ==================== QUESTIONNAIRE TEMPLATES ====================

@router.post("/questionnaires", response_model=TemplateUpsertResponse)
async def upsert_questionnaire(
    data: TemplateUpsert,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Create a template, or write a new version of one the caller owns
    """
    return await template_service.upsert_template(db, admin, data.model_dump())


@router.get("/questionnaires", response_model=List[TemplateSummary])
async def list_questionnaires(
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await template_service.list_templates(db, admin)

# ==================== ASSIGNMENTS ====================

@router.post("/assignments")
async def upsert_assignment(
    data: AssignmentUpsert,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Bind a template to a course or module (pre/post), freezing its current version
    """
    return await assignment_service.upsert_assignment(db, admin, data.model_dump())


@router.patch("/assignments/{assignment_id}")
async def update_assignment(
    assignment_id: str,
    data: AssignmentUpdate,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Change scope or timing, or activate / deactivate
    """
    return await assignment_service.update_assignment(db, admin, assignment_id, data.model_dump(exclude_none=True))


@router.delete("/assignments/{assignment_id}", status_code=204)
async def delete_assignment(
    assignment_id: str,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Hard delete, only while the assignment has no responses
    """
    await assignment_service.delete_assignment(db, admin, assignment_id)
    return None


@router.get("/assignments", response_model=List[AssignmentResponse])
async def list_assignments(
    course_id: Optional[str] = None,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await assignment_service.list_assignments(db, admin, course_id)

# ==================== COURSES & MODULES ====================

@router.post("/courses", response_model=CourseResponse)
async def upsert_course(
    data: CourseUpsert,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await course_service.upsert_course(db, admin, data.model_dump())


@router.post("/courses/{course_id}/publish", response_model=CourseResponse)
async def publish_course(
    course_id: str,
    data: CoursePublish,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Open (or close) a course for enrollment
    """
    return await course_service.publish_course(db, admin, course_id, data.published)


@router.post("/modules", response_model=ModuleResponse)
async def upsert_module(
    data: ModuleUpsert,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await course_service.upsert_module(db, admin, data.model_dump())

# ==================== AUDIT ====================

@router.get("/audit")
async def get_audit_logs(
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    limit: int = 100,
    admin: AuthUser = Depends(get_current_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """
    Caller's authoring audit trail, newest first
    """
    logs = await get_audit_trail(db, target_type, target_id, min(limit, 500), actor_id=admin.uid)
    return {"total": len(logs), "logs": logs}
