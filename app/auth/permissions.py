from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser
from app.core.errors import access_denied, not_found


async def verify_course_ownership(
    db: AsyncIOMotorDatabase,
    course_id: str,
    caller: AuthUser,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> dict:
    """
    Validates caller owns this course

    Returns:
        dict: Course document

    Raises:
        404: Course not found
        403: Not the owner
    """
    course = await db.courses.find_one({"course_id": course_id}, session=session)

    if not course:
        raise not_found("Course not found", course_id=course_id)

    if course.get("owner_id") != caller.uid:
        raise access_denied("Not authorized to modify this course", course_id=course_id)

    return course


async def verify_module_ownership(
    db: AsyncIOMotorDatabase,
    module_id: str,
    caller: AuthUser,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> dict:
    """
    Validates caller owns this module (owner is inherited from its course)

    Returns:
        dict: Module document
    """
    module = await db.course_modules.find_one({"module_id": module_id}, session=session)

    if not module:
        raise not_found("Module not found", module_id=module_id)

    if module.get("owner_id") != caller.uid:
        raise access_denied("Not authorized to access this module", module_id=module_id)

    return module


async def verify_template_ownership(
    db: AsyncIOMotorDatabase,
    questionnaire_id: str,
    caller: AuthUser,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> dict:
    """
    Validates caller owns this questionnaire template

    Returns:
        dict: Template head document
    """
    template = await db.questionnaires.find_one({"questionnaire_id": questionnaire_id}, session=session)

    if not template:
        raise not_found("Questionnaire not found", questionnaire_id=questionnaire_id)

    if template.get("owner_id") != caller.uid:
        raise access_denied("Not authorized to access this questionnaire", questionnaire_id=questionnaire_id)

    return template


async def verify_assignment_ownership(
    db: AsyncIOMotorDatabase,
    assignment_id: str,
    caller: AuthUser,
    session: Optional[AsyncIOMotorClientSession] = None,
) -> dict:
    """
    Validates caller owns this assignment

    Returns:
        dict: Assignment document

    Raises:
        404: Assignment not found
        403: Not the owner
    """
    assignment = await db.questionnaire_assignments.find_one({"assignment_id": assignment_id}, session=session)

    if not assignment:
        raise not_found("Assignment not found", assignment_id=assignment_id)

    if assignment.get("owner_id") != caller.uid:
        raise access_denied("Not authorized to access this assignment", assignment_id=assignment_id)

    return assignment
