import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser
from app.auth.permissions import (
    verify_assignment_ownership,
    verify_course_ownership,
    verify_module_ownership,
    verify_template_ownership,
)
from app.core.audit import log_audit
from app.core.database import generate_id, run_in_transaction, clean
from app.core.errors import bad_request, not_found, validation_error
from app.questionnaires.questionnaire_models import QuestionnaireAssignment, ScopeType

logger = logging.getLogger(__name__)


def _scope_dict(scope) -> dict:
    """Stored scope form, module_id only present for module scope"""
    scope = dict(scope)
    stored = {"type": scope["type"], "course_id": scope["course_id"]}
    if scope["type"] == ScopeType.MODULE:
        stored["module_id"] = scope.get("module_id")
    return stored


async def validate_scope(db: AsyncIOMotorDatabase, caller: AuthUser, scope: dict, session=None):
    """
    Scope rules shared by create and update

    Raises:
        422: module scope without module_id, course scope with one
        404 / 403: course or module missing or not owned by caller
        400: module_course_mismatch
    """
    if scope["type"] == ScopeType.MODULE and not scope.get("module_id"):
        raise validation_error("Module scope requires module_id")
    if scope["type"] == ScopeType.COURSE and scope.get("module_id"):
        raise validation_error("Course scope must not carry module_id")

    await verify_course_ownership(db, scope["course_id"], caller, session)

    if scope["type"] == ScopeType.MODULE:
        module = await verify_module_ownership(db, scope["module_id"], caller, session)
        if module["course_id"] != scope["course_id"]:
            raise bad_request(
                "module_course_mismatch",
                "Module does not belong to the specified course",
                module_id=scope["module_id"],
                course_id=scope["course_id"],
            )


def _deny_course_change(existing: dict, scope: dict):
    if existing["scope"]["course_id"] != scope["course_id"]:
        raise bad_request(
            "course_change_denied",
            "Cannot move assignment to a different course",
            assignment_id=existing["assignment_id"],
        )

# ==================== BINDER ====================

async def upsert_assignment(db: AsyncIOMotorDatabase, caller: AuthUser, data: dict) -> dict:
    """
    Bind a template to a course or module, freezing its current version

    On update the assignment keeps its course and its active flag; flipping
    active goes through update_assignment.
    """
    assignment_id = data.get("assignment_id")
    requested = dict(data["scope"])
    scope = _scope_dict(requested)

    async def _write(session) -> str:
        template = await verify_template_ownership(db, data["questionnaire_id"], caller, session)
        await validate_scope(db, caller, requested, session)
        now = datetime.utcnow()

        if assignment_id:
            existing = await verify_assignment_ownership(db, assignment_id, caller, session)
            _deny_course_change(existing, scope)

            if data.get("active") is not None and data["active"] != existing.get("active"):
                raise bad_request(
                    "active_change_denied",
                    "Use the assignment update endpoint to activate or deactivate",
                    assignment_id=assignment_id,
                )

            await db.questionnaire_assignments.update_one(
                {"assignment_id": assignment_id},
                {
                    "$set": {
                        "questionnaire_id": template["questionnaire_id"],
                        "questionnaire_version": template["version"],
                        "scope": scope,
                        "timing": data["timing"],
                        "updated_at": now,
                    }
                },
                session=session,
            )
            return assignment_id

        new_id = generate_id("QAS")
        assignment = QuestionnaireAssignment(
            assignment_id=new_id,
            questionnaire_id=template["questionnaire_id"],
            questionnaire_version=template["version"],
            owner_id=caller.uid,
            scope=scope,
            timing=data["timing"],
            active=True if data.get("active") is None else data["active"],
        )
        doc = assignment.model_dump()
        doc["scope"] = scope
        await db.questionnaire_assignments.insert_one(doc, session=session)
        return new_id

    saved_id = await run_in_transaction(db, _write)

    if assignment_id:
        await log_audit(db, caller, "update_assignment", "assignment", saved_id)
    else:
        logger.info("Assignment %s created for %s", saved_id, scope["course_id"])
        await log_audit(db, caller, "create_assignment", "assignment", saved_id, {"scope": scope})

    return {"assignment_id": saved_id}


async def update_assignment(db: AsyncIOMotorDatabase, caller: AuthUser, assignment_id: str, data: dict) -> dict:
    """
    Change scope, timing or active state

    Deactivation is forward-only: responses already recorded are left alone
    and count again as soon as the assignment is reactivated.
    """

    async def _write(session) -> List[str]:
        existing = await verify_assignment_ownership(db, assignment_id, caller, session)
        updates = {}

        if data.get("scope") is not None:
            requested = dict(data["scope"])
            _deny_course_change(existing, requested)
            await validate_scope(db, caller, requested, session)
            scope = _scope_dict(requested)
            updates["scope"] = scope

        if data.get("timing") is not None:
            updates["timing"] = data["timing"]

        if data.get("active") is not None:
            updates["active"] = data["active"]

        updates["updated_at"] = datetime.utcnow()
        await db.questionnaire_assignments.update_one(
            {"assignment_id": assignment_id},
            {"$set": updates},
            session=session,
        )
        return [key for key in updates if key != "updated_at"]

    updated = await run_in_transaction(db, _write)
    await log_audit(db, caller, "update_assignment", "assignment", assignment_id, {"updated": updated})

    return {"assignment_id": assignment_id, "updated": updated}


async def delete_assignment(db: AsyncIOMotorDatabase, caller: AuthUser, assignment_id: str):
    """
    Hard delete an assignment nobody has answered

    The response count and the delete share a transaction; a submission in
    flight touches the assignment document, so one of the two conflicts.
    """

    async def _delete(session):
        await verify_assignment_ownership(db, assignment_id, caller, session)

        responses = await db.questionnaire_responses.count_documents(
            {"assignment_id": assignment_id}, session=session
        )
        if responses > 0:
            raise bad_request(
                "assignment_has_responses",
                "Assignment has responses, deactivate it instead",
                assignment_id=assignment_id,
                responses=responses,
            )

        await db.questionnaire_assignments.delete_one({"assignment_id": assignment_id}, session=session)

    await run_in_transaction(db, _delete)

    logger.info("Assignment %s deleted", assignment_id)
    await log_audit(db, caller, "delete_assignment", "assignment", assignment_id)


async def get_assignment(db: AsyncIOMotorDatabase, assignment_id: str, session=None) -> dict:
    assignment = await db.questionnaire_assignments.find_one({"assignment_id": assignment_id}, session=session)

    if not assignment:
        raise not_found("Assignment not found", assignment_id=assignment_id)

    return clean(assignment)


async def list_assignments(db: AsyncIOMotorDatabase, caller: AuthUser, course_id: Optional[str] = None) -> List[dict]:
    query = {"owner_id": caller.uid}
    if course_id:
        query["scope.course_id"] = course_id

    cursor = db.questionnaire_assignments.find(query).sort("created_at", -1)
    assignments = await cursor.to_list(length=None)

    results = []
    for a in assignments:
        a = clean(a)
        a["response_count"] = (a.get("stats") or {}).get("responses", 0)
        results.append(a)

    return results
