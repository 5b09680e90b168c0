"""
Gate evaluation

Decides, fresh on every call, whether a learner may enter a course or module
(pre assignments) or finish a module (pre and post assignments).
"""

from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.database import response_key
from app.questionnaires.questionnaire_models import ScopeType, Timing

REASON_NONE = "No gating requirements"
REASON_MET = "All requirements met"
REASON_MISSING = "Missing required questionnaires"


async def _active_assignments(
    db: AsyncIOMotorDatabase,
    course_id: str,
    module_id: Optional[str],
    timings: List[str],
    session=None,
) -> List[dict]:
    """Active assignments for the course scope, plus the module scope when given"""
    query = {
        "active": True,
        "timing": {"$in": timings},
        "scope.type": ScopeType.COURSE.value,
        "scope.course_id": course_id,
    }
    cursor = db.questionnaire_assignments.find(query, session=session).sort("created_at", 1)
    assignments = await cursor.to_list(length=None)

    if module_id:
        query = {
            "active": True,
            "timing": {"$in": timings},
            "scope.type": ScopeType.MODULE.value,
            "scope.course_id": course_id,
            "scope.module_id": module_id,
        }
        cursor = db.questionnaire_assignments.find(query, session=session).sort("created_at", 1)
        assignments.extend(await cursor.to_list(length=None))

    return assignments


async def _completed_responses(db: AsyncIOMotorDatabase, uid: str, assignments: List[dict], session=None) -> dict:
    """assignment_id -> response for every assignment the learner completed"""
    if not assignments:
        return {}

    keys = [response_key(uid, a["assignment_id"]) for a in assignments]
    cursor = db.questionnaire_responses.find(
        {"_id": {"$in": keys}, "is_complete": True},
        session=session,
    )
    responses = await cursor.to_list(length=None)
    return {r["assignment_id"]: r for r in responses}


def _evaluate(assignments: List[dict], completed: dict) -> dict:
    blocking = [
        {
            "assignment_id": a["assignment_id"],
            "questionnaire_id": a["questionnaire_id"],
            "scope": a["scope"]["type"],
            "timing": a["timing"],
        }
        for a in assignments
        if a["assignment_id"] not in completed
    ]

    if not assignments:
        reason = REASON_NONE
    elif blocking:
        reason = REASON_MISSING
    else:
        reason = REASON_MET

    return {
        "allowed": not blocking,
        "reason": reason,
        "blocking_assignments": blocking,
        "total_required": len(assignments),
        "completed": len(assignments) - len(blocking),
    }


async def can_access(
    db: AsyncIOMotorDatabase,
    uid: str,
    course_id: str,
    module_id: Optional[str] = None,
    session=None,
) -> dict:
    """Entry gate: every active pre assignment for the context must be complete"""
    assignments = await _active_assignments(db, course_id, module_id, [Timing.PRE.value], session)
    completed = await _completed_responses(db, uid, assignments, session)
    return _evaluate(assignments, completed)


async def can_complete_module(
    db: AsyncIOMotorDatabase,
    uid: str,
    course_id: str,
    module_id: str,
    session=None,
) -> dict:
    """Exit gate: the entry gate plus every active post assignment on the module"""
    assignments = await _active_assignments(db, course_id, module_id, [Timing.PRE.value], session)

    cursor = db.questionnaire_assignments.find(
        {
            "active": True,
            "timing": Timing.POST.value,
            "scope.type": ScopeType.MODULE.value,
            "scope.course_id": course_id,
            "scope.module_id": module_id,
        },
        session=session,
    ).sort("created_at", 1)
    assignments.extend(await cursor.to_list(length=None))

    completed = await _completed_responses(db, uid, assignments, session)
    return _evaluate(assignments, completed)


async def get_assignment_context(
    db: AsyncIOMotorDatabase,
    uid: str,
    course_id: str,
    module_id: Optional[str] = None,
) -> dict:
    """Every active assignment for the context with the learner's completion state"""
    assignments = await _active_assignments(
        db, course_id, module_id, [Timing.PRE.value, Timing.POST.value]
    )
    completed = await _completed_responses(db, uid, assignments)

    items = []
    for a in assignments:
        response = completed.get(a["assignment_id"])
        items.append({
            "assignment_id": a["assignment_id"],
            "questionnaire_id": a["questionnaire_id"],
            "questionnaire_version": a["questionnaire_version"],
            "scope": a["scope"]["type"],
            "timing": a["timing"],
            "is_complete": response is not None,
            "submitted_at": response.get("submitted_at") if response else None,
        })

    completed_count = sum(1 for item in items if item["is_complete"])
    total = len(items)

    return {
        "course_id": course_id,
        "module_id": module_id,
        "assignments": items,
        "completed_count": completed_count,
        "total_count": total,
        "completion_rate": round(100 * completed_count / total, 2) if total else 0.0,
    }
