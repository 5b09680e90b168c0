"""
Completion propagation

Every write here runs inside the caller's transaction (session), so flag
updates, counters and the response or progress record that triggered them
commit or abort together.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.database import enrollment_key, progress_key
from app.core.errors import bad_request, forbidden, not_found, validation_error
from app.core.idempotency import run_idempotent
from app.learning.progress_models import Enrollment, Progress
from app.questionnaires.gate_service import can_complete_module
from app.questionnaires.questionnaire_models import ScopeType, Timing

logger = logging.getLogger(__name__)


def _enrollment_defaults(uid: str, course_id: str) -> dict:
    defaults = Enrollment(uid=uid, course_id=course_id).model_dump()
    defaults.pop("updated_at")
    # enrolled_at is only written by enroll; a record without it is not an enrollment yet
    defaults.pop("enrolled_at")
    return defaults


def _progress_defaults(uid: str, course_id: str, module_id: str) -> dict:
    defaults = Progress(uid=uid, course_id=course_id, module_id=module_id).model_dump()
    defaults.pop("updated_at")
    return defaults


async def _set_enrollment_flags(db, uid: str, course_id: str, flags: dict, session):
    defaults = {k: v for k, v in _enrollment_defaults(uid, course_id).items() if k not in flags}
    await db.enrollments.update_one(
        {"_id": enrollment_key(uid, course_id)},
        {"$set": {**flags, "updated_at": datetime.utcnow()}, "$setOnInsert": defaults},
        upsert=True,
        session=session,
    )


async def _set_progress_flags(db, uid: str, course_id: str, module_id: str, flags: dict, session):
    defaults = {k: v for k, v in _progress_defaults(uid, course_id, module_id).items() if k not in flags}
    await db.progress.update_one(
        {"_id": progress_key(uid, course_id, module_id)},
        {"$set": {**flags, "updated_at": datetime.utcnow()}, "$setOnInsert": defaults},
        upsert=True,
        session=session,
    )


async def mark_enrollment_completed(db: AsyncIOMotorDatabase, uid: str, course_id: str, session) -> bool:
    """
    Flip enrollment.completed to true and count the completion on the course

    Returns True only for the call that performed the false -> true flip.
    Both completion paths go through here, so the course counter moves at
    most once per enrollment.
    """
    key = enrollment_key(uid, course_id)
    enrollment = await db.enrollments.find_one({"_id": key}, session=session)

    if not enrollment or not enrollment.get("enrolled_at") or enrollment.get("completed"):
        return False

    now = datetime.utcnow()
    await db.enrollments.update_one(
        {"_id": key},
        {"$set": {"completed": True, "completed_at": now, "updated_at": now}},
        session=session,
    )
    await db.courses.update_one(
        {"course_id": course_id},
        {"$inc": {"completion_count": 1}, "$set": {"updated_at": now}},
        session=session,
    )

    logger.info("Learner %s completed course %s", uid, course_id)
    return True


async def propagate_completion(db: AsyncIOMotorDatabase, uid: str, assignment: dict, session):
    """Flip the gating flag matching the assignment's scope and timing"""
    scope = assignment["scope"]
    course_id = scope["course_id"]
    timing = assignment["timing"]

    if scope["type"] == ScopeType.COURSE:
        if timing == Timing.PRE:
            await _set_enrollment_flags(db, uid, course_id, {"pre_course_complete": True}, session)
            return

        await _set_enrollment_flags(db, uid, course_id, {"post_course_complete": True}, session)
        enrollment = await db.enrollments.find_one({"_id": enrollment_key(uid, course_id)}, session=session)
        if enrollment["completed_count"] == enrollment["last_module_index"] + 1:
            await mark_enrollment_completed(db, uid, course_id, session)
        return

    flag = "pre_module_complete" if timing == Timing.PRE else "post_module_complete"
    await _set_progress_flags(db, uid, course_id, scope["module_id"], {flag: True}, session)

# ==================== MODULE COMPLETION ====================

async def complete_module(
    db: AsyncIOMotorDatabase,
    uid: str,
    course_id: str,
    module_id: str,
    module_index: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> dict:
    """
    Record that a learner finished a module and recompute enrollment progress

    Completing an already completed module is a replay: nothing is
    incremented and was_already_completed is true. Concurrent duplicates
    serialize on the transaction and the loser sees the replay.
    """

    async def _complete(session) -> dict:
        enrollment = await db.enrollments.find_one({"_id": enrollment_key(uid, course_id)}, session=session)
        if not enrollment or not enrollment.get("enrolled_at"):
            raise forbidden("Learner is not enrolled in this course", code="not_enrolled", course_id=course_id)

        course = await db.courses.find_one({"course_id": course_id}, session=session)
        if not course:
            raise not_found("Course not found", course_id=course_id)

        module = await db.course_modules.find_one({"module_id": module_id}, session=session)
        if not module:
            raise not_found("Module not found", module_id=module_id)
        if module["course_id"] != course_id:
            raise bad_request(
                "module_course_mismatch",
                "Module does not belong to the specified course",
                module_id=module_id,
                course_id=course_id,
            )

        index = module["index"] if module_index is None else module_index
        if index != module["index"]:
            raise validation_error("module_index does not match the module", module_id=module_id)

        gate = await can_complete_module(db, uid, course_id, module_id, session)
        if not gate["allowed"]:
            raise forbidden(
                gate["reason"],
                code="gating_requirement_not_met",
                blocking_assignments=gate["blocking_assignments"],
            )

        total_modules = course.get("module_count", 0)
        progress = await db.progress.find_one({"_id": progress_key(uid, course_id, module_id)}, session=session)

        if progress and progress.get("completed"):
            return {
                "progress_pct": enrollment.get("progress_pct", 0),
                "completed": enrollment.get("completed", False),
                "completed_count": enrollment.get("completed_count", 0),
                "last_module_index": enrollment.get("last_module_index", 0),
                "total_modules": total_modules,
                "was_already_completed": True,
                "course_completed_first_time": False,
            }

        now = datetime.utcnow()
        await _set_progress_flags(
            db, uid, course_id, module_id,
            {"completed": True, "completed_at": now},
            session,
        )

        completed_count = enrollment.get("completed_count", 0) + 1
        progress_pct = 0
        if total_modules > 0:
            progress_pct = max(0, min(100, math.floor(100 * completed_count / total_modules)))

        # Highest value seen, so gaps left by out of order completion are skipped
        last_module_index = min(
            total_modules,
            max(enrollment.get("last_module_index", 0), index + 1),
        )

        await db.enrollments.update_one(
            {"_id": enrollment_key(uid, course_id)},
            {
                "$set": {
                    "completed_count": completed_count,
                    "progress_pct": progress_pct,
                    "last_module_index": last_module_index,
                    "updated_at": now,
                }
            },
            session=session,
        )

        first_time = False
        if total_modules > 0 and completed_count >= total_modules:
            first_time = await mark_enrollment_completed(db, uid, course_id, session)

        logger.info("Learner %s completed module %s (%d/%d)", uid, module_id, completed_count, total_modules)

        return {
            "progress_pct": progress_pct,
            "completed": enrollment.get("completed", False) or first_time,
            "completed_count": completed_count,
            "last_module_index": last_module_index,
            "total_modules": total_modules,
            "was_already_completed": False,
            "course_completed_first_time": first_time,
        }

    return await run_idempotent(
        db,
        idempotency_key,
        {"kind": "progress", "uid": uid, "course_id": course_id, "module_id": module_id},
        _complete,
    )
