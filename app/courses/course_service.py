import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser
from app.auth.permissions import verify_course_ownership, verify_module_ownership
from app.core.audit import log_audit
from app.core.database import generate_id, enrollment_key, run_in_transaction, clean
from app.core.errors import bad_request, conflict, not_found
from app.core.idempotency import run_idempotent
from app.courses.course_models import Course, CourseModule
from app.learning.progress_models import Enrollment

logger = logging.getLogger(__name__)

# ==================== COURSE AUTHORING ====================

async def upsert_course(db: AsyncIOMotorDatabase, caller: AuthUser, data: dict) -> dict:
    """Create a course owned by the caller, or update one the caller owns"""
    course_id = data.get("course_id")

    if course_id:
        await verify_course_ownership(db, course_id, caller)
        await db.courses.update_one(
            {"course_id": course_id},
            {
                "$set": {
                    "title": data["title"],
                    "description": data.get("description", ""),
                    "updated_at": datetime.utcnow(),
                }
            },
        )
        await log_audit(db, caller, "update_course", "course", course_id)
    else:
        course_id = generate_id("CRS")
        course = Course(
            course_id=course_id,
            owner_id=caller.uid,
            title=data["title"],
            description=data.get("description", ""),
        )
        await db.courses.insert_one(course.model_dump())
        logger.info("Course %s created by %s", course_id, caller.uid)
        await log_audit(db, caller, "create_course", "course", course_id)

    return await get_course(db, course_id)


async def publish_course(db: AsyncIOMotorDatabase, caller: AuthUser, course_id: str, published: bool = True) -> dict:
    await verify_course_ownership(db, course_id, caller)

    await db.courses.update_one(
        {"course_id": course_id},
        {"$set": {"published": published, "updated_at": datetime.utcnow()}},
    )

    await log_audit(db, caller, "publish_course" if published else "unpublish_course", "course", course_id)
    return await get_course(db, course_id)


async def get_course(db: AsyncIOMotorDatabase, course_id: str) -> dict:
    course = await db.courses.find_one({"course_id": course_id})

    if not course:
        raise not_found("Course not found", course_id=course_id)

    return clean(course)


async def upsert_module(db: AsyncIOMotorDatabase, caller: AuthUser, data: dict) -> dict:
    """
    Create or update a module

    The module inherits the course owner, cannot move to another course, and
    every write recomputes the course's module_count in the same transaction.
    """
    module_id = data.get("module_id")
    course_id = data["course_id"]

    async def _write(session) -> str:
        await verify_course_ownership(db, course_id, caller, session)
        now = datetime.utcnow()

        taken = await db.course_modules.find_one(
            {"course_id": course_id, "index": data["index"], "module_id": {"$ne": module_id}},
            session=session,
        )
        if taken:
            raise conflict(
                "duplicate_module_index",
                f"Index {data['index']} is already used by another module of this course",
                module_id=taken["module_id"],
            )

        if module_id:
            existing = await verify_module_ownership(db, module_id, caller, session)
            if existing["course_id"] != course_id:
                raise bad_request(
                    "course_change_denied",
                    "A module cannot be moved to another course",
                    module_id=module_id,
                )
            await db.course_modules.update_one(
                {"module_id": module_id},
                {
                    "$set": {
                        "index": data["index"],
                        "title": data["title"],
                        "summary": data.get("summary"),
                        "updated_at": now,
                    }
                },
                session=session,
            )
            saved_id = module_id
        else:
            saved_id = generate_id("MOD")
            module = CourseModule(
                module_id=saved_id,
                course_id=course_id,
                owner_id=caller.uid,
                index=data["index"],
                title=data["title"],
                summary=data.get("summary"),
            )
            await db.course_modules.insert_one(module.model_dump(), session=session)

        module_count = await db.course_modules.count_documents({"course_id": course_id}, session=session)
        await db.courses.update_one(
            {"course_id": course_id},
            {"$set": {"module_count": module_count, "updated_at": now}},
            session=session,
        )
        return saved_id

    saved_id = await run_in_transaction(db, _write)
    await log_audit(db, caller, "update_module" if module_id else "create_module", "module", saved_id, {"course_id": course_id})

    module = await db.course_modules.find_one({"module_id": saved_id})
    return clean(module)


async def list_modules(db: AsyncIOMotorDatabase, course_id: str) -> List[dict]:
    cursor = db.course_modules.find({"course_id": course_id}).sort("index", 1)
    modules = await cursor.to_list(length=None)
    return [clean(m) for m in modules]

# ==================== ENROLLMENT ====================

async def enroll(
    db: AsyncIOMotorDatabase,
    uid: str,
    course_id: str,
    idempotency_key: Optional[str] = None,
) -> dict:
    """
    Enroll a learner in a published course

    An existing enrollment is returned unchanged. A new one is inserted, or a
    record holding only questionnaire flags is completed, and the course
    enrollment_count incremented in the same transaction.
    """

    async def _enroll(session) -> dict:
        course = await db.courses.find_one({"course_id": course_id}, session=session)
        if not course:
            raise not_found("Course not found", course_id=course_id)
        if not course.get("published"):
            raise conflict("course_not_published", "Course is not open for enrollment", course_id=course_id)

        key = enrollment_key(uid, course_id)
        existing = await db.enrollments.find_one({"_id": key}, session=session)
        if existing and existing.get("enrolled_at"):
            return {
                "enrollment_id": key,
                "course_id": course_id,
                "is_new": False,
                "enrolled_at": existing["enrolled_at"],
            }

        enrollment = Enrollment(uid=uid, course_id=course_id).model_dump()
        if existing:
            # Questionnaire flags were recorded before enrolling, keep them
            await db.enrollments.update_one(
                {"_id": key},
                {"$set": {"enrolled_at": enrollment["enrolled_at"], "updated_at": enrollment["updated_at"]}},
                session=session,
            )
        else:
            enrollment["_id"] = key
            await db.enrollments.insert_one(enrollment, session=session)
        await db.courses.update_one(
            {"course_id": course_id},
            {"$inc": {"enrollment_count": 1}},
            session=session,
        )

        return {
            "enrollment_id": key,
            "course_id": course_id,
            "is_new": True,
            "enrolled_at": enrollment["enrolled_at"],
        }

    result = await run_idempotent(
        db,
        idempotency_key,
        {"kind": "enroll", "uid": uid, "course_id": course_id},
        _enroll,
    )

    if result["is_new"]:
        logger.info("Learner %s enrolled in %s", uid, course_id)

    return result
