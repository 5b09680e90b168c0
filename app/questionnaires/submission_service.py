import logging
from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.database import response_key
from app.core.errors import conflict
from app.core.idempotency import run_idempotent
from app.learning.progress_service import propagate_completion
from app.questionnaires.assignment_service import get_assignment
from app.questionnaires.grading import score_answers, strip_correct, validate_answers
from app.questionnaires.template_service import get_template_version

logger = logging.getLogger(__name__)


def _ensure_active(assignment: dict):
    if not assignment.get("active"):
        raise conflict(
            "assignment_inactive",
            "Assignment is not active",
            assignment_id=assignment["assignment_id"],
        )


async def start_assignment(db: AsyncIOMotorDatabase, uid: str, assignment_id: str) -> dict:
    """Frozen question set for rendering, without correct answers"""
    assignment = await get_assignment(db, assignment_id)
    _ensure_active(assignment)

    snapshot = await get_template_version(
        db, assignment["questionnaire_id"], assignment["questionnaire_version"]
    )

    return {
        "assignment_id": assignment_id,
        "questionnaire_id": snapshot["questionnaire_id"],
        "version": snapshot["version"],
        "title": snapshot["title"],
        "purpose": snapshot["purpose"],
        "timing": assignment["timing"],
        "scope": assignment["scope"],
        "questions": strip_correct(snapshot["questions"]),
    }


async def submit(
    db: AsyncIOMotorDatabase,
    uid: str,
    assignment_id: str,
    answers: List[dict],
    idempotency_key: Optional[str] = None,
) -> dict:
    """
    Grade answers against the assignment's frozen version and record them

    The response is keyed by (uid, assignment_id): a re-submission merges
    into the same document. Completion flags are propagated in the same
    transaction as the response write.
    """

    async def _submit(session) -> dict:
        assignment = await get_assignment(db, assignment_id, session)
        snapshot = await get_template_version(
            db,
            assignment["questionnaire_id"],
            assignment["questionnaire_version"],
            session,
        )
        _ensure_active(assignment)

        answered = validate_answers(snapshot["questions"], answers)
        score = score_answers(snapshot["purpose"], snapshot["questions"], answered)

        now = datetime.utcnow()
        key = response_key(uid, assignment_id)
        fields = {
            "uid": uid,
            "assignment_id": assignment_id,
            "questionnaire_id": assignment["questionnaire_id"],
            "questionnaire_version": assignment["questionnaire_version"],
            "scope": assignment["scope"],
            "answers": [{"question_id": qid, "value": value} for qid, value in answered.items()],
            "is_complete": True,
            "submitted_at": now,
        }
        update = {"$set": fields, "$setOnInsert": {"created_at": now}}
        if score is None:
            update["$unset"] = {"score": ""}
        else:
            fields["score"] = score

        existing = await db.questionnaire_responses.find_one({"_id": key}, session=session)
        await db.questionnaire_responses.update_one({"_id": key}, update, upsert=True, session=session)

        # Touching the assignment makes a concurrent hard delete conflict with this write
        assignment_update = {"$set": {"stats.last_response_at": now}}
        if existing is None:
            assignment_update["$inc"] = {"stats.responses": 1}
        await db.questionnaire_assignments.update_one(
            {"assignment_id": assignment_id},
            assignment_update,
            session=session,
        )

        await propagate_completion(db, uid, assignment, session)

        result = {"response_id": key}
        if score is not None:
            result["score"] = score
        return result

    result = await run_idempotent(
        db,
        idempotency_key,
        {"kind": "response", "uid": uid, "assignment_id": assignment_id},
        _submit,
    )

    logger.info("Response %s recorded", result["response_id"])
    return result
