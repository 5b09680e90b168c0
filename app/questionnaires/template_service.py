import logging
from datetime import datetime
from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.auth.firebase_auth import AuthUser
from app.auth.permissions import verify_template_ownership
from app.core.audit import log_audit
from app.core.database import generate_id, run_in_transaction, clean
from app.core.errors import conflict, not_found, validation_error
from app.questionnaires.questionnaire_models import (
    Questionnaire, QuestionnaireVersion, QuestionType
)

logger = logging.getLogger(__name__)

CHOICE_TYPES = (QuestionType.SINGLE, QuestionType.MULTI)


def validate_template_structure(questions: List[dict]):
    """
    Structural checks that pydantic cannot express per field

    Raises:
        422: duplicate question ids, duplicate option ids, missing options,
             missing or inverted scale, correct ids outside the options,
             points below 1
    """
    seen = set()

    for question in questions:
        qid = question["id"]
        if qid in seen:
            raise validation_error(f"Duplicate question id: {qid}", question_id=qid)
        seen.add(qid)

        points = question.get("points", 1)
        if not isinstance(points, int) or points < 1:
            raise validation_error("Question points must be at least 1", question_id=qid)

        qtype = question["type"]

        if qtype in CHOICE_TYPES:
            options = question.get("options") or []
            if not options:
                raise validation_error("Choice questions need at least one option", question_id=qid)

            option_ids = [opt["id"] for opt in options]
            if len(set(option_ids)) != len(option_ids):
                raise validation_error(
                    f"Duplicate option ids in question: {qid}",
                    code="duplicate_option_ids",
                    question_id=qid,
                )

            for correct_id in question.get("correct") or []:
                if correct_id not in option_ids:
                    raise validation_error(
                        f"Correct answer {correct_id} is not an option",
                        question_id=qid,
                    )

        if qtype == QuestionType.SCALE:
            scale = question.get("scale")
            if not scale:
                raise validation_error("Scale questions need a scale range", question_id=qid)
            if scale["min"] >= scale["max"]:
                raise validation_error("Scale min must be lower than max", question_id=qid)


# ==================== TEMPLATE STORE ====================

async def upsert_template(db: AsyncIOMotorDatabase, caller: AuthUser, data: dict) -> dict:
    """
    Create a template or write a new version of an existing one

    Every successful write produces a new immutable snapshot, so assignments
    frozen on an older version keep grading against what learners saw.
    """
    questions = data["questions"]
    validate_template_structure(questions)

    questionnaire_id = data.get("questionnaire_id")
    supplied = data.get("version")

    async def _write(session) -> dict:
        now = datetime.utcnow()

        if questionnaire_id:
            existing = await verify_template_ownership(db, questionnaire_id, caller, session)
            current = existing.get("version", 1)

            if supplied is not None and supplied < current:
                raise conflict(
                    "version_regression",
                    f"Version {supplied} is older than current version {current}",
                    current_version=current,
                )

            version = current + 1 if supplied is None else max(supplied, current + 1)
            await db.questionnaires.update_one(
                {"questionnaire_id": questionnaire_id},
                {
                    "$set": {
                        "title": data["title"],
                        "purpose": data["purpose"],
                        "version": version,
                        "questions": questions,
                        "updated_at": now,
                    }
                },
                session=session,
            )
            template_id = questionnaire_id
        else:
            template_id = generate_id("QNR")
            version = max(1, supplied or 0)
            template = Questionnaire(
                questionnaire_id=template_id,
                owner_id=caller.uid,
                title=data["title"],
                purpose=data["purpose"],
                version=version,
                questions=questions,
            )
            await db.questionnaires.insert_one(template.model_dump(), session=session)

        snapshot = QuestionnaireVersion(
            questionnaire_id=template_id,
            version=version,
            owner_id=caller.uid,
            title=data["title"],
            purpose=data["purpose"],
            questions=questions,
        )
        await db.questionnaire_versions.insert_one(snapshot.model_dump(), session=session)

        return {"questionnaire_id": template_id, "version": version}

    result = await run_in_transaction(db, _write)

    action = "update_questionnaire" if questionnaire_id else "create_questionnaire"
    logger.info("Questionnaire %s saved at version %d", result["questionnaire_id"], result["version"])
    await log_audit(db, caller, action, "questionnaire", result["questionnaire_id"], {"version": result["version"]})

    return result


async def get_template_version(
    db: AsyncIOMotorDatabase,
    questionnaire_id: str,
    version: int,
    session=None,
) -> dict:
    """Load a frozen snapshot"""
    snapshot = await db.questionnaire_versions.find_one(
        {"questionnaire_id": questionnaire_id, "version": version},
        session=session,
    )

    if not snapshot:
        raise not_found(
            "Questionnaire version not found",
            questionnaire_id=questionnaire_id,
            version=version,
        )

    return clean(snapshot)


async def list_templates(db: AsyncIOMotorDatabase, caller: AuthUser) -> List[dict]:
    cursor = db.questionnaires.find({"owner_id": caller.uid}).sort("updated_at", -1)
    templates = await cursor.to_list(length=None)

    return [
        {
            "questionnaire_id": t["questionnaire_id"],
            "title": t["title"],
            "purpose": t["purpose"],
            "version": t["version"],
            "question_count": len(t.get("questions") or []),
            "updated_at": t.get("updated_at"),
        }
        for t in templates
    ]
