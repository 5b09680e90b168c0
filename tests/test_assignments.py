import pytest
from pymongo.errors import PyMongoError

from app.core.errors import ServiceError
from app.courses import course_service
from app.questionnaires import assignment_service, submission_service, template_service

from factories import LEARNER, bind, single_question, template_payload


async def test_create_freezes_current_version(db, admin, course, template):
    qid = template["questionnaire_id"]
    await template_service.upsert_template(db, admin, template_payload(questionnaire_id=qid, version=4))

    assignment_id = await bind(db, admin, qid, course["course_id"])

    assignment = await assignment_service.get_assignment(db, assignment_id)
    assert assignment["questionnaire_version"] == 4
    assert assignment["active"] is True
    assert "module_id" not in assignment["scope"]


async def test_assignment_keeps_grading_with_frozen_version(db, admin, course, template):
    qid = template["questionnaire_id"]
    assignment_id = await bind(db, admin, qid, course["course_id"])

    # v2 moves the correct answer from "b" to "c"
    await template_service.upsert_template(
        db, admin, template_payload(questionnaire_id=qid, version=2, questions=[single_question(correct=["c"], points=2)])
    )

    started = await submission_service.start_assignment(db, LEARNER.uid, assignment_id)
    result = await submission_service.submit(db, LEARNER.uid, assignment_id, [{"question_id": "q1", "value": "b"}])

    assert started["version"] == 1
    assert result["score"] == {"earned": 2, "total": 2}


async def test_upsert_refreezes_latest_version(db, admin, course, template):
    qid = template["questionnaire_id"]
    assignment_id = await bind(db, admin, qid, course["course_id"])
    await template_service.upsert_template(db, admin, template_payload(questionnaire_id=qid, version=2))

    await assignment_service.upsert_assignment(
        db, admin,
        {
            "assignment_id": assignment_id,
            "questionnaire_id": qid,
            "scope": {"type": "course", "course_id": course["course_id"]},
            "timing": "post",
        },
    )

    assignment = await assignment_service.get_assignment(db, assignment_id)
    assert assignment["questionnaire_version"] == 2
    assert assignment["timing"] == "post"


async def test_module_from_other_course_rejected_before_write(db, admin, course, template):
    other = await course_service.upsert_course(db, admin, {"title": "Other"})
    stray = await course_service.upsert_module(db, admin, {"course_id": other["course_id"], "index": 0, "title": "Stray"})

    with pytest.raises(ServiceError) as exc:
        await bind(db, admin, template["questionnaire_id"], course["course_id"], module_id=stray["module_id"])

    assert exc.value.status_code == 400
    assert exc.value.code == "module_course_mismatch"
    assert await db.questionnaire_assignments.count_documents({}) == 0


async def test_module_scope_requires_module_id(db, admin, course, template):
    with pytest.raises(ServiceError) as exc:
        await assignment_service.upsert_assignment(
            db, admin,
            {
                "questionnaire_id": template["questionnaire_id"],
                "scope": {"type": "module", "course_id": course["course_id"]},
                "timing": "pre",
            },
        )
    assert exc.value.status_code == 422


async def test_course_scope_rejects_module_id(db, admin, course, template):
    with pytest.raises(ServiceError) as exc:
        await assignment_service.upsert_assignment(
            db, admin,
            {
                "questionnaire_id": template["questionnaire_id"],
                "scope": {"type": "course", "course_id": course["course_id"], "module_id": course["modules"][0]},
                "timing": "pre",
            },
        )
    assert exc.value.status_code == 422


async def test_update_to_course_scope_rejects_module_id(db, admin, course, template):
    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"], module_id=course["modules"][0])

    with pytest.raises(ServiceError) as exc:
        await assignment_service.update_assignment(
            db, admin, assignment_id,
            {"scope": {"type": "course", "course_id": course["course_id"], "module_id": course["modules"][1]}},
        )

    assignment = await assignment_service.get_assignment(db, assignment_id)
    assert exc.value.status_code == 422
    assert assignment["scope"]["module_id"] == course["modules"][0]


async def test_caller_must_own_template(db, other_admin, course, template):
    with pytest.raises(ServiceError) as exc:
        await bind(db, other_admin, template["questionnaire_id"], course["course_id"])
    assert exc.value.status_code == 403


async def test_caller_must_own_course(db, admin, other_admin, course):
    theirs = await template_service.upsert_template(db, other_admin, template_payload())

    with pytest.raises(ServiceError) as exc:
        await bind(db, other_admin, theirs["questionnaire_id"], course["course_id"])

    assert exc.value.code == "access_denied"


async def test_course_change_denied(db, admin, course, template):
    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"])
    other = await course_service.upsert_course(db, admin, {"title": "Other"})

    with pytest.raises(ServiceError) as exc:
        await assignment_service.update_assignment(
            db, admin, assignment_id, {"scope": {"type": "course", "course_id": other["course_id"]}}
        )

    assert exc.value.code == "course_change_denied"


async def test_upsert_cannot_flip_active(db, admin, course, template):
    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"])

    with pytest.raises(ServiceError) as exc:
        await assignment_service.upsert_assignment(
            db, admin,
            {
                "assignment_id": assignment_id,
                "questionnaire_id": template["questionnaire_id"],
                "scope": {"type": "course", "course_id": course["course_id"]},
                "timing": "pre",
                "active": False,
            },
        )

    assert exc.value.code == "active_change_denied"


async def test_update_moves_within_course_and_deactivates(db, admin, course, template):
    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"])
    module_id = course["modules"][1]

    result = await assignment_service.update_assignment(
        db, admin, assignment_id,
        {"scope": {"type": "module", "course_id": course["course_id"], "module_id": module_id}, "active": False},
    )

    assignment = await assignment_service.get_assignment(db, assignment_id)
    assert sorted(result["updated"]) == ["active", "scope"]
    assert assignment["scope"]["module_id"] == module_id
    assert assignment["active"] is False


async def test_delete_without_responses(db, admin, course, template):
    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"])

    await assignment_service.delete_assignment(db, admin, assignment_id)

    with pytest.raises(ServiceError) as exc:
        await assignment_service.get_assignment(db, assignment_id)
    assert exc.value.status_code == 404


async def test_delete_with_responses_rejected(db, admin, course, template):
    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"])
    await submission_service.submit(db, LEARNER.uid, assignment_id, [{"question_id": "q1", "value": "a"}])

    with pytest.raises(ServiceError) as exc:
        await assignment_service.delete_assignment(db, admin, assignment_id)

    assert exc.value.code == "assignment_has_responses"
    assert await db.questionnaire_assignments.count_documents({"assignment_id": assignment_id}) == 1


async def test_list_assignments_reports_response_count(db, admin, course, template):
    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"])
    await submission_service.submit(db, LEARNER.uid, assignment_id, [{"question_id": "q1", "value": "a"}])
    await submission_service.submit(db, LEARNER.uid, assignment_id, [{"question_id": "q1", "value": "b"}])

    listed = await assignment_service.list_assignments(db, admin, course["course_id"])

    assert listed[0]["assignment_id"] == assignment_id
    assert listed[0]["response_count"] == 1


async def test_audit_failure_does_not_undo_write(db, admin, course, template, monkeypatch):
    async def broken_insert(document, session=None):
        raise PyMongoError("audit store down")

    monkeypatch.setattr(db.audit_logs, "insert_one", broken_insert)

    assignment_id = await bind(db, admin, template["questionnaire_id"], course["course_id"])
    assignment = await assignment_service.get_assignment(db, assignment_id)
    assert assignment["active"] is True

    await assignment_service.delete_assignment(db, admin, assignment_id)
    assert await db.questionnaire_assignments.count_documents({"assignment_id": assignment_id}) == 0
    assert await db.audit_logs.count_documents({}) == 0
