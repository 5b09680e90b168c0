import pytest

from app.core.errors import ServiceError
from app.courses import course_service
from app.questionnaires import submission_service

from factories import LEARNER, bind


async def test_module_upsert_recomputes_module_count(db, admin, course):
    stored = await course_service.get_course(db, course["course_id"])
    assert stored["module_count"] == 3

    # Updating an existing module does not change the count
    await course_service.upsert_module(
        db, admin,
        {"module_id": course["modules"][0], "course_id": course["course_id"], "index": 0, "title": "Renamed"},
    )

    stored = await course_service.get_course(db, course["course_id"])
    modules = await course_service.list_modules(db, course["course_id"])
    assert stored["module_count"] == 3
    assert [m["index"] for m in modules] == [0, 1, 2]
    assert modules[0]["title"] == "Renamed"
    assert modules[0]["owner_id"] == admin.uid


async def test_module_cannot_change_course(db, admin, course):
    other = await course_service.upsert_course(db, admin, {"title": "Other"})

    with pytest.raises(ServiceError) as exc:
        await course_service.upsert_module(
            db, admin,
            {"module_id": course["modules"][0], "course_id": other["course_id"], "index": 0, "title": "Moved"},
        )

    assert exc.value.code == "course_change_denied"
    assert (await course_service.get_course(db, other["course_id"]))["module_count"] == 0


async def test_only_owner_can_edit_course(db, other_admin, course):
    with pytest.raises(ServiceError) as exc:
        await course_service.upsert_course(db, other_admin, {"course_id": course["course_id"], "title": "Mine now"})
    assert exc.value.status_code == 403

    with pytest.raises(ServiceError):
        await course_service.upsert_module(db, other_admin, {"course_id": course["course_id"], "index": 3, "title": "Extra"})


async def test_enroll_once(db, course):
    first = await course_service.enroll(db, LEARNER.uid, course["course_id"])
    second = await course_service.enroll(db, LEARNER.uid, course["course_id"])

    stored = await course_service.get_course(db, course["course_id"])
    assert first["is_new"] is True
    assert second["is_new"] is False
    assert second["enrollment_id"] == first["enrollment_id"] == f"{LEARNER.uid}_{course['course_id']}"
    assert stored["enrollment_count"] == 1


async def test_new_enrollment_starts_at_zero(db, course):
    enrollment = await course_service.enroll(db, LEARNER.uid, course["course_id"])

    stored = await db.enrollments.find_one({"_id": enrollment["enrollment_id"]})
    assert stored["completed_count"] == 0
    assert stored["progress_pct"] == 0
    assert stored["last_module_index"] == 0
    assert stored["completed"] is False


async def test_enroll_requires_published_course(db, admin):
    draft = await course_service.upsert_course(db, admin, {"title": "Draft"})

    with pytest.raises(ServiceError) as exc:
        await course_service.enroll(db, LEARNER.uid, draft["course_id"])

    assert exc.value.status_code == 409
    assert exc.value.code == "course_not_published"
    assert await db.enrollments.count_documents({}) == 0


async def test_enroll_unknown_course(db):
    with pytest.raises(ServiceError) as exc:
        await course_service.enroll(db, LEARNER.uid, "CRS_MISSING")
    assert exc.value.status_code == 404


async def test_enroll_idempotency_key_scope(db, admin, course):
    other = await course_service.upsert_course(db, admin, {"title": "Other"})
    await course_service.publish_course(db, admin, other["course_id"], True)
    await course_service.enroll(db, LEARNER.uid, course["course_id"], idempotency_key="enroll-1")

    with pytest.raises(ServiceError) as exc:
        await course_service.enroll(db, LEARNER.uid, other["course_id"], idempotency_key="enroll-1")

    assert exc.value.code == "idempotency_key_reused"
    assert await db.enrollments.count_documents({}) == 1


async def test_enroll_after_course_questionnaire_counts_once(db, admin, course, template):
    pre = await bind(db, admin, template["questionnaire_id"], course["course_id"])
    await submission_service.submit(db, LEARNER.uid, pre, [{"question_id": "q1", "value": "b"}])

    first = await course_service.enroll(db, LEARNER.uid, course["course_id"])
    second = await course_service.enroll(db, LEARNER.uid, course["course_id"])

    stored = await course_service.get_course(db, course["course_id"])
    enrollment = await db.enrollments.find_one({"_id": first["enrollment_id"]})
    assert first["is_new"] is True
    assert second["is_new"] is False
    assert stored["enrollment_count"] == 1
    assert enrollment["pre_course_complete"] is True
    assert enrollment["enrolled_at"] == first["enrolled_at"]


async def test_module_index_unique_within_course(db, admin, course):
    with pytest.raises(ServiceError) as exc:
        await course_service.upsert_module(db, admin, {"course_id": course["course_id"], "index": 1, "title": "Clash"})

    assert exc.value.status_code == 409
    assert exc.value.code == "duplicate_module_index"
    assert (await course_service.get_course(db, course["course_id"]))["module_count"] == 3

    # Re-saving a module at its own index is not a clash
    saved = await course_service.upsert_module(
        db, admin, {"module_id": course["modules"][1], "course_id": course["course_id"], "index": 1, "title": "Kept"}
    )
    assert saved["title"] == "Kept"
