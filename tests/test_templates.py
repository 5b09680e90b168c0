import pytest

from app.core.errors import ServiceError
from app.questionnaires import template_service

from factories import single_question, template_payload


async def test_create_starts_at_version_one(db, admin):
    result = await template_service.upsert_template(db, admin, template_payload(version=0))

    assert result["version"] == 1
    assert result["questionnaire_id"].startswith("QNR_")
    snapshot = await template_service.get_template_version(db, result["questionnaire_id"], 1)
    assert snapshot["questions"][0]["correct"] == ["b"]


async def test_update_writes_new_snapshot_and_keeps_old_one(db, admin, template):
    qid = template["questionnaire_id"]
    payload = template_payload(
        questionnaire_id=qid,
        version=1,
        questions=[single_question(correct=["c"], points=5)],
    )

    result = await template_service.upsert_template(db, admin, payload)

    assert result["version"] == 2
    old = await template_service.get_template_version(db, qid, 1)
    new = await template_service.get_template_version(db, qid, 2)
    assert old["questions"][0]["correct"] == ["b"]
    assert new["questions"][0]["points"] == 5


async def test_update_can_jump_ahead(db, admin, template):
    payload = template_payload(questionnaire_id=template["questionnaire_id"], version=7)
    result = await template_service.upsert_template(db, admin, payload)
    assert result["version"] == 7


async def test_update_without_version_takes_next_one(db, admin, template):
    qid = template["questionnaire_id"]

    first = await template_service.upsert_template(db, admin, template_payload(questionnaire_id=qid, version=None))
    second = await template_service.upsert_template(db, admin, template_payload(questionnaire_id=qid, version=None))

    assert first["version"] == 2
    assert second["version"] == 3
    assert await db.questionnaire_versions.count_documents({"questionnaire_id": qid}) == 3


async def test_version_regression_rejected(db, admin, template):
    qid = template["questionnaire_id"]
    await template_service.upsert_template(db, admin, template_payload(questionnaire_id=qid, version=3))

    with pytest.raises(ServiceError) as exc:
        await template_service.upsert_template(db, admin, template_payload(questionnaire_id=qid, version=2))

    assert exc.value.status_code == 409
    assert exc.value.code == "version_regression"
    assert await db.questionnaire_versions.count_documents({"questionnaire_id": qid}) == 2


async def test_only_owner_can_update(db, other_admin, template):
    payload = template_payload(questionnaire_id=template["questionnaire_id"], version=2)

    with pytest.raises(ServiceError) as exc:
        await template_service.upsert_template(db, other_admin, payload)

    assert exc.value.status_code == 403


async def test_missing_version_snapshot_is_not_found(db, template):
    with pytest.raises(ServiceError) as exc:
        await template_service.get_template_version(db, template["questionnaire_id"], 9)
    assert exc.value.status_code == 404


@pytest.mark.parametrize(
    "question, code",
    [
        ({**single_question(), "options": []}, "validation_error"),
        (
            {**single_question(), "options": [{"id": "a", "label": "A"}, {"id": "a", "label": "B"}]},
            "duplicate_option_ids",
        ),
        (single_question(correct=["z"]), "validation_error"),
        ({"id": "s", "type": "scale", "prompt": "Rate", "scale": {"min": 5, "max": 5}}, "validation_error"),
        ({"id": "s", "type": "scale", "prompt": "Rate"}, "validation_error"),
    ],
)
async def test_structural_validation(db, admin, question, code):
    with pytest.raises(ServiceError) as exc:
        await template_service.upsert_template(db, admin, template_payload(questions=[question]))

    assert exc.value.status_code == 422
    assert exc.value.code == code
    assert await db.questionnaires.count_documents({}) == 0


async def test_duplicate_question_ids_rejected(db, admin):
    questions = [single_question("q1"), single_question("q1")]

    with pytest.raises(ServiceError) as exc:
        await template_service.upsert_template(db, admin, template_payload(questions=questions))

    assert exc.value.status_code == 422


def test_points_below_one_rejected():
    with pytest.raises(ServiceError):
        template_service.validate_template_structure([single_question(points=0)])


async def test_list_templates_only_returns_callers(db, admin, other_admin, template):
    await template_service.upsert_template(db, other_admin, template_payload(title="Theirs"))

    mine = await template_service.list_templates(db, admin)

    assert [t["questionnaire_id"] for t in mine] == [template["questionnaire_id"]]
    assert mine[0]["question_count"] == 1


async def test_write_is_audited(db, admin, template):
    entry = await db.audit_logs.find_one({"target_id": template["questionnaire_id"]})
    assert entry["action"] == "create_questionnaire"
    assert entry["actor_id"] == admin.uid
