import pytest
from fastapi.testclient import TestClient

from app.auth.firebase_auth import get_current_user
from app.core.database import get_db
from app.courses import course_service
from app.main import app
from app.questionnaires import template_service

from factories import ADMIN, LEARNER, OTHER_ADMIN, template_payload
from fake_db import FakeDatabase


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def admin():
    return ADMIN


@pytest.fixture
def other_admin():
    return OTHER_ADMIN


@pytest.fixture
def learner():
    return LEARNER


@pytest.fixture
async def course(db, admin):
    """Published course with three modules (index 0, 1, 2)"""
    created = await course_service.upsert_course(db, admin, {"title": "Intro", "description": "Basics"})
    modules = []
    for index in range(3):
        module = await course_service.upsert_module(
            db, admin, {"course_id": created["course_id"], "index": index, "title": f"Module {index}"}
        )
        modules.append(module)
    await course_service.publish_course(db, admin, created["course_id"], True)
    return {"course_id": created["course_id"], "modules": [m["module_id"] for m in modules]}


@pytest.fixture
async def template(db, admin):
    """Quiz with one single-choice question, correct answer "b", worth 2 points"""
    return await template_service.upsert_template(db, admin, template_payload())


@pytest.fixture
def identity():
    """Mutable holder for the user the test client authenticates as"""
    return {"user": LEARNER}


@pytest.fixture
def client(db, identity):
    """TestClient without startup hooks, database and identity overridden"""

    async def override_db():
        return db

    async def override_user():
        return identity["user"]

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user] = override_user

    yield TestClient(app)

    app.dependency_overrides.clear()
