import pytest
from fastapi.testclient import TestClient
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.dialects.sqlite import base as sqlite_base
from sqlalchemy.orm import sessionmaker

import formbuilder.models  # noqa: F401  (registers models with Base.metadata)
from formbuilder.core.config import settings
from formbuilder.core.database import Base, get_db
from formbuilder.main import app as fastapi_app
from formbuilder.models import Form, User
from formbuilder.schemas.forms import Question
from formbuilder.services.auth import create_session_token, create_user
from formbuilder.services.forms import prepare_questions

# Enable debug mode for tests (allows non-HTTPS cookies in TestClient)
settings.DEBUG = True

# ---------------------------------------------------------------------------
# SQLite compatibility for PostgreSQL-specific types (JSONB)
# ---------------------------------------------------------------------------
sqlite_base.SQLiteTypeCompiler.visit_JSONB = lambda self, type_, **kw: self.visit_JSON(type_, **kw)

# In-memory SQLite for tests, no PostgreSQL needed
TEST_DATABASE_URL = "sqlite://"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# A parent with two options; each option reveals its own sub-question, and
# the "Car" sub-question reveals a third level.
SAMPLE_QUESTIONS = [
    {"id": "a", "text": "Name", "type": "text", "required": True},
    {
        "id": "b",
        "text": "Do you own a vehicle?",
        "type": "select",
        "required": True,
        "options": [{"id": "yes", "text": "Yes"}, {"id": "no", "text": "No"}],
    },
    {
        "id": "c",
        "text": "Which kind?",
        "type": "multiselect",
        "options": [{"id": "car", "text": "Car"}, {"id": "bike", "text": "Bike"}],
        "parentId": "b",
        "parentOptionId": "yes",
    },
    {
        "id": "d",
        "text": "Why not?",
        "type": "text",
        "required": True,
        "parentId": "b",
        "parentOptionId": "no",
    },
    {
        "id": "e",
        "text": "Car year",
        "type": "number",
        "parentId": "c",
        "parentOptionId": "car",
    },
]


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Provide a test database session."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    """TestClient with overridden DB dependency."""

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def admin(db) -> User:
    return create_user(db, username="admin", password="admin-pass", role="admin")


@pytest.fixture
def user(db) -> User:
    return create_user(db, username="alice", password="alice-pass")


@pytest.fixture
def other_user(db) -> User:
    return create_user(db, username="bob", password="bob-pass")


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user)}"}


@pytest.fixture
def admin_headers(admin) -> dict:
    return auth_header(admin)


@pytest.fixture
def user_headers(user) -> dict:
    return auth_header(user)


@pytest.fixture
def other_headers(other_user) -> dict:
    return auth_header(other_user)


def make_form(db, owner: User, questions=None, name="Vehicle survey", version=1) -> Form:
    """Insert a form directly, stored in canonical order like the API does."""
    parsed = [Question.model_validate(q) for q in (questions or SAMPLE_QUESTIONS)]
    form = Form(
        name=name,
        description="",
        questions=[q.to_storage() for q in prepare_questions(parsed)],
        created_by=owner.id,
        version=version,
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    return form


@pytest.fixture
def form(db, admin) -> Form:
    return make_form(db, admin)
