"""Tests for response submission, validation, owner-scoped edits and batch import."""

import uuid

import pytest

from conftest import make_form
from formbuilder.models.form_response import FormResponse
from formbuilder.schemas.forms import Question
from formbuilder.schemas.responses import QuestionResponse
from formbuilder.services.exceptions import InvalidPayloadError
from formbuilder.services.responses import from_epoch_ms, validate_answers

RESPONSES_URL = "/api/responses"
IMPORT_URL = "/api/responses/import"
NOT_AUTHORIZED = "Response not found or not authorized"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _answers(**values):
    return [{"questionId": qid, "value": value} for qid, value in values.items()]


def _valid_answers():
    return _answers(q001="Ana", q002="yes", q003=["car"], q004=2015)


def _submit(client, headers, form, responses=None, **extra):
    payload = {
        "formId": str(form.id),
        "formVersion": form.version,
        "responses": responses or _valid_answers(),
    }
    payload.update(extra)
    return client.post(RESPONSES_URL, json=payload, headers=headers)


def _import_entry(form, responses=None, **extra):
    entry = {
        "formId": str(form.id),
        "formVersion": form.version,
        "responses": responses or _answers(q001="Offline"),
    }
    entry.update(extra)
    return entry


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_response(client, db, form, user, user_headers):
    response = _submit(client, user_headers, form)
    assert response.status_code == 201

    row = db.get(FormResponse, uuid.UUID(response.json()["id"]))
    assert row.user_id == user.id
    assert row.form_version == 1
    assert row.updated_offline is False
    assert row.responses[0] == {"questionId": "q001", "value": "Ana"}


def test_create_response_unknown_form(client, user_headers):
    payload = {"formId": str(uuid.uuid4()), "formVersion": 1, "responses": _answers(q001="x")}
    response = client.post(RESPONSES_URL, json=payload, headers=user_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Form not found"


def test_create_response_requires_session(client, form):
    assert _submit(client, {}, form).status_code == 401


def test_create_response_missing_required(client, form, user_headers):
    response = _submit(client, user_headers, form, responses=_answers(q002="no"))
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert "q001" in detail
    # "Why not?" is required and visible once "no" is selected
    assert "q005" in detail


def test_required_hidden_question_not_enforced(client, form, user_headers):
    response = _submit(client, user_headers, form, responses=_answers(q001="Ana", q002="yes"))
    assert response.status_code == 201


def test_create_response_invalid_option(client, form, user_headers):
    response = _submit(client, user_headers, form, responses=_answers(q001="Ana", q002="maybe"))
    assert response.status_code == 400


def test_create_response_unknown_question(client, form, user_headers):
    response = _submit(client, user_headers, form, responses=_answers(q001="Ana", q002="yes", q999="?"))
    assert response.status_code == 400
    assert "q999" in response.json()["detail"]


def test_create_response_future_version(client, form, user_headers):
    response = _submit(client, user_headers, form, formVersion=5)
    assert response.status_code == 400


def test_create_response_old_version_skips_validation(client, db, admin, user_headers):
    form = make_form(db, admin, version=3)
    response = _submit(
        client, user_headers, form, responses=_answers(legacy="kept as is"), formVersion=2
    )
    assert response.status_code == 201


def test_create_response_empty_answers(client, form, user_headers):
    response = client.post(
        RESPONSES_URL,
        json={"formId": str(form.id), "formVersion": 1, "responses": []},
        headers=user_headers,
    )
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Answer validation
# ---------------------------------------------------------------------------


def _typed_questions():
    return [
        Question(id="n", text="Age", type="number"),
        Question(id="b", text="Agree", type="boolean"),
        Question(id="d", text="When", type="date"),
        Question(id="t", text="Notes", type="text"),
    ]


@pytest.mark.parametrize(
    "question_id,value",
    [
        ("n", "forty"),
        ("n", True),
        ("b", "yes"),
        ("d", "31/12/2024"),
        ("t", 12),
    ],
)
def test_validate_answers_rejects_wrong_shapes(question_id, value):
    with pytest.raises(InvalidPayloadError):
        validate_answers(_typed_questions(), [QuestionResponse(question_id=question_id, value=value)])


def test_validate_answers_accepts_valid_shapes():
    validate_answers(
        _typed_questions(),
        [
            QuestionResponse(question_id="n", value=41.5),
            QuestionResponse(question_id="b", value=False),
            QuestionResponse(question_id="d", value="2024-12-31"),
            QuestionResponse(question_id="t", value=""),
        ],
    )


def test_validate_answers_rejects_duplicates():
    with pytest.raises(InvalidPayloadError, match="more than once"):
        validate_answers(
            _typed_questions(),
            [QuestionResponse(question_id="t", value="a"), QuestionResponse(question_id="t", value="b")],
        )


# ---------------------------------------------------------------------------
# Replace / delete
# ---------------------------------------------------------------------------


def test_replace_response_in_place(client, db, form, user, user_headers):
    response_id = _submit(client, user_headers, form).json()["id"]
    row = db.get(FormResponse, uuid.UUID(response_id))
    created_at = row.created_at

    response = client.put(
        f"{RESPONSES_URL}/{response_id}",
        json={"responses": _answers(q001="Ana Maria", q002="no", q005="Too expensive")},
        headers=user_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == response_id
    assert data["userId"] == str(user.id)
    assert data["username"] == user.username
    assert data["responses"][0]["value"] == "Ana Maria"

    db.refresh(row)
    assert row.created_at == created_at
    assert db.query(FormResponse).count() == 1


def test_replace_response_validates(client, form, user_headers):
    response_id = _submit(client, user_headers, form).json()["id"]
    response = client.put(
        f"{RESPONSES_URL}/{response_id}",
        json={"responses": _answers(q002="no")},
        headers=user_headers,
    )
    assert response.status_code == 400


def test_replace_response_of_other_user(client, form, user_headers, other_headers):
    response_id = _submit(client, user_headers, form).json()["id"]
    response = client.put(
        f"{RESPONSES_URL}/{response_id}",
        json={"responses": _valid_answers()},
        headers=other_headers,
    )
    assert response.status_code == 404
    assert response.json()["detail"] == NOT_AUTHORIZED


def test_delete_own_response(client, db, form, user_headers):
    response_id = _submit(client, user_headers, form).json()["id"]
    response = client.delete(f"{RESPONSES_URL}/{response_id}", headers=user_headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Response deleted"}
    assert db.query(FormResponse).count() == 0


def test_delete_response_of_other_user_is_not_found(client, db, form, user_headers, other_headers):
    response_id = _submit(client, user_headers, form).json()["id"]
    response = client.delete(f"{RESPONSES_URL}/{response_id}", headers=other_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == NOT_AUTHORIZED
    assert db.query(FormResponse).count() == 1


def test_admin_deletes_any_response(client, db, form, user_headers, admin_headers):
    response_id = _submit(client, user_headers, form).json()["id"]
    response = client.delete(f"{RESPONSES_URL}/{response_id}", headers=admin_headers)
    assert response.status_code == 200
    assert db.query(FormResponse).count() == 0


def test_delete_missing_response(client, user_headers):
    response = client.delete(f"{RESPONSES_URL}/{uuid.uuid4()}", headers=user_headers)
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def test_list_form_responses(client, form, user, user_headers, other_headers):
    _submit(client, user_headers, form)
    _submit(client, other_headers, form)

    response = client.get(f"/api/forms/{form.id}/responses", headers=user_headers)
    assert response.status_code == 200
    data = response.json()
    assert len(data) == 2
    assert {r["username"] for r in data} == {"alice", "bob"}
    assert all(isinstance(r["createdAt"], int) for r in data)


# ---------------------------------------------------------------------------
# Batch import
# ---------------------------------------------------------------------------


def test_import_batch(client, db, form, user, user_headers):
    created_at = 1_700_000_000_000
    entries = [
        _import_entry(form, createdAt=created_at),
        _import_entry(form, responses=_answers(q001="Second", q002="no")),
    ]
    response = client.post(IMPORT_URL, json=entries, headers=user_headers)
    assert response.status_code == 200
    assert response.json() == {"imported": 2, "message": "Responses imported"}

    rows = db.query(FormResponse).all()
    assert len(rows) == 2
    assert all(r.updated_offline for r in rows)
    assert all(r.user_id == user.id for r in rows)
    assert from_epoch_ms(created_at) in {r.created_at for r in rows}


def test_import_is_all_or_nothing(client, db, form, user_headers):
    entries = [_import_entry(form) for _ in range(5)]
    entries[2] = _import_entry(form, formId=str(uuid.uuid4()))

    response = client.post(IMPORT_URL, json=entries, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Entry 3:")
    assert db.query(FormResponse).count() == 0


def test_import_rejects_bad_value_shape(client, db, form, user_headers):
    entries = [_import_entry(form), _import_entry(form, responses=_answers(q004="old"))]
    response = client.post(IMPORT_URL, json=entries, headers=user_headers)
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Entry 2:")
    assert db.query(FormResponse).count() == 0


def test_import_empty_batch(client, user_headers):
    response = client.post(IMPORT_URL, json=[], headers=user_headers)
    assert response.status_code == 200
    assert response.json()["imported"] == 0


def test_import_requires_session(client, form):
    assert client.post(IMPORT_URL, json=[_import_entry(form)]).status_code == 401


def test_import_rejects_out_of_range_created_at(client, db, form, user_headers):
    entries = [_import_entry(form), _import_entry(form, createdAt=10**18)]
    response = client.post(IMPORT_URL, json=entries, headers=user_headers)
    assert response.status_code == 400
    assert db.query(FormResponse).count() == 0
