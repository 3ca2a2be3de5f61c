"""
API tests for the quiz endpoints.

The application is built around an in-memory service with a controllable
clock, so no database is needed.
"""

import pytest
from fastapi.testclient import TestClient

from academy.main import create_app
from academy.tests.conftest import CORRECT_ANSWERS

BASE = "/api/v1/quizzes"
AUTHOR = {"Authorization": "Bearer instructor-1"}
STUDENT = {"Authorization": "Bearer student-1"}
OTHER_STUDENT = {"Authorization": "Bearer student-2"}


@pytest.fixture
def client(service):
    """Create test client for the application"""
    with TestClient(create_app(service=service)) as client:
        yield client


def start(client, headers=STUDENT, quiz_id="quiz-1"):
    response = client.post(f"{BASE}/{quiz_id}/attempts", headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuthentication:
    def test_missing_header(self, client):
        assert client.get(BASE).status_code == 401

    @pytest.mark.parametrize("header", ["instructor-1", "Basic instructor-1", "Bearer a b"])
    def test_malformed_header(self, client, header):
        assert client.get(BASE, headers={"Authorization": header}).status_code == 401

    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestQuizEndpoints:
    def test_author_sees_answers(self, client):
        data = client.get(f"{BASE}/quiz-1", headers=AUTHOR).json()
        mcq = next(q for q in data["questions"] if q["id"] == "q-mcq")
        assert mcq["correct_answer"] == "B"

    def test_student_does_not_see_answers(self, client):
        data = client.get(f"{BASE}/quiz-1", headers=STUDENT).json()
        assert data["total_questions"] == 7
        assert all("correct_answer" not in q for q in data["questions"])

    def test_unknown_quiz(self, client):
        response = client.get(f"{BASE}/missing", headers=STUDENT)
        assert response.status_code == 404
        assert response.json()["code"] == "quiz_not_found"

    def test_create_update_delete(self, client):
        response = client.post(BASE, headers=AUTHOR, json={
            "title": "Capitals",
            "category": "geography",
            "time_limit": 5,
            "questions": [
                {"question_text": "Capital of Italy", "question_type": "fill_blanks", "correct_answer": ["Rome"]},
                {"question_text": "Judge", "question_type": "multiple_true_false",
                 "sub_statements": [{"text": "Oslo is in Norway", "is_true": True, "points": 2}]},
            ],
        })
        assert response.status_code == 201, response.text
        created = response.json()
        assert created["created_by"] == "instructor-1"
        assert [q["order"] for q in created["questions"]] == [1, 2]
        assert created["total_points"] == 3

        response = client.patch(f"{BASE}/{created['id']}", headers=AUTHOR, json={"passing_score": 80})
        assert response.status_code == 200
        assert response.json()["passing_score"] == 80

        assert client.delete(f"{BASE}/{created['id']}", headers=AUTHOR).status_code == 204
        assert client.get(f"{BASE}/{created['id']}", headers=AUTHOR).status_code == 404

    def test_request_validation(self, client):
        response = client.post(BASE, headers=AUTHOR, json={"title": "Bad", "passing_score": 150})
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_invalid_quiz_settings(self, client):
        response = client.post(BASE, headers=AUTHOR, json={"title": "Bad", "difficulty": "brutal"})
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_quiz"

    def test_list_pagination(self, client):
        for i in range(3):
            client.post(BASE, headers=AUTHOR, json={"title": f"Extra {i}", "category": "extra"})

        data = client.get(BASE, headers=STUDENT, params={"per_page": 2, "page": 2}).json()
        assert data["total"] == 4
        assert data["page"] == 2
        assert len(data["items"]) == 2

        data = client.get(BASE, headers=STUDENT, params={"category": "extra"}).json()
        assert data["total"] == 3
        assert data["per_page"] == 15

    def test_delete_quiz_in_use(self, client):
        start(client)
        response = client.delete(f"{BASE}/quiz-1", headers=AUTHOR)
        assert response.status_code == 409
        assert response.json()["code"] == "quiz_in_use"


class TestQuestionEndpoints:
    def test_add_question(self, client):
        response = client.post(f"{BASE}/quiz-1/questions", headers=AUTHOR, json={
            "question_text": "Pick two", "question_type": "multiple_answer",
            "options": ["a", "b", "c"], "correct_answer": ["a", "c"], "points": 2,
        })
        assert response.status_code == 201, response.text
        assert response.json()["order"] == 8

    def test_invalid_question(self, client):
        response = client.post(f"{BASE}/quiz-1/questions", headers=AUTHOR, json={
            "question_text": "Pick", "question_type": "mcq", "options": ["a", "b"], "correct_answer": "z",
        })
        assert response.status_code == 422
        assert response.json()["code"] == "invalid_question"

    def test_duplicate_order(self, client):
        response = client.post(f"{BASE}/quiz-1/questions", headers=AUTHOR, json={
            "question_text": "Clash", "question_type": "true_false", "correct_answer": True, "order": 1,
        })
        assert response.status_code == 422
        assert response.json()["code"] == "duplicate_question_order"

    def test_update_and_delete(self, client):
        response = client.patch(f"{BASE}/quiz-1/questions/q-tf", headers=AUTHOR, json={"correct_answer": False})
        assert response.status_code == 200
        assert response.json()["correct_answer"] is False

        assert client.delete(f"{BASE}/quiz-1/questions/q-tf", headers=AUTHOR).status_code == 204
        response = client.delete(f"{BASE}/quiz-1/questions/q-tf", headers=AUTHOR)
        assert response.status_code == 404
        assert response.json()["code"] == "question_not_found"


class TestAttemptEndpoints:
    def test_full_flow(self, client, clock):
        attempt = start(client)
        assert attempt["status"] == "in_progress"
        assert attempt["remaining_time"] == 600
        assert len(attempt["questions"]) == 7

        clock.advance(minutes=1)
        response = client.put(f"{BASE}/attempts/{attempt['id']}/answers", headers=STUDENT,
                              json={"answers": {"q-mcq": "B"}})
        assert response.status_code == 200
        assert response.json()["progress_percentage"] == 14.3

        clock.advance(minutes=1)
        response = client.post(f"{BASE}/attempts/{attempt['id']}/complete", headers=STUDENT,
                               json={"answers": CORRECT_ANSWERS})
        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "completed"
        assert result["percentage"] == 80.0
        assert result["is_passed"] is True
        assert result["time_taken_formatted"] == "2m 0s"

        response = client.get(f"{BASE}/quiz-1/stats", headers=AUTHOR)
        assert response.json()["completed_attempts"] == 1

    def test_start_resumes(self, client):
        first = start(client)
        assert start(client)["id"] == first["id"]

    def test_complete_twice(self, client):
        attempt = start(client)
        client.post(f"{BASE}/attempts/{attempt['id']}/complete", headers=STUDENT)
        response = client.post(f"{BASE}/attempts/{attempt['id']}/complete", headers=STUDENT)
        assert response.status_code == 409
        assert response.json()["code"] == "attempt_state_conflict"

    def test_malformed_answer(self, client):
        attempt = start(client)
        response = client.put(f"{BASE}/attempts/{attempt['id']}/answers", headers=STUDENT,
                              json={"answers": {"q-multi": "A"}})
        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "malformed_answer"
        assert body["details"]["question_id"] == "q-multi"

    def test_expired_submission(self, client, clock):
        attempt = start(client)
        clock.advance(minutes=11)
        response = client.post(f"{BASE}/attempts/{attempt['id']}/complete", headers=STUDENT,
                               json={"answers": CORRECT_ANSWERS})
        assert response.status_code == 409
        assert response.json()["code"] == "attempt_expired"

        view = client.get(f"{BASE}/attempts/{attempt['id']}", headers=STUDENT).json()
        assert view["status"] == "timed_out"

    def test_timeout_before_deadline(self, client):
        attempt = start(client)
        response = client.post(f"{BASE}/attempts/{attempt['id']}/timeout", headers=STUDENT)
        assert response.status_code == 422
        assert response.json()["code"] == "attempt_not_expired"

    def test_abandon(self, client):
        attempt = start(client)
        response = client.post(f"{BASE}/attempts/{attempt['id']}/abandon", headers=STUDENT)
        assert response.status_code == 200
        assert response.json()["status_label"] == "Abandoned"

    def test_other_students_attempt(self, client):
        attempt = start(client)
        response = client.get(f"{BASE}/attempts/{attempt['id']}", headers=OTHER_STUDENT)
        assert response.status_code == 404
        assert response.json()["code"] == "attempt_not_found"

    def test_max_attempts(self, client):
        quiz = client.post(BASE, headers=AUTHOR, json={
            "title": "Once only",
            "max_attempts": 1,
            "questions": [{"question_text": "Sky is blue", "question_type": "true_false", "correct_answer": True}],
        }).json()

        attempt = start(client, quiz_id=quiz["id"])
        client.post(f"{BASE}/attempts/{attempt['id']}/complete", headers=STUDENT, json={"answers": {}})

        response = client.post(f"{BASE}/{quiz['id']}/attempts", headers=STUDENT)
        assert response.status_code == 403
        assert response.json()["code"] == "max_attempts_reached"

    def test_inactive_quiz(self, client):
        client.patch(f"{BASE}/quiz-1", headers=AUTHOR, json={"is_active": False})
        response = client.post(f"{BASE}/quiz-1/attempts", headers=STUDENT)
        assert response.status_code == 403
        assert response.json()["code"] == "not_available"

    def test_attempt_listing_visibility(self, client):
        start(client, STUDENT)
        start(client, OTHER_STUDENT)

        own = client.get(f"{BASE}/quiz-1/attempts", headers=STUDENT).json()
        assert [a["student_id"] for a in own] == ["student-1"]

        everything = client.get(f"{BASE}/quiz-1/attempts", headers=AUTHOR).json()
        assert len(everything) == 2
