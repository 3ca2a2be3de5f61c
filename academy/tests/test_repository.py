"""
Tests for the SQLAlchemy quiz repository against a throwaway SQLite database.
"""

import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from academy.assessments.quiz.attempts import Attempt, AttemptStatus
from academy.assessments.quiz.models import Question, QuizDifficulty
from academy.assessments.quiz.repository import QuizFilter, SQLAlchemyQuizRepository
from academy.common.error_handling import (
    AttemptNotFoundError,
    AttemptStateConflictError,
    DuplicateQuestionOrderError,
)
from academy.database.init_db import create_schema, create_session_factory
from academy.tests.conftest import CORRECT_ANSWERS, NOW, make_quiz


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Create a file-backed SQLite engine with the full schema"""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quiz.db'}")
    await create_schema(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def sql_repository(engine, quiz):
    repository = SQLAlchemyQuizRepository(create_session_factory(engine))
    await repository.save_quiz(quiz)
    return repository


def later(**kwargs) -> datetime.datetime:
    return NOW + datetime.timedelta(**kwargs)


class TestQuizPersistence:
    @pytest.mark.asyncio
    async def test_round_trip_keeps_every_question_type(self, sql_repository, quiz):
        stored = await sql_repository.get_quiz(quiz.id)

        assert stored.title == quiz.title
        assert stored.difficulty is QuizDifficulty.MEDIUM
        assert stored.created_at == NOW
        assert [q.id for q in stored.questions] == [q.id for q in quiz.questions]
        for original, loaded in zip(quiz.questions, stored.questions):
            assert loaded.answer_key == original.answer_key
            assert loaded.options == original.options
            assert loaded.points == original.points

    @pytest.mark.asyncio
    async def test_loaded_questions_score_like_the_originals(self, sql_repository, quiz):
        stored = await sql_repository.get_quiz(quiz.id)
        attempt = Attempt.start(stored, "student-1", NOW)
        attempt.complete(stored, CORRECT_ANSWERS, later(minutes=1))
        assert attempt.percentage == 80.0

    @pytest.mark.asyncio
    async def test_missing_quiz(self, sql_repository):
        assert await sql_repository.get_quiz("missing") is None

    @pytest.mark.asyncio
    async def test_save_updates_metadata_only(self, sql_repository, quiz):
        updated = quiz.with_changes({"title": "Renamed", "max_attempts": 3, "questions": []})
        await sql_repository.save_quiz(updated)

        stored = await sql_repository.get_quiz(quiz.id)
        assert stored.title == "Renamed"
        assert stored.max_attempts == 3
        assert stored.total_questions == 7

    @pytest.mark.asyncio
    async def test_list_filters_and_paging(self, sql_repository):
        await sql_repository.save_quiz(make_quiz("quiz-2", title="Algebra", category="math",
                                                 difficulty="hard", questions=[],
                                                 created_at=later(days=1)))
        await sql_repository.save_quiz(make_quiz("quiz-3", title="Geometry", category="math",
                                                 is_active=False, questions=[],
                                                 created_at=later(days=2)))

        items, total = await sql_repository.list_quizzes(QuizFilter(), limit=2)
        assert total == 3
        assert [q.id for q in items] == ["quiz-3", "quiz-2"]

        items, total = await sql_repository.list_quizzes(QuizFilter(category="math", available_only=True, now=NOW),
                                                         limit=10)
        assert [q.id for q in items] == ["quiz-2"]

        items, _ = await sql_repository.list_quizzes(QuizFilter(difficulty=QuizDifficulty.HARD), limit=10)
        assert [q.id for q in items] == ["quiz-2"]

        items, _ = await sql_repository.list_quizzes(QuizFilter(search="geo"), limit=10)
        assert [q.id for q in items] == ["quiz-3"]

        items, _ = await sql_repository.list_quizzes(QuizFilter(search="math"), limit=10)
        assert [q.id for q in items] == ["quiz-3", "quiz-2"]

    @pytest.mark.asyncio
    async def test_delete_cascades_to_questions(self, sql_repository, quiz):
        assert await sql_repository.delete_quiz(quiz.id)
        assert await sql_repository.get_quiz(quiz.id) is None
        assert not await sql_repository.delete_question("q-mcq")
        assert not await sql_repository.delete_quiz(quiz.id)


class TestQuestionPersistence:
    @pytest.mark.asyncio
    async def test_add_and_update(self, sql_repository, quiz):
        question = Question.create(quiz.id, "Extra", "true_false", correct_answer=False,
                                   order=8, question_id="q-extra")
        await sql_repository.add_question(question)

        changed = question.with_changes({"correct_answer": True, "points": 4})
        await sql_repository.update_question(changed)

        stored = (await sql_repository.get_quiz(quiz.id)).get_question("q-extra")
        assert stored.correct_answer is True
        assert stored.points == 4

    @pytest.mark.asyncio
    async def test_duplicate_order_is_reported(self, sql_repository, quiz):
        clash = Question.create(quiz.id, "Clash", "true_false", correct_answer=True, order=1)
        with pytest.raises(DuplicateQuestionOrderError):
            await sql_repository.add_question(clash)

        moved = quiz.get_question("q-tf").with_changes({"order": 1})
        with pytest.raises(DuplicateQuestionOrderError):
            await sql_repository.update_question(moved)

    @pytest.mark.asyncio
    async def test_delete_question(self, sql_repository, quiz):
        assert await sql_repository.delete_question("q-desc")
        assert (await sql_repository.get_quiz(quiz.id)).total_questions == 6


class TestAttemptPersistence:
    @pytest.mark.asyncio
    async def test_conditional_update(self, sql_repository, quiz):
        attempt = Attempt.start(quiz, "student-1", NOW)
        await sql_repository.add_attempt(attempt)

        stale = await sql_repository.get_attempt(attempt.id)

        attempt.record_answers({"q-tf": True}, later(minutes=1))
        await sql_repository.update_attempt(attempt, "save_answers")
        assert attempt.version == 1

        stale.abandon(later(minutes=2))
        with pytest.raises(AttemptStateConflictError):
            await sql_repository.update_attempt(stale, "abandon")

        attempt.complete(quiz, CORRECT_ANSWERS, later(minutes=3))
        await sql_repository.update_attempt(attempt, "complete")

        stored = await sql_repository.get_attempt(attempt.id)
        assert stored.status is AttemptStatus.COMPLETED
        assert stored.version == 2
        assert stored.percentage == 80.0
        assert stored.answers["q-match"] == {"two": "2", "one": "1"}
        assert stored.completed_at == later(minutes=3)

    @pytest.mark.asyncio
    async def test_manual_scores_are_stored(self, sql_repository, quiz):
        attempt = Attempt.start(quiz, "student-1", NOW)
        await sql_repository.add_attempt(attempt)
        attempt.complete(quiz, CORRECT_ANSWERS, later(minutes=1), manual_scores={"q-desc": 2, "q-mcq": 5})
        await sql_repository.update_attempt(attempt, "complete")

        stored = await sql_repository.get_attempt(attempt.id)
        assert stored.manual_scores == {"q-desc": 2.0}
        assert stored.score == 14.0

    @pytest.mark.asyncio
    async def test_terminal_attempt_cannot_be_overwritten(self, sql_repository, quiz):
        attempt = Attempt.start(quiz, "student-1", NOW)
        await sql_repository.add_attempt(attempt)
        attempt.abandon(later(minutes=1))
        await sql_repository.update_attempt(attempt, "abandon")

        reloaded = await sql_repository.get_attempt(attempt.id)
        reloaded.status = AttemptStatus.IN_PROGRESS
        reloaded.complete(quiz, CORRECT_ANSWERS, later(minutes=2))
        with pytest.raises(AttemptStateConflictError) as exc_info:
            await sql_repository.update_attempt(reloaded, "complete")
        assert exc_info.value.current_status == "abandoned"

    @pytest.mark.asyncio
    async def test_update_of_unknown_attempt(self, sql_repository, quiz):
        with pytest.raises(AttemptNotFoundError):
            await sql_repository.update_attempt(Attempt.start(quiz, "student-1", NOW), "abandon")

    @pytest.mark.asyncio
    async def test_listing_and_counting(self, sql_repository, quiz):
        for student, offset in (("student-1", 0), ("student-1", 5), ("student-2", 1)):
            await sql_repository.add_attempt(Attempt.start(quiz, student, later(minutes=offset)))

        finished = (await sql_repository.list_attempts(student_id="student-1"))[0]
        finished.abandon(later(minutes=2))
        await sql_repository.update_attempt(finished, "abandon")

        assert await sql_repository.count_attempts(quiz.id) == 3
        assert await sql_repository.count_attempts(quiz.id, "student-1") == 2
        assert await sql_repository.count_attempts("missing") == 0

        in_progress = await sql_repository.list_attempts(quiz_id=quiz.id, status=AttemptStatus.IN_PROGRESS)
        assert [a.student_id for a in in_progress] == ["student-2", "student-1"]
