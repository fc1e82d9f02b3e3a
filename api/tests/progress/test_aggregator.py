"""Tests for weighted course progress.

Lessons 60, quiz 20 (binary on pass), short-answer sets 20.
"""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from learnhub.core.exceptions import NotEligibleError, ProgressComputeError
from learnhub.progress.aggregator import (
    latest_completed_per_set,
    lesson_points,
    short_question_points,
)
from learnhub.quizzes.models import QuizQuestion
from learnhub.short_questions.models import (
    AttemptStatus,
    ShortQuestion,
    ShortQuestionAttempt,
)


def quiz_questions(count: int) -> list[QuizQuestion]:
    return [
        QuizQuestion(question=f"Question {i}", options=["a", "b", "c"], correct_index=0)
        for i in range(count)
    ]


def answers_with_correct(correct: int, total: int) -> dict[int, int]:
    """First ``correct`` answers right, the rest wrong."""
    return {i: 0 if i < correct else 1 for i in range(total)}


@pytest.fixture
def complete_lessons(lesson_progress_service):
    async def _complete(course, student, lessons):
        for lesson in lessons:
            await lesson_progress_service.mark_lesson_completed(
                student.id, course.course_id, lesson.lesson_id
            )

    return _complete


@pytest.fixture
def take_quiz(quiz_service):
    async def _take(course, student, correct: int, total: int):
        await quiz_service.start_quiz(course.course_id, student.id)
        return await quiz_service.submit_quiz(
            course.course_id, student.id, answers_with_correct(correct, total)
        )

    return _take


@pytest.fixture
def pass_short_question_set(short_question_service):
    """Create a one-question set and grade the student's attempt."""

    async def _run(course, student, instructor, points: int, title="Essay"):
        question_set = await short_question_service.save_set(
            course.course_id,
            instructor,
            title,
            [ShortQuestion(question="Explain", correct_answer="...", points=10)],
        )
        attempt = await short_question_service.start_attempt(
            question_set.set_id, student.id
        )
        await short_question_service.submit_attempt(
            attempt.attempt_id, student.id, {0: "My answer"}
        )
        graded, breakdown = await short_question_service.grade_attempt(
            attempt.attempt_id, instructor, {0: (points, None)}
        )
        return graded, breakdown

    return _run


class TestShareFormulas:
    """Tests for the pure share functions."""

    @pytest.mark.parametrize(
        ("completed", "total", "expected"),
        [
            (0, 10, 0),
            (5, 10, 30),
            (10, 10, 60),
            (3, 8, 23),  # 22.5 rounds half up
            (1, 3, 20),
            (2, 3, 40),
            (12, 10, 60),
            (0, 0, 0),
            (4, 0, 0),
        ],
    )
    def test_lesson_points(self, completed, total, expected):
        assert lesson_points(completed, total) == expected

    @pytest.mark.parametrize(
        ("passed", "attempted", "expected"),
        [
            (0, 0, 0),
            (0, 3, 0),
            (1, 2, 10),
            (1, 8, 3),  # 2.5 rounds half up
            (2, 3, 13),
            (3, 3, 20),
        ],
    )
    def test_short_question_points(self, passed, attempted, expected):
        assert short_question_points(passed, attempted) == expected

    def test_latest_completed_attempt_per_set(self):
        """Only the newest completed attempt of each set counts."""
        set_a, set_b = uuid4(), uuid4()
        course_id, student_id = uuid4(), uuid4()

        def attempt(set_id, number, status, passed):
            return ShortQuestionAttempt(
                course_id=course_id,
                student_id=student_id,
                set_id=set_id,
                attempt_number=number,
                answers=[],
                status=status.value,
                passed=passed,
            )

        attempts = [
            attempt(set_a, 1, AttemptStatus.COMPLETED, False),
            attempt(set_a, 2, AttemptStatus.COMPLETED, True),
            attempt(set_b, 1, AttemptStatus.COMPLETED, True),
            attempt(set_b, 2, AttemptStatus.SUBMITTED, False),
        ]

        latest = latest_completed_per_set(attempts)

        by_set = {a.set_id: a for a in latest}
        assert by_set[set_a].attempt_number == 2
        assert by_set[set_b].attempt_number == 1
        assert all(a.passed for a in latest)


class TestComputeProgress:
    """Tests for ProgressAggregator against real sub-progress records."""

    @pytest.mark.asyncio
    async def test_enrollment_without_activity(
        self, aggregator, course, student, instructor, add_lessons, enroll
    ):
        await add_lessons(course, instructor, 4)
        await enroll(course, student, instructor)

        breakdown = await aggregator.compute(course.course_id, student.id)

        assert breakdown.total == 0
        assert breakdown.lessons.total == 4
        assert breakdown.quiz.attempted is False
        assert breakdown.short_questions.attempted == 0

    @pytest.mark.asyncio
    async def test_lessons_then_quiz_at_80(
        self,
        aggregator,
        ledger,
        quiz_service,
        course,
        student,
        instructor,
        add_lessons,
        enroll,
        complete_lessons,
        take_quiz,
    ):
        """10 lessons done and the quiz passed at 80% gives 80; no graduation."""
        lessons = await add_lessons(course, instructor, 10)
        await quiz_service.save_quiz(
            course.course_id, instructor, "Final quiz", quiz_questions(10)
        )
        await enroll(course, student, instructor)

        await complete_lessons(course, student, lessons)
        enrollment = await ledger.get_for_student(course.course_id, student.id)
        assert enrollment.progress == 60

        progress, breakdown = await take_quiz(course, student, correct=8, total=10)

        assert progress.passed is True
        assert progress.percentage == 80.0
        assert breakdown.lessons.points == 60
        assert breakdown.quiz.points == 20
        assert breakdown.short_questions.points == 0
        assert breakdown.total == 80
        enrollment = await ledger.get_for_student(course.course_id, student.id)
        assert enrollment.progress == 80

        with pytest.raises(NotEligibleError):
            await ledger.approve_course_completion(
                course.course_id, student.id, instructor
            )

    @pytest.mark.asyncio
    async def test_quiz_at_65_earns_nothing(
        self,
        quiz_service,
        course,
        student,
        instructor,
        add_lessons,
        enroll,
        complete_lessons,
        take_quiz,
    ):
        lessons = await add_lessons(course, instructor, 2)
        await quiz_service.save_quiz(
            course.course_id, instructor, "Quiz", quiz_questions(20)
        )
        await enroll(course, student, instructor)
        await complete_lessons(course, student, lessons)

        progress, breakdown = await take_quiz(course, student, correct=13, total=20)

        assert progress.percentage == 65.0
        assert progress.passed is False
        assert breakdown.quiz.attempted is True
        assert breakdown.quiz.points == 0
        assert breakdown.total == 60

    @pytest.mark.asyncio
    async def test_quiz_at_exactly_70_earns_full_share(
        self,
        quiz_service,
        course,
        student,
        instructor,
        add_lessons,
        enroll,
        complete_lessons,
        take_quiz,
    ):
        lessons = await add_lessons(course, instructor, 2)
        await quiz_service.save_quiz(
            course.course_id, instructor, "Quiz", quiz_questions(10)
        )
        await enroll(course, student, instructor)
        await complete_lessons(course, student, lessons)

        progress, breakdown = await take_quiz(course, student, correct=7, total=10)

        assert progress.passed is True
        assert breakdown.quiz.points == 20
        assert breakdown.total == 80

    @pytest.mark.asyncio
    async def test_everything_passed_is_exactly_100(
        self,
        ledger,
        quiz_service,
        course,
        student,
        instructor,
        add_lessons,
        enroll,
        complete_lessons,
        take_quiz,
        pass_short_question_set,
    ):
        """Lessons done, quiz passed and every set passed sums to 100."""
        lessons = await add_lessons(course, instructor, 3)
        await quiz_service.save_quiz(
            course.course_id, instructor, "Quiz", quiz_questions(5)
        )
        await enroll(course, student, instructor)
        await complete_lessons(course, student, lessons)
        await take_quiz(course, student, correct=5, total=5)

        await pass_short_question_set(course, student, instructor, 8, "Essay 1")
        _, breakdown = await pass_short_question_set(
            course, student, instructor, 10, "Essay 2"
        )

        assert breakdown.short_questions.passed == 2
        assert breakdown.short_questions.points == 20
        assert breakdown.total == 100

        graduated = await ledger.approve_course_completion(
            course.course_id, student.id, instructor
        )
        assert graduated.completed is True

    @pytest.mark.asyncio
    async def test_partial_short_answer_share(
        self,
        course,
        student,
        instructor,
        enroll,
        pass_short_question_set,
    ):
        """One of two graded sets passed gives 10 of the 20 points."""
        await enroll(course, student, instructor)

        await pass_short_question_set(course, student, instructor, 9, "Essay 1")
        _, breakdown = await pass_short_question_set(
            course, student, instructor, 3, "Essay 2"
        )

        assert breakdown.short_questions.attempted == 2
        assert breakdown.short_questions.passed == 1
        assert breakdown.short_questions.points == 10
        assert breakdown.total == 10

    @pytest.mark.asyncio
    async def test_deleted_set_no_longer_counts(
        self,
        aggregator,
        ledger,
        short_question_service,
        course,
        student,
        instructor,
        enroll,
        pass_short_question_set,
    ):
        """Deleting the failed set leaves one passed set of one: the full 20."""
        await enroll(course, student, instructor)
        await pass_short_question_set(course, student, instructor, 10, "Essay A")
        failed, breakdown = await pass_short_question_set(
            course, student, instructor, 0, "Essay B"
        )
        assert breakdown.short_questions.points == 10

        await short_question_service.delete_set(failed.set_id, instructor)

        after = await aggregator.compute(course.course_id, student.id)
        assert after.short_questions.attempted == 1
        assert after.short_questions.passed == 1
        assert after.short_questions.points == 20
        enrollment = await ledger.get_for_student(course.course_id, student.id)
        assert enrollment.progress == 20

    @pytest.mark.asyncio
    async def test_attempts_of_missing_sets_are_ignored(
        self,
        aggregator,
        course_service,
        course,
        student,
        instructor,
        enroll,
        pass_short_question_set,
        monkeypatch,
    ):
        await enroll(course, student, instructor)
        await pass_short_question_set(course, student, instructor, 10)
        monkeypatch.setattr(
            course_service, "short_question_set_ids", AsyncMock(return_value=set())
        )

        breakdown = await aggregator.compute(course.course_id, student.id)

        assert breakdown.short_questions.attempted == 0
        assert breakdown.short_questions.points == 0

    @pytest.mark.asyncio
    async def test_lesson_removed_after_completion_keeps_bounds(
        self,
        aggregator,
        course_service,
        course,
        student,
        instructor,
        add_lessons,
        enroll,
        complete_lessons,
    ):
        """Completion records for deleted lessons never push the share past 60."""
        lessons = await add_lessons(course, instructor, 3)
        await enroll(course, student, instructor)
        await complete_lessons(course, student, lessons)
        await course_service.remove_lesson(
            course.course_id, lessons[0].lesson_id, instructor
        )

        breakdown = await aggregator.compute(course.course_id, student.id)

        assert breakdown.lessons.points == 60
        assert 0 <= breakdown.total <= 100


class TestFailureSemantics:
    """A failed source read writes nothing."""

    @pytest.mark.asyncio
    async def test_refresh_fails_without_writing(
        self,
        aggregator,
        ledger,
        course,
        student,
        instructor,
        enroll,
        monkeypatch,
    ):
        await enroll(course, student, instructor)
        await ledger.set_progress(course.course_id, student.id, 40)
        monkeypatch.setattr(
            aggregator.quiz_progress,
            "get",
            AsyncMock(side_effect=RuntimeError("connection reset")),
        )

        with pytest.raises(ProgressComputeError):
            await aggregator.refresh(course.course_id, student.id)

        enrollment = await ledger.get_for_student(course.course_id, student.id)
        assert enrollment.progress == 40

    @pytest.mark.asyncio
    async def test_try_refresh_returns_none(
        self, aggregator, course, student, instructor, enroll, monkeypatch
    ):
        await enroll(course, student, instructor)
        monkeypatch.setattr(
            aggregator.lesson_progress,
            "list_by_course",
            AsyncMock(side_effect=RuntimeError("timeout")),
        )

        assert await aggregator.try_refresh(course.course_id, student.id) is None

    @pytest.mark.asyncio
    async def test_lesson_completion_survives_failed_refresh(
        self,
        aggregator,
        lesson_progress_service,
        course,
        student,
        instructor,
        add_lessons,
        enroll,
        monkeypatch,
    ):
        """The producer's own write stands and course_progress is None."""
        lessons = await add_lessons(course, instructor, 1)
        await enroll(course, student, instructor)
        monkeypatch.setattr(
            aggregator.short_question_attempts,
            "list_for_student",
            AsyncMock(side_effect=RuntimeError("unavailable")),
        )

        progress, breakdown = await lesson_progress_service.mark_lesson_completed(
            student.id, course.course_id, lessons[0].lesson_id
        )

        assert progress.completed is True
        assert breakdown is None
