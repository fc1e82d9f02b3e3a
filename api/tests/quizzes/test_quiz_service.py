"""Tests for QuizService.

Covers:
- authoring and course quiz stats
- eligibility to start (approved enrollment, every lesson completed)
- scoring, pass threshold and attempt limits
- results visibility
"""

import pytest

from learnhub.core.exceptions import ForbiddenError, NotEligibleError
from learnhub.courses.service import CourseForbiddenError
from learnhub.enrollments.service import NotEnrolledError
from learnhub.quizzes.models import QuizAttemptStatus, QuizQuestion
from learnhub.quizzes.service import QuizAttemptNotFoundError, QuizNotFoundError


def questions(count: int = 4) -> list[QuizQuestion]:
    return [
        QuizQuestion(question=f"Q{i}", options=["yes", "no"], correct_index=0)
        for i in range(count)
    ]


def all_right(count: int = 4) -> dict[int, int]:
    return dict.fromkeys(range(count), 0)


def all_wrong(count: int = 4) -> dict[int, int]:
    return dict.fromkeys(range(count), 1)


@pytest.fixture
async def ready_student(
    quiz_service, lesson_progress_service, course, student, instructor, add_lessons, enroll
):
    """Approved student with every lesson of a 2-lesson course completed."""
    lessons = await add_lessons(course, instructor, 2)
    await quiz_service.save_quiz(course.course_id, instructor, "Final quiz", questions())
    await enroll(course, student, instructor)
    for lesson in lessons:
        await lesson_progress_service.mark_lesson_completed(
            student.id, course.course_id, lesson.lesson_id
        )
    return student


class TestQuizAuthoring:
    """Tests for save_quiz / delete_quiz."""

    @pytest.mark.asyncio
    async def test_save_updates_course_stats(
        self, quiz_service, course_service, course, instructor
    ):
        await quiz_service.save_quiz(course.course_id, instructor, "Quiz", questions(5))

        stats = (await course_service.get_course(course.course_id)).stats
        assert stats.quiz_count == 1
        assert stats.total_quiz_questions == 5
        assert stats.has_quiz is True

    @pytest.mark.asyncio
    async def test_unpublished_quiz_not_counted(
        self, quiz_service, course_service, course, instructor
    ):
        await quiz_service.save_quiz(
            course.course_id, instructor, "Draft", questions(), is_published=False
        )

        stats = (await course_service.get_course(course.course_id)).stats
        assert stats.quiz_count == 0
        assert stats.has_quiz is False

    @pytest.mark.asyncio
    async def test_replace_keeps_quiz_id(self, quiz_service, course, instructor):
        first = await quiz_service.save_quiz(
            course.course_id, instructor, "Quiz", questions()
        )

        second = await quiz_service.save_quiz(
            course.course_id, instructor, "Quiz v2", questions(6)
        )

        assert second.quiz_id == first.quiz_id
        assert second.created_at == first.created_at
        assert len((await quiz_service.get_quiz(course.course_id)).questions) == 6

    @pytest.mark.asyncio
    async def test_delete_resets_stats(
        self, quiz_service, course_service, course, instructor
    ):
        await quiz_service.save_quiz(course.course_id, instructor, "Quiz", questions())

        await quiz_service.delete_quiz(course.course_id, instructor)

        stats = (await course_service.get_course(course.course_id)).stats
        assert stats.quiz_count == 0
        with pytest.raises(QuizNotFoundError):
            await quiz_service.get_quiz(course.course_id)

    @pytest.mark.asyncio
    async def test_invalid_correct_index(self, quiz_service, course, instructor):
        bad = [QuizQuestion(question="Q", options=["a", "b"], correct_index=2)]

        with pytest.raises(NotEligibleError) as exc_info:
            await quiz_service.save_quiz(course.course_id, instructor, "Quiz", bad)

        assert exc_info.value.code == "invalid_question"

    @pytest.mark.asyncio
    async def test_other_instructor_forbidden(
        self, quiz_service, course, other_instructor
    ):
        with pytest.raises(CourseForbiddenError):
            await quiz_service.save_quiz(
                course.course_id, other_instructor, "Quiz", questions()
            )


class TestStartQuiz:
    """Tests for start_quiz."""

    @pytest.mark.asyncio
    async def test_requires_enrollment(self, quiz_service, course, student, instructor):
        await quiz_service.save_quiz(course.course_id, instructor, "Quiz", questions())

        with pytest.raises(NotEnrolledError):
            await quiz_service.start_quiz(course.course_id, student.id)

    @pytest.mark.asyncio
    async def test_requires_all_lessons(
        self, quiz_service, course, student, instructor, add_lessons, enroll
    ):
        await add_lessons(course, instructor, 3)
        await quiz_service.save_quiz(course.course_id, instructor, "Quiz", questions())
        await enroll(course, student, instructor)

        with pytest.raises(NotEligibleError) as exc_info:
            await quiz_service.start_quiz(course.course_id, student.id)

        assert exc_info.value.code == "lessons_incomplete"

    @pytest.mark.asyncio
    async def test_no_published_quiz(
        self, quiz_service, course, student, instructor, enroll
    ):
        await quiz_service.save_quiz(
            course.course_id, instructor, "Draft", questions(), is_published=False
        )
        await enroll(course, student, instructor)

        with pytest.raises(QuizNotFoundError):
            await quiz_service.start_quiz(course.course_id, student.id)

    @pytest.mark.asyncio
    async def test_start_and_resume(self, quiz_service, course, ready_student):
        _, progress = await quiz_service.start_quiz(course.course_id, ready_student.id)
        _, resumed = await quiz_service.start_quiz(course.course_id, ready_student.id)

        assert progress.status == QuizAttemptStatus.IN_PROGRESS.value
        assert progress.attempt_count == 1
        assert resumed.attempt_count == 1


class TestSubmitQuiz:
    """Tests for submit_quiz and the attempt limit."""

    @pytest.mark.asyncio
    async def test_pass(self, quiz_service, course, ready_student):
        await quiz_service.start_quiz(course.course_id, ready_student.id)

        progress, breakdown = await quiz_service.submit_quiz(
            course.course_id, ready_student.id, all_right(), time_spent=90
        )

        assert progress.status == QuizAttemptStatus.COMPLETED.value
        assert progress.score == 4
        assert progress.correct_answers == 4
        assert progress.percentage == 100.0
        assert progress.passed is True
        assert breakdown.total == 80

    @pytest.mark.asyncio
    async def test_fail_then_retake(self, quiz_service, course, ready_student):
        await quiz_service.start_quiz(course.course_id, ready_student.id)
        failed, breakdown = await quiz_service.submit_quiz(
            course.course_id, ready_student.id, {0: 0, 1: 0}
        )

        assert failed.status == QuizAttemptStatus.FAILED.value
        assert failed.percentage == 50.0
        assert failed.passed is False
        assert breakdown.total == 60

        _, retake = await quiz_service.start_quiz(course.course_id, ready_student.id)
        assert retake.attempt_count == 2
        assert retake.answers == []

    @pytest.mark.asyncio
    async def test_unanswered_questions_count_wrong(
        self, quiz_service, course, ready_student
    ):
        await quiz_service.start_quiz(course.course_id, ready_student.id)

        progress, _ = await quiz_service.submit_quiz(
            course.course_id, ready_student.id, {}
        )

        assert progress.score == 0
        assert all(answer.selected_option == -1 for answer in progress.answers)

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, quiz_service, course, ready_student):
        for _ in range(quiz_service.max_attempts):
            await quiz_service.start_quiz(course.course_id, ready_student.id)
            await quiz_service.submit_quiz(
                course.course_id, ready_student.id, all_wrong()
            )

        with pytest.raises(NotEligibleError) as exc_info:
            await quiz_service.start_quiz(course.course_id, ready_student.id)

        assert exc_info.value.code == "quiz_attempts_exhausted"

    @pytest.mark.asyncio
    async def test_passed_quiz_cannot_be_retaken(
        self, quiz_service, course, ready_student
    ):
        await quiz_service.start_quiz(course.course_id, ready_student.id)
        await quiz_service.submit_quiz(course.course_id, ready_student.id, all_right())

        with pytest.raises(NotEligibleError) as exc_info:
            await quiz_service.start_quiz(course.course_id, ready_student.id)

        assert exc_info.value.code == "quiz_already_passed"

    @pytest.mark.asyncio
    async def test_submit_twice(self, quiz_service, course, ready_student):
        await quiz_service.start_quiz(course.course_id, ready_student.id)
        await quiz_service.submit_quiz(course.course_id, ready_student.id, all_wrong())

        with pytest.raises(NotEligibleError) as exc_info:
            await quiz_service.submit_quiz(
                course.course_id, ready_student.id, all_right()
            )

        assert exc_info.value.code == "quiz_not_in_progress"

    @pytest.mark.asyncio
    async def test_submit_without_start(self, quiz_service, course, ready_student):
        with pytest.raises(QuizAttemptNotFoundError):
            await quiz_service.submit_quiz(
                course.course_id, ready_student.id, all_right()
            )


class TestQuizResults:
    """Tests for get_quiz_results."""

    @pytest.mark.asyncio
    async def test_not_before_finishing(self, quiz_service, course, ready_student):
        await quiz_service.start_quiz(course.course_id, ready_student.id)

        with pytest.raises(NotEligibleError) as exc_info:
            await quiz_service.get_quiz_results(
                course.course_id, ready_student.id, ready_student
            )

        assert exc_info.value.code == "quiz_not_finished"

    @pytest.mark.asyncio
    async def test_visible_to_student_and_instructor(
        self, quiz_service, course, ready_student, instructor
    ):
        await quiz_service.start_quiz(course.course_id, ready_student.id)
        await quiz_service.submit_quiz(course.course_id, ready_student.id, all_right())

        quiz, progress = await quiz_service.get_quiz_results(
            course.course_id, ready_student.id, ready_student
        )
        _, seen_by_instructor = await quiz_service.get_quiz_results(
            course.course_id, ready_student.id, instructor
        )

        assert quiz.questions[0].correct_index == 0
        assert progress.passed is True
        assert seen_by_instructor.score == progress.score

    @pytest.mark.asyncio
    async def test_hidden_from_other_students(
        self, quiz_service, course, ready_student, other_student
    ):
        await quiz_service.start_quiz(course.course_id, ready_student.id)
        await quiz_service.submit_quiz(course.course_id, ready_student.id, all_right())

        with pytest.raises(ForbiddenError):
            await quiz_service.get_quiz_results(
                course.course_id, ready_student.id, other_student
            )
