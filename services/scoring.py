from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Union
from core.exceptions import InvariantViolation


@dataclass(frozen=True)
class SubmittedAnswer:
    question_id: int
    selected_answer: Optional[str]
    is_correct: bool = False


@dataclass(frozen=True)
class StageScore:
    correct_count: int
    total_questions: int
    score_percentage: float
    passed: bool


def is_answer_correct(selected_answer: Optional[str], correct_answer: Optional[str]) -> bool:
    if selected_answer is None or correct_answer is None:
        return False
    return str(selected_answer).strip() == str(correct_answer).strip()


def verify_answers(questions: Sequence, answers: Iterable[SubmittedAnswer]) -> List[SubmittedAnswer]:
    """
    Recompute each answer's correctness from the stored correct_answer,
    discarding the flag sent by the client. Answers to questions outside
    the stage are marked incorrect.
    """
    correct_by_question = {q.question_id: q.correct_answer for q in questions}
    return [
        replace(a, is_correct=is_answer_correct(a.selected_answer, correct_by_question.get(a.question_id)))
        for a in answers
    ]


def score_stage(
    questions: Sequence,
    answers: Iterable[SubmittedAnswer],
    passing_score: Union[float, Decimal, int],
) -> StageScore:
    """
    Score a submission against a stage.

    The divisor is the stage's question count, not the number of answers, so
    an incomplete submission is scored against the full stage. The pass
    threshold is inclusive.
    """
    total = len(questions)
    if total == 0:
        raise InvariantViolation("Stage has no questions and cannot be scored")

    correct = sum(1 for a in answers if a.is_correct)
    percentage = (correct / total) * 100
    return StageScore(
        correct_count=correct,
        total_questions=total,
        score_percentage=percentage,
        passed=percentage >= float(passing_score),
    )
