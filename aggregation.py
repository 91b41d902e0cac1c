"""Survey statistics computed from raw responses.

Statistics are a derived view: they are rebuilt from the full response set
every time and never read back from the cached counters stored on a survey.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from errors import ShapeError
from logger import get_logger
from models import (
    MULTI_VALUE_TYPES,
    NUMERIC_TYPES,
    AnswerFrequency,
    QuestionResponse,
    QuestionStatistics,
    Survey,
    SurveyQuestion,
    SurveyResponse,
    SurveyStatistics,
)


@dataclass
class StatisticsReport:
    """Best-effort statistics plus the data-quality problems met on the way."""

    statistics: SurveyStatistics
    diagnostics: List[ShapeError] = field(default_factory=list)


@dataclass
class _QuestionTally:
    question: SurveyQuestion
    counts: Dict[str, int] = field(default_factory=dict)  # insertion order = first seen
    answered: int = 0
    numeric_total: float = 0.0
    numeric_count: int = 0


def _percentage(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def _is_empty(value) -> bool:
    if isinstance(value, str):
        return not value.strip()
    return not value


def _selected_values(question: SurveyQuestion, answer: QuestionResponse, response_id: Optional[str]) -> List[str]:
    """Return the distinct values an answer contributes, or raise ShapeError."""
    value = answer.value
    if question.type in MULTI_VALUE_TYPES:
        values = [value] if isinstance(value, str) else list(value)
    elif isinstance(value, list):
        raise ShapeError(
            response_id,
            question.id,
            f"{question.type.value} expects a single value, got a list of {len(value)}",
        )
    else:
        values = [value]
    seen = []
    for v in values:
        v = v.strip()
        if v and v not in seen:
            seen.append(v)
    return seen


def _record_numeric(tally: _QuestionTally, value: str, response_id: Optional[str]) -> None:
    try:
        number = float(value)
    except ValueError:
        raise ShapeError(response_id, tally.question.id, f"non-numeric value {value!r}") from None
    tally.numeric_total += number
    tally.numeric_count += 1


def _is_complete(response: SurveyResponse, required_ids: Sequence[str]) -> bool:
    valid = {a.questionId for a in response.answers if a.isValid}
    return all(qid in valid for qid in required_ids)


def compute_statistics(survey: Survey, responses: Sequence[SurveyResponse]) -> StatisticsReport:
    """
    Reduce one survey's responses to a SurveyStatistics summary.

    The computation is a single pass over the responses. Answers to questions
    no longer in the survey are ignored; structurally broken answers are
    skipped and reported in ``diagnostics`` instead of failing the whole run.
    """
    log = get_logger("aggregation", survey_id=survey.id)
    tallies = {q.id: _QuestionTally(question=q) for q in survey.questions}
    required_ids = [q.id for q in survey.questions if q.required]
    diagnostics: List[ShapeError] = []

    complete = 0
    time_total = 0.0
    time_count = 0

    for response in responses:
        if _is_complete(response, required_ids):
            complete += 1
        if response.completionTime is not None:
            time_total += response.completionTime
            time_count += 1

        answered_here = set()
        for answer in response.answers:
            tally = tallies.get(answer.questionId)
            if tally is None:
                continue
            if answer.questionId in answered_here:
                diagnostics.append(ShapeError(response.id, answer.questionId, "duplicate answer for question"))
                continue
            try:
                values = _selected_values(tally.question, answer, response.id)
            except ShapeError as e:
                diagnostics.append(e)
                continue
            if not values:
                continue
            if tally.question.type in NUMERIC_TYPES:
                try:
                    _record_numeric(tally, values[0], response.id)
                except ShapeError as e:
                    diagnostics.append(e)
                    continue
            answered_here.add(answer.questionId)
            tally.answered += 1
            for v in values:
                tally.counts[v] = tally.counts.get(v, 0) + 1

    question_stats = []
    for tally in tallies.values():
        # sorted() is stable, so ties keep first-seen order
        ranked = sorted(tally.counts.items(), key=lambda item: -item[1])
        average = None
        if tally.numeric_count:
            average = round(tally.numeric_total / tally.numeric_count, 2)
        question_stats.append(
            QuestionStatistics(
                questionId=tally.question.id,
                questionTitle=tally.question.title,
                questionType=tally.question.type,
                answeredCount=tally.answered,
                responses=[
                    AnswerFrequency(answer=answer, count=count, percentage=_percentage(count, tally.answered))
                    for answer, count in ranked
                ],
                averageValue=average,
            )
        )

    total = len(responses)
    statistics = SurveyStatistics(
        totalResponses=total,
        averageCompletionTime=round(time_total / time_count, 2) if time_count else 0.0,
        completionRate=_percentage(complete, total),
        questionStats=question_stats,
    )
    if diagnostics:
        log.warning("shape problems in responses", extra={"diagnostics": len(diagnostics)})
    log.debug("statistics computed", extra={"responses": total})
    return StatisticsReport(statistics=statistics, diagnostics=diagnostics)
