from datetime import date, datetime
from typing import List, Optional

from errors import SubmissionError
from logger import get_logger
from models import (
    CHOICE_TYPES,
    MULTI_VALUE_TYPES,
    NUMERIC_TYPES,
    FieldError,
    QuestionResponse,
    QuestionType,
    Survey,
    SurveyQuestion,
    SurveyResponse,
    SurveyResponseSubmission,
    is_email,
)


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return not [v for v in value if v.strip()]


def _check_scalar(question: SurveyQuestion, value: str) -> Optional[str]:
    """Return an error message for a single value, or None when it conforms."""
    if question.type in CHOICE_TYPES and value not in question.options:
        return f"{value!r} is not one of the options"
    if question.type in NUMERIC_TYPES:
        try:
            number = float(value)
        except ValueError:
            return f"{value!r} is not a number"
        settings = question.settings
        if settings is not None:
            if settings.min is not None and number < settings.min:
                return f"{value} is below the minimum of {settings.min:g}"
            if settings.max is not None and number > settings.max:
                return f"{value} is above the maximum of {settings.max:g}"
    if question.type == QuestionType.email and not is_email(value):
        return f"{value!r} is not an email address"
    if question.type == QuestionType.date:
        try:
            date.fromisoformat(value)
        except ValueError:
            return f"{value!r} is not an ISO date (YYYY-MM-DD)"
    return None


def _normalize(question: SurveyQuestion, raw, errors: List[FieldError]):
    """Coerce a raw answer to its stored shape, appending errors on mismatch."""
    if question.type in MULTI_VALUE_TYPES:
        values = [raw] if isinstance(raw, str) else list(raw)
        values = [v.strip() for v in values if v.strip()]
        for v in values:
            message = _check_scalar(question, v)
            if message:
                errors.append(FieldError(questionId=question.id, field="answers", message=message))
        return values
    if not isinstance(raw, str):
        errors.append(
            FieldError(questionId=question.id, field="answers", message="expects a single value, not a list")
        )
        return None
    value = raw.strip()
    message = _check_scalar(question, value)
    if message:
        errors.append(FieldError(questionId=question.id, field="answers", message=message))
    return value


def validate_submission(
    survey: Survey,
    submission: SurveyResponseSubmission,
    submitted_at: Optional[datetime] = None,
) -> SurveyResponse:
    """
    Check a submission against the survey and build the response to store.

    Acceptance is all-or-nothing: every problem is collected and a single
    SubmissionError is raised if there is at least one.
    """
    log = get_logger("validation", survey_id=survey.id)
    errors: List[FieldError] = []

    if submission.surveyId != survey.id:
        errors.append(FieldError(field="surveyId", message=f"submission is for survey {submission.surveyId}"))
    if not submission.respondentName.strip():
        errors.append(FieldError(field="respondentName", message="respondent name is required"))
    if not is_email(submission.respondentEmail):
        errors.append(FieldError(field="respondentEmail", message="respondent email is not valid"))
    if submission.completionTime is not None and submission.completionTime < 0:
        errors.append(FieldError(field="completionTime", message="completion time must not be negative"))

    for question_id in submission.answers:
        if survey.question(question_id) is None:
            errors.append(FieldError(questionId=question_id, field="answers", message="unknown question"))

    answers: List[QuestionResponse] = []
    for question in survey.questions:
        raw = submission.answers.get(question.id)
        if _is_blank(raw):
            if question.required:
                errors.append(FieldError(questionId=question.id, field="answers", message="answer is required"))
            continue
        value = _normalize(question, raw, errors)
        if value is None:
            continue
        answers.append(
            QuestionResponse(
                questionId=question.id,
                questionTitle=question.title,
                questionType=question.type,
                value=value,
                isValid=True,
            )
        )

    if errors:
        log.info("submission rejected", extra={"errors": [e.model_dump() for e in errors]})
        raise SubmissionError(errors)

    return SurveyResponse(
        surveyId=survey.id,
        respondentName=submission.respondentName.strip(),
        respondentEmail=submission.respondentEmail,
        respondentPhone=submission.respondentPhone,
        respondentCompany=submission.respondentCompany,
        submittedAt=submission.submittedAt or submitted_at or datetime.utcnow(),
        answers=answers,
        isExistingClient=submission.isExistingClient,
        existingClientId=submission.existingClientId,
        completionTime=submission.completionTime,
    )
