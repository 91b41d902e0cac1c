from typing import Any, Dict, List, Optional

from models import FieldError


class SurveyError(Exception):
    """Base class for errors raised by the survey core."""


class ConfigError(SurveyError):
    """A delivery configuration is malformed."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.problems = list(problems or [])

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "problems": self.problems}


class SubmissionError(SurveyError):
    """
    A response submission was rejected.

    Carries every offending field so the client can highlight all of them
    at once; nothing of the submission is kept.
    """

    def __init__(self, errors: List[FieldError]):
        super().__init__(f"Submission rejected with {len(errors)} error(s)")
        self.errors = list(errors)

    @property
    def question_ids(self) -> List[str]:
        return [e.questionId for e in self.errors if e.questionId is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": str(self),
            "errors": [e.model_dump() for e in self.errors],
        }


class ShapeError(SurveyError):
    """A stored answer is structurally incompatible with its question type."""

    def __init__(self, response_id: Optional[str], question_id: str, message: str):
        super().__init__(message)
        self.response_id = response_id
        self.question_id = question_id
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "responseId": self.response_id,
            "questionId": self.question_id,
            "message": self.message,
        }

    def __eq__(self, other):
        if not isinstance(other, ShapeError):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash((self.response_id, self.question_id, self.message))
