import os
import tempfile
from datetime import datetime
from typing import Dict, List, Optional

import pytest

# Keep the file log handler out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="survey-logs-"))

from models import (  # noqa: E402
    PendingDelivery,
    QuestionResponse,
    Survey,
    SurveyQuestion,
    SurveyResponse,
    SurveyStatus,
)

NOW = datetime(2024, 4, 10, 12, 0)


class FakeRepository:
    """In-memory stand-in for SurveyRepository."""

    def __init__(self):
        self.surveys: Dict[str, Survey] = {}
        self.responses: List[SurveyResponse] = []
        self.last_sent: Dict[str, datetime] = {}
        self.pending: Dict[str, PendingDelivery] = {}
        self.list_responses_calls = 0

    async def get_survey(self, survey_id: str) -> Optional[Survey]:
        return self.surveys.get(survey_id)

    async def survey_exists(self, survey_id: str) -> bool:
        return survey_id in self.surveys

    async def list_surveys(self, status=None, skip=0, limit=100):
        surveys = [s for s in self.surveys.values() if status is None or s.status == status]
        surveys.sort(key=lambda s: s.createdAt, reverse=True)
        return surveys[skip:skip + limit], len(surveys)

    async def list_surveys_with_delivery(self, delivery_type: str) -> List[Survey]:
        return [
            s for s in self.surveys.values()
            if s.deliveryConfig is not None
            and s.deliveryConfig.type == delivery_type
            and s.status != SurveyStatus.archived
        ]

    async def save_survey(self, survey: Survey) -> None:
        self.surveys[survey.id] = survey

    async def delete_survey(self, survey_id: str) -> bool:
        self.last_sent.pop(survey_id, None)
        return self.surveys.pop(survey_id, None) is not None

    async def update_cached_statistics(self, survey_id, response_count, completion_rate) -> None:
        survey = self.surveys[survey_id]
        self.surveys[survey_id] = survey.model_copy(
            update={"responseCount": response_count, "completionRate": completion_rate}
        )

    async def list_responses(self, survey_id: str) -> List[SurveyResponse]:
        self.list_responses_calls += 1
        return [r for r in self.responses if r.surveyId == survey_id]

    async def count_responses(self, survey_id: str) -> int:
        return len([r for r in self.responses if r.surveyId == survey_id])

    async def insert_response(self, response: SurveyResponse) -> None:
        self.responses.append(response)

    async def get_last_sent(self, survey_id: str) -> Optional[datetime]:
        return self.last_sent.get(survey_id)

    async def record_delivery(self, survey_id: str, sent_at: datetime) -> None:
        self.last_sent[survey_id] = sent_at

    async def add_pending_delivery(self, pending: PendingDelivery) -> None:
        self.pending[pending.id] = pending

    async def list_pending_deliveries(self, survey_id=None, due_before=None) -> List[PendingDelivery]:
        items = [
            p for p in self.pending.values()
            if (survey_id is None or p.surveyId == survey_id)
            and (due_before is None or p.sendAt <= due_before)
        ]
        return sorted(items, key=lambda p: p.sendAt)

    async def remove_pending_delivery(self, pending_id: str) -> None:
        self.pending.pop(pending_id, None)


class RecordingDispatcher:
    def __init__(self, result: bool = True):
        self.result = result
        self.sent: List[str] = []

    async def send(self, config, survey) -> bool:
        self.sent.append(survey.id)
        return self.result


def build_survey(survey_id: str = "1001", **overrides) -> Survey:
    data = dict(
        id=survey_id,
        title="Customer feedback",
        createdAt=datetime(2024, 1, 1),
        status=SurveyStatus.active,
        questions=[
            SurveyQuestion(id="q1", title="Would you recommend us?", type="single-choice",
                           required=True, options=["Yes", "No"]),
            SurveyQuestion(id="q2", title="Which products do you use?", type="multi-choice",
                           options=["A", "B", "C"]),
            SurveyQuestion(id="q3", title="Rate our support", type="rating",
                           required=True, settings={"min": 1, "max": 5}),
            SurveyQuestion(id="q4", title="Anything else?", type="short-text"),
        ],
    )
    data.update(overrides)
    return Survey(**data)


def build_response(survey: Survey, answers: Dict, response_id: str = None,
                   completion_time: float = None, valid: bool = True) -> SurveyResponse:
    items = []
    for question_id, value in answers.items():
        question = survey.question(question_id)
        items.append(
            QuestionResponse(
                questionId=question_id,
                questionTitle=question.title if question else "Removed question",
                questionType=question.type if question else "short-text",
                value=value,
                isValid=valid,
            )
        )
    return SurveyResponse(
        id=response_id,
        surveyId=survey.id,
        respondentName="Ada Lovelace",
        respondentEmail="ada@example.com",
        submittedAt=datetime(2024, 2, 1),
        answers=items,
        completionTime=completion_time,
    )


@pytest.fixture
def survey() -> Survey:
    return build_survey()


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def client(repository, dispatcher):
    from fastapi.testclient import TestClient

    from dependencies import get_clock, get_dispatcher, get_repository
    from main import app

    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    # No context manager: the Mongo lifespan stays off
    yield TestClient(app)
    app.dependency_overrides.clear()
