import re
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Annotated, List, Optional, Dict, Union, Literal
from datetime import datetime
from enum import Enum

# Survey Models (matching frontend domain/models/Survey.ts)

class QuestionType(str, Enum):
    short_text = "short-text"
    long_text = "long-text"
    single_choice = "single-choice"
    multi_choice = "multi-choice"
    dropdown = "dropdown"
    rating = "rating"
    number = "number"
    email = "email"
    date = "date"

CHOICE_TYPES = frozenset({QuestionType.single_choice, QuestionType.multi_choice, QuestionType.dropdown})
MULTI_VALUE_TYPES = frozenset({QuestionType.multi_choice})
NUMERIC_TYPES = frozenset({QuestionType.rating, QuestionType.number})

class SurveyStatus(str, Enum):
    draft = "draft"
    active = "active"
    archived = "archived"

class QuestionSettings(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("settings.min must not exceed settings.max")
        return self

class SurveyQuestion(BaseModel):
    id: str = Field(min_length=1)
    title: str
    description: Optional[str] = None
    type: QuestionType
    required: bool = False
    options: Optional[List[str]] = None  # For single-choice, multi-choice, dropdown
    settings: Optional[QuestionSettings] = None  # For rating, number

    @model_validator(mode="after")
    def check_type_fields(self):
        if self.type in CHOICE_TYPES:
            if not self.options:
                raise ValueError(f"question {self.id}: {self.type.value} requires options")
        elif self.options:
            raise ValueError(f"question {self.id}: {self.type.value} does not take options")
        if self.settings is not None and self.type not in NUMERIC_TYPES:
            raise ValueError(f"question {self.id}: settings are only valid for rating and number")
        return self

# Delivery configuration: one model per variant, discriminated on "type"

class ScheduleFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"

class TriggerEvent(str, Enum):
    ticket_closed = "ticket-closed"
    purchase_completed = "purchase-completed"

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

def is_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value))

class DeliverySchedule(BaseModel):
    model_config = ConfigDict(extra="forbid")

    frequency: ScheduleFrequency
    dayOfWeek: Optional[int] = Field(None, ge=0, le=6)  # 0 = Sunday
    dayOfMonth: Optional[int] = Field(None, ge=1, le=31)
    time: str  # HH:MM, 24h
    startDate: Optional[datetime] = None

    @field_validator("time")
    @classmethod
    def check_time(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            raise ValueError("time must be HH:MM (24h)")
        return v

    @model_validator(mode="after")
    def check_cadence(self):
        weekly = self.frequency == ScheduleFrequency.weekly
        monthly = self.frequency == ScheduleFrequency.monthly
        if weekly and self.dayOfWeek is None:
            raise ValueError("weekly schedule requires dayOfWeek")
        if monthly and self.dayOfMonth is None:
            raise ValueError("monthly schedule requires dayOfMonth")
        if not weekly and self.dayOfWeek is not None:
            raise ValueError(f"dayOfWeek is not valid for a {self.frequency.value} schedule")
        if not monthly and self.dayOfMonth is not None:
            raise ValueError(f"dayOfMonth is not valid for a {self.frequency.value} schedule")
        return self

    @property
    def hour(self) -> int:
        return int(self.time[:2])

    @property
    def minute(self) -> int:
        return int(self.time[3:])

class DeliveryTrigger(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: TriggerEvent
    delayHours: float = Field(ge=0)
    sendAutomatically: bool

def _check_addresses(addresses: List[str], required: bool) -> List[str]:
    if required and not addresses:
        raise ValueError("emailAddresses must not be empty")
    bad = [a for a in addresses if not is_email(a)]
    if bad:
        raise ValueError(f"invalid email addresses: {', '.join(bad)}")
    return addresses

class ManualDelivery(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["manual"] = "manual"
    emailAddresses: List[str] = Field(default_factory=list)

    @field_validator("emailAddresses")
    @classmethod
    def check_addresses(cls, v: List[str]) -> List[str]:
        return _check_addresses(v, required=False)

class ScheduledDelivery(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["scheduled"] = "scheduled"
    emailAddresses: List[str]
    schedule: DeliverySchedule

    @field_validator("emailAddresses")
    @classmethod
    def check_addresses(cls, v: List[str]) -> List[str]:
        return _check_addresses(v, required=True)

class TriggeredDelivery(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["triggered"] = "triggered"
    emailAddresses: List[str]
    trigger: DeliveryTrigger

    @field_validator("emailAddresses")
    @classmethod
    def check_addresses(cls, v: List[str]) -> List[str]:
        return _check_addresses(v, required=True)

DeliveryConfig = Annotated[
    Union[ManualDelivery, ScheduledDelivery, TriggeredDelivery],
    Field(discriminator="type"),
]

class Survey(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    questions: List[SurveyQuestion] = Field(default_factory=list)
    createdAt: datetime
    updatedAt: Optional[datetime] = None
    status: Optional[SurveyStatus] = None
    # Read cache only; aggregation.compute_statistics is the source of truth
    responseCount: Optional[int] = None
    completionRate: Optional[float] = None
    deliveryConfig: Optional[DeliveryConfig] = None

    @field_validator("questions")
    @classmethod
    def check_unique_ids(cls, v: List[SurveyQuestion]) -> List[SurveyQuestion]:
        seen = set()
        for q in v:
            if q.id in seen:
                raise ValueError(f"duplicate question id: {q.id}")
            seen.add(q.id)
        return v

    def question(self, question_id: str) -> Optional[SurveyQuestion]:
        return next((q for q in self.questions if q.id == question_id), None)

# Survey Response Models (stored answers)

AnswerValue = Union[str, List[str]]

class QuestionResponse(BaseModel):
    questionId: str
    # Frozen at submission time; never rewritten from the live question
    questionTitle: str
    questionType: QuestionType
    value: AnswerValue
    isValid: bool

class SurveyResponse(BaseModel):
    id: Optional[str] = None
    surveyId: str
    respondentName: str
    respondentEmail: str
    respondentPhone: Optional[str] = None
    respondentCompany: Optional[str] = None
    submittedAt: datetime
    answers: List[QuestionResponse] = Field(default_factory=list)
    isExistingClient: Optional[bool] = None
    existingClientId: Optional[str] = None
    completionTime: Optional[float] = None  # Time taken in seconds

class SurveyResponseSubmission(BaseModel):
    surveyId: str
    respondentName: str
    respondentEmail: str
    respondentPhone: Optional[str] = None
    respondentCompany: Optional[str] = None
    answers: Dict[str, Optional[AnswerValue]] = Field(default_factory=dict)  # questionId -> raw answer
    isExistingClient: Optional[bool] = None
    existingClientId: Optional[str] = None
    completionTime: Optional[float] = None
    submittedAt: Optional[datetime] = None

class FieldError(BaseModel):
    questionId: Optional[str] = None
    field: str
    message: str

# Statistics Models (derived, never persisted as source of truth)

class AnswerFrequency(BaseModel):
    answer: str
    count: int
    percentage: float

class QuestionStatistics(BaseModel):
    questionId: str
    questionTitle: str
    questionType: QuestionType
    answeredCount: int = 0
    responses: List[AnswerFrequency] = Field(default_factory=list)
    averageValue: Optional[float] = None  # rating/number only

class SurveyStatistics(BaseModel):
    totalResponses: int
    averageCompletionTime: float
    completionRate: float
    questionStats: List[QuestionStatistics] = Field(default_factory=list)

class ShapeDiagnostic(BaseModel):
    responseId: Optional[str] = None
    questionId: str
    message: str

# Delivery Models

class DeliveryState(str, Enum):
    idle = "idle"
    pending = "pending"
    due = "due"
    sent = "sent"

class PendingDelivery(BaseModel):
    id: str
    surveyId: str
    eventType: TriggerEvent
    eventAt: datetime
    sendAt: datetime

class DeliveryOutcome(BaseModel):
    surveyId: str
    state: DeliveryState
    sendAt: Optional[datetime] = None
    success: Optional[bool] = None

# Request/Response Models

class CreateSurveyRequest(BaseModel):
    title: str
    description: Optional[str] = None
    questions: List[SurveyQuestion] = Field(default_factory=list)
    status: Optional[SurveyStatus] = SurveyStatus.draft
    deliveryConfig: Optional[DeliveryConfig] = None
    surveyId: Optional[str] = None

class UpdateSurveyRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: Optional[List[SurveyQuestion]] = None
    status: Optional[SurveyStatus] = None

class SurveyEnvelope(BaseModel):
    success: bool
    survey: Optional[Survey] = None
    message: Optional[str] = None

class SurveysListResponse(BaseModel):
    success: bool
    surveys: List[Survey]
    total: int

class SubmitSurveyResponseResult(BaseModel):
    success: bool
    responseId: str
    message: Optional[str] = None

class SurveyResponsesListResponse(BaseModel):
    success: bool
    responses: List[SurveyResponse]
    total: int

class StatisticsResult(BaseModel):
    success: bool
    surveyId: str
    statistics: SurveyStatistics
    diagnostics: List[ShapeDiagnostic] = Field(default_factory=list)

class DeliveryStatusResponse(BaseModel):
    success: bool
    surveyId: str
    deliveryType: Optional[str] = None
    state: DeliveryState
    nextDueAt: Optional[datetime] = None
    lastSentAt: Optional[datetime] = None
    pending: List[PendingDelivery] = Field(default_factory=list)

class TriggerEventRequest(BaseModel):
    eventType: str
    eventAt: Optional[datetime] = None

class DeliveryRunResult(BaseModel):
    success: bool
    outcomes: List[DeliveryOutcome]
    total: int

class PendingDeliveriesResponse(BaseModel):
    success: bool
    pending: List[PendingDelivery]
    total: int
