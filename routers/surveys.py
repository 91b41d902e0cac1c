from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from datetime import datetime
from typing import Any, Dict, Optional
import random
import uuid

from models import (
    CreateSurveyRequest,
    UpdateSurveyRequest,
    Survey,
    SurveyEnvelope,
    SurveysListResponse,
    SurveyStatus,
    ScheduledDelivery,
    SurveyResponseSubmission,
    SubmitSurveyResponseResult,
    SurveyResponsesListResponse,
    StatisticsResult,
    ShapeDiagnostic,
    DeliveryStatusResponse,
    DeliveryConfig,
)
from aggregation import compute_statistics
from dependencies import Clock, get_clock, get_repository
from errors import ConfigError, SubmissionError
from logger import get_logger
from repository import SurveyRepository
from scheduler import delivery_state, next_due_instant, validate_delivery_config
from validation import validate_submission

router = APIRouter(prefix="/api/surveys", tags=["surveys"])

def generate_survey_id() -> str:
    """Generate a random 4-digit survey ID"""
    return str(random.randint(1000, 9999))

async def load_survey(repository: SurveyRepository, survey_id: str) -> Survey:
    survey = await repository.get_survey(survey_id)
    if not survey:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Survey {survey_id} not found"
        )
    return survey

def start_schedule(delivery: Optional[DeliveryConfig], now: datetime) -> Optional[DeliveryConfig]:
    """A scheduled config without startDate starts at now, so past slots are never sent"""
    if isinstance(delivery, ScheduledDelivery) and delivery.schedule.startDate is None:
        schedule = delivery.schedule.model_copy(update={"startDate": now})
        delivery = delivery.model_copy(update={"schedule": schedule})
    return delivery

@router.post("/", response_model=SurveyEnvelope, status_code=status.HTTP_201_CREATED)
async def create_survey(
    request: CreateSurveyRequest,
    repository: SurveyRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Create a new survey
    Equivalent to: createSurvey()
    """
    try:
        survey_id = request.surveyId
        if survey_id:
            if await repository.survey_exists(survey_id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Survey {survey_id} already exists"
                )
        else:
            # Ensure unique ID
            while True:
                survey_id = generate_survey_id()
                if not await repository.survey_exists(survey_id):
                    break

        now = clock()
        survey = Survey(
            id=survey_id,
            title=request.title,
            description=request.description,
            questions=request.questions,
            createdAt=now,
            updatedAt=now,
            status=request.status,
            responseCount=0,
            completionRate=0.0,
            deliveryConfig=start_schedule(request.deliveryConfig, now),
        )
        await repository.save_survey(survey)
        get_logger("surveys", survey_id=survey_id).info("survey created")

        return SurveyEnvelope(
            success=True,
            survey=survey,
            message=f"Survey {survey_id} saved successfully"
        )

    except HTTPException:
        raise
    except Exception as e:
        get_logger("surveys").exception("create failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save survey: {str(e)}"
        )

@router.put("/{survey_id}", response_model=SurveyEnvelope)
async def update_survey(
    survey_id: str,
    request: UpdateSurveyRequest,
    repository: SurveyRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Update title, description, questions or status of a survey
    Equivalent to: updateSurvey()
    """
    try:
        existing = await load_survey(repository, survey_id)

        changes = request.model_dump(exclude_unset=True)
        # Revalidate the whole survey so question invariants still hold
        survey = Survey(**{**existing.model_dump(), **changes, "updatedAt": clock()})
        await repository.save_survey(survey)

        return SurveyEnvelope(
            success=True,
            survey=survey,
            message=f"Survey {survey_id} updated successfully"
        )

    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False)
        )
    except HTTPException:
        raise
    except Exception as e:
        get_logger("surveys", survey_id=survey_id).exception("update failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update survey: {str(e)}"
        )

@router.get("/{survey_id}", response_model=SurveyEnvelope)
async def get_survey(survey_id: str, repository: SurveyRepository = Depends(get_repository)):
    """
    Get a specific survey by ID
    Equivalent to: getSurveyById()
    """
    try:
        survey = await load_survey(repository, survey_id)
        return SurveyEnvelope(success=True, survey=survey)

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve survey: {str(e)}"
        )

@router.delete("/{survey_id}", response_model=dict)
async def delete_survey(survey_id: str, repository: SurveyRepository = Depends(get_repository)):
    """
    Delete a survey that has no responses
    Equivalent to: deleteSurvey()
    """
    try:
        await load_survey(repository, survey_id)

        # Responses are never cascaded; a referenced survey stays
        count = await repository.count_responses(survey_id)
        if count:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Survey {survey_id} has {count} responses and cannot be deleted; archive it instead"
            )

        await repository.delete_survey(survey_id)
        get_logger("surveys", survey_id=survey_id).info("survey deleted")

        return {
            "success": True,
            "message": f"Survey {survey_id} deleted successfully"
        }

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete survey: {str(e)}"
        )

@router.get("/", response_model=SurveysListResponse)
async def get_all_surveys(
    status_filter: Optional[SurveyStatus] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = 100,
    repository: SurveyRepository = Depends(get_repository),
):
    """
    Get all surveys, optionally only those with a given status
    Equivalent to: getAllSurveys() / getSurveysByStatus()
    """
    try:
        surveys, total = await repository.list_surveys(status_filter, skip=skip, limit=limit)

        return SurveysListResponse(
            success=True,
            surveys=surveys,
            total=total
        )

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve surveys: {str(e)}"
        )

@router.get("/{survey_id}/statistics", response_model=StatisticsResult)
async def get_survey_statistics(survey_id: str, repository: SurveyRepository = Depends(get_repository)):
    """
    Compute statistics from the current responses of a survey
    Equivalent to: getSurveyStatistics()
    """
    try:
        survey = await load_survey(repository, survey_id)
        responses = await repository.list_responses(survey_id)

        report = compute_statistics(survey, responses)
        stats = report.statistics

        # Cached counters follow the aggregator, never the other way round
        if survey.responseCount != stats.totalResponses or survey.completionRate != stats.completionRate:
            await repository.update_cached_statistics(survey_id, stats.totalResponses, stats.completionRate)

        return StatisticsResult(
            success=True,
            surveyId=survey_id,
            statistics=stats,
            diagnostics=[ShapeDiagnostic(**d.to_dict()) for d in report.diagnostics]
        )

    except HTTPException:
        raise
    except Exception as e:
        get_logger("surveys", survey_id=survey_id).exception("statistics failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to compute statistics: {str(e)}"
        )

@router.put("/{survey_id}/delivery", response_model=SurveyEnvelope)
async def set_delivery_config(
    survey_id: str,
    config: Dict[str, Any],
    repository: SurveyRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Validate and store the delivery config of a survey
    A scheduled config without startDate starts now
    """
    try:
        survey = await load_survey(repository, survey_id)

        delivery = start_schedule(validate_delivery_config(config), clock())

        survey = survey.model_copy(update={"deliveryConfig": delivery, "updatedAt": clock()})
        await repository.save_survey(survey)
        get_logger("surveys", survey_id=survey_id).info("delivery config saved", extra={"delivery_type": delivery.type})

        return SurveyEnvelope(
            success=True,
            survey=survey,
            message=f"Delivery config for survey {survey_id} saved"
        )

    except ConfigError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.to_dict()
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to save delivery config: {str(e)}"
        )

@router.get("/{survey_id}/delivery", response_model=DeliveryStatusResponse)
async def get_delivery_status(
    survey_id: str,
    repository: SurveyRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Report whether a delivery is due, pending or idle
    """
    try:
        survey = await load_survey(repository, survey_id)
        config = survey.deliveryConfig
        now = clock()

        last_sent = await repository.get_last_sent(survey_id)
        pending = await repository.list_pending_deliveries(survey_id=survey_id)
        first_pending = pending[0].sendAt if pending else None

        return DeliveryStatusResponse(
            success=True,
            surveyId=survey_id,
            deliveryType=config.type if config else None,
            state=delivery_state(config, now, last_sent, first_pending),
            nextDueAt=next_due_instant(config, now, last_sent) if config else None,
            lastSentAt=last_sent,
            pending=pending
        )

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve delivery status: {str(e)}"
        )

@router.post("/responses/", response_model=SubmitSurveyResponseResult, status_code=status.HTTP_201_CREATED)
async def submit_survey_response(
    request: SurveyResponseSubmission,
    repository: SurveyRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Submit a survey response
    Validates every answer and stores nothing unless all of them pass
    """
    try:
        survey = await load_survey(repository, request.surveyId)
        if survey.status == SurveyStatus.archived:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Survey {request.surveyId} is archived and no longer accepts responses"
            )

        response = validate_submission(survey, request, submitted_at=clock())
        response_id = str(uuid.uuid4())
        response = response.model_copy(update={"id": response_id})
        await repository.insert_response(response)

        # Refresh the read cache from the full response set
        report = compute_statistics(survey, await repository.list_responses(survey.id))
        await repository.update_cached_statistics(
            survey.id, report.statistics.totalResponses, report.statistics.completionRate
        )
        get_logger("surveys", survey_id=survey.id).info("response stored", extra={"response_id": response_id})

        return SubmitSurveyResponseResult(
            success=True,
            responseId=response_id,
            message="Survey response submitted successfully"
        )

    except SubmissionError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.to_dict()
        )
    except HTTPException:
        raise
    except Exception as e:
        get_logger("surveys", survey_id=request.surveyId).exception("submission failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to submit survey response: {str(e)}"
        )

@router.get("/responses/{survey_id}", response_model=SurveyResponsesListResponse)
async def get_survey_responses(survey_id: str, repository: SurveyRepository = Depends(get_repository)):
    """
    Get all responses for a specific survey
    Returns list of user submissions
    """
    try:
        await load_survey(repository, survey_id)
        responses = await repository.list_responses(survey_id)

        return SurveyResponsesListResponse(
            success=True,
            responses=responses,
            total=len(responses)
        )

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve responses: {str(e)}"
        )
