from fastapi import APIRouter, Depends, HTTPException, status

from models import (
    TriggerEventRequest,
    DeliveryRunResult,
    PendingDeliveriesResponse,
)
from delivery import Dispatcher, flush_pending_deliveries, handle_event, run_scheduled_deliveries
from dependencies import Clock, get_clock, get_dispatcher, get_repository
from logger import get_logger
from repository import SurveyRepository

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])

@router.post("/events", response_model=DeliveryRunResult)
async def trigger_event(
    request: TriggerEventRequest,
    repository: SurveyRepository = Depends(get_repository),
    clock: Clock = Depends(get_clock),
):
    """
    Report a business event (e.g. ticket-closed)
    Arms a pending delivery for every survey whose trigger matches
    """
    try:
        event_at = request.eventAt or clock()
        outcomes = await handle_event(repository, request.eventType, event_at)
        get_logger("deliveries", event_type=request.eventType).info(
            "event handled", extra={"armed": len(outcomes)}
        )

        return DeliveryRunResult(
            success=True,
            outcomes=outcomes,
            total=len(outcomes)
        )

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to handle event: {str(e)}"
        )

@router.post("/run", response_model=DeliveryRunResult)
async def run_deliveries(
    repository: SurveyRepository = Depends(get_repository),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
):
    """
    Send due scheduled deliveries and elapsed pending ones
    Meant to be called periodically (cron, scheduler)
    """
    try:
        now = clock()
        outcomes = await run_scheduled_deliveries(repository, dispatcher, now)
        outcomes += await flush_pending_deliveries(repository, dispatcher, now)

        return DeliveryRunResult(
            success=True,
            outcomes=outcomes,
            total=len(outcomes)
        )

    except Exception as e:
        get_logger("deliveries").exception("delivery run failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run deliveries: {str(e)}"
        )

@router.get("/pending", response_model=PendingDeliveriesResponse)
async def get_pending_deliveries(repository: SurveyRepository = Depends(get_repository)):
    """
    List deliveries armed by events and not yet sent
    """
    try:
        pending = await repository.list_pending_deliveries()

        return PendingDeliveriesResponse(
            success=True,
            pending=pending,
            total=len(pending)
        )

    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve pending deliveries: {str(e)}"
        )
