"""Caller-side delivery orchestration.

The scheduler only decides; this module asks it about every survey with a
delivery config, hands due surveys to a dispatcher and records what was sent.
"""
import uuid
from datetime import datetime
from typing import List, Protocol

from logger import get_logger
from models import (
    DeliveryConfig,
    DeliveryOutcome,
    DeliveryState,
    PendingDelivery,
    Survey,
    TriggerEvent,
)
from scheduler import is_due, on_event


class Dispatcher(Protocol):
    async def send(self, config: DeliveryConfig, survey: Survey) -> bool:
        ...


class LoggingDispatcher:
    """Dispatcher that only records the delivery in the log."""

    async def send(self, config: DeliveryConfig, survey: Survey) -> bool:
        get_logger("dispatcher", survey_id=survey.id).info(
            "delivery sent",
            extra={"recipients": list(config.emailAddresses), "delivery_type": config.type},
        )
        return True


async def _dispatch(dispatcher: Dispatcher, survey: Survey) -> bool:
    log = get_logger("delivery", survey_id=survey.id)
    try:
        ok = await dispatcher.send(survey.deliveryConfig, survey)
    except Exception:
        log.exception("dispatcher failed")
        return False
    if not ok:
        log.warning("dispatcher reported failure")
    return bool(ok)


async def run_scheduled_deliveries(repository, dispatcher: Dispatcher, now: datetime) -> List[DeliveryOutcome]:
    """Send every scheduled survey that is due at ``now``."""
    outcomes = []
    for survey in await repository.list_surveys_with_delivery("scheduled"):
        last_sent = await repository.get_last_sent(survey.id)
        if not is_due(survey.deliveryConfig, now, last_sent):
            continue
        ok = await _dispatch(dispatcher, survey)
        if ok:
            await repository.record_delivery(survey.id, now)
        outcomes.append(
            DeliveryOutcome(
                surveyId=survey.id,
                state=DeliveryState.sent if ok else DeliveryState.due,
                sendAt=now,
                success=ok,
            )
        )
    get_logger("delivery").info("scheduled run finished", extra={"sent": sum(1 for o in outcomes if o.success)})
    return outcomes


async def handle_event(repository, event_type: str, event_at: datetime) -> List[DeliveryOutcome]:
    """Arm a pending delivery for every survey whose trigger accepts the event."""
    log = get_logger("delivery", event_type=event_type)
    outcomes = []
    for survey in await repository.list_surveys_with_delivery("triggered"):
        send_at = on_event(survey.deliveryConfig, event_type, event_at)
        if send_at is None:
            continue
        await repository.add_pending_delivery(
            PendingDelivery(
                id=str(uuid.uuid4()),
                surveyId=survey.id,
                eventType=TriggerEvent(event_type),
                eventAt=event_at,
                sendAt=send_at,
            )
        )
        outcomes.append(DeliveryOutcome(surveyId=survey.id, state=DeliveryState.pending, sendAt=send_at))
    if not outcomes:
        log.debug("event matched no trigger")
    return outcomes


async def flush_pending_deliveries(repository, dispatcher: Dispatcher, now: datetime) -> List[DeliveryOutcome]:
    """Send pending deliveries whose send instant has been reached."""
    outcomes = []
    for pending in await repository.list_pending_deliveries(due_before=now):
        survey = await repository.get_survey(pending.surveyId)
        if survey is None or survey.deliveryConfig is None:
            # Survey or its trigger went away after the event was armed
            await repository.remove_pending_delivery(pending.id)
            continue
        ok = await _dispatch(dispatcher, survey)
        if ok:
            await repository.remove_pending_delivery(pending.id)
            await repository.record_delivery(survey.id, now)
        outcomes.append(
            DeliveryOutcome(
                surveyId=survey.id,
                state=DeliveryState.sent if ok else DeliveryState.pending,
                sendAt=pending.sendAt,
                success=ok,
            )
        )
    return outcomes
