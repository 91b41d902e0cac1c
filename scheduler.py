"""Delivery scheduling decisions.

All functions here are pure: they take a delivery config, the instants the
caller knows about (now, the last send, a pending send) and return a decision.
Persisting ``last_sent`` and actually sending belong to the caller.

Day-of-week numbering follows the front-end: 0 is Sunday, 6 is Saturday.
Naive datetimes are treated as UTC.
"""
import calendar
from datetime import datetime, time, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from errors import ConfigError
from logger import get_logger
from models import (
    DeliveryConfig,
    DeliverySchedule,
    DeliveryState,
    ScheduleFrequency,
    ScheduledDelivery,
    TriggerEvent,
    TriggeredDelivery,
)

_config_adapter = TypeAdapter(DeliveryConfig)


def validate_delivery_config(data: Union[Mapping[str, Any], DeliveryConfig]) -> DeliveryConfig:
    """Parse and check a delivery config, raising ConfigError when malformed."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    elif not isinstance(data, Mapping):
        raise ConfigError("Invalid delivery config", [f"expected an object, got {type(data).__name__}"])
    try:
        return _config_adapter.validate_python(data)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            problems.append(f"{loc}: {err['msg']}" if loc else err["msg"])
        get_logger("scheduler").info("delivery config rejected", extra={"problems": problems})
        raise ConfigError("Invalid delivery config", problems) from e


def _align(instant: datetime, like: datetime) -> datetime:
    """Express ``instant`` with the same awareness as ``like``."""
    if like.tzinfo is None and instant.tzinfo is not None:
        return instant.astimezone(timezone.utc).replace(tzinfo=None)
    if like.tzinfo is not None and instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc).astimezone(like.tzinfo)
    return instant


def _python_weekday(day_of_week: int) -> int:
    # 0=Sunday (front-end) -> 6=Sunday (datetime.weekday)
    return (day_of_week - 1) % 7


def _at(day, schedule: DeliverySchedule, tzinfo) -> datetime:
    return datetime.combine(day, time(schedule.hour, schedule.minute), tzinfo=tzinfo)


def _monthly(year: int, month: int, schedule: DeliverySchedule, tzinfo) -> datetime:
    # Months shorter than dayOfMonth fire on their last day
    last_day = calendar.monthrange(year, month)[1]
    day = min(schedule.dayOfMonth, last_day)
    return datetime(year, month, day, schedule.hour, schedule.minute, tzinfo=tzinfo)


def _shift_month(year: int, month: int, delta: int):
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def occurrence_after(schedule: DeliverySchedule, instant: datetime) -> datetime:
    """First scheduled occurrence strictly after ``instant``."""
    tz = instant.tzinfo
    if schedule.frequency == ScheduleFrequency.daily:
        candidate = _at(instant.date(), schedule, tz)
        if candidate <= instant:
            candidate += timedelta(days=1)
        return candidate
    if schedule.frequency == ScheduleFrequency.weekly:
        ahead = (_python_weekday(schedule.dayOfWeek) - instant.weekday()) % 7
        candidate = _at(instant.date() + timedelta(days=ahead), schedule, tz)
        if candidate <= instant:
            candidate += timedelta(days=7)
        return candidate
    candidate = _monthly(instant.year, instant.month, schedule, tz)
    if candidate <= instant:
        year, month = _shift_month(instant.year, instant.month, 1)
        candidate = _monthly(year, month, schedule, tz)
    return candidate


def occurrence_at_or_before(schedule: DeliverySchedule, instant: datetime) -> datetime:
    """Latest scheduled occurrence not after ``instant``."""
    tz = instant.tzinfo
    if schedule.frequency == ScheduleFrequency.daily:
        candidate = _at(instant.date(), schedule, tz)
        if candidate > instant:
            candidate -= timedelta(days=1)
        return candidate
    if schedule.frequency == ScheduleFrequency.weekly:
        back = (instant.weekday() - _python_weekday(schedule.dayOfWeek)) % 7
        candidate = _at(instant.date() - timedelta(days=back), schedule, tz)
        if candidate > instant:
            candidate -= timedelta(days=7)
        return candidate
    candidate = _monthly(instant.year, instant.month, schedule, tz)
    if candidate > instant:
        year, month = _shift_month(instant.year, instant.month, -1)
        candidate = _monthly(year, month, schedule, tz)
    return candidate


def next_due_instant(
    config: DeliveryConfig,
    reference: datetime,
    last_sent: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Next instant a scheduled delivery falls due.

    The result is the first occurrence strictly after the later of
    ``reference`` and ``last_sent``, and never before the schedule's
    ``startDate``. Manual and triggered configs have no schedule and
    return None.
    """
    if not isinstance(config, ScheduledDelivery):
        return None
    schedule = config.schedule
    anchor = reference
    if last_sent is not None:
        anchor = max(anchor, _align(last_sent, reference))
    if schedule.startDate is not None:
        start = _align(schedule.startDate, reference)
        if start > anchor:
            # An occurrence exactly at startDate counts
            anchor = start - timedelta(microseconds=1)
    return occurrence_after(schedule, anchor)


def is_due(
    config: DeliveryConfig,
    reference: datetime,
    last_sent: Optional[datetime] = None,
) -> bool:
    """
    Whether a scheduled delivery should be sent at ``reference``.

    True when an occurrence has elapsed that is later than ``last_sent`` and
    not earlier than ``startDate``; missed occurrences collapse into a single
    due send. Manual and triggered configs are never due by schedule.
    """
    if not isinstance(config, ScheduledDelivery):
        return False
    schedule = config.schedule
    if schedule.startDate is not None and reference < _align(schedule.startDate, reference):
        return False
    latest = occurrence_at_or_before(schedule, reference)
    if schedule.startDate is not None and latest < _align(schedule.startDate, reference):
        return False
    if last_sent is not None and latest <= _align(last_sent, reference):
        return False
    return True


def on_event(
    config: DeliveryConfig,
    event_type: Union[str, TriggerEvent],
    event_instant: datetime,
) -> Optional[datetime]:
    """
    Send instant for a business event, or None when the event does not apply.

    Unknown or unmatched event types are ignored, as are triggers that do
    not send automatically.
    """
    if not isinstance(config, TriggeredDelivery):
        return None
    trigger = config.trigger
    name = event_type.value if isinstance(event_type, TriggerEvent) else str(event_type)
    if name != trigger.type.value or not trigger.sendAutomatically:
        return None
    return event_instant + timedelta(hours=trigger.delayHours)


def delivery_state(
    config: Optional[DeliveryConfig],
    reference: datetime,
    last_sent: Optional[datetime] = None,
    pending_send: Optional[datetime] = None,
) -> DeliveryState:
    """Logical delivery state of one survey at ``reference``."""
    if isinstance(config, ScheduledDelivery):
        return DeliveryState.due if is_due(config, reference, last_sent) else DeliveryState.idle
    if isinstance(config, TriggeredDelivery) and pending_send is not None:
        if _align(pending_send, reference) <= reference:
            return DeliveryState.due
        return DeliveryState.pending
    return DeliveryState.idle
