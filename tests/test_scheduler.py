from datetime import datetime, timedelta, timezone

import pytest

from models import DeliveryState
from scheduler import (
    delivery_state,
    is_due,
    next_due_instant,
    on_event,
    validate_delivery_config,
)

EMAILS = ["team@example.com"]


def scheduled(**schedule):
    return validate_delivery_config({"type": "scheduled", "emailAddresses": EMAILS, "schedule": schedule})


def triggered(**trigger):
    return validate_delivery_config({"type": "triggered", "emailAddresses": EMAILS, "trigger": trigger})


MANUAL = validate_delivery_config({"type": "manual", "emailAddresses": []})
DAILY = scheduled(frequency="daily", time="09:00")


def test_daily_after_todays_slot_moves_to_tomorrow():
    assert next_due_instant(DAILY, datetime(2024, 5, 6, 10, 0)) == datetime(2024, 5, 7, 9, 0)


def test_daily_before_todays_slot_is_today():
    assert next_due_instant(DAILY, datetime(2024, 5, 6, 8, 0)) == datetime(2024, 5, 6, 9, 0)


def test_daily_exactly_at_slot_is_strictly_after():
    assert next_due_instant(DAILY, datetime(2024, 5, 6, 9, 0)) == datetime(2024, 5, 7, 9, 0)


def test_last_sent_later_than_reference_wins():
    reference = datetime(2024, 5, 6, 8, 0)
    last_sent = datetime(2024, 5, 6, 9, 0)

    assert next_due_instant(DAILY, reference, last_sent) == datetime(2024, 5, 7, 9, 0)


def test_weekly_uses_sunday_zero_numbering():
    # 2024-05-06 is a Monday
    monday = scheduled(frequency="weekly", dayOfWeek=1, time="14:30")
    sunday = scheduled(frequency="weekly", dayOfWeek=0, time="14:30")
    reference = datetime(2024, 5, 6, 15, 0)

    assert next_due_instant(monday, reference) == datetime(2024, 5, 13, 14, 30)
    assert next_due_instant(sunday, reference) == datetime(2024, 5, 12, 14, 30)


def test_monthly_clamps_to_last_day_of_short_month():
    config = scheduled(frequency="monthly", dayOfMonth=31, time="09:00")

    assert next_due_instant(config, datetime(2024, 4, 2)) == datetime(2024, 4, 30, 9, 0)
    assert next_due_instant(config, datetime(2024, 2, 10)) == datetime(2024, 2, 29, 9, 0)
    assert next_due_instant(config, datetime(2024, 4, 30, 10, 0)) == datetime(2024, 5, 31, 9, 0)


def test_monthly_rolls_over_the_year():
    config = scheduled(frequency="monthly", dayOfMonth=15, time="06:00")

    assert next_due_instant(config, datetime(2024, 12, 20)) == datetime(2025, 1, 15, 6, 0)


def test_start_date_in_future_delays_first_occurrence():
    config = scheduled(frequency="daily", time="09:00", startDate="2024-06-01T09:00:00")
    reference = datetime(2024, 5, 6, 10, 0)

    assert next_due_instant(config, reference) == datetime(2024, 6, 1, 9, 0)
    assert not is_due(config, reference)
    assert not is_due(config, datetime(2024, 6, 1, 8, 59))
    assert is_due(config, datetime(2024, 6, 1, 9, 0))


def test_is_due_once_per_elapsed_occurrence():
    last_sent = datetime(2024, 5, 6, 9, 0)

    assert not is_due(DAILY, datetime(2024, 5, 6, 18, 0), last_sent)
    assert is_due(DAILY, datetime(2024, 5, 7, 9, 0), last_sent)
    # Several missed days still mean a single due send
    assert is_due(DAILY, datetime(2024, 5, 10, 7, 0), last_sent)
    assert not is_due(DAILY, datetime(2024, 5, 10, 7, 0), datetime(2024, 5, 10, 6, 0))


def test_aware_and_naive_instants_mix():
    reference = datetime(2024, 5, 6, 10, 0, tzinfo=timezone.utc)
    last_sent = datetime(2024, 5, 6, 9, 0)

    assert not is_due(DAILY, reference, last_sent)
    assert next_due_instant(DAILY, reference, last_sent) == datetime(2024, 5, 7, 9, 0, tzinfo=timezone.utc)


def test_manual_and_triggered_are_never_due_by_schedule():
    trigger = triggered(type="ticket-closed", delayHours=2, sendAutomatically=True)
    reference = datetime(2024, 5, 6)

    assert not is_due(MANUAL, reference)
    assert not is_due(trigger, reference)
    assert next_due_instant(MANUAL, reference) is None
    assert on_event(MANUAL, "ticket-closed", reference) is None


def test_matching_event_schedules_delayed_send():
    config = triggered(type="purchase-completed", delayHours=24, sendAutomatically=True)

    assert on_event(config, "purchase-completed", datetime(2024, 1, 1)) == datetime(2024, 1, 2)
    assert on_event(config, "ticket-closed", datetime(2024, 1, 1)) is None
    assert on_event(config, "order-shipped", datetime(2024, 1, 1)) is None


def test_trigger_without_automatic_send_does_nothing():
    config = triggered(type="ticket-closed", delayHours=0, sendAutomatically=False)

    assert on_event(config, "ticket-closed", datetime(2024, 1, 1)) is None


def test_fractional_delay():
    config = triggered(type="ticket-closed", delayHours=1.5, sendAutomatically=True)

    assert on_event(config, "ticket-closed", datetime(2024, 1, 1)) == datetime(2024, 1, 1) + timedelta(minutes=90)


@pytest.mark.parametrize(
    "pending, expected",
    [
        (None, DeliveryState.idle),
        (datetime(2024, 1, 2), DeliveryState.pending),
        (datetime(2024, 1, 1), DeliveryState.due),
    ],
)
def test_triggered_state_follows_pending_send(pending, expected):
    config = triggered(type="ticket-closed", delayHours=24, sendAutomatically=True)

    assert delivery_state(config, datetime(2024, 1, 1, 12), pending_send=pending) == expected


def test_scheduled_state_cycle():
    reference = datetime(2024, 5, 7, 9, 30)

    assert delivery_state(DAILY, reference, last_sent=datetime(2024, 5, 6, 9, 0)) == DeliveryState.due
    assert delivery_state(DAILY, reference, last_sent=reference) == DeliveryState.idle
    assert delivery_state(MANUAL, reference) == DeliveryState.idle
    assert delivery_state(None, reference) == DeliveryState.idle
