import pytest
from pydantic import ValidationError

from errors import ConfigError
from models import ManualDelivery, ScheduledDelivery, Survey, SurveyQuestion, TriggeredDelivery
from scheduler import validate_delivery_config

EMAILS = ["ops@example.com"]


def test_each_variant_parses_to_its_own_type():
    assert isinstance(validate_delivery_config({"type": "manual", "emailAddresses": []}), ManualDelivery)
    assert isinstance(
        validate_delivery_config({
            "type": "scheduled",
            "emailAddresses": EMAILS,
            "schedule": {"frequency": "weekly", "dayOfWeek": 3, "time": "08:15"},
        }),
        ScheduledDelivery,
    )
    assert isinstance(
        validate_delivery_config({
            "type": "triggered",
            "emailAddresses": EMAILS,
            "trigger": {"type": "ticket-closed", "delayHours": 4, "sendAutomatically": True},
        }),
        TriggeredDelivery,
    )


def test_model_instance_is_revalidated():
    config = ManualDelivery(emailAddresses=EMAILS)

    assert validate_delivery_config(config) == config


@pytest.mark.parametrize(
    "data",
    [
        # both sub-objects
        {
            "type": "scheduled",
            "emailAddresses": EMAILS,
            "schedule": {"frequency": "daily", "time": "09:00"},
            "trigger": {"type": "ticket-closed", "delayHours": 1, "sendAutomatically": True},
        },
        # sub-object of the wrong variant
        {"type": "triggered", "emailAddresses": EMAILS, "schedule": {"frequency": "daily", "time": "09:00"}},
        {"type": "manual", "schedule": {"frequency": "daily", "time": "09:00"}},
        # no recipients
        {"type": "scheduled", "emailAddresses": [], "schedule": {"frequency": "daily", "time": "09:00"}},
        {"type": "triggered", "emailAddresses": ["not-an-address"],
         "trigger": {"type": "ticket-closed", "delayHours": 1, "sendAutomatically": True}},
        # cadence fields missing or out of range
        {"type": "scheduled", "emailAddresses": EMAILS, "schedule": {"frequency": "weekly", "time": "09:00"}},
        {"type": "scheduled", "emailAddresses": EMAILS,
         "schedule": {"frequency": "weekly", "dayOfWeek": 7, "time": "09:00"}},
        {"type": "scheduled", "emailAddresses": EMAILS,
         "schedule": {"frequency": "monthly", "dayOfMonth": 0, "time": "09:00"}},
        {"type": "scheduled", "emailAddresses": EMAILS,
         "schedule": {"frequency": "daily", "dayOfMonth": 3, "time": "09:00"}},
        {"type": "scheduled", "emailAddresses": EMAILS, "schedule": {"frequency": "daily", "time": "24:00"}},
        {"type": "scheduled", "emailAddresses": EMAILS, "schedule": {"frequency": "hourly", "time": "09:00"}},
        # trigger problems
        {"type": "triggered", "emailAddresses": EMAILS,
         "trigger": {"type": "ticket-closed", "delayHours": -1, "sendAutomatically": True}},
        {"type": "triggered", "emailAddresses": EMAILS,
         "trigger": {"type": "order-shipped", "delayHours": 1, "sendAutomatically": True}},
        # unknown or missing variant tag
        {"type": "sometimes", "emailAddresses": EMAILS},
        {"emailAddresses": EMAILS},
    ],
)
def test_malformed_configs_raise_config_error(data):
    with pytest.raises(ConfigError) as exc:
        validate_delivery_config(data)

    assert exc.value.problems


def test_config_error_lists_locations():
    with pytest.raises(ConfigError) as exc:
        validate_delivery_config({
            "type": "scheduled",
            "emailAddresses": EMAILS,
            "schedule": {"frequency": "monthly", "dayOfMonth": 32, "time": "09:00"},
        })

    assert any("dayOfMonth" in p for p in exc.value.problems)
    assert exc.value.to_dict()["message"] == "Invalid delivery config"


@pytest.mark.parametrize("data", [None, [], "scheduled", 42])
def test_non_object_config_raises_config_error(data):
    with pytest.raises(ConfigError) as exc:
        validate_delivery_config(data)

    assert exc.value.problems == [f"expected an object, got {type(data).__name__}"]


def test_choice_question_requires_options():
    with pytest.raises(ValidationError):
        SurveyQuestion(id="q", title="Pick", type="single-choice")
    with pytest.raises(ValidationError):
        SurveyQuestion(id="q", title="Free", type="short-text", options=["a"])
    with pytest.raises(ValidationError):
        SurveyQuestion(id="q", title="Free", type="short-text", settings={"min": 1})


def test_unknown_question_type_and_status_are_rejected():
    with pytest.raises(ValidationError):
        SurveyQuestion(id="q", title="?", type="slider")
    with pytest.raises(ValidationError):
        Survey(id="s", title="t", createdAt="2024-01-01T00:00:00", status="paused")


def test_duplicate_question_ids_are_rejected():
    with pytest.raises(ValidationError):
        Survey(
            id="s",
            title="t",
            createdAt="2024-01-01T00:00:00",
            questions=[
                {"id": "q", "title": "one", "type": "short-text"},
                {"id": "q", "title": "two", "type": "long-text"},
            ],
        )
