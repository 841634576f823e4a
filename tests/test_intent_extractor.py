"""
Tests for reading customer messages.
"""

import json
from datetime import time
from types import SimpleNamespace

import openai
import pendulum
import pytest
import requests

from routerover.adapters import intent_extractor
from routerover.adapters.intent_extractor import (
    CANNED_REPLIES,
    HostedModelIntentExtractor,
    Intent,
    RuleBasedIntentExtractor,
    StructuredModelIntentExtractor,
    _HostedIntentExtractor,
    build_intent_extractor,
    detect_intent,
    parse_booking_request,
)
from routerover.config import IntentConfig
from routerover.domain.models import TimePreference

TZ = "America/New_York"
# Monday morning
NOW = pendulum.datetime(2025, 6, 2, 10, 0, tz=TZ)

BOOKING_MESSAGE = (
    "Hi, I'm Jane Doe. I'd like to book a cleaning at 42 Elm Street, Anytown "
    "on 2025-06-04 at 1pm or 3:30pm"
)


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Hello there", Intent.GREETING),
        ("Can I book an appointment?", Intent.BOOKING),
        ("I need to cancel my appointment", Intent.CANCELLATION),
        ("Do you do plumbing?", Intent.SERVICE_INQUIRY),
        ("Thanks a lot!", Intent.GRATITUDE),
        ("When was your company founded?", Intent.COMPANY_INFO),
        ("What's the weather like?", Intent.GENERAL_CONVERSATION),
    ],
)
def test_detect_intent(message, expected):
    assert detect_intent(message) is expected


class TestParseBookingRequest:

    def test_full_message(self):
        request = parse_booking_request(BOOKING_MESSAGE, NOW)

        assert request.customer_name == "Jane Doe"
        assert request.address == "42 Elm Street, Anytown"
        assert request.service == "cleaning"
        assert request.preferences == (
            TimePreference.parse("2025-06-04", "13:00"),
            TimePreference.parse("2025-06-04", "15:30"),
        )
        assert request.notes == BOOKING_MESSAGE

    def test_relative_days_and_parts_of_day(self):
        message = "My name is Sam Okafor, please book a repair at 18 Birch Avenue tomorrow morning or friday afternoon"

        request = parse_booking_request(message, NOW)

        assert request.service == "repair"
        assert request.preferences == (
            TimePreference(date=pendulum.date(2025, 6, 3), time=time(9, 0)),
            TimePreference(date=pendulum.date(2025, 6, 6), time=time(14, 0)),
        )

    def test_same_weekday_means_next_week(self):
        message = "I'm Dan Whitfield at 7 Harbor Road, book plumbing on monday at 11:00"

        request = parse_booking_request(message, NOW)

        assert request.preferences == (TimePreference(date=pendulum.date(2025, 6, 9), time=time(11, 0)),)

    def test_no_time_given_defaults_to_tomorrow_morning(self):
        request = parse_booking_request("I'm Priya Nair, 310 Orchard Lane, book landscaping please", NOW)

        assert request.preferences == (TimePreference(date=pendulum.date(2025, 6, 3), time=time(9, 0)),)

    def test_times_are_not_mistaken_for_addresses(self):
        message = "I'm Jane Doe, book cleaning at 10 AM on 5 June, I live at 12 Oak Road"

        request = parse_booking_request(message, NOW)

        assert request.address == "12 Oak Road"

    def test_incomplete_message_gives_none(self):
        assert parse_booking_request("Can I book a cleaning tomorrow?", NOW) is None


class TestRuleBasedIntentExtractor:

    @pytest.fixture
    def extractor(self):
        return RuleBasedIntentExtractor(timezone=TZ, clock=lambda: NOW)

    def test_complete_booking(self, extractor):
        result = extractor.extract(BOOKING_MESSAGE)

        assert result.wants_booking
        assert "Jane Doe" in result.response

    def test_incomplete_booking_asks_for_details(self, extractor):
        result = extractor.extract("Can I book a cleaning?")

        assert result.intent is Intent.BOOKING
        assert not result.wants_booking
        assert "your name" in result.response
        assert "your address" in result.response
        assert "the service you need" not in result.response

    def test_canned_reply(self, extractor):
        result = extractor.extract("hey")

        assert result.response == CANNED_REPLIES[Intent.GREETING]
        assert result.booking is None


class TestHostedModelIntentExtractor:

    @pytest.fixture
    def extractor(self):
        return HostedModelIntentExtractor(
            api_key="hf-key",
            fallback=RuleBasedIntentExtractor(timezone=TZ, clock=lambda: NOW),
        )

    def test_reply_comes_from_model(self, monkeypatch, extractor):
        sent = {}

        def fake_post(url, headers=None, json=None, timeout=None):
            sent.update(url=url, headers=headers, json=json)
            return FakeResponse([{"generated_text": "  Happy to help with that cleaning! "}])

        monkeypatch.setattr(intent_extractor.requests, "post", fake_post)

        result = extractor.extract(BOOKING_MESSAGE)

        assert result.response == "Happy to help with that cleaning!"
        assert result.wants_booking
        assert sent["url"].endswith("/mistralai/Mistral-7B-Instruct-v0.2")
        assert sent["headers"]["Authorization"] == "Bearer hf-key"
        assert "RouteRover AI" in sent["json"]["inputs"]

    def test_falls_back_to_rules_when_model_fails(self, monkeypatch, extractor, caplog):
        def fake_post(*args, **kwargs):
            raise requests.exceptions.ConnectionError("model loading")

        monkeypatch.setattr(intent_extractor.requests, "post", fake_post)

        result = extractor.extract("Thank you!")

        assert result.response == CANNED_REPLIES[Intent.GRATITUDE]
        assert "rule-based" in caplog.text

    def test_unexpected_payload_falls_back(self, monkeypatch, extractor):
        monkeypatch.setattr(intent_extractor.requests, "post", lambda *a, **k: FakeResponse({"error": "busy"}))

        result = extractor.extract("hello")

        assert result.response == CANNED_REPLIES[Intent.GREETING]


class FakeCompletions:
    """Stands in for ``client.chat.completions``."""

    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=json.dumps(self.content))
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestStructuredModelIntentExtractor:

    @staticmethod
    def _extractor(completions):
        return StructuredModelIntentExtractor(
            api_key="sk-test",
            client=fake_client(completions),
            fallback=RuleBasedIntentExtractor(timezone=TZ, clock=lambda: NOW),
        )

    def test_booking_from_json(self):
        completions = FakeCompletions({
            "intent": "booking",
            "response": "Booking that for you.",
            "booking": {
                "customer_name": "Helen Brooks",
                "address": "95 Cedar Court",
                "service": "Repair",
                "preferences": [{"date": "2025-06-04", "time": "11:00"}],
            },
        })

        result = self._extractor(completions).extract("anything")

        assert result.intent is Intent.BOOKING
        assert result.response == "Booking that for you."
        assert result.booking.service == "repair"
        assert result.booking.preferences == (TimePreference.parse("2025-06-04", "11:00"),)

        sent = completions.calls[0]
        assert sent["model"] == "gpt-4o-mini"
        assert sent["response_format"] == {"type": "json_object"}
        assert "Today is 2025-06-02" in sent["messages"][0]["content"]
        assert sent["messages"][1] == {"role": "user", "content": "anything"}

    def test_incomplete_booking_is_dropped(self):
        completions = FakeCompletions({"intent": "booking", "response": "Where do you live?", "booking": {"customer_name": "Helen"}})

        result = self._extractor(completions).extract("anything")

        assert result.booking is None
        assert not result.wants_booking

    def test_unknown_intent_falls_back(self):
        completions = FakeCompletions({"intent": "smalltalk", "response": "hi"})

        result = self._extractor(completions).extract("hello")

        assert result.response == CANNED_REPLIES[Intent.GREETING]

    def test_sdk_error_falls_back_to_rules(self, caplog):
        completions = FakeCompletions(error=openai.OpenAIError("rate limited"))

        result = self._extractor(completions).extract("Thank you!")

        assert result.response == CANNED_REPLIES[Intent.GRATITUDE]
        assert "rate limited" in caplog.text

    def test_client_uses_configured_base_url(self):
        extractor = StructuredModelIntentExtractor(api_key="sk-test", endpoint="https://llm.example.com/v1")

        assert str(extractor.client.base_url).startswith("https://llm.example.com/v1")
        assert extractor.client.api_key == "sk-test"


def test_hosted_extractors_are_abstract():
    with pytest.raises(TypeError):
        _HostedIntentExtractor(api_key="k")


def test_build_intent_extractor():
    assert isinstance(build_intent_extractor(IntentConfig(), TZ), RuleBasedIntentExtractor)
    assert isinstance(
        build_intent_extractor(IntentConfig(strategy="hosted_model", api_key="k"), TZ),
        HostedModelIntentExtractor,
    )
    assert isinstance(
        build_intent_extractor(IntentConfig(strategy="structured_model", api_key="k"), TZ),
        StructuredModelIntentExtractor,
    )
