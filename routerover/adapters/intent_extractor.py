"""
Turning free-text customer messages into booking requests.

Three interchangeable strategies share one interface:

- ``RuleBasedIntentExtractor``: keyword intents and regex parsing, no network
- ``HostedModelIntentExtractor``: a Hugging Face text-generation model writes
  the reply; intents and booking details are parsed by rules
- ``StructuredModelIntentExtractor``: an OpenAI-compatible chat model returns
  the intent, reply and booking details as JSON

The hosted strategies fall back to the rule-based one when the model call
fails.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Tuple

import openai
import pendulum
import requests
from pendulum import Date, DateTime

from ..config import IntentConfig
from ..domain.exceptions import IntentExtractionError
from ..domain.models import (
    DEFAULT_TIMEZONE,
    BookingRequest,
    ServiceKind,
    TimePreference,
    default_preference,
)

logger = logging.getLogger(__name__)

ASSISTANT_PERSONA = (
    "You are RouteRover AI, an assistant for a home service company. "
    "You help customers book appointments for services like cleaning, repair, "
    "plumbing, electrical, and landscaping. Be friendly, helpful, and concise."
)


class Intent(str, Enum):
    """What the customer wants from the conversation."""
    GREETING = "greeting"
    BOOKING = "booking"
    CANCELLATION = "cancellation"
    SERVICE_INQUIRY = "service_inquiry"
    GRATITUDE = "gratitude"
    COMPANY_INFO = "company_info"
    GENERAL_CONVERSATION = "general_conversation"


CANNED_REPLIES: Dict[Intent, str] = {
    Intent.GREETING: (
        "Hello! I'm RouteRover AI. How can I help you today? I can schedule cleaning, "
        "repair, plumbing, electrical, or landscaping services for you."
    ),
    Intent.BOOKING: (
        "I'd be happy to help you book an appointment. Could you please provide your name, "
        "address, the service you need, and your preferred date and time?"
    ),
    Intent.CANCELLATION: (
        "I can't change existing bookings yet. Please contact the office to cancel or "
        "reschedule an appointment."
    ),
    Intent.SERVICE_INQUIRY: (
        "We offer various services including cleaning, repair, plumbing, electrical, and "
        "landscaping. Which service are you interested in?"
    ),
    Intent.GRATITUDE: "You're welcome! Is there anything else I can help you with today?",
    Intent.COMPANY_INFO: (
        "RouteRover was founded in 2025 to provide efficient and reliable home services "
        "with smart scheduling technology."
    ),
    Intent.GENERAL_CONVERSATION: (
        "I'm currently operating with limited capabilities. Could you try asking something "
        "about our services or booking an appointment?"
    ),
}


@dataclass(frozen=True)
class ExtractedIntent:
    """Result of reading one customer message."""
    intent: Intent
    response: str
    booking: Optional[BookingRequest] = None

    @property
    def wants_booking(self) -> bool:
        """True when the message asked for a booking and carried every detail."""
        return self.intent is Intent.BOOKING and self.booking is not None


class IntentExtractorProtocol(Protocol):
    def extract(self, message: str) -> ExtractedIntent:
        """Read one customer message."""


# Intent keywords, checked in order
_INTENT_PATTERNS: List[Tuple[Intent, re.Pattern]] = [
    (Intent.CANCELLATION, re.compile(r"\b(cancel|reschedule)", re.IGNORECASE)),
    (Intent.BOOKING, re.compile(r"\b(book|schedule|appointment)", re.IGNORECASE)),
    (
        Intent.SERVICE_INQUIRY,
        re.compile(r"\b(service|repair|clean|plumb|electric|landscap)", re.IGNORECASE),
    ),
    (Intent.GREETING, re.compile(r"\b(hello|hi|hey)\b", re.IGNORECASE)),
    (Intent.GRATITUDE, re.compile(r"\bthank", re.IGNORECASE)),
    (Intent.COMPANY_INFO, re.compile(r"\bwhen\b.*\bcompany\b", re.IGNORECASE)),
]

_SERVICE_KEYWORDS: List[Tuple[re.Pattern, ServiceKind]] = [
    (re.compile(r"\bclean", re.IGNORECASE), ServiceKind.CLEANING),
    (re.compile(r"\b(plumb|leak|drain|pipe)", re.IGNORECASE), ServiceKind.PLUMBING),
    (re.compile(r"\b(electric|wiring|outlet)", re.IGNORECASE), ServiceKind.ELECTRICAL),
    (re.compile(r"\b(landscap|lawn|garden|yard)", re.IGNORECASE), ServiceKind.LANDSCAPING),
    (re.compile(r"\b(repair|fix|broken)", re.IGNORECASE), ServiceKind.REPAIR),
]

_NAME_RE = re.compile(
    r"(?i:\bmy name is|\bthis is|\bi am|\bi'm)\s+([A-Z][a-zA-Z'-]+(?:\s+[A-Z][a-zA-Z'-]+)?)"
)
_MONTHS = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\b"
_ADDRESS_RE = re.compile(
    r"\b(\d{1,6}\s+(?![AaPp]\.?[Mm]\b)(?!" + _MONTHS + r")"
    r"[A-Z][\w'-]*(?:\s+[A-Z][\w'-]*\.?)*"
    r"(?:,\s*[A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)*)*)"
)
_ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_RELATIVE_DATE_RE = re.compile(
    r"\b(today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
    re.IGNORECASE,
)
_TIME_RE = re.compile(
    r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\b\.?|\b(\d{1,2}):(\d{2})\b|\b(morning|afternoon)\b",
    re.IGNORECASE,
)

_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
_PART_OF_DAY = {"morning": time(9, 0), "afternoon": time(14, 0)}
DEFAULT_TIME = time(9, 0)


def detect_intent(message: str) -> Intent:
    """Classify a message by keyword."""
    for intent, pattern in _INTENT_PATTERNS:
        if pattern.search(message):
            return intent
    return Intent.GENERAL_CONVERSATION


def _find_service(message: str) -> Optional[ServiceKind]:
    for pattern, kind in _SERVICE_KEYWORDS:
        if pattern.search(message):
            return kind
    return None


def _find_dates(message: str, now: DateTime) -> List[Date]:
    found: List[Tuple[int, Date]] = []

    for match in _ISO_DATE_RE.finditer(message):
        try:
            found.append((match.start(), pendulum.from_format(match.group(1), "YYYY-MM-DD").date()))
        except ValueError:
            continue

    for match in _RELATIVE_DATE_RE.finditer(message):
        word = match.group(1).lower()
        if word == "today":
            day = now.date()
        elif word == "tomorrow":
            day = now.add(days=1).date()
        else:
            offset = (_WEEKDAYS.index(word) - now.weekday()) % 7 or 7
            day = now.add(days=offset).date()
        found.append((match.start(), day))

    return [day for _, day in sorted(found, key=lambda item: item[0])]


def _find_times(message: str) -> List[time]:
    times: List[time] = []

    for match in _TIME_RE.finditer(message):
        hour_12, minute_12, meridiem, hour_24, minute_24, part = match.groups()
        if part:
            times.append(_PART_OF_DAY[part.lower()])
        elif meridiem:
            hour = int(hour_12) % 12 + (12 if meridiem.lower() == "p" else 0)
            minute = int(minute_12 or 0)
            if hour < 24 and minute < 60:
                times.append(time(hour, minute))
        elif int(hour_24) < 24 and int(minute_24) < 60:
            times.append(time(int(hour_24), int(minute_24)))

    return times


def _pair_preferences(dates: List[Date], times: List[time], now: DateTime) -> Tuple[TimePreference, ...]:
    """
    Combine mentioned dates and times into ranked preferences.

    The shorter list is padded with its last entry, so "tomorrow at 9am or
    11am" yields two preferences on the same day.
    """
    if not dates and not times:
        return (default_preference(now),)

    dates = dates or [now.add(days=1).date()]
    times = times or [DEFAULT_TIME]
    count = max(len(dates), len(times))

    preferences: List[TimePreference] = []
    for index in range(count):
        preference = TimePreference(
            date=dates[min(index, len(dates) - 1)],
            time=times[min(index, len(times) - 1)],
        )
        if preference not in preferences:
            preferences.append(preference)
    return tuple(preferences)


def parse_booking_request(message: str, now: DateTime) -> Optional[BookingRequest]:
    """
    Pull name, address, service and time preferences out of a message.

    Returns None unless name, address and service are all present.
    """
    name = _NAME_RE.search(message)
    address = _ADDRESS_RE.search(message)
    service = _find_service(message)

    if not (name and address and service):
        return None

    return BookingRequest(
        customer_name=name.group(1),
        address=address.group(1).strip(" ,"),
        service=service.value,
        preferences=_pair_preferences(_find_dates(message, now), _find_times(message), now),
        notes=message.strip(),
    )


def _missing_details(message: str) -> List[str]:
    missing = []
    if not _NAME_RE.search(message):
        missing.append("your name")
    if not _ADDRESS_RE.search(message):
        missing.append("your address")
    if not _find_service(message):
        missing.append("the service you need")
    return missing


def _confirmation(booking: BookingRequest) -> str:
    first = booking.preferences[0]
    return (
        f"Thanks, {booking.customer_name}! Let me find a {booking.service} slot for "
        f"{booking.address} around {first}."
    )


class RuleBasedIntentExtractor:
    """Keyword intents and regex parsing; works without any network access."""

    def __init__(
        self,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], DateTime]] = None,
    ):
        self.timezone = timezone
        self._clock = clock or (lambda: pendulum.now(self.timezone))

    def now(self) -> DateTime:
        return self._clock()

    def extract(self, message: str) -> ExtractedIntent:
        intent = detect_intent(message)

        if intent is not Intent.BOOKING:
            return ExtractedIntent(intent=intent, response=CANNED_REPLIES[intent])

        booking = parse_booking_request(message, self.now())
        if booking is None:
            missing = _missing_details(message)
            return ExtractedIntent(
                intent=intent,
                response=(
                    f"I'd be happy to help you book an appointment. "
                    f"Could you tell me {', '.join(missing)}?"
                ),
            )

        return ExtractedIntent(intent=intent, response=_confirmation(booking), booking=booking)


class _HostedIntentExtractor(ABC):
    """Rule-based fallback shared by model-backed extractors."""

    DEFAULT_MODEL = ""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        fallback: Optional[RuleBasedIntentExtractor] = None,
        timeout: int = 30,
    ):
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.endpoint = endpoint
        self.fallback = fallback or RuleBasedIntentExtractor()
        self.timeout = timeout

    def extract(self, message: str) -> ExtractedIntent:
        try:
            return self._extract_with_model(message)
        except IntentExtractionError as exc:
            logger.warning(
                "%s failed, using rule-based replies: %s", self.__class__.__name__, exc
            )
            return self.fallback.extract(message)

    @abstractmethod
    def _extract_with_model(self, message: str) -> ExtractedIntent:
        """Ask the model; raise IntentExtractionError when it cannot answer."""


class HostedModelIntentExtractor(_HostedIntentExtractor):
    """
    Free-form replies from a Hugging Face hosted text-generation model.
    """

    DEFAULT_MODEL = "mistralai/Mistral-7B-Instruct-v0.2"
    DEFAULT_ENDPOINT = "https://api-inference.huggingface.co/models"

    def _extract_with_model(self, message: str) -> ExtractedIntent:
        prompt = f"{ASSISTANT_PERSONA}\n\nUser: {message}\nAssistant:"
        endpoint = self.endpoint or self.DEFAULT_ENDPOINT
        data = self._post(
            f"{endpoint.rstrip('/')}/{self.model}",
            {
                "inputs": prompt,
                "parameters": {
                    "max_new_tokens": 150,
                    "temperature": 0.7,
                    "top_p": 0.95,
                    "do_sample": True,
                    "return_full_text": False,
                },
            },
        )

        try:
            reply = data[0]["generated_text"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise IntentExtractionError(f"Unexpected model response: {data!r}") from exc

        intent = detect_intent(message)
        booking = None
        if intent is Intent.BOOKING:
            booking = parse_booking_request(message, self.fallback.now())

        return ExtractedIntent(intent=intent, response=reply, booking=booking)

    def _post(self, url: str, payload: Dict[str, Any]) -> Any:
        try:
            response = requests.post(
                url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise IntentExtractionError(f"Model request failed: {exc}") from exc


STRUCTURED_INSTRUCTIONS = (
    ASSISTANT_PERSONA
    + " Reply with a JSON object with the keys: "
    '"intent" (one of ' + ", ".join(f'"{i.value}"' for i in Intent) + "), "
    '"response" (your reply to the customer), and '
    '"booking" (null, or an object with "customer_name", "address", "service", '
    '"notes" and "preferences", a list of {"date": "YYYY-MM-DD", "time": "HH:mm"} '
    "ordered from most to least preferred). Today is {today}."
)


class StructuredModelIntentExtractor(_HostedIntentExtractor):
    """
    Intent, reply and booking details as JSON from an OpenAI-compatible chat model.

    ``endpoint`` is the API base URL; leave it unset for api.openai.com.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(self, api_key: str, client: Optional[openai.OpenAI] = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.client = client or openai.OpenAI(
            api_key=self.api_key,
            base_url=self.endpoint,
            timeout=self.timeout,
        )

    def _extract_with_model(self, message: str) -> ExtractedIntent:
        now = self.fallback.now()
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                temperature=0.2,
                messages=[
                    {
                        "role": "system",
                        "content": STRUCTURED_INSTRUCTIONS.replace("{today}", now.to_date_string()),
                    },
                    {"role": "user", "content": message},
                ],
            )
        except openai.OpenAIError as exc:
            raise IntentExtractionError(f"Model request failed: {exc}") from exc

        try:
            payload = json.loads(completion.choices[0].message.content)
            intent = Intent(payload.get("intent", Intent.GENERAL_CONVERSATION.value))
        except (IndexError, TypeError, ValueError, AttributeError) as exc:
            raise IntentExtractionError(f"Unexpected model response: {exc}") from exc

        booking = _booking_from_payload(payload.get("booking"), now)
        return ExtractedIntent(
            intent=intent,
            response=payload.get("response") or CANNED_REPLIES[intent],
            booking=booking,
        )


def _booking_from_payload(payload: Optional[Mapping[str, Any]], now: DateTime) -> Optional[BookingRequest]:
    """Build a request from model JSON; incomplete or malformed details give None."""
    if not payload or not isinstance(payload, Mapping):
        return None

    try:
        preferences = tuple(
            TimePreference.parse(item["date"], item["time"])
            for item in payload.get("preferences") or []
        )
        return BookingRequest(
            customer_name=payload.get("customer_name") or "",
            address=payload.get("address") or "",
            service=payload.get("service") or "",
            preferences=preferences or (default_preference(now),),
            notes=payload.get("notes") or "",
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        logger.info("Model booking details were incomplete: %s", exc)
        return None


def build_intent_extractor(config: IntentConfig, timezone: str = DEFAULT_TIMEZONE) -> IntentExtractorProtocol:
    """Create the extractor selected by ``intent.strategy``."""
    rule_based = RuleBasedIntentExtractor(timezone=timezone)

    if config.strategy == "hosted_model":
        return HostedModelIntentExtractor(
            api_key=config.api_key or "",
            model=config.model,
            endpoint=config.endpoint,
            fallback=rule_based,
        )
    if config.strategy == "structured_model":
        return StructuredModelIntentExtractor(
            api_key=config.api_key or "",
            model=config.model,
            endpoint=config.endpoint,
            fallback=rule_based,
        )
    return rule_based
