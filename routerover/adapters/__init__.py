"""
Adapters layer - External integrations (Microsoft Graph, travel times, language models).
"""

from .graph_authenticator import GraphAuthenticator
from .graph_client import GraphCalendarClient
from .intent_extractor import (
    ExtractedIntent,
    HostedModelIntentExtractor,
    Intent,
    RuleBasedIntentExtractor,
    StructuredModelIntentExtractor,
    build_intent_extractor,
)
from .mock_calendar_client import MockCalendarClient
from .route_estimator import BufferedRouteEstimator
from .travel_time import (
    DistanceMatrixTravelTime,
    FixedTravelTime,
    StraightLineTravelTime,
    TravelTimeSource,
)

__all__ = [
    "BufferedRouteEstimator",
    "DistanceMatrixTravelTime",
    "ExtractedIntent",
    "FixedTravelTime",
    "GraphAuthenticator",
    "GraphCalendarClient",
    "HostedModelIntentExtractor",
    "Intent",
    "MockCalendarClient",
    "RuleBasedIntentExtractor",
    "StraightLineTravelTime",
    "StructuredModelIntentExtractor",
    "TravelTimeSource",
    "build_intent_extractor",
]
