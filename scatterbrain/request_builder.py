import random
import string
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from scatterbrain.error_handler import InvalidInputError
from scatterbrain.models import (
    FeatureToggles,
    OutputPreferences,
    RequestContext,
    SynthesizeRequest,
)

Clock = Callable[[], float]

URGENCY_KEYWORDS = {
    'high': ['urgent', 'asap', 'emergency', 'critical', 'immediately', 'deadline', 'overdue'],
    'medium': ['soon', 'important', 'priority', 'need to', 'should', 'tomorrow'],
}

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id(clock: Optional[Clock] = None) -> str:
    """session_<epoch millis>_<9 base36 chars>; unique enough, not secret."""
    now = (clock or time.time)()
    suffix = ''.join(random.choice(_BASE36) for _ in range(9))
    return f"session_{int(now * 1000)}_{suffix}"


def detect_urgency(text: str) -> str:
    lower_text = text.lower()
    if any(keyword in lower_text for keyword in URGENCY_KEYWORDS['high']):
        return 'high'
    if any(keyword in lower_text for keyword in URGENCY_KEYWORDS['medium']):
        return 'medium'
    return 'low'


def build_request(
    text: str,
    preferences: Optional[Dict[str, Any]] = None,
    *,
    input_method: str = 'text',
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
    clock: Optional[Clock] = None
) -> SynthesizeRequest:
    """Assemble a SynthesizeRequest from raw text and a preferences dict.

    Recognised preference keys (``insightDepth``, ``actionFormat``,
    ``contentPlatforms``, ``calendarIntegration``, ``features``,
    ``userGoals``, ``sessionHistory``) are lifted into the typed sections;
    the whole dict is also carried verbatim as ``preferences`` since it
    feeds the cache key.
    """
    if text is None or not text.strip():
        raise InvalidInputError("Input text is required")

    preferences = dict(preferences or {})
    clock = clock or time.time

    output_fields = {
        key: preferences[key]
        for key in ('insightDepth', 'actionFormat', 'contentPlatforms', 'calendarIntegration')
        if key in preferences
    }
    context = RequestContext(
        time_of_day=datetime.fromtimestamp(clock()).hour,
        input_method=input_method,
        urgency_level=preferences.get('urgencyLevel') or detect_urgency(text),
        session_history=preferences.get('sessionHistory'),
        user_goals=preferences.get('userGoals'),
    )

    return SynthesizeRequest(
        input=text,
        context=context,
        output_preferences=OutputPreferences.model_validate(output_fields),
        features=FeatureToggles.model_validate(preferences.get('features') or {}),
        user_id=user_id,
        session_id=session_id or generate_session_id(clock),
        preferences=preferences,
    )
