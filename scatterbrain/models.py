from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Models that travel over HTTP use camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class RequestContext(WireModel):
    time_of_day: int = 0
    input_method: Literal['text', 'voice', 'upload'] = 'text'
    urgency_level: Literal['low', 'medium', 'high'] = 'low'
    session_history: Optional[List[str]] = None
    user_goals: Optional[List[str]] = None


class OutputPreferences(WireModel):
    insight_depth: Literal['brief', 'detailed', 'creative'] = 'detailed'
    action_format: Literal['calendar-first', 'todos-first', 'content-first'] = 'todos-first'
    content_platforms: List[str] = Field(default_factory=lambda: ['twitter', 'linkedin', 'instagram'])
    calendar_integration: bool = False


class FeatureToggles(WireModel):
    community_insights: bool = False
    trend_analysis: bool = False
    content_generation: bool = True
    calendar_sync: bool = False


class SynthesizeRequest(WireModel):
    input: str
    context: RequestContext = Field(default_factory=RequestContext)
    output_preferences: OutputPreferences = Field(default_factory=OutputPreferences)
    features: FeatureToggles = Field(default_factory=FeatureToggles)
    user_id: Optional[str] = None
    session_id: str = ''
    preferences: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self, stream: bool = True) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True, mode='json')
        payload['stream'] = stream
        return payload


class EventType(str, Enum):
    PROGRESS = 'progress'
    INSIGHT = 'insight'
    ACTION = 'action'
    CONTENT = 'content'
    COMPLETE = 'complete'
    ERROR = 'error'


class StreamedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    data: Any = None
    timestamp: float

    def to_wire(self) -> Dict[str, Any]:
        return {'type': self.type.value, 'data': self.data}


class StreamState(str, Enum):
    IDLE = 'idle'
    STREAMING = 'streaming'
    COMPLETED = 'completed'
    ENDED_WITHOUT_COMPLETION = 'ended_without_completion'
    ERRORED = 'errored'


# The complete event's payload is handed back untouched.
SynthesizeResponse = Dict[str, Any]


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: Any
    timestamp: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp <= self.ttl


class SynthesisOutcome(BaseModel):
    response: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_category: Optional[str] = None
    upgrade_required: bool = False
    from_cache: bool = False

    @property
    def succeeded(self) -> bool:
        return self.response is not None and self.error_message is None
