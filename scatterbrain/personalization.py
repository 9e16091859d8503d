import json
import logging
import os
import time
from datetime import datetime
from typing import Callable, Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

PATTERNS_KEY = 'scatterbrain_patterns'
PLATFORMS = ('twitter', 'linkedin', 'instagram')
MAX_ACTIVE_HOURS = 10
MAX_PLATFORM_USES = 10


class Storage(Protocol):
    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...


class MemoryStorage:
    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class JsonFileStorage:
    """Key/value strings kept in one JSON file on disk."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            try:
                return json.load(f)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring unreadable storage file: {self.path}")
                return {}

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(items, f)


class ActionPreferences(BaseModel):
    calendar: float = 0.5
    social: float = 0.5
    todos: float = 0.5


class PlatformUsage(BaseModel):
    twitter: int = 0
    linkedin: int = 0
    instagram: int = 0


class UserPatterns(BaseModel):
    preferred_input: Literal['text', 'voice'] = 'text'
    active_hours: List[int] = Field(default_factory=list)
    action_preferences: ActionPreferences = Field(default_factory=ActionPreferences)
    insight_style: Literal['brief', 'detailed', 'creative'] = 'detailed'
    last_seen: float = 0.0
    session_count: int = 0
    social_platform_usage: PlatformUsage = Field(default_factory=PlatformUsage)
    average_thought_length: float = 0.0
    common_themes: List[str] = Field(default_factory=list)


class PersonalizationTracker:
    def __init__(self, storage: Storage, clock: Optional[Callable[[], float]] = None):
        self.storage = storage
        self._clock = clock or time.time
        self.patterns = self._load()

    def _load(self) -> UserPatterns:
        stored = self.storage.get_item(PATTERNS_KEY)
        if not stored:
            return UserPatterns(last_seen=self._clock())
        try:
            return UserPatterns.model_validate_json(stored)
        except ValidationError as e:
            logger.error(f"Failed to parse user patterns: {str(e)}")
            return UserPatterns(last_seen=self._clock())

    def save(self, **changes) -> UserPatterns:
        self.patterns = self.patterns.model_copy(update=changes)
        self.storage.set_item(PATTERNS_KEY, self.patterns.model_dump_json())
        return self.patterns

    @property
    def is_returning_user(self) -> bool:
        return self.patterns.session_count > 0

    def _hour(self) -> int:
        return datetime.fromtimestamp(self._clock()).hour

    def track_session_start(self) -> UserPatterns:
        hour = self._hour()
        hours = [h for h in self.patterns.active_hours if h != hour] + [hour]
        return self.save(
            session_count=self.patterns.session_count + 1,
            last_seen=self._clock(),
            active_hours=hours[-MAX_ACTIVE_HOURS:]
        )

    def track_input_method(self, method: str) -> UserPatterns:
        return self.save(preferred_input=method)

    def track_thought_length(self, length: int) -> UserPatterns:
        current = self.patterns.average_thought_length
        if self.patterns.session_count > 0:
            average = (current + length) / 2
        else:
            average = float(length)
        return self.save(average_thought_length=average)

    def track_action_usage(self, action: str) -> UserPatterns:
        preferences = self.patterns.action_preferences
        updated = min(getattr(preferences, action) + 0.1, 1.0)
        return self.save(action_preferences=preferences.model_copy(update={action: updated}))

    def track_social_copy(self, platform: str) -> UserPatterns:
        usage = self.patterns.social_platform_usage
        updated = min(getattr(usage, platform) + 1, MAX_PLATFORM_USES)
        self.save(social_platform_usage=usage.model_copy(update={platform: updated}))
        return self.track_action_usage('social')

    def time_context(self, hour: Optional[int] = None) -> Dict[str, str]:
        hour = self._hour() if hour is None else hour
        if 6 <= hour < 12:
            return {'period': 'morning', 'energy': 'planning',
                    'suggestion': 'Great morning energy for organizing your thoughts!'}
        if 12 <= hour < 17:
            return {'period': 'afternoon', 'energy': 'creative',
                    'suggestion': 'Perfect time for creative brainstorming!'}
        if 17 <= hour < 22:
            return {'period': 'evening', 'energy': 'reflection',
                    'suggestion': 'Ideal time to reflect and plan ahead!'}
        return {'period': 'night', 'energy': 'focus',
                'suggestion': 'Late night clarity session!'}

    def estimated_processing_time(self, input_length: int) -> int:
        """Rough wait estimate in milliseconds; experienced users get shorter ones."""
        base_time = 3000
        length_factor = max(input_length / 200, 0.5)
        experience_factor = max(1 - self.patterns.session_count * 0.1, 0.7)
        return round(base_time * length_factor * experience_factor)

    def prioritized_platforms(self) -> List[str]:
        usage = self.patterns.social_platform_usage
        return sorted(PLATFORMS, key=lambda name: getattr(usage, name), reverse=True)

    def is_likely_to_use(self, feature: str) -> bool:
        return getattr(self.patterns.action_preferences, feature) > 0.6
