import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from scatterbrain.error_handler import AppError, InvalidInputError

logger = logging.getLogger(__name__)

TIMEFRAME_HOURS = {'24h': 24, '7d': 168, '30d': 720}
INSIGHT_WINDOW = timedelta(days=7)
TOP_SOURCES = 5
HOT_KEYWORDS = 10


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def calculate_trend(topic: Dict[str, Any], now: datetime) -> str:
    """rising / peak / declining from the topic's age and score."""
    created = _parse_timestamp(topic.get('created_at'))
    if created is None:
        return 'declining'

    age_hours = (now - created).total_seconds() / 3600
    score = topic.get('score') or 0
    if age_hours < 6 and score > 70:
        return 'rising'
    if age_hours < 24 and score > 85:
        return 'peak'
    return 'declining'


def score_distribution(topics: List[Dict[str, Any]]) -> Dict[str, int]:
    buckets = {'low': 0, 'medium': 0, 'high': 0, 'viral': 0}
    for topic in topics:
        score = topic.get('score') or 0
        if score < 30:
            buckets['low'] += 1
        elif score < 60:
            buckets['medium'] += 1
        elif score < 85:
            buckets['high'] += 1
        else:
            buckets['viral'] += 1
    return buckets


class TrendingService:
    def __init__(self, storage_service, research_service, clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage_service
        self.research = research_service
        self._now = clock or (lambda: datetime.now(timezone.utc))

    def list_topics(
        self,
        organization_id: str,
        source: Optional[str] = None,
        min_score: Optional[float] = None,
        timeframe: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        if timeframe and timeframe not in TIMEFRAME_HOURS:
            raise InvalidInputError(f"Unknown timeframe: {timeframe}")

        now = self._now()
        since = now - timedelta(hours=TIMEFRAME_HOURS[timeframe]) if timeframe else None
        topics = self.storage.list_trending(
            organization_id, source=source, min_score=min_score, since=since, limit=limit
        )
        return [self._enrich(topic, now) for topic in topics]

    def get_topic(self, topic_id: str) -> Dict[str, Any]:
        topic = self.storage.get_trending_topic(topic_id)
        if not topic:
            raise AppError(f"Trending topic {topic_id} not found", status_code=404,
                           user_message="Trending topic not found.")
        return self._enrich(topic, self._now())

    def insights(self, organization_id: str) -> Dict[str, Any]:
        """Summary of the last week's topics for the organization's dashboard."""
        topics = self.storage.list_trending(organization_id, since=self._now() - INSIGHT_WINDOW)
        total = len(topics)
        sources = Counter(topic.get('source') or 'unknown' for topic in topics)
        keywords = Counter(keyword for topic in topics for keyword in topic.get('keywords') or [])

        return {
            'totalTrends': total,
            'avgScore': round(sum(t.get('score') or 0 for t in topics) / total, 2) if total else 0,
            'topSources': sources.most_common(TOP_SOURCES),
            'hotKeywords': [keyword for keyword, _ in keywords.most_common(HOT_KEYWORDS)],
            'scoreDistribution': score_distribution(topics)
        }

    def research_topic(self, topic_id: str, niche: Optional[str] = None) -> Dict[str, Any]:
        topic = self.get_topic(topic_id)
        research = self.research.claude_research(topic['topic'], niche, research_type='trend_forecast')
        try:
            self.storage.save_trending_research(topic_id, research)
        except Exception as e:
            # The caller still gets the research even if caching it on the topic fails
            logger.error(f"Failed to save research for topic {topic_id}: {str(e)}")
        logger.info(f"Researched trending topic {topic_id}")
        return {**topic, 'research': research}

    def _enrich(self, topic: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        return {
            **topic,
            'relevanceScore': topic.get('score'),
            'trend': calculate_trend(topic, now),
            'relatedThoughts': []
        }
