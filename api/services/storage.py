import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

class StorageService:
    def __init__(self, supabase_client):
        self.supabase = supabase_client
        self.thoughts_table = 'thoughts'
        self.usage_table = 'usage_tracking'
        self.profiles_table = 'profiles'
        self.organizations_table = 'organizations'
        self.content_table = 'content_suggestions'
        self.trending_table = 'trending_topics'
        logger.info("Storage service initialized")

    def _check(self, result, action: str):
        if hasattr(result, 'error') and result.error:
            raise Exception(f"Supabase error {action}: {result.error}")
        return result

    def store_thought(self, user_id: Optional[str], content: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[Dict]:
        try:
            data = {
                'user_id': user_id,
                'content': content,
                'metadata': metadata or {},
                'created_at': datetime.now().isoformat()
            }
            logger.info(f"Storing thought for user {user_id or 'anonymous'}")
            result = self._check(
                self.supabase.table(self.thoughts_table).insert(data).execute(),
                'storing thought'
            )
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Failed to store thought: {str(e)}")
            raise

    def store_content_suggestions(self, thought_id: str, suggestions: Dict[str, Dict[str, Any]]) -> None:
        rows = [
            {
                'thought_id': thought_id,
                'platform': platform,
                'content': suggestion.get('content', ''),
                'metadata': {k: v for k, v in suggestion.items() if k != 'content'}
            }
            for platform, suggestion in suggestions.items()
        ]
        if not rows:
            return
        try:
            self._check(
                self.supabase.table(self.content_table).insert(rows).execute(),
                'storing content suggestions'
            )
        except Exception as e:
            logger.error(f"Failed to store content suggestions: {str(e)}")
            raise

    def get_profile(self, user_id: str) -> Optional[Dict]:
        result = self._check(
            self.supabase.table(self.profiles_table)
            .select('id, organization_id')
            .eq('id', user_id)
            .maybe_single()
            .execute(),
            'fetching profile'
        )
        return result.data if result else None

    def get_organization(self, organization_id: str) -> Optional[Dict]:
        result = self._check(
            self.supabase.table(self.organizations_table)
            .select('subscription_tier, usage_limits, niche')
            .eq('id', organization_id)
            .maybe_single()
            .execute(),
            'fetching organization'
        )
        return result.data if result else None

    def monthly_usage(self, organization_id: str, resource_type: str, today: Optional[date] = None) -> int:
        """Sum usage_tracking counts since the first day of the current month."""
        today = today or date.today()
        first_of_month = today.replace(day=1).isoformat()
        result = self._check(
            self.supabase.table(self.usage_table)
            .select('count')
            .eq('organization_id', organization_id)
            .eq('resource_type', resource_type)
            .gte('tracked_date', first_of_month)
            .execute(),
            'fetching usage'
        )
        return sum(row.get('count', 0) for row in (result.data or []))

    def insert_usage(
        self,
        organization_id: str,
        user_id: str,
        resource_type: str,
        tier: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        row = {
            'organization_id': organization_id,
            'user_id': user_id,
            'resource_type': resource_type,
            'count': 1,
            'tier': tier,
            'tracked_date': date.today().isoformat(),
            'metadata': metadata or {}
        }
        self._check(self.supabase.table(self.usage_table).insert(row).execute(), 'recording usage')

    def search_thoughts(self, user_id: str, limit: int = 20) -> List[Dict]:
        try:
            result = self._check(
                self.supabase.table(self.thoughts_table)
                .select('*')
                .eq('user_id', user_id)
                .order('created_at', desc=True)
                .limit(limit)
                .execute(),
                'listing thoughts'
            )
            return result.data or []
        except Exception as e:
            logger.error(f"Thought search error: {str(e)}")
            return []

    def get_thought(self, thought_id: str) -> Optional[Dict]:
        result = self._check(
            self.supabase.table(self.thoughts_table)
            .select('id, content, user_id, organization_id')
            .eq('id', thought_id)
            .maybe_single()
            .execute(),
            'fetching thought'
        )
        return result.data if result else None

    def insert_content_suggestion(self, row: Dict[str, Any]) -> Optional[Dict]:
        try:
            result = self._check(
                self.supabase.table(self.content_table).insert(row).execute(),
                'storing content suggestion'
            )
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Failed to store content suggestion: {str(e)}")
            raise

    def list_trending(
        self,
        organization_id: str,
        source: Optional[str] = None,
        min_score: Optional[float] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[Dict]:
        query = (
            self.supabase.table(self.trending_table)
            .select('*')
            .eq('organization_id', organization_id)
            .order('score', desc=True)
        )
        if source:
            query = query.eq('source', source)
        if min_score is not None:
            query = query.gte('score', min_score)
        if since is not None:
            query = query.gte('created_at', since.isoformat())
        if limit:
            query = query.limit(limit)
        result = self._check(query.execute(), 'listing trending topics')
        return result.data or []

    def get_trending_topic(self, topic_id: str) -> Optional[Dict]:
        result = self._check(
            self.supabase.table(self.trending_table)
            .select('*')
            .eq('id', topic_id)
            .maybe_single()
            .execute(),
            'fetching trending topic'
        )
        return result.data if result else None

    def save_trending_research(self, topic_id: str, research: Dict[str, Any]) -> None:
        self._check(
            self.supabase.table(self.trending_table)
            .update({'validation_data': research, 'is_validated': True})
            .eq('id', topic_id)
            .execute(),
            'saving trending research'
        )
