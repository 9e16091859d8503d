import logging
from typing import Any, Dict, NamedTuple, Optional

from scatterbrain.error_handler import AppError, UpgradeRequiredError

logger = logging.getLogger(__name__)

UNLIMITED = 999999
DEFAULT_TIER = 'starter'

# Monthly allowance per resource type
TIER_LIMITS: Dict[str, Dict[str, int]] = {
    'starter': {'synthesis': 20, 'claude_query': 5, 'perplexity_query': 0, 'content_generation': 10},
    'professional': {'synthesis': 200, 'claude_query': 25, 'perplexity_query': 10, 'content_generation': 100},
    'agency': {'synthesis': 1000, 'claude_query': 100, 'perplexity_query': 25, 'content_generation': 500},
    'enterprise': {
        'synthesis': UNLIMITED, 'claude_query': UNLIMITED, 'perplexity_query': UNLIMITED, 'content_generation': UNLIMITED
    },
}

# Stored organizations.usage_limits use the frontend's camelCase names
_STORED_LIMIT_KEYS = {
    'synthesis': 'synthesisQueries',
    'claude_query': 'claudeQueries',
    'perplexity_query': 'perplexityQueries',
    'content_generation': 'contentGenerations',
}

RESOURCE_LABELS = {
    'synthesis': 'Thought synthesis',
    'claude_query': 'Claude research',
    'perplexity_query': 'Perplexity research',
    'content_generation': 'Content generation',
}


class UsageGrant(NamedTuple):
    organization_id: str
    user_id: str
    resource_type: str
    tier: str
    current: int
    limit: int

    def to_dict(self, recorded: bool = True) -> Dict[str, Any]:
        return {
            'current': self.current + (1 if recorded else 0),
            'limit': self.limit,
            'tier': self.tier
        }


def limit_for(tier: str, resource_type: str, usage_limits: Optional[Dict[str, Any]] = None) -> int:
    if usage_limits:
        stored = usage_limits.get(_STORED_LIMIT_KEYS.get(resource_type, resource_type))
        if stored is None:
            stored = usage_limits.get(resource_type)
        if stored is not None:
            return int(stored)
    return TIER_LIMITS.get(tier, TIER_LIMITS[DEFAULT_TIER]).get(resource_type, 0)


class UsageService:
    def __init__(self, storage_service):
        self.storage = storage_service

    def check_access(self, user_id: str, resource_type: str) -> UsageGrant:
        """Raise UpgradeRequiredError when the user's tier doesn't allow another use."""
        profile = self.storage.get_profile(user_id)
        if not profile or not profile.get('organization_id'):
            raise AppError(
                f"Profile not found for user {user_id}",
                status_code=404,
                user_message="User profile not found. Please complete your profile setup."
            )

        organization = self.storage.get_organization(profile['organization_id'])
        if not organization:
            raise AppError(
                f"Organization {profile['organization_id']} not found",
                status_code=404,
                user_message="Organization not found."
            )

        tier = organization.get('subscription_tier') or DEFAULT_TIER
        limit = limit_for(tier, resource_type, organization.get('usage_limits'))
        label = RESOURCE_LABELS.get(resource_type, resource_type)

        if limit == 0:
            raise UpgradeRequiredError(
                f"{label} requires a higher subscription tier",
                current_tier=tier,
                status_code=403
            )

        current = self.storage.monthly_usage(profile['organization_id'], resource_type)
        if limit != UNLIMITED and current >= limit:
            logger.info(f"User {user_id} reached the {resource_type} limit ({current}/{limit})")
            raise UpgradeRequiredError(
                f"Monthly {label.lower()} limit reached",
                current_tier=tier,
                status_code=429,
                usage=current,
                limit=limit
            )

        return UsageGrant(profile['organization_id'], user_id, resource_type, tier, current, limit)

    def record_usage(self, grant: UsageGrant, metadata: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.storage.insert_usage(
                grant.organization_id,
                grant.user_id,
                grant.resource_type,
                grant.tier,
                metadata
            )
        except Exception as e:
            # A missed usage row must not fail a request the user already got
            logger.error(f"Failed to record usage for {grant.user_id}: {str(e)}")
