import pytest
from unittest.mock import MagicMock

from api.services.usage import TIER_LIMITS, UNLIMITED, UsageService, limit_for
from scatterbrain.error_handler import AppError, UpgradeRequiredError


def make_storage(tier='starter', used=0, usage_limits=None):
    storage = MagicMock()
    storage.get_profile.return_value = {'id': 'user-1', 'organization_id': 'org-1'}
    storage.get_organization.return_value = {'subscription_tier': tier, 'usage_limits': usage_limits}
    storage.monthly_usage.return_value = used
    return storage


def test_tier_table():
    assert TIER_LIMITS['starter'] == {'synthesis': 20, 'claude_query': 5, 'perplexity_query': 0, 'content_generation': 10}
    assert TIER_LIMITS['professional']['perplexity_query'] == 10
    assert TIER_LIMITS['agency']['claude_query'] == 100
    assert TIER_LIMITS['enterprise']['synthesis'] == UNLIMITED


def test_stored_limits_override_tier_defaults():
    assert limit_for('starter', 'claude_query', {'claudeQueries': 50}) == 50
    assert limit_for('starter', 'claude_query', {'claude_query': 7}) == 7
    assert limit_for('starter', 'claude_query', {}) == 5
    assert limit_for('mystery', 'synthesis') == 20


def test_grant_within_limit():
    grant = UsageService(make_storage('professional', used=3)).check_access('user-1', 'claude_query')

    assert grant.limit == 25
    assert grant.to_dict() == {'current': 4, 'limit': 25, 'tier': 'professional'}


def test_zero_limit_requires_upgrade():
    storage = make_storage('starter')

    with pytest.raises(UpgradeRequiredError) as exc_info:
        UsageService(storage).check_access('user-1', 'perplexity_query')

    assert exc_info.value.status_code == 403
    assert exc_info.value.to_dict()['current_tier'] == 'starter'
    storage.monthly_usage.assert_not_called()


def test_monthly_limit_reached():
    with pytest.raises(UpgradeRequiredError) as exc_info:
        UsageService(make_storage('starter', used=5)).check_access('user-1', 'claude_query')

    error = exc_info.value
    assert error.status_code == 429
    assert error.to_dict() == {
        'error': 'Monthly claude research limit reached',
        'upgrade_required': True,
        'current_tier': 'starter',
        'usage': 5,
        'limit': 5
    }


def test_unlimited_tier_never_blocks():
    grant = UsageService(make_storage('enterprise', used=10 ** 7)).check_access('user-1', 'synthesis')
    assert grant.limit == UNLIMITED


def test_missing_profile_is_not_found():
    storage = make_storage()
    storage.get_profile.return_value = None

    with pytest.raises(AppError) as exc_info:
        UsageService(storage).check_access('user-1', 'synthesis')

    assert exc_info.value.status_code == 404


def test_record_usage_failure_is_logged_not_raised():
    storage = make_storage()
    service = UsageService(storage)
    grant = service.check_access('user-1', 'synthesis')
    storage.insert_usage.side_effect = RuntimeError("insert failed")

    service.record_usage(grant, {'insight_id': 'insight_1'})

    storage.insert_usage.assert_called_once_with('org-1', 'user-1', 'synthesis', 'starter', {'insight_id': 'insight_1'})


def test_content_generation_limit_message():
    storage = make_storage('starter', used=10)

    with pytest.raises(UpgradeRequiredError) as exc_info:
        UsageService(storage).check_access('user-1', 'content_generation')

    assert exc_info.value.status_code == 429
    assert exc_info.value.message == 'Monthly content generation limit reached'
    assert limit_for('starter', 'content_generation', {'contentGenerations': 40}) == 40
