import io
import json

from unittest.mock import AsyncMock

from api.services.usage import UsageGrant
from scatterbrain.error_handler import ProviderError, UpgradeRequiredError
from scatterbrain.rate_limiter import RateLimiter

AUTH = {'Authorization': 'Bearer valid-token'}

RESPONSE = {
    'success': True,
    'id': 'insight_abc',
    'insights': {'keyThemes': [], 'actionItems': [], 'contentSuggestions': {'twitter': {'content': 'tweet'}}},
}


def parse_sse(body):
    return [json.loads(block[len('data: '):]) for block in body.split('\n\n') if block.startswith('data: ')]


def test_status(test_client):
    response = test_client.get('/status')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'healthy'}


def test_blank_input_rejected(test_client, mock_services):
    response = test_client.post('/synthesize', json={'input': '   '})

    assert response.status_code == 400
    assert response.get_json() == {'success': False, 'error': 'Input text is required'}
    mock_services.synthesis.synthesize.assert_not_called()


def test_script_only_input_is_blank_after_sanitizing(test_client):
    response = test_client.post('/synthesize', json={'input': '<script>alert(1)</script>'})
    assert response.status_code == 400


def test_anonymous_json_synthesis(test_client, mock_services):
    mock_services.synthesis.synthesize.return_value = RESPONSE

    response = test_client.post('/synthesize', json={'input': 'plan my week', 'sessionId': 'session_1_abc'})

    assert response.status_code == 200
    assert response.get_json() == RESPONSE
    synth_request = mock_services.synthesis.synthesize.call_args.args[0]
    assert synth_request.input == 'plan my week'
    assert synth_request.session_id == 'session_1_abc'
    assert synth_request.user_id is None
    mock_services.usage.check_access.assert_not_called()
    mock_services.storage.store_thought.assert_not_called()


def test_streaming_synthesis_frames_events(test_client, mock_services):
    mock_services.synthesis.stream_events.return_value = iter([
        {'type': 'progress', 'data': {'progress': 10}},
        {'type': 'insight', 'data': {'theme': 'planning'}},
        {'type': 'complete', 'data': RESPONSE},
    ])
    mock_services.storage.store_thought.return_value = {'id': 'thought-1'}

    response = test_client.post('/synthesize', json={'input': 'plan my week', 'stream': True}, headers=AUTH)
    records = parse_sse(response.get_data(as_text=True))

    assert response.status_code == 200
    assert response.mimetype == 'text/event-stream'
    assert [r['type'] for r in records] == ['progress', 'insight', 'complete']
    mock_services.usage.check_access.assert_called_once_with('user-1', 'synthesis')
    mock_services.usage.record_usage.assert_called_once()
    assert mock_services.storage.store_thought.call_args.args[:2] == ('user-1', 'plan my week')
    mock_services.storage.store_content_suggestions.assert_called_once_with(
        'thought-1', RESPONSE['insights']['contentSuggestions']
    )


def test_stream_error_skips_usage_recording(test_client, mock_services):
    mock_services.synthesis.stream_events.return_value = iter([
        {'type': 'progress', 'data': {'progress': 10}},
        {'type': 'error', 'data': {'message': 'Analysis failed'}},
    ])

    response = test_client.post('/synthesize', json={'input': 'plan my week', 'stream': True}, headers=AUTH)

    assert [r['type'] for r in parse_sse(response.get_data(as_text=True))] == ['progress', 'error']
    mock_services.usage.record_usage.assert_not_called()


def test_upgrade_required_response(test_client, mock_services):
    mock_services.usage.check_access.side_effect = UpgradeRequiredError(
        "Monthly thought synthesis limit reached", current_tier='starter', status_code=429, usage=20, limit=20
    )

    response = test_client.post('/synthesize', json={'input': 'plan my week'}, headers=AUTH)
    body = response.get_json()

    assert response.status_code == 429
    assert body['upgrade_required'] is True
    assert body['current_tier'] == 'starter'
    assert body['error'] == "Monthly thought synthesis limit reached"


def test_rate_limit(test_client, mock_services):
    mock_services.rate_limiter = RateLimiter(max_attempts=1, window_seconds=60)
    mock_services.synthesis.synthesize.return_value = RESPONSE

    assert test_client.post('/synthesize', json={'input': 'one'}).status_code == 200
    assert test_client.post('/synthesize', json={'input': 'two'}).status_code == 429


def test_malformed_request_body(test_client):
    response = test_client.post('/synthesize', json={'input': 'plan', 'context': {'inputMethod': 'telepathy'}})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid synthesis request'


def test_research_requires_auth(test_client):
    response = test_client.post('/research/claude', json={'topic': 'focus'})

    assert response.status_code == 401
    assert response.get_json()['error'] == 'Please sign in again to continue.'


def test_claude_research(test_client, mock_services):
    grant = UsageGrant('org-1', 'user-1', 'claude_query', 'professional', 3, 25)
    mock_services.usage.check_access.return_value = grant
    mock_services.research.claude_research.return_value = {
        'content': 'analysis', 'research_type': 'deep_analysis', 'topic': 'focus'
    }

    response = test_client.post('/research/claude', json={'topic': 'focus'}, headers=AUTH)
    body = response.get_json()

    assert response.status_code == 200
    assert body['usage'] == {'current': 4, 'limit': 25, 'tier': 'professional'}
    assert mock_services.research.claude_research.call_args.kwargs['niche'] == 'productivity'
    mock_services.usage.record_usage.assert_called_once()


def test_provider_failure_is_sanitized(test_client, mock_services):
    mock_services.usage.check_access.return_value = UsageGrant('org-1', 'user-1', 'perplexity_query', 'agency', 0, 25)
    mock_services.research.perplexity_research.side_effect = ProviderError('Perplexity', 'connect to 10.0.0.4 failed')

    response = test_client.post('/research/perplexity', json={'topic': 'AI'}, headers=AUTH)

    assert response.status_code == 502
    assert '10.0.0.4' not in response.get_data(as_text=True)


def test_unexpected_error_is_generic(test_client, mock_services):
    mock_services.synthesis.synthesize.side_effect = KeyError('secret_column')

    response = test_client.post('/synthesize', json={'input': 'plan my week'})

    assert response.status_code == 500
    assert 'secret_column' not in response.get_data(as_text=True)


def test_transcribe(test_client, mock_services):
    mock_services.audio.transcribe = AsyncMock(return_value="hello world")

    response = test_client.post(
        '/transcribe',
        data={'audio': (io.BytesIO(b'fake_audio'), 'memo.webm', 'audio/webm')},
        content_type='multipart/form-data'
    )

    assert response.status_code == 200
    assert response.get_json()['transcription'] == "hello world"
    mock_services.audio.transcribe.assert_awaited_once_with(b'fake_audio', 'audio/webm')


def test_transcribe_without_file(test_client):
    assert test_client.post('/transcribe', data={}, content_type='multipart/form-data').status_code == 400


def test_upload_text_file(test_client):
    response = test_client.post(
        '/upload',
        data={'file': (io.BytesIO(b'# Ideas\nwrite more <script>x</script>'), 'ideas.md', 'text/markdown')},
        content_type='multipart/form-data'
    )

    assert response.status_code == 200
    assert response.get_json()['content'] == '# Ideas\nwrite more '


def test_upload_rejects_disallowed_type(test_client):
    response = test_client.post(
        '/upload',
        data={'file': (io.BytesIO(b'MZ'), 'tool.exe', 'application/octet-stream')},
        content_type='multipart/form-data'
    )

    assert response.status_code == 400
    assert 'File type not allowed' in response.get_json()['error']


def test_list_thoughts(test_client, mock_services):
    mock_services.storage.search_thoughts.return_value = [{'id': 'thought-1'}]

    response = test_client.get('/thoughts?limit=500', headers=AUTH)

    assert response.get_json() == {'thoughts': [{'id': 'thought-1'}]}
    mock_services.storage.search_thoughts.assert_called_once_with('user-1', limit=100)


def test_billing_checkout(test_client, mock_services):
    mock_services.billing.create_checkout_session.return_value = 'https://checkout.stripe.test/s/1'

    response = test_client.post('/billing/checkout', json={'tier': 'agency'}, headers=AUTH)

    assert response.get_json() == {'url': 'https://checkout.stripe.test/s/1'}
    mock_services.billing.create_checkout_session.assert_called_once_with('agency', 'valid-token')


def test_billing_portal_requires_auth(test_client):
    assert test_client.post('/billing/portal').status_code == 401


def test_trending_lists_topics_for_users_organization(test_client, mock_services):
    mock_services.storage.get_profile.return_value = {'organization_id': 'org-1'}
    mock_services.trending.list_topics.return_value = [{'id': 'topic-1', 'trend': 'rising'}]

    response = test_client.get('/trending?source=reddit&minScore=60&timeframe=7d&limit=5', headers=AUTH)

    assert response.get_json() == {'topics': [{'id': 'topic-1', 'trend': 'rising'}]}
    mock_services.trending.list_topics.assert_called_once_with(
        'org-1', source='reddit', min_score=60.0, timeframe='7d', limit=5
    )


def test_trending_without_profile_is_404(test_client, mock_services):
    mock_services.storage.get_profile.return_value = None

    response = test_client.get('/trending', headers=AUTH)

    assert response.status_code == 404
    mock_services.trending.list_topics.assert_not_called()


def test_trending_requires_auth(test_client):
    assert test_client.get('/trending').status_code == 401


def test_trending_insights(test_client, mock_services):
    mock_services.storage.get_profile.return_value = {'organization_id': 'org-1'}
    mock_services.trending.insights.return_value = {'totalTrends': 2}

    response = test_client.get('/trending/insights', headers=AUTH)

    assert response.get_json() == {'totalTrends': 2}
    mock_services.trending.insights.assert_called_once_with('org-1')


def test_research_trending_topic_is_usage_gated(test_client, mock_services):
    grant = UsageGrant('org-1', 'user-1', 'claude_query', 'professional', 3, 50)
    mock_services.usage.check_access.return_value = grant
    mock_services.trending.research_topic.return_value = {'id': 'topic-1', 'topic': 'async standups', 'research': {}}

    response = test_client.post('/trending/topic-1/research', headers=AUTH)

    assert response.get_json()['topic']['id'] == 'topic-1'
    mock_services.usage.check_access.assert_called_once_with('user-1', 'claude_query')
    mock_services.trending.research_topic.assert_called_once_with('topic-1', 'productivity')
    assert mock_services.usage.record_usage.call_args.args[1] == {
        'research_type': 'trend_forecast', 'topic': 'async standups'
    }


def test_generate_content(test_client, mock_services):
    grant = UsageGrant('org-1', 'user-1', 'content_generation', 'professional', 0, 100)
    mock_services.usage.check_access.return_value = grant
    mock_services.content.generate.return_value = {'success': True, 'content': 'post'}

    response = test_client.post(
        '/content/generate', json={'thoughtId': 'thought-1', 'platform': 'linkedin', 'tone': 'casual'}, headers=AUTH
    )

    assert response.get_json() == {'success': True, 'content': 'post'}
    mock_services.usage.check_access.assert_called_once_with('user-1', 'content_generation')
    mock_services.content.generate.assert_called_once_with(
        'user-1', 'thought-1', 'linkedin',
        content_type='post', tone='casual', length='medium', target_audience='general'
    )
    mock_services.usage.record_usage.assert_called_once()


def test_generate_content_over_limit(test_client, mock_services):
    mock_services.usage.check_access.side_effect = UpgradeRequiredError(
        "Monthly content generation limit reached", current_tier='starter', status_code=429, usage=10, limit=10
    )

    response = test_client.post('/content/generate', json={'thoughtId': 'thought-1', 'platform': 'x'}, headers=AUTH)

    assert response.status_code == 429
    mock_services.content.generate.assert_not_called()


def test_multiply_content_uses_grant_organization(test_client, mock_services):
    grant = UsageGrant('org-1', 'user-1', 'content_generation', 'agency', 0, 500)
    mock_services.usage.check_access.return_value = grant
    mock_services.content.multiply.return_value = {'success': True, 'coreTheme': 'Focus'}

    response = test_client.post(
        '/content/multiply',
        json={'originalInput': 'protect deep work', 'contentTypes': ['blog_post', 'newsletter']},
        headers=AUTH
    )

    assert response.get_json()['coreTheme'] == 'Focus'
    mock_services.content.multiply.assert_called_once_with(
        'user-1', 'org-1', 'protect deep work', ['blog_post', 'newsletter'],
        target_audience='general', tone='professional', brand_voice='helpful and informative'
    )
