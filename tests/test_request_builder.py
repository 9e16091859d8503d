import re

import pytest

from scatterbrain.error_handler import InvalidInputError
from scatterbrain.request_builder import build_request, detect_urgency, generate_session_id

SESSION_ID = re.compile(r'^session_\d+_[0-9a-z]{9}$')


@pytest.mark.parametrize('text', ['', '   ', '\n\t'])
def test_blank_input_is_rejected(text):
    with pytest.raises(InvalidInputError):
        build_request(text)


def test_defaults_are_applied(clock):
    request = build_request("plan my week", clock=clock)

    assert request.input == "plan my week"
    assert request.context.input_method == 'text'
    assert request.output_preferences.insight_depth == 'detailed'
    assert request.output_preferences.action_format == 'todos-first'
    assert request.output_preferences.content_platforms == ['twitter', 'linkedin', 'instagram']
    assert request.features.content_generation is True
    assert request.preferences == {}
    assert SESSION_ID.match(request.session_id)


def test_preferences_are_lifted_into_typed_sections(clock):
    preferences = {
        'insightDepth': 'brief',
        'actionFormat': 'calendar-first',
        'contentPlatforms': ['linkedin'],
        'calendarIntegration': True,
        'features': {'trendAnalysis': True},
        'userGoals': ['ship the launch'],
    }

    request = build_request("plan my week", preferences, input_method='voice', user_id='u1', clock=clock)

    assert request.output_preferences.insight_depth == 'brief'
    assert request.output_preferences.action_format == 'calendar-first'
    assert request.output_preferences.content_platforms == ['linkedin']
    assert request.output_preferences.calendar_integration is True
    assert request.features.trend_analysis is True
    assert request.context.user_goals == ['ship the launch']
    assert request.context.input_method == 'voice'
    assert request.user_id == 'u1'
    assert request.preferences == preferences


def test_payload_uses_camel_case_and_stream_flag(clock):
    payload = build_request("plan my week", {'insightDepth': 'brief'}, session_id='session_1_abc', clock=clock).to_payload()

    assert payload['stream'] is True
    assert payload['sessionId'] == 'session_1_abc'
    assert payload['outputPreferences']['insightDepth'] == 'brief'
    assert payload['context']['inputMethod'] == 'text'
    assert 'userId' not in payload


@pytest.mark.parametrize('text,expected', [
    ("This is urgent, finish the report", 'high'),
    ("Deadline is Friday", 'high'),
    ("I should call mom tomorrow", 'medium'),
    ("Thinking about clouds", 'low'),
])
def test_detect_urgency(text, expected):
    assert detect_urgency(text) == expected


def test_explicit_urgency_wins(clock):
    request = build_request("urgent!!", {'urgencyLevel': 'low'}, clock=clock)
    assert request.context.urgency_level == 'low'


def test_session_ids_are_formatted_and_distinct(clock):
    first, second = generate_session_id(clock), generate_session_id(clock)

    assert first.startswith(f"session_{int(clock.now * 1000)}_")
    assert SESSION_ID.match(first)
    assert first != second
