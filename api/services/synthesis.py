import logging
import re
import time
import uuid
from typing import Any, Callable, Dict, Iterator, List, Optional

from scatterbrain.ai_clients import OpenAIClient, parse_json_content
from scatterbrain.error_handler import AppError
from scatterbrain.models import EventType, SynthesizeRequest
from scatterbrain.security import sanitize_error_message

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert at analyzing thoughts and extracting actionable insights. "
    "Always respond with valid JSON only."
)

DEPTH_INSTRUCTIONS = {
    'brief': "Keep it short: at most 3 themes and 3 action items.",
    'detailed': "Be thorough: cover every distinct theme and concrete next step.",
    'creative': "Look for unexpected connections and original angles.",
}

ANALYSIS_TEMPLATE = """Analyze this thought/input and extract insights in the following JSON format:

{{
  "keyThemes": [
    {{"theme": "theme name", "confidence": 0.0-1.0, "evidence": ["keyword1"], "relatedConcepts": ["concept1"]}}
  ],
  "actionItems": [
    {{"task": "specific actionable task", "priority": "low|medium|high",
      "category": "planning|creative|research|communication",
      "estimatedDuration": "30 minutes", "suggestedTime": "morning|afternoon|evening|specific time"}}
  ],
  "contentSuggestions": {{
    {platform_block}
  }},
  "researchSuggestions": [{{"topic": "relevant research topic", "sources": ["expert blogs"], "relevance": 0.0-1.0}}],
  "calendarBlocks": [{{"title": "calendar event title", "duration": 60, "priority": "low|medium|high",
                      "suggestedTimes": ["tomorrow_9am"]}}],
  "metadata": {{"sentiment": "positive|neutral|negative", "complexity": "simple|medium|complex", "topics": ["topic1"]}}
}}

{depth_instruction}
The user marked this as {urgency} urgency and prefers {action_format} action plans.

Input to analyze: "{input}"

Return only valid JSON, no explanations."""

PLATFORM_HINTS = {
    'twitter': '"twitter": {"content": "engaging tweet content", "hashtags": ["#relevant"]}',
    'linkedin': '"linkedin": {"content": "professional LinkedIn post", "post_type": "insight_sharing|question|announcement"}',
    'instagram': '"instagram": {"content": "visual-friendly caption", "style": "motivational|behind_scenes|educational"}',
}

FALLBACK_ANALYSIS: Dict[str, Any] = {
    'keyThemes': [],
    'actionItems': [],
    'contentSuggestions': {},
    'researchSuggestions': [],
    'calendarBlocks': [],
    'metadata': {},
}

DEFAULT_CONFIDENCE = 0.8

_EMOJI = re.compile('[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF\U0001F1E0-\U0001F1FF]')


def calculate_engagement_prediction(content: str, platform: str) -> float:
    """Heuristic engagement score in [0.1, 1.0]."""
    has_hashtags = '#' in content
    has_emojis = bool(_EMOJI.search(content))
    length = len(content)

    score = 0.5
    if has_hashtags:
        score += 0.1
    if has_emojis:
        score += 0.1

    if platform == 'twitter' and 50 < length < 280:
        score += 0.2
    elif platform == 'linkedin' and 100 < length < 1500:
        score += 0.2
    elif platform == 'instagram' and length < 500 and has_emojis:
        score += 0.2

    return round(min(max(score, 0.1), 1.0), 2)


def _text(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


class SynthesisService:
    def __init__(self, ai_client: OpenAIClient, clock: Optional[Callable[[], float]] = None):
        self.ai = ai_client
        self._clock = clock or time.monotonic

    def build_prompt(self, request: SynthesizeRequest) -> str:
        platforms = request.output_preferences.content_platforms or list(PLATFORM_HINTS)
        platform_block = ',\n    '.join(
            PLATFORM_HINTS.get(p, f'"{p}": {{"content": "post tailored to {p}"}}') for p in platforms
        )
        return ANALYSIS_TEMPLATE.format(
            platform_block=platform_block,
            depth_instruction=DEPTH_INSTRUCTIONS[request.output_preferences.insight_depth],
            urgency=request.context.urgency_level,
            action_format=request.output_preferences.action_format,
            input=request.input.replace('"', '\\"')
        )

    def synthesize(self, request: SynthesizeRequest) -> Dict[str, Any]:
        start = self._clock()
        logger.info(f"Processing thought for user {request.user_id or 'anonymous'}: {request.input[:100]}...")

        raw, tokens_used = self.ai.complete(SYSTEM_PROMPT, self.build_prompt(request))
        analysis = parse_json_content(raw, FALLBACK_ANALYSIS)
        if not isinstance(analysis, dict):
            logger.error("AI response was JSON but not an object; using fallback structure")
            analysis = FALLBACK_ANALYSIS

        response = self._assemble(request, analysis, tokens_used, self._clock() - start)
        logger.info(f"Successfully processed insight {response['id']} in {response['processingTime']:.2f}s")
        return response

    def stream_events(self, request: SynthesizeRequest) -> Iterator[Dict[str, Any]]:
        """Yield wire records: progress, insight*, action*, content, complete.

        A provider failure becomes a single ``error`` record; the stream then
        ends without ``complete``.
        """
        yield {'type': EventType.PROGRESS.value, 'data': {'message': 'Analyzing your thought...', 'progress': 10}}

        try:
            response = self.synthesize(request)
        except AppError as e:
            logger.error(f"Synthesis failed mid-stream: {e.message}")
            yield {'type': EventType.ERROR.value, 'data': {'message': sanitize_error_message(e.user_message)}}
            return

        yield {'type': EventType.PROGRESS.value, 'data': {'message': 'Organizing insights...', 'progress': 60}}
        insights = response['insights']
        for theme in insights['keyThemes']:
            yield {'type': EventType.INSIGHT.value, 'data': theme}
        for action in insights['actionItems']:
            yield {'type': EventType.ACTION.value, 'data': action}
        if insights['contentSuggestions']:
            yield {'type': EventType.CONTENT.value, 'data': insights['contentSuggestions']}
        yield {'type': EventType.COMPLETE.value, 'data': response}

    def _assemble(
        self,
        request: SynthesizeRequest,
        analysis: Dict[str, Any],
        tokens_used: int,
        elapsed: float
    ) -> Dict[str, Any]:
        key_themes = self._themes(analysis.get('keyThemes'))
        calendar_blocks = [b for b in analysis.get('calendarBlocks') or [] if isinstance(b, dict)]
        action_items = self._actions(analysis.get('actionItems'), calendar_blocks, request)
        content = self._content(analysis.get('contentSuggestions'), request.output_preferences.content_platforms)

        if key_themes:
            confidence = round(sum(t['confidence'] for t in key_themes) / len(key_themes), 2)
        else:
            confidence = DEFAULT_CONFIDENCE
        ai_metadata = analysis.get('metadata') if isinstance(analysis.get('metadata'), dict) else {}

        return {
            'success': True,
            'id': f"insight_{uuid.uuid4().hex[:12]}",
            'sessionId': request.session_id,
            'processingTime': elapsed,
            'insights': {
                'keyThemes': key_themes,
                'actionItems': action_items,
                'contentSuggestions': content,
                'communityConnections': [],
                'researchSuggestions': analysis.get('researchSuggestions') or [],
                'calendarBlocks': calendar_blocks,
                'metadata': {
                    'processingTime': elapsed,
                    'tokensUsed': tokens_used,
                    'confidenceScore': confidence
                }
            },
            'metadata': {
                'wordCount': len(request.input.split()),
                'sentiment': ai_metadata.get('sentiment', 'neutral'),
                'complexity': ai_metadata.get('complexity', 'medium'),
                'topics': ai_metadata.get('topics', [])
            }
        }

    def _themes(self, themes: Any) -> List[Dict[str, Any]]:
        result = []
        for theme in themes or []:
            if not isinstance(theme, dict) or not theme.get('theme'):
                continue
            try:
                confidence = float(theme.get('confidence', DEFAULT_CONFIDENCE))
            except (TypeError, ValueError):
                confidence = DEFAULT_CONFIDENCE
            result.append({
                'theme': theme['theme'],
                'confidence': min(max(confidence, 0.0), 1.0),
                'evidence': theme.get('evidence') or [],
                'relatedConcepts': theme.get('relatedConcepts') or []
            })
        return result

    def _actions(
        self,
        items: Any,
        calendar_blocks: List[Dict[str, Any]],
        request: SynthesizeRequest
    ) -> List[Dict[str, Any]]:
        wants_calendar = (
            request.output_preferences.calendar_integration
            or request.output_preferences.action_format == 'calendar-first'
        )
        result = []
        for index, item in enumerate(i for i in items or [] if isinstance(i, dict) and i.get('task')):
            action = {
                'id': f"action_{uuid.uuid4().hex[:8]}_{index}",
                'task': item['task'],
                'priority': item.get('priority') if item.get('priority') in ('low', 'medium', 'high') else 'medium',
                'category': _text(item.get('category'), 'planning'),
                'estimatedDuration': _text(item.get('estimatedDuration'), '30 minutes'),
                'suggestedTime': _text(item.get('suggestedTime'), 'morning'),
                'completed': False
            }
            if wants_calendar and index < len(calendar_blocks):
                block = calendar_blocks[index]
                action['calendarReady'] = {
                    'title': block.get('title') or item['task'],
                    'description': item['task'],
                    'duration': block.get('duration', 30),
                    'suggestedTimes': block.get('suggestedTimes') or []
                }
            result.append(action)
        return result

    def _content(self, suggestions: Any, platforms: List[str]) -> Dict[str, Dict[str, Any]]:
        if not isinstance(suggestions, dict):
            return {}
        result = {}
        for platform, suggestion in suggestions.items():
            if platforms and platform not in platforms:
                continue
            if not isinstance(suggestion, dict) or not suggestion.get('content'):
                continue
            result[platform] = {
                **suggestion,
                'engagement_prediction': calculate_engagement_prediction(suggestion['content'], platform)
            }
        return result
