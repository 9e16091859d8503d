import logging
import re
from typing import Any, Dict, List, Optional

from scatterbrain.ai_clients import OpenAIClient, parse_json_content
from scatterbrain.error_handler import AppError, InvalidInputError

logger = logging.getLogger(__name__)

MAX_CONTENT_TYPES = 6

GENERATE_SYSTEM_PROMPT = """You are an expert content creator specializing in {platform} content.

Platform: {platform}
Content Type: {content_type}
Target Tone: {tone}
Length: {length}
Target Audience: {target_audience}

Create engaging, authentic content that is optimized for {platform}, keeps a {tone} tone,
fits {length} length content and gives the {target_audience} audience genuine value.

Include a compelling title or hook on the first line, the main body, key takeaways or a
call-to-action, and suggested hashtags where the platform uses them."""

MULTIPLY_SYSTEM_PROMPT = (
    "You are an expert content creator specializing in multi-format content generation. "
    "Always return valid JSON."
)

INSIGHTS_SYSTEM_PROMPT = "Extract core themes and insights from content. Return valid JSON."

INSIGHTS_PROMPT = """Analyze this input and extract core insights: "{input}"

Return JSON with:
{{"mainTheme": "Core theme", "expandedIdeas": ["idea1"], "seoKeywords": ["keyword1"], "hashtags": ["#hashtag1"]}}"""

MULTIPLY_PROMPT = """Transform this original thought into {label} format:

Original Input: "{input}"
Target Audience: {target_audience}
Tone: {tone}
Brand Voice: {brand_voice}

{shape}"""

# JSON shape requested per output format
FORMAT_SHAPES = {
    'blog_post': (
        'Create a comprehensive blog post. Return JSON with "title", "subtitle", "outline", '
        '"content" (introduction, sections, conclusion), "seoKeywords" and "engagementScore".'
    ),
    'twitter_thread': (
        'Create a Twitter thread of 8-15 tweets. Return JSON with "title", "tweets" '
        '(number, content, type), "hashtags", "engagementScore" and "totalTweets".'
    ),
    'newsletter': (
        'Create a newsletter section. Return JSON with "title", "subtitle", "sections", '
        '"callToAction", "wordCount" and "engagementScore".'
    ),
    'linkedin_article': (
        'Create a LinkedIn thought-leadership article. Return JSON with "title", "subtitle", '
        '"content" (introduction, mainBody, conclusion), "wordCount" and "engagementScore".'
    ),
    'instagram_carousel': (
        'Create Instagram carousel content of 5-8 slides. Return JSON with "title", "slides" '
        '(number, title, content, visualDescription), "caption", "hashtags" and "engagementScore".'
    ),
    'youtube_script': (
        'Create a 5-10 minute YouTube script. Return JSON with "title", "description", "script" '
        '(hook, introduction, mainContent, conclusion), "timestamps" and "engagementScore".'
    ),
}

TYPE_LABELS = {
    'blog_post': 'Blog Post',
    'newsletter': 'Newsletter',
    'twitter_thread': 'Twitter Thread',
    'linkedin_article': 'LinkedIn Article',
    'instagram_carousel': 'Instagram Carousel',
    'youtube_script': 'YouTube Script',
}

SCHEDULES = {
    'blog_post': {'platform': 'blog', 'optimalTime': '09:00', 'frequency': 'weekly'},
    'twitter_thread': {'platform': 'twitter', 'optimalTime': '12:00', 'frequency': 'daily'},
    'newsletter': {'platform': 'email', 'optimalTime': '08:00', 'frequency': 'weekly'},
    'linkedin_article': {'platform': 'linkedin', 'optimalTime': '10:00', 'frequency': 'bi-weekly'},
    'instagram_carousel': {'platform': 'instagram', 'optimalTime': '18:00', 'frequency': 'daily'},
    'youtube_script': {'platform': 'youtube', 'optimalTime': '19:00', 'frequency': 'weekly'},
}
DEFAULT_SCHEDULE = {'platform': 'general', 'optimalTime': '12:00', 'frequency': 'weekly'}

FALLBACK_INSIGHTS = {
    'mainTheme': 'Content insights',
    'expandedIdeas': [],
    'seoKeywords': [],
    'hashtags': [],
}

DEFAULT_ENGAGEMENT = 0.75

_HEADING = re.compile(r'^#+\s*')


def format_type_label(content_type: str) -> str:
    if content_type in TYPE_LABELS:
        return TYPE_LABELS[content_type]
    return ' '.join(word.capitalize() for word in content_type.replace('_', ' ').split())


def schedule_for(content_types: List[str]) -> List[Dict[str, str]]:
    return [{'contentType': t, **SCHEDULES.get(t, DEFAULT_SCHEDULE)} for t in content_types]


def predict_generated_engagement(content: str, platform: Optional[str], tone: Optional[str]) -> float:
    """Percentage score for generated posts, capped at 95."""
    length_score = min(len(content) / 1000, 1) * 0.5
    platform_score = 0.3 if platform else 0.1
    tone_score = 0.2 if tone else 0.1
    return round(min((length_score + platform_score + tone_score) * 100, 95), 1)


def extract_title(content: str, fallback: str) -> str:
    for line in content.splitlines():
        if line.strip():
            return _HEADING.sub('', line).strip() or fallback
    return fallback


class ContentService:
    def __init__(self, ai_client: OpenAIClient, storage_service):
        self.ai = ai_client
        self.storage = storage_service

    def generate(
        self,
        user_id: str,
        thought_id: Optional[str],
        platform: str,
        content_type: str = 'post',
        tone: str = 'professional',
        length: str = 'medium',
        target_audience: str = 'general'
    ) -> Dict[str, Any]:
        """Turn one stored thought into a post for a single platform and save it."""
        if not thought_id:
            raise InvalidInputError("Thought ID is required")
        if not platform:
            raise InvalidInputError("Platform is required")

        thought = self.storage.get_thought(thought_id)
        if not thought or thought.get('user_id') != user_id:
            raise AppError(f"Thought {thought_id} not found for user {user_id}", status_code=404,
                           user_message="Thought not found.")

        system_prompt = GENERATE_SYSTEM_PROMPT.format(
            platform=platform,
            content_type=content_type,
            tone=tone,
            length=length,
            target_audience=target_audience
        )
        prompt = f'Transform this thought into {content_type} content for {platform}: "{thought["content"]}"'
        content, _ = self.ai.complete(system_prompt, prompt)
        content = content or ''

        suggestion = self.storage.insert_content_suggestion({
            'organization_id': thought.get('organization_id'),
            'user_id': user_id,
            'thought_id': thought_id,
            'title': extract_title(content, f"{platform} content from thought"),
            'description': f"AI-generated {content_type} content for {platform}",
            'content_type': content_type,
            'ai_generated_content': content,
            'target_keywords': [],
            'suggested_tone': tone,
            'engagement_prediction': predict_generated_engagement(content, platform, tone),
            'estimated_word_count': len(content.split())
        })
        logger.info(f"Generated {content_type} for {platform} from thought {thought_id}")
        return {'success': True, 'suggestion': suggestion, 'content': content}

    def multiply(
        self,
        user_id: str,
        organization_id: str,
        original_input: str,
        content_types: List[str],
        target_audience: str = 'general',
        tone: str = 'professional',
        brand_voice: str = 'helpful and informative'
    ) -> Dict[str, Any]:
        """Expand one idea into several formats, saving each as a content suggestion."""
        if not original_input or not original_input.strip():
            raise InvalidInputError("Original input is required")
        if not content_types:
            raise InvalidInputError("At least one content type is required")
        if len(content_types) > MAX_CONTENT_TYPES:
            raise InvalidInputError(f"At most {MAX_CONTENT_TYPES} content types per request")

        suite = {}
        for content_type in content_types:
            content = self._generate_format(content_type, original_input, target_audience, tone, brand_voice)
            suite[content_type] = content
            try:
                self.storage.insert_content_suggestion({
                    'organization_id': organization_id,
                    'user_id': user_id,
                    'title': content.get('title') or f"{format_type_label(content_type)} - Generated Content",
                    'description': content.get('description') or content.get('subtitle'),
                    'content_type': content_type,
                    'ai_generated_content': content,
                    'target_keywords': content.get('seoKeywords') or [],
                    'suggested_tone': tone,
                    'engagement_prediction': content.get('engagementScore', DEFAULT_ENGAGEMENT)
                })
            except Exception as e:
                logger.error(f"Could not save {content_type} suggestion: {str(e)}")

        insights = self._core_insights(original_input)
        return {
            'success': True,
            'coreTheme': insights.get('mainTheme'),
            'expandedIdeas': insights.get('expandedIdeas') or [],
            'contentSuite': suite,
            'suggestedSchedule': schedule_for(content_types),
            'seoKeywords': insights.get('seoKeywords') or [],
            'hashtags': insights.get('hashtags') or []
        }

    def _generate_format(
        self,
        content_type: str,
        original_input: str,
        target_audience: str,
        tone: str,
        brand_voice: str
    ) -> Dict[str, Any]:
        label = format_type_label(content_type)
        shape = FORMAT_SHAPES.get(
            content_type,
            f'Create content in {content_type} format. Return JSON with title, content, and engagementScore fields.'
        )
        prompt = MULTIPLY_PROMPT.format(
            label=label,
            input=original_input,
            target_audience=target_audience,
            tone=tone,
            brand_voice=brand_voice,
            shape=shape
        )
        raw, _ = self.ai.complete(MULTIPLY_SYSTEM_PROMPT, prompt)
        fallback = {
            'title': f"Generated {label}",
            'content': raw or '',
            'wordCount': len((raw or '').split()),
            'engagementScore': DEFAULT_ENGAGEMENT
        }
        content = parse_json_content(raw, fallback)
        return content if isinstance(content, dict) else fallback

    def _core_insights(self, original_input: str) -> Dict[str, Any]:
        raw, _ = self.ai.complete(INSIGHTS_SYSTEM_PROMPT, INSIGHTS_PROMPT.format(input=original_input), temperature=0.3)
        insights = parse_json_content(raw, FALLBACK_INSIGHTS)
        return insights if isinstance(insights, dict) else FALLBACK_INSIGHTS
