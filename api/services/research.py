import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from scatterbrain.ai_clients import AnthropicClient, PerplexityClient
from scatterbrain.error_handler import InvalidInputError

logger = logging.getLogger(__name__)

CLAUDE_RESEARCH_TYPES = {
    'deep_analysis': (
        "You are a strategic research analyst specializing in {niche}. Use community discussions "
        "as your primary source for authentic user perspectives, supplemented by industry data.",
        "Conduct a deep analysis of \"{topic}\" in the {niche} industry. Cover community insights, "
        "the current landscape, market trends, opportunities and challenges, future predictions, "
        "and specific actionable insights for content creators."
    ),
    'content_ideas': (
        "You are a creative content strategist specializing in {niche}.",
        "Generate 10 unique content ideas around \"{topic}\" for {niche} creators. For each idea give "
        "a headline, key points, target audience insights, engagement strategies and platform adaptations."
    ),
    'competitive_analysis': (
        "You are a competitive intelligence analyst.",
        "Analyze the competitive landscape for \"{topic}\" in {niche}: key competitors, community "
        "sentiment about them, content gaps, positioning angles and differentiation strategies."
    ),
    'trend_forecast': (
        "You are a trend forecasting expert specializing in {niche}.",
        "Forecast trends related to \"{topic}\" in {niche} for the next 6-12 months: emerging signals, "
        "behavior shifts, technology impacts, and content opportunities, with timeline estimates."
    ),
}

GENERIC_RESEARCH = (
    "You are an expert researcher specializing in {niche}. Provide comprehensive, well-structured analysis.",
    "Research and analyze \"{topic}\" in the context of {niche}. Provide detailed insights, "
    "current trends, and actionable recommendations."
)

CUSTOM_SYSTEM_PROMPT = (
    "You are an expert researcher and writer. Provide comprehensive, well-structured content "
    "that is informative and engaging."
)

PERPLEXITY_SYSTEM_PROMPT = (
    "You are a trend research analyst. Provide current, factual information with specific "
    "examples and actionable insights."
)

PERPLEXITY_QUERIES = {
    'trend_verification': (
        "Latest discussions about \"{topic}\" in {niche} community. What are people saying right now? "
        "Include current sentiment and engagement levels."
    ),
    'competitive_analysis': (
        "What content about \"{topic}\" have major {niche} influencers and brands published recently? "
        "What angles are they missing?"
    ),
    'content_opportunity': (
        "What specific questions and pain points about \"{topic}\" are {niche} communities discussing "
        "right now? What content opportunities exist?"
    ),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResearchService:
    def __init__(self, anthropic_client: AnthropicClient, perplexity_client: PerplexityClient):
        self.claude = anthropic_client
        self.perplexity = perplexity_client

    def claude_research(
        self,
        topic: Optional[str],
        niche: Optional[str] = None,
        research_type: str = 'deep_analysis',
        custom_prompt: Optional[str] = None
    ) -> Dict[str, Any]:
        if not topic and not custom_prompt:
            raise InvalidInputError("Topic or custom prompt is required")

        niche = niche or 'general'
        if custom_prompt:
            system_prompt, user_prompt = CUSTOM_SYSTEM_PROMPT, custom_prompt
        else:
            system_template, user_template = CLAUDE_RESEARCH_TYPES.get(research_type, GENERIC_RESEARCH)
            system_prompt = system_template.format(niche=niche)
            user_prompt = user_template.format(topic=topic, niche=niche)

        logger.info(f"Querying Claude with research type: {research_type}")
        content = self.claude.complete(system_prompt, user_prompt, max_tokens=3000)
        return {
            'content': content,
            'model_used': self.claude.model,
            'research_type': research_type,
            'topic': topic or 'Custom Research',
            'timestamp': _now()
        }

    def perplexity_research(
        self,
        topic: Optional[str],
        niche: Optional[str] = None,
        query_type: str = 'trend_verification'
    ) -> Dict[str, Any]:
        if not topic:
            raise InvalidInputError("Topic is required")
        if query_type not in PERPLEXITY_QUERIES:
            raise InvalidInputError(f"Unknown query type: {query_type}")

        query = PERPLEXITY_QUERIES[query_type].format(topic=topic, niche=niche or 'general')
        logger.info(f"Querying Perplexity with: {query}")
        content, sources = self.perplexity.search([
            {'role': 'system', 'content': PERPLEXITY_SYSTEM_PROMPT},
            {'role': 'user', 'content': query}
        ])
        return {
            'content': content,
            'sources': sources,
            'model_used': self.perplexity.model,
            'query_type': query_type,
            'timestamp': _now()
        }
